"""Research contribution incentive schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

This migration:
1. Creates schools, departments and users
2. Creates incentive_policies (date-ranged rules per publication type)
3. Creates research_contributions and contribution_authors
4. Creates reviews, edit suggestions, status history and notifications
"""
from datetime import datetime

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # 1) Lookups and users
    op.create_table(
        'schools',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False, unique=True),
        sa.Column('code', sa.String(20), unique=True),
        sa.Column('is_active', sa.Boolean(), default=True),
    )
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('code', sa.String(20), unique=True),
        sa.Column('is_active', sa.Boolean(), default=True),
    )
    op.create_index('ix_departments_school_id', 'departments', ['school_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('uid', sa.String(50), nullable=False),
        sa.Column('email', sa.String(120), nullable=False),
        sa.Column('password_hash', sa.String(256), nullable=False),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('role', sa.String(20), nullable=False),  # faculty, staff, student, admin
        sa.Column('is_internal', sa.Boolean(), default=True),
        sa.Column('can_review', sa.Boolean(), default=False),
        sa.Column('can_approve', sa.Boolean(), default=False),
        sa.Column('is_admin', sa.Boolean(), default=False),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index('ix_users_uid', 'users', ['uid'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # 2) Policies
    op.create_table(
        'incentive_policies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('policy_name', sa.String(200), nullable=False),
        sa.Column('publication_type', sa.String(50), nullable=False),
        sa.Column('sub_type', sa.String(50), nullable=True),
        sa.Column('rules', sa.JSON(), nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), default=datetime.utcnow),
        sa.Column('updated_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index('ix_incentive_policies_publication_type', 'incentive_policies', ['publication_type'])
    op.create_index('ix_incentive_policies_sub_type', 'incentive_policies', ['sub_type'])
    op.create_index('ix_incentive_policies_is_active', 'incentive_policies', ['is_active'])
    op.create_index(
        'idx_policy_lookup',
        'incentive_policies',
        ['publication_type', 'sub_type', 'effective_from'],
    )

    # 3) Contributions and authors
    op.create_table(
        'research_contributions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('application_number', sa.String(30), nullable=True),
        sa.Column('publication_type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('abstract', sa.Text()),
        sa.Column('publication_date', sa.Date()),
        sa.Column('applicant_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('applicant_type', sa.String(30)),
        sa.Column('applicant_author_role', sa.String(40)),
        sa.Column('declared_total_authors', sa.Integer()),
        sa.Column('school_id', sa.Integer(), sa.ForeignKey('schools.id'), nullable=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('journal_name', sa.String(300)),
        sa.Column('quartile', sa.String(10)),
        sa.Column('sjr', sa.Float()),
        sa.Column('impact_factor', sa.Float()),
        sa.Column('doi', sa.String(100)),
        sa.Column('indexing_categories', sa.JSON()),
        sa.Column('book_type', sa.String(20)),
        sa.Column('book_indexing_type', sa.String(40)),
        sa.Column('is_international_publication', sa.Boolean()),
        sa.Column('isbn', sa.String(30)),
        sa.Column('publisher_name', sa.String(200)),
        sa.Column('conference_name', sa.String(300)),
        sa.Column('conference_sub_type', sa.String(50)),
        sa.Column('proceedings_quartile', sa.String(10)),
        sa.Column('conference_type', sa.String(20)),
        sa.Column('is_best_paper_award', sa.Boolean()),
        sa.Column('funding_agency', sa.String(300)),
        sa.Column('sanctioned_amount', sa.Numeric(14, 2)),
        sa.Column('status', sa.String(40), nullable=False),
        sa.Column('mentor_uid', sa.String(50)),
        sa.Column('mentor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('mentor_remarks', sa.Text()),
        sa.Column('mentor_approved_at', sa.DateTime()),
        sa.Column('current_reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('revision_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('calculated_incentive_amount', sa.Integer()),
        sa.Column('calculated_points', sa.Integer()),
        sa.Column('incentive_amount', sa.Integer()),
        sa.Column('points_awarded', sa.Integer()),
        sa.Column('submitted_at', sa.DateTime()),
        sa.Column('approved_at', sa.DateTime()),
        sa.Column('credited_at', sa.DateTime()),
        sa.Column('completed_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=datetime.utcnow),
        sa.Column('updated_at', sa.DateTime(), default=datetime.utcnow),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
    )
    op.create_index(
        'ix_research_contributions_application_number',
        'research_contributions',
        ['application_number'],
        unique=True,
    )
    op.create_index('ix_research_contributions_publication_type', 'research_contributions', ['publication_type'])
    op.create_index('ix_research_contributions_applicant_user_id', 'research_contributions', ['applicant_user_id'])
    op.create_index('ix_research_contributions_status', 'research_contributions', ['status'])

    op.create_table(
        'contribution_authors',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contribution_id', sa.Integer(), sa.ForeignKey('research_contributions.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('uid', sa.String(50)),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(120)),
        sa.Column('affiliation', sa.String(300)),
        sa.Column('participant_type', sa.String(30)),
        sa.Column('author_category', sa.String(20)),
        sa.Column('is_internal', sa.Boolean()),
        sa.Column('author_role', sa.String(40)),
        sa.Column('author_order', sa.Integer()),
        sa.Column('incentive_share', sa.Integer()),
        sa.Column('points_share', sa.Integer()),
    )
    op.create_index('ix_contribution_authors_contribution_id', 'contribution_authors', ['contribution_id'])
    op.create_index('ix_contribution_authors_user_id', 'contribution_authors', ['user_id'])

    # 4) Review trail
    op.create_table(
        'contribution_reviews',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contribution_id', sa.Integer(), sa.ForeignKey('research_contributions.id'), nullable=False),
        sa.Column('reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('reviewer_role', sa.String(20)),
        sa.Column('decision', sa.String(30), nullable=False),
        sa.Column('comments', sa.Text()),
        sa.Column('suggestions_count', sa.Integer()),
        sa.Column('pending_suggestions_count', sa.Integer()),
        sa.Column('reviewed_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index('ix_contribution_reviews_contribution_id', 'contribution_reviews', ['contribution_id'])

    op.create_table(
        'edit_suggestions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('review_id', sa.Integer(), sa.ForeignKey('contribution_reviews.id'), nullable=False),
        sa.Column('contribution_id', sa.Integer(), sa.ForeignKey('research_contributions.id'), nullable=False),
        sa.Column('reviewer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('field_name', sa.String(100), nullable=False),
        sa.Column('original_value', sa.Text()),
        sa.Column('suggested_value', sa.Text()),
        sa.Column('note', sa.Text()),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('applicant_response', sa.Text()),
        sa.Column('responded_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index('ix_edit_suggestions_contribution_id', 'edit_suggestions', ['contribution_id'])

    op.create_table(
        'contribution_status_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('contribution_id', sa.Integer(), sa.ForeignKey('research_contributions.id'), nullable=False),
        sa.Column('from_status', sa.String(40)),
        sa.Column('to_status', sa.String(40), nullable=False),
        sa.Column('changed_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('comments', sa.Text()),
        sa.Column('metadata', sa.JSON()),
        sa.Column('changed_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index(
        'ix_contribution_status_history_contribution_id',
        'contribution_status_history',
        ['contribution_id'],
    )

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text()),
        sa.Column('reference_type', sa.String(50)),
        sa.Column('reference_id', sa.Integer()),
        sa.Column('metadata', sa.JSON()),
        sa.Column('is_read', sa.Boolean(), default=False),
        sa.Column('created_at', sa.DateTime(), default=datetime.utcnow),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade():
    op.drop_index('ix_notifications_user_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_contribution_status_history_contribution_id', table_name='contribution_status_history')
    op.drop_table('contribution_status_history')
    op.drop_index('ix_edit_suggestions_contribution_id', table_name='edit_suggestions')
    op.drop_table('edit_suggestions')
    op.drop_index('ix_contribution_reviews_contribution_id', table_name='contribution_reviews')
    op.drop_table('contribution_reviews')
    op.drop_index('ix_contribution_authors_user_id', table_name='contribution_authors')
    op.drop_index('ix_contribution_authors_contribution_id', table_name='contribution_authors')
    op.drop_table('contribution_authors')
    op.drop_index('ix_research_contributions_status', table_name='research_contributions')
    op.drop_index('ix_research_contributions_applicant_user_id', table_name='research_contributions')
    op.drop_index('ix_research_contributions_publication_type', table_name='research_contributions')
    op.drop_index('ix_research_contributions_application_number', table_name='research_contributions')
    op.drop_table('research_contributions')
    op.drop_index('idx_policy_lookup', table_name='incentive_policies')
    op.drop_index('ix_incentive_policies_is_active', table_name='incentive_policies')
    op.drop_index('ix_incentive_policies_sub_type', table_name='incentive_policies')
    op.drop_index('ix_incentive_policies_publication_type', table_name='incentive_policies')
    op.drop_table('incentive_policies')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_uid', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_departments_school_id', table_name='departments')
    op.drop_table('departments')
    op.drop_table('schools')
