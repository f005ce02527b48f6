"""
Database models for the Research Contribution Incentive Portal.
Covers research papers, books, book chapters, conference papers and grants.
"""

from datetime import datetime
from enum import Enum

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from werkzeug.security import check_password_hash, generate_password_hash

db = SQLAlchemy()


# =============================================================================
# CONTRIBUTION STATUS ENUM
# =============================================================================


class ContributionStatus(str, Enum):
    """Review workflow states"""

    DRAFT = "draft"
    SUBMITTED = "submitted"  # Waiting for DRD review
    PENDING_MENTOR_APPROVAL = "pending_mentor_approval"  # Student, waiting for mentor
    UNDER_REVIEW = "under_review"
    CHANGES_REQUIRED = "changes_required"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"  # Incentive credited
    REJECTED = "rejected"
    COMPLETED = "completed"


CONTRIBUTION_STATUS_DISPLAY_MAP = {
    "draft": "Draft",
    "submitted": "Submitted",
    "pending_mentor_approval": "Pending mentor approval",
    "under_review": "Under review",
    "changes_required": "Changes required",
    "resubmitted": "Resubmitted",
    "approved": "Approved",
    "rejected": "Rejected",
    "completed": "Completed",
}

# Statuses in which the applicant may still edit the contribution
EDITABLE_STATUSES = frozenset({"draft", "changes_required", "resubmitted"})


def contribution_status_to_display(status: str) -> str:
    return CONTRIBUTION_STATUS_DISPLAY_MAP.get(status or "", status or "")


# =============================================================================
# ENUMS - Publication and author classification
# =============================================================================


class PublicationType(str, Enum):
    """Research output types"""

    RESEARCH_PAPER = "research_paper"
    BOOK = "book"
    BOOK_CHAPTER = "book_chapter"
    CONFERENCE_PAPER = "conference_paper"
    GRANT = "grant"


class ConferenceSubType(str, Enum):
    PAPER_NOT_INDEXED = "paper_not_indexed"
    PAPER_INDEXED_SCOPUS = "paper_indexed_scopus"
    KEYNOTE_SPEAKER_INVITED_TALKS = "keynote_speaker_invited_talks"
    ORGANIZER_COORDINATOR_MEMBER = "organizer_coordinator_member"


class Quartile(str, Enum):
    TOP_1 = "Top 1%"
    TOP_5 = "Top 5%"
    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"


class AuthorRole(str, Enum):
    """Authorship role on a contribution"""

    FIRST_AUTHOR = "first_author"
    CORRESPONDING_AUTHOR = "corresponding_author"
    FIRST_AND_CORRESPONDING_AUTHOR = "first_and_corresponding_author"
    CO_AUTHOR = "co_author"
    SENIOR_AUTHOR = "senior_author"


class ParticipantType(str, Enum):
    """Affiliation of a participant"""

    INTERNAL_FACULTY = "internal_faculty"
    INTERNAL_STAFF = "internal_staff"
    INTERNAL_STUDENT = "internal_student"
    EXTERNAL_ACADEMIC = "external_academic"
    EXTERNAL_INDUSTRY = "external_industry"
    EXTERNAL_OTHER = "external_other"


# participant_type -> author_category
AUTHOR_CATEGORY_MAP = {
    "internal_faculty": "faculty",
    "internal_staff": "staff",
    "internal_student": "student",
    "external_academic": "academic",
    "external_industry": "industry",
    "external_other": "other",
}


class ReviewDecision(str, Enum):
    REVIEWING = "reviewing"
    CHANGES_REQUIRED = "changes_required"
    RECOMMENDED = "recommended"
    APPROVED = "approved"
    REJECTED = "rejected"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# =============================================================================
# SCHOOL / DEPARTMENT - read-only lookups
# =============================================================================


class School(db.Model):
    """School (faculty) of the university"""

    __tablename__ = "schools"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    code = db.Column(db.String(20), unique=True)
    is_active = db.Column(db.Boolean, default=True)

    def __repr__(self):
        return f"<School {self.code or self.name}>"


class Department(db.Model):
    """Department inside a school"""

    __tablename__ = "departments"

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), index=True)
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(20), unique=True)
    is_active = db.Column(db.Boolean, default=True)

    school = db.relationship("School", backref="departments")

    def __repr__(self):
        return f"<Department {self.code or self.name}>"


# =============================================================================
# USER MODEL
# =============================================================================


class User(UserMixin, db.Model):
    """Portal user (faculty, staff, student or admin)"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(
        db.String(50), unique=True, nullable=False, index=True
    )  # Employee ID / registration number
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False, default="")
    full_name = db.Column(db.String(100), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default="faculty"
    )  # faculty, staff, student, admin
    is_internal = db.Column(db.Boolean, default=True)

    # DRD permissions
    can_review = db.Column(db.Boolean, default=False)
    can_approve = db.Column(db.Boolean, default=False)
    is_admin = db.Column(db.Boolean, default=False)

    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=True)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id"), nullable=True
    )

    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    school = db.relationship("School", foreign_keys=[school_id])
    department = db.relationship("Department", foreign_keys=[department_id])

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<User {self.uid}>"

    @property
    def is_student(self) -> bool:
        return self.role == "student"

    @property
    def participant_type(self) -> str:
        """Participant type derived from the user role"""
        if self.role == "student":
            return ParticipantType.INTERNAL_STUDENT.value
        if self.role == "staff":
            return ParticipantType.INTERNAL_STAFF.value
        return ParticipantType.INTERNAL_FACULTY.value


# =============================================================================
# INCENTIVE POLICY
# =============================================================================


class IncentivePolicy(db.Model):
    """
    Versioned, date-ranged incentive rules for one publication type
    (and one conference sub-type). The shape of `rules` depends on the
    publication type, see incentive_calculator.parse_policy_rules.
    """

    __tablename__ = "incentive_policies"

    id = db.Column(db.Integer, primary_key=True)
    policy_name = db.Column(db.String(200), nullable=False)
    publication_type = db.Column(db.String(50), nullable=False, index=True)
    sub_type = db.Column(db.String(50), nullable=True, index=True)  # conference only
    rules = db.Column(db.JSON, nullable=False, default=dict)
    effective_from = db.Column(db.Date, nullable=False)
    effective_to = db.Column(db.Date, nullable=True)  # None = open ended
    is_active = db.Column(db.Boolean, default=True, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    created_by = db.relationship("User", foreign_keys=[created_by_id])

    __table_args__ = (
        db.Index(
            "idx_policy_lookup", "publication_type", "sub_type", "effective_from"
        ),
    )

    def __repr__(self):
        return f"<IncentivePolicy {self.publication_type}/{self.sub_type}: {self.policy_name}>"

    def covers(self, on_date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "policy_name": self.policy_name,
            "publication_type": self.publication_type,
            "sub_type": self.sub_type,
            "rules": self.rules or {},
            "effective_from": self.effective_from.isoformat(),
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "is_active": bool(self.is_active),
        }


# =============================================================================
# RESEARCH CONTRIBUTION
# =============================================================================


class ResearchContribution(db.Model):
    """
    One research output submitted for incentive.
    calculated_* columns hold the applicant's own share; incentive_amount and
    points_awarded hold the totals credited at approval.
    """

    __tablename__ = "research_contributions"

    id = db.Column(db.Integer, primary_key=True)
    application_number = db.Column(db.String(30), unique=True, index=True)
    publication_type = db.Column(db.String(50), nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    abstract = db.Column(db.Text)
    publication_date = db.Column(db.Date)

    applicant_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    applicant_type = db.Column(
        db.String(30), default="internal_faculty"
    )  # internal_faculty, internal_staff, internal_student
    applicant_author_role = db.Column(db.String(40))
    declared_total_authors = db.Column(db.Integer, default=1)

    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=True)
    department_id = db.Column(
        db.Integer, db.ForeignKey("departments.id"), nullable=True
    )

    # Research paper specific
    journal_name = db.Column(db.String(300))
    quartile = db.Column(db.String(10))  # Top 1%, Top 5%, Q1..Q4
    sjr = db.Column(db.Float)
    impact_factor = db.Column(db.Float)
    doi = db.Column(db.String(100))
    indexing_categories = db.Column(db.JSON)  # multi-select, e.g. ["scopus", "wos"]

    # Book / book chapter specific
    book_type = db.Column(db.String(20))  # authored, edited
    book_indexing_type = db.Column(
        db.String(40)
    )  # scopus_indexed, non_indexed, sgt_publication_house
    is_international_publication = db.Column(db.Boolean, default=False)
    isbn = db.Column(db.String(30))
    publisher_name = db.Column(db.String(200))

    # Conference specific
    conference_name = db.Column(db.String(300))
    conference_sub_type = db.Column(db.String(50))
    proceedings_quartile = db.Column(db.String(10))  # na, Top 1%, ..., Q4
    conference_type = db.Column(db.String(20))  # national, international
    is_best_paper_award = db.Column(db.Boolean, default=False)

    # Grant specific
    funding_agency = db.Column(db.String(300))
    sanctioned_amount = db.Column(db.Numeric(14, 2))

    # Workflow
    status = db.Column(db.String(40), default="draft", nullable=False, index=True)
    mentor_uid = db.Column(db.String(50))
    mentor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    mentor_remarks = db.Column(db.Text)
    mentor_approved_at = db.Column(db.DateTime)
    current_reviewer_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True
    )
    revision_count = db.Column(db.Integer, default=0, nullable=False)

    # Calculation results
    calculated_incentive_amount = db.Column(db.Integer, default=0)
    calculated_points = db.Column(db.Integer, default=0)
    incentive_amount = db.Column(db.Integer, default=0)
    points_awarded = db.Column(db.Integer, default=0)

    submitted_at = db.Column(db.DateTime)
    approved_at = db.Column(db.DateTime)
    credited_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Optimistic lock counter
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    applicant = db.relationship("User", foreign_keys=[applicant_user_id])
    mentor = db.relationship("User", foreign_keys=[mentor_id])
    current_reviewer = db.relationship("User", foreign_keys=[current_reviewer_id])
    school = db.relationship("School", foreign_keys=[school_id])
    department = db.relationship("Department", foreign_keys=[department_id])

    authors = db.relationship(
        "ContributionAuthor",
        backref="contribution",
        cascade="all, delete-orphan",
        order_by="ContributionAuthor.author_order",
    )
    reviews = db.relationship(
        "ContributionReview",
        backref="contribution",
        cascade="all, delete-orphan",
        order_by="ContributionReview.reviewed_at",
    )
    status_history = db.relationship(
        "StatusHistory",
        backref="contribution",
        order_by="StatusHistory.id",
    )

    def __repr__(self):
        return f"<ResearchContribution {self.application_number or self.id}: {self.status}>"

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    @property
    def is_student_applicant(self) -> bool:
        return self.applicant_type == ParticipantType.INTERNAL_STUDENT.value

    @property
    def status_display(self) -> str:
        return contribution_status_to_display(self.status)

    def calculation_data(self) -> dict:
        """Policy-relevant fields as consumed by the incentive calculator."""
        return {
            "publication_date": self.publication_date,
            "quartile": self.quartile,
            "sjr": self.sjr,
            "impact_factor": self.impact_factor,
            "book_type": self.book_type,
            "book_indexing_type": self.book_indexing_type,
            "is_international_publication": bool(self.is_international_publication),
            "conference_sub_type": self.conference_sub_type,
            "proceedings_quartile": self.proceedings_quartile,
            "conference_type": self.conference_type,
            "is_best_paper_award": bool(self.is_best_paper_award),
            "sanctioned_amount": (
                float(self.sanctioned_amount)
                if self.sanctioned_amount is not None
                else None
            ),
        }

    def to_dict(self, include_authors: bool = True) -> dict:
        data = {
            "id": self.id,
            "application_number": self.application_number,
            "publication_type": self.publication_type,
            "title": self.title,
            "status": self.status,
            "status_display": self.status_display,
            "applicant_user_id": self.applicant_user_id,
            "applicant_type": self.applicant_type,
            "applicant_author_role": self.applicant_author_role,
            "school_id": self.school_id,
            "department_id": self.department_id,
            "mentor_uid": self.mentor_uid,
            "mentor_remarks": self.mentor_remarks,
            "current_reviewer_id": self.current_reviewer_id,
            "revision_count": self.revision_count,
            "calculated_incentive_amount": self.calculated_incentive_amount or 0,
            "calculated_points": self.calculated_points or 0,
            "incentive_amount": self.incentive_amount or 0,
            "points_awarded": self.points_awarded or 0,
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "credited_at": _iso(self.credited_at),
            "completed_at": _iso(self.completed_at),
            "version": self.version_id,
        }
        data.update(
            {k: _iso(v) for k, v in self.calculation_data().items()}
        )
        if include_authors:
            data["authors"] = [a.to_dict() for a in self.authors]
        return data


def _iso(value):
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


class ContributionAuthor(db.Model):
    """Named participant on a contribution other than the applicant"""

    __tablename__ = "contribution_authors"

    id = db.Column(db.Integer, primary_key=True)
    contribution_id = db.Column(
        db.Integer,
        db.ForeignKey("research_contributions.id"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=True, index=True
    )  # Set when resolved from uid
    uid = db.Column(db.String(50))
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(120))
    affiliation = db.Column(db.String(300))
    participant_type = db.Column(db.String(30), default="internal_faculty")
    author_category = db.Column(db.String(20))  # faculty, staff, student, ...
    is_internal = db.Column(db.Boolean, default=True)
    author_role = db.Column(db.String(40), default="co_author")
    author_order = db.Column(db.Integer, default=1)

    incentive_share = db.Column(db.Integer, default=0)
    points_share = db.Column(db.Integer, default=0)

    user = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<ContributionAuthor {self.name} ({self.author_role})>"

    @property
    def is_student(self) -> bool:
        return self.participant_type == ParticipantType.INTERNAL_STUDENT.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "uid": self.uid,
            "name": self.name,
            "participant_type": self.participant_type,
            "author_category": self.author_category,
            "is_internal": bool(self.is_internal),
            "author_role": self.author_role,
            "author_order": self.author_order,
            "incentive_share": self.incentive_share or 0,
            "points_share": self.points_share or 0,
        }


# =============================================================================
# REVIEW / EDIT SUGGESTION
# =============================================================================


class ContributionReview(db.Model):
    """One reviewer action on a contribution"""

    __tablename__ = "contribution_reviews"

    id = db.Column(db.Integer, primary_key=True)
    contribution_id = db.Column(
        db.Integer,
        db.ForeignKey("research_contributions.id"),
        nullable=False,
        index=True,
    )
    reviewer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reviewer_role = db.Column(db.String(20))  # mentor, reviewer, approver
    decision = db.Column(db.String(30), nullable=False)
    comments = db.Column(db.Text)
    suggestions_count = db.Column(db.Integer, default=0)
    pending_suggestions_count = db.Column(db.Integer, default=0)
    reviewed_at = db.Column(db.DateTime, default=datetime.utcnow)

    reviewer = db.relationship("User", foreign_keys=[reviewer_id])
    suggestions = db.relationship(
        "EditSuggestion", backref="review", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<ContributionReview {self.decision} by {self.reviewer_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contribution_id": self.contribution_id,
            "reviewer_id": self.reviewer_id,
            "reviewer_role": self.reviewer_role,
            "decision": self.decision,
            "comments": self.comments,
            "suggestions_count": self.suggestions_count or 0,
            "pending_suggestions_count": self.pending_suggestions_count or 0,
            "reviewed_at": _iso(self.reviewed_at),
        }


class EditSuggestion(db.Model):
    """Field-level edit proposed by a reviewer"""

    __tablename__ = "edit_suggestions"

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer, db.ForeignKey("contribution_reviews.id"), nullable=False
    )
    contribution_id = db.Column(
        db.Integer,
        db.ForeignKey("research_contributions.id"),
        nullable=False,
        index=True,
    )
    reviewer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    field_name = db.Column(db.String(100), nullable=False)
    original_value = db.Column(db.Text)
    suggested_value = db.Column(db.Text)
    note = db.Column(db.Text)
    status = db.Column(db.String(20), default="pending", nullable=False)
    applicant_response = db.Column(db.Text)
    responded_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    contribution = db.relationship("ResearchContribution", foreign_keys=[contribution_id])

    def __repr__(self):
        return f"<EditSuggestion {self.field_name}: {self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "field_name": self.field_name,
            "original_value": self.original_value,
            "suggested_value": self.suggested_value,
            "note": self.note,
            "status": self.status,
            "applicant_response": self.applicant_response,
            "responded_at": _iso(self.responded_at),
        }


# =============================================================================
# STATUS HISTORY - append-only audit log
# =============================================================================


class StatusHistory(db.Model):
    """Every workflow transition, including no-op ones like recommend"""

    __tablename__ = "contribution_status_history"

    id = db.Column(db.Integer, primary_key=True)
    contribution_id = db.Column(
        db.Integer,
        db.ForeignKey("research_contributions.id"),
        nullable=False,
        index=True,
    )
    from_status = db.Column(db.String(40))
    to_status = db.Column(db.String(40), nullable=False)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    comments = db.Column(db.Text)
    extra = db.Column("metadata", db.JSON)
    changed_at = db.Column(db.DateTime, default=datetime.utcnow)

    changed_by = db.relationship("User", foreign_keys=[changed_by_id])

    def __repr__(self):
        return f"<StatusHistory {self.from_status} -> {self.to_status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_id": self.changed_by_id,
            "comments": self.comments,
            "metadata": self.extra or {},
            "changed_at": _iso(self.changed_at),
        }


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(StatusHistory, "before_update")
def _status_history_before_update(mapper, connection, target):
    raise AuditLogImmutableError("Status history rows cannot be modified")


@event.listens_for(StatusHistory, "before_delete")
def _status_history_before_delete(mapper, connection, target):
    raise AuditLogImmutableError("Status history rows cannot be deleted")


# =============================================================================
# NOTIFICATION
# =============================================================================


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    type = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text)
    reference_type = db.Column(db.String(50))
    reference_id = db.Column(db.Integer)
    extra = db.Column("metadata", db.JSON)
    is_read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<Notification {self.type} -> {self.user_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "metadata": self.extra or {},
            "is_read": bool(self.is_read),
            "created_at": _iso(self.created_at),
        }


# =============================================================================
# EVENT LISTENERS
# =============================================================================


@event.listens_for(ContributionAuthor, "before_insert")
@event.listens_for(ContributionAuthor, "before_update")
def _author_sync_category(mapper, connection, target):
    """Keep author_category and is_internal consistent with participant_type."""
    ptype = target.participant_type or ""
    target.author_category = AUTHOR_CATEGORY_MAP.get(ptype, target.author_category)
    if ptype.startswith("external_"):
        target.is_internal = False
