from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from research_portal.db_models import Notification, ResearchContribution, db
from research_portal.errors import (
    ConcurrencyConflict,
    ContributionNotFound,
    InvalidTransition,
    PermissionDenied,
    WorkflowValidationError,
)
from research_portal.services import contributions as service
from research_portal.services import review_workflow


def _paper_payload(**overrides) -> dict:
    payload = {
        "publication_type": "research_paper",
        "title": "Deep learning for crop yield",
        "publication_date": "2025-03-01",
        "journal_name": "Journal of Agronomy",
        "quartile": "Q1",
        "applicant_author_role": "first_author",
        "declared_total_authors": 2,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def co_author(make_user):
    return make_user("faculty", full_name="Dr. Corresponding")


def test_create_computes_shares_for_every_author(faculty, co_author) -> None:
    contribution = service.create_contribution(
        faculty,
        _paper_payload(authors=[{"uid": co_author.uid, "author_role": "corresponding_author"}]),
    )

    assert contribution.status == "draft"
    assert contribution.application_number is None
    assert contribution.calculated_incentive_amount == 17500
    assert contribution.calculated_points == 17

    author = contribution.authors[0]
    assert author.user_id == co_author.id
    assert author.name == "Dr. Corresponding"
    assert author.author_category == "faculty"
    assert (author.incentive_share, author.points_share) == (15000, 15)


def test_create_notifies_linked_authors(faculty, co_author) -> None:
    service.create_contribution(
        faculty,
        _paper_payload(
            authors=[
                {"uid": co_author.uid, "author_role": "corresponding_author"},
                {"name": "Ext Person", "participant_type": "external_academic", "author_role": "co_author"},
            ],
            declared_total_authors=3,
        ),
    )
    notes = Notification.query.filter_by(type="research_author_added").all()
    assert [n.user_id for n in notes] == [co_author.id]


def test_external_author_gets_nothing(faculty) -> None:
    contribution = service.create_contribution(
        faculty,
        _paper_payload(
            authors=[
                {
                    "name": "Prof. Elsewhere",
                    "participant_type": "external_academic",
                    "author_role": "corresponding_author",
                }
            ]
        ),
    )
    external = contribution.authors[0]
    assert external.is_internal is False
    assert (external.incentive_share, external.points_share) == (0, 0)
    assert contribution.calculated_incentive_amount == 17500


def test_create_validates_type_and_title(faculty) -> None:
    with pytest.raises(WorkflowValidationError):
        service.create_contribution(faculty, _paper_payload(publication_type="patent"))
    with pytest.raises(WorkflowValidationError):
        service.create_contribution(faculty, _paper_payload(title="  "))
    with pytest.raises(WorkflowValidationError):
        service.create_contribution(faculty, _paper_payload(quartile="Q7"))


def test_update_recalculates_and_bumps_version(faculty) -> None:
    contribution = service.create_contribution(
        faculty, _paper_payload(applicant_author_role=None, declared_total_authors=1)
    )
    assert contribution.calculated_incentive_amount == 50000
    version = contribution.version_id

    updated = service.update_contribution(
        contribution.id, faculty, {"quartile": "Q2"}, expected_version=version
    )
    assert updated.calculated_incentive_amount == 30000
    assert updated.version_id == version + 1


def test_update_with_stale_version_conflicts(faculty) -> None:
    contribution = service.create_contribution(faculty, _paper_payload())
    stale = contribution.version_id
    service.update_contribution(contribution.id, faculty, {"doi": "10.1/abc"})

    with pytest.raises(ConcurrencyConflict):
        service.update_contribution(contribution.id, faculty, {"doi": "10.1/xyz"}, expected_version=stale)
    assert db.session.get(ResearchContribution, contribution.id).doi == "10.1/abc"


def test_only_applicant_edits(faculty, co_author) -> None:
    contribution = service.create_contribution(faculty, _paper_payload())
    with pytest.raises(PermissionDenied):
        service.update_contribution(contribution.id, co_author, {"title": "Hijacked"})


def test_submitted_contribution_is_not_editable(faculty) -> None:
    contribution = service.create_contribution(faculty, _paper_payload())
    assert review_workflow.submit(contribution.id, faculty).ok

    with pytest.raises(InvalidTransition):
        service.update_contribution(contribution.id, faculty, {"title": "Changed"})


def test_delete_only_drafts(faculty, co_author) -> None:
    draft = service.create_contribution(faculty, _paper_payload())
    with pytest.raises(PermissionDenied):
        service.delete_contribution(draft.id, co_author)
    service.delete_contribution(draft.id, faculty)
    with pytest.raises(ContributionNotFound):
        service.get_contribution(draft.id)

    submitted = service.create_contribution(faculty, _paper_payload())
    review_workflow.submit(submitted.id, faculty)
    with pytest.raises(InvalidTransition):
        service.delete_contribution(submitted.id, faculty)


def test_add_and_remove_author(faculty, co_author) -> None:
    contribution = service.create_contribution(
        faculty, _paper_payload(applicant_author_role="first_and_corresponding", declared_total_authors=1)
    )
    assert contribution.calculated_incentive_amount == 50000

    author = service.add_author(
        contribution.id, faculty, {"uid": co_author.uid, "author_role": "co_author"}
    )
    contribution = service.get_contribution(contribution.id)
    assert contribution.declared_total_authors == 2
    # two authors, one named co-author: first+corresponding 65%, co-author pool 35%
    assert contribution.calculated_incentive_amount == 32500
    assert author.incentive_share == 17500

    contribution = service.remove_author(contribution.id, faculty, author.id)
    assert contribution.authors == []


def test_application_numbers_are_sequential(faculty) -> None:
    first = service.create_contribution(faculty, _paper_payload())
    second = service.create_contribution(faculty, _paper_payload(title="Another"))
    review_workflow.submit(first.id, faculty)
    review_workflow.submit(second.id, faculty)

    a = service.get_contribution(first.id).application_number
    b = service.get_contribution(second.id).application_number
    assert a.startswith("RP-") and a.endswith("-0001")
    assert b.endswith("-0002")


def test_can_view(faculty, co_author, reviewer, make_user) -> None:
    contribution = service.create_contribution(
        faculty, _paper_payload(authors=[{"uid": co_author.uid, "author_role": "corresponding"}])
    )
    outsider = make_user("faculty")
    assert service.can_view(contribution, faculty)
    assert service.can_view(contribution, co_author)
    assert service.can_view(contribution, reviewer)
    assert not service.can_view(contribution, outsider)


def test_list_contributed_and_mine(faculty, co_author) -> None:
    service.create_contribution(
        faculty, _paper_payload(authors=[{"uid": co_author.uid, "author_role": "corresponding"}])
    )
    assert len(service.list_my_contributions(faculty)) == 1
    assert len(service.list_contributed(co_author)) == 1
    assert service.list_contributed(faculty) == []


@pytest.mark.parametrize(
    "name,value,expected",
    [
        ("quartile", "top_5", "Top 5%"),
        ("quartile", "NA", None),
        ("is_best_paper_award", "Yes", True),
        ("is_international_publication", "no", False),
        ("book_type", "Authored Book", "authored"),
        ("book_indexing_type", "Scopus Indexed", "scopus_indexed"),
        ("conference_sub_type", "Paper Indexed in Scopus", "paper_indexed_scopus"),
        ("sanctioned_amount", "1500000.50", Decimal("1500000.50")),
        ("publication_date", "2025-02-03T10:00:00", date(2025, 2, 3)),
        ("indexing_categories", "scopus, wos", ["scopus", "wos"]),
        ("applicant_author_role", "Corresponding", "corresponding_author"),
    ],
)
def test_coerce_field(name, value, expected) -> None:
    assert service.coerce_field(name, value) == expected


def test_coerce_field_rejects_unknown_fields() -> None:
    with pytest.raises(WorkflowValidationError):
        service.coerce_field("status", "approved")
    with pytest.raises(WorkflowValidationError):
        service.coerce_field("sjr", "high")


def test_preview_matches_saved_calculation(app) -> None:
    calc = service.preview_incentives(
        _paper_payload(authors=[{"name": "B", "author_role": "corresponding_author"}]),
        applicant_type="internal_student",
    )
    assert calc.applicant.incentive_amount == 17500
    assert calc.applicant.points == 0
    assert calc.authors[0].incentive_amount == 15000
    assert calc.total_amount == 32500


def test_preview_pays_nothing_to_author_flagged_external(faculty) -> None:
    payload = _paper_payload(
        authors=[{"name": "Ext", "is_internal": False, "author_role": "corresponding_author"}]
    )
    calc = service.preview_incentives(payload)
    assert calc.authors[0].incentive_amount == 0
    assert calc.authors[0].points == 0

    saved = service.create_contribution(faculty, payload)
    assert saved.authors[0].participant_type == "external_other"
    assert saved.authors[0].incentive_share == 0
    assert saved.calculated_incentive_amount == calc.applicant.incentive_amount
    assert saved.calculated_points == calc.applicant.points


def test_add_author_is_one_version_step(faculty, co_author) -> None:
    contribution = service.create_contribution(faculty, _paper_payload(declared_total_authors=1))
    version = contribution.version_id

    service.add_author(
        contribution.id, faculty, {"uid": co_author.uid}, expected_version=version
    )
    assert service.get_contribution(contribution.id).version_id == version + 1
