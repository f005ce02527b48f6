"""Research contribution lifecycle: create, edit, delete and look-ups.

Field coercion and the author list builder are shared with the review
workflow (edit suggestions write through `coerce_field`).
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.orm.exc import StaleDataError

from research_portal.author_composition import (
    normalize_author_role,
    resolve_participant_type,
)
from research_portal.db_models import (
    AUTHOR_CATEGORY_MAP,
    ContributionAuthor,
    Department,
    PublicationType,
    ResearchContribution,
    School,
    User,
    db,
)
from research_portal.errors import (
    ConcurrencyConflict,
    ContributionNotFound,
    InvalidTransition,
    PermissionDenied,
    WorkflowValidationError,
)
from research_portal.incentive_calculator import normalize_quartile
from research_portal.services import incentives
from research_portal.services.notifications import PendingNotification, dispatch

logger = logging.getLogger(__name__)


# =============================================================================
# FIELD COERCION
# =============================================================================

_TRUE_STRINGS = {"yes", "true", "1", "y", "on"}
_FALSE_STRINGS = {"no", "false", "0", "n", "off", ""}

_BOOK_TYPE_LABELS = {"authored": "authored", "authored book": "authored", "edited": "edited", "edited book": "edited"}
_INDEXING_LABELS = {
    "scopus": "scopus_indexed",
    "scopus indexed": "scopus_indexed",
    "scopus_indexed": "scopus_indexed",
    "non indexed": "non_indexed",
    "non-indexed": "non_indexed",
    "non_indexed": "non_indexed",
    "sgt publication house": "sgt_publication_house",
    "sgt_publication_house": "sgt_publication_house",
}
_CONFERENCE_TYPE_LABELS = {"national": "national", "international": "international"}
_CONFERENCE_SUB_TYPE_LABELS = {
    "paper not indexed": "paper_not_indexed",
    "paper_not_indexed": "paper_not_indexed",
    "paper indexed in scopus": "paper_indexed_scopus",
    "paper indexed scopus": "paper_indexed_scopus",
    "paper_indexed_scopus": "paper_indexed_scopus",
    "keynote speaker / invited talks": "keynote_speaker_invited_talks",
    "keynote_speaker_invited_talks": "keynote_speaker_invited_talks",
    "organizer / coordinator / member": "organizer_coordinator_member",
    "organizer_coordinator_member": "organizer_coordinator_member",
}

# field -> kind; only these may be set from payloads and suggestions
CONTRIBUTION_FIELDS = {
    "title": "str",
    "abstract": "str",
    "publication_date": "date",
    "journal_name": "str",
    "quartile": "quartile",
    "sjr": "float",
    "impact_factor": "float",
    "doi": "str",
    "indexing_categories": "list",
    "book_type": _BOOK_TYPE_LABELS,
    "book_indexing_type": _INDEXING_LABELS,
    "is_international_publication": "bool",
    "isbn": "str",
    "publisher_name": "str",
    "conference_name": "str",
    "conference_sub_type": _CONFERENCE_SUB_TYPE_LABELS,
    "proceedings_quartile": "quartile",
    "conference_type": _CONFERENCE_TYPE_LABELS,
    "is_best_paper_award": "bool",
    "funding_agency": "str",
    "sanctioned_amount": "decimal",
    "applicant_author_role": "role",
    "declared_total_authors": "int",
    "mentor_uid": "str",
}

# Changing one of these invalidates the calculated shares
POLICY_RELEVANT_FIELDS = frozenset(
    {
        "publication_date",
        "quartile",
        "sjr",
        "book_type",
        "book_indexing_type",
        "is_international_publication",
        "conference_sub_type",
        "proceedings_quartile",
        "conference_type",
        "is_best_paper_award",
        "sanctioned_amount",
        "applicant_author_role",
        "declared_total_authors",
    }
)

_TYPE_PREFIX = {
    "research_paper": "RP",
    "book": "BK",
    "book_chapter": "BC",
    "conference_paper": "CP",
    "grant": "GP",
}


def coerce_field(name: str, value):
    """Convert a raw payload value to the column type of `name`.

    Raises:
        WorkflowValidationError: unknown field or value that cannot be converted
    """
    kind = CONTRIBUTION_FIELDS.get(name)
    if kind is None:
        raise WorkflowValidationError(f"Field '{name}' cannot be edited")

    if value is None:
        return None

    if isinstance(kind, dict):
        key = str(value).strip().lower()
        if key in ("", "na", "n/a"):
            return None
        if key not in kind:
            raise WorkflowValidationError(f"Invalid value for {name}: {value}")
        return kind[key]

    if kind == "str":
        text = str(value).strip()
        return text or None
    if kind == "bool":
        if isinstance(value, bool):
            return value
        key = str(value).strip().lower()
        if key in _TRUE_STRINGS:
            return True
        if key in _FALSE_STRINGS:
            return False
        raise WorkflowValidationError(f"Invalid yes/no value for {name}: {value}")
    if kind == "list":
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        return [part.strip() for part in str(value).split(",") if part.strip()]
    if kind == "quartile":
        if str(value).strip().lower() in ("", "na", "n/a"):
            return None
        label = normalize_quartile(value)
        if label is None:
            raise WorkflowValidationError(f"Invalid quartile for {name}: {value}")
        return label
    if kind == "role":
        return normalize_author_role(str(value)) if str(value).strip() else None

    try:
        if kind == "float":
            return float(value) if str(value).strip() else None
        if kind == "int":
            return int(value) if str(value).strip() else None
        if kind == "decimal":
            return Decimal(str(value)) if str(value).strip() else None
        if kind == "date":
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            return date.fromisoformat(str(value)[:10]) if str(value).strip() else None
    except (ValueError, InvalidOperation) as e:
        raise WorkflowValidationError(f"Invalid value for {name}: {value}") from e

    raise WorkflowValidationError(f"Unsupported field type for {name}")


def apply_fields(contribution: ResearchContribution, payload: dict) -> set[str]:
    """Copy known fields from payload onto the contribution; returns changed names."""
    changed = set()
    for name in CONTRIBUTION_FIELDS:
        if name not in payload:
            continue
        value = coerce_field(name, payload[name])
        if name == "title" and not value:
            raise WorkflowValidationError("Title is required")
        if getattr(contribution, name) != value:
            setattr(contribution, name, value)
            changed.add(name)
    return changed


# =============================================================================
# LOOK-UPS
# =============================================================================


def find_user_by_uid(uid: str | None) -> User | None:
    uid = (uid or "").strip()
    if not uid:
        return None
    return User.query.filter_by(uid=uid, is_active=True).first()


def resolve_school_department(applicant: User, school_id, department_id) -> tuple[int | None, int | None]:
    """Validated school/department ids, falling back to the applicant's own."""
    school = db.session.get(School, int(school_id)) if _is_int(school_id) else None
    department = (
        db.session.get(Department, int(department_id)) if _is_int(department_id) else None
    )
    resolved_school = school.id if school else applicant.school_id
    resolved_department = department.id if department else applicant.department_id
    if school_id and not school:
        logger.info("Unknown school %s, using applicant school", school_id)
    if department_id and not department:
        logger.info("Unknown department %s, using applicant department", department_id)
    return resolved_school, resolved_department


def _is_int(value) -> bool:
    try:
        int(value)
    except (TypeError, ValueError):
        return False
    return True


def generate_application_number(publication_type: str, year: int | None = None) -> str:
    """Next `<PREFIX>-<YEAR>-<NNNN>` number for the type."""
    prefix = _TYPE_PREFIX.get(publication_type, "RC")
    year = year or datetime.utcnow().year
    stem = f"{prefix}-{year}-"
    latest = (
        ResearchContribution.query.filter(
            ResearchContribution.application_number.like(f"{stem}%")
        )
        .order_by(ResearchContribution.application_number.desc())
        .first()
    )
    sequence = 1
    if latest is not None:
        try:
            sequence = int(latest.application_number.rsplit("-", 1)[1]) + 1
        except (IndexError, ValueError):
            logger.warning("Unparseable application number %s", latest.application_number)
    return f"{stem}{sequence:04d}"


def get_contribution(contribution_id: int) -> ResearchContribution:
    contribution = db.session.get(ResearchContribution, contribution_id)
    if contribution is None:
        raise ContributionNotFound("Research contribution not found")
    return contribution


def load_for_update(contribution_id: int, expected_version: int | None = None) -> ResearchContribution:
    """Load with a row lock and check the optimistic version if given."""
    contribution = (
        ResearchContribution.query.filter_by(id=contribution_id)
        .with_for_update()
        .first()
    )
    if contribution is None:
        raise ContributionNotFound("Research contribution not found")
    if expected_version is not None and contribution.version_id != int(expected_version):
        raise ConcurrencyConflict(
            "The contribution was modified by another request. Reload and try again."
        )
    return contribution


def can_view(contribution: ResearchContribution, user) -> bool:
    if contribution.applicant_user_id == user.id:
        return True
    if user.can_review or user.can_approve or user.is_admin:
        return True
    if contribution.mentor_id == user.id:
        return True
    return any(a.user_id == user.id for a in contribution.authors)


def list_my_contributions(user, status: str | None = None, publication_type: str | None = None):
    query = ResearchContribution.query.filter_by(applicant_user_id=user.id)
    if status:
        query = query.filter_by(status=status)
    if publication_type:
        query = query.filter_by(publication_type=publication_type)
    return query.order_by(ResearchContribution.created_at.desc()).all()


def list_contributed(user):
    """Contributions where the user is a named (linked) author."""
    return (
        ResearchContribution.query.join(ContributionAuthor)
        .filter(ContributionAuthor.user_id == user.id)
        .filter(ResearchContribution.applicant_user_id != user.id)
        .order_by(ResearchContribution.created_at.desc())
        .all()
    )


def list_pending_mentor_approvals(user):
    return (
        ResearchContribution.query.filter_by(
            mentor_id=user.id, status="pending_mentor_approval"
        )
        .order_by(ResearchContribution.submitted_at)
        .all()
    )


# =============================================================================
# AUTHORS
# =============================================================================


def build_author(raw: dict, order: int) -> ContributionAuthor:
    """ContributionAuthor from a payload entry, linking internal users by uid."""
    uid = (raw.get("uid") or raw.get("registration_no") or "").strip() or None
    user = find_user_by_uid(uid)

    ptype = raw.get("participant_type") or raw.get("author_type")
    if user is not None and not ptype:
        ptype = user.participant_type
    ptype = resolve_participant_type(ptype, raw.get("is_internal"))

    name = (raw.get("name") or (user.full_name if user else "")).strip()
    if not name:
        raise WorkflowValidationError("Every author needs a name or a known uid")

    is_internal = ptype.startswith("internal_")
    return ContributionAuthor(
        user_id=user.id if user is not None and is_internal else None,
        uid=uid,
        name=name,
        email=raw.get("email"),
        affiliation=raw.get("affiliation"),
        participant_type=ptype,
        author_category=AUTHOR_CATEGORY_MAP[ptype],
        is_internal=is_internal,
        author_role=normalize_author_role(
            raw.get("author_role"), bool(raw.get("is_corresponding"))
        ),
        author_order=int(raw.get("author_order") or order),
    )


def _author_added_notifications(contribution, authors) -> list[PendingNotification]:
    pending = []
    for author in authors:
        if not author.user_id or not author.is_internal:
            continue
        pending.append(
            PendingNotification(
                user_id=author.user_id,
                type="research_author_added",
                title="Added as Author",
                message=(
                    f"You have been added as {author.author_role.replace('_', ' ')} to "
                    f"research contribution: {contribution.title}. Estimated share: "
                    f"{author.incentive_share or 0} / {author.points_share or 0} points"
                ),
                metadata={
                    "contribution_id": contribution.id,
                    "incentive_share": author.incentive_share or 0,
                    "points_share": author.points_share or 0,
                },
            )
        )
    return pending


def _replace_authors(contribution, raw_authors) -> list[ContributionAuthor]:
    """Replace the author list; returns authors that were not linked before."""
    previous_user_ids = {a.user_id for a in contribution.authors if a.user_id}
    new_authors = [build_author(raw, i) for i, raw in enumerate(raw_authors or [], start=2)]
    contribution.authors = new_authors
    return [a for a in new_authors if a.user_id and a.user_id not in previous_user_ids]


# =============================================================================
# CREATE / UPDATE / DELETE
# =============================================================================


def create_contribution(applicant: User, payload: dict) -> ResearchContribution:
    """Create a draft contribution and compute the initial shares."""
    publication_type = (payload.get("publication_type") or "").strip().lower()
    if publication_type not in {t.value for t in PublicationType}:
        raise WorkflowValidationError(f"Unknown publication type: {publication_type}")
    if not (payload.get("title") or "").strip():
        raise WorkflowValidationError("Title is required")

    contribution = ResearchContribution(
        publication_type=publication_type,
        applicant_user_id=applicant.id,
        applicant_type=applicant.participant_type,
        status="draft",
        revision_count=0,
    )
    apply_fields(contribution, payload)
    contribution.school_id, contribution.department_id = resolve_school_department(
        applicant, payload.get("school_id"), payload.get("department_id")
    )

    new_authors = _replace_authors(contribution, payload.get("authors"))
    incentives.recalculate(contribution)

    db.session.add(contribution)
    db.session.commit()
    logger.info("Contribution %s created by user %s", contribution.id, applicant.id)

    dispatch(_author_added_notifications(contribution, new_authors))
    return contribution


def update_contribution(
    contribution_id: int, actor: User, payload: dict, expected_version: int | None = None
) -> ResearchContribution:
    """Edit an editable contribution; shares are recalculated."""
    try:
        contribution = load_for_update(contribution_id, expected_version)
        if contribution.applicant_user_id != actor.id:
            raise PermissionDenied("Only the applicant can edit this contribution")
        if not contribution.is_editable:
            raise InvalidTransition(
                f"Contribution cannot be edited in status '{contribution.status}'"
            )

        with db.session.no_autoflush:
            apply_fields(contribution, payload)
            if "school_id" in payload or "department_id" in payload:
                contribution.school_id, contribution.department_id = resolve_school_department(
                    actor, payload.get("school_id"), payload.get("department_id")
                )

            new_authors = []
            if "authors" in payload:
                new_authors = _replace_authors(contribution, payload.get("authors"))
            incentives.recalculate(contribution)
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        raise ConcurrencyConflict("The contribution was modified by another request") from e
    except Exception:
        db.session.rollback()
        raise

    dispatch(_author_added_notifications(contribution, new_authors))
    return contribution


def add_author(
    contribution_id: int, actor: User, raw: dict, expected_version: int | None = None
) -> ContributionAuthor:
    """Append one author and recompute every share."""
    try:
        contribution = load_for_update(contribution_id, expected_version)
        if contribution.applicant_user_id != actor.id:
            raise PermissionDenied("Only the applicant can add authors")
        if not contribution.is_editable:
            raise InvalidTransition("Authors can only be changed while the contribution is editable")

        order = len(contribution.authors) + 2
        author = build_author(raw, order)
        with db.session.no_autoflush:
            contribution.authors.append(author)
            named = len(contribution.authors) + 1
            if (contribution.declared_total_authors or 0) < named:
                contribution.declared_total_authors = named
            incentives.recalculate(contribution)
        db.session.commit()
    except StaleDataError as e:
        db.session.rollback()
        raise ConcurrencyConflict("The contribution was modified by another request") from e
    except Exception:
        db.session.rollback()
        raise

    dispatch(_author_added_notifications(contribution, [author]))
    return author


def remove_author(contribution_id: int, actor: User, author_id: int) -> ResearchContribution:
    try:
        contribution = load_for_update(contribution_id)
        if contribution.applicant_user_id != actor.id:
            raise PermissionDenied("Only the applicant can remove authors")
        if not contribution.is_editable:
            raise InvalidTransition("Authors can only be changed while the contribution is editable")
        author = next((a for a in contribution.authors if a.id == author_id), None)
        if author is None:
            raise ContributionNotFound("Author not found")
        contribution.authors.remove(author)
        incentives.recalculate(contribution)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return contribution


def delete_contribution(contribution_id: int, actor: User) -> None:
    """Only drafts can be deleted, and only by their applicant."""
    contribution = get_contribution(contribution_id)
    if contribution.applicant_user_id != actor.id:
        raise PermissionDenied("Only the applicant can delete this contribution")
    if contribution.status != "draft":
        raise InvalidTransition("Only draft contributions can be deleted")
    db.session.delete(contribution)
    db.session.commit()
    logger.info("Draft contribution %s deleted by user %s", contribution_id, actor.id)


def preview_incentives(payload: dict, applicant_type: str = "internal_faculty"):
    """Shares for unsaved form data, computed exactly as on save."""
    publication_type = (payload.get("publication_type") or "").strip().lower()
    if publication_type not in {t.value for t in PublicationType}:
        raise WorkflowValidationError(f"Unknown publication type: {publication_type}")

    data = {
        name: coerce_field(name, payload[name])
        for name in CONTRIBUTION_FIELDS
        if name in payload
    }
    declared = data.get("declared_total_authors") or 0
    authors = [build_author(raw, i) for i, raw in enumerate(payload.get("authors") or [], start=2)]
    applicant, named = incentives.build_participants(
        applicant_type,
        data.get("applicant_author_role"),
        authors,
        declared,
    )
    return incentives.compute_shares(publication_type, data, applicant, named, declared)
