"""Author composition analysis.

Classifies every participant of a contribution (the applicant included) as
internal/external and student/employee, and derives the aggregate counts the
incentive calculator divides by.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import Decimal

from research_portal.incentive_calculator import HUNDRED, RoleSplit


CO_AUTHOR_ROLES = frozenset({"co_author", "senior_author"})

PARTICIPANT_TYPES = frozenset(
    {
        "internal_faculty",
        "internal_staff",
        "internal_student",
        "external_academic",
        "external_industry",
        "external_other",
    }
)

_ROLE_ALIASES = {
    "first": "first_author",
    "first_author": "first_author",
    "corresponding": "corresponding_author",
    "corresponding_author": "corresponding_author",
    "first_and_corresponding": "first_and_corresponding_author",
    "first_and_corresponding_author": "first_and_corresponding_author",
    "first_corresponding": "first_and_corresponding_author",
    "co": "co_author",
    "co_author": "co_author",
    "senior": "senior_author",
    "senior_author": "senior_author",
}


def normalize_author_role(role: str | None, is_corresponding: bool = False) -> str:
    """Map free-form role input to an AuthorRole value.

    A first author flagged as corresponding becomes
    first_and_corresponding_author. Unknown roles are treated as co-authors.
    """
    key = (role or "").strip().lower().replace("-", "_").replace(" ", "_")
    normalized = _ROLE_ALIASES.get(key, "co_author")
    if is_corresponding and normalized == "first_author":
        return "first_and_corresponding_author"
    return normalized


def resolve_participant_type(
    participant_type: str | None, is_internal: bool | None = None
) -> str:
    """Known participant type, else decided by the is_internal flag.

    Only an explicit False makes an unclassified author external.
    """
    if participant_type in PARTICIPANT_TYPES:
        return participant_type
    return "external_other" if is_internal is False else "internal_faculty"


def resolve_applicant_role(role: str | None, total_author_count: int) -> str:
    """Applicant role, defaulting by author count when none was given."""
    if role:
        return normalize_author_role(role)
    if total_author_count <= 1:
        return "first_and_corresponding_author"
    return "co_author"


@dataclass(frozen=True)
class Participant:
    """One person credited on a contribution."""

    name: str
    participant_type: str = "internal_faculty"
    author_role: str = "co_author"
    is_internal: bool | None = None
    is_applicant: bool = False
    user_id: int | None = None

    @property
    def internal(self) -> bool:
        return bool(self.is_internal) or (self.participant_type or "").startswith(
            "internal_"
        )

    @property
    def student(self) -> bool:
        return self.participant_type == "internal_student"


@dataclass(frozen=True)
class AuthorComposition:
    total_author_count: int
    total_co_author_count: int
    internal_count: int
    external_count: int
    internal_co_author_count: int
    internal_employee_co_author_count: int
    external_co_author_count: int
    external_first_corresponding_pct: float

    def to_dict(self) -> dict:
        return asdict(self)


def external_forfeiture_pct(participants, split: RoleSplit) -> Decimal:
    """Percentage forfeited because a first/corresponding slot is external.

    Each slot is counted once even if several externals claim it.
    """
    slots = set()
    for p in participants:
        if p.internal:
            continue
        if p.author_role in ("first_author", "first_and_corresponding_author"):
            slots.add("first")
        if p.author_role in ("corresponding_author", "first_and_corresponding_author"):
            slots.add("corresponding")

    pct = Decimal(0)
    if "first" in slots:
        pct += split.first_author_pct
    if "corresponding" in slots:
        pct += split.corresponding_author_pct
    return min(pct, HUNDRED)


def analyze_composition(
    participants,
    split: RoleSplit | None = None,
    declared_total_authors: int = 0,
) -> AuthorComposition:
    """
    Derive the aggregate counts for one contribution.

    Args:
        participants: All Participant records, the applicant included
        split: First/corresponding percentages of the active policy
        declared_total_authors: Author count entered on the form; named
            participants raise it when it is lower

    Returns:
        AuthorComposition
    """
    participants = list(participants)
    split = split or RoleSplit()

    internal = [p for p in participants if p.internal]
    external = [p for p in participants if not p.internal]
    co_authors = [p for p in participants if p.author_role in CO_AUTHOR_ROLES]
    internal_co_authors = [p for p in co_authors if p.internal]

    return AuthorComposition(
        total_author_count=max(int(declared_total_authors or 0), len(participants), 1),
        total_co_author_count=len([p for p in participants if not p.is_applicant]),
        internal_count=len(internal),
        external_count=len(external),
        internal_co_author_count=len(internal_co_authors),
        internal_employee_co_author_count=len(
            [p for p in internal_co_authors if not p.student]
        ),
        external_co_author_count=len([p for p in co_authors if not p.internal]),
        external_first_corresponding_pct=float(external_forfeiture_pct(participants, split)),
    )
