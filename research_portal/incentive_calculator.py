"""
Research Contribution Incentive Calculator.
Computes the incentive amount and points of one contributor.

Supports:
- Research papers: quartile table, SJR range override, default SJR bands
- Books / book chapters: base by book type + indexing and international bonus,
  split equally between authors
- Conference papers: one rule set per sub-type
- Grants: base amount + sanctioned amount tier

Policies are parsed into one frozen variant per publication type. The same
DEFAULT_POLICY_RULES table is used when no stored policy matches and by the
policy preview endpoint.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable, Union

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


# =============================================================================
# DEFAULT POLICY TABLE
# =============================================================================

DEFAULT_ROLE_PERCENTAGES = [
    {"role": "first_author", "percentage": 35},
    {"role": "corresponding_author", "percentage": 30},
]

DEFAULT_SJR_BANDS = [
    {"min_sjr": 2.0, "max_sjr": 999, "incentive_amount": 50000, "points": 50},
    {"min_sjr": 1.0, "max_sjr": 1.99, "incentive_amount": 30000, "points": 30},
    {"min_sjr": 0.5, "max_sjr": 0.99, "incentive_amount": 15000, "points": 15},
    {"min_sjr": 0.0, "max_sjr": 0.49, "incentive_amount": 5000, "points": 5},
]

DEFAULT_POLICY_RULES: dict[str, dict] = {
    "research_paper": {
        "quartile_incentives": [
            {"quartile": "Top 1%", "incentive_amount": 75000, "points": 75},
            {"quartile": "Top 5%", "incentive_amount": 60000, "points": 60},
            {"quartile": "Q1", "incentive_amount": 50000, "points": 50},
            {"quartile": "Q2", "incentive_amount": 30000, "points": 30},
            {"quartile": "Q3", "incentive_amount": 15000, "points": 15},
            {"quartile": "Q4", "incentive_amount": 5000, "points": 5},
        ],
        "sjr_ranges": [],
        "role_percentages": DEFAULT_ROLE_PERCENTAGES,
    },
    "book": {
        "book_types": {
            "authored": {"incentive_amount": 50000, "points": 50},
            "edited": {"incentive_amount": 25000, "points": 25},
        },
        "indexing_bonuses": {
            "scopus_indexed": {"incentive_amount": 10000, "points": 10},
            "non_indexed": {"incentive_amount": 0, "points": 0},
            "sgt_publication_house": {"incentive_amount": 5000, "points": 5},
        },
        "international_bonus": {"incentive_amount": 5000, "points": 5},
    },
    "book_chapter": {
        "book_types": {
            "authored": {"incentive_amount": 20000, "points": 20},
            "edited": {"incentive_amount": 10000, "points": 10},
        },
        "indexing_bonuses": {
            "scopus_indexed": {"incentive_amount": 5000, "points": 5},
            "non_indexed": {"incentive_amount": 0, "points": 0},
            "sgt_publication_house": {"incentive_amount": 2000, "points": 2},
        },
        "international_bonus": {"incentive_amount": 2000, "points": 2},
    },
    # Conference rules are keyed by sub-type
    "conference_paper": {
        "paper_indexed_scopus": {
            "quartile_incentives": [
                {"quartile": "Top 1%", "incentive_amount": 30000, "points": 30},
                {"quartile": "Top 5%", "incentive_amount": 25000, "points": 25},
                {"quartile": "Q1", "incentive_amount": 20000, "points": 20},
                {"quartile": "Q2", "incentive_amount": 15000, "points": 15},
                {"quartile": "Q3", "incentive_amount": 10000, "points": 10},
                {"quartile": "Q4", "incentive_amount": 5000, "points": 5},
            ],
            "conference_type_bonuses": {
                "international": {"incentive_amount": 10000, "points": 5},
                "national": {"incentive_amount": 5000, "points": 2},
            },
            "best_paper_bonus": {"incentive_amount": 5000, "points": 5},
            "role_percentages": DEFAULT_ROLE_PERCENTAGES,
        },
        "paper_not_indexed": {
            "flat_amounts": {
                "national": {"incentive_amount": 5000, "points": 5},
                "international": {"incentive_amount": 10000, "points": 10},
            },
        },
        "keynote_speaker_invited_talks": {
            "flat_amounts": {
                "national": {"incentive_amount": 7500, "points": 7},
                "international": {"incentive_amount": 15000, "points": 15},
            },
        },
        "organizer_coordinator_member": {
            "flat_amounts": {
                "national": {"incentive_amount": 5000, "points": 5},
                "international": {"incentive_amount": 10000, "points": 10},
            },
        },
    },
    "grant": {
        "base": {"incentive_amount": 100000, "points": 100},
        "amount_tiers": [
            {"min_amount": 0, "max_amount": 500000, "incentive_amount": 0, "points": 0},
            {"min_amount": 500000, "max_amount": 2500000, "incentive_amount": 20000, "points": 10},
            {"min_amount": 2500000, "max_amount": 10000000, "incentive_amount": 50000, "points": 25},
            {"min_amount": 10000000, "max_amount": None, "incentive_amount": 100000, "points": 50},
        ],
        "role_percentages": DEFAULT_ROLE_PERCENTAGES,
    },
}

# Sub-types whose flat amount goes in full to each participant
FULL_AMOUNT_SUB_TYPES = frozenset(
    {"keynote_speaker_invited_talks", "organizer_coordinator_member"}
)

# Conference sub-types a policy row may be scoped to
CONFERENCE_SUB_TYPES = tuple(DEFAULT_POLICY_RULES["conference_paper"].keys())

# All quartile buckets a quartile table has to define
QUARTILE_LABELS = ("Top 1%", "Top 5%", "Q1", "Q2", "Q3", "Q4")

_QUARTILE_ALIASES = {
    "top1": "Top 1%",
    "top_1": "Top 1%",
    "top 1%": "Top 1%",
    "top1%": "Top 1%",
    "top5": "Top 5%",
    "top_5": "Top 5%",
    "top 5%": "Top 5%",
    "top5%": "Top 5%",
    "q1": "Q1",
    "q2": "Q2",
    "q3": "Q3",
    "q4": "Q4",
}


def normalize_quartile(value) -> str | None:
    """Map UI labels ("q1", "top_1", "Top 1%") to the canonical quartile label.

    "na" and unknown values map to None.
    """
    if value is None:
        return None
    key = str(value).strip().lower()
    return _QUARTILE_ALIASES.get(key)


# =============================================================================
# POLICY VARIANTS
# =============================================================================


@dataclass(frozen=True)
class Award:
    """An amount/points pair as configured in a policy."""

    amount: Decimal = Decimal(0)
    points: Decimal = Decimal(0)

    def __add__(self, other: "Award") -> "Award":
        return Award(self.amount + other.amount, self.points + other.points)

    @property
    def is_zero(self) -> bool:
        return self.amount == 0 and self.points == 0


ZERO_AWARD = Award()


@dataclass(frozen=True)
class RoleSplit:
    first_author_pct: Decimal = Decimal(35)
    corresponding_author_pct: Decimal = Decimal(30)

    @property
    def co_author_pool_pct(self) -> Decimal:
        return HUNDRED - self.first_author_pct - self.corresponding_author_pct


@dataclass(frozen=True)
class SjrBand:
    min_sjr: float
    max_sjr: float
    award: Award

    def matches(self, value: float) -> bool:
        return self.min_sjr <= value <= self.max_sjr


@dataclass(frozen=True)
class AmountTier:
    min_amount: Decimal
    max_amount: Decimal | None
    award: Award

    def matches(self, value: Decimal) -> bool:
        if value < self.min_amount:
            return False
        return self.max_amount is None or value < self.max_amount


@dataclass(frozen=True)
class ResearchPaperPolicy:
    quartile_incentives: dict[str, Award]
    sjr_ranges: tuple[SjrBand, ...] = ()
    role_split: RoleSplit = RoleSplit()


@dataclass(frozen=True)
class BookPolicy:
    book_types: dict[str, Award]
    indexing_bonuses: dict[str, Award] = field(default_factory=dict)
    international_bonus: Award = ZERO_AWARD


@dataclass(frozen=True)
class ConferencePolicy:
    sub_type: str
    quartile_incentives: dict[str, Award] = field(default_factory=dict)
    conference_type_bonuses: dict[str, Award] = field(default_factory=dict)
    best_paper_bonus: Award = ZERO_AWARD
    flat_amounts: dict[str, Award] = field(default_factory=dict)
    role_split: RoleSplit = RoleSplit()


@dataclass(frozen=True)
class GrantPolicy:
    base: Award
    amount_tiers: tuple[AmountTier, ...] = ()
    role_split: RoleSplit = RoleSplit()


PolicyVariant = Union[ResearchPaperPolicy, BookPolicy, ConferencePolicy, GrantPolicy]

PolicyLookup = Callable[[str, "str | None", date], "PolicyVariant | None"]


class PolicyRulesError(ValueError):
    """Raised when stored policy rules cannot be parsed."""


def _dec(value) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    return Decimal(str(value))


def _award(raw) -> Award:
    if not raw:
        return ZERO_AWARD
    return Award(_dec(raw.get("incentive_amount")), _dec(raw.get("points")))


def _award_map(raw) -> dict[str, Award]:
    return {str(k): _award(v) for k, v in (raw or {}).items()}


def _quartile_table(rows) -> dict[str, Award]:
    table = {}
    for row in rows or []:
        label = normalize_quartile(row.get("quartile"))
        if label:
            table[label] = _award(row)
    return table


def _role_split(rows) -> RoleSplit:
    if not rows:
        return RoleSplit()
    by_role = {r.get("role"): r.get("percentage") for r in rows}
    first = _dec(by_role.get("first_author") or 35)
    corresponding = _dec(by_role.get("corresponding_author") or 30)
    if first < 0 or corresponding < 0 or first + corresponding > HUNDRED:
        raise PolicyRulesError(
            "First and corresponding author percentages must be between 0 and 100"
        )
    return RoleSplit(first, corresponding)


def parse_policy_rules(
    publication_type: str, sub_type: str | None, rules: dict
) -> PolicyVariant:
    """
    Build the policy variant for a publication type from its JSON rules.

    Args:
        publication_type: research_paper, book, book_chapter, conference_paper, grant
        sub_type: Conference sub-type (ignored for other types)
        rules: Rule dict as stored on IncentivePolicy.rules

    Returns:
        A ResearchPaperPolicy, BookPolicy, ConferencePolicy or GrantPolicy

    Raises:
        PolicyRulesError: unknown type or malformed rules
    """
    rules = rules or {}
    try:
        if publication_type == "research_paper":
            return ResearchPaperPolicy(
                quartile_incentives=_quartile_table(rules.get("quartile_incentives")),
                sjr_ranges=tuple(
                    SjrBand(float(r["min_sjr"]), float(r["max_sjr"]), _award(r))
                    for r in rules.get("sjr_ranges") or []
                ),
                role_split=_role_split(rules.get("role_percentages")),
            )

        if publication_type in ("book", "book_chapter"):
            return BookPolicy(
                book_types=_award_map(rules.get("book_types")),
                indexing_bonuses=_award_map(rules.get("indexing_bonuses")),
                international_bonus=_award(rules.get("international_bonus")),
            )

        if publication_type == "conference_paper":
            if not sub_type:
                raise PolicyRulesError("Conference policies require a sub-type")
            return ConferencePolicy(
                sub_type=sub_type,
                quartile_incentives=_quartile_table(rules.get("quartile_incentives")),
                conference_type_bonuses=_award_map(rules.get("conference_type_bonuses")),
                best_paper_bonus=_award(rules.get("best_paper_bonus")),
                flat_amounts=_award_map(rules.get("flat_amounts")),
                role_split=_role_split(rules.get("role_percentages")),
            )

        if publication_type == "grant":
            return GrantPolicy(
                base=_award(rules.get("base")),
                amount_tiers=tuple(
                    AmountTier(
                        _dec(t.get("min_amount")),
                        None if t.get("max_amount") is None else _dec(t["max_amount"]),
                        _award(t),
                    )
                    for t in rules.get("amount_tiers") or []
                ),
                role_split=_role_split(rules.get("role_percentages")),
            )
    except (KeyError, TypeError, ArithmeticError, AttributeError) as e:
        raise PolicyRulesError(f"Malformed {publication_type} policy rules: {e}") from e

    raise PolicyRulesError(f"Unknown publication type: {publication_type}")


def default_policy_rules(publication_type: str, sub_type: str | None = None) -> dict | None:
    """Return the built-in rule dict for a type (and conference sub-type)."""
    rules = DEFAULT_POLICY_RULES.get(publication_type)
    if rules is None:
        return None
    if publication_type == "conference_paper":
        return rules.get(sub_type or "")
    return rules


def default_policy(publication_type: str, sub_type: str | None = None) -> PolicyVariant | None:
    rules = default_policy_rules(publication_type, sub_type)
    if rules is None:
        return None
    return parse_policy_rules(publication_type, sub_type, rules)


DEFAULT_SJR_FALLBACK = tuple(
    SjrBand(float(r["min_sjr"]), float(r["max_sjr"]), _award(r))
    for r in DEFAULT_SJR_BANDS
)


# =============================================================================
# TRACING
# =============================================================================


class CalculationTrace:
    """Records the branches taken by one calculation.

    Every event is also written to the module logger at DEBUG so a trace can
    be reconstructed from the application log.
    """

    def __init__(self, label: str = ""):
        self.label = label
        self.events: list[dict] = []

    def record(self, event: str, **fields) -> None:
        self.events.append({"event": event, **fields})
        logger.debug("incentive[%s] %s %s", self.label, event, fields)

    def names(self) -> list[str]:
        return [e["event"] for e in self.events]

    def find(self, event: str) -> dict | None:
        for e in self.events:
            if e["event"] == event:
                return e
        return None

    @property
    def failed(self) -> bool:
        return self.find("calculation_failure") is not None


# =============================================================================
# POOL RESOLVERS - one per variant
# =============================================================================

SPLIT_BY_ROLE = "role"
SPLIT_EQUAL = "equal"
SPLIT_NONE = "full"


@dataclass(frozen=True)
class Pool:
    award: Award
    split: str = SPLIT_BY_ROLE
    role_split: RoleSplit = RoleSplit()


def _research_paper_pool(
    policy: ResearchPaperPolicy, data: dict, sjr_value: float, trace: CalculationTrace
) -> Pool:
    award = ZERO_AWARD
    quartile = normalize_quartile(data.get("quartile"))
    if quartile and quartile in policy.quartile_incentives:
        award = policy.quartile_incentives[quartile]
        trace.record("quartile_match", quartile=quartile, amount=str(award.amount))

    if policy.sjr_ranges and sjr_value > 0:
        for band in policy.sjr_ranges:
            if band.matches(sjr_value):
                award = Award(
                    band.award.amount or award.amount,
                    band.award.points or award.points,
                )
                trace.record("sjr_override", sjr=sjr_value, amount=str(award.amount))
                break

    if award.amount == 0:
        band = next(
            (b for b in DEFAULT_SJR_FALLBACK if b.matches(sjr_value)),
            DEFAULT_SJR_FALLBACK[-1],
        )
        award = band.award
        trace.record("default_sjr_band", sjr=sjr_value, amount=str(award.amount))

    return Pool(award, SPLIT_BY_ROLE, policy.role_split)


def _book_pool(policy: BookPolicy, data: dict, trace: CalculationTrace) -> Pool:
    book_type = (data.get("book_type") or "authored").lower()
    award = policy.book_types.get(book_type, ZERO_AWARD)
    indexing = (data.get("book_indexing_type") or "").lower()
    if indexing in policy.indexing_bonuses:
        award = award + policy.indexing_bonuses[indexing]
    if data.get("is_international_publication"):
        award = award + policy.international_bonus
    trace.record(
        "book_pool", book_type=book_type, indexing=indexing, amount=str(award.amount)
    )
    return Pool(award, SPLIT_EQUAL)


def _conference_pool(
    policy: ConferencePolicy, data: dict, trace: CalculationTrace
) -> Pool:
    conference_type = (data.get("conference_type") or "national").lower()

    if policy.sub_type == "paper_indexed_scopus":
        quartile = normalize_quartile(data.get("proceedings_quartile"))
        award = policy.quartile_incentives.get(quartile, ZERO_AWARD) if quartile else ZERO_AWARD
        award = award + policy.conference_type_bonuses.get(conference_type, ZERO_AWARD)
        if data.get("is_best_paper_award"):
            award = award + policy.best_paper_bonus
        trace.record(
            "conference_indexed_pool",
            quartile=quartile,
            conference_type=conference_type,
            amount=str(award.amount),
        )
        return Pool(award, SPLIT_BY_ROLE, policy.role_split)

    award = policy.flat_amounts.get(conference_type, ZERO_AWARD)
    split = SPLIT_NONE if policy.sub_type in FULL_AMOUNT_SUB_TYPES else SPLIT_EQUAL
    trace.record(
        "conference_flat_pool",
        sub_type=policy.sub_type,
        conference_type=conference_type,
        amount=str(award.amount),
        split=split,
    )
    return Pool(award, split)


def _grant_pool(policy: GrantPolicy, data: dict, trace: CalculationTrace) -> Pool:
    award = policy.base
    sanctioned = _dec(data.get("sanctioned_amount"))
    for tier in policy.amount_tiers:
        if tier.matches(sanctioned):
            award = award + tier.award
            break
    trace.record("grant_pool", sanctioned=str(sanctioned), amount=str(award.amount))
    return Pool(award, SPLIT_BY_ROLE, policy.role_split)


def resolve_pool(
    policy: PolicyVariant, data: dict, sjr_value: float, trace: CalculationTrace
) -> Pool:
    """Compute the total pool of a contribution for its policy variant."""
    if isinstance(policy, ResearchPaperPolicy):
        return _research_paper_pool(policy, data, sjr_value, trace)
    if isinstance(policy, BookPolicy):
        return _book_pool(policy, data, trace)
    if isinstance(policy, ConferencePolicy):
        return _conference_pool(policy, data, trace)
    if isinstance(policy, GrantPolicy):
        return _grant_pool(policy, data, trace)
    raise TypeError(f"Unsupported policy variant: {type(policy).__name__}")


# =============================================================================
# ROLE PERCENTAGES
# =============================================================================


def role_percentages(
    author_role: str,
    split: RoleSplit,
    total_author_count: int,
    total_co_author_count: int,
    internal_co_author_count: int,
    external_first_corresponding_pct: float,
    internal_employee_co_author_count: int,
) -> tuple[Decimal, Decimal]:
    """
    Percentage of the pool this person receives.

    Returns:
        (money_pct, points_pct). They only differ for co-authors, whose
        points divisor excludes students.
    """
    if total_author_count == 1:
        pct = HUNDRED - _dec(external_first_corresponding_pct)
        return pct, pct

    if total_author_count == 2 and total_co_author_count == 0:
        return Decimal(50), Decimal(50)

    if author_role == "first_and_corresponding_author":
        pct = split.first_author_pct + split.corresponding_author_pct
        return pct, pct
    if author_role == "first_author":
        return split.first_author_pct, split.first_author_pct
    if author_role == "corresponding_author":
        return split.corresponding_author_pct, split.corresponding_author_pct

    # co_author, senior_author and anything unknown
    pool_pct = split.co_author_pool_pct
    money_pct = pool_pct / max(internal_co_author_count, 1)
    points_pct = pool_pct / max(internal_employee_co_author_count, 1)
    return money_pct, points_pct


# =============================================================================
# CALCULATION
# =============================================================================


@dataclass(frozen=True)
class IncentiveResult:
    incentive_amount: int = 0
    points: int = 0

    def to_dict(self) -> dict:
        return {"incentive_amount": self.incentive_amount, "points": self.points}


ZERO_RESULT = IncentiveResult()


def round_amount(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def floor_points(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_FLOOR))


def publication_date_of(data: dict) -> date:
    value = data.get("publication_date")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        return date.fromisoformat(value[:10])
    return date.today()


def calculate_incentives(
    contribution_data: dict,
    publication_type: str,
    author_role: str,
    is_student: bool = False,
    sjr_value: float = 0,
    total_co_author_count: int = 0,
    total_author_count: int = 1,
    is_internal: bool = True,
    internal_co_author_count: int = 0,
    external_first_corresponding_pct: float = 0,
    internal_employee_co_author_count: int = 0,
    *,
    policy_lookup: PolicyLookup | None = None,
    tracer: CalculationTrace | None = None,
) -> IncentiveResult:
    """
    Calculate the incentive amount and points of one contributor.

    Args:
        contribution_data: Policy-relevant fields (publication_date, quartile,
            book_type, conference_sub_type, ...)
        publication_type: research_paper, book, book_chapter, conference_paper, grant
        author_role: Normalized author role of this contributor
        is_student: Students receive money but no points
        sjr_value: SJR of the venue (research papers)
        total_co_author_count: Named participants besides the applicant
        total_author_count: Authors on the output, named or not
        is_internal: External contributors always receive nothing
        internal_co_author_count: Money divisor for co-authors
        external_first_corresponding_pct: Percentage forfeited to external
            first/corresponding authors
        internal_employee_co_author_count: Points divisor for co-authors
        policy_lookup: Callable (type, sub_type, date) -> policy variant or None
        tracer: Collects the branches taken

    Returns:
        IncentiveResult(incentive_amount, points). Never raises; unexpected
        errors produce a zero result recorded as "calculation_failure".
    """
    trace = tracer if tracer is not None else CalculationTrace(publication_type)

    if not is_internal:
        trace.record("external_contributor", author_role=author_role)
        return ZERO_RESULT

    try:
        data = contribution_data or {}
        on_date = publication_date_of(data)
        sub_type = None
        if publication_type == "conference_paper":
            sub_type = data.get("conference_sub_type")
            if not sub_type:
                trace.record("missing_conference_sub_type")
                return ZERO_RESULT

        policy = policy_lookup(publication_type, sub_type, on_date) if policy_lookup else None
        if policy is None:
            policy = default_policy(publication_type, sub_type)
            trace.record("default_policy", publication_type=publication_type, sub_type=sub_type)
        else:
            trace.record("stored_policy", publication_type=publication_type, sub_type=sub_type)
        if policy is None:
            trace.record("no_policy", publication_type=publication_type, sub_type=sub_type)
            return ZERO_RESULT

        pool = resolve_pool(policy, data, float(sjr_value or 0), trace)
        amount = pool.award.amount
        points = pool.award.points

        if pool.split == SPLIT_NONE:
            money_pct = points_pct = HUNDRED
        elif pool.split == SPLIT_EQUAL:
            money_pct = points_pct = HUNDRED / max(total_author_count, 1)
        else:
            money_pct, points_pct = role_percentages(
                author_role,
                pool.role_split,
                total_author_count,
                total_co_author_count,
                internal_co_author_count,
                external_first_corresponding_pct,
                internal_employee_co_author_count,
            )
        trace.record(
            "role_percentage",
            author_role=author_role,
            split=pool.split,
            money_pct=str(money_pct),
            points_pct=str(points_pct),
        )

        incentive_amount = round_amount(amount * money_pct / HUNDRED)
        author_points = floor_points(points * points_pct / HUNDRED)

        if is_student:
            trace.record("student_points_excluded")
            author_points = 0

        result = IncentiveResult(max(incentive_amount, 0), max(author_points, 0))
        trace.record("result", **result.to_dict())
        return result

    except Exception as e:
        logger.exception(
            "Incentive calculation failed for %s (%s): %s",
            publication_type,
            author_role,
            e,
        )
        trace.record("calculation_failure", error=str(e))
        return ZERO_RESULT
