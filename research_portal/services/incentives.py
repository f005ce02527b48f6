"""Incentive orchestration for a contribution.

Builds the participant list (applicant + named authors), analyses the
composition once and calls the pure calculator once per participant.
Nothing here commits; callers own the transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from research_portal.author_composition import (
    AuthorComposition,
    Participant,
    analyze_composition,
    normalize_author_role,
    resolve_applicant_role,
    resolve_participant_type,
)
from research_portal.db_models import db
from research_portal.incentive_calculator import (
    CalculationTrace,
    IncentiveResult,
    RoleSplit,
    calculate_incentives,
    default_policy,
    publication_date_of,
)
from research_portal.services.policy_store import find_active_policy

logger = logging.getLogger(__name__)


@dataclass
class ShareCalculation:
    composition: AuthorComposition
    applicant_role: str
    applicant: IncentiveResult
    authors: list[IncentiveResult] = field(default_factory=list)
    traces: list[CalculationTrace] = field(default_factory=list)

    @property
    def total_amount(self) -> int:
        return self.applicant.incentive_amount + sum(r.incentive_amount for r in self.authors)

    @property
    def total_points(self) -> int:
        return self.applicant.points + sum(r.points for r in self.authors)

    @property
    def failures(self) -> int:
        return sum(1 for t in self.traces if t.failed)

    def to_dict(self) -> dict:
        return {
            "composition": self.composition.to_dict(),
            "applicant_role": self.applicant_role,
            "applicant": self.applicant.to_dict(),
            "authors": [r.to_dict() for r in self.authors],
            "total_incentive_amount": self.total_amount,
            "total_points": self.total_points,
        }


def _get(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def author_participant(author) -> Participant:
    """Participant from a ContributionAuthor row or an author payload dict."""
    ptype = resolve_participant_type(
        _get(author, "participant_type") or _get(author, "author_type"),
        _get(author, "is_internal"),
    )
    return Participant(
        name=_get(author, "name") or "",
        participant_type=ptype,
        author_role=normalize_author_role(
            _get(author, "author_role"), bool(_get(author, "is_corresponding", False))
        ),
        is_internal=ptype.startswith("internal_"),
        user_id=_get(author, "user_id"),
    )


def build_participants(
    applicant_type: str,
    applicant_role: str | None,
    authors,
    declared_total_authors: int = 0,
    applicant_user_id: int | None = None,
) -> tuple[Participant, list[Participant]]:
    named = [author_participant(a) for a in authors]
    total = max(int(declared_total_authors or 0), len(named) + 1)
    applicant = Participant(
        name="applicant",
        participant_type=applicant_type or "internal_faculty",
        author_role=resolve_applicant_role(applicant_role, total),
        is_internal=True,
        is_applicant=True,
        user_id=applicant_user_id,
    )
    return applicant, named


def _role_split(publication_type: str, data: dict) -> RoleSplit:
    sub_type = data.get("conference_sub_type") if publication_type == "conference_paper" else None
    if publication_type == "conference_paper" and not sub_type:
        return RoleSplit()
    on_date = publication_date_of(data)
    policy = find_active_policy(publication_type, sub_type, on_date) or default_policy(
        publication_type, sub_type
    )
    return getattr(policy, "role_split", None) or RoleSplit()


def compute_shares(
    publication_type: str,
    data: dict,
    applicant: Participant,
    named: list[Participant],
    declared_total_authors: int = 0,
) -> ShareCalculation:
    """Run the calculator for the applicant and every named participant."""
    split_trace = CalculationTrace("role-split")
    try:
        split = _role_split(publication_type, data)
    except Exception as e:
        logger.exception("Role split lookup failed for %s", publication_type)
        split_trace.record("calculation_failure", error=str(e))
        split = RoleSplit()
    composition = analyze_composition([applicant, *named], split, declared_total_authors)
    sjr_value = data.get("sjr") or 0

    def run(person: Participant, label: str) -> tuple[IncentiveResult, CalculationTrace]:
        trace = CalculationTrace(label)
        result = calculate_incentives(
            data,
            publication_type,
            person.author_role,
            is_student=person.student,
            sjr_value=sjr_value,
            total_co_author_count=composition.total_co_author_count,
            total_author_count=composition.total_author_count,
            is_internal=person.internal,
            internal_co_author_count=composition.internal_co_author_count,
            external_first_corresponding_pct=composition.external_first_corresponding_pct,
            internal_employee_co_author_count=composition.internal_employee_co_author_count,
            policy_lookup=find_active_policy,
            tracer=trace,
        )
        return result, trace

    applicant_result, applicant_trace = run(applicant, "applicant")
    calc = ShareCalculation(
        composition=composition,
        applicant_role=applicant.author_role,
        applicant=applicant_result,
        traces=[split_trace, applicant_trace] if split_trace.failed else [applicant_trace],
    )
    for index, person in enumerate(named, start=1):
        result, trace = run(person, f"author-{index}")
        calc.authors.append(result)
        calc.traces.append(trace)

    if calc.failures:
        logger.error(
            "%d incentive calculation(s) failed for %s; zero shares recorded",
            calc.failures,
            publication_type,
        )
    return calc


def calculate_for_contribution(contribution) -> ShareCalculation:
    applicant, named = build_participants(
        contribution.applicant_type,
        contribution.applicant_author_role,
        contribution.authors,
        contribution.declared_total_authors,
        contribution.applicant_user_id,
    )
    return compute_shares(
        contribution.publication_type,
        contribution.calculation_data(),
        applicant,
        named,
        contribution.declared_total_authors,
    )


def apply_shares(contribution, calc: ShareCalculation, credit: bool = False) -> None:
    """Write shares onto the contribution and its author rows.

    With credit=True the totals are stored as the awarded amounts.
    """
    contribution.calculated_incentive_amount = calc.applicant.incentive_amount
    contribution.calculated_points = calc.applicant.points
    for author, result in zip(contribution.authors, calc.authors):
        author.incentive_share = result.incentive_amount
        author.points_share = result.points
    if credit:
        contribution.incentive_amount = calc.total_amount
        contribution.points_awarded = calc.total_points


def recalculate(contribution, credit: bool = False) -> ShareCalculation:
    # Policy queries must not flush the dirty contribution (one version step per commit).
    with db.session.no_autoflush:
        calc = calculate_for_contribution(contribution)
        apply_shares(contribution, calc, credit=credit)
    return calc

