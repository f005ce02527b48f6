from __future__ import annotations

from datetime import date

import pytest

from research_portal.errors import PolicyNotFound, PolicyOverlapError, WorkflowValidationError
from research_portal.incentive_calculator import (
    DEFAULT_POLICY_RULES,
    ConferencePolicy,
    ResearchPaperPolicy,
)
from research_portal.services import policy_store


def _paper_rules(q1_amount: int = 80000) -> dict:
    rules = {
        "quartile_incentives": [
            {"quartile": q, "incentive_amount": 1000, "points": 1}
            for q in ("Top 1%", "Top 5%", "Q2", "Q3", "Q4")
        ],
        "role_percentages": [
            {"role": "first_author", "percentage": 40},
            {"role": "corresponding_author", "percentage": 20},
        ],
    }
    rules["quartile_incentives"].append({"quartile": "Q1", "incentive_amount": q1_amount, "points": 80})
    return rules


def _create(name="2025 papers", start="2025-01-01", end=None, **extra):
    data = {
        "policy_name": name,
        "publication_type": "research_paper",
        "rules": _paper_rules(),
        "effective_from": start,
        "effective_to": end,
    }
    data.update(extra)
    return policy_store.create_policy(data)


def test_ranges_overlap() -> None:
    jan = date(2025, 1, 1)
    jun = date(2025, 6, 30)
    jul = date(2025, 7, 1)
    assert policy_store.ranges_overlap(jan, jun, jun, None)
    assert not policy_store.ranges_overlap(jan, jun, jul, None)
    assert policy_store.ranges_overlap(jan, None, jul, date(2025, 12, 31))


def test_create_and_find_active_policy(app) -> None:
    policy = _create()
    assert policy.id is not None

    variant = policy_store.find_active_policy("research_paper", None, date(2025, 5, 1))
    assert isinstance(variant, ResearchPaperPolicy)
    assert variant.quartile_incentives["Q1"].amount == 80000
    assert variant.role_split.first_author_pct == 40


def test_no_policy_before_effective_date(app) -> None:
    _create()
    assert policy_store.find_active_policy("research_paper", None, date(2024, 12, 31)) is None


def test_overlapping_range_rejected(app) -> None:
    _create(end="2025-12-31")
    with pytest.raises(PolicyOverlapError):
        _create(name="mid-year", start="2025-06-01")


def test_adjacent_ranges_allowed(app) -> None:
    _create(end="2025-06-30")
    later = _create(name="second half", start="2025-07-01")
    assert later.id is not None

    variant = policy_store.find_active_policy("research_paper", None, date(2025, 8, 1))
    assert variant is not None


def test_overlap_check_includes_inactive_policies(app) -> None:
    _create(is_active=False)
    with pytest.raises(PolicyOverlapError):
        _create(name="replacement", start="2025-03-01")


def test_all_quartiles_required(app) -> None:
    rules = _paper_rules()
    rules["quartile_incentives"] = rules["quartile_incentives"][:3]
    with pytest.raises(WorkflowValidationError) as excinfo:
        policy_store.create_policy(
            {
                "policy_name": "incomplete",
                "publication_type": "research_paper",
                "rules": rules,
                "effective_from": "2025-01-01",
            }
        )
    assert "Missing" in excinfo.value.message


def test_end_before_start_rejected(app) -> None:
    with pytest.raises(WorkflowValidationError):
        _create(start="2025-06-01", end="2025-01-01")


def test_conference_policy_requires_sub_type(app) -> None:
    with pytest.raises(WorkflowValidationError):
        policy_store.create_policy(
            {
                "policy_name": "conferences",
                "publication_type": "conference_paper",
                "rules": DEFAULT_POLICY_RULES["conference_paper"]["paper_not_indexed"],
                "effective_from": "2025-01-01",
            }
        )


def test_conference_policies_scoped_by_sub_type(app) -> None:
    for sub_type in ("paper_not_indexed", "keynote_speaker_invited_talks"):
        policy_store.create_policy(
            {
                "policy_name": f"conference {sub_type}",
                "publication_type": "conference_paper",
                "sub_type": sub_type,
                "rules": DEFAULT_POLICY_RULES["conference_paper"][sub_type],
                "effective_from": "2025-01-01",
            }
        )

    variant = policy_store.find_active_policy(
        "conference_paper", "keynote_speaker_invited_talks", date(2025, 2, 1)
    )
    assert isinstance(variant, ConferencePolicy)
    assert variant.sub_type == "keynote_speaker_invited_talks"
    assert policy_store.find_active_policy(
        "conference_paper", "paper_indexed_scopus", date(2025, 2, 1)
    ) is None


def test_update_policy_checks_overlap(app) -> None:
    first = _create(end="2025-06-30")
    second = _create(name="second half", start="2025-07-01")
    with pytest.raises(PolicyOverlapError):
        policy_store.update_policy(second.id, {"effective_from": "2025-06-01"})

    updated = policy_store.update_policy(first.id, {"policy_name": "first half"})
    assert updated.policy_name == "first half"


def test_update_missing_policy(app) -> None:
    with pytest.raises(PolicyNotFound):
        policy_store.update_policy(999, {"policy_name": "x"})


def test_invalid_stored_rules_fall_back_to_default(app) -> None:
    from research_portal.db_models import IncentivePolicy, db

    db.session.add(
        IncentivePolicy(
            policy_name="broken",
            publication_type="grant",
            rules={"amount_tiers": [{"min_amount": "lots"}]},
            effective_from=date(2025, 1, 1),
        )
    )
    db.session.commit()
    assert policy_store.find_active_policy("grant", None, date(2025, 3, 1)) is None


def test_find_all_overlaps_reports_hand_inserted_rows(app) -> None:
    from research_portal.db_models import IncentivePolicy, db

    for name in ("a", "b"):
        db.session.add(
            IncentivePolicy(
                policy_name=name,
                publication_type="book",
                rules=DEFAULT_POLICY_RULES["book"],
                effective_from=date(2025, 1, 1),
            )
        )
    db.session.commit()
    pairs = policy_store.find_all_overlaps()
    assert len(pairs) == 1


def test_policy_defaults() -> None:
    assert set(policy_store.policy_defaults()) == set(DEFAULT_POLICY_RULES)
    assert list(policy_store.policy_defaults("grant")) == ["grant"]
    with pytest.raises(PolicyNotFound):
        policy_store.policy_defaults("patent")
