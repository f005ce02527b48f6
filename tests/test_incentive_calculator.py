from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from research_portal.author_composition import Participant, analyze_composition
from research_portal.incentive_calculator import (
    BookPolicy,
    CalculationTrace,
    ConferencePolicy,
    GrantPolicy,
    PolicyRulesError,
    ResearchPaperPolicy,
    RoleSplit,
    calculate_incentives,
    default_policy,
    floor_points,
    normalize_quartile,
    parse_policy_rules,
    role_percentages,
    round_amount,
)

Q1_PAPER = {"publication_date": date(2025, 3, 1), "quartile": "Q1"}


def _shares(data, publication_type, participants, declared=0):
    comp = analyze_composition(participants, RoleSplit(), declared)
    return [
        calculate_incentives(
            data,
            publication_type,
            p.author_role,
            is_student=p.student,
            total_co_author_count=comp.total_co_author_count,
            total_author_count=comp.total_author_count,
            is_internal=p.internal,
            internal_co_author_count=comp.internal_co_author_count,
            external_first_corresponding_pct=comp.external_first_corresponding_pct,
            internal_employee_co_author_count=comp.internal_employee_co_author_count,
        )
        for p in participants
    ]


def test_single_internal_author_gets_full_q1_pool() -> None:
    result = calculate_incentives(
        Q1_PAPER, "research_paper", "first_and_corresponding_author", total_author_count=1
    )
    assert result.incentive_amount == 50000
    assert result.points == 50


def test_two_internal_authors_split_by_role() -> None:
    first = Participant("A", author_role="first_author", is_applicant=True)
    corresponding = Participant("B", author_role="corresponding_author")
    first_share, corr_share = _shares(Q1_PAPER, "research_paper", [first, corresponding], 2)

    assert (first_share.incentive_amount, first_share.points) == (17500, 17)
    assert (corr_share.incentive_amount, corr_share.points) == (15000, 15)


def test_external_corresponding_author_forfeits_without_redistribution() -> None:
    first = Participant("A", author_role="first_author", is_applicant=True)
    external = Participant(
        "X", participant_type="external_academic", author_role="corresponding_author", is_internal=False
    )
    first_share, external_share = _shares(Q1_PAPER, "research_paper", [first, external], 2)

    assert (external_share.incentive_amount, external_share.points) == (0, 0)
    assert (first_share.incentive_amount, first_share.points) == (17500, 17)


@pytest.mark.parametrize("publication_type", ["research_paper", "book", "grant"])
@pytest.mark.parametrize("role", ["first_author", "corresponding_author", "co_author"])
def test_external_contributor_always_zero(publication_type, role) -> None:
    trace = CalculationTrace("external")
    result = calculate_incentives(
        {"quartile": "Top 1%", "book_type": "authored", "sanctioned_amount": 5000000},
        publication_type,
        role,
        total_author_count=1,
        is_internal=False,
        tracer=trace,
    )
    assert (result.incentive_amount, result.points) == (0, 0)
    assert trace.names() == ["external_contributor"]


def test_student_gets_money_but_no_points() -> None:
    result = calculate_incentives(
        Q1_PAPER, "research_paper", "first_author", is_student=True, total_author_count=1
    )
    assert result.incentive_amount == 50000
    assert result.points == 0


def test_sole_author_percentage_excludes_external_slots() -> None:
    money, points = role_percentages("first_author", RoleSplit(), 1, 0, 0, 30, 0)
    assert money == points == Decimal(70)


def test_two_authors_without_co_authors_split_evenly() -> None:
    for role in ("first_author", "corresponding_author", "co_author"):
        assert role_percentages(role, RoleSplit(), 2, 0, 0, 0, 0) == (50, 50)


def test_internal_co_authors_share_the_co_author_pool() -> None:
    applicant = Participant("A", author_role="first_author", is_applicant=True)
    people = [
        applicant,
        Participant("B", author_role="corresponding_author"),
        Participant("C", author_role="co_author"),
        Participant("D", author_role="senior_author"),
        Participant("E", participant_type="internal_student", author_role="co_author"),
        Participant("F", participant_type="external_industry", author_role="co_author", is_internal=False),
    ]
    comp = analyze_composition(people, RoleSplit(), 6)
    split = RoleSplit()

    co_authors = [p for p in people if p.author_role in ("co_author", "senior_author") and p.internal]
    money_total = Decimal(0)
    points_total = Decimal(0)
    for p in co_authors:
        money, points = role_percentages(
            p.author_role,
            split,
            comp.total_author_count,
            comp.total_co_author_count,
            comp.internal_co_author_count,
            comp.external_first_corresponding_pct,
            comp.internal_employee_co_author_count,
        )
        money_total += money
        if not p.student:
            points_total += points

    assert abs(money_total - split.co_author_pool_pct) < Decimal("1e-20")
    assert points_total == split.co_author_pool_pct


def test_co_author_points_use_employee_divisor() -> None:
    people = [
        Participant("A", author_role="first_author", is_applicant=True),
        Participant("B", author_role="co_author"),
        Participant("S", participant_type="internal_student", author_role="co_author"),
    ]
    shares = _shares(Q1_PAPER, "research_paper", people, 3)
    # pool 35%: money split over 2 internal co-authors, points over 1 employee
    assert shares[1].incentive_amount == 8750
    assert shares[1].points == 17
    assert shares[2].incentive_amount == 8750
    assert shares[2].points == 0


def test_sjr_band_used_when_quartile_missing() -> None:
    result = calculate_incentives(
        {"publication_date": "2025-01-10"},
        "research_paper",
        "first_and_corresponding_author",
        sjr_value=1.2,
        total_author_count=1,
    )
    assert result.incentive_amount == 30000


def test_stored_sjr_range_overrides_quartile() -> None:
    policy = parse_policy_rules(
        "research_paper",
        None,
        {
            "quartile_incentives": [{"quartile": "Q2", "incentive_amount": 30000, "points": 30}],
            "sjr_ranges": [{"min_sjr": 3, "max_sjr": 10, "incentive_amount": 90000, "points": 0}],
        },
    )
    trace = CalculationTrace()
    result = calculate_incentives(
        {"quartile": "Q2"},
        "research_paper",
        "first_and_corresponding_author",
        sjr_value=4.5,
        total_author_count=1,
        policy_lookup=lambda *args: policy,
        tracer=trace,
    )
    assert result.incentive_amount == 90000
    # zero points in the band keep the quartile points
    assert result.points == 30
    assert "stored_policy" in trace.names()
    assert "sjr_override" in trace.names()


def test_book_pool_split_equally_with_bonuses() -> None:
    data = {
        "book_type": "authored",
        "book_indexing_type": "scopus_indexed",
        "is_international_publication": True,
    }
    result = calculate_incentives(data, "book", "co_author", total_author_count=2)
    # (50000 + 10000 + 5000) / 2
    assert result.incentive_amount == 32500
    assert result.points == 32


def test_book_chapter_uses_its_own_table() -> None:
    result = calculate_incentives(
        {"book_type": "edited", "book_indexing_type": "non_indexed"},
        "book_chapter",
        "first_author",
        total_author_count=1,
    )
    assert result.incentive_amount == 10000


def test_conference_without_sub_type_is_zero() -> None:
    trace = CalculationTrace()
    result = calculate_incentives(
        {"conference_type": "national"}, "conference_paper", "first_author", tracer=trace
    )
    assert result.incentive_amount == 0
    assert trace.names() == ["missing_conference_sub_type"]


def test_indexed_conference_quartile_type_and_best_paper() -> None:
    data = {
        "conference_sub_type": "paper_indexed_scopus",
        "proceedings_quartile": "q1",
        "conference_type": "international",
        "is_best_paper_award": True,
    }
    result = calculate_incentives(
        data, "conference_paper", "first_and_corresponding_author", total_author_count=1
    )
    # 20000 + 10000 + 5000
    assert result.incentive_amount == 35000
    assert result.points == 30


def test_keynote_gets_full_flat_amount() -> None:
    result = calculate_incentives(
        {"conference_sub_type": "keynote_speaker_invited_talks", "conference_type": "international"},
        "conference_paper",
        "co_author",
        total_author_count=3,
    )
    assert result.incentive_amount == 15000


def test_not_indexed_conference_split_equally() -> None:
    result = calculate_incentives(
        {"conference_sub_type": "paper_not_indexed", "conference_type": "international"},
        "conference_paper",
        "co_author",
        total_author_count=4,
    )
    assert result.incentive_amount == 2500


@pytest.mark.parametrize(
    "sanctioned,expected",
    [(100000, 100000), (1000000, 120000), (5000000, 150000), (25000000, 200000)],
)
def test_grant_amount_tiers(sanctioned, expected) -> None:
    result = calculate_incentives(
        {"sanctioned_amount": sanctioned},
        "grant",
        "first_and_corresponding_author",
        total_author_count=1,
    )
    assert result.incentive_amount == expected


def test_failure_yields_zero_and_trace_event() -> None:
    def broken_lookup(*args):
        raise RuntimeError("database unavailable")

    trace = CalculationTrace()
    result = calculate_incentives(
        Q1_PAPER,
        "research_paper",
        "first_author",
        total_author_count=1,
        policy_lookup=broken_lookup,
        tracer=trace,
    )
    assert (result.incentive_amount, result.points) == (0, 0)
    assert trace.failed
    assert "database unavailable" in trace.find("calculation_failure")["error"]


def test_unknown_publication_type_is_zero() -> None:
    trace = CalculationTrace()
    result = calculate_incentives({}, "patent", "first_author", tracer=trace)
    assert result.incentive_amount == 0
    assert "no_policy" in trace.names()


def test_rounding_money_half_up_points_floor() -> None:
    assert round_amount(Decimal("17500.5")) == 17501
    assert floor_points(Decimal("17.9")) == 17


def test_normalize_quartile_aliases() -> None:
    assert normalize_quartile("top_1") == "Top 1%"
    assert normalize_quartile("Q3") == "Q3"
    assert normalize_quartile("na") is None


def test_default_policy_variants() -> None:
    assert isinstance(default_policy("research_paper"), ResearchPaperPolicy)
    assert isinstance(default_policy("book"), BookPolicy)
    assert isinstance(default_policy("conference_paper", "paper_not_indexed"), ConferencePolicy)
    assert isinstance(default_policy("grant"), GrantPolicy)
    assert default_policy("conference_paper") is None


def test_parse_rejects_bad_role_percentages() -> None:
    with pytest.raises(PolicyRulesError):
        parse_policy_rules(
            "research_paper",
            None,
            {
                "role_percentages": [
                    {"role": "first_author", "percentage": 70},
                    {"role": "corresponding_author", "percentage": 50},
                ]
            },
        )
