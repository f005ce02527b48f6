from __future__ import annotations

from decimal import Decimal

from research_portal.author_composition import (
    Participant,
    analyze_composition,
    external_forfeiture_pct,
    normalize_author_role,
    resolve_applicant_role,
    resolve_participant_type,
)
from research_portal.incentive_calculator import RoleSplit


def test_normalize_author_role_aliases() -> None:
    assert normalize_author_role("First Author") == "first_author"
    assert normalize_author_role("corresponding") == "corresponding_author"
    assert normalize_author_role("first-and-corresponding") == "first_and_corresponding_author"
    assert normalize_author_role("first_author", is_corresponding=True) == "first_and_corresponding_author"
    assert normalize_author_role("editor") == "co_author"
    assert normalize_author_role(None) == "co_author"


def test_applicant_role_defaults_by_author_count() -> None:
    assert resolve_applicant_role(None, 1) == "first_and_corresponding_author"
    assert resolve_applicant_role(None, 3) == "co_author"
    assert resolve_applicant_role("corresponding", 3) == "corresponding_author"


def test_participant_classification() -> None:
    assert Participant("A").internal
    assert Participant("S", participant_type="internal_student").student
    assert not Participant("X", participant_type="external_other", is_internal=False).internal


def test_composition_counts() -> None:
    people = [
        Participant("A", author_role="first_author", is_applicant=True),
        Participant("B", author_role="co_author"),
        Participant("S", participant_type="internal_student", author_role="co_author"),
        Participant("X", participant_type="external_academic", author_role="co_author", is_internal=False),
        Participant("Y", participant_type="external_industry", author_role="corresponding_author", is_internal=False),
    ]
    comp = analyze_composition(people, RoleSplit(), declared_total_authors=7)

    assert comp.total_author_count == 7
    assert comp.total_co_author_count == 4
    assert comp.internal_count == 3
    assert comp.external_count == 2
    assert comp.internal_co_author_count == 2
    assert comp.internal_employee_co_author_count == 1
    assert comp.external_co_author_count == 1
    assert comp.external_first_corresponding_pct == 30.0


def test_named_participants_raise_declared_total() -> None:
    people = [Participant("A", is_applicant=True), Participant("B"), Participant("C")]
    assert analyze_composition(people, declared_total_authors=1).total_author_count == 3


def test_forfeiture_counts_each_slot_once() -> None:
    externals = [
        Participant("X", participant_type="external_other", author_role="first_and_corresponding_author", is_internal=False),
        Participant("Y", participant_type="external_other", author_role="first_author", is_internal=False),
    ]
    assert external_forfeiture_pct(externals, RoleSplit()) == Decimal(65)


def test_forfeiture_follows_policy_split() -> None:
    externals = [
        Participant("X", participant_type="external_other", author_role="first_author", is_internal=False)
    ]
    split = RoleSplit(Decimal(40), Decimal(20))
    assert external_forfeiture_pct(externals, split) == Decimal(40)


def test_participant_type_falls_back_on_internal_flag() -> None:
    assert resolve_participant_type("external_industry", True) == "external_industry"
    assert resolve_participant_type(None, False) == "external_other"
    assert resolve_participant_type("visiting", False) == "external_other"
    assert resolve_participant_type(None, None) == "internal_faculty"
    assert resolve_participant_type(None, True) == "internal_faculty"
