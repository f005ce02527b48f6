"""Incentive policy store.

Read side: `find_active_policy()` resolves the policy variant that applies to a
(publication type, sub-type, date), cached per request.
Write side: create/update with validation of the rules and of the effective
date ranges (no overlap per type and sub-type).
"""

from __future__ import annotations

import logging
from datetime import date

from flask import g, has_request_context
from sqlalchemy import or_

from research_portal.db_models import IncentivePolicy, PublicationType, db
from research_portal.errors import (
    PolicyNotFound,
    PolicyOverlapError,
    WorkflowValidationError,
)
from research_portal.incentive_calculator import (
    CONFERENCE_SUB_TYPES,
    DEFAULT_POLICY_RULES,
    QUARTILE_LABELS,
    PolicyRulesError,
    PolicyVariant,
    normalize_quartile,
    parse_policy_rules,
)

logger = logging.getLogger(__name__)

_CACHE_ATTR = "_incentive_policy_cache"

PUBLICATION_TYPES = tuple(t.value for t in PublicationType)


def _request_cache() -> dict | None:
    if not has_request_context():
        return None
    cache = getattr(g, _CACHE_ATTR, None)
    if cache is None:
        cache = {}
        setattr(g, _CACHE_ATTR, cache)
    return cache


def clear_policy_cache() -> None:
    if has_request_context() and hasattr(g, _CACHE_ATTR):
        delattr(g, _CACHE_ATTR)


def find_policy_row(
    publication_type: str, sub_type: str | None, on_date: date
) -> IncentivePolicy | None:
    """Latest active policy row whose date range covers `on_date`."""
    query = IncentivePolicy.query.filter(
        IncentivePolicy.publication_type == publication_type,
        IncentivePolicy.is_active.is_(True),
        IncentivePolicy.effective_from <= on_date,
        or_(
            IncentivePolicy.effective_to.is_(None),
            IncentivePolicy.effective_to >= on_date,
        ),
    )
    if publication_type == "conference_paper":
        query = query.filter(IncentivePolicy.sub_type == sub_type)
    return query.order_by(IncentivePolicy.effective_from.desc()).first()


def find_active_policy(
    publication_type: str, sub_type: str | None, on_date: date
) -> PolicyVariant | None:
    """
    Resolve the policy variant for a type/sub-type on a date.

    Returns None when no stored policy applies or when its rules are
    malformed; callers then use the built-in defaults.
    """
    key = (publication_type, sub_type, on_date)
    cache = _request_cache()
    if cache is not None and key in cache:
        return cache[key]

    row = find_policy_row(publication_type, sub_type, on_date)
    variant = None
    if row is not None:
        try:
            variant = parse_policy_rules(publication_type, sub_type, row.rules)
        except PolicyRulesError as e:
            logger.warning("Ignoring policy %s with invalid rules: %s", row.id, e)

    if cache is not None:
        cache[key] = variant
    return variant


# =============================================================================
# ADMINISTRATION
# =============================================================================


def ranges_overlap(start_a: date, end_a: date | None, start_b: date, end_b: date | None) -> bool:
    """Closed date ranges; None as end means open ended."""
    a_before_b_ends = end_b is None or start_a <= end_b
    b_before_a_ends = end_a is None or start_b <= end_a
    return a_before_b_ends and b_before_a_ends


def find_overlapping_policy(
    publication_type: str,
    sub_type: str | None,
    effective_from: date,
    effective_to: date | None,
    exclude_id: int | None = None,
) -> IncentivePolicy | None:
    query = IncentivePolicy.query.filter_by(
        publication_type=publication_type, sub_type=sub_type
    )
    if exclude_id is not None:
        query = query.filter(IncentivePolicy.id != exclude_id)
    for other in query.all():
        if ranges_overlap(
            effective_from, effective_to, other.effective_from, other.effective_to
        ):
            return other
    return None


def _parse_date(value, field_name: str) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise WorkflowValidationError(f"Invalid date for {field_name}: {value}") from e


def _validate_rules(publication_type: str, sub_type: str | None, rules: dict) -> None:
    quartile_rows = rules.get("quartile_incentives")
    if quartile_rows:
        labels = {normalize_quartile(r.get("quartile")) for r in quartile_rows}
        missing = [q for q in QUARTILE_LABELS if q not in labels]
        if missing:
            raise WorkflowValidationError(
                "Quartile incentives must be defined for all quartiles. Missing: "
                + ", ".join(missing)
            )
    try:
        parse_policy_rules(publication_type, sub_type, rules)
    except PolicyRulesError as e:
        raise WorkflowValidationError(str(e)) from e


def _validate_type(publication_type: str | None, sub_type: str | None) -> tuple[str, str | None]:
    publication_type = (publication_type or "").strip().lower()
    if publication_type not in PUBLICATION_TYPES:
        raise WorkflowValidationError(f"Unknown publication type: {publication_type}")
    if publication_type == "conference_paper":
        if sub_type not in CONFERENCE_SUB_TYPES:
            raise WorkflowValidationError(
                "Conference policies require a valid sub-type"
            )
    else:
        sub_type = None
    return publication_type, sub_type


def create_policy(data: dict, actor=None, commit: bool = True) -> IncentivePolicy:
    """Create a policy after validating rules and date range."""
    publication_type, sub_type = _validate_type(
        data.get("publication_type"), data.get("sub_type")
    )
    policy_name = (data.get("policy_name") or "").strip()
    if not policy_name:
        raise WorkflowValidationError("Policy name is required")

    effective_from = _parse_date(data.get("effective_from"), "effective_from")
    if effective_from is None:
        raise WorkflowValidationError("effective_from is required")
    effective_to = _parse_date(data.get("effective_to"), "effective_to")
    if effective_to is not None and effective_to < effective_from:
        raise WorkflowValidationError("effective_to must not be before effective_from")

    rules = data.get("rules") or {}
    _validate_rules(publication_type, sub_type, rules)

    clash = find_overlapping_policy(publication_type, sub_type, effective_from, effective_to)
    if clash is not None:
        raise PolicyOverlapError(
            f'Date range overlaps with existing policy "{clash.policy_name}"'
        )

    policy = IncentivePolicy(
        policy_name=policy_name,
        publication_type=publication_type,
        sub_type=sub_type,
        rules=rules,
        effective_from=effective_from,
        effective_to=effective_to,
        is_active=bool(data.get("is_active", True)),
        created_by_id=getattr(actor, "id", None),
    )
    db.session.add(policy)
    if commit:
        db.session.commit()
    clear_policy_cache()
    logger.info(
        "Created incentive policy %s for %s/%s", policy_name, publication_type, sub_type
    )
    return policy


def update_policy(policy_id: int, data: dict, commit: bool = True) -> IncentivePolicy:
    policy = db.session.get(IncentivePolicy, policy_id)
    if policy is None:
        raise PolicyNotFound("Policy not found")

    if "policy_name" in data:
        name = (data.get("policy_name") or "").strip()
        if not name:
            raise WorkflowValidationError("Policy name is required")
        policy.policy_name = name

    effective_from = policy.effective_from
    effective_to = policy.effective_to
    if "effective_from" in data:
        effective_from = _parse_date(data["effective_from"], "effective_from")
        if effective_from is None:
            raise WorkflowValidationError("effective_from is required")
    if "effective_to" in data:
        effective_to = _parse_date(data["effective_to"], "effective_to")
    if effective_to is not None and effective_to < effective_from:
        raise WorkflowValidationError("effective_to must not be before effective_from")

    clash = find_overlapping_policy(
        policy.publication_type,
        policy.sub_type,
        effective_from,
        effective_to,
        exclude_id=policy.id,
    )
    if clash is not None:
        raise PolicyOverlapError(
            f'Date range overlaps with existing policy "{clash.policy_name}"'
        )
    policy.effective_from = effective_from
    policy.effective_to = effective_to

    if "rules" in data:
        rules = data.get("rules") or {}
        _validate_rules(policy.publication_type, policy.sub_type, rules)
        policy.rules = rules
    if "is_active" in data:
        policy.is_active = bool(data["is_active"])

    if commit:
        db.session.commit()
    clear_policy_cache()
    return policy


def get_policy(policy_id: int) -> IncentivePolicy:
    policy = db.session.get(IncentivePolicy, policy_id)
    if policy is None:
        raise PolicyNotFound("Policy not found")
    return policy


def list_policies(publication_type: str | None = None) -> list[IncentivePolicy]:
    query = IncentivePolicy.query
    if publication_type:
        query = query.filter_by(publication_type=publication_type)
    return query.order_by(
        IncentivePolicy.publication_type,
        IncentivePolicy.sub_type,
        IncentivePolicy.effective_from.desc(),
    ).all()


def policy_defaults(publication_type: str | None = None) -> dict:
    """Built-in default rules, all types or one type."""
    if publication_type is None:
        return DEFAULT_POLICY_RULES
    publication_type = publication_type.lower()
    if publication_type not in DEFAULT_POLICY_RULES:
        raise PolicyNotFound(f"No default policy for {publication_type}")
    return {publication_type: DEFAULT_POLICY_RULES[publication_type]}


def find_all_overlaps() -> list[tuple[IncentivePolicy, IncentivePolicy]]:
    """Pairs of stored policies whose ranges collide (for audits)."""
    rows = list_policies()
    pairs = []
    for i, a in enumerate(rows):
        for b in rows[i + 1:]:
            if (a.publication_type, a.sub_type) != (b.publication_type, b.sub_type):
                continue
            if ranges_overlap(a.effective_from, a.effective_to, b.effective_from, b.effective_to):
                pairs.append((a, b))
    return pairs
