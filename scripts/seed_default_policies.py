#!/usr/bin/env python3
"""
Store the built-in default incentive rules as editable policies.

One policy per publication type (per sub-type for conference papers),
effective from the given date. Types that already have a policy are skipped.

Usage:
    python scripts/seed_default_policies.py [YYYY-MM-DD]
"""

import os
import sys
from datetime import date

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

from research_portal import create_app  # noqa: E402
from research_portal.db_models import IncentivePolicy, db  # noqa: E402
from research_portal.errors import WorkflowError  # noqa: E402
from research_portal.incentive_calculator import DEFAULT_POLICY_RULES  # noqa: E402
from research_portal.services.policy_store import create_policy  # noqa: E402


def _targets():
    for publication_type, rules in DEFAULT_POLICY_RULES.items():
        if publication_type == "conference_paper":
            for sub_type, sub_rules in rules.items():
                yield publication_type, sub_type, sub_rules
        else:
            yield publication_type, None, rules


def seed_default_policies(effective_from: date):
    created = 0
    skipped = 0

    for publication_type, sub_type, rules in _targets():
        exists = IncentivePolicy.query.filter_by(
            publication_type=publication_type, sub_type=sub_type
        ).first()
        if exists:
            skipped += 1
            continue

        label = publication_type.replace("_", " ").title()
        if sub_type:
            label += f" ({sub_type.replace('_', ' ')})"
        try:
            create_policy(
                {
                    "policy_name": f"Default {label} Policy",
                    "publication_type": publication_type,
                    "sub_type": sub_type,
                    "rules": rules,
                    "effective_from": effective_from.isoformat(),
                },
                commit=False,
            )
            created += 1
        except WorkflowError as e:
            print(f"  skip {publication_type}/{sub_type}: {e.message}")
            skipped += 1

    db.session.commit()
    return created, skipped


def main():
    effective_from = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today()
    app = create_app()
    with app.app_context():
        created, skipped = seed_default_policies(effective_from)
        print(f"Done. created={created}, skipped={skipped}")


if __name__ == "__main__":
    main()
