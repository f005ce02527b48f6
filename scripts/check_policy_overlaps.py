#!/usr/bin/env python3
"""
Audit stored incentive policies for overlapping effective date ranges.

Policies created through the API are checked on write; rows inserted by
hand or by older imports are not.

Usage:
    python scripts/check_policy_overlaps.py
"""

import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, ROOT)

from research_portal import create_app  # noqa: E402
from research_portal.services.policy_store import find_all_overlaps  # noqa: E402


def _describe(policy):
    end = policy.effective_to.isoformat() if policy.effective_to else "open"
    return f"#{policy.id} {policy.policy_name} ({policy.effective_from.isoformat()} .. {end})"


def main():
    app = create_app()
    with app.app_context():
        pairs = find_all_overlaps()
        if not pairs:
            print("No overlapping incentive policies found.")
            return 0

        print(f"Found {len(pairs)} overlapping policy pair(s):")
        for a, b in pairs:
            scope = a.publication_type + (f"/{a.sub_type}" if a.sub_type else "")
            print(f"  [{scope}] {_describe(a)}  <->  {_describe(b)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
