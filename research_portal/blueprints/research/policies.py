"""
Incentive policy routes and calculation preview.
"""

from datetime import date

from flask import request
from flask_login import current_user, login_required

from research_portal.errors import WorkflowValidationError
from research_portal.incentive_calculator import default_policy_rules
from research_portal.services import policy_store
from research_portal.services.contributions import preview_incentives

from . import research_bp
from .helpers import admin_required, json_body, ok


@research_bp.route("/policies", methods=["GET"])
@login_required
def list_policies():
    rows = policy_store.list_policies(request.args.get("publication_type"))
    return ok([p.to_dict() for p in rows])


@research_bp.route("/policies/defaults", methods=["GET"])
@login_required
def policy_defaults():
    return ok(policy_store.policy_defaults(request.args.get("publication_type")))


@research_bp.route("/policies/<publication_type>/active", methods=["GET"])
@login_required
def active_policy(publication_type: str):
    """Stored policy in force on a date, or the built-in default."""
    raw_date = request.args.get("date")
    try:
        on_date = date.fromisoformat(raw_date) if raw_date else date.today()
    except ValueError as e:
        raise WorkflowValidationError(f"Invalid date: {raw_date}") from e
    sub_type = request.args.get("sub_type")

    row = policy_store.find_policy_row(publication_type, sub_type, on_date)
    if row is not None:
        return ok({**row.to_dict(), "is_default": False})

    rules = default_policy_rules(publication_type, sub_type)
    if rules is None:
        return ok(
            {"publication_type": publication_type, "sub_type": sub_type, "rules": None, "is_default": True},
            "No policy for this type",
        )
    return ok(
        {"publication_type": publication_type, "sub_type": sub_type, "rules": rules, "is_default": True}
    )


@research_bp.route("/policies/<int:policy_id>", methods=["GET"])
@login_required
def get_policy(policy_id: int):
    return ok(policy_store.get_policy(policy_id).to_dict())


@research_bp.route("/policies", methods=["POST"])
@login_required
@admin_required
def create_policy():
    policy = policy_store.create_policy(json_body(), actor=current_user)
    return ok(policy.to_dict(), "Incentive policy created", 201)


@research_bp.route("/policies/<int:policy_id>", methods=["PUT", "PATCH"])
@login_required
@admin_required
def update_policy(policy_id: int):
    policy = policy_store.update_policy(policy_id, json_body())
    return ok(policy.to_dict(), "Incentive policy updated")


@research_bp.route("/incentives/preview", methods=["POST"])
@login_required
def incentive_preview():
    """Shares for unsaved form data, as the applicant would get them."""
    payload = json_body()
    calc = preview_incentives(payload, applicant_type=current_user.participant_type)
    return ok(calc.to_dict())
