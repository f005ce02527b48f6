"""
Review queue, statistics and audit trail routes.
"""

from datetime import datetime

from flask import request
from flask_login import current_user, login_required

from research_portal.errors import PermissionDenied, WorkflowValidationError
from research_portal.services import contributions as contribution_service
from research_portal.services import review_workflow

from . import research_bp
from .helpers import ok


def _parse_datetime(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as e:
        raise WorkflowValidationError(f"Invalid {name}: {raw}") from e


@research_bp.route("/reviews/pending", methods=["GET"])
@login_required
def pending_reviews():
    rows = review_workflow.pending_reviews(
        current_user,
        status=request.args.get("status"),
        publication_type=request.args.get("publication_type"),
        school_id=request.args.get("school_id", type=int),
    )
    return ok([c.to_dict() for c in rows])


@research_bp.route("/reviews/statistics", methods=["GET"])
@login_required
def review_statistics():
    if not (current_user.can_review or current_user.can_approve or current_user.is_admin):
        raise PermissionDenied("Research review permission required")
    stats = review_workflow.review_statistics(
        school_id=request.args.get("school_id", type=int),
        publication_type=request.args.get("publication_type"),
        start=_parse_datetime("start_date"),
        end=_parse_datetime("end_date"),
    )
    return ok(stats)


@research_bp.route("/contributions/<int:contribution_id>/history", methods=["GET"])
@login_required
def contribution_history(contribution_id: int):
    contribution = contribution_service.get_contribution(contribution_id)
    if not contribution_service.can_view(contribution, current_user):
        raise PermissionDenied("You do not have access to this contribution")
    return ok(review_workflow.status_history(contribution_id))
