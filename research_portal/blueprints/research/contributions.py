"""
Contribution routes: CRUD, author list and workflow actions.
"""

from flask import request
from flask_login import current_user, login_required

from research_portal.db_models import ContributionReview, EditSuggestion
from research_portal.errors import PermissionDenied, WorkflowValidationError
from research_portal.extensions import limiter
from research_portal.services import contributions as contribution_service
from research_portal.services import review_workflow

from . import research_bp
from .helpers import expected_version, fail, json_body, ok, result_response


def _detail(contribution) -> dict:
    data = contribution.to_dict()
    data["reviews"] = [
        r.to_dict()
        for r in ContributionReview.query.filter_by(contribution_id=contribution.id)
        .order_by(ContributionReview.reviewed_at, ContributionReview.id)
        .all()
    ]
    data["suggestions"] = [
        s.to_dict()
        for s in EditSuggestion.query.filter_by(contribution_id=contribution.id)
        .order_by(EditSuggestion.id)
        .all()
    ]
    data["status_history"] = review_workflow.status_history(contribution.id)
    return data


@research_bp.route("/contributions", methods=["GET"])
@login_required
def list_my_contributions():
    rows = contribution_service.list_my_contributions(
        current_user,
        status=request.args.get("status"),
        publication_type=request.args.get("publication_type"),
    )
    return ok([c.to_dict(include_authors=False) for c in rows])


@research_bp.route("/contributions/contributed", methods=["GET"])
@login_required
def list_contributed():
    rows = contribution_service.list_contributed(current_user)
    return ok([c.to_dict(include_authors=False) for c in rows])


@research_bp.route("/contributions/mentor-queue", methods=["GET"])
@login_required
def mentor_queue():
    rows = contribution_service.list_pending_mentor_approvals(current_user)
    return ok([c.to_dict() for c in rows])


@research_bp.route("/contributions", methods=["POST"])
@login_required
@limiter.limit("30 per minute")
def create_contribution():
    contribution = contribution_service.create_contribution(current_user, json_body())
    return ok(contribution.to_dict(), "Research contribution created", 201)


@research_bp.route("/contributions/<int:contribution_id>", methods=["GET"])
@login_required
def get_contribution(contribution_id: int):
    contribution = contribution_service.get_contribution(contribution_id)
    if not contribution_service.can_view(contribution, current_user):
        raise PermissionDenied("You do not have access to this contribution")
    return ok(_detail(contribution))


@research_bp.route("/contributions/<int:contribution_id>", methods=["PUT", "PATCH"])
@login_required
def update_contribution(contribution_id: int):
    payload = json_body()
    contribution = contribution_service.update_contribution(
        contribution_id, current_user, payload, expected_version(payload)
    )
    return ok(contribution.to_dict(), "Research contribution updated")


@research_bp.route("/contributions/<int:contribution_id>", methods=["DELETE"])
@login_required
def delete_contribution(contribution_id: int):
    contribution_service.delete_contribution(contribution_id, current_user)
    return ok(None, "Research contribution deleted")


@research_bp.route("/contributions/<int:contribution_id>/authors", methods=["POST"])
@login_required
def add_author(contribution_id: int):
    payload = json_body()
    author = contribution_service.add_author(
        contribution_id, current_user, payload, expected_version(payload)
    )
    return ok(author.to_dict(), "Author added", 201)


@research_bp.route(
    "/contributions/<int:contribution_id>/authors/<int:author_id>", methods=["DELETE"]
)
@login_required
def remove_author(contribution_id: int, author_id: int):
    contribution = contribution_service.remove_author(contribution_id, current_user, author_id)
    return ok(contribution.to_dict(), "Author removed")


@research_bp.route("/users/lookup", methods=["GET"])
@login_required
@limiter.limit("60 per minute")
def lookup_user():
    """Resolve a uid to an internal user for the author form."""
    user = contribution_service.find_user_by_uid(request.args.get("uid"))
    if user is None:
        return fail("User not found", 404)
    return ok(
        {
            "id": user.id,
            "uid": user.uid,
            "full_name": user.full_name,
            "participant_type": user.participant_type,
            "is_internal": bool(user.is_internal),
        }
    )


# =============================================================================
# WORKFLOW ACTIONS
# =============================================================================

# URL segment -> (action, payload key passed as text argument)
_ACTION_ROUTES = {
    "submit": ("submit", None),
    "mentor-approve": ("mentor_approve", "remarks"),
    "mentor-reject": ("mentor_reject", "comments"),
    "start-review": ("start_review", None),
    "recommend": ("recommend", "comments"),
    "approve": ("approve", "comments"),
    "reject": ("reject", "reason"),
    "resubmit": ("resubmit", "comments"),
    "complete": ("complete", "comments"),
}


@research_bp.route("/contributions/<int:contribution_id>/<action_slug>", methods=["POST"])
@login_required
def workflow_action(contribution_id: int, action_slug: str):
    if action_slug == "request-changes":
        return request_changes(contribution_id)
    if action_slug not in _ACTION_ROUTES:
        return fail("Unknown action", 404)

    action, text_key = _ACTION_ROUTES[action_slug]
    payload = json_body()
    handler = review_workflow.ACTIONS[action]
    kwargs = {"expected_version": expected_version(payload)}
    if text_key is not None:
        text = payload.get(text_key)
        if text is None and text_key == "reason":
            text = payload.get("comments")
        return result_response(handler(contribution_id, current_user, text, **kwargs))
    return result_response(handler(contribution_id, current_user, **kwargs))


def request_changes(contribution_id: int):
    payload = json_body()
    suggestions = payload.get("suggestions") or []
    if not isinstance(suggestions, list):
        raise WorkflowValidationError("suggestions must be a list")
    result = review_workflow.request_changes(
        contribution_id,
        current_user,
        payload.get("comments"),
        suggestions,
        expected_version=expected_version(payload),
    )
    return result_response(result)


@research_bp.route("/suggestions/<int:suggestion_id>/respond", methods=["POST"])
@login_required
def respond_to_suggestion(suggestion_id: int):
    payload = json_body()
    decision = (payload.get("action") or "").lower()
    if decision not in ("accept", "reject"):
        raise WorkflowValidationError("action must be 'accept' or 'reject'")
    result = review_workflow.respond_to_suggestion(
        suggestion_id, current_user, decision == "accept", payload.get("response")
    )
    return result_response(result)
