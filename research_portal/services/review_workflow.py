"""Review workflow for research contributions.

Pure part: `WorkflowContext` + `can_perform()` / `next_status()` decide who may
do what from which status.
DB part: one function per action. Each runs inside a single transaction that
locks the contribution, writes the status history row and either commits as a
whole or rolls back. Notifications are dispatched after the commit.

States:
    draft -> submitted | pending_mentor_approval -> under_review
    under_review -> changes_required -> resubmitted -> under_review
    under_review | submitted | resubmitted -> approved -> completed
    submitted | under_review | resubmitted -> rejected
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal

from sqlalchemy import func
from sqlalchemy.orm.exc import StaleDataError

from research_portal.db_models import (
    ContributionReview,
    EditSuggestion,
    ResearchContribution,
    StatusHistory,
    User,
    db,
)
from research_portal.errors import (
    ConcurrencyConflict,
    ContributionNotFound,
    InvalidTransition,
    PermissionDenied,
    WorkflowError,
    WorkflowValidationError,
)
from research_portal.services import incentives
from research_portal.services.contributions import (
    CONTRIBUTION_FIELDS,
    POLICY_RELEVANT_FIELDS,
    coerce_field,
    find_user_by_uid,
    generate_application_number,
    load_for_update,
)
from research_portal.services.notifications import (
    PendingNotification,
    approver_ids,
    dispatch,
)

logger = logging.getLogger(__name__)


Action = Literal[
    "submit",
    "mentor_approve",
    "mentor_reject",
    "start_review",
    "request_changes",
    "recommend",
    "approve",
    "reject",
    "resubmit",
    "complete",
]

# action -> statuses it may start from
ALLOWED_FROM: dict[str, frozenset[str]] = {
    "submit": frozenset({"draft"}),
    "mentor_approve": frozenset({"pending_mentor_approval"}),
    "mentor_reject": frozenset({"pending_mentor_approval"}),
    "start_review": frozenset({"submitted", "resubmitted"}),
    "request_changes": frozenset({"under_review"}),
    "recommend": frozenset({"under_review"}),
    "approve": frozenset({"under_review", "submitted", "resubmitted"}),
    "reject": frozenset({"submitted", "under_review", "resubmitted"}),
    "resubmit": frozenset({"changes_required"}),
    "complete": frozenset({"approved"}),
}

_TARGET_STATUS: dict[str, str] = {
    "mentor_approve": "submitted",
    "mentor_reject": "changes_required",
    "start_review": "under_review",
    "request_changes": "changes_required",
    "recommend": "under_review",
    "approve": "approved",
    "reject": "rejected",
    "resubmit": "resubmitted",
    "complete": "completed",
}


# =============================================================================
# PURE RULES
# =============================================================================


@dataclass(frozen=True)
class WorkflowContext:
    """All inputs needed to evaluate one workflow action."""

    current_status: str
    is_applicant: bool = False
    is_mentor: bool = False
    can_review: bool = False
    can_approve: bool = False
    is_admin: bool = False
    student_with_mentor: bool = False


def can_perform(action: str, ctx: WorkflowContext) -> tuple[bool, str]:
    """Return (allowed, message). Message is non-empty only when not allowed."""
    allowed = ALLOWED_FROM.get(action)
    if allowed is None:
        return False, f"Unknown action: {action}"
    if ctx.current_status not in allowed:
        return False, (
            f"Cannot {action.replace('_', ' ')} a contribution in status "
            f"'{ctx.current_status}'"
        )

    if action in ("submit", "resubmit"):
        if not ctx.is_applicant:
            return False, "Only the applicant can perform this action"
        return True, ""

    if action in ("mentor_approve", "mentor_reject"):
        if not ctx.is_mentor:
            return False, "Only the designated mentor can act on this contribution"
        return True, ""

    if action in ("start_review", "request_changes"):
        if not (ctx.can_review or ctx.can_approve):
            return False, "Research review permission required"
        return True, ""

    if action == "recommend":
        if not ctx.can_review:
            return False, "Research review permission required"
        if ctx.can_approve:
            return False, "Approvers approve directly instead of recommending"
        return True, ""

    if action == "approve":
        if not ctx.can_approve:
            return False, "Research approve permission required"
        return True, ""

    if action == "reject":
        if not (ctx.can_review or ctx.can_approve):
            return False, "Research review or approve permission required"
        return True, ""

    if action == "complete":
        if not (ctx.can_approve or ctx.is_admin):
            return False, "Only approvers or administrators can complete a contribution"
        return True, ""

    return False, f"Unknown action: {action}"


def next_status(action: str, ctx: WorkflowContext) -> str:
    """Status after `action`; the current status when the action does not apply."""
    ok, _ = can_perform(action, ctx)
    if not ok:
        return ctx.current_status
    if action == "submit":
        return "pending_mentor_approval" if ctx.student_with_mentor else "submitted"
    return _TARGET_STATUS[action]


def build_context(contribution: ResearchContribution, actor: User) -> WorkflowContext:
    return WorkflowContext(
        current_status=contribution.status or "draft",
        is_applicant=contribution.applicant_user_id == actor.id,
        is_mentor=bool(contribution.mentor_id) and contribution.mentor_id == actor.id,
        can_review=bool(actor.can_review),
        can_approve=bool(actor.can_approve),
        is_admin=bool(actor.is_admin),
        student_with_mentor=(
            contribution.is_student_applicant and bool((contribution.mentor_uid or "").strip())
        ),
    )


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class WorkflowResult:
    ok: bool
    new_status: str | None = None
    message: str = ""
    contribution: dict | None = None
    records: dict = field(default_factory=dict)
    status_code: int = 200

    def to_dict(self) -> dict:
        return {
            "success": self.ok,
            "message": self.message,
            "data": {
                "status": self.new_status,
                "contribution": self.contribution,
                **self.records,
            },
        }


@dataclass
class _Outcome:
    to_status: str
    message: str
    comment: str | None = None
    metadata: dict = field(default_factory=dict)
    # model objects or lists of them; serialized after commit
    records: dict = field(default_factory=dict)


def append_status_history(
    contribution: ResearchContribution,
    from_status: str | None,
    to_status: str,
    actor_id: int,
    comment: str | None = None,
    metadata: dict | None = None,
) -> StatusHistory:
    entry = StatusHistory(
        contribution_id=contribution.id,
        from_status=from_status,
        to_status=to_status,
        changed_by_id=actor_id,
        comments=comment,
        extra=metadata or {},
    )
    db.session.add(entry)
    return entry


def _serialize(value):
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


def _snapshot(contribution_id: int) -> dict | None:
    contribution = db.session.get(ResearchContribution, contribution_id)
    return contribution.to_dict() if contribution is not None else None


def _require_comment(comment: str | None, message: str) -> str:
    comment = (comment or "").strip()
    if not comment:
        raise WorkflowValidationError(message)
    return comment


def _run_transition(
    action: Action,
    contribution_id: int,
    actor: User,
    body: Callable[[ResearchContribution, list[PendingNotification]], _Outcome],
    expected_version: int | None = None,
) -> WorkflowResult:
    """Lock, check, mutate, audit and commit; then notify."""
    pending: list[PendingNotification] = []
    try:
        contribution = load_for_update(contribution_id, expected_version)
        ctx = build_context(contribution, actor)
        ok, message = can_perform(action, ctx)
        if not ok:
            if ctx.current_status in ALLOWED_FROM.get(action, ()):
                raise PermissionDenied(message)
            raise InvalidTransition(message)

        old_status = contribution.status
        # Body look-ups must not flush half-applied changes; commit is the only flush.
        with db.session.no_autoflush:
            outcome = body(contribution, pending)
            contribution.status = outcome.to_status
            history = append_status_history(
                contribution,
                old_status,
                outcome.to_status,
                actor.id,
                outcome.comment,
                {"action": action, **outcome.metadata},
            )
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        logger.warning("Concurrent update on contribution %s (%s)", contribution_id, action)
        conflict = ConcurrencyConflict(
            "The contribution was modified by another request. Reload and try again."
        )
        return WorkflowResult(
            ok=False,
            message=conflict.message,
            contribution=_snapshot(contribution_id),
            status_code=conflict.status_code,
        )
    except WorkflowError as e:
        db.session.rollback()
        return WorkflowResult(
            ok=False,
            new_status=None,
            message=e.message,
            contribution=_snapshot(contribution_id),
            status_code=e.status_code,
        )
    except Exception:
        db.session.rollback()
        logger.exception("Workflow action %s failed on contribution %s", action, contribution_id)
        raise

    logger.info(
        "Contribution %s: %s -> %s by user %s (%s)",
        contribution.id,
        old_status,
        outcome.to_status,
        actor.id,
        action,
    )
    notifications = dispatch(pending)
    records = {key: _serialize(value) for key, value in outcome.records.items()}
    records["status_history"] = history.to_dict()
    records["notifications"] = [
        n.to_dict() if hasattr(n, "to_dict") else n for n in notifications
    ]
    return WorkflowResult(
        ok=True,
        new_status=outcome.to_status,
        message=outcome.message,
        contribution=contribution.to_dict(),
        records=records,
    )


def _notify(pending, user_id, type_, title, message, contribution, **metadata):
    if not user_id:
        return
    pending.append(
        PendingNotification(
            user_id=user_id,
            type=type_,
            title=title,
            message=message,
            metadata={"contribution_id": contribution.id, **metadata},
        )
    )


def _label(contribution: ResearchContribution) -> str:
    return contribution.application_number or contribution.title


# =============================================================================
# ACTIONS
# =============================================================================


def submit(contribution_id: int, actor: User, expected_version: int | None = None) -> WorkflowResult:
    """Applicant submits a draft; students with a mentor go to the mentor first."""

    def body(c: ResearchContribution, pending) -> _Outcome:
        to_status = next_status("submit", build_context(c, actor))
        if to_status == "pending_mentor_approval":
            mentor = find_user_by_uid(c.mentor_uid)
            if mentor is None:
                raise WorkflowValidationError(f"Mentor with UID '{c.mentor_uid}' not found")
            if mentor.id == c.applicant_user_id:
                raise WorkflowValidationError("Applicant cannot be their own mentor")
            c.mentor_id = mentor.id

        if not c.application_number:
            c.application_number = generate_application_number(c.publication_type)
        c.submitted_at = datetime.utcnow()
        incentives.recalculate(c)

        if to_status == "pending_mentor_approval":
            _notify(
                pending,
                c.mentor_id,
                "research_mentor_review",
                "Research Contribution Awaiting Your Approval",
                f"A student has submitted research contribution {_label(c)} for your review",
                c,
            )
            message = "Submitted to mentor for approval"
        else:
            message = "Research contribution submitted successfully"
        return _Outcome(to_status, message, metadata={"application_number": c.application_number})

    return _run_transition("submit", contribution_id, actor, body, expected_version)


def mentor_approve(
    contribution_id: int, actor: User, remarks: str | None = None, expected_version: int | None = None
) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        c.mentor_remarks = (remarks or "").strip() or None
        c.mentor_approved_at = datetime.utcnow()
        _notify(
            pending,
            c.applicant_user_id,
            "research_mentor_approved",
            "Mentor Approved Your Research Contribution",
            f"Your mentor approved {_label(c)}. It has been forwarded for DRD review.",
            c,
        )
        return _Outcome("submitted", "Approved and forwarded for review", c.mentor_remarks)

    return _run_transition("mentor_approve", contribution_id, actor, body, expected_version)


def mentor_reject(
    contribution_id: int, actor: User, comments: str | None, expected_version: int | None = None
) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        text = _require_comment(comments, "Comments are required when requesting changes")
        c.mentor_remarks = text
        _notify(
            pending,
            c.applicant_user_id,
            "research_mentor_changes_required",
            "Mentor Requested Changes",
            f"Your mentor requested changes on {_label(c)}: {text}",
            c,
        )
        return _Outcome("changes_required", "Returned to the applicant for changes", text)

    return _run_transition("mentor_reject", contribution_id, actor, body, expected_version)


def start_review(contribution_id: int, actor: User, expected_version: int | None = None) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        c.current_reviewer_id = actor.id
        review = ContributionReview(
            contribution_id=c.id,
            reviewer_id=actor.id,
            reviewer_role="reviewer",
            decision="reviewing",
        )
        db.session.add(review)
        return _Outcome(
            "under_review", "Review started", records={"review": review}
        )

    return _run_transition("start_review", contribution_id, actor, body, expected_version)


def request_changes(
    contribution_id: int,
    actor: User,
    comments: str | None,
    suggestions: list[dict] | None = None,
    expected_version: int | None = None,
) -> WorkflowResult:
    """Return the contribution with comments and optional field suggestions."""

    def body(c: ResearchContribution, pending) -> _Outcome:
        text = _require_comment(comments, "Comments are required when requesting changes")
        items = list(suggestions or [])
        for item in items:
            name = (item.get("field_name") or "").strip()
            if name not in CONTRIBUTION_FIELDS:
                raise WorkflowValidationError(f"Field '{name}' cannot be suggested")
            coerce_field(name, item.get("suggested_value"))

        review = ContributionReview(
            contribution_id=c.id,
            reviewer_id=actor.id,
            reviewer_role="approver" if actor.can_approve else "reviewer",
            decision="changes_required",
            comments=text,
            suggestions_count=len(items),
            pending_suggestions_count=len(items),
        )
        db.session.add(review)

        created = []
        for item in items:
            name = item["field_name"].strip()
            original = getattr(c, name)
            suggestion = EditSuggestion(
                review=review,
                contribution_id=c.id,
                reviewer_id=actor.id,
                field_name=name,
                original_value=None if original is None else _as_text(original),
                suggested_value=_as_text(item.get("suggested_value")),
                note=item.get("note"),
                status="pending",
            )
            db.session.add(suggestion)
            created.append(suggestion)

        _notify(
            pending,
            c.applicant_user_id,
            "research_changes_required",
            "Changes Required",
            f"Reviewer requested changes on {_label(c)}"
            + (f" with {len(items)} suggestion(s)" if items else ""),
            c,
            suggestions_count=len(items),
        )
        return _Outcome(
            "changes_required",
            "Changes requested",
            text,
            metadata={"suggestions_count": len(items)},
            records={
                "review": review,
                "suggestions": created,
            },
        )

    return _run_transition("request_changes", contribution_id, actor, body, expected_version)


def recommend(
    contribution_id: int, actor: User, comments: str | None = None, expected_version: int | None = None
) -> WorkflowResult:
    """Reviewer without approve authority forwards to approvers; status is kept."""

    def body(c: ResearchContribution, pending) -> _Outcome:
        text = (comments or "").strip() or None
        review = ContributionReview(
            contribution_id=c.id,
            reviewer_id=actor.id,
            reviewer_role="reviewer",
            decision="recommended",
            comments=text,
        )
        db.session.add(review)
        for approver_id in approver_ids():
            _notify(
                pending,
                approver_id,
                "research_recommended",
                "Research Contribution Recommended",
                f"{_label(c)} has been recommended for approval",
                c,
            )
        return _Outcome(
            c.status,
            "Recommended for approval",
            text or "Recommended for approval",
            metadata={"recommendation": "recommended_for_approval"},
            records={"review": review},
        )

    return _run_transition("recommend", contribution_id, actor, body, expected_version)


def approve(
    contribution_id: int, actor: User, comments: str | None = None, expected_version: int | None = None
) -> WorkflowResult:
    """Recompute every share and credit them."""

    def body(c: ResearchContribution, pending) -> _Outcome:
        calc = incentives.recalculate(c, credit=True)
        now = datetime.utcnow()
        c.approved_at = now
        c.credited_at = now
        text = (comments or "").strip() or None

        review = ContributionReview(
            contribution_id=c.id,
            reviewer_id=actor.id,
            reviewer_role="approver",
            decision="approved",
            comments=text,
        )
        db.session.add(review)

        for author in c.authors:
            if not author.is_internal or not author.user_id:
                continue
            _notify(
                pending,
                author.user_id,
                "research_incentive_credited",
                "Research Incentive Credited",
                f"You have been credited {author.incentive_share or 0} and "
                f"{author.points_share or 0} points for {_label(c)}",
                c,
                incentive_amount=author.incentive_share or 0,
                points=author.points_share or 0,
            )
        _notify(
            pending,
            c.applicant_user_id,
            "research_approved",
            "Research Contribution Approved",
            f"{_label(c)} has been approved. Total incentive: {calc.total_amount}, "
            f"total points: {calc.total_points}",
            c,
            incentive_amount=c.calculated_incentive_amount or 0,
            points=c.calculated_points or 0,
            total_incentive_amount=calc.total_amount,
            total_points=calc.total_points,
        )
        for reviewer_id in _recommender_ids(c.id, exclude=actor.id):
            _notify(
                pending,
                reviewer_id,
                "research_recommendation_approved",
                "Recommended Contribution Approved",
                f"{_label(c)} which you recommended has been approved",
                c,
            )

        return _Outcome(
            "approved",
            "Research contribution approved and incentives credited",
            text,
            metadata={
                "incentive_amount": calc.total_amount,
                "points_awarded": calc.total_points,
                "calculation_failures": calc.failures,
            },
            records={"review": review, "calculation": calc},
        )

    return _run_transition("approve", contribution_id, actor, body, expected_version)


def reject(
    contribution_id: int, actor: User, reason: str | None, expected_version: int | None = None
) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        text = _require_comment(reason, "A reason is required to reject a contribution")
        review = ContributionReview(
            contribution_id=c.id,
            reviewer_id=actor.id,
            reviewer_role="approver" if actor.can_approve else "reviewer",
            decision="rejected",
            comments=text,
        )
        db.session.add(review)
        _notify(
            pending,
            c.applicant_user_id,
            "research_rejected",
            "Research Contribution Rejected",
            f"{_label(c)} has been rejected: {text}",
            c,
        )
        return _Outcome("rejected", "Research contribution rejected", text, records={"review": review})

    return _run_transition("reject", contribution_id, actor, body, expected_version)


def resubmit(
    contribution_id: int, actor: User, comments: str | None = None, expected_version: int | None = None
) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        c.revision_count = (c.revision_count or 0) + 1
        if c.current_reviewer_id:
            _notify(
                pending,
                c.current_reviewer_id,
                "research_resubmitted",
                "Research Contribution Resubmitted",
                f"{_label(c)} has been resubmitted (revision {c.revision_count})",
                c,
            )
        return _Outcome(
            "resubmitted",
            "Research contribution resubmitted",
            (comments or "").strip() or None,
            metadata={"revision_count": c.revision_count},
        )

    return _run_transition("resubmit", contribution_id, actor, body, expected_version)


def complete(
    contribution_id: int, actor: User, comments: str | None = None, expected_version: int | None = None
) -> WorkflowResult:
    def body(c: ResearchContribution, pending) -> _Outcome:
        c.completed_at = datetime.utcnow()
        return _Outcome("completed", "Research contribution marked as completed", (comments or "").strip() or None)

    return _run_transition("complete", contribution_id, actor, body, expected_version)


ACTIONS: dict[str, Callable[..., WorkflowResult]] = {
    "submit": submit,
    "mentor_approve": mentor_approve,
    "mentor_reject": mentor_reject,
    "start_review": start_review,
    "request_changes": request_changes,
    "recommend": recommend,
    "approve": approve,
    "reject": reject,
    "resubmit": resubmit,
    "complete": complete,
}


def _recommender_ids(contribution_id: int, exclude: int | None = None) -> list[int]:
    rows = (
        db.session.query(ContributionReview.reviewer_id)
        .filter_by(contribution_id=contribution_id, decision="recommended")
        .distinct()
        .all()
    )
    return [r[0] for r in rows if r[0] != exclude]


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "yes" if value else "no"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


# =============================================================================
# EDIT SUGGESTIONS
# =============================================================================


def respond_to_suggestion(
    suggestion_id: int, actor: User, accept: bool, response: str | None = None
) -> WorkflowResult:
    """Applicant accepts or rejects one reviewer suggestion."""
    try:
        suggestion = db.session.get(EditSuggestion, suggestion_id)
        if suggestion is None:
            raise ContributionNotFound("Suggestion not found")
        contribution = load_for_update(suggestion.contribution_id)
        if contribution.applicant_user_id != actor.id:
            raise PermissionDenied("Only the applicant can respond to suggestions")
        if suggestion.status != "pending":
            raise InvalidTransition("Suggestion has already been answered")

        recalculated = False
        if accept and not contribution.is_editable:
            raise InvalidTransition(
                f"Suggestions cannot be applied in status '{contribution.status}'"
            )
        with db.session.no_autoflush:
            if accept:
                value = coerce_field(suggestion.field_name, suggestion.suggested_value)
                setattr(contribution, suggestion.field_name, value)
                if suggestion.field_name in POLICY_RELEVANT_FIELDS:
                    incentives.recalculate(contribution)
                    recalculated = True

            suggestion.status = "accepted" if accept else "rejected"
            suggestion.applicant_response = (response or "").strip() or None
            suggestion.responded_at = datetime.utcnow()

            review = suggestion.review
            if review is not None and (review.pending_suggestions_count or 0) > 0:
                review.pending_suggestions_count = review.pending_suggestions_count - 1

        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        return WorkflowResult(
            ok=False,
            message="The contribution was modified by another request. Reload and try again.",
            status_code=ConcurrencyConflict.status_code,
        )
    except WorkflowError as e:
        db.session.rollback()
        return WorkflowResult(ok=False, message=e.message, status_code=e.status_code)
    except Exception:
        db.session.rollback()
        logger.exception("Responding to suggestion %s failed", suggestion_id)
        raise

    return WorkflowResult(
        ok=True,
        new_status=contribution.status,
        message="Suggestion accepted" if accept else "Suggestion rejected",
        contribution=contribution.to_dict(),
        records={
            "suggestion": suggestion.to_dict(),
            "review": review.to_dict() if review is not None else None,
            "recalculated": recalculated,
        },
    )


# =============================================================================
# QUEUES / STATISTICS
# =============================================================================

REVIEW_QUEUE_STATUSES = ("submitted", "under_review", "resubmitted", "changes_required")


def pending_reviews(
    actor: User, status: str | None = None, publication_type: str | None = None, school_id: int | None = None
) -> list[ResearchContribution]:
    """Review queue; approvers without review permission see recommended items only."""
    if not (actor.can_review or actor.can_approve):
        raise PermissionDenied("Research review or approve permission required")

    query = ResearchContribution.query
    if actor.can_approve and not actor.can_review:
        recommended = (
            db.session.query(ContributionReview.contribution_id)
            .filter_by(decision="recommended")
            .distinct()
        )
        query = query.filter(
            ResearchContribution.id.in_(recommended),
            ResearchContribution.status.in_(("under_review", "submitted", "resubmitted")),
        )
    else:
        statuses = (status,) if status in REVIEW_QUEUE_STATUSES else REVIEW_QUEUE_STATUSES
        query = query.filter(ResearchContribution.status.in_(statuses))

    if publication_type:
        query = query.filter_by(publication_type=publication_type)
    if school_id:
        query = query.filter_by(school_id=school_id)
    return query.order_by(ResearchContribution.submitted_at).all()


def review_statistics(
    school_id: int | None = None,
    publication_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> dict:
    filters = []
    if school_id:
        filters.append(ResearchContribution.school_id == school_id)
    if publication_type:
        filters.append(ResearchContribution.publication_type == publication_type)
    if start:
        filters.append(ResearchContribution.created_at >= start)
    if end:
        filters.append(ResearchContribution.created_at <= end)

    def grouped(column) -> dict:
        rows = (
            db.session.query(column, func.count(ResearchContribution.id))
            .filter(*filters)
            .group_by(column)
            .all()
        )
        # JSON object keys; contributions without a school group under "none"
        return {("none" if key is None else str(key)): count for key, count in rows}

    count, amount, points = (
        db.session.query(
            func.count(ResearchContribution.id),
            func.coalesce(func.sum(ResearchContribution.incentive_amount), 0),
            func.coalesce(func.sum(ResearchContribution.points_awarded), 0),
        )
        .filter(*filters)
        .filter(ResearchContribution.status.in_(("approved", "completed")))
        .one()
    )
    return {
        "by_status": grouped(ResearchContribution.status),
        "by_publication_type": grouped(ResearchContribution.publication_type),
        "by_school": grouped(ResearchContribution.school_id),
        "totals": {
            "approved": int(count or 0),
            "total_incentives": int(amount or 0),
            "total_points": int(points or 0),
        },
    }


def status_history(contribution_id: int) -> list[dict]:
    rows = (
        StatusHistory.query.filter_by(contribution_id=contribution_id)
        .order_by(StatusHistory.id)
        .all()
    )
    return [r.to_dict() for r in rows]
