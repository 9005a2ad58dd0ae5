# Overview: Service-layer operations for membership plans (pricing tiers).

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import MembershipPlan, MembersMembership, ActivityType, EntityType
from ..validation import (
    ValidationError,
    NotFoundError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_plan,
    PLAN_TYPES,
)
from app.time_utils import utcnow
from .activity_service import record_activity
from .receipt_service import format_money


PLAN_MUTABLE_FIELDS = {"plan_name", "plan_type", "duration_in_months", "price_cents", "description"}

PLAN_POLICY = ModelValidationPolicy(
    writable_fields=PLAN_MUTABLE_FIELDS,
    required_on_create={"plan_name", "duration_in_months", "price_cents"},
)


def get_plan(plan_id: int) -> MembershipPlan:
    plan = db.session.get(MembershipPlan, plan_id)
    if not plan:
        raise NotFoundError(f"Membership plan {plan_id} not found")
    return plan


def list_plans(*, include_inactive: bool = False) -> list[MembershipPlan]:
    """Active plans by name; include_inactive adds the soft-deleted ones."""
    q = db.session.query(MembershipPlan)
    if not include_inactive:
        q = q.filter(MembershipPlan.is_active.is_(True))
    return q.order_by(MembershipPlan.plan_name.asc(), MembershipPlan.id.asc()).all()


def active_plans_by_price() -> list[MembershipPlan]:
    return (
        db.session.query(MembershipPlan)
        .filter(MembershipPlan.is_active.is_(True))
        .order_by(MembershipPlan.price_cents.asc(), MembershipPlan.id.asc())
        .all()
    )


def plans_by_type(plan_type: str) -> list[MembershipPlan]:
    plan_type = (plan_type or "").strip()
    if not plan_type:
        raise ValidationError("plan_type is required")
    return (
        db.session.query(MembershipPlan)
        .filter(
            func.lower(MembershipPlan.plan_type) == plan_type.lower(),
            MembershipPlan.is_active.is_(True),
        )
        .order_by(MembershipPlan.price_cents.asc(), MembershipPlan.id.asc())
        .all()
    )


def _normalize_plan_type(patch: dict) -> None:
    # Accept "monthly" for "Monthly"; unknown values fall through to the rule check
    value = patch.get("plan_type")
    if isinstance(value, str):
        for known in PLAN_TYPES:
            if value.lower() == known.lower():
                patch["plan_type"] = known
                break


def create_plan(payload: dict, *, created_by: str | None) -> MembershipPlan:
    patch = validate_payload(model=MembershipPlan, payload=payload, policy=PLAN_POLICY, partial=False)
    _normalize_plan_type(patch)
    enforce_rules_plan(patch)

    plan = MembershipPlan(**patch)
    plan.is_active = True
    plan.created_by = created_by
    plan.created_at = utcnow()
    db.session.add(plan)
    db.session.flush()

    record_activity(
        ActivityType.PLAN_CREATED,
        f"Membership plan '{plan.plan_name}' created",
        entity_type=EntityType.MEMBERSHIP_PLAN,
        entity_id=plan.id,
        message_content=f"Duration: {plan.duration_in_months} months, Price: {format_money(plan.price_cents)}",
        performed_by=created_by,
    )
    db.session.commit()
    return plan


def update_plan(plan_id: int, payload: dict, *, updated_by: str | None) -> MembershipPlan:
    """
    Running memberships keep their snapshot of duration and price; only
    new terms (conversion, renewal, upgrade) see the edited values.
    """
    plan = get_plan(plan_id)
    patch = validate_payload(model=MembershipPlan, payload=payload, policy=PLAN_POLICY, partial=True)
    _normalize_plan_type(patch)
    enforce_rules_plan(patch)

    for k, v in patch.items():
        setattr(plan, k, v)
    plan.updated_by = updated_by
    plan.updated_at = utcnow()

    record_activity(
        ActivityType.PLAN_UPDATED,
        f"Membership plan '{plan.plan_name}' updated",
        entity_type=EntityType.MEMBERSHIP_PLAN,
        entity_id=plan.id,
        message_content=f"Fields: {', '.join(sorted(patch))}" if patch else None,
        performed_by=updated_by,
    )
    db.session.commit()
    return plan


def _set_active(plan_id: int, active: bool, actor: str | None) -> MembershipPlan:
    plan = get_plan(plan_id)
    plan.is_active = active
    plan.updated_by = actor
    plan.updated_at = utcnow()

    kind = ActivityType.PLAN_ACTIVATED if active else ActivityType.PLAN_DEACTIVATED
    verb = "activated" if active else "deactivated"
    record_activity(
        kind,
        f"Membership plan '{plan.plan_name}' {verb}",
        entity_type=EntityType.MEMBERSHIP_PLAN,
        entity_id=plan.id,
        performed_by=actor,
    )
    db.session.commit()
    return plan


def deactivate_plan(plan_id: int, *, updated_by: str | None) -> MembershipPlan:
    """Soft delete. Existing memberships keep pointing at the plan."""
    return _set_active(plan_id, False, updated_by)


def activate_plan(plan_id: int, *, updated_by: str | None) -> MembershipPlan:
    return _set_active(plan_id, True, updated_by)


def plan_members(plan_id: int) -> list[MembersMembership]:
    get_plan(plan_id)
    return (
        db.session.query(MembersMembership)
        .filter_by(membership_plan_id=plan_id)
        .order_by(MembersMembership.created_at.desc(), MembersMembership.id.desc())
        .all()
    )


def get_stats() -> dict:
    now = utcnow()
    plans = db.session.query(MembershipPlan).all()
    memberships = db.session.query(MembersMembership).all()
    return {
        "total_plans": len(plans),
        "active_plans": sum(1 for p in plans if p.is_active),
        "total_members": len(memberships),
        "active_members": sum(1 for m in memberships if m.is_active_at(now)),
        "total_revenue_cents": sum(m.paid_amount_cents for m in memberships),
    }
