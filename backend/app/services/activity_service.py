# Overview: Service-layer operations for the activity feed; append, query, stats and retention purge.

"""
Activity / Audit Log Service

WHY: Every state-changing action and every outbound notification leaves a
row in the activity feed, which drives the dashboard and the audit trail.

CONTRACT:
- record_activity() never raises. A failure to write the row is logged and
  rolled back to a savepoint, so the business operation that triggered it
  still commits.
- activity_type and entity_type are closed enums (ActivityType, EntityType).
  Unknown values are rejected by parse_activity_type() at the HTTP boundary.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Activity, ActivityType, EntityType
from ..validation import ValidationError, NotFoundError
from app.time_utils import utcnow, start_of_day


DEFAULT_LIST_LIMIT = 100
DEFAULT_RECENT_LIMIT = 50
MAX_LIMIT = 1000

_DESCRIPTION_MAX = 500
_TYPE_MAX = 100


def parse_activity_type(value) -> ActivityType:
    if isinstance(value, ActivityType):
        return value
    try:
        return ActivityType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ActivityType)
        raise ValidationError(f"Unknown activity_type '{value}'. Must be one of: {allowed}")


def parse_entity_type(value) -> EntityType | None:
    if value is None or value == "":
        return None
    if isinstance(value, EntityType):
        return value
    try:
        return EntityType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in EntityType)
        raise ValidationError(f"Unknown entity_type '{value}'. Must be one of: {allowed}")


def _clip(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value if len(value) <= limit else value[: limit - 3] + "..."


def record_activity(
    activity_type: ActivityType | str,
    description: str,
    *,
    entity_type: EntityType | str | None = None,
    entity_id: int | None = None,
    recipient_name: str | None = None,
    recipient_contact: str | None = None,
    message_content: str | None = None,
    is_successful: bool = True,
    error_message: str | None = None,
    performed_by: str | None = None,
    commit: bool = False,
) -> Activity | None:
    """
    Append one activity row.

    commit=False: the row joins the caller's transaction (inside a savepoint).
    commit=True: standalone write, used by notifications and read-only views.

    Returns the Activity, or None when it could not be written.
    """
    try:
        kind = parse_activity_type(activity_type)
        etype = parse_entity_type(entity_type)

        nested = db.session.begin_nested()
        try:
            activity = Activity(
                activity_type=_clip(kind.value, _TYPE_MAX),
                description=_clip(description or kind.value, _DESCRIPTION_MAX),
                entity_type=etype.value if etype else None,
                entity_id=entity_id,
                recipient_name=_clip(recipient_name, 200),
                recipient_contact=_clip(recipient_contact, 255),
                message_content=message_content,
                is_successful=is_successful,
                error_message=error_message,
                performed_by=_clip(performed_by, 255),
                created_at=utcnow(),
            )
            db.session.add(activity)
            nested.commit()
        except Exception:
            nested.rollback()
            raise

        if commit:
            db.session.commit()
        return activity
    except Exception:
        current_app.logger.exception("Failed to record activity %s", activity_type)
        if commit:
            db.session.rollback()
        return None


def create_manual_activity(payload: dict, performed_by: str) -> Activity:
    """POST /api/activity. Unlike record_activity, input problems raise."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    kind = parse_activity_type(payload.get("activity_type") or ActivityType.MANUAL.value)
    description = (payload.get("description") or "").strip()
    if not description:
        raise ValidationError("description is required")
    if len(description) > _DESCRIPTION_MAX:
        raise ValidationError(f"description exceeds max length {_DESCRIPTION_MAX}")

    entity_type = parse_entity_type(payload.get("entity_type"))
    entity_id = payload.get("entity_id")
    if entity_id is not None and (not isinstance(entity_id, int) or isinstance(entity_id, bool)):
        raise ValidationError("entity_id must be an integer")

    activity = Activity(
        activity_type=kind.value,
        description=description,
        entity_type=entity_type.value if entity_type else None,
        entity_id=entity_id,
        recipient_name=payload.get("recipient_name"),
        recipient_contact=payload.get("recipient_contact"),
        message_content=payload.get("message_content"),
        is_successful=bool(payload.get("is_successful", True)),
        error_message=payload.get("error_message"),
        performed_by=performed_by,
        created_at=utcnow(),
    )
    db.session.add(activity)
    db.session.commit()
    return activity


def _clamp_limit(limit, default: int) -> int:
    if limit is None:
        return default
    try:
        value = int(limit)
    except (TypeError, ValueError):
        raise ValidationError("limit must be an integer")
    if value <= 0:
        raise ValidationError("limit must be > 0")
    return min(value, MAX_LIMIT)


def list_activities(
    *,
    limit=None,
    activity_type: str | None = None,
    entity_type: str | None = None,
) -> list[Activity]:
    query = db.session.query(Activity)
    if activity_type:
        query = query.filter(Activity.activity_type == parse_activity_type(activity_type).value)
    if entity_type:
        query = query.filter(Activity.entity_type == parse_entity_type(entity_type).value)
    return (
        query.order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(_clamp_limit(limit, DEFAULT_LIST_LIMIT))
        .all()
    )


def recent_activities(limit=None) -> list[Activity]:
    return (
        db.session.query(Activity)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .limit(_clamp_limit(limit, DEFAULT_RECENT_LIMIT))
        .all()
    )


def activities_for_entity(entity_type: str, entity_id: int) -> list[Activity]:
    etype = parse_entity_type(entity_type)
    return (
        db.session.query(Activity)
        .filter(Activity.entity_type == etype.value, Activity.entity_id == entity_id)
        .order_by(Activity.created_at.desc(), Activity.id.desc())
        .all()
    )


def get_stats() -> dict:
    """Aggregate counts for the dashboard."""
    now = utcnow()
    today = start_of_day(now)
    week_start = today - timedelta(days=7)
    month_start = today - timedelta(days=30)

    def _count(*criteria) -> int:
        return db.session.query(func.count(Activity.id)).filter(*criteria).scalar() or 0

    email_types = (ActivityType.EMAIL.value, ActivityType.EMAIL_RECEIPT.value)

    by_type_rows = (
        db.session.query(Activity.activity_type, func.count(Activity.id))
        .group_by(Activity.activity_type)
        .order_by(func.count(Activity.id).desc())
        .all()
    )

    return {
        "total": _count(),
        "today": _count(Activity.created_at >= today),
        "this_week": _count(Activity.created_at >= week_start),
        "this_month": _count(Activity.created_at >= month_start),
        "emails_sent": _count(Activity.activity_type.in_(email_types), Activity.is_successful.is_(True)),
        "whatsapp_sent": _count(
            Activity.activity_type == ActivityType.WHATSAPP.value,
            Activity.is_successful.is_(True),
        ),
        "failed": _count(Activity.is_successful.is_(False)),
        "by_type": [{"activity_type": t, "count": c} for t, c in by_type_rows],
    }


def delete_activity(activity_id: int) -> None:
    activity = db.session.get(Activity, activity_id)
    if not activity:
        raise NotFoundError(f"Activity {activity_id} not found")
    db.session.delete(activity)
    db.session.commit()


def purge_older_than(days: int = 90) -> int:
    """
    Retention purge. Deletes activities created more than `days` ago.

    Returns count deleted.
    """
    if days < 1:
        raise ValidationError("days_old must be >= 1")
    cutoff = utcnow() - timedelta(days=days)
    deleted = db.session.query(Activity).filter(Activity.created_at < cutoff).delete(
        synchronize_session=False
    )
    db.session.commit()
    return deleted
