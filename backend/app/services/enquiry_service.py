# Overview: Service-layer operations for enquiries (prospective members) and their append-only history.

"""
Enquiry Service

WHY: An enquiry is the intake record a membership is created from. Email and
phone identify a person, so both are unique across all enquiries.

HISTORY: every create/update/delete and every conversion appends a snapshot
row to enquiry_history. History rows are never modified.
"""
from __future__ import annotations

from sqlalchemy import or_, func

from ..extensions import db
from ..models import Enquiry, EnquiryHistory, MembersMembership, ActivityType, EntityType
from ..validation import (
    ValidationError,
    ConflictError,
    NotFoundError,
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_enquiry,
)
from app.time_utils import utcnow
from .activity_service import record_activity


ENQUIRY_MUTABLE_FIELDS = {
    "first_name",
    "last_name",
    "email",
    "phone",
    "is_whatsapp_number",
    "address",
    "city",
    "gender",
    "date_of_birth",
    "occupation",
}

ENQUIRY_POLICY = ModelValidationPolicy(
    writable_fields=ENQUIRY_MUTABLE_FIELDS,
    required_on_create={"first_name", "last_name", "email", "phone"},
)

CONVERTED_DELETE_MESSAGE = "Cannot delete enquiry that has been converted to member. Delete the membership first."


def append_history(
    enquiry: Enquiry,
    action: str,
    *,
    modified_by: str | None,
    membership_taken_at=None,
) -> EnquiryHistory:
    entry = EnquiryHistory(
        enquiry_id=enquiry.id,
        action_taken=action,
        membership_taken_at=membership_taken_at,
        modified_by=modified_by,
        modified_at=utcnow(),
        **enquiry.snapshot(),
    )
    db.session.add(entry)
    return entry


def get_enquiry(enquiry_id: int) -> Enquiry:
    enquiry = db.session.get(Enquiry, enquiry_id)
    if not enquiry:
        raise NotFoundError(f"Enquiry {enquiry_id} not found")
    return enquiry


def list_enquiries(*, converted: bool | None = None) -> list[Enquiry]:
    """All enquiries, or only open (converted=False) / closed (converted=True)."""
    q = db.session.query(Enquiry)
    if converted is not None:
        q = q.filter(Enquiry.is_converted.is_(converted))
    return q.order_by(Enquiry.created_at.desc(), Enquiry.id.desc()).all()


def search_enquiries(term: str | None) -> list[Enquiry]:
    term = (term or "").strip()
    if not term:
        raise ValidationError("Search term 'q' is required")
    like = f"%{term.lower()}%"
    full_name = func.lower(Enquiry.first_name + " " + Enquiry.last_name)
    return (
        db.session.query(Enquiry)
        .filter(
            or_(
                full_name.like(like),
                func.lower(Enquiry.email).like(like),
                Enquiry.phone.like(f"%{term}%"),
            )
        )
        .order_by(Enquiry.first_name.asc(), Enquiry.last_name.asc(), Enquiry.id.asc())
        .all()
    )


def _check_unique(patch: dict, exclude_id: int | None = None) -> None:
    if patch.get("email"):
        q = db.session.query(Enquiry.id).filter(func.lower(Enquiry.email) == patch["email"].lower())
        if exclude_id is not None:
            q = q.filter(Enquiry.id != exclude_id)
        if q.first():
            raise ConflictError(f"Email '{patch['email']}' is already registered")

    if patch.get("phone"):
        q = db.session.query(Enquiry.id).filter(Enquiry.phone == patch["phone"])
        if exclude_id is not None:
            q = q.filter(Enquiry.id != exclude_id)
        if q.first():
            raise ConflictError(f"Phone '{patch['phone']}' is already registered")


def create_enquiry(payload: dict, *, created_by: str | None) -> Enquiry:
    patch = validate_payload(model=Enquiry, payload=payload, policy=ENQUIRY_POLICY, partial=False)
    enforce_rules_enquiry(patch)
    _check_unique(patch)

    enquiry = Enquiry(**patch)
    enquiry.is_converted = False
    enquiry.created_by = created_by
    enquiry.created_at = utcnow()
    db.session.add(enquiry)
    db.session.flush()

    append_history(enquiry, EnquiryHistory.ACTION_CREATED, modified_by=created_by)
    record_activity(
        ActivityType.ENQUIRY_CREATED,
        f"Enquiry created for {enquiry.full_name}",
        entity_type=EntityType.ENQUIRY,
        entity_id=enquiry.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.email,
        performed_by=created_by,
    )
    db.session.commit()
    return enquiry


def update_enquiry(enquiry_id: int, payload: dict, *, updated_by: str | None) -> Enquiry:
    enquiry = get_enquiry(enquiry_id)
    patch = validate_payload(model=Enquiry, payload=payload, policy=ENQUIRY_POLICY, partial=True)
    enforce_rules_enquiry(patch)
    _check_unique(patch, exclude_id=enquiry.id)

    for k, v in patch.items():
        setattr(enquiry, k, v)
    enquiry.updated_by = updated_by
    enquiry.updated_at = utcnow()

    append_history(enquiry, EnquiryHistory.ACTION_UPDATED, modified_by=updated_by)
    record_activity(
        ActivityType.ENQUIRY_UPDATED,
        f"Enquiry updated for {enquiry.full_name}",
        entity_type=EntityType.ENQUIRY,
        entity_id=enquiry.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.email,
        message_content=f"Fields: {', '.join(sorted(patch))}" if patch else None,
        performed_by=updated_by,
    )
    db.session.commit()
    return enquiry


def delete_enquiry(enquiry_id: int, *, deleted_by: str | None) -> None:
    enquiry = get_enquiry(enquiry_id)
    has_membership = db.session.query(MembersMembership.id).filter_by(enquiry_id=enquiry.id).first()
    if has_membership:
        raise ConflictError(CONVERTED_DELETE_MESSAGE)

    append_history(enquiry, EnquiryHistory.ACTION_DELETED, modified_by=deleted_by)
    record_activity(
        ActivityType.ENQUIRY_DELETED,
        f"Enquiry deleted for {enquiry.full_name}",
        entity_type=EntityType.ENQUIRY,
        entity_id=enquiry.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.email,
        performed_by=deleted_by,
    )
    db.session.delete(enquiry)
    db.session.commit()


def enquiry_history(enquiry_id: int) -> list[EnquiryHistory]:
    """
    History survives deletion, so a missing enquiry only 404s when it also
    has no history at all.
    """
    entries = (
        db.session.query(EnquiryHistory)
        .filter_by(enquiry_id=enquiry_id)
        .order_by(EnquiryHistory.modified_at.desc(), EnquiryHistory.id.desc())
        .all()
    )
    if not entries and not db.session.get(Enquiry, enquiry_id):
        raise NotFoundError(f"Enquiry {enquiry_id} not found")
    return entries
