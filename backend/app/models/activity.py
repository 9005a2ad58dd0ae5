from __future__ import annotations

from enum import Enum

from ..extensions import db
from app.time_utils import to_utc_z


class ActivityType(str, Enum):
    """Known activity kinds. Anything else is rejected at the boundary."""
    EMAIL = "Email"
    EMAIL_RECEIPT = "EmailReceipt"
    WHATSAPP = "WhatsApp"
    ENQUIRY_CREATED = "EnquiryCreated"
    ENQUIRY_UPDATED = "EnquiryUpdated"
    ENQUIRY_DELETED = "EnquiryDeleted"
    ENQUIRY_CONVERTED = "EnquiryConverted"
    MEMBERSHIP_CREATED = "MembershipCreated"
    MEMBERSHIP_UPGRADED = "MembershipUpgraded"
    MEMBERSHIP_ACTIVATED = "MembershipActivated"
    MEMBERSHIP_DEACTIVATED = "MembershipDeactivated"
    MEMBERSHIP_DELETED = "MembershipDeleted"
    PAYMENT_RECEIVED = "PaymentReceived"
    RECEIPT_VIEWED = "ReceiptViewed"
    RECEIPT_DOWNLOADED = "ReceiptDownloaded"
    RECEIPT_DELETED = "ReceiptDeleted"
    PLAN_CREATED = "PlanCreated"
    PLAN_UPDATED = "PlanUpdated"
    PLAN_DEACTIVATED = "PlanDeactivated"
    PLAN_ACTIVATED = "PlanActivated"
    NOTIFICATION_DROPPED = "NotificationDropped"
    MANUAL = "Manual"


class EntityType(str, Enum):
    ENQUIRY = "Enquiry"
    MEMBER = "Member"
    MEMBERSHIP_PLAN = "MembershipPlan"
    RECEIPT = "Receipt"
    USER = "User"
    SYSTEM = "System"


class Activity(db.Model):
    """
    System-wide audit and notification feed.

    IMMUTABLE: Never updated. Rows leave only through the age-based purge
    or an explicit admin delete.
    """
    __tablename__ = "activities"
    __table_args__ = (
        db.Index("ix_activities_type_created", "activity_type", "created_at"),
        db.Index("ix_activities_entity", "entity_type", "entity_id"),
        db.Index("ix_activities_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    activity_type = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False)

    entity_type = db.Column(db.String(32), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)

    recipient_name = db.Column(db.String(200), nullable=True)
    recipient_contact = db.Column(db.String(255), nullable=True)  # Email or phone
    message_content = db.Column(db.Text, nullable=True)

    is_successful = db.Column(db.Boolean, nullable=False, default=True, index=True)
    error_message = db.Column(db.Text, nullable=True)

    performed_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "activity_type": self.activity_type,
            "description": self.description,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "recipient_name": self.recipient_name,
            "recipient_contact": self.recipient_contact,
            "message_content": self.message_content,
            "is_successful": self.is_successful,
            "error_message": self.error_message,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }
