from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Enquiry(db.Model):
    """
    A prospective member's intake record.

    WHY: Email and phone are globally unique so one person cannot be
    enquired (and later converted) twice under different records.

    is_converted is one-way from the enquiry's point of view; it is only
    cleared again when the membership it produced is deleted.
    """
    __tablename__ = "enquiries"
    __table_args__ = (
        db.Index("ix_enquiries_converted", "is_converted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(32), nullable=False, unique=True)
    is_whatsapp_number = db.Column(db.Boolean, nullable=False, default=False)

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    gender = db.Column(db.String(16), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    occupation = db.Column(db.String(100), nullable=True)

    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def snapshot(self) -> dict:
        """Contact/demographic fields copied into history rows."""
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "is_whatsapp_number": self.is_whatsapp_number,
            "address": self.address,
            "city": self.city,
            "gender": self.gender,
            "date_of_birth": self.date_of_birth,
            "occupation": self.occupation,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "is_whatsapp_number": self.is_whatsapp_number,
            "address": self.address,
            "city": self.city,
            "gender": self.gender,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "occupation": self.occupation,
            "is_converted": self.is_converted,
            "converted_at": to_utc_z(self.converted_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class EnquiryHistory(db.Model):
    """
    Append-only history of enquiry events.

    WHY: enquiry_id is deliberately not a foreign key. The DELETED entry
    must outlive the enquiry row it describes.
    """
    __tablename__ = "enquiry_history"
    __table_args__ = (
        db.Index("ix_enquiry_history_enquiry_modified", "enquiry_id", "modified_at"),
        {"sqlite_autoincrement": True},
    )

    ACTION_CREATED = "CREATED"
    ACTION_UPDATED = "UPDATED"
    ACTION_DELETED = "DELETED"
    ACTION_MEMBERSHIP_TAKEN = "MEMBERSHIP_TAKEN"

    id = db.Column(db.Integer, primary_key=True)
    enquiry_id = db.Column(db.Integer, nullable=False, index=True)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    is_whatsapp_number = db.Column(db.Boolean, nullable=False, default=False)
    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    gender = db.Column(db.String(16), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    occupation = db.Column(db.String(100), nullable=True)

    action_taken = db.Column(db.String(32), nullable=False)
    membership_taken_at = db.Column(db.DateTime(timezone=True), nullable=True)

    modified_by = db.Column(db.String(255), nullable=True)
    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def notes(self) -> str | None:
        if self.action_taken == self.ACTION_MEMBERSHIP_TAKEN and self.membership_taken_at:
            return f"Converted to membership on {self.membership_taken_at:%Y-%m-%d}"
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "enquiry_id": self.enquiry_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "is_whatsapp_number": self.is_whatsapp_number,
            "address": self.address,
            "city": self.city,
            "gender": self.gender,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "occupation": self.occupation,
            "action_taken": self.action_taken,
            "membership_taken_at": to_utc_z(self.membership_taken_at),
            "notes": self.notes,
            "modified_by": self.modified_by,
            "modified_at": to_utc_z(self.modified_at),
        }
