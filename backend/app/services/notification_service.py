# Overview: Outbound member notifications (email, WhatsApp) and the bounded background dispatcher.

"""
Notification Service

WHY: Welcome messages and payment receipts are sent after the business
operation has committed. Delivery problems must never fail or roll back a
conversion or a payment; they only show up in the activity feed and on the
receipt's email_sent flag.

DESIGN:
- Transports: Postmark HTTP API for email, WhatsApp Cloud API for WhatsApp,
  both over httpx. WhatsApp is simulated unless WHATSAPP_ENABLED is set;
  EMAIL_TEST_MODE logs the message instead of sending it.
- Delivery retries transient transport failures with tenacity
  (at-least-once: a retried send may be delivered twice).
- NotificationDispatcher runs jobs on an APScheduler BackgroundScheduler with
  a fixed-size thread pool. At most NOTIFICATION_MAX_PENDING jobs wait at
  once; anything beyond that is dropped, counted and logged as a
  NotificationDropped activity.
- NOTIFICATIONS_SYNC runs jobs inline, right after the caller's commit.
"""

from __future__ import annotations

import threading
from html import escape

import httpx
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..extensions import db
from ..models import MembersMembership, PaymentReceipt, ActivityType, EntityType
from .activity_service import record_activity
from . import receipt_service


WELCOME_SUBJECT = "Welcome to Our Gym - Membership Confirmation"
RECEIPT_SUBJECT = "Payment Receipt - {receipt_number}"
SYSTEM_ACTOR = "System"


class NotificationError(Exception):
    """Raised when a message cannot be handed to its transport."""


# =============================================================================
# DISPATCHER
# =============================================================================

class NotificationDispatcher:
    """
    Bounded fire-and-forget job runner.

    submit() never blocks and never raises into the caller. Jobs receive
    primitive ids, not ORM objects, and run in their own app context.
    """

    def __init__(self):
        self._app = None
        self._scheduler: BackgroundScheduler | None = None
        self._lock = threading.Lock()
        self._pending = 0
        self._counters = {"queued": 0, "sent": 0, "failed": 0, "dropped": 0}

    def init_app(self, app) -> None:
        self._app = app
        app.extensions["notification_dispatcher"] = self

    def _get_scheduler(self) -> BackgroundScheduler:
        with self._lock:
            if self._scheduler is None:
                workers = self._app.config.get("NOTIFICATION_WORKERS", 4)
                self._scheduler = BackgroundScheduler(
                    executors={"default": ThreadPoolExecutor(max_workers=workers)},
                    job_defaults={"coalesce": False, "misfire_grace_time": None},
                    timezone="UTC",
                )
                self._scheduler.start()
            return self._scheduler

    def submit(self, func, *args, description: str = "", **kwargs) -> bool:
        """
        Queue func(*args, **kwargs). Returns False when the job was dropped.
        """
        app = self._app or current_app._get_current_object()

        if app.config.get("NOTIFICATIONS_SYNC"):
            with self._lock:
                self._counters["queued"] += 1
                self._pending += 1
            self._execute(func, args, kwargs)
            return True

        max_pending = app.config.get("NOTIFICATION_MAX_PENDING", 100)
        with self._lock:
            if self._pending >= max_pending:
                self._counters["dropped"] += 1
                dropped = True
            else:
                self._pending += 1
                self._counters["queued"] += 1
                dropped = False

        if dropped:
            current_app.logger.warning(
                "Notification queue full (%d pending), dropping job %s", max_pending, func.__name__
            )
            record_activity(
                ActivityType.NOTIFICATION_DROPPED,
                f"Notification dropped: {description or func.__name__}",
                entity_type=EntityType.SYSTEM,
                is_successful=False,
                error_message=f"Notification queue full ({max_pending} pending)",
                performed_by=SYSTEM_ACTOR,
                commit=True,
            )
            return False

        try:
            self._get_scheduler().add_job(self._run_in_context, args=[app, func, args, kwargs])
        except Exception:
            with self._lock:
                self._pending -= 1
                self._counters["queued"] -= 1
                self._counters["dropped"] += 1
            current_app.logger.exception("Failed to queue notification job %s", func.__name__)
            return False
        return True

    def _run_in_context(self, app, func, args, kwargs) -> None:
        with app.app_context():
            try:
                self._execute(func, args, kwargs)
            finally:
                db.session.remove()

    def _execute(self, func, args, kwargs) -> None:
        try:
            ok = func(*args, **kwargs)
            with self._lock:
                self._counters["sent" if ok is not False else "failed"] += 1
        except Exception:
            current_app.logger.exception("Notification job %s crashed", func.__name__)
            db.session.rollback()
            with self._lock:
                self._counters["failed"] += 1
        finally:
            with self._lock:
                self._pending -= 1

    def stats(self) -> dict:
        with self._lock:
            return {
                **self._counters,
                "pending": self._pending,
                "running": bool(self._scheduler and self._scheduler.running),
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._counters = {"queued": 0, "sent": 0, "failed": 0, "dropped": 0}

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=wait)


dispatcher = NotificationDispatcher()


# =============================================================================
# TRANSPORTS
# =============================================================================

def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


def _deliver(send, *args):
    """Call a transport with retry on transient failures."""
    cfg = current_app.config
    retryer = Retrying(
        stop=stop_after_attempt(max(1, cfg.get("NOTIFICATION_RETRY_ATTEMPTS", 3))),
        wait=wait_exponential(multiplier=cfg.get("NOTIFICATION_RETRY_WAIT_SECONDS", 0.5), max=8),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    return retryer(send, *args)


def send_email(to_email: str, subject: str, html_body: str, text_body: str | None = None) -> None:
    """Send one email through the Postmark HTTP API."""
    cfg = current_app.config

    if cfg.get("EMAIL_TEST_MODE"):
        current_app.logger.info("[EMAIL TEST MODE] To: %s Subject: %s", to_email, subject)
        return

    token = cfg.get("POSTMARK_SERVER_TOKEN")
    if not token:
        raise NotificationError("Email configuration missing (POSTMARK_SERVER_TOKEN)")

    headers = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "X-Postmark-Server-Token": token,
    }
    payload = {
        "From": cfg.get("EMAIL_FROM"),
        "To": to_email,
        "Subject": subject,
        "HtmlBody": html_body,
        "TextBody": text_body or subject,
        "MessageStream": "outbound",
    }
    response = httpx.post(cfg["POSTMARK_API_URL"], headers=headers, json=payload, timeout=20)
    response.raise_for_status()


def send_whatsapp_text(to_phone: str, text: str) -> bool:
    """
    Send a WhatsApp text message. Returns False when the send was simulated.
    """
    cfg = current_app.config

    if not cfg.get("WHATSAPP_ENABLED"):
        current_app.logger.info("[WHATSAPP SIMULATION] To: %s Message: %s", to_phone, text)
        return False

    token = cfg.get("WHATSAPP_TOKEN")
    phone_id = cfg.get("WHATSAPP_PHONE_NUMBER_ID")
    if not token or not phone_id:
        raise NotificationError("WhatsApp configuration missing (token/phone id)")

    url = f"https://graph.facebook.com/{cfg.get('WHATSAPP_API_VERSION', 'v20.0')}/{phone_id}/messages"
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    payload = {
        "messaging_product": "whatsapp",
        "to": to_phone,
        "type": "text",
        "text": {"preview_url": False, "body": text},
    }
    response = httpx.post(url, headers=headers, json=payload, timeout=20)
    response.raise_for_status()
    return True


# =============================================================================
# MESSAGE TEMPLATES
# =============================================================================

def build_welcome_email(*, member_name: str, plan_name: str, paid_cents: int, start_date, end_date) -> str:
    gym_name = escape(current_app.config.get("GYM_NAME", "Our Gym"))
    member_name = escape(member_name)
    plan_name = escape(plan_name)
    paid = escape(receipt_service.format_money(paid_cents))

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: #4CAF50; color: white; padding: 20px; text-align: center; }}
        .content {{ background-color: #f9f9f9; padding: 20px; }}
        .details {{ background-color: white; padding: 15px; margin: 15px 0; border-left: 4px solid #4CAF50; }}
        .footer {{ text-align: center; padding: 20px; color: #777; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>Welcome to {gym_name}!</h1></div>
        <div class="content">
            <h2>Dear {member_name},</h2>
            <p>Thank you for joining our gym family! We're excited to help you achieve your fitness goals.</p>
            <div class="details">
                <h3>Your Membership Details:</h3>
                <ul>
                    <li><strong>Plan:</strong> {plan_name}</li>
                    <li><strong>Start Date:</strong> {start_date:%Y-%m-%d}</li>
                    <li><strong>End Date:</strong> {end_date:%Y-%m-%d}</li>
                    <li><strong>Amount Paid:</strong> {paid}</li>
                </ul>
            </div>
            <h3>Next Steps:</h3>
            <ol>
                <li>Visit our gym during operating hours</li>
                <li>Bring a valid ID for verification</li>
                <li>Our staff will guide you through facilities</li>
            </ol>
        </div>
        <div class="footer"><p>This is an automated message. Please do not reply directly to this email.</p></div>
    </div>
</body>
</html>"""


def build_whatsapp_greeting(*, member_name: str, plan_name: str) -> str:
    return (
        f"Hi {member_name}! Welcome to our gym family! Your {plan_name} membership is now active. "
        "We're excited to help you achieve your fitness goals!"
    )


def build_receipt_email(receipt: PaymentReceipt) -> str:
    member_name = escape(receipt.member_name or "Member")
    number = escape(receipt.receipt_number)
    amount = escape(receipt_service.format_money(receipt.amount_paid_cents))
    receipt_html = receipt.html_content or receipt_service.render_receipt_html(receipt)
    return f"""<html>
<body style='font-family: Arial, sans-serif;'>
    <h2>Payment Receipt</h2>
    <p>Dear {member_name},</p>
    <p>Thank you for your payment! Your receipt details are below:</p>
    <p><strong>Receipt Number:</strong> {number}<br/>
    <strong>Amount Paid:</strong> {amount}</p>
    <hr/>
    {receipt_html}
    <hr/>
    <p>For any queries, please contact us.</p>
</body>
</html>"""


# =============================================================================
# JOBS
# =============================================================================

def send_welcome_email(membership_id: int, performed_by: str | None = None) -> bool:
    membership = db.session.get(MembersMembership, membership_id)
    if not membership or not membership.enquiry:
        current_app.logger.warning("Welcome email skipped: membership %s not found", membership_id)
        return False

    enquiry = membership.enquiry
    plan_name = membership.plan.plan_name if membership.plan else ""
    body = build_welcome_email(
        member_name=enquiry.full_name,
        plan_name=plan_name,
        paid_cents=membership.paid_amount_cents,
        start_date=membership.start_date,
        end_date=membership.end_date,
    )

    try:
        _deliver(send_email, enquiry.email, WELCOME_SUBJECT, body)
    except Exception as exc:
        current_app.logger.error("Failed to send welcome email to %s: %s", enquiry.email, exc)
        record_activity(
            ActivityType.EMAIL,
            f"Failed to send welcome email to {enquiry.full_name}",
            entity_type=EntityType.MEMBER,
            entity_id=membership.id,
            recipient_name=enquiry.full_name,
            recipient_contact=enquiry.email,
            message_content=WELCOME_SUBJECT,
            is_successful=False,
            error_message=str(exc),
            performed_by=performed_by or SYSTEM_ACTOR,
            commit=True,
        )
        return False

    record_activity(
        ActivityType.EMAIL,
        f"Welcome email sent to {enquiry.full_name}",
        entity_type=EntityType.MEMBER,
        entity_id=membership.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.email,
        message_content=WELCOME_SUBJECT,
        performed_by=performed_by or SYSTEM_ACTOR,
        commit=True,
    )
    return True


def send_whatsapp_greeting(membership_id: int, performed_by: str | None = None) -> bool:
    membership = db.session.get(MembersMembership, membership_id)
    if not membership or not membership.enquiry:
        current_app.logger.warning("WhatsApp greeting skipped: membership %s not found", membership_id)
        return False

    enquiry = membership.enquiry
    plan_name = membership.plan.plan_name if membership.plan else ""
    message = build_whatsapp_greeting(member_name=enquiry.full_name, plan_name=plan_name)

    try:
        delivered = _deliver(send_whatsapp_text, enquiry.phone, message)
    except Exception as exc:
        current_app.logger.error("Failed to send WhatsApp to %s: %s", enquiry.phone, exc)
        record_activity(
            ActivityType.WHATSAPP,
            f"Failed to send WhatsApp to {enquiry.full_name}",
            entity_type=EntityType.MEMBER,
            entity_id=membership.id,
            recipient_name=enquiry.full_name,
            recipient_contact=enquiry.phone,
            message_content=message,
            is_successful=False,
            error_message=str(exc),
            performed_by=performed_by or SYSTEM_ACTOR,
            commit=True,
        )
        return False

    suffix = "" if delivered else " (simulated)"
    record_activity(
        ActivityType.WHATSAPP,
        f"Welcome WhatsApp sent to {enquiry.full_name}{suffix}",
        entity_type=EntityType.MEMBER,
        entity_id=membership.id,
        recipient_name=enquiry.full_name,
        recipient_contact=enquiry.phone,
        message_content=message,
        performed_by=performed_by or SYSTEM_ACTOR,
        commit=True,
    )
    return True


def send_receipt_email(receipt_id: int, performed_by: str | None = None) -> bool:
    receipt = db.session.get(PaymentReceipt, receipt_id)
    if not receipt:
        current_app.logger.warning("Receipt email skipped: receipt %s not found", receipt_id)
        return False
    if not receipt.member_email:
        current_app.logger.info("Receipt %s has no member email, not sending", receipt.receipt_number)
        return False

    subject = RECEIPT_SUBJECT.format(receipt_number=receipt.receipt_number)
    body = build_receipt_email(receipt)

    try:
        _deliver(send_email, receipt.member_email, subject, body)
    except Exception as exc:
        current_app.logger.error("Failed to send receipt %s: %s", receipt.receipt_number, exc)
        record_activity(
            ActivityType.EMAIL_RECEIPT,
            f"Failed to send payment receipt {receipt.receipt_number} to {receipt.member_name}",
            entity_type=EntityType.MEMBER,
            entity_id=receipt.members_membership_id,
            recipient_name=receipt.member_name,
            recipient_contact=receipt.member_email,
            message_content=subject,
            is_successful=False,
            error_message=str(exc),
            performed_by=performed_by or SYSTEM_ACTOR,
            commit=True,
        )
        return False

    receipt_service.mark_email_sent(receipt.id)
    record_activity(
        ActivityType.EMAIL_RECEIPT,
        f"Payment receipt {receipt.receipt_number} sent to {receipt.member_name}",
        entity_type=EntityType.MEMBER,
        entity_id=receipt.members_membership_id,
        recipient_name=receipt.member_name,
        recipient_contact=receipt.member_email,
        message_content=subject,
        performed_by=performed_by or SYSTEM_ACTOR,
        commit=True,
    )
    return True


def send_conversion_notifications(membership_id: int, receipt_id: int | None, performed_by: str | None = None) -> bool:
    """Welcome email, WhatsApp greeting, then the initial receipt if one was issued."""
    results = [
        send_welcome_email(membership_id, performed_by),
        send_whatsapp_greeting(membership_id, performed_by),
    ]
    if receipt_id is not None:
        results.append(send_receipt_email(receipt_id, performed_by))
    return all(results)


# =============================================================================
# ENQUEUE HELPERS (called by services after commit)
# =============================================================================

def notify_membership_created(membership_id: int, receipt_id: int | None, performed_by: str | None) -> bool:
    return dispatcher.submit(
        send_conversion_notifications,
        membership_id,
        receipt_id,
        performed_by,
        description=f"welcome notifications for membership {membership_id}",
    )


def notify_payment_received(receipt_id: int, performed_by: str | None) -> bool:
    return dispatcher.submit(
        send_receipt_email,
        receipt_id,
        performed_by,
        description=f"receipt email for receipt {receipt_id}",
    )
