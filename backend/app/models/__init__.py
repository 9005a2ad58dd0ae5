from .auth import User, SessionToken
from .enquiries import Enquiry, EnquiryHistory
from .memberships import MembershipPlan, MembersMembership
from .receipts import PaymentReceipt, ReceiptSequence
from .activity import Activity, ActivityType, EntityType

__all__ = [
    'User', 'SessionToken',
    'Enquiry', 'EnquiryHistory',
    'MembershipPlan', 'MembersMembership',
    'PaymentReceipt', 'ReceiptSequence',
    'Activity', 'ActivityType', 'EntityType',
]
