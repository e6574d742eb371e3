from enum import Enum

class UserRole(str, Enum):
    ADMIN = "admin"
    HOSPITAL = "hospital"
    DONOR = "donor"
    EXTERNAL = "external"

class AdminStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

class VerificationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

class EligibilityStatus(str, Enum):
    PENDING = "pending"
    ELIGIBLE = "eligible"
    NOT_ELIGIBLE = "not_eligible"

class DonorType(str, Enum):
    REGULAR = "regular"
    FLEXIBLE = "flexible"
    EMERGENCY = "emergency"

class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    COLLECTED = "collected"
    VERIFIED = "verified"
    NO_SHOW = "no-show"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    RESCHEDULE_REQUESTED = "reschedule-requested"
    COMPLETED = "completed"

class RequestType(str, Enum):
    STANDARD = "standard"
    PROACTIVE_INVENTORY = "proactive_inventory"

class Urgency(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

class DonationStatus(str, Enum):
    SCHEDULED = "scheduled"
    COLLECTED = "collected"
    CANCELLED = "cancelled"

class NotificationType(str, Enum):
    DONATION_REQUEST = "donation_request"
    APPOINTMENT_REMINDER = "appointment_reminder"
    DONATION_THANKS = "donation_thanks"
    CAMPAIGN_INVITE = "campaign_invite"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"

class NotificationPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    READ = "read"
    RESPONDED = "responded"
    EXPIRED = "expired"

class ResponseAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    MAYBE = "maybe"

class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

class AppointmentType(str, Enum):
    REACTIVE = "reactive"
    PROACTIVE = "proactive"
    WALK_IN = "walk_in"

class ReportType(str, Enum):
    HEALTH_CHECKUP = "health_checkup"
    BLOOD_TEST = "blood_test"
    MEDICAL_CLEARANCE = "medical_clearance"
    OTHER = "other"

class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
