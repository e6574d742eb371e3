from .enums import (
    UserRole, AdminStatus, BloodGroup, VerificationStatus, EligibilityStatus, DonorType,
    RequestStatus, RequestType, Urgency, DonationStatus, NotificationType,
    NotificationPriority, NotificationStatus, ResponseAction, AppointmentStatus,
    AppointmentType, ReportType, ReviewStatus
)
from .user import User, UserCreate, UserLogin, UserResponse, AdminReject, AdminToggle
from .donor import (
    Donor, DonationRecord, AvailabilityPreferences, DonorRegister, DonorAdminCreate,
    AvailabilityUpdate, DonorStatusUpdate
)
from .inventory import InventoryLot, InventoryLotCreate, InventoryThreshold, ThresholdUpdate
from .request import (
    BloodRequest, BloodRequestCreate, ProactiveRequestCreate, LotAllocation, ApproveRequest,
    RejectRequest, RescheduleRequest, RescheduleDecision, CancelRequest
)
from .notification import Notification, NotificationMetadata, NotificationResponse, DonationRequestSend, NotificationRespond
from .appointment import (
    Appointment, AppointmentFromNotification, AppointmentStatusUpdate, AppointmentCancel,
    AppointmentComplete
)
from .donation import Donation, DonationRecordCreate
from .medical_report import MedicalReport, MedicalReportReview
from .audit import AuditLog, AuditAction, AuditModule
