from .auth import hash_password, verify_password, create_access_token, decode_access_token, get_current_user
from .audit_service import AuditService, audit_log, audit_create, audit_delete
from .eligibility import (
    WAITING_PERIOD_DAYS, is_eligible, days_until_eligible, can_donate, enrich_donor,
    eligibility_summary, eligible_donor_query, next_eligible_date
)
from .inventory_service import (
    InsufficientInventoryError, allocate_fifo, release_allocations, add_lot, available_units,
    stock_by_group, ensure_thresholds, classify_stock
)
from .donation_service import record_donation, apply_donation_to_donor
from .notification_service import create_notification, expire_stale_notifications
