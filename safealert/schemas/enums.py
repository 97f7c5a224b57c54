from enum import Enum

# ------------------ PANIC EVENT ------------------
class PanicStatus(str, Enum):
    ACTIVE = "active"
    PROCESSED = "processed"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"

# ------------------ ALERT ------------------
class AlertMethod(str, Enum):
    SMS = "sms"
    EMAIL = "email"

class AlertStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"
