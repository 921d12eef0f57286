from enum import Enum

class Role(str, Enum):
    """System roles for RBAC."""
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"
    PHARMACY = "pharmacy"


class NotificationType(str, Enum):
    CHAT = "chat"
    APPOINTMENT_REMINDER = "appointment_reminder"
    APPOINTMENT_ACCEPTED = "appointment_accepted"
    APPOINTMENT_DECLINED = "appointment_declined"
    APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
    MEDICATION_REMINDER = "medication_reminder"
    MEDICATION_REQUEST = "medication_request"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConversationKind(str, Enum):
    """Which chat path a message travels through."""
    DIRECT = "direct"                      # patient <-> doctor, generic pairwise room
    PHARMACY_REQUEST = "pharmacy_request"  # patient <-> pharmacy about one medication request


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    VOICE = "voice"
