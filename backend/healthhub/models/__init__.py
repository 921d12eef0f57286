# Re-export Beanie documents
from .user import User
from .chat import ChatMessage
from .notification import Notification
from .medication_request import MedicationRequest
