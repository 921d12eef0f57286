"""
Data access for the realtime services.

Services receive these objects through their constructors; tests swap in
in-memory fakes with the same coroutine methods.
"""
from .chat_repository import ChatRepository
from .notification_repository import NotificationRepository
from .directory_repository import DirectoryRepository
