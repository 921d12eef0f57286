from healthhub.config import get_settings
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from beanie import init_beanie

settings = get_settings()

_mongo_client: AsyncIOMotorClient | None = None
_database: AsyncIOMotorDatabase | None = None


def _database_name(uri: str) -> str:
    # Extract database name from URI, default to 'healthhub' if not specified
    db_name = uri.rsplit("/", 1)[-1].split("?")[0]
    return db_name or "healthhub"


async def init_db() -> None:
    """Initialize MongoDB (Beanie) and register document models."""
    global _mongo_client, _database
    _mongo_client = AsyncIOMotorClient(settings.MONGODB_URI)
    _database = _mongo_client[_database_name(settings.MONGODB_URI)]
    from healthhub.models import (
        User,
        ChatMessage,
        Notification,
        MedicationRequest,
    )
    await init_beanie(
        database=_database,
        document_models=[
            User,
            ChatMessage,
            Notification,
            MedicationRequest,
        ],
    )


def get_database() -> AsyncIOMotorDatabase | None:
    """Raw Motor database, used for change streams on collections that have no Beanie model here."""
    return _database


async def ping_db() -> bool:
    """Check MongoDB connectivity."""
    if not _mongo_client:
        return False
    try:
        await _mongo_client.admin.command("ping")
        return True
    except Exception:
        return False


def close_db() -> None:
    global _mongo_client, _database
    if _mongo_client:
        _mongo_client.close()
    _mongo_client = None
    _database = None
