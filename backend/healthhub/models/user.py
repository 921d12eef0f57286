from beanie import Document, Indexed
from pydantic import Field
from datetime import datetime, timezone
from healthhub.constants import Role


class User(Document):
    """System user (patient / doctor / pharmacy / admin).

    Accounts are managed by the CRUD side of the platform; the realtime
    service only reads names and roles for display and permission checks.
    """

    name: str | None = None
    email: Indexed(str, unique=True) | None = None
    role: Role = Role.PATIENT

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "users"
