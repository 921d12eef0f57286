from beanie import Document, PydanticObjectId
from pydantic import ConfigDict, Field
from datetime import datetime, timezone


class MedicationRequest(Document):
    """Patient order sent to a pharmacy. Owned by the CRUD side; read here for chat permissions.

    Documents are written by the Node backend, so the stored field names are
    camelCase (`userId`, `pharmacyID`, `requestId`) and the ids are ObjectIds.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_id: PydanticObjectId = Field(alias="userId")          # owning patient
    pharmacy_id: PydanticObjectId = Field(alias="pharmacyID")
    request_number: str | None = Field(None, alias="requestId")
    status: str = "pending"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="createdAt")

    class Settings:
        name = "medicationrequests"
