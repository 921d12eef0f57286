from healthhub.models import User, MedicationRequest
from healthhub.repositories._ids import to_object_id


class DirectoryRepository:
    """Read-only lookups into collections owned by the CRUD side."""

    async def get_user(self, user_id) -> User | None:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return await User.get(oid)

    async def get_medication_request(self, request_id) -> MedicationRequest | None:
        oid = to_object_id(request_id)
        if oid is None:
            return None
        return await MedicationRequest.get(oid)
