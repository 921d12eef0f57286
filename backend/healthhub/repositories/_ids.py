from beanie import PydanticObjectId as OID


def to_object_id(value) -> OID | None:
    """Parse an ObjectId, returning None for anything malformed."""
    if value is None:
        return None
    if isinstance(value, OID):
        return value
    try:
        return OID(str(value))
    except Exception:
        return None
