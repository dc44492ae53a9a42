"""Unique identifier generation for documents and outbox events."""

from bson import ObjectId


def generate_id() -> str:
    """Return a fresh 24-hex-character ObjectId string.

    ObjectIds embed a timestamp, a per-process random value and an incrementing
    counter, so values are unique within a run and increase monotonically.
    """
    return str(ObjectId())
