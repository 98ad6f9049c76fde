from datetime import datetime, timezone
from typing import Optional
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id(prefix: str) -> str:
    """Opaque record id, e.g. integration-3f2b..."""
    return f"{prefix}-{uuid.uuid4().hex}"
