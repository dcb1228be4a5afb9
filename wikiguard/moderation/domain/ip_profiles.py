"""Address normalisation, hashing and profile bookkeeping."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from typing import Any

from wikiguard.moderation.domain.ip_reputation import IpProfile, IpProfileRepository
from wikiguard.settings import settings

DEFAULT_LABEL_LENGTH = 10


def normalize_address(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()


def hash_address(address: Any, salt: str | None = None) -> str | None:
    normalized = normalize_address(address)
    if not normalized:
        return None
    secret = settings.ip_profile_salt if salt is None else salt
    return hashlib.sha256(f"{secret}:{normalized}".encode("utf-8")).hexdigest()


def format_profile_label(address_hash: str | None, length: int = DEFAULT_LABEL_LENGTH) -> str | None:
    """Short moderator-facing label derived from a profile hash."""

    if not address_hash:
        return None
    safe_length = length if isinstance(length, int) and length > 3 else DEFAULT_LABEL_LENGTH
    return address_hash[:safe_length].upper()


async def touch_profile(
    repository: IpProfileRepository,
    address: Any,
    *,
    now: datetime | None = None,
) -> IpProfile | None:
    """Record a sighting of ``address``, creating its profile on first contact."""

    normalized = normalize_address(address)
    if not normalized:
        return None
    address_hash = hash_address(normalized)
    if address_hash is None:
        return None
    return await repository.touch(normalized, address_hash, now or datetime.now(timezone.utc))
