"""PostgreSQL repository for address profiles."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Sequence

import asyncpg

from wikiguard.moderation.domain.ip_reputation import (
    IpProfile,
    IpProfileRepository,
    ReputationStatus,
    ReputationUpdate,
)

_COLUMNS = """
    id, ip, hash, created_at, last_seen_at,
    reputation_status, reputation_provider, reputation_reason, reputation_payload,
    reputation_checked_at, reputation_flagged_at, reputation_reviewed_at, reputation_reviewed_by
"""


def _status(value: Any) -> ReputationStatus:
    try:
        return ReputationStatus(str(value))
    except ValueError:
        return ReputationStatus.UNKNOWN


def _decode_payload(raw: Any) -> Mapping[str, Any] | None:
    if raw is None:
        return None
    if isinstance(raw, dict):
        return raw
    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError):
        return {"raw": str(raw)}
    return decoded if isinstance(decoded, dict) else None


def _encode_payload(payload: Mapping[str, Any] | None) -> str | None:
    if payload is None:
        return None
    return json.dumps(dict(payload), separators=(",", ":"), default=str)


def _row_to_profile(row: Mapping[str, Any]) -> IpProfile:
    return IpProfile(
        id=int(row["id"]),
        address=str(row["ip"]),
        status=_status(row["reputation_status"]),
        provider=row["reputation_provider"],
        reason=row["reputation_reason"],
        payload=_decode_payload(row["reputation_payload"]),
        checked_at=row["reputation_checked_at"],
        flagged_at=row["reputation_flagged_at"],
        reviewed_at=row["reputation_reviewed_at"],
        reviewed_by=row["reputation_reviewed_by"],
        hash=row["hash"],
        created_at=row["created_at"],
        last_seen_at=row["last_seen_at"],
    )


class PostgresIpProfileRepository(IpProfileRepository):
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_by_address(self, address: str) -> IpProfile | None:
        row = await self._pool.fetchrow(f"SELECT {_COLUMNS} FROM ip_profiles WHERE ip = $1", address)
        if row is None:
            return None
        return _row_to_profile(row)

    async def get_by_hash(self, address_hash: str) -> IpProfile | None:
        row = await self._pool.fetchrow(f"SELECT {_COLUMNS} FROM ip_profiles WHERE hash = $1", address_hash)
        if row is None:
            return None
        return _row_to_profile(row)

    async def update_reputation(self, profile_id: int, update: ReputationUpdate) -> None:
        await self._pool.execute(
            """
            UPDATE ip_profiles
               SET reputation_status = $2,
                   reputation_provider = $3,
                   reputation_reason = $4,
                   reputation_payload = $5,
                   reputation_checked_at = $6,
                   reputation_flagged_at = $7,
                   reputation_reviewed_at = $8,
                   reputation_reviewed_by = $9
             WHERE id = $1
            """,
            profile_id,
            update.status.value,
            update.provider,
            update.reason,
            _encode_payload(update.payload),
            update.checked_at,
            update.flagged_at,
            update.reviewed_at,
            update.reviewed_by,
        )

    async def touch(self, address: str, address_hash: str, seen_at: datetime) -> IpProfile:
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO ip_profiles (ip, hash, created_at, last_seen_at)
            VALUES ($1, $2, $3, $3)
            ON CONFLICT (ip)
            DO UPDATE SET last_seen_at = EXCLUDED.last_seen_at
            RETURNING {_COLUMNS}
            """,
            address,
            address_hash,
            seen_at,
        )
        if row is None:  # pragma: no cover
            raise RuntimeError("Failed to upsert ip profile")
        return _row_to_profile(row)

    async def count_flagged(self) -> int:
        value = await self._pool.fetchval(
            "SELECT COUNT(*) FROM ip_profiles WHERE reputation_status = $1",
            ReputationStatus.FLAGGED.value,
        )
        return int(value or 0)

    async def list_due(self, before: datetime, limit: int = 100) -> Sequence[IpProfile]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_COLUMNS}
              FROM ip_profiles
             WHERE reputation_checked_at IS NULL OR reputation_checked_at < $1
             ORDER BY reputation_checked_at ASC NULLS FIRST, id ASC
             LIMIT $2
            """,
            before,
            limit,
        )
        return [_row_to_profile(row) for row in rows]
