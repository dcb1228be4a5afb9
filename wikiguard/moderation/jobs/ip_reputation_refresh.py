"""Job runner to refresh IP reputation verdicts that have gone stale."""

from __future__ import annotations

from datetime import datetime, timezone

from wikiguard.moderation.domain.ip_refresh import IpReputationService


async def run(
    service: IpReputationService,
    *,
    batch_size: int = 100,
    now: datetime | None = None,
) -> int:
    """Auto-refresh one batch of stale profiles and return how many were updated."""

    now = now or datetime.now(timezone.utc)
    due = await service.list_due(now=now, limit=batch_size)
    refreshed = 0
    for profile in due:
        if await service.auto_refresh(profile.address) is not None:
            refreshed += 1
    return refreshed
