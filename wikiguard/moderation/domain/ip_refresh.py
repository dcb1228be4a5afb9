"""Refresh orchestration for stored IP reputation verdicts."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Sequence

from wikiguard.moderation.domain.ip_profiles import normalize_address
from wikiguard.moderation.domain.ip_reputation import (
    MANUAL_PROVIDER,
    MANUAL_REVIEW_REASON,
    IpLookupProvider,
    IpProfile,
    IpProfileRepository,
    LookupFailed,
    ProfileNotFound,
    RefreshSummary,
    ReputationStatus,
    ReputationUpdate,
    build_update,
    decide_refresh,
    evaluate_failure,
    evaluate_lookup,
    local_update,
)
from wikiguard.moderation.domain.reputation_config import IpReputationConfigSource
from wikiguard.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _summary(profile: IpProfile, update: ReputationUpdate) -> RefreshSummary:
    return RefreshSummary(
        id=profile.id,
        address=profile.address,
        status=update.status,
        reason=update.reason,
        provider=update.provider,
        checked_at=update.checked_at,
        flagged_at=update.flagged_at,
    )


class IpReputationService:
    """Keeps stored address verdicts fresh without hammering the provider.

    No locking is done around the read-then-update sequence: two refreshes of
    the same address may both hit the provider, and the later write wins.
    """

    def __init__(
        self,
        repository: IpProfileRepository,
        provider: IpLookupProvider,
        *,
        config: IpReputationConfigSource | None = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._repo = repository
        self._provider = provider
        self._config = config or IpReputationConfigSource()
        self._clock = clock

    async def auto_refresh(self, address: Any) -> RefreshSummary | None:
        return await self._refresh(address, force=False)

    async def force_refresh(self, address: Any) -> RefreshSummary | None:
        return await self._refresh(address, force=True)

    async def confirm_safe(self, address: Any, reviewer: str, *, now: datetime | None = None) -> RefreshSummary:
        """Record a moderator's confirmation that ``address`` is safe."""

        if not isinstance(reviewer, str) or not reviewer.strip():
            raise ValueError("reviewer is required")
        normalized = normalize_address(address)
        profile = await self._repo.get_by_address(normalized) if normalized else None
        if profile is None:
            raise ProfileNotFound(normalized)
        now = now or self._clock()
        update = ReputationUpdate(
            status=ReputationStatus.SAFE,
            provider=MANUAL_PROVIDER,
            reason=MANUAL_REVIEW_REASON,
            payload=profile.payload,
            checked_at=profile.checked_at,
            flagged_at=None,
            reviewed_at=now,
            reviewed_by=reviewer.strip(),
        )
        await self._repo.update_reputation(profile.id, update)
        logger.info("ip reputation confirmed safe", extra={"profile_id": profile.id, "reviewer": update.reviewed_by})
        return _summary(profile, update)

    async def count_flagged(self) -> int:
        return await self._repo.count_flagged()

    async def find_by_hash(self, address_hash: Any) -> IpProfile | None:
        normalized = normalize_address(address_hash)
        if not normalized:
            return None
        return await self._repo.get_by_hash(normalized)

    async def list_due(self, *, now: datetime | None = None, limit: int = 100) -> Sequence[IpProfile]:
        """Profiles never checked or last checked before the refresh horizon."""

        now = now or self._clock()
        horizon = now - self._config.current().refresh_interval
        return await self._repo.list_due(horizon, limit=limit)

    async def _refresh(self, address: Any, *, force: bool) -> RefreshSummary | None:
        normalized = normalize_address(address)
        if not normalized:
            return None

        profile = await self._repo.get_by_address(normalized)
        if profile is None:
            obs_metrics.inc_refresh("missing")
            return None

        now = self._clock()
        config = self._config.current()
        decision = decide_refresh(
            profile,
            now,
            force=force,
            refresh_interval=config.refresh_interval,
            review_protection=config.review_protection,
        )
        if decision.skip:
            logger.debug("ip reputation still fresh", extra={"profile_id": profile.id})
            obs_metrics.inc_refresh("skipped")
            return None

        if decision.override_local:
            update = local_update(profile, now)
            await self._repo.update_reputation(profile.id, update)
            obs_metrics.inc_refresh("local")
            return _summary(profile, update)

        started = time.perf_counter()
        try:
            result = await self._provider.lookup(normalized)
        except LookupFailed as exc:
            obs_metrics.inc_lookup_failure()
            logger.warning(
                "ip reputation lookup failed",
                extra={"profile_id": profile.id, "provider": self._provider.name, "detail": exc.detail},
            )
            verdict = evaluate_failure(exc.detail, profile.status)
        else:
            verdict = evaluate_lookup(result)
        finally:
            obs_metrics.observe_lookup_latency(time.perf_counter() - started)

        update = build_update(profile, verdict, provider=self._provider.name, now=now)
        await self._repo.update_reputation(profile.id, update)
        obs_metrics.inc_refresh(update.status.value)
        logger.info(
            "ip reputation refreshed",
            extra={"profile_id": profile.id, "status": update.status.value, "forced": force},
        )
        return _summary(profile, update)
