"""IP reputation verdicts, refresh policy and storage contracts."""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence

from wikiguard.moderation.domain.ip_classifier import is_private_address

DEFAULT_REFRESH_INTERVAL = timedelta(hours=6)
DEFAULT_REVIEW_PROTECTION = timedelta(days=7)

LOCAL_PROVIDER = "local"
MANUAL_PROVIDER = "manual"

LOCAL_SKIP_REASON = "Private or local address: lookup skipped."
MANUAL_REVIEW_REASON = "Confirmed safe by a moderator."
UNAVAILABLE_REASON = "Reputation lookup unavailable."
CLEAN_REASON = "No suspicious activity detected by the automatic check."
FAILURE_REASON_PREFIX = "Automatic lookup failed: "

PROXY_CLAUSE = "Proxy/VPN detected"
HOSTING_CLAUSE = "Address belongs to a hosting provider"
MOBILE_CLAUSE = "Mobile carrier connection"
CLAUSE_SEPARATOR = " · "


class ReputationStatus(str, Enum):
    UNKNOWN = "unknown"
    SAFE = "safe"
    FLAGGED = "flagged"


class IpReputationError(Exception):
    """Base error for the IP reputation engine."""


class LookupFailed(IpReputationError):
    """The reputation provider could not produce a usable response."""

    def __init__(self, address: str, detail: str) -> None:
        super().__init__(detail)
        self.address = address
        self.detail = detail


class ProfileNotFound(IpReputationError):
    def __init__(self, address: str) -> None:
        super().__init__(f"no profile recorded for {address}")
        self.address = address


@dataclass(slots=True)
class IpProfile:
    """One observed address and its current reputation fields."""

    id: int
    address: str
    status: ReputationStatus = ReputationStatus.UNKNOWN
    provider: str | None = None
    reason: str | None = None
    payload: Mapping[str, Any] | None = None
    checked_at: datetime | None = None
    flagged_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    hash: str | None = None
    created_at: datetime | None = None
    last_seen_at: datetime | None = None


@dataclass(frozen=True)
class ReputationUpdate:
    """Full set of reputation columns written by a single point update."""

    status: ReputationStatus
    provider: str | None
    reason: str | None
    payload: Mapping[str, Any] | None
    checked_at: datetime | None
    flagged_at: datetime | None
    reviewed_at: datetime | None
    reviewed_by: str | None


@dataclass(frozen=True)
class Verdict:
    status: ReputationStatus
    reason: str
    payload: Mapping[str, Any] | None


@dataclass(frozen=True)
class RefreshDecision:
    skip: bool
    override_local: bool = False


@dataclass(frozen=True)
class RefreshSummary:
    """What a refresh persisted, as reported back to the caller."""

    id: int
    address: str
    status: ReputationStatus
    reason: str | None
    provider: str | None
    checked_at: datetime | None
    flagged_at: datetime | None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "status": self.status.value,
            "reason": self.reason,
            "provider": self.provider,
            "checked_at": self.checked_at.isoformat() if self.checked_at else None,
            "flagged_at": self.flagged_at.isoformat() if self.flagged_at else None,
        }


class IpProfileRepository(Protocol):
    """Storage contract for address profiles."""

    async def get_by_address(self, address: str) -> IpProfile | None:
        ...

    async def get_by_hash(self, address_hash: str) -> IpProfile | None:
        ...

    async def update_reputation(self, profile_id: int, update: ReputationUpdate) -> None:
        ...

    async def touch(self, address: str, address_hash: str, seen_at: datetime) -> IpProfile:
        ...

    async def count_flagged(self) -> int:
        ...

    async def list_due(self, before: datetime, limit: int = 100) -> Sequence[IpProfile]:
        ...


class IpLookupProvider(Protocol):
    """External reputation source. Raises LookupFailed when unusable."""

    name: str

    async def lookup(self, address: str) -> Mapping[str, Any]:
        ...


class UnconfiguredLookupProvider(IpLookupProvider):
    """Default provider used until a real one is wired in."""

    name = "unconfigured"

    async def lookup(self, address: str) -> Mapping[str, Any]:
        raise LookupFailed(address, "no reputation provider configured")


# --- Verdicts ----------------------------------------------------------------


def evaluate_lookup(result: Mapping[str, Any] | None) -> Verdict:
    """Map a raw provider response onto a verdict."""

    if result is None or result.get("status") != "success":
        message = result.get("message") if result is not None else None
        return Verdict(
            status=ReputationStatus.UNKNOWN,
            reason=str(message) if message else UNAVAILABLE_REASON,
            payload=dict(result) if result is not None else None,
        )

    clauses: list[str] = []
    if result.get("proxy"):
        clauses.append(PROXY_CLAUSE)
    if result.get("hosting"):
        clauses.append(HOSTING_CLAUSE)
    if result.get("mobile"):
        clauses.append(MOBILE_CLAUSE)

    if clauses:
        return Verdict(
            status=ReputationStatus.FLAGGED,
            reason=CLAUSE_SEPARATOR.join(clauses),
            payload=dict(result),
        )
    return Verdict(status=ReputationStatus.SAFE, reason=CLEAN_REASON, payload=dict(result))


def evaluate_failure(detail: str, previous_status: ReputationStatus | None) -> Verdict:
    """Degrade gracefully when the provider cannot be reached.

    An address that was already flagged stays flagged; anything else becomes unknown.
    """

    status = ReputationStatus.FLAGGED if previous_status == ReputationStatus.FLAGGED else ReputationStatus.UNKNOWN
    return Verdict(
        status=status,
        reason=f"{FAILURE_REASON_PREFIX}{detail}",
        payload={"error": detail},
    )


# --- Policy ------------------------------------------------------------------


def decide_refresh(
    profile: IpProfile,
    now: datetime,
    *,
    force: bool,
    refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
    review_protection: timedelta = DEFAULT_REVIEW_PROTECTION,
) -> RefreshDecision:
    if is_private_address(profile.address):
        return RefreshDecision(skip=False, override_local=True)
    if force:
        return RefreshDecision(skip=False)
    if profile.checked_at is not None and now - profile.checked_at < refresh_interval:
        return RefreshDecision(skip=True)
    if (
        profile.status == ReputationStatus.SAFE
        and profile.reviewed_at is not None
        and now - profile.reviewed_at < review_protection
    ):
        return RefreshDecision(skip=True)
    return RefreshDecision(skip=False)


def next_flagged_at(profile: IpProfile, status: ReputationStatus, now: datetime) -> datetime | None:
    """Start of the current flagged streak, or None when not flagged."""

    if status != ReputationStatus.FLAGGED:
        return None
    if profile.status == ReputationStatus.FLAGGED and profile.flagged_at is not None:
        return profile.flagged_at
    return now


def build_update(profile: IpProfile, verdict: Verdict, *, provider: str, now: datetime) -> ReputationUpdate:
    keep_review = verdict.status == ReputationStatus.SAFE
    return ReputationUpdate(
        status=verdict.status,
        provider=provider,
        reason=verdict.reason or None,
        payload=verdict.payload,
        checked_at=now,
        flagged_at=next_flagged_at(profile, verdict.status, now),
        reviewed_at=profile.reviewed_at if keep_review else None,
        reviewed_by=profile.reviewed_by if keep_review else None,
    )


def local_update(profile: IpProfile, now: datetime) -> ReputationUpdate:
    return ReputationUpdate(
        status=ReputationStatus.SAFE,
        provider=LOCAL_PROVIDER,
        reason=LOCAL_SKIP_REASON,
        payload=None,
        checked_at=now,
        flagged_at=None,
        reviewed_at=profile.reviewed_at,
        reviewed_by=profile.reviewed_by,
    )


# --- In-memory storage -------------------------------------------------------


class InMemoryIpProfileRepository(IpProfileRepository):
    def __init__(self) -> None:
        self._items: dict[int, IpProfile] = {}
        self._next_id = 1

    def _snapshot(self, profile: IpProfile | None) -> IpProfile | None:
        if profile is None:
            return None
        return replace(profile, payload=copy.deepcopy(profile.payload))

    def add(self, profile: IpProfile) -> IpProfile:
        self._items[profile.id] = profile
        self._next_id = max(self._next_id, profile.id + 1)
        return profile

    async def get_by_address(self, address: str) -> IpProfile | None:
        for profile in self._items.values():
            if profile.address == address:
                return self._snapshot(profile)
        return None

    async def get_by_hash(self, address_hash: str) -> IpProfile | None:
        for profile in self._items.values():
            if profile.hash == address_hash:
                return self._snapshot(profile)
        return None

    async def update_reputation(self, profile_id: int, update: ReputationUpdate) -> None:
        current = self._items.get(profile_id)
        if current is None:
            return None
        self._items[profile_id] = replace(
            current,
            status=update.status,
            provider=update.provider,
            reason=update.reason,
            payload=copy.deepcopy(update.payload),
            checked_at=update.checked_at,
            flagged_at=update.flagged_at,
            reviewed_at=update.reviewed_at,
            reviewed_by=update.reviewed_by,
        )
        return None

    async def touch(self, address: str, address_hash: str, seen_at: datetime) -> IpProfile:
        for profile in self._items.values():
            if profile.address == address:
                profile.last_seen_at = seen_at
                return self._snapshot(profile)  # type: ignore[return-value]
        profile = IpProfile(
            id=self._next_id,
            address=address,
            hash=address_hash,
            created_at=seen_at,
            last_seen_at=seen_at,
        )
        self._items[profile.id] = profile
        self._next_id += 1
        return self._snapshot(profile)  # type: ignore[return-value]

    async def count_flagged(self) -> int:
        return sum(1 for profile in self._items.values() if profile.status == ReputationStatus.FLAGGED)

    async def list_due(self, before: datetime, limit: int = 100) -> Sequence[IpProfile]:
        due = [p for p in self._items.values() if p.checked_at is None or p.checked_at < before]
        due.sort(key=lambda p: (p.checked_at is not None, p.checked_at or before, p.id))
        return [self._snapshot(p) for p in due[:limit]]  # type: ignore[misc]
