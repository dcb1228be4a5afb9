from __future__ import annotations

from dataclasses import asdict
from datetime import timedelta

import pytest

from wikiguard.moderation.domain.ip_reputation import (
    LOCAL_PROVIDER,
    LOCAL_SKIP_REASON,
    MANUAL_PROVIDER,
    PROXY_CLAUSE,
    IpProfile,
    ProfileNotFound,
    ReputationStatus,
)


class ExplodingRepository:
    """Repository that fails the test if it is touched."""

    async def get_by_address(self, address: str):
        raise AssertionError("store should not be read")


@pytest.mark.asyncio
async def test_missing_profile_returns_none(make_service, provider) -> None:
    service = make_service(provider)
    assert await service.auto_refresh("203.0.113.5") is None
    assert await service.force_refresh("203.0.113.5") is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_blank_address_skips_store(provider, now) -> None:
    from wikiguard.moderation.domain.ip_refresh import IpReputationService

    service = IpReputationService(ExplodingRepository(), provider, clock=lambda: now)  # type: ignore[arg-type]
    assert await service.auto_refresh("   ") is None
    assert await service.force_refresh(None) is None


@pytest.mark.asyncio
async def test_recent_check_skips_lookup(make_service, provider, repo, now) -> None:
    repo.add(IpProfile(id=1, address="203.0.113.5", checked_at=now - timedelta(hours=1)))
    service = make_service(provider)

    assert await service.auto_refresh("203.0.113.5") is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_review_window_dominates_elapsed_interval(make_service, provider, repo, now) -> None:
    repo.add(
        IpProfile(
            id=1,
            address="203.0.113.5",
            status=ReputationStatus.SAFE,
            checked_at=now - timedelta(days=10),
            reviewed_at=now - timedelta(days=1),
            reviewed_by="moderator",
        )
    )
    service = make_service(provider)

    assert await service.auto_refresh("203.0.113.5") is None
    assert provider.calls == []


@pytest.mark.asyncio
async def test_force_refresh_private_address_resets_to_local_safe(make_service, provider, repo, now) -> None:
    repo.add(
        IpProfile(
            id=7,
            address="10.0.0.4",
            status=ReputationStatus.FLAGGED,
            checked_at=now - timedelta(minutes=10),
            flagged_at=now - timedelta(days=2),
            payload={"proxy": True},
        )
    )
    service = make_service(provider)

    summary = await service.force_refresh(" 10.0.0.4 ")

    assert summary is not None
    assert summary.status == ReputationStatus.SAFE
    assert summary.provider == LOCAL_PROVIDER
    assert summary.reason == LOCAL_SKIP_REASON
    assert summary.flagged_at is None
    assert summary.checked_at == now
    assert provider.calls == []
    stored = await repo.get_by_address("10.0.0.4")
    assert stored.payload is None
    assert stored.flagged_at is None


@pytest.mark.asyncio
async def test_auto_refresh_private_address_ignores_interval(make_service, provider, repo, now) -> None:
    repo.add(IpProfile(id=2, address="::1", checked_at=now - timedelta(minutes=1)))
    service = make_service(provider)

    summary = await service.auto_refresh("::1")

    assert summary is not None
    assert summary.provider == LOCAL_PROVIDER
    assert provider.calls == []


@pytest.mark.asyncio
async def test_first_flag_sets_flagged_at_to_check_time(make_service, provider_factory, repo, now) -> None:
    repo.add(
        IpProfile(
            id=3,
            address="203.0.113.5",
            status=ReputationStatus.SAFE,
            reviewed_at=now - timedelta(days=30),
            reviewed_by="moderator",
        )
    )
    provider = provider_factory({"status": "success", "proxy": True, "hosting": False, "mobile": False})
    service = make_service(provider)

    summary = await service.auto_refresh("203.0.113.5")

    assert summary is not None
    assert summary.status == ReputationStatus.FLAGGED
    assert summary.reason == PROXY_CLAUSE
    assert summary.provider == "ip-api.com"
    assert summary.flagged_at == summary.checked_at == now
    assert summary.as_dict()["status"] == "flagged"
    assert summary.as_dict()["flagged_at"] == now.isoformat()
    stored = await repo.get_by_address("203.0.113.5")
    assert stored.status == ReputationStatus.FLAGGED
    assert stored.flagged_at == stored.checked_at
    assert stored.reviewed_at is None
    assert stored.reviewed_by is None
    assert stored.payload["proxy"] is True
    assert provider.calls == ["203.0.113.5"]


@pytest.mark.asyncio
async def test_repeated_flag_keeps_streak_start(make_service, provider_factory, repo, now) -> None:
    first_flagged = now - timedelta(days=4)
    repo.add(
        IpProfile(
            id=4,
            address="198.51.100.9",
            status=ReputationStatus.FLAGGED,
            checked_at=now - timedelta(days=1),
            flagged_at=first_flagged,
        )
    )
    provider = provider_factory({"status": "success", "proxy": False, "hosting": True, "mobile": False})
    service = make_service(provider)

    summary = await service.auto_refresh("198.51.100.9")

    assert summary.flagged_at == first_flagged
    assert summary.checked_at == now


@pytest.mark.asyncio
async def test_lookup_failure_keeps_flagged_status(make_service, provider_factory, repo, now) -> None:
    first_flagged = now - timedelta(days=2)
    repo.add(
        IpProfile(
            id=5,
            address="198.51.100.10",
            status=ReputationStatus.FLAGGED,
            checked_at=now - timedelta(days=1),
            flagged_at=first_flagged,
        )
    )
    service = make_service(provider_factory(error="HTTP 503"))

    summary = await service.force_refresh("198.51.100.10")

    assert summary.status == ReputationStatus.FLAGGED
    assert "HTTP 503" in summary.reason
    assert summary.flagged_at == first_flagged
    stored = await repo.get_by_address("198.51.100.10")
    assert stored.payload == {"error": "HTTP 503"}
    assert stored.checked_at == now


@pytest.mark.asyncio
async def test_lookup_failure_degrades_safe_to_unknown(make_service, provider_factory, repo, now) -> None:
    repo.add(
        IpProfile(
            id=6,
            address="198.51.100.11",
            status=ReputationStatus.SAFE,
            reviewed_at=now - timedelta(days=20),
            reviewed_by="moderator",
        )
    )
    service = make_service(provider_factory(error="timed out"))

    summary = await service.auto_refresh("198.51.100.11")

    assert summary.status == ReputationStatus.UNKNOWN
    assert summary.flagged_at is None
    stored = await repo.get_by_address("198.51.100.11")
    assert stored.reviewed_at is None
    assert stored.reviewed_by is None


@pytest.mark.asyncio
async def test_second_refresh_within_interval_is_noop(make_service, provider, repo, now) -> None:
    repo.add(IpProfile(id=8, address="203.0.113.77"))
    service = make_service(provider)

    first = await service.auto_refresh("203.0.113.77")
    assert first is not None
    assert first.status == ReputationStatus.SAFE
    snapshot = asdict(await repo.get_by_address("203.0.113.77"))

    second = await service.auto_refresh("203.0.113.77")

    assert second is None
    assert asdict(await repo.get_by_address("203.0.113.77")) == snapshot
    assert provider.calls == ["203.0.113.77"]


@pytest.mark.asyncio
async def test_confirm_safe_records_review_and_protects(make_service, provider, repo, now) -> None:
    repo.add(
        IpProfile(
            id=9,
            address="203.0.113.80",
            status=ReputationStatus.FLAGGED,
            checked_at=now - timedelta(days=1),
            flagged_at=now - timedelta(days=1),
        )
    )
    service = make_service(provider)

    summary = await service.confirm_safe("203.0.113.80", " alice ")

    assert summary.status == ReputationStatus.SAFE
    assert summary.provider == MANUAL_PROVIDER
    assert summary.flagged_at is None
    stored = await repo.get_by_address("203.0.113.80")
    assert stored.reviewed_at == now
    assert stored.reviewed_by == "alice"
    assert await service.auto_refresh("203.0.113.80") is None


@pytest.mark.asyncio
async def test_confirm_safe_requires_profile_and_reviewer(make_service, provider, repo) -> None:
    service = make_service(provider)
    with pytest.raises(ProfileNotFound):
        await service.confirm_safe("203.0.113.81", "alice")
    repo.add(IpProfile(id=10, address="203.0.113.81"))
    with pytest.raises(ValueError):
        await service.confirm_safe("203.0.113.81", "  ")


@pytest.mark.asyncio
async def test_store_failure_propagates(provider, now) -> None:
    from wikiguard.moderation.domain.ip_refresh import IpReputationService

    class BrokenRepository:
        async def get_by_address(self, address: str):
            return IpProfile(id=1, address=address)

        async def update_reputation(self, profile_id, update):
            raise RuntimeError("disk full")

    service = IpReputationService(BrokenRepository(), provider, clock=lambda: now)  # type: ignore[arg-type]
    with pytest.raises(RuntimeError, match="disk full"):
        await service.force_refresh("203.0.113.5")


@pytest.mark.asyncio
async def test_count_flagged_and_find_by_hash(make_service, provider, repo) -> None:
    repo.add(IpProfile(id=11, address="203.0.113.90", status=ReputationStatus.FLAGGED, hash="abc123"))
    repo.add(IpProfile(id=12, address="203.0.113.91", status=ReputationStatus.SAFE, hash="def456"))
    service = make_service(provider)

    assert await service.count_flagged() == 1
    found = await service.find_by_hash(" abc123 ")
    assert found is not None and found.id == 11
    assert await service.find_by_hash("") is None


@pytest.mark.asyncio
async def test_broken_config_file_does_not_break_refresh(tmp_path, repo, provider, now) -> None:
    import os

    from wikiguard.moderation.domain.ip_refresh import IpReputationService
    from wikiguard.moderation.domain.reputation_config import IpReputationConfigSource

    path = tmp_path / "ip.yml"
    path.write_text("ip_reputation:\n  refresh_interval_hours: 2\n", encoding="utf-8")
    os.utime(path, (1_700_000_000, 1_700_000_000))
    repo.add(IpProfile(id=13, address="203.0.113.5", checked_at=now - timedelta(hours=3)))
    service = IpReputationService(repo, provider, config=IpReputationConfigSource(path), clock=lambda: now)
    assert len(await service.list_due()) == 1

    path.write_text("ip_reputation: [unterminated\n", encoding="utf-8")
    os.utime(path, (1_700_000_100, 1_700_000_100))

    assert len(await service.list_due()) == 1
    summary = await service.force_refresh("203.0.113.5")
    assert summary is not None
    assert summary.status == ReputationStatus.SAFE
    assert provider.calls == ["203.0.113.5"]


@pytest.mark.asyncio
async def test_confirm_safe_rejects_non_string_reviewer(make_service, provider, repo) -> None:
    repo.add(IpProfile(id=14, address="203.0.113.82"))
    service = make_service(provider)
    with pytest.raises(ValueError):
        await service.confirm_safe("203.0.113.82", 42)  # type: ignore[arg-type]
