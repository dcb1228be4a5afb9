"""Lightweight service container shared by moderation modules."""

from __future__ import annotations

from typing import Optional

import asyncpg
import httpx

from wikiguard.infra import postgres
from wikiguard.moderation.domain.ip_refresh import IpReputationService
from wikiguard.moderation.domain.ip_reputation import (
    InMemoryIpProfileRepository,
    IpLookupProvider,
    IpProfileRepository,
    UnconfiguredLookupProvider,
)
from wikiguard.moderation.domain.reputation_config import IpReputationConfigSource
from wikiguard.moderation.infra.ip_api_client import IpApiLookupProvider
from wikiguard.moderation.infra.ip_profile_repo import PostgresIpProfileRepository
from wikiguard.settings import settings

_ip_repository: IpProfileRepository = InMemoryIpProfileRepository()
_ip_provider: IpLookupProvider = UnconfiguredLookupProvider()
_ip_config = IpReputationConfigSource(settings.ip_reputation_config_path)
_ip_reputation_service = IpReputationService(_ip_repository, _ip_provider, config=_ip_config)


def configure(
    *,
    ip_repository: Optional[IpProfileRepository] = None,
    ip_provider: Optional[IpLookupProvider] = None,
    ip_config: Optional[IpReputationConfigSource] = None,
    ip_reputation_service: Optional[IpReputationService] = None,
) -> None:
    global _ip_repository, _ip_provider, _ip_config, _ip_reputation_service
    if ip_repository is not None:
        _ip_repository = ip_repository
    if ip_provider is not None:
        _ip_provider = ip_provider
    if ip_config is not None:
        _ip_config = ip_config
    _ip_reputation_service = ip_reputation_service or IpReputationService(
        _ip_repository,
        _ip_provider,
        config=_ip_config,
    )


def configure_postgres(
    pool: asyncpg.Pool,
    http: httpx.AsyncClient,
    *,
    ip_reputation_config_path: Optional[str] = None,
) -> None:
    config_path = ip_reputation_config_path or settings.ip_reputation_config_path
    configure(
        ip_repository=PostgresIpProfileRepository(pool),
        ip_provider=IpApiLookupProvider(http=http),
        ip_config=IpReputationConfigSource(config_path),
    )


async def bootstrap(http: httpx.AsyncClient) -> IpReputationService:
    """Wire production adapters using the shared asyncpg pool."""

    pool = await postgres.get_pool()
    configure_postgres(pool, http)
    return _ip_reputation_service


def get_ip_repository() -> IpProfileRepository:
    return _ip_repository


def get_ip_provider() -> IpLookupProvider:
    return _ip_provider


def get_ip_reputation_service() -> IpReputationService:
    return _ip_reputation_service
