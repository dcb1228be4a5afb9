from datetime import datetime, timezone
from typing import Any, Mapping

import pytest

from wikiguard.moderation.domain.ip_refresh import IpReputationService
from wikiguard.moderation.domain.ip_reputation import InMemoryIpProfileRepository, LookupFailed

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class StubProvider:
	"""Lookup provider returning a canned response, or failing on demand."""

	name = "ip-api.com"

	def __init__(self, result: Mapping[str, Any] | None = None, *, error: str | None = None) -> None:
		self.result = result if result is not None else {"status": "success", "proxy": False, "hosting": False, "mobile": False}
		self.error = error
		self.calls: list[str] = []

	async def lookup(self, address: str) -> Mapping[str, Any]:
		self.calls.append(address)
		if self.error is not None:
			raise LookupFailed(address, self.error)
		return self.result


@pytest.fixture
def now() -> datetime:
	return FIXED_NOW


@pytest.fixture
def repo() -> InMemoryIpProfileRepository:
	return InMemoryIpProfileRepository()


@pytest.fixture
def provider() -> StubProvider:
	return StubProvider()


@pytest.fixture
def provider_factory():
	return StubProvider


@pytest.fixture
def make_service(repo, now):
	def _make(provider: StubProvider) -> IpReputationService:
		return IpReputationService(repo, provider, clock=lambda: now)

	return _make
