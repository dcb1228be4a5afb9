"""ip-api.com lookup client used by the IP reputation engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from wikiguard.moderation.domain.ip_reputation import IpLookupProvider, LookupFailed
from wikiguard.settings import settings

LOOKUP_FIELDS = "status,message,query,isp,org,as,proxy,hosting,mobile"


@dataclass
class IpApiLookupProvider(IpLookupProvider):
    """Looks addresses up against the ip-api.com JSON endpoint."""

    http: httpx.AsyncClient
    base_url: str = settings.ip_reputation_provider_url
    request_timeout: float = settings.ip_reputation_timeout_seconds
    user_agent: str = settings.ip_reputation_user_agent
    name: str = "ip-api.com"

    async def lookup(self, address: str) -> Mapping[str, Any]:
        url = f"{self.base_url}/{quote(address, safe='')}"
        try:
            response = await self.http.get(
                url,
                params={"fields": LOOKUP_FIELDS},
                headers={"user-agent": self.user_agent},
                timeout=self.request_timeout,
            )
        except httpx.TimeoutException as exc:
            raise LookupFailed(address, "timed out") from exc
        except httpx.HTTPError as exc:
            raise LookupFailed(address, str(exc) or exc.__class__.__name__) from exc
        if not response.is_success:
            raise LookupFailed(address, f"HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError as exc:
            raise LookupFailed(address, "invalid JSON response") from exc
        if not isinstance(body, dict):
            raise LookupFailed(address, "unexpected response shape")
        return body
