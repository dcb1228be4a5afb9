"""Loading and hot-reloading of IP reputation policy knobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Generic, Mapping, TypeVar

import yaml

from wikiguard.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IpReputationConfig:
    refresh_interval: timedelta
    review_protection: timedelta

    @staticmethod
    def from_settings() -> "IpReputationConfig":
        return IpReputationConfig(
            refresh_interval=timedelta(hours=settings.ip_reputation_refresh_hours),
            review_protection=timedelta(days=settings.ip_reputation_review_days),
        )


def _positive(section: Mapping[str, object], key: str, default: float) -> float:
    if key not in section:
        return default
    try:
        value = float(section[key])  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("ignoring invalid %s in ip reputation config", key)
        return default
    if value <= 0:
        logger.warning("ignoring non-positive %s in ip reputation config", key)
        return default
    return value


def load_ip_reputation_config(path: str | Path) -> IpReputationConfig:
    with open(path, "r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError("ip reputation config must be a mapping")
    section = loaded.get("ip_reputation", loaded)
    if not isinstance(section, dict):
        raise ValueError("ip_reputation section must be a mapping")

    defaults = IpReputationConfig.from_settings()
    hours = _positive(section, "refresh_interval_hours", defaults.refresh_interval.total_seconds() / 3600)
    days = _positive(section, "review_protection_days", defaults.review_protection.total_seconds() / 86400)
    return IpReputationConfig(refresh_interval=timedelta(hours=hours), review_protection=timedelta(days=days))


class MtimeCache(Generic[T]):
    """Holds one value derived from a file, reloaded when its mtime changes.

    ``source_version`` is the mtime the cached value was built from; None means
    nothing is cached. A missing file yields ``fallback()`` and clears the cache.
    A file that fails to load keeps the last good value (or ``fallback()``) and
    is retried on the next call.
    """

    def __init__(self, path: str | Path, loader: Callable[[Path], T], fallback: Callable[[], T]) -> None:
        self.path = Path(path)
        self._loader = loader
        self._fallback = fallback
        self.source_version: float | None = None
        self.value: T | None = None

    def refresh(self) -> T:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            if self.source_version is not None:
                logger.warning("ip reputation config disappeared from %s; using defaults", self.path)
            self.invalidate()
            return self._fallback()
        if self.value is not None and self.source_version == mtime:
            return self.value
        try:
            loaded = self._loader(self.path)
        except (yaml.YAMLError, ValueError, OSError) as exc:
            logger.warning(
                "ip reputation config at %s is unreadable; keeping previous values",
                self.path,
                extra={"error": str(exc)},
            )
            return self.value if self.value is not None else self._fallback()
        self.value = loaded
        self.source_version = mtime
        logger.info("loaded ip reputation config", extra={"path": str(self.path)})
        return self.value

    def invalidate(self) -> None:
        self.source_version = None
        self.value = None


class IpReputationConfigSource:
    """Current policy knobs, from YAML when configured and from settings otherwise."""

    def __init__(self, path: str | Path | None = None) -> None:
        self._cache: MtimeCache[IpReputationConfig] | None = None
        if path:
            self._cache = MtimeCache(path, load_ip_reputation_config, IpReputationConfig.from_settings)

    def current(self) -> IpReputationConfig:
        if self._cache is None:
            return IpReputationConfig.from_settings()
        return self._cache.refresh()
