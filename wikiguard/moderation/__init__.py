"""Moderation package integration helpers exposed to the application."""

from wikiguard.moderation.domain.container import configure, configure_postgres, get_ip_reputation_service

__all__ = ["configure", "configure_postgres", "get_ip_reputation_service"]
