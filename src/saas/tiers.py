"""Quota tier table: canonical tier names and their default limits."""

from __future__ import annotations

from config.settings import Settings, get_settings
from src.core.types import QuotaLimits


def is_valid_tier(tier: str, settings: Settings | None = None) -> bool:
    return tier in (settings or get_settings()).quota_tiers


def get_tier_limits(tier: str | None, settings: Settings | None = None) -> QuotaLimits:
    """Limits for ``tier``; unknown or missing tiers use the default tier."""
    cfg = settings or get_settings()
    return QuotaLimits.from_mapping(cfg.quota_tiers[resolve_tier(tier, cfg)])


def resolve_tier(tier: str | None, settings: Settings | None = None) -> str:
    """Canonical tier name actually applied for ``tier``."""
    cfg = settings or get_settings()
    return tier if tier in cfg.quota_tiers else cfg.default_tier
