"""SaaS multi-tenant layer: quota tiers, validation, and the quota ledger."""

from src.saas.quota import QUOTA_LABELS, QuotaLedger
from src.saas.store import InMemoryQuotaStore
from src.saas.tiers import get_tier_limits, is_valid_tier
from src.saas.validation import (
    QuotaIncrement,
    QuotaReset,
    QuotaUpdate,
    validate_increment,
    validate_reset,
    validate_update,
)

__all__ = [
    "QUOTA_LABELS",
    "QuotaLedger",
    "InMemoryQuotaStore",
    "get_tier_limits",
    "is_valid_tier",
    "QuotaIncrement",
    "QuotaReset",
    "QuotaUpdate",
    "validate_increment",
    "validate_reset",
    "validate_update",
]
