"""Marketplace policy — configuration loaded from config/marketplace_policy.json.

Usage:
    policy = MarketplacePolicy.from_config_dir(Path("config"))
    policy = MarketplacePolicy.default()

Invalid values fail at load time with ValueError rather than surfacing
later as odd runtime behaviour.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


POLICY_FILENAME = "marketplace_policy.json"

DEFAULT_ADMIN_IDS = ("admin-001", "admin-002")
DEFAULT_EARNINGS_ESTIMATE = 2500
DEFAULT_STORAGE_PREFIX = "connecto"
DEFAULT_WRITE_TIMEOUT_SECONDS = 2.0


class DurabilityMode(str, enum.Enum):
    """When a mutation is written to the backing store.

    SYNCHRONOUS: written before the call returns; a failed write rolls
    the in-memory change back.
    DEFERRED: queued and not awaited; failures are logged and the
    in-memory change is kept.
    """
    SYNCHRONOUS = "synchronous"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class DurabilityPolicy:
    mode: DurabilityMode = DurabilityMode.SYNCHRONOUS
    write_timeout_seconds: float = DEFAULT_WRITE_TIMEOUT_SECONDS


@dataclass(frozen=True)
class MarketplacePolicy:
    """Tunable parameters of the marketplace engine."""
    admin_ids: frozenset[str] = field(
        default_factory=lambda: frozenset(DEFAULT_ADMIN_IDS),
    )
    default_earnings_estimate: int = DEFAULT_EARNINGS_ESTIMATE
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    durability: DurabilityPolicy = field(default_factory=DurabilityPolicy)

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_ids

    def storage_key(self, collection: str) -> str:
        """Namespaced key for a persisted collection."""
        return f"{self.storage_prefix}.{collection}"

    @staticmethod
    def default() -> MarketplacePolicy:
        return MarketplacePolicy()

    @staticmethod
    def from_config_dir(config_dir: Path) -> MarketplacePolicy:
        path = Path(config_dir) / POLICY_FILENAME
        if not path.exists():
            raise FileNotFoundError(f"Marketplace policy not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            return MarketplacePolicy.from_dict(json.load(handle))

    @staticmethod
    def from_dict(data: dict[str, Any]) -> MarketplacePolicy:
        admin_ids = data.get("admin_ids", list(DEFAULT_ADMIN_IDS))
        if not isinstance(admin_ids, list) or not all(
            isinstance(a, str) and a.strip() for a in admin_ids
        ):
            raise ValueError("admin_ids must be a list of non-empty strings")

        estimate = data.get("default_earnings_estimate", DEFAULT_EARNINGS_ESTIMATE)
        if isinstance(estimate, bool) or not isinstance(estimate, int) or estimate < 0:
            raise ValueError(
                f"default_earnings_estimate must be a non-negative integer, got {estimate!r}"
            )

        prefix = data.get("storage_prefix", DEFAULT_STORAGE_PREFIX)
        if not isinstance(prefix, str) or not prefix.strip():
            raise ValueError("storage_prefix must be a non-empty string")

        durability_data = data.get("durability", {})
        try:
            mode = DurabilityMode(durability_data.get("mode", DurabilityMode.SYNCHRONOUS.value))
        except ValueError:
            raise ValueError(
                f"durability.mode must be one of "
                f"{[m.value for m in DurabilityMode]}, got {durability_data.get('mode')!r}"
            ) from None
        timeout = durability_data.get(
            "write_timeout_seconds", DEFAULT_WRITE_TIMEOUT_SECONDS,
        )
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError(
                f"durability.write_timeout_seconds must be > 0, got {timeout!r}"
            )

        return MarketplacePolicy(
            admin_ids=frozenset(a.strip() for a in admin_ids),
            default_earnings_estimate=estimate,
            storage_prefix=prefix.strip(),
            durability=DurabilityPolicy(mode=mode, write_timeout_seconds=float(timeout)),
        )
