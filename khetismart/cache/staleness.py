from enum import Enum
from typing import Dict, Mapping, Optional

from khetismart.cache.codec import CacheEntry

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


class ResourceClass(str, Enum):
    MARKET = "market"
    HISTORY = "history"
    PREDICTION = "prediction"


DEFAULT_TTLS_MS: Dict[ResourceClass, int] = {
    ResourceClass.MARKET: 1 * HOUR_MS,
    ResourceClass.HISTORY: 24 * HOUR_MS,
    ResourceClass.PREDICTION: 6 * HOUR_MS,
}


def is_expired(entry: CacheEntry, now_ms: int, ttl_ms: int) -> bool:
    """Absolute expiry from write time; a negative age (clock moved back) counts as expired."""
    age = now_ms - entry.timestamp
    if age < 0:
        return True
    return age >= ttl_ms


class StalenessPolicy:
    """Fixed time-to-live per resource class."""

    def __init__(self, ttls_ms: Optional[Mapping[ResourceClass, int]] = None) -> None:
        self.ttls_ms = dict(DEFAULT_TTLS_MS)
        if ttls_ms:
            for resource_class, ttl in ttls_ms.items():
                if ttl < 0:
                    raise ValueError(f"TTL for {resource_class.value} cannot be negative: {ttl}")
                self.ttls_ms[ResourceClass(resource_class)] = int(ttl)

    @classmethod
    def from_minutes(cls, ttl_minutes: Mapping[str, float]) -> "StalenessPolicy":
        return cls(
            {ResourceClass(name): int(minutes * MINUTE_MS) for name, minutes in ttl_minutes.items()}
        )

    def ttl_for(self, resource_class: ResourceClass) -> int:
        return self.ttls_ms[resource_class]

    def is_expired(self, entry: CacheEntry, now_ms: int, resource_class: ResourceClass) -> bool:
        return is_expired(entry, now_ms, self.ttl_for(resource_class))
