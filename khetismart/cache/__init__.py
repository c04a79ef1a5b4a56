from .codec import CacheEntry, decode, encode
from .fetch_through import FetchOutcome, FetchThroughCache, epoch_millis
from .keys import DEFAULT_NAMESPACE, ResourceKey, normalize_crop_name
from .staleness import DEFAULT_TTLS_MS, ResourceClass, StalenessPolicy, is_expired

__all__ = [
    "CacheEntry",
    "decode",
    "encode",
    "FetchOutcome",
    "FetchThroughCache",
    "epoch_millis",
    "DEFAULT_NAMESPACE",
    "ResourceKey",
    "normalize_crop_name",
    "DEFAULT_TTLS_MS",
    "ResourceClass",
    "StalenessPolicy",
    "is_expired",
]
