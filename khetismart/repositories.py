"""Typed repositories, one per cached resource class.

Views talk to these instead of building storage keys themselves.  Each one
owns a ``FetchThroughCache`` configured with the right key, time-to-live,
(de)serialisation and neutral value for its payload type.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional

from pydantic import TypeAdapter

from khetismart.cache import (
    DEFAULT_NAMESPACE,
    FetchOutcome,
    FetchThroughCache,
    ResourceClass,
    ResourceKey,
    StalenessPolicy,
    epoch_millis,
)
from khetismart.llm_utils import RemoteDataAdapter
from khetismart.market import HistoricalPrice, MarketSnapshot
from khetismart.storage import KeyValueStore

_HISTORY = TypeAdapter(List[HistoricalPrice])


def _prediction_from_data(data: Any) -> str:
    if not isinstance(data, str):
        raise ValueError(f"expected a prediction string, got {type(data).__name__}")
    return data


class _Repository(ABC):
    resource_class: ResourceClass

    def __init__(
        self,
        store: KeyValueStore,
        adapter: RemoteDataAdapter,
        policy: Optional[StalenessPolicy] = None,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Callable[[], int] = epoch_millis,
        coalesce: bool = True,
        normalize_keys: bool = True,
    ) -> None:
        self.normalize_keys = normalize_keys
        self.cache = FetchThroughCache(
            store,
            self.resource_class,
            adapter.load,
            policy=policy,
            namespace=namespace,
            clock=clock,
            coalesce=coalesce,
            **self._codec(),
        )

    @abstractmethod
    def _codec(self) -> dict:
        """Return the to_data, from_data, is_empty and empty hooks for this payload type."""

    def _crop_key(self, crop_name: str) -> ResourceKey:
        return ResourceKey.for_crop(self.resource_class, crop_name, normalize=self.normalize_keys)


class MarketSnapshotStore(_Repository):
    resource_class = ResourceClass.MARKET

    def _codec(self) -> dict:
        return dict(
            to_data=lambda snapshot: snapshot.model_dump(mode="json"),
            from_data=MarketSnapshot.model_validate,
            is_empty=lambda snapshot: not snapshot.items,
            empty=MarketSnapshot,
        )

    async def get(self, force_refresh: bool = False) -> FetchOutcome[MarketSnapshot]:
        return await self.cache.get(ResourceKey.market(), force_refresh=force_refresh)

    def invalidate(self) -> None:
        self.cache.invalidate(ResourceKey.market())


class HistoricalSeriesStore(_Repository):
    resource_class = ResourceClass.HISTORY

    def _codec(self) -> dict:
        return dict(
            to_data=lambda series: _HISTORY.dump_python(series, mode="json"),
            from_data=_HISTORY.validate_python,
            is_empty=lambda series: not series,
            empty=list,
        )

    async def get(
        self, crop_name: str, force_refresh: bool = False
    ) -> FetchOutcome[List[HistoricalPrice]]:
        return await self.cache.get(self._crop_key(crop_name), force_refresh=force_refresh)

    def invalidate(self, crop_name: str) -> None:
        self.cache.invalidate(self._crop_key(crop_name))


class PredictionStore(_Repository):
    resource_class = ResourceClass.PREDICTION

    def _codec(self) -> dict:
        return dict(
            to_data=lambda text: text,
            from_data=_prediction_from_data,
            is_empty=lambda text: not text.strip(),
            empty=str,
        )

    async def get(self, crop_name: str, force_refresh: bool = False) -> FetchOutcome[str]:
        return await self.cache.get(self._crop_key(crop_name), force_refresh=force_refresh)

    def invalidate(self, crop_name: str) -> None:
        self.cache.invalidate(self._crop_key(crop_name))
