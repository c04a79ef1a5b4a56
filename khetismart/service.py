"""Application context and the market board view-model.

``KhetiSmartApp`` builds the store, the Gemini adapter, the three cached
repositories and the task scheduler from configuration.  ``MarketBoard`` holds
what the market screen displays and drives the periodic background refresh.
"""

import asyncio
import itertools
import logging
from typing import Callable, Dict, List, Optional

from khetismart.advisor import FarmingAdvisor
from khetismart.cache import StalenessPolicy, epoch_millis
from khetismart.config import ModelConfig, model_config
from khetismart.exchange import fetch_npr_to_usd
from khetismart.llm_utils import GeminiGenerator, RemoteDataAdapter, TextGenerator
from khetismart.market import (
    ALL_CATEGORIES,
    DEFAULT_USD_RATE,
    HistoricalPrice,
    MarketItem,
    SourceRef,
    convert_price,
    filter_items,
)
from khetismart.repositories import HistoricalSeriesStore, MarketSnapshotStore, PredictionStore
from khetismart.scheduler import TaskScheduler
from khetismart.storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)

MARKET_ERROR = "Could not retrieve market prices. Please check connection."
PREDICTION_UNAVAILABLE = "Could not fetch market prediction."

RateFetcher = Callable[[], Optional[float]]


class MarketBoard:
    """State behind the market screen.

    The first load is served from the cache when possible.  Manual refreshes
    and the periodic background refresh bypass it.  A background refresh that
    yields nothing leaves the displayed items, sources and error untouched;
    any refresh that yields items clears the error.
    """

    _board_ids = itertools.count(1)

    def __init__(
        self,
        snapshots: MarketSnapshotStore,
        history: HistoricalSeriesStore,
        predictions: PredictionStore,
        scheduler: TaskScheduler,
        refresh_interval_seconds: float = 15 * 60.0,
        usd_rate: float = DEFAULT_USD_RATE,
        rate_fetcher: Optional[RateFetcher] = None,
    ) -> None:
        self.refresh_task_name = f"market-auto-refresh-{next(self._board_ids)}"
        self._snapshots = snapshots
        self._history = history
        self._predictions = predictions
        self.scheduler = scheduler
        self.refresh_interval_seconds = refresh_interval_seconds
        self.usd_rate = usd_rate
        self._rate_fetcher = rate_fetcher

        self.items: List[MarketItem] = []
        self.sources: List[SourceRef] = []
        self.error: Optional[str] = None
        self.loading = False
        self.showing_cached = False
        self.history_by_item: Dict[str, List[HistoricalPrice]] = {}
        self.prediction_by_item: Dict[str, str] = {}

        self.category = ALL_CATEGORIES
        self.query = ""
        self.currency = "NPR"

    async def mount(self) -> None:
        await self.load_prices(force_refresh=False)
        await self.load_exchange_rate()
        await self.scheduler.schedule(
            self.refresh_task_name, self.refresh_interval_seconds, self._background_refresh
        )

    async def unmount(self) -> None:
        await self.scheduler.cancel(self.refresh_task_name)

    async def load_exchange_rate(self) -> None:
        """Replace the configured rate with a live one; keep it when the lookup fails."""
        if self._rate_fetcher is None:
            return
        loop = asyncio.get_running_loop()
        rate = await loop.run_in_executor(None, self._rate_fetcher)
        if rate is not None:
            self.usd_rate = rate

    async def refresh(self) -> None:
        await self.load_prices(force_refresh=True)

    async def _background_refresh(self) -> None:
        await self.load_prices(force_refresh=True, background=True)

    async def load_prices(self, force_refresh: bool = False, background: bool = False) -> None:
        if not background:
            self.loading = True
            self.error = None
        try:
            outcome = await self._snapshots.get(force_refresh=force_refresh)
        finally:
            if not background:
                self.loading = False

        snapshot = outcome.value
        if snapshot.items:
            self.items = list(snapshot.items)
            self.sources = list(snapshot.sources)
            self.showing_cached = outcome.from_cache
            self.error = None
            return

        if background:
            logger.debug("Background market refresh returned nothing; keeping current prices")
            return

        self.error = MARKET_ERROR
        if not self.items and outcome.stale is not None and outcome.stale.items:
            self.items = list(outcome.stale.items)
            self.sources = list(outcome.stale.sources)
            self.showing_cached = True

    async def history_for(self, item: MarketItem) -> List[HistoricalPrice]:
        if item.id in self.history_by_item:
            return self.history_by_item[item.id]
        outcome = await self._history.get(item.name)
        series = outcome.value or outcome.stale or []
        if series:
            self.history_by_item[item.id] = series
        return series

    async def prediction_for(self, item: MarketItem) -> str:
        if item.id in self.prediction_by_item:
            return self.prediction_by_item[item.id]
        outcome = await self._predictions.get(item.name)
        if outcome.value:
            self.prediction_by_item[item.id] = outcome.value
            return outcome.value
        return outcome.stale or PREDICTION_UNAVAILABLE

    def visible_items(self) -> List[MarketItem]:
        return filter_items(self.items, self.category, self.query)

    def display_price(self, item: MarketItem) -> float:
        return convert_price(item.price, self.currency, self.usd_rate)

    def toggle_currency(self) -> str:
        self.currency = "USD" if self.currency == "NPR" else "NPR"
        return self.currency


class KhetiSmartApp:
    """Owns the shared collaborators; views receive them instead of building their own."""

    def __init__(
        self,
        settings: Optional[ModelConfig] = None,
        store: Optional[KeyValueStore] = None,
        generator: Optional[TextGenerator] = None,
        clock: Callable[[], int] = epoch_millis,
        scheduler: Optional[TaskScheduler] = None,
        rate_fetcher: Optional[RateFetcher] = None,
    ) -> None:
        self.settings = settings or model_config
        if rate_fetcher is None and self.settings.market.live_exchange_rate:
            rate_fetcher = fetch_npr_to_usd
        self.rate_fetcher = rate_fetcher
        cache_settings = self.settings.cache

        self.store = store if store is not None else JsonFileStore(
            cache_settings.store_dir, cache_settings.quota_bytes
        )
        self.generator = generator or GeminiGenerator(self.settings.model_name)
        self.adapter = RemoteDataAdapter(self.generator, use_search=self.settings.use_search)
        self.scheduler = scheduler or TaskScheduler()

        repository_kwargs = dict(
            policy=StalenessPolicy.from_minutes(cache_settings.ttl_minutes),
            namespace=cache_settings.namespace,
            clock=clock,
            coalesce=cache_settings.coalesce_requests,
            normalize_keys=cache_settings.normalize_keys,
        )
        self.market = MarketSnapshotStore(self.store, self.adapter, **repository_kwargs)
        self.history = HistoricalSeriesStore(self.store, self.adapter, **repository_kwargs)
        self.predictions = PredictionStore(self.store, self.adapter, **repository_kwargs)
        self.advisor = FarmingAdvisor(self.generator)

    def market_board(self) -> MarketBoard:
        return MarketBoard(
            self.market,
            self.history,
            self.predictions,
            self.scheduler,
            refresh_interval_seconds=self.settings.refresh_interval_seconds,
            usd_rate=self.settings.market.usd_rate,
            rate_fetcher=self.rate_fetcher,
        )

    async def shutdown(self) -> None:
        await self.scheduler.cancel_all()
