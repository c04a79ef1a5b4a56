import getpass
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from google import genai

from khetismart.cache.keys import DEFAULT_NAMESPACE
from khetismart.storage import DEFAULT_QUOTA_BYTES


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class GeminiSettings:
    model_name: str = "gemini-2.5-flash"
    use_search: bool = True


@dataclass
class CacheSettings:
    namespace: str = DEFAULT_NAMESPACE
    store_dir: str = ".cache/khetismart"
    quota_bytes: int = DEFAULT_QUOTA_BYTES
    ttl_minutes: Dict[str, float] = field(
        default_factory=lambda: {"market": 60.0, "history": 24 * 60.0, "prediction": 6 * 60.0}
    )
    coalesce_requests: bool = True
    normalize_keys: bool = True


@dataclass
class MarketSettings:
    refresh_interval_minutes: float = 15.0
    usd_rate: float = 0.0075
    live_exchange_rate: bool = True


class ModelConfig:
    """Runtime settings for the Gemini client, the response cache and the market board."""

    def __init__(self) -> None:
        self.gemini = GeminiSettings(
            model_name=os.getenv("GEMINI_MODEL", os.getenv("MODEL_NAME", "gemini-2.5-flash")),
            use_search=_env_flag("GEMINI_USE_SEARCH", "true"),
        )
        self.cache = CacheSettings(
            namespace=os.getenv("KHETISMART_CACHE_NAMESPACE", DEFAULT_NAMESPACE),
            store_dir=os.getenv("KHETISMART_CACHE_DIR", ".cache/khetismart"),
            quota_bytes=int(os.getenv("KHETISMART_CACHE_QUOTA", str(DEFAULT_QUOTA_BYTES))),
            coalesce_requests=_env_flag("KHETISMART_COALESCE_REQUESTS", "true"),
            normalize_keys=_env_flag("KHETISMART_NORMALIZE_KEYS", "true"),
        )
        self.market = MarketSettings(
            refresh_interval_minutes=float(os.getenv("KHETISMART_REFRESH_MINUTES", "15")),
            live_exchange_rate=_env_flag("KHETISMART_LIVE_EXCHANGE_RATE", "true"),
        )
        self.validate()

    def _get_attr(self, cfg: Any, key: str, default: Any = None) -> Any:
        if cfg is None:
            return default
        if isinstance(cfg, dict):
            return cfg.get(key, default)
        return getattr(cfg, key, default)

    def update_from_config(self, cfg: Any) -> None:
        """Apply overrides from a Hydra ``DictConfig`` (or plain mapping) rooted at the app config."""
        if cfg is None:
            return

        model_cfg = self._get_attr(cfg, "model", None)
        name = self._get_attr(model_cfg, "name", None)
        if name:
            self.gemini.model_name = name
        use_search = self._get_attr(model_cfg, "use_search", None)
        if use_search is not None:
            self.gemini.use_search = bool(use_search)

        cache_cfg = self._get_attr(cfg, "cache", None)
        for key in ("namespace", "store_dir"):
            value = self._get_attr(cache_cfg, key, None)
            if value:
                setattr(self.cache, key, str(value))
        quota = self._get_attr(cache_cfg, "quota_bytes", None)
        if quota is not None:
            self.cache.quota_bytes = int(quota)
        for key in ("coalesce_requests", "normalize_keys"):
            value = self._get_attr(cache_cfg, key, None)
            if value is not None:
                setattr(self.cache, key, bool(value))
        ttl_cfg = self._get_attr(cache_cfg, "ttl_minutes", None)
        for resource in ("market", "history", "prediction"):
            value = self._get_attr(ttl_cfg, resource, None)
            if value is not None:
                self.cache.ttl_minutes[resource] = float(value)

        market_cfg = self._get_attr(cfg, "market", None)
        interval = self._get_attr(market_cfg, "refresh_interval_minutes", None)
        if interval is not None:
            self.market.refresh_interval_minutes = float(interval)
        usd_rate = self._get_attr(market_cfg, "usd_rate", None)
        if usd_rate is not None:
            self.market.usd_rate = float(usd_rate)
        live_rate = self._get_attr(market_cfg, "live_exchange_rate", None)
        if live_rate is not None:
            self.market.live_exchange_rate = bool(live_rate)

        self.validate()

    def validate(self) -> None:
        for resource, minutes in self.cache.ttl_minutes.items():
            if minutes < 0:
                raise ValueError(f"cache.ttl_minutes.{resource} cannot be negative: {minutes}")
        if self.cache.quota_bytes <= 0:
            raise ValueError(f"cache.quota_bytes must be positive: {self.cache.quota_bytes}")
        if self.market.refresh_interval_minutes <= 0:
            raise ValueError(
                "market.refresh_interval_minutes must be positive: "
                f"{self.market.refresh_interval_minutes}"
            )

    @property
    def model_name(self) -> str:
        return self.gemini.model_name

    @property
    def use_search(self) -> bool:
        return self.gemini.use_search

    @property
    def refresh_interval_seconds(self) -> float:
        return self.market.refresh_interval_minutes * 60.0


class AppConfig:
    """Singleton responsible for the API key and the shared Gemini client."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.api_key = None
            cls._instance.client = None
            cls._instance.model_config = ModelConfig()
        return cls._instance

    def configure(self, cfg: Any) -> None:
        self.model_config.update_from_config(cfg)

    def set_api_key(self, key: str) -> None:
        """Configure the Gemini client with the provided API key."""
        self.api_key = key
        try:
            self.client = genai.Client(api_key=self.api_key)
            print("✅ Google API key configured successfully.")
        except Exception as exc:
            print(f"❌ Failed to configure the Google API key: {exc}")
            self.api_key = None
            self.client = None

    def get_client(self):
        """Return the cached Gemini client, prompting for credentials if required."""
        if self.client:
            return self.client

        key_from_env = os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY")
        if key_from_env:
            self.set_api_key(key_from_env)
            return self.client

        print("🔑 Google API key not found.")
        while not self.client:
            try:
                key_input = getpass.getpass("Please enter your Google API key and press Enter: ")
                if key_input:
                    self.set_api_key(key_input)
                else:
                    print("The API key cannot be empty.")
            except (KeyboardInterrupt, EOFError):
                print("\nOperation cancelled. Exiting.")
                raise SystemExit(1)
        return self.client


# Global singleton instances
app_config = AppConfig()
model_config = app_config.model_config
