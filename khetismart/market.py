from typing import List, Literal, Optional, Sequence

from pydantic import BaseModel, Field, model_validator


# --- Structured payloads extracted from Gemini replies ---

Trend = Literal["up", "down", "stable"]
Category = Literal["Vegetable", "Fruit", "Grain", "Spice", "Other"]

CATEGORIES: List[str] = ["Vegetable", "Fruit", "Grain", "Spice", "Other"]
ALL_CATEGORIES = "All"

DEFAULT_USD_RATE = 0.0075


class MarketItem(BaseModel):
    """One row of the Kalimati daily price list."""

    id: str = Field(min_length=1, description="kebab-case identifier, unique within a snapshot")
    name: str = Field(description="Item name in English")
    price: float = Field(ge=0, allow_inf_nan=False, description="Average wholesale price in NPR")
    unit: str = Field(default="kg")
    trend: Trend = Field(default="stable")
    category: Category = Field(default="Other")


class SourceRef(BaseModel):
    """A web page the search-grounded reply was built from."""

    title: str = Field(default="")
    uri: str


class MarketSnapshot(BaseModel):
    """The unit of caching for market prices: all items plus their sources."""

    items: List[MarketItem] = Field(default_factory=list)
    sources: List[SourceRef] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> "MarketSnapshot":
        seen = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"duplicate market item id: {item.id!r}")
            seen.add(item.id)
        return self


class HistoricalPrice(BaseModel):
    date: str = Field(description="Display label such as 'Oct 12'")
    price: float = Field(ge=0, allow_inf_nan=False)


# --- Helpers used by the market board ---


def filter_items(
    items: Sequence[MarketItem], category: str = ALL_CATEGORIES, query: str = ""
) -> List[MarketItem]:
    """Filter by category, then by a case-insensitive match on name or category."""
    result = list(items)
    if category != ALL_CATEGORIES:
        result = [item for item in result if item.category == category]

    needle = query.strip().lower()
    if needle:
        result = [
            item
            for item in result
            if needle in item.name.lower() or needle in item.category.lower()
        ]
    return result


def convert_price(price: float, currency: str = "NPR", usd_rate: Optional[float] = None) -> float:
    if currency == "NPR":
        return price
    if currency == "USD":
        return price * (usd_rate if usd_rate is not None else DEFAULT_USD_RATE)
    raise ValueError(f"Unsupported currency: {currency}. Expected 'NPR' or 'USD'.")


_RISING_WORDS = ("rise", "increase", "up", "expensive", "climb", "hike")
_FALLING_WORDS = ("fall", "decrease", "down", "cheap", "drop", "slump")


def prediction_sentiment(text: str) -> str:
    """Classify a prediction as ``up``, ``down`` or ``neutral`` by keyword."""
    lower = text.lower()
    if any(word in lower for word in _RISING_WORDS):
        return "up"
    if any(word in lower for word in _FALLING_WORDS):
        return "down"
    return "neutral"
