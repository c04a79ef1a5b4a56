"""Live NPR to USD rate for the market board's currency toggle."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

EXCHANGE_RATE_URL = "https://api.exchangerate-api.com/v4/latest/NPR"


def fetch_npr_to_usd(url: str = EXCHANGE_RATE_URL, timeout: float = 10) -> Optional[float]:
    """Return the current NPR to USD rate, or ``None`` when it cannot be fetched."""
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Failed to fetch exchange rate: %s", exc)
        return None

    rates = data.get("rates") if isinstance(data, dict) else None
    rate = rates.get("USD") if isinstance(rates, dict) else None
    if isinstance(rate, bool) or not isinstance(rate, (int, float)) or rate <= 0:
        logger.warning("Exchange rate response has no usable USD rate")
        return None
    return float(rate)
