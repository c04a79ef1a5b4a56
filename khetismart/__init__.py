"""KhetiSmart market-data client: cached Gemini lookups for Kalimati prices."""
