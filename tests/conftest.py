import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from khetismart.llm_utils import GenerationResult
from khetismart.storage import MemoryStore


class FakeClock:
    """Epoch-millis clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class FakeGenerator:
    """Stands in for ``GeminiGenerator``: replays queued replies or raises queued errors."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []
        self.gate = None

    def queue(self, *outcomes):
        self.outcomes.extend(outcomes)

    async def generate_async(self, contents, use_search=False, system_instruction=None):
        self.calls.append(
            {
                "contents": contents,
                "use_search": use_search,
                "system_instruction": system_instruction,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, str):
            return GenerationResult(text=outcome)
        return outcome


def run(coro):
    return asyncio.run(coro)


def grounding_response(text, chunks):
    return SimpleNamespace(
        text=text,
        candidates=[
            SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=chunks))
        ],
    )


MARKET_REPLY = """Here are today's Kalimati prices:
```json
[
  {"id": "tomato-big", "name": "Tomato Big", "price": 65, "unit": "kg", "trend": "up", "category": "Vegetable"},
  {"id": "apple-fuji", "name": "Apple (Fuji)", "price": 280.5, "unit": "kg", "trend": "stable", "category": "Fruit"},
  {"id": "ginger", "name": "Ginger", "price": 120, "unit": "kg", "trend": "down", "category": "Spice"}
]
```
Prices are averages."""

HISTORY_REPLY = '[{"date": "Oct 12", "price": 60}, {"date": "Oct 13", "price": 62.5}]'


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def generator():
    return FakeGenerator()
