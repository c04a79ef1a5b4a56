# khetismart/llm_utils.py
from __future__ import annotations

import asyncio
import functools
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from google.genai import types
from pydantic import TypeAdapter, ValidationError

from khetismart.cache.keys import ResourceKey
from khetismart.cache.staleness import ResourceClass
from khetismart.config import app_config, model_config
from khetismart.market import HistoricalPrice, MarketItem, MarketSnapshot, SourceRef
from khetismart.prompts import MARKET_PRICES_PROMPT, history_prompt, prediction_prompt
from khetismart.results import Err, ErrorKind, Ok, Result, TransportError

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)

_MARKET_ITEMS = TypeAdapter(List[MarketItem])
_HISTORY = TypeAdapter(List[HistoricalPrice])


@dataclass
class GenerationResult:
    """Raw model output: reply text plus the grounding sources, if any."""

    text: str
    sources: List[SourceRef] = field(default_factory=list)


class TextGenerator(Protocol):
    async def generate_async(
        self,
        contents: Any,
        use_search: bool = False,
        system_instruction: Optional[str] = None,
    ) -> GenerationResult:
        ...


def extract_sources(response: Any) -> List[SourceRef]:
    """Collect ``{title, uri}`` pairs from grounding metadata; anything malformed is skipped."""
    try:
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return []
        metadata = getattr(candidates[0], "grounding_metadata", None)
        chunks = list(getattr(metadata, "grounding_chunks", None) or [])
    except (TypeError, KeyError, IndexError):
        return []

    sources: List[SourceRef] = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is None:
            continue
        try:
            sources.append(
                SourceRef(title=getattr(web, "title", None) or "", uri=getattr(web, "uri", None))
            )
        except ValidationError:
            continue
    return sources


def extract_json_array(text: Optional[str]) -> Result[list]:
    """Take the outermost ``[...]`` of a fence-stripped reply and parse it strictly.

    No repair is attempted: a reply that does not parse as-is is discarded whole.
    """
    cleaned = _FENCE_PATTERN.sub("", text or "").strip()
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start == -1 or end == -1 or end < start:
        return Err(ErrorKind.EXTRACT, "no JSON array in model output")

    try:
        parsed = json.loads(cleaned[start : end + 1])
    except (ValueError, RecursionError) as exc:
        return Err(ErrorKind.EXTRACT, f"JSON parse error: {exc}")
    if not isinstance(parsed, list):
        return Err(ErrorKind.EXTRACT, "model output is not a JSON array")
    return Ok(parsed)


class GeminiGenerator:
    """Thin wrapper over ``client.models.generate_content``; every SDK failure becomes ``TransportError``."""

    def __init__(self, model_name: Optional[str] = None, client: Any = None) -> None:
        self.model_name = model_name or model_config.model_name
        self._client = client

    @property
    def client(self):
        return self._client or app_config.get_client()

    def generate(
        self,
        contents: Any,
        use_search: bool = False,
        system_instruction: Optional[str] = None,
    ) -> GenerationResult:
        config_kwargs = {}
        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction
        if use_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]

        try:
            response = self.client.models.generate_content(
                model=f"models/{self.model_name}",
                contents=contents,
                config=types.GenerateContentConfig(**config_kwargs),
            )
            text = response.text or ""
        except Exception as exc:
            raise TransportError(f"Gemini call failed: {exc}") from exc

        return GenerationResult(text=text, sources=extract_sources(response))

    async def generate_async(
        self,
        contents: Any,
        use_search: bool = False,
        system_instruction: Optional[str] = None,
    ) -> GenerationResult:
        loop = asyncio.get_running_loop()
        call = functools.partial(
            self.generate,
            contents,
            use_search=use_search,
            system_instruction=system_instruction,
        )
        return await loop.run_in_executor(None, call)


class RemoteDataAdapter:
    """Turns a resource key into a prompt, calls the model, and validates the reply.

    ``fetch`` reports transport failures as ``Err(TRANSPORT)`` and ``extract``
    reports unusable replies as ``Err(EXTRACT)``; neither raises.
    """

    def __init__(self, generator: Optional[TextGenerator] = None, use_search: Optional[bool] = None):
        self.generator = generator or GeminiGenerator()
        self.use_search = model_config.use_search if use_search is None else use_search

    def prompt_for(self, resource_class: ResourceClass, discriminator: Optional[str] = None) -> str:
        if resource_class is ResourceClass.MARKET:
            return MARKET_PRICES_PROMPT
        if not discriminator:
            raise ValueError(f"A crop name is required for {resource_class.value} lookups.")
        if resource_class is ResourceClass.HISTORY:
            return history_prompt(discriminator)
        return prediction_prompt(discriminator)

    async def fetch(
        self, resource_class: ResourceClass, discriminator: Optional[str] = None
    ) -> Result[GenerationResult]:
        prompt = self.prompt_for(resource_class, discriminator)
        # Predictions rely on seasonal knowledge only; prices need live search.
        use_search = self.use_search and resource_class is not ResourceClass.PREDICTION
        try:
            raw = await self.generator.generate_async(prompt, use_search=use_search)
        except TransportError as exc:
            return Err(ErrorKind.TRANSPORT, str(exc))
        return Ok(raw)

    def extract(self, resource_class: ResourceClass, raw: GenerationResult) -> Result[Any]:
        if resource_class is ResourceClass.PREDICTION:
            return Ok((raw.text or "").strip())

        array = extract_json_array(raw.text)
        if not array.ok:
            return array
        try:
            if resource_class is ResourceClass.MARKET:
                items = _MARKET_ITEMS.validate_python(array.value)
                return Ok(MarketSnapshot(items=items, sources=raw.sources))
            return Ok(_HISTORY.validate_python(array.value))
        except ValidationError as exc:
            return Err(
                ErrorKind.EXTRACT,
                f"{resource_class.value} payload failed validation: {exc.error_count()} error(s)",
            )

    async def load(self, key: ResourceKey) -> Result[Any]:
        fetched = await self.fetch(key.resource_class, key.discriminator)
        if not fetched.ok:
            return fetched
        extracted = self.extract(key.resource_class, fetched.value)
        if not extracted.ok:
            logger.warning("Discarding %s reply: %s", key.resource_class.value, extracted.detail)
        return extracted
