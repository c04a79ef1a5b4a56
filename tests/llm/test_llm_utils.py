from types import SimpleNamespace

import pytest

from conftest import FakeGenerator, HISTORY_REPLY, MARKET_REPLY, grounding_response, run
from khetismart import llm_utils
from khetismart.cache.keys import ResourceKey
from khetismart.cache.staleness import ResourceClass
from khetismart.llm_utils import (
    GeminiGenerator,
    GenerationResult,
    RemoteDataAdapter,
    extract_json_array,
    extract_sources,
)
from khetismart.market import MarketSnapshot, SourceRef
from khetismart.results import ErrorKind, TransportError


class FakeModels:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def fake_types(monkeypatch):
    class FakeGenerateContentConfig:
        def __init__(self, **kwargs):
            self.kwargs = kwargs

    class FakeTool:
        def __init__(self, **kwargs):
            self.kwargs = kwargs

    class FakeGoogleSearch:
        pass

    monkeypatch.setattr(
        llm_utils,
        "types",
        SimpleNamespace(
            GenerateContentConfig=FakeGenerateContentConfig,
            Tool=FakeTool,
            GoogleSearch=FakeGoogleSearch,
        ),
    )


def web_chunk(title, uri):
    return SimpleNamespace(web=SimpleNamespace(title=title, uri=uri))


# --- extract_json_array ---


def test_extracts_array_wrapped_in_prose_and_fences():
    text = 'Here is the data:\n```json\n[{"id":"a","price":1}]\n```\nThanks'

    result = extract_json_array(text)

    assert result.ok
    assert result.value == [{"id": "a", "price": 1}]


def test_text_without_brackets_is_an_extraction_failure():
    result = extract_json_array("no brackets here")

    assert not result.ok
    assert result.kind is ErrorKind.EXTRACT


@pytest.mark.parametrize(
    "text",
    [
        None,
        "",
        "] before [",
        '[{"id": "a",}]',
        "[{'id': 'a'}]",
        '[{"id": "a"}',
        '```json\n[{"id": "a"}, {"id": \n```',
    ],
)
def test_malformed_output_is_discarded_without_repair(text):
    assert not extract_json_array(text).ok


def test_uses_outermost_bracket_pair():
    text = 'Note [1]: prices below.\n[{"date": "Oct 1", "price": 5}]'

    # The slice spans from the first "[" to the last "]" and is not valid JSON.
    assert not extract_json_array(text).ok


def test_uppercase_fence_is_stripped():
    assert extract_json_array("```JSON\n[1, 2]\n```").value == [1, 2]


# --- extract_sources ---


def test_sources_come_from_grounding_chunks():
    response = grounding_response(
        "",
        [
            web_chunk("Kalimati Market", "https://kalimatimarket.gov.np"),
            SimpleNamespace(web=None),
            web_chunk(None, "https://example.org/prices"),
        ],
    )

    assert extract_sources(response) == [
        SourceRef(title="Kalimati Market", uri="https://kalimatimarket.gov.np"),
        SourceRef(title="", uri="https://example.org/prices"),
    ]


@pytest.mark.parametrize(
    "response",
    [
        SimpleNamespace(text="x"),
        SimpleNamespace(candidates=[]),
        SimpleNamespace(candidates=None),
        SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=None)]),
        SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=SimpleNamespace(grounding_chunks=5))]),
        SimpleNamespace(candidates={"first": 1}),
    ],
)
def test_missing_or_malformed_metadata_yields_no_sources(response):
    assert extract_sources(response) == []


def test_chunk_without_uri_is_skipped():
    response = grounding_response("", [web_chunk("No link", None)])

    assert extract_sources(response) == []


# --- GeminiGenerator ---


def test_generator_sends_search_tool_and_collects_sources():
    response = grounding_response(MARKET_REPLY, [web_chunk("Kalimati", "https://kalimatimarket.gov.np")])
    models = FakeModels([response])
    generator = GeminiGenerator(model_name="gemini-2.5-flash", client=SimpleNamespace(models=models))

    result = generator.generate("prompt", use_search=True)

    assert result.text == MARKET_REPLY
    assert result.sources == [SourceRef(title="Kalimati", uri="https://kalimatimarket.gov.np")]
    call = models.calls[0]
    assert call["model"] == "models/gemini-2.5-flash"
    assert call["contents"] == "prompt"
    assert len(call["config"].kwargs["tools"]) == 1


def test_generator_passes_system_instruction_without_tools():
    models = FakeModels([SimpleNamespace(text="advice", candidates=[])])
    generator = GeminiGenerator(model_name="gemini-2.5-flash", client=SimpleNamespace(models=models))

    result = run(generator.generate_async("question", system_instruction="be brief"))

    assert result.text == "advice"
    assert models.calls[0]["config"].kwargs == {"system_instruction": "be brief"}


def test_generator_treats_missing_text_as_empty():
    models = FakeModels([SimpleNamespace(text=None, candidates=[])])
    generator = GeminiGenerator(model_name="gemini-2.5-flash", client=SimpleNamespace(models=models))

    assert generator.generate("prompt").text == ""


def test_generator_wraps_sdk_errors_as_transport_errors():
    models = FakeModels([ConnectionError("network down")])
    generator = GeminiGenerator(model_name="gemini-2.5-flash", client=SimpleNamespace(models=models))

    with pytest.raises(TransportError) as excinfo:
        generator.generate("prompt")
    assert isinstance(excinfo.value.__cause__, ConnectionError)


# --- RemoteDataAdapter ---


def test_market_load_returns_validated_snapshot():
    sources = [SourceRef(title="Kalimati", uri="https://kalimatimarket.gov.np")]
    generator = FakeGenerator([GenerationResult(text=MARKET_REPLY, sources=sources)])
    adapter = RemoteDataAdapter(generator, use_search=True)

    result = run(adapter.load(ResourceKey.market()))

    assert result.ok
    snapshot = result.value
    assert isinstance(snapshot, MarketSnapshot)
    assert [item.id for item in snapshot.items] == ["tomato-big", "apple-fuji", "ginger"]
    assert snapshot.items[1].price == 280.5
    assert snapshot.sources == sources
    assert generator.calls[0]["use_search"] is True


def test_history_load_uses_crop_name_in_prompt():
    generator = FakeGenerator([HISTORY_REPLY])
    adapter = RemoteDataAdapter(generator, use_search=True)

    result = run(adapter.load(ResourceKey.for_crop(ResourceClass.HISTORY, "Tomato Big")))

    assert [point.price for point in result.value] == [60, 62.5]
    assert "tomato big" in generator.calls[0]["contents"]


def test_prediction_is_trimmed_text_without_search():
    generator = FakeGenerator(["  Prices should rise ahead of Dashain.\n"])
    adapter = RemoteDataAdapter(generator, use_search=True)

    result = run(adapter.load(ResourceKey.for_crop(ResourceClass.PREDICTION, "onion")))

    assert result.value == "Prices should rise ahead of Dashain."
    assert generator.calls[0]["use_search"] is False


def test_transport_failure_is_reported_not_raised():
    adapter = RemoteDataAdapter(FakeGenerator([TransportError("timeout")]), use_search=False)

    result = run(adapter.fetch(ResourceClass.MARKET))

    assert not result.ok
    assert result.kind is ErrorKind.TRANSPORT
    assert "timeout" in result.detail


@pytest.mark.parametrize(
    "reply",
    [
        '[{"id": "a", "name": "A", "price": -3, "unit": "kg", "trend": "up", "category": "Fruit"}]',
        '[{"id": "a", "name": "A", "price": 3, "unit": "kg", "trend": "sideways", "category": "Fruit"}]',
        '[{"id": "a", "name": "A", "price": 3, "unit": "kg", "trend": "up", "category": "Meat"}]',
        '[{"id": "a", "name": "A", "price": 3}, {"id": "a", "name": "B", "price": 4}]',
        '[{"name": "A", "price": 3}]',
        '["tomato", "onion"]',
        "I could not find today's price list.",
    ],
)
def test_invalid_market_payload_is_discarded_whole(reply):
    adapter = RemoteDataAdapter(FakeGenerator(), use_search=False)

    result = adapter.extract(ResourceClass.MARKET, GenerationResult(text=reply))

    assert not result.ok
    assert result.kind is ErrorKind.EXTRACT


def test_empty_market_array_is_a_valid_empty_snapshot():
    adapter = RemoteDataAdapter(FakeGenerator(), use_search=False)

    result = adapter.extract(ResourceClass.MARKET, GenerationResult(text="[]"))

    assert result.ok
    assert result.value.items == []


def test_crop_lookups_need_a_crop_name():
    adapter = RemoteDataAdapter(FakeGenerator(), use_search=False)

    with pytest.raises(ValueError):
        adapter.prompt_for(ResourceClass.HISTORY)
