"""Tests for Generator, providers and the Q&A cache (no API keys needed)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from syllabus_gen import Generator
from syllabus_gen._cache import QACache, cache_key
from syllabus_gen.errors import CacheClearDenied, MalformedResponseError
from syllabus_gen.generator import extract_title
from syllabus_gen.providers import gemini, litellm_api
from syllabus_gen.providers._json import coerce, parse_json
from syllabus_gen.rotator import KeyRotator
from syllabus_gen.schemas import AnswersResult, CodingProblemsResult, TopicsResult

SYLLABUS = "# Data Structures\nUnit 1: Arrays and linked lists\nUnit 2: Trees"

TOPICS = {
    "topics": [
        {
            "title": "Arrays",
            "description": "Contiguous storage.",
            "importance_score": 0.8,
            "marks_value": 10,
            "has_diagrams": False,
            "key_points": ["indexing", "traversal", "insertion"],
        },
        {
            "title": "Trees",
            "description": "Hierarchical structures.",
            "importance_score": 0.9,
            "marks_value": 15,
            "has_diagrams": True,
            "key_points": [],
        },
    ],
    "connections": [
        {"topic_a_idx": 0, "topic_b_idx": 1, "relationship": "precedes", "strength": 0.5},
        {"topic_a_idx": 0, "topic_b_idx": 9, "relationship": "dangling", "strength": 0.1},
    ],
}

QAS = {
    "questions_answers": [
        {"question": f"Q{i}?", "answer": f"A{i}", "unit_reference": None} for i in range(3)
    ]
}


@pytest.fixture
def cache(tmp_path):
    c = QACache(tmp_path / "qas", ttl=60)
    yield c
    c.close()


@pytest.fixture
def gen(cache):
    return Generator(
        model="gemini/gemini-2.0-flash",
        rotator=KeyRotator(["A", "B"]),
        cache=cache,
        retry_delay=0,
    )


def _rate_limit_error():
    e = Exception("quota exceeded")
    e.status_code = 429
    return e


# --- Title extraction ---


class TestExtractTitle:
    def test_markdown_heading(self):
        assert extract_title("## Operating Systems\nrest") == "Operating Systems"

    def test_plain_first_line(self):
        assert extract_title("CS101 Syllabus\nUnit 1") == "CS101 Syllabus"

    def test_fallback(self):
        assert extract_title("\nUnit 1") == "Syllabus Analysis"


# --- Topics ---


class TestExtractTopics:
    def test_topics_and_relationships(self, gen):
        with patch.object(gemini, "call", new=AsyncMock(return_value=(TOPICS, {}))) as call:
            result = gen.extract_topics(SYLLABUS)

        assert result["success"] is True
        assert result["title"] == "Data Structures"
        assert result["topicsCount"] == 2
        arrays, trees = result["topics"]
        assert arrays["id"].startswith("topic-0-")
        assert arrays["content"] == "indexing\ntraversal\ninsertion"
        assert trees["content"] == "Hierarchical structures."
        assert result["relationships"] == [
            {
                "topic_a_id": arrays["id"],
                "topic_b_id": trees["id"],
                "relationship_type": "precedes",
                "relationship_strength": 0.5,
            }
        ]
        args = call.await_args.args
        assert args[0] == "A"
        assert args[1] == "gemini/gemini-2.0-flash"
        assert "Syllabus Title: Data Structures" in args[2]
        assert args[3] is TopicsResult

    def test_missing_content(self, gen):
        with pytest.raises(ValueError, match="Missing content"):
            gen.extract_topics("")

    def test_retries_across_keys_then_marks(self, gen):
        errors = [_rate_limit_error() for _ in range(3)]
        with patch.object(gemini, "call", new=AsyncMock(side_effect=errors)) as call:
            with pytest.raises(Exception) as exc_info:
                gen.extract_topics(SYLLABUS)
        assert exc_info.value is errors[-1]
        assert [c.args[0] for c in call.await_args_list] == ["A", "B", "A"]
        states = gen.status()["key_states"]
        assert states[0]["is_exhausted"] and not states[1]["is_exhausted"]

    def test_runtime_error_from_upstream_reraised_unchanged(self, gen):
        """A RuntimeError from the model call must reach the caller as-is."""
        err = RuntimeError("upstream event loop is closed")
        with patch.object(gemini, "call", new=AsyncMock(side_effect=err)) as call:
            with pytest.raises(RuntimeError) as exc_info:
                gen.extract_topics(SYLLABUS)
        assert exc_info.value is err
        assert call.await_count == 3

    def test_not_implemented_error_reraised_unchanged(self, gen):
        err = NotImplementedError("streaming not supported")
        with patch.object(gemini, "call", new=AsyncMock(side_effect=err)):
            with pytest.raises(NotImplementedError) as exc_info:
                gen.generate_coding_topics(SYLLABUS)
        assert exc_info.value is err

    def test_usage_accumulates(self, gen):
        usage = {"input_tokens": 100, "output_tokens": 40}
        with patch.object(gemini, "call", new=AsyncMock(return_value=(TOPICS, usage))):
            gen.extract_topics(SYLLABUS)
            gen.extract_topics(SYLLABUS)
        assert gen.total_input_tokens == 200
        assert gen.total_output_tokens == 80

    def test_non_gemini_routes_to_litellm(self, cache):
        g = Generator(model="gpt-4.1-mini", rotator=KeyRotator(["K"]), cache=cache)
        with patch.object(
            litellm_api, "call", new=AsyncMock(return_value=(TOPICS, {"cost": 0.01}))
        ) as call:
            g.extract_topics(SYLLABUS)
        assert call.await_args.args[0] == "K"
        assert g.total_cost == pytest.approx(0.01)


# --- Q&A with cache ---


class TestTopicAnswers:
    def test_generates_then_serves_from_cache(self, gen):
        topic = {"title": "Arrays", "description": "d", "key_points": ["x", "y"]}
        with patch.object(gemini, "call", new=AsyncMock(return_value=(QAS, {}))) as call:
            first = gen.generate_topic_answers(SYLLABUS, topic)
            second = gen.generate_topic_answers(SYLLABUS, topic)

        assert first == {"success": True, "questions_answers": QAS["questions_answers"]}
        assert second["cached"] is True
        assert second["questions_answers"] == QAS["questions_answers"]
        assert call.await_count == 1
        assert call.await_args.args[3] is AnswersResult
        assert call.await_args.args[4] == 0.7
        assert "Key Points: x, y" in call.await_args.args[2]

    def test_cache_keyed_by_topic_title(self, gen):
        with patch.object(gemini, "call", new=AsyncMock(return_value=(QAS, {}))) as call:
            gen.generate_topic_answers(SYLLABUS, {"title": "Arrays"})
            gen.generate_topic_answers(SYLLABUS, {"title": "Trees"})
        assert call.await_count == 2

    def test_cache_read_error_falls_through(self, gen):
        gen.cache = MagicMock()
        gen.cache.get.side_effect = OSError("disk")
        gen.cache.set.side_effect = OSError("disk")
        with patch.object(gemini, "call", new=AsyncMock(return_value=(QAS, {}))):
            result = gen.generate_topic_answers(SYLLABUS, {"title": "Arrays"})
        assert result["questions_answers"] == QAS["questions_answers"]

    def test_missing_topic(self, gen):
        with pytest.raises(ValueError, match="Missing content or topic"):
            gen.generate_topic_answers(SYLLABUS, {})


class TestQACache:
    def test_key_is_sha256(self):
        k = cache_key("content", "title")
        assert len(k) == 64
        assert k == cache_key("content", "title")
        assert k != cache_key("content", "other")

    def test_clear_counts(self, cache, monkeypatch):
        monkeypatch.delenv("CACHE_CLEAR_KEY", raising=False)
        cache.set("a", {"questions_answers": []})
        cache.set("b", {"questions_answers": []})
        assert cache.clear() == 2
        assert cache.get("a") is None

    def test_clear_requires_key_when_configured(self, cache, monkeypatch):
        monkeypatch.setenv("CACHE_CLEAR_KEY", "s3cret")
        cache.set("a", 1)
        with pytest.raises(CacheClearDenied):
            cache.clear("wrong")
        with pytest.raises(CacheClearDenied):
            cache.clear()
        assert cache.clear("s3cret") == 1

    def test_expired_entries_not_returned(self, tmp_path):
        c = QACache(tmp_path / "short", ttl=-1)
        try:
            c.set("a", 1)
            assert c.get("a") is None
        finally:
            c.close()


# --- Coding practice ---


class TestCoding:
    def test_coding_problems_defaults(self, gen):
        payload = {"coding_problems": []}
        with patch.object(gemini, "call", new=AsyncMock(return_value=(payload, {}))) as call:
            result = gen.generate_coding_problems({"title": "Pointers"})
        assert result == payload
        prompt = call.await_args.args[2]
        assert "Generate 3 coding problems" in prompt
        assert "Difficulty Level: Medium" in prompt
        assert call.await_args.args[3] is CodingProblemsResult

    def test_coding_problems_uses_topic_estimate(self, gen):
        topic = {"title": "Sorting", "difficulty": "Hard", "estimated_problems": 5}
        with patch.object(gemini, "call", new=AsyncMock(return_value=({}, {}))) as call:
            gen.generate_coding_problems(topic)
        prompt = call.await_args.args[2]
        assert "Generate 5 coding problems" in prompt
        assert "Difficulty Level: Hard" in prompt

    def test_coding_topics(self, gen):
        payload = {"topics": [{"id": "t1", "title": "Loops"}]}
        with patch.object(gemini, "call", new=AsyncMock(return_value=(payload, {}))):
            assert gen.generate_coding_topics(SYLLABUS) == payload

    def test_missing_inputs(self, gen):
        with pytest.raises(ValueError):
            gen.generate_coding_topics("")
        with pytest.raises(ValueError):
            gen.generate_coding_problems(None)


# --- Providers ---


class TestParseJson:
    def test_plain(self):
        assert parse_json('{"a": 1}') == {"a": 1}

    def test_substring_fallback(self):
        assert parse_json('Here you go:\n```json\n{"a": {"b": 2}}\n```') == {"a": {"b": 2}}

    def test_garbage(self):
        with pytest.raises(MalformedResponseError):
            parse_json("no json here")

    def test_empty(self):
        with pytest.raises(MalformedResponseError):
            parse_json("")

    def test_non_object(self):
        with pytest.raises(MalformedResponseError):
            parse_json("[1, 2]")

    def test_coerce_valid(self):
        data = coerce(QAS, AnswersResult)
        assert len(data["questions_answers"]) == 3

    def test_coerce_keeps_partial(self):
        """Too few Q&As fails validation but the raw object is kept."""
        partial = {"questions_answers": [{"question": "Q", "answer": "A"}]}
        assert coerce(partial, AnswersResult) is partial


class TestGeminiProvider:
    def test_model_id(self):
        assert gemini.model_id("gemini/gemini-2.0-flash") == "gemini-2.0-flash"
        assert gemini.model_id("gemini-2.0-flash") == "gemini-2.0-flash"

    def test_call_uses_given_key(self):
        response = MagicMock()
        response.parsed = None
        response.text = '{"questions_answers": []}'
        response.usage_metadata.prompt_token_count = 12
        response.usage_metadata.candidates_token_count = 3
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=response)
        client.aio.aclose = AsyncMock()

        with patch.object(gemini, "create_client", return_value=client) as create:
            data, usage = asyncio.run(
                gemini.call("KEY-1", "gemini/gemini-2.0-flash", "p", AnswersResult, 0.7)
            )

        create.assert_called_once_with("KEY-1")
        kwargs = client.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["config"].response_mime_type == "application/json"
        assert kwargs["config"].temperature == 0.7
        client.aio.aclose.assert_awaited_once()
        assert data == {"questions_answers": []}
        assert usage == {"input_tokens": 12, "output_tokens": 3}

    def test_call_prefers_parsed(self):
        response = MagicMock()
        response.parsed = AnswersResult.model_validate(QAS)
        response.usage_metadata = None
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(return_value=response)
        client.aio.aclose = AsyncMock()

        with patch.object(gemini, "create_client", return_value=client):
            data, usage = asyncio.run(gemini.call("K", "gemini/x", "p", AnswersResult))
        assert data["questions_answers"][0]["question"] == "Q0?"
        assert usage == {}

    def test_client_closed_when_call_fails(self):
        err = Exception("quota exceeded")
        err.status_code = 429
        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=err)
        client.aio.aclose = AsyncMock()

        with patch.object(gemini, "create_client", return_value=client):
            with pytest.raises(Exception) as exc_info:
                asyncio.run(gemini.call("K", "gemini/x", "p", AnswersResult))
        assert exc_info.value is err
        client.aio.aclose.assert_awaited_once()

    def test_new_client_per_key(self):
        clients = {}

        def make(api_key):
            response = MagicMock()
            response.parsed = AnswersResult.model_validate(QAS)
            response.usage_metadata = None
            client = MagicMock()
            client.aio.models.generate_content = AsyncMock(return_value=response)
            client.aio.aclose = AsyncMock()
            clients.setdefault(api_key, []).append(client)
            return client

        with patch.object(gemini, "create_client", side_effect=make):
            asyncio.run(gemini.call("K1", "gemini/x", "p", AnswersResult))
            asyncio.run(gemini.call("K2", "gemini/x", "p", AnswersResult))
        assert sorted(clients) == ["K1", "K2"]
        for made in clients.values():
            made[0].aio.aclose.assert_awaited_once()


class TestLitellmProvider:
    def test_call_passes_key_explicitly(self):
        msg = MagicMock()
        msg.content = '{"questions_answers": []}'
        choice = MagicMock()
        choice.message = msg
        resp = MagicMock()
        resp.choices = [choice]
        resp.usage.prompt_tokens = 5
        resp.usage.completion_tokens = 2

        fake = MagicMock()
        fake.acompletion = AsyncMock(return_value=resp)
        fake.completion_cost.return_value = 0.002

        with patch.object(litellm_api, "_litellm", return_value=fake):
            data, usage = asyncio.run(
                litellm_api.call("KEY-2", "gpt-4.1-mini", "p", AnswersResult)
            )

        kwargs = fake.acompletion.await_args.kwargs
        assert kwargs["api_key"] == "KEY-2"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "temperature" not in kwargs
        assert "JSON schema" in kwargs["messages"][0]["content"]
        assert data == {"questions_answers": []}
        assert usage == {"input_tokens": 5, "output_tokens": 2, "cost": 0.002}
