"""Generator class: syllabus -> topics, Q&A and coding problems, with key rotation."""

import asyncio
import logging
import re
import time
from typing import Any

from pydantic import BaseModel

from syllabus_gen import config
from syllabus_gen._cache import QACache, cache_key
from syllabus_gen.providers import gemini, litellm_api
from syllabus_gen.retry import MAX_ATTEMPTS, RETRY_DELAY, call_with_rotation
from syllabus_gen.rotator import KeyRotator, default_rotator
from syllabus_gen.schemas import (
    AnswersResult,
    CodingProblemsResult,
    CodingTopicsResult,
    TopicsResult,
)

log = logging.getLogger(__name__)

_TITLE_RE = re.compile(r"^(#{1,6}\s+)?(.+?)(?:\n|$)")
DEFAULT_TITLE = "Syllabus Analysis"

TOPICS_PROMPT = """You are an expert educational analyst. Analyze the syllabus content and extract 20-25 important topics as JSON objects (do NOT include questions/answers at this stage).

Syllabus Title: {title}

Syllabus Content:
{content}

For each topic return:
- title (string)
- description (2-3 sentences)
- importance_score (0-1)
- marks_value (0-50)
- has_diagrams (boolean)
- key_points (array of 3-8 concise learning points)

Return only valid JSON matching this shape. Generate roughly 20-25 topics when possible."""

ANSWERS_PROMPT = """You are an expert syllabus-driven educator. Based on the syllabus content and topic provided, generate 3-6 important exam-style questions with detailed answers.

Syllabus Content:
{content}

Topic:
Title: {title}
Description: {description}
Key Points: {key_points}

Requirements:
- Generate 3-6 exam-style questions directly from the syllabus content
- Each answer should be 350-450 words
- Use short sub-headings and bullet points for readability
- Include optional unit_reference if the question relates to a specific section
- Only use information from the provided syllabus content

Return ONLY the JSON object with questions_answers array."""

CODING_TOPICS_PROMPT = """You are an expert computer science educator. Analyze the following syllabus content and extract 3-10 distinct programming topics that would benefit from coding practice problems.

Syllabus Content:
{content}

Requirements:
- Extract topics that are practical and can be tested with C programming problems
- Each topic should be distinct and focused
- Provide clear descriptions and key learning points
- Assign appropriate difficulty levels
- Estimate how many coding problems (0-5) would be suitable for each topic"""

CODING_PROBLEMS_PROMPT = """You are an expert computer science educator. Generate practical coding problems in C language for the following topic:

Topic: {title}
Description: {description}
Key Points: {key_points}
Difficulty Level: {difficulty}

Requirements:
- Generate {count} coding problems directly related to this topic
- Provide complete, runnable C code solutions with proper comments
- Include complexity analysis (time and space)
- Mark difficulty level appropriately (Easy/Medium/Hard)
- In the explanation, name each important function, what it does and how it is called
- Identify the algorithm type (e.g., sorting, tree traversal, dynamic programming)"""


def _is_gemini(model: str) -> bool:
    return model.startswith("gemini/")


def _run_async(coro):
    # Errors raised by coro propagate unchanged
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import nest_asyncio

    nest_asyncio.apply()
    loop = asyncio.get_event_loop()
    return loop.run_until_complete(coro)


def extract_title(content: str) -> str:
    """First line of the syllabus, minus any markdown heading marks."""
    m = _TITLE_RE.match(content)
    title = m.group(2).strip() if m else ""
    return title or DEFAULT_TITLE


def _joined(points) -> str:
    return ", ".join(points) if isinstance(points, list) else ""


class Generator:
    """Structured study-material generation over a rotating pool of API keys.

    Routes per model:
      - Gemini (gemini/*): native google.genai SDK with response schemas
      - All others: litellm fallback

    Every upstream call goes through ``call_with_rotation``: up to
    ``max_attempts`` tries, each with the rotator's next key.
    """

    def __init__(
        self,
        model: str | None = None,
        rotator: KeyRotator | None = None,
        cache: QACache | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
    ):
        self.model = model or config.model_name()
        self.rotator = rotator if rotator is not None else default_rotator()
        self.cache = cache if cache is not None else QACache()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost = 0.0

    def status(self) -> dict:
        return self.rotator.status()

    async def _generate(
        self, prompt: str, schema: type[BaseModel], temperature: float | None = None
    ) -> dict:
        provider = gemini if _is_gemini(self.model) else litellm_api

        async def attempt(api_key: str):
            return await provider.call(api_key, self.model, prompt, schema, temperature)

        data, usage = await call_with_rotation(
            self.rotator, attempt, self.max_attempts, self.retry_delay
        )
        self.total_input_tokens += usage.get("input_tokens", 0)
        self.total_output_tokens += usage.get("output_tokens", 0)
        self.total_cost += usage.get("cost", 0.0)
        return data

    # --- Topics ---

    def extract_topics(self, content: str) -> dict[str, Any]:
        """Extract exam topics and their relationships from syllabus text."""
        return _run_async(self.aextract_topics(content))

    async def aextract_topics(self, content: str) -> dict[str, Any]:
        if not content:
            raise ValueError("Missing content")
        title = extract_title(content)
        data = await self._generate(
            TOPICS_PROMPT.format(title=title, content=content), TopicsResult
        )

        stamp = int(time.time() * 1000)
        topics = []
        for i, t in enumerate(data.get("topics") or []):
            key_points = t.get("key_points")
            key_points = key_points if isinstance(key_points, list) else []
            topics.append(
                {
                    "id": f"topic-{i}-{stamp}",
                    "title": t.get("title"),
                    "description": t.get("description"),
                    "importance_score": t.get("importance_score"),
                    "marks_value": t.get("marks_value"),
                    "has_diagrams": t.get("has_diagrams"),
                    "key_points": key_points,
                    "content": "\n".join(key_points)
                    if key_points
                    else t.get("description") or "",
                }
            )

        relationships = []
        for conn in data.get("connections") or []:
            a, b = conn.get("topic_a_idx"), conn.get("topic_b_idx")
            if not all(isinstance(x, int) and 0 <= x < len(topics) for x in (a, b)):
                continue
            relationships.append(
                {
                    "topic_a_id": topics[a]["id"],
                    "topic_b_id": topics[b]["id"],
                    "relationship_type": conn.get("relationship"),
                    "relationship_strength": conn.get("strength"),
                }
            )

        return {
            "success": True,
            "title": title,
            "topicsCount": len(topics),
            "topics": topics,
            "relationships": relationships,
        }

    # --- Q&A ---

    def generate_topic_answers(self, content: str, topic: dict) -> dict[str, Any]:
        """Exam-style Q&A for one topic, served from the disk cache when fresh."""
        return _run_async(self.agenerate_topic_answers(content, topic))

    async def agenerate_topic_answers(self, content: str, topic: dict) -> dict[str, Any]:
        if not content or not topic:
            raise ValueError("Missing content or topic")

        key = cache_key(content, topic.get("title") or "")
        try:
            cached = self.cache.get(key)
        except Exception as e:
            log.warning("Q&A cache read error: %s", e)
            cached = None
        if cached is not None:
            return {
                "success": True,
                "cached": True,
                "questions_answers": cached.get("questions_answers", []),
            }

        prompt = ANSWERS_PROMPT.format(
            content=content,
            title=topic.get("title", ""),
            description=topic.get("description", ""),
            key_points=_joined(topic.get("key_points")),
        )
        data = await self._generate(prompt, AnswersResult, temperature=0.7)
        qas = data.get("questions_answers")
        qas = qas if isinstance(qas, list) else []

        try:
            self.cache.set(key, {"questions_answers": qas, "createdAt": time.time()})
        except Exception as e:
            log.warning("Failed to write Q&A cache: %s", e)
        return {"success": True, "questions_answers": qas}

    def clear_cache(self, secret: str | None = None) -> int:
        return self.cache.clear(secret)

    # --- Coding practice ---

    def generate_coding_topics(self, content: str) -> dict[str, Any]:
        return _run_async(self.agenerate_coding_topics(content))

    async def agenerate_coding_topics(self, content: str) -> dict[str, Any]:
        if not content:
            raise ValueError("Missing required field: content")
        return await self._generate(
            CODING_TOPICS_PROMPT.format(content=content),
            CodingTopicsResult,
            temperature=0.7,
        )

    def generate_coding_problems(self, topic: dict) -> dict[str, Any]:
        return _run_async(self.agenerate_coding_problems(topic))

    async def agenerate_coding_problems(self, topic: dict) -> dict[str, Any]:
        if not topic:
            raise ValueError("Missing required field: topic")
        prompt = CODING_PROBLEMS_PROMPT.format(
            title=topic.get("title", ""),
            description=topic.get("description", ""),
            key_points=_joined(topic.get("key_points") or []),
            difficulty=topic.get("difficulty") or "Medium",
            count=topic.get("estimated_problems") or 3,
        )
        return await self._generate(prompt, CodingProblemsResult, temperature=0.7)
