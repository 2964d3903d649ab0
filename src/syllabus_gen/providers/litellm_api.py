"""litellm fallback provider (every non-Gemini model)."""

import json

from pydantic import BaseModel

from syllabus_gen.providers._json import coerce, parse_json


def _litellm():
    """Lazy import of litellm (saves ~1.5s when only Gemini is used)."""
    import litellm

    litellm.suppress_debug_info = True
    return litellm


def _with_schema(prompt: str, schema: type[BaseModel]) -> str:
    return (
        f"{prompt}\n\nRespond with a single JSON object matching this JSON schema:\n"
        f"{json.dumps(schema.model_json_schema())}"
    )


async def call(
    api_key: str,
    model: str,
    prompt: str,
    schema: type[BaseModel],
    temperature: float | None = None,
):
    """Returns (data: dict, usage: dict)."""
    kwargs = {}
    if temperature is not None:
        kwargs["temperature"] = temperature

    response = await _litellm().acompletion(
        model=model,
        messages=[{"role": "user", "content": _with_schema(prompt, schema)}],
        api_key=api_key,
        response_format={"type": "json_object"},
        num_retries=0,
        **kwargs,
    )

    text = response.choices[0].message.content if response.choices else ""
    data = coerce(parse_json(text or ""), schema)

    usage = {}
    if response.usage:
        usage["input_tokens"] = response.usage.prompt_tokens or 0
        usage["output_tokens"] = response.usage.completion_tokens or 0
    try:
        usage["cost"] = _litellm().completion_cost(completion_response=response)
    except Exception:
        pass
    return data, usage
