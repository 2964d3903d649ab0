"""Gemini provider via native google.genai SDK with JSON response schemas."""

from pydantic import BaseModel

from syllabus_gen.providers._json import coerce, parse_json


def model_id(model: str) -> str:
    """'gemini/gemini-2.0-flash' -> 'gemini-2.0-flash'"""
    return model.removeprefix("gemini/")


def create_client(api_key: str):
    import google.genai as genai

    return genai.Client(api_key=api_key)


async def call(
    api_key: str,
    model: str,
    prompt: str,
    schema: type[BaseModel],
    temperature: float | None = None,
):
    """Returns (data: dict, usage: dict).

    A client is built per call from ``api_key`` and closed before returning,
    so concurrent calls with different keys never share credentials and no
    HTTP session outlives the event loop that opened it.
    """
    import google.genai.types as types

    client = create_client(api_key)
    config = types.GenerateContentConfig(
        response_mime_type="application/json",
        response_schema=schema,
        **({"temperature": temperature} if temperature is not None else {}),
    )
    try:
        response = await client.aio.models.generate_content(
            model=model_id(model), contents=prompt, config=config
        )
    finally:
        await client.aio.aclose()

    parsed = getattr(response, "parsed", None)
    if isinstance(parsed, BaseModel):
        data = parsed.model_dump()
    else:
        data = coerce(parse_json(response.text or ""), schema)

    usage = {}
    meta = getattr(response, "usage_metadata", None)
    if meta:
        usage["input_tokens"] = meta.prompt_token_count or 0
        usage["output_tokens"] = meta.candidates_token_count or 0
    return data, usage
