"""Lenient JSON parsing of model output."""

import json
import logging

from pydantic import BaseModel, ValidationError

from syllabus_gen.errors import MalformedResponseError

log = logging.getLogger(__name__)


def parse_json(text: str) -> dict:
    """Parse a JSON object, salvaging the outermost {...} if there is noise around it."""
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        first = text.find("{") if text else -1
        last = text.rfind("}") if text else -1
        if first == -1 or last <= first:
            raise MalformedResponseError("Model response is not JSON", text or "")
        try:
            data = json.loads(text[first : last + 1])
        except ValueError as e:
            raise MalformedResponseError(f"Model response is not JSON: {e}", text)
        log.warning("Parsed JSON from substring fallback")
    if not isinstance(data, dict):
        raise MalformedResponseError("Model response is not a JSON object", text)
    return data


def coerce(data: dict, schema: type[BaseModel]) -> dict:
    """Validate against ``schema``; keep the raw object if it doesn't fully match."""
    try:
        return schema.model_validate(data).model_dump()
    except ValidationError as e:
        log.warning(
            "Response does not satisfy %s (%d errors), using it as-is",
            schema.__name__,
            e.error_count(),
        )
        return data
