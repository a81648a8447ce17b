import json
import logging
from typing import Any, Optional

import json5

logger = logging.getLogger(__name__)


def parse_response_body(response_text: Optional[str]) -> Optional[Any]:
    """
    Tolerant decoding of a backend response body.

    Attempts, in order:
    1. Standard json.loads()
    2. json5 parser (tolerates trailing commas, comments, single quotes)

    Args:
        response_text: Raw body text, possibly empty or not JSON at all

    Returns:
        The decoded value, or None when the body is empty or unparseable
    """
    if response_text is None or not response_text.strip():
        return None

    # Layer 1: standard JSON
    try:
        return json.loads(response_text)
    except json.JSONDecodeError as e:
        logger.debug(f"Standard JSON parsing failed: {e}")

    # Layer 2: json5 for bodies hand-written by proxies or error pages
    try:
        return json5.loads(response_text)
    except Exception as e:
        logger.debug(f"JSON5 parsing failed, treating body as text: {e}")

    return None


def body_field(body: Any, key: str) -> Optional[Any]:
    """Read ``key`` from a decoded body that may not be an object at all."""
    if isinstance(body, dict):
        return body.get(key)
    return None
