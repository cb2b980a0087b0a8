"""
JSON utilities for reading structured output out of LLM responses.
"""

import ast
import json
import re
from typing import Any, Optional

FENCED_BLOCK_PATTERN = re.compile(r'```(?:[a-zA-Z]+)?[ \t]*\n?(.*?)```', re.DOTALL)


def extract_fenced_block(response: str) -> Optional[str]:
    """Return the body of the first fenced code block in a response.

    Args:
        response: Raw LLM response

    Returns:
        The stripped block body, or None if the response has no closed block
    """
    if not response:
        return None

    match = FENCED_BLOCK_PATTERN.search(response)
    if match is None:
        return None
    return match.group(1).strip()


def parse_json_like(text: str) -> Any:
    """Parse JSON, falling back to Python literal syntax.

    Models often answer with single-quoted strings (``['a', 'b']``), which
    is not JSON but is a valid Python literal.

    Raises:
        ValueError: If the text is neither
    """
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        pass

    # Unhashable keys raise TypeError, deep nesting RecursionError or MemoryError
    try:
        return ast.literal_eval(text)
    except (ValueError, SyntaxError, TypeError, MemoryError, RecursionError) as e:
        raise ValueError(f'Not a JSON or literal value: {type(e).__name__}') from e
