import json
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

# First "[[ ... ]]" literal anywhere in the text; models like to add commentary.
_TABLE_RE = re.compile(r"\[\s*\[[\s\S]*?\]\s*\]")


def parse_table(text: str) -> Optional[list[list]]:
    """
    Extract the first JSON 2D array from model output.

    Returns the decoded rows unchanged, or None when nothing usable is found.
    Never raises.
    """
    if not isinstance(text, str):
        return None

    match = _TABLE_RE.search(text)
    if not match:
        return None

    try:
        parsed = json.loads(match.group(0))
    except ValueError as e:
        logger.warning("Table JSON decode failed: %s", e)
        return None

    if not isinstance(parsed, list) or not parsed:
        return None
    if not all(isinstance(row, list) for row in parsed):
        return None
    return parsed
