import json
import logging
from typing import Optional, Sequence

from .base import ChatModel
from .parser import parse_table

logger = logging.getLogger(__name__)


def build_consolidation_prompt(prompt: str, tables: Sequence[list]) -> str:
    blocks = [
        f"Result {i + 1}:\n{json.dumps(table, ensure_ascii=False, indent=2)}"
        for i, table in enumerate(tables)
    ]
    return prompt + "\n\n" + "\n\n".join(blocks)


def consolidate(
    client: ChatModel,
    image: str,
    tables: Sequence[list],
    prompt: str,
    model: str,
) -> Optional[list[list]]:
    """
    Ask the decision model to reconcile several candidate tables.

    UpstreamError propagates; an unparseable answer returns None.
    """
    logger.info("Consolidating %d valid results with %s", len(tables), model)
    content = client.complete(model, image, build_consolidation_prompt(prompt, tables))
    logger.info("Consolidation result: %s", content[:200])

    table = parse_table(content)
    if table is None:
        logger.warning("Consolidation response had no parseable table")
    return table
