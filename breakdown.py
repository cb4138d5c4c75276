"""Split a task into subtasks with an external text generator.

The generator's reply is free text with no schema guarantee, so it goes
through an ordered chain of decoding strategies. The first strategy that
produces a list of titles wins.
"""

import json
import logging
import re
from typing import Any, List, Optional, Sequence, Tuple

from errors import UpstreamError, ValidationError
from models import TaskPriority, TaskStatus
from validators import TITLE_MAX_LENGTH, parse_task_id

logger = logging.getLogger(__name__)

MIN_SUBTASKS = 3
MAX_SUBTASKS = 5

PROMPT_TEMPLATE = """Break the following task down into 3-5 concrete, actionable steps.
Requirements:
1. Every step must be specific and actionable
2. Steps must follow a logical order
3. Return a JSON array where each element is the title of one step
4. Return only the JSON array, with no other text

Task: {title}

Reply with a JSON array, for example: ["Step 1", "Step 2", "Step 3"]"""

SUBTASK_DESCRIPTION = 'Generated by AI breakdown of "{title}"'

_LEADING_FENCE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_TRAILING_FENCE = re.compile(r"\s*```$")
_BRACKETED = re.compile(r"\[[\s\S]*?\]")
_HEADER_LINE = re.compile(r"^(```|step\b|steps\b|task\b|json\b)", re.IGNORECASE)
_LIST_MARKER = re.compile(r"^(?:\d+\s*[.)、:]|[-•*+])\s*")
_EDGE_JUNK_LEFT = re.compile(r"^[\"'\[,\s]+")
_EDGE_JUNK_RIGHT = re.compile(r"[\"'\]\s,]+$")
_ONLY_PUNCTUATION = re.compile(r"^[\[\],]+$")


def _strip_fences(text: str) -> str:
    text = _LEADING_FENCE.sub("", text.strip())
    return _TRAILING_FENCE.sub("", text).strip()


def _string_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return value
    return None


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


class StrictJSON:
    """The whole reply, minus a surrounding code fence, is a JSON array."""

    name = "strict_json"

    def decode(self, text: str) -> Optional[List[str]]:
        return _string_list(_loads(_strip_fences(text)))


class ExtractedJSON:
    """The first ``[...]`` found anywhere in the reply is a JSON array."""

    name = "extracted_json"

    def decode(self, text: str) -> Optional[List[str]]:
        match = _BRACKETED.search(text)
        if not match:
            return None
        candidate = match.group(0).replace("```json", "").replace("```", "").strip()
        return _string_list(_loads(candidate))


class LineHeuristic:
    """One step per line, with bullets, numbering and stray quotes removed."""

    name = "line_heuristic"

    def decode(self, text: str) -> Optional[List[str]]:
        titles = []
        for line in text.splitlines():
            line = line.strip()
            if not line or _HEADER_LINE.match(line):
                continue
            line = _EDGE_JUNK_LEFT.sub("", line)
            line = _EDGE_JUNK_RIGHT.sub("", line)
            line = _LIST_MARKER.sub("", line).strip()
            if len(line) > 3 and not _ONLY_PUNCTUATION.match(line):
                titles.append(line)
            if len(titles) == MAX_SUBTASKS:
                break
        return titles or None


DEFAULT_STRATEGIES = (StrictJSON(), ExtractedJSON(), LineHeuristic())


def clean_title(title: str) -> str:
    title = _EDGE_JUNK_LEFT.sub("", title)
    title = _EDGE_JUNK_RIGHT.sub("", title)
    return title.replace('\\"', '"').strip()


def parse_subtasks(text: str, strategies: Sequence = DEFAULT_STRATEGIES) -> List[str]:
    """Decode a generator reply into subtask titles.

    Returns an empty list when no strategy succeeds. The count is not checked
    here.
    """
    for strategy in strategies:
        titles = strategy.decode(text)
        if titles is None:
            continue
        logger.debug("breakdown reply decoded by %s (%d items)", strategy.name, len(titles))
        return [t for t in (clean_title(title) for title in titles) if t]
    return []


def build_prompt(title: str) -> str:
    return PROMPT_TEMPLATE.format(title=title)


class BreakdownOrchestrator:
    """Resolve subject -> generate -> parse -> check count -> bulk insert.

    No retries. If the insert fails after a successful generation the reply
    is dropped.
    """

    def __init__(self, repository, generator, strategies: Sequence = DEFAULT_STRATEGIES) -> None:
        self.repository = repository
        self.generator = generator
        self.strategies = strategies

    def resolve_subject(self, task_id: Any = None, task_title: Any = None) -> Tuple[Optional[int], str]:
        has_id = task_id is not None and task_id != ""
        has_title = task_title is not None and task_title != ""
        if has_id and has_title:
            raise ValidationError("provide either taskId or taskTitle, not both")
        if not has_id and not has_title:
            raise ValidationError("either taskId or taskTitle is required")

        if has_id:
            parsed = parse_task_id(task_id)
            if parsed is None:
                raise ValidationError("taskId must be a positive integer")
            task = self.repository.get(parsed)
            return task.id, task.title

        if not isinstance(task_title, str) or not task_title.strip():
            raise ValidationError("taskTitle must be a non-empty string")
        return None, task_title.strip()

    def breakdown(self, task_id: Any = None, task_title: Any = None) -> list:
        parent_id, title = self.resolve_subject(task_id, task_title)

        logger.info("breaking down task id=%s title=%r", parent_id, title)
        reply = self.generator.generate(build_prompt(title))
        if not reply:
            raise UpstreamError("LLM did not return any content")

        titles = parse_subtasks(reply, self.strategies)
        if len(titles) < MIN_SUBTASKS:
            logger.warning("unusable breakdown reply (%d subtasks): %r", len(titles), reply[:200])
            raise UpstreamError(
                f"LLM returned {len(titles)} subtasks, expected {MIN_SUBTASKS}-{MAX_SUBTASKS}",
                status_code=400,
            )

        description = SUBTASK_DESCRIPTION.format(title=title)
        rows = [
            {
                "title": t[:TITLE_MAX_LENGTH],
                "description": description,
                "status": TaskStatus.PENDING.value,
                "priority": TaskPriority.MEDIUM.value,
                "parent_id": parent_id,
            }
            for t in titles[:MAX_SUBTASKS]
        ]
        return self.repository.create_many(rows)
