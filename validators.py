"""Field validation for task create/update payloads.

Pure functions: nothing here touches the store. Errors are collected for
every field so a caller sees all violations at once.
"""

from typing import Any, Dict, List, Mapping, Optional

from models import PRIORITY_VALUES, STATUS_VALUES

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000

TASK_FIELDS = ("title", "description", "status", "priority", "parent_id")


def is_positive_int(value: Any) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def parse_task_id(raw: Any) -> Optional[int]:
    """Return ``raw`` as a positive integer id, or None if it is not one."""
    if is_positive_int(raw):
        return raw
    if isinstance(raw, str):
        raw = raw.strip()
        # isdigit() is true for things like "²" that int() rejects
        if not (raw.isascii() and raw.isdigit()):
            return None
        value = int(raw)
        return value if value > 0 else None
    return None


def _check_title(payload: Mapping[str, Any], errors: List[str], required: bool) -> None:
    if "title" not in payload:
        if required:
            errors.append("title is required")
        return

    title = payload["title"]
    if not isinstance(title, str):
        errors.append("title must be a string")
    elif not title.strip():
        errors.append("title must not be empty")
    elif len(title) > TITLE_MAX_LENGTH:
        errors.append(f"title must be at most {TITLE_MAX_LENGTH} characters")


def _check_fields(payload: Mapping[str, Any], errors: List[str]) -> None:
    description = payload.get("description")
    if description is not None:
        if not isinstance(description, str):
            errors.append("description must be a string or null")
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(f"description must be at most {DESCRIPTION_MAX_LENGTH} characters")

    if "status" in payload and payload["status"] not in STATUS_VALUES:
        errors.append(f"status must be one of: {', '.join(STATUS_VALUES)}")

    if "priority" in payload and payload["priority"] not in PRIORITY_VALUES:
        errors.append(f"priority must be one of: {', '.join(PRIORITY_VALUES)}")

    parent_id = payload.get("parent_id")
    if parent_id is not None and not is_positive_int(parent_id):
        errors.append("parent_id must be a positive integer or null")


def validate_create(payload: Any) -> List[str]:
    if not isinstance(payload, Mapping):
        return ["request body must be a JSON object"]

    errors: List[str] = []
    _check_title(payload, errors, required=True)
    _check_fields(payload, errors)
    return errors


def validate_update(payload: Any) -> List[str]:
    if not isinstance(payload, Mapping):
        return ["request body must be a JSON object"]

    if not any(field in payload for field in TASK_FIELDS):
        return ["no fields to update were provided"]

    errors: List[str] = []
    _check_title(payload, errors, required=False)
    _check_fields(payload, errors)
    return errors


def clean_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the recognized fields of an already validated payload and normalize them.

    Only keys present in ``payload`` are returned, so the result doubles as a
    partial update.
    """
    fields: Dict[str, Any] = {}
    for name in TASK_FIELDS:
        if name not in payload:
            continue
        value = payload[name]
        if name == "title":
            value = value.strip()
        elif name == "description":
            value = (value.strip() or None) if value is not None else None
        fields[name] = value
    return fields
