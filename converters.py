from typing import Any, Dict, List, Mapping, Optional

from models import Task, TaskPriority, TaskStatus
from schemas import TaskSchema


def row_to_task(row: Mapping[str, Any]) -> Optional[Task]:
    """Build a Task from a store row (RealDictCursor row or plain dict)."""
    if not row:
        return None

    parent_id = row.get("parent_id")
    return Task(
        id=int(row["id"]),
        title=row.get("title"),
        description=row.get("description"),
        status=TaskStatus(row.get("status") or TaskStatus.PENDING.value),
        priority=TaskPriority(row.get("priority") or TaskPriority.MEDIUM.value),
        parent_id=int(parent_id) if parent_id is not None else None,
        created_at=row.get("created_at"),
    )


def rows_to_tasks(rows: List[Mapping[str, Any]]) -> List[Task]:
    return [row_to_task(row) for row in rows] if rows else []


def task_to_schema(task: Task) -> Optional[TaskSchema]:
    if not task:
        return None

    return TaskSchema(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        parent_id=task.parent_id,
        created_at=task.created_at,
        subtasks=[task_to_schema(child) for child in task.subtasks] if task.subtasks is not None else None,
    )


def task_to_dict(task: Task) -> Optional[Dict[str, Any]]:
    """JSON-ready dict; ``subtasks`` only appears when it was fetched."""
    schema = task_to_schema(task)
    if schema is None:
        return None
    data = schema.model_dump(mode="json")
    if task.subtasks is None:
        data.pop("subtasks", None)
    else:
        data["subtasks"] = [task_to_dict(child) for child in task.subtasks]
    return data


def tasks_to_dicts(tasks: List[Task]) -> List[Dict[str, Any]]:
    return [task_to_dict(task) for task in tasks] if tasks else []
