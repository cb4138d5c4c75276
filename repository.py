import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Mapping, Optional

from converters import row_to_task, rows_to_tasks
from db_context import StoreError
from errors import InternalError, NotFoundError
from models import PRIORITY_VALUES, STATUS_VALUES, Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

TOP_LEVEL_SENTINEL = "null"


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except StoreError as e:
        logger.error("%s failed: %s", action, e)
        raise InternalError(f"{action} failed: {e}") from e


def _parse_filters(filters: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn raw query values into store arguments, dropping anything unrecognized."""
    query: Dict[str, Any] = {}

    status = filters.get("status")
    if status in STATUS_VALUES:
        query["status"] = status

    priority = filters.get("priority")
    if priority in PRIORITY_VALUES:
        query["priority"] = priority

    parent_id = filters.get("parent_id")
    if parent_id is not None:
        if parent_id == TOP_LEVEL_SENTINEL:
            query["top_level"] = True
        else:
            try:
                query["parent_id"] = int(parent_id)
            except (TypeError, ValueError):
                pass

    return query


class TaskRepository:
    """Maps task intents onto store calls and store failures onto domain errors.

    ``store`` is anything with the ``db_context.Database`` method surface.
    """

    def __init__(self, store) -> None:
        self.store = store

    def list(self, filters: Optional[Mapping[str, Any]] = None) -> List[Task]:
        """Tasks ordered by created_at descending.

        ``parent_id="null"`` restricts to top-level tasks; any other parent_id
        is an integer equality filter. Unusable values are ignored.
        """
        with _store_errors("fetching tasks"):
            rows = self.store.select_tasks(**_parse_filters(filters or {}))
        return rows_to_tasks(rows)

    def find(self, task_id: int) -> Optional[Task]:
        with _store_errors("fetching task"):
            row = self.store.select_task(task_id)
        return row_to_task(row)

    def get(self, task_id: int) -> Task:
        task = self.find(task_id)
        if task is None:
            raise NotFoundError(f"task {task_id} not found")
        return task

    def get_with_subtasks(self, task_id: int) -> Task:
        task = self.get(task_id)
        with _store_errors("fetching subtasks"):
            children = self.store.select_children(task_id)
        task.subtasks = rows_to_tasks(children)
        return task

    def create(self, fields: Mapping[str, Any]) -> Task:
        row = {
            "title": fields["title"],
            "description": fields.get("description"),
            "status": fields.get("status") or TaskStatus.PENDING.value,
            "priority": fields.get("priority") or TaskPriority.MEDIUM.value,
            "parent_id": fields.get("parent_id"),
        }
        with _store_errors("creating task"):
            created = self.store.insert_tasks([row])
        task = row_to_task(created[0])
        logger.info("task created id=%s parent_id=%s", task.id, task.parent_id)
        return task

    def create_many(self, rows: List[Mapping[str, Any]]) -> List[Task]:
        """Insert several rows in one store call."""
        with _store_errors("creating tasks"):
            created = self.store.insert_tasks(list(rows))
        tasks = rows_to_tasks(created)
        logger.info("created %d tasks ids=%s", len(tasks), [t.id for t in tasks])
        return tasks

    def update(self, task_id: int, fields: Mapping[str, Any]) -> Task:
        with _store_errors("updating task"):
            row = self.store.update_task(task_id, dict(fields))
        if not row:
            raise NotFoundError(f"task {task_id} not found")
        logger.info("task updated id=%s fields=%s", task_id, sorted(fields))
        return row_to_task(row)

    def delete(self, task_id: int) -> Task:
        """Delete a task (children cascade in the store) and return it as it was."""
        task = self.get(task_id)
        with _store_errors("deleting task"):
            self.store.delete_task(task_id)
        logger.info("task deleted id=%s", task_id)
        return task
