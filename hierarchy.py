import logging
from typing import Optional, Set

from errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class HierarchyGuard:
    """Keeps the parent/child links a forest.

    Checks run before the write; the store's foreign key still has the
    final word on existence.
    """

    def __init__(self, repository, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self.repository = repository
        self.max_depth = max_depth

    def check_new_parent(self, parent_id: Optional[int]) -> None:
        """On create the new id is unknown, so only existence is checked."""
        if parent_id is None:
            return
        if self.repository.find(parent_id) is None:
            raise ValidationError("parent task does not exist")

    def check_reparent(self, task_id: int, parent_id: Optional[int]) -> None:
        """Reject making ``parent_id`` the parent of ``task_id`` if it would break the forest.

        Walks up from the candidate parent: finding ``task_id`` on the way means
        the task would become its own ancestor. The walk stops at the root.
        A loop already present in the data, or a chain longer than
        ``max_depth``, is also rejected as a conflict.
        """
        if parent_id is None:
            return
        if parent_id == task_id:
            raise ConflictError("a task cannot be its own parent")

        parent = self.repository.find(parent_id)
        if parent is None:
            raise ValidationError("parent task does not exist")

        seen: Set[int] = {parent.id}
        current = parent.parent_id
        depth = 1
        while current is not None:
            if current == task_id:
                logger.info("rejected reparent task=%s parent=%s: cycle", task_id, parent_id)
                raise ConflictError("cannot create a circular parent/child relationship")
            if current in seen:
                # loop already in the data, not involving task_id
                logger.warning("existing cycle in ancestors of task %s", parent_id)
                raise ConflictError("cannot create a circular parent/child relationship")
            if depth >= self.max_depth:
                raise ConflictError(f"task hierarchy is deeper than {self.max_depth} levels")
            seen.add(current)
            ancestor = self.repository.find(current)
            if ancestor is None:
                break
            current = ancestor.parent_id
            depth += 1
