from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional


class TaskStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


STATUS_VALUES = tuple(s.value for s in TaskStatus)
PRIORITY_VALUES = tuple(p.value for p in TaskPriority)


@dataclass
class Task:
    id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: TaskPriority
    parent_id: Optional[int]
    created_at: datetime
    subtasks: Optional[List["Task"]] = None     # only filled by get-with-subtasks
