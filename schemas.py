from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel

from models import TaskPriority, TaskStatus


# response model, subtasks nest recursively
class TaskSchema(BaseModel):
    id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    priority: TaskPriority
    parent_id: Optional[int]
    created_at: datetime
    subtasks: Optional[List["TaskSchema"]] = None


class DeletedTaskSchema(BaseModel):
    message: str
    deleted: TaskSchema


class ApiResponse(BaseModel):
    """Envelope shared by every endpoint."""
    success: bool
    data: Any = None
    error: Optional[str] = None


TaskSchema.model_rebuild()
