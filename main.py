import logging
from contextlib import asynccontextmanager
from typing import Any, List, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.routing import Match

from breakdown import BreakdownOrchestrator
from config import Settings, get_settings
from converters import task_to_dict, task_to_schema, tasks_to_dicts
from db_context import Database
from errors import TaskError, ValidationError
from hierarchy import HierarchyGuard
from llm import OpenAIGenerator
from logging_setup import setup_logging
from repository import TaskRepository
from schemas import ApiResponse, DeletedTaskSchema
from validators import clean_fields, parse_task_id, validate_create, validate_update

logger = logging.getLogger(__name__)


def success_response(data: Any, status_code: int = 200) -> JSONResponse:
    body = ApiResponse(success=True, data=data, error=None)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def error_response(message: str, status_code: int = 400, headers: Optional[dict] = None) -> JSONResponse:
    body = ApiResponse(success=False, data=None, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"), headers=headers)


def _allowed_methods(request: Request) -> List[str]:
    """Every method the requested path accepts.

    A literal route (``/tasks/breakdown``) shadows parameterized ones
    (``/tasks/{task_id}``) that happen to match the same path.
    """
    literal, templated = set(), set()
    for route in request.app.router.routes:
        matches = getattr(route, "matches", None)
        if matches is None or not getattr(route, "methods", None):
            continue
        match, _ = matches(request.scope)
        if match == Match.NONE:
            continue
        if getattr(route, "param_convertors", None):
            templated.update(route.methods)
        else:
            literal.update(route.methods)
    return sorted(literal or templated)


# literal sub-paths of /tasks that are not task ids
RESERVED_TASK_PATHS = ("breakdown",)


def _require_id(raw: str) -> int:
    if raw in RESERVED_TASK_PATHS:
        raise StarletteHTTPException(status_code=405)
    task_id = parse_task_id(raw)
    if task_id is None:
        raise ValidationError("invalid task id, must be a positive integer")
    return task_id


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(TaskError)
    async def task_error_handler(request: Request, exc: TaskError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            return error_response(
                f"method {request.method} not allowed",
                405,
                headers={"Allow": ", ".join(_allowed_methods(request))},
            )
        return error_response(str(exc.detail), exc.status_code, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        messages = [str(err.get("msg", "invalid request")) for err in exc.errors()]
        return error_response("; ".join(messages) or "invalid request", 400)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return error_response("internal server error", 500)


def create_app(settings: Optional[Settings] = None, store=None, generator=None) -> FastAPI:
    """Build the API around injected collaborators.

    ``store`` defaults to a PostgreSQL ``Database`` and ``generator`` to the
    OpenAI-compatible client; tests pass in fakes.
    """
    settings = settings or get_settings()
    store = store if store is not None else Database(settings)
    generator = generator if generator is not None else OpenAIGenerator(settings)

    repository = TaskRepository(store)
    guard = HierarchyGuard(repository, max_depth=settings.HIERARCHY_MAX_DEPTH)
    orchestrator = BreakdownOrchestrator(repository, generator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.DB_AUTO_INIT:
            store.initialize()
        yield
        close = getattr(store, "close", None)
        if callable(close):
            close()

    app = FastAPI(
        title="Tasks API",
        description="Hierarchical to-do list with AI task breakdown",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.repository = repository
    app.state.guard = guard
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    @app.get('/tasks', summary="List tasks", description="Newest first; parent_id=null for top-level tasks only")
    def list_tasks(
        status: Optional[str] = None,
        priority: Optional[str] = None,
        parent_id: Optional[str] = None,
        page: Optional[str] = None,
        limit: Optional[str] = None,
    ):
        # page/limit are accepted for compatibility but not applied
        filters = {"status": status, "priority": priority, "parent_id": parent_id}
        return success_response(tasks_to_dicts(repository.list(filters)))

    @app.post('/tasks', summary="Create task", status_code=201)
    def create_task(payload: Any = Body(None)):
        errors = validate_create(payload)
        if errors:
            raise ValidationError(errors)

        fields = clean_fields(payload)
        guard.check_new_parent(fields.get("parent_id"))
        return success_response(task_to_dict(repository.create(fields)), 201)

    @app.post('/tasks/breakdown', summary="Break a task down into subtasks", status_code=201)
    def breakdown_task(payload: Any = Body(None)):
        if not isinstance(payload, dict):
            raise ValidationError("request body must be a JSON object")

        created = orchestrator.breakdown(
            task_id=payload.get("taskId"),
            task_title=payload.get("taskTitle"),
        )
        return success_response(tasks_to_dicts(created), 201)

    @app.get('/tasks/{task_id}', summary="Get task", description="Task with its direct subtasks")
    def get_task(task_id: str):
        task = repository.get_with_subtasks(_require_id(task_id))
        return success_response(task_to_dict(task))

    @app.patch('/tasks/{task_id}', summary="Update task", description="Only the supplied fields change")
    def update_task(task_id: str, payload: Any = Body(None)):
        task_id = _require_id(task_id)

        errors = validate_update(payload)
        if errors:
            raise ValidationError(errors)

        fields = clean_fields(payload)
        if fields.get("parent_id") is not None:
            guard.check_reparent(task_id, fields["parent_id"])

        return success_response(task_to_dict(repository.update(task_id, fields)))

    @app.delete('/tasks/{task_id}', summary="Delete task", description="Deletes the task and, through the store, its subtasks")
    def delete_task(task_id: str):
        deleted = repository.delete(_require_id(task_id))
        body = DeletedTaskSchema(message="task deleted", deleted=task_to_schema(deleted))
        return success_response(body.model_dump(mode="json", exclude={"deleted": {"subtasks"}}))

    return app


setup_logging(get_settings().LOG_LEVEL)
app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
