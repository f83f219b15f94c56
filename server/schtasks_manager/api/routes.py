"""API route handlers."""
import asyncio
import logging
from typing import Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ..core.config import settings
from ..core.errors import ErrorCategory, ScheduledTaskError
from ..core.models import (
    ClusteredTaskListResponse,
    ClusteredTaskModel,
    ClusteredTaskQueryRequest,
    ClusteredTaskRegistrationRequest,
    ClusteredTaskRequest,
    CredentialModel,
    HealthResponse,
    ScheduledTaskModel,
    TaskActionResponse,
    TaskListResponse,
    TaskQueryRequest,
    TaskRegistrationRequest,
    TaskRequest,
)
from ..services.session_factory import Credential
from ..services.task_service import ScheduledTaskService, scheduled_task_service

logger = logging.getLogger(__name__)

router = APIRouter()

_CATEGORY_STATUS: Dict[ErrorCategory, int] = {
    ErrorCategory.INVALID_ARGUMENT: status.HTTP_400_BAD_REQUEST,
    ErrorCategory.OBJECT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCategory.AUTHENTICATION_ERROR: status.HTTP_401_UNAUTHORIZED,
    ErrorCategory.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCategory.OPERATION_STOPPED: status.HTTP_409_CONFLICT,
    ErrorCategory.CONNECTION_ERROR: status.HTTP_502_BAD_GATEWAY,
}


def get_task_service() -> ScheduledTaskService:
    """Return the service used by the task routes."""
    return scheduled_task_service


def _to_credential(model: Optional[CredentialModel]) -> Optional[Credential]:
    if model is None:
        return None
    return Credential(username=model.username, password=model.password)


def _http_error(exc: ScheduledTaskError) -> HTTPException:
    """Translate an error record into an HTTP error with a stable payload."""

    status_code = _CATEGORY_STATUS.get(exc.category, status.HTTP_502_BAD_GATEWAY)
    logger.warning(
        "Request failed with %s (%s) for %s: %s",
        exc.error_id,
        exc.category.value,
        exc.target_object,
        exc.message,
    )
    return HTTPException(status_code=status_code, detail=exc.to_dict())


async def _run_task_action(
    action: str,
    request: TaskRequest,
    call: Callable[..., None],
    *,
    supports_confirmation: bool = False,
) -> TaskActionResponse:
    """Run a task command in a worker thread and describe the outcome."""

    kwargs = {}
    if supports_confirmation:
        kwargs = {"confirm": request.confirm, "what_if": request.what_if}

    try:
        await asyncio.to_thread(
            call,
            request.task_name,
            request.task_path,
            request.computer_name,
            _to_credential(request.credential),
            **kwargs,
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    skipped = supports_confirmation and request.what_if
    return TaskActionResponse(
        status="skipped" if skipped else "accepted",
        action=action,
        task_name=request.task_name,
        target=request.computer_name or "localhost",
    )


@router.get("/healthz", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Liveness probe."""
    return HealthResponse(status="healthy", app_name=settings.app_name)


@router.post("/api/v1/tasks/query", response_model=TaskListResponse, tags=["Tasks"])
async def query_tasks(
    request: TaskQueryRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """List scheduled tasks on a host."""

    try:
        tasks = await asyncio.to_thread(
            service.get_tasks,
            request.task_name,
            request.task_path,
            request.computer_name,
            _to_credential(request.credential),
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    return TaskListResponse(
        tasks=[
            ScheduledTaskModel(
                task_name=task.task_name,
                task_path=task.task_path,
                state=task.state,
                description=task.description,
                author=task.author,
            )
            for task in tasks or []
        ]
    )


@router.post(
    "/api/v1/tasks/start",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Tasks"],
)
async def start_task_action(
    request: TaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Start a scheduled task."""
    return await _run_task_action("start", request, service.start_task)


@router.post(
    "/api/v1/tasks/stop",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Tasks"],
)
async def stop_task_action(
    request: TaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Stop running instances of a scheduled task."""
    return await _run_task_action(
        "stop", request, service.stop_task, supports_confirmation=True
    )


@router.post(
    "/api/v1/tasks/enable",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Tasks"],
)
async def enable_task_action(
    request: TaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Enable a scheduled task."""
    return await _run_task_action("enable", request, service.enable_task)


@router.post(
    "/api/v1/tasks/disable",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Tasks"],
)
async def disable_task_action(
    request: TaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Disable a scheduled task."""
    return await _run_task_action(
        "disable", request, service.disable_task, supports_confirmation=True
    )


@router.post(
    "/api/v1/tasks/unregister",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Tasks"],
)
async def unregister_task_action(
    request: TaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Remove a scheduled task definition."""
    return await _run_task_action(
        "unregister", request, service.unregister_task, supports_confirmation=True
    )


@router.post(
    "/api/v1/tasks/register",
    response_model=TaskActionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Tasks"],
)
async def register_task_action(
    request: TaskRegistrationRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Register a scheduled task from XML."""

    task_password = (
        request.task_password.get_secret_value() if request.task_password else None
    )
    try:
        await asyncio.to_thread(
            lambda: service.register_task(
                request.task_name,
                request.xml,
                request.task_path,
                request.computer_name,
                _to_credential(request.credential),
                task_user=request.task_user,
                task_password=task_password,
                force=request.force,
            )
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    return TaskActionResponse(
        status="accepted",
        action="register",
        task_name=request.task_name,
        target=request.computer_name or "localhost",
    )


@router.post(
    "/api/v1/clusters/tasks/query",
    response_model=ClusteredTaskListResponse,
    tags=["Clustered Tasks"],
)
async def query_clustered_tasks(
    request: ClusteredTaskQueryRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """List tasks registered on a failover cluster."""

    try:
        tasks = await asyncio.to_thread(
            service.get_clustered_tasks,
            request.cluster,
            request.task_name,
            request.task_type,
            _to_credential(request.credential),
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    return ClusteredTaskListResponse(
        tasks=[
            ClusteredTaskModel(
                task_name=task.task_name,
                task_type=task.task_type,
                current_owner=task.current_owner,
                cluster=task.cluster,
            )
            for task in tasks or []
        ]
    )


@router.post(
    "/api/v1/clusters/tasks/register",
    response_model=TaskActionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Clustered Tasks"],
)
async def register_clustered_task_action(
    request: ClusteredTaskRegistrationRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Register a task on a failover cluster."""

    try:
        await asyncio.to_thread(
            service.register_clustered_task,
            request.task_name,
            request.cluster,
            request.xml,
            request.task_type,
            request.resource,
            _to_credential(request.credential),
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    return TaskActionResponse(
        status="accepted",
        action="register",
        task_name=request.task_name,
        target=request.cluster,
    )


@router.post(
    "/api/v1/clusters/tasks/unregister",
    response_model=TaskActionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Clustered Tasks"],
)
async def unregister_clustered_task_action(
    request: ClusteredTaskRequest,
    service: ScheduledTaskService = Depends(get_task_service),
):
    """Remove a task from a failover cluster."""

    try:
        await asyncio.to_thread(
            service.unregister_clustered_task,
            request.task_name,
            request.cluster,
            _to_credential(request.credential),
        )
    except ScheduledTaskError as exc:
        raise _http_error(exc) from exc

    return TaskActionResponse(
        status="accepted",
        action="unregister",
        task_name=request.task_name,
        target=request.cluster,
    )
