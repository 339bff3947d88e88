"""
Automation routes.

Trigger registration and lifecycle, execution history, context updates and
batch messaging. Every route is scoped to the authenticated user (JWT `sub`).

Error mapping:
    400: invalid trigger / batch / context definition
    404: entity missing or owned by another user
    503: persistence unavailable
    500: anything else
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.auth.verify import current_user_id
from app.db.helpers import DatabaseError
from app.features.automation.domain import (
    BatchJob,
    ContextSnapshot,
    ExecutionRecord,
    Trigger,
    action_to_dict,
)
from app.features.automation.domain.errors import (
    BatchJobConfigurationError,
    BatchJobNotFoundError,
    ContextUpdateError,
    TriggerConfigurationError,
    TriggerNotFoundError,
)
from app.features.automation.scheduler import FiringResult
from app.features.automation.services import AutomationService, get_automation_service
from app.infrastructure.observability.logging import get_logger
from app.models.api.automation_request import (
    BatchJobCreateRequest,
    ContextUpdateRequest,
    SnoozeRequest,
    TriggerCreateRequest,
    TriggerUpdateRequest,
)
from app.models.api.automation_response import (
    BatchJobListResponse,
    BatchJobResponse,
    BatchProgressResponse,
    ContextResponse,
    ExecutionListResponse,
    ExecutionRecordResponse,
    FiringResponse,
    TriggerListResponse,
    TriggerResponse,
)

router = APIRouter(prefix="/automation", tags=["automation"])
logger = get_logger(__name__)

_BAD_REQUEST_ERRORS = (TriggerConfigurationError, BatchJobConfigurationError, ContextUpdateError)
_NOT_FOUND_ERRORS = (TriggerNotFoundError, BatchJobNotFoundError)


def _http_error(e: Exception, operation: str, user_id: str) -> HTTPException:
    """Translate a service exception to the HTTP error the client sees."""
    if isinstance(e, _BAD_REQUEST_ERRORS):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, _NOT_FOUND_ERRORS):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, DatabaseError):
        logger.error(
            "Automation store unavailable", operation=operation, user_id=user_id, error=str(e)
        )
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Automation storage temporarily unavailable",
        )

    logger.error(
        "Automation request failed",
        operation=operation,
        user_id=user_id,
        error=str(e),
        error_type=type(e).__name__,
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Automation request failed"
    )


# ----------------------------------------------------------------------
# Domain -> response conversion
# ----------------------------------------------------------------------


def _trigger_response(trigger: Trigger) -> TriggerResponse:
    return TriggerResponse(
        id=trigger.id,
        title=trigger.title,
        description=trigger.description,
        kind=trigger.kind.value,
        category=trigger.category.value if trigger.category else None,
        scheduled_at=trigger.scheduled_at,
        next_trigger_at=trigger.next_trigger_at,
        last_triggered_at=trigger.last_triggered_at,
        repeat_pattern=trigger.repeat_pattern.value if trigger.repeat_pattern else None,
        is_active=trigger.is_active,
        execution_mode=trigger.declared_execution_mode.value,
        autonomy_level=trigger.autonomy_level.value,
        priority=trigger.priority,
        urgency=trigger.urgency,
        actions=trigger.actions_as_dicts(),
        conditions=trigger.conditions.to_dict(),
        metadata=trigger.metadata,
        created_at=trigger.created_at,
        updated_at=trigger.updated_at,
    )


def _execution_response(record: ExecutionRecord) -> ExecutionRecordResponse:
    return ExecutionRecordResponse(
        id=record.id,
        trigger_id=record.trigger_id,
        execution_mode=record.execution_mode.value,
        status=record.status.value,
        started_at=record.started_at,
        completed_at=record.completed_at,
        duration_ms=record.duration_ms,
        actions_performed=[action_to_dict(action) for action in record.actions_performed],
        context_snapshot=record.context_snapshot,
        error_message=record.error_message,
        persisted=record.persisted,
    )


def _firing_response(result: FiringResult) -> FiringResponse:
    decision = result.decision
    return FiringResponse(
        trigger_id=result.trigger_id,
        outcome=result.outcome,
        mode=result.mode.value if result.mode else None,
        rule=decision.rule if decision else None,
        clamped=decision.clamped if decision else False,
        alert_level=decision.alert_level.value if decision else None,
        execution=_execution_response(result.record) if result.record else None,
    )


def _context_response(snapshot: ContextSnapshot) -> ContextResponse:
    return ContextResponse(**snapshot.to_dict(), updated_at=snapshot.updated_at)


def _batch_response(job: BatchJob, is_running: bool = False) -> BatchJobResponse:
    return BatchJobResponse(
        id=job.id,
        title=job.title,
        platform=job.platform,
        message_template=job.message_template,
        recipients=[recipient.to_dict() for recipient in job.recipients],
        status=job.status.value,
        progress=BatchProgressResponse(
            **job.progress.to_dict(), status=job.status.value, is_running=is_running
        ),
        trigger_id=job.trigger_id,
        created_at=job.created_at,
        completed_at=job.completed_at,
    )


# ----------------------------------------------------------------------
# Triggers
# ----------------------------------------------------------------------


@router.post("/triggers", response_model=TriggerResponse, status_code=status.HTTP_201_CREATED)
async def create_trigger(
    request: TriggerCreateRequest,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    """
    Register a trigger.

    Raises:
        400: Invalid definition (empty actions, unknown action kind, bad scale)
    """
    try:
        trigger = await service.create_trigger(user_id, request.model_dump(exclude_none=True))
    except Exception as e:
        raise _http_error(e, "create_trigger", user_id) from e
    return _trigger_response(trigger)


@router.get("/triggers", response_model=TriggerListResponse)
async def list_triggers(
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        triggers = await service.list_triggers(user_id)
    except Exception as e:
        raise _http_error(e, "list_triggers", user_id) from e
    return TriggerListResponse(
        triggers=[_trigger_response(trigger) for trigger in triggers], total_count=len(triggers)
    )


@router.get("/triggers/due", response_model=TriggerListResponse)
async def list_due_triggers(
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    """Triggers firing within the next look-ahead window."""
    try:
        triggers = await service.list_due_triggers(user_id)
    except Exception as e:
        raise _http_error(e, "list_due_triggers", user_id) from e
    return TriggerListResponse(
        triggers=[_trigger_response(trigger) for trigger in triggers], total_count=len(triggers)
    )


@router.get("/triggers/{trigger_id}", response_model=TriggerResponse)
async def get_trigger(
    trigger_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        trigger = await service.get_trigger(user_id, trigger_id)
    except Exception as e:
        raise _http_error(e, "get_trigger", user_id) from e
    return _trigger_response(trigger)


@router.patch("/triggers/{trigger_id}", response_model=TriggerResponse)
async def update_trigger(
    trigger_id: str,
    request: TriggerUpdateRequest,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        trigger = await service.update_trigger(
            user_id, trigger_id, request.model_dump(exclude_unset=True)
        )
    except Exception as e:
        raise _http_error(e, "update_trigger", user_id) from e
    return _trigger_response(trigger)


@router.delete("/triggers/{trigger_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trigger(
    trigger_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        await service.delete_trigger(user_id, trigger_id)
    except Exception as e:
        raise _http_error(e, "delete_trigger", user_id) from e


@router.post("/triggers/{trigger_id}/fire", response_model=FiringResponse)
async def fire_trigger(
    trigger_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    """
    Fire a trigger now. Policy still decides how (or whether) it runs.
    """
    try:
        result = await service.fire_trigger(user_id, trigger_id)
    except Exception as e:
        raise _http_error(e, "fire_trigger", user_id) from e

    logger.info(
        "Trigger fired manually",
        user_id=user_id,
        trigger_id=trigger_id,
        outcome=result.outcome,
        mode=result.mode.value if result.mode else None,
    )
    return _firing_response(result)


@router.post("/triggers/{trigger_id}/snooze", response_model=TriggerResponse)
async def snooze_trigger(
    trigger_id: str,
    request: SnoozeRequest,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        trigger = await service.snooze_trigger(user_id, trigger_id, request.minutes)
    except Exception as e:
        raise _http_error(e, "snooze_trigger", user_id) from e
    return _trigger_response(trigger)


@router.post("/triggers/{trigger_id}/skip", response_model=TriggerResponse)
async def skip_trigger(
    trigger_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        trigger = await service.skip_trigger(user_id, trigger_id)
    except Exception as e:
        raise _http_error(e, "skip_trigger", user_id) from e
    return _trigger_response(trigger)


# ----------------------------------------------------------------------
# Execution history
# ----------------------------------------------------------------------


@router.get("/executions", response_model=ExecutionListResponse)
async def list_executions(
    trigger_id: str | None = Query(default=None, description="Only this trigger's runs"),
    limit: int = Query(default=50, ge=1, le=200, description="Maximum records (1-200)"),
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        records = await service.list_executions(user_id, trigger_id=trigger_id, limit=limit)
    except Exception as e:
        raise _http_error(e, "list_executions", user_id) from e
    return ExecutionListResponse(
        executions=[_execution_response(record) for record in records],
        total_count=len(records),
    )


# ----------------------------------------------------------------------
# Context
# ----------------------------------------------------------------------


@router.get("/context", response_model=ContextResponse)
async def get_context(
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        snapshot = await service.get_context(user_id)
    except Exception as e:
        raise _http_error(e, "get_context", user_id) from e
    return _context_response(snapshot)


@router.patch("/context", response_model=ContextResponse)
async def update_context(
    request: ContextUpdateRequest,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    """Merge the supplied signals into the user's context; other fields are untouched."""
    try:
        snapshot = await service.update_context(user_id, request.model_dump(exclude_unset=True))
    except Exception as e:
        raise _http_error(e, "update_context", user_id) from e
    return _context_response(snapshot)


# ----------------------------------------------------------------------
# Batch jobs
# ----------------------------------------------------------------------


@router.post("/batch-jobs", response_model=BatchJobResponse, status_code=status.HTTP_201_CREATED)
async def create_batch_job(
    request: BatchJobCreateRequest,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        job = await service.create_batch_job(
            user_id,
            title=request.title,
            recipients=[recipient.model_dump() for recipient in request.recipients],
            message_template=request.message_template,
            platform=request.platform,
            trigger_id=request.trigger_id,
        )
    except Exception as e:
        raise _http_error(e, "create_batch_job", user_id) from e
    return _batch_response(job)


@router.get("/batch-jobs", response_model=BatchJobListResponse)
async def list_batch_jobs(
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        jobs = await service.list_batch_jobs(user_id)
    except Exception as e:
        raise _http_error(e, "list_batch_jobs", user_id) from e
    return BatchJobListResponse(
        jobs=[_batch_response(job, service.is_batch_running(job.id)) for job in jobs],
        total_count=len(jobs),
    )


@router.post(
    "/batch-jobs/{job_id}/run",
    response_model=BatchJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def run_batch_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    """Start dispatch in the background; poll /progress for updates."""
    try:
        await service.start_batch_job(user_id, job_id)
        job = await service.get_batch_job(user_id, job_id)
    except Exception as e:
        raise _http_error(e, "run_batch_job", user_id) from e

    logger.info("Batch job dispatch started", user_id=user_id, job_id=job_id)
    return _batch_response(job, is_running=True)


@router.get("/batch-jobs/{job_id}/progress", response_model=BatchProgressResponse)
async def get_batch_progress(
    job_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        job = await service.get_batch_job(user_id, job_id)
    except Exception as e:
        raise _http_error(e, "get_batch_progress", user_id) from e
    return BatchProgressResponse(
        **job.progress.to_dict(),
        status=job.status.value,
        is_running=service.is_batch_running(job_id),
    )


@router.post("/batch-jobs/{job_id}/cancel", response_model=BatchJobResponse)
async def cancel_batch_job(
    job_id: str,
    user_id: str = Depends(current_user_id),
    service: AutomationService = Depends(get_automation_service),
):
    try:
        job = await service.cancel_batch_job(user_id, job_id)
    except Exception as e:
        raise _http_error(e, "cancel_batch_job", user_id) from e
    return _batch_response(job)
