"""
Email delivery endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from email_delivery.infrastructure.observability.logging import get_logger
from email_delivery.models.api.email_request import (
    BulkEmailRequest,
    ScheduleEmailRequest,
    SendEmailRequest,
)
from email_delivery.models.api.email_response import (
    BulkEmailResponse,
    EmailResultResponse,
    EmailStatusResponse,
    QueueEntryResponse,
    QueueStatusResponse,
    ScheduleEmailResponse,
)
from email_delivery.services.email_service import (
    EmailService,
    EmailServiceError,
    EmailValidationError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/email", tags=["email"])


def get_email_service(request: Request) -> EmailService:
    """Process-wide EmailService built during application startup."""
    service = getattr(request.app.state, "email_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Email service not initialized"
        )
    return service


def _validation_error(e: EmailValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": e.message, "errors": e.errors},
    )


@router.post("/send", response_model=EmailResultResponse)
async def send_email(request: SendEmailRequest, service: EmailService = Depends(get_email_service)):
    """Send an email. Delivery failures are queued for retry and reported with success=false."""
    try:
        result = await service.send(request.to_options())
    except EmailValidationError as e:
        raise _validation_error(e)

    return EmailResultResponse.from_result(result)


@router.post("/bulk", response_model=BulkEmailResponse)
async def send_bulk_email(request: BulkEmailRequest, service: EmailService = Depends(get_email_service)):
    """Send a templated email to every recipient."""
    results = await service.send_bulk(request.recipients, request.template, request.template_data)

    return BulkEmailResponse(
        total=len(results),
        succeeded=sum(1 for result in results.values() if result.success),
        results={
            recipient: EmailResultResponse.from_result(result)
            for recipient, result in results.items()
        },
    )


@router.post("/schedule", response_model=ScheduleEmailResponse, status_code=status.HTTP_201_CREATED)
async def schedule_email(
    request: ScheduleEmailRequest, service: EmailService = Depends(get_email_service)
):
    """Persist an email for later delivery."""
    try:
        schedule_id = await service.schedule_email(request.message.to_options(), request.send_at)
    except EmailValidationError as e:
        raise _validation_error(e)
    except EmailServiceError as e:
        logger.error("Error scheduling email", error=str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return ScheduleEmailResponse(schedule_id=schedule_id)


@router.delete("/schedule/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_scheduled_email(schedule_id: str, service: EmailService = Depends(get_email_service)):
    """Cancel a scheduled email."""
    if not await service.cancel_scheduled(schedule_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scheduled email not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/status/{message_id}", response_model=EmailStatusResponse)
async def get_email_status(message_id: str, service: EmailService = Depends(get_email_service)):
    """Look up the sent record for a delivered message."""
    record = await service.get_email_status(message_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Email record not found")
    return EmailStatusResponse(message_id=message_id, record=record)


@router.get("/queue", response_model=QueueStatusResponse)
async def get_retry_queue(service: EmailService = Depends(get_email_service)):
    """Messages currently waiting for a retry pass."""
    return QueueStatusResponse(
        size=service.queue_size,
        entries=[QueueEntryResponse.from_entry(entry) for entry in service.queued_entries()],
    )
