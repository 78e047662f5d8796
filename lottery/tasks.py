"""
Celery tasks for the lottery jobs.

Periodic jobs run from Celery Beat (selection, pre-start sweep, notification
retries and stale-request redispatch); dispatch runs once per new
notification request.
"""

import logging
from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task
def process_automatic_entrant_selection():
    """
    Periodic task to run the lottery for events whose registration closed.

    Runs every LOTTERY_JOB_INTERVAL_SECONDS (default one minute).
    """
    from lottery.services.selection_service import SelectionService

    processed = SelectionService.process_due_events()

    logger.info(f"Processed {processed} event(s) for automatic entrant selection")

    return f"Processed {processed} events"


@shared_task
def send_sorry_notifications():
    """
    Periodic task to cancel non-selected entrants of events about to start.

    Runs every minute; each tick covers the next one-minute start window.
    """
    from lottery.services.expiry_service import ExpiryService

    processed = ExpiryService.sweep()

    return f"Sent sorry notifications for {processed} events"


@shared_task
def retry_failed_notifications():
    """Periodic task to re-attempt retryable push failures."""
    from lottery.services.retry_service import RetryService

    outcomes = RetryService.retry_failed_requests()

    logger.info(f"Notification retry tick: {outcomes}")

    return (
        f"Retried {outcomes['retried']}, exhausted {outcomes['exhausted']}, "
        f"skipped {outcomes['skipped']}"
    )


@shared_task
def dispatch_notification_request(request_id: int):
    """
    Send the pushes for a newly created notification request.

    Args:
        request_id: ID of the NotificationRequest
    """
    from lottery.models import NotificationRequest
    from lottery.services.dispatch_service import NotificationDispatchService

    if not NotificationRequest.objects.filter(pk=request_id).exists():
        return f"Notification request {request_id} not found"

    report = NotificationDispatchService.process_request(request_id)
    if report is None:
        return f"Nothing to send for notification request {request_id}"

    return f"Notification request {request_id}: {report.sent_count} sent, {report.failure_count} failed"


@shared_task
def redispatch_stale_notifications():
    """Periodic task to dispatch requests whose dispatch task was lost."""
    from lottery.services.dispatch_service import NotificationDispatchService

    processed = NotificationDispatchService.redispatch_stale_requests()

    return f"Redispatched {processed} notification requests"
