"""
Retry coordinator for failed push deliveries.

Re-attempts requests whose dispatch left retryable failures, at most
NOTIFICATION_MAX_RETRIES times and no more often than every
NOTIFICATION_RETRY_MIN_DELAY_SECONDS.
"""

import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from lottery.models import NotificationRequest
from lottery.services.dispatch_service import NotificationDispatchService

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
EXHAUSTED = "exhausted"
RETRIED = "retried"


class RetryService:
    """Bounded re-delivery of retryable notification failures"""

    @staticmethod
    def _max_retries() -> int:
        return getattr(settings, "NOTIFICATION_MAX_RETRIES", 3)

    @staticmethod
    def _min_delay() -> timedelta:
        return timedelta(seconds=getattr(settings, "NOTIFICATION_RETRY_MIN_DELAY_SECONDS", 60))

    @staticmethod
    def _claim_attempt(request: NotificationRequest, now) -> bool:
        """
        Stamp ``last_retry_attempt`` and use up one attempt if nobody else
        attempted this round.

        Conditional on the retry count and the previous stamp, so two
        overlapping ticks can't both retry the same request.
        """
        cutoff = now - RetryService._min_delay()
        return bool(
            NotificationRequest.objects.filter(
                pk=request.pk, should_retry=True, retry_count=request.retry_count
            )
            .filter(Q(last_retry_attempt__isnull=True) | Q(last_retry_attempt__lte=cutoff))
            .update(last_retry_attempt=now, retry_count=F("retry_count") + 1)
        )

    @staticmethod
    def retry_request(request: NotificationRequest, now=None) -> str:
        """
        Make one retry attempt for a request.

        Args:
            request: Request with processed=True and should_retry=True
            now: Current time (defaults to timezone.now())

        Returns:
            SKIPPED, EXHAUSTED or RETRIED
        """
        now = now or timezone.now()
        max_retries = RetryService._max_retries()

        if request.retry_count >= max_retries:
            logger.info(f"Request {request.pk} reached max retries ({max_retries}), giving up")
            NotificationRequest.objects.filter(pk=request.pk).update(
                should_retry=False, final_status="failed"
            )
            return EXHAUSTED

        if request.last_retry_attempt and now - request.last_retry_attempt < RetryService._min_delay():
            logger.debug(f"Request {request.pk} retried too recently, waiting")
            return SKIPPED

        if not RetryService._claim_attempt(request, now):
            logger.info(f"Request {request.pk} is being retried elsewhere")
            return SKIPPED

        targets = request.retry_targets()
        logger.info(
            f"Retrying request {request.pk} (attempt {request.retry_count + 1}) "
            f"for {len(targets)} users"
        )
        retry_count = request.retry_count + 1
        try:
            report = NotificationDispatchService.deliver(request, targets)
        except Exception as e:
            # The attempt was already counted by the claim
            failed = {"error": str(e)}
            if retry_count >= max_retries:
                failed.update(should_retry=False, final_status="failed")
            NotificationRequest.objects.filter(pk=request.pk).update(**failed)
            raise

        updates = {
            "retry_count": retry_count,
            "retry_success_count": request.retry_success_count + report.sent_count,
            "retry_failure_count": request.retry_failure_count + report.failure_count,
        }
        if not report.has_retryable:
            updates.update(
                should_retry=False,
                failed_users=[],
                final_status="success" if report.failure_count == 0 else "failed",
            )
        elif retry_count >= max_retries:
            updates.update(should_retry=False, failed_users=report.retryable, final_status="failed")
        else:
            updates["failed_users"] = report.retryable

        NotificationRequest.objects.filter(pk=request.pk).update(**updates)
        logger.info(
            f"Retry {retry_count} for request {request.pk}: "
            f"{report.sent_count} sent, {report.failure_count} failed"
        )
        return RETRIED

    @staticmethod
    def retry_failed_requests(now=None) -> dict:
        """
        Run one retry tick over every retryable request.

        Returns:
            Count of requests per outcome, plus errors
        """
        now = now or timezone.now()
        outcomes = {SKIPPED: 0, EXHAUSTED: 0, RETRIED: 0, "errors": 0}

        requests = NotificationRequest.objects.filter(processed=True, should_retry=True).order_by(
            "created_at"
        )
        for request in requests:
            try:
                outcomes[RetryService.retry_request(request, now)] += 1
            except Exception as e:
                logger.exception(f"Error retrying notification request {request.pk}: {e}")
                outcomes["errors"] += 1

        return outcomes
