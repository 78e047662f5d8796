"""
Notification dispatch service.

Turns a NotificationRequest into personalized pushes: resolves recipients
and their preferences, delivers through FCM, cleans up invalid tokens and
records the outcome (including what the retry coordinator should pick up)
on the request.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from lottery.models import NotificationRequest, User
from lottery.services.fcm_service import (
    INVALID_TOKEN,
    RETRYABLE,
    DeliveryResult,
    FCMService,
    PushRecipient,
)
from lottery.services.personalization import personalize_message

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    """Aggregated outcome of delivering one request to a set of users."""

    sent_count: int = 0
    failure_count: int = 0
    users_without_tokens: int = 0
    opted_out_count: int = 0
    retryable: List[dict] = field(default_factory=list)
    invalid_tokens: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def has_retryable(self) -> bool:
        return bool(self.retryable)


def _coerce_user_ids(user_ids: Iterable) -> List[int]:
    """Deduplicate ids preserving order; ids that cannot be user keys are dropped."""
    coerced = []
    for raw in user_ids:
        try:
            coerced.append(int(raw))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed user id {raw!r}")
    return list(dict.fromkeys(coerced))


class NotificationDispatchService:
    """Push fan-out for notification requests"""

    @staticmethod
    def resolve_recipients(
        user_ids: Iterable, group_type: str, message: Optional[str]
    ) -> Tuple[List[PushRecipient], int, int]:
        """
        Resolve which users get a push and with what body.

        Args:
            user_ids: Requested user ids
            group_type: Group type used for preference gating
            message: Template message to personalize

        Returns:
            Tuple of (recipients, users_without_tokens, opted_out_count)
        """
        ids = _coerce_user_ids(user_ids)
        users = User.objects.in_bulk(ids)

        recipients = []
        without_tokens = 0
        opted_out = 0
        for user_id in ids:
            user = users.get(user_id)
            if user is None or not user.has_push_token:
                logger.info(f"User {user_id}: no push token")
                without_tokens += 1
                continue
            if not user.accepts_group(group_type):
                logger.info(f"User {user_id}: notifications disabled for {group_type}")
                opted_out += 1
                continue

            first_name = user.get_display_first_name()
            recipients.append(
                PushRecipient(
                    user_id=user_id,
                    token=user.fcm_token,
                    body=personalize_message(message, first_name),
                    first_name=first_name,
                )
            )

        return recipients, without_tokens, opted_out

    @staticmethod
    def summarize(results: List[DeliveryResult]) -> DeliveryReport:
        """Count results and split failures by category."""
        report = DeliveryReport()
        for result in results:
            if result.success:
                report.sent_count += 1
                continue
            report.failure_count += 1
            if result.category == RETRYABLE:
                report.retryable.append(
                    {"userId": result.recipient.user_id, "errorCode": result.error_code}
                )
            elif result.category == INVALID_TOKEN:
                report.invalid_tokens.append((result.recipient.user_id, result.recipient.token))
        return report

    @staticmethod
    def remove_invalid_tokens(invalid_tokens: List[Tuple[int, str]]) -> int:
        """
        Clear tokens the gateway rejected, in one atomic write.

        A token is only cleared if the user still has that exact token, so
        a token refreshed in the meantime survives.
        """
        if not invalid_tokens:
            return 0

        removed = 0
        with transaction.atomic():
            for user_id, token in invalid_tokens:
                removed += User.objects.filter(pk=user_id, fcm_token=token).update(fcm_token="")

        logger.info(f"Removed {removed} invalid FCM token(s)")
        return removed

    @staticmethod
    def deliver(request: NotificationRequest, user_ids: Iterable) -> DeliveryReport:
        """
        Resolve, personalize, send and classify for a subset of a request.

        Shared by the first dispatch and by retries.
        """
        recipients, without_tokens, opted_out = NotificationDispatchService.resolve_recipients(
            user_ids, request.group_type, request.message
        )

        results = []
        if recipients:
            results = FCMService.send_to_recipients(
                recipients,
                title=request.title,
                group_type=request.group_type,
                event_id=request.event_id,
                event_title=request.event_title,
            )
        else:
            logger.info(f"No deliverable recipients for request {request.pk}")

        report = NotificationDispatchService.summarize(results)
        report.users_without_tokens = without_tokens
        report.opted_out_count = opted_out

        NotificationDispatchService.remove_invalid_tokens(report.invalid_tokens)
        return report

    @staticmethod
    def _lease() -> timedelta:
        return timedelta(seconds=getattr(settings, "NOTIFICATION_CLAIM_LEASE_SECONDS", 300))

    @staticmethod
    def claim(request_id: int) -> Optional[NotificationRequest]:
        """
        Atomically claim an unprocessed request for dispatch.

        The claim is a lease: a worker that dies mid-dispatch leaves a
        claim that expires after NOTIFICATION_CLAIM_LEASE_SECONDS.

        Returns:
            The claimed request, or None if it is processed or held by
            another worker
        """
        now = timezone.now()
        expired = now - NotificationDispatchService._lease()
        claimed = (
            NotificationRequest.objects.filter(pk=request_id, processed=False)
            .filter(Q(claimed_at__isnull=True) | Q(claimed_at__lt=expired))
            .update(claimed_at=now)
        )
        if not claimed:
            return None
        return NotificationRequest.objects.get(pk=request_id)

    @staticmethod
    def process_request(request_id: int) -> Optional[DeliveryReport]:
        """
        Dispatch a notification request once.

        Args:
            request_id: Primary key of the NotificationRequest

        Returns:
            DeliveryReport, or None when there was nothing to do
        """
        request = NotificationDispatchService.claim(request_id)
        if request is None:
            logger.info(f"Request {request_id} already processed or claimed, skipping")
            return None

        user_ids = request.user_ids
        if not isinstance(user_ids, list) or not user_ids:
            logger.info(f"Request {request_id} has no userIds, marking as processed")
            NotificationRequest.objects.filter(pk=request_id).update(
                processed=True, processed_at=timezone.now(), error="No userIds provided"
            )
            return None

        logger.info(
            f"Processing notification request {request_id} "
            f"({request.group_type}) for {len(user_ids)} users"
        )

        try:
            report = NotificationDispatchService.deliver(request, user_ids)
        except Exception as e:
            # Leave the request to the retry coordinator rather than the task queue
            logger.exception(f"Error processing notification request {request_id}: {e}")
            NotificationRequest.objects.filter(pk=request_id).update(
                processed=True,
                processed_at=timezone.now(),
                error=str(e),
                should_retry=True,
                retry_count=0,
            )
            return None

        updates = {
            "processed": True,
            "processed_at": timezone.now(),
            "sent_count": report.sent_count,
            "failure_count": report.failure_count,
            "users_without_tokens": report.users_without_tokens,
            "opted_out_count": report.opted_out_count,
        }
        if report.sent_count == 0 and report.failure_count == 0:
            updates["error"] = "No valid FCM tokens found"
        if report.has_retryable:
            updates.update(should_retry=True, retry_count=0, failed_users=report.retryable)

        NotificationRequest.objects.filter(pk=request_id).update(**updates)

        logger.info(
            f"Request {request_id} processed: {report.sent_count} sent, "
            f"{report.failure_count} failed, {len(report.retryable)} retryable"
        )
        return report

    @staticmethod
    def redispatch_stale_requests(now=None) -> int:
        """
        Dispatch requests whose trigger was lost.

        Picks up unprocessed requests older than the claim lease that have
        no live claim: the on-commit task was never published, or the
        worker holding the claim died.

        Returns:
            Number of requests processed
        """
        now = now or timezone.now()
        cutoff = now - NotificationDispatchService._lease()
        stale_ids = list(
            NotificationRequest.objects.filter(processed=False, created_at__lt=cutoff)
            .filter(Q(claimed_at__isnull=True) | Q(claimed_at__lt=cutoff))
            .order_by("created_at")
            .values_list("pk", flat=True)
        )
        if stale_ids:
            logger.warning(f"Found {len(stale_ids)} stale notification request(s), redispatching")

        processed = 0
        for request_id in stale_ids:
            try:
                NotificationDispatchService.process_request(request_id)
                processed += 1
            except Exception as e:
                logger.exception(f"Error redispatching notification request {request_id}: {e}")

        return processed
