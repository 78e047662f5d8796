"""
Pre-start expiry sweep.

Shortly before an event starts, entrants still waiting as non-selected are
cancelled and told the selection is over.
"""

import logging
from typing import Optional, Tuple

from django.conf import settings
from django.db import transaction

from lottery.models import EntrantState, Event, GroupType, NotificationRequest
from lottery.services.ledger_service import LedgerService
from lottery.utils.clock import now_ms

logger = logging.getLogger(__name__)


class ExpiryService:
    """Cancels non-selected entrants right before an event starts"""

    @staticmethod
    def window(now: int) -> Tuple[int, int]:
        """
        Start-time window, in epoch ms, swept by a tick at ``now``.

        The window is one job interval wide, so consecutive ticks never
        look at the same start time twice.
        """
        start = getattr(settings, "SORRY_WINDOW_START_SECONDS", 60)
        end = getattr(settings, "SORRY_WINDOW_END_SECONDS", 120)
        return now + start * 1000, now + end * 1000

    @staticmethod
    def sorry_message(event_title: str) -> str:
        return (
            f'Thank you for your interest in "{event_title}". '
            f"The selection process has been completed automatically. "
            f"We appreciate your participation and hope to see you at future events!"
        )

    @staticmethod
    def process_event(event_id: int) -> Optional[NotificationRequest]:
        """
        Cancel an event's non-selected entrants and request the sorry push.

        Moving the entrants, creating the request and setting the flag are
        one unit of work; the request is dispatched once it commits.

        Returns:
            The created request, or None if there was nobody to notify
        """
        with transaction.atomic():
            event = Event.objects.select_for_update().get(pk=event_id)
            if event.sorry_notification_sent:
                logger.info(f"Sorry notification already sent for event {event_id}, skipping")
                return None

            user_ids = LedgerService.user_ids(event, EntrantState.NON_SELECTED)
            request = None
            if not user_ids:
                logger.info(f"No non-selected entrants for event {event_id}")
            else:
                LedgerService.transition(event, user_ids, EntrantState.CANCELLED)
                event_title = event.title or "Event"
                request = NotificationRequest.objects.create(
                    event=event,
                    event_title=event_title,
                    organizer_id=event.organizer_key,
                    user_ids=user_ids,
                    group_type=GroupType.SORRY,
                    title=f"Selection Complete: {event_title}",
                    message=ExpiryService.sorry_message(event_title),
                )
                logger.info(
                    f"Created sorry notification request for {len(user_ids)} entrants of event {event_id}"
                )

            event.sorry_notification_sent = True
            event.save(update_fields=["sorry_notification_sent"])

        return request

    @staticmethod
    def sweep(now: Optional[int] = None) -> int:
        """
        Process every event starting inside the current window.

        Returns:
            Number of events processed
        """
        now = now if now is not None else now_ms()
        window_start, window_end = ExpiryService.window(now)
        event_ids = list(
            Event.objects.filter(
                starts_at_epoch_ms__gte=window_start,
                starts_at_epoch_ms__lt=window_end,
                sorry_notification_sent=False,
            ).values_list("id", flat=True)
        )
        if not event_ids:
            logger.info("No events starting in the sweep window")
            return 0

        processed = 0
        for event_id in event_ids:
            try:
                ExpiryService.process_event(event_id)
                processed += 1
            except Exception as e:
                logger.exception(f"Error sending sorry notifications for event {event_id}: {e}")

        return processed
