"""
Automatic entrant selection service.

Runs the lottery for events whose registration window has closed: draws
winners from the waitlist up to the event's capacity, issues invitations,
requests the selection notification and moves everyone else to
non-selected.
"""

import logging
import random
from datetime import timedelta
from typing import List, Optional, Sequence, TypeVar

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from lottery.models import (
    EntrantState,
    Event,
    GroupType,
    Invitation,
    NotificationRequest,
)
from lottery.services.ledger_service import LedgerService
from lottery.utils.clock import from_epoch_ms, now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

_rng = random.SystemRandom()

SELECTION_TITLE = "You've been selected! 🎉"


def draw_winners(pool: Sequence[T], count: int, rng: Optional[random.Random] = None) -> List[T]:
    """
    Draw ``count`` members uniformly at random without replacement.

    Every member has the same chance of being drawn regardless of its
    position in ``pool``.
    """
    count = max(0, min(count, len(pool)))
    return (rng or _rng).sample(list(pool), count)


class SelectionService:
    """Lottery draw for events whose registration has closed"""

    @staticmethod
    def skip_reason(event: Event, now: int) -> Optional[str]:
        """
        Check whether an event is due for selection.

        Returns:
            Reason to skip, or None if the event is due
        """
        if event.selection_processed or event.selection_notification_sent:
            return "already processed"
        if not event.registration_end or event.registration_end <= 0:
            return "invalid registrationEnd"
        if event.registration_end > now:
            return "registration still open"
        if event.starts_at_epoch_ms and event.starts_at_epoch_ms > 0 and now >= event.starts_at_epoch_ms:
            return "event already started"
        return None

    @staticmethod
    def _draw_and_mark(event_id: int) -> Optional[List[int]]:
        """
        Draw winners and move them to selected in one locked unit of work.

        The event row lock serializes overlapping runs, and the selected
        count is read under that lock, so capacity can't be exceeded.

        Returns:
            Winner user ids, or None if another run already processed the event
        """
        with transaction.atomic():
            event = Event.objects.select_for_update().get(pk=event_id)
            if event.selection_processed:
                return None

            selected_count = LedgerService.count(event, EntrantState.SELECTED)
            available = event.sample_size - selected_count
            waitlist = list(
                LedgerService.entrants(event, EntrantState.WAITLISTED).values_list(
                    "user_id", flat=True
                )
            )
            to_select = min(available, len(waitlist))

            winners: List[int] = []
            if to_select > 0:
                winners = draw_winners(waitlist, to_select)

                # Entrants can be moved by other writers that don't take the event lock
                room = event.sample_size - LedgerService.count(event, EntrantState.SELECTED)
                if len(winners) > room:
                    logger.error(
                        f"Selected {len(winners)} users but only {room} spots remain "
                        f"for event {event_id}, truncating"
                    )
                    winners = winners[:max(room, 0)]

                LedgerService.transition(event, winners, EntrantState.SELECTED)
            else:
                logger.info(
                    f"Nothing to select for event {event_id} "
                    f"(available={available}, waitlisted={len(waitlist)})"
                )

            event.selection_processed = True
            event.save(update_fields=["selection_processed"])

        logger.info(
            f"Selected {len(winners)} out of {len(waitlist)} waitlisted entrants for event {event_id}"
        )
        return winners

    @staticmethod
    def confirm_selected(event: Event, winners: List[int]) -> List[int]:
        """Winners that are actually in selected now, in draw order."""
        selected = set(LedgerService.user_ids(event, EntrantState.SELECTED))
        if len(selected) > event.sample_size:
            logger.error(
                f"Event {event.pk} has {len(selected)} selected entrants "
                f"but sample size {event.sample_size}"
            )
        missing = [uid for uid in winners if uid not in selected]
        if missing:
            logger.warning(f"Winners {missing} no longer selected for event {event.pk}")
        return [uid for uid in winners if uid in selected]

    @staticmethod
    def create_invitations(event: Event, user_ids: List[int], now: int) -> List[Invitation]:
        """
        Issue pending invitations to confirmed winners.

        Users who already hold a pending invitation for the event are skipped.
        """
        if not user_ids:
            return []

        ttl_days = getattr(settings, "INVITATION_DEFAULT_TTL_DAYS", 7)
        expires_at = event.deadline_epoch_ms or now + int(timedelta(days=ttl_days).total_seconds() * 1000)

        already_invited = set(
            Invitation.objects.filter(
                event=event, user_id__in=user_ids, status=Invitation.Status.PENDING
            ).values_list("user_id", flat=True)
        )
        invitations = [
            Invitation(
                event=event,
                user_id=user_id,
                organizer_id=event.organizer_key,
                status=Invitation.Status.PENDING,
                issued_at=now,
                expires_at=expires_at,
            )
            for user_id in user_ids
            if user_id not in already_invited
        ]
        with transaction.atomic():
            Invitation.objects.bulk_create(invitations)

        logger.info(f"Created {len(invitations)} invitations for event {event.pk}")
        return invitations

    @staticmethod
    def selection_message(event: Event) -> str:
        if event.deadline_epoch_ms:
            deadline_text = from_epoch_ms(event.deadline_epoch_ms).strftime("%b %d, %Y at %I:%M %p UTC")
        else:
            deadline_text = "N/A"
        return (
            f"Congratulations! You've been selected for {event.title or 'Event'}. "
            f"Please check your invitations to accept or decline. "
            f"Deadline to respond: {deadline_text}"
        )

    @staticmethod
    def request_selection_notification(event: Event, user_ids: List[int]) -> Optional[NotificationRequest]:
        """
        Create the selection notification request and flag the event.

        The flag is set even if creating the request fails, so a broken
        request can't make every later tick try again; the error is kept
        on the event instead.
        """
        request = None
        error = ""
        try:
            request = NotificationRequest.objects.create(
                event=event,
                event_title=event.title or "Event",
                organizer_id=event.organizer_key,
                user_ids=list(user_ids),
                group_type=GroupType.SELECTION,
                title=SELECTION_TITLE,
                message=SelectionService.selection_message(event),
            )
            logger.info(
                f"Created selection notification request for {len(user_ids)} users for event {event.pk}"
            )
        except Exception as e:
            logger.exception(f"Failed to create selection notification for event {event.pk}: {e}")
            error = str(e)

        Event.objects.filter(pk=event.pk).update(
            selection_notification_sent=True, selection_notification_error=error
        )
        return request

    @staticmethod
    def move_remaining_to_non_selected(event: Event, winners: List[int]) -> List[int]:
        """Move everyone still waitlisted, except winners, to non-selected."""
        winner_set = set(winners)
        remaining = [
            uid for uid in LedgerService.user_ids(event, EntrantState.WAITLISTED)
            if uid not in winner_set
        ]
        if not remaining:
            logger.info(f"No remaining waitlisted entrants to move for event {event.pk}")
            return []
        return LedgerService.transition(event, remaining, EntrantState.NON_SELECTED)

    @staticmethod
    def process_event(event: Event, now: Optional[int] = None) -> bool:
        """
        Run the lottery for one event.

        Args:
            event: Candidate event
            now: Current time in epoch ms (defaults to the clock)

        Returns:
            True if the event's selection ran in this call
        """
        now = now if now is not None else now_ms()

        reason = SelectionService.skip_reason(event, now)
        if reason:
            logger.debug(f"Event {event.pk} skipped: {reason}")
            return False

        # Non-selected entrants mean a draw already happened; replacements
        # are picked by the organizer from then on.
        if LedgerService.has_entrants(event, EntrantState.NON_SELECTED):
            logger.info(
                f"Event {event.pk} has non-selected entrants, skipping automatic selection"
            )
            return False

        logger.info(f"Processing automatic selection for event {event.title} ({event.pk})")
        winners = SelectionService._draw_and_mark(event.pk)
        if winners is None:
            logger.info(f"Event {event.pk} was processed by another run")
            return False
        if not winners:
            return True

        # selection_processed is already committed, so a failure here is
        # never retried by a later tick. Keep the error on the event.
        try:
            event.refresh_from_db()
            confirmed = SelectionService.confirm_selected(event, winners)
            SelectionService.create_invitations(event, confirmed, now)
            if confirmed:
                SelectionService.request_selection_notification(event, confirmed)
            SelectionService.move_remaining_to_non_selected(event, winners)
        except Exception as e:
            Event.objects.filter(pk=event.pk).update(selection_error=str(e))
            raise
        return True

    @staticmethod
    def process_due_events(now: Optional[int] = None) -> int:
        """
        Run selection for every unprocessed event.

        A failure on one event is logged and does not stop the others.

        Returns:
            Number of events whose selection ran
        """
        now = now if now is not None else now_ms()
        events = list(Event.objects.filter(selection_processed=False).order_by("id"))
        logger.info(f"Found {len(events)} event(s) that may need selection processing")

        processed = 0
        for event in events:
            try:
                if SelectionService.process_event(event, now):
                    processed += 1
            except Exception as e:
                logger.exception(f"Error processing selection for event {event.pk}: {e}")

        return processed
