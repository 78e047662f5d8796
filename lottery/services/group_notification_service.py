"""
Organizer-initiated group notifications.

Creates notification requests addressed to every entrant in one lottery
state, or to a hand-picked list of users. Delivery, preference filtering
and personalization happen in the dispatcher.
"""

import logging
from typing import Iterable, Optional

from lottery.models import EntrantState, Event, GroupType, NotificationRequest, User
from lottery.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


class GroupNotificationService:
    """Notification requests for entrant groups"""

    STATE_GROUP_TYPES = {
        EntrantState.WAITLISTED: GroupType.WAITLIST,
        EntrantState.SELECTED: GroupType.SELECTED,
        EntrantState.NON_SELECTED: GroupType.NON_SELECTED,
        EntrantState.CANCELLED: GroupType.CANCELLED,
    }

    @staticmethod
    def default_title(group_type: str, event_title: Optional[str]) -> str:
        event_name = event_title or "Event"
        titles = {
            GroupType.WAITLIST: f"Update: {event_name}",
            GroupType.SELECTED: "You've been selected!",
            GroupType.CANCELLED: f"Update: {event_name}",
            GroupType.NON_SELECTED: f"Update: {event_name}",
        }
        return titles.get(group_type, "Event Update")

    @staticmethod
    def default_message(group_type: str, event_title: Optional[str]) -> str:
        event_name = event_title or "this event"
        messages = {
            GroupType.WAITLIST: (
                f"You are on the waitlist for {event_name}. "
                f"We'll notify you if a spot becomes available."
            ),
            GroupType.SELECTED: (
                f"Congratulations! You've been selected for {event_name}. "
                f"Please check your invitations."
            ),
            GroupType.CANCELLED: (
                f"Your registration for {event_name} has been cancelled. "
                f"Please contact the organizer if you have questions."
            ),
            GroupType.NON_SELECTED: (
                f"Thank you for your interest in {event_name}. Unfortunately, you were not "
                f"selected this time. We appreciate your participation."
            ),
        }
        return messages.get(group_type, f"You have an update regarding {event_name}.")

    @staticmethod
    def notify_group(
        event: Event,
        state: str,
        message: Optional[str] = None,
        organizer: Optional[User] = None,
    ) -> Optional[NotificationRequest]:
        """
        Notify every entrant of an event in one state.

        Args:
            event: Event whose entrants are notified
            state: Entrant state selecting the group
            message: Custom message; blank uses the group's default
            organizer: User sending the notification (defaults to the event's organizer)

        Returns:
            The created request, or None if the group is empty
        """
        group_type = GroupNotificationService.STATE_GROUP_TYPES.get(state)
        if group_type is None:
            raise ValueError(f"Invalid entrant state: {state}")

        user_ids = LedgerService.user_ids(event, state)
        if not user_ids:
            logger.info(f"No {state} entrants to notify for event {event.pk}")
            return None

        if not message or not message.strip():
            message = GroupNotificationService.default_message(group_type, event.title)

        request = NotificationRequest.objects.create(
            event=event,
            event_title=event.title or "Event",
            organizer_id=str(organizer.pk) if organizer else event.organizer_key,
            user_ids=user_ids,
            group_type=group_type,
            title=GroupNotificationService.default_title(group_type, event.title),
            message=message,
        )
        logger.info(
            f"Notification request {request.pk} created for {len(user_ids)} users in {group_type} group"
        )
        return request

    @staticmethod
    def notify_users(
        event: Optional[Event],
        user_ids: Iterable[int],
        title: str,
        message: str,
        organizer: Optional[User] = None,
    ) -> Optional[NotificationRequest]:
        """
        Notify an explicit list of users with a custom title and message.

        Returns:
            The created request, or None if no users were given
        """
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return None

        if organizer:
            organizer_id = str(organizer.pk)
        else:
            organizer_id = event.organizer_key if event else "system"

        return NotificationRequest.objects.create(
            event=event,
            event_title=(event.title if event else "") or "Event",
            organizer_id=organizer_id,
            user_ids=user_ids,
            group_type=GroupType.GENERAL,
            title=title,
            message=message,
        )
