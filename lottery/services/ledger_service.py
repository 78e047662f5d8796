"""
Entrant ledger service.

Reads and moves entrants between the four lottery states of an event.
Every move is one atomic unit: the entrant ends up in the destination state
and in no other.
"""

import logging
from typing import Dict, Iterable, List, Optional

from django.db import transaction

from lottery.models import Entrant, EntrantState, Event

logger = logging.getLogger(__name__)


class LedgerService:
    """Per-event partition of entrants across lottery states"""

    @staticmethod
    def _validate_state(state: str) -> None:
        if state not in EntrantState.values:
            raise ValueError(f"Invalid entrant state: {state}")

    @staticmethod
    def entrants(event: Event, state: str):
        """Queryset of the event's entrants currently in ``state``."""
        LedgerService._validate_state(state)
        return Entrant.objects.filter(event=event, state=state)

    @staticmethod
    def user_ids(event: Event, state: str) -> List[int]:
        return list(
            LedgerService.entrants(event, state).order_by("id").values_list("user_id", flat=True)
        )

    @staticmethod
    def count(event: Event, state: str) -> int:
        return LedgerService.entrants(event, state).count()

    @staticmethod
    def has_entrants(event: Event, state: str) -> bool:
        return LedgerService.entrants(event, state).exists()

    @staticmethod
    def transition(
        event: Event,
        user_ids: Iterable[int],
        to_state: str,
        profiles: Optional[Dict[int, dict]] = None,
    ) -> List[int]:
        """
        Move users into ``to_state`` for an event.

        Users without an entrant row get one, carrying the given profile
        snapshot. Existing rows keep their snapshot unless a new one is
        supplied.

        Args:
            event: Event whose ledger is changed
            user_ids: Users to move
            to_state: Destination state
            profiles: Optional profile snapshot per user id

        Returns:
            User ids that changed state or were created
        """
        LedgerService._validate_state(to_state)
        profiles = profiles or {}
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return []

        moved = []
        with transaction.atomic():
            existing = {
                entrant.user_id: entrant
                for entrant in Entrant.objects.select_for_update().filter(
                    event=event, user_id__in=user_ids
                )
            }

            for user_id in user_ids:
                entrant = existing.get(user_id)
                if entrant is None:
                    Entrant.objects.create(
                        event=event,
                        user_id=user_id,
                        state=to_state,
                        profile=profiles.get(user_id, {}),
                    )
                    moved.append(user_id)
                    continue

                if entrant.state == to_state and user_id not in profiles:
                    continue

                entrant.state = to_state
                update_fields = ["state", "state_changed_at"]
                if user_id in profiles:
                    entrant.profile = profiles[user_id]
                    update_fields.append("profile")
                entrant.save(update_fields=update_fields)
                moved.append(user_id)

        logger.info(f"Moved {len(moved)} entrant(s) of event {event.pk} to {to_state}")
        return moved

    @staticmethod
    def state_counts(event: Event) -> Dict[str, int]:
        """Number of entrants per state, including empty states."""
        counts = {state: 0 for state in EntrantState.values}
        for entrant in Entrant.objects.filter(event=event).only("state"):
            counts[entrant.state] += 1
        return counts
