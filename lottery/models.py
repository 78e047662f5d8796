"""
Core models for the event lottery platform.

This module contains the database models for events, the per-event entrant
ledger, invitations issued to selected entrants, and the notification
requests consumed by the push dispatcher.
"""

import enum
import uuid
from typing import Any, Optional

from django.contrib.auth.models import AbstractUser
from django.db import models


class Toggle(enum.Enum):
    """
    Normalized value of a client-written boolean preference.

    Clients store these flags as booleans, as strings, or not at all; an
    absent flag behaves as enabled.
    """

    ENABLED = "enabled"
    DISABLED = "disabled"
    UNSET = "unset"

    @classmethod
    def from_raw(cls, value: Any) -> "Toggle":
        if value is None:
            return cls.UNSET
        if isinstance(value, bool):
            return cls.ENABLED if value else cls.DISABLED
        if isinstance(value, str):
            return cls.ENABLED if value.strip().lower() == "true" else cls.DISABLED
        return cls.ENABLED if value else cls.DISABLED

    @property
    def is_enabled(self) -> bool:
        return self is not Toggle.DISABLED


class GroupType(models.TextChoices):
    """Known notification group types."""

    SELECTION = "selection", "Selection"
    SELECTED = "selected", "Selected"
    NON_SELECTED = "nonSelected", "Not Selected"
    SORRY = "sorry", "Sorry"
    WAITLIST = "waitlist", "Waitlist"
    CANCELLED = "cancelled", "Cancelled"
    GENERAL = "general", "General"


INVITED_GROUP_TYPES = frozenset({GroupType.SELECTED.value, GroupType.SELECTION.value})
NOT_INVITED_GROUP_TYPES = frozenset({GroupType.NON_SELECTED.value, GroupType.SORRY.value})


class User(AbstractUser):
    """
    Platform user as seen by the notification pipeline.

    Push preferences are written by the mobile client and kept raw; read
    them through the ``*_toggle`` methods.
    """

    full_name = models.CharField(max_length=255, blank=True)
    name = models.CharField(max_length=255, blank=True)

    fcm_token = models.CharField(max_length=512, blank=True, default="")
    notifications_enabled = models.JSONField(null=True, blank=True)
    notification_preference_invited = models.JSONField(null=True, blank=True)
    notification_preference_not_invited = models.JSONField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "users"

    @property
    def has_push_token(self) -> bool:
        return bool(self.fcm_token and self.fcm_token.strip())

    def notifications_toggle(self) -> Toggle:
        return Toggle.from_raw(self.notifications_enabled)

    def invited_toggle(self) -> Toggle:
        return Toggle.from_raw(self.notification_preference_invited)

    def not_invited_toggle(self) -> Toggle:
        return Toggle.from_raw(self.notification_preference_not_invited)

    def accepts_group(self, group_type: str) -> bool:
        """
        Check whether the user wants pushes for a notification group.

        The global switch always applies; invited and not-invited groups
        are further gated by their own preference.
        """
        if not self.notifications_toggle().is_enabled:
            return False
        if group_type in INVITED_GROUP_TYPES:
            return self.invited_toggle().is_enabled
        if group_type in NOT_INVITED_GROUP_TYPES:
            return self.not_invited_toggle().is_enabled
        return True

    def get_display_first_name(self) -> Optional[str]:
        """First name for greetings, falling back to the full and generic names."""
        if self.first_name and self.first_name.strip():
            return self.first_name.strip()
        for value in (self.full_name, self.name):
            if value and value.strip():
                return value.split()[0]
        return None

    def __str__(self):
        return self.username


class Event(models.Model):
    """
    An event whose entrants are drawn by lottery.

    The three processing flags only ever move from False to True.
    """

    title = models.CharField(max_length=200)
    organizer = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="organized_events"
    )

    # Epoch milliseconds, as written by the client
    registration_end = models.BigIntegerField(null=True, blank=True)
    starts_at_epoch_ms = models.BigIntegerField(null=True, blank=True)
    deadline_epoch_ms = models.BigIntegerField(null=True, blank=True)

    sample_size = models.IntegerField(default=0)

    selection_processed = models.BooleanField(default=False)
    selection_notification_sent = models.BooleanField(default=False)
    sorry_notification_sent = models.BooleanField(default=False)
    selection_notification_error = models.TextField(blank=True, default="")
    # Set when invitations or moves fail after the draw was committed
    selection_error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "events"
        indexes = [
            models.Index(fields=["selection_processed"], name="events_selecti_3f1c2a_idx"),
            models.Index(
                fields=["starts_at_epoch_ms", "sorry_notification_sent"], name="events_starts__8b4e7d_idx"
            ),
        ]

    @property
    def organizer_key(self) -> str:
        return str(self.organizer_id) if self.organizer_id else "system"

    def __str__(self):
        return self.title


class EntrantState(models.TextChoices):
    """The four mutually exclusive entrant states."""

    WAITLISTED = "waitlisted", "Waitlisted"
    SELECTED = "selected", "Selected"
    NON_SELECTED = "non_selected", "Not Selected"
    CANCELLED = "cancelled", "Cancelled"


class Entrant(models.Model):
    """
    A user's place in an event's lottery.

    One row per (event, user): an entrant is in exactly one state, and a
    state change rewrites the row instead of copying it elsewhere.
    """

    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="entrants")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="entries")

    state = models.CharField(
        max_length=20, choices=EntrantState.choices, default=EntrantState.WAITLISTED
    )
    profile = models.JSONField(default=dict, blank=True)

    joined_at = models.DateTimeField(auto_now_add=True)
    state_changed_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "entrants"
        constraints = [
            models.UniqueConstraint(fields=["event", "user"], name="unique_entrant_per_event"),
        ]
        indexes = [
            models.Index(fields=["event", "state"], name="entrants_event_i_5d2a91_idx"),
        ]

    def __str__(self):
        return f"{self.user_id} in {self.event_id} ({self.state})"


class Invitation(models.Model):
    """Invitation for a selected entrant to accept or decline a spot."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        ACCEPTED = "ACCEPTED", "Accepted"
        DECLINED = "DECLINED", "Declined"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="invitations")
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="invitations")
    organizer_id = models.CharField(max_length=64, default="system")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    issued_at = models.BigIntegerField()
    expires_at = models.BigIntegerField()

    class Meta:
        db_table = "invitations"
        indexes = [
            models.Index(fields=["event", "user", "status"], name="invitations_event_i_0e6c3b_idx"),
        ]

    def __str__(self):
        return f"Invitation for {self.user_id} to {self.event_id} ({self.status})"


class NotificationRequest(models.Model):
    """
    A persisted unit of push-notification work.

    Creating one publishes it to the dispatcher; the dispatcher and the
    retry coordinator record their outcome on the same row.
    """

    event = models.ForeignKey(
        Event, on_delete=models.SET_NULL, null=True, blank=True, related_name="notification_requests"
    )
    event_title = models.CharField(max_length=200, blank=True, default="")
    organizer_id = models.CharField(max_length=64, blank=True, default="")
    user_ids = models.JSONField(default=list, blank=True)
    group_type = models.CharField(max_length=30, default=GroupType.GENERAL)
    title = models.CharField(max_length=200, blank=True, default="")
    message = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, default="PENDING")

    created_at = models.DateTimeField(auto_now_add=True)
    claimed_at = models.DateTimeField(null=True, blank=True)
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True, default="")

    # Initial delivery outcome
    sent_count = models.IntegerField(default=0)
    failure_count = models.IntegerField(default=0)
    users_without_tokens = models.IntegerField(default=0)
    opted_out_count = models.IntegerField(default=0)

    # Retry bookkeeping
    should_retry = models.BooleanField(null=True, blank=True)
    retry_count = models.IntegerField(default=0)
    last_retry_attempt = models.DateTimeField(null=True, blank=True)
    failed_users = models.JSONField(default=list, blank=True)
    retry_success_count = models.IntegerField(default=0)
    retry_failure_count = models.IntegerField(default=0)
    final_status = models.CharField(
        max_length=20,
        choices=[("success", "Success"), ("failed", "Failed")],
        null=True,
        blank=True,
    )

    class Meta:
        db_table = "notification_requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["processed", "should_retry"], name="notificatio_process_4a7f1e_idx"),
            models.Index(fields=["event", "group_type"], name="notificatio_event_i_9c2d6b_idx"),
        ]

    def retry_targets(self) -> list:
        """User ids to re-attempt: the recorded failures, else everyone."""
        failed = [entry.get("userId") for entry in self.failed_users or [] if entry.get("userId")]
        return failed or list(self.user_ids or [])

    def __str__(self):
        return f"{self.group_type} notification for {self.event_title or 'no event'}"
