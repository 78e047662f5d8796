"""
Pytest configuration and fixtures for testing.
"""

import pytest
from unittest.mock import patch
from django.contrib.auth import get_user_model
from firebase_admin import messaging

from lottery.models import Entrant, EntrantState, Event
from lottery.services.fcm_service import FCMService
from lottery.utils.clock import now_ms
from tests.factories import DAY_MS, MINUTE_MS

User = get_user_model()


@pytest.fixture
def user_factory(db):
    """Factory for creating users with push tokens."""
    counter = {"value": 0}

    def create_user(username=None, fcm_token=None, **kwargs):
        counter["value"] += 1
        if not username:
            username = f'user_{counter["value"]}'
        if fcm_token is None:
            fcm_token = f"token-{username}"

        return User.objects.create_user(
            username=username,
            password="testpass123",
            fcm_token=fcm_token,
            **kwargs,
        )

    return create_user


@pytest.fixture
def user(user_factory):
    """Provide a single test user."""
    return user_factory()


@pytest.fixture
def event_factory(db, user_factory):
    """Factory for events whose registration has just closed."""

    def create_event(organizer=None, **kwargs):
        if organizer is None:
            organizer = user_factory(username=f"organizer_{Event.objects.count() + 1}")

        now = now_ms()
        defaults = {
            "title": "Spring Gala",
            "registration_end": now - MINUTE_MS,
            "starts_at_epoch_ms": now + 7 * DAY_MS,
            "deadline_epoch_ms": now + 3 * DAY_MS,
            "sample_size": 2,
        }
        defaults.update(kwargs)

        return Event.objects.create(organizer=organizer, **defaults)

    return create_event


@pytest.fixture
def event(event_factory):
    """Provide a single event ready for selection."""
    return event_factory()


@pytest.fixture
def add_entrants(db, user_factory):
    """Put new (or given) users into one state of an event's ledger."""

    def add(event, count=0, state=EntrantState.WAITLISTED, users=None):
        users = list(users or [])
        for _ in range(count):
            users.append(user_factory())
        for member in users:
            Entrant.objects.create(event=event, user=member, state=state)
        return users

    return add


@pytest.fixture
def fcm():
    """
    Initialized push gateway whose sends succeed.

    Map a token to an exception in ``fcm.errors`` to make that message fail.
    """
    errors = {}

    def send_each(messages):
        responses = []
        for message in messages:
            exc = errors.get(message.token)
            if exc is None:
                responses.append(
                    messaging.SendResponse({"name": f"projects/test/messages/{message.token}"}, None)
                )
            else:
                responses.append(messaging.SendResponse(None, exc))
        return messaging.BatchResponse(responses)

    with patch.object(FCMService, "_initialized", True), patch(
        "lottery.services.fcm_service.messaging.send_each", side_effect=send_each
    ) as mock_send:
        mock_send.errors = errors
        yield mock_send
