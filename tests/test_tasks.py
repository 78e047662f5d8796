"""Tests for the Celery tasks and the dispatch trigger."""

from datetime import timedelta

import pytest
from django.utils import timezone
from firebase_admin import exceptions

from lottery.models import EntrantState, GroupType, NotificationRequest
from lottery.services.ledger_service import LedgerService
from lottery.tasks import (
    dispatch_notification_request,
    process_automatic_entrant_selection,
    redispatch_stale_notifications,
    retry_failed_notifications,
    send_sorry_notifications,
)
from lottery.utils.clock import now_ms

pytestmark = pytest.mark.django_db


class TestDispatchTrigger:
    """Test that new requests are dispatched once committed."""

    def test_created_request_is_dispatched_on_commit(
        self, fcm, user, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            request = NotificationRequest.objects.create(user_ids=[user.pk], message="Hi")

        assert len(callbacks) == 1
        request.refresh_from_db()
        assert request.processed
        assert request.sent_count == 1

    def test_updates_are_not_dispatched(self, fcm, user, django_capture_on_commit_callbacks):
        request = NotificationRequest.objects.create(user_ids=[user.pk], message="Hi")

        with django_capture_on_commit_callbacks() as callbacks:
            request.error = "edited"
            request.save()

        assert callbacks == []

    def test_missing_request(self, db):
        assert dispatch_notification_request(999999) == "Notification request 999999 not found"

    def test_nothing_to_send(self, fcm):
        request = NotificationRequest.objects.create(user_ids=[], message="Hi")

        result = dispatch_notification_request(request.pk)

        assert result == f"Nothing to send for notification request {request.pk}"

    def test_summary(self, fcm, user):
        request = NotificationRequest.objects.create(user_ids=[user.pk], message="Hi")

        result = dispatch_notification_request(request.pk)

        assert result == f"Notification request {request.pk}: 1 sent, 0 failed"


class TestPeriodicTasks:
    """Test the scheduled jobs."""

    def test_selection_task(self, event, add_entrants):
        add_entrants(event, 3)

        assert process_automatic_entrant_selection() == "Processed 1 events"
        assert LedgerService.count(event, EntrantState.SELECTED) == 2

    def test_sorry_task(self, event_factory, add_entrants):
        event = event_factory(starts_at_epoch_ms=now_ms() + 90 * 1000)
        add_entrants(event, 1, state=EntrantState.NON_SELECTED)

        assert send_sorry_notifications() == "Sent sorry notifications for 1 events"
        assert LedgerService.count(event, EntrantState.CANCELLED) == 1

    def test_retry_task(self, fcm, user):
        NotificationRequest.objects.create(
            user_ids=[user.pk], processed=True, should_retry=True, message="Hi"
        )

        assert retry_failed_notifications() == "Retried 1, exhausted 0, skipped 0"

    def test_redispatch_task(self, fcm, user):
        request = NotificationRequest.objects.create(user_ids=[user.pk], message="Hi")
        NotificationRequest.objects.filter(pk=request.pk).update(
            created_at=timezone.now() - timedelta(minutes=10)
        )

        assert redispatch_stale_notifications() == "Redispatched 1 notification requests"
        request.refresh_from_db()
        assert request.processed


class TestPipeline:
    """Test selection through delivery and retry."""

    def test_lottery_to_push(
        self, fcm, event, add_entrants, user_factory, django_capture_on_commit_callbacks
    ):
        flaky = user_factory(first_name="anna")
        fcm.errors[flaky.fcm_token] = exceptions.UnavailableError("Service unavailable")
        add_entrants(event, users=[flaky, user_factory(), user_factory()])
        event.sample_size = 3
        event.save()

        with django_capture_on_commit_callbacks(execute=True):
            process_automatic_entrant_selection()

        request = NotificationRequest.objects.get(event=event, group_type=GroupType.SELECTION)
        assert request.processed
        assert request.sent_count == 2
        assert request.should_retry is True
        assert [entry["userId"] for entry in request.failed_users] == [flaky.pk]

        del fcm.errors[flaky.fcm_token]
        retry_failed_notifications()

        request.refresh_from_db()
        assert request.final_status == "success"
        assert request.retry_success_count == 1
