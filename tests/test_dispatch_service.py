"""Test notification request dispatch."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone
from firebase_admin import exceptions, messaging

from lottery.models import GroupType, NotificationRequest, User
from lottery.services.dispatch_service import NotificationDispatchService
from lottery.services.personalization import DEFAULT_MESSAGE, personalize_message

pytestmark = pytest.mark.django_db


def _create_request(users, group_type=GroupType.GENERAL, message="Hi", **kwargs):
    return NotificationRequest.objects.create(
        user_ids=[u.pk if isinstance(u, User) else u for u in users],
        group_type=group_type,
        title="Update",
        message=message,
        **kwargs,
    )


def _sent_bodies(fcm):
    return [m.notification.body for call in fcm.call_args_list for m in call.args[0]]


class TestPersonalization:
    """Test greeting prefixes."""

    def test_greeting_with_capitalized_name(self):
        assert personalize_message("Hi", "anna") == "Hey Anna, Hi"
        assert personalize_message("Hi", "mARIA") == "Hey Maria, Hi"

    def test_no_name(self):
        assert personalize_message("Hi", None) == "Hi"

    def test_empty_message_uses_default(self):
        assert personalize_message("", None) == DEFAULT_MESSAGE
        assert personalize_message(None, "anna") == f"Hey Anna, {DEFAULT_MESSAGE}"


class TestProcessRequest:
    """Test first dispatch of a request."""

    def test_personalized_send(self, fcm, user_factory):
        user = user_factory(first_name="anna")
        request = _create_request([user])

        report = NotificationDispatchService.process_request(request.pk)

        assert report.sent_count == 1
        assert _sent_bodies(fcm) == ["Hey Anna, Hi"]
        request.refresh_from_db()
        assert request.processed
        assert request.processed_at is not None
        assert request.sent_count == 1
        assert request.failure_count == 0
        assert request.should_retry is None

    def test_user_without_token(self, fcm, user_factory):
        user = user_factory(fcm_token="")
        request = _create_request([user])

        NotificationDispatchService.process_request(request.pk)

        fcm.assert_not_called()
        request.refresh_from_db()
        assert request.processed
        assert request.sent_count == 0
        assert request.failure_count == 0
        assert request.users_without_tokens == 1
        assert request.should_retry is None
        assert request.error == "No valid FCM tokens found"

    def test_unknown_user_counts_as_without_token(self, fcm, user):
        request = _create_request([user, 999999])

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.sent_count == 1
        assert request.users_without_tokens == 1

    def test_malformed_and_duplicate_ids_are_ignored(self, fcm, user):
        request = _create_request([user.pk, "abc", user.pk, None])

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.sent_count == 1
        assert fcm.call_count == 1

    def test_not_invited_preference_blocks_sorry(self, fcm, user_factory):
        opted_out = user_factory(notification_preference_not_invited=False)
        other = user_factory()
        request = _create_request([opted_out, other], group_type=GroupType.SORRY)

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.sent_count == 1
        assert request.opted_out_count == 1
        assert [m.token for m in fcm.call_args.args[0]] == [other.fcm_token]

    def test_not_invited_preference_allows_selection(self, fcm, user_factory):
        user = user_factory(notification_preference_not_invited="false")
        request = _create_request([user], group_type=GroupType.SELECTION)

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.sent_count == 1
        assert request.opted_out_count == 0

    def test_global_switch_blocks_everything(self, fcm, user_factory):
        user = user_factory(notifications_enabled=False)
        request = _create_request([user])

        NotificationDispatchService.process_request(request.pk)

        fcm.assert_not_called()
        request.refresh_from_db()
        assert request.opted_out_count == 1
        assert request.users_without_tokens == 0

    def test_invalid_token_is_removed(self, fcm, user_factory):
        user = user_factory()
        fcm.errors[user.fcm_token] = messaging.UnregisteredError("Requested entity was not found.")
        request = _create_request([user])

        NotificationDispatchService.process_request(request.pk)

        user.refresh_from_db()
        assert user.fcm_token == ""
        request.refresh_from_db()
        assert request.failure_count == 1
        assert request.should_retry is None
        assert request.failed_users == []

    def test_retryable_failure_is_recorded(self, fcm, user_factory):
        flaky = user_factory()
        fine = user_factory()
        fcm.errors[flaky.fcm_token] = exceptions.UnavailableError("Service unavailable")
        request = _create_request([flaky, fine])

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.sent_count == 1
        assert request.failure_count == 1
        assert request.should_retry is True
        assert request.retry_count == 0
        assert request.failed_users == [{"userId": flaky.pk, "errorCode": "UNAVAILABLE"}]
        flaky.refresh_from_db()
        assert flaky.fcm_token

    def test_terminal_failure_is_not_retried(self, fcm, user):
        fcm.errors[user.fcm_token] = exceptions.InvalidArgumentError("Message too big")
        request = _create_request([user])

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.failure_count == 1
        assert request.should_retry is None
        user.refresh_from_db()
        assert user.fcm_token

    def test_empty_user_ids(self, fcm):
        request = _create_request([])

        assert NotificationDispatchService.process_request(request.pk) is None

        fcm.assert_not_called()
        request.refresh_from_db()
        assert request.processed
        assert request.error == "No userIds provided"
        assert request.should_retry is None

    def test_non_list_user_ids(self, fcm):
        request = NotificationRequest.objects.create(user_ids={"a": 1}, message="Hi")

        NotificationDispatchService.process_request(request.pk)

        request.refresh_from_db()
        assert request.error == "No userIds provided"

    def test_processed_request_is_not_sent_again(self, fcm, user):
        request = _create_request([user])

        NotificationDispatchService.process_request(request.pk)
        assert NotificationDispatchService.process_request(request.pk) is None

        assert fcm.call_count == 1

    def test_active_claim_blocks_dispatch(self, fcm, user):
        request = _create_request([user], claimed_at=timezone.now())

        assert NotificationDispatchService.process_request(request.pk) is None
        fcm.assert_not_called()

    def test_expired_claim_is_taken_over(self, fcm, user):
        request = _create_request([user], claimed_at=timezone.now() - timedelta(minutes=10))

        report = NotificationDispatchService.process_request(request.pk)

        assert report.sent_count == 1

    def test_unexpected_error_leaves_request_for_retry(self, fcm, user):
        request = _create_request([user])

        with patch.object(
            NotificationDispatchService, "deliver", side_effect=RuntimeError("store unavailable")
        ):
            assert NotificationDispatchService.process_request(request.pk) is None

        request.refresh_from_db()
        assert request.processed
        assert request.should_retry is True
        assert request.retry_count == 0
        assert request.error == "store unavailable"


class TestRedispatchStaleRequests:
    """Test picking up requests whose dispatch task was lost."""

    def _age(self, request, minutes, claimed=False):
        past = timezone.now() - timedelta(minutes=minutes)
        NotificationRequest.objects.filter(pk=request.pk).update(
            created_at=past, claimed_at=past if claimed else None
        )

    def test_unclaimed_old_request_is_dispatched(self, fcm, user):
        request = _create_request([user])
        self._age(request, 10)

        assert NotificationDispatchService.redispatch_stale_requests() == 1

        request.refresh_from_db()
        assert request.processed
        assert request.sent_count == 1
        assert fcm.call_count == 1

    def test_abandoned_claim_is_dispatched(self, fcm, user):
        request = _create_request([user])
        self._age(request, 10, claimed=True)

        assert NotificationDispatchService.redispatch_stale_requests() == 1
        request.refresh_from_db()
        assert request.processed

    def test_recent_request_is_left_to_its_task(self, fcm, user):
        _create_request([user])

        assert NotificationDispatchService.redispatch_stale_requests() == 0
        fcm.assert_not_called()

    def test_live_claim_is_not_taken(self, fcm, user):
        request = _create_request([user])
        NotificationRequest.objects.filter(pk=request.pk).update(
            created_at=timezone.now() - timedelta(minutes=10), claimed_at=timezone.now()
        )

        assert NotificationDispatchService.redispatch_stale_requests() == 0
        fcm.assert_not_called()

    def test_processed_request_is_ignored(self, fcm, user):
        request = _create_request([user], processed=True)
        self._age(request, 10)

        assert NotificationDispatchService.redispatch_stale_requests() == 0
        fcm.assert_not_called()

    def test_error_on_one_request_does_not_stop_others(self, fcm, user):
        first = _create_request([user])
        second = _create_request([user])
        self._age(first, 10)
        self._age(second, 9)

        with patch.object(
            NotificationDispatchService,
            "process_request",
            side_effect=[RuntimeError("boom"), None],
        ) as mock_process:
            assert NotificationDispatchService.redispatch_stale_requests() == 1

        assert [c.args[0] for c in mock_process.call_args_list] == [first.pk, second.pk]


class TestTokenCleanup:
    """Test invalid token removal."""

    def test_refreshed_token_survives(self, user_factory):
        user = user_factory(fcm_token="new-token")

        removed = NotificationDispatchService.remove_invalid_tokens([(user.pk, "old-token")])

        assert removed == 0
        user.refresh_from_db()
        assert user.fcm_token == "new-token"

    def test_removes_matching_tokens(self, user_factory):
        first = user_factory()
        second = user_factory()

        removed = NotificationDispatchService.remove_invalid_tokens(
            [(first.pk, first.fcm_token), (second.pk, second.fcm_token)]
        )

        assert removed == 2
        assert set(User.objects.filter(pk__in=[first.pk, second.pk]).values_list("fcm_token", flat=True)) == {""}
