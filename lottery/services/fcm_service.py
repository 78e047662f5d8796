"""
Firebase Cloud Messaging (FCM) service for push notifications.

Builds per-recipient push messages, sends them in gateway-sized batches and
classifies every failure as retryable, invalid-token or terminal.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, messaging
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Event Update"
ANDROID_CHANNEL_ID = "event_invitations"
CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"

RETRYABLE = "retryable"
INVALID_TOKEN = "invalid_token"
TERMINAL = "terminal"

BATCH_ERROR = "BATCH_ERROR"
NOT_INITIALIZED = "NOT_INITIALIZED"

# Gateway error code -> failure category. Unlisted codes are terminal.
ERROR_CATEGORIES = {
    "UNAVAILABLE": RETRYABLE,
    "INTERNAL": RETRYABLE,
    "DEADLINE_EXCEEDED": RETRYABLE,
    BATCH_ERROR: RETRYABLE,
    "UNREGISTERED": INVALID_TOKEN,
    "SENDER_ID_MISMATCH": INVALID_TOKEN,
    "INVALID_REGISTRATION_TOKEN": INVALID_TOKEN,
}

# Messaging-specific exceptions carry a generic code (e.g. NOT_FOUND);
# these are mapped to the FCM error name instead.
_MESSAGING_ERROR_CODES = (
    (messaging.UnregisteredError, "UNREGISTERED"),
    (messaging.SenderIdMismatchError, "SENDER_ID_MISMATCH"),
)


@dataclass
class PushRecipient:
    """A user who passed the token and preference checks."""

    user_id: int
    token: str
    body: str
    first_name: Optional[str] = None


@dataclass
class DeliveryResult:
    """Outcome of one push message."""

    recipient: PushRecipient
    success: bool
    error_code: Optional[str] = None

    @property
    def category(self) -> Optional[str]:
        if self.success:
            return None
        return classify_error(self.error_code)


def classify_error(error_code: Optional[str]) -> str:
    """Map a gateway error code to a failure category."""
    return ERROR_CATEGORIES.get((error_code or "").upper(), TERMINAL)


def error_code_for(exc: Optional[BaseException]) -> str:
    """Extract the gateway error code from a per-message exception."""
    if exc is None:
        return "UNKNOWN"
    for exc_type, code in _MESSAGING_ERROR_CODES:
        if isinstance(exc, exc_type):
            return code
    message = str(exc).lower()
    if "registration token" in message and "not a valid" in message:
        return "INVALID_REGISTRATION_TOKEN"
    return getattr(exc, "code", None) or "UNKNOWN"


class FCMService:
    """Firebase Cloud Messaging service for push notifications."""

    _initialized = False

    @classmethod
    def initialize(cls):
        """
        Initialize Firebase Admin SDK.

        Should be called once at application startup.
        Reads credentials from settings.FIREBASE_CREDENTIALS_PATH.
        """
        if cls._initialized:
            return

        try:
            cred_path = getattr(settings, "FIREBASE_CREDENTIALS_PATH", None)
            if cred_path:
                cred = credentials.Certificate(cred_path)
                firebase_admin.initialize_app(cred)
                cls._initialized = True
                logger.info("Firebase Admin SDK initialized successfully")
            else:
                logger.warning("FIREBASE_CREDENTIALS_PATH not configured")
        except (ValueError, OSError) as e:
            logger.error(f"Failed to initialize Firebase Admin SDK: {e}")

    @staticmethod
    def build_message(
        recipient: PushRecipient,
        title: Optional[str],
        group_type: Optional[str],
        event_id: Optional[int],
        event_title: Optional[str],
    ) -> messaging.Message:
        """
        Build the push message for one recipient.

        Args:
            recipient: Recipient with token and personalized body
            title: Notification title
            group_type: Notification group, sent as the data ``type``
            event_id: Related event id, if any
            event_title: Related event title, if any

        Returns:
            Message ready for the gateway
        """
        title = title or DEFAULT_TITLE
        data: Dict[str, str] = {
            "type": group_type or "general",
            "eventId": str(event_id) if event_id else "",
            "eventTitle": event_title or "Event",
            "title": title,
            "message": recipient.body,
            "click_action": CLICK_ACTION,
        }
        return messaging.Message(
            token=recipient.token,
            notification=messaging.Notification(title=title, body=recipient.body),
            data=data,
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    channel_id=ANDROID_CHANNEL_ID,
                    sound="default",
                    priority="high",
                ),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
            ),
        )

    @staticmethod
    def send_batch(
        recipients: List[PushRecipient], messages: List[messaging.Message]
    ) -> List[DeliveryResult]:
        """
        Send one gateway batch.

        A batch that raises counts every message in it as failed with a
        retryable code.
        """
        if not FCMService._initialized:
            logger.warning("FCM not initialized, dropping batch")
            return [DeliveryResult(r, False, NOT_INITIALIZED) for r in recipients]

        try:
            response = messaging.send_each(messages)
        except Exception as e:
            logger.error(f"Failed to send FCM batch of {len(messages)}: {e}")
            return [DeliveryResult(r, False, BATCH_ERROR) for r in recipients]

        results = []
        for recipient, send_response in zip(recipients, response.responses):
            if send_response.success:
                results.append(DeliveryResult(recipient, True))
                continue
            code = error_code_for(send_response.exception)
            logger.warning(f"Failed to send to user {recipient.user_id}: {code}")
            results.append(DeliveryResult(recipient, False, code))

        logger.info(
            f"FCM batch result: {response.success_count} sent, {response.failure_count} failed"
        )
        return results

    @staticmethod
    def send_to_recipients(
        recipients: List[PushRecipient],
        title: Optional[str],
        group_type: Optional[str],
        event_id: Optional[int] = None,
        event_title: Optional[str] = None,
    ) -> List[DeliveryResult]:
        """
        Send personalized pushes to many recipients.

        Messages are chunked by settings.FCM_BATCH_SIZE (the gateway's
        per-call limit).

        Returns:
            One DeliveryResult per recipient, in recipient order
        """
        batch_size = getattr(settings, "FCM_BATCH_SIZE", 500)
        results: List[DeliveryResult] = []

        for start in range(0, len(recipients), batch_size):
            chunk = recipients[start:start + batch_size]
            messages = [
                FCMService.build_message(r, title, group_type, event_id, event_title)
                for r in chunk
            ]
            logger.info(f"Sending batch {start // batch_size + 1} to {len(chunk)} users")
            results.extend(FCMService.send_batch(chunk, messages))

        return results
