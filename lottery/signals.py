"""
Django signals that publish new notification requests to the dispatcher.

A request is dispatched once its creating transaction commits, so the
worker never sees a row that could still roll back.
"""

import logging
from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from lottery.models import NotificationRequest

logger = logging.getLogger(__name__)


@receiver(post_save, sender=NotificationRequest)
def publish_notification_request(sender, instance, created, **kwargs):
    """
    Queue dispatch of a newly created notification request.

    Triggers:
    - Only on creation; outcome updates written by the dispatcher and
      the retry coordinator are ignored.
    """
    if not created:
        return

    from lottery.tasks import dispatch_notification_request

    request_id = instance.pk
    transaction.on_commit(lambda: dispatch_notification_request.delay(request_id))
    logger.debug(f"Queued dispatch for notification request {request_id}")
