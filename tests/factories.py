"""
Factory boy factories for test data generation.
"""

import factory
from factory.django import DjangoModelFactory
from faker import Faker
from django.contrib.auth import get_user_model

from lottery.models import Entrant, EntrantState, Event, GroupType, NotificationRequest
from lottery.utils.clock import now_ms

fake = Faker()
User = get_user_model()

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


class UserFactory(DjangoModelFactory):
    class Meta:
        model = User

    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.LazyAttribute(lambda obj: f"{obj.username}@example.com")
    first_name = factory.Faker("first_name")
    full_name = factory.LazyAttribute(lambda obj: f"{obj.first_name} {fake.last_name()}")
    fcm_token = factory.Sequence(lambda n: f"fcm-token-{n}")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")


class EventFactory(DjangoModelFactory):
    class Meta:
        model = Event

    title = factory.Faker("sentence", nb_words=3)
    organizer = factory.SubFactory(UserFactory)
    registration_end = factory.LazyFunction(lambda: now_ms() - MINUTE_MS)
    starts_at_epoch_ms = factory.LazyFunction(lambda: now_ms() + 7 * DAY_MS)
    deadline_epoch_ms = factory.LazyFunction(lambda: now_ms() + 3 * DAY_MS)
    sample_size = 2


class EntrantFactory(DjangoModelFactory):
    class Meta:
        model = Entrant

    event = factory.SubFactory(EventFactory)
    user = factory.SubFactory(UserFactory)
    state = EntrantState.WAITLISTED


class NotificationRequestFactory(DjangoModelFactory):
    class Meta:
        model = NotificationRequest

    event = factory.SubFactory(EventFactory)
    event_title = factory.LazyAttribute(lambda obj: obj.event.title if obj.event else "Event")
    organizer_id = "system"
    user_ids = factory.LazyFunction(list)
    group_type = GroupType.GENERAL
    title = factory.Faker("sentence", nb_words=4)
    message = factory.Faker("sentence")
