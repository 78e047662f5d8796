"""
Django admin configuration for the lottery models.
"""

from django.contrib import admin, messages
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import (
    User,
    Event,
    Entrant,
    EntrantState,
    Invitation,
    NotificationRequest,
)
from .services.group_notification_service import GroupNotificationService


class EntrantInline(admin.TabularInline):
    model = Entrant
    extra = 0
    readonly_fields = ["joined_at", "state_changed_at"]


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    fieldsets = BaseUserAdmin.fieldsets + (
        ("Profile", {"fields": ("full_name", "name")}),
        (
            "Push Notifications",
            {
                "fields": (
                    "fcm_token",
                    "notifications_enabled",
                    "notification_preference_invited",
                    "notification_preference_not_invited",
                )
            },
        ),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    readonly_fields = ["created_at", "updated_at"]
    list_display = ["username", "email", "full_name", "created_at"]
    search_fields = ["username", "email", "full_name", "name"]


def _notify_state_action(state, label):
    def action(modeladmin, request, queryset):
        created = 0
        for event in queryset:
            if GroupNotificationService.notify_group(event, state, organizer=request.user):
                created += 1
        modeladmin.message_user(
            request, f"Created {created} notification request(s)", messages.SUCCESS
        )

    action.__name__ = f"notify_{EntrantState(state).value}"
    action.short_description = f"Notify {label} entrants"
    return action


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = [
        "title",
        "organizer",
        "sample_size",
        "selection_processed",
        "selection_notification_sent",
        "sorry_notification_sent",
        "created_at",
    ]
    list_filter = ["selection_processed", "sorry_notification_sent", "created_at"]
    search_fields = ["title", "organizer__username"]
    readonly_fields = ["created_at", "selection_notification_error", "selection_error"]
    inlines = [EntrantInline]
    actions = [
        _notify_state_action(EntrantState.WAITLISTED, "waitlisted"),
        _notify_state_action(EntrantState.SELECTED, "selected"),
        _notify_state_action(EntrantState.NON_SELECTED, "non-selected"),
        _notify_state_action(EntrantState.CANCELLED, "cancelled"),
    ]

    fieldsets = (
        ("Event", {"fields": ("title", "organizer", "sample_size")}),
        (
            "Schedule (epoch ms)",
            {"fields": ("registration_end", "starts_at_epoch_ms", "deadline_epoch_ms")},
        ),
        (
            "Processing",
            {
                "fields": (
                    "selection_processed",
                    "selection_notification_sent",
                    "sorry_notification_sent",
                    "selection_notification_error",
                    "selection_error",
                )
            },
        ),
        ("Timestamps", {"fields": ("created_at",)}),
    )


@admin.register(Entrant)
class EntrantAdmin(admin.ModelAdmin):
    list_display = ["user", "event", "state", "state_changed_at"]
    list_filter = ["state"]
    search_fields = ["user__username", "event__title"]
    readonly_fields = ["joined_at", "state_changed_at"]


@admin.register(Invitation)
class InvitationAdmin(admin.ModelAdmin):
    list_display = ["user", "event", "status", "issued_at", "expires_at"]
    list_filter = ["status"]
    search_fields = ["user__username", "event__title"]


@admin.register(NotificationRequest)
class NotificationRequestAdmin(admin.ModelAdmin):
    list_display = [
        "title",
        "event_title",
        "group_type",
        "processed",
        "sent_count",
        "failure_count",
        "should_retry",
        "retry_count",
        "final_status",
        "created_at",
    ]
    list_filter = ["group_type", "processed", "should_retry", "final_status"]
    search_fields = ["title", "message", "event_title"]
    readonly_fields = [
        "created_at",
        "claimed_at",
        "processed_at",
        "sent_count",
        "failure_count",
        "users_without_tokens",
        "opted_out_count",
        "retry_count",
        "last_retry_attempt",
        "failed_users",
        "retry_success_count",
        "retry_failure_count",
        "final_status",
        "error",
    ]
