"""Greeting personalization for push message bodies."""

from typing import Optional

DEFAULT_MESSAGE = "You have an update regarding an event."


def capitalize_name(name: str) -> str:
    return name[:1].upper() + name[1:].lower()


def personalize_message(message: Optional[str], first_name: Optional[str]) -> str:
    """
    Prefix the message with a greeting when a first name is known.

    Args:
        message: Template message; empty falls back to DEFAULT_MESSAGE
        first_name: Recipient's display first name, if any

    Returns:
        "Hey Name, message" or the bare message
    """
    body = message or DEFAULT_MESSAGE
    if not first_name:
        return body
    return f"Hey {capitalize_name(first_name)}, {body}"
