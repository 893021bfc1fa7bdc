"""Which messages a viewer may read.

A message is visible when it is addressed to everyone, written by the viewer,
addressed to the viewer, or is open-room chatter (``broadcast``/``status``)
whatever its nominal recipient. Private messages therefore reach only their
sender and recipient.
"""
from sqlalchemy import or_
from sqlmodel import col

from .models import BROADCAST_TARGET, Message

PUBLIC_KINDS = ("broadcast", "status")


def is_visible(message: Message, viewer: str) -> bool:
    return (
        message.to == BROADCAST_TARGET
        or message.sender == viewer
        or message.to == viewer
        or message.kind in PUBLIC_KINDS
    )


def visible_to(viewer: str):
    """SQL counterpart of :func:`is_visible`, for use in a WHERE clause."""
    return or_(
        Message.to == BROADCAST_TARGET,
        Message.sender == viewer,
        Message.to == viewer,
        col(Message.kind).in_(PUBLIC_KINDS),
    )
