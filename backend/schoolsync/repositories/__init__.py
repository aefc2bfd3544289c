"""Repositories that own the persisted portal collections."""

from .messages import MessageListener, MessageLog
from .profiles import ProfileRepository

__all__ = ["MessageListener", "MessageLog", "ProfileRepository"]
