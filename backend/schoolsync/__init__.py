"""Local-first profile, message and notification engine for the school portal."""

from .models import Message, UserProfile
from .session import PortalSession, SessionCoordinator

__all__ = ["Message", "PortalSession", "SessionCoordinator", "UserProfile"]
