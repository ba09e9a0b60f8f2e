"""
Adapters layer - Persistence and external calendar integrations.
"""

from .google_client import GoogleCalendarProvider
from .graph_authenticator import GraphAuthenticator
from .graph_client import GraphCalendarProvider
from .memory_store import InMemoryBookingStore
from .mock_calendar import MockCalendarProvider
from .sql_store import SqlBookingStore

__all__ = [
    "GoogleCalendarProvider",
    "GraphAuthenticator",
    "GraphCalendarProvider",
    "InMemoryBookingStore",
    "MockCalendarProvider",
    "SqlBookingStore",
]
