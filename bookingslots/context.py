"""
Wiring of stores, providers and services from the application config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .adapters.google_client import GoogleCalendarProvider
from .adapters.graph_authenticator import GraphAuthenticator
from .adapters.graph_client import GraphCalendarProvider
from .adapters.memory_store import InMemoryBookingStore
from .adapters.mock_calendar import MockCalendarProvider
from .adapters.sql_store import SqlBookingStore
from .config import AppConfig
from .services.booking_validator import BookingValidator
from .services.busy_aggregator import BusyIntervalAggregator
from .services.ports import BookingStore, CalendarProvider
from .services.slot_finder import Clock, SlotFinderService, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SchedulingContext:
    """Everything a request handler needs."""
    config: AppConfig
    store: BookingStore
    slot_finder: SlotFinderService
    validator: BookingValidator


def build_store(config: AppConfig) -> BookingStore:
    """
    SQL store when ``database_url`` is set, otherwise an in-memory store
    seeded with the configured users.
    """
    if config.database_url:
        store = SqlBookingStore.from_url(config.database_url)
        store.create_all()
        return store

    store = InMemoryBookingStore()
    for schedule in config.schedules():
        store.save_schedule(schedule)
    return store


def build_providers(config: AppConfig) -> Dict[str, CalendarProvider]:
    """Calendar providers for every integration present in the config."""
    providers: Dict[str, CalendarProvider] = {
        MockCalendarProvider.name: MockCalendarProvider(config.mock_calendar_file),
    }

    if config.microsoft is not None:
        authenticator = GraphAuthenticator(
            client_id=config.microsoft.client_id,
            tenant_id=config.microsoft.tenant_id,
            client_secret=config.microsoft.client_secret,
            authority_url=config.microsoft.get_authority_url(),
        )
        providers[GraphCalendarProvider.name] = GraphCalendarProvider(authenticator)

    if config.google is not None:
        token = config.google.access_token
        providers[GoogleCalendarProvider.name] = GoogleCalendarProvider(lambda: token)

    logger.debug("Calendar providers: %s", ", ".join(sorted(providers)))
    return providers


def build_context(
    config: AppConfig,
    store: Optional[BookingStore] = None,
    providers: Optional[Dict[str, CalendarProvider]] = None,
    clock: Clock = utc_now,
) -> SchedulingContext:
    store = store if store is not None else build_store(config)
    providers = providers if providers is not None else build_providers(config)

    aggregator = BusyIntervalAggregator(
        store,
        providers,
        timeout_seconds=config.provider_timeout_seconds,
    )
    defaults = config.defaults.to_options()

    slot_finder = SlotFinderService(store, aggregator, defaults=defaults, clock=clock)
    validator = BookingValidator(
        store,
        aggregator,
        buffer_before_minutes=defaults.buffer_before_minutes,
        buffer_after_minutes=defaults.buffer_after_minutes,
        enforce_availability=config.enforce_availability,
        min_notice_minutes=defaults.min_notice_minutes,
        max_bookings_per_day=defaults.max_bookings_per_day,
        clock=clock,
    )
    return SchedulingContext(config=config, store=store, slot_finder=slot_finder, validator=validator)
