"""
SQLAlchemy implementation of the booking store.

On PostgreSQL the no-double-booking invariant is backed by an exclusion
constraint on ``(user_id, tstzrange(start_time, end_time))`` and writes are
serialised per user with a transaction-scoped advisory lock. Other dialects
(SQLite in tests and local runs) rely on the in-process per-user lock.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List

import pendulum
from pendulum import DateTime
from sqlalchemy import (
    DDL,
    Boolean,
    Column,
    Date,
    DateTime as SADateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from ..domain.exceptions import BookingNotFound, SlotConflict, UserNotFound
from ..domain.models import (
    BUSY_STATUSES,
    AvailabilityRule,
    Booking,
    BookingRequest,
    BookingStatus,
    CalendarConnection,
    DateOverride,
    TimeWindow,
    UserSchedule,
    to_utc,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, default="")
    timezone = Column(String(64), nullable=False)


class AvailabilityRuleRow(Base):
    __tablename__ = "availability_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0=Monday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(64), nullable=True)


class DateOverrideRow(Base):
    """One row per override window; a blackout is a single row with ``unavailable`` set."""
    __tablename__ = "date_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    unavailable = Column(Boolean, nullable=False, default=False)


class CalendarConnectionRow(Base):
    __tablename__ = "calendar_connections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)
    calendar_id = Column(String(255), nullable=False)


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(String(32), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(SADateTime(timezone=True), nullable=False)
    end_time = Column(SADateTime(timezone=True), nullable=False)
    status = Column(String(32), nullable=False, index=True)
    attendee_email = Column(String(255), nullable=False)
    attendee_name = Column(String(255), nullable=False, default="")
    title = Column(String(255), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    created_at = Column(SADateTime(timezone=True), server_default=func.now())


_busy_values = ", ".join(f"'{status.value}'" for status in sorted(BUSY_STATUSES, key=lambda s: s.value))

event.listen(
    BookingRow.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    BookingRow.__table__,
    "after_create",
    DDL(
        "ALTER TABLE bookings ADD CONSTRAINT bookings_no_overlap "
        "EXCLUDE USING gist (user_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&) "
        f"WHERE (status IN ({_busy_values}))"
    ).execute_if(dialect="postgresql"),
)


def _db_time(value: datetime) -> datetime:
    """Plain UTC datetime for binding."""
    utc = to_utc(value)
    return datetime(
        utc.year, utc.month, utc.day, utc.hour, utc.minute, utc.second, utc.microsecond,
        tzinfo=timezone.utc,
    )


def _from_db_time(value: datetime | None) -> DateTime | None:
    """SQLite hands back naive values; they were written in UTC."""
    if value is None:
        return None
    return pendulum.instance(value, tz="UTC").in_timezone("UTC")


def _to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        user_id=row.user_id,
        start_time=_from_db_time(row.start_time),
        end_time=_from_db_time(row.end_time),
        status=BookingStatus(row.status),
        attendee_email=row.attendee_email,
        attendee_name=row.attendee_name or "",
        title=row.title or "",
        notes=row.notes or "",
        created_at=_from_db_time(row.created_at),
    )


class SqlBookingStore:
    """
    Booking store backed by a relational database.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._registry_lock = threading.Lock()
        self._user_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)

    @classmethod
    def from_url(cls, database_url: str) -> "SqlBookingStore":
        """Create a store; in-memory SQLite shares one connection across threads."""
        in_memory = database_url == "sqlite://" or ":memory:" in database_url
        if database_url.startswith("sqlite") and in_memory:
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif database_url.startswith("sqlite"):
            engine = create_engine(database_url, connect_args={"check_same_thread": False})
        else:
            engine = create_engine(database_url, pool_pre_ping=True, pool_recycle=300)
        return cls(engine)

    @property
    def is_postgres(self) -> bool:
        return self._engine.dialect.name == "postgresql"

    def create_all(self) -> None:
        Base.metadata.create_all(self._engine)

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._user_locks[user_id]

    # Schedules

    def save_schedule(self, schedule: UserSchedule) -> None:
        with self._session_factory() as session, session.begin():
            session.merge(UserRow(id=schedule.user_id, email=schedule.email, timezone=schedule.timezone))
            for model in (AvailabilityRuleRow, DateOverrideRow, CalendarConnectionRow):
                session.query(model).filter(model.user_id == schedule.user_id).delete()

            for rule in schedule.rules:
                session.add(AvailabilityRuleRow(
                    user_id=schedule.user_id,
                    weekday=rule.weekday,
                    start_time=rule.start_time,
                    end_time=rule.end_time,
                    timezone=rule.timezone,
                ))
            for override in schedule.overrides.values():
                if override.unavailable:
                    session.add(DateOverrideRow(
                        user_id=schedule.user_id, date=override.date, unavailable=True,
                    ))
                    continue
                for start, end in override.windows:
                    session.add(DateOverrideRow(
                        user_id=schedule.user_id, date=override.date,
                        start_time=start, end_time=end, unavailable=False,
                    ))
            for connection in schedule.calendars:
                session.add(CalendarConnectionRow(
                    user_id=schedule.user_id,
                    provider=connection.provider,
                    calendar_id=connection.calendar_id,
                ))

    def get_schedule(self, user_id: str) -> UserSchedule:
        with self._session_factory() as session:
            user = session.get(UserRow, user_id)
            if user is None:
                raise UserNotFound(user_id)
            return self._load_schedule(session, user)

    def list_schedules(self) -> List[UserSchedule]:
        with self._session_factory() as session:
            users = session.scalars(select(UserRow).order_by(UserRow.id)).all()
            return [self._load_schedule(session, user) for user in users]

    @staticmethod
    def _load_schedule(session: Session, user: UserRow) -> UserSchedule:
        rules = [
            AvailabilityRule(
                weekday=row.weekday,
                start_time=row.start_time,
                end_time=row.end_time,
                timezone=row.timezone,
            )
            for row in session.scalars(
                select(AvailabilityRuleRow)
                .where(AvailabilityRuleRow.user_id == user.id)
                .order_by(AvailabilityRuleRow.weekday, AvailabilityRuleRow.start_time)
            )
        ]

        schedule = UserSchedule(user_id=user.id, timezone=user.timezone, rules=rules, email=user.email)

        windows_by_date: Dict = defaultdict(list)
        blocked = set()
        for row in session.scalars(
            select(DateOverrideRow)
            .where(DateOverrideRow.user_id == user.id)
            .order_by(DateOverrideRow.date, DateOverrideRow.start_time)
        ):
            if row.unavailable:
                blocked.add(row.date)
            else:
                windows_by_date[row.date].append((row.start_time, row.end_time))

        for day, windows in windows_by_date.items():
            schedule.add_override(DateOverride(date=day, windows=tuple(windows)))
        for day in blocked:
            schedule.block_date(day)

        schedule.calendars = [
            CalendarConnection(provider=row.provider, calendar_id=row.calendar_id)
            for row in session.scalars(
                select(CalendarConnectionRow).where(CalendarConnectionRow.user_id == user.id)
            )
        ]
        return schedule

    # Bookings

    @staticmethod
    def _busy_rows(session: Session, user_id: str, window: TimeWindow) -> List[BookingRow]:
        return list(session.scalars(
            select(BookingRow)
            .where(
                BookingRow.user_id == user_id,
                BookingRow.status.in_([status.value for status in BUSY_STATUSES]),
                BookingRow.start_time < _db_time(window.end),
                BookingRow.end_time > _db_time(window.start),
            )
            .order_by(BookingRow.start_time)
        ))

    def busy_bookings(self, user_id: str, window: TimeWindow) -> List[Booking]:
        with self._session_factory() as session:
            return [_to_booking(row) for row in self._busy_rows(session, user_id, window)]

    def insert_booking_if_free(self, request: BookingRequest, guard: TimeWindow) -> Booking:
        try:
            with self._lock_for(request.user_id):
                with self._session_factory() as session, session.begin():
                    if session.get(UserRow, request.user_id) is None:
                        raise UserNotFound(request.user_id)

                    if self.is_postgres:
                        session.execute(
                            text("SELECT pg_advisory_xact_lock(hashtext(:user_id))"),
                            {"user_id": request.user_id},
                        )

                    clashing = self._busy_rows(session, request.user_id, guard)
                    if clashing:
                        raise SlotConflict(
                            request.window(),
                            [_to_booking(row).window() for row in clashing],
                        )

                    row = BookingRow(
                        id=uuid.uuid4().hex,
                        user_id=request.user_id,
                        start_time=_db_time(request.start_time),
                        end_time=_db_time(request.end_time),
                        status=request.initial_status.value,
                        attendee_email=request.attendee_email,
                        attendee_name=request.attendee_name,
                        title=request.title,
                        notes=request.notes,
                        created_at=_db_time(pendulum.now("UTC")),
                    )
                    session.add(row)
                    session.flush()
                    booking = _to_booking(row)
        except IntegrityError as exc:
            logger.info("Exclusion constraint rejected booking for %s", request.user_id)
            raise SlotConflict(request.window()) from exc

        return booking

    def get_booking(self, booking_id: str) -> Booking:
        with self._session_factory() as session:
            row = session.get(BookingRow, booking_id)
            if row is None:
                raise BookingNotFound(booking_id)
            return _to_booking(row)

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> Booking:
        booking = self.get_booking(booking_id)
        with self._lock_for(booking.user_id):
            with self._session_factory() as session, session.begin():
                row = session.scalars(
                    select(BookingRow).where(BookingRow.id == booking_id).with_for_update()
                ).one()
                updated = _to_booking(row).transition(status)
                row.status = updated.status.value
        return updated
