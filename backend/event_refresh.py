"""
Upcoming-event cache refresh.

`compute_upcoming_events` is pure: it turns person and custom-event snapshots
into the set of occurrences inside a look-ahead window. The job side loads the
snapshots, swaps the cached window in a single transaction and guards the cycle
with a JobLock row so only one worker refreshes at a time.
"""
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

import pytz
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from backend.errors import MalformedRecord, OutOfRange, StoreUnavailable
from backend.occurrences import BIRTHDAY, CUSTOM_EVENT_TYPES, EVENT_TYPE_LABELS, YAHRZEIT, next_occurrence
from models import CustomEvent, JobLock, Person, UpcomingEvent, db

REFRESH_LOCK_NAME = 'upcoming_event_refresh'
DEFAULT_WINDOW_DAYS = 60


def _field(source, name, default=None):
    if isinstance(source, Mapping):
        return source.get(name, default)
    return getattr(source, name, default)


def parse_source_date(value):
    """Accept a date or an ISO 'YYYY-MM-DD' string; raise ValueError otherwise."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.strptime(value.strip(), '%Y-%m-%d').date()
    raise ValueError(f"unsupported date value {value!r}")


@dataclass(frozen=True)
class PersonRecord:
    id: int
    first_name: str = None
    last_name: str = None
    gregorian_birthday: object = None
    birthday_after_sunset: bool = False
    gregorian_date_of_passing: object = None
    date_of_passing_after_sunset: bool = False

    @classmethod
    def from_source(cls, source):
        """Snapshot a Person row or a plain mapping."""
        return cls(
            id=_field(source, 'id'),
            first_name=_field(source, 'first_name'),
            last_name=_field(source, 'last_name'),
            gregorian_birthday=_field(source, 'gregorian_birthday'),
            birthday_after_sunset=bool(_field(source, 'birthday_after_sunset', False)),
            gregorian_date_of_passing=_field(source, 'gregorian_date_of_passing'),
            date_of_passing_after_sunset=bool(_field(source, 'date_of_passing_after_sunset', False)),
        )

    @property
    def display_name(self):
        parts = [p for p in (self.first_name, self.last_name) if p]
        return ' '.join(parts) if parts else f"Person {self.id}"


@dataclass(frozen=True)
class CustomEventRecord:
    id: int
    person_id: int
    event_type: str
    gregorian_date: object = None
    date_after_sunset: bool = False
    related_person_id: int = None
    name: str = None

    @classmethod
    def from_source(cls, source):
        return cls(
            id=_field(source, 'id'),
            person_id=_field(source, 'person_id'),
            event_type=_field(source, 'event_type'),
            gregorian_date=_field(source, 'gregorian_date'),
            date_after_sunset=bool(_field(source, 'date_after_sunset', False)),
            related_person_id=_field(source, 'related_person_id'),
            name=_field(source, 'name'),
        )


@dataclass(frozen=True)
class UpcomingEventRecord:
    person_id: int
    event_type: str
    display_name: str
    gregorian_date: date
    hebrew_date: str
    original_date: date
    years: int
    related_person_id: int = None
    custom_event_id: int = None

    @property
    def key(self):
        return (self.person_id, self.event_type, self.gregorian_date)

    def to_dict(self):
        return {
            'person_id': self.person_id,
            'related_person_id': self.related_person_id,
            'custom_event_id': self.custom_event_id,
            'event_type': self.event_type,
            'display_name': self.display_name,
            'gregorian_date': self.gregorian_date.isoformat(),
            'hebrew_date': self.hebrew_date,
            'original_date': self.original_date.isoformat(),
            'years': self.years,
        }


@dataclass
class RefreshResult:
    events: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


def _person_events(person, today, window_end):
    try:
        birthday = parse_source_date(person.gregorian_birthday)
    except ValueError as exc:
        raise MalformedRecord('person', person.id, f"unparseable birth date: {exc}") from exc

    passing = None
    if person.gregorian_date_of_passing not in (None, ''):
        try:
            passing = parse_source_date(person.gregorian_date_of_passing)
        except ValueError as exc:
            raise MalformedRecord('person', person.id, f"unparseable date of passing: {exc}") from exc
        if passing < birthday:
            raise MalformedRecord('person', person.id, "date of passing precedes birth date")

    found = []
    try:
        occurrence = next_occurrence(birthday, person.birthday_after_sunset, BIRTHDAY, today, window_end)
        if occurrence:
            found.append(UpcomingEventRecord(
                person_id=person.id,
                event_type=BIRTHDAY,
                display_name=f"{person.display_name}'s birthday",
                gregorian_date=occurrence.gregorian_date,
                hebrew_date=occurrence.hebrew_date_display,
                original_date=birthday,
                years=occurrence.years,
            ))
        if passing:
            occurrence = next_occurrence(passing, person.date_of_passing_after_sunset, YAHRZEIT, today, window_end)
            if occurrence:
                found.append(UpcomingEventRecord(
                    person_id=person.id,
                    event_type=YAHRZEIT,
                    display_name=f"Yahrzeit of {person.display_name}",
                    gregorian_date=occurrence.gregorian_date,
                    hebrew_date=occurrence.hebrew_date_display,
                    original_date=passing,
                    years=occurrence.years,
                ))
    except OutOfRange as exc:
        raise MalformedRecord('person', person.id, str(exc)) from exc
    return found


def _custom_event_name(event, names):
    if event.name:
        return event.name
    label = EVENT_TYPE_LABELS.get(event.event_type, EVENT_TYPE_LABELS['other'])
    subject = names.get(event.person_id, f"Person {event.person_id}")
    if event.related_person_id is not None:
        related = names.get(event.related_person_id, f"Person {event.related_person_id}")
        return f"{label}: {subject} & {related}"
    return f"{label}: {subject}"


def _custom_event_occurrence(event, names, today, window_end):
    if event.event_type not in CUSTOM_EVENT_TYPES:
        raise MalformedRecord('custom_event', event.id, f"unknown event type {event.event_type!r}")
    try:
        original = parse_source_date(event.gregorian_date)
    except ValueError as exc:
        raise MalformedRecord('custom_event', event.id, f"unparseable date: {exc}") from exc
    try:
        occurrence = next_occurrence(original, event.date_after_sunset, event.event_type, today, window_end)
    except OutOfRange as exc:
        raise MalformedRecord('custom_event', event.id, str(exc)) from exc
    if not occurrence:
        return None
    return UpcomingEventRecord(
        person_id=event.person_id,
        related_person_id=event.related_person_id,
        custom_event_id=event.id,
        event_type=event.event_type,
        display_name=_custom_event_name(event, names),
        gregorian_date=occurrence.gregorian_date,
        hebrew_date=occurrence.hebrew_date_display,
        original_date=original,
        years=occurrence.years,
    )


def compute_upcoming_events(people, custom_events, today, look_ahead_days, logger=None):
    """
    Occurrences of every birthday, yahrzeit and custom event in
    [today, today + look_ahead_days].

    Records whose dates cannot be used are skipped and returned as
    MalformedRecord warnings; they never abort the batch. The result is merged
    on (person, event type, date) and sorted, so the same inputs always yield
    the same list.
    """
    window_end = today + timedelta(days=look_ahead_days)
    people = [PersonRecord.from_source(p) for p in people]
    custom_events = [CustomEventRecord.from_source(e) for e in custom_events]
    names = {p.id: p.display_name for p in people}

    merged = {}
    warnings = []

    def _report(exc):
        warnings.append(exc)
        if logger:
            logger.warning("Skipping malformed record: %s", exc)

    for person in people:
        try:
            found = _person_events(person, today, window_end)
        except MalformedRecord as exc:
            _report(exc)
            continue
        for record in found:
            merged[record.key] = record

    for event in custom_events:
        try:
            record = _custom_event_occurrence(event, names, today, window_end)
        except MalformedRecord as exc:
            _report(exc)
            continue
        if record:
            merged[record.key] = record

    events = sorted(
        merged.values(),
        key=lambda r: (r.gregorian_date, r.person_id, r.event_type, r.custom_event_id or 0),
    )
    return RefreshResult(events=events, warnings=warnings)


def refresh(people, custom_events, today, look_ahead_days, logger=None):
    return compute_upcoming_events(people, custom_events, today, look_ahead_days, logger=logger).events


def load_snapshots(session=None):
    """Read every person and custom event. Raises StoreUnavailable when the store can't be read."""
    session = session or db.session
    try:
        people = [PersonRecord.from_source(p) for p in session.query(Person).all()]
        custom_events = [CustomEventRecord.from_source(e) for e in session.query(CustomEvent).all()]
    except SQLAlchemyError as exc:
        session.rollback()
        raise StoreUnavailable(f"Could not read people/events: {exc}") from exc
    return people, custom_events


def replace_upcoming_events(session, events, window_start, window_end):
    """
    Swap the whole cache for `events` in one transaction. Every existing row
    goes, including rows written past `window_end` by an earlier, longer run.
    """
    try:
        removed = session.query(UpcomingEvent).delete(synchronize_session=False)
        session.add_all([
            UpcomingEvent(
                person_id=r.person_id,
                related_person_id=r.related_person_id,
                custom_event_id=r.custom_event_id,
                event_type=r.event_type,
                display_name=r.display_name,
                gregorian_date=r.gregorian_date,
                hebrew_date=r.hebrew_date,
                original_date=r.original_date,
                years=r.years,
            )
            for r in events
            if window_start <= r.gregorian_date <= window_end
        ])
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    return removed


def local_now():
    tz = pytz.timezone(current_app.config.get('DEFAULT_TIMEZONE', 'America/New_York'))
    return datetime.now(tz).replace(tzinfo=None)


def local_today():
    return local_now().date()


def _acquire_job_lock(lock_name, worker_id):
    """Insert (or take over a stale) JobLock row. Returns True when this worker holds it."""
    app = current_app
    now = local_now()
    stale_after = timedelta(minutes=int(app.config.get('JOB_LOCK_STALE_MINUTES', 5)))
    try:
        if db.engine.dialect.name == 'sqlite':
            # SQLite doesn't support FOR UPDATE; use insert + fallback update for stale locks.
            try:
                db.session.add(JobLock(job_name=lock_name, locked_at=now, locked_by=str(worker_id)))
                db.session.commit()
                return True
            except IntegrityError:
                db.session.rollback()
                lock = db.session.query(JobLock).filter_by(job_name=lock_name).first()
                if lock and now - lock.locked_at >= stale_after:
                    lock.locked_at = now
                    lock.locked_by = str(worker_id)
                    db.session.commit()
                    return True
                if lock:
                    app.logger.info(f"Event refresh already running (locked by {lock.locked_by}), skipping")
                return False

        lock = db.session.query(JobLock).filter_by(job_name=lock_name).with_for_update(nowait=True).first()
        if lock:
            if now - lock.locked_at < stale_after:
                app.logger.info(f"Event refresh already running (locked by {lock.locked_by}), skipping")
                db.session.rollback()
                return False
            lock.locked_at = now
            lock.locked_by = str(worker_id)
        else:
            db.session.add(JobLock(job_name=lock_name, locked_at=now, locked_by=str(worker_id)))
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        app.logger.info(f"Event refresh lock acquisition failed (worker {worker_id}), skipping: {e}")
        return False


def _release_job_lock(lock_name, worker_id):
    try:
        lock = db.session.query(JobLock).filter_by(job_name=lock_name).first()
        if lock and lock.locked_by == str(worker_id):
            db.session.delete(lock)
            db.session.commit()
    except SQLAlchemyError as e:
        current_app.logger.error(f"Error releasing event refresh lock: {e}")
        db.session.rollback()


def refresh_upcoming_events(today=None, days=None):
    """
    One refresh cycle of the upcoming-event cache. Must run inside an app context.

    Returns a stats dict; raises StoreUnavailable when snapshots can't be read.
    """
    app = current_app
    today = today or local_today()
    if days is None:
        days = int(app.config.get('UPCOMING_EVENTS_WINDOW_DAYS', DEFAULT_WINDOW_DAYS))
    window_end = today + timedelta(days=days)
    worker_id = os.getpid()

    if not _acquire_job_lock(REFRESH_LOCK_NAME, worker_id):
        return {'status': 'skipped', 'today': today.isoformat(), 'window_end': window_end.isoformat()}

    try:
        people, custom_events = load_snapshots()
        result = compute_upcoming_events(people, custom_events, today, days, logger=app.logger)
        removed = replace_upcoming_events(db.session, result.events, today, window_end)
        app.logger.info(
            f"Event refresh {today.isoformat()}..{window_end.isoformat()}: "
            f"stored {len(result.events)} events, replaced {removed}, skipped {len(result.warnings)} records"
        )
        return {
            'status': 'ok',
            'today': today.isoformat(),
            'window_end': window_end.isoformat(),
            'count': len(result.events),
            'replaced': removed,
            'warnings': [w.to_dict() for w in result.warnings],
        }
    finally:
        _release_job_lock(REFRESH_LOCK_NAME, worker_id)
