from flask_sqlalchemy import SQLAlchemy
from datetime import datetime

db = SQLAlchemy()

GENDERS = ('male', 'female')
RELATIONSHIPS = (
    'parent', 'child', 'spouse', 'sibling', 'grandparent', 'grandchild',
    'aunt', 'uncle', 'niece', 'nephew', 'cousin',
)


def _sql_list(values):
    return ", ".join(f"'{v}'" for v in values)


class Person(db.Model):
    """
    A member of the family tree.
    Dates are civil (Gregorian) dates; the *_after_sunset flags say the event
    happened after nightfall, i.e. on the following Hebrew day.
    """
    __tablename__ = 'person'
    __table_args__ = (
        db.CheckConstraint(f"gender IN ({_sql_list(GENDERS)})", name='person_gender'),
    )

    id = db.Column(db.Integer, primary_key=True)
    gender = db.Column(db.String(10), nullable=False)  # male | female
    first_name = db.Column(db.String(100), nullable=False)
    middle_names = db.Column(db.String(200), nullable=True)
    maiden_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=False)
    gregorian_birthday = db.Column(db.Date, nullable=False, index=True)
    birthday_after_sunset = db.Column(db.Boolean, nullable=False, default=False)
    gregorian_date_of_passing = db.Column(db.Date, nullable=True)  # None for living persons
    date_of_passing_after_sunset = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_edited_time = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    custom_events = db.relationship(
        'CustomEvent', backref='person', lazy=True, cascade="all, delete-orphan",
        foreign_keys='CustomEvent.person_id'
    )

    def to_dict(self):
        return {
            'id': self.id,
            'gender': self.gender,
            'first_name': self.first_name,
            'middle_names': self.middle_names,
            'maiden_name': self.maiden_name,
            'last_name': self.last_name,
            'gregorian_birthday': self.gregorian_birthday.isoformat() if self.gregorian_birthday else None,
            'birthday_after_sunset': self.birthday_after_sunset,
            'gregorian_date_of_passing': (
                self.gregorian_date_of_passing.isoformat() if self.gregorian_date_of_passing else None
            ),
            'date_of_passing_after_sunset': self.date_of_passing_after_sunset,
            'notes': self.notes,
        }


class Relation(db.Model):
    """
    Directed relationship read as "to_person is the from_person's <relationship>":
    (from=A, to=B, 'child') means B is A's child.
    """
    __tablename__ = 'relation'
    __table_args__ = (
        db.UniqueConstraint('from_person', 'to_person', 'relationship', name='unique_relation'),
        db.CheckConstraint('from_person != to_person', name='no_self_relation'),
        db.CheckConstraint(f"relationship IN ({_sql_list(RELATIONSHIPS)})", name='relation_relationship'),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_person = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='CASCADE'), nullable=False, index=True)
    to_person = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='CASCADE'), nullable=False, index=True)
    relationship = db.Column(db.String(20), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_edited_time = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            'from_person': self.from_person,
            'to_person': self.to_person,
            'relationship': self.relationship,
        }


class CustomEvent(db.Model):
    """Dated life event tied to a person (anniversary, bar/bat mitzvah, aliyah, ...)."""
    __tablename__ = 'custom_event'

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='CASCADE'), nullable=False)
    related_person_id = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='SET NULL'), nullable=True)
    event_type = db.Column(db.String(30), nullable=False)  # anniversary | bar_bat_mitzvah | aliyah | yahrzeit | other
    name = db.Column(db.String(200), nullable=True)
    gregorian_date = db.Column(db.Date, nullable=False)
    date_after_sunset = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    related_person = db.relationship('Person', foreign_keys=[related_person_id])

    def to_dict(self):
        return {
            'id': self.id,
            'person_id': self.person_id,
            'related_person_id': self.related_person_id,
            'event_type': self.event_type,
            'name': self.name,
            'gregorian_date': self.gregorian_date.isoformat() if self.gregorian_date else None,
            'date_after_sunset': self.date_after_sunset,
        }


class UpcomingEvent(db.Model):
    """
    Computed occurrence cache. Rows are regenerated by the refresh job for a
    rolling window and never edited elsewhere.
    """
    __tablename__ = 'upcoming_event'
    __table_args__ = (
        db.UniqueConstraint('person_id', 'event_type', 'gregorian_date', name='unique_upcoming_event'),
    )

    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='CASCADE'), nullable=False)
    related_person_id = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='SET NULL'), nullable=True)
    custom_event_id = db.Column(db.Integer, db.ForeignKey('custom_event.id', ondelete='CASCADE'), nullable=True)
    event_type = db.Column(db.String(30), nullable=False)
    display_name = db.Column(db.String(250), nullable=False)
    gregorian_date = db.Column(db.Date, nullable=False, index=True)
    hebrew_date = db.Column(db.String(60), nullable=False)
    original_date = db.Column(db.Date, nullable=False)
    years = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'person_id': self.person_id,
            'related_person_id': self.related_person_id,
            'custom_event_id': self.custom_event_id,
            'event_type': self.event_type,
            'display_name': self.display_name,
            'gregorian_date': self.gregorian_date.isoformat() if self.gregorian_date else None,
            'hebrew_date': self.hebrew_date,
            'original_date': self.original_date.isoformat() if self.original_date else None,
            'years': self.years,
        }


class Subscription(db.Model):
    """A subscriber following a person's events (all types when event_type is None)."""
    __tablename__ = 'subscription'
    __table_args__ = (
        db.UniqueConstraint('subscriber', 'person_id', 'event_type', name='unique_subscription'),
    )

    id = db.Column(db.Integer, primary_key=True)
    subscriber = db.Column(db.String(120), nullable=False, index=True)
    person_id = db.Column(db.Integer, db.ForeignKey('person.id', ondelete='CASCADE'), nullable=False)
    event_type = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class JobLock(db.Model):
    """Cross-worker lock row for background jobs."""
    __tablename__ = 'job_lock'

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(50), unique=True, nullable=False)
    locked_at = db.Column(db.DateTime, nullable=False)
    locked_by = db.Column(db.String(50), nullable=False)
