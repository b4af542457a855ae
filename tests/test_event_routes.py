from datetime import date

from backend.event_refresh import REFRESH_LOCK_NAME, refresh_upcoming_events
from models import CustomEvent, JobLock, Person, Subscription, UpcomingEvent, db


def _seed():
    sarah = Person(
        gender='female', first_name='Sarah', last_name='Kassel',
        gregorian_birthday=date(1990, 8, 1), birthday_after_sunset=False
    )
    moshe = Person(
        gender='male', first_name='Moshe', last_name='Kassel',
        gregorian_birthday=date(1920, 5, 1),
        gregorian_date_of_passing=date(2024, 3, 24)
    )
    db.session.add_all([sarah, moshe])
    db.session.flush()
    db.session.add(CustomEvent(
        person_id=sarah.id, related_person_id=moshe.id, event_type='anniversary',
        gregorian_date=date(2015, 6, 1)
    ))
    db.session.commit()
    return sarah, moshe


def test_refresh_job_writes_cache_and_is_idempotent(app):
    _seed()
    first = refresh_upcoming_events(today=date(2024, 10, 3), days=365)
    rows_first = [e.to_dict() for e in UpcomingEvent.query.order_by(UpcomingEvent.gregorian_date).all()]
    second = refresh_upcoming_events(today=date(2024, 10, 3), days=365)
    rows_second = [e.to_dict() for e in UpcomingEvent.query.order_by(UpcomingEvent.gregorian_date).all()]

    assert first['status'] == 'ok'
    assert first['count'] == second['count'] == len(rows_second)
    assert [{k: v for k, v in r.items() if k != 'id'} for r in rows_first] == \
        [{k: v for k, v in r.items() if k != 'id'} for r in rows_second]
    assert JobLock.query.filter_by(job_name=REFRESH_LOCK_NAME).count() == 0


def test_refresh_job_drops_stale_rows(app):
    sarah, _ = _seed()
    db.session.add(UpcomingEvent(
        person_id=sarah.id, event_type='birthday', display_name='old', gregorian_date=date(2023, 1, 1),
        hebrew_date='8 Tevet 5783', original_date=date(1990, 8, 1), years=33
    ))
    db.session.commit()

    refresh_upcoming_events(today=date(2024, 10, 3), days=365)

    assert UpcomingEvent.query.filter(UpcomingEvent.gregorian_date < date(2024, 10, 3)).count() == 0


def test_refresh_job_skips_when_locked(app):
    from backend.event_refresh import local_now
    db.session.add(JobLock(job_name=REFRESH_LOCK_NAME, locked_at=local_now(), locked_by='other-worker'))
    db.session.commit()

    stats = refresh_upcoming_events(today=date(2024, 10, 3), days=30)

    assert stats['status'] == 'skipped'
    assert JobLock.query.filter_by(job_name=REFRESH_LOCK_NAME).one().locked_by == 'other-worker'


def test_refresh_job_reports_invalid_person(app):
    db.session.add(Person(
        gender='male', first_name='Bad', last_name='Dates',
        gregorian_birthday=date(1950, 1, 1), gregorian_date_of_passing=date(1940, 1, 1)
    ))
    db.session.commit()

    stats = refresh_upcoming_events(today=date(2024, 10, 3), days=30)

    assert stats['count'] == 0
    assert len(stats['warnings']) == 1
    assert stats['warnings'][0]['kind'] == 'person'


def test_refresh_endpoint(client):
    _seed()
    resp = client.post('/api/upcoming-events/refresh', json={'today': '2024-10-03', 'days': 365})
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'ok'
    assert UpcomingEvent.query.count() == resp.get_json()['count']


def test_refresh_endpoint_rejects_bad_input(client):
    assert client.post('/api/upcoming-events/refresh', json={'today': 'soon'}).status_code == 400
    assert client.post('/api/upcoming-events/refresh', json={'days': -3}).status_code == 400


def test_upcoming_events_query_by_period_and_type(client):
    _seed()
    client.post('/api/upcoming-events/refresh', json={'today': '2024-10-03', 'days': 365})

    resp = client.get('/api/upcoming-events?period=custom&start=2025-03-01&end=2025-03-31&type=yahrzeit')
    data = resp.get_json()
    assert resp.status_code == 200
    assert data['range']['start'] == '2025-03-01'
    assert [e['gregorian_date'] for e in data['events']] == ['2025-03-14']
    assert data['events'][0]['hebrew_date'] == '14 Adar 5785'


def test_upcoming_events_for_subscriber(client):
    sarah, moshe = _seed()
    db.session.add(Subscription(subscriber='cousin@example.com', person_id=moshe.id, event_type='yahrzeit'))
    db.session.commit()
    client.post('/api/upcoming-events/refresh', json={'today': '2024-10-03', 'days': 365})

    resp = client.get('/api/upcoming-events?period=custom&start=2024-10-03&end=2025-10-03&subscriber=cousin@example.com')
    events = resp.get_json()['events']
    assert [(e['person_id'], e['event_type']) for e in events] == [(moshe.id, 'yahrzeit')]


def test_upcoming_events_rejects_bad_period(client):
    assert client.get('/api/upcoming-events?period=someday').status_code == 400
    assert client.get('/api/upcoming-events?period=custom&start=2025-03-01').status_code == 400
    assert client.get('/api/upcoming-events?period=this_week&type=party').status_code == 400
    assert client.get('/api/upcoming-events?period=custom&start=bad&end=2025-01-01').status_code == 400


def test_period_endpoint(client):
    resp = client.get('/api/periods/this_week?today=2026-10-21')
    data = resp.get_json()
    assert resp.status_code == 200
    assert (data['start'], data['end']) == ('2026-10-18', '2026-10-24')
    assert data['period'] == 'this_week'
    assert client.get('/api/periods/custom?start=2024-02-01&end=2024-01-01').status_code == 400


def test_hebrew_date_endpoint(client):
    resp = client.get('/api/hebrew-date?date=2024-10-02&after_sunset=1')
    data = resp.get_json()
    assert data['hebrew'] == {'year': 5785, 'month': 7, 'day': 1}
    assert data['hebrew_display'] == '1 Tishrei 5785'
    assert data['civil_hebrew_display'] == '29 Elul 5784'
    assert data['hebrew_day_gregorian'] == '2024-10-03'
    assert client.get('/api/hebrew-date?date=tomorrow').status_code == 400


def test_health(client):
    _seed()
    data = client.get('/api/health').get_json()
    assert data['people'] == 2
    assert data['custom_events'] == 1


def test_short_refresh_clears_rows_written_by_a_longer_one(app):
    person = Person(gender='female', first_name='Leah', last_name='Kassel', gregorian_birthday=date(1990, 3, 1))
    db.session.add(person)
    db.session.commit()
    refresh_upcoming_events(today=date(2024, 10, 3), days=365)
    assert UpcomingEvent.query.filter_by(person_id=person.id, event_type='birthday').count() == 1

    person.gregorian_birthday = date(1990, 9, 1)
    db.session.commit()
    refresh_upcoming_events(today=date(2024, 10, 3), days=60)

    assert UpcomingEvent.query.filter_by(person_id=person.id).count() == 0
    assert UpcomingEvent.query.filter(UpcomingEvent.original_date == date(1990, 3, 1)).count() == 0


def test_refresh_endpoint_rejects_non_object_body(client):
    resp = client.post('/api/upcoming-events/refresh', json=[1])
    assert resp.status_code == 400
    assert 'error' in resp.get_json()


def test_period_past_the_last_date_is_unprocessable(client):
    assert client.get('/api/periods/next_month?today=9999-12-15').status_code == 422
    assert client.get('/api/periods/next_hebrew_month?today=9999-12-31').status_code == 422
    assert client.get('/api/upcoming-events?period=next_week&today=9999-12-30').status_code == 422
