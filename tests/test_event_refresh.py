from datetime import date

from backend.event_refresh import compute_upcoming_events, refresh
from backend.hebrew_dates import AV, TISHREI, HebrewDate, to_gregorian

TODAY = date(2024, 10, 3)  # 1 Tishrei 5785


def _people():
    return [
        {
            'id': 1,
            'first_name': 'Sarah',
            'last_name': 'Kassel',
            'gregorian_birthday': to_gregorian(HebrewDate(5750, AV, 10)),
            'birthday_after_sunset': False,
        },
        {
            'id': 2,
            'first_name': 'Moshe',
            'last_name': 'Kassel',
            'gregorian_birthday': '1920-05-01',
            'gregorian_date_of_passing': '2024-03-24',
            'date_of_passing_after_sunset': False,
        },
        {
            'id': 3,
            'first_name': 'Broken',
            'last_name': 'Record',
            'gregorian_birthday': '1990-13-45',
        },
    ]


def _custom_events():
    return [
        {
            'id': 10,
            'person_id': 1,
            'related_person_id': 2,
            'event_type': 'anniversary',
            'gregorian_date': '2015-06-01',
        },
    ]


def test_refresh_produces_birthdays_yahrzeits_and_custom_events():
    result = compute_upcoming_events(_people(), _custom_events(), TODAY, 365)
    by_key = {(e.person_id, e.event_type): e for e in result.events}

    assert by_key[(1, 'birthday')].gregorian_date == date(2025, 8, 3)
    assert by_key[(1, 'birthday')].years == 35
    assert by_key[(1, 'birthday')].display_name == "Sarah Kassel's birthday"

    yahrzeit = by_key[(2, 'yahrzeit')]
    assert yahrzeit.gregorian_date == date(2025, 3, 14)
    assert yahrzeit.hebrew_date == '14 Adar 5785'
    assert yahrzeit.display_name == 'Yahrzeit of Moshe Kassel'
    assert yahrzeit.original_date == date(2024, 3, 24)

    anniversary = by_key[(1, 'anniversary')]
    assert anniversary.custom_event_id == 10
    assert anniversary.related_person_id == 2
    assert anniversary.display_name == 'Anniversary: Sarah Kassel & Moshe Kassel'


def test_malformed_person_is_skipped_and_reported_once():
    result = compute_upcoming_events(_people(), _custom_events(), TODAY, 365)

    assert len(result.warnings) == 1
    assert result.warnings[0].kind == 'person'
    assert result.warnings[0].record_id == 3
    assert all(e.person_id != 3 for e in result.events)
    assert {e.person_id for e in result.events} == {1, 2}


def test_refresh_is_idempotent():
    first = [e.to_dict() for e in refresh(_people(), _custom_events(), TODAY, 365)]
    second = [e.to_dict() for e in refresh(_people(), _custom_events(), TODAY, 365)]
    assert first == second


def test_every_event_is_inside_the_window():
    events = refresh(_people(), _custom_events(), TODAY, 180)
    assert events
    for event in events:
        assert TODAY <= event.gregorian_date <= date(2025, 4, 1)


def test_negative_window_yields_nothing():
    result = compute_upcoming_events(_people(), _custom_events(), TODAY, -1)
    assert result.events == []
    assert len(result.warnings) == 1


def test_duplicate_keys_merge_last_write_wins():
    events = [
        {'id': 20, 'person_id': 1, 'event_type': 'aliyah', 'gregorian_date': '2000-01-01', 'name': 'First'},
        {'id': 21, 'person_id': 1, 'event_type': 'aliyah', 'gregorian_date': '2000-01-01', 'name': 'Second'},
    ]
    result = compute_upcoming_events(_people()[:1], events, TODAY, 365)
    aliyahs = [e for e in result.events if e.event_type == 'aliyah']
    assert len(aliyahs) == 1
    assert aliyahs[0].custom_event_id == 21
    assert aliyahs[0].display_name == 'Second'


def test_custom_yahrzeit_type_uses_yahrzeit_rule():
    events = [{'id': 30, 'person_id': 1, 'event_type': 'yahrzeit', 'gregorian_date': '2024-03-24'}]
    result = compute_upcoming_events([], events, TODAY, 365)
    assert result.events[0].hebrew_date == '14 Adar 5785'
    assert result.events[0].display_name == 'Yahrzeit: Person 1'


def test_unknown_custom_event_type_is_malformed():
    events = [{'id': 40, 'person_id': 1, 'event_type': 'graduation', 'gregorian_date': '2010-06-01'}]
    result = compute_upcoming_events(_people()[:1], events, TODAY, 365)
    assert [(w.kind, w.record_id) for w in result.warnings] == [('custom_event', 40)]


def test_passing_before_birth_is_malformed():
    people = [{'id': 5, 'gregorian_birthday': '1950-01-01', 'gregorian_date_of_passing': '1940-01-01'}]
    result = compute_upcoming_events(people, [], TODAY, 365)
    assert result.events == []
    assert result.warnings[0].record_id == 5


def test_warnings_are_logged():
    class _Logger:
        def __init__(self):
            self.messages = []

        def warning(self, msg, *args):
            self.messages.append(msg % args)

    logger = _Logger()
    compute_upcoming_events(_people(), [], TODAY, 30, logger=logger)
    assert len(logger.messages) == 1
    assert 'person 3' in logger.messages[0]


def test_event_entered_ahead_of_time_shows_up_with_zero_years():
    events = [{'id': 50, 'person_id': 1, 'event_type': 'bar_bat_mitzvah', 'gregorian_date': '2024-12-01'}]
    result = compute_upcoming_events([], events, date(2024, 11, 1), 60)
    assert [(e.custom_event_id, e.gregorian_date, e.years) for e in result.events] == [(50, date(2024, 12, 1), 0)]
    assert result.warnings == []


def test_unparseable_custom_event_date_is_malformed():
    events = [
        {'id': 60, 'person_id': 1, 'event_type': 'aliyah', 'gregorian_date': 'next spring'},
        {'id': 61, 'person_id': 1, 'event_type': 'aliyah', 'gregorian_date': '2000-01-01'},
    ]
    result = compute_upcoming_events([], events, TODAY, 365)
    assert [(w.kind, w.record_id) for w in result.warnings] == [('custom_event', 60)]
    assert [e.custom_event_id for e in result.events] == [61]


def test_dates_past_the_calendar_range_are_malformed():
    # Near date.max the next Hebrew year (13761) is past the supported range.
    today = date(9999, 12, 1)
    rosh_hashanah = to_gregorian(HebrewDate(5751, TISHREI, 1))
    people = [
        {'id': 70, 'first_name': 'Late', 'gregorian_birthday': rosh_hashanah},
        {'id': 71, 'first_name': 'Newborn', 'gregorian_birthday': today},
    ]
    events = [{'id': 72, 'person_id': 71, 'event_type': 'anniversary', 'gregorian_date': rosh_hashanah}]

    result = compute_upcoming_events(people, events, today, 10)

    assert sorted((w.kind, w.record_id) for w in result.warnings) == [('custom_event', 72), ('person', 70)]
    assert [(e.person_id, e.gregorian_date, e.years) for e in result.events] == [(71, today, 0)]
