"""Route handlers for upcoming events, period ranges and Hebrew date lookups."""
from flask import current_app, jsonify, request
from sqlalchemy import or_

from background_jobs import start_app_context_job
from backend.errors import InvalidPeriod, OutOfRange, StoreUnavailable
from backend.event_refresh import local_today, refresh_upcoming_events
from backend.hebrew_dates import format_hebrew_date, to_gregorian, to_hebrew
from backend.occurrences import EVENT_TYPES, original_hebrew_date
from backend.periods import resolve_period
from models import Subscription, UpcomingEvent
from services.validation_service import normalize_event_type, parse_bool, parse_day_value, parse_int

MAX_REFRESH_DAYS = 400


def _parse_optional_day(name):
    """(value, error_response) for an optional YYYY-MM-DD query arg."""
    raw = request.args.get(name)
    if not raw:
        return None, None
    value = parse_day_value(raw)
    if not value:
        return None, (jsonify({'error': f'Invalid {name} date'}), 400)
    return value, None


def _resolve_request_period(token):
    today, error = _parse_optional_day('today')
    if error:
        return None, error
    start, error = _parse_optional_day('start')
    if error:
        return None, error
    end, error = _parse_optional_day('end')
    if error:
        return None, error
    try:
        return resolve_period(token, today or local_today(), start=start, end=end), None
    except InvalidPeriod as e:
        return None, (jsonify({'error': str(e)}), 400)
    except OutOfRange as e:
        return None, (jsonify({'error': str(e)}), 422)


def list_upcoming_events():
    """Cached occurrences inside a period, optionally narrowed by type and subscriber."""
    token = request.args.get('period') or 'this_week'
    date_range, error = _resolve_request_period(token)
    if error:
        return error

    query = UpcomingEvent.query.filter(
        UpcomingEvent.gregorian_date >= date_range.start,
        UpcomingEvent.gregorian_date <= date_range.end
    )

    raw_type = request.args.get('type')
    if raw_type:
        event_type = normalize_event_type(raw_type, EVENT_TYPES)
        if not event_type:
            return jsonify({'error': f'Unknown event type {raw_type}'}), 400
        query = query.filter(UpcomingEvent.event_type == event_type)

    subscriber = (request.args.get('subscriber') or '').strip()
    if subscriber:
        query = query.join(Subscription, Subscription.person_id == UpcomingEvent.person_id).filter(
            Subscription.subscriber == subscriber,
            or_(
                Subscription.event_type.is_(None),
                Subscription.event_type == UpcomingEvent.event_type
            )
        ).distinct()

    events = query.order_by(
        UpcomingEvent.gregorian_date.asc(),
        UpcomingEvent.person_id.asc(),
        UpcomingEvent.event_type.asc()
    ).all()
    return jsonify({
        'period': token,
        'range': date_range.to_dict(),
        'events': [ev.to_dict() for ev in events]
    })


def resolve_period_view(token):
    date_range, error = _resolve_request_period(token)
    if error:
        return error
    payload = date_range.to_dict()
    payload['period'] = token
    return jsonify(payload)


def hebrew_date_lookup():
    day_obj = parse_day_value(request.args.get('date'))
    if not day_obj:
        return jsonify({'error': 'Invalid date'}), 400
    after_sunset = parse_bool(request.args.get('after_sunset'))
    style = 'he' if request.args.get('style') == 'he' else 'en'
    try:
        hd = original_hebrew_date(day_obj, after_sunset)
        observed_on = to_gregorian(hd)
    except OutOfRange as e:
        return jsonify({'error': str(e)}), 422
    return jsonify({
        'date': day_obj.isoformat(),
        'after_sunset': after_sunset,
        'hebrew': hd.to_dict(),
        'hebrew_display': format_hebrew_date(hd, style=style),
        'hebrew_day_gregorian': observed_on.isoformat(),
        'civil_hebrew_display': format_hebrew_date(to_hebrew(day_obj), style=style),
    })


def trigger_refresh():
    """Run one refresh cycle now, or on a background thread when `async` is set."""
    app = current_app._get_current_object()
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    today = None
    if data.get('today'):
        today = parse_day_value(data.get('today'))
        if not today:
            return jsonify({'error': 'Invalid today'}), 400
    days = data.get('days')
    if days is not None:
        days = parse_int(days)
        if days is None or days < 0:
            return jsonify({'error': 'days must be a non-negative integer'}), 400
        days = min(days, MAX_REFRESH_DAYS)

    if parse_bool(data.get('async')):
        app.logger.info("Background event refresh requested")
        start_app_context_job(
            app,
            refresh_upcoming_events,
            kwargs={'today': today, 'days': days},
            name='event_refresh'
        )
        return jsonify({'status': 'started'}), 202

    app.logger.info("Manual event refresh triggered")
    try:
        stats = refresh_upcoming_events(today=today, days=days)
    except StoreUnavailable as e:
        app.logger.error(f"Event refresh failed: {e}")
        return jsonify({'error': str(e)}), 503
    return jsonify(stats)
