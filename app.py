import os

from dotenv import load_dotenv
from flask import Flask, jsonify

load_dotenv()

from models import db, Person, CustomEvent, UpcomingEvent
from apscheduler.schedulers.background import BackgroundScheduler
from backend.errors import StoreUnavailable
from backend.event_refresh import DEFAULT_WINDOW_DAYS, local_today, refresh_upcoming_events
from services import event_routes, family_tree_routes

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///kasselbook.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['DEFAULT_TIMEZONE'] = os.environ.get('DEFAULT_TIMEZONE', 'America/New_York')
app.config['UPCOMING_EVENTS_WINDOW_DAYS'] = int(os.environ.get('UPCOMING_EVENTS_WINDOW_DAYS', DEFAULT_WINDOW_DAYS))
app.config['EVENT_REFRESH_HOUR'] = int(os.environ.get('EVENT_REFRESH_HOUR', 2))
app.config['JOB_LOCK_STALE_MINUTES'] = int(os.environ.get('JOB_LOCK_STALE_MINUTES', 5))

db.init_app(app)
scheduler = None

with app.app_context():
    db.create_all()


def _refresh_upcoming_events_job():
    """Scheduled refresh of the upcoming-event cache."""
    with app.app_context():
        try:
            refresh_upcoming_events()
        except StoreUnavailable as e:
            app.logger.error(f"Scheduled event refresh failed: {e}")
        except Exception as e:
            app.logger.error(f"Unexpected error in scheduled event refresh: {e}")
            db.session.rollback()


def _start_scheduler():
    """Start background scheduler for the daily event refresh."""
    global scheduler
    if os.environ.get('ENABLE_EVENT_JOBS', '1') != '1':
        return
    if scheduler and scheduler.running:
        return
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler = BackgroundScheduler(timezone=app.config['DEFAULT_TIMEZONE'])
    scheduler.add_job(
        _refresh_upcoming_events_job,
        'cron',
        hour=app.config['EVENT_REFRESH_HOUR'],
        minute=0,
        id='upcoming_event_refresh',
        replace_existing=True
    )
    scheduler.start()
    app.logger.info("Event refresh scheduler started")

_jobs_bootstrapped = False

@app.before_request
def _bootstrap_background_jobs():
    global _jobs_bootstrapped
    if _jobs_bootstrapped:
        return
    _start_scheduler()
    _jobs_bootstrapped = True


@app.route('/api/health')
def health():
    return jsonify({
        'status': 'ok',
        'today': local_today().isoformat(),
        'people': Person.query.count(),
        'custom_events': CustomEvent.query.count(),
        'upcoming_events': UpcomingEvent.query.count()
    })


# Upcoming events API
app.add_url_rule('/api/upcoming-events', view_func=event_routes.list_upcoming_events, methods=['GET'])
app.add_url_rule('/api/upcoming-events/refresh', view_func=event_routes.trigger_refresh, methods=['POST'])
app.add_url_rule('/api/periods/<token>', view_func=event_routes.resolve_period_view, methods=['GET'])
app.add_url_rule('/api/hebrew-date', view_func=event_routes.hebrew_date_lookup, methods=['GET'])

# Family tree
app.add_url_rule('/api/family-tree', view_func=family_tree_routes.family_tree, methods=['GET'])
app.add_url_rule('/api/people/<int:person_id>', view_func=family_tree_routes.person_detail, methods=['GET'])

if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
