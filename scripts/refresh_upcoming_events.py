import argparse
from datetime import datetime

from app import app
from backend.errors import StoreUnavailable
from backend.event_refresh import refresh_upcoming_events


def parse_day(value: str):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}") from exc


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute the upcoming-event cache.")
    parser.add_argument("--today", type=parse_day, default=None, help="Reference date (default: today in DEFAULT_TIMEZONE)")
    parser.add_argument("--days", type=int, default=None, help="Look-ahead window in days (default: UPCOMING_EVENTS_WINDOW_DAYS)")
    args = parser.parse_args()

    with app.app_context():
        try:
            stats = refresh_upcoming_events(today=args.today, days=args.days)
        except StoreUnavailable as exc:
            print(f"Refresh failed: {exc}")
            return 1

    if stats['status'] != 'ok':
        print(f"Refresh skipped: another worker holds the lock ({stats['today']}..{stats['window_end']})")
        return 0
    print(f"Stored {stats['count']} events for {stats['today']}..{stats['window_end']}")
    for warning in stats['warnings']:
        print(f"[skip] {warning['kind']} {warning['record_id']}: {warning['message']}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
