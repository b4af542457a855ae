"""
Migrations for SQLite databases created before the event engine landed.

Run when upgrading an existing deployment:
    python global_migrations.py

Idempotent updates:
- Ensure person has the after-sunset flags, maiden/middle names, notes and timestamps
- Ensure custom_event exists with related_person_id, name and date_after_sunset
- Ensure upcoming_event exists; drop duplicate (person, type, date) rows and add the unique index
- Ensure subscription and job_lock exist
"""
import sqlite3
from pathlib import Path

DB_PATH = Path("instance") / "kasselbook.db"


def table_exists(cur, name: str) -> bool:
    cur.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,))
    return cur.fetchone() is not None


def column_exists(cur, table: str, column: str) -> bool:
    cur.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())


def add_column(cur, table: str, column: str, col_type: str, default_sql: str | None = None):
    if column_exists(cur, table, column):
        print(f"[skip] {table}.{column} exists")
        return
    cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")
    if default_sql is not None:
        cur.execute(f"UPDATE {table} SET {column} = {default_sql} WHERE {column} IS NULL")
    print(f"[add] {table}.{column}")


def ensure_person(cur):
    if not table_exists(cur, "person"):
        print("[warn] person missing; start the app once to create the baseline schema")
        return
    add_column(cur, "person", "middle_names", "VARCHAR(200)")
    add_column(cur, "person", "maiden_name", "VARCHAR(100)")
    add_column(cur, "person", "birthday_after_sunset", "BOOLEAN NOT NULL DEFAULT 0")
    add_column(cur, "person", "gregorian_date_of_passing", "DATE")
    add_column(cur, "person", "date_of_passing_after_sunset", "BOOLEAN NOT NULL DEFAULT 0")
    add_column(cur, "person", "notes", "TEXT")
    add_column(cur, "person", "created_at", "TIMESTAMP", default_sql="CURRENT_TIMESTAMP")
    add_column(cur, "person", "last_edited_time", "TIMESTAMP", default_sql="CURRENT_TIMESTAMP")
    cur.execute("CREATE INDEX IF NOT EXISTS ix_person_gregorian_birthday ON person (gregorian_birthday)")


def ensure_custom_event(cur):
    if not table_exists(cur, "custom_event"):
        cur.execute(
            """
            CREATE TABLE custom_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                person_id INTEGER NOT NULL REFERENCES person(id) ON DELETE CASCADE,
                related_person_id INTEGER REFERENCES person(id) ON DELETE SET NULL,
                event_type VARCHAR(30) NOT NULL,
                name VARCHAR(200),
                gregorian_date DATE NOT NULL,
                date_after_sunset BOOLEAN NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        print("[add] custom_event table created")
        return

    add_column(cur, "custom_event", "related_person_id", "INTEGER")
    add_column(cur, "custom_event", "name", "VARCHAR(200)")
    add_column(cur, "custom_event", "date_after_sunset", "BOOLEAN NOT NULL DEFAULT 0")
    add_column(cur, "custom_event", "created_at", "TIMESTAMP", default_sql="CURRENT_TIMESTAMP")


def ensure_upcoming_event(cur):
    if not table_exists(cur, "upcoming_event"):
        cur.execute(
            """
            CREATE TABLE upcoming_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                person_id INTEGER NOT NULL REFERENCES person(id) ON DELETE CASCADE,
                related_person_id INTEGER REFERENCES person(id) ON DELETE SET NULL,
                custom_event_id INTEGER REFERENCES custom_event(id) ON DELETE CASCADE,
                event_type VARCHAR(30) NOT NULL,
                display_name VARCHAR(250) NOT NULL,
                gregorian_date DATE NOT NULL,
                hebrew_date VARCHAR(60) NOT NULL,
                original_date DATE NOT NULL,
                years INTEGER NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        print("[add] upcoming_event table created")
    else:
        add_column(cur, "upcoming_event", "related_person_id", "INTEGER")
        add_column(cur, "upcoming_event", "custom_event_id", "INTEGER")
        add_column(cur, "upcoming_event", "years", "INTEGER NOT NULL DEFAULT 0")
        # Older deployments appended on every refresh; keep the first row per key.
        cur.execute(
            """
            DELETE FROM upcoming_event
            WHERE id NOT IN (
                SELECT MIN(id) FROM upcoming_event GROUP BY person_id, event_type, gregorian_date
            )
            """
        )
        if cur.rowcount:
            print(f"[update] removed {cur.rowcount} duplicate upcoming_event rows")

    cur.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS unique_upcoming_event "
        "ON upcoming_event (person_id, event_type, gregorian_date)"
    )
    cur.execute("CREATE INDEX IF NOT EXISTS ix_upcoming_event_gregorian_date ON upcoming_event (gregorian_date)")


def ensure_subscription(cur):
    if table_exists(cur, "subscription"):
        add_column(cur, "subscription", "event_type", "VARCHAR(30)")
        return
    cur.execute(
        """
        CREATE TABLE subscription (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            subscriber VARCHAR(120) NOT NULL,
            person_id INTEGER NOT NULL REFERENCES person(id) ON DELETE CASCADE,
            event_type VARCHAR(30),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT unique_subscription UNIQUE (subscriber, person_id, event_type)
        )
        """
    )
    print("[add] subscription table created")


def ensure_job_lock(cur):
    if table_exists(cur, "job_lock"):
        print("[skip] job_lock exists")
        return
    cur.execute(
        """
        CREATE TABLE job_lock (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            job_name VARCHAR(50) NOT NULL UNIQUE,
            locked_at TIMESTAMP NOT NULL,
            locked_by VARCHAR(50) NOT NULL
        )
        """
    )
    print("[add] job_lock table created")


def run_migrations(conn):
    cur = conn.cursor()
    ensure_person(cur)
    ensure_custom_event(cur)
    ensure_upcoming_event(cur)
    ensure_subscription(cur)
    ensure_job_lock(cur)
    conn.commit()


def main():
    if not DB_PATH.exists():
        print("Database not found. Start the app once to create it.")
        return
    conn = sqlite3.connect(DB_PATH)
    try:
        run_migrations(conn)
        print("Global migrations complete.")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
