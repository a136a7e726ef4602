import datetime
import json
import sqlite3
import aiosqlite
from contextlib import contextmanager, asynccontextmanager
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from loguru import logger

from settings_schema import PreferencesSchema, validate_preferences
from tools import generate_id, now_ms, today
from validation import (
    NotFoundError,
    PreconditionError,
    StorageError,
    ValidationError,
    validate_auxiliary_entry,
    validate_lift_rep,
    validate_lift_set,
    validate_meet,
    validate_race,
    validate_sprint_rep,
)

SCHEMA_VERSION = 6


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "sprint_sessions": (
            """CREATE TABLE sprint_sessions (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    title TEXT,
                    location TEXT,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "date", "title", "location", "notes", "status", "created_at", "updated_at"],
        ),
        "sprint_sets": (
            """CREATE TABLE sprint_sets (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    name TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "session_id", "sequence", "name", "created_at", "updated_at"],
        ),
        "sprint_reps": (
            """CREATE TABLE sprint_reps (
                    id TEXT PRIMARY KEY,
                    set_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    distance REAL NOT NULL,
                    time REAL NOT NULL,
                    timing_type TEXT NOT NULL DEFAULT 'HAND',
                    rest_after INTEGER NOT NULL DEFAULT 180,
                    is_fly INTEGER NOT NULL DEFAULT 0,
                    fly_in_distance INTEGER,
                    intensity INTEGER,
                    work_type TEXT DEFAULT 'sprint',
                    notes TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            [
                "id",
                "set_id",
                "sequence",
                "distance",
                "time",
                "timing_type",
                "rest_after",
                "is_fly",
                "fly_in_distance",
                "intensity",
                "work_type",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "lift_sessions": (
            """CREATE TABLE lift_sessions (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    title TEXT,
                    location TEXT,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "date", "title", "location", "notes", "status", "created_at", "updated_at"],
        ),
        "lift_sets": (
            """CREATE TABLE lift_sets (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    exercise TEXT NOT NULL,
                    load REAL NOT NULL,
                    notes TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "session_id", "sequence", "exercise", "load", "notes", "created_at", "updated_at"],
        ),
        "lift_reps": (
            """CREATE TABLE lift_reps (
                    id TEXT PRIMARY KEY,
                    set_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    peak_velocity REAL,
                    notes TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "set_id", "sequence", "peak_velocity", "notes", "created_at", "updated_at"],
        ),
        "meets": (
            """CREATE TABLE meets (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    name TEXT NOT NULL,
                    location TEXT,
                    venue TEXT NOT NULL,
                    timing_type TEXT NOT NULL,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            [
                "id",
                "date",
                "name",
                "location",
                "venue",
                "timing_type",
                "notes",
                "status",
                "created_at",
                "updated_at",
            ],
        ),
        "races": (
            """CREATE TABLE races (
                    id TEXT PRIMARY KEY,
                    meet_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    distance REAL NOT NULL,
                    round TEXT NOT NULL,
                    time REAL NOT NULL,
                    wind REAL,
                    place INTEGER,
                    timing_type TEXT,
                    notes TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            [
                "id",
                "meet_id",
                "sequence",
                "distance",
                "round",
                "time",
                "wind",
                "place",
                "timing_type",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "auxiliary_sessions": (
            """CREATE TABLE auxiliary_sessions (
                    id TEXT PRIMARY KEY,
                    date TEXT NOT NULL,
                    title TEXT,
                    location TEXT,
                    notes TEXT,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            ["id", "date", "title", "location", "notes", "status", "created_at", "updated_at"],
        ),
        "auxiliary_entries": (
            """CREATE TABLE auxiliary_entries (
                    id TEXT PRIMARY KEY,
                    session_id TEXT NOT NULL,
                    session_type TEXT NOT NULL DEFAULT 'auxiliary',
                    sequence INTEGER NOT NULL,
                    category TEXT NOT NULL,
                    name TEXT NOT NULL,
                    volume_metric TEXT NOT NULL,
                    volume_value REAL NOT NULL,
                    intensity INTEGER,
                    notes TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER
                );""",
            [
                "id",
                "session_id",
                "session_type",
                "sequence",
                "category",
                "name",
                "volume_metric",
                "volume_value",
                "intensity",
                "notes",
                "created_at",
                "updated_at",
            ],
        ),
        "session_templates": (
            """CREATE TABLE session_templates (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    description TEXT,
                    created_at INTEGER NOT NULL,
                    updated_at INTEGER,
                    last_used_at INTEGER,
                    use_count INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "name", "type", "description", "created_at", "updated_at", "last_used_at", "use_count"],
        ),
        "sprint_template_sets": (
            """CREATE TABLE sprint_template_sets (
                    id TEXT PRIMARY KEY,
                    template_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    name TEXT
                );""",
            ["id", "template_id", "sequence", "name"],
        ),
        "sprint_template_reps": (
            """CREATE TABLE sprint_template_reps (
                    id TEXT PRIMARY KEY,
                    set_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    distance REAL NOT NULL,
                    timing_type TEXT NOT NULL DEFAULT 'HAND',
                    rest_after INTEGER NOT NULL DEFAULT 180,
                    is_fly INTEGER NOT NULL DEFAULT 0,
                    fly_in_distance INTEGER
                );""",
            ["id", "set_id", "sequence", "distance", "timing_type", "rest_after", "is_fly", "fly_in_distance"],
        ),
        "lift_template_sets": (
            """CREATE TABLE lift_template_sets (
                    id TEXT PRIMARY KEY,
                    template_id TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    exercise TEXT NOT NULL,
                    load REAL NOT NULL,
                    rep_count INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "template_id", "sequence", "exercise", "load", "rep_count"],
        ),
        "preferences": (
            """CREATE TABLE preferences (
                    id TEXT PRIMARY KEY,
                    favorite_distances TEXT NOT NULL,
                    favorite_exercises TEXT NOT NULL,
                    default_rest_time INTEGER NOT NULL DEFAULT 180,
                    default_timing_type TEXT NOT NULL DEFAULT 'HAND',
                    theme TEXT NOT NULL DEFAULT 'dark',
                    haptic_feedback INTEGER NOT NULL DEFAULT 1,
                    updated_at INTEGER
                );""",
            [
                "id",
                "favorite_distances",
                "favorite_exercises",
                "default_rest_time",
                "default_timing_type",
                "theme",
                "haptic_feedback",
                "updated_at",
            ],
        ),
        "sequence_counters": (
            """CREATE TABLE sequence_counters (
                    id TEXT PRIMARY KEY,
                    last_sequence INTEGER NOT NULL
                );""",
            ["id", "last_sequence"],
        ),
    }

    _INDEXES = [
        "CREATE INDEX IF NOT EXISTS idx_sprint_sessions_date ON sprint_sessions (date);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_sessions_status ON sprint_sessions (status);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_sets_session ON sprint_sets (session_id);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_reps_set ON sprint_reps (set_id);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_reps_distance ON sprint_reps (distance);",
        "CREATE INDEX IF NOT EXISTS idx_lift_sessions_date ON lift_sessions (date);",
        "CREATE INDEX IF NOT EXISTS idx_lift_sessions_status ON lift_sessions (status);",
        "CREATE INDEX IF NOT EXISTS idx_lift_sets_session ON lift_sets (session_id);",
        "CREATE INDEX IF NOT EXISTS idx_lift_sets_exercise ON lift_sets (exercise);",
        "CREATE INDEX IF NOT EXISTS idx_lift_reps_set ON lift_reps (set_id);",
        "CREATE INDEX IF NOT EXISTS idx_meets_date ON meets (date);",
        "CREATE INDEX IF NOT EXISTS idx_meets_status ON meets (status);",
        "CREATE INDEX IF NOT EXISTS idx_races_meet ON races (meet_id);",
        "CREATE INDEX IF NOT EXISTS idx_auxiliary_sessions_date ON auxiliary_sessions (date);",
        "CREATE INDEX IF NOT EXISTS idx_auxiliary_sessions_status ON auxiliary_sessions (status);",
        "CREATE INDEX IF NOT EXISTS idx_auxiliary_entries_session ON auxiliary_entries (session_id, session_type);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_template_sets_template ON sprint_template_sets (template_id);",
        "CREATE INDEX IF NOT EXISTS idx_sprint_template_reps_set ON sprint_template_reps (set_id);",
        "CREATE INDEX IF NOT EXISTS idx_lift_template_sets_template ON lift_template_sets (template_id);",
    ]

    # Data fixes applied once when upgrading past the given version.
    _MIGRATIONS = {
        4: ["UPDATE sprint_reps SET work_type = 'sprint' WHERE work_type IS NULL;"],
    }

    _COLUMN_DEFAULTS = {
        "status": "'active'",
        "timing_type": "'HAND'",
        "rest_after": "180",
        "is_fly": "0",
        "work_type": "'sprint'",
        "session_type": "'auxiliary'",
        "use_count": "0",
        "rep_count": "0",
        "created_at": "CAST(strftime('%s', 'now') AS INTEGER) * 1000",
    }

    _BOOL_COLUMNS = {"is_fly", "haptic_feedback"}
    _JSON_COLUMNS = {"favorite_distances", "favorite_exercises"}

    def __init__(self, db_path: str = "accel.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            connection.rollback()
            logger.error(f"Storage failure on {self._db_path}: {e}")
            raise StorageError(str(e)) from e
        except Exception:
            connection.rollback()
            raise
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            version = conn.execute("PRAGMA user_version;").fetchone()[0]
            if version > SCHEMA_VERSION:
                # Written by a newer release: only add what is absent, never rebuild.
                logger.warning(
                    f"{self._db_path} has schema version {version}, newer than {SCHEMA_VERSION}"
                )
                for table, (sql, _columns) in self._TABLE_DEFINITIONS.items():
                    if not self._table_exists(conn, table):
                        conn.execute(sql)
                return
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            for sql in self._INDEXES:
                conn.execute(sql)
            if version < SCHEMA_VERSION:
                for step in range(version + 1, SCHEMA_VERSION + 1):
                    for sql in self._MIGRATIONS.get(step, []):
                        conn.execute(sql)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
                if version:
                    logger.info(f"Upgraded {self._db_path} from schema {version} to {SCHEMA_VERSION}")

    @staticmethod
    def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        return cur.fetchone() is not None

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        if not self._table_exists(conn, table):
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing = {row[1]: row[2] for row in cur.fetchall()}
        missing = [c for c in columns if c not in existing]
        if not missing:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        # Columns unknown to this version are carried over unchanged.
        extra = [c for c in existing if c not in columns]
        for column in extra:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {existing[column]};")

        common = [c for c in columns if c in existing] + extra
        if common:
            target = ", ".join(common + missing)
            source = ", ".join(
                common + [self._COLUMN_DEFAULTS.get(c, "NULL") for c in missing]
            )
            conn.execute(
                f"INSERT INTO {table} ({target}) SELECT {source} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")
        logger.info(f"Migrated table {table}: added {', '.join(missing) or 'no columns'}")

    def schema_version(self) -> int:
        with self._connection() as conn:
            return conn.execute("PRAGMA user_version;").fetchone()[0]

    @classmethod
    def table_names(cls) -> List[str]:
        return list(cls._TABLE_DEFINITIONS)

    @classmethod
    def _columns(cls, table: str) -> List[str]:
        if table not in cls._TABLE_DEFINITIONS:
            raise ValueError(f"unknown table {table}")
        return cls._TABLE_DEFINITIONS[table][1]

    @classmethod
    def _encode(cls, column: str, value):
        if value is None:
            return None
        if column in cls._BOOL_COLUMNS:
            return int(bool(value))
        if column in cls._JSON_COLUMNS:
            return json.dumps(list(value))
        return value

    @classmethod
    def _decode(cls, row: dict) -> dict:
        for col in cls._BOOL_COLUMNS:
            if row.get(col) is not None:
                row[col] = bool(row[col])
        for col in cls._JSON_COLUMNS:
            if isinstance(row.get(col), str):
                row[col] = json.loads(row[col])
        return row

    @classmethod
    def _rows(cls, cursor) -> List[dict]:
        names = [d[0] for d in cursor.description]
        return [cls._decode(dict(zip(names, row))) for row in cursor.fetchall()]


class ChildIndex:
    """Leaf records grouped by parent id, each group ordered by sequence.

    The index is derived from the loaded records and can be rebuilt at any
    time; the store remains the source of truth.
    """

    def __init__(self, records: Iterable[dict] = (), parent_field: str = "set_id") -> None:
        self.parent_field = parent_field
        self._groups: Dict[str, List[dict]] = {}
        self.rebuild(records)

    def rebuild(self, records: Iterable[dict]) -> None:
        groups: Dict[str, List[dict]] = {}
        for record in records:
            groups.setdefault(record[self.parent_field], []).append(record)
        for children in groups.values():
            children.sort(key=lambda r: r["sequence"])
        self._groups = groups

    def for_parent(self, parent_id: str) -> List[dict]:
        return list(self._groups.get(parent_id, []))

    def all(self) -> List[dict]:
        return [r for children in self._groups.values() for r in children]

    def to_dict(self) -> Dict[str, List[dict]]:
        return {k: list(v) for k, v in self._groups.items()}

    def __contains__(self, parent_id: str) -> bool:
        return parent_id in self._groups

    def __len__(self) -> int:
        return sum(len(v) for v in self._groups.values())


class BaseRepository(Database):
    """Generic record access on top of :class:`Database`."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.execute(query, params)
            return cursor.fetchall()

    def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        with self._connection() as conn:
            return self._rows(conn.execute(query, params))

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")

    @classmethod
    def _check_fields(cls, fields: dict, allowed: Iterable[str]) -> None:
        unknown = sorted(set(fields) - set(allowed))
        if unknown:
            raise ValidationError([f"Field {name} cannot be changed" for name in unknown])

    @staticmethod
    def _check_date(value: str) -> None:
        try:
            datetime.date.fromisoformat(value)
        except (TypeError, ValueError):
            raise ValidationError([f"Invalid date {value!r}"])

    def _insert(self, conn: sqlite3.Connection, table: str, record: dict) -> str:
        columns = self._columns(table)
        row = {k: v for k, v in record.items() if k in columns}
        row.setdefault("id", generate_id())
        if "created_at" in columns:
            row.setdefault("created_at", now_ms())
        names = list(row)
        conn.execute(
            f"INSERT INTO {table} ({', '.join(names)}) VALUES ({', '.join('?' for _ in names)});",
            tuple(self._encode(n, row[n]) for n in names),
        )
        return row["id"]

    def _select(
        self,
        conn: sqlite3.Connection,
        table: str,
        where: Optional[dict] = None,
        order_by: str | None = None,
    ) -> List[dict]:
        self._columns(table)
        where = where or {}
        sql = f"SELECT * FROM {table}"
        if where:
            sql += " WHERE " + " AND ".join(f"{field} = ?" for field in where)
        if order_by:
            sql += f" ORDER BY {order_by}"
        return self._rows(conn.execute(sql + ";", tuple(where.values())))

    def _select_one(
        self, conn: sqlite3.Connection, table: str, record_id: str
    ) -> Optional[dict]:
        rows = self._select(conn, table, {"id": record_id})
        return rows[0] if rows else None

    def _patch(
        self, conn: sqlite3.Connection, table: str, record_id: str, fields: dict
    ) -> None:
        if not fields:
            return
        assignments = ", ".join(f"{name} = ?" for name in fields)
        params = tuple(self._encode(n, v) for n, v in fields.items()) + (record_id,)
        conn.execute(f"UPDATE {table} SET {assignments} WHERE id = ?;", params)

    def _remove(self, conn: sqlite3.Connection, table: str, where: dict) -> int:
        clause = " AND ".join(f"{field} = ?" for field in where)
        cursor = conn.execute(
            f"DELETE FROM {table} WHERE {clause};", tuple(where.values())
        )
        return cursor.rowcount

    @staticmethod
    def _counter_id(table: str, where: dict) -> str:
        return ":".join([table, *(str(v) for v in where.values())])

    def _next_sequence(self, conn: sqlite3.Connection, table: str, where: dict) -> int:
        """Assign the next sequence among siblings; numbers are never handed out twice."""
        clause = " AND ".join(f"{field} = ?" for field in where)
        highest = conn.execute(
            f"SELECT COALESCE(MAX(sequence), 0) FROM {table} WHERE {clause};",
            tuple(where.values()),
        ).fetchone()[0]
        counter_id = self._counter_id(table, where)
        row = conn.execute(
            "SELECT last_sequence FROM sequence_counters WHERE id = ?;", (counter_id,)
        ).fetchone()
        sequence = max(int(highest), row[0] if row else 0) + 1
        conn.execute(
            """INSERT INTO sequence_counters (id, last_sequence) VALUES (?, ?)
               ON CONFLICT(id) DO UPDATE SET last_sequence = excluded.last_sequence;""",
            (counter_id, sequence),
        )
        logger.debug(f"Next sequence in {table} for {where}: {sequence}")
        return sequence

    def _forget_sequence(self, conn: sqlite3.Connection, table: str, where: dict) -> None:
        conn.execute(
            "DELETE FROM sequence_counters WHERE id = ?;", (self._counter_id(table, where),)
        )

    def _touch(self, conn: sqlite3.Connection, table: str, record_id: str) -> None:
        conn.execute(
            f"UPDATE {table} SET updated_at = ? WHERE id = ?;", (now_ms(), record_id)
        )

    def get_record(self, table: str, record_id: str) -> Optional[dict]:
        with self._connection() as conn:
            return self._select_one(conn, table, record_id)

    def add_record(self, table: str, record: dict) -> str:
        with self._connection() as conn:
            return self._insert(conn, table, record)

    def update_record(self, table: str, record_id: str, fields: dict) -> dict:
        self._check_fields(fields, [c for c in self._columns(table) if c != "id"])
        with self._connection() as conn:
            current = self._select_one(conn, table, record_id)
            if current is None:
                raise NotFoundError(f"{table} record {record_id} not found")
            self._patch(conn, table, record_id, fields)
            current.update(fields)
            return current

    def delete_record(self, table: str, record_id: str) -> None:
        self._columns(table)
        with self._connection() as conn:
            self._remove(conn, table, {"id": record_id})

    def query_records(self, table: str, field: str, value) -> List[dict]:
        if field not in self._columns(table):
            raise ValueError(f"unknown field {field} for {table}")
        with self._connection() as conn:
            return self._select(conn, table, {field: value})

    def dump_tables(self) -> Dict[str, List[dict]]:
        """Return every row of every table keyed by table name."""
        with self._connection() as conn:
            return {table: self._select(conn, table) for table in self._TABLE_DEFINITIONS}

    def replace_all(self, tables: Dict[str, List[dict]]) -> Dict[str, int]:
        """Clear every table and insert ``tables`` in one transaction."""
        counts: Dict[str, int] = {}
        with self._connection() as conn:
            for table in self._TABLE_DEFINITIONS:
                conn.execute(f"DELETE FROM {table};")
            for table, rows in tables.items():
                self._columns(table)
                for row in rows:
                    self._insert(conn, table, row)
                counts[table] = len(rows)
        return counts


class SessionKind(NamedTuple):
    name: str
    table: str
    child_table: str
    child_key: str
    parent_field: str
    leaf_table: Optional[str] = None
    child_filter: Optional[dict] = None


SESSION_KINDS: Dict[str, SessionKind] = {
    "sprint": SessionKind("sprint", "sprint_sessions", "sprint_sets", "sets", "session_id", "sprint_reps"),
    "lift": SessionKind("lift", "lift_sessions", "lift_sets", "sets", "session_id", "lift_reps"),
    "meet": SessionKind("meet", "meets", "races", "races", "meet_id"),
    "auxiliary": SessionKind(
        "auxiliary",
        "auxiliary_sessions",
        "auxiliary_entries",
        "entries",
        "session_id",
        child_filter={"session_type": "auxiliary"},
    ),
}


class SessionRepository(BaseRepository):
    """Lifecycle shared by every session kind; subclasses add the children."""

    kind: str = ""
    _MUTABLE_FIELDS: Tuple[str, ...] = ("date", "title", "location", "notes")

    def __init__(self, db_path: str = "accel.db", enforce_single_active: bool = False) -> None:
        super().__init__(db_path)
        self.enforce_single_active = enforce_single_active

    @property
    def spec(self) -> SessionKind:
        return SESSION_KINDS[self.kind]

    def _child_where(self, session_id: str) -> dict:
        return {self.spec.parent_field: session_id, **(self.spec.child_filter or {})}

    def _new_session(self, conn: sqlite3.Connection, fields: dict) -> str:
        date = fields.get("date") or today()
        self._check_date(date)
        if self.enforce_single_active:
            active = self._select(conn, self.spec.table, {"status": "active"})
            if active:
                raise PreconditionError(
                    f"a {self.kind} session is already active ({active[0]['id']})"
                )
        return self._insert(
            conn, self.spec.table, {**fields, "date": date, "status": "active"}
        )

    def create(
        self,
        date: str | None = None,
        title: str | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> str:
        with self._connection() as conn:
            session_id = self._new_session(
                conn, {"date": date, "title": title, "location": location, "notes": notes}
            )
        logger.info(f"Created {self.kind} session {session_id}")
        return session_id

    def _set_from_template(
        self, conn: sqlite3.Connection, session_id: str, template_set: dict
    ) -> str:
        raise ValidationError([f"{self.kind} sessions cannot be started from a template"])

    def start_from_template(self, template_data: dict, date: str | None = None) -> str:
        """Open a session with the template's sets and count the template as used."""
        template = template_data["template"]
        if template["type"] != self.kind:
            raise ValidationError([f"Template {template['id']} is not a {self.kind} template"])
        stamp = now_ms()
        with self._connection() as conn:
            session_id = self._new_session(
                conn, {"date": date or today(), "title": template["name"]}
            )
            for template_set in template_data["sets"]:
                self._set_from_template(conn, session_id, template_set)
            self._patch(
                conn,
                "session_templates",
                template["id"],
                {
                    "use_count": template["use_count"] + 1,
                    "last_used_at": stamp,
                    "updated_at": stamp,
                },
            )
        logger.info(f"Started {self.kind} session {session_id} from template {template['id']}")
        return session_id

    def _require(self, conn: sqlite3.Connection, session_id: str) -> dict:
        session = self._select_one(conn, self.spec.table, session_id)
        if session is None:
            raise NotFoundError(f"{self.kind} session not found")
        return session

    def _require_active(self, conn: sqlite3.Connection, session_id: str) -> dict:
        session = self._require(conn, session_id)
        if session["status"] != "active":
            raise PreconditionError("Session is not active")
        return session

    def get(self, session_id: str) -> Optional[dict]:
        return self.get_record(self.spec.table, session_id)

    def update(self, session_id: str, **fields) -> dict:
        self._check_fields(fields, self._MUTABLE_FIELDS)
        if "date" in fields:
            self._check_date(fields["date"])
        with self._connection() as conn:
            session = self._require(conn, session_id)
            patch = {**fields, "updated_at": now_ms()}
            self._patch(conn, self.spec.table, session_id, patch)
        session.update(patch)
        return session

    def _set_status(self, session_id: str, status: str) -> None:
        with self._connection() as conn:
            self._require(conn, session_id)
            self._patch(
                conn, self.spec.table, session_id, {"status": status, "updated_at": now_ms()}
            )
        logger.info(f"{self.kind} session {session_id} is now {status}")

    def complete(self, session_id: str) -> None:
        self._set_status(session_id, "completed")

    def reopen(self, session_id: str) -> None:
        self._set_status(session_id, "active")

    def _delete_children(self, conn: sqlite3.Connection, session_id: str) -> None:
        spec = self.spec
        if spec.leaf_table:
            for group in self._select(conn, spec.child_table, self._child_where(session_id)):
                self._remove(conn, spec.leaf_table, {"set_id": group["id"]})
                self._forget_sequence(conn, spec.leaf_table, {"set_id": group["id"]})
        self._remove(conn, spec.child_table, self._child_where(session_id))
        self._forget_sequence(conn, spec.child_table, self._child_where(session_id))

    def delete(self, session_id: str) -> None:
        with self._connection() as conn:
            if self._select_one(conn, self.spec.table, session_id) is None:
                return
            self._delete_children(conn, session_id)
            self._remove(conn, self.spec.table, {"id": session_id})
        logger.info(f"Deleted {self.kind} session {session_id}")

    def list_recent(self, limit: int = 10) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT * FROM {self.spec.table} ORDER BY date DESC, created_at DESC LIMIT ?;",
            (limit,),
        )

    def list_by_status(self, status: str) -> List[dict]:
        return self.fetch_dicts(
            f"SELECT * FROM {self.spec.table} WHERE status = ? ORDER BY date DESC, created_at DESC;",
            (status,),
        )

    def active(self) -> Optional[dict]:
        sessions = self.list_by_status("active")
        return sessions[0] if sessions else None

    def fetch_with_children(self, session_id: str) -> Optional[dict]:
        """Return the session, its groupings and an index of their leaves."""
        spec = self.spec
        with self._connection() as conn:
            session = self._select_one(conn, spec.table, session_id)
            if session is None:
                return None
            children = self._select(
                conn, spec.child_table, self._child_where(session_id), order_by="sequence"
            )
            detail = {"session": session, spec.child_key: children}
            if spec.leaf_table:
                leaves: List[dict] = []
                for child in children:
                    leaves.extend(self._select(conn, spec.leaf_table, {"set_id": child["id"]}))
                detail["reps_by_set"] = ChildIndex(leaves)
        return detail


class SprintRepository(SessionRepository):
    """Sprint sessions, their sets and timed reps."""

    kind = "sprint"
    _SET_FIELDS = ("name",)
    _REP_FIELDS = (
        "distance",
        "time",
        "timing_type",
        "rest_after",
        "is_fly",
        "fly_in_distance",
        "intensity",
        "work_type",
        "notes",
    )

    def create(
        self,
        date: str | None = None,
        title: str | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> str:
        with self._connection() as conn:
            session_id = self._new_session(
                conn, {"date": date, "title": title, "location": location, "notes": notes}
            )
            self._insert_set(conn, session_id, None)
        logger.info(f"Created sprint session {session_id}")
        return session_id

    def _insert_set(self, conn: sqlite3.Connection, session_id: str, name: str | None) -> str:
        sequence = self._next_sequence(conn, "sprint_sets", {"session_id": session_id})
        return self._insert(
            conn, "sprint_sets", {"session_id": session_id, "sequence": sequence, "name": name}
        )

    def _set_from_template(
        self, conn: sqlite3.Connection, session_id: str, template_set: dict
    ) -> str:
        return self._insert_set(conn, session_id, template_set["name"])

    def _require_set(self, conn: sqlite3.Connection, set_id: str) -> dict:
        sprint_set = self._select_one(conn, "sprint_sets", set_id)
        if sprint_set is None:
            raise NotFoundError("sprint set not found")
        return sprint_set

    def _delete_children(self, conn: sqlite3.Connection, session_id: str) -> None:
        super()._delete_children(conn, session_id)
        self._remove(
            conn, "auxiliary_entries", {"session_id": session_id, "session_type": "sprint"}
        )
        self._forget_sequence(
            conn, "auxiliary_entries", {"session_id": session_id, "session_type": "sprint"}
        )

    def fetch_with_children(self, session_id: str) -> Optional[dict]:
        detail = super().fetch_with_children(session_id)
        if detail is not None:
            detail["auxiliary_entries"] = self.fetch_dicts(
                "SELECT * FROM auxiliary_entries WHERE session_id = ? AND session_type = 'sprint' ORDER BY sequence;",
                (session_id,),
            )
        return detail

    def add_set(self, session_id: str, name: str | None = None) -> str:
        with self._connection() as conn:
            self._require(conn, session_id)
            set_id = self._insert_set(conn, session_id, name)
            self._touch(conn, "sprint_sessions", session_id)
        return set_id

    def update_set(self, set_id: str, **fields) -> None:
        self._check_fields(fields, self._SET_FIELDS)
        with self._connection() as conn:
            sprint_set = self._require_set(conn, set_id)
            self._patch(conn, "sprint_sets", set_id, {**fields, "updated_at": now_ms()})
            self._touch(conn, "sprint_sessions", sprint_set["session_id"])

    def delete_set(self, set_id: str) -> None:
        with self._connection() as conn:
            sprint_set = self._select_one(conn, "sprint_sets", set_id)
            if sprint_set is None:
                return
            self._remove(conn, "sprint_reps", {"set_id": set_id})
            self._forget_sequence(conn, "sprint_reps", {"set_id": set_id})
            self._remove(conn, "sprint_sets", {"id": set_id})
            self._touch(conn, "sprint_sessions", sprint_set["session_id"])

    def add_rep(
        self,
        set_id: str,
        distance: float,
        time: float,
        timing_type: str = "HAND",
        rest_after: int = 180,
        is_fly: bool = False,
        fly_in_distance: int | None = None,
        intensity: int | None = None,
        work_type: str = "sprint",
        notes: str | None = None,
    ) -> str:
        rep = {
            "set_id": set_id,
            "distance": distance,
            "time": time,
            "timing_type": timing_type,
            "rest_after": rest_after,
            "is_fly": bool(is_fly),
            "fly_in_distance": fly_in_distance if is_fly else None,
            "intensity": intensity,
            "work_type": work_type or "sprint",
            "notes": notes,
        }
        validate_sprint_rep(rep)
        with self._connection() as conn:
            sprint_set = self._require_set(conn, set_id)
            self._require_active(conn, sprint_set["session_id"])
            rep["sequence"] = self._next_sequence(conn, "sprint_reps", {"set_id": set_id})
            rep_id = self._insert(conn, "sprint_reps", rep)
            self._touch(conn, "sprint_sessions", sprint_set["session_id"])
        return rep_id

    def update_rep(self, rep_id: str, **fields) -> dict:
        self._check_fields(fields, self._REP_FIELDS)
        patch = dict(fields)
        if "is_fly" in patch and not patch["is_fly"]:
            patch["fly_in_distance"] = None
        with self._connection() as conn:
            rep = self._select_one(conn, "sprint_reps", rep_id)
            if rep is None:
                raise NotFoundError("sprint rep not found")
            rep.update(patch)
            validate_sprint_rep(rep)
            patch["updated_at"] = now_ms()
            self._patch(conn, "sprint_reps", rep_id, patch)
            sprint_set = self._require_set(conn, rep["set_id"])
            self._touch(conn, "sprint_sessions", sprint_set["session_id"])
        rep["updated_at"] = patch["updated_at"]
        return rep

    def delete_rep(self, rep_id: str) -> None:
        with self._connection() as conn:
            rep = self._select_one(conn, "sprint_reps", rep_id)
            if rep is None:
                return
            self._remove(conn, "sprint_reps", {"id": rep_id})
            sprint_set = self._select_one(conn, "sprint_sets", rep["set_id"])
            if sprint_set is not None:
                self._touch(conn, "sprint_sessions", sprint_set["session_id"])

    def reset_reps(self, session_id: str) -> int:
        """Delete every rep of the session, keeping its sets."""
        removed = 0
        with self._connection() as conn:
            self._require(conn, session_id)
            for sprint_set in self._select(conn, "sprint_sets", {"session_id": session_id}):
                removed += self._remove(conn, "sprint_reps", {"set_id": sprint_set["id"]})
            self._touch(conn, "sprint_sessions", session_id)
        logger.info(f"Reset {removed} reps in sprint session {session_id}")
        return removed

    def reps_for_session(self, session_id: str) -> List[dict]:
        return self.fetch_dicts(
            """SELECT r.* FROM sprint_reps r
               JOIN sprint_sets s ON r.set_id = s.id
               WHERE s.session_id = ?
               ORDER BY s.sequence, r.sequence;""",
            (session_id,),
        )

    def reps_with_dates(self, distance: float | None = None) -> List[dict]:
        """Return reps joined with their session id and date."""
        query = """SELECT r.*, s.session_id, ss.date FROM sprint_reps r
                   JOIN sprint_sets s ON r.set_id = s.id
                   JOIN sprint_sessions ss ON s.session_id = ss.id"""
        params: Tuple = ()
        if distance is not None:
            query += " WHERE r.distance = ?"
            params = (distance,)
        return self.fetch_dicts(
            query + " ORDER BY r.created_at, ss.date, s.sequence, r.sequence;", params
        )

    def best_rep(self, distance: float, session_id: str | None = None) -> Optional[dict]:
        """Return the fastest rep at ``distance``, optionally within one session."""
        if session_id is not None:
            reps = [r for r in self.reps_for_session(session_id) if r["distance"] == distance]
        else:
            reps = self.reps_with_dates(distance)
        best = None
        for rep in reps:
            if best is None or rep["time"] < best["time"]:
                best = rep
        return best

    def best_reps_by_distance(self) -> Dict[float, dict]:
        best: Dict[float, dict] = {}
        for rep in self.reps_with_dates():
            current = best.get(rep["distance"])
            if current is None or rep["time"] < current["time"]:
                best[rep["distance"]] = rep
        return dict(sorted(best.items()))

    def distances(self) -> List[float]:
        rows = self.fetch_all("SELECT DISTINCT distance FROM sprint_reps ORDER BY distance;")
        return [r[0] for r in rows]


class LiftRepository(SessionRepository):
    """Lift sessions, their sets (exercise and load) and velocity reps."""

    kind = "lift"
    _SET_FIELDS = ("exercise", "load", "notes")
    _REP_FIELDS = ("peak_velocity", "notes")

    def _require_set(self, conn: sqlite3.Connection, set_id: str) -> dict:
        lift_set = self._select_one(conn, "lift_sets", set_id)
        if lift_set is None:
            raise NotFoundError("lift set not found")
        return lift_set

    def _set_from_template(
        self, conn: sqlite3.Connection, session_id: str, template_set: dict
    ) -> str:
        record = {
            "session_id": session_id,
            "sequence": self._next_sequence(conn, "lift_sets", {"session_id": session_id}),
            "exercise": template_set["exercise"],
            "load": template_set["load"],
        }
        return self._insert(conn, "lift_sets", record)

    def add_set(
        self, session_id: str, exercise: str, load: float, notes: str | None = None
    ) -> str:
        record = {"session_id": session_id, "exercise": exercise, "load": load, "notes": notes}
        validate_lift_set(record)
        record["exercise"] = exercise.strip()
        with self._connection() as conn:
            self._require(conn, session_id)
            record["sequence"] = self._next_sequence(conn, "lift_sets", {"session_id": session_id})
            set_id = self._insert(conn, "lift_sets", record)
            self._touch(conn, "lift_sessions", session_id)
        return set_id

    def update_set(self, set_id: str, **fields) -> dict:
        self._check_fields(fields, self._SET_FIELDS)
        with self._connection() as conn:
            lift_set = self._require_set(conn, set_id)
            lift_set.update(fields)
            validate_lift_set(lift_set)
            patch = {**fields, "updated_at": now_ms()}
            self._patch(conn, "lift_sets", set_id, patch)
            self._touch(conn, "lift_sessions", lift_set["session_id"])
        lift_set["updated_at"] = patch["updated_at"]
        return lift_set

    def delete_set(self, set_id: str) -> None:
        with self._connection() as conn:
            lift_set = self._select_one(conn, "lift_sets", set_id)
            if lift_set is None:
                return
            self._remove(conn, "lift_reps", {"set_id": set_id})
            self._forget_sequence(conn, "lift_reps", {"set_id": set_id})
            self._remove(conn, "lift_sets", {"id": set_id})
            self._touch(conn, "lift_sessions", lift_set["session_id"])

    def add_rep(
        self, set_id: str, peak_velocity: float | None = None, notes: str | None = None
    ) -> str:
        rep = {"set_id": set_id, "peak_velocity": peak_velocity, "notes": notes}
        validate_lift_rep(rep)
        with self._connection() as conn:
            lift_set = self._require_set(conn, set_id)
            self._require_active(conn, lift_set["session_id"])
            rep["sequence"] = self._next_sequence(conn, "lift_reps", {"set_id": set_id})
            rep_id = self._insert(conn, "lift_reps", rep)
            self._touch(conn, "lift_sessions", lift_set["session_id"])
        return rep_id

    def update_rep(self, rep_id: str, **fields) -> dict:
        self._check_fields(fields, self._REP_FIELDS)
        with self._connection() as conn:
            rep = self._select_one(conn, "lift_reps", rep_id)
            if rep is None:
                raise NotFoundError("lift rep not found")
            rep.update(fields)
            validate_lift_rep(rep)
            patch = {**fields, "updated_at": now_ms()}
            self._patch(conn, "lift_reps", rep_id, patch)
            lift_set = self._require_set(conn, rep["set_id"])
            self._touch(conn, "lift_sessions", lift_set["session_id"])
        rep["updated_at"] = patch["updated_at"]
        return rep

    def delete_rep(self, rep_id: str) -> None:
        with self._connection() as conn:
            rep = self._select_one(conn, "lift_reps", rep_id)
            if rep is None:
                return
            self._remove(conn, "lift_reps", {"id": rep_id})
            lift_set = self._select_one(conn, "lift_sets", rep["set_id"])
            if lift_set is not None:
                self._touch(conn, "lift_sessions", lift_set["session_id"])

    def _sets(self, session_id: str | None = None) -> List[dict]:
        query = """SELECT ls.*, s.date FROM lift_sets ls
                   JOIN lift_sessions s ON ls.session_id = s.id"""
        params: Tuple = ()
        if session_id is not None:
            query += " WHERE ls.session_id = ?"
            params = (session_id,)
        return self.fetch_dicts(query + " ORDER BY ls.created_at, ls.sequence;", params)

    def sets_with_reps(self, exercise: str | None = None) -> List[dict]:
        """Return sets (with session date) each carrying its ``reps`` list."""
        sets = self._sets()
        if exercise is not None:
            sets = [s for s in sets if s["exercise"] == exercise]
        reps = ChildIndex(self.fetch_dicts("SELECT * FROM lift_reps;"))
        for lift_set in sets:
            lift_set["reps"] = reps.for_parent(lift_set["id"])
        return sets

    def last_load(self, exercise: str, session_id: str | None = None) -> Optional[float]:
        last = None
        for lift_set in self._sets(session_id):
            if lift_set["exercise"] == exercise:
                last = lift_set["load"]
        return last

    def recent_exercises(self, limit: int = 10, session_id: str | None = None) -> List[str]:
        seen: List[str] = []
        for lift_set in reversed(self._sets(session_id)):
            if lift_set["exercise"] not in seen:
                seen.append(lift_set["exercise"])
            if len(seen) >= limit:
                break
        return seen

    def exercises(self) -> List[str]:
        rows = self.fetch_all("SELECT DISTINCT exercise FROM lift_sets ORDER BY exercise;")
        return [r[0] for r in rows]


class MeetRepository(SessionRepository):
    """Competition meets and their races."""

    kind = "meet"
    _MUTABLE_FIELDS = ("date", "name", "location", "notes")
    _RACE_FIELDS = ("distance", "round", "time", "wind", "place", "notes")

    def create(
        self,
        name: str,
        venue: str,
        timing_type: str = "FAT",
        date: str | None = None,
        location: str | None = None,
        notes: str | None = None,
    ) -> str:
        meet = {
            "name": name,
            "venue": venue,
            "timing_type": timing_type,
            "date": date,
            "location": location,
            "notes": notes,
        }
        validate_meet(meet)
        with self._connection() as conn:
            meet_id = self._new_session(conn, meet)
        logger.info(f"Created meet {meet_id} ({venue}, {timing_type})")
        return meet_id

    def update(self, session_id: str, **fields) -> dict:
        fixed = [f for f in ("venue", "timing_type") if f in fields]
        if fixed:
            raise ValidationError([f"{f} is fixed for the meet" for f in fixed])
        return super().update(session_id, **fields)

    def add_race(
        self,
        meet_id: str,
        distance: float,
        round: str,
        time: float,
        wind: float | None = None,
        place: int | None = None,
        notes: str | None = None,
    ) -> str:
        race = {
            "meet_id": meet_id,
            "distance": distance,
            "round": round,
            "time": time,
            "wind": wind,
            "place": place,
            "notes": notes,
        }
        with self._connection() as conn:
            meet = self._require_active(conn, meet_id)
            validate_race(race, meet["venue"])
            race["timing_type"] = meet["timing_type"]
            race["sequence"] = self._next_sequence(conn, "races", {"meet_id": meet_id})
            race_id = self._insert(conn, "races", race)
            self._touch(conn, "meets", meet_id)
        return race_id

    def update_race(self, race_id: str, **fields) -> dict:
        self._check_fields(fields, self._RACE_FIELDS)
        with self._connection() as conn:
            race = self._select_one(conn, "races", race_id)
            if race is None:
                raise NotFoundError("race not found")
            meet = self._require(conn, race["meet_id"])
            race.update(fields)
            validate_race(race, meet["venue"])
            patch = {**fields, "updated_at": now_ms()}
            self._patch(conn, "races", race_id, patch)
            self._touch(conn, "meets", meet["id"])
        race["updated_at"] = patch["updated_at"]
        return race

    def delete_race(self, race_id: str) -> None:
        with self._connection() as conn:
            race = self._select_one(conn, "races", race_id)
            if race is None:
                return
            self._remove(conn, "races", {"id": race_id})
            self._touch(conn, "meets", race["meet_id"])

    def races_with_meets(self, distance: float | None = None) -> List[dict]:
        """Return races joined with the date, name and venue of their meet."""
        query = """SELECT r.*, m.date, m.name AS meet_name, m.venue FROM races r
                   JOIN meets m ON r.meet_id = m.id"""
        params: Tuple = ()
        if distance is not None:
            query += " WHERE r.distance = ?"
            params = (distance,)
        return self.fetch_dicts(query + " ORDER BY m.date, r.created_at;", params)

    def best_race(self, distance: float, meet_id: str | None = None) -> Optional[dict]:
        races = self.races_with_meets(distance)
        if meet_id is not None:
            races = [r for r in races if r["meet_id"] == meet_id]
        best = None
        for race in races:
            if best is None or race["time"] < best["time"]:
                best = race
        return best

    def distances(self) -> List[float]:
        rows = self.fetch_all("SELECT DISTINCT distance FROM races ORDER BY distance;")
        return [r[0] for r in rows]


class AuxiliaryRepository(SessionRepository):
    """Auxiliary sessions and the entries attached to auxiliary or sprint sessions."""

    kind = "auxiliary"
    _ENTRY_FIELDS = ("category", "name", "volume_metric", "volume_value", "intensity", "notes")
    _PARENT_TABLES = {"auxiliary": "auxiliary_sessions", "sprint": "sprint_sessions"}

    def _parent_table(self, session_type: str) -> str:
        if session_type not in self._PARENT_TABLES:
            raise ValidationError([f"Unknown session type {session_type}"])
        return self._PARENT_TABLES[session_type]

    def add_entry(
        self,
        session_id: str,
        category: str,
        name: str,
        volume_metric: str,
        volume_value: float,
        intensity: int | None = None,
        notes: str | None = None,
        session_type: str = "auxiliary",
    ) -> str:
        table = self._parent_table(session_type)
        entry = {
            "session_id": session_id,
            "session_type": session_type,
            "category": category,
            "name": name,
            "volume_metric": volume_metric,
            "volume_value": volume_value,
            "intensity": intensity,
            "notes": notes,
        }
        validate_auxiliary_entry(entry)
        with self._connection() as conn:
            session = self._select_one(conn, table, session_id)
            if session is None:
                raise NotFoundError(f"{session_type} session not found")
            if session["status"] != "active":
                raise PreconditionError("Session is not active")
            entry["sequence"] = self._next_sequence(
                conn, "auxiliary_entries", {"session_id": session_id, "session_type": session_type}
            )
            entry_id = self._insert(conn, "auxiliary_entries", entry)
            self._touch(conn, table, session_id)
        return entry_id

    def update_entry(self, entry_id: str, **fields) -> dict:
        self._check_fields(fields, self._ENTRY_FIELDS)
        with self._connection() as conn:
            entry = self._select_one(conn, "auxiliary_entries", entry_id)
            if entry is None:
                raise NotFoundError("auxiliary entry not found")
            entry.update(fields)
            validate_auxiliary_entry(entry)
            patch = {**fields, "updated_at": now_ms()}
            self._patch(conn, "auxiliary_entries", entry_id, patch)
            self._touch(conn, self._parent_table(entry["session_type"]), entry["session_id"])
        entry["updated_at"] = patch["updated_at"]
        return entry

    def delete_entry(self, entry_id: str) -> None:
        with self._connection() as conn:
            entry = self._select_one(conn, "auxiliary_entries", entry_id)
            if entry is None:
                return
            self._remove(conn, "auxiliary_entries", {"id": entry_id})
            self._touch(conn, self._parent_table(entry["session_type"]), entry["session_id"])

    def entries_for_session(self, session_id: str, session_type: str = "auxiliary") -> List[dict]:
        self._parent_table(session_type)
        return self.fetch_dicts(
            "SELECT * FROM auxiliary_entries WHERE session_id = ? AND session_type = ? ORDER BY sequence;",
            (session_id, session_type),
        )


_REPOSITORIES = {
    "sprint": SprintRepository,
    "lift": LiftRepository,
    "meet": MeetRepository,
    "auxiliary": AuxiliaryRepository,
}


def session_repository(kind: str, db_path: str = "accel.db", **kwargs) -> SessionRepository:
    """Return the repository handling sessions of ``kind``."""
    if kind not in _REPOSITORIES:
        raise ValueError(f"unknown session kind {kind}")
    return _REPOSITORIES[kind](db_path, **kwargs)


class TemplateRepository(BaseRepository):
    """Storage of session templates and their structural rows."""

    def get(self, template_id: str) -> Optional[dict]:
        return self.get_record("session_templates", template_id)

    def list_templates(self, template_type: str | None = None) -> List[dict]:
        """Templates by last use, most recent first; never used ones last."""
        query = "SELECT * FROM session_templates"
        params: Tuple = ()
        if template_type is not None:
            query += " WHERE type = ?"
            params = (template_type,)
        query += " ORDER BY last_used_at IS NULL, last_used_at DESC, created_at DESC;"
        return self.fetch_dicts(query, params)

    def save(
        self,
        template_type: str,
        name: str,
        description: str | None,
        sets: List[dict],
    ) -> str:
        """Insert a template with its sets in one transaction.

        Sets are numbered in list order. Sprint sets carry their rep rows
        under ``reps``; lift sets carry exercise, load and rep_count.
        """
        with self._connection() as conn:
            template_id = self._insert(
                conn,
                "session_templates",
                {"name": name, "type": template_type, "description": description, "use_count": 0},
            )
            for seq, template_set in enumerate(sets, start=1):
                if template_type == "sprint":
                    set_id = self._insert(
                        conn,
                        "sprint_template_sets",
                        {"template_id": template_id, "sequence": seq, "name": template_set.get("name")},
                    )
                    for rep_seq, rep in enumerate(template_set.get("reps", []), start=1):
                        self._insert(
                            conn, "sprint_template_reps", {**rep, "set_id": set_id, "sequence": rep_seq}
                        )
                else:
                    self._insert(
                        conn,
                        "lift_template_sets",
                        {**template_set, "template_id": template_id, "sequence": seq},
                    )
        return template_id

    def fetch_with_data(self, template_id: str) -> Optional[dict]:
        with self._connection() as conn:
            template = self._select_one(conn, "session_templates", template_id)
            if template is None:
                return None
            if template["type"] == "sprint":
                sets = self._select(
                    conn, "sprint_template_sets", {"template_id": template_id}, order_by="sequence"
                )
                reps: List[dict] = []
                for template_set in sets:
                    reps.extend(
                        self._select(conn, "sprint_template_reps", {"set_id": template_set["id"]})
                    )
                return {"template": template, "sets": sets, "reps_by_set": ChildIndex(reps)}
            sets = self._select(
                conn, "lift_template_sets", {"template_id": template_id}, order_by="sequence"
            )
            return {"template": template, "sets": sets}

    def update(
        self, template_id: str, name: str | None = None, description: str | None = None
    ) -> None:
        fields = {}
        if name is not None:
            if not name.strip():
                raise ValidationError(["Template name is required"])
            fields["name"] = name.strip()
        if description is not None:
            fields["description"] = description
        with self._connection() as conn:
            if self._select_one(conn, "session_templates", template_id) is None:
                raise NotFoundError("template not found")
            self._patch(conn, "session_templates", template_id, {**fields, "updated_at": now_ms()})

    def _delete_rows(self, conn: sqlite3.Connection, template: dict) -> None:
        if template["type"] == "sprint":
            for template_set in self._select(
                conn, "sprint_template_sets", {"template_id": template["id"]}
            ):
                self._remove(conn, "sprint_template_reps", {"set_id": template_set["id"]})
            self._remove(conn, "sprint_template_sets", {"template_id": template["id"]})
        else:
            self._remove(conn, "lift_template_sets", {"template_id": template["id"]})

    def delete(self, template_id: str) -> None:
        with self._connection() as conn:
            template = self._select_one(conn, "session_templates", template_id)
            if template is None:
                return
            self._delete_rows(conn, template)
            self._remove(conn, "session_templates", {"id": template_id})
        logger.info(f"Deleted template {template_id}")


class PreferencesRepository(BaseRepository):
    """Singleton user preferences, created with defaults on first read."""

    PREFERENCES_ID = "preferences"

    def get(self) -> dict:
        with self._connection() as conn:
            prefs = self._select_one(conn, "preferences", self.PREFERENCES_ID)
            if prefs is None:
                prefs = {"id": self.PREFERENCES_ID, **PreferencesSchema().model_dump(), "updated_at": None}
                self._insert(conn, "preferences", prefs)
        return prefs

    def update(self, **patch) -> dict:
        self._check_fields(patch, PreferencesSchema.model_fields)
        current = self.get()
        merged = {k: current[k] for k in PreferencesSchema.model_fields}
        merged.update(patch)
        try:
            validated = validate_preferences(merged).model_dump()
        except ValueError as e:
            raise ValidationError([str(e)]) from e
        validated["updated_at"] = now_ms()
        with self._connection() as conn:
            self._patch(conn, "preferences", self.PREFERENCES_ID, validated)
        return {"id": self.PREFERENCES_ID, **validated}


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        except sqlite3.Error as e:
            await conn.rollback()
            raise StorageError(str(e)) from e
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def fetch_dicts(self, query: str, params: Tuple = ()) -> List[dict]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            names = [d[0] for d in cursor.description]
            rows = await cursor.fetchall()
            return [self._decode(dict(zip(names, row))) for row in rows]


class AsyncSessionRepository(AsyncBaseRepository):
    """Async read access to the sessions of one kind."""

    def __init__(self, kind: str, db_path: str = "accel.db") -> None:
        if kind not in SESSION_KINDS:
            raise ValueError(f"unknown session kind {kind}")
        super().__init__(db_path)
        self.table = SESSION_KINDS[kind].table

    async def get(self, session_id: str) -> Optional[dict]:
        rows = await self.fetch_dicts(
            f"SELECT * FROM {self.table} WHERE id = ?;", (session_id,)
        )
        return rows[0] if rows else None

    async def list_recent(self, limit: int = 10) -> List[dict]:
        return await self.fetch_dicts(
            f"SELECT * FROM {self.table} ORDER BY date DESC, created_at DESC LIMIT ?;",
            (limit,),
        )

    async def list_by_status(self, status: str) -> List[dict]:
        return await self.fetch_dicts(
            f"SELECT * FROM {self.table} WHERE status = ? ORDER BY date DESC, created_at DESC;",
            (status,),
        )
