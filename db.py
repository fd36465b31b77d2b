import sqlite3
import csv
import io
import json
import datetime
from contextlib import contextmanager
from typing import List, Tuple, Optional

from config import APP_VERSION, YamlConfig
from settings_schema import validate_settings
from tools import TimeTools


class Database:
    """Provides SQLite connection management and schema initialization."""

    CATEGORIES = ("strength", "cardio", "flexibility", "balance")
    DIFFICULTY_LEVELS = ("Beginner", "Intermediate", "Advanced")

    _TABLE_DEFINITIONS = {
        "exercises": (
            """CREATE TABLE exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    difficulty_level TEXT NOT NULL DEFAULT 'Beginner',
                    category TEXT NOT NULL DEFAULT 'strength',
                    equipment_needed TEXT,
                    primary_muscles TEXT,
                    video_url TEXT
                );""",
            [
                "id",
                "name",
                "description",
                "difficulty_level",
                "category",
                "equipment_needed",
                "primary_muscles",
                "video_url",
            ],
        ),
        "routines": (
            """CREATE TABLE routines (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    total_duration INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                );""",
            ["id", "name", "description", "total_duration", "created_at", "updated_at"],
        ),
        "routine_exercises": (
            """CREATE TABLE routine_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    routine_id INTEGER NOT NULL,
                    exercise_id INTEGER NOT NULL,
                    order_index INTEGER NOT NULL DEFAULT 0,
                    duration_seconds INTEGER,
                    repetitions INTEGER,
                    sets INTEGER,
                    rest_seconds INTEGER,
                    music_title TEXT,
                    notes TEXT,
                    FOREIGN KEY(routine_id) REFERENCES routines(id) ON DELETE CASCADE,
                    FOREIGN KEY(exercise_id) REFERENCES exercises(id)
                );""",
            [
                "id",
                "routine_id",
                "exercise_id",
                "order_index",
                "duration_seconds",
                "repetitions",
                "sets",
                "rest_seconds",
                "music_title",
                "notes",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "notifications": (
            """CREATE TABLE notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    message TEXT NOT NULL,
                    read INTEGER NOT NULL DEFAULT 0
                );""",
            ["id", "timestamp", "message", "read"],
        ),
    }

    def __init__(self, db_path: str = "studio.db") -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col == "category":
                        return "'strength'"
                    if col == "difficulty_level":
                        return "'Beginner'"
                    if col in ("order_index", "total_duration", "read"):
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "default_duration_seconds": "60",
            "add_time_seconds": "30",
            "tick_interval_seconds": "1.0",
            "upcoming_count": "3",
            "timer_mode": "server",
            "notifications_enabled": "1",
            "theme": "dark",
            "app_version": APP_VERSION,
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class ExerciseRepository(BaseRepository):
    """Repository for the exercise catalogue."""

    def add(
        self,
        name: str,
        category: str = "strength",
        difficulty_level: str = "Beginner",
        description: Optional[str] = None,
        equipment_needed: Optional[str] = None,
        primary_muscles: Optional[str] = None,
        video_url: Optional[str] = None,
    ) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        if category not in self.CATEGORIES:
            raise ValueError(f"invalid category: {category}")
        if difficulty_level not in self.DIFFICULTY_LEVELS:
            raise ValueError(f"invalid difficulty level: {difficulty_level}")
        return self.execute(
            "INSERT INTO exercises (name, description, difficulty_level, category, equipment_needed, primary_muscles, video_url) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                name.strip(),
                description,
                difficulty_level,
                category,
                equipment_needed,
                primary_muscles,
                video_url,
            ),
        )

    def fetch_all_exercises(
        self,
        category: Optional[str] = None,
        difficulty_level: Optional[str] = None,
    ) -> List[Tuple[int, str, str, str]]:
        query = "SELECT id, name, category, difficulty_level FROM exercises"
        params: list[str] = []
        where_clauses: list[str] = []
        if category:
            where_clauses.append("category = ?")
            params.append(category)
        if difficulty_level:
            where_clauses.append("difficulty_level = ?")
            params.append(difficulty_level)
        if where_clauses:
            query += " WHERE " + " AND ".join(where_clauses)
        query += " ORDER BY name;"
        return self.fetch_all(query, tuple(params))

    def fetch_detail(self, exercise_id: int) -> dict:
        rows = self.fetch_all(
            "SELECT id, name, description, difficulty_level, category, equipment_needed, primary_muscles, video_url FROM exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        r = rows[0]
        return {
            "id": r[0],
            "name": r[1],
            "description": r[2],
            "difficulty_level": r[3],
            "category": r[4],
            "equipment_needed": r[5],
            "primary_muscles": r[6],
            "video_url": r[7],
        }

    def delete(self, exercise_id: int) -> None:
        self.fetch_detail(exercise_id)
        used = self.fetch_all(
            "SELECT COUNT(*) FROM routine_exercises WHERE exercise_id = ?;",
            (exercise_id,),
        )
        if used and used[0][0]:
            raise ValueError("exercise is used by a routine")
        self.execute("DELETE FROM exercises WHERE id = ?;", (exercise_id,))

    def delete_all(self) -> None:
        self._delete_all("exercises")


class RoutineRepository(BaseRepository):
    """Repository for routine table operations."""

    def create(self, name: str, description: Optional[str] = None) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        now = datetime.datetime.now().isoformat()
        return self.execute(
            "INSERT INTO routines (name, description, total_duration, created_at, updated_at) VALUES (?, ?, 0, ?, ?);",
            (name.strip(), description, now, now),
        )

    def fetch_all_routines(self) -> List[Tuple[int, str, Optional[str], int]]:
        return self.fetch_all(
            "SELECT id, name, description, total_duration FROM routines ORDER BY name;"
        )

    def fetch_detail(self, routine_id: int) -> Tuple[int, str, Optional[str], int]:
        rows = self.fetch_all(
            "SELECT id, name, description, total_duration FROM routines WHERE id = ?;",
            (routine_id,),
        )
        if not rows:
            raise ValueError("routine not found")
        return rows[0]

    def set_name(self, routine_id: int, name: str) -> None:
        self.fetch_detail(routine_id)
        self.execute(
            "UPDATE routines SET name = ?, updated_at = ? WHERE id = ?;",
            (name, datetime.datetime.now().isoformat(), routine_id),
        )

    def set_description(self, routine_id: int, description: Optional[str]) -> None:
        self.fetch_detail(routine_id)
        self.execute(
            "UPDATE routines SET description = ?, updated_at = ? WHERE id = ?;",
            (description, datetime.datetime.now().isoformat(), routine_id),
        )

    def set_total_duration(self, routine_id: int, seconds: int) -> None:
        self.execute(
            "UPDATE routines SET total_duration = ?, updated_at = ? WHERE id = ?;",
            (seconds, datetime.datetime.now().isoformat(), routine_id),
        )

    def delete(self, routine_id: int) -> None:
        self.fetch_detail(routine_id)
        self.execute("DELETE FROM routines WHERE id = ?;", (routine_id,))

    def delete_all(self) -> None:
        self._delete_all("routines")


class RoutineExerciseRepository(BaseRepository):
    """Repository for the ordered exercises of a routine."""

    def __init__(
        self,
        db_path: str = "studio.db",
        routines: Optional[RoutineRepository] = None,
        exercises: Optional[ExerciseRepository] = None,
    ) -> None:
        super().__init__(db_path)
        self.routines = routines or RoutineRepository(db_path)
        self.exercises = exercises or ExerciseRepository(db_path)

    def add(
        self,
        routine_id: int,
        exercise_id: int,
        duration_seconds: Optional[int] = None,
        repetitions: Optional[int] = None,
        sets: Optional[int] = None,
        rest_seconds: Optional[int] = None,
        music_title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        self.routines.fetch_detail(routine_id)
        self.exercises.fetch_detail(exercise_id)
        rows = self.fetch_all(
            "SELECT COALESCE(MAX(order_index), -1) FROM routine_exercises WHERE routine_id = ?;",
            (routine_id,),
        )
        order_index = rows[0][0] + 1
        rid = self.execute(
            "INSERT INTO routine_exercises (routine_id, exercise_id, order_index, duration_seconds, repetitions, sets, rest_seconds, music_title, notes) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
            (
                routine_id,
                exercise_id,
                order_index,
                duration_seconds,
                repetitions,
                sets,
                rest_seconds,
                music_title,
                notes,
            ),
        )
        self.refresh_total_duration(routine_id)
        return rid

    def remove(self, routine_id: int, routine_exercise_id: int) -> None:
        rows = self.fetch_all(
            "SELECT routine_id FROM routine_exercises WHERE id = ? AND routine_id = ?;",
            (routine_exercise_id, routine_id),
        )
        if not rows:
            raise ValueError("routine exercise not found")
        self.execute(
            "DELETE FROM routine_exercises WHERE id = ?;", (routine_exercise_id,)
        )
        self.refresh_total_duration(routine_id)

    def reorder(self, routine_id: int, order: list[int]) -> None:
        self.routines.fetch_detail(routine_id)
        existing = [
            row[0]
            for row in self.fetch_all(
                "SELECT id FROM routine_exercises WHERE routine_id = ? ORDER BY order_index;",
                (routine_id,),
            )
        ]
        if set(order) != set(existing) or len(order) != len(existing):
            raise ValueError("invalid order")
        for pos, reid in enumerate(order):
            self.execute(
                "UPDATE routine_exercises SET order_index = ? WHERE id = ?;",
                (pos, reid),
            )

    def fetch_for_routine(self, routine_id: int) -> list[dict]:
        """Return the routine's exercises joined with catalogue data, in order."""
        rows = self.fetch_all(
            "SELECT re.id, re.exercise_id, e.name, e.description, e.category, "
            "re.order_index, re.duration_seconds, re.repetitions, re.sets, "
            "re.rest_seconds, re.music_title, re.notes "
            "FROM routine_exercises re JOIN exercises e ON e.id = re.exercise_id "
            "WHERE re.routine_id = ? ORDER BY re.order_index, re.id;",
            (routine_id,),
        )
        return [
            {
                "id": r[0],
                "exercise_id": r[1],
                "name": r[2],
                "description": r[3],
                "category": r[4],
                "order_index": r[5],
                "duration_seconds": r[6],
                "repetitions": r[7],
                "sets": r[8],
                "rest_seconds": r[9],
                "music_title": r[10],
                "notes": r[11],
            }
            for r in rows
        ]

    def refresh_total_duration(self, routine_id: int) -> int:
        rows = self.fetch_all(
            "SELECT duration_seconds FROM routine_exercises WHERE routine_id = ?;",
            (routine_id,),
        )
        total = TimeTools.total_duration(r[0] for r in rows)
        self.routines.set_total_duration(routine_id, total)
        return total

    def export_routine_csv(self, routine_id: int) -> str:
        self.routines.fetch_detail(routine_id)
        rows = self.fetch_for_routine(routine_id)
        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(
            [
                "Order",
                "Exercise",
                "Category",
                "Duration",
                "Reps",
                "Sets",
                "Rest",
                "Music",
                "Notes",
            ]
        )
        for row in rows:
            writer.writerow(
                [
                    row["order_index"] + 1,
                    row["name"],
                    row["category"],
                    TimeTools.effective_duration(row["duration_seconds"]),
                    row["repetitions"] if row["repetitions"] is not None else "",
                    row["sets"] if row["sets"] is not None else "",
                    row["rest_seconds"] if row["rest_seconds"] is not None else "",
                    row["music_title"] or "",
                    row["notes"] or "",
                ]
            )
        return output.getvalue()

    def export_routine_json(self, routine_id: int) -> str:
        """Return a routine and its exercises as a JSON string."""
        rid, name, description, total = self.routines.fetch_detail(routine_id)
        data = {
            "id": rid,
            "name": name,
            "description": description,
            "total_duration": total,
            "exercises": self.fetch_for_routine(routine_id),
        }
        return json.dumps(data)


class NotificationRepository(BaseRepository):
    """Repository for user notifications."""

    def add(self, message: str) -> int:
        return self.execute(
            "INSERT INTO notifications (timestamp, message, read) VALUES (?, ?, 0);",
            (datetime.datetime.now().isoformat(), message),
        )

    def fetch_all_notifications(self, unread_only: bool = False) -> list[dict[str, object]]:
        sql = "SELECT id, timestamp, message, read FROM notifications"
        if unread_only:
            sql += " WHERE read=0"
        sql += " ORDER BY id;"
        rows = self.fetch_all(sql)
        result: list[dict[str, object]] = []
        for r in rows:
            result.append(
                {
                    "id": r[0],
                    "timestamp": r[1],
                    "message": r[2],
                    "read": bool(r[3]),
                }
            )
        return result

    def mark_read(self, nid: int) -> None:
        self.execute("UPDATE notifications SET read=1 WHERE id=?;", (nid,))

    def unread_count(self) -> int:
        rows = self.fetch_all("SELECT COUNT(*) FROM notifications WHERE read=0;")
        return rows[0][0] if rows else 0

    def delete_all(self) -> None:
        self._delete_all("notifications")


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    BOOL_KEYS = {"notifications_enabled"}
    TEXT_KEYS = {"timer_mode", "theme", "app_version", "notification_webhook_url"}

    def __init__(
        self, db_path: str = "studio.db", yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, float | str | bool] = {}
        for k, v in rows:
            if k in self.BOOL_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
                continue
            if k in self.TEXT_KEYS:
                result[k] = v
                continue
            try:
                result[k] = float(v)
            except ValueError:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                if value is None:
                    continue
                val = str(value)
                if key in self.BOOL_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_float(self, key: str, default: float) -> float:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return float(rows[0][0]) if rows else default

    def set_float(self, key: str, value: float) -> None:
        self.set_text(key, str(value))

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_text(self, key: str, value: str) -> None:
        candidate = self._raw_all_settings()
        candidate[key] = value
        validate_settings(candidate)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()
