from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable

from .errors import DatabaseUnavailableError
from .models import Project, SaveResult, TrackedDocument

logger = logging.getLogger(__name__)


class DocFocusDatabase:
    def __init__(self, db_file: Path):
        self._db_file = Path(db_file)
        self._lock = threading.Lock()
        try:
            self._db_file.parent.mkdir(parents=True, exist_ok=True)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise DatabaseUnavailableError(f"Cannot open database at {self._db_file}: {exc}") from exc

    @property
    def path(self) -> Path:
        return self._db_file

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_file, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _connection(self):
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._lock, self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE
                );

                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL UNIQUE,
                    accrued_minutes REAL NOT NULL DEFAULT 0,
                    project_id INTEGER REFERENCES projects(id) ON DELETE CASCADE,
                    notes TEXT NOT NULL DEFAULT ''
                );

                CREATE INDEX IF NOT EXISTS idx_documents_project_id
                ON documents(project_id);

                CREATE TABLE IF NOT EXISTS app_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def upsert_documents(self, records: Iterable[TrackedDocument]) -> SaveResult:
        saved = 0
        failed: list[str] = []
        with self._lock, self._connection() as conn:
            for record in records:
                try:
                    project_id = self._resolve_project_id(conn, record.project)
                    conn.execute(
                        """
                        INSERT INTO documents(name, accrued_minutes, project_id, notes)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(name) DO UPDATE SET
                            accrued_minutes = excluded.accrued_minutes,
                            project_id = excluded.project_id,
                            notes = excluded.notes
                        """,
                        (
                            record.name,
                            float(record.accrued_minutes),
                            project_id,
                            record.notes or "",
                        ),
                    )
                    conn.commit()
                    saved += 1
                except (sqlite3.Error, TypeError, ValueError) as exc:
                    conn.rollback()
                    logger.error("Failed to save document %r: %s", record.name, exc)
                    failed.append(record.name)
        return SaveResult(saved=saved, failed=tuple(failed))

    def load_documents(self) -> list[TrackedDocument]:
        with self._lock, self._connection() as conn:
            rows = conn.execute(
                """
                SELECT d.name, d.accrued_minutes, d.notes, COALESCE(p.name, '') AS project
                FROM documents AS d
                LEFT JOIN projects AS p ON p.id = d.project_id
                ORDER BY d.id ASC
                """
            ).fetchall()
        return [
            TrackedDocument(
                name=str(row["name"]),
                accrued_minutes=float(row["accrued_minutes"]),
                project=str(row["project"]),
                notes=str(row["notes"]),
            )
            for row in rows
        ]

    def list_projects(self) -> list[Project]:
        with self._lock, self._connection() as conn:
            rows = conn.execute("SELECT id, name FROM projects ORDER BY id ASC").fetchall()
        return [Project(id=int(row["id"]), name=str(row["name"])) for row in rows]

    def create_project(self, name: str) -> int:
        with self._lock, self._connection() as conn:
            cursor = conn.execute("INSERT INTO projects(name) VALUES (?)", (name,))
            conn.commit()
            return int(cursor.lastrowid)

    def ensure_project(self, name: str) -> int:
        with self._lock, self._connection() as conn:
            existing = self._find_project_id(conn, name)
            if existing is not None:
                logger.info("Project %r already exists", name)
                return existing
            cursor = conn.execute("INSERT INTO projects(name) VALUES (?)", (name,))
            conn.commit()
            logger.info("Created project %r (id=%s)", name, cursor.lastrowid)
            return int(cursor.lastrowid)

    def clear_all(self) -> None:
        with self._lock, self._connection() as conn:
            conn.execute("DELETE FROM documents")
            conn.execute("DELETE FROM projects")
            conn.commit()
        logger.info("Cleared all documents and projects")

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT value FROM app_settings WHERE key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return default
        return str(row["value"])

    def get_setting_float(self, key: str, default: float) -> float:
        value = self.get_setting(key)
        if value is None:
            return default
        try:
            parsed = float(value)
        except ValueError:
            return default
        if parsed <= 0:
            return default
        return parsed

    def set_setting(self, key: str, value: str) -> None:
        with self._lock, self._connection() as conn:
            conn.execute(
                """
                INSERT INTO app_settings(key, value)
                VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            conn.commit()

    @staticmethod
    def _find_project_id(conn: sqlite3.Connection, name: str) -> int | None:
        row = conn.execute("SELECT id FROM projects WHERE name = ?", (name,)).fetchone()
        if row is None:
            return None
        return int(row["id"])

    @classmethod
    def _resolve_project_id(cls, conn: sqlite3.Connection, name: str) -> int | None:
        # Blank project means unassigned; no row is created for it.
        if not (name or "").strip():
            return None
        existing = cls._find_project_id(conn, name)
        if existing is not None:
            return existing
        cursor = conn.execute("INSERT INTO projects(name) VALUES (?)", (name,))
        return int(cursor.lastrowid)
