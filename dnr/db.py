from __future__ import annotations

import json
import os
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable

from .report import RunReport, utc_now
from .settings import settings


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (Docker creates one when a missing
    bind-mounted file path is mounted), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "dnr.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS runs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              project TEXT NOT NULL,
              environment TEXT NOT NULL,
              dry_run INTEGER NOT NULL,
              converged INTEGER NOT NULL,
              actions INTEGER NOT NULL,
              failures INTEGER NOT NULL,
              started_at TEXT NOT NULL,
              finished_at TEXT,
              report TEXT NOT NULL -- full JSON report
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              component TEXT,
              container TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            CREATE INDEX IF NOT EXISTS idx_runs_project ON runs(project);
            """
        )


def log_event(level: str, message: str, component: str | None = None, container: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, component, container, message) VALUES (?, ?, ?, ?, ?)",
            (utc_now(), level.upper(), component, container, message),
        )


@dataclass(frozen=True)
class RunRow:
    id: int
    project: str
    environment: str
    dry_run: bool
    converged: bool
    actions: int
    failures: int
    started_at: str
    finished_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


def _rows_to_runs(rows: Iterable[sqlite3.Row]) -> list[RunRow]:
    out: list[RunRow] = []
    for r in rows:
        d = dict(r)
        d.pop("report", None)
        d["dry_run"] = bool(d["dry_run"])
        d["converged"] = bool(d["converged"])
        out.append(RunRow(**d))
    return out


def insert_run(report: RunReport) -> int:
    with connect() as conn:
        cur = conn.execute(
            """
            INSERT INTO runs (project, environment, dry_run, converged, actions, failures, started_at, finished_at, report)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                report.project,
                report.environment,
                int(report.dry_run),
                int(report.converged),
                len(report.actions),
                len(report.failures),
                report.started_at,
                report.finished_at,
                json.dumps(report.to_dict()),
            ),
        )
        run_id = int(cur.lastrowid)
    report.id = run_id
    return run_id


def list_runs(project: str | None = None, limit: int = 20) -> list[RunRow]:
    with connect() as conn:
        if project:
            rows = conn.execute(
                "SELECT * FROM runs WHERE project=? ORDER BY id DESC LIMIT ?", (project, limit)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return _rows_to_runs(rows)


def get_run_report(run_id: int) -> dict[str, Any] | None:
    with connect() as conn:
        row = conn.execute("SELECT id, report FROM runs WHERE id=?", (run_id,)).fetchone()
    if not row:
        return None
    report = json.loads(row["report"])
    report["id"] = row["id"]
    return report


def latest_events(limit: int = 100, container: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        if container:
            rows = conn.execute(
                "SELECT * FROM events WHERE container=? ORDER BY id DESC LIMIT ?", (container, limit)
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
