"""Direct access to a simulator's TCC permission database.

Each call opens the database, runs exactly one statement inside a
transaction and closes the connection again, whatever the outcome. The
simulator runtime (and other tooling) may be writing to the same file, so
SQLite's file lock is waited on for `busy_timeout_s` instead of failing
immediately.

The database file belongs to the simulator: it is never created here. A
missing file is reported as `database_not_found`; a file that cannot be
reached, written or parsed as SQLite is `database_open_failed`.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from simctl_harness.privacy.statements import Statement
from simctl_harness.privacy.types import ResultKind

logger = logging.getLogger(__name__)

TCC_DB_RELATIVE_PATH = Path("data") / "Library" / "TCC" / "TCC.db"


@dataclass(frozen=True)
class StoreResult:
    kind: ResultKind
    message: str
    db_path: str
    service: Optional[str] = None
    rows_affected: Optional[int] = None
    statement: Optional[Statement] = None

    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "db_path": self.db_path,
            "service": self.service,
            "rows_affected": self.rows_affected,
            "statement": self.statement.to_dict() if self.statement is not None else None,
        }


def tcc_db_path(devices_root: str | Path, udid: str) -> Path:
    return Path(devices_root).expanduser() / udid / TCC_DB_RELATIVE_PATH


def _connect(path: Path, *, busy_timeout_s: float) -> sqlite3.Connection:
    # mode=rw: a file removed after the existence check must not be recreated empty.
    conn = sqlite3.connect(f"{path.as_uri()}?mode=rw", uri=True, timeout=float(busy_timeout_s))
    try:
        # connect() is lazy; reading the header surfaces corrupt or non-SQLite files here.
        conn.execute("PRAGMA schema_version").fetchone()
    except sqlite3.Error:
        conn.close()
        raise
    return conn


def apply(
    db_path: str | Path,
    statement: Statement,
    *,
    service: Optional[str] = None,
    busy_timeout_s: float = 5.0,
) -> StoreResult:
    """Execute one mutating statement against the database at db_path."""

    def _result(kind: ResultKind, message: str, rows_affected: Optional[int] = None) -> StoreResult:
        return StoreResult(
            kind=kind,
            message=message,
            db_path=path_str,
            service=service,
            rows_affected=rows_affected,
            statement=statement,
        )

    path_str = str(db_path)
    try:
        path = Path(db_path).expanduser().resolve()
        path_str = str(path)
        st = path.stat()
    except (FileNotFoundError, NotADirectoryError):
        st = None
    except OSError as e:
        # Anything but "absent" (EACCES on a parent directory, ELOOP, ...).
        logger.warning("cannot access TCC database %s: %s", path_str, e)
        return _result(ResultKind.DATABASE_OPEN_FAILED, f"failed to open TCC.db: {e}")

    if st is None or not stat.S_ISREG(st.st_mode):
        logger.info("TCC database not found at %s", path_str)
        return _result(ResultKind.DATABASE_NOT_FOUND, f"TCC.db not found at {path_str}")

    if not os.access(path, os.W_OK):
        logger.warning("TCC database %s is not writable", path_str)
        return _result(
            ResultKind.DATABASE_OPEN_FAILED, f"failed to open TCC.db: {path_str} is not writable"
        )

    try:
        conn = _connect(path, busy_timeout_s=busy_timeout_s)
    except sqlite3.Error as e:
        logger.warning("failed to open TCC database %s: %s", path_str, e)
        return _result(ResultKind.DATABASE_OPEN_FAILED, f"failed to open TCC.db. SQLite error: {e}")

    try:
        logger.debug("opened TCC database %s", path_str)
        with conn:
            cur = conn.execute(statement.sql, statement.params)
            rows_affected = cur.rowcount
    except sqlite3.Error as e:
        logger.warning("TCC statement failed on %s (service=%s): %s", path_str, service, e)
        return _result(ResultKind.STATEMENT_FAILED, f"SQLite error: {e}")
    finally:
        conn.close()

    return _result(ResultKind.SUCCESS, "Success", rows_affected=rows_affected)
