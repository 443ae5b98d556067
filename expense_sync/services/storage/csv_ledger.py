"""
CSV Ledger Storage Implementation

DESIGN DECISION: The ledger is a single CSV file per environment because:
1. It can be opened, diffed and backed up with ordinary tools
2. No database server to run for a one-person ledger
3. The whole file is small enough to rewrite on every change

Every mutation rewrites the whole file:

    backup -> stage -> apply -> materialize -> commit

1. Backup: copy the ledger to <ledger><backup_suffix>. If this fails
   nothing has been touched.
2. Stage: load the ledger into a fresh in-memory SQLite temp table with a
   unique name.
3. Apply: run the mutation (parameterized upserts or raw statements).
4. Materialize: write the table, sorted, to a temp file next to the ledger.
5. Commit: os.replace() the temp file over the ledger.

Any failure in 2-5 copies the backup back over the ledger before the error
is raised, so readers only ever see the old file or the new one. The backup
file is left in place afterwards.

TRADEOFFS:
- Single writer. Rewrites of the same file are not isolated from each
  other unless serialize_writes is on (process-local lock only).
- Amounts go through SQLite NUMERIC affinity while staged, so they keep
  15 significant digits, not arbitrary precision.
"""

import csv
import os
import shutil
import sqlite3
import tempfile
import threading
from collections.abc import Callable, Iterable, Sequence
from contextlib import closing, nullcontext
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional, TextIO
from uuid import uuid4

import structlog

from expense_sync.config import get_settings
from expense_sync.models.expense import ColumnInfo, Expense, format_timestamp
from expense_sync.services.storage.interface import (
    LEDGER_TABLE_PLACEHOLDER,
    BackupError,
    LedgerStorageInterface,
    QueryError,
    StoreReadError,
    StoreWriteError,
)


# Column name and logical type, in file order
LEDGER_SCHEMA = [
    ("id", "VARCHAR"),
    ("date", "DATE"),
    ("amount", "DECIMAL"),
    ("category", "VARCHAR"),
    ("label", "VARCHAR"),
    ("periodicity", "VARCHAR"),
    ("checked", "BOOLEAN"),
    ("deleted", "BOOLEAN"),
    ("updatedAt", "TIMESTAMP"),
]

LEDGER_COLUMNS = [name for name, _ in LEDGER_SCHEMA]

# Row order of a materialized ledger; id last so every tie breaks the same way
SORT_COLUMNS = ["date", "category", "label", "amount", "deleted", "id"]

_write_locks: dict[Path, threading.Lock] = {}
_write_locks_guard = threading.Lock()

logger = structlog.get_logger(__name__)


def _quote(name: str) -> str:
    return f'"{name}"'


def _write_lock_for(path: Path) -> threading.Lock:
    """One lock per resolved ledger path, shared by every store in the process."""
    with _write_locks_guard:
        return _write_locks.setdefault(path.resolve(), threading.Lock())


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Not a boolean: {value!r}")


def _parse_amount(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    raise ValueError(f"Not an amount: {value!r}")


def _format_amount(amount: Decimal) -> str:
    return format(amount.normalize(), "f")


class CsvLedgerStorage(LedgerStorageInterface):
    """
    Flat-file implementation of the ledger.

    One instance per ledger path. Production and development ledgers are
    separate instances and never read or write each other's file.
    """

    def __init__(
        self,
        path: Path | str,
        backup_suffix: Optional[str] = None,
        temp_suffix: Optional[str] = None,
        serialize_writes: Optional[bool] = None,
    ):
        settings = get_settings().ledger
        self._path = Path(path)
        self._backup_path = Path(f"{self._path}{backup_suffix or settings.backup_suffix}")
        self._temp_suffix = temp_suffix or settings.temp_suffix
        self._serialize_writes = (
            settings.serialize_writes if serialize_writes is None else serialize_writes
        )
        self._log = logger.bind(ledger=str(self._path))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def backup_path(self) -> Path:
        return self._backup_path

    # -------------------------------------------------------------------------
    # Row conversions
    # -------------------------------------------------------------------------

    def _expense_to_row(self, expense: Expense) -> list[str]:
        """Convert an Expense to a CSV row."""
        return [
            expense.id,
            expense.date.isoformat(),
            _format_amount(expense.amount),
            expense.category,
            expense.label,
            expense.periodicity.value,
            "true" if expense.checked else "false",
            "true" if expense.deleted else "false",
            format_timestamp(expense.updated_at),
        ]

    def _row_to_expense(self, row: dict) -> Expense:
        """Convert a CSV row or a staged SQLite row to an Expense."""
        return Expense(
            id=row["id"],
            date=row["date"],
            amount=_parse_amount(row["amount"]),
            category=row["category"],
            label=row["label"],
            periodicity=row["periodicity"],
            checked=_parse_bool(row["checked"]),
            deleted=_parse_bool(row["deleted"]),
            updated_at=row["updatedAt"],
        )

    def _expense_to_params(self, expense: Expense) -> tuple:
        """Convert an Expense to SQLite parameters, in LEDGER_COLUMNS order."""
        return (
            expense.id,
            expense.date.isoformat(),
            _format_amount(expense.amount),
            expense.category,
            expense.label,
            expense.periodicity.value,
            int(expense.checked),
            int(expense.deleted),
            format_timestamp(expense.updated_at),
        )

    # -------------------------------------------------------------------------
    # File access
    # -------------------------------------------------------------------------

    def _read_ledger(self) -> list[Expense]:
        """Parse the whole ledger file. Any malformed row fails the read."""
        try:
            with self._path.open("r", newline="", encoding="utf-8-sig") as f:
                reader = csv.DictReader(f)
                if reader.fieldnames != LEDGER_COLUMNS:
                    raise StoreReadError(
                        f"Unexpected ledger header in {self._path}: {reader.fieldnames}"
                    )

                expenses = []
                for row in reader:
                    if None in row or None in row.values():
                        raise StoreReadError(
                            f"Wrong column count on line {reader.line_num} of {self._path}"
                        )
                    try:
                        expenses.append(self._row_to_expense(row))
                    except (ValueError, ArithmeticError) as e:
                        raise StoreReadError(
                            f"Malformed ledger row on line {reader.line_num} of {self._path}: {e}"
                        ) from e
                return expenses
        except FileNotFoundError as e:
            raise StoreReadError(f"Ledger file not found: {self._path}") from e
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            raise StoreReadError(f"Failed to read ledger {self._path}: {e}") from e

    def _write_csv(self, f: TextIO, expenses: Iterable[Expense]) -> None:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(LEDGER_COLUMNS)
        for expense in expenses:
            writer.writerow(self._expense_to_row(expense))

    def init_ledger(self) -> bool:
        """
        Create a header-only ledger if none exists.

        Returns:
            True if a new file was written
        """
        if self._path.exists():
            return False
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with self._path.open("x", newline="", encoding="utf-8") as f:
                self._write_csv(f, [])
        except FileExistsError:
            return False
        self._log.info("ledger_created")
        return True

    # -------------------------------------------------------------------------
    # Staging (in-memory SQLite)
    # -------------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(":memory:")
        con.row_factory = sqlite3.Row
        return con

    def _insert_sql(self, table: str, replace: bool) -> str:
        verb = "INSERT OR REPLACE" if replace else "INSERT"
        columns = ", ".join(_quote(name) for name in LEDGER_COLUMNS)
        placeholders = ", ".join("?" for _ in LEDGER_COLUMNS)
        return f"{verb} INTO {table} ({columns}) VALUES ({placeholders})"

    def _stage(self, con: sqlite3.Connection, expenses: Sequence[Expense]) -> str:
        """
        Load expenses into a new temp table.

        Returns:
            The table name, unique per call
        """
        table = f"expenses_{uuid4().hex}"
        columns = ", ".join(
            f"{_quote(name)} {sql_type}" + (" PRIMARY KEY" if name == "id" else "")
            for name, sql_type in LEDGER_SCHEMA
        )
        try:
            con.execute(f"CREATE TEMP TABLE {table} ({columns})")
            con.executemany(
                self._insert_sql(table, replace=False),
                [self._expense_to_params(e) for e in expenses],
            )
        except sqlite3.Error as e:
            raise StoreReadError(f"Failed to stage ledger {self._path}: {e}") from e
        return table

    def _materialize(self, con: sqlite3.Connection, table: str) -> Path:
        """
        Write the staged table, sorted, to a temp file beside the ledger.

        Every row is re-validated, so a raw statement that leaves the table
        in a shape the ledger cannot hold fails here instead of on the
        next read.

        Returns:
            Path of the temp file
        """
        order_by = ", ".join(_quote(name) for name in SORT_COLUMNS)
        rows = con.execute(f"SELECT * FROM {table} ORDER BY {order_by}").fetchall()
        expenses = [self._row_to_expense(dict(row)) for row in rows]

        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f"{self._path.name}.",
            suffix=self._temp_suffix,
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
                self._write_csv(f, expenses)
                f.flush()
                os.fsync(f.fileno())
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return tmp_path

    # -------------------------------------------------------------------------
    # Rewrite protocol
    # -------------------------------------------------------------------------

    def _backup(self) -> None:
        try:
            shutil.copyfile(self._path, self._backup_path)
        except OSError as e:
            raise BackupError(f"Failed to back up ledger {self._path}: {e}") from e
        self._log.debug("ledger_backup_created", backup=str(self._backup_path))

    def _restore(self) -> None:
        try:
            shutil.copyfile(self._backup_path, self._path)
        except OSError as e:
            self._log.critical(
                "ledger_restore_failed",
                backup=str(self._backup_path),
                error=str(e),
            )
            raise StoreWriteError(
                f"Failed to restore ledger {self._path} from {self._backup_path}: {e}"
            ) from e
        self._log.warning("ledger_restored", backup=str(self._backup_path))

    def _rewrite(self, apply: Callable[[sqlite3.Connection, str], None]) -> None:
        """
        Run one backup/stage/apply/materialize/commit cycle.

        Args:
            apply: Called with the connection and the staged table name;
                   performs the mutation
        """
        lock = _write_lock_for(self._path) if self._serialize_writes else nullcontext()
        with lock:
            self._backup()

            tmp_path = None
            try:
                expenses = self._read_ledger()
                with closing(self._connect()) as con:
                    table = self._stage(con, expenses)
                    apply(con, table)
                    tmp_path = self._materialize(con, table)
                shutil.copymode(self._path, tmp_path)
                os.replace(tmp_path, self._path)
            except Exception as e:
                self._log.error("ledger_rewrite_failed", error=str(e))
                if tmp_path is not None:
                    tmp_path.unlink(missing_ok=True)
                self._restore()
                raise StoreWriteError(
                    f"Ledger rewrite failed, restored from backup: {e}"
                ) from e

        self._log.info("ledger_committed")

    # -------------------------------------------------------------------------
    # LedgerStorageInterface
    # -------------------------------------------------------------------------

    async def load_all(self) -> list[Expense]:
        """Load every record in the ledger."""
        return self._read_ledger()

    async def upsert_batch(self, expenses: Sequence[Expense]) -> None:
        """Insert or replace the given records by id, atomically."""
        params = [self._expense_to_params(e) for e in expenses]

        def apply(con: sqlite3.Connection, table: str) -> None:
            con.executemany(self._insert_sql(table, replace=True), params)

        self._rewrite(apply)

    async def mutate(self, statements: Sequence[str]) -> None:
        """Apply raw statements (referring to %expenses%), atomically."""

        def apply(con: sqlite3.Connection, table: str) -> None:
            for statement in statements:
                con.execute(statement.replace(LEDGER_TABLE_PLACEHOLDER, table))

        self._rewrite(apply)

    async def query(self, sql: str) -> list[dict[str, Any]]:
        """Run sql against a throwaway staged copy of the ledger."""
        expenses = self._read_ledger()
        with closing(self._connect()) as con:
            table = self._stage(con, expenses)
            try:
                cursor = con.execute(sql.replace(LEDGER_TABLE_PLACEHOLDER, table))
                return [dict(row) for row in cursor.fetchall()]
            except sqlite3.Error as e:
                raise QueryError(f"Query failed: {e}") from e

    async def describe_schema(self) -> list[ColumnInfo]:
        """Describe the staged ledger table."""
        with closing(self._connect()) as con:
            table = self._stage(con, [])
            rows = con.execute(f"PRAGMA table_info({table})").fetchall()
        return [
            ColumnInfo(
                column_name=row["name"],
                column_type=row["type"],
                nullable=not row["notnull"],
                primary_key=bool(row["pk"]),
            )
            for row in rows
        ]
