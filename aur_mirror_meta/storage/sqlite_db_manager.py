"""
SQLite-backed package index.

Every public call opens its own connection, so the sync pipeline and the RPC
server can share one store object across threads. The database runs in WAL
mode: readers see either the rows before or after a committed branch
transaction, never a mix.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from aur_mirror_meta.core.errors import StorageError
from aur_mirror_meta.domain.models import PackageDetails, PackageInfo, SearchType
from aur_mirror_meta.storage.db_manager import IndexStore, IndexTransaction

logger = logging.getLogger(__name__)

# (table, value column, PackageDetails field)
ATTRIBUTE_TABLES: List[Tuple[str, str, str]] = [
    ("pkg_depends", "depend", "depends"),
    ("pkg_make_depends", "make_depend", "make_depends"),
    ("pkg_opt_depends", "opt_depend", "opt_depends"),
    ("pkg_check_depends", "check_depend", "check_depends"),
    ("pkg_provides", "provide", "provides"),
    ("pkg_conflicts", "conflict", "conflicts"),
    ("pkg_replaces", "replace", "replaces"),
    ("pkg_groups", "group_name", "groups"),
]

_SCHEMA = [
    """CREATE TABLE IF NOT EXISTS branch_commits (
        branch TEXT NOT NULL PRIMARY KEY,
        commit_id TEXT NOT NULL
    )""",
    """CREATE TABLE IF NOT EXISTS pkg_info (
        branch TEXT NOT NULL,
        pkg_name TEXT NOT NULL,
        pkg_desc TEXT,
        version TEXT NOT NULL,
        url TEXT,
        commit_id TEXT NOT NULL,
        PRIMARY KEY (branch, pkg_name)
    )""",
] + [
    f"""CREATE TABLE IF NOT EXISTS {table} (
        branch TEXT NOT NULL,
        pkg_name TEXT NOT NULL,
        {column} TEXT NOT NULL,
        PRIMARY KEY (branch, pkg_name, {column})
    )"""
    for table, column, _ in ATTRIBUTE_TABLES
]

_INDEXES = (
    [
        "CREATE INDEX IF NOT EXISTS idx_pkg_info_name ON pkg_info(pkg_name)",
        "CREATE INDEX IF NOT EXISTS idx_pkg_info_branch ON pkg_info(branch)",
    ]
    + [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_branch ON {table}(branch)"
        for table, _, _ in ATTRIBUTE_TABLES
    ]
    # Reverse dependency lookups
    + [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})"
        for table, column, _ in ATTRIBUTE_TABLES[:4]
    ]
)

_SEARCH_JOINS = {
    SearchType.DEPENDS: ("pkg_depends", "depend"),
    SearchType.MAKE_DEPENDS: ("pkg_make_depends", "make_depend"),
    SearchType.OPT_DEPENDS: ("pkg_opt_depends", "opt_depend"),
    SearchType.CHECK_DEPENDS: ("pkg_check_depends", "check_depend"),
}


def _row_to_info(row: sqlite3.Row) -> PackageInfo:
    return PackageInfo(
        branch=row["branch"],
        pkg_name=row["pkg_name"],
        pkg_desc=row["pkg_desc"],
        version=row["version"],
        url=row["url"],
        commit_id=row["commit_id"],
    )


class SqliteIndexTransaction(IndexTransaction):
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.committed = False

    def clear(self, branch: str) -> None:
        try:
            self.conn.execute("DELETE FROM pkg_info WHERE branch = ?", (branch,))
            for table, _, _ in ATTRIBUTE_TABLES:
                self.conn.execute(f"DELETE FROM {table} WHERE branch = ?", (branch,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to clear branch {branch}: {e}") from e

    def set_branch_commit(self, branch: str, commit_id: str) -> None:
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO branch_commits (branch, commit_id) VALUES (?, ?)",
                (branch, commit_id),
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to update commit of branch {branch}: {e}") from e

    def upsert_records(self, records: Iterable[PackageDetails]) -> None:
        try:
            for pkg in records:
                info = pkg.info
                self.conn.execute(
                    """
                    INSERT OR REPLACE INTO pkg_info
                    (branch, pkg_name, pkg_desc, version, url, commit_id)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (info.branch, info.pkg_name, info.pkg_desc, info.version, info.url, info.commit_id),
                )
                for table, column, field in ATTRIBUTE_TABLES:
                    values = getattr(pkg, field)
                    if not values:
                        continue
                    self.conn.executemany(
                        f"INSERT OR IGNORE INTO {table} (branch, pkg_name, {column}) VALUES (?, ?, ?)",
                        [(info.branch, info.pkg_name, value) for value in values],
                    )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write package records: {e}") from e

    def commit(self) -> None:
        try:
            self.conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StorageError(f"Failed to commit index transaction: {e}") from e
        self.committed = True


class SqliteIndexStore(IndexStore):
    def __init__(self, db_path: Path, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; write transactions are opened explicitly.
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        logger.debug(f"Initializing index database: {self.db_path}")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with closing(self._connect()) as conn:
                conn.execute("PRAGMA journal_mode=WAL")
                for statement in _SCHEMA + _INDEXES:
                    conn.execute(statement)
        except sqlite3.Error as e:
            raise StorageError(f"Failed to initialize index database {self.db_path}: {e}") from e

    def existing_commits(self) -> Dict[str, str]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute("SELECT branch, commit_id FROM branch_commits").fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read branch commits: {e}") from e
        return {row["branch"]: row["commit_id"] for row in rows}

    @contextmanager
    def transaction(self) -> Iterator[SqliteIndexTransaction]:
        conn = self._connect()
        tx = SqliteIndexTransaction(conn)
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageError(f"Failed to begin index transaction: {e}") from e
            yield tx
        finally:
            if not tx.committed and conn.in_transaction:
                logger.debug("Rolling back uncommitted index transaction")
                conn.execute("ROLLBACK")
            conn.close()

    # -----------------------------------------------------------------------
    # Read path
    # -----------------------------------------------------------------------

    def search_packages(self, search_type: SearchType, keyword: str) -> List[PackageInfo]:
        if search_type == SearchType.NAME:
            query = "SELECT DISTINCT p.* FROM pkg_info p WHERE p.pkg_name LIKE ?"
            params: Tuple[str, ...] = (f"%{keyword}%",)
        elif search_type == SearchType.NAME_DESC:
            query = (
                "SELECT DISTINCT p.* FROM pkg_info p "
                "WHERE (p.pkg_name LIKE ? OR p.pkg_desc LIKE ?)"
            )
            params = (f"%{keyword}%", f"%{keyword}%")
        else:
            table, column = _SEARCH_JOINS[search_type]
            query = (
                f"SELECT DISTINCT p.* FROM pkg_info p "
                f"JOIN {table} d ON p.pkg_name = d.pkg_name AND p.branch = d.branch "
                f"WHERE d.{column} = ?"
            )
            params = (keyword,)

        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(query + " ORDER BY p.pkg_name, p.branch", params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Package search failed: {e}") from e
        return [_row_to_info(row) for row in rows]

    def get_package_details(self, package_names: List[str]) -> List[PackageDetails]:
        if not package_names:
            return []

        placeholders = ",".join("?" for _ in package_names)
        try:
            with closing(self._connect()) as conn:
                # One read transaction so all tables come from the same snapshot.
                conn.execute("BEGIN")
                rows = conn.execute(
                    f"SELECT * FROM pkg_info WHERE pkg_name IN ({placeholders}) "
                    f"ORDER BY pkg_name, branch",
                    list(package_names),
                ).fetchall()

                result = []
                for row in rows:
                    attributes = {}
                    for table, column, field in ATTRIBUTE_TABLES:
                        values = conn.execute(
                            f"SELECT {column} FROM {table} WHERE pkg_name = ? AND branch = ? "
                            f"ORDER BY {column}",
                            (row["pkg_name"], row["branch"]),
                        ).fetchall()
                        attributes[field] = [v[0] for v in values]
                    result.append(PackageDetails(info=_row_to_info(row), **attributes))
                conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StorageError(f"Package info lookup failed: {e}") from e
        return result

    def get_branch_commit_id(self, branch: str) -> Optional[str]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    "SELECT commit_id FROM branch_commits WHERE branch = ? LIMIT 1", (branch,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read commit of branch {branch}: {e}") from e
        return row["commit_id"] if row else None
