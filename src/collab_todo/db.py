from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Collection, Dict, Generator, List, Mapping, Optional, Sequence

from .errors import Conflict
from .models import GroupEntity, GroupKind, TaskEntity, Tombstone, UserEntity
from .repositories import (
    GroupRepository,
    Repositories,
    TaskRepository,
    TASK_FIELDS,
    USER_FIELDS,
    UserRepository,
    utcnow,
)


@dataclass(frozen=True)
class _TaskCols:
    table: str = "tasks"
    id: str = "id"
    name: str = "name"
    date: str = "due_date"
    time: str = "due_time"
    priority: str = "priority"
    done: str = "done"
    created_at: str = "created_at"
    owner_id: str = "owner_id"
    group_id: str = "group_id"
    deleted_at: str = "deleted_at"
    expires_at: str = "expires_at"
    deleted_by: str = "deleted_by"


_TASK = _TaskCols()

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        recovery_question TEXT NOT NULL,
        recovery_answer_hash TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_groups (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        kind TEXT NOT NULL,
        owner_id INTEGER NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_collaborators (
        group_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {_TASK.table} (
        {_TASK.id} INTEGER PRIMARY KEY AUTOINCREMENT,
        {_TASK.name} TEXT NOT NULL,
        {_TASK.date} TEXT NULL,
        {_TASK.time} TEXT NULL,
        {_TASK.priority} TEXT NOT NULL,
        {_TASK.done} INTEGER NOT NULL DEFAULT 0,
        {_TASK.created_at} TEXT NOT NULL,
        {_TASK.owner_id} INTEGER NOT NULL,
        {_TASK.group_id} INTEGER NULL,
        {_TASK.deleted_at} TEXT NULL,
        {_TASK.expires_at} TEXT NULL,
        {_TASK.deleted_by} INTEGER NULL,
        CHECK (({_TASK.deleted_at} IS NULL) = ({_TASK.expires_at} IS NULL))
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_task_groups_owner ON task_groups(owner_id)",
    "CREATE INDEX IF NOT EXISTS idx_group_collaborators_user ON group_collaborators(user_id)",
    f"CREATE INDEX IF NOT EXISTS idx_{_TASK.table}_owner ON {_TASK.table}({_TASK.owner_id})",
    f"CREATE INDEX IF NOT EXISTS idx_{_TASK.table}_group ON {_TASK.table}({_TASK.group_id})",
    f"CREATE INDEX IF NOT EXISTS idx_{_TASK.table}_expires ON {_TASK.table}({_TASK.expires_at})",
)


def _iso(value: datetime) -> str:
    # Fixed width so that string comparison in SQL matches datetime ordering
    return value.isoformat(timespec="microseconds")


def _parse_dt(s: Optional[str]) -> Optional[datetime]:
    if s is None:
        return None
    return datetime.fromisoformat(s)


def _py_lower(value: Optional[str]) -> Optional[str]:
    return None if value is None else value.lower()


def _placeholders(values: Sequence[Any]) -> str:
    return ", ".join("?" for _ in values)


class _SQLiteStore:
    """Connection handling shared by the SQLite repositories."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        # SQLite's lower() only folds ASCII; match Python's str.lower
        conn.create_function("py_lower", 1, _py_lower, deterministic=True)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()


def init_db(db_path: str) -> None:
    os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


class SQLiteUserRepository(_SQLiteStore, UserRepository):
    """SQLite-backed user store. Email uniqueness is enforced by the schema."""

    def _row_to_entity(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": int(row["id"]),
            "name": str(row["name"]),
            "email": str(row["email"]),
            "password_hash": str(row["password_hash"]),
            "recovery_question": str(row["recovery_question"]),
            "recovery_answer_hash": str(row["recovery_answer_hash"]),
            "created_at": _parse_dt(row["created_at"]),  # type: ignore
        }

    def create(
        self,
        name: str,
        email: str,
        password_hash: str,
        recovery_question: str,
        recovery_answer_hash: str,
    ) -> UserEntity:
        with self._conn() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, recovery_question,
                        recovery_answer_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        name,
                        email.strip().lower(),
                        password_hash,
                        recovery_question,
                        recovery_answer_hash,
                        _iso(utcnow()),
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise Conflict("Email already registered") from e
            row = conn.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
            assert row is not None
            return self._row_to_entity(row)

    def get(self, user_id: int) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
            return self._row_to_entity(row) if row else None

    def search(self, query: str, limit: int) -> List[UserEntity]:
        s = query.lower()
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM users
                WHERE instr(py_lower(name), ?) > 0 OR instr(email, ?) > 0
                ORDER BY id
                LIMIT ?
                """,
                (s, s, max(limit, 0)),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def update(self, user_id: int, fields: Mapping[str, Any]) -> Optional[UserEntity]:
        values: Dict[str, Any] = {k: v for k, v in fields.items() if k in USER_FIELDS}
        if "email" in values:
            values["email"] = values["email"].strip().lower()
        with self._conn() as conn:
            if values:
                assignments = ", ".join(f"{k} = ?" for k in values)
                try:
                    conn.execute(
                        f"UPDATE users SET {assignments} WHERE id = ?",
                        [*values.values(), user_id],
                    )
                except sqlite3.IntegrityError as e:
                    raise Conflict("Email already in use") from e
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def delete(self, user_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cur.rowcount > 0


class SQLiteGroupRepository(_SQLiteStore, GroupRepository):
    """
    SQLite-backed group store. Collaborators live in a join table so that
    add/remove are single conditional statements.
    """

    def _load(self, conn: sqlite3.Connection, rows: Sequence[sqlite3.Row]) -> List[GroupEntity]:
        if not rows:
            return []
        ids = [int(r["id"]) for r in rows]
        members: Dict[int, List[int]] = {i: [] for i in ids}
        for m in conn.execute(
            f"""
            SELECT group_id, user_id FROM group_collaborators
            WHERE group_id IN ({_placeholders(ids)})
            ORDER BY rowid
            """,
            ids,
        ).fetchall():
            members[int(m["group_id"])].append(int(m["user_id"]))
        return [
            {
                "id": int(r["id"]),
                "name": str(r["name"]),
                "kind": str(r["kind"]),
                "owner_id": int(r["owner_id"]),
                "collaborator_ids": members[int(r["id"])],
                "created_at": _parse_dt(r["created_at"]),  # type: ignore
            }
            for r in rows
        ]

    def _get(self, conn: sqlite3.Connection, group_id: int) -> Optional[GroupEntity]:
        row = conn.execute("SELECT * FROM task_groups WHERE id = ?", (group_id,)).fetchone()
        if row is None:
            return None
        return self._load(conn, [row])[0]

    def _set_collaborators(self, conn: sqlite3.Connection, group_id: int, user_ids: List[int]) -> None:
        conn.execute("DELETE FROM group_collaborators WHERE group_id = ?", (group_id,))
        conn.executemany(
            "INSERT OR IGNORE INTO group_collaborators (group_id, user_id) VALUES (?, ?)",
            [(group_id, uid) for uid in user_ids],
        )

    def create(self, owner_id: int, name: str, kind: str, collaborator_ids: List[int]) -> GroupEntity:
        with self._conn() as conn:
            cur = conn.execute(
                "INSERT INTO task_groups (name, kind, owner_id, created_at) VALUES (?, ?, ?, ?)",
                (name, kind, owner_id, _iso(utcnow())),
            )
            group_id = int(cur.lastrowid)
            self._set_collaborators(conn, group_id, collaborator_ids)
            group = self._get(conn, group_id)
            assert group is not None
            return group

    def get(self, group_id: int) -> Optional[GroupEntity]:
        with self._conn() as conn:
            return self._get(conn, group_id)

    def list_visible(self, user_id: int) -> List[GroupEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT * FROM task_groups
                WHERE owner_id = ?
                   OR id IN (SELECT group_id FROM group_collaborators WHERE user_id = ?)
                ORDER BY id
                """,
                (user_id, user_id),
            ).fetchall()
            return self._load(conn, rows)

    def list_owned(self, user_id: int) -> List[GroupEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM task_groups WHERE owner_id = ? ORDER BY id", (user_id,)
            ).fetchall()
            return self._load(conn, rows)

    def update(self, group_id: int, fields: Mapping[str, Any]) -> Optional[GroupEntity]:
        with self._conn() as conn:
            if conn.execute("SELECT 1 FROM task_groups WHERE id = ?", (group_id,)).fetchone() is None:
                return None
            if "name" in fields:
                conn.execute("UPDATE task_groups SET name = ? WHERE id = ?", (fields["name"], group_id))
            if "kind" in fields:
                conn.execute("UPDATE task_groups SET kind = ? WHERE id = ?", (fields["kind"], group_id))
            if "collaborator_ids" in fields:
                self._set_collaborators(conn, group_id, list(fields["collaborator_ids"]))
            return self._get(conn, group_id)

    def add_collaborator(self, group_id: int, user_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO group_collaborators (group_id, user_id)
                SELECT id, ? FROM task_groups WHERE id = ? AND kind = ?
                """,
                (user_id, group_id, GroupKind.COLLABORATIVE.value),
            )
            return cur.rowcount > 0

    def remove_collaborator(self, group_id: int, user_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                "DELETE FROM group_collaborators WHERE group_id = ? AND user_id = ?",
                (group_id, user_id),
            )
            return cur.rowcount > 0

    def remove_member_everywhere(self, user_id: int) -> int:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM group_collaborators WHERE user_id = ?", (user_id,))
            return cur.rowcount

    def delete(self, group_id: int) -> bool:
        with self._conn() as conn:
            conn.execute("DELETE FROM group_collaborators WHERE group_id = ?", (group_id,))
            cur = conn.execute("DELETE FROM task_groups WHERE id = ?", (group_id,))
            return cur.rowcount > 0


class SQLiteTaskRepository(_SQLiteStore, TaskRepository):
    """
    SQLite-backed task store. Every lifecycle transition is one conditional
    UPDATE/DELETE keyed by task id.
    """

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        tombstone: Optional[Tombstone] = None
        if row[_TASK.deleted_at] is not None:
            tombstone = {
                "deleted_at": _parse_dt(row[_TASK.deleted_at]),  # type: ignore
                "expires_at": _parse_dt(row[_TASK.expires_at]),  # type: ignore
                "deleted_by": int(row[_TASK.deleted_by]),
            }
        return {
            "id": int(row[_TASK.id]),
            "name": str(row[_TASK.name]),
            "date": row[_TASK.date],
            "time": row[_TASK.time],
            "priority": str(row[_TASK.priority]),
            "done": bool(row[_TASK.done]),
            "created_at": _parse_dt(row[_TASK.created_at]),  # type: ignore
            "owner_id": int(row[_TASK.owner_id]),
            "group_id": int(row[_TASK.group_id]) if row[_TASK.group_id] is not None else None,
            "tombstone": tombstone,
        }

    def _get(self, conn: sqlite3.Connection, task_id: int) -> Optional[TaskEntity]:
        row = conn.execute(
            f"SELECT * FROM {_TASK.table} WHERE {_TASK.id} = ?", (task_id,)
        ).fetchone()
        return self._row_to_entity(row) if row else None

    def create(
        self,
        owner_id: int,
        name: str,
        date: Optional[str],
        time: Optional[str],
        priority: str,
        done: bool,
        group_id: Optional[int],
        created_at: datetime,
    ) -> TaskEntity:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                INSERT INTO {_TASK.table} ({_TASK.name}, {_TASK.date}, {_TASK.time}, {_TASK.priority},
                    {_TASK.done}, {_TASK.created_at}, {_TASK.owner_id}, {_TASK.group_id})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (name, date, time, priority, 1 if done else 0, _iso(created_at), owner_id, group_id),
            )
            task = self._get(conn, int(cur.lastrowid))
            assert task is not None
            return task

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._conn() as conn:
            return self._get(conn, task_id)

    def list_visible(self, user_id: int, group_ids: Collection[int]) -> List[TaskEntity]:
        ids = list(group_ids)
        clause = f"{_TASK.owner_id} = ?"
        if ids:
            clause = f"({clause} OR {_TASK.group_id} IN ({_placeholders(ids)}))"
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_TASK.table}
                WHERE {_TASK.deleted_at} IS NULL AND {clause}
                ORDER BY {_TASK.id}
                """,
                [user_id, *ids],
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def update(self, task_id: int, fields: Mapping[str, Any]) -> Optional[TaskEntity]:
        columns = {
            "name": _TASK.name,
            "date": _TASK.date,
            "time": _TASK.time,
            "priority": _TASK.priority,
            "done": _TASK.done,
            "group_id": _TASK.group_id,
        }
        values = {columns[k]: v for k, v in fields.items() if k in TASK_FIELDS}
        if _TASK.done in values:
            values[_TASK.done] = 1 if values[_TASK.done] else 0
        with self._conn() as conn:
            if values:
                assignments = ", ".join(f"{c} = ?" for c in values)
                cur = conn.execute(
                    f"""
                    UPDATE {_TASK.table} SET {assignments}
                    WHERE {_TASK.id} = ? AND {_TASK.deleted_at} IS NULL
                    """,
                    [*values.values(), task_id],
                )
                if cur.rowcount == 0:
                    return None
            task = self._get(conn, task_id)
            if task is None or task["tombstone"] is not None:
                return None
            return task

    def soft_delete(self, task_id: int, tombstone: Tombstone) -> Optional[TaskEntity]:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_TASK.table}
                SET {_TASK.deleted_at} = ?, {_TASK.expires_at} = ?, {_TASK.deleted_by} = ?
                WHERE {_TASK.id} = ? AND {_TASK.deleted_at} IS NULL
                """,
                (
                    _iso(tombstone["deleted_at"]),
                    _iso(tombstone["expires_at"]),
                    tombstone["deleted_by"],
                    task_id,
                ),
            )
            if cur.rowcount == 0:
                return None
            return self._get(conn, task_id)

    def soft_delete_completed(self, task_ids: Collection[int], tombstone: Tombstone) -> int:
        ids = list(task_ids)
        if not ids:
            return 0
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_TASK.table}
                SET {_TASK.deleted_at} = ?, {_TASK.expires_at} = ?, {_TASK.deleted_by} = ?
                WHERE {_TASK.id} IN ({_placeholders(ids)})
                  AND {_TASK.deleted_at} IS NULL AND {_TASK.done} = 1
                """,
                [
                    _iso(tombstone["deleted_at"]),
                    _iso(tombstone["expires_at"]),
                    tombstone["deleted_by"],
                    *ids,
                ],
            )
            return cur.rowcount

    def restore(self, task_id: int, now: datetime) -> Optional[TaskEntity]:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_TASK.table}
                SET {_TASK.deleted_at} = NULL, {_TASK.expires_at} = NULL, {_TASK.deleted_by} = NULL
                WHERE {_TASK.id} = ? AND {_TASK.deleted_at} IS NOT NULL AND {_TASK.expires_at} > ?
                """,
                (task_id, _iso(now)),
            )
            if cur.rowcount == 0:
                return None
            return self._get(conn, task_id)

    def ungroup(self, group_id: int) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {_TASK.table} SET {_TASK.group_id} = NULL WHERE {_TASK.group_id} = ?",
                (group_id,),
            )
            return cur.rowcount

    def purge_expired(self, now: datetime) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                f"""
                DELETE FROM {_TASK.table}
                WHERE {_TASK.deleted_at} IS NOT NULL AND {_TASK.expires_at} <= ?
                """,
                (_iso(now),),
            )
            return cur.rowcount

    def delete_owned(self, owner_id: int) -> int:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_TASK.table} WHERE {_TASK.owner_id} = ?", (owner_id,)
            )
            return cur.rowcount


# PUBLIC_INTERFACE
def open_sqlite_repositories(db_path: str) -> Repositories:
    """Create the schema if needed and return repositories sharing `db_path`."""
    init_db(db_path)
    return Repositories(
        users=SQLiteUserRepository(db_path),
        groups=SQLiteGroupRepository(db_path),
        tasks=SQLiteTaskRepository(db_path),
    )
