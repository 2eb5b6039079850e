"""
SQLite-backed Room Store.

Each room is a JSON document assembled from independently written fields.
A field is addressed by a dotted path (``movieList``, ``votes.p1.550``,
``userPreferences.p1``); writing a path replaces that path and everything
beneath it, and leaves every other path alone. Concurrent writers to the
same path are last-write-wins.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import config
from .config import MAX_PARTICIPANTS
from .errors import NotFound, PersistenceError, ValidationError
from .utils import generate_room_code, generate_participant_id

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS rooms (
        room_id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS room_fields (
        room_id TEXT NOT NULL REFERENCES rooms(room_id) ON DELETE CASCADE,
        path TEXT NOT NULL,     -- dotted field path
        value TEXT NOT NULL,    -- JSON
        updated_at TEXT NOT NULL,
        PRIMARY KEY (room_id, path)
    );

    CREATE INDEX IF NOT EXISTS idx_room_fields_room ON room_fields(room_id);
"""

# Fields every new room starts with
_EMPTY_ROOM = {
    "participants": {},
    "movieList": [],
    "recommendationScores": {},
    "votes": {},
    "watchlist": [],
    "addedMovies": [],
    "userPreferences": {},
    "preferences": {"genres": []},
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _split_path(path: str) -> list[str]:
    parts = str(path).split(".")
    if not all(parts):
        raise ValidationError(f"Invalid field path '{path}'")
    return parts


def _set_nested(doc: dict, parts: list[str], value: Any) -> None:
    node = doc
    for key in parts[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[parts[-1]] = value


class RoomStore:
    """Durable key/value document store keyed by room code."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path) if db_path else config.DB_PATH
        self.init_db()

    @contextmanager
    def connection(self, read_only: bool = False):
        """
        Open a connection for one unit of work.

        Commits on clean exit (unless read_only), rolls back on error, and
        surfaces any sqlite3 error as PersistenceError.
        """
        try:
            conn = sqlite3.connect(self.db_path, timeout=5.0)
        except sqlite3.Error as exc:
            raise PersistenceError(f"Cannot open room store at {self.db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA busy_timeout = 5000")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            if not read_only:
                conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"Room store error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def init_db(self) -> None:
        self.db_path.parent.mkdir(exist_ok=True, parents=True)
        with self.connection() as conn:
            conn.executescript(_SCHEMA)

    def _require_room(self, conn: sqlite3.Connection, room_id: str) -> sqlite3.Row:
        row = conn.execute(
            "SELECT room_id, created_at FROM rooms WHERE room_id = ?", (room_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"Room '{room_id}' not found")
        return row

    def _write_fields(self, conn: sqlite3.Connection, room_id: str, fields: dict[str, Any]) -> None:
        now = _now()
        for path, value in fields.items():
            _split_path(path)
            prefix = f"{path}."
            conn.execute(
                "DELETE FROM room_fields WHERE room_id = ? AND (path = ? OR substr(path, 1, ?) = ?)",
                (room_id, path, len(prefix), prefix),
            )
            conn.execute(
                "INSERT INTO room_fields (room_id, path, value, updated_at) VALUES (?, ?, ?, ?)",
                (room_id, path, json.dumps(value), now),
            )

    def create_room(self, room_id: str | None = None, max_attempts: int = 20) -> dict:
        """Create an empty room; a fresh code is generated when none is given."""
        with self.connection() as conn:
            for _ in range(max_attempts):
                code = room_id or generate_room_code()
                exists = conn.execute("SELECT 1 FROM rooms WHERE room_id = ?", (code,)).fetchone()
                if not exists:
                    break
                if room_id:
                    raise ValidationError(f"Room '{room_id}' already exists")
            else:
                raise PersistenceError("Could not allocate a free room code")

            conn.execute("INSERT INTO rooms (room_id, created_at) VALUES (?, ?)", (code, _now()))
            self._write_fields(conn, code, _EMPTY_ROOM)

        logger.info(f"Created room {code}")
        return self.get_room(code)

    def get_room(self, room_id: str) -> dict:
        """Assemble the room document. Raises NotFound for unknown rooms."""
        with self.connection(read_only=True) as conn:
            room = self._require_room(conn, room_id)
            rows = conn.execute(
                "SELECT path, value FROM room_fields WHERE room_id = ?", (room_id,)
            ).fetchall()

        doc: dict[str, Any] = {"roomId": room["room_id"], "createdAt": room["created_at"]}
        # Shallow paths first so deeper writes land inside them
        for row in sorted(rows, key=lambda r: r["path"].count(".")):
            _set_nested(doc, row["path"].split("."), json.loads(row["value"]))
        return doc

    def update_room(self, room_id: str, fields: dict[str, Any]) -> None:
        """
        Merge-style partial update.

        Only the given paths are written, in a single transaction; fields
        written by other callers are left as they are.
        """
        if not fields:
            return
        with self.connection() as conn:
            self._require_room(conn, room_id)
            self._write_fields(conn, room_id, fields)
        logger.debug(f"Updated room {room_id}: {', '.join(fields)}")

    def add_participant(self, room_id: str, nickname: str, participant_id: str | None = None) -> dict:
        """Add a participant; nicknames are unique per room (case-insensitive)."""
        nickname = (nickname or "").strip()
        if not nickname:
            raise ValidationError("Nickname is required")
        participant_id = participant_id or generate_participant_id()
        if "." in participant_id:
            raise ValidationError("Participant ids may not contain '.'")

        room = self.get_room(room_id)
        participants = room.get("participants", {})

        if participant_id in participants:
            return participants[participant_id]
        if any(p["nickname"].strip().lower() == nickname.lower() for p in participants.values()):
            raise ValidationError(f"Nickname '{nickname}' is already in use in this room")
        if len(participants) >= MAX_PARTICIPANTS:
            raise ValidationError(f"Room '{room_id}' is full ({MAX_PARTICIPANTS} participants)")

        participant = {
            "id": participant_id,
            "nickname": nickname,
            "genres": [],
            "joinedAt": _now(),
            "hasCompletedPreferences": False,
        }
        self.update_room(room_id, {f"participants.{participant_id}": participant})
        logger.info(f"{nickname} joined room {room_id}")
        return participant

    def list_rooms(self) -> list[str]:
        with self.connection(read_only=True) as conn:
            return [r["room_id"] for r in conn.execute("SELECT room_id FROM rooms ORDER BY created_at")]
