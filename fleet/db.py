import functools
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

import aiosqlite

from .errors import ConfigStoreError

DEFAULT_REACTION = "❤️"

# Columns a settings update may touch; everything else is immutable or
# owned by a dedicated helper.
MUTABLE_BOT_FIELDS = (
    "token",
    "title",
    "enabled",
    "force_join_channel",
    "notify_new_user",
    "reaction_enabled",
    "reaction_emoji",
)

_BOT_COLUMNS = (
    "id, token, owner, title, enabled, force_join_channel, "
    "notify_new_user, reaction_enabled, reaction_emoji, created_at"
)


@dataclass
class BotConfig:
    id: int
    token: str
    owner: str
    title: str
    enabled: bool
    force_join_channel: Optional[str]
    notify_new_user: bool
    reaction_enabled: bool
    reaction_emoji: str
    created_at: str

    @classmethod
    def from_row(cls, row) -> "BotConfig":
        (bot_id, token, owner, title, enabled, channel,
         notify, reaction, emoji, created_at) = row
        return cls(
            id=bot_id,
            token=token,
            owner=owner,
            title=title or "",
            enabled=bool(enabled),
            force_join_channel=channel or None,
            notify_new_user=bool(notify),
            reaction_enabled=bool(reaction),
            reaction_emoji=emoji or DEFAULT_REACTION,
            created_at=created_at,
        )

    def public(self) -> Dict[str, Any]:
        """Row as JSON-safe dict without the token."""
        data = asdict(self)
        token = data.pop("token")
        data["token_hint"] = f"…{token[-4:]}" if token else ""
        return data


@dataclass
class Subscriber:
    bot_id: int
    platform_user_id: int
    username: str
    first_name: str
    last_name: str
    started_at: str


@dataclass
class BroadcastRecord:
    id: int
    bot_id: int
    message: str
    created_at: str


@dataclass
class NotificationRecord:
    id: int
    bot_id: int
    platform_user_id: int
    username: str
    created_at: str
    seen: bool


def _store_op(func):
    """Re-raise any sqlite failure as ConfigStoreError."""

    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        if self.conn is None:
            raise ConfigStoreError("database is not initialised")
        try:
            return await func(self, *args, **kwargs)
        except aiosqlite.Error as exc:
            raise ConfigStoreError(f"{func.__name__}: {exc}") from exc

    return wrapper


class Database:
    def __init__(self, path: str):
        self._path = path
        self.conn: Optional[aiosqlite.Connection] = None

    async def init(self):
        try:
            self.conn = await aiosqlite.connect(self._path, isolation_level=None)
            await self.conn.execute("PRAGMA journal_mode=WAL")
            await self.conn.execute("PRAGMA synchronous=NORMAL")
            await self.conn.execute("PRAGMA busy_timeout=5000")  # Wait if locked
            await self.conn.executescript(
                f"""
                PRAGMA foreign_keys = ON;

                CREATE TABLE IF NOT EXISTS bots (
                    id                 INTEGER PRIMARY KEY AUTOINCREMENT,
                    token              TEXT    NOT NULL CHECK (token <> ''),
                    owner              TEXT    NOT NULL,
                    title              TEXT    NOT NULL DEFAULT '',
                    enabled            INTEGER NOT NULL DEFAULT 1,
                    force_join_channel TEXT,
                    notify_new_user    INTEGER NOT NULL DEFAULT 0,
                    reaction_enabled   INTEGER NOT NULL DEFAULT 1,
                    reaction_emoji     TEXT    NOT NULL DEFAULT '{DEFAULT_REACTION}',
                    created_at         TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS subscribers (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    bot_id           INTEGER NOT NULL,
                    platform_user_id INTEGER NOT NULL,
                    username         TEXT    NOT NULL DEFAULT '',
                    first_name       TEXT    NOT NULL DEFAULT '',
                    last_name        TEXT    NOT NULL DEFAULT '',
                    started_at       TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE(bot_id, platform_user_id),
                    FOREIGN KEY (bot_id) REFERENCES bots(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS broadcasts (
                    id         INTEGER PRIMARY KEY AUTOINCREMENT,
                    bot_id     INTEGER NOT NULL,
                    message    TEXT    NOT NULL,
                    created_at TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (bot_id) REFERENCES bots(id) ON DELETE CASCADE
                );

                CREATE TABLE IF NOT EXISTS notifications (
                    id               INTEGER PRIMARY KEY AUTOINCREMENT,
                    bot_id           INTEGER NOT NULL,
                    platform_user_id INTEGER NOT NULL,
                    username         TEXT    NOT NULL DEFAULT '',
                    created_at       TEXT    NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    seen             INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (bot_id) REFERENCES bots(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS idx_subscribers_bot   ON subscribers(bot_id);
                CREATE INDEX IF NOT EXISTS idx_broadcasts_bot    ON broadcasts(bot_id);
                CREATE INDEX IF NOT EXISTS idx_notifications_bot ON notifications(bot_id);
                """
            )
            await self.conn.commit()
        except aiosqlite.Error as exc:
            raise ConfigStoreError(f"init: {exc}") from exc

    async def close(self):
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

    # Bot helpers -------------------------------------------------------------------
    @_store_op
    async def create_bot(self, token: str, owner: str, title: str = "") -> BotConfig:
        if not token or not owner:
            raise ValueError("token and owner are required")
        cur = await self.conn.execute(
            "INSERT INTO bots(token, owner, title, enabled) VALUES (?, ?, ?, 1)",
            (token, owner, title or ""),
        )
        await self.conn.commit()
        return await self.get_bot(cur.lastrowid)

    @_store_op
    async def get_bot(self, bot_id: int) -> Optional[BotConfig]:
        cur = await self.conn.execute(
            f"SELECT {_BOT_COLUMNS} FROM bots WHERE id=?", (bot_id,)
        )
        row = await cur.fetchone()
        return BotConfig.from_row(row) if row else None

    @_store_op
    async def list_bots(
        self, owner: Optional[str] = None, enabled: Optional[bool] = None
    ) -> List[BotConfig]:
        query = f"SELECT {_BOT_COLUMNS} FROM bots"
        clauses, params = [], []
        if owner is not None:
            clauses.append("owner=?")
            params.append(owner)
        if enabled is not None:
            clauses.append("enabled=?")
            params.append(int(enabled))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        cur = await self.conn.execute(query + " ORDER BY id", params)
        return [BotConfig.from_row(row) async for row in cur]

    @_store_op
    async def update_bot(self, bot_id: int, **fields) -> Optional[BotConfig]:
        unknown = set(fields) - set(MUTABLE_BOT_FIELDS)
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")
        if "token" in fields and not fields["token"]:
            raise ValueError("token must not be empty")
        if fields:
            assignments = ", ".join(f"{name}=?" for name in fields)
            values = [int(v) if isinstance(v, bool) else v for v in fields.values()]
            await self.conn.execute(
                f"UPDATE bots SET {assignments} WHERE id=?", (*values, bot_id)
            )
            await self.conn.commit()
        return await self.get_bot(bot_id)

    async def set_enabled(self, bot_id: int, enabled: bool) -> Optional[BotConfig]:
        return await self.update_bot(bot_id, enabled=enabled)

    # Subscriber helpers ------------------------------------------------------------
    @_store_op
    async def upsert_subscriber(
        self,
        bot_id: int,
        platform_user_id: int,
        username: str = "",
        first_name: str = "",
        last_name: str = "",
    ) -> bool:
        """Insert or refresh a subscriber. Returns True if the row is new."""
        names = (username or "", first_name or "", last_name or "")
        # the insert alone decides "new", so concurrent /start events agree
        cur = await self.conn.execute(
            """INSERT OR IGNORE INTO subscribers(bot_id, platform_user_id, username, first_name, last_name)
                   VALUES(?, ?, ?, ?, ?)""",
            (bot_id, platform_user_id, *names),
        )
        inserted = cur.rowcount == 1
        if not inserted:
            await self.conn.execute(
                """UPDATE subscribers SET username=?, first_name=?, last_name=?
                       WHERE bot_id=? AND platform_user_id=?""",
                (*names, bot_id, platform_user_id),
            )
        await self.conn.commit()
        return inserted

    @_store_op
    async def list_subscribers(self, bot_id: int) -> List[Subscriber]:
        cur = await self.conn.execute(
            "SELECT bot_id, platform_user_id, username, first_name, last_name, started_at "
            "FROM subscribers WHERE bot_id=? ORDER BY id",
            (bot_id,),
        )
        return [Subscriber(*row) async for row in cur]

    @_store_op
    async def list_subscriber_ids(self, bot_id: int) -> List[int]:
        cur = await self.conn.execute(
            "SELECT platform_user_id FROM subscribers WHERE bot_id=? ORDER BY id", (bot_id,)
        )
        return [row[0] async for row in cur]

    @_store_op
    async def count_subscribers(self, bot_id: int) -> int:
        cur = await self.conn.execute(
            "SELECT COUNT(*) FROM subscribers WHERE bot_id=?", (bot_id,)
        )
        row = await cur.fetchone()
        return row[0]

    # Broadcast helpers -------------------------------------------------------------
    @_store_op
    async def add_broadcast(self, bot_id: int, message: str) -> int:
        cur = await self.conn.execute(
            "INSERT INTO broadcasts(bot_id, message) VALUES (?, ?)", (bot_id, message)
        )
        await self.conn.commit()
        return cur.lastrowid

    @_store_op
    async def list_broadcasts(self, bot_id: int, limit: int = 50) -> List[BroadcastRecord]:
        cur = await self.conn.execute(
            "SELECT id, bot_id, message, created_at FROM broadcasts "
            "WHERE bot_id=? ORDER BY id DESC LIMIT ?",
            (bot_id, limit),
        )
        return [BroadcastRecord(*row) async for row in cur]

    @_store_op
    async def count_broadcasts(self, bot_id: int) -> int:
        cur = await self.conn.execute(
            "SELECT COUNT(*) FROM broadcasts WHERE bot_id=?", (bot_id,)
        )
        row = await cur.fetchone()
        return row[0]

    # Notification helpers ----------------------------------------------------------
    @_store_op
    async def add_notification(self, bot_id: int, platform_user_id: int, username: str = "") -> int:
        cur = await self.conn.execute(
            "INSERT INTO notifications(bot_id, platform_user_id, username) VALUES (?, ?, ?)",
            (bot_id, platform_user_id, username or ""),
        )
        await self.conn.commit()
        return cur.lastrowid

    @_store_op
    async def list_notifications(
        self, bot_id: Optional[int] = None, unseen_only: bool = False, limit: int = 200
    ) -> List[NotificationRecord]:
        query = "SELECT id, bot_id, platform_user_id, username, created_at, seen FROM notifications"
        clauses, params = [], []
        if bot_id is not None:
            clauses.append("bot_id=?")
            params.append(bot_id)
        if unseen_only:
            clauses.append("seen=0")
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        params.append(limit)
        cur = await self.conn.execute(query + " ORDER BY id DESC LIMIT ?", params)
        return [
            NotificationRecord(nid, bid, uid, username, created_at, bool(seen))
            async for nid, bid, uid, username, created_at, seen in cur
        ]

    @_store_op
    async def mark_notifications_seen(self, ids: Optional[List[int]] = None) -> int:
        """Flag the given notifications (or all of them) as seen."""
        if ids is None:
            cur = await self.conn.execute("UPDATE notifications SET seen=1 WHERE seen=0")
        elif not ids:
            return 0
        else:
            marks = ", ".join("?" for _ in ids)
            cur = await self.conn.execute(
                f"UPDATE notifications SET seen=1 WHERE seen=0 AND id IN ({marks})", ids
            )
        await self.conn.commit()
        return cur.rowcount
