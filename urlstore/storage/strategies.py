"""
Link storage strategies using Strategy Pattern.

Allows switching between different backing stores for short links:
- Relational: PostgreSQL (SQLite for development) through SQLAlchemy
- Redis: key/value store with native expiry
- Embedded: single-file key/value buckets, no server required
"""

from abc import ABC, abstractmethod
import asyncio
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional
import functools
import logging
import os
import sqlite3

import redis
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import QueuePool

from urlstore.database.connection import make_engine, make_session_factory
from urlstore.database.migrations import migrate
from urlstore.exceptions import DataStoreError, ItemDuplicatedError, NoLinkError
from urlstore.models.item import Item, as_utc, utcnow
from urlstore.models.link import Link, to_signed_id, to_unsigned_id

logger = logging.getLogger(__name__)


class LinkStorageStrategy(ABC):
    """
    Abstract base class for link storage strategies.

    Every backend persists Items and honours the same contract:

    - create() raises ItemDuplicatedError when the id belongs to an active
      item; the allocator relies on that to retry with a new id.
    - load() / load_info() raise NoLinkError for absent or expired items,
      whether or not the expired record has been physically removed yet.
    - load() bumps `visits` best-effort; a failed increment never fails the read.

    Optional capabilities are declared statically with the `supports_*`
    flags. The default implementations are no-ops, so callers may invoke
    them unconditionally.

    All methods are async for interface consistency; drivers underneath
    are blocking and each backend synchronizes its own connections. Batch
    sweeps (clean_expired) run in a worker thread so a long delete does not
    stall the event loop serving reads.
    """

    name: str = "abstract"
    supports_find: bool = False
    supports_clean_expired: bool = False

    @abstractmethod
    async def create(self, item: Item) -> None:
        """
        Insert a new item.

        Raises:
            ItemDuplicatedError: an active item with the same id exists
            DataStoreError: the backend failed
        """
        pass

    @abstractmethod
    async def load(self, item_id: int) -> str:
        """
        Resolve an id to its URL and count the visit.

        Raises:
            NoLinkError: the item is absent or expired
            DataStoreError: the backend failed
        """
        pass

    @abstractmethod
    async def load_info(self, item_id: int) -> Item:
        """Return the full record, or raise NoLinkError if absent or expired"""
        pass

    async def find(self, url: str, expires: Optional[datetime] = None) -> Optional[int]:
        """
        Return the id of an active item with this URL and exactly this expiry
        (None matches only items that never expire), None if there is none.
        """
        return None

    @abstractmethod
    async def stat(self) -> Dict[str, Any]:
        """Backend diagnostics (pool/connection snapshot). Must not mutate state."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release held resources. Called once during shutdown."""
        pass

    async def clean_expired(self) -> int:
        """Physically delete expired items, returning how many were removed"""
        return 0


class RelationalLinkStorage(LinkStorageStrategy):
    """
    SQLAlchemy implementation (PostgreSQL in production, SQLite in development).

    Schema is brought up to date by additive migrations when the storage is
    constructed. Connections come from a bounded pool shared by all callers.

    Layout:
        links(id BIGINT NOT NULL, url VARCHAR NOT NULL,
              expires TIMESTAMPTZ NULL, visits INT NOT NULL DEFAULT 0)
        links_id_uniq      unique (id)
        links_expires_idx  (expires) WHERE expires IS NOT NULL
        links_url_idx      hash (url)
    """

    name = "relational"
    supports_find = True
    supports_clean_expired = True

    def __init__(self, database_url: str, pool_size: int = 10, pool_timeout: float = 30.0):
        """
        Connect and migrate.

        Args:
            database_url: SQLAlchemy database URL
            pool_size: Maximum pooled connections
            pool_timeout: Seconds to wait for a free connection

        Raises:
            DataStoreError: the database is unreachable or migrations failed
        """
        self.engine = make_engine(database_url, pool_size=pool_size, pool_timeout=pool_timeout)
        self.session_factory = make_session_factory(self.engine)

        try:
            migrate(self.engine)
        except SQLAlchemyError as e:
            self.engine.dispose()
            raise DataStoreError(
                f"Unable to roll migrations to {self.engine.url.render_as_string(hide_password=True)}: {e}"
            ) from e

    @contextmanager
    def _session(self, action: str):
        session = self.session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            raise DataStoreError(f"Can't {action}: {e}") from e
        finally:
            session.close()

    async def create(self, item: Item) -> None:
        with self._session(f"create item {item.id}") as session:
            session.add(Link(
                id=to_signed_id(item.id),
                url=item.url,
                expires=item.expires,
                visits=item.visits,
            ))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ItemDuplicatedError(f"Item {item.id} already exists") from e

    async def load(self, item_id: int) -> str:
        with self._session(f"load item {item_id}") as session:
            row = session.query(Link.url, Link.expires).filter(
                Link.id == to_signed_id(item_id)
            ).first()

        if row is None:
            raise NoLinkError(f"Item {item_id} not found")

        expires = as_utc(row.expires)
        if expires is not None and expires < utcnow():
            logger.debug("Item %s expired at %s", item_id, expires)
            raise NoLinkError(f"Item {item_id} expired at {expires.isoformat()}")

        self._increment_visits(item_id)
        return row.url

    def _increment_visits(self, item_id: int) -> None:
        """UPDATE visits = visits + 1; logged, never raised"""
        try:
            with self._session(f"increment visits of {item_id}") as session:
                session.query(Link).filter(Link.id == to_signed_id(item_id)).update(
                    {Link.visits: Link.visits + 1},
                    synchronize_session=False,
                )
                session.commit()
        except DataStoreError as e:
            logger.error("Error on increment visits %s: %s", item_id, e)

    async def load_info(self, item_id: int) -> Item:
        with self._session(f"load info of item {item_id}") as session:
            link = session.query(Link).filter(Link.id == to_signed_id(item_id)).first()

        if link is None:
            raise NoLinkError(f"Item {item_id} not found")

        item = Item(
            id=to_unsigned_id(link.id),
            url=link.url,
            expires=link.expires,
            visits=link.visits or 0,
        )
        if item.is_expired():
            raise NoLinkError(f"Item {item_id} expired at {item.expires.isoformat()}")
        return item

    async def find(self, url: str, expires: Optional[datetime] = None) -> Optional[int]:
        expires = as_utc(expires)
        if expires is None:
            lifetime = Link.expires.is_(None)
        elif expires < utcnow():
            return None
        else:
            lifetime = Link.expires == expires

        with self._session("find item by url") as session:
            row = session.query(Link.id).filter(Link.url == url, lifetime).first()

        return to_unsigned_id(row.id) if row is not None else None

    async def clean_expired(self) -> int:
        return await asyncio.to_thread(self._delete_expired)

    def _delete_expired(self) -> int:
        with self._session("delete expired links") as session:
            deleted = session.query(Link).filter(
                Link.expires.isnot(None),
                Link.expires < utcnow(),
            ).delete(synchronize_session=False)
            session.commit()

        if deleted:
            logger.info("Deleted %d expired links", deleted)
        return deleted

    async def stat(self) -> Dict[str, Any]:
        pool = self.engine.pool
        stats = {
            "backend": self.name,
            "dialect": self.engine.dialect.name,
            "status": pool.status(),
        }
        if isinstance(pool, QueuePool):
            stats.update(
                pool_size=pool.size(),
                checked_in=pool.checkedin(),
                checked_out=pool.checkedout(),
            )
        return stats

    async def close(self) -> None:
        self.engine.dispose()
        logger.info("Relational storage closed")


# Atomic check-and-set: the EXISTS check and the write run as one script,
# so two concurrent creations of the same id cannot both succeed.
CHECK_AND_SET_SCRIPT = """
local key = KEYS[1]

if redis.call('EXISTS', key) == 1 then
    return 'Duplicate'
end

redis.call('HSET', key, 'id', ARGV[1], 'url', ARGV[2], 'expires', ARGV[3], 'visits', 0)

if ARGV[4] ~= '' then
    redis.call('EXPIREAT', key, ARGV[4])
end

return 'Ok'
"""

# HINCRBY alone would resurrect a key that expired between read and increment
INCREMENT_VISITS_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return redis.call('HINCRBY', KEYS[1], 'visits', 1)
end
return nil
"""

DUPLICATE_REPLY = "Duplicate"
RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def handle_redis_error(method):
    """Wrap Redis-interacting methods so driver failures surface as DataStoreError"""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except redis.exceptions.RedisError as e:
            raise DataStoreError(f"Redis error in {method.__name__}: {e}") from e

    return wrapper


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def format_expires(expires: Optional[datetime]) -> str:
    return expires.astimezone(timezone.utc).strftime(RFC3339_FORMAT) if expires else ""


def parse_expires(value) -> Optional[datetime]:
    text = _text(value)
    if not text:
        return None
    return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))


class RedisLinkStorage(LinkStorageStrategy):
    """
    Redis implementation with native expiry.

    Layout: one hash per item at `<prefix><id>` with fields id, url,
    expires (RFC 3339, empty when absent) and visits. EXPIREAT is set when
    the item expires, so Redis removes records itself and no cleaner is needed.
    """

    name = "redis"

    def __init__(self, redis_client, key_prefix: str = "link:"):
        """
        Initialize Redis storage.

        Args:
            redis_client: Redis client instance (redis.Redis)
            key_prefix: Prefix of per-item hash keys
        """
        self.redis = redis_client
        self.key_prefix = key_prefix
        self._check_and_set = redis_client.register_script(CHECK_AND_SET_SCRIPT)
        self._increment_visits_script = redis_client.register_script(INCREMENT_VISITS_SCRIPT)

    def item_key(self, item_id: int) -> str:
        return f"{self.key_prefix}{item_id}"

    @handle_redis_error
    async def create(self, item: Item) -> None:
        expires_at = str(int(item.expires.timestamp())) if item.expires else ""
        result = self._check_and_set(
            keys=[self.item_key(item.id)],
            args=[item.id, item.url, format_expires(item.expires), expires_at],
        )
        if _text(result) == DUPLICATE_REPLY:
            raise ItemDuplicatedError(f"Item {item.id} already exists")

    @handle_redis_error
    async def load(self, item_id: int) -> str:
        key = self.item_key(item_id)
        url, expires = self.redis.hmget(key, "url", "expires")

        url = _text(url)
        if not url:
            raise NoLinkError(f"Item {item_id} not found")

        # EXPIREAT works at second granularity; the stored field is authoritative
        expires_at = parse_expires(expires)
        if expires_at is not None and expires_at < utcnow():
            raise NoLinkError(f"Item {item_id} expired at {expires_at.isoformat()}")

        try:
            self._increment_visits_script(keys=[key])
        except redis.exceptions.RedisError as e:
            logger.error("Error on increment visits %s: %s", item_id, e)

        return url

    @handle_redis_error
    async def load_info(self, item_id: int) -> Item:
        fields = {_text(k): v for k, v in self.redis.hgetall(self.item_key(item_id)).items()}
        if not fields.get("url"):
            raise NoLinkError(f"Item {item_id} not found")

        item = Item(
            id=int(_text(fields.get("id")) or item_id),
            url=_text(fields["url"]),
            expires=parse_expires(fields.get("expires")),
            visits=int(_text(fields.get("visits")) or 0),
        )
        if item.is_expired():
            raise NoLinkError(f"Item {item_id} expired at {item.expires.isoformat()}")
        return item

    @handle_redis_error
    async def stat(self) -> Dict[str, Any]:
        clients = self.redis.info("clients")
        return {
            "backend": self.name,
            "connected_clients": clients.get("connected_clients"),
            "max_connections": self.redis.connection_pool.max_connections,
        }

    async def close(self) -> None:
        self.redis.close()
        logger.info("Redis storage closed")


class EmbeddedLinkStorage(LinkStorageStrategy):
    """
    Embedded key/value implementation on a single SQLite file.

    Two buckets (tables of key/value pairs):
    - `<bucket>`: key = decimal id, value = JSON-serialized Item
    - `<bucket>_ttl`: key = decimal unix expiry timestamp, value = primary key

    Every mutation touching both buckets runs in one transaction so an item
    and its expiry index entry never disagree. The expiry index drives
    clean_expired(); reads still check expiry themselves.

    Connections are opened per operation, so the storage is safe to share
    between threads.
    """

    name = "embedded"
    supports_clean_expired = True

    def __init__(self, db_path: str = "links.db", bucket: str = "links", timeout: float = 1.0):
        """
        Open (or create) the storage file and its buckets.

        Args:
            db_path: Path to the storage file
            bucket: Name of the primary bucket; the index is `<bucket>_ttl`
            timeout: Seconds to wait for the file lock

        Raises:
            DataStoreError: the file can't be opened or the buckets created
        """
        if not bucket.isidentifier():
            raise ValueError(f"Invalid bucket name: {bucket!r}")

        self.db_path = db_path
        self.bucket = bucket
        self.bucket_ttl = f"{bucket}_ttl"
        self.timeout = timeout
        self._init_database()

    def _init_database(self):
        """Create buckets if they don't exist"""
        with self._transaction("create buckets") as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.bucket} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL
                )
            """)
            # Several items may share an expiry second, so the pair is the key
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.bucket_ttl} (
                    key TEXT NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (key, value)
                )
            """)
            # Older files stored unpadded second counts
            conn.execute(
                f"UPDATE OR IGNORE {self.bucket_ttl} "
                f"SET key = substr('00000000000000000000' || key, -20) WHERE length(key) < 20"
            )

    def _connect(self) -> sqlite3.Connection:
        try:
            return sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise DataStoreError(f"Can't open embedded storage {self.db_path}: {e}") from e

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Write transaction; the file lock is taken up front"""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise DataStoreError(f"Can't {action}: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _view(self, action: str) -> Iterator[sqlite3.Connection]:
        """Read-only access"""
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise DataStoreError(f"Can't {action}: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def item_key(item_id: int) -> str:
        return str(item_id)

    @staticmethod
    def ttl_key(expires: datetime) -> str:
        # Fixed width so text order is time order
        return f"{max(0, int(expires.timestamp())):020d}"

    def _decode(self, raw, item_id) -> Item:
        try:
            return Item.model_validate_json(raw)
        except ValidationError as e:
            raise DataStoreError(f"Can't decode item {item_id}: {e}") from e

    def _get(self, conn: sqlite3.Connection, item_id: int) -> Optional[Item]:
        row = conn.execute(
            f"SELECT value FROM {self.bucket} WHERE key = ?",
            (self.item_key(item_id),),
        ).fetchone()
        return self._decode(row[0], item_id) if row is not None else None

    def _put(self, conn: sqlite3.Connection, item: Item) -> None:
        conn.execute(
            f"INSERT OR REPLACE INTO {self.bucket} (key, value) VALUES (?, ?)",
            (self.item_key(item.id), item.model_dump_json().encode("utf-8")),
        )

    def _delete(self, conn: sqlite3.Connection, item: Item) -> None:
        key = self.item_key(item.id)
        conn.execute(f"DELETE FROM {self.bucket} WHERE key = ?", (key,))
        if item.expires is not None:
            conn.execute(
                f"DELETE FROM {self.bucket_ttl} WHERE key = ? AND value = ?",
                (self.ttl_key(item.expires), key.encode("utf-8")),
            )

    async def create(self, item: Item) -> None:
        key = self.item_key(item.id)
        with self._transaction(f"create item {item.id}") as conn:
            existing = self._get(conn, item.id)
            if existing is not None:
                if not existing.is_expired():
                    raise ItemDuplicatedError(f"Item {item.id} already exists")
                # Expired but not swept yet: the id is free again
                self._delete(conn, existing)

            self._put(conn, item)
            if item.expires is not None:
                conn.execute(
                    f"INSERT OR REPLACE INTO {self.bucket_ttl} (key, value) VALUES (?, ?)",
                    (self.ttl_key(item.expires), key.encode("utf-8")),
                )

    async def load(self, item_id: int) -> str:
        item = await self.load_info(item_id)
        self._increment_visits(item_id)
        return item.url

    def _increment_visits(self, item_id: int) -> None:
        """Read-modify-write of the stored record; logged, never raised"""
        try:
            with self._transaction(f"increment visits of {item_id}") as conn:
                item = self._get(conn, item_id)
                if item is not None:
                    self._put(conn, item.model_copy(update={"visits": item.visits + 1}))
        except DataStoreError as e:
            logger.error("Error on increment visits %s: %s", item_id, e)

    async def load_info(self, item_id: int) -> Item:
        with self._view(f"load item {item_id}") as conn:
            item = self._get(conn, item_id)

        if item is None:
            raise NoLinkError(f"Item {item_id} not found")
        if item.is_expired():
            raise NoLinkError(f"Item {item_id} expired at {item.expires.isoformat()}")
        return item

    async def clean_expired(self) -> int:
        """Range-scan the expiry index up to now and drop what has expired"""
        return await asyncio.to_thread(self._delete_expired)

    def _delete_expired(self) -> int:
        now = utcnow()
        deleted = 0
        with self._transaction("delete expired links") as conn:
            candidates = conn.execute(
                f"SELECT key, value FROM {self.bucket_ttl} WHERE key <= ?",
                (self.ttl_key(now),),
            ).fetchall()

            for ttl_key, primary_key in candidates:
                primary_key = _text(primary_key)
                item = self._get(conn, int(primary_key))
                if item is None:
                    # Dangling index entry
                    conn.execute(
                        f"DELETE FROM {self.bucket_ttl} WHERE key = ? AND value = ?",
                        (ttl_key, primary_key.encode("utf-8")),
                    )
                    continue
                if item.is_expired(now):
                    self._delete(conn, item)
                    deleted += 1

        if deleted:
            logger.info("Deleted %d expired links", deleted)
        return deleted

    async def stat(self) -> Dict[str, Any]:
        with self._view("read storage stats") as conn:
            items = conn.execute(f"SELECT COUNT(*) FROM {self.bucket}").fetchone()[0]
            indexed = conn.execute(f"SELECT COUNT(*) FROM {self.bucket_ttl}").fetchone()[0]

        return {
            "backend": self.name,
            "path": self.db_path,
            "items": items,
            "expiry_index": indexed,
            "file_size": os.path.getsize(self.db_path) if os.path.exists(self.db_path) else 0,
        }

    async def close(self) -> None:
        """Connections are per operation; nothing stays open between calls"""
        logger.info("Embedded storage closed")
