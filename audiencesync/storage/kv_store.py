"""audiencesync — Durable Key-Value Store.

Minimal get/put/delete contract over the ``kv_entries`` table. Errors from
the database propagate; callers that want fail-closed semantics wrap this
in ``ResourceCache``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from audiencesync.models.kv_models import KVEntry


class KeyValueStore:
    """Abstract durable key-value store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class SQLModelKVStore(KeyValueStore):
    """Key-value store persisted through SQLModel (SQLite or PostgreSQL)."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with Session(self.engine) as session:
            entry = session.get(KVEntry, key)
            if entry is None:
                return None
            if entry.expires_at and _as_utc(entry.expires_at) <= datetime.now(
                timezone.utc
            ):
                session.delete(entry)
                session.commit()
                return None
            return entry.value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        with Session(self.engine) as session:
            entry = session.get(KVEntry, key)
            if entry is None:
                entry = KVEntry(key=key, value=value)
            entry.value = value
            entry.expires_at = expires_at
            entry.updated_at = now
            session.add(entry)
            session.commit()

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(KVEntry, key)
            if entry is not None:
                session.delete(entry)
                session.commit()
