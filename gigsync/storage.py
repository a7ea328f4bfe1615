"""Persisted client state: the token and the serialized session snapshot."""
from __future__ import annotations

from typing import Dict, List, Optional

from sqlalchemy import delete, select

from gigsync.config import STORAGE_URL
from gigsync.db import Base, create_storage_engine, make_session_factory
from gigsync.models import StorageSlot

TOKEN_KEY = "token"
USER_KEY = "user"
ADMIN_TOKEN_KEY = "adminToken"
ADMIN_USER_KEY = "adminUser"
REDIRECT_PATH_KEY = "redirectPath"

SESSION_KEYS = (TOKEN_KEY, USER_KEY, ADMIN_TOKEN_KEY, ADMIN_USER_KEY)


class ClientStorage:
    """Key/value slots that survive a restart of the host process."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryStorage(ClientStorage):
    """Process-local storage; also used for the navigator's per-session slots."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class SqlStorage(ClientStorage):
    """Storage slots kept in a SQL table (SQLite file by default)."""

    def __init__(self, url: str = STORAGE_URL) -> None:
        self.engine = create_storage_engine(url)
        Base.metadata.create_all(self.engine)
        self._session_factory = make_session_factory(self.engine)

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            slot = session.get(StorageSlot, key)
            return slot.value if slot is not None else None

    def set(self, key: str, value: str) -> None:
        with self._session_factory() as session:
            session.merge(StorageSlot(key=key, value=value))
            session.commit()

    def remove(self, key: str) -> None:
        with self._session_factory() as session:
            session.execute(delete(StorageSlot).where(StorageSlot.key == key))
            session.commit()

    def keys(self) -> List[str]:
        with self._session_factory() as session:
            return list(session.execute(select(StorageSlot.key)).scalars().all())

    def close(self) -> None:
        self.engine.dispose()
