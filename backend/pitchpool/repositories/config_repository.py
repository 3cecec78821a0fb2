"""Key/value access to the ``platform_config`` table."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from pitchpool.models import PlatformConfig, utcnow


class PlatformConfigRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_value(self, key: str) -> Any:
        record = self._session.get(PlatformConfig, key)
        return record.value if record is not None else None

    def get_values(self, keys: Iterable[str]) -> dict[str, Any]:
        wanted = list(keys)
        if not wanted:
            return {}
        query = select(PlatformConfig).where(PlatformConfig.key.in_(wanted))
        return {record.key: record.value for record in self._session.execute(query).scalars()}

    def set_value(self, key: str, value: Any) -> PlatformConfig:
        record = self._session.get(PlatformConfig, key)
        if record is None:
            record = PlatformConfig(key=key, value=value)
            self._session.add(record)
        else:
            record.value = value
            record.updated_at = utcnow()
        self._session.flush()
        return record


__all__ = ["PlatformConfigRepository"]
