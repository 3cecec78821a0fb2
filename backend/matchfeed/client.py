from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger

from pitchpool.core.config import settings
from pitchpool.domain.models import MatchSnapshot
from pitchpool.errors import MatchFeedError

from .normalize import normalize_match


class FootballDataClient:
    """Thin wrapper around the football-data.org v4 match endpoints."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_keys: Sequence[str] | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or str(settings.football_data_base_url)).rstrip("/")
        keys = settings.football_data_api_keys if api_keys is None else api_keys
        self.api_keys = [key for key in keys if key]
        if not self.api_keys:
            logger.warning("No football-data API keys configured; requests will be unauthenticated")
        self._key_index = 0
        self.timeout = timeout or settings.football_data_timeout_seconds
        self.client = httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=transport)

    def _headers(self) -> dict[str, str]:
        if not self.api_keys:
            return {}
        return {"X-Auth-Token": self.api_keys[self._key_index]}

    def _rotate_key(self) -> bool:
        if len(self.api_keys) < 2:
            return False
        self._key_index = (self._key_index + 1) % len(self.api_keys)
        return True

    def fetch_match(self, match_id: int) -> dict[str, Any] | None:
        """Return the raw match payload, or ``None`` if the match does not exist."""

        path = f"/matches/{match_id}"
        attempts = max(1, len(self.api_keys))
        for attempt in range(attempts):
            logger.info("football-data GET {} (key #{})", path, self._key_index)
            try:
                response = self.client.get(path, headers=self._headers())
            except httpx.HTTPError as exc:
                raise MatchFeedError(f"Match feed request for {match_id} failed: {exc}") from exc

            if response.status_code == 404:
                return None
            if response.status_code == 429 and attempt + 1 < attempts and self._rotate_key():
                logger.warning("football-data rate limited; rotating API key")
                continue
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise MatchFeedError(
                    f"Match feed returned {response.status_code} for match {match_id}"
                ) from exc
            try:
                payload = response.json()
            except ValueError as exc:
                raise MatchFeedError(f"Match feed returned invalid JSON for {match_id}") from exc
            return payload if isinstance(payload, dict) else None
        raise MatchFeedError(f"All football-data API keys are rate limited (match {match_id})")

    def get_match(self, match_id: int) -> MatchSnapshot | None:
        payload = self.fetch_match(match_id)
        if payload is None:
            return None
        return normalize_match(payload)

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "FootballDataClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
