from __future__ import annotations

from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from pitchpool.domain.models import MatchSnapshot


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return date_parser.isoparse(str(value))
    except (ValueError, TypeError):
        return None


def _parse_score(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _team_name(raw_team: Any) -> str | None:
    if not isinstance(raw_team, dict):
        return None
    name = raw_team.get("name") or raw_team.get("shortName")
    return str(name) if name else None


def normalize_match(raw_match: dict[str, Any]) -> MatchSnapshot | None:
    """Convert a football-data.org match payload into a :class:`MatchSnapshot`.

    Only the full-time score is used; penalty shoot-outs and extra time do not
    change a market's outcome.
    """

    if not isinstance(raw_match, dict):
        return None
    # Single-match responses are occasionally wrapped as {"match": {...}}.
    if "id" not in raw_match and isinstance(raw_match.get("match"), dict):
        raw_match = raw_match["match"]

    match_id = raw_match.get("id")
    if match_id is None:
        return None
    try:
        match_id = int(match_id)
    except (TypeError, ValueError):
        return None

    score = raw_match.get("score") if isinstance(raw_match.get("score"), dict) else {}
    full_time = score.get("fullTime") if isinstance(score.get("fullTime"), dict) else {}

    return MatchSnapshot(
        match_id=match_id,
        status=str(raw_match.get("status") or "").upper(),
        home_score=_parse_score(full_time.get("home")),
        away_score=_parse_score(full_time.get("away")),
        home_team=_team_name(raw_match.get("homeTeam")),
        away_team=_team_name(raw_match.get("awayTeam")),
        kickoff=_parse_datetime(raw_match.get("utcDate")),
        raw_data=raw_match,
    )
