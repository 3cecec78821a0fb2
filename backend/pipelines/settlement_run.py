"""Standalone job that syncs match statuses and settles finished markets."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from loguru import logger

from matchfeed.client import FootballDataClient
from pitchpool.core.config import Settings, get_settings
from pitchpool.db import SessionFactory, init_db
from pitchpool.domain.models import AutomationCycleSummary
from pitchpool.errors import SettlementError
from pitchpool.services.automation_service import AutomationService, MatchResultProvider


class SettlementPipeline:
    """Run one automation cycle: poll the match feed, resolve what has finished."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        result_provider: MatchResultProvider | None = None,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = result_provider is None
        self._provider = result_provider or FootballDataClient(
            base_url=str(self.settings.football_data_base_url),
            api_keys=self.settings.football_data_api_keys,
            timeout=self.settings.football_data_timeout_seconds,
        )
        self._service = AutomationService(
            session_factory=session_factory,
            settings=self.settings,
            result_provider=self._provider,
        )

    def run(
        self,
        *,
        limit: int | None = None,
        market_ids: Sequence[str] | None = None,
    ) -> AutomationCycleSummary:
        if market_ids:
            return self._resolve_specific(market_ids)
        logger.info("Starting settlement sweep: limit={}", limit)
        return self._service.run_automation_cycle(limit=limit)

    def _resolve_specific(self, market_ids: Sequence[str]) -> AutomationCycleSummary:
        summary = AutomationCycleSummary()
        for market_id in market_ids:
            summary.checked_markets += 1
            try:
                self._service.resolve_market(market_id)
            except SettlementError as exc:
                logger.warning("Could not resolve market {}: {}", market_id, exc)
                summary.failures.append(
                    {"market_id": market_id, "reason": str(exc), "kind": exc.kind}
                )
                continue
            summary.resolved_markets += 1
        return summary

    def close(self) -> None:
        if self._owns_client and isinstance(self._provider, FootballDataClient):
            self._provider.close()


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync match statuses and resolve finished markets",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum number of markets to check")
    parser.add_argument(
        "--market-id",
        dest="market_ids",
        action="append",
        help="Resolve specific markets only (can be provided multiple times)",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(summary: AutomationCycleSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), default=str, indent=2))
    logger.info("Settlement summary written to {}", path)


def main(argv: Sequence[str] | None = None) -> AutomationCycleSummary:
    args = _parse_args(argv)
    settings = get_settings()
    init_db()
    pipeline = SettlementPipeline(settings)
    try:
        summary = pipeline.run(limit=args.limit, market_ids=args.market_ids)
    finally:
        pipeline.close()

    summary_path = args.summary_path or (
        Path(settings.settlement_summary_path) if settings.settlement_summary_path else None
    )
    if summary_path:
        _write_summary(summary, summary_path)
    return summary


if __name__ == "__main__":
    main()
