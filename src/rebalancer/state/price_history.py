"""Bounded on-disk history of price samples for the status API."""

from __future__ import annotations

import json
import os
from pathlib import Path

from rebalancer.logging import get_logger
from rebalancer.models import PriceSample

logger = get_logger(__name__)


class PriceHistory:
    """Append-only JSON list of price points, trimmed to the newest ``limit``.

    Each point is ``{timestamp, priceRatio, discountPct, premiumPct}``.
    A limit of 0 disables recording.
    """

    def __init__(self, path: str | Path, limit: int = 2000) -> None:
        self._path = Path(path)
        self._limit = limit

    def load(self) -> list[dict]:
        """Return stored points oldest-first. Missing, empty, or undecodable files yield []."""
        if not self._path.exists():
            return []
        try:
            raw = self._path.read_text(encoding="utf-8").lstrip("\ufeff").strip()
            if not raw:
                return []
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning(
                "price_history_unreadable", path=str(self._path), error=str(exc)
            )
            return []
        points = data.get("points") if isinstance(data, dict) else None
        return points if isinstance(points, list) else []

    def append(self, sample: PriceSample) -> None:
        if self._limit <= 0:
            return
        points = self.load()
        points.append(sample.to_dict())
        if len(points) > self._limit:
            points = points[-self._limit :]

        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps({"points": points}, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)
