"""JSON-file persistence for StrategyState.

The state file is the only durability boundary in the bot: crash recovery
is "reload the last saved snapshot and resume ticking". Writes go to a
sibling temp file that is then renamed over the target, so a crash mid-write
leaves the previous snapshot intact.

Single writer only. Two processes sharing one state file will corrupt the
ledger; there is no lock.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from pathlib import Path

from rebalancer.logging import get_logger
from rebalancer.models import StrategyState

logger = get_logger(__name__)


class StateStore:
    """Load/save/update the persisted StrategyState.

    Args:
        path: Location of the JSON state file. Parent directories are
            created on first save.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> StrategyState:
        """Return the persisted state, or a zero-valued default.

        The default (empty counters, empty ledger, no last action) is
        returned when the file is missing, empty, not UTF-8, or not valid JSON.
        """
        if not self._path.exists():
            return StrategyState()

        try:
            raw = self._path.read_text(encoding="utf-8").lstrip("\ufeff").strip()
            if not raw:
                return StrategyState()
            data = json.loads(raw)
        # UnicodeDecodeError and JSONDecodeError are both ValueErrors
        except ValueError as exc:
            logger.warning(
                "state_file_unreadable",
                path=str(self._path),
                error=str(exc),
            )
            return StrategyState()

        return StrategyState.from_dict(data)

    def save(self, state: StrategyState) -> None:
        """Overwrite the state file with ``state``."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def update(self, fn: Callable[[StrategyState], StrategyState]) -> StrategyState:
        """Read-modify-write: load, apply ``fn``, save, and return the new state."""
        next_state = fn(self.load())
        self.save(next_state)
        return next_state
