"""Evidence hand-off files between the round runner and the referee."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from coinflip_referee.models.records import EvidenceBundle, RefereeRecord

log = logging.getLogger(__name__)

LATEST_ROUND = "round.json"
REFEREE_RESULT = "referee.json"


class EvidenceFiles:
    """Reads and writes evidence bundles under one artifacts directory.

    Each round gets its own immutable `round-<game>.json`; `round.json` is a
    copy of the most recent one for tools that only want the latest.
    """

    def __init__(self, artifacts_dir: str | Path) -> None:
        self.root = Path(artifacts_dir).expanduser()

    def round_path(self, game: str) -> Path:
        return self.root / f"round-{game}.json"

    @property
    def latest_path(self) -> Path:
        return self.root / LATEST_ROUND

    @property
    def referee_path(self) -> Path:
        return self.root / REFEREE_RESULT

    def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        tmp.replace(path)

    def write_round(self, bundle: EvidenceBundle) -> Path:
        path = self.round_path(bundle.game)
        if path.exists():
            raise FileExistsError(f"evidence for game {bundle.game} already written: {path}")
        data = bundle.to_dict()
        self._write_json(path, data)
        self._write_json(self.latest_path, data)
        log.info("Evidence written to %s", path)
        return path

    def read_round(self, game: str | None = None) -> EvidenceBundle:
        """Load the bundle for `game`, or the latest one."""
        path = self.round_path(game) if game else self.latest_path
        if not path.exists():
            raise FileNotFoundError(f"no evidence file at {path}; run a round first")
        with open(path) as f:
            return EvidenceBundle.from_dict(json.load(f))

    def write_referee(self, record: RefereeRecord) -> Path:
        self._write_json(self.referee_path, record.to_dict())
        log.info("Referee result written to %s", self.referee_path)
        return self.referee_path
