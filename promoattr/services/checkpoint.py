"""
Append-only checkpoint files for batch runs.

- visited.jsonl: one VisitRecord per URL that loaded (found or not)
- errors.jsonl:  one ErrorRecord per URL that failed
- heartbeat.json: latest batch counters, overwritten as the batch progresses
- visited_with_discounts.jsonl: visited records after the discount backfill
  (a full snapshot, rewritten on every backfill run)

A restarted batch skips every URL already in visited.jsonl or errors.jsonl. Lines are
written whole and flushed, so a crash loses at most the page in flight.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Set, Union

from promoattr.models.schemas import ErrorRecord, VisitRecord
from promoattr.util.logger import get_logger

logger = get_logger(__name__)

VISITED_FILE = "visited.jsonl"
ERRORS_FILE = "errors.jsonl"
HEARTBEAT_FILE = "heartbeat.json"
BACKFILLED_FILE = "visited_with_discounts.jsonl"


def iter_jsonl(path: Union[str, Path]) -> Iterator[dict]:
    """Parsed lines of a JSONL file; malformed lines are logged and skipped."""
    path = Path(path)
    if not path.exists():
        return
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except ValueError:
                logger.warning(f"skipping malformed line in {path}: {line[:100]}")


class Checkpoint:
    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.visited_path = self.data_dir / VISITED_FILE
        self.errors_path = self.data_dir / ERRORS_FILE
        self.heartbeat_path = self.data_dir / HEARTBEAT_FILE
        self.backfilled_path = self.data_dir / BACKFILLED_FILE

    def load_done(self) -> Set[str]:
        done: Set[str] = set()
        for path in (self.visited_path, self.errors_path):
            for rec in iter_jsonl(path):
                if rec.get("url"):
                    done.add(rec["url"])
        return done

    def visited(self) -> Iterator[VisitRecord]:
        for rec in iter_jsonl(self.visited_path):
            yield VisitRecord(**rec)

    def _append(self, path: Path, line: str) -> None:
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()

    def record_visit(self, rec: VisitRecord) -> None:
        self._append(self.visited_path, rec.model_dump_json())

    def record_error(self, rec: ErrorRecord) -> None:
        self._append(self.errors_path, rec.model_dump_json())

    def write_heartbeat(self, stats: Dict[str, Any]) -> None:
        """Overwrite heartbeat.json with the latest counters (monitoring only, never read back)."""
        tmp = self.heartbeat_path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(stats, f, indent=2)
        tmp.replace(self.heartbeat_path)

    def backfilled(self) -> Iterator[VisitRecord]:
        for rec in iter_jsonl(self.backfilled_path):
            yield VisitRecord(**rec)

    def write_backfilled(self, records: Iterable[VisitRecord]) -> int:
        """Replace visited_with_discounts.jsonl with `records`; returns the line count."""
        n = 0
        with open(self.backfilled_path, "w", encoding="utf-8") as f:
            for rec in records:
                f.write(rec.model_dump_json() + "\n")
                n += 1
        return n
