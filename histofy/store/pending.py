"""JSON file backed queue of pending changes."""

import json
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from histofy.models.changes import DateSelectionChange, PendingChange, PendingChangeQueue
from histofy.utils.logging import get_logger

logger = get_logger(__name__)

_IDENTITY_FIELDS = {"id", "timestamp"}


class PendingChangeStore:
    """Durable queue the deployer consumes and drains."""

    def __init__(self, path: Path | str = "data/pending_changes.json") -> None:
        """
        Initialize store.

        Args:
            path: JSON file holding the queue (created on first write)
        """
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Pending change store initialized", path=str(self.path))

    def _read(self) -> PendingChangeQueue:
        if not self.path.exists():
            return PendingChangeQueue()

        try:
            content = json.loads(self.path.read_text())
            return PendingChangeQueue.model_validate({"changes": content.get("changes", [])})
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to load pending changes", path=str(self.path), error=str(e))
            raise

    def _write(self, queue: PendingChangeQueue) -> None:
        content = {
            "changes": [change.model_dump(mode="json") for change in queue.changes],
            "updated_at": datetime.now().isoformat(),
        }
        self.path.write_text(json.dumps(content, indent=2))
        logger.debug("Pending changes saved", path=str(self.path), count=len(queue.changes))

    def list_pending(self) -> list[PendingChange]:
        """All queued changes, oldest first."""
        return list(self._read().changes)

    def get(self, change_id: str) -> PendingChange | None:
        return next((c for c in self._read().changes if c.id == change_id), None)

    def add(self, change: PendingChange) -> str | None:
        """
        Queue a change.

        A date selection replaces the dates it covers in earlier selections of
        the same user and year. A selection without any non-zero level only
        clears those dates and is not stored itself. Other change kinds are
        skipped when an identical change is already queued.

        Args:
            change: Change to queue

        Returns:
            Id of the stored change, or None when nothing was stored
        """
        queue = self._read()

        if isinstance(change, DateSelectionChange):
            queue.changes = self._without_dates(queue.changes, change)
            if not change.has_commits():
                self._write(queue)
                logger.info("Selection cleared dates", dates=len(change.dates))
                return None
        elif any(self._same_payload(existing, change) for existing in queue.changes):
            logger.info("Skipped duplicate change", type=change.type)
            return None

        queue.changes.append(change)
        self._write(queue)
        logger.info("Pending change added", id=change.id, type=change.type)
        return change.id

    def remove(self, change_id: str) -> bool:
        queue = self._read()
        remaining = [c for c in queue.changes if c.id != change_id]
        if len(remaining) == len(queue.changes):
            logger.debug("Pending change not found", id=change_id)
            return False

        queue.changes = remaining
        self._write(queue)
        logger.info("Pending change removed", id=change_id)
        return True

    def clear(self) -> int:
        """Empty the queue and return how many changes were dropped."""
        count = len(self._read().changes)
        self._write(PendingChangeQueue())
        logger.info("Pending changes cleared", count=count)
        return count

    @staticmethod
    def _without_dates(
        changes: list[PendingChange], selection: DateSelectionChange
    ) -> list[PendingChange]:
        covered = set(selection.dates)
        kept: list[PendingChange] = []

        for existing in changes:
            if not (
                isinstance(existing, DateSelectionChange)
                and existing.username == selection.username
                and existing.year == selection.year
                and covered.intersection(existing.dates)
            ):
                kept.append(existing)
                continue

            dates = [d for d in existing.dates if d not in covered]
            if not dates:
                continue
            kept.append(
                existing.model_copy(
                    update={
                        "dates": dates,
                        "contributions": {
                            d: level for d, level in existing.contributions.items() if d in dates
                        },
                    }
                )
            )
        return kept

    @staticmethod
    def _same_payload(a: PendingChange, b: PendingChange) -> bool:
        return a.model_dump(exclude=_IDENTITY_FIELDS) == b.model_dump(exclude=_IDENTITY_FIELDS)
