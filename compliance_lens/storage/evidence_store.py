"""Local evidence store: bounded, file-backed inspection history."""

import asyncio
import json
import logging
import os
import shutil
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from ..models.analysis import AnalysisResult
from ..models.history import HistoryItem
from ..models.image import NormalizedImage
from ..utils.errors import StorageError

logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 20
RECORD_SUFFIX = ".json"

T = TypeVar("T")


def generate_item_id() -> str:
    """
    Create a history item id.

    Combines the current time in milliseconds (hex) with a random suffix,
    so ids sort roughly by creation time and never collide in practice.
    """
    return f"{time.time_ns() // 1_000_000:x}-{uuid.uuid4().hex[:8]}"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceStore:
    """
    Persists inspections as one JSON record per item under a root directory.

    Holds at most `capacity` items; the oldest by timestamp are evicted after
    each append. Every blocking primitive goes through `_run`, which executes
    it off the event loop and reports all failures as StorageError.
    Assumes a single writer per root directory.
    """

    def __init__(
        self,
        root_dir: str = "data/history",
        capacity: int = MAX_HISTORY_ITEMS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize EvidenceStore.

        Args:
            root_dir: Directory holding the history records
            capacity: Maximum number of items kept
            clock: Optional callable returning the current aware datetime
        """
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self.root_dir = Path(root_dir)
        self.capacity = capacity
        self._clock = clock or _utc_now
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    async def open(self) -> bool:
        """
        Prepare the root directory.

        Returns:
            True if the store is usable; False if it stays unavailable
            (every later operation then degrades to empty history)
        """
        try:
            await self._run("open", self._ensure_root)
        except StorageError as e:
            logger.error(f"Evidence store unavailable: {e}")
            self._opened = False
            return False

        self._opened = True
        logger.info(f"Opened evidence store: root={self.root_dir}, capacity={self.capacity}")
        return True

    async def close(self) -> None:
        if self._opened:
            logger.info(f"Closed evidence store: root={self.root_dir}")
        self._opened = False

    async def __aenter__(self) -> "EvidenceStore":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """
        Await one blocking storage primitive.

        Raises:
            StorageError: For any I/O or decode failure, or a closed store
        """
        if operation != "open" and not self._opened:
            raise StorageError.operation_failed(operation, RuntimeError("store is not open"))
        try:
            return await asyncio.to_thread(func, *args)
        except (OSError, ValueError, TypeError, KeyError) as e:
            raise StorageError.operation_failed(operation, e) from e

    # Public operations

    async def list(self) -> List[HistoryItem]:
        """
        Return all items, newest first.

        Never raises; storage failures yield an empty list.
        """
        try:
            records = await self._run("list", self._load_records)
        except StorageError as e:
            logger.error(f"Failed to list history, returning empty: {e}")
            return []
        return [item for item, _ in records]

    async def append(
        self,
        result: AnalysisResult,
        image: NormalizedImage,
        timestamp: Optional[datetime] = None
    ) -> List[HistoryItem]:
        """
        Save a new inspection and enforce capacity.

        Args:
            result: Analysis to keep
            image: Exact image that was analyzed
            timestamp: Capture time; defaults to now

        Returns:
            Refreshed history, newest first. On a failed write this is the
            best-effort current history.
        """
        item = HistoryItem(
            id=generate_item_id(),
            timestamp=timestamp or self._clock(),
            image=image,
            result=result,
        )

        try:
            await self._run("write", self._write_record, item)
            logger.info(f"Saved history item {item.id} ({len(result.violations)} violation(s))")
        except StorageError as e:
            logger.error(f"Failed to save history item {item.id}: {e}")
            return await self.list()

        try:
            evicted = await self._run("evict", self._enforce_capacity)
            if evicted:
                logger.info(f"Evicted {evicted} oldest history item(s)")
        except StorageError as e:
            logger.error(f"Failed to enforce history capacity: {e}")

        return await self.list()

    async def clear(self) -> None:
        """
        Delete every item. Idempotent; failures are logged, not raised.

        A store that was never opened (or was closed) is opened first, so
        clearing always reaches the records on disk when the directory is usable.
        """
        if not self._opened and not await self.open():
            return
        try:
            removed = await self._run("clear", self._delete_all)
            logger.info(f"Cleared history: {removed} item(s) removed")
        except StorageError as e:
            logger.error(f"Failed to clear history: {e}")

    async def get(self, item_id: str) -> Optional[HistoryItem]:
        """Look up one item by id; None if absent or unreadable."""
        for item in await self.list():
            if item.id == item_id:
                return item
        return None

    # Blocking primitives (run via _run)

    def _ensure_root(self) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _record_path(self, item_id: str) -> Path:
        return self.root_dir / f"{item_id}{RECORD_SUFFIX}"

    def _write_record(self, item: HistoryItem) -> Path:
        path = self._record_path(item.id)
        tmp_path = path.with_name(f".{path.name}.tmp")
        payload = json.dumps(item.to_dict())

        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp_path, path)

        logger.debug(f"Wrote history record: {path} ({len(payload)} bytes)")
        return path

    def _load_records(self) -> List[Tuple[HistoryItem, Path]]:
        records = []
        for path in self.root_dir.glob(f"*{RECORD_SUFFIX}"):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                records.append((HistoryItem.from_dict(data), path))
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping unreadable history record {path.name}: {e}")

        records.sort(key=lambda record: (record[0].timestamp, record[0].id), reverse=True)
        return records

    def _enforce_capacity(self) -> int:
        records = self._load_records()
        overflow = records[self.capacity:]
        for item, path in overflow:
            path.unlink(missing_ok=True)
            logger.debug(f"Evicted history item {item.id}")
        return len(overflow)

    def _delete_all(self) -> int:
        if not self.root_dir.exists():
            return 0

        removed = 0
        for path in self.root_dir.iterdir():
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
                if path.suffix == RECORD_SUFFIX:
                    removed += 1
        return removed
