"""Filesystem watching for the dev server and the builder's watch mode."""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Iterable, List

from watchfiles import Change, DefaultFilter, awatch

from devkit.constants import IGNORED_DIRS

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


_KINDS = {
    Change.added: ChangeKind.ADDED,
    Change.modified: ChangeKind.CHANGED,
    Change.deleted: ChangeKind.REMOVED,
}


@dataclass
class FileEvent:
    kind: ChangeKind
    path: Path
    relative: str


class FileWatcher:
    """Yields batches of file events under a root directory.

    Args:
        root: Directory to watch recursively
        ignore_dirs: Directory names skipped wherever they appear
        ignore_paths: Absolute files or directories to skip
        debounce_ms: Window in which changes are grouped into one batch
    """

    def __init__(
        self,
        root: Path,
        ignore_dirs: Iterable[str] = IGNORED_DIRS,
        ignore_paths: Iterable[Path] = (),
        debounce_ms: int = 300,
    ):
        self.root = Path(root).resolve()
        self.debounce_ms = debounce_ms
        self.watch_filter = DefaultFilter(
            ignore_dirs=tuple(DefaultFilter.ignore_dirs) + tuple(ignore_dirs),
            ignore_paths=[str(Path(p).resolve()) for p in ignore_paths],
        )

    def to_event(self, change: Change, path: str) -> FileEvent:
        absolute = Path(path)
        try:
            relative = absolute.relative_to(self.root).as_posix()
        except ValueError:
            relative = absolute.as_posix()
        return FileEvent(_KINDS.get(change, ChangeKind.CHANGED), absolute, relative)

    async def changes(self, stop_event=None) -> AsyncIterator[List[FileEvent]]:
        """Iterate change batches until stop_event is set.

        Args:
            stop_event: asyncio.Event that ends the iteration when set
        """
        logger.info(f"Watching {self.root}")
        async for batch in awatch(
            self.root,
            watch_filter=self.watch_filter,
            stop_event=stop_event,
            debounce=self.debounce_ms,
        ):
            events = sorted((self.to_event(change, path) for change, path in batch), key=lambda e: e.relative)
            logger.debug(f"File changes: {[(e.kind.value, e.relative) for e in events]}")
            yield events
        logger.info(f"Stopped watching {self.root}")
