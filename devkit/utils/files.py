"""Filesystem helpers shared by the builder, tester and dev server."""

import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Optional

logger = logging.getLogger(__name__)


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if it does not exist."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def copy_dir(src: Path, dest: Path) -> None:
    """Recursively copy a directory, merging into an existing destination."""
    shutil.copytree(src, dest, dirs_exist_ok=True)


def read_dir_recursive(root: Path, file_filter: Optional[Callable[[Path], bool]] = None) -> List[Path]:
    """Return every file under root, optionally filtered.

    Args:
        root: Directory to walk
        file_filter: Called with each file path; files returning False are skipped

    Returns:
        Absolute file paths, in no particular order
    """
    files = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            if file_filter is None or file_filter(path):
                files.append(path)
    return files


def list_plugin_files(root: Path, ignore_dirs: Iterable[str]) -> List[str]:
    """List files under a plugin directory as sorted relative posix paths.

    Dot-files, dot-directories and any directory named in ignore_dirs are skipped.
    """
    ignored = set(ignore_dirs)
    files = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in ignored and not d.startswith(".")]
        for filename in filenames:
            if filename.startswith("."):
                continue
            files.append((Path(dirpath) / filename).relative_to(root).as_posix())
    return sorted(files)


def is_safe_path(relative: str) -> bool:
    """Check that a relative path cannot escape its base directory."""
    normalized = os.path.normpath(relative)
    if os.path.isabs(normalized):
        return False
    return normalized != ".." and not normalized.startswith(".." + os.sep)
