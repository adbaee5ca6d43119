"""Shared fixtures: plugin directories on disk."""

from pathlib import Path
from typing import Dict, Optional

import pytest
import yaml

VALID_MANIFEST = {
    "name": "stat-tracker",
    "version": "1.0.0",
    "author": "x",
    "description": "Tracks server stats",
    "permissions": {"read": True},
}

VALID_ENTRY = '''from devkit import PluginBase


class StatTracker(PluginBase):
    async def on_load(self):
        self.logger.info("loaded")

    async def on_enable(self):
        self.context.events.emit("stat-tracker:enabled", {"name": self.name})
'''


def write_plugin(
    root: Path,
    manifest: Optional[dict] = None,
    entry: Optional[str] = VALID_ENTRY,
    files: Optional[Dict[str, str]] = None,
    dirname: str = "stat-tracker",
) -> Path:
    """Create a plugin directory under root and return it.

    Pass entry=None to leave out plugin.py, manifest={} to leave out plugin.yaml.
    """
    plugin_dir = root / dirname
    plugin_dir.mkdir(parents=True, exist_ok=True)
    manifest = VALID_MANIFEST if manifest is None else manifest
    if manifest:
        (plugin_dir / "plugin.yaml").write_text(yaml.safe_dump(manifest, sort_keys=False), encoding="utf-8")
    if entry is not None:
        (plugin_dir / "plugin.py").write_text(entry, encoding="utf-8")
    for relative, content in (files or {}).items():
        path = plugin_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return plugin_dir


@pytest.fixture
def plugin_dir(tmp_path):
    """A valid plugin with a manifest, entry file and README."""
    return write_plugin(tmp_path, files={"README.md": "# stat-tracker\n"})


@pytest.fixture
def valid_manifest():
    return dict(VALID_MANIFEST)


@pytest.fixture
def make_plugin(tmp_path):
    """Factory fixture around write_plugin rooted at tmp_path."""
    def factory(**kwargs):
        return write_plugin(tmp_path, **kwargs)
    return factory
