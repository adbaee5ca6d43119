"""Build pipeline for plugin directories.

Stages run strictly in order and the first failure aborts the build:
validate, stage-files, dependencies, assets, manifest, package (production
only). A failed build leaves its partial output in place; run ``clean``
before retrying.
"""

import asyncio
import hashlib
import json
import logging
import shlex
import shutil
import sys
import tarfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from devkit.constants import (
    BUILD_DIRS,
    BUILD_FILES,
    BUILD_MANIFEST_FILE,
    BUNDLER_COMMAND,
    BUNDLER_CONFIG_FILE,
    BUNDLER_OUTPUT_DIR,
    DEFAULT_BUILD_DIR,
    ENTRY_FILE,
    IGNORED_DIRS,
    MANIFEST_FILE,
    REQUIREMENTS_FILE,
    VENDOR_DIR,
)
from devkit.errors import BuildStageError
from devkit.plugins.manifest import PluginManifest, load_manifest
from devkit.tester import declared_requirements
from devkit.utils.files import copy_dir, ensure_dir, read_dir_recursive
from devkit.utils.process import check_command

logger = logging.getLogger(__name__)


@dataclass
class BuildOptions:
    output: Optional[Path] = None
    production: bool = False
    minify: bool = False
    source_maps: bool = False
    bundle_analyzer: bool = False

    @property
    def mode(self) -> str:
        return "production" if self.production else "development"


@dataclass
class BuildResult:
    output_dir: Path
    manifest: Dict[str, Any]
    package: Optional[Path] = None
    sidecar: Optional[Path] = None

    @property
    def checksum(self) -> str:
        return self.manifest["checksum"]


def collect_files(output_dir: Path) -> List[str]:
    """Every file under output_dir as sorted posix paths, minus the build manifest."""
    output_dir = Path(output_dir)
    files = [path.relative_to(output_dir).as_posix() for path in read_dir_recursive(output_dir)]
    return sorted(f for f in files if f != BUILD_MANIFEST_FILE)


def compute_checksum(output_dir: Path, files: Iterable[str]) -> str:
    """SHA-256 over each path followed by that file's bytes, in sorted path order."""
    digest = hashlib.sha256()
    for relative in sorted(files):
        digest.update(relative.encode("utf-8"))
        digest.update((Path(output_dir) / relative).read_bytes())
    return digest.hexdigest()


def file_checksum(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class PluginBuilder:
    """Builds a plugin directory into a distributable output directory.

    Args:
        plugin_dir: Plugin root directory
        options: Build options; output defaults to ``<plugin_dir>/build``
    """

    def __init__(self, plugin_dir: Path, options: Optional[BuildOptions] = None):
        self.plugin_dir = Path(plugin_dir).resolve()
        self.options = options or BuildOptions()
        output = self.options.output or self.plugin_dir / DEFAULT_BUILD_DIR
        self.output_dir = Path(output).resolve()
        self.manifest: Optional[PluginManifest] = None

    @property
    def plugin_name(self) -> str:
        return self.manifest.name if self.manifest else self.plugin_dir.name

    def package_paths(self, manifest: PluginManifest) -> tuple:
        base = self.output_dir.parent / f"{manifest.name}-{manifest.version}"
        return base.with_name(base.name + ".tar.gz"), base.with_name(base.name + ".json")

    async def build(self) -> BuildResult:
        """Run every stage.

        Raises:
            BuildStageError: A stage failed; ``stage`` names it
        """
        logger.info(f"Building plugin at {self.plugin_dir} ({self.options.mode})")

        await self._run_stage("validate", self.validate)
        await self._run_stage("stage-files", self.stage_files)
        await self._run_stage("dependencies", self.install_dependencies)
        await self._run_stage("assets", self.build_assets)
        build_manifest = await self._run_stage("manifest", self.write_build_manifest)

        result = BuildResult(output_dir=self.output_dir, manifest=build_manifest)
        if self.options.production:
            result.package, result.sidecar = await self._run_stage("package", self.package)

        logger.info(f"Build complete: {self.plugin_name} -> {self.output_dir}")
        return result

    async def _run_stage(self, stage: str, func):
        logger.info(f"[{stage}] {self.plugin_name}")
        try:
            return await func()
        except BuildStageError:
            raise
        except Exception as e:
            logger.error(f"Build stage '{stage}' failed for {self.plugin_name}: {e}")
            raise BuildStageError(stage, self.plugin_name, e) from e

    # -- stages ------------------------------------------------------------

    async def validate(self) -> None:
        missing = [name for name in (MANIFEST_FILE, ENTRY_FILE) if not (self.plugin_dir / name).exists()]
        if missing:
            raise FileNotFoundError(f"Missing required files in {self.plugin_dir}: {', '.join(missing)}")
        self.manifest = load_manifest(self.plugin_dir)

    async def stage_files(self) -> None:
        ensure_dir(self.output_dir)
        for name in BUILD_FILES:
            source = self.plugin_dir / name
            if source.is_file():
                shutil.copy2(source, self.output_dir / name)
        for name in BUILD_DIRS:
            source = self.plugin_dir / name
            if source.is_dir():
                copy_dir(source, self.output_dir / name)
        logger.debug(f"Staged files into {self.output_dir}")

    async def install_dependencies(self) -> None:
        requirements = self.output_dir / REQUIREMENTS_FILE
        if not declared_requirements(requirements):
            logger.debug("No production dependencies declared")
            return
        await check_command(
            [sys.executable, "-m", "pip", "install", "--target", str(self.output_dir / VENDOR_DIR),
             "-r", str(requirements)],
            cwd=self.output_dir,
        )
        logger.info(f"Installed dependencies into {self.output_dir / VENDOR_DIR}")

    def bundler_command(self) -> List[str]:
        command = shlex.split(BUNDLER_COMMAND) + ["--mode", self.options.mode]
        if self.options.source_maps:
            command += ["--devtool", "source-map"]
        if self.options.minify:
            command.append("--optimization-minimize")
        if self.options.bundle_analyzer:
            command.append("--analyze")
        return command

    async def build_assets(self) -> None:
        if (self.plugin_dir / BUNDLER_CONFIG_FILE).exists():
            await check_command(self.bundler_command(), cwd=self.plugin_dir)
            dist = self.plugin_dir / BUNDLER_OUTPUT_DIR
            if dist.is_dir():
                copy_dir(dist, self.output_dir / BUNDLER_OUTPUT_DIR)

        script = self.manifest.scripts.get("build") if self.manifest else None
        if script:
            logger.info(f"Running build script: {script}")
            await check_command(shlex.split(script), cwd=self.plugin_dir)

    async def write_build_manifest(self) -> Dict[str, Any]:
        files = collect_files(self.output_dir)
        build_manifest = {
            "plugin": {
                "name": self.manifest.name,
                "version": self.manifest.version,
                "author": self.manifest.author,
                "description": self.manifest.description,
            },
            "build": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "mode": self.options.mode,
                "options": {k: v for k, v in asdict(self.options).items() if k != "output"},
            },
            "files": files,
            "checksum": compute_checksum(self.output_dir, files),
        }
        with open(self.output_dir / BUILD_MANIFEST_FILE, "w", encoding="utf-8") as f:
            json.dump(build_manifest, f, indent=2)
        logger.info(f"Wrote {BUILD_MANIFEST_FILE}: {len(files)} files, checksum {build_manifest['checksum'][:12]}")
        return build_manifest

    async def package(self) -> tuple:
        archive, sidecar = self.package_paths(self.manifest)
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(self.output_dir, arcname=self.manifest.name)

        record = {
            "name": self.manifest.name,
            "version": self.manifest.version,
            "filename": archive.name,
            "size": archive.stat().st_size,
            "created": datetime.now(timezone.utc).isoformat(),
            "checksum": file_checksum(archive),
        }
        with open(sidecar, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        logger.info(f"Packaged {archive} ({record['size']} bytes)")
        return archive, sidecar

    # -- maintenance -------------------------------------------------------

    def clean(self) -> bool:
        """Remove the output directory. Returns False if there was nothing to remove."""
        if not self.output_dir.exists():
            return False
        shutil.rmtree(self.output_dir)
        logger.info(f"Removed {self.output_dir}")
        return True

    async def watch(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Build, then rebuild on every change until stop_event is set.

        A failed rebuild is logged and watching continues.
        """
        from devkit.server.watcher import FileWatcher

        await self._rebuild()
        ignore_paths = [self.output_dir]
        if self.manifest:
            ignore_paths.extend(self.package_paths(self.manifest))
        watcher = FileWatcher(self.plugin_dir, ignore_dirs=IGNORED_DIRS, ignore_paths=ignore_paths)
        async for events in watcher.changes(stop_event):
            logger.info(f"{len(events)} change(s) detected, rebuilding {self.plugin_name}")
            await self._rebuild()

    async def _rebuild(self) -> Optional[BuildResult]:
        try:
            result = await self.build()
        except Exception as e:
            logger.error(f"Rebuild failed: {e}")
            return None
        logger.info(f"Rebuild succeeded: {result.checksum[:12]}")
        return result
