"""Test runner for plugin directories.

One decision per run, first match wins:

1. no tests/ or test/ directory   -> structural validation
2. pytest configuration present    -> ``python -m pytest`` child process
3. ``scripts.test`` in the manifest -> that command as a child process
4. otherwise                        -> structural validation
"""

import configparser
import logging
import re
import shlex
import sys
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional

from devkit.constants import (
    ENTRY_FILE,
    MANIFEST_FILE,
    README_FILE,
    REQUIREMENTS_FILE,
    TEST_DIRS,
    VENDOR_DIR,
    VIRTUALENV_DIR,
)
from devkit.errors import ManifestError
from devkit.output_parser import parse_pytest_output
from devkit.plugins.lifecycle import find_plugin_exports
from devkit.plugins.manifest import PluginManifest, load_manifest
from devkit.templates.engine import process_template
from devkit.utils.process import run_command

logger = logging.getLogger(__name__)

GENERATED_TEST_FILE = "test_lifecycle.py"

GENERATED_PYTEST_INI = """[pytest]
testpaths = tests
pythonpath = .
"""

GENERATED_LIFECYCLE_TEST = '''"""Lifecycle test generated by plugin-devkit."""

import asyncio
from pathlib import Path

from devkit.plugins.manifest import load_manifest
from devkit.testing import MockRuntime, load_plugin, run_plugin_lifecycle

PLUGIN_DIR = Path(__file__).resolve().parent.parent


def test_plugin_identity():
    manifest = load_manifest(PLUGIN_DIR)
    plugin = load_plugin(PLUGIN_DIR, MockRuntime(manifest.name))
    assert manifest.name == "{{ name }}"
    assert getattr(plugin, "name", manifest.name) == manifest.name
    assert getattr(plugin, "version", manifest.version) == manifest.version


def test_lifecycle_hooks_complete():
    plugin = load_plugin(PLUGIN_DIR, MockRuntime("{{ name }}"))
    asyncio.run(run_plugin_lifecycle(plugin))
'''


@dataclass
class TestOptions:
    __test__ = False

    coverage: bool = False
    verbose: bool = False
    test_pattern: Optional[str] = None
    extra_args: List[str] = field(default_factory=list)


@dataclass
class TestResults:
    """Outcome of one test run.

    Attributes:
        strategy: "pytest", "script" or "validation"
        errors: One human-readable message per failure
        raw_output: Unparsed framework output, set when its summary was not found
    """

    __test__ = False

    strategy: str
    passed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    coverage: Optional[float] = None
    raw_output: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {**asdict(self), "success": self.success}


def declared_requirements(requirements_file: Path) -> List[str]:
    """Requirement lines in a requirements file, without comments or blanks."""
    if not requirements_file.exists():
        return []
    lines = []
    for line in requirements_file.read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0].strip()
        if line:
            lines.append(line)
    return lines


class PluginTester:
    """Runs a plugin's tests, or validates its structure when it has none.

    Args:
        plugin_dir: Plugin root directory
        options: Test options
    """

    def __init__(self, plugin_dir: Path, options: Optional[TestOptions] = None):
        self.plugin_dir = Path(plugin_dir).resolve()
        self.options = options or TestOptions()

    def find_test_dir(self) -> Optional[Path]:
        for name in TEST_DIRS:
            candidate = self.plugin_dir / name
            if candidate.is_dir():
                return candidate
        return None

    def has_pytest_config(self) -> bool:
        """Whether pytest is configured in any file it reads configuration from."""
        if (self.plugin_dir / "pytest.ini").exists():
            return True
        for filename, section in (("tox.ini", "pytest"), ("setup.cfg", "tool:pytest")):
            path = self.plugin_dir / filename
            if path.exists():
                parser = configparser.ConfigParser()
                try:
                    parser.read(path, encoding="utf-8")
                except (configparser.Error, UnicodeDecodeError) as e:
                    logger.warning(f"Cannot parse {path}: {e}")
                    continue
                if parser.has_section(section):
                    return True
        pyproject = self.plugin_dir / "pyproject.toml"
        if pyproject.exists():
            try:
                return "[tool.pytest.ini_options]" in pyproject.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Cannot read {pyproject}: {e}")
        return False

    def _test_script(self) -> Optional[str]:
        try:
            manifest = load_manifest(self.plugin_dir)
        except ManifestError:
            return None
        return manifest.scripts.get("test")

    async def run_tests(self) -> TestResults:
        """Pick a strategy and run it. Child-process failures become recorded failures."""
        if self.find_test_dir() is None:
            logger.info(f"No test directory in {self.plugin_dir}, running structural validation")
            return await self.run_validation()

        if self.has_pytest_config():
            return await self.run_pytest()

        script = self._test_script()
        if script:
            return await self.run_script(script)

        logger.info("No test framework configured, running structural validation")
        return await self.run_validation()

    async def run_pytest(self) -> TestResults:
        command = [sys.executable, "-m", "pytest"]
        if self.options.coverage:
            command += ["--cov=.", "--cov-report=term"]
        if self.options.verbose:
            command.append("-v")
        if self.options.test_pattern:
            command += ["-k", self.options.test_pattern]
        command += list(self.options.extra_args)

        logger.info(f"Running pytest in {self.plugin_dir}")
        start = time.monotonic()
        result = await run_command(command, cwd=self.plugin_dir)
        parsed = parse_pytest_output(result.stdout, result.stderr, result.exit_code, self.options.coverage)

        return TestResults(
            strategy="pytest",
            passed=parsed.passed,
            failed=parsed.failed,
            errors=parsed.errors,
            duration_ms=parsed.duration_ms or int((time.monotonic() - start) * 1000),
            coverage=parsed.coverage,
            raw_output=parsed.raw_output,
        )

    async def run_script(self, script: str) -> TestResults:
        """Run the manifest's test script: exit 0 is one pass, anything else one failure."""
        logger.info(f"Running test script: {script}")
        try:
            command = shlex.split(script)
        except ValueError as e:
            logger.error(f"Invalid test script {script!r}: {e}")
            return TestResults(strategy="script", failed=1, errors=[f"Invalid test script {script!r}: {e}"])
        start = time.monotonic()
        result = await run_command(command, cwd=self.plugin_dir)
        duration_ms = int((time.monotonic() - start) * 1000)

        if result.ok:
            return TestResults(strategy="script", passed=1, duration_ms=duration_ms)
        message = (result.stderr or result.stdout).strip() or f"exit code {result.exit_code}"
        return TestResults(strategy="script", failed=1, errors=[message], duration_ms=duration_ms)

    async def run_validation(self) -> TestResults:
        """Four independent checks; each contributes to the tally on its own."""
        results = TestResults(strategy="validation")
        start = time.monotonic()

        self._check_structure(results)
        self._check_manifest(results)
        self._check_entry_exports(results)
        self._check_dependencies(results)

        results.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Validation finished: {results.passed} passed, {results.failed} failed")
        return results

    def _check_structure(self, results: TestResults) -> None:
        missing = [name for name in (MANIFEST_FILE, ENTRY_FILE) if not (self.plugin_dir / name).exists()]
        for name in (README_FILE, REQUIREMENTS_FILE):
            if not (self.plugin_dir / name).exists():
                logger.warning(f"Recommended file missing: {name}")
        if missing:
            results.failed += 1
            results.errors.append(f"Missing required files: {', '.join(missing)}")
        else:
            results.passed += 1

    def _check_manifest(self, results: TestResults) -> None:
        try:
            load_manifest(self.plugin_dir)
        except ManifestError as e:
            results.failed += len(e.messages)
            results.errors.extend(f"Config error: {message}" for message in e.messages)
        else:
            results.passed += 1

    def _check_entry_exports(self, results: TestResults) -> None:
        entry_file = self.plugin_dir / ENTRY_FILE
        if not entry_file.exists():
            results.failed += 1
            results.errors.append(f"Entry file {ENTRY_FILE} not found")
            return
        try:
            exports = find_plugin_exports(entry_file.read_text(encoding="utf-8"))
        except SyntaxError as e:
            results.failed += 1
            results.errors.append(f"Entry file {ENTRY_FILE} has a syntax error: {e}")
            return
        except (ValueError, OSError) as e:
            # UnicodeDecodeError is a ValueError; so is a null byte on Python < 3.12
            results.failed += 1
            results.errors.append(f"Cannot read entry file {entry_file}: {e}")
            return
        if exports:
            results.passed += 1
        else:
            results.failed += 1
            results.errors.append(
                f"Entry file {ENTRY_FILE} does not export a plugin (register() function or plugin class)"
            )

    def _check_dependencies(self, results: TestResults) -> None:
        requirements_file = self.plugin_dir / REQUIREMENTS_FILE
        try:
            declared = declared_requirements(requirements_file)
        except (ValueError, OSError) as e:
            results.failed += 1
            results.errors.append(f"Cannot read {requirements_file}: {e}")
            return
        installed = (self.plugin_dir / VENDOR_DIR).is_dir() or (self.plugin_dir / VIRTUALENV_DIR).is_dir()
        if declared and not installed:
            results.failed += 1
            results.errors.append(
                f"Dependencies declared in {REQUIREMENTS_FILE} but neither {VENDOR_DIR}/ nor {VIRTUALENV_DIR}/ exists"
            )
        else:
            results.passed += 1

    def _pytest_listed(self) -> bool:
        for requirements in self.plugin_dir.glob("requirements*.txt"):
            try:
                lines = declared_requirements(requirements)
            except (ValueError, OSError) as e:
                logger.warning(f"Cannot read {requirements}: {e}")
                continue
            for line in lines:
                if re.match(r"^pytest\b(?![-_])", line, re.IGNORECASE):
                    return True
        return False

    def setup_test_environment(self) -> List[Path]:
        """Scaffold a lifecycle test and, if needed, a pytest configuration.

        Returns:
            Paths created
        """
        created = []
        test_dir = self.find_test_dir()
        if test_dir is None:
            test_dir = self.plugin_dir / TEST_DIRS[0]
            test_dir.mkdir(parents=True)
            created.append(test_dir)

        if not any(test_dir.rglob("test_*.py")):
            try:
                manifest: Optional[PluginManifest] = load_manifest(self.plugin_dir)
            except ManifestError:
                manifest = None
            name = manifest.name if manifest else self.plugin_dir.name
            test_file = test_dir / GENERATED_TEST_FILE
            test_file.write_text(process_template(GENERATED_LIFECYCLE_TEST, {"name": name}), encoding="utf-8")
            created.append(test_file)
            logger.info(f"Created {test_file}")

        if self._pytest_listed() and not self.has_pytest_config():
            ini = self.plugin_dir / "pytest.ini"
            ini.write_text(GENERATED_PYTEST_INI.replace("testpaths = tests", f"testpaths = {test_dir.name}"),
                           encoding="utf-8")
            created.append(ini)
            logger.info(f"Created {ini}")

        return created
