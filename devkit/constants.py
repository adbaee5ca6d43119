"""Global constants for the plugin development toolkit."""

import os
from pathlib import Path

# Plugin directory layout
MANIFEST_FILE = "plugin.yaml"
ENTRY_FILE = "plugin.py"
REQUIREMENTS_FILE = "requirements.txt"
README_FILE = "README.md"
LICENSE_FILE = "LICENSE"
BUILD_MANIFEST_FILE = "build-manifest.json"

VENDOR_DIR = "vendor"        # pip install --target destination
VIRTUALENV_DIR = ".venv"
TEST_DIRS = ("tests", "test")
DEFAULT_BUILD_DIR = "build"
BUNDLER_CONFIG_FILE = "webpack.config.js"
BUNDLER_OUTPUT_DIR = "dist"

# Files and directories copied into a build output
BUILD_FILES = (MANIFEST_FILE, ENTRY_FILE, REQUIREMENTS_FILE, README_FILE, LICENSE_FILE)
BUILD_DIRS = ("components", "templates", "scripts", "config", "assets", "docs")

# Directories never listed, watched or rebuilt on
IGNORED_DIRS = frozenset({
    VENDOR_DIR,
    VIRTUALENV_DIR,
    DEFAULT_BUILD_DIR,
    BUNDLER_OUTPUT_DIR,
    ".git",
    "__pycache__",
    ".pytest_cache",
    "node_modules",
    "logs",
    "coverage",
    "htmlcov",
})

LIFECYCLE_HOOKS = ("on_load", "on_enable", "on_disable", "on_unload")

# Environment-overridable defaults
DEFAULT_HOST = os.getenv("DEVKIT_HOST", "localhost")
DEFAULT_PORT = int(os.getenv("DEVKIT_PORT", "3001"))
PANEL_API_URL = os.getenv("DEVKIT_PANEL_API_URL", "http://localhost:8080/api")
PLUGINS_ROOT = os.getenv("DEVKIT_PLUGINS_ROOT", "/plugins")
BUNDLER_COMMAND = os.getenv("DEVKIT_BUNDLER", "npx webpack")
LOG_DIR = Path(os.getenv("DEVKIT_LOG_DIR", str(Path.home() / ".plugin-devkit" / "logs")))
