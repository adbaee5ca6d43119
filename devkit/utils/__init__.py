"""Utility helpers for the plugin development toolkit."""

from .files import copy_dir, ensure_dir, is_safe_path, list_plugin_files, read_dir_recursive
from .process import CommandResult, check_command, run_command
from .versions import compare_versions, increment_version, parse_version
from .validation import Rules, ValidationRule, validate, validate_parameters

__all__ = [
    'copy_dir',
    'ensure_dir',
    'is_safe_path',
    'list_plugin_files',
    'read_dir_recursive',
    'CommandResult',
    'check_command',
    'run_command',
    'compare_versions',
    'increment_version',
    'parse_version',
    'Rules',
    'ValidationRule',
    'validate',
    'validate_parameters',
]
