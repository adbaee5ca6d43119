"""Placeholder substitution for plugin scaffolds.

Placeholders look like ``{{ identifier }}``. Substitution is best-effort:
identifiers with no value are left in place so a later pass can fill them.
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping

from devkit.errors import TemplateApplyError
from devkit.utils.files import is_safe_path

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def process_template(content: str, variables: Mapping[str, Any]) -> str:
    """Replace every placeholder whose identifier is in variables."""

    def substitute(match: re.Match) -> str:
        key = match.group(1)
        if key in variables:
            return str(variables[key])
        return match.group(0)

    return PLACEHOLDER_PATTERN.sub(substitute, content)


def extract_variables(content: str) -> List[str]:
    """Identifiers referenced by content, de-duplicated in first-seen order."""
    return list(dict.fromkeys(PLACEHOLDER_PATTERN.findall(content)))


def missing_variables(files: Mapping[str, str], variables: Mapping[str, Any]) -> List[str]:
    """Identifiers used in any file path or content that have no value."""
    referenced: Dict[str, None] = {}
    for path, content in files.items():
        for key in extract_variables(path) + extract_variables(content):
            referenced.setdefault(key)
    return [key for key in referenced if key not in variables]


def to_pascal_case(name: str) -> str:
    """my-cool_plugin -> MyCoolPlugin"""
    segments = re.split(r"[-_\s]+", name)
    return "".join(segment[:1].upper() + segment[1:] for segment in segments if segment)


def apply_template(files: Mapping[str, str], variables: Mapping[str, Any], output_dir: Path) -> List[Path]:
    """Write a scaffold to disk, substituting paths and contents.

    Files are written in order. The first directory or file that cannot be
    created aborts the rest; the files already on disk stay there and are
    listed on the raised error.

    Args:
        files: Relative output path -> file content, both may hold placeholders
        variables: Placeholder values
        output_dir: Directory the scaffold is written into

    Returns:
        Paths of the files written

    Raises:
        TemplateApplyError: A path escapes output_dir, or a write failed
    """
    output_dir = Path(output_dir)
    written: List[Path] = []

    for raw_path, raw_content in files.items():
        relative = process_template(raw_path, variables)
        target = output_dir / relative
        if not is_safe_path(relative):
            raise TemplateApplyError(target, written, ValueError(f"path escapes output directory: {relative}"))

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(process_template(raw_content, variables), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write template file {target}: {e}")
            raise TemplateApplyError(target, written, e) from e

        written.append(target)
        logger.debug(f"Wrote {target}")

    logger.info(f"Applied template: {len(written)} file(s) written to {output_dir}")
    return written
