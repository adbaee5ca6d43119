"""Parse pytest's terminal output into counts.

The parser only looks for a handful of line patterns. When the summary line
is not found the result is zero passed / zero failed with the raw output
attached, so a change in pytest's output format degrades instead of crashing.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

SUMMARY_COUNT_PATTERN = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed)")
SUMMARY_LINE_PATTERN = re.compile(r"^=*\s*(?:\d+ \w+.*|no tests ran.*) in ([\d.]+)s", re.MULTILINE)
COVERAGE_PATTERN = re.compile(r"^TOTAL\s+.*?(\d+(?:\.\d+)?)%\s*$", re.MULTILINE)
FAILURE_LINE_PATTERN = re.compile(r"^(FAILED|ERROR) (\S+)(?: - (.*))?$", re.MULTILINE)

MAX_ERROR_OUTPUT = 2000


@dataclass
class ParsedOutput:
    passed: int = 0
    failed: int = 0
    skipped: int = 0
    duration_ms: int = 0
    coverage: Optional[float] = None
    errors: List[str] = field(default_factory=list)
    raw_output: Optional[str] = None


def parse_pytest_output(stdout: str, stderr: str = "", exit_code: int = 0, coverage: bool = False) -> ParsedOutput:
    """Extract pass/fail counts, duration, coverage and failing test ids.

    Args:
        stdout: pytest standard output
        stderr: pytest standard error
        exit_code: pytest exit status
        coverage: Whether to look for a coverage TOTAL line

    Returns:
        ParsedOutput; a non-zero exit with no failures found counts as one failure
    """
    result = ParsedOutput()
    summary = SUMMARY_LINE_PATTERN.search(stdout)

    if summary:
        line = summary.group(0)
        for count, kind in SUMMARY_COUNT_PATTERN.findall(line):
            if kind == "passed":
                result.passed += int(count)
            elif kind in ("failed", "error", "errors"):
                result.failed += int(count)
            elif kind == "skipped":
                result.skipped += int(count)
        result.duration_ms = int(float(summary.group(1)) * 1000)
    else:
        result.raw_output = "\n".join(part for part in (stdout, stderr) if part)

    for kind, test_id, message in FAILURE_LINE_PATTERN.findall(stdout):
        result.errors.append(f"{test_id}: {message}" if message else test_id)

    if coverage:
        match = COVERAGE_PATTERN.search(stdout)
        if match:
            result.coverage = float(match.group(1))

    if exit_code != 0 and result.failed == 0:
        output = (stderr or stdout).strip()[-MAX_ERROR_OUTPUT:]
        result.failed = 1
        result.errors.append(f"pytest exited with code {exit_code}" + (f": {output}" if output else ""))

    return result
