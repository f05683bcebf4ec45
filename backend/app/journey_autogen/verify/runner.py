"""
Playwright Runner - run a generated spec and capture its output

The runner never raises for a failing or missing test command: a timeout is
reported as exit code 124 and a spawn failure as 127, so the caller can feed
every outcome to the failure classifier.
"""

import os
import re
import time
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import AutogenConfig

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_SPAWN_ERROR = 127
DEFAULT_COMMAND = ["npx", "playwright", "test"]


@dataclass
class RunnerOptions:
    """What to run and how"""
    test_file: Optional[str] = None
    cwd: Optional[str] = None
    grep: Optional[str] = None
    project: Optional[str] = None
    workers: Optional[int] = None
    retries: Optional[int] = None
    timeout_ms: Optional[int] = None  # Playwright per-test timeout
    process_timeout_s: float = 600
    reporter: str = "line"
    env: Dict[str, str] = field(default_factory=dict)
    command: List[str] = field(default_factory=lambda: list(DEFAULT_COMMAND))

    @classmethod
    def from_config(cls, config: AutogenConfig, **overrides) -> "RunnerOptions":
        """Options with the process timeout from configuration; keyword arguments override"""
        overrides.setdefault("process_timeout_s", config.runner_timeout_s)
        return cls(**overrides)


@dataclass
class RunResult:
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    command: List[str]
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined, the way a terminal shows them"""
        return f"{self.stdout}\n{self.stderr}" if self.stderr else self.stdout


def build_playwright_args(options: RunnerOptions) -> List[str]:
    """
    Full command line for a run.

    Args:
        options: Runner options

    Returns:
        List of command arguments, starting with options.command
    """
    cmd = list(options.command)

    if options.test_file:
        cmd.append(options.test_file)
    if options.grep:
        cmd.extend(["--grep", options.grep])
    if options.project:
        cmd.append(f"--project={options.project}")
    if options.workers is not None:
        cmd.append(f"--workers={options.workers}")
    if options.retries is not None:
        cmd.append(f"--retries={options.retries}")
    if options.timeout_ms is not None:
        cmd.append(f"--timeout={options.timeout_ms}")
    if options.reporter:
        cmd.append(f"--reporter={options.reporter}")

    return cmd


def _run_once(options: RunnerOptions) -> RunResult:
    cmd = build_playwright_args(options)
    env = {**os.environ, **options.env} if options.env else None
    started = time.monotonic()

    try:
        completed = subprocess.run(
            cmd,
            cwd=options.cwd,
            env=env,
            capture_output=True,
            text=True,
            timeout=options.process_timeout_s,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"[RUNNER] Timed out after {options.process_timeout_s:g}s: {' '.join(cmd)}")
        return RunResult(
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr) or f"Process timed out after {options.process_timeout_s:g}s",
            exit_code=EXIT_TIMEOUT,
            duration_ms=int((time.monotonic() - started) * 1000),
            command=cmd,
            timed_out=True,
        )
    except OSError as e:
        # FileNotFoundError included: npx missing from PATH
        logger.error(f"[RUNNER] Failed to start {cmd[0]}: {e}")
        return RunResult(
            stdout="",
            stderr=str(e),
            exit_code=EXIT_SPAWN_ERROR,
            duration_ms=int((time.monotonic() - started) * 1000),
            command=cmd,
        )

    return RunResult(
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        exit_code=completed.returncode,
        duration_ms=int((time.monotonic() - started) * 1000),
        command=cmd,
    )


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run_tests(options: RunnerOptions, attempts: int = 1) -> RunResult:
    """
    Run Playwright, re-running failed runs up to ``attempts`` times.

    Returns:
        The last RunResult (the first passing one, if any passed)
    """
    attempts = max(1, attempts)
    result = None
    for attempt in range(1, attempts + 1):
        logger.info(f"[RUNNER] Run {attempt}/{attempts}: {options.test_file or 'all tests'}")
        result = _run_once(options)
        if result.success:
            break
        logger.info(f"[RUNNER] Run {attempt} failed with exit code {result.exit_code}")

    logger.info(f"[RUNNER] Finished in {result.duration_ms}ms (exit {result.exit_code})")
    return result


# ==================== Summary parsing ====================

_SUMMARY_RE = re.compile(r"^\s*(\d+)\s+(passed|failed|skipped|flaky|did not run)\b", re.MULTILINE)


def parse_summary(stdout: str) -> Dict[str, int]:
    """
    Counts from the reporter summary, e.g. "  3 passed (4.2s)" / "  1 failed".

    Returns:
        Dict with passed, failed, skipped and flaky counts (0 when absent)
    """
    summary = {"passed": 0, "failed": 0, "skipped": 0, "flaky": 0}
    for match in _SUMMARY_RE.finditer(stdout or ""):
        key = match.group(2)
        if key == "did not run":
            key = "skipped"
        summary[key] += int(match.group(1))
    return summary
