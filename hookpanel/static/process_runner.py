# hookpanel/static/process_runner.py
import os
import signal
import subprocess
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger

from hookpanel.service.models.db_model import utcnow
from hookpanel.utils.errors import SpawnError

TIMEOUT_MARKER = "[hookpanel:timeout]"
SPAWN_ERROR_MARKER = "[hookpanel:spawn-error]"
# Same status coreutils timeout(1) reports; signal deaths are negative
TIMEOUT_EXIT_CODE = 124
SPAWN_EXIT_CODE = 127

# Grace period for pipes to close after the process group is killed
DRAIN_TIMEOUT = 5


class ErrorType:
    EXIT = "exit"
    TIMEOUT = "timeout"
    SPAWN = "spawn_error"


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one script run"""
    success: bool
    output: str
    error: str
    exit_code: int
    duration: float  # seconds
    timestamp: datetime = field(default_factory=utcnow)
    error_type: Optional[str] = None

    @property
    def timed_out(self) -> bool:
        return self.error_type == ErrorType.TIMEOUT

    @property
    def duration_display(self) -> str:
        return f"{self.duration:.2f}s"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration"] = self.duration_display
        data["duration_ms"] = int(round(self.duration * 1000))
        data["timestamp"] = self.timestamp.strftime("%Y-%m-%d %H:%M:%S")
        return data


def _kill_process_tree(process: subprocess.Popen):
    """Forcefully kill the child and everything in its process group"""
    if os.name == "posix":
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    process.kill()


class ProcessRunner:
    """Spawns one child process, bounds it by a deadline and captures its streams"""

    def __init__(self, log=None):
        self.log = log or logger.bind(log_type="execute")

    def _spawn(self, command: List[str], cwd: str, env: Optional[Dict[str, str]]) -> subprocess.Popen:
        try:
            return subprocess.Popen(
                command,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                env={**os.environ, 'PYTHONUNBUFFERED': '1', **(env or {})},
                # Own process group so a timeout can take descendants down with it
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise SpawnError(f"{command[0]}: {e.strerror or str(e)}") from e

    def run(
        self,
        command: List[str],
        cwd: str,
        timeout: float,
        env: Optional[Dict[str, str]] = None,
    ) -> ExecutionResult:
        self.log.info(f"Spawning {command[0]} (timeout {timeout}s)")
        started = utcnow()
        start = time.monotonic()

        try:
            process = self._spawn(command, cwd, env)
        except SpawnError as e:
            self.log.error(f"Failed to spawn: {e.message}")
            return ExecutionResult(
                success=False,
                output="",
                error=f"{SPAWN_ERROR_MARKER} {e.message}",
                exit_code=SPAWN_EXIT_CODE,
                duration=time.monotonic() - start,
                timestamp=started,
                error_type=ErrorType.SPAWN,
            )

        # communicate() drains stdout and stderr concurrently
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_tree(process)
            duration = time.monotonic() - start
            try:
                stdout, stderr = process.communicate(timeout=DRAIN_TIMEOUT)
            except subprocess.TimeoutExpired:
                # A descendant escaped the process group and holds the pipes open
                process.kill()
                process.wait()
                stdout, stderr = "", ""
            self.log.warning(f"{command[0]} killed after {timeout}s")
            message = f"{TIMEOUT_MARKER} execution exceeded {timeout}s and was killed"
            return ExecutionResult(
                success=False,
                output=stdout or "",
                error=f"{message}\n{stderr}" if stderr else message,
                exit_code=TIMEOUT_EXIT_CODE,
                duration=duration,
                timestamp=started,
                error_type=ErrorType.TIMEOUT,
            )

        duration = time.monotonic() - start
        exit_code = process.returncode
        self.log.info(f"{command[0]} exited with {exit_code} in {duration:.2f}s")
        return ExecutionResult(
            success=exit_code == 0,
            output=stdout or "",
            error=stderr or "",
            exit_code=exit_code,
            duration=duration,
            timestamp=started,
            error_type=None if exit_code == 0 else ErrorType.EXIT,
        )
