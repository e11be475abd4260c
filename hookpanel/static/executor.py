# hookpanel/static/executor.py
import os
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from loguru import logger

from hookpanel.database.db import SessionLocal
from hookpanel.static.config_store import ConfigStore
from hookpanel.static.executors import Executor
from hookpanel.static.log_recorder import get_log_recorder
from hookpanel.static.process_runner import ErrorType, ExecutionResult, ProcessRunner, SPAWN_ERROR_MARKER, SPAWN_EXIT_CODE
from hookpanel.static.registry import running_registry
from hookpanel.static.script_store import ScriptStore
from hookpanel.utils.errors import ScriptDisabled, StorageError, ValidationError
from hookpanel.utils.settings import get_settings

MAX_PAYLOAD_ENV = 64 * 1024


class TriggerSource(str, Enum):
    WEBHOOK = "webhook"
    MANUAL = "manual"


class ExecutionState(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    LOGGED = "logged"


TRANSITIONS = {
    ExecutionState.PENDING: {ExecutionState.VALIDATING},
    ExecutionState.VALIDATING: {ExecutionState.RUNNING},
    ExecutionState.RUNNING: {ExecutionState.COMPLETED, ExecutionState.TIMED_OUT, ExecutionState.FAILED},
    ExecutionState.COMPLETED: {ExecutionState.LOGGED},
    ExecutionState.TIMED_OUT: {ExecutionState.LOGGED},
    ExecutionState.FAILED: {ExecutionState.LOGGED},
    ExecutionState.LOGGED: set(),
}


@dataclass
class ExecuteRequest:
    """One request to run a script, from either trigger path"""
    script_id: str
    trigger_source: TriggerSource = TriggerSource.MANUAL
    payload: Optional[str] = None


@dataclass
class ExecutionAttempt:
    request: ExecuteRequest
    state: ExecutionState = ExecutionState.PENDING
    history: List[ExecutionState] = field(default_factory=lambda: [ExecutionState.PENDING])

    def transition(self, state: ExecutionState):
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal execution transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


def terminal_state(result: ExecutionResult) -> ExecutionState:
    if result.error_type == ErrorType.TIMEOUT:
        return ExecutionState.TIMED_OUT
    if result.error_type == ErrorType.SPAWN:
        return ExecutionState.FAILED
    return ExecutionState.COMPLETED


class ScriptExecutor:
    """
    Turns an ExecuteRequest into a process run.

    Claims the script in the running registry, re-reads the script from the
    store, writes its content to a private scratch file, runs it under its
    executor and records the outcome.
    """

    def __init__(self, runner: ProcessRunner = None, recorder=None, registry=None, settings=None):
        self.settings = settings or get_settings()
        self.runner = runner or ProcessRunner()
        self.recorder = recorder or get_log_recorder()
        self.registry = registry or running_registry

    def execute(self, request: ExecuteRequest) -> ExecutionResult:
        """Run a script; raises for request-level problems, returns a result otherwise"""
        log = logger.bind(
            log_type="execute",
            script_id=request.script_id,
            trigger=request.trigger_source.value,
        )
        # AlreadyRunning is raised here, before the attempt exists
        with self.registry.claim(request.script_id):
            attempt = ExecutionAttempt(request)
            attempt.transition(ExecutionState.VALIDATING)
            script_name, executor, content, timeout = self._load(request.script_id)

            attempt.transition(ExecutionState.RUNNING)
            log.info(f"Executing script {script_name} with {executor.value} (timeout {timeout}s)")
            result = self._run(request, executor, content, timeout)
            attempt.transition(terminal_state(result))

            if result.success:
                log.info(f"Script {script_name} finished in {result.duration_display}")
            else:
                log.warning(
                    f"Script {script_name} {attempt.state.value}: exit code {result.exit_code} "
                    f"in {result.duration_display}"
                )

            self._record(request.script_id, result, log)
            attempt.transition(ExecutionState.LOGGED)
            return result

    def _load(self, script_id: str):
        """Read the script fresh from the store and check it may run"""
        db = SessionLocal()
        try:
            script = ScriptStore(db).get(script_id)
            if not script.enabled:
                raise ScriptDisabled(script_id)
            executor = Executor.parse(script.executor)
            if not (script.content or "").strip():
                raise ValidationError(f"Script {script_id} has no content")
            timeout = script.timeout or ConfigStore(db).get_int(
                "webhook.timeout", self.settings.default_timeout
            )
            return script.name, executor, script.content, timeout
        finally:
            db.close()

    def _run(self, request: ExecuteRequest, executor: Executor, content: str, timeout: int) -> ExecutionResult:
        os.makedirs(self.settings.scratch_dir, exist_ok=True)
        # mkdtemp creates the directory with mode 0700
        workdir = tempfile.mkdtemp(prefix=f"run-{request.script_id[:8]}-", dir=self.settings.scratch_dir)
        try:
            script_path = os.path.join(workdir, f"script{executor.extension}")
            try:
                fd = os.open(script_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
            except OSError as e:
                return ExecutionResult(
                    success=False,
                    output="",
                    error=f"{SPAWN_ERROR_MARKER} could not write scratch file: {str(e)}",
                    exit_code=SPAWN_EXIT_CODE,
                    duration=0.0,
                    error_type=ErrorType.SPAWN,
                )

            env = {
                "HOOK_SCRIPT_ID": request.script_id,
                "HOOK_TRIGGER_SOURCE": request.trigger_source.value,
            }
            if request.payload is not None:
                # Environment strings cannot hold NUL and are capped by the kernel
                env["HOOK_PAYLOAD"] = request.payload.replace("\x00", "")[:MAX_PAYLOAD_ENV]

            command = executor.command(script_path, self.settings.executors)
            return self.runner.run(command, cwd=workdir, timeout=timeout, env=env)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _record(self, script_id: str, result: ExecutionResult, log):
        self.recorder.record_run(script_id, result)
        db = SessionLocal()
        try:
            ScriptStore(db).record_call(script_id)
        except StorageError as e:
            log.error(f"Failed to update call statistics: {e.message}")
        finally:
            db.close()
