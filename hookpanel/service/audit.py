# hookpanel/service/audit.py
import time
from typing import Optional, Tuple

from fastapi import HTTPException, Request
from loguru import logger

from hookpanel.static.executor import ExecuteRequest, ScriptExecutor
from hookpanel.static.log_recorder import WebhookCall, get_log_recorder
from hookpanel.static.process_runner import ErrorType, ExecutionResult
from hookpanel.utils.errors import HookPanelError

# Never copied into the audit log
REDACTED_HEADERS = {"authorization", "cookie", "x-hook-signature"}


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def build_call(
    request: Request,
    script_id: str,
    trigger_source: str,
    status: int,
    started: float,
    body: bytes = b"",
    error_msg: Optional[str] = None,
) -> WebhookCall:
    """Describe an inbound request for the audit log; started is a time.monotonic() value"""
    headers = {
        name: ("***" if name.lower() in REDACTED_HEADERS else value)
        for name, value in request.headers.items()
    }
    return WebhookCall(
        script_id=script_id,
        method=request.method,
        status=status,
        response_time=int((time.monotonic() - started) * 1000),
        trigger_source=trigger_source,
        headers=headers,
        body=body.decode("utf-8", errors="replace") if body else "",
        source_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        error_msg=error_msg,
    )


def audited_execute(request: Request, execute_request: ExecuteRequest, started: float, body: bytes = b"") -> Tuple[int, ExecutionResult]:
    """
    Run a script and write exactly one audit row for the attempt.

    Request-level failures are audited and re-raised. Execution failures are
    results: they answer 200, except spawn failures which answer 500.
    """
    recorder = get_log_recorder()
    script_id = execute_request.script_id
    trigger = execute_request.trigger_source.value
    try:
        result = ScriptExecutor().execute(execute_request)
    except HookPanelError as e:
        recorder.record_webhook_call(
            build_call(request, script_id, trigger, e.status_code, started, body, e.message)
        )
        raise
    except Exception as e:
        logger.bind(log_type="execute", script_id=script_id).error(f"Error executing script: {str(e)}")
        recorder.record_webhook_call(
            build_call(request, script_id, trigger, 500, started, body, str(e))
        )
        raise HTTPException(status_code=500, detail=str(e))

    status = 500 if result.error_type == ErrorType.SPAWN else 200
    error_msg = None
    if not result.success:
        first_line = next(iter(result.error.strip().splitlines()), "")
        if result.error_type == ErrorType.EXIT:
            error_msg = f"exit code {result.exit_code}" + (f": {first_line}" if first_line else "")
        else:
            error_msg = first_line
    recorder.record_webhook_call(build_call(request, script_id, trigger, status, started, body, error_msg))
    return status, result
