# hookpanel/service/webhook_router.py
import time
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger

from hookpanel.database.db import SessionLocal
from hookpanel.service.audit import audited_execute, build_call
from hookpanel.static.executor import ExecuteRequest, TriggerSource
from hookpanel.static.log_recorder import get_log_recorder
from hookpanel.static.script_store import ScriptStore
from hookpanel.static.signature import SIGNATURE_HEADER, SIGNATURE_PARAM, signature_verifier
from hookpanel.utils.errors import AuthError, HookPanelError

router = APIRouter()


def _authenticate(script_id: str, body: bytes, signature: Optional[str]) -> str:
    """Look the script up and check the signature; returns the script name"""
    db = SessionLocal()
    try:
        script = ScriptStore(db).get(script_id)
        valid, message = signature_verifier.verify(script.webhook_secret, script_id, body, signature)
        if not valid:
            raise AuthError(message)
        return script.name
    finally:
        db.close()


@router.post("/h/{script_id}")
async def trigger_webhook(
    script_id: str,
    request: Request,
    signature: Optional[str] = Query(None, alias=SIGNATURE_PARAM),
    x_hook_signature: Optional[str] = Header(None, alias=SIGNATURE_HEADER),
):
    """Public webhook endpoint: verify the signature, then run the script"""
    started = time.monotonic()
    body = await request.body()
    log = logger.bind(log_type="webhook", script_id=script_id)
    recorder = get_log_recorder()

    try:
        script_name = await run_in_threadpool(
            _authenticate, script_id, body, signature_verifier.extract(signature, x_hook_signature)
        )
    except HookPanelError as e:
        log.warning(f"Rejected webhook call: {e.message}")
        await run_in_threadpool(
            recorder.record_webhook_call,
            build_call(request, script_id, TriggerSource.WEBHOOK.value, e.status_code, started, body, e.message),
        )
        raise

    execute_request = ExecuteRequest(
        script_id=script_id,
        trigger_source=TriggerSource.WEBHOOK,
        payload=body.decode("utf-8", errors="replace"),
    )
    try:
        status, result = await run_in_threadpool(audited_execute, request, execute_request, started, body)
    except (HTTPException, HookPanelError):
        raise
    except Exception as e:
        log.error(f"Error handling webhook: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    content = {
        "status": "success" if result.success else "failed",
        "message": "Script executed" if result.success else "Script execution failed",
        "data": {
            "script_id": script_id,
            "script_name": script_name,
            "timestamp": int(time.time()),
        },
        "result": result.to_dict(),
    }
    if status != 200:
        content["error"] = result.error
    return JSONResponse(status_code=status, content=content)
