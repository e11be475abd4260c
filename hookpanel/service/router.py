# hookpanel/service/router.py
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from sqlalchemy.orm import Session

from hookpanel.database.db import get_db
from hookpanel.service.audit import audited_execute
from hookpanel.service.models.schemas import (
    ScriptCreate,
    ScriptDetail,
    ScriptList,
    ScriptOut,
    ScriptUpdate,
    WebhookInfo,
    WebhookLogList,
    WebhookLogOut,
    WebhookLogStats,
)
from hookpanel.static.config_store import ConfigStore
from hookpanel.static.executor import ExecuteRequest, TriggerSource
from hookpanel.static.log_recorder import get_log_recorder
from hookpanel.static.registry import running_registry
from hookpanel.static.script_store import ScriptStore
from hookpanel.static.signature import url_signature
from hookpanel.utils.errors import HookPanelError

router = APIRouter()


def _webhook_info(script, request: Request, db: Session) -> WebhookInfo:
    signature = url_signature(script.webhook_secret, script.id)
    domain = ConfigStore(db).get_value("system.domain")
    if not domain:
        # Fall back to the address this request came in on
        domain = str(request.base_url)
    domain = domain.rstrip("/")
    return WebhookInfo(
        webhook_url=f"{domain}/h/{script.id}?signature={signature}",
        signature=signature,
        script_id=script.id,
        script_name=script.name,
    )


def _webhook_log_page(db: Session, **filters) -> WebhookLogList:
    rows, total, page, page_size = get_log_recorder().list_webhook_logs(db, **filters)
    data = []
    for entry, script_name in rows:
        item = WebhookLogOut.model_validate(entry)
        item.script_name = script_name
        data.append(item)
    return WebhookLogList(data=data, total=total, page=page, page_size=page_size)


@router.get("/scripts", response_model=ScriptList)
def list_scripts(
    page: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    enabled: Optional[bool] = None,
    executor: Optional[str] = None,
    sort_field: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db)
):
    """Paginated script list"""
    items, total = ScriptStore(db).list_scripts(
        page=page,
        page_size=page_size,
        search=search,
        enabled=enabled,
        executor=executor,
        sort_field=sort_field,
        sort_order=sort_order,
    )
    if page_size < 1 or page_size > 100:
        page_size = 10
    return ScriptList(
        data=[ScriptOut.model_validate(item) for item in items],
        total=total,
        page=max(page, 1),
        page_size=page_size,
    )


@router.get("/scripts/{script_id}", response_model=ScriptDetail)
def get_script(script_id: str, db: Session = Depends(get_db)):
    """Full script record including content"""
    return ScriptDetail.model_validate(ScriptStore(db).get(script_id))


@router.post("/scripts", status_code=201)
def create_script(payload: ScriptCreate, db: Session = Depends(get_db)):
    script = ScriptStore(db).create(payload.model_dump())
    return {
        "message": "Script created successfully",
        "data": ScriptOut.model_validate(script),
    }


@router.put("/scripts/{script_id}")
def update_script(script_id: str, payload: ScriptUpdate, db: Session = Depends(get_db)):
    script = ScriptStore(db).update(script_id, payload.model_dump(exclude_unset=True))
    return {
        "message": "Script updated successfully",
        "data": ScriptOut.model_validate(script),
    }


@router.delete("/scripts/{script_id}")
def delete_script(script_id: str, db: Session = Depends(get_db)):
    """Delete a script together with its run log and audit rows"""
    store = ScriptStore(db)
    store.get(script_id)
    # Holding the claim keeps runs from starting until the logs are gone
    with running_registry.claim(script_id):
        store.delete(script_id)
        recorder = get_log_recorder()
        try:
            recorder.delete_script_log(script_id)
        except OSError as e:
            logger.bind(log_type="system").error(f"Failed to delete log for {script_id}: {str(e)}")
        recorder.clear_webhook_logs(db, script_id)
    return {"message": "Script deleted successfully"}


@router.post("/scripts/{script_id}/toggle")
def toggle_script(script_id: str, db: Session = Depends(get_db)):
    enabled = ScriptStore(db).toggle(script_id)
    return {
        "message": f"Script {'enabled' if enabled else 'disabled'}",
        "enabled": enabled,
    }


@router.post("/scripts/{script_id}/execute")
def execute_script(script_id: str, request: Request, db: Session = Depends(get_db)):
    """Run a script now, skipping signature verification"""
    started = time.monotonic()
    try:
        ScriptStore(db).get(script_id)
        status, result = audited_execute(
            request,
            ExecuteRequest(script_id=script_id, trigger_source=TriggerSource.MANUAL),
            started,
        )
    except (HTTPException, HookPanelError):
        raise
    except Exception as e:
        logger.bind(log_type="execute").error(f"Error running script: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    if status != 200:
        return JSONResponse(
            status_code=status,
            content={"error": result.error, "result": result.to_dict()},
        )
    return {
        "message": "Script executed" if result.success else "Script execution failed",
        "result": result.to_dict(),
    }


@router.get("/scripts/{script_id}/logs")
def get_script_logs(script_id: str, db: Session = Depends(get_db)):
    ScriptStore(db).get(script_id)
    try:
        logs = get_log_recorder().read_script_log(script_id)
    except OSError as e:
        logger.bind(log_type="system").error(f"Failed to read log for {script_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to read script log")
    return {"logs": logs}


@router.delete("/scripts/{script_id}/logs")
def clear_script_logs(script_id: str, db: Session = Depends(get_db)):
    ScriptStore(db).get(script_id)
    try:
        cleared = get_log_recorder().clear_script_log(script_id)
    except OSError as e:
        logger.bind(log_type="system").error(f"Failed to clear log for {script_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to clear script log")
    return {"message": "Script log cleared", "cleared": cleared}


@router.get("/scripts/{script_id}/webhook", response_model=WebhookInfo)
def get_webhook_url(script_id: str, request: Request, db: Session = Depends(get_db)):
    script = ScriptStore(db).get(script_id)
    return _webhook_info(script, request, db)


@router.post("/scripts/{script_id}/webhook/rotate", response_model=WebhookInfo)
def rotate_webhook_secret(script_id: str, request: Request, db: Session = Depends(get_db)):
    """Issue a new secret; URLs signed with the old one stop working at once"""
    script = ScriptStore(db).rotate_secret(script_id)
    return _webhook_info(script, request, db)


@router.get("/scripts/{script_id}/webhook-logs", response_model=WebhookLogList)
def get_script_webhook_logs(
    script_id: str,
    status: Optional[int] = None,
    trigger_source: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    db: Session = Depends(get_db)
):
    return _webhook_log_page(
        db,
        script_id=script_id,
        status=status,
        trigger_source=trigger_source,
        start_time=start_time,
        end_time=end_time,
        page=page,
        page_size=page_size,
        sort_field=sort_field,
        sort_order=sort_order,
    )


@router.delete("/scripts/{script_id}/webhook-logs")
def clear_script_webhook_logs(script_id: str, db: Session = Depends(get_db)):
    deleted = get_log_recorder().clear_webhook_logs(db, script_id)
    return {"message": "Webhook logs cleared", "deleted": deleted}


@router.get("/scripts/{script_id}/webhook-stats", response_model=WebhookLogStats)
def get_script_webhook_stats(script_id: str, db: Session = Depends(get_db)):
    return WebhookLogStats(**get_log_recorder().webhook_stats(db, script_id))


@router.get("/webhook-logs", response_model=WebhookLogList)
def get_webhook_logs(
    script_id: Optional[str] = None,
    status: Optional[int] = None,
    trigger_source: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    sort_field: Optional[str] = None,
    sort_order: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Audit log across all scripts"""
    return _webhook_log_page(
        db,
        script_id=script_id,
        status=status,
        trigger_source=trigger_source,
        start_time=start_time,
        end_time=end_time,
        page=page,
        page_size=page_size,
        sort_field=sort_field,
        sort_order=sort_order,
    )


@router.delete("/webhook-logs")
def clear_webhook_logs(db: Session = Depends(get_db)):
    deleted = get_log_recorder().clear_webhook_logs(db)
    return {"message": "Webhook logs cleared", "deleted": deleted}
