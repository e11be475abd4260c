# hookpanel/static/log_recorder.py
import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from hookpanel.database.db import SessionLocal
from hookpanel.service.models.db_model import Script, WebhookLog, utcnow
from hookpanel.static.process_runner import ExecutionResult
from hookpanel.utils.errors import StorageError
from hookpanel.utils.settings import get_settings

WEBHOOK_LOG_SORT_FIELDS = ("created_at", "response_time", "status")
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class WebhookCall:
    """Everything the audit log keeps about one inbound call"""
    script_id: str
    method: str
    status: int
    response_time: int  # milliseconds
    trigger_source: str = "webhook"
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    error_msg: Optional[str] = None


def format_run_block(result: ExecutionResult, finished: datetime) -> str:
    """Render one execution as the text block appended to the script log"""
    lines = [f"=== Script execution started [{result.timestamp.strftime(TIME_FORMAT)}] ==="]
    lines.extend(f"[STDOUT] {line}" for line in result.output.splitlines())
    lines.extend(f"[STDERR] {line}" for line in result.error.splitlines())
    status = "success" if result.success else "failed"
    lines.append(
        f"Result: {status} (exit code: {result.exit_code}, duration: {result.duration_display})"
    )
    lines.append(f"=== Script execution finished [{finished.strftime(TIME_FORMAT)}] ===")
    return "\n" + "\n".join(lines) + "\n\n"


class LogRecorder:
    """
    Writes the two execution records: the per-script rolling text log and the
    webhook audit table.
    """

    def __init__(self, log_dir: str = None, max_bytes: int = None, max_body_bytes: int = None):
        settings = get_settings()
        self.log_dir = log_dir or settings.script_log_dir
        self.max_bytes = max_bytes or settings.script_log_max_bytes
        self.max_body_bytes = settings.max_body_bytes if max_body_bytes is None else max_body_bytes
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self.log = logger.bind(log_type="webhook")

    # ScriptLog

    def _lock_for(self, script_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(script_id, threading.Lock())

    def script_log_path(self, script_id: str) -> str:
        return os.path.join(self.log_dir, f"{os.path.basename(script_id)}.log")

    def append_script_log(self, script_id: str, text: str):
        """Append to the script's log, keeping only the newest max_bytes"""
        path = self.script_log_path(script_id)
        with self._lock_for(script_id):
            os.makedirs(self.log_dir, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(text)
            if os.path.getsize(path) > self.max_bytes:
                self._truncate(path)

    def _truncate(self, path: str):
        with open(path, "rb") as f:
            f.seek(-self.max_bytes, os.SEEK_END)
            tail = f.read()
        # Start at a line boundary
        newline = tail.find(b"\n")
        if 0 <= newline < len(tail) - 1:
            tail = tail[newline + 1:]
        with open(path, "wb") as f:
            f.write(tail)

    def record_run(self, script_id: str, result: ExecutionResult):
        """Append a run block; a failure here never masks the run's result"""
        try:
            self.append_script_log(script_id, format_run_block(result, utcnow()))
        except OSError as e:
            logger.bind(log_type="execute", script_id=script_id).error(
                f"Failed to write script log: {str(e)}"
            )

    def read_script_log(self, script_id: str) -> str:
        path = self.script_log_path(script_id)
        with self._lock_for(script_id):
            if not os.path.exists(path):
                return ""
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                return f.read()

    def clear_script_log(self, script_id: str) -> bool:
        """Empty the script's log; returns whether there was anything to clear"""
        path = self.script_log_path(script_id)
        with self._lock_for(script_id):
            if not os.path.exists(path):
                return False
            had_content = os.path.getsize(path) > 0
            open(path, "w").close()
            return had_content

    def delete_script_log(self, script_id: str):
        path = self.script_log_path(script_id)
        with self._lock_for(script_id):
            if os.path.exists(path):
                os.remove(path)
        with self._locks_guard:
            self._locks.pop(script_id, None)

    # WebhookLog

    def record_webhook_call(self, call: WebhookCall) -> Optional[str]:
        """Persist an audit row, best effort: failures are logged, never raised"""
        body = call.body or ""
        if len(body.encode()) > self.max_body_bytes:
            body = body.encode()[:self.max_body_bytes].decode("utf-8", errors="ignore")

        entry = WebhookLog(
            script_id=call.script_id,
            trigger_source=call.trigger_source,
            method=call.method,
            headers=json.dumps(call.headers, sort_keys=True),
            body=body,
            source_ip=call.source_ip,
            user_agent=(call.user_agent or "")[:500] or None,
            status=call.status,
            response_time=call.response_time,
            error_msg=(call.error_msg or "")[:1000] or None,
        )
        db = SessionLocal()
        try:
            db.add(entry)
            db.commit()
            self.log.info(
                f"{call.trigger_source} call {call.method} script={call.script_id} "
                f"status={call.status} time={call.response_time}ms"
            )
            return entry.id
        except SQLAlchemyError as e:
            db.rollback()
            self.log.error(f"Failed to save webhook log for {call.script_id}: {str(e)}")
            return None
        finally:
            db.close()

    def list_webhook_logs(
        self,
        db,
        script_id: Optional[str] = None,
        status: Optional[int] = None,
        trigger_source: Optional[str] = None,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
        sort_field: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Tuple[List[Tuple[WebhookLog, Optional[str]]], int, int, int]:
        """Filtered, paginated audit rows paired with their script's name"""
        page = max(page, 1)
        if page_size <= 0:
            page_size = 20
        page_size = min(page_size, 100)

        query = db.query(WebhookLog)
        if script_id:
            query = query.filter(WebhookLog.script_id == script_id)
        if status is not None:
            # 200/400/500 select the whole status class
            if status == 200:
                query = query.filter(WebhookLog.status >= 200, WebhookLog.status < 300)
            elif status == 400:
                query = query.filter(WebhookLog.status >= 400, WebhookLog.status < 500)
            elif status == 500:
                query = query.filter(WebhookLog.status >= 500)
            else:
                query = query.filter(WebhookLog.status == status)
        if trigger_source:
            query = query.filter(WebhookLog.trigger_source == trigger_source)
        for value, op in ((start_time, "ge"), (end_time, "le")):
            if not value:
                continue
            try:
                moment = datetime.strptime(value, TIME_FORMAT)
            except ValueError:
                continue
            column = WebhookLog.created_at
            query = query.filter(column >= moment if op == "ge" else column <= moment)

        total = query.count()

        order = WebhookLog.created_at.desc()
        if sort_field in WEBHOOK_LOG_SORT_FIELDS and sort_order in ("asc", "desc"):
            column = getattr(WebhookLog, sort_field)
            order = column.asc() if sort_order == "asc" else column.desc()

        rows = (
            query.outerjoin(Script, Script.id == WebhookLog.script_id)
            .add_columns(Script.name)
            .order_by(order, WebhookLog.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return [(row[0], row[1]) for row in rows], total, page, page_size

    def webhook_stats(self, db, script_id: Optional[str] = None) -> dict:
        """Aggregate call statistics from the audit table"""
        query = db.query(WebhookLog)
        if script_id:
            query = query.filter(WebhookLog.script_id == script_id)

        total = query.count()
        success = query.filter(WebhookLog.status >= 200, WebhookLog.status < 300).count()
        avg_response = query.with_entities(func.avg(WebhookLog.response_time)).scalar()
        last_call = query.with_entities(func.max(WebhookLog.created_at)).scalar()

        today_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        today = query.filter(WebhookLog.created_at >= today_start).count()

        return {
            "total_calls": total,
            "success_calls": success,
            "failed_calls": total - success,
            "success_rate": (success / total * 100) if total else 0.0,
            "avg_response_time": float(avg_response or 0),
            "last_call_time": last_call,
            "today_calls": today,
        }

    def clear_webhook_logs(self, db, script_id: Optional[str] = None) -> int:
        """Delete audit rows for one script, or all of them; returns the count"""
        query = db.query(WebhookLog)
        if script_id:
            query = query.filter(WebhookLog.script_id == script_id)
        try:
            deleted = query.delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            self.log.error(f"Failed to clear webhook logs: {str(e)}")
            raise StorageError("Failed to clear webhook logs") from e
        self.log.info(f"Cleared {deleted} webhook logs for {script_id or 'all scripts'}")
        return deleted

    def purge_webhook_logs(self, older_than_days: int) -> int:
        """Retention sweep: drop audit rows older than the given age"""
        cutoff = utcnow() - timedelta(days=older_than_days)
        db = SessionLocal()
        try:
            deleted = (
                db.query(WebhookLog)
                .filter(WebhookLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError("Failed to purge webhook logs") from e
        finally:
            db.close()


_recorder: Optional[LogRecorder] = None


def get_log_recorder() -> LogRecorder:
    """Shared recorder, so every writer goes through the same per-script locks"""
    global _recorder
    if _recorder is None:
        _recorder = LogRecorder()
    return _recorder


def reset_log_recorder():
    global _recorder
    _recorder = None
