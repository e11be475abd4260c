# hookpanel/static/script_store.py
from typing import List, Optional, Tuple

from loguru import logger
from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hookpanel.service.models.db_model import Script, new_webhook_secret, utcnow
from hookpanel.utils.errors import NotFound, StorageError, ValidationError
from hookpanel.utils.validator import ScriptValidator

# Sort keys accepted from clients -> columns
SORT_FIELDS = {
    "callCount": Script.call_count,
    "lastCallTime": Script.last_call_at,
    "createdAt": Script.created_at,
    "updatedAt": Script.updated_at,
    "name": Script.name,
    "call_count": Script.call_count,
    "last_call_at": Script.last_call_at,
    "created_at": Script.created_at,
    "updated_at": Script.updated_at,
}

EDITABLE_FIELDS = ("name", "description", "content", "executor", "enabled", "timeout")


class ScriptStore:
    """Persistence for script definitions and their call counters"""

    def __init__(self, db: Session):
        self.db = db
        self.validator = ScriptValidator()
        self.log = logger.bind(log_type="system")

    def _commit(self, action: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.log.error(f"Error during {action}: {str(e)}")
            raise StorageError(f"Failed to {action}") from e

    def _validate(self, fields: dict):
        valid, message = self.validator.validate_all(**fields)
        if not valid:
            raise ValidationError(message)

    def get(self, script_id: str) -> Script:
        script = self.db.get(Script, script_id)
        if script is None:
            raise NotFound(f"Script {script_id} not found")
        return script

    def list_scripts(
        self,
        page: int = 1,
        page_size: int = 10,
        search: Optional[str] = None,
        enabled: Optional[bool] = None,
        executor: Optional[str] = None,
        sort_field: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[Script], int]:
        page = max(page, 1)
        if page_size < 1 or page_size > 100:
            page_size = 10

        query = self.db.query(Script)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Script.name.like(pattern), Script.description.like(pattern)))
        if enabled is not None:
            query = query.filter(Script.enabled == enabled)
        if executor:
            query = query.filter(Script.executor == executor)

        total = query.count()

        column = SORT_FIELDS.get(sort_field, Script.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()
        items = query.order_by(order, Script.id).offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def create(self, data: dict) -> Script:
        fields = {key: data[key] for key in EDITABLE_FIELDS if data.get(key) is not None}
        self._validate(fields)
        script = Script(**fields)
        self.db.add(script)
        self._commit("create script")
        self.db.refresh(script)
        self.log.info(f"Created script {script.id} ({script.name})")
        return script

    def update(self, script_id: str, data: dict) -> Script:
        script = self.get(script_id)
        fields = {key: data[key] for key in EDITABLE_FIELDS if key in data}
        # NOT NULL columns: a null means "leave unchanged"
        for key in ("name", "executor", "enabled"):
            if key in fields and fields[key] is None:
                del fields[key]
        self._validate(fields)
        for key, value in fields.items():
            setattr(script, key, value)
        self._commit("update script")
        self.db.refresh(script)
        self.log.info(f"Updated script {script.id}: {', '.join(sorted(fields)) or 'no changes'}")
        return script

    def delete(self, script_id: str) -> Script:
        script = self.get(script_id)
        self.db.delete(script)
        self._commit("delete script")
        self.log.info(f"Deleted script {script_id}")
        return script

    def toggle(self, script_id: str) -> bool:
        script = self.get(script_id)
        script.enabled = not script.enabled
        self._commit("toggle script")
        self.log.info(f"Script {script_id} {'enabled' if script.enabled else 'disabled'}")
        return script.enabled

    def rotate_secret(self, script_id: str) -> Script:
        script = self.get(script_id)
        script.webhook_secret = new_webhook_secret()
        self._commit("rotate webhook secret")
        self.db.refresh(script)
        self.log.info(f"Rotated webhook secret for script {script_id}")
        return script

    def record_call(self, script_id: str):
        """Increment call_count in SQL so concurrent writers never lose an update"""
        try:
            self.db.execute(
                update(Script)
                .where(Script.id == script_id)
                .values(call_count=Script.call_count + 1, last_call_at=utcnow(), updated_at=Script.updated_at)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.log.error(f"Error during record script call: {str(e)}")
            raise StorageError("Failed to record script call") from e

    def count(self, enabled: Optional[bool] = None) -> int:
        query = self.db.query(Script)
        if enabled is not None:
            query = query.filter(Script.enabled == enabled)
        return query.count()
