# hookpanel/service/models/db_model.py
import secrets
from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text

from hookpanel.database.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column is stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def new_webhook_secret() -> str:
    return secrets.token_hex(32)


class Script(Base):
    """
    SQLAlchemy model for scripts table.

    Attributes:
        id: UUID primary key
        name: Display name of the script
        description: Free text description
        content: Source code handed to the executor
        executor: Executor tag (bash, python, node, ...)
        enabled: Disabled scripts cannot be executed by webhook or manually
        timeout: Per-script timeout in seconds, falls back to webhook.timeout
        call_count: Number of times the script has been executed
        last_call_at: When the script was last executed
        webhook_secret: Shared secret signing this script's webhook URL
    """
    __tablename__ = "scripts"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    executor = Column(String(20), nullable=False, default="bash")
    enabled = Column(Boolean, nullable=False, default=True)
    timeout = Column(Integer, nullable=True)
    call_count = Column(Integer, nullable=False, default=0)
    last_call_at = Column(DateTime(timezone=True), nullable=True)
    webhook_secret = Column(String(64), nullable=False, default=new_webhook_secret)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Script {self.name} ({self.executor}, enabled={self.enabled})>"


class WebhookLog(Base):
    """
    Audit row for one webhook call or manual trigger; never updated.

    script_id carries no foreign key: calls naming an unknown script are audited too.
    """
    __tablename__ = "webhook_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    script_id = Column(String(36), nullable=False, index=True)
    trigger_source = Column(String(10), nullable=False, default="webhook")
    method = Column(String(10), nullable=False)
    headers = Column(Text, nullable=False, default="{}")
    body = Column(Text, nullable=False, default="")
    source_ip = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    status = Column(Integer, nullable=False)
    response_time = Column(Integer, nullable=False, default=0)  # milliseconds
    error_msg = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    def __repr__(self):
        return f"<WebhookLog {self.script_id} {self.method} {self.status}>"


class SystemConfig(Base):
    __tablename__ = "system_configs"

    id = Column(String(36), primary_key=True, default=new_id)
    key = Column(String(100), nullable=False, unique=True)
    value = Column(Text, nullable=False, default="")
    type = Column(String(20), nullable=False, default="text")  # text, url, number, select
    category = Column(String(50), nullable=False, default="general")
    label = Column(String(200), nullable=False)
    description = Column(String(500), nullable=False, default="")
    options = Column(Text, nullable=True)  # JSON list of {label, value} for select
    required = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<SystemConfig {self.key}={self.value!r}>"
