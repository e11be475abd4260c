# hookpanel/service/models/schemas.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hookpanel.static.executors import Executor


def _check_executor(value):
    if value is not None and value not in Executor.tags():
        raise ValueError(f"executor must be one of {', '.join(Executor.tags())}")
    return value


class ScriptCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    content: str = ""
    executor: str = "bash"
    enabled: bool = True
    timeout: Optional[int] = Field(None, gt=0)

    @field_validator("executor")
    @classmethod
    def check_executor(cls, value):
        return _check_executor(value)


class ScriptUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    content: Optional[str] = None
    executor: Optional[str] = None
    enabled: Optional[bool] = None
    timeout: Optional[int] = Field(None, gt=0)

    @field_validator("executor")
    @classmethod
    def check_executor(cls, value):
        return _check_executor(value)


class ScriptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    executor: str
    enabled: bool
    timeout: Optional[int] = None
    call_count: int
    last_call_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ScriptDetail(ScriptOut):
    content: str


class ScriptList(BaseModel):
    data: List[ScriptOut]
    total: int
    page: int
    page_size: int


class WebhookInfo(BaseModel):
    webhook_url: str
    signature: str
    script_id: str
    script_name: str


class WebhookLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    script_id: str
    script_name: Optional[str] = None
    trigger_source: str
    method: str
    headers: str
    body: str
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    status: int
    response_time: int
    error_msg: Optional[str] = None
    created_at: datetime


class WebhookLogList(BaseModel):
    data: List[WebhookLogOut]
    total: int
    page: int
    page_size: int


class WebhookLogStats(BaseModel):
    total_calls: int
    success_calls: int
    failed_calls: int
    success_rate: float
    avg_response_time: float
    last_call_time: Optional[datetime] = None
    today_calls: int


class DashboardStats(WebhookLogStats):
    total_scripts: int
    enabled_scripts: int
    disabled_scripts: int


class ConfigOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    type: str
    category: str
    label: str
    description: str
    options: Optional[str] = None
    required: bool


class ConfigCategory(BaseModel):
    category: str
    label: str
    configs: List[ConfigOut]


class ConfigItem(BaseModel):
    key: str = Field(..., min_length=1)
    value: str = ""


class ConfigUpdateRequest(BaseModel):
    configs: List[ConfigItem]
