# hookpanel/service/system_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hookpanel.database.db import get_db
from hookpanel.service.models.db_model import utcnow
from hookpanel.service.models.schemas import ConfigCategory, ConfigOut, ConfigUpdateRequest, DashboardStats
from hookpanel.static.config_store import ConfigStore
from hookpanel.static.log_recorder import get_log_recorder
from hookpanel.static.script_store import ScriptStore

router = APIRouter()

# Served without authentication
public_router = APIRouter()


@router.get("/dashboard/stats", response_model=DashboardStats)
def get_dashboard_stats(db: Session = Depends(get_db)):
    """Script counts plus call statistics aggregated from the audit log"""
    store = ScriptStore(db)
    total = store.count()
    enabled = store.count(enabled=True)
    return DashboardStats(
        total_scripts=total,
        enabled_scripts=enabled,
        disabled_scripts=total - enabled,
        **get_log_recorder().webhook_stats(db),
    )


@router.get("/config")
def get_system_configs(db: Session = Depends(get_db)):
    categories = ConfigStore(db).list_categories()
    return {
        "data": [
            ConfigCategory(
                category=category["category"],
                label=category["label"],
                configs=[ConfigOut.model_validate(entry) for entry in category["configs"]],
            )
            for category in categories
        ]
    }


@router.put("/config")
def update_system_configs(payload: ConfigUpdateRequest, db: Session = Depends(get_db)):
    ConfigStore(db).update_many((item.key, item.value) for item in payload.configs)
    return {"message": "Configuration saved"}


@public_router.get("/health")
def health_check():
    return {
        "status": "ok",
        "message": "Service is running",
        "timestamp": utcnow().strftime("%Y-%m-%d %H:%M:%S"),
        "service": "hook-panel",
    }
