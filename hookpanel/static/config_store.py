# hookpanel/static/config_store.py
import json
from typing import Iterable, List, Optional, Tuple

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hookpanel.service.models.db_model import SystemConfig
from hookpanel.utils.errors import NotFound, StorageError, ValidationError
from hookpanel.utils.validator import validate_config_value

DEFAULT_CONFIGS = [
    {
        "key": "system.domain",
        "value": "",
        "type": "url",
        "category": "system",
        "label": "System domain",
        "description": "Public base URL used when building webhook URLs",
        "required": True,
    },
    {
        "key": "webhook.timeout",
        "value": "60",
        "type": "number",
        "category": "system",
        "label": "Execution timeout",
        "description": "Seconds a script may run before it is killed, unless the script sets its own",
        "required": False,
    },
    {
        "key": "system.language",
        "value": "zh-CN",
        "type": "select",
        "category": "system",
        "label": "Language",
        "description": "Interface language",
        "options": json.dumps([
            {"label": "中文", "value": "zh-CN"},
            {"label": "English", "value": "en-US"},
        ], ensure_ascii=False),
        "required": False,
    },
]

CATEGORY_LABELS = {
    "system": "System",
    "general": "General",
}


class ConfigStore:
    """Key/value system settings kept in the system_configs table"""

    def __init__(self, db: Session):
        self.db = db
        self.log = logger.bind(log_type="system")

    def seed_defaults(self, port: Optional[int] = None) -> int:
        """Insert any missing default entries; existing values are left alone"""
        created = 0
        for default in DEFAULT_CONFIGS:
            if self.db.query(SystemConfig).filter(SystemConfig.key == default["key"]).first():
                continue
            entry = SystemConfig(**default)
            if entry.key == "system.domain" and port and port != 8080:
                entry.value = f"http://localhost:{port}"
            self.db.add(entry)
            created += 1
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageError("Failed to initialize default configs") from e
        if created:
            self.log.info(f"Created {created} default config entries")
        return created

    def get_value(self, key: str, default: str = "") -> str:
        entry = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
        if entry is None:
            return default
        return entry.value

    def get_int(self, key: str, default: int) -> int:
        value = self.get_value(key)
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            return default
        return number if number > 0 else default

    def list_categories(self) -> List[dict]:
        entries = self.db.query(SystemConfig).order_by(SystemConfig.category, SystemConfig.key).all()
        categories = {}
        for entry in entries:
            categories.setdefault(entry.category, []).append(entry)
        return [
            {
                "category": category,
                "label": CATEGORY_LABELS.get(category, category),
                "configs": configs,
            }
            for category, configs in categories.items()
        ]

    def update_many(self, items: Iterable[Tuple[str, str]]):
        """Apply every (key, value) pair in one transaction, or none of them"""
        try:
            for key, value in items:
                entry = self.db.query(SystemConfig).filter(SystemConfig.key == key).first()
                if entry is None:
                    raise NotFound(f"Config {key} not found")
                valid, message = validate_config_value(entry, value)
                if not valid:
                    raise ValidationError(message)
                entry.value = value or ""
            self.db.commit()
        except (NotFound, ValidationError):
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            self.log.error(f"Error saving configs: {str(e)}")
            raise StorageError("Failed to save configs") from e
        self.log.info("System configs updated")
