# hookpanel/utils/logger_config.py
from loguru import logger
import sys
import os

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[log_type]}: {message}"

# log_type -> sink file name
LOG_SINKS = {
    "execute": "executor.log",
    "webhook": "webhook.log",
    "schedule": "scheduler.log",
    "system": "system.log",
}


def setup_logging(log_dir: str, level: str = "INFO"):
    # Remove default logger
    logger.remove()
    logger.configure(extra={"log_type": "system"})
    os.makedirs(log_dir, exist_ok=True)

    for log_type, file_name in LOG_SINKS.items():
        logger.add(
            os.path.join(log_dir, file_name),
            filter=lambda record, log_type=log_type: record["extra"].get("log_type") == log_type,
            format=LOG_FORMAT,
            level=level,
            rotation="1 day",
            retention="7 days"
        )

    # Console mirror of every stream
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
