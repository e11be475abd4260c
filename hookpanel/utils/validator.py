# hookpanel/utils/validator.py
import json
from typing import Tuple
from urllib.parse import urlparse

from hookpanel.static.executors import Executor

MAX_CONTENT_BYTES = 512 * 1024
MAX_TIMEOUT = 24 * 60 * 60


class ScriptValidator:
    """Checks a script definition before it is stored"""

    def validate_name(self, name: str) -> Tuple[bool, str]:
        if not name or not name.strip():
            return False, "Script name must not be empty"
        if len(name) > 255:
            return False, "Script name is longer than 255 characters"
        return True, "Name validation passed"

    def validate_executor(self, executor: str) -> Tuple[bool, str]:
        if executor not in Executor.tags():
            return False, f"Unsupported executor: {executor}"
        return True, "Executor validation passed"

    def validate_content(self, content: str) -> Tuple[bool, str]:
        if content is None:
            return True, "No content"
        if len(content.encode()) > MAX_CONTENT_BYTES:
            return False, f"Script content exceeds {MAX_CONTENT_BYTES} bytes"
        if "\x00" in content:
            return False, "Script content contains NUL bytes"
        return True, "Content validation passed"

    def validate_timeout(self, timeout) -> Tuple[bool, str]:
        if timeout is None:
            return True, "Using default timeout"
        if timeout <= 0 or timeout > MAX_TIMEOUT:
            return False, f"Timeout must be between 1 and {MAX_TIMEOUT} seconds"
        return True, "Timeout validation passed"

    def validate_all(self, **fields) -> Tuple[bool, str]:
        """Run the checks for every field present in the payload"""
        checks = {
            "name": self.validate_name,
            "executor": self.validate_executor,
            "content": self.validate_content,
            "timeout": self.validate_timeout,
        }
        for field_name, check in checks.items():
            if field_name not in fields:
                continue
            valid, message = check(fields[field_name])
            if not valid:
                return False, message
        return True, "All validations passed successfully"


def validate_config_value(config, value: str) -> Tuple[bool, str]:
    """Validate a value against a SystemConfig row's type, required flag and options"""
    if value is None:
        value = ""
    if config.required and not value.strip():
        return False, f"{config.label} is required"
    if not value:
        return True, "Empty optional value"

    if config.type == "number":
        try:
            float(value)
        except ValueError:
            return False, f"{config.label} must be a number"
    elif config.type == "url":
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False, f"{config.label} must be an http(s) URL"
    elif config.type == "select" and config.options:
        try:
            allowed = [option["value"] for option in json.loads(config.options)]
        except (ValueError, KeyError, TypeError):
            return False, f"{config.label} has malformed options"
        if value not in allowed:
            return False, f"{config.label} must be one of {', '.join(allowed)}"

    return True, "Config validation passed"
