# hookpanel/service/auth.py
import os
import secrets
from typing import Optional

from fastapi import Header
from loguru import logger

from hookpanel.utils.errors import AuthError
from hookpanel.utils.settings import get_settings

ACCESS_KEY_BYTES = 32

_access_key: Optional[str] = None


def init_access_key() -> str:
    """Load the admin access key, generating and persisting one on first start"""
    global _access_key
    settings = get_settings()
    log = logger.bind(log_type="system")

    if settings.access_key:
        _access_key = settings.access_key
        log.info("Using access key from settings")
        return _access_key

    path = settings.access_key_file
    key = ""
    if os.path.exists(path):
        with open(path, "r") as f:
            key = f.read().strip()

    if key:
        log.info(f"Loaded access key from {path}")
    else:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        key = secrets.token_hex(ACCESS_KEY_BYTES)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write(key)
        log.info(f"Generated new access key in {path}")

    _access_key = key
    return _access_key


def get_access_key() -> str:
    return _access_key or init_access_key()


def require_admin(authorization: Optional[str] = Header(None)):
    """FastAPI dependency guarding the /api routes with a bearer token"""
    if not authorization:
        raise AuthError("Missing Authorization header")
    if not authorization.startswith("Bearer "):
        raise AuthError("Authorization header must use the Bearer scheme")
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise AuthError("Empty bearer token")
    if not secrets.compare_digest(token.encode(), get_access_key().encode()):
        raise AuthError("Invalid access key")


def reset_access_key():
    global _access_key
    _access_key = None
