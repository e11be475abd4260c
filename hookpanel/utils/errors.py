# hookpanel/utils/errors.py


class HookPanelError(Exception):
    """Base class for request-level failures, carries the HTTP status to answer with"""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(HookPanelError):
    status_code = 422


class AuthError(HookPanelError):
    status_code = 401


class NotFound(HookPanelError):
    status_code = 404


class AlreadyRunning(HookPanelError):
    status_code = 409

    def __init__(self, script_id: str):
        super().__init__(f"Script {script_id} is already executing")
        self.script_id = script_id


class ScriptDisabled(HookPanelError):
    status_code = 422

    def __init__(self, script_id: str):
        super().__init__(f"Script {script_id} is disabled")
        self.script_id = script_id


class UnsupportedExecutor(HookPanelError):
    status_code = 422

    def __init__(self, executor: str):
        super().__init__(f"Unsupported executor: {executor}")
        self.executor = executor


class SpawnError(HookPanelError):
    status_code = 500


class StorageError(HookPanelError):
    status_code = 500
