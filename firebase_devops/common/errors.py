"""
Error types for the Firebase DevOps Toolkit.
Services raise these; BaseController turns them into process exit codes.
"""
from typing import List, Optional


class ToolkitError(Exception):
    """Base exception class for toolkit commands"""
    def __init__(self, message: str, exit_code: int = 1, error_code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.error_code = error_code


class UsageError(ToolkitError):
    """Raised when command arguments are missing or malformed"""
    def __init__(self, message: str):
        super().__init__(message, exit_code=1, error_code='USAGE_ERROR')


class PreconditionError(ToolkitError):
    """Raised when a required tool, file or session is missing"""
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message, exit_code=1, error_code='PRECONDITION_FAILED')
        self.hint = hint


class ValidationBlocked(ToolkitError):
    """Raised when deployment validation finds blockers that were not approved"""
    def __init__(self, message: str, reasons: Optional[List[str]] = None):
        super().__init__(message, exit_code=1, error_code='VALIDATION_BLOCKED')
        self.reasons = list(reasons or [])


class ExportDetectionError(ToolkitError):
    """Raised when a service's exported function names cannot be determined reliably"""
    def __init__(self, message: str, service: Optional[str] = None):
        super().__init__(message, exit_code=1, error_code='EXPORT_DETECTION_ERROR')
        self.service = service


class VendorCommandError(ToolkitError):
    """Raised when firebase, gcloud, npm or ngrok exits non-zero; the exit code is passed through"""
    def __init__(self, message: str, returncode: int, command: Optional[List[str]] = None):
        super().__init__(message, exit_code=returncode or 1, error_code='VENDOR_COMMAND_FAILED')
        self.returncode = returncode
        self.command = list(command or [])


class EmulatorError(ToolkitError):
    """Raised when the local emulator suite cannot be started or reached"""
    def __init__(self, message: str):
        super().__init__(message, exit_code=1, error_code='EMULATOR_ERROR')


class PubSubError(ToolkitError):
    """Raised when the Pub/Sub emulator API rejects a request"""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, exit_code=1, error_code='PUBSUB_ERROR')
        self.status_code = status_code
