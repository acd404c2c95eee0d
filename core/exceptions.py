"""
Custom exceptions for the inventory pipeline with structured error context.

Every exception carries a context dictionary so failures can be logged and
stored on execution history with enough detail to diagnose them.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError
    │   ├── ConnectorNotImplementedError
    │   └── RunInProgressError
    ├── ResourceNotFoundError
    │   └── ConfigNotFoundError
    ├── DecryptionError
    ├── ExtractionError                 (run-level, aborts the run)
    │   ├── RemoteConnectionError
    │   ├── PathNotFoundError
    │   └── CodecError
    ├── TransformationError             (per-row, recorded)
    │   ├── TransformError
    │   └── ValidationError
    ├── LoadError
    │   ├── DatabaseError
    │   └── UpsertConflictError         (per-row, recorded)
    ├── ExecutionStateError
    │   ├── InvalidRunStateError
    │   └── RunCancelledError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any, List
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (config id, path, row, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that may succeed if the run is attempted again.

    Use this for transient errors like:
    - Unreachable SFTP host
    - Socket timeouts
    """
    pass


class NonRetryableError(ETLException):
    """
    Mixin for errors that will fail again until someone changes something.

    Use this for permanent errors like:
    - Missing remote directory
    - Malformed file
    - Invalid pipeline configuration
    """
    pass


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(NonRetryableError):
    """
    Raised before a run starts when configuration is missing or invalid.

    Context should include:
        - config_id: Pipeline configuration id (if known)
        - section: Name of the missing or invalid section
    """
    pass


class ConnectorNotImplementedError(ConfigurationError, NotImplementedError):
    """Raised by connector variants whose transport is not implemented."""
    pass


class RunInProgressError(ConfigurationError):
    """Raised when a run is requested for a config that is already running."""
    pass


class ResourceNotFoundError(NonRetryableError):
    """Raised when a requested resource does not exist."""
    pass


class ConfigNotFoundError(ResourceNotFoundError):
    """Raised when a pipeline configuration id is unknown."""
    pass


class DecryptionError(NonRetryableError):
    """
    Raised when a stored secret cannot be decrypted.

    The ciphertext and any partial plaintext are never included in the
    message or context.
    """
    pass


# ============================================================================
# Extraction Errors (run-level)
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for failures while fetching or parsing a file."""
    pass


class RemoteConnectionError(RetryableError, ExtractionError):
    """
    Authentication or network failure talking to the remote endpoint.

    Context should include:
        - host: Remote host
        - port: Remote port
        - connector_type: sftp or ftp
    """
    pass


class PathNotFoundError(NonRetryableError, ExtractionError):
    """
    Remote directory or file is missing.

    Context should include:
        - path: The path that was not found
        - available_directories: Sibling directories at the parent level
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        available_directories: Optional[List[str]] = None
    ):
        super().__init__(message, context, original_exception)
        self.available_directories = available_directories or []
        self.context["available_directories"] = self.available_directories


class CodecError(NonRetryableError, ExtractionError):
    """
    The file could not be decoded in its configured format.

    Context should include:
        - file_type: csv, json or xml
        - file_name: Name of the file being parsed
    """
    pass


# ============================================================================
# Transformation Errors (per-row)
# ============================================================================

class TransformationError(ETLException):
    """Base exception for per-row mapping failures."""
    pass


class TransformError(TransformationError):
    """
    A transformation rule failed for one record.

    Context should include:
        - target_field: Field being transformed
        - rule: The rule that failed
    """
    pass


class ValidationError(TransformationError):
    """
    A mapped record failed validation.

    Context should include:
        - errors: List of validation messages
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        errors: Optional[List[str]] = None
    ):
        super().__init__(message, context, original_exception)
        self.errors = errors or [message]


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE, UPSERT)
        - table_name: Name of the table
    """
    pass


class UpsertConflictError(LoadError):
    """
    The target store rejected a row (constraint violation).

    Context should include:
        - vin: Vehicle identification number
        - dealer_id: Owning dealer
    """
    pass


# ============================================================================
# Execution State Errors
# ============================================================================

class ExecutionStateError(ETLException):
    """Base exception for run lifecycle errors."""
    pass


class InvalidRunStateError(ExecutionStateError):
    """Raised when a terminal execution record would be modified."""
    pass


class RunCancelledError(ExecutionStateError):
    """Raised between records when a run has been cancelled."""
    pass
