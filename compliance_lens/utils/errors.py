"""Error handling utilities for the compliance analysis pipeline."""

import json
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the compliance analysis pipeline."""

    # Capture Errors
    CAPTURE_FAILED = "CAPTURE_FAILED"

    # Remote Analysis Errors
    CONFIG_MISSING = "CONFIG_MISSING"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    INVALID_CREDENTIAL = "INVALID_CREDENTIAL"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    RESPONSE_INVALID = "RESPONSE_INVALID"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"

    # Storage Errors
    STORAGE_FAILED = "STORAGE_FAILED"

    # Session Errors
    SCAN_IN_PROGRESS = "SCAN_IN_PROGRESS"

    # Configuration / System Errors
    CONFIG_INVALID = "CONFIG_INVALID"
    INITIALIZATION_FAILED = "INITIALIZATION_FAILED"


# User-facing messages per category. ANALYSIS_FAILED surfaces the provider text instead.
USER_MESSAGES: Dict[ErrorType, str] = {
    ErrorType.CAPTURE_FAILED: "Failed to process image. Please try again.",
    ErrorType.CONFIG_MISSING: "System configuration error: AI credentials are missing.",
    ErrorType.QUOTA_EXCEEDED: (
        "AI usage limit reached. Please try again later or check your account plan."
    ),
    ErrorType.INVALID_CREDENTIAL: "Invalid AI credentials. Please check your configuration.",
    ErrorType.MODEL_UNAVAILABLE: (
        "AI model unavailable. Please check the configured model identifier and region."
    ),
    ErrorType.RESPONSE_INVALID: "Failed to parse compliance analysis results. Please try again.",
    ErrorType.ANALYSIS_FAILED: "Analysis failed. Please try again or check your connection.",
    ErrorType.STORAGE_FAILED: "Inspection history is unavailable on this device.",
    ErrorType.SCAN_IN_PROGRESS: "An analysis is already running. Please wait for it to finish.",
    ErrorType.CONFIG_INVALID: "System configuration is invalid.",
    ErrorType.INITIALIZATION_FAILED: "The compliance scanner could not be started.",
}


@dataclass
class ErrorContext:
    """
    Context information for errors in the compliance analysis pipeline.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether the error can be recovered from
        fallback_action: Optional description of fallback action taken
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    fallback_action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "fallback_action": self.fallback_action,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class ComplianceLensError(Exception):
    """
    Base exception for all compliance pipeline errors.

    Wraps errors with an ErrorContext so callers can branch on the
    category and show a user-facing message without parsing text.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        self.context = context
        super().__init__(context.message)

    def __str__(self) -> str:
        """String representation of the error."""
        base = f"{self.context.error_type.value}: {self.context.message}"
        if self.context.fallback_action:
            base += f" (Fallback: {self.context.fallback_action})"
        return base

    @property
    def error_type(self) -> ErrorType:
        return self.context.error_type

    @property
    def user_message(self) -> str:
        """Message suitable for display next to the capture controls."""
        if self.context.error_type == ErrorType.ANALYSIS_FAILED:
            return self.context.message or USER_MESSAGES[ErrorType.ANALYSIS_FAILED]
        return USER_MESSAGES.get(self.context.error_type, self.context.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        payload = self.context.to_dict()
        payload["user_message"] = self.user_message
        return payload


class ImageCaptureError(ComplianceLensError):
    """Exception raised when the source image bytes cannot be read at all."""

    @classmethod
    def unreadable(cls, source: str, error: Optional[Exception] = None) -> "ImageCaptureError":
        """
        Create error for an unreadable capture.

        Args:
            source: Description of the source (path, stream, ...)
            error: Optional original exception

        Returns:
            ImageCaptureError instance
        """
        reason = f": {error}" if error else ""
        context = ErrorContext(
            error_type=ErrorType.CAPTURE_FAILED,
            message=f"Unable to read image from {source}{reason}",
            recoverable=True,
            fallback_action="Retry the capture",
            details={"source": source},
            original_exception=error
        )
        return cls(context)


class AnalysisError(ComplianceLensError):
    """Exception for a failed remote compliance analysis, already classified."""

    @classmethod
    def configuration_missing(cls, detail: str = "AI credentials are not configured") -> "AnalysisError":
        """Create error for a missing local credential."""
        context = ErrorContext(
            error_type=ErrorType.CONFIG_MISSING,
            message=detail,
            recoverable=False,
            fallback_action="Configure AWS credentials or a Bedrock API key"
        )
        return cls(context)

    @classmethod
    def invalid_response(
        cls,
        reason: str,
        raw_text: Optional[str] = None,
        issues: Optional[list] = None
    ) -> "AnalysisError":
        """
        Create error for a model reply that is not a usable AnalysisResult.

        Args:
            reason: Short description of what was wrong
            raw_text: Optional raw reply (truncated in details)
            issues: Optional list of validation issues

        Returns:
            AnalysisError instance
        """
        details: Dict[str, Any] = {}
        if raw_text is not None:
            details["response_preview"] = raw_text[:200]
        if issues:
            details["issues"] = list(issues)
        context = ErrorContext(
            error_type=ErrorType.RESPONSE_INVALID,
            message=f"Invalid compliance analysis response: {reason}",
            recoverable=True,
            fallback_action="Retry the analysis",
            details=details
        )
        return cls(context)

    @classmethod
    def from_provider_error(cls, error: Exception, operation: str = "analyze") -> "AnalysisError":
        """
        Create a classified AnalysisError from an opaque transport error.

        The provider's error shape is not a guaranteed contract, so the
        category is derived from the message text with classify_provider_error.

        Args:
            error: Original exception raised by the transport
            operation: Description of operation that failed

        Returns:
            AnalysisError instance
        """
        raw_message = str(error) or error.__class__.__name__
        message = extract_provider_message(raw_message)
        error_type = classify_provider_error(message)
        if error_type == ErrorType.ANALYSIS_FAILED and message != raw_message:
            error_type = classify_provider_error(raw_message)
        recoverable = error_type not in (ErrorType.CONFIG_MISSING, ErrorType.INVALID_CREDENTIAL)
        context = ErrorContext(
            error_type=error_type,
            message=message,
            recoverable=recoverable,
            details={"operation": operation},
            original_exception=error
        )
        return cls(context)


class StorageError(ComplianceLensError):
    """Exception for evidence store failures."""

    @classmethod
    def operation_failed(cls, operation: str, error: Exception) -> "StorageError":
        context = ErrorContext(
            error_type=ErrorType.STORAGE_FAILED,
            message=f"Evidence store {operation} failed: {error}",
            recoverable=True,
            fallback_action="Continue with best-effort history",
            details={"operation": operation},
            original_exception=error
        )
        return cls(context)


class ConfigurationError(ComplianceLensError):
    """Exception for unusable configuration or failed startup wiring."""

    @classmethod
    def invalid_value(cls, key: str, value: Any, reason: str) -> "ConfigurationError":
        context = ErrorContext(
            error_type=ErrorType.CONFIG_INVALID,
            message=f"Invalid configuration value for {key}: {value!r} ({reason})",
            recoverable=False,
            details={"key": key}
        )
        return cls(context)

    @classmethod
    def initialization_failed(cls, component: str, error: Exception) -> "ConfigurationError":
        context = ErrorContext(
            error_type=ErrorType.INITIALIZATION_FAILED,
            message=f"Failed to initialize {component}: {error}",
            recoverable=False,
            details={"component": component},
            original_exception=error
        )
        return cls(context)


class ScanInProgressError(ComplianceLensError):
    """Raised when a second scan is started while one is in flight."""

    @classmethod
    def create(cls) -> "ScanInProgressError":
        context = ErrorContext(
            error_type=ErrorType.SCAN_IN_PROGRESS,
            message="A scan is already being analyzed",
            recoverable=True
        )
        return cls(context)


# Ordered: first matching category wins.
_CONFIG_MISSING_MARKERS = (
    "unable to locate credentials",
    "no credentials",
    "credentials are not configured",
    "api key missing",
)
_QUOTA_MARKERS = (
    "429",
    "quota",
    "resource_exhausted",
    "throttlingexception",
    "throttl",
    "too many requests",
    "toomanyrequestsexception",
    "rate limit",
    "rate exceeded",
)
_CREDENTIAL_MARKERS = (
    "403",
    "api key",
    "accessdenied",
    "access denied",
    "unauthorized",
    "unrecognizedclient",
    "security token",
    "invalidsignature",
    "signature does not match",
    "expiredtoken",
    "permission_denied",
    "permission denied",
)
_MODEL_MARKERS = (
    "404",
    "not found",
    "resourcenotfound",
    "model identifier is invalid",
    "invalid model",
    "model is not supported",
    "doesn't support the model",
)


def classify_provider_error(message: str) -> ErrorType:
    """
    Map a best-effort provider error message onto a failure category.

    This is a substring heuristic: neither the gRPC-style status text
    (RESOURCE_EXHAUSTED, 403, 404) nor the botocore ClientError text
    (ThrottlingException, AccessDeniedException, ResourceNotFoundException)
    is a stable contract, so both vocabularies are recognised.

    Args:
        message: Error message text (ideally already passed through
            extract_provider_message)

    Returns:
        One of CONFIG_MISSING, QUOTA_EXCEEDED, INVALID_CREDENTIAL,
        MODEL_UNAVAILABLE or ANALYSIS_FAILED
    """
    text = (message or "").lower()

    if any(marker in text for marker in _CONFIG_MISSING_MARKERS):
        return ErrorType.CONFIG_MISSING
    if any(marker in text for marker in _QUOTA_MARKERS):
        return ErrorType.QUOTA_EXCEEDED
    if any(marker in text for marker in _CREDENTIAL_MARKERS):
        return ErrorType.INVALID_CREDENTIAL
    if any(marker in text for marker in _MODEL_MARKERS):
        return ErrorType.MODEL_UNAVAILABLE
    return ErrorType.ANALYSIS_FAILED


def extract_provider_message(text: str) -> str:
    """
    Prefer the nested message of an error object embedded in the text.

    Provider SDKs sometimes stringify a JSON error body into the exception
    message, e.g. ``got status: 429. {"error": {"message": "..."}}``.

    Args:
        text: Raw exception message

    Returns:
        The nested message when one can be parsed, otherwise the input text
    """
    if not text or "{" not in text:
        return text

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if not match:
        return text

    try:
        payload = json.loads(match.group(0))
    except (json.JSONDecodeError, ValueError):
        return text

    if not isinstance(payload, dict):
        return text

    for key in ("error", "Error"):
        nested = payload.get(key)
        if isinstance(nested, dict):
            nested_message = nested.get("message") or nested.get("Message")
            if isinstance(nested_message, str) and nested_message:
                return nested_message

    for key in ("message", "Message"):
        nested_message = payload.get(key)
        if isinstance(nested_message, str) and nested_message:
            return nested_message

    return text
