"""
Custom Exception Classes for the CV standardization pipeline
"""
from typing import Dict, Any
from fastapi import HTTPException


class CVStandardizerBaseException(Exception):
    """Base exception for the pipeline and its API"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/response"""
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class ValidationError(CVStandardizerBaseException):
    """Raised when request data validation fails"""

    def __init__(self, message: str, field: str = None, value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if field:
            details['field'] = field
        if value is not None:
            details['invalid_value'] = str(value)
        super().__init__(message, error_code="VALIDATION_ERROR", details=details, **kwargs)


class NotFoundError(CVStandardizerBaseException):
    """Raised when a candidate or job posting does not exist"""

    def __init__(self, message: str, resource: str = None, resource_id: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if resource:
            details['resource'] = resource
        if resource_id is not None:
            details['resource_id'] = str(resource_id)
        super().__init__(message, error_code="NOT_FOUND", details=details, **kwargs)


class ConflictError(CVStandardizerBaseException):
    """Raised when a request conflicts with the candidate's current status"""

    def __init__(self, message: str, status: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if status:
            details['status'] = status
        super().__init__(message, error_code="CONFLICT", details=details, **kwargs)


class ConfigurationError(CVStandardizerBaseException):
    """Raised when configuration is invalid or missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None, **kwargs):
        details = kwargs.pop('details', {})
        if config_key:
            details['config_key'] = config_key
        if config_value is not None:
            details['config_value'] = str(config_value)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class ExtractionFailure(CVStandardizerBaseException):
    """Raised when no usable text can be extracted from a resume"""

    def __init__(self, message: str, file_ref: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if file_ref:
            details['file_ref'] = file_ref
        super().__init__(message, error_code=kwargs.pop('error_code', "EXTRACTION_FAILURE"), details=details, **kwargs)


class UnsupportedFormat(ExtractionFailure):
    """Raised when the resume file type cannot be decoded"""

    def __init__(self, message: str, mime: str = None, ext: str = None, **kwargs):
        details = kwargs.pop('details', {})
        details['mime'] = mime or "unknown"
        details['ext'] = ext or "unknown"
        super().__init__(message, error_code="UNSUPPORTED_FORMAT", details=details, **kwargs)


class ParseFailure(CVStandardizerBaseException):
    """Raised when generator output cannot be turned into a usable value"""

    def __init__(self, message: str, stage: str = None, **kwargs):
        details = kwargs.pop('details', {})
        if stage:
            details['stage'] = stage
        super().__init__(message, error_code=kwargs.pop('error_code', "PARSE_FAILURE"), details=details, **kwargs)


class JsonRecoveryError(ParseFailure):
    """Raised when no recovery candidate of a near-JSON text parses"""

    def __init__(self, message: str, first_error: Exception = None, **kwargs):
        details = kwargs.pop('details', {})
        if first_error is not None:
            details['first_error'] = str(first_error)
        super().__init__(message, error_code="JSON_RECOVERY_ERROR", details=details, cause=first_error, **kwargs)
        self.first_error = first_error


class GenerationDegraded(CVStandardizerBaseException):
    """Signals that polished content could not be generated and a fallback was used"""

    def __init__(self, message: str, attempts: int = None, **kwargs):
        details = kwargs.pop('details', {})
        if attempts is not None:
            details['attempts'] = attempts
        super().__init__(message, error_code="GENERATION_DEGRADED", details=details, **kwargs)


class UpstreamError(CVStandardizerBaseException):
    """Raised when the text generation service call fails"""

    def __init__(self, message: str, service_name: str = None, status_code: int = None, **kwargs):
        details = kwargs.pop('details', {})
        if service_name:
            details['service_name'] = service_name
        if status_code:
            details['status_code'] = status_code
        super().__init__(message, error_code=kwargs.pop('error_code', "UPSTREAM_ERROR"), details=details, **kwargs)


class UpstreamTimeout(UpstreamError):
    """Raised when the text generation service does not answer in time"""

    def __init__(self, message: str, timeout_ms: int = None, **kwargs):
        details = kwargs.pop('details', {})
        if timeout_ms is not None:
            details['timeout_ms'] = timeout_ms
        super().__init__(message, error_code="UPSTREAM_TIMEOUT", details=details, **kwargs)


def map_to_http_exception(exc: CVStandardizerBaseException) -> HTTPException:
    """Map custom exceptions to HTTP exceptions"""

    status_code_mapping = {
        ValidationError: 400,
        ConfigurationError: 400,
        NotFoundError: 404,
        ConflictError: 409,
        ExtractionFailure: 422,
        UnsupportedFormat: 415,
        ParseFailure: 502,
        JsonRecoveryError: 422,
        UpstreamError: 502,
        UpstreamTimeout: 504,
    }

    status_code = status_code_mapping.get(type(exc), 500)

    detail = {
        "error": exc.to_dict(),
        "message": exc.message
    }

    return HTTPException(status_code=status_code, detail=detail)
