"""
Utils Module
"""
from .logger import setup_logger, format_duration
from .exceptions import (
    BriefServiceError,
    ConfigurationError,
    JobAlreadyRunningError,
    JobStateError,
    LLMError,
    RecordNotFoundError,
    SourceFetchError,
    StorageError,
    SummaryParseError,
    SummaryValidationError,
)

__all__ = [
    "setup_logger",
    "format_duration",
    "BriefServiceError",
    "ConfigurationError",
    "JobAlreadyRunningError",
    "JobStateError",
    "LLMError",
    "RecordNotFoundError",
    "SourceFetchError",
    "StorageError",
    "SummaryParseError",
    "SummaryValidationError",
]
