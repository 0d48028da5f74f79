"""
Custom Exceptions
"""
from typing import List, Optional


class BriefServiceError(Exception):
    """Base error for the country brief service"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(BriefServiceError):
    """Missing or invalid configuration"""
    pass


class StorageError(BriefServiceError):
    """Persistence failure"""
    pass


class RecordNotFoundError(StorageError):
    """Lookup by key found nothing"""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.key = key


class JobStateError(StorageError):
    """Illegal update job status transition"""
    pass


class JobAlreadyRunningError(BriefServiceError):
    """Another update job holds the single running slot"""

    def __init__(self, message: str, running_job_id: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.running_job_id = running_job_id


class LLMError(BriefServiceError):
    """Model call failure"""

    def __init__(self, message: str, provider: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.provider = provider


class SummaryParseError(LLMError):
    """Model output could not be turned into a summary"""
    pass


class SourceFetchError(BriefServiceError):
    """Regulatory source could not be fetched"""

    def __init__(self, message: str, source: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class SummaryValidationError(BriefServiceError):
    """Operator-edited summary was rejected"""

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        super().__init__(message, kwargs)
        self.errors = list(errors or [])
