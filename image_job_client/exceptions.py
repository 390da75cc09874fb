from typing import List, Optional, Tuple


class ImageJobError(Exception):
    """Base class for errors raised by the image job client"""


class ConfigurationError(ImageJobError):
    pass


class DomainRejection(ImageJobError):
    """The image service refused the request (bad prompt, quota, invalid parameter)"""

    def __init__(self, description: str, status_code: Optional[int] = None):
        self.description = description
        self.status_code = status_code
        if status_code is not None:
            message = f"HTTP {status_code}: {description}"
        else:
            message = f"API Error: {description}"
        super().__init__(message)


class JobFailed(ImageJobError):
    """The remote job reached a terminal failure status"""

    def __init__(self, job_id: str, reason: Optional[str] = None):
        self.job_id = job_id
        self.reason = reason or "Unknown error"
        super().__init__(f"Task {job_id} failed: {self.reason}")


class JobTimedOut(ImageJobError, TimeoutError):
    """No terminal status was observed within the poll budget"""

    def __init__(self, job_id: str, attempts: int, waited_ms: int):
        self.job_id = job_id
        self.attempts = attempts
        self.waited_ms = waited_ms
        super().__init__(
            f"Task {job_id} timeout after {attempts} status checks "
            f"({waited_ms / 1000:.0f} seconds)"
        )


class CascadeExhausted(ImageJobError):
    """Every request strategy for one logical operation failed"""

    def __init__(self, attempts: int, last_error: Exception, errors: List[Tuple[str, Exception]]):
        self.attempts = attempts
        self.last_error = last_error
        self.errors = errors
        super().__init__(
            f"All {attempts} inpaint strategies failed. Last error: {last_error}"
        )
