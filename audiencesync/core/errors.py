"""audiencesync — Pipeline Error Taxonomy."""

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for failures raised inside the pipeline components."""


class ValidationError(PipelineError):
    """Bad input detected before any remote call was made."""


class RemoteAPIError(PipelineError):
    """A remote call returned a non-success response."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: int = 0,
        body: Optional[Dict[str, Any]] = None,
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.body = body or {}
        super().__init__(message)


class MissingCredentialsError(PipelineError):
    """Meta credentials are not configured; no pipeline work is possible."""
