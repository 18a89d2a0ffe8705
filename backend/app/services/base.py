"""
Service Base Classes and Errors

Scoring, risk validation and the proposal lifecycle share one shape:
a named service with a typed entry point and a health check. Errors
carry the originating service so the API layer can map them to HTTP
status codes.
"""

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class BaseService(ABC, Generic[InputT, OutputT]):
    """A service with one typed entry point."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name used in logs and error messages."""
        pass

    @abstractmethod
    async def execute(self, input_data: InputT) -> OutputT:
        """
        Run the service on a validated input.

        Raises:
            ServiceError: Any failure the caller is expected to handle
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass


class ServiceError(Exception):
    """Raised by a service. `message` is safe to show to API callers."""

    def __init__(self, service_name: str, message: str, details: dict = None):
        self.service_name = service_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[{service_name}] {message}")


class ValidationError(ServiceError):
    """Request parameters out of range."""
    pass


class ExternalAPIError(ServiceError):
    """Safety collaborator or broker answered with an error."""
    pass


class DependencyUnavailable(ServiceError):
    """Circuit open or call timed out, and no usable cached value."""
    pass


class ProposalNotFound(ServiceError):
    """Unknown proposal, or one owned by another user."""
    pass


class LifecycleConflict(ServiceError):
    """Proposal is not in the state the requested transition needs."""

    def __init__(
        self,
        service_name: str,
        message: str,
        status: Optional[str] = None,
        details: dict = None,
    ):
        self.status = status
        super().__init__(service_name, message, details)


class ProposalExpired(LifecycleConflict):
    """Acknowledged after its expiry. The proposal is already marked expired."""
    pass


class ExecutionFailure(ServiceError):
    """Broker rejected or could not be reached. The proposal is already marked failed."""
    pass
