# src/core/errors.py — v1
"""Error taxonomy for pipeline stages.

Every stage failure is terminal for the current run. The runner records
the exception class name on the failed StageResult, so names here are
part of the run manifest format.
"""

from __future__ import annotations


class ShiplineError(Exception):
    """Base class for all shipline errors."""


class BuildFailure(ShiplineError):
    """Image build failed (bad recipe, missing dependency, failing step)."""

    def __init__(self, service: str, message: str, log: list[str] | None = None):
        self.service = service
        self.log = log or []
        super().__init__(f"Build of '{service}' failed: {message}")


class AuthFailure(ShiplineError):
    """Credentials rejected by the registry or the remote host."""


class PublishFailure(ShiplineError):
    """Push to the registry failed (network, quota, unknown tag)."""

    def __init__(self, reference: str, message: str, published_tags: list[str] | None = None):
        self.reference = reference
        self.published_tags = published_tags or []
        super().__init__(f"Publish of '{reference}' failed: {message}")


class ConnectTimeout(ShiplineError):
    """Remote host unreachable within the connect timeout."""


class DeployFailure(ShiplineError):
    """A pull or recreate step failed on the remote host.

    ``updated_services`` lists services already recreated before the
    failure. There is no rollback, so the host may be partially updated.
    """

    def __init__(self, message: str, updated_services: list[str] | None = None):
        self.updated_services = updated_services or []
        super().__init__(message)


class DescriptorError(ShiplineError):
    """Composition descriptor is malformed or inconsistent."""


class InvalidTransition(ShiplineError):
    """Pipeline state machine received an illegal transition."""


class RunInProgress(ShiplineError):
    """Another pipeline run holds the run lock."""
