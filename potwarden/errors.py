"""Exception taxonomy for potwarden.

Failures are scoped to the smallest unit of work that owns them: one
rotation pipeline, one capture task, or one watcher tick.  Supervisory
loops catch ``PotwardenError`` (and unexpected exceptions), log them with
pot/container context, and carry on.
"""

from __future__ import annotations


class PotwardenError(RuntimeError):
    """Base class for every error raised by potwarden."""


class BackendError(PotwardenError):
    """Raised when the container/network orchestration API fails."""


class PotNotFoundError(BackendError):
    """Raised when no container or network carries the requested pot label."""


class CaptureDeviceError(PotwardenError):
    """Raised when a capture interface is missing or cannot be opened."""


class ManifestError(PotwardenError):
    """Raised when an artifact directory cannot be fingerprinted."""


class ArchiveIntegrityError(PotwardenError):
    """Raised when an archived member does not match its manifest hash."""


class InvalidRotationTransitionError(PotwardenError):
    """Raised when a rotation state transition is not in VALID_TRANSITIONS."""


class RotationStepError(PotwardenError):
    """Raised inside a rotation pipeline when one of its steps fails.

    Carries enough context for the pipeline to log the failure as a
    distinct condition and leave the dirty container untouched.
    """

    def __init__(
        self,
        pot_name: str,
        container_id: str,
        step: str,
        cause: BaseException | None = None,
    ) -> None:
        self.pot_name = pot_name
        self.container_id = container_id
        self.step = step
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"rotation of pot {pot_name!r} (container {container_id[:12]}) "
            f"failed at step {step!r}{detail}"
        )
