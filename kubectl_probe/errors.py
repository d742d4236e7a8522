"""Exceptions raised while running a probe test case."""

from kubectl_probe.models.result import CaseStatus


class ProbeError(Exception):
    """Base class for failures scoped to a single test case."""

    status: CaseStatus = "error"


class ResolutionError(ProbeError):
    """Raised when a target selector cannot be resolved to a pod."""


class InjectionError(ProbeError):
    """Raised when the probe container could not be added to the pod."""


class FeatureUnavailable(InjectionError):
    """Raised when the cluster does not serve the ephemeralcontainers subresource."""


class WatchTimedOut(ProbeError):
    """Raised when the probe container did not start within the timeout."""

    status = "timeout"


class WatchDeleted(ProbeError):
    """Raised when the target pod was deleted before the probe started."""


class WatchError(ProbeError):
    """Raised when the API server reports an error on the watch stream."""


class StreamDecodeError(ProbeError):
    """Raised when the probe output contains a malformed status record."""


class StreamEnded(ProbeError):
    """Raised when the probe output ends before a decisive record."""


class AssertionTimeout(ProbeError):
    """Raised when no decisive status record was seen within the timeout."""

    status = "timeout"


class AssertionMismatch(ProbeError):
    """Raised when the probe observed the opposite of the expected outcome."""

    status = "failure"
