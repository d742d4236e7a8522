"""Pydantic models for the Kubernetes API objects read by the probe."""

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Literal, TypeAlias

from pydantic import ConfigDict, Field, model_validator

from kubectl_probe.models.base import Model

WatchEventType: TypeAlias = Literal["ADDED", "MODIFIED", "DELETED", "BOOKMARK", "ERROR"]


class ApiModel(Model):
    """Base for API objects, ignoring the many fields the probe never reads."""

    model_config = ConfigDict(extra="ignore")


class LabelSelectorRequirement(ApiModel):
    """A single set-based label requirement."""

    key: str
    operator: Literal["In", "NotIn", "Exists", "DoesNotExist"]
    values: Sequence[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_values(self) -> "LabelSelectorRequirement":
        if self.operator in ("In", "NotIn") and not self.values:
            raise ValueError(f"operator {self.operator} requires at least one value")
        if self.operator in ("Exists", "DoesNotExist") and self.values:
            raise ValueError(f"operator {self.operator} does not take values")
        return self

    def format(self) -> str:
        """Format as a label selector string term."""
        values = ",".join(sorted(self.values))
        match self.operator:
            case "In":
                return f"{self.key} in ({values})"
            case "NotIn":
                return f"{self.key} notin ({values})"
            case "Exists":
                return self.key
            case "DoesNotExist":
                return f"!{self.key}"


class LabelSelector(ApiModel):
    """Label selector as used by deployments and suite documents."""

    match_labels: Mapping[str, str] = Field(default_factory=dict)
    match_expressions: Sequence[LabelSelectorRequirement] = Field(
        default_factory=list
    )

    def format(self) -> str:
        """Format as the string form accepted by the labelSelector query parameter.

        An empty selector formats to an empty string, which the API treats as
        matching everything.
        """
        terms = [f"{key}={value}" for key, value in sorted(self.match_labels.items())]
        terms.extend(
            requirement.format()
            for requirement in sorted(self.match_expressions, key=lambda r: r.key)
        )
        return ",".join(terms)


class ObjectMeta(ApiModel):
    """Subset of object metadata."""

    name: str
    namespace: str | None = None
    resource_version: str | None = None
    deletion_timestamp: datetime | None = None
    labels: Mapping[str, str] = Field(default_factory=dict)


class ListMeta(ApiModel):
    """Metadata of a list response."""

    resource_version: str | None = None


class ContainerStateWaiting(ApiModel):
    """Waiting container state."""

    reason: str | None = None
    message: str | None = None


class ContainerStateRunning(ApiModel):
    """Running container state."""

    started_at: datetime | None = None


class ContainerStateTerminated(ApiModel):
    """Terminated container state."""

    exit_code: int
    reason: str | None = None
    message: str | None = None


class ContainerState(ApiModel):
    """State of a container; at most one member is set."""

    waiting: ContainerStateWaiting | None = None
    running: ContainerStateRunning | None = None
    terminated: ContainerStateTerminated | None = None


class ContainerStatus(ApiModel):
    """Status of a single container in a pod."""

    name: str
    state: ContainerState = Field(default_factory=ContainerState)


class PodStatus(ApiModel):
    """Subset of pod status."""

    phase: str | None = None
    init_container_statuses: Sequence[ContainerStatus] = Field(default_factory=list)
    container_statuses: Sequence[ContainerStatus] = Field(default_factory=list)
    ephemeral_container_statuses: Sequence[ContainerStatus] = Field(
        default_factory=list
    )


class Pod(ApiModel):
    """A pod from the core/v1 API."""

    metadata: ObjectMeta
    status: PodStatus = Field(default_factory=PodStatus)

    def container_status(self, name: str) -> ContainerStatus | None:
        """Find the status of a container, init container or ephemeral container."""
        for statuses in (
            self.status.init_container_statuses,
            self.status.container_statuses,
            self.status.ephemeral_container_statuses,
        ):
            for status in statuses:
                if status.name == name:
                    return status
        return None

    @property
    def is_running(self) -> bool:
        """Whether the pod is running and not being deleted."""
        return (
            self.status.phase == "Running" and self.metadata.deletion_timestamp is None
        )


class PodList(ApiModel):
    """Response from the list pods API."""

    metadata: ListMeta = Field(default_factory=ListMeta)
    items: Sequence[Pod] = Field(default_factory=list)


class DeploymentSpec(ApiModel):
    """Subset of a deployment spec."""

    selector: LabelSelector


class Deployment(ApiModel):
    """A deployment from the apps/v1 API."""

    metadata: ObjectMeta
    spec: DeploymentSpec


class StatusDetails(ApiModel):
    """Details attached to an API Status."""

    name: str = ""
    kind: str = ""


class Status(ApiModel):
    """Status object returned by the API server for failed requests."""

    status: str | None = None
    message: str = ""
    reason: str = ""
    code: int | None = None
    details: StatusDetails = Field(default_factory=StatusDetails)


class WatchEvent(ApiModel):
    """A single notification from a watch stream."""

    type: WatchEventType
    object: Mapping[str, Any]

    def pod(self) -> Pod:
        """Parse the event object as a pod."""
        return Pod.model_validate(self.object)

    def error_status(self) -> Status:
        """Parse the event object as a Status, for ERROR events."""
        return Status.model_validate(self.object)
