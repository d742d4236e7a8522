"""Models for test suites loaded from suite documents."""

from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Annotated, Any, Literal, TypeAlias

from pydantic import BeforeValidator, Field

from kubectl_probe.cluster.models import LabelSelector
from kubectl_probe.durations import Duration, format_duration
from kubectl_probe.models.base import Model

DEFAULT_PROBE_IMAGE = "ghcr.io/superorbital/kubectl-probe:latest"
DEFAULT_NAMESPACE = "default"

Expectation: TypeAlias = Literal["Pass", "Fail"]


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


Transport = Annotated[Literal["tcp", "udp"], BeforeValidator(_lower)]


class PodByName(Model):
    """Select a single pod by name."""

    kind: Literal["pod"] = "pod"
    namespace: str = DEFAULT_NAMESPACE
    name: str

    def __str__(self) -> str:
        return f"pod {self.namespace}/{self.name}"


class PodByLabels(Model):
    """Select a running pod matching a label selector."""

    kind: Literal["labels"] = "labels"
    namespace: str = DEFAULT_NAMESPACE
    label_selector: LabelSelector

    def __str__(self) -> str:
        return f"pods in {self.namespace} matching '{self.label_selector.format()}'"


class ByDeployment(Model):
    """Select a running pod owned by a deployment."""

    kind: Literal["deployment"] = "deployment"
    namespace: str = DEFAULT_NAMESPACE
    deployment: str

    def __str__(self) -> str:
        return f"deployment {self.namespace}/{self.deployment}"


class InvalidSelector(Model):
    """A selector document that names no target, or more than one.

    Kept as data so the error surfaces when the case runs instead of
    preventing the whole suite from loading.
    """

    kind: Literal["invalid"] = "invalid"
    namespace: str = DEFAULT_NAMESPACE
    reason: str

    def __str__(self) -> str:
        return f"invalid selector in {self.namespace}"


SELECTOR_KEYS: Mapping[str, str] = {
    "name": "pod",
    "labelSelector": "labels",
    "label_selector": "labels",
    "deployment": "deployment",
}


def tag_selector(data: Any) -> Any:
    """Tag a raw selector document with the variant it describes."""
    if not isinstance(data, Mapping) or "kind" in data:
        return data

    kinds = sorted({SELECTOR_KEYS[key] for key in data if key in SELECTOR_KEYS})
    if len(kinds) == 1:
        return {**data, "kind": kinds[0]}

    if kinds:
        reason = f"selector sets more than one of {', '.join(kinds)}"
    else:
        reason = "selector must set one of name, labelSelector or deployment"
    return {
        "kind": "invalid",
        "namespace": data.get("namespace", DEFAULT_NAMESPACE),
        "reason": reason,
    }


TargetSelector = Annotated[
    PodByName | PodByLabels | ByDeployment | InvalidSelector,
    Field(discriminator="kind"),
]


class Destination(Model):
    """Where the probe connects to and how."""

    address: str = Field(..., description="Destination host name or IP address")
    port: int = Field(..., ge=1, le=65535, description="Destination port")
    protocol: Transport = Field(default="tcp", description="tcp or udp")
    message: str = Field(default="hello world", description="Payload sent per dial")
    image: str | None = Field(default=None, description="Probe image override")
    interval: Duration = Field(
        default=timedelta(seconds=5), description="Time between dials"
    )

    @property
    def endpoint(self) -> str:
        """Host and port in dial form, bracketing IPv6 literals."""
        host = f"[{self.address}]" if ":" in self.address else self.address
        return f"{host}:{self.port}"

    def to_env(self) -> Sequence[Mapping[str, str]]:
        """Environment variables read by the probe agent inside the container."""
        return [
            {"name": "ADDRESS", "value": self.endpoint},
            {"name": "PROTOCOL", "value": self.protocol},
            {"name": "MESSAGE", "value": self.message},
            {"name": "INTERVAL", "value": format_duration(self.interval)},
        ]


class TestCase(Model):
    """A single reachability expectation."""

    __test__ = False

    description: str = Field(..., description="Human-readable case description")
    expect: Expectation = Field(..., description="Whether the probe should connect")
    from_: Annotated[TargetSelector, BeforeValidator(tag_selector)] = Field(
        ..., alias="from", description="Pod the probe runs in"
    )
    to: Destination = Field(..., description="Destination the probe dials")


class TestSuite(Model):
    """Complete suite loaded from a suite document."""

    __test__ = False

    test_cases: Sequence[TestCase] = Field(default_factory=list)
    probe_image: str = Field(default=DEFAULT_PROBE_IMAGE)
