"""Tests for suite models."""

from datetime import timedelta
from typing import Any

import pytest
from pydantic import ValidationError

from kubectl_probe.models.suite import (
    DEFAULT_PROBE_IMAGE,
    ByDeployment,
    Destination,
    InvalidSelector,
    PodByLabels,
    PodByName,
    TestCase,
    TestSuite,
    tag_selector,
)
from kubectl_probe.testing.factories import DestinationFactory


def case_document(**from_: Any) -> dict[str, Any]:
    return {
        "description": "web can reach db",
        "expect": "Pass",
        "from": from_,
        "to": {"address": "db.default.svc", "port": 5432},
    }


class TestTargetSelector:
    """Tests for the selector variants of a test case."""

    def test_name_selects_pod_by_name(self) -> None:
        """A name field selects a single pod."""
        case = TestCase.model_validate(case_document(namespace="prod", name="web-0"))

        assert case.from_ == PodByName(namespace="prod", name="web-0")

    def test_label_selector_selects_by_labels(self) -> None:
        """A labelSelector field selects pods by labels."""
        case = TestCase.model_validate(
            case_document(
                labelSelector={
                    "matchLabels": {"app": "web"},
                    "matchExpressions": [
                        {"key": "tier", "operator": "In", "values": ["b", "a"]}
                    ],
                }
            )
        )

        assert isinstance(case.from_, PodByLabels)
        assert case.from_.namespace == "default"
        assert case.from_.label_selector.format() == "app=web,tier in (a,b)"

    def test_deployment_selects_by_deployment(self) -> None:
        """A deployment field selects pods owned by the deployment."""
        case = TestCase.model_validate(case_document(deployment="web"))

        assert case.from_ == ByDeployment(deployment="web")

    def test_selector_with_two_targets_is_invalid(self) -> None:
        """Setting more than one target field loads as an invalid selector."""
        case = TestCase.model_validate(case_document(name="web-0", deployment="web"))

        assert isinstance(case.from_, InvalidSelector)
        assert "more than one of deployment, pod" in case.from_.reason

    def test_selector_without_target_is_invalid(self) -> None:
        """Setting no target field loads as an invalid selector."""
        case = TestCase.model_validate(case_document(namespace="prod"))

        assert isinstance(case.from_, InvalidSelector)
        assert case.from_.namespace == "prod"
        assert "must set one of" in case.from_.reason

    def test_tag_selector_leaves_tagged_documents_alone(self) -> None:
        """Documents that already carry a kind are returned unchanged."""
        document = {"kind": "pod", "name": "web-0"}

        assert tag_selector(document) is document


class TestDestination:
    """Tests for Destination."""

    def test_defaults(self) -> None:
        """Protocol, message and interval have defaults."""
        destination = Destination(address="10.0.0.1", port=80)

        assert destination.protocol == "tcp"
        assert destination.message == "hello world"
        assert destination.interval == timedelta(seconds=5)
        assert destination.image is None

    def test_protocol_is_case_insensitive(self) -> None:
        """Protocol names are normalised to lower case."""
        destination = Destination(address="10.0.0.1", port=53, protocol="UDP")

        assert destination.protocol == "udp"

    def test_rejects_unknown_protocol(self) -> None:
        """Only tcp and udp are accepted."""
        with pytest.raises(ValidationError):
            Destination(address="10.0.0.1", port=80, protocol="sctp")

    @pytest.mark.parametrize("port", [0, 65536])
    def test_rejects_out_of_range_port(self, port: int) -> None:
        """Ports must be between 1 and 65535."""
        with pytest.raises(ValidationError):
            Destination(address="10.0.0.1", port=port)

    def test_endpoint_brackets_ipv6(self) -> None:
        """IPv6 literals are bracketed in the dial address."""
        assert Destination(address="fd00::1", port=80).endpoint == "[fd00::1]:80"
        assert Destination(address="db", port=80).endpoint == "db:80"

    def test_to_env(self) -> None:
        """Environment carries every setting the probe agent reads."""
        destination = DestinationFactory.build(
            address="db", port=5432, protocol="udp", message="ping", interval="2m"
        )

        assert destination.to_env() == [
            {"name": "ADDRESS", "value": "db:5432"},
            {"name": "PROTOCOL", "value": "udp"},
            {"name": "MESSAGE", "value": "ping"},
            {"name": "INTERVAL", "value": "2m"},
        ]


class TestTestSuite:
    """Tests for TestSuite."""

    __test__ = True

    def test_defaults_to_empty_suite_with_default_image(self) -> None:
        """An empty document is a valid suite."""
        suite = TestSuite.model_validate({})

        assert suite.test_cases == []
        assert suite.probe_image == DEFAULT_PROBE_IMAGE

    def test_rejects_unknown_expectation(self) -> None:
        """Expectations other than Pass and Fail are rejected."""
        document = case_document(name="web-0") | {"expect": "Maybe"}

        with pytest.raises(ValidationError):
            TestSuite.model_validate({"testCases": [document]})
