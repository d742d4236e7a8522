"""Tests for suite loader."""

from pathlib import Path

import pytest

from kubectl_probe.models.suite import DEFAULT_PROBE_IMAGE, PodByName
from kubectl_probe.suite_loader import load_test_suite

SUITE = """
testCases:
  - description: "web can reach db"
    expect: Pass
    from:
      namespace: prod
      name: web-0
    to:
      address: db.prod.svc
      port: 5432
  - description: "web cannot reach metadata"
    expect: Fail
    from:
      deployment: web
    to:
      address: 169.254.169.254
      port: 80
      interval: 1s
"""


class TestLoadTestSuite:
    """Tests for load_test_suite function."""

    __test__ = True

    async def test_loads_valid_yaml(self, tmp_path: Path) -> None:
        """Loads and parses a suite document."""
        path = tmp_path / "suite.yaml"
        path.write_text(SUITE)

        suite = await load_test_suite(path)

        assert suite.probe_image == DEFAULT_PROBE_IMAGE
        assert len(suite.test_cases) == 2
        first, second = suite.test_cases
        assert first.description == "web can reach db"
        assert first.expect == "Pass"
        assert first.from_ == PodByName(namespace="prod", name="web-0")
        assert first.to.endpoint == "db.prod.svc:5432"
        assert second.expect == "Fail"
        assert second.to.interval.total_seconds() == 1

    async def test_loads_resource_style_document(self, tmp_path: Path) -> None:
        """Cases may sit under spec, as in a custom resource."""
        path = tmp_path / "suite.yaml"
        indented = "\n".join(f"  {line}" for line in SUITE.splitlines())
        path.write_text(
            "apiVersion: probe.superorbital.io/v1\nkind: TestSuite\nspec:\n"
            f"{indented}\n  probeImage: registry.local/probe:dev\n"
        )

        suite = await load_test_suite(path)

        assert len(suite.test_cases) == 2
        assert suite.probe_image == "registry.local/probe:dev"

    async def test_probe_image_override(self, tmp_path: Path) -> None:
        """An explicit probe image wins over the document."""
        path = tmp_path / "suite.yaml"
        path.write_text(SUITE + "probeImage: registry.local/probe:dev\n")

        suite = await load_test_suite(path, probe_image="registry.local/probe:ci")

        assert suite.probe_image == "registry.local/probe:ci"

    async def test_raises_when_file_missing(self, tmp_path: Path) -> None:
        """Raises FileNotFoundError for a missing document."""
        with pytest.raises(FileNotFoundError, match="Suite file not found"):
            await load_test_suite(tmp_path / "missing.yaml")

    async def test_raises_on_invalid_yaml(self, tmp_path: Path) -> None:
        """Raises ValueError for unparsable YAML."""
        path = tmp_path / "suite.yaml"
        path.write_text("testCases: [unclosed")

        with pytest.raises(ValueError, match="Invalid YAML"):
            await load_test_suite(path)

    async def test_raises_on_empty_file(self, tmp_path: Path) -> None:
        """Raises ValueError for an empty document."""
        path = tmp_path / "suite.yaml"
        path.write_text("")

        with pytest.raises(ValueError, match="Empty suite file"):
            await load_test_suite(path)

    async def test_raises_on_non_mapping(self, tmp_path: Path) -> None:
        """Raises ValueError when the document is not a mapping."""
        path = tmp_path / "suite.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="must be a mapping"):
            await load_test_suite(path)

    async def test_raises_on_schema_violation(self, tmp_path: Path) -> None:
        """Raises ValueError when a case misses required fields."""
        path = tmp_path / "suite.yaml"
        path.write_text("testCases:\n  - description: incomplete\n")

        with pytest.raises(ValueError, match="Invalid suite schema"):
            await load_test_suite(path)

    async def test_invalid_selector_does_not_fail_loading(
        self, tmp_path: Path
    ) -> None:
        """A selector naming no target loads; the case fails when it runs."""
        path = tmp_path / "suite.yaml"
        path.write_text(
            """
testCases:
  - description: "no target"
    expect: Pass
    from:
      namespace: prod
    to:
      address: db
      port: 5432
"""
        )

        suite = await load_test_suite(path)

        assert suite.test_cases[0].from_.kind == "invalid"
