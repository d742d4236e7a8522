"""Load test suites from YAML suite documents."""

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from kubectl_probe.models.suite import TestSuite


async def load_test_suite(path: Path, probe_image: str | None = None) -> TestSuite:
    """Load and validate a suite document.

    The test cases may sit at the top level or under ``spec`` as in
    resource-style documents.

    Args:
        path: Path to the suite document
        probe_image: Probe image overriding the one set in the document

    Raises:
        FileNotFoundError: If the document does not exist
        ValueError: If the document is empty, not YAML, or fails validation

    """
    if not path.is_file():
        raise FileNotFoundError(f"Suite file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ValueError(f"Empty suite file: {path}")
    if not isinstance(data, Mapping):
        raise ValueError(f"Suite document must be a mapping: {path}")

    document: Mapping[str, Any] = data.get("spec", data)
    if probe_image:
        document = {**document, "probeImage": probe_image}

    try:
        return TestSuite.model_validate(document)
    except ValidationError as e:
        raise ValueError(f"Invalid suite schema in {path}: {e}") from e
