"""Models for test case and suite results."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, TypeAlias

CaseStatus: TypeAlias = Literal["success", "failure", "timeout", "error"]


@dataclass(frozen=True, kw_only=True)
class CaseResult:
    """Result of a single test case.

    ``success`` means the probe observed what the case expected.
    """

    description: str
    status: CaseStatus
    duration: float
    message: str | None = None
    pod: str | None = None
    container: str | None = None

    @property
    def passed(self) -> bool:
        return self.status == "success"


@dataclass(frozen=True, kw_only=True)
class SuiteResult:
    """Results of every case in a suite, in declaration order."""

    results: Sequence[CaseResult]

    @property
    def passed(self) -> bool:
        """Suite verdict: every case passed."""
        return all(result.passed for result in self.results)

    @property
    def failures(self) -> Sequence[CaseResult]:
        """Every failed case, not just the first."""
        return [result for result in self.results if not result.passed]
