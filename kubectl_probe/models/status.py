"""Status records exchanged between the probe agent and the orchestrator.

The agent prints one record per line as a JSON object. The field names are
the wire contract: ``success`` and ``fail`` are required, ``msg`` and
``error`` are informational.
"""

from pydantic import Field

from kubectl_probe.models.base import Model


class StatusRecord(Model):
    """Cumulative dial counters reported by an agent."""

    success: int = Field(..., ge=0, description="Successful dials so far")
    fail: int = Field(..., ge=0, description="Failed dials so far")
    msg: str | None = None
    error: str | None = None

    def to_line(self) -> str:
        """Serialize as a single JSON line, omitting unset optional fields."""
        return self.model_dump_json(exclude_none=True)
