"""JSONL trail of what each item generation run did.

One file can hold many runs. A logger bound to a run id (see
:meth:`ProvenanceLogger.bind`) stamps that id on every event it records, so a
run's history can be read back on its own.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping

from pydantic import BaseModel, ConfigDict, Field


class ProvenanceEvent(BaseModel):
    """One stage transition, failure or artifact write."""

    model_config = ConfigDict(extra="forbid")

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str | None = None
    stage: str = Field(..., description="Pipeline stage, e.g. 'shell' or 'widgets'.")
    message: str
    agent: str = "system"
    payload: Dict[str, Any] = Field(default_factory=dict)


class ProvenanceLogger:
    def __init__(self, output_path: Path, *, run_id: str | None = None, agent: str = "system") -> None:
        self.output_path = Path(output_path)
        self.run_id = run_id
        self.agent = agent
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def bind(self, *, run_id: str | None = None, agent: str | None = None) -> "ProvenanceLogger":
        """Logger on the same file with a fixed run id and/or default agent."""
        return ProvenanceLogger(
            self.output_path,
            run_id=run_id if run_id is not None else self.run_id,
            agent=agent or self.agent,
        )

    def record(self, stage: str, message: str, payload: Mapping[str, Any] | None = None) -> ProvenanceEvent:
        return self.log(
            ProvenanceEvent(
                run_id=self.run_id,
                stage=stage,
                message=message,
                agent=self.agent,
                payload=dict(payload or {}),
            )
        )

    def log(self, event: ProvenanceEvent | Mapping[str, Any]) -> ProvenanceEvent:
        """Append one event; a bound run id fills in events that carry none."""
        if not isinstance(event, ProvenanceEvent):
            event = ProvenanceEvent.model_validate(dict(event))
        if event.run_id is None and self.run_id is not None:
            event = event.model_copy(update={"run_id": self.run_id})
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def read(self, *, run_id: str | None = None, stage: str | None = None) -> List[ProvenanceEvent]:
        if not self.output_path.exists():
            return []
        with self.output_path.open("r", encoding="utf-8") as handle:
            events = [ProvenanceEvent.model_validate_json(line) for line in handle if line.strip()]
        return [
            event
            for event in events
            if (run_id is None or event.run_id == run_id) and (stage is None or event.stage == stage)
        ]


__all__ = ["ProvenanceEvent", "ProvenanceLogger"]
