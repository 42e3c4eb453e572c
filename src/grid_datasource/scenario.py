"""Scripted change scenarios replayed against an ArrayDataSource.

A scenario is a YAML document with initial records and a list of steps;
each step is one logical change::

    records:
      - {id: 1, name: red}
    steps:
      - insert: [{position: 1, records: [{id: 5, name: mauve}]}]
      - remove: [5]
      - set: {id: 1, key: name, value: crimson}
      - update: [{id: 1, name: scarlet}]
      - sort: [{key: name, direction: desc}]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self

import structlog
from pydantic import BaseModel, Field, ValidationError, model_validator

from grid_datasource.base import RecordId, SortKey, comparator_for
from grid_datasource.config.loader import load_yaml
from grid_datasource.config.models import DataSourceConfig, SortDirection
from grid_datasource.events import DataSourceEvent
from grid_datasource.memory import ArrayDataSource
from grid_datasource.mirror import ViewMirror

logger = structlog.get_logger()


class InsertBlock(BaseModel):
    position: int = Field(ge=0)
    records: list[dict[str, Any]] = Field(min_length=1)


class SetValueStep(BaseModel):
    id: RecordId
    key: str
    value: Any = None


class SortStep(BaseModel):
    key: str
    direction: SortDirection = SortDirection.ASC


class Step(BaseModel, extra="forbid"):
    """Exactly one of the operation fields must be set."""

    insert: list[InsertBlock] | None = None
    remove: list[RecordId] | None = None
    set: SetValueStep | None = None
    update: list[dict[str, Any]] | None = None
    sort: list[SortStep] | None = None

    @model_validator(mode="after")
    def check_single_operation(self) -> Self:
        chosen = [n for n in type(self).model_fields if getattr(self, n) is not None]
        if len(chosen) != 1:
            msg = f"Each step needs exactly one operation, got {chosen or 'none'}"
            raise ValueError(msg)
        return self

    @property
    def operation(self) -> str:
        return next(n for n in type(self).model_fields if getattr(self, n) is not None)


class Scenario(BaseModel, extra="forbid"):
    id_field: str = "id"
    records: list[dict[str, Any]] = Field(default_factory=list)
    steps: list[Step] = Field(default_factory=list)


@dataclass
class ScenarioResult:
    events: list[DataSourceEvent] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    source_ids: list[RecordId] = field(default_factory=list)
    mirror_ids: list[RecordId | None] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.mirror_ids == self.source_ids


def load_scenario(path: str | Path) -> Scenario:
    data = load_yaml(path)
    try:
        return Scenario.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid scenario ({path}):\n{exc}"
        raise ValueError(msg) from exc


def apply_step(source: ArrayDataSource, step: Step) -> None:
    if step.insert is not None:
        source.insert([(block.position, block.records) for block in step.insert])
    elif step.remove is not None:
        source.remove(step.remove)
    elif step.set is not None:
        source.set_value(step.set.id, step.set.key, step.set.value)
    elif step.update is not None:
        source.update(step.update)
    elif step.sort is not None:
        order = [SortKey(s.key, s.direction) for s in step.sort]
        source.sort(comparator_for(order), order)


def run_scenario(scenario: Scenario) -> ScenarioResult:
    """Run every step, observing the source through a ViewMirror."""
    config = DataSourceConfig(source_id="scenario", id_field=scenario.id_field)
    source = ArrayDataSource(scenario.records, config=config)
    mirror = ViewMirror(source, id_field=scenario.id_field)
    try:
        for number, step in enumerate(scenario.steps, start=1):
            logger.debug("scenario.step", step=number, operation=step.operation)
            apply_step(source, step)
    finally:
        mirror.close()
    rows = source.get_data()
    return ScenarioResult(
        events=list(mirror.events),
        rows=rows,
        source_ids=[row[scenario.id_field] for row in rows],
        mirror_ids=mirror.ids(),
    )
