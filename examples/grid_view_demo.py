#!/usr/bin/env python3
"""Runnable demo: keep a grid view in sync with an in-memory data source.

    python examples/grid_view_demo.py
"""

from __future__ import annotations

from rich.console import Console

from grid_datasource.base import SortKey, comparator_for
from grid_datasource.events import DataSourceEvent
from grid_datasource.memory import ArrayDataSource
from grid_datasource.mirror import ViewMirror

console = Console()


def main() -> None:
    # 1. Build a source and attach a view to it
    source = ArrayDataSource(
        [
            {"id": 1, "name": "red"},
            {"id": 2, "name": "blue"},
            {"id": 3, "name": "green"},
            {"id": 4, "name": "orange"},
        ]
    )
    view = ViewMirror(source)

    def show(event: DataSourceEvent) -> None:
        console.print(f"[cyan]{event.type}[/cyan] {event.payload or ''}")

    source.subscribe(show)

    # 2. Two discontiguous blocks in one logical change
    source.insert(
        [
            (1, [{"id": 5, "name": "mauve"}]),
            (3, [{"id": 6, "name": "teal"}, {"id": 7, "name": "purple"}]),
        ]
    )
    console.print("view:", [row["name"] for row in view.rows])

    # 3. Remove them again, edit a cell and sort
    source.remove([6, 7, 5])
    source.set_value(2, "name", "navy")
    order = [SortKey("name")]
    source.sort(comparator_for(order), order)
    console.print("view:", [row["name"] for row in view.rows])

    view.close()


if __name__ == "__main__":
    main()
