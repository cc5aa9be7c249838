"""
Persistence for line items and reconciliation runs.

The engine only talks to the ``LineItemStore`` protocol. Two
implementations are provided: an in-memory store for tests and the API
process, and a JSON-file store the CLI uses between invocations.
"""

import json
from pathlib import Path
from typing import Literal, Optional, Protocol, Union

from .config import logger
from .schemas import LineItem, ReconciliationRun


UpsertOutcome = Literal["created", "updated"]


class StoreError(ValueError):
    """A record could not be written or the requested record does not exist."""


class LineItemStore(Protocol):
    """Persistence operations required by the reconciliation engine."""

    def upsert_line_item(self, product_id: str, batch_key: str, item: LineItem) -> UpsertOutcome:
        ...

    def find_line_items_for_batch(self, batch_key: str) -> list[LineItem]:
        ...

    def save_run(self, run: ReconciliationRun) -> None:
        ...

    def get_run(self, run_id: str) -> ReconciliationRun:
        ...


class InMemoryStore:
    """
    Dictionary-backed store.

    Line items are keyed by product ID alone; re-importing a product ID
    updates the stored item and moves it to the new batch.
    """

    def __init__(self) -> None:
        self._items: dict[str, tuple[str, LineItem]] = {}
        self._runs: dict[str, ReconciliationRun] = {}

    def upsert_line_item(self, product_id: str, batch_key: str, item: LineItem) -> UpsertOutcome:
        if not product_id or not product_id.strip():
            raise StoreError(f"Line item '{item.name}' has no product ID")

        outcome: UpsertOutcome = "updated" if product_id in self._items else "created"
        self._items[product_id] = (batch_key, item.model_copy(deep=True))
        return outcome

    def find_line_items_for_batch(self, batch_key: str) -> list[LineItem]:
        return [
            item.model_copy(deep=True)
            for key, item in self._items.values()
            if key == batch_key
        ]

    def save_run(self, run: ReconciliationRun) -> None:
        """Store the run and write out everything upserted since the last save."""
        previous = self._runs.get(run.run_id)
        self._runs[run.run_id] = run.model_copy(deep=True)
        try:
            self._flush()
        except StoreError:
            if previous is None:
                del self._runs[run.run_id]
            else:
                self._runs[run.run_id] = previous
            raise

    def get_run(self, run_id: str) -> ReconciliationRun:
        run = self._runs.get(run_id)
        if run is None:
            raise StoreError(f"Run not found: {run_id}")
        return run.model_copy(deep=True)

    def _flush(self) -> None:
        pass


class JsonFileStore(InMemoryStore):
    """
    In-memory store mirrored to a single JSON file.

    Upserted line items stay in memory until the next ``save_run`` writes
    the whole file. A run whose write fails is not kept.

    Args:
        path: JSON file; created on first write if it does not exist
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read store file {self.path}: {e}") from e

        for product_id, record in data.get("lineItems", {}).items():
            self._items[product_id] = (
                record["batchKey"],
                LineItem.model_validate(record["item"]),
            )
        for run_id, record in data.get("runs", {}).items():
            self._runs[run_id] = ReconciliationRun.model_validate(record)

        logger.debug(f"Loaded {len(self._items)} line items and {len(self._runs)} runs from {self.path}")

    def _flush(self) -> None:
        data = {
            "lineItems": {
                product_id: {
                    "batchKey": batch_key,
                    "item": item.model_dump(mode="json", by_alias=True),
                }
                for product_id, (batch_key, item) in self._items.items()
            },
            "runs": {
                run_id: run.model_dump(mode="json", by_alias=True)
                for run_id, run in self._runs.items()
            },
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to write store file {self.path}: {e}")
            raise StoreError(f"Cannot write store file {self.path}: {e}") from e


def open_store(path: Optional[Union[str, Path]] = None) -> LineItemStore:
    """JSON-file store when a path is given, otherwise an in-memory store."""
    if path is None:
        return InMemoryStore()
    return JsonFileStore(path)
