# Overview: Duplicate detection for columns that disallow repeated values.

from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from ..column_types import is_blank
from ..models import TableColumn, TableRow


def value_key(value: Any) -> Any:
    """Hashable identity for a stored value; equality is exact (no case folding)."""
    if isinstance(value, (dict, list)):
        return ("json", json.dumps(value, sort_keys=True, default=str))
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, int):
        return ("num", value)
    if isinstance(value, float):
        # 5 and 5.0 are the same stored number; large ints stay exact
        return ("num", int(value) if value.is_integer() else value)
    return ("val", value)


class DuplicateChecker:
    """
    Tracks allow_duplicates=False columns for one validation pass.

    Two sources are checked: values remembered earlier in the current batch,
    and values already persisted for the table (unless check_persisted is off,
    e.g. for replace imports that clear the table first). Persisted values are
    loaded once per column on first use.
    """

    def __init__(
        self,
        session,
        table_id: int,
        columns: Iterable[TableColumn],
        *,
        check_persisted: bool = True,
        exclude_row_id: int | None = None,
    ):
        self.session = session
        self.table_id = table_id
        self.check_persisted = check_persisted
        self.exclude_row_id = exclude_row_id
        self.columns = [c for c in columns if not c.allow_duplicates]
        self._batch: dict[str, dict[Any, int]] = {c.name: {} for c in self.columns}
        self._persisted: dict[str, set] = {}

    def seen(self, column_name: str, value: Any) -> bool:
        return self.first_seen_row(column_name, value) is not None or self.exists_persisted(column_name, value)

    def first_seen_row(self, column_name: str, value: Any) -> Optional[int]:
        return self._batch.get(column_name, {}).get(value_key(value))

    def remember(self, column_name: str, value: Any, row_index: int = 0) -> None:
        self._batch.setdefault(column_name, {}).setdefault(value_key(value), row_index)

    def exists_persisted(self, column_name: str, value: Any) -> bool:
        if not self.check_persisted:
            return False
        if column_name not in self._persisted:
            self._persisted[column_name] = self._load_persisted(column_name)
        return value_key(value) in self._persisted[column_name]

    def _load_persisted(self, column_name: str) -> set:
        q = self.session.query(TableRow.id, TableRow.data).filter(TableRow.table_id == self.table_id)
        if self.exclude_row_id is not None:
            q = q.filter(TableRow.id != self.exclude_row_id)
        keys = set()
        for _, data in q.yield_per(500):
            value = (data or {}).get(column_name)
            if not is_blank(value):
                keys.add(value_key(value))
        return keys

    def check_row(self, row_index: int, data: dict) -> list[str]:
        """
        Check one validated row and remember its values.

        Returns "Row N: ..." messages; values are remembered even when they
        clash, so later rows keep pointing at the first occurrence.
        """
        problems = []
        for column in self.columns:
            value = data.get(column.name)
            if is_blank(value):
                continue
            display = value if not isinstance(value, bool) else str(value).lower()
            first = self.first_seen_row(column.name, value)
            if first is not None:
                problems.append(
                    f'Row {row_index}: Column "{column.name}" does not allow duplicate values. '
                    f'Value "{display}" appears more than once in this import (first seen in row {first}).'
                )
            elif self.exists_persisted(column.name, value):
                problems.append(
                    f'Row {row_index}: Column "{column.name}" does not allow duplicate values. '
                    f'Value "{display}" already exists.'
                )
            self.remember(column.name, value, row_index)
        return problems
