# Author: PB
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2026, GPL-2 or newer
#
# ------
# src/vaultsync/service/delta.py

"""Change classification for catalog upserts.

A candidate row is compared with the stored row for the same natural key:
no stored row means CREATED, any differing delta field means MODIFIED,
otherwise UNCHANGED. Each class selects one set of flag assignments.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from vaultsync.exceptions import ConfigurationError

NUMERIC_RE = re.compile(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


class Delta(str, Enum):
    """Classification of a candidate row against the stored row."""
    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


FLAG_SETS = {
    Delta.CREATED: "on_insert",
    Delta.MODIFIED: "on_update_when_delta_changed",
    Delta.UNCHANGED: "on_update_when_no_change",
}


def _as_number(value: Any) -> Optional[Union[int, float]]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and NUMERIC_RE.fullmatch(value.strip()):
        text = value.strip()
        return float(text) if ("." in text or "e" in text.lower()) else int(text)
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Compare stored and candidate values the way a database round-trip needs.

    Numbers and numeric-looking strings compare by value, so 5, "5.0" and
    "5e0" are equal. Booleans only equal booleans. Everything else must be
    exactly equal.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    left_num = _as_number(left)
    right_num = _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num

    return left == right


class UpsertPlan:
    """Key, column and delta settings for one catalog table."""

    def __init__(
        self,
        keys: Iterable[str],
        insert_columns: Iterable[str],
        update_columns: Optional[Iterable[str]] = None,
        delta_fields: Iterable[str] = (),
    ):
        self.keys: List[str] = list(keys)
        self.insert_columns: List[str] = list(insert_columns)
        self.update_columns: List[str] = list(update_columns or []) or list(self.insert_columns)
        self.delta_fields: List[str] = list(delta_fields)

        if not self.keys:
            raise ConfigurationError("The catalog table needs at least one key column")
        if not self.insert_columns:
            raise ConfigurationError("upsert.insert must list at least one column")

    @classmethod
    def from_logic(cls, keys: Iterable[str], logic) -> "UpsertPlan":
        """Build a plan from a TableConfig's keys and LogicConfig."""
        return cls(
            keys=keys,
            insert_columns=logic.upsert.insert,
            update_columns=logic.upsert.update,
            delta_fields=logic.delta.fields,
        )

    def classify(self, candidate: Mapping[str, Any], existing: Optional[Mapping[str, Any]]) -> Delta:
        if existing is None:
            return Delta.CREATED
        if not self.delta_fields:
            return Delta.MODIFIED
        for field in self.delta_fields:
            if not loose_equals(candidate.get(field), existing.get(field)):
                return Delta.MODIFIED
        return Delta.UNCHANGED

    @staticmethod
    def flag_set(delta: Delta) -> str:
        return FLAG_SETS[Delta(delta)]

    def key_values(self, row: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Natural-key values of a row, or None when any is missing or null."""
        values = {}
        for key in self.keys:
            if row.get(key) is None:
                return None
            values[key] = row[key]
        return values
