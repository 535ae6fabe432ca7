# pair_index/errors.py
from __future__ import annotations
from pathlib import Path
from typing import Sequence


class PairIndexError(Exception):
    """Base class for fatal pipeline errors."""


class InputReadError(PairIndexError):
    """A source file is missing or cannot be parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to read {path}: {reason}")


class WriteError(PairIndexError):
    """An output artifact could not be written."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write {path}: {reason}")


class IncompleteRecordWarning(UserWarning):
    """Item skipped by the strict policy: one or more categories are missing."""

    def __init__(self, item_id: int, missing: Sequence[str]) -> None:
        self.item_id = item_id
        self.missing = tuple(missing)
        super().__init__(f"item #{item_id} missing {', '.join(self.missing)}, skipping")
