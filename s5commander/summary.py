#!/usr/bin/env python3
"""
Run summaries for S5 Commander

A RunSummary describes what one run cycle achieved. The same shape is used
for accumulated totals (reporting window and whole session), built by
folding run summaries together with accumulate().
"""

from dataclasses import dataclass, field
from typing import List

from s5commander.utils import bytes_to_mb


@dataclass
class RunSummary:
    """
    Result of one reconciliation pass (or a fold of several).

    Invariant after reconciliation:
        files_deleted + len(failed_deletions) == files_transferred

    Attributes:
        files_transferred (int): Files the copy tool reported as copied
        files_deleted (int): Copied files removed from local storage
        total_bytes (int): Sum of object sizes of copied files
        failed_deletions (List[str]): Copied files that could not be removed
    """

    files_transferred: int = 0
    files_deleted: int = 0
    total_bytes: int = 0
    failed_deletions: List[str] = field(default_factory=list)

    @property
    def files_failed(self) -> int:
        return len(self.failed_deletions)

    @property
    def megabytes(self) -> float:
        return bytes_to_mb(self.total_bytes)

    @property
    def success_rate(self) -> float:
        """Percentage of transferred files that were deleted locally."""
        if self.files_transferred == 0:
            return 0.0
        return self.files_deleted / self.files_transferred * 100.0

    def accumulate(self, other: 'RunSummary') -> 'RunSummary':
        """Add another summary into this one (in place) and return self."""
        self.files_transferred += other.files_transferred
        self.files_deleted += other.files_deleted
        self.total_bytes += other.total_bytes
        self.failed_deletions.extend(other.failed_deletions)
        return self


def accumulate(into: RunSummary, other: RunSummary) -> RunSummary:
    """Fold ``other`` into ``into``; counts and bytes add, failure lists concatenate."""
    return into.accumulate(other)
