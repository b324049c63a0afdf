#!/usr/bin/env python3
"""
Run Reconciler for S5 Commander
Deletes local files whose upload s5cmd confirmed

Safety rule: a local file is deleted if and only if s5cmd reported that
exact file as a successfully copied, file-typed object in this run.
"""

import logging
import os
from typing import Callable, Iterable, Optional

from s5commander.result_parser import TransferRecord
from s5commander.summary import RunSummary

logger = logging.getLogger(__name__)


def reconcile_transfers(records: Iterable[TransferRecord],
                        remove: Optional[Callable[[str], None]] = None) -> RunSummary:
    """
    Turn confirmed copies into local deletions.

    Records that are not successful file copies (directories, failed
    copies, other operations) are ignored. A deletion failure is recorded
    and the pass continues.

    Args:
        records: Parsed s5cmd results for one run
        remove: Deletion function (defaults to os.remove)

    Returns:
        RunSummary: Counts for this run; every transferred file ends up
            either deleted or in failed_deletions
    """
    if remove is None:
        remove = os.remove

    summary = RunSummary()

    for record in records:
        if not record.is_copied_file:
            continue

        summary.files_transferred += 1
        summary.total_bytes += record.object_size

        try:
            remove(record.source)
        except (OSError, ValueError) as e:
            # ValueError: a path os.remove rejects outright (embedded NUL)
            logger.warning(f"Uploaded but failed to delete {record.source}: {e}")
            summary.failed_deletions.append(record.source)
        else:
            summary.files_deleted += 1
            logger.debug(f"Uploaded + DELETED: {record.source} ({record.object_size} bytes)")

    return summary
