#!/usr/bin/env python3
"""
Result Parser for S5 Commander
Decodes the line-delimited JSON that s5cmd writes with --json

Every line s5cmd prints for a copy looks like:

    {"operation":"cp","success":true,"source":"/data/a.gz",
     "destination":"s3://bucket/a.gz","object":{"type":"file","size":1024}}

Diagnostic lines that are not records are mixed into the same stream, so any
line that does not decode is skipped. When s5cmd exits non-zero because the
glob matched nothing, the whole output is a single error envelope:

    {"error":"no match found for \"/data/**/*.gz\""}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional, Union

logger = logging.getLogger(__name__)

OPERATION_COPY = 'cp'
OBJECT_TYPE_FILE = 'file'
NO_MATCH_MARKER = 'no match found for'


@dataclass(frozen=True)
class TransferRecord:
    """
    One result line reported by s5cmd.

    Attributes:
        operation (str): Operation tag ('cp' for copies)
        success (bool): Whether s5cmd reports the operation as successful
        source (str): Local source path (absolute or relative to cwd)
        destination (str): Remote destination (not used for reconciliation)
        object_type (str): Object kind ('file' or 'directory')
        object_size (int): Object size in bytes
    """

    operation: str = ''
    success: bool = False
    source: str = ''
    destination: str = ''
    object_type: str = ''
    object_size: int = 0

    @property
    def is_copied_file(self) -> bool:
        """True only for a successful copy of a file-typed object."""
        return (
            self.operation == OPERATION_COPY
            and self.success
            and self.object_type == OBJECT_TYPE_FILE
        )


class _DecodeError(ValueError):
    pass


def _string_field(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ''
    if not isinstance(value, str):
        raise _DecodeError(f"{key} must be a string")
    return value


def _bool_field(data: dict, key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _DecodeError(f"{key} must be a boolean")
    return value


def _size_field(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    # bool is an int subclass; floats are rejected like any other non-integer
    if isinstance(value, bool) or not isinstance(value, int):
        raise _DecodeError(f"{key} must be an integer")
    if value < 0:
        raise _DecodeError(f"{key} must be non-negative")
    return value


def decode_record(line: Union[str, bytes]) -> Optional[TransferRecord]:
    """
    Decode one output line into a TransferRecord.

    Field order does not matter and unknown fields are ignored. A null
    value counts as absent.

    Args:
        line: One line of s5cmd output (str or bytes)

    Returns:
        TransferRecord, or None if the line is not a valid record
    """
    try:
        data: Any = json.loads(line)
    except ValueError:
        # includes JSONDecodeError and UnicodeDecodeError
        return None

    if not isinstance(data, dict):
        return None

    obj = data.get('object')
    if obj is None:
        obj = {}
    if not isinstance(obj, dict):
        return None

    try:
        return TransferRecord(
            operation=_string_field(data, 'operation'),
            success=_bool_field(data, 'success'),
            source=_string_field(data, 'source'),
            destination=_string_field(data, 'destination'),
            object_type=_string_field(obj, 'type'),
            object_size=_size_field(obj, 'size'),
        )
    except _DecodeError as e:
        logger.debug(f"Skipping malformed record: {e}")
        return None


def iter_records(output_file: Union[str, Path]) -> Iterator[TransferRecord]:
    """
    Stream TransferRecords from an s5cmd output file.

    Only newline-terminated lines are considered. A trailing fragment
    without a newline marks the end of the stream and is not decoded.
    Lines that do not decode are skipped silently.

    Args:
        output_file: Path to the captured s5cmd output

    Yields:
        TransferRecord for every decodable line
    """
    with open(output_file, 'rb') as f:
        for line in f:
            if not line.endswith(b'\n'):
                break

            record = decode_record(line)
            if record is not None:
                yield record


def is_no_match_error(output_file: Union[str, Path]) -> bool:
    """
    Check whether a failed invocation just means "nothing matched".

    The whole file must decode as one JSON object whose string 'error'
    field contains 'no match found for'.

    Args:
        output_file: Path to the captured s5cmd output

    Returns:
        bool: True if the output is the no-match error envelope
    """
    try:
        data = Path(output_file).read_bytes()
    except FileNotFoundError:
        return False

    if not data:
        return False

    try:
        envelope = json.loads(data)
    except ValueError:
        return False

    if not isinstance(envelope, dict):
        return False

    message = envelope.get('error')
    if not isinstance(message, str):
        return False

    return NO_MATCH_MARKER in message
