#!/usr/bin/env python3
"""
Tests for the s5cmd result parser
"""

import json

import pytest

from s5commander.result_parser import (
    TransferRecord,
    decode_record,
    is_no_match_error,
    iter_records,
)

COPY_LINE = (
    '{"operation":"cp","success":true,"source":"/tmp/a.gz",'
    '"destination":"s3://b/a.gz","object":{"type":"file","size":1024}}'
)


class TestDecodeRecord:
    """Decoding single output lines"""

    def test_decode_copy_record(self):
        """Test a normal s5cmd copy line"""
        record = decode_record(COPY_LINE)

        assert record == TransferRecord(
            operation='cp',
            success=True,
            source='/tmp/a.gz',
            destination='s3://b/a.gz',
            object_type='file',
            object_size=1024,
        )
        assert record.is_copied_file is True

    def test_decode_bytes_with_newline(self):
        """Test raw bytes as read from the output file"""
        record = decode_record(COPY_LINE.encode() + b'\n')
        assert record.source == '/tmp/a.gz'

    def test_field_order_and_unknown_fields(self):
        """Test fields in any order plus extra fields"""
        line = json.dumps({
            'object': {'size': 7, 'type': 'file', 'etag': 'abc'},
            'destination': 's3://b/x',
            'source': 'x.gz',
            'success': True,
            'operation': 'cp',
            'error': None,
            'stats': {'elapsed': 3},
        })
        record = decode_record(line)

        assert record.source == 'x.gz'
        assert record.object_size == 7
        assert record.is_copied_file is True

    def test_missing_fields_default(self):
        """Test absent and null fields fall back to empty values"""
        record = decode_record('{"operation":"cp","object":null,"success":null}')

        assert record.success is False
        assert record.object_type == ''
        assert record.object_size == 0
        assert record.is_copied_file is False

    @pytest.mark.parametrize('line', [
        'ERROR "cp /tmp/a.gz": connection reset',
        '',
        '   ',
        '[1, 2, 3]',
        '"just a string"',
        '42',
        '{"operation":"cp"',
        '{"operation":"cp"} trailing',
        '{"operation":"cp","success":"true"}',
        '{"operation":1}',
        '{"operation":"cp","object":{"type":"file","size":1.5}}',
        '{"operation":"cp","object":{"type":"file","size":-1}}',
        '{"operation":"cp","object":{"type":"file","size":true}}',
        '{"operation":"cp","object":"file"}',
    ])
    def test_undecodable_lines(self, line):
        """Test lines that are not valid records are rejected"""
        assert decode_record(line) is None

    def test_invalid_utf8(self):
        """Test invalid bytes are rejected rather than raising"""
        assert decode_record(b'\xff\xfe{"operation":"cp"}\n') is None

    def test_directory_is_not_copied_file(self):
        """Test a directory record is not actionable"""
        record = decode_record(
            '{"operation":"cp","success":true,"source":"/tmp/d",'
            '"object":{"type":"directory","size":0}}'
        )
        assert record.is_copied_file is False

    def test_other_operation_is_not_copied_file(self):
        """Test non-copy operations are not actionable"""
        record = decode_record(
            '{"operation":"mv","success":true,"source":"/tmp/a.gz",'
            '"object":{"type":"file","size":1}}'
        )
        assert record.is_copied_file is False

    def test_zero_size_file_is_copied_file(self):
        """Test empty files still count as copied"""
        record = decode_record(
            '{"operation":"cp","success":true,"source":"/tmp/e.gz",'
            '"object":{"type":"file","size":0}}'
        )
        assert record.is_copied_file is True


class TestIterRecords:
    """Streaming records from an output file"""

    def test_skips_noise_lines(self, temp_dir):
        """Test diagnostic lines between records are skipped"""
        output = temp_dir / 'run.json'
        output.write_text(
            'DEBUG retrying request\n'
            + COPY_LINE + '\n'
            + 'not json at all\n'
            + COPY_LINE.replace('a.gz', 'b.gz') + '\n'
        )

        sources = [r.source for r in iter_records(output)]
        assert sources == ['/tmp/a.gz', '/tmp/b.gz']

    def test_unterminated_last_line_is_ignored(self, temp_dir):
        """Test a trailing fragment without newline ends the stream"""
        output = temp_dir / 'run.json'
        output.write_text(COPY_LINE + '\n' + COPY_LINE.replace('a.gz', 'b.gz'))

        sources = [r.source for r in iter_records(output)]
        assert sources == ['/tmp/a.gz']

    def test_empty_file(self, temp_dir):
        """Test an empty output file yields nothing"""
        output = temp_dir / 'run.json'
        output.write_bytes(b'')

        assert list(iter_records(output)) == []

    def test_missing_file_raises(self, temp_dir):
        """Test a missing output file is an error for the caller"""
        with pytest.raises(FileNotFoundError):
            list(iter_records(temp_dir / 'missing.json'))


class TestNoMatchError:
    """Detecting the 'no match found' error envelope"""

    def test_no_match_envelope(self, temp_dir):
        output = temp_dir / 'run.json'
        output.write_text('{"error":"no match found for pattern X"}')
        assert is_no_match_error(output) is True

    def test_no_match_envelope_with_newline(self, temp_dir):
        output = temp_dir / 'run.json'
        output.write_text('{"operation":"cp","error":"no match found for \\"/tmp/**/*.gz\\""}\n')
        assert is_no_match_error(output) is True

    def test_other_error(self, temp_dir):
        output = temp_dir / 'run.json'
        output.write_text('{"error":"AccessDenied: access denied"}')
        assert is_no_match_error(output) is False

    def test_multiple_objects_is_not_envelope(self, temp_dir):
        """Test the whole file must be one JSON value"""
        output = temp_dir / 'run.json'
        output.write_text(
            '{"error":"no match found for a"}\n{"error":"no match found for b"}\n'
        )
        assert is_no_match_error(output) is False

    def test_non_string_error(self, temp_dir):
        output = temp_dir / 'run.json'
        output.write_text('{"error":["no match found for X"]}')
        assert is_no_match_error(output) is False

    def test_empty_and_missing_file(self, temp_dir):
        empty = temp_dir / 'empty.json'
        empty.write_bytes(b'')

        assert is_no_match_error(empty) is False
        assert is_no_match_error(temp_dir / 'missing.json') is False
