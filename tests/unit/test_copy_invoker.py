#!/usr/bin/env python3
"""
Tests for the s5cmd copy invoker
"""

import os
import stat
import sys
import textwrap

import pytest

from s5commander.copy_invoker import (
    CopyInvocationError,
    CopyInvoker,
    EnvCredentials,
    FileCredentials,
    build_source_path,
)


def make_script(path, body):
    """Write an executable Python script standing in for s5cmd"""
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def file_creds():
    return FileCredentials('/etc/s5/credentials', 'archive')


@pytest.fixture
def env_creds():
    return EnvCredentials('AKIATEST', 'secret-test-key', 'eu-west-1')


class TestBuildSourcePath:
    """Glob suffix normalization"""

    @pytest.mark.parametrize('prefix,suffix,expected', [
        ('/tmp/', '/**/**/*.gz', '/tmp/**/**/*.gz'),
        ('/tmp', '/**/*.gz', '/tmp/**/*.gz'),
        ('/tmp', '**/*.gz', '/tmp/**/*.gz'),
        ('/tmp/', '**/*.gz', '/tmp/**/*.gz'),
        ('/data', '//x/*.gz', '/data/x/*.gz'),
        ('/data//logs/', 'a.gz', '/data/logs/a.gz'),
        ('/data/', '', '/data'),
        ('relative', 'dir/*.gz', 'relative/dir/*.gz'),
        ('/data', '../other/*.gz', '/data/../other/*.gz'),
        ('/', '/*.gz', '/*.gz'),
    ])
    def test_build_source_path(self, prefix, suffix, expected):
        assert build_source_path(prefix, suffix) == expected

    def test_only_one_leading_separator_stripped(self):
        """Test the suffix is never treated as absolute"""
        assert build_source_path('/srv', '/x.gz') == '/srv/x.gz'
        assert build_source_path('/srv', 'x.gz') == '/srv/x.gz'


class TestBuildCommand:
    """Command line construction"""

    def test_file_credentials(self, file_creds):
        invoker = CopyInvoker('/tmp/', '/**/*.gz', 's3://bucket/path/', file_creds)

        assert invoker.build_command() == [
            's5cmd', '--json', '--log', 'info',
            '--credentials-file', '/etc/s5/credentials',
            '--profile', 'archive',
            'cp', '/tmp/**/*.gz', 's3://bucket/path/',
        ]

    def test_env_credentials(self, env_creds):
        invoker = CopyInvoker('/tmp/', '/**/*.gz', 's3://bucket/path/', env_creds)

        assert invoker.build_command() == [
            's5cmd', '--json', '--log', 'info',
            'cp', '/tmp/**/*.gz', 's3://bucket/path/',
        ]

    def test_endpoint_override(self, file_creds):
        invoker = CopyInvoker(
            '/data', '*.gz', 's3://bucket/', file_creds,
            endpoint_url='http://minio:9000', binary='/usr/local/bin/s5cmd',
        )
        cmd = invoker.build_command()

        assert cmd[0] == '/usr/local/bin/s5cmd'
        assert cmd[4:6] == ['--endpoint-url', 'http://minio:9000']
        assert cmd[-3:] == ['cp', '/data/*.gz', 's3://bucket/']

    def test_empty_endpoint_is_omitted(self, env_creds):
        invoker = CopyInvoker('/data', '*.gz', 's3://bucket/', env_creds, endpoint_url='')
        assert '--endpoint-url' not in invoker.build_command()


class TestBuildEnv:
    """Child environment"""

    def test_env_mode_forwards_credentials(self, env_creds, monkeypatch):
        monkeypatch.setenv('PATH_MARKER', 'kept')
        invoker = CopyInvoker('/data', '*.gz', 's3://bucket/', env_creds)
        env = invoker.build_env()

        assert env['AWS_ACCESS_KEY_ID'] == 'AKIATEST'
        assert env['AWS_SECRET_ACCESS_KEY'] == 'secret-test-key'
        assert env['AWS_DEFAULT_REGION'] == 'eu-west-1'
        assert env['PATH_MARKER'] == 'kept'

    def test_file_mode_leaves_environment(self, file_creds, monkeypatch):
        monkeypatch.delenv('AWS_ACCESS_KEY_ID', raising=False)
        invoker = CopyInvoker('/data', '*.gz', 's3://bucket/', file_creds)
        env = invoker.build_env()

        assert 'AWS_ACCESS_KEY_ID' not in env
        assert env == dict(os.environ)

    def test_secrets_not_in_repr(self, env_creds):
        assert 'secret-test-key' not in repr(env_creds)
        assert 'AKIATEST' not in repr(env_creds)
        assert 'secret-test-key' not in env_creds.describe()


class TestRun:
    """Running the child process"""

    def test_captures_stdout_and_stderr(self, temp_dir, env_creds):
        binary = make_script(temp_dir / 'fake-s5cmd', """
            import os, sys
            print('{"operation":"cp","source":"%s"}' % sys.argv[-2])
            print('warning line', file=sys.stderr)
            print('{"region":"%s"}' % os.environ['AWS_DEFAULT_REGION'])
        """)
        output = temp_dir / 'run.json'
        invoker = CopyInvoker('/data', '/*.gz', 's3://bucket/', env_creds, binary=binary)

        returncode = invoker.run(output)
        content = output.read_text()

        assert returncode == 0
        assert '"source":"/data/*.gz"' in content
        assert 'warning line' in content
        assert '"region":"eu-west-1"' in content

    def test_returns_exit_status(self, temp_dir, file_creds):
        binary = make_script(temp_dir / 'fake-s5cmd', """
            import sys
            print('{"error":"no match found for x"}')
            sys.exit(1)
        """)
        output = temp_dir / 'run.json'
        invoker = CopyInvoker('/data', '*.gz', 's3://bucket/', file_creds, binary=binary)

        assert invoker.run(output) == 1
        assert 'no match found' in output.read_text()

    def test_truncates_existing_output(self, temp_dir, file_creds):
        binary = make_script(temp_dir / 'fake-s5cmd', """
            print('fresh')
        """)
        output = temp_dir / 'run.json'
        output.write_text('stale content from an earlier run\n' * 10)
        invoker = CopyInvoker('/data', '*.gz', 's3://bucket/', file_creds, binary=binary)

        invoker.run(output)
        assert output.read_text() == 'fresh\n'

    def test_missing_binary(self, temp_dir, file_creds):
        invoker = CopyInvoker(
            '/data', '*.gz', 's3://bucket/', file_creds,
            binary=str(temp_dir / 'no-such-s5cmd'),
        )

        with pytest.raises(CopyInvocationError, match='Failed to start'):
            invoker.run(temp_dir / 'run.json')
