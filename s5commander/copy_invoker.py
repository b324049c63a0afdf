#!/usr/bin/env python3
"""
Copy Invoker for S5 Commander
Runs one s5cmd copy per cycle and captures its output

The invoker builds the s5cmd command line for a single recursive copy of
{folder_prefix}/{path_suffix} to the destination bucket path, runs it
synchronously, and writes everything the child prints (stdout and stderr)
into an output file for the result parser.
"""

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# s5cmd log level requested on every run
S5CMD_LOG_LEVEL = 'info'

ENV_ACCESS_KEY_ID = 'AWS_ACCESS_KEY_ID'
ENV_SECRET_ACCESS_KEY = 'AWS_SECRET_ACCESS_KEY'
ENV_DEFAULT_REGION = 'AWS_DEFAULT_REGION'


class CopyInvocationError(Exception):
    """
    Raised when an s5cmd run fails for a reason other than "no match".

    The cycle contributes nothing to the summary; the next tick starts a
    fresh attempt.
    """
    pass


@dataclass(frozen=True)
class FileCredentials:
    """Credentials read by s5cmd from a shared credentials file."""

    path: str
    profile: str = 'default'

    def describe(self) -> str:
        return f"credentials file {self.path} (profile: {self.profile})"


@dataclass(frozen=True)
class EnvCredentials:
    """Credentials forwarded to s5cmd through its environment."""

    access_key_id: str = field(repr=False)
    secret_access_key: str = field(repr=False)
    region: str

    def describe(self) -> str:
        return f"environment variables (region: {self.region})"


Credentials = Union[FileCredentials, EnvCredentials]


def build_source_path(folder_prefix: str, path_suffix: str) -> str:
    """
    Join the glob suffix onto the folder prefix.

    Exactly one leading '/' is stripped from the suffix before joining.
    Repeated separators collapse into one and a trailing separator is
    dropped. '..' components are left alone.

    Examples:
        >>> build_source_path('/tmp/', '/**/**/*.gz')  # '/tmp/**/**/*.gz'
        >>> build_source_path('/data', 'logs/*.gz')     # '/data/logs/*.gz'
    """
    if path_suffix.startswith('/'):
        path_suffix = path_suffix[1:]

    joined = '/'.join(part for part in (folder_prefix, path_suffix) if part)
    joined = re.sub(r'/{2,}', '/', joined)

    if len(joined) > 1:
        joined = joined.rstrip('/')

    return joined


class CopyInvoker:
    """
    Builds and runs the s5cmd copy command.

    Example:
        >>> invoker = CopyInvoker(
        ...     folder_prefix='/data/',
        ...     path_suffix='/**/*.gz',
        ...     destination='s3://archive/gz/',
        ...     credentials=FileCredentials('/etc/s5/credentials', 'archive'),
        ... )
        >>> returncode = invoker.run('/tmp/3f2a.json')

    Attributes:
        binary (str): s5cmd executable (name on PATH or full path)
        source_path (str): Glob passed to s5cmd cp
        destination (str): Bucket path passed to s5cmd cp
        credentials: FileCredentials or EnvCredentials
        endpoint_url (str): Optional S3 endpoint override
    """

    def __init__(self,
                 folder_prefix: str,
                 path_suffix: str,
                 destination: str,
                 credentials: Credentials,
                 endpoint_url: Optional[str] = None,
                 binary: str = 's5cmd'):
        self.binary = binary
        self.source_path = build_source_path(folder_prefix, path_suffix)
        self.destination = destination
        self.credentials = credentials
        self.endpoint_url = endpoint_url or None

    def build_command(self) -> List[str]:
        """
        Build the s5cmd argument list.

        Layout:
            s5cmd --json --log info [--endpoint-url URL]
                  [--credentials-file FILE --profile NAME]
                  cp SOURCE DESTINATION
        """
        cmd = [self.binary, '--json', '--log', S5CMD_LOG_LEVEL]

        if self.endpoint_url:
            cmd.extend(['--endpoint-url', self.endpoint_url])

        if isinstance(self.credentials, FileCredentials):
            cmd.extend([
                '--credentials-file', self.credentials.path,
                '--profile', self.credentials.profile,
            ])

        cmd.extend(['cp', self.source_path, self.destination])
        return cmd

    def build_env(self) -> Dict[str, str]:
        """Environment for the child: ours, plus AWS variables in env mode."""
        env = dict(os.environ)

        if isinstance(self.credentials, EnvCredentials):
            env[ENV_ACCESS_KEY_ID] = self.credentials.access_key_id
            env[ENV_SECRET_ACCESS_KEY] = self.credentials.secret_access_key
            env[ENV_DEFAULT_REGION] = self.credentials.region

        return env

    def run(self, output_file: Union[str, Path]) -> int:
        """
        Run s5cmd once, writing its combined output to output_file.

        The output file is created or truncated first. The caller owns it
        and must remove it after parsing. The child runs in its own session
        so a Ctrl+C aimed at the agent does not kill a copy in progress.

        Args:
            output_file: Where to capture stdout and stderr

        Returns:
            int: s5cmd exit status (0 means success)

        Raises:
            CopyInvocationError: If s5cmd could not be started
        """
        cmd = self.build_command()
        logger.debug(f"Running command: {' '.join(cmd)}")

        with open(output_file, 'wb') as out:
            try:
                completed = subprocess.run(
                    cmd,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    env=self.build_env(),
                    start_new_session=True,
                    check=False,
                )
            except OSError as e:
                raise CopyInvocationError(f"Failed to start {self.binary}: {e}") from e

        if completed.returncode != 0:
            logger.debug(f"{self.binary} exited with status {completed.returncode}")

        return completed.returncode
