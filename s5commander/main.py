#!/usr/bin/env python3
"""
S5 Commander - Main Application
Offloads files matching a glob to S3 with s5cmd, deleting them after upload

Each tick runs one cycle:
    1. CopyInvoker runs `s5cmd cp <prefix>/<glob> <bucket-path>` and captures
       its JSON output in a per-run file
    2. The result parser streams the records from that file
    3. The reconciler deletes every file s5cmd confirmed as copied
    4. The reporter folds the run summary into the window/session totals

A SIGINT/SIGTERM never interrupts a cycle: it sets a flag the loop checks
between cycles, then the final summary is reported and the process exits 0.
"""

import argparse
import logging
import signal
import sys
import threading
import time
import uuid
from pathlib import Path
from typing import Optional

from s5commander import __version__
from s5commander.config_manager import ConfigManager, ConfigValidationError
from s5commander.copy_invoker import CopyInvocationError, CopyInvoker, FileCredentials
from s5commander.metrics import (
    CloudWatchMetricsSink,
    MetricsSink,
    MultiMetricsSink,
    NullMetricsSink,
    StatsdMetricsSink,
)
from s5commander.reconciler import reconcile_transfers
from s5commander.reporter import SummaryReporter
from s5commander.result_parser import is_no_match_error, iter_records
from s5commander.summary import RunSummary
from s5commander.utils import format_duration

logger = logging.getLogger(__name__)


def build_metrics_sink(config: ConfigManager) -> MetricsSink:
    """Create the configured metrics sinks (Netdata StatsD and/or CloudWatch)."""
    sinks = []

    if config.get('monitoring.netdata_enabled', False):
        sinks.append(StatsdMetricsSink(config.get('monitoring.netdata_address')))

    if config.get('monitoring.cloudwatch_enabled', False):
        profile = credentials_file = None
        if isinstance(config.credentials, FileCredentials):
            profile = config.credentials.profile
            credentials_file = config.credentials.path
        sinks.append(CloudWatchMetricsSink(
            region=config.cloudwatch_region,
            agent_id=config.agent_id,
            namespace=config.get('monitoring.cloudwatch_namespace', 'S5Commander'),
            profile_name=profile,
            credentials_file=credentials_file,
            endpoint_url=config.get('monitoring.cloudwatch_endpoint_url') or None,
        ))

    if not sinks:
        return NullMetricsSink()
    if len(sinks) == 1:
        return sinks[0]
    return MultiMetricsSink(sinks)


class S5Commander:
    """
    Main loop coordinator.

    Runs one copy-and-reconcile cycle per tick, never overlapping cycles,
    and reports accumulated totals. Shutdown is cooperative: the flag is
    only checked between cycles.

    Example:
        >>> agent = S5Commander(ConfigManager('/etc/s5-commander/config.yaml'))
        >>> agent.run()           # blocks until request_shutdown()

    Attributes:
        config (ConfigManager): Configuration
        invoker (CopyInvoker): Runs s5cmd
        reporter (SummaryReporter): Window and session totals
        work_dir (Path): Where per-run output files are written
    """

    def __init__(self, config: ConfigManager,
                 invoker: Optional[CopyInvoker] = None,
                 metrics_sink: Optional[MetricsSink] = None):
        """
        Initialize the agent from a validated configuration.

        Args:
            config: Loaded configuration
            invoker: CopyInvoker override (tests)
            metrics_sink: MetricsSink override (tests)
        """
        self.config = config
        self.process_interval = config.process_interval
        self.reporting_window = config.reporting_window
        self.work_dir = Path(config.get('s5cmd.work_dir'))
        self.work_dir.mkdir(parents=True, exist_ok=True)

        self.invoker = invoker or CopyInvoker(
            folder_prefix=config.get('source.folder_prefix'),
            path_suffix=config.get('source.path_suffix'),
            destination=config.get('s3.bucket_path'),
            credentials=config.credentials,
            endpoint_url=config.get('s3.endpoint_url'),
            binary=config.get('s5cmd.binary'),
        )

        if metrics_sink is None:
            metrics_sink = build_metrics_sink(config)
        self.metrics_sink = metrics_sink

        self.reporter = SummaryReporter(
            process_interval=self.process_interval,
            reporting_window=self.reporting_window,
            metrics_sink=self.metrics_sink,
        )

        self._shutdown = threading.Event()

        logger.info(f"Using AWS credentials from {config.credentials.describe()}")
        logger.info(f"Using s5cmd binary: {self.invoker.binary}")
        logger.info(f"Source: {self.invoker.source_path} -> {self.invoker.destination}")

    def process_files(self) -> RunSummary:
        """
        Run one cycle: invoke s5cmd, parse its output, delete uploaded files.

        The per-run output file is always removed, whatever happens.

        Returns:
            RunSummary: Result of this run (empty if nothing matched)

        Raises:
            CopyInvocationError: If s5cmd failed for any reason except
                "no match found"
        """
        job_id = uuid.uuid4()
        output_file = self.work_dir / f"{job_id}.json"

        try:
            returncode = self.invoker.run(output_file)

            if returncode != 0:
                if is_no_match_error(output_file):
                    # Normal when there is nothing to upload
                    return RunSummary()
                raise CopyInvocationError(
                    f"s5cmd exited with status {returncode} for job {job_id}"
                )

            return reconcile_transfers(iter_records(output_file))

        finally:
            output_file.unlink(missing_ok=True)

    def run_cycle(self) -> RunSummary:
        """
        Run one cycle and fold its result into the reporter.

        Failures are logged and count as an empty run; they never stop the
        loop.
        """
        try:
            summary = self.process_files()
        except CopyInvocationError as e:
            logger.error(f"Error processing files: {e}")
            summary = RunSummary()
        except OSError as e:
            logger.error(f"Error processing files: {e}")
            summary = RunSummary()

        self.reporter.record_run(summary)
        return summary

    def request_shutdown(self):
        """Ask the loop to stop after the current cycle. Safe from signal handlers."""
        self._shutdown.set()

    @property
    def shutting_down(self) -> bool:
        return self._shutdown.is_set()

    def run(self):
        """
        Run cycles at a fixed rate until shutdown is requested.

        Ticks that fall due while a cycle is still running are dropped, not
        queued. After shutdown is requested the final report is made.
        """
        logger.info(f"s5-commander started, processing every {format_duration(self.process_interval)}")

        next_tick = time.monotonic() + self.process_interval

        while True:
            delay = max(0.0, next_tick - time.monotonic())
            if self._shutdown.wait(timeout=delay):
                break

            self.run_cycle()

            now = time.monotonic()
            next_tick += self.process_interval
            if next_tick <= now:
                missed = int((now - next_tick) // self.process_interval) + 1
                next_tick += missed * self.process_interval

        logger.info("Shutdown signal received, finishing current operations...")
        self.reporter.report_final()
        self.metrics_sink.close()
        logger.info("s5-commander shutdown complete")


def install_signal_handlers(agent: S5Commander):
    """Route SIGINT and SIGTERM to the agent's shutdown flag."""

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, initiating graceful shutdown...")
        agent.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
    return signal_handler


def build_parser() -> argparse.ArgumentParser:
    """Command-line flags. Each also has an environment variable that wins over it."""
    parser = argparse.ArgumentParser(
        description='S5 Commander - offload local files to S3 with s5cmd'
    )
    parser.add_argument('--config', help='Optional YAML configuration file')
    parser.add_argument('--test-config', action='store_true',
                        help='Validate configuration and exit')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level')
    parser.add_argument('--version', action='version',
                        version=f's5-commander {__version__}')

    # operational flags
    parser.add_argument('--folder-prefix', dest='source.folder_prefix',
                        help='Folder prefix for files to be offloaded (env: FOLDER_PREFIX)')
    parser.add_argument('--path-suffix', dest='source.path_suffix',
                        help='Path suffix used for glob matching (env: PATH_SUFFIX)')
    parser.add_argument('--process-interval', dest='schedule.process_interval',
                        help='Interval between processing runs, e.g. 1s (env: PROCESS_INTERVAL)')
    parser.add_argument('--reporting-window', dest='schedule.reporting_window',
                        help='Interval between summary reports, e.g. 1m (env: REPORTING_WINDOW)')
    parser.add_argument('--s5cmd-binary', dest='s5cmd.binary',
                        help='Full path to s5cmd binary (env: S5CMD_BINARY)')
    parser.add_argument('--work-dir', dest='s5cmd.work_dir',
                        help='Directory for per-run s5cmd output files (env: WORK_DIR)')
    parser.add_argument('--netdata-enabled', dest='monitoring.netdata_enabled',
                        action='store_const', const=True,
                        help='Send StatsD metrics to Netdata (env: NETDATA_ENABLED)')
    parser.add_argument('--netdata-address', dest='monitoring.netdata_address',
                        help='Netdata StatsD address, host:port (env: NETDATA_ADDRESS)')
    parser.add_argument('--cloudwatch-enabled', dest='monitoring.cloudwatch_enabled',
                        action='store_const', const=True,
                        help='Publish metrics to CloudWatch (env: CLOUDWATCH_ENABLED)')
    parser.add_argument('--agent-id', dest='monitoring.agent_id',
                        help='Agent identifier for CloudWatch metrics (env: AGENT_ID)')

    # s3-like storage flags
    parser.add_argument('--s3-bucket-path', dest='s3.bucket_path',
                        help='S3 bucket path, e.g. s3://my-bucket/path/ (env: S3_BUCKET_PATH)')
    parser.add_argument('--aws-creds-file', dest='s3.credentials_file',
                        help='Path to AWS credentials file (env: AWS_CREDS_FILE)')
    parser.add_argument('--aws-endpoint-url', dest='s3.endpoint_url',
                        help='Custom S3 endpoint (env: AWS_ENDPOINT_URL)')
    parser.add_argument('--aws-profile', dest='s3.profile',
                        help='AWS profile in the credentials file (env: AWS_PROFILE)')
    return parser


def flag_overrides(args: argparse.Namespace) -> dict:
    """Dotted config keys set on the command line."""
    return {key: value for key, value in vars(args).items() if '.' in key and value is not None}


def main(argv=None):
    """
    Main entry point for S5 Commander.

    Exits 1 on configuration errors, 0 after a graceful shutdown.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s [%(name)s] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    try:
        config = ConfigManager(args.config, overrides=flag_overrides(args))
    except (ConfigValidationError, FileNotFoundError) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    if args.test_config:
        logger.info("Configuration valid!")
        logger.info(f"Source prefix: {config.get('source.folder_prefix')}")
        logger.info(f"Path suffix: {config.get('source.path_suffix')}")
        logger.info(f"S3 bucket path: {config.get('s3.bucket_path')}")
        logger.info(f"Credentials: {config.credentials.describe()}")
        logger.info(f"Process interval: {format_duration(config.process_interval)}")
        logger.info(f"Reporting window: {format_duration(config.reporting_window)}")
        sys.exit(0)

    try:
        agent = S5Commander(config)
    except RuntimeError as e:
        logger.error(f"FATAL ERROR: {e}")
        sys.exit(1)

    install_signal_handlers(agent)
    agent.run()
    sys.exit(0)


if __name__ == '__main__':
    main()
