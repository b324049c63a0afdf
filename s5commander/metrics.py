#!/usr/bin/env python3
"""
Metrics for S5 Commander
StatsD (Netdata) and CloudWatch sinks plus the metric batches we send

Metrics are best-effort: a sink never raises, it logs and moves on. The
reporter only knows the MetricsSink interface, so the same code runs with a
real UDP socket, CloudWatch, nothing at all, or a test recorder.
"""

import logging
import os
import socket
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple, Union

import boto3
import botocore.session

from s5commander.summary import RunSummary

logger = logging.getLogger(__name__)

METRIC_PREFIX = 's5commander'
GAUGE = 'g'
COUNTER = 'c'

CLOUDWATCH_NAMESPACE = 'S5Commander'
# CloudWatch accepts at most this many datums per put_metric_data call
CLOUDWATCH_BATCH_SIZE = 1000


@dataclass(frozen=True)
class Metric:
    """
    One StatsD-style metric.

    Attributes:
        name (str): Dotted metric name without the s5commander prefix
        value (int or float): Gauge value or counter delta
        kind (str): 'g' for gauge, 'c' for counter
    """

    name: str
    value: Union[int, float]
    kind: str = GAUGE

    @property
    def full_name(self) -> str:
        return f"{METRIC_PREFIX}.{self.name}"

    def to_statsd(self) -> str:
        """Render as 'name:value|type' (floats with two decimals)."""
        if isinstance(self.value, float):
            value = f"{self.value:.2f}"
        else:
            value = str(self.value)
        return f"{self.full_name}:{value}|{self.kind}"


def _summary_gauges(summary: RunSummary, prefix: str) -> List[Metric]:
    return [
        Metric(f"{prefix}files_transferred", summary.files_transferred),
        Metric(f"{prefix}files_deleted", summary.files_deleted),
        Metric(f"{prefix}megabytes_transferred", summary.megabytes),
        Metric(f"{prefix}files_failed_delete", summary.files_failed),
        Metric(f"{prefix}success_rate", summary.success_rate),
    ]


def build_run_metrics(summary: RunSummary, now: Optional[float] = None) -> List[Metric]:
    """Current-run gauges plus the operational counter/timestamp."""
    if now is None:
        now = time.time()

    metrics = _summary_gauges(summary, 'current.')
    metrics.append(Metric('runs_completed', 1, COUNTER))
    metrics.append(Metric('last_activity', int(now)))
    return metrics


def build_window_metrics(summary: RunSummary, runs: int) -> List[Metric]:
    """Gauges for one reporting window."""
    metrics = _summary_gauges(summary, 'window.')
    metrics.append(Metric('window.runs', runs))
    return metrics


def build_session_metrics(summary: RunSummary, total_runs: int) -> List[Metric]:
    """Session-final gauges and the shutdown counter, sent once at exit."""
    metrics = _summary_gauges(summary, 'session.final_')
    metrics.append(Metric('session.total_runs', total_runs))
    metrics.append(Metric('shutdown', 1, COUNTER))
    return metrics


class MetricsSink:
    """
    Destination for metric batches.

    emit() is fire-and-forget: implementations log failures and never raise.
    """

    def emit(self, metrics: List[Metric]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class NullMetricsSink(MetricsSink):
    """Discards everything (metrics disabled)."""

    def emit(self, metrics: List[Metric]) -> None:
        pass


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split 'host:port' (or '[v6]:port') into a (host, port) tuple.

    Raises:
        ValueError: If the address has no valid port
    """
    host, sep, port = address.rpartition(':')
    if not sep or not host:
        raise ValueError(f"address must be host:port, got: {address!r}")

    if host.startswith('[') and host.endswith(']'):
        host = host[1:-1]

    port_number = int(port)
    if not 0 < port_number < 65536:
        raise ValueError(f"port out of range in address: {address!r}")

    return host, port_number


class StatsdMetricsSink(MetricsSink):
    """
    Sends metrics to a StatsD listener (e.g. Netdata) over UDP.

    Each metric is its own datagram. Errors on individual sends are
    ignored; failing to reach the address at all is logged.

    Example:
        >>> sink = StatsdMetricsSink('127.0.0.1:8125')
        >>> sink.emit([Metric('runs_completed', 1, 'c')])
    """

    def __init__(self, address: str = '127.0.0.1:8125'):
        self.address = address
        self.host, self.port = parse_address(address)
        logger.info(f"StatsD metrics enabled (address: {address})")

    def emit(self, metrics: List[Metric]) -> None:
        try:
            family, socktype, proto, _, sockaddr = socket.getaddrinfo(
                self.host, self.port, type=socket.SOCK_DGRAM
            )[0]
            with socket.socket(family, socktype, proto) as sock:
                sock.connect(sockaddr)
                for metric in metrics:
                    try:
                        sock.send(metric.to_statsd().encode('utf-8'))
                    except OSError:
                        # UDP is fire-and-forget; a refused datagram is not an error
                        pass
        except OSError as e:
            logger.warning(f"Failed to send metrics to {self.address}: {e}")


class CloudWatchMetricsSink(MetricsSink):
    """
    Publishes metric batches to CloudWatch.

    Gauges and counters both become datapoints (counters with Unit=Count)
    under the configured namespace, with an AgentId dimension.

    Example:
        >>> cw = CloudWatchMetricsSink('us-east-1', 'edge-01')
        >>> cw.emit(build_run_metrics(summary))
    """

    def __init__(self, region: str, agent_id: str,
                 namespace: str = CLOUDWATCH_NAMESPACE, profile_name: str = None,
                 endpoint_url: str = None, credentials_file: str = None):
        """
        Initialize CloudWatch client.

        Raises:
            RuntimeError: If the client cannot be created
        """
        self.region = region
        self.agent_id = agent_id
        self.namespace = namespace

        try:
            if endpoint_url:
                logger.info(f"CloudWatch in TEST mode (endpoint: {endpoint_url})")
                self.cw_client = boto3.client(
                    'cloudwatch',
                    region_name=region,
                    endpoint_url=endpoint_url,
                    aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID', 'test'),
                    aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY', 'test'),
                )
            elif profile_name:
                core_session = botocore.session.Session(profile=profile_name)
                if credentials_file:
                    core_session.set_config_variable('credentials_file', credentials_file)
                session = boto3.Session(botocore_session=core_session)
                self.cw_client = session.client('cloudwatch', region_name=region)
                logger.info(f"CloudWatch initialized with profile '{profile_name}' for region: {region}")
            else:
                self.cw_client = boto3.client('cloudwatch', region_name=region)
                logger.info(f"CloudWatch initialized for region: {region}")

        except Exception as e:
            logger.error(f"CloudWatch client creation failed: {e}")
            logger.error("If monitoring is optional, set monitoring.cloudwatch_enabled: false")
            raise RuntimeError(f"CloudWatch initialization failed: {e}") from e

    def _to_datum(self, metric: Metric, timestamp: datetime) -> dict:
        return {
            'MetricName': metric.full_name,
            'Value': float(metric.value),
            'Unit': 'Count' if metric.kind == COUNTER else 'None',
            'Timestamp': timestamp,
            'Dimensions': [{'Name': 'AgentId', 'Value': self.agent_id}],
        }

    def emit(self, metrics: List[Metric]) -> None:
        if not metrics:
            return

        timestamp = datetime.now(timezone.utc)
        data = [self._to_datum(metric, timestamp) for metric in metrics]

        try:
            for start in range(0, len(data), CLOUDWATCH_BATCH_SIZE):
                self.cw_client.put_metric_data(
                    Namespace=self.namespace,
                    MetricData=data[start:start + CLOUDWATCH_BATCH_SIZE],
                )
            logger.debug(f"Published {len(data)} metrics to CloudWatch")
        except Exception as e:
            logger.error(f"Failed to publish CloudWatch metrics: {e}")


class MultiMetricsSink(MetricsSink):
    """Fans every batch out to several sinks."""

    def __init__(self, sinks: Iterable[MetricsSink]):
        self.sinks = list(sinks)

    def emit(self, metrics: List[Metric]) -> None:
        for sink in self.sinks:
            sink.emit(metrics)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
