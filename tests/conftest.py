# tests/conftest.py
"""
Common fixtures for all test types
These are shared across unit and integration tests
"""

import pytest
import tempfile
import sys
from pathlib import Path

# Add project root to Python path so 's5commander' can be imported
# This allows tests to run without installing the package
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from s5commander.metrics import MetricsSink  # noqa: E402


class RecordingMetricsSink(MetricsSink):
    """Keeps every emitted batch for assertions"""

    def __init__(self):
        self.batches = []
        self.closed = False

    def emit(self, metrics):
        self.batches.append(list(metrics))

    def close(self):
        self.closed = True

    def lines(self):
        return [m.to_statsd() for batch in self.batches for m in batch]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def recording_sink():
    """Metrics sink that records batches instead of sending them"""
    return RecordingMetricsSink()


@pytest.fixture
def env_credentials():
    """Environment with the three AWS credential variables set"""
    return {
        'AWS_ACCESS_KEY_ID': 'AKIATEST',
        'AWS_SECRET_ACCESS_KEY': 'secret-test-key',
        'AWS_DEFAULT_REGION': 'eu-west-1',
    }
