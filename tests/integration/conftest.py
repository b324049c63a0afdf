# tests/integration/conftest.py
"""
Fixtures for integration tests (fake s5cmd)
These tests run whole cycles against a stand-in s5cmd executable that
globs the source pattern and prints s5cmd-style JSON results
"""

import stat
import sys
import textwrap

import pytest

from s5commander.config_manager import ENV_OVERRIDES

FAKE_S5CMD = """
import glob, json, os, sys

mode = os.environ.get('FAKE_S5CMD_MODE', 'copy')
args_file = os.environ.get('FAKE_S5CMD_ARGS_FILE')
if args_file:
    with open(args_file, 'w') as f:
        json.dump(sys.argv[1:], f)

source, destination = sys.argv[-2], sys.argv[-1]

if mode == 'fail':
    print(json.dumps({"error": "AccessDenied: access denied"}))
    sys.exit(1)

matches = sorted(p for p in glob.glob(source, recursive=True) if os.path.isfile(p))
if not matches:
    print(json.dumps({"error": "no match found for \\"%s\\"" % source}))
    sys.exit(1)

print("DEBUG starting copy of %d objects" % len(matches), file=sys.stderr)
for path in matches:
    ok = not (mode == 'partial' and path.endswith('.bad.gz'))
    print(json.dumps({
        "operation": "cp",
        "success": ok,
        "source": path,
        "destination": destination + os.path.basename(path),
        "object": {"type": "file", "size": os.path.getsize(path)},
    }))
    sys.stdout.flush()
"""


@pytest.fixture
def fake_s5cmd(temp_dir):
    """Executable stand-in for s5cmd"""
    path = temp_dir / 'bin' / 's5cmd'
    path.parent.mkdir()
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(FAKE_S5CMD))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def spool_dir(temp_dir):
    """Local directory tree holding files waiting for upload"""
    spool = temp_dir / 'spool'
    (spool / '2024-05-01' / 'edge-01').mkdir(parents=True)
    (spool / '2024-05-02' / 'edge-01').mkdir(parents=True)
    return spool


@pytest.fixture
def work_dir(temp_dir):
    path = temp_dir / 'work'
    path.mkdir()
    return path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the config layer reads"""
    for key in list(ENV_OVERRIDES) + ['AWS_ACCESS_KEY_ID', 'AWS_SECRET_ACCESS_KEY', 'AWS_DEFAULT_REGION']:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
