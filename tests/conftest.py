"""
Shared test configuration.

Adds both the project root and src/ to sys.path so that flat modules
(signal_engine, correlation_engine, ingestion, ...) and the analytics /
pipeline namespace packages import with plain `import module_name`.

Also provides the fixed reference time every engine test runs against.
"""

import os
import sys
from datetime import datetime, timezone

import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

# src/ second — lets `import signal_engine` etc. work for flat modules
if _src_dir not in sys.path:
    sys.path.insert(1, _src_dir)


# Sunday 2026-03-01 12:00 UTC
REFERENCE_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return REFERENCE_NOW
