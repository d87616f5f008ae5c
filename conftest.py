"""
Shared pytest setup.

Puts the repository root on sys.path so ``src.*`` imports resolve without an
editable install, and keeps audit sinks from leaking between tests.
"""

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_audit_sinks():
    from src.utils import audit

    audit.clear_sinks()
    yield
    audit.clear_sinks()
