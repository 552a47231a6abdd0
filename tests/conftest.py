"""
Pytest configuration for the web-retrieval project.

This file makes sure the src/ layout is importable as `web_retrieval`
when running tests, and resets logging configuration between tests.
"""

import sys
from pathlib import Path

import pytest
import structlog

# Project root directory (one level above tests/)
ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

# Add src/ to sys.path so `import web_retrieval` works
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
