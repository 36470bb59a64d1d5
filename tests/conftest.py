# tests/conftest.py
"""
Global test bootstrap
- asyncio backend for every `@pytest.mark.anyio` test
- Pulls in app / identity fixtures
"""

from __future__ import annotations

import pytest


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


# ──────────────────────────────────────────────────────────────────────────────
# 📦 Fixtures (settings, app, clients, identity provider stub)
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.app import *        # noqa: F401,F403,E402
from tests.fixtures.identity import *   # noqa: F401,F403,E402
