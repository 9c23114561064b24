import os
import sys
from pathlib import Path

import pytest

# Settings are read at import time; keep tests off SMTP and the upload limiter.
os.environ.setdefault("NOTIFY_ON_CREATE", "false")
os.environ.setdefault("CSV_UPLOAD_RATE", "1000/minute")

# Add the backend directory so `serviceability` imports resolve during tests
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

TESTS_DIR = Path(__file__).resolve().parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from fakes import InMemoryMerchantStore, InMemoryPincodeIndex  # noqa: E402
from serviceability.services.sync_engine import MerchantSyncEngine  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def store():
    return InMemoryMerchantStore()


@pytest.fixture
def index():
    return InMemoryPincodeIndex()


@pytest.fixture
def sync(store, index):
    return MerchantSyncEngine(store, index, cas_attempts=3)
