"""
Pytest fixtures: test client, captured log entries, logger configs.
Outbound calls (Midtrans Snap, merchant webhook) are mocked with respx / AsyncMock in the tests.
"""
import json
import logging
import os

SNAP_URL = "https://app.sandbox.midtrans.com/snap/v1/transactions"
WEBHOOK_URL = "https://merchant.test/webhook/midtrans.php"
TOKEN_MASTER_KEY = "test-master-key"

os.environ["MIDTRANS_SERVER_KEY"] = "Mid-server-test-key"
os.environ["MIDTRANS_SNAP_URL"] = SNAP_URL
os.environ["WEBHOOK_URL"] = WEBHOOK_URL
os.environ["TOKEN_MASTER_KEY"] = TOKEN_MASTER_KEY
os.environ["DEBUG"] = "false"
os.environ.pop("CONTEXT", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from checkout.core.logging import SINK_NAME, LogConfig, get_sink
from checkout.main import app


@pytest.fixture
def log_entries(caplog):
    """Returns a callable giving every JSON entry written to the log sink so far."""
    sink = get_sink()
    sink.addHandler(caplog.handler)

    def entries() -> list[dict]:
        return [json.loads(r.getMessage()) for r in caplog.records if r.name == SINK_NAME]

    yield entries
    sink.removeHandler(caplog.handler)


@pytest.fixture
def debug_config() -> LogConfig:
    return LogConfig(debug_enabled=True, environment="test")


@pytest_asyncio.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
