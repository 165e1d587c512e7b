"""
Front desk log - test configuration and fixtures
"""
import base64
import os
import tempfile
from datetime import datetime
from typing import AsyncGenerator

import cv2
import numpy as np
import pytest
from faker import Faker
from httpx import ASGITransport, AsyncClient

# Keep the app's default data/log folders out of the source tree
_scratch = tempfile.mkdtemp(prefix="frontdesk-tests-")
os.environ['ENVIRONMENT'] = 'testing'
os.environ['FRONTDESK_DATA_DIR'] = os.path.join(_scratch, 'data')
os.environ['FRONTDESK_LOG_DIR'] = os.path.join(_scratch, 'logs')

from database import Database, get_db
from main import app

fake = Faker()

FIXED_NOW = datetime(2024, 5, 17, 9, 30, 0)
VALID_ID = "784-1234-1234567-1"


@pytest.fixture
def db(tmp_path) -> Database:
    """Fresh data folder per test, clock frozen at FIXED_NOW"""
    return Database(str(tmp_path / "data"), clock=lambda: FIXED_NOW).init()


@pytest.fixture
def jpeg_payload():
    """Build a data URI holding a real JPEG of the given colour and size"""
    def _make(color=(128, 128, 128), width=80, height=60, data_uri=True):
        img = np.zeros((height, width, 3), np.uint8)
        img[:] = color
        ok, buffer = cv2.imencode('.jpg', img)
        assert ok
        encoded = base64.b64encode(buffer.tobytes()).decode('ascii')
        return f"data:image/jpeg;base64,{encoded}" if data_uri else encoded
    return _make


@pytest.fixture
def visitor_payload(jpeg_payload):
    def _make(color=(128, 128, 128), **overrides):
        payload = {
            "idNumber": VALID_ID,
            "name": fake.name(),
            "company": fake.company(),
            "phone": fake.numerify("05#-###-####"),
            "purpose": "Meeting",
            "timeIn": "09:15",
            "frontPhoto": jpeg_payload(color=color),
            "backPhoto": jpeg_payload(color=color, width=60, height=40),
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def key_payload(jpeg_payload):
    def _make(color=(200, 50, 50), **overrides):
        payload = {
            "idNumber": VALID_ID,
            "name": fake.name(),
            "keyTagName": f"Server Room {fake.random_int(1, 9)}",
            "timeTaken": "10:00",
            "securityRemarks": "Checked by guard",
            "frontPhoto": jpeg_payload(color=color),
            "backPhoto": jpeg_payload(color=color, width=60, height=40),
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
async def client(db: Database) -> AsyncGenerator[AsyncClient, None]:
    """Test client with the record store pointed at the per-test data folder"""
    app.dependency_overrides[get_db] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def live_client() -> AsyncGenerator[AsyncClient, None]:
    """Test client on the app's own data folder, the one /photos serves from"""
    app.dependency_overrides.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac
