import threading
import time

import pytest
from fastapi.testclient import TestClient

from app.config.registers import D500_REGISTER_MAP
from app.core.config import CollectionMode, Settings
from app.core.decoder import WordOrder, encode32
from app.core.modbus_client import ConnectError, ReadError, SessionState


class FakeSession:
    """In-memory stand-in for ModbusSession that records every call.

    ``blocks`` maps a start address to the words returned for it, or to an
    exception raised by ``read``. Unknown addresses answer like a device
    rejecting the address.
    """

    target = "tcp://fake-d500:502"

    def __init__(self, blocks=None, connect_error=None, read_delay=0.0):
        self.blocks = dict(blocks or {})
        self.connect_error = connect_error
        self.read_delay = read_delay
        self.events = []
        self.state = SessionState.CLOSED
        self._lock = threading.Lock()

    def open(self):
        self.events.append(("open",))
        if self.connect_error:
            self.state = SessionState.FAULTED
            raise ConnectError(self.target, self.connect_error)
        self.state = SessionState.OPEN

    def read(self, address, count, block=None):
        with self._lock:
            if self.state is not SessionState.OPEN:
                raise ReadError(address, count, "session is not open", block=block)
            self.events.append(("read_start", address))
        if self.read_delay:
            time.sleep(self.read_delay)
        self.events.append(("read_end", address))
        result = self.blocks.get(address)
        if result is None:
            raise ReadError(address, count, "device exception code 2", block=block)
        if isinstance(result, Exception):
            raise result
        return list(result)

    def close(self):
        with self._lock:
            self.events.append(("close",))
            self.state = SessionState.CLOSED

    def event_names(self):
        return [event[0] for event in self.events]


def _words(count, values, word_order=WordOrder.LOW_FIRST):
    """Build a block of ``count`` words; ``values`` maps offset -> (width, raw)."""
    words = [0] * count
    for offset, (width, raw) in values.items():
        if width == 32:
            words[offset], words[offset + 1] = encode32(raw, word_order)
        else:
            words[offset] = raw
    return words


def d500_register_words(word_order=WordOrder.LOW_FIRST):
    """Register contents of a running D500, keyed by block start address."""
    return {
        10240: _words(6, {0: (32, 2205), 2: (32, 2204), 4: (32, 2203)}, word_order),
        10264: _words(6, {0: (32, 125), 2: (32, 130), 4: (32, 0)}, word_order),
        10294: _words(2, {0: (32, 1525)}, word_order),
        10339: _words(25, {0: (16, 5000), 2: (16, 2750), 23: (16, 856), 24: (16, 735)}, word_order),
        10604: _words(
            34,
            {
                0: (16, 3),
                18: (32, 1234567),
                24: (32, 987654),
                30: (32, 25000),
                32: (32, 9000),
            },
            word_order,
        ),
    }


EXPECTED_D500_VALUES = {
    "mains_voltage_l1": 220.5,
    "mains_voltage_l2": 220.4,
    "mains_voltage_l3": 220.3,
    "mains_current_i1": 12.5,
    "mains_current_i2": 13.0,
    "mains_current_i3": 0.0,
    "genset_power": 152.5,
    "genset_frequency": 50.0,
    "battery_voltage": 27.5,
    "coolant_temperature": 85.6,
    "fuel_level": 73.5,
    "operation_status": 3.0,
    "run_hours": 12345.67,
    "total_energy": 98765.4,
    "service_hours_remaining": 250.0,
    "service_days_remaining": 90.0,
}


@pytest.fixture
def register_map():
    return D500_REGISTER_MAP


@pytest.fixture
def d500_words():
    return d500_register_words()


@pytest.fixture
def expected_values():
    return dict(EXPECTED_D500_VALUES)


@pytest.fixture
def make_session(d500_words):
    """Factory for fake sessions preloaded with D500 register contents."""

    def _make(blocks=None, **kwargs):
        return FakeSession(blocks=d500_words if blocks is None else blocks, **kwargs)

    return _make


@pytest.fixture
def fake_session(make_session):
    return make_session()


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        COLLECTION_MODE=CollectionMode.ON_DEMAND,
        POLL_INTERVAL_SECONDS=0.05,
        CYCLE_TIMEOUT_SECONDS=5.0,
        WORD_ORDER=WordOrder.LOW_FIRST,
    )


@pytest.fixture
def client(test_settings, fake_session):
    """
    Create a TestClient around an app wired to the fake session.
    """
    from main import create_app

    app = create_app(app_settings=test_settings, session=fake_session)
    with TestClient(app) as c:
        yield c
