"""Modbus TCP transport session for a single controller."""

from __future__ import annotations

import threading
from enum import Enum
from typing import List, Optional, Type

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ConnectionException, ModbusException, ModbusIOException
from pymodbus.framer import FramerType
from pymodbus.pdu import ExceptionResponse

from app.core.logging_config import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a transport session."""

    CLOSED = "closed"
    OPEN = "open"
    FAULTED = "faulted"  # IO failure; next read reconnects first


class TransportError(Exception):
    """Base exception for field-bus transport failures."""


class ConnectError(TransportError):
    """The target could not be reached or refused the connection."""

    def __init__(self, target: str, cause: str):
        self.target = target
        self.cause = cause
        super().__init__(f"Unable to connect to {target}: {cause}")


class ReadError(TransportError):
    """A block read failed; scoped to that one block."""

    def __init__(self, address: int, count: int, cause: str, block: Optional[str] = None):
        self.address = address
        self.count = count
        self.cause = cause
        self.block = block
        where = f"{count} register(s) at {address}"
        if block:
            where = f"block '{block}' ({where})"
        super().__init__(f"Read of {where} failed: {cause}")


class ModbusSession:
    """
    Owns one Modbus TCP connection to one controller.
    Not safe for interleaved reads; callers serialize cycles.
    """

    def __init__(
        self,
        host: str,
        port: int = 502,
        unit_id: int = 1,
        timeout: float = 5.0,
        framer: FramerType = FramerType.SOCKET,
        client_cls: Type[ModbusTcpClient] = ModbusTcpClient,
    ) -> None:
        self.host = host
        self.port = port
        self.unit_id = unit_id
        self.timeout = timeout
        self._state = SessionState.CLOSED
        self._state_lock = threading.Lock()
        self._client = client_cls(
            host,
            port=port,
            timeout=timeout,
            framer=framer,
            retries=0,  # one attempt per cycle; the next cycle is the retry
        )

    @property
    def target(self) -> str:
        return f"tcp://{self.host}:{self.port}"

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        with self._state_lock:
            self._state = state

    def _mark_faulted(self) -> None:
        # A concurrent close() wins over a fault raised by the read it interrupted.
        with self._state_lock:
            if self._state is SessionState.OPEN:
                self._state = SessionState.FAULTED

    def open(self) -> None:
        """Connect to the controller, raising ``ConnectError`` on failure."""
        if self._state is SessionState.OPEN:
            return
        try:
            connected = self._client.connect()
        except (ModbusException, OSError) as exc:
            self._set_state(SessionState.FAULTED)
            logger.warning(
                "modbus_connect_failed",
                target=self.target,
                exception_type=type(exc).__name__,
                exception=str(exc),
            )
            raise ConnectError(self.target, str(exc)) from exc
        if not connected:
            self._set_state(SessionState.FAULTED)
            logger.warning(
                "modbus_connect_failed",
                target=self.target,
                message="Connection refused or host unreachable",
            )
            raise ConnectError(self.target, "connection refused or host unreachable")
        self._set_state(SessionState.OPEN)
        logger.debug("modbus_connected", target=self.target, unit_id=self.unit_id)

    def _reconnect(self, address: int, count: int) -> None:
        self._client.close()
        try:
            connected = self._client.connect()
        except (ModbusException, OSError) as exc:
            raise ReadError(address, count, f"reconnect failed: {exc}") from exc
        if not connected:
            raise ReadError(address, count, "reconnect failed")
        with self._state_lock:
            if self._state is not SessionState.FAULTED:
                self._client.close()
                raise ReadError(address, count, "session closed during reconnect")
            self._state = SessionState.OPEN
        logger.info("modbus_reconnected", target=self.target)

    def _check_response(self, response, address: int, count: int) -> List[int]:
        if response is None:
            raise ReadError(address, count, "no response")

        if isinstance(response, ExceptionResponse):
            logger.warning(
                "modbus_exception_response",
                target=self.target,
                address=address,
                exception_code=response.exception_code,
            )
            raise ReadError(
                address, count, f"device exception code {response.exception_code}"
            )

        if getattr(response, "isError", lambda: False)():
            raise ReadError(address, count, f"error response: {response}")

        registers = getattr(response, "registers", None)
        if registers is None:
            raise ReadError(address, count, "malformed response without registers")
        registers = list(registers)
        if len(registers) < count:
            raise ReadError(
                address, count, f"short response: {len(registers)} of {count} registers"
            )
        return registers[:count]

    def read(self, address: int, count: int, block: Optional[str] = None) -> List[int]:
        """Read ``count`` holding registers starting at ``address``.

        ``block`` names the register map block being read and is carried on
        any ``ReadError`` raised.
        """
        try:
            return self._read(address, count)
        except ReadError as exc:
            if block is None or exc.block is not None:
                raise
            raise ReadError(address, count, exc.cause, block=block) from exc

    def _read(self, address: int, count: int) -> List[int]:
        if self._state is SessionState.CLOSED:
            raise ReadError(address, count, "session is not open")
        if self._state is SessionState.FAULTED:
            self._reconnect(address, count)

        try:
            response = self._client.read_holding_registers(
                address=address, count=count, slave=self.unit_id
            )
        except (ModbusIOException, ConnectionException, OSError) as exc:
            self._mark_faulted()
            raise ReadError(address, count, f"{type(exc).__name__}: {exc}") from exc
        except ModbusException as exc:
            raise ReadError(address, count, f"{type(exc).__name__}: {exc}") from exc

        return self._check_response(response, address, count)

    def close(self) -> None:
        """Close the connection; safe to call in any state and from any thread."""
        with self._state_lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED
        self._client.close()
        logger.debug("modbus_closed", target=self.target)
