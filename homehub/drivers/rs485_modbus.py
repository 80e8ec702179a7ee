from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from pymodbus.client import ModbusSerialClient

logger = logging.getLogger(__name__)


@dataclass
class ModbusRtuConfig:
    port: str = "/dev/ttyUSB0"      # Windows example: "COM3"
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"               # "N", "E", "O"
    stopbits: int = 1
    timeout_s: float = 1.0
    slave_id: int = 1
    reconnect_backoff_s: float = 1.0
    max_reconnect_backoff_s: float = 10.0


class RS485ModbusRTU:
    """
    Modbus RTU over serial/USB, blocking.
    Responsible for: connect/reconnect with bounded backoff, raw register reads.
    Callers on the event loop go through run_in_executor.
    """

    def __init__(self, cfg: ModbusRtuConfig):
        self.cfg = cfg
        self._client = ModbusSerialClient(
            port=cfg.port,
            baudrate=cfg.baudrate,
            bytesize=cfg.bytesize,
            parity=cfg.parity,
            stopbits=cfg.stopbits,
            timeout=cfg.timeout_s,
        )
        self._connected = False
        self._backoff = cfg.reconnect_backoff_s

    def connect(self) -> None:
        if self._connected:
            return
        if not self._client.connect():
            raise ConnectionError(f"Unable to open Modbus RTU on {self.cfg.port}")
        self._connected = True
        self._backoff = self.cfg.reconnect_backoff_s
        logger.info("Modbus RTU connected on %s (baud=%s)", self.cfg.port, self.cfg.baudrate)

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            self._connected = False

    def read_registers(self, functioncode: int, address: int, count: int) -> list[int]:
        """Function code 3 (holding) or 4 (input); 16-bit register values."""
        if functioncode == 3:
            reader = self._client.read_holding_registers
        elif functioncode == 4:
            reader = self._client.read_input_registers
        else:
            raise ValueError(f"Unsupported functioncode: {functioncode}")

        self._ensure_connected()
        rr = reader(address=address, count=count, device_id=self.cfg.slave_id)
        if rr.isError():
            # Next call reconnects
            self._connected = False
            raise IOError(f"Modbus fc={functioncode} read error: {rr}")
        return list(rr.registers)

    def _ensure_connected(self) -> None:
        if self._connected:
            return
        try:
            self.connect()
        except ConnectionError as e:
            logger.warning("Modbus reconnect failed: %s (backoff %.1fs)", e, self._backoff)
            time.sleep(self._backoff)
            self._backoff = min(self._backoff * 2, self.cfg.max_reconnect_backoff_s)
            raise
