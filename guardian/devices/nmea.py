"""
Serial NMEA GPS receiver as a PositionSource.

A worker thread reads sentences from the serial port with pyserial, parses
them with pynmea2 and hands every usable fix to the event loop.
"""

import asyncio
import logging
import threading
from typing import List, Optional, Tuple

import pynmea2
import serial

from guardian import config
from guardian.errors import PermissionDenied, WriteError
from guardian.utils.time import now_ms
from .base import ErrorCallback, FixCallback, PositionFix, PositionSource, WatchHandle, WatchOptions

logger = logging.getLogger(__name__)

# Rough horizontal error of a consumer receiver at HDOP 1
_UERE_METERS = 5.0


def parse_sentence(line: str) -> Optional[PositionFix]:
    """
    Parse one NMEA sentence into a fix.

    Returns None for sentences without a position, without a fix, or with a
    bad checksum.
    """
    try:
        msg = pynmea2.parse(line, check=True)
    except (pynmea2.ParseError, pynmea2.ChecksumError):
        return None

    if not hasattr(msg, "latitude") or not hasattr(msg, "longitude"):
        return None
    # GGA carries a fix quality, RMC a status flag
    if getattr(msg, "gps_qual", 1) in (0, None):
        return None
    if getattr(msg, "status", "A") == "V":
        return None
    if not msg.latitude and not msg.longitude:
        return None

    accuracy = 0.0
    hdop = getattr(msg, "horizontal_dil", None)
    if hdop:
        try:
            accuracy = float(hdop) * _UERE_METERS
        except ValueError:
            accuracy = 0.0

    return PositionFix(lat=msg.latitude, lng=msg.longitude, accuracy=accuracy, provider="gps")


class NmeaPositionSource(PositionSource):
    """
    While a watch is running, one-shot requests wait for that reader's next
    fix instead of opening the port a second time. Without a watch the
    request opens the port itself and the reader thread exits once the
    request times out.

    Usage:
        >>> source = NmeaPositionSource("/dev/serial0")
        >>> stop = source.watch(on_fix, on_error, WatchOptions())
        >>> fix = await source.current_position(WatchOptions())
    """

    def __init__(self, port: str = config.GPS_SERIAL_PORT, baudrate: int = config.GPS_SERIAL_BAUDRATE):
        self.port = port
        self.baudrate = baudrate
        self._latest: Optional[PositionFix] = None
        self._lock = threading.Lock()
        self._waiters: List[Tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []
        self._watchers = 0

    @property
    def watching(self) -> bool:
        with self._lock:
            return self._watchers > 0

    def _open(self) -> serial.Serial:
        try:
            return serial.Serial(self.port, self.baudrate, timeout=1)
        except serial.SerialException as e:
            if "Permission denied" in str(e):
                raise PermissionDenied(f"No access to {self.port}") from e
            raise WriteError(f"Failed to open {self.port}: {e}") from e

    def _remember(self, fix: PositionFix) -> PositionFix:
        fix.timestamp = now_ms()
        with self._lock:
            self._latest = fix
            waiters, self._waiters = self._waiters, []
        for loop, future in waiters:
            loop.call_soon_threadsafe(_resolve, future, fix)
        return fix

    def watch(self, on_fix: FixCallback, on_error: ErrorCallback, options: WatchOptions) -> WatchHandle:
        loop = asyncio.get_running_loop()
        stop = threading.Event()

        def deliver(coroutine) -> None:
            asyncio.run_coroutine_threadsafe(coroutine, loop)

        def reader() -> None:
            try:
                port = self._open()
            except (PermissionDenied, WriteError) as e:
                deliver(on_error(e))
                return

            with self._lock:
                self._watchers += 1
            logger.info("GPS reader running on %s", self.port)
            try:
                with port:
                    while not stop.is_set():
                        try:
                            raw = port.readline().decode(errors="ignore").strip()
                        except serial.SerialException as e:
                            deliver(on_error(WriteError(f"GPS read failed: {e}")))
                            return
                        if not raw:
                            continue
                        fix = parse_sentence(raw)
                        if fix is not None:
                            deliver(on_fix(self._remember(fix)))
            finally:
                with self._lock:
                    self._watchers -= 1
            logger.info("GPS reader on %s stopped", self.port)

        threading.Thread(target=reader, name="nmea-reader", daemon=True).start()
        return stop.set

    async def current_position(self, options: WatchOptions) -> PositionFix:
        with self._lock:
            latest = self._latest
        if latest is not None and now_ms() - latest.timestamp <= options.max_fix_age_ms:
            return latest

        timeout = options.timeout_ms / 1000
        if self.watching:
            return await self._next_watched_fix(timeout)

        stop = threading.Event()

        def read_one() -> Optional[PositionFix]:
            with self._open() as port:
                while not stop.is_set():
                    raw = port.readline().decode(errors="ignore").strip()
                    fix = parse_sentence(raw) if raw else None
                    if fix is not None:
                        return self._remember(fix)
            return None

        try:
            fix = await asyncio.wait_for(asyncio.to_thread(read_one), timeout=timeout)
        except asyncio.TimeoutError:
            raise WriteError("Timed out waiting for a GPS fix")
        finally:
            stop.set()
        if fix is None:
            raise WriteError("Timed out waiting for a GPS fix")
        return fix

    async def _next_watched_fix(self, timeout: float) -> PositionFix:
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        waiter = (loop, future)
        with self._lock:
            self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            raise WriteError("Timed out waiting for a GPS fix")
        finally:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)


def _resolve(future: asyncio.Future, fix: PositionFix) -> None:
    if not future.done():
        future.set_result(fix)
