"""Raw SocketCAN access: a per-id filtered receiver and an unfiltered sender."""

from __future__ import annotations

import errno
import logging
import socket
import struct
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

PF_CAN = getattr(socket, "PF_CAN", 29)
CAN_RAW = getattr(socket, "CAN_RAW", 1)
SOL_CAN_RAW = getattr(socket, "SOL_CAN_RAW", 101)
CAN_RAW_FILTER = getattr(socket, "CAN_RAW_FILTER", 1)
CAN_SFF_MASK = getattr(socket, "CAN_SFF_MASK", 0x7FF)

_FRAME_FORMAT = struct.Struct("=IB3x8s")
_FILTER_FORMAT = struct.Struct("=II")
CAN_FRAME_SIZE = _FRAME_FORMAT.size
CAN_MAX_DLEN = 8


@dataclass(frozen=True)
class CanFrame:
    """A classic CAN frame: identifier and up to eight data bytes."""

    can_id: int
    data: bytes = b""

    def __post_init__(self) -> None:
        data = bytes(self.data)
        if len(data) > CAN_MAX_DLEN:
            raise ValueError(f"CAN frame carries at most {CAN_MAX_DLEN} bytes, got {len(data)}")
        if not 0 <= self.can_id <= 0xFFFFFFFF:
            raise ValueError(f"CAN id out of range: {self.can_id:#x}")
        object.__setattr__(self, "data", data)

    @property
    def dlc(self) -> int:
        """Data length code."""
        return len(self.data)

    def pack(self) -> bytes:
        """Encode as the kernel's ``struct can_frame``."""
        return _FRAME_FORMAT.pack(self.can_id, self.dlc, self.data)

    @classmethod
    def unpack(cls, data: bytes) -> "CanFrame":
        """Decode a kernel ``struct can_frame``."""
        if len(data) != CAN_FRAME_SIZE:
            raise ValueError(f"expected {CAN_FRAME_SIZE} bytes, got {len(data)}")
        can_id, dlc, payload = _FRAME_FORMAT.unpack(data)
        return cls(can_id, payload[: min(dlc, CAN_MAX_DLEN)])


def _create_socket(ifname: str, filter_bytes: Optional[bytes]) -> Optional[socket.socket]:
    """Open a non-blocking raw CAN socket bound to ``ifname``, or None on failure."""
    try:
        sock = socket.socket(PF_CAN, socket.SOCK_RAW, CAN_RAW)
    except OSError as exc:
        logger.debug("[%s] failed to create socket: %s", ifname, exc)
        return None
    try:
        sock.bind((ifname,))
        if filter_bytes is None:
            sock.setsockopt(SOL_CAN_RAW, CAN_RAW_FILTER, None, 0)
        else:
            sock.setsockopt(SOL_CAN_RAW, CAN_RAW_FILTER, filter_bytes)
        sock.setblocking(False)
    except OSError as exc:
        logger.debug("[%s] failed to set up socket: %s", ifname, exc)
        sock.close()
        return None
    return sock


class SocketCANReceiver:
    """Receives frames on one interface, with one filtered socket per frame id."""

    def __init__(self, ifname: str) -> None:
        self.ifname = ifname
        self.is_opened: dict[int, bool] = {}
        self._sockets: dict[int, socket.socket] = {}

    def __enter__(self) -> "SocketCANReceiver":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open_socket(self, frame_id: int) -> bool:
        """Open a socket that receives only ``frame_id``; return whether it worked."""
        logger.debug("[%s] creating socket for id %#x", self.ifname, frame_id)
        sock = _create_socket(self.ifname, _FILTER_FORMAT.pack(frame_id, CAN_SFF_MASK))
        if sock is None:
            return False
        if self.is_opened.get(frame_id):
            self._sockets[frame_id].close()
        self._sockets[frame_id] = sock
        self.is_opened[frame_id] = True
        return True

    def read(self, frame_id: int) -> Optional[CanFrame]:
        """Return the next pending frame for ``frame_id``, or None if there is none."""
        if frame_id not in self._sockets:
            logger.debug("[%s] unbound id %#x", self.ifname, frame_id)
            return None
        if not self.is_opened[frame_id]:
            logger.debug("[%s] socket is closed, id %#x", self.ifname, frame_id)
            return None

        sock = self._sockets[frame_id]
        try:
            data = sock.recv(CAN_FRAME_SIZE)
        except BlockingIOError:
            return None
        except OSError as exc:
            if exc.errno == errno.ENODEV:
                logger.debug("[%s] link is down, id %#x", self.ifname, frame_id)
                self.is_opened[frame_id] = False
                sock.close()
            else:
                logger.debug("[%s] failed to read, id %#x: %s", self.ifname, frame_id, exc)
            return None

        if len(data) != CAN_FRAME_SIZE:
            logger.debug(
                "[%s] attempt to read %d bytes, %d byte read", self.ifname, CAN_FRAME_SIZE, len(data)
            )
            return None
        frame = CanFrame.unpack(data)
        logger.debug("[%s] read successful, id %#x, dlc %d", self.ifname, frame_id, frame.dlc)
        return frame

    def close(self) -> None:
        """Close every open socket."""
        for frame_id, sock in self._sockets.items():
            if self.is_opened.get(frame_id):
                logger.debug("[%s] closing socket for id %#x", self.ifname, frame_id)
                sock.close()
                self.is_opened[frame_id] = False


class SocketCANSender:
    """Sends frames on one interface through a single unfiltered socket."""

    def __init__(self, ifname: str) -> None:
        self.ifname = ifname
        self.is_opened = False
        self._socket: Optional[socket.socket] = None

    def __enter__(self) -> "SocketCANSender":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def open_socket(self, ifname: Optional[str] = None) -> bool:
        """Open the socket, switching interface first if one is given."""
        if ifname is not None:
            self.ifname = ifname
        self.close()
        logger.debug("[%s] creating socket", self.ifname)
        sock = _create_socket(self.ifname, None)
        if sock is None:
            return False
        self._socket = sock
        self.is_opened = True
        return True

    def send(self, frame: CanFrame) -> bool:
        """Write ``frame``; return whether the whole frame went out."""
        if not self.is_opened or self._socket is None:
            logger.debug("[%s] socket is not opened", self.ifname)
            return False
        try:
            written = self._socket.send(frame.pack())
        except OSError as exc:
            if exc.errno == errno.ENXIO:
                logger.debug("[%s] link is down", self.ifname)
                self.close()
            else:
                logger.debug("[%s] failed to write: %s", self.ifname, exc)
            return False
        if written != CAN_FRAME_SIZE:
            logger.debug(
                "[%s] attempt to write %d bytes, %d byte written", self.ifname, CAN_FRAME_SIZE, written
            )
            return False
        logger.debug("[%s] send successful, id %#x, dlc %d", self.ifname, frame.can_id, frame.dlc)
        return True

    def close(self) -> None:
        """Close the socket if it is open."""
        if self.is_opened and self._socket is not None:
            self._socket.close()
        self.is_opened = False
        self._socket = None