"""
Local port allocation for the browser driver.

Ports are checked with a bind test on the loopback interface. A check only
says the port was free at call time; a race with another process binding it
before the driver does is accepted.
"""

import socket
from dataclasses import dataclass

from src.errors import NoPortAvailableError
from src.utils.logging import get_logger

logger = get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"


@dataclass(frozen=True)
class PortRange:
    """Inclusive port search bounds."""

    min_port: int
    max_port: int

    def __post_init__(self) -> None:
        if not 1 <= self.min_port <= 65535 or not 1 <= self.max_port <= 65535:
            raise ValueError(f"Ports must be in 1-65535, got {self.min_port}-{self.max_port}")
        if self.min_port > self.max_port:
            raise ValueError(f"min_port {self.min_port} > max_port {self.max_port}")

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.min_port <= port <= self.max_port

    def __iter__(self):
        return iter(range(self.min_port, self.max_port + 1))

    def __len__(self) -> int:
        return self.max_port - self.min_port + 1


def is_port_available(port: int, host: str = LOOPBACK_HOST) -> bool:
    """Check whether a local port can be bound right now.

    The test socket is closed before returning.

    Args:
        port: Port to check.
        host: Interface to bind on.

    Returns:
        True if the bind succeeded.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        # Same bind semantics as the driver's listener: TIME_WAIT leftovers do not count
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(port_range: PortRange, host: str = LOOPBACK_HOST) -> int:
    """Return the lowest bindable port in the range.

    Args:
        port_range: Bounds to scan, ascending.
        host: Interface to check on.

    Returns:
        First available port.

    Raises:
        NoPortAvailableError: Every port in the range is taken.
    """
    for port in port_range:
        if is_port_available(port, host):
            return port

    logger.error(
        "Port range exhausted",
        min_port=port_range.min_port,
        max_port=port_range.max_port,
    )
    raise NoPortAvailableError(port_range.min_port, port_range.max_port)
