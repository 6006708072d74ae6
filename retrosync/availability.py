"""Blocking reachability check for the remote host."""

import logging
import socket
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AvailabilityProbe:
    """Waits until the remote host accepts TCP connections on its port.

    The probe blocks indefinitely by default: an unreachable remote is
    never fatal, the sync simply resumes once the host is back.
    """

    def __init__(
        self,
        host: str,
        port: int,
        interval: float = 5.0,
        timeout: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the probe.

        Args:
            host: Hostname or IP address
            port: TCP port
            interval: Seconds to wait between connection attempts
            timeout: Seconds allowed per connection attempt
            sleep: Sleep function (injectable for tests)
        """
        self.host = host
        self.port = port
        self.interval = interval
        self.timeout = timeout
        self._sleep = sleep

    def is_available(self) -> bool:
        """Try a single TCP connection."""
        try:
            socket.create_connection((self.host, self.port), timeout=self.timeout).close()
            return True
        except OSError:
            return False

    def wait(self, max_attempts: Optional[int] = None) -> bool:
        """Block until the port is open.

        Args:
            max_attempts: Give up after this many failed attempts (None = never)

        Returns:
            True once reachable, False if max_attempts was exhausted
        """
        attempts = 0
        announced = False
        while not self.is_available():
            attempts += 1
            if max_attempts is not None and attempts >= max_attempts:
                logger.warning(
                    "%s:%s still unreachable after %d attempts",
                    self.host,
                    self.port,
                    attempts,
                )
                return False
            if not announced:
                logger.info("Waiting for %s:%s to accept connections...", self.host, self.port)
                announced = True
            self._sleep(self.interval)
        if announced:
            logger.info("Port %s is open on %s", self.port, self.host)
        return True
