"""Network reachability check used before each vision call."""

import asyncio
import logging
import socket

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """
    Periodically probes a well-known host over TCP.

    has_internet() only reads the last result, so it is cheap enough to call
    on every admitted frame.
    """

    def __init__(
        self,
        host: str = "8.8.8.8",
        port: int = 53,
        timeout_s: float = 1.5,
        interval_s: float = 5.0
    ):
        self.host = host
        self.port = port
        self.timeout_s = timeout_s
        self.interval_s = interval_s
        # Optimistic until the first probe says otherwise
        self._online = True

    def has_internet(self) -> bool:
        return self._online

    def probe(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout_s):
                online = True
        except OSError:
            online = False
        if online != self._online:
            logger.info(f"🌐 Connectivity changed: {'online' if online else 'offline'}")
        self._online = online
        return online

    async def run(self):
        """Re-probe forever; cancel the task to stop."""
        while True:
            await asyncio.to_thread(self.probe)
            await asyncio.sleep(self.interval_s)
