"""Reachability signal consumed by the transport and orchestrator.

Detection itself lives outside the client: whatever watches the OS network
state calls ``update`` (or ``set_connected``) and the core only reads
``is_connected``.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class NetworkStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    CELLULAR = "cellular"
    WIFI = "wifi"

    @property
    def description(self) -> str:
        return {
            NetworkStatus.CONNECTED: "Connected",
            NetworkStatus.DISCONNECTED: "Not Connected",
            NetworkStatus.CELLULAR: "Cellular Connection",
            NetworkStatus.WIFI: "WiFi Connection",
        }[self]


class NetworkMonitor:
    """Holds the latest reachability status. Defaults to connected."""

    def __init__(self, status: NetworkStatus = NetworkStatus.CONNECTED):
        self._status = status

    @property
    def status(self) -> NetworkStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status != NetworkStatus.DISCONNECTED

    def update(self, status: NetworkStatus) -> None:
        if status != self._status:
            logger.info("Network status changed: %s -> %s", self._status.value, status.value)
        self._status = status

    def set_connected(self, connected: bool) -> None:
        self.update(NetworkStatus.CONNECTED if connected else NetworkStatus.DISCONNECTED)
