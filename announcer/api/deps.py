import logging
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status

from announcer.app_shell.config import ServerConfig
from announcer.components.host import AnnouncementHost
from announcer.core.ports.datasafe import DataSafePort
from announcer.core.services.process_counter import ProcessCounter
from announcer.core.services.translation import Translation

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 60.0


# --- Runtime ---
@dataclass
class Runtime:
    """Everything the HTTP layer needs, built once at startup."""

    config: ServerConfig
    translation: Translation
    datasafe: DataSafePort
    counter: ProcessCounter
    hosts: dict[str, AnnouncementHost] = field(default_factory=dict)
    impressum: str = ""
    dsgvo: str = ""

    def shutdown(self, timeout: float | None = SHUTDOWN_TIMEOUT_SECONDS) -> bool:
        """Wait for in-flight operations, then stop plugin workers and close storage."""
        idle = self.counter.wait_idle(poll_interval=0.1, timeout=timeout)
        if not idle:
            logger.warning("Shutdown: %d operations still running", self.counter.count)
        for host in self.hosts.values():
            host.close()
        self.datasafe.close()
        return idle


def get_runtime(request: Request) -> Runtime:
    runtime: Runtime = request.app.state.runtime
    return runtime


def get_translation(runtime: Runtime = Depends(get_runtime)) -> Translation:
    return runtime.translation


# --- Tenants ---
def get_host(key: str, runtime: Runtime = Depends(get_runtime)) -> AnnouncementHost:
    host = runtime.hosts.get(key)
    if host is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return host
