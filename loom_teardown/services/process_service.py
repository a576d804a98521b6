"""Dev server detection and termination by port."""

import time
from typing import List, Optional

import psutil

from loom_teardown.constants import DEFAULT_BASE_PORT, MAX_PORT
from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import ProcessInfo

logger = get_logger(__name__)

# Process names that run dev servers
DEV_SERVER_NAMES = {
    "node", "npm", "npx", "pnpm", "yarn", "bun", "deno",
    "vite", "next", "next-server", "nuxt", "webpack", "esbuild",
    "uvicorn", "gunicorn", "hypercorn", "flask", "rails", "puma",
}

# Command line fragments that mark a dev server
DEV_SERVER_MARKERS = (
    "npm run dev", "npm start", "pnpm dev", "pnpm run dev", "yarn dev", "bun run dev",
    "vite", "next dev", "next-server", "nuxt dev", "webpack serve", "react-scripts start",
    "manage.py runserver", "uvicorn", "flask run", "gunicorn", "rails server", "rails s",
    "http.server",
)


def wrap_port(raw_port: int, base_port: int) -> int:
    """Wrap a port above 65535 back into ``[base_port + 1, 65535]``."""
    if raw_port <= MAX_PORT:
        return raw_port
    port_range = MAX_PORT - base_port
    return ((raw_port - base_port - 1) % port_range) + base_port + 1


def _looks_like_dev_server(name: str, cmdline: List[str]) -> bool:
    name = (name or "").lower()
    if name.endswith(".exe"):
        name = name[:-4]
    if name in DEV_SERVER_NAMES:
        return True
    command = " ".join(cmdline).lower()
    return any(marker in command for marker in DEV_SERVER_MARKERS)


class ProcessReaper:
    """Finds and stops the dev server bound to a loom's port."""

    def __init__(self, base_port: int = DEFAULT_BASE_PORT, terminate_timeout: float = 5.0,
                 port_free_timeout: float = 3.0):
        self.base_port = base_port
        self.terminate_timeout = terminate_timeout
        self.port_free_timeout = port_free_timeout

    def port_for(self, number: int) -> int:
        """Deterministic dev server port for an issue or PR number."""
        return wrap_port(self.base_port + number, self.base_port)

    def _listening_pid(self, port: int) -> Optional[int]:
        try:
            connections = psutil.net_connections(kind="inet")
        except psutil.AccessDenied:
            # System-wide listing needs privileges on some platforms
            return self._listening_pid_per_process(port)

        for conn in connections:
            if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == port and conn.pid:
                return conn.pid
        return None

    def _listening_pid_per_process(self, port: int) -> Optional[int]:
        for proc in psutil.process_iter(["pid"]):
            try:
                for conn in proc.net_connections(kind="inet"):
                    if conn.status == psutil.CONN_LISTEN and conn.laddr and conn.laddr.port == port:
                        return proc.pid
            except (psutil.NoSuchProcess, psutil.ZombieProcess, psutil.AccessDenied):
                continue
        return None

    def detect(self, port: int) -> Optional[ProcessInfo]:
        """Find the process listening on ``port``.

        Returns:
            ProcessInfo, or None if nothing listens on the port
        """
        pid = self._listening_pid(port)
        if pid is None:
            return None

        try:
            proc = psutil.Process(pid)
            name = proc.name()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        except psutil.AccessDenied:
            name = ""

        try:
            cmdline = proc.cmdline()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return None
        except psutil.AccessDenied:
            cmdline = []

        info = ProcessInfo(
            pid=pid,
            name=name,
            port=port,
            command=" ".join(cmdline),
            is_dev_server=_looks_like_dev_server(name, cmdline),
        )
        logger.debug(f"Port {port} is held by {info.name} (PID: {info.pid}, dev server: {info.is_dev_server})")
        return info

    def terminate(self, pid: int) -> bool:
        """Stop a process with SIGTERM, escalating to SIGKILL.

        Returns:
            True once the process is gone

        Raises:
            psutil.AccessDenied: If the process belongs to another user
        """
        try:
            proc = psutil.Process(pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            return True

        try:
            proc.wait(timeout=self.terminate_timeout)
            return True
        except psutil.TimeoutExpired:
            logger.warning(f"Process {pid} ignored SIGTERM, sending SIGKILL")

        try:
            proc.kill()
            proc.wait(timeout=self.terminate_timeout)
        except psutil.NoSuchProcess:
            pass
        except psutil.TimeoutExpired:
            return False
        return True

    def verify_port_free(self, port: int) -> bool:
        """Wait briefly for ``port`` to stop listening."""
        deadline = time.time() + max(0.1, self.port_free_timeout)
        while True:
            if self._listening_pid(port) is None:
                return True
            if time.time() >= deadline:
                return False
            time.sleep(0.1)
