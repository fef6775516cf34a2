"""
Local Firebase emulator lifecycle: start, stop, status, restart, clean and
local deploy with health checks.

The emulator suite runs as a background `firebase emulators:start` process in
its own session. Its PID is kept in <state_dir>/emulator.pid and its output in
<state_dir>/emulator.log.
"""
import os
import re
import socket
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import psutil
import requests

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import EmulatorError, PreconditionError
from firebase_devops.config.env_config import ToolkitConfig, emulator_environment
from firebase_devops.features.deployment.service.service_tree_reader import ServiceTreeReader
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.logger_service import get_logger
from firebase_devops.services.system.process_service import PidFile, stop_process

logger = get_logger(__name__)

EMULATOR_TARGETS = ('firestore', 'pubsub', 'ui')


def transform_function_name(service_name: str, transform: str = 'default',
                            prefix: str = '', suffix: str = '',
                            custom_name: Optional[str] = None) -> str:
    """Derive the emulator function name for a service directory name."""
    base = re.sub(r'-service$', '', service_name)
    if transform == 'kebab':
        name = base
    elif transform == 'camel':
        name = re.sub(r'-([a-z])', lambda m: m.group(1).upper(), base)
    elif transform == 'custom':
        name = custom_name or base
    else:
        # default and snake
        name = base.replace('-', '_')
    return f"{prefix}{name}{suffix}"


def only_argument(functions_filter: Optional[str]) -> str:
    """Value for `emulators:start --only`, scoping functions to the filter when one is set."""
    if functions_filter:
        names = [name.strip() for name in functions_filter.split(',') if name.strip()]
        functions = ','.join(f"functions:{name}" for name in names)
    else:
        functions = 'functions'
    return ','.join([functions, *EMULATOR_TARGETS])


def _is_emulator_process(cmdline: List[str]) -> bool:
    joined = ' '.join(cmdline).lower()
    if 'firebase' in joined and 'emulators' in joined:
        return True
    return 'java' in joined and ('firestore' in joined or 'pubsub-emulator' in joined)


class EmulatorService(BaseService):
    def __init__(self, config: ToolkitConfig, runner: Optional[CommandRunner] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, runner)
        self.session = session or requests.Session()
        self.sleep = sleep
        self.pid_file = PidFile(config.state_path / 'emulator.pid')
        self.log_path = config.state_path / 'emulator.log'

    # Ports -----------------------------------------------------------------

    def is_port_in_use(self, port: int) -> bool:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(1)
            return sock.connect_ex((self.config.emulator_host, port)) == 0

    def port_status(self) -> Dict[str, bool]:
        return {f"{name}:{port}": self.is_port_in_use(port)
                for name, port in self.config.emulator_ports.items()}

    def http_ready(self, port: int) -> bool:
        """Any HTTP answer counts; only connection failures mean not ready."""
        try:
            self.session.get(f"http://{self.config.emulator_host}:{port}", timeout=2)
            return True
        except requests.RequestException:
            return False

    # Lifecycle -------------------------------------------------------------

    def running_pid(self) -> Optional[int]:
        return self.pid_file.running_pid()

    def start(self, functions_filter: Optional[str] = None) -> int:
        """
        Start the emulator suite in the background and wait until Firestore and
        Pub/Sub answer.

        Returns:
            PID of the emulator process
        """
        project_id = self.config.require_project()
        existing = self.running_pid()
        if existing:
            raise EmulatorError(f"Emulator already running (PID {existing}); run stop-local first")

        busy = [label for label, used in self.port_status().items() if used]
        if busy:
            raise PreconditionError(f"Emulator ports already in use: {', '.join(busy)}",
                                    hint="Run clean-local to free them")

        self.runner.require('firebase')
        functions_filter = functions_filter or self.config.functions_filter
        only = only_argument(functions_filter)
        argv = ['firebase', 'emulators:start', '--only', only, '--project', project_id]

        env = emulator_environment(self.config)
        env['NODE_ENV'] = 'development'
        logger.info(f"🚀 Starting Firebase emulator with: --only {only}",
                    extra={"project_id": project_id, "log_file": str(self.log_path)})
        process = self.runner.spawn(argv, cwd=self.config.project_root, env=env, log_path=self.log_path)
        self.pid_file.write([process.pid])

        try:
            self.wait_until_ready(process)
        except EmulatorError:
            stop_process(process.pid, sleep=self.sleep, process_group=True)
            self.pid_file.remove()
            raise
        finally:
            self.runner.detach(process)

        logger.info("✅ Firebase emulator (including Pub/Sub) started successfully",
                    extra={"pid": process.pid, "ui": f"http://{self.config.emulator_host}:{self.config.ui_port}"})
        return process.pid

    def wait_until_ready(self, process=None) -> None:
        attempts = self.config.startup_attempts
        logger.info(f"Waiting for Firebase emulator to start (up to {attempts} checks)...")
        for attempt in range(1, attempts + 1):
            if process is not None and process.poll() is not None:
                raise EmulatorError(
                    f"Emulator exited with code {process.returncode}; see {self.log_path}")
            firestore_ready = self.http_ready(self.config.firestore_port)
            pubsub_ready = self.http_ready(self.config.pubsub_port)
            if firestore_ready and pubsub_ready:
                return
            logger.debug("Emulator not ready yet", extra={
                "attempt": attempt,
                "firestore_ready": firestore_ready,
                "pubsub_ready": pubsub_ready,
            })
            self.sleep(self.config.poll_interval)
        raise EmulatorError(f"Firebase emulator failed to start within timeout; see {self.log_path}")

    def find_emulator_processes(self) -> List[psutil.Process]:
        found = []
        for proc in psutil.process_iter(['pid', 'cmdline']):
            try:
                cmdline = proc.info.get('cmdline') or []
                if proc.pid != os.getpid() and _is_emulator_process(cmdline):
                    found.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return found

    def stop(self) -> Dict[str, Any]:
        """Stop the tracked emulator and any stray emulator processes."""
        stopped = []
        pid = self.running_pid()
        if pid:
            logger.info(f"🛑 Stopping Firebase emulator (PID: {pid})...")
            stop_process(pid, sleep=self.sleep, process_group=True)
            stopped.append(pid)
        else:
            logger.info("No tracked emulator process")
        self.pid_file.remove()

        for proc in self.find_emulator_processes():
            try:
                proc.terminate()
                stopped.append(proc.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        if stopped:
            _, alive = psutil.wait_procs(self._processes(stopped), timeout=3)
            for proc in alive:
                try:
                    proc.kill()
                except psutil.NoSuchProcess:
                    pass

        busy = [label for label, used in self.port_status().items() if used]
        if busy:
            logger.warning(f"⚠️  Ports still in use: {', '.join(busy)}")
        else:
            logger.info("✅ Firebase emulator stopped")
        return {'stopped_pids': stopped, 'busy_ports': busy}

    def _processes(self, pids: List[int]) -> List[psutil.Process]:
        procs = []
        for pid in pids:
            try:
                procs.append(psutil.Process(pid))
            except psutil.NoSuchProcess:
                continue
        return procs

    def clean(self) -> Dict[str, Any]:
        """Stop everything and free the emulator ports from whatever holds them."""
        result = self.stop()
        freed = []
        ports = set(self.config.emulator_ports.values())
        try:
            connections = psutil.net_connections(kind='inet')
        except psutil.AccessDenied:
            logger.warning("Not allowed to list socket owners; skipping port cleanup")
            connections = []
        for conn in connections:
            if conn.laddr and conn.laddr.port in ports and conn.status == psutil.CONN_LISTEN and conn.pid:
                try:
                    psutil.Process(conn.pid).kill()
                    freed.append(conn.laddr.port)
                    logger.info(f"🧹 Killed process {conn.pid} holding port {conn.laddr.port}")
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    continue
        result['freed_ports'] = sorted(set(freed))
        return result

    def restart(self, functions_filter: Optional[str] = None) -> int:
        self.clean()
        self.sleep(3)
        return self.start(functions_filter)

    def status(self) -> Dict[str, Any]:
        pid = self.running_pid()
        ports = self.port_status()
        ui_url = f"http://{self.config.emulator_host}:{self.config.ui_port}"
        status = {
            'running': bool(pid) or ports.get(f"firestore:{self.config.firestore_port}", False),
            'pid': pid,
            'ports': ports,
            'ui': ui_url if self.http_ready(self.config.ui_port) else None,
            'log_file': str(self.log_path),
        }
        if pid:
            logger.info(f"✅ Emulator running (PID: {pid})")
        else:
            logger.info("Emulator is not running (no live PID file)")
        for label, used in ports.items():
            logger.info(f"{'🟢' if used else '⚪'} {label}")
        return status

    # Local deploy ----------------------------------------------------------

    def function_url(self, function_name: str) -> str:
        return (f"http://{self.config.emulator_host}:{self.config.functions_port}/"
                f"{self.config.project_id}/{self.config.region}/{function_name}")

    def deploy_local(self) -> Dict[str, Any]:
        """Install service dependencies and health-check each service's function on the emulator."""
        self.config.require_project()
        if not (self.running_pid() or self.is_port_in_use(self.config.firestore_port)):
            raise PreconditionError("Firebase emulator is not running", hint="Run start-local first")
        self.runner.require('npm')

        services = ServiceTreeReader(self.config.services_path).list_services()
        installed = 0
        for service_dir in services:
            if (Path(service_dir) / 'package.json').is_file():
                logger.info(f"📥 Installing dependencies for {service_dir.name}...")
                self.runner.run(['npm', 'install', '--silent'], cwd=service_dir, check=True)
                installed += 1
        logger.info(f"Dependencies installed for {installed}/{len(services)} services")

        health = {}
        for service_dir in services:
            function_name = transform_function_name(
                service_dir.name,
                self.config.function_name_transform,
                self.config.function_name_prefix,
                self.config.function_name_suffix,
                self.config.custom_function_name,
            )
            url = self.function_url(function_name)
            try:
                response = self.session.get(url, timeout=5)
                healthy = response.status_code < 500
            except requests.RequestException:
                healthy = False
            health[service_dir.name] = {'url': url, 'healthy': healthy}
            if healthy:
                logger.info(f"✅ {service_dir.name} is healthy")
            else:
                logger.warning(f"⚠️  {service_dir.name} is not responding", extra={"url": url})

        healthy_count = sum(1 for item in health.values() if item['healthy'])
        logger.info(f"Health check summary: {healthy_count}/{len(health)} services healthy")
        return {'installed': installed, 'health': health}
