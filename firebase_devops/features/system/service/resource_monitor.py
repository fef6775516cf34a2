"""
Service for monitoring emulator resource usage with psutil.
"""
import time
from typing import Any, Callable, Dict, List, Optional

import psutil

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.logger_service import get_logger, log_error

logger = get_logger(__name__)

MONITOR_INTERVAL_SECONDS = 30


def _cmdline(proc: psutil.Process) -> str:
    return ' '.join(proc.info.get('cmdline') or []).lower()


class ResourceMonitorService(BaseService):
    def __init__(self, config: ToolkitConfig, sleep: Callable[[float], None] = time.sleep):
        super().__init__(config)
        self.sleep = sleep

    def _iter_processes(self):
        return psutil.process_iter(['pid', 'cmdline', 'create_time'])

    def emulator_process(self) -> Optional[psutil.Process]:
        """The main `firebase ... emulators` process, if one is running."""
        for proc in self._iter_processes():
            try:
                cmdline = _cmdline(proc)
                if 'firebase' in cmdline and 'emulator' in cmdline:
                    return proc
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return None

    def node_firebase_processes(self) -> List[psutil.Process]:
        """node processes belonging to the Firebase CLI, oldest first."""
        found = []
        for proc in self._iter_processes():
            try:
                cmdline = _cmdline(proc)
                if 'node' in cmdline and 'firebase' in cmdline:
                    found.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return sorted(found, key=lambda p: p.info.get('create_time') or 0)

    def get_system_stats(self) -> Dict[str, Any]:
        """Get host system stats using psutil"""
        try:
            cpu_percent = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()

            return {
                "cpu": {
                    "usage_percent": cpu_percent,
                    "count": psutil.cpu_count(),
                },
                "memory": {
                    "total": memory.total,
                    "available": memory.available,
                    "used": memory.used,
                    "percent": memory.percent
                }
            }
        except Exception as e:
            log_error(logger, e, context={"operation": "get_system_stats"})
            return {}

    def check(self) -> Dict[str, Any]:
        """Compare emulator memory, CPU and node process count against the configured limits."""
        issues = []
        memory_mb = cpu_percent = None

        proc = self.emulator_process()
        if proc is not None:
            try:
                memory_mb = proc.memory_info().rss / (1024 * 1024)
                cpu_percent = proc.cpu_percent(interval=0.5)
            except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
                logger.debug("Emulator process vanished during check", extra={"error": str(e)})

        if memory_mb is not None and memory_mb > self.config.max_memory_mb:
            issues.append(f"High memory usage: {memory_mb:.0f}MB (limit: {self.config.max_memory_mb}MB)")
        if cpu_percent is not None and cpu_percent > self.config.max_cpu_percent:
            issues.append(f"High CPU usage: {cpu_percent:.0f}% (limit: {self.config.max_cpu_percent:.0f}%)")

        node_count = len(self.node_firebase_processes())
        if node_count > self.config.max_node_processes:
            issues.append(f"Too many Node.js processes: {node_count} (limit: {self.config.max_node_processes})")

        for issue in issues:
            logger.warning(f"⚠️  {issue}")
        if not issues:
            if memory_mb is None:
                logger.info("✅ All resource checks passed (emulator not running)")
            else:
                logger.info(f"✅ Resources OK - Memory: {memory_mb:.0f}MB, CPU: {cpu_percent or 0:.0f}%")

        return {
            'ok': not issues,
            'issues': issues,
            'emulator_pid': proc.pid if proc is not None else None,
            'memory_mb': round(memory_mb, 1) if memory_mb is not None else None,
            'cpu_percent': cpu_percent,
            'node_processes': node_count,
            'system': self.get_system_stats(),
        }

    def cleanup(self) -> List[int]:
        """Kill the newest node/firebase processes beyond the configured limit."""
        processes = self.node_firebase_processes()
        excess = processes[self.config.max_node_processes:]
        killed = []
        if excess:
            logger.warning("Cleaning up excess Node.js processes...", extra={"count": len(excess)})
        for proc in excess:
            try:
                proc.kill()
                killed.append(proc.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        if killed:
            logger.info(f"✅ Cleaned up {len(killed)} excess processes")
        return killed

    def monitor(self, interval: float = MONITOR_INTERVAL_SECONDS,
                iterations: Optional[int] = None) -> int:
        """Check repeatedly; excess node processes are cleaned as they appear. Returns checks run."""
        logger.info("Starting resource monitoring...", extra={"interval": interval})
        runs = 0
        while iterations is None or runs < iterations:
            result = self.check()
            runs += 1
            if result['node_processes'] > self.config.max_node_processes:
                self.cleanup()
            if not result['ok']:
                logger.warning("Resource issues detected - consider restarting emulator")
            if iterations is None or runs < iterations:
                self.sleep(interval)
        return runs
