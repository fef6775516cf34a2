"""
Share local emulators over ngrok tunnels.

State lives under <project_root>/.emulator-sharing/: the tunnel PIDs in
ngrok_pids.txt, the public URLs as `port:url` lines in ngrok_urls.txt and one
ngrok_<name>.log per tunnel.
"""
import json
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import PreconditionError
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.logger_service import get_logger
from firebase_devops.services.system.process_service import PidFile, stop_process

logger = get_logger(__name__)

NGROK_API_URL = 'http://127.0.0.1:4040/api/tunnels'
SHARED_EMULATORS = ('ui', 'firestore', 'functions', 'pubsub')


def find_firebase_json(start: Path) -> Optional[Path]:
    """Walk up from start until a firebase.json is found."""
    current = Path(start).resolve()
    for directory in (current, *current.parents):
        candidate = directory / 'firebase.json'
        if candidate.is_file():
            return candidate
    return None


def detect_emulator_ports(start: Path, defaults: Dict[str, int]) -> Dict[str, int]:
    """Ports from the firebase.json emulators block, falling back to defaults."""
    ports = {name: defaults[name] for name in SHARED_EMULATORS if name in defaults}
    firebase_json = find_firebase_json(start)
    if firebase_json is None:
        logger.debug("No firebase.json found; using default emulator ports")
        return ports
    try:
        emulators = json.loads(firebase_json.read_text(encoding='utf-8')).get('emulators', {})
    except (OSError, ValueError) as e:
        logger.warning(f"⚠️  Could not read {firebase_json}: {e}")
        return ports
    for name in SHARED_EMULATORS:
        port = (emulators.get(name) or {}).get('port')
        if port:
            ports[name] = int(port)
    return ports


def parse_url_lines(text: str) -> Dict[int, str]:
    urls = {}
    for line in text.splitlines():
        port, sep, url = line.strip().partition(':')
        if sep and port.isdigit() and url:
            urls[int(port)] = url
    return urls


class TunnelService(BaseService):
    def __init__(self, config: ToolkitConfig, runner: Optional[CommandRunner] = None,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, runner)
        self.session = session or requests.Session()
        self.sleep = sleep
        self.state_dir = config.share_path
        self.pid_file = PidFile(self.state_dir / 'ngrok_pids.txt')
        self.urls_file = self.state_dir / 'ngrok_urls.txt'

    def ports(self) -> Dict[str, int]:
        return detect_emulator_ports(self.config.project_root, self.config.emulator_ports)

    def tunnel_urls(self) -> Dict[int, str]:
        """Public URLs keyed by local port, from the ngrok agent API."""
        try:
            response = self.session.get(NGROK_API_URL, timeout=5)
            response.raise_for_status()
            tunnels = response.json().get('tunnels', [])
        except (requests.RequestException, ValueError) as e:
            logger.debug("ngrok API not reachable", extra={"error": str(e)})
            return {}
        urls = {}
        for tunnel in tunnels:
            addr = str(tunnel.get('config', {}).get('addr', ''))
            port = addr.rsplit(':', 1)[-1]
            public_url = tunnel.get('public_url')
            if port.isdigit() and public_url:
                # prefer https when ngrok reports both
                if int(port) not in urls or public_url.startswith('https'):
                    urls[int(port)] = public_url
        return urls

    def start(self, emulators: Optional[List[str]] = None) -> Dict[str, str]:
        self.runner.require('ngrok')
        if self.pid_file.read():
            logger.warning("⚠️  Tunnels already running; stopping them first")
            self.stop()

        ports = self.ports()
        selected = emulators or list(ports)
        unknown = [name for name in selected if name not in ports]
        if unknown:
            raise PreconditionError(f"Unknown emulator(s): {', '.join(unknown)}",
                                    hint=f"Choose from: {', '.join(ports)}")

        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.pid_file.remove()
        for name in selected:
            port = ports[name]
            process = self.runner.spawn(['ngrok', 'http', str(port), '--log=stdout'],
                                        cwd=self.config.project_root,
                                        log_path=self.state_dir / f"ngrok_{name}.log")
            self.pid_file.append(process.pid)
            self.runner.detach(process)
            logger.info(f"🌐 Started ngrok tunnel for {name} (port {port})", extra={"pid": process.pid})

        urls: Dict[int, str] = {}
        wanted = {ports[name] for name in selected}
        for _ in range(self.config.startup_attempts):
            urls = self.tunnel_urls()
            if wanted.issubset(urls):
                break
            self.sleep(self.config.poll_interval)

        self.urls_file.write_text(''.join(f"{port}:{url}\n" for port, url in sorted(urls.items())),
                                  encoding='utf-8')
        shared = {}
        for name in selected:
            url = urls.get(ports[name])
            if url:
                shared[name] = url
                logger.info(f"✅ {name}: {url}")
            else:
                logger.warning(f"⚠️  No public URL yet for {name}; see {self.state_dir / f'ngrok_{name}.log'}")
        return shared

    def stop(self) -> List[int]:
        pids = self.pid_file.read()
        for pid in pids:
            stop_process(pid, sleep=self.sleep)
        self.pid_file.remove()
        if self.urls_file.exists():
            self.urls_file.unlink()
        if pids:
            logger.info(f"🛑 Stopped {len(pids)} ngrok tunnels")
        else:
            logger.info("No ngrok tunnels running")
        return pids

    def saved_urls(self) -> Dict[int, str]:
        if not self.urls_file.is_file():
            return {}
        return parse_url_lines(self.urls_file.read_text(encoding='utf-8'))

    def status(self) -> Dict[str, Any]:
        pids = self.pid_file.read()
        urls = self.tunnel_urls() if pids else {}
        by_port = {port: name for name, port in self.ports().items()}
        tunnels = {by_port.get(port, str(port)): url for port, url in sorted((urls or self.saved_urls()).items())}
        if pids:
            logger.info(f"✅ {len(pids)} ngrok tunnels running")
        else:
            logger.info("No ngrok tunnels running")
        return {'running': bool(pids), 'pids': pids, 'tunnels': tunnels}
