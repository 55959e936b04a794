"""Container management operations."""
import re
from datetime import datetime
from typing import List, Optional

import docker
from docker.types import LogConfig, Ulimit

from .errors import StartFailed
from .models import ContainerSpec, HealthState
from .utils import format_ports, parse_docker_timestamp

NANOSECONDS = 1_000_000_000


class ContainerManager:
    """Manages Docker container operations."""

    def __init__(self, client, console, logger):
        """Initialize container manager."""
        self.client = client
        self.console = console
        self.logger = logger

    def _get(self, container_name: str):
        """Return the container or None when it does not exist."""
        try:
            return self.client.containers.get(container_name)
        except docker.errors.NotFound:
            return None

    # ==================== NETWORK ====================

    def ensure_network(self, network_name: str) -> None:
        """Create the bridge network if it does not exist yet."""
        existing = [n for n in self.client.networks.list(names=[network_name]) if n.name == network_name]
        if existing:
            self.logger.debug(f"Network {network_name} already exists")
            return

        self.console.print(f"[cyan]🌐 Creating internal network: {network_name}[/cyan]")
        self.client.networks.create(
            network_name,
            driver="bridge",
            labels={"environment": "production"},
        )
        self.logger.info(f"Network {network_name} created")

    # ==================== LIFECYCLE ====================

    def build_run_kwargs(self, spec: ContainerSpec) -> dict:
        """Translate a ContainerSpec into ``containers.run`` keyword arguments."""
        health = spec.health_check
        container_kwargs = {
            'image': spec.image,
            'name': spec.name,
            'detach': True,
            'network': spec.network,
            'healthcheck': {
                'test': ["CMD-SHELL", health.command],
                'interval': health.interval * NANOSECONDS,
                'timeout': health.timeout * NANOSECONDS,
                'retries': health.retries,
                'start_period': health.start_period * NANOSECONDS,
            },
            'restart_policy': {"Name": spec.restart_policy},
            'log_config': LogConfig(
                type=LogConfig.types.JSON,
                config={'max-size': spec.log_max_size, 'max-file': str(spec.log_max_file)},
            ),
            'ulimits': [Ulimit(name='nofile', soft=spec.nofile_limit, hard=spec.nofile_limit)],
            'security_opt': list(spec.security_opt),
        }

        if spec.ports:
            container_kwargs['ports'] = dict(spec.ports)
        if spec.environment:
            container_kwargs['environment'] = dict(spec.environment)
        if spec.volumes:
            container_kwargs['volumes'] = {host: dict(bind) for host, bind in spec.volumes.items()}

        return container_kwargs

    def start_container(self, spec: ContainerSpec):
        """Start a detached container from a spec.

        Raises:
            StartFailed: Docker refused to create or start the container.
        """
        self.console.print(f"[cyan]🚀 Starting container {spec.name} from {spec.image}...[/cyan]")
        self.console.print(f"[dim]  Ports: {format_ports(spec.ports)}[/dim]")
        if spec.environment:
            self.console.print(f"[dim]  Environment variables: {len(spec.environment)} set[/dim]")
        if spec.volumes:
            self.console.print(f"[dim]  Volumes: {len(spec.volumes)} mounted read-only[/dim]")

        try:
            container = self.client.containers.run(**self.build_run_kwargs(spec))
        except docker.errors.ImageNotFound as e:
            self.logger.error(f"Image not found: {spec.image}")
            raise StartFailed(f"Image not found: {spec.image}", output=str(e)) from e
        except docker.errors.DockerException as e:
            self.logger.error(f"Container start failed: {e}")
            raise StartFailed(f"Failed to start container {spec.name}", output=str(e)) from e

        self.console.print(f"[green]✅ Container {spec.name} started (ID: {container.short_id})[/green]")
        self.logger.info(f"Container {spec.name} started from image {spec.image}")
        return container

    def stop_container(self, container_name: str, timeout: int = 10) -> bool:
        """Stop a container. A missing container is a no-op."""
        container = self._get(container_name)
        if container is None:
            self.logger.debug(f"Container {container_name} not found, nothing to stop")
            return True

        try:
            container.stop(timeout=timeout)
        except docker.errors.NotFound:
            return True
        except docker.errors.APIError as e:
            self.logger.warning(f"Failed to stop container {container_name}: {e}")
            return False

        self.logger.info(f"Container {container_name} stopped")
        return True

    def remove_container(self, container_name: str) -> bool:
        """Force-remove a container. A missing container is a no-op."""
        container = self._get(container_name)
        if container is None:
            self.logger.debug(f"Container {container_name} not found, nothing to remove")
            return True

        try:
            container.remove(force=True)
        except docker.errors.NotFound:
            return True
        except docker.errors.APIError as e:
            self.logger.warning(f"Failed to remove container {container_name}: {e}")
            return False

        self.logger.info(f"Container {container_name} removed")
        return True

    def stop_and_remove_container(self, container_name: str) -> bool:
        stopped = self.stop_container(container_name)
        removed = self.remove_container(container_name)
        return stopped and removed

    # ==================== INSPECTION ====================

    def is_running(self, container_name: str) -> bool:
        container = self._get(container_name)
        return container is not None and container.status == "running"

    def inspect_health(self, container_name: str) -> HealthState:
        """Current health status; never raises for a missing container."""
        container = self._get(container_name)
        if container is None:
            return HealthState.UNKNOWN

        try:
            container.reload()
        except docker.errors.NotFound:
            return HealthState.UNKNOWN
        except docker.errors.APIError as e:
            self.logger.warning(f"Failed to inspect container {container_name}: {e}")
            return HealthState.UNKNOWN

        health = (container.attrs.get('State') or {}).get('Health') or {}
        return HealthState.from_docker(health.get('Status'))

    def inspect_image(self, container_name: str) -> Optional[str]:
        """ID of the image the container is running.

        ``Config.Image`` only names the tag the container was created from, and
        that tag may already point at a newer pull.
        """
        container = self._get(container_name)
        if container is None:
            return None
        return container.attrs.get('Image') or (container.attrs.get('Config') or {}).get('Image') or None

    def started_at(self, container_name: str) -> Optional[datetime]:
        container = self._get(container_name)
        if container is None:
            return None
        return parse_docker_timestamp((container.attrs.get('State') or {}).get('StartedAt'))

    def list_containers_matching(self, pattern: str) -> List[str]:
        """Names of all containers, running or not, fully matching a regex."""
        regex = re.compile(pattern)
        return [c.name for c in self.client.containers.list(all=True) if regex.fullmatch(c.name)]

    # ==================== DIAGNOSTICS ====================

    def container_logs(self, container_name: str, tail: int = 100) -> str:
        container = self._get(container_name)
        if container is None:
            return ""
        try:
            return container.logs(tail=tail).decode(errors="replace")
        except docker.errors.APIError as e:
            self.logger.warning(f"Error reading logs for {container_name}: {e}")
            return ""

    def health_details(self, container_name: str) -> str:
        """One-line summary of the container's health check state."""
        container = self._get(container_name)
        if container is None:
            return f"Container {container_name} not found"
        health = (container.attrs.get('State') or {}).get('Health') or {}
        return f"Health: {health.get('Status', 'none')}, Failing Streak: {health.get('FailingStreak', 0)}"
