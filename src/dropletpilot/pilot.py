#!/usr/bin/env python3
# -*- coding: utf-8 -*-


import argparse
import logging
import shutil
import signal
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

import docker
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .configs import get_template_path
from .config import load_config
from .container_manager import ContainerManager
from .errors import ConfigError, RegistryApiError
from .image_manager import ImageManager
from .models import DeploymentConfig, DeploymentOutcome, LogLevel
from .monitoring import HealthMonitor
from .orchestrator import DeploymentOrchestrator, select_stale_tags
from .registry import RegistryClient
from .registry_api import RegistryApi
from .utils import format_duration, format_image_size


class DropletPilot:
    """Single-host blue/green deployment tool for registry-hosted images."""

    def __init__(self, config_file: str = None, log_level: LogLevel = LogLevel.INFO):
        self.console = Console()
        self.config_file = config_file
        self.log_file = "dropletpilot.log"
        self._client = None
        self._config = None

        self._setup_logging(log_level)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _setup_logging(self, level: LogLevel):
        """Setup logging with rotation"""
        log_format = '%(asctime)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

        file_handler = RotatingFileHandler(
            self.log_file, maxBytes=10*1024*1024, backupCount=5
        )
        file_handler.setFormatter(logging.Formatter(log_format))

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

        self.logger = logging.getLogger('DropletPilot')
        self.logger.setLevel(getattr(logging, level.value))
        self.logger.handlers.clear()
        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

    def _signal_handler(self, signum, frame):
        """Shutdown handler. Containers and tags are left as they are."""
        self.logger.warning(f"Received signal {signum}, aborting deployment")
        self.console.print("\n[yellow]⚠️ Interrupted: containers and tags are left in their current state[/yellow]")
        sys.exit(130)

    @property
    def config(self) -> DeploymentConfig:
        if self._config is None:
            try:
                self._config = load_config(self.config_file)
            except ConfigError as e:
                self.logger.error(f"Configuration error: {e}")
                self.console.print(f"[bold red]❌ {e}[/bold red]")
                sys.exit(1)
        return self._config

    @property
    def client(self):
        if self._client is None:
            self._client = self._init_docker_client()
        return self._client

    def _init_docker_client(self, max_retries: int = 3):
        """Initialize Docker client with retry logic"""
        for attempt in range(max_retries):
            try:
                client = docker.from_env()
                client.ping()
                self.logger.info("Docker client connected successfully")
                return client
            except docker.errors.DockerException as e:
                self.logger.warning(f"Docker connection attempt {attempt + 1} failed: {e}")
                if attempt == max_retries - 1:
                    self.logger.error("Failed to connect to Docker daemon")
                    self.console.print("[bold red]❌ Cannot connect to Docker daemon![/bold red]")
                    sys.exit(1)
                time.sleep(2)

    # ==================== WIRING ====================

    def build_registry_client(self) -> RegistryClient:
        config = self.config
        api = RegistryApi(
            base_url=config.api_url,
            registry=config.registry,
            token=config.access_token,
            registry_host=config.registry_host,
        )
        return RegistryClient(self.client, api, config, self.console, self.logger)

    def build_orchestrator(self) -> DeploymentOrchestrator:
        container_manager = ContainerManager(self.client, self.console, self.logger)
        return DeploymentOrchestrator(
            config=self.config,
            container_manager=container_manager,
            image_manager=ImageManager(self.client, self.console, self.logger),
            registry_client=self.build_registry_client(),
            health_monitor=HealthMonitor(container_manager, self.console, self.logger),
            console=self.console,
            logger=self.logger,
        )

    # ==================== COMMANDS ====================

    def deploy(self) -> DeploymentOutcome:
        """Run the full deployment and print its outcome."""
        outcome = self.build_orchestrator().run()
        self.show_outcome(outcome)
        return outcome

    def cleanup(self) -> bool:
        """Run only the housekeeping pass."""
        report = self.build_orchestrator().housekeeping()
        self.console.print(Panel(
            f"Deleted tags: {report.deleted_tags}\n"
            f"Failed deletions: {report.failed_tags}\n"
            f"Space reclaimed: {format_image_size(report.space_reclaimed)}",
            title="🧹 Housekeeping", style="bright_blue",
        ))
        return not report.listing_failed

    def list_tags(self) -> bool:
        """Print every registry tag of the repository."""
        registry = self.build_registry_client()
        try:
            tags = list(registry.list_tags())
        except RegistryApiError as e:
            self.logger.error(str(e))
            self.console.print(f"[bold red]❌ {e}[/bold red]")
            return False

        stale = set(select_stale_tags(tags))
        table = Table(title=f"📦 {self.config.repository}", show_header=True, header_style="bold blue")
        table.add_column("Nr", style="bold blue", width=4)
        table.add_column("Tag", style="green")
        table.add_column("Housekeeping", style="yellow")
        for idx, tag in enumerate(tags, start=1):
            table.add_row(str(idx), tag.name, "delete" if tag in stale else "keep")
        self.console.print(table)
        return True

    def validate(self) -> bool:
        """Check configuration, SSL material, Docker and registry reachability."""
        config = self.config
        self.console.print(f"[green]✓ Configuration loaded for {config.repository}[/green]")
        if config.ssl_enabled:
            self.console.print(f"[green]✓ SSL material valid for {config.ssl.domain}[/green]")
        else:
            self.console.print("[yellow]ℹ️ SSL not configured - ports will not be exposed[/yellow]")

        version = self.client.version()
        self.console.print(f"[green]✓ Docker {version.get('Version', 'unknown')}[/green]")

        reachable = self.build_registry_client().check_connectivity()
        if reachable:
            self.console.print("\n[bold green]✅ All checks passed![/bold green]")
        return reachable

    def create_config_template(self, output: str = "deployment.yml") -> bool:
        """Write the configuration template to ``output``."""
        template_path = get_template_path("deployment.yml.template")
        if Path(output).exists():
            self.console.print(f"[red]{output} already exists, not overwriting[/red]")
            return False
        try:
            shutil.copyfile(template_path, output)
        except OSError as e:
            self.logger.error(f"Failed to create config template: {e}")
            return False
        self.console.print(f"[green]✅ Deployment configuration template created: {output}[/green]")
        return True

    def show_outcome(self, outcome: DeploymentOutcome):
        if outcome.success:
            lines = [f"Downtime: {format_duration(outcome.downtime_seconds)}"]
            if outcome.rolled_back:
                lines.insert(0, "[yellow]Rolled back to :previous[/yellow]")
            if outcome.housekeeping:
                lines.append(f"Registry tags deleted: {outcome.housekeeping.deleted_tags}")
            title, style = "✅ Deployment succeeded", "green"
        else:
            lines = [f"Stage: {outcome.stage.value}", f"Reason: {outcome.reason}"]
            if outcome.guidance:
                lines.append(outcome.guidance)
            title, style = "❌ Deployment failed", "red"
        self.console.print(Panel("\n".join(lines), title=title, border_style=style))

    # ==================== CLI INTERFACE ====================

    def create_cli_parser(self) -> argparse.ArgumentParser:
        """Create CLI parser"""
        parser = argparse.ArgumentParser(
            prog="dropletpilot",
            description="Droplet Pilot - blue/green container deployment for a single host",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        parser.add_argument('--version', action='version', version=f'DropletPilot {__version__}')
        parser.add_argument('--config', '-c', type=str, help='Configuration file path')
        parser.add_argument('--log-level', '-l', choices=[level.value for level in LogLevel],
                            default='INFO', help='Logging level')

        subparsers = parser.add_subparsers(dest='command', help='Available commands')
        subparsers.add_parser('deploy', help='Deploy the latest image (default)')
        subparsers.add_parser('cleanup', help='Prune stale registry tags and dangling images')
        subparsers.add_parser('tags', help='List registry tags')
        subparsers.add_parser('validate', help='Validate configuration and connectivity')
        init_parser = subparsers.add_parser('init', help='Create a configuration template')
        init_parser.add_argument('--output', '-o', default='deployment.yml', help='Output file')

        return parser

    def run_cli(self, argv=None):
        """Run CLI interface"""
        parser = self.create_cli_parser()
        args = parser.parse_args(argv)
        command = args.command or 'deploy'

        try:
            if command == 'deploy':
                success = self.deploy().success
            elif command == 'cleanup':
                success = self.cleanup()
            elif command == 'tags':
                success = self.list_tags()
            elif command == 'validate':
                success = self.validate()
            elif command == 'init':
                success = self.create_config_template(args.output)
            else:
                parser.print_help()
                success = False
        except (docker.errors.DockerException, RegistryApiError) as e:
            self.logger.error(f"CLI command failed: {e}")
            self.console.print(f"[red]❌ Command failed: {e}[/red]")
            success = False

        if not success:
            sys.exit(1)
