"""Blue/green deployment state machine for a single host."""
import re
import time
from typing import Iterable, List

import docker
import requests

from .errors import (CleanupFailed, DeploymentError, HealthCheckTimeout, PullFailed,
                     PushFailed, RegistryApiError, RollbackFailed, StartFailed)
from .models import (LATEST_TAG, PREVIOUS_TAG, ContainerRole, ContainerSpec, DeploymentConfig,
                     DeploymentOutcome, DeploymentStage, HealthCheckSpec, HousekeepingReport,
                     RegistryTag)
from .utils import format_duration

PRODUCTION_PORTS = {"80/tcp": 80, "443/tcp": 443}
STAGING_PORTS = {"80/tcp": 8080, "443/tcp": 8443}


def build_container_spec(config: DeploymentConfig, role: ContainerRole, image: str) -> ContainerSpec:
    """Build the launch spec for a role.

    Ports and the read-only certificate mounts are only added when SSL is
    configured; without SSL the container is reachable on the internal network only.
    """
    ports = {}
    volumes = {}
    if config.ssl_enabled:
        ports = dict(PRODUCTION_PORTS if role == ContainerRole.PRODUCTION else STAGING_PORTS)
        volumes = {
            path: {'bind': path, 'mode': 'ro'}
            for path in (config.ssl.cert_path, config.ssl.key_path)
        }

    return ContainerSpec(
        name=config.container_for(role),
        image=image,
        health_check=HealthCheckSpec(command=config.health_check_cmd),
        network=config.network,
        ports=ports,
        environment=dict(config.environment),
        volumes=volumes,
    )


def select_stale_tags(tags: Iterable[RegistryTag]) -> List[RegistryTag]:
    """Tags the housekeeping pass deletes: everything except latest and previous."""
    return [tag for tag in tags if tag.name and not tag.protected]


class DeploymentOrchestrator:
    """Takes the host from the running version to the latest image.

    Sequence: connectivity check, login, pull, stale staging cleanup, snapshot of
    the running image as ``previous``, staging start and health gate, switch,
    production health gate (rollback on failure), housekeeping.
    """

    def __init__(self, config: DeploymentConfig, container_manager, image_manager,
                 registry_client, health_monitor, console, logger, clock=time.time):
        self.config = config
        self.containers = container_manager
        self.images = image_manager
        self.registry = registry_client
        self.health = health_monitor
        self.console = console
        self.logger = logger
        self.clock = clock
        self.stage = DeploymentStage.INIT
        self.history = [DeploymentStage.INIT]

    @property
    def production_name(self) -> str:
        return self.config.container_for(ContainerRole.PRODUCTION)

    @property
    def staging_name(self) -> str:
        return self.config.container_for(ContainerRole.STAGING)

    def _advance(self, stage: DeploymentStage):
        self.stage = stage
        self.history.append(stage)
        self.logger.info(f"Deployment stage: {stage.value}")

    def _step(self, stage: DeploymentStage, action, *args):
        """Run one transition; a fatal error is tagged with the stage it blocked."""
        try:
            result = action(*args)
        except DeploymentError as e:
            if e.stage is None:
                e.stage = stage
            raise
        self._advance(stage)
        return result

    # ==================== ENTRY POINT ====================

    def run(self) -> DeploymentOutcome:
        """Run one deployment and report its outcome. Never raises for fatal stages."""
        self.console.print(
            f"\n[bold cyan]🚀 DEPLOYMENT STARTED: {self.config.image_ref(LATEST_TAG)}[/bold cyan]"
        )
        try:
            return self._deploy()
        except DeploymentError as e:
            return self._fail(e)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            return self._fail(DeploymentError(f"Unexpected error during {self.stage.value}: {e}",
                                              stage=self.stage))

    def _deploy(self) -> DeploymentOutcome:
        latest_ref = self.config.image_ref(LATEST_TAG)

        self._step(DeploymentStage.CONNECTIVITY_CHECKED, self.registry.ensure_connectivity)
        self._step(DeploymentStage.AUTHENTICATED, self.registry.login)
        self._step(DeploymentStage.LATEST_PULLED, self._pull_latest, latest_ref)
        self._step(DeploymentStage.TEMP_CLEANED, self.cleanup_temp_containers)
        self._step(DeploymentStage.PREVIOUS_SAVED, self.save_previous)
        self._step(DeploymentStage.STAGING_STARTED, self._launch, ContainerRole.STAGING, latest_ref)
        self._step(DeploymentStage.STAGING_HEALTHY, self._gate_staging)

        stop_issued_at = self._step(DeploymentStage.SWITCHING, self._switch)

        rolled_back = not self._promote(latest_ref)
        if rolled_back:
            self.rollback()

        downtime = self.measure_downtime(stop_issued_at)
        self.console.print(f"[cyan]⏱️ Total downtime: {format_duration(downtime)}[/cyan]")
        self.logger.info(f"Total downtime: {downtime:.1f}s")

        report = self._step(DeploymentStage.HOUSEKEEPING, self.housekeeping)
        self._advance(DeploymentStage.COMPLETE)

        reason = "Rolled back to previous version" if rolled_back else ""
        if rolled_back:
            self.console.print("[bold yellow]⚠️ Deployment rolled back: previous version is serving[/bold yellow]")
        else:
            self.console.print("[bold green]🎉 Deployment complete![/bold green]")
        return DeploymentOutcome(
            success=True,
            stage=DeploymentStage.COMPLETE,
            reason=reason,
            downtime_seconds=downtime,
            rolled_back=rolled_back,
            housekeeping=report,
        )

    def _fail(self, error: DeploymentError) -> DeploymentOutcome:
        stage = error.stage or self.stage
        self.logger.error(f"Deployment failed at {stage.value}: {error.reason}")
        self.console.print(f"[bold red]❌ {error.reason}[/bold red]")
        output = getattr(error, 'output', '')
        if output:
            self.console.print(output, markup=False, highlight=False)
        if error.guidance:
            self.console.print(f"[yellow]ℹ️ {error.guidance}[/yellow]")
        return DeploymentOutcome(success=False, stage=stage, reason=error.reason, guidance=error.guidance)

    # ==================== STAGES ====================

    def _pull_latest(self, latest_ref: str):
        try:
            self.registry.pull_with_retry(latest_ref)
        except PullFailed as e:
            e.reason = f"Failed to pull image {latest_ref}"
            e.guidance = (
                "Please ensure: 1. the image exists in the registry; 2. the registry and "
                "container names are correct; 3. the access token has the necessary permissions; "
                "4. this is not the first deployment (push an image first in that case)."
            )
            raise

    def cleanup_temp_containers(self) -> int:
        """Stop and remove every staging-named container.

        Returns the number of containers cleaned up.

        Raises:
            CleanupFailed: a staging container survived removal.
        """
        self.console.print("[cyan]🧹 Cleaning up any existing temporary containers...[/cyan]")
        pattern = re.escape(self.staging_name)
        names = self.containers.list_containers_matching(pattern)
        if not names:
            self.console.print("[dim]✨ No temporary containers found to clean up[/dim]")
            return 0

        for name in names:
            self.console.print(f"[yellow]🗑️ Found container {name}, cleaning up...[/yellow]")
            if not self.containers.stop_container(name):
                self.console.print(f"[yellow]⚠️ Failed to stop container {name}[/yellow]")
            if not self.containers.remove_container(name):
                self.console.print(f"[yellow]⚠️ Failed to remove container {name}[/yellow]")

        survivors = self.containers.list_containers_matching(pattern)
        if survivors:
            raise CleanupFailed(f"Failed to clean up all temporary containers: {', '.join(survivors)}")
        return len(names)

    def save_previous(self) -> bool:
        """Tag the running production image as ``previous`` and push it.

        Returns False when there is nothing to save (first deployment).

        Raises:
            PushFailed: the image could not be tagged or pushed.
        """
        self.console.print("[cyan]🔖 Checking for existing container to save as :previous...[/cyan]")
        if not self.containers.is_running(self.production_name):
            self.console.print("[dim]ℹ️ No running container to save. This is normal for first deployment.[/dim]")
            return False

        current_image = self.containers.inspect_image(self.production_name)
        if not current_image:
            self.logger.warning(f"Could not determine image of {self.production_name}, skipping save")
            self.console.print("[yellow]⚠️ Could not determine image from running container. Skipping save.[/yellow]")
            return False

        guidance = "Without a confirmed :previous tag a rollback would have nothing to fall back to."
        self.console.print(f"[cyan]🔁 Tagging {current_image} as :{PREVIOUS_TAG}[/cyan]")
        if not self.images.tag_image(current_image, self.config.repository, PREVIOUS_TAG):
            raise PushFailed(f"Failed to tag image {current_image} as :{PREVIOUS_TAG}", guidance=guidance)

        try:
            self.registry.push_with_retry(self.config.image_ref(PREVIOUS_TAG))
        except PushFailed as e:
            e.reason = f"Failed to push :{PREVIOUS_TAG} tag to the registry"
            e.guidance = guidance
            raise
        return True

    def _launch(self, role: ContainerRole, image: str):
        try:
            self.containers.ensure_network(self.config.network)
        except docker.errors.DockerException as e:
            raise StartFailed(f"Failed to create network {self.config.network}", output=str(e)) from e
        spec = build_container_spec(self.config, role, image)
        return self.containers.start_container(spec)

    def _wait_healthy(self, name: str) -> bool:
        return self.health.wait_until_healthy(
            name,
            max_attempts=self.config.health_check_attempts,
            interval=self.config.health_check_interval,
        )

    def report_unhealthy(self, name: str):
        """Print logs and health details of a container that failed its gate."""
        self.console.print(f"[yellow]📜 Container logs for {name}:[/yellow]")
        self.console.print(self.containers.container_logs(name), markup=False, highlight=False)
        self.console.print(f"[yellow]🔍 {self.containers.health_details(name)}[/yellow]")

    def _gate_staging(self):
        if self._wait_healthy(self.staging_name):
            return
        self.report_unhealthy(self.staging_name)
        self.console.print("[yellow]❌ Cleaning up failed container...[/yellow]")
        try:
            self.cleanup_temp_containers()
        except CleanupFailed as e:
            self.logger.warning(str(e))
            self.console.print(f"[yellow]⚠️ {e}[/yellow]")
        raise HealthCheckTimeout(
            f"Container {self.staging_name} did not become healthy",
            guidance="The production container was left running untouched; no rollback was needed.",
        )

    def _switch(self) -> float:
        """Retire the old production and staging containers; returns when the stop was issued."""
        self.console.print("[cyan]🔄 Stopping old container and switching to the new version...[/cyan]")
        stop_issued_at = self.clock()
        self.containers.stop_and_remove_container(self.production_name)
        self.containers.stop_and_remove_container(self.staging_name)
        return stop_issued_at

    def _promote(self, latest_ref: str) -> bool:
        """Start and health-gate the new production container."""
        try:
            self._step(DeploymentStage.PRODUCTION_STARTED, self._launch, ContainerRole.PRODUCTION, latest_ref)
        except StartFailed as e:
            self.logger.error(f"Production container failed to start: {e.reason} {e.output}")
            self.console.print("[bold red]❌ Failed to start production container. Rolling back...[/bold red]")
            return False

        if not self._wait_healthy(self.production_name):
            self.report_unhealthy(self.production_name)
            self.console.print("[bold red]❌ Production container is unhealthy. Rolling back...[/bold red]")
            return False

        self._advance(DeploymentStage.PRODUCTION_HEALTHY)
        return True

    def rollback(self):
        """Bring the ``previous`` image back under the production identity.

        Raises:
            RollbackFailed: no previous image is available or it is unhealthy too.
        """
        self._advance(DeploymentStage.ROLLBACK)
        self.console.print("[bold yellow]🔄 Attempting rollback...[/bold yellow]")

        self.containers.stop_and_remove_container(self.staging_name)
        self.containers.stop_and_remove_container(self.production_name)

        previous_ref = self.config.image_ref(PREVIOUS_TAG)
        if not self.images.image_exists(previous_ref):
            self.console.print("[cyan]📥 Attempting to pull previous image from registry...[/cyan]")
            try:
                self.registry.pull_with_retry(previous_ref)
            except PullFailed as e:
                raise RollbackFailed(
                    "No previous container image available for rollback",
                    guidance="This is normal for a first deployment or if the previous image was not saved. "
                             "Please check your application configuration and try deploying again.",
                    stage=DeploymentStage.ROLLBACK,
                ) from e

        self.console.print("[cyan]⏪ Starting previous container...[/cyan]")
        try:
            self._launch(ContainerRole.PRODUCTION, previous_ref)
        except StartFailed as e:
            raise RollbackFailed(
                f"Rollback failed - could not start previous image: {e.reason}",
                guidance="Manual intervention is required: no production container is running.",
                stage=DeploymentStage.ROLLBACK,
            ) from e

        if not self._wait_healthy(self.production_name):
            self.report_unhealthy(self.production_name)
            raise RollbackFailed(
                "Rollback failed - previous container is not healthy",
                guidance="Manual intervention is required: inspect the container logs above.",
                stage=DeploymentStage.ROLLBACK,
            )

        self.console.print("[green]✅ Rollback successful[/green]")

    def measure_downtime(self, stop_issued_at: float) -> float:
        """Seconds between the old container's stop and the new container's start."""
        started = self.containers.started_at(self.production_name)
        end = started.timestamp() if started else self.clock()
        return max(0.0, end - stop_issued_at)

    # ==================== HOUSEKEEPING ====================

    def housekeeping(self) -> HousekeepingReport:
        """Remove temp containers, stale registry tags and dangling images. Never fatal."""
        report = HousekeepingReport()

        try:
            self.cleanup_temp_containers()
        except CleanupFailed as e:
            self.logger.warning(str(e))
            self.console.print(f"[yellow]⚠️ {e}[/yellow]")

        self.console.print("[cyan]🧹 Cleaning up all images except 'latest' and 'previous'...[/cyan]")
        try:
            tags = list(self.registry.list_tags())
        except RegistryApiError as e:
            self.logger.warning(f"Failed to fetch registry images: {e}")
            self.console.print("[yellow]⚠️ Failed to fetch registry images, skipping tag cleanup[/yellow]")
            report.listing_failed = True
            tags = []

        stale = select_stale_tags(tags)
        self.console.print(f"[dim]📝 Found {len(tags)} tags, {len(stale)} to clean up[/dim]")
        for tag in stale:
            self.console.print(f"[dim]🗑️ Removing registry image: {tag.name}[/dim]")
            if self.registry.delete_tag(tag.name):
                report.deleted_tags += 1
            else:
                report.failed_tags += 1

        report.space_reclaimed = self.images.prune_dangling_images()

        local_tags = self.images.list_local_tags(self.config.repository)
        self.console.print(f"[dim]📊 Local images for {self.config.repository}: {', '.join(local_tags) or 'none'}[/dim]")
        return report
