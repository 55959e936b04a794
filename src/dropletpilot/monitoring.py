"""Health monitoring of deployed containers."""
import time

from .models import HealthState


class HealthMonitor:
    """Polls a container's health status through the container manager."""

    def __init__(self, container_manager, console, logger, sleep=time.sleep):
        """Initialize health monitor."""
        self.container_manager = container_manager
        self.console = console
        self.logger = logger
        self.sleep = sleep

    def wait_until_healthy(self, container_name: str, max_attempts: int = 10, interval: float = 5) -> bool:
        """Block until the container reports healthy or the attempts run out.

        Every poll is preceded by one ``interval`` sleep, so the first check
        happens only after the initial wait. Worst case is roughly
        ``max_attempts * interval`` seconds.

        Returns:
            True on the first healthy observation, False on timeout.
        """
        self.console.print(f"[cyan]🏥 Waiting for container {container_name} to become healthy...[/cyan]")

        for attempt in range(1, max_attempts + 1):
            self.sleep(interval)

            state = self.container_manager.inspect_health(container_name)
            self.logger.info(f"Health check status for {container_name} ({attempt}/{max_attempts}): {state.value}")

            if state == HealthState.HEALTHY:
                self.console.print(f"[green]✅ Container {container_name} is healthy[/green]")
                return True

            if attempt < max_attempts:
                self.console.print(f"[dim]⏳ Status {state.value}, waiting {interval:g}s before next check...[/dim]")

        self.console.print(
            f"[bold red]❌ Container {container_name} did not become healthy after {max_attempts} attempts[/bold red]"
        )
        self.logger.error(f"Container {container_name} did not become healthy after {max_attempts} attempts")
        return False
