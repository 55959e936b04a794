"""Registry operations: login, pull/push with retry, tag listing and cleanup."""
import time
from typing import Iterator, Optional

import docker
import requests

from .errors import (ConnectivityError, FatalAuthError, PullFailed, PushFailed,
                     RegistryApiError, RetryExhausted)
from .models import DeploymentConfig, RegistryTag
from .registry_api import DEFAULT_PER_PAGE, RegistryApi
from .retry import DEFAULT_ATTEMPTS, DEFAULT_INITIAL_DELAY, retry_with_backoff
from .utils import split_image_ref

# Safety net against a cursor that never goes away.
MAX_TAG_PAGES = 1000

RETRYABLE_ERRORS = (
    docker.errors.DockerException,
    requests.exceptions.RequestException,
    RegistryApiError,
)


class RegistryClient:
    """Manages registry operations for one repository."""

    def __init__(self, client, api: RegistryApi, config: DeploymentConfig, console, logger,
                 attempts: int = DEFAULT_ATTEMPTS, initial_delay: float = DEFAULT_INITIAL_DELAY,
                 sleep=time.sleep, max_pages: int = MAX_TAG_PAGES):
        """Initialize registry client."""
        self.client = client
        self.api = api
        self.config = config
        self.console = console
        self.logger = logger
        self.attempts = attempts
        self.initial_delay = initial_delay
        self.sleep = sleep
        self.max_pages = max_pages

    def _retry(self, operation, description: str):
        return retry_with_backoff(
            operation,
            description,
            self.logger,
            attempts=self.attempts,
            initial_delay=self.initial_delay,
            retry_on=RETRYABLE_ERRORS,
            sleep=self.sleep,
        )

    # ==================== PRE-FLIGHT ====================

    def check_connectivity(self) -> bool:
        """Check that the registry is reachable, with retries."""
        host = self.config.registry_host
        self.console.print(f"[cyan]🌐 Checking connectivity to {host}...[/cyan]")
        try:
            self._retry(self.api.ping_registry, f"Connectivity check for {host}")
        except RetryExhausted as e:
            self.console.print(f"[bold red]❌ Cannot reach registry {host}[/bold red]")
            self.logger.error(str(e))
            return False

        self.console.print(f"[green]✅ Registry {host} is reachable[/green]")
        return True

    def ensure_connectivity(self):
        """Like check_connectivity, but raises ConnectivityError on failure."""
        if not self.check_connectivity():
            raise ConnectivityError(
                f"Registry {self.config.registry_host} is unreachable",
                guidance="Check the host's network access and DNS resolution before retrying.",
            )

    def login(self):
        """Log the Docker daemon into the registry.

        Raises:
            FatalAuthError: the login was rejected or could not be performed.
        """
        host = self.config.registry_host
        token = self.config.access_token
        self.console.print(f"[cyan]🔑 Logging into {host}...[/cyan]")
        try:
            self.client.login(username=token, password=token, registry=host)
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            self.logger.error(f"Registry login failed: {e}")
            raise FatalAuthError(
                f"Failed to login to {host}: {e}",
                guidance="Verify DO_ACCESS_TOKEN is valid and has registry read/write scope.",
            ) from e

        self.logger.info(f"Logged into {host}")
        self.console.print(f"[green]✅ Logged into {host}[/green]")

    # ==================== IMAGE TRANSFER ====================

    def _pull(self, image_ref: str):
        repository, tag = split_image_ref(image_ref)
        return self.client.images.pull(repository, tag=tag)

    def _push(self, image_ref: str):
        repository, tag = split_image_ref(image_ref)
        for line in self.client.images.push(repository, tag=tag, stream=True, decode=True):
            if isinstance(line, dict) and line.get("error"):
                raise RegistryApiError(line["error"])
            if isinstance(line, dict) and line.get("status"):
                self.logger.debug(f"push {image_ref}: {line['status']}")

    def pull_with_retry(self, image_ref: str):
        """Pull an image, retrying with exponential backoff.

        Raises:
            PullFailed: every attempt failed.
        """
        self.console.print(f"[cyan]📥 Pulling image {image_ref}...[/cyan]")
        try:
            image = self._retry(lambda: self._pull(image_ref), f"Pull {image_ref}")
        except RetryExhausted as e:
            self.console.print(f"[bold red]❌ Failed to pull image after {e.attempts} attempts[/bold red]")
            raise PullFailed(str(e)) from e

        self.console.print(f"[green]✅ Successfully pulled image {image_ref}[/green]")
        return image

    def push_with_retry(self, image_ref: str):
        """Push an image, retrying with exponential backoff.

        Raises:
            PushFailed: every attempt failed.
        """
        self.console.print(f"[cyan]📤 Pushing image {image_ref}...[/cyan]")
        try:
            self._retry(lambda: self._push(image_ref), f"Push {image_ref}")
        except RetryExhausted as e:
            self.console.print(f"[bold red]❌ Failed to push image after {e.attempts} attempts[/bold red]")
            raise PushFailed(str(e)) from e

        self.console.print(f"[green]✅ Successfully pushed image {image_ref}[/green]")

    # ==================== TAG MANAGEMENT ====================

    def list_tags(self, repository: Optional[str] = None) -> Iterator[RegistryTag]:
        """Lazily list every tag of a repository, following pagination.

        Raises:
            RegistryApiError: a page could not be fetched.
        """
        repository = repository or self.config.container_name
        seen = set()
        page = 1

        while page <= self.max_pages:
            self.logger.debug(f"Fetching tag page {page} for {repository}")
            tag_page = self.api.list_tags_page(repository, page, per_page=DEFAULT_PER_PAGE)
            if tag_page.fallback_used:
                self.logger.warning(
                    f"Invalid JSON response from registry API (page {page}), used fallback parsing"
                )

            for name in tag_page.tags:
                if name not in seen:
                    seen.add(name)
                    yield RegistryTag(name)

            if not tag_page.has_next:
                return
            page += 1

        self.logger.warning(f"Stopped listing tags for {repository} after {self.max_pages} pages")

    def delete_tag(self, tag: str, repository: Optional[str] = None) -> bool:
        """Delete a tag from the registry. Best-effort: failures are logged, not raised."""
        repository = repository or self.config.container_name
        try:
            self.api.delete_tag(repository, tag)
        except RegistryApiError as e:
            self.logger.warning(f"Failed to delete image {tag}: {e}")
            self.console.print(f"[yellow]⚠️ Failed to delete image {tag}[/yellow]")
            return False

        self.logger.info(f"Deleted registry tag {repository}:{tag}")
        return True
