"""Local image operations."""
from typing import List

import docker

from .utils import format_image_size


class ImageManager:
    """Manages Docker image operations on the local daemon."""

    def __init__(self, client, console, logger):
        """Initialize image manager."""
        self.client = client
        self.console = console
        self.logger = logger

    def image_exists(self, image_ref: str) -> bool:
        try:
            self.client.images.get(image_ref)
            return True
        except docker.errors.ImageNotFound:
            return False
        except docker.errors.APIError as e:
            self.logger.warning(f"Failed to look up image {image_ref}: {e}")
            return False

    def tag_image(self, source: str, repository: str, tag: str) -> bool:
        """Tag ``source`` as ``repository:tag``."""
        try:
            image = self.client.images.get(source)
            tagged = image.tag(repository, tag=tag)
        except docker.errors.DockerException as e:
            self.logger.error(f"Failed to tag {source} as {repository}:{tag}: {e}")
            return False

        if tagged is False:
            self.logger.error(f"Docker refused to tag {source} as {repository}:{tag}")
            return False
        self.logger.info(f"Tagged {source} as {repository}:{tag}")
        return True

    def prune_dangling_images(self) -> int:
        """Remove dangling images. Best-effort: returns bytes reclaimed, 0 on failure."""
        self.console.print("[cyan]🧹 Cleaning up dangling images...[/cyan]")
        try:
            result = self.client.images.prune(filters={'dangling': True}) or {}
        except docker.errors.APIError as e:
            self.logger.warning(f"Dangling image prune failed: {e}")
            self.console.print("[yellow]⚠️ Dangling image prune failed[/yellow]")
            return 0

        removed = len(result.get('ImagesDeleted') or [])
        reclaimed = result.get('SpaceReclaimed') or 0
        self.console.print(
            f"[green]✅ Removed {removed} dangling images, reclaimed {format_image_size(reclaimed)}[/green]"
        )
        return reclaimed

    def list_local_tags(self, repository: str) -> List[str]:
        """Local ``repository:tag`` references of a repository."""
        try:
            images = self.client.images.list(name=repository)
        except docker.errors.APIError as e:
            self.logger.warning(f"Failed to list local images for {repository}: {e}")
            return []
        return sorted(tag for img in images for tag in img.tags if tag.startswith(f"{repository}:"))
