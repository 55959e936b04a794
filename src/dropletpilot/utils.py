"""Utility functions for Droplet Pilot."""
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple


def format_image_size(size_bytes: int) -> str:
    """Format image size for display."""
    if not size_bytes:
        return "0 B"

    size = float(size_bytes)
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} TB"


def format_duration(seconds: Optional[float]) -> str:
    """Format a duration in seconds for display."""
    if seconds is None:
        return "unknown"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


def format_ports(ports: Dict[str, int]) -> str:
    """Format a container port mapping for display."""
    if not ports:
        return "none"
    return ", ".join(f"{host_port}→{container_port}" for container_port, host_port in ports.items())


def split_image_ref(image_ref: str) -> Tuple[str, str]:
    """Split ``repo:tag`` into repository and tag, tolerating registry ports."""
    name, sep, tag = image_ref.rpartition(":")
    if not sep or "/" in tag:
        return image_ref, "latest"
    return name, tag


def parse_env_var_names(value: Optional[str]) -> List[str]:
    """Parse a comma-separated list of variable names."""
    if not value:
        return []
    return [name.strip() for name in value.split(',') if name.strip()]


def parse_docker_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Docker RFC 3339 timestamp such as ``State.StartedAt``.

    Docker reports nanoseconds, which ``fromisoformat`` does not accept, so the
    fraction is normalised to six digits first. The zero time Docker uses for
    containers that never started is returned as None.
    """
    if not value or value.startswith("0001-01-01"):
        return None
    try:
        text = value.replace('Z', '+00:00')
        text = re.sub(r'\.(\d+)', lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text)
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
