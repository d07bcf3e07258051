"""convtree configuration."""
import logging
import os
from pathlib import Path


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(token.strip() for token in value.split(",") if token.strip())
    return items or default


# Claude Code keeps one directory per project under ~/.claude/projects
PROJECTS_DIR = Path(os.getenv("CONVTREE_PROJECTS_DIR", str(Path.home() / ".claude" / "projects")))

# Delegation
DELEGATION_TOOL_NAMES = _env_list("CONVTREE_DELEGATION_TOOL_NAMES", ("Task",))
FETCH_CONCURRENCY = max(1, _env_int("CONVTREE_FETCH_CONCURRENCY", 5))

# Logging
LOG_LEVEL = os.getenv("CONVTREE_LOG_LEVEL", "WARNING").strip().upper() or "WARNING"

# Observability
OTEL_ENABLED = _env_bool("CONVTREE_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CONVTREE_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CONVTREE_OTEL_SERVICE_NAME", "convtree")
PROM_PORT = _env_int("CONVTREE_PROM_PORT", 0)


def configure_logging(level: str | None = None) -> None:
    """Apply the configured level to the ``convtree`` logger hierarchy."""
    resolved = (level or LOG_LEVEL).upper()
    logging.getLogger("convtree").setLevel(getattr(logging, resolved, logging.WARNING))
