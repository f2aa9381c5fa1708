"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml


@dataclass
class ImportsConfig:
    """Which uploads are processed and how they are classified."""
    path_prefix: str = "imports/"
    content_types: list[str] = field(default_factory=lambda: ["text/csv", "application/zip"])
    archive_prefix: str = "MATTER"
    list_prefix: str = "URL_LIST"


@dataclass
class TasksConfig:
    """Downstream task queue settings."""
    content_fetch_url: str = ""
    content_save_url: str = ""
    email_user_url: str = ""
    queue: str = "omnivore-import-queue"
    project_id: str = ""
    location: str = ""
    use_cloud_tasks: bool = False
    timeout: float = 30.0
    max_concurrent_dispatches: int = 10


@dataclass
class StorageConfig:
    """Object storage settings."""
    api_base_url: str = "https://storage.googleapis.com"
    spool_max_bytes: int = 8 * 1024 * 1024
    local_root: Path = Path("uploads")


@dataclass
class EmailConfig:
    """Terminal notification settings."""
    token_ttl_seconds: int = 60 * 60 * 24
    product_name: str = "Omnivore"
    feedback_address: str = "feedback@omnivore.app"


@dataclass
class Settings:
    """Application settings."""

    # Secrets (from environment only)
    jwt_secret: Optional[str] = None
    gcp_access_token: Optional[str] = None

    # Config sections
    imports: ImportsConfig = field(default_factory=ImportsConfig)
    tasks: TasksConfig = field(default_factory=TasksConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    email: EmailConfig = field(default_factory=EmailConfig)

    @property
    def content_types(self) -> tuple[str, ...]:
        return tuple(t.lower() for t in self.imports.content_types)

    @property
    def max_concurrent_dispatches(self) -> int:
        return max(1, self.tasks.max_concurrent_dispatches)


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def email_url_from_endpoint(endpoint: str) -> str:
    """Build the internal email route from the service endpoint."""
    if not endpoint.endswith("/"):
        endpoint += "/"
    return endpoint + "api/user/email"


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    config = load_config(config_path)

    settings = Settings(
        jwt_secret=os.getenv("JWT_SECRET") or None,
        gcp_access_token=os.getenv("GCP_ACCESS_TOKEN") or None,
    )

    # Apply YAML config
    if "imports" in config:
        for key, value in config["imports"].items():
            setattr(settings.imports, key, value)

    if "tasks" in config:
        for key, value in config["tasks"].items():
            setattr(settings.tasks, key, value)

    if "storage" in config:
        for key, value in config["storage"].items():
            if key == "local_root":
                value = Path(value)
            setattr(settings.storage, key, value)

    if "email" in config:
        settings.email = EmailConfig(**config["email"])

    # Endpoints from environment win over the YAML file
    if os.getenv("CONTENT_FETCH_URL"):
        settings.tasks.content_fetch_url = os.environ["CONTENT_FETCH_URL"]
    if os.getenv("CONTENT_SAVE_URL"):
        settings.tasks.content_save_url = os.environ["CONTENT_SAVE_URL"]
    if os.getenv("INTERNAL_SVC_ENDPOINT"):
        settings.tasks.email_user_url = email_url_from_endpoint(os.environ["INTERNAL_SVC_ENDPOINT"])
    if os.getenv("GCP_PROJECT_ID"):
        settings.tasks.project_id = os.environ["GCP_PROJECT_ID"]
    if os.getenv("GCP_LOCATION"):
        settings.tasks.location = os.environ["GCP_LOCATION"]

    return settings
