"""Configuration for Task Planner."""

from datetime import tzinfo
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from task_planner.scheduling.dates import resolve_timezone


class Config(BaseSettings):
    """Application configuration (env prefix ``TASK_PLANNER_``)."""

    model_config = SettingsConfigDict(env_prefix="TASK_PLANNER_")

    data_dir: str = Field(default=str(Path.home() / ".task-planner"))
    timezone: str = Field(default="local")  # "local", "UTC", IANA name or "+02:00"
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
    reminder_check_interval: float = Field(default=60.0, gt=0)  # seconds
    due_soon_minutes: int = Field(default=15, gt=0)
    notifications_enabled: bool = Field(default=True)
    watch_data_dir: bool = Field(default=True)

    def get_tzinfo(self) -> tzinfo | None:
        """Resolved viewer timezone (None means host local time)."""
        return resolve_timezone(self.timezone)

    @property
    def marker_path(self) -> Path:
        """File recording the last missed-task check per owner."""
        return Path(self.data_dir) / ".missed-check.yaml"
