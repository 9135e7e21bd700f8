"""Engine settings configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Engine settings.

    Values come from (highest priority first) constructor arguments,
    environment variables, the ``.env`` file, then the defaults below.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_name: str = "taskweave"

    # DAG resource guard (advisory unless dag_enforce_limits is set)
    dag_max_nodes: int = Field(default=10000, gt=0)
    dag_max_edges: int = Field(default=50000, gt=0)
    dag_enforce_limits: bool = False

    # Validation warning thresholds
    dag_max_in_degree_warning: int = 10
    dag_max_out_degree_warning: int = 10
    dag_max_chain_length_warning: int = 20

    # Ready task queries
    dag_max_ready_tasks_limit: int = Field(default=100, gt=0)

    dag_emit_events: bool = True

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Path to log file (None disables file logging)
    log_file_level: str = "DEBUG"
    log_show_path: bool = True
    log_show_time: bool = True
    log_rich_tracebacks: bool = True
    log_file_rotation: str = "10 MB"
    log_file_retention: str = "7 days"
    log_file_compression: str = "zip"

    # Telemetry configuration
    telemetry_enabled: bool = False
    telemetry_exporter: str = "console"  # console, otlp
    telemetry_otlp_endpoint: str = "http://localhost:4317"
    telemetry_service_name: str = "taskweave-dag"

