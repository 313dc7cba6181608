import os
import yaml
from pgprom.core.domain.settings import SystemSettings

# Environment variable -> settings field
ENV_OVERRIDES = {
    "POSTGRES_HOST": "postgres_host",
    "POSTGRES_PORT": "postgres_port",
    "POSTGRES_USER": "postgres_user",
    "POSTGRES_PASSWORD": "postgres_password",
    "POSTGRES_DATABASE": "postgres_database",
    "POSTGRES_SCHEMA": "postgres_schema",
    "POSTGRES_TABLE": "postgres_table",
    "PG_PROMETHEUS_NORMALIZED_SCHEMA": "pg_prometheus_normalized_schema",
    "PG_PROMETHEUS_NORMALIZED_TABLE_NAME": "pg_prometheus_normalized_table_name",
    "PG_PROMETHEUS_KEEP_SAMPLES": "pg_prometheus_keep_samples",
    "POSTGRES_CONNECT_TIMEOUT": "connect_timeout",
    "POSTGRES_COMMAND_TIMEOUT": "command_timeout",
    "LOG_LEVEL": "log_level",
}


def load_settings(path: str | None = None) -> SystemSettings:
    """
    Load system settings from a YAML file.
    Environment variables take precedence over the file, the file over defaults.

    Args:
        path: Path to config.yaml. Defaults to PGPROM_CONFIG_FILE env var or "config.yaml".
    """
    if path is None:
        path = os.getenv("PGPROM_CONFIG_FILE", "config.yaml")

    config_data = {}

    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except Exception as e:
            raise RuntimeError(f"Failed to load configuration from {path}: {e}")

    for env_var, field_name in ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            config_data[field_name] = value

    return SystemSettings(**config_data)
