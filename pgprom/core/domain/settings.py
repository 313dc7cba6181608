from pydantic import BaseModel, Field


class SystemSettings(BaseModel):
    """
    Global system configuration settings.
    """
    # PostgreSQL connection
    postgres_host: str = Field(default="localhost", description="The PostgreSQL host")
    postgres_port: int = Field(default=5432, description="The PostgreSQL port")
    postgres_user: str = Field(default="postgres", description="The PostgreSQL user")
    postgres_password: str = Field(default="", description="The PostgreSQL password")
    postgres_database: str = Field(default="postgres", description="The PostgreSQL database")
    postgres_schema: str = Field(default="", description="The PostgreSQL schema")
    postgres_table: str = Field(default="samples", description="The PostgreSQL table")

    # pg_prometheus layout
    pg_prometheus_normalized_schema: bool = Field(
        default=False, description="Insert metric samples into normalized pg_prometheus schema"
    )
    pg_prometheus_normalized_table_name: str = Field(
        default="metrics", description="Name of the metrics table when using a normalized pg_prometheus schema"
    )
    pg_prometheus_keep_samples: bool = Field(
        default=True, description="Keep raw samples when using normalized pg_prometheus schema"
    )

    # Pool and timeouts
    connect_timeout: float = Field(default=10.0, description="Seconds to wait for a new connection")
    command_timeout: float = Field(default=60.0, description="Statement timeout in seconds")
    pool_min_size: int = Field(default=1, ge=0)
    pool_max_size: int = Field(default=10, ge=1)

    log_level: str = Field(default="INFO", description="Root log level")

    def get_dsn(self) -> str:
        """Connection string without the password, safe to log."""
        return f"postgresql://{self.postgres_user}@{self.postgres_host}:{self.postgres_port}/{self.postgres_database}"
