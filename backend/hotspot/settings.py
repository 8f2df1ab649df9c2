from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Runtime
    environment: str = Field(default="development", validation_alias="APP_ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # AWS / data
    aws_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    # Optional: point boto3 at DynamoDB Local (e.g. http://localhost:8000).
    ddb_endpoint_url: str | None = Field(default=None, validation_alias="DDB_ENDPOINT_URL")
    table_prefix: str = Field(
        default="staging-lambda-express-app-", validation_alias="TABLE_PREFIX"
    )

    # Botocore transport policy. The data layer itself never retries.
    ddb_max_attempts: int = Field(default=10, validation_alias="DDB_MAX_ATTEMPTS")
    ddb_connect_timeout_s: float = Field(default=2, validation_alias="DDB_CONNECT_TIMEOUT_S")
    ddb_read_timeout_s: float = Field(default=10, validation_alias="DDB_READ_TIMEOUT_S")

    # Session logs are partitioned by Year with Timestamp as the index sort key.
    session_logs_time_index: str = Field(
        default="Timestamp-Index", validation_alias="SESSION_LOGS_TIME_INDEX"
    )
    between_default_window_days: int = Field(
        default=7, validation_alias="BETWEEN_DEFAULT_WINDOW_DAYS"
    )

    # ---- helpers / derived flags ----
    @property
    def normalized_environment(self) -> str:
        v = (self.environment or "").strip().lower()
        if v in ("prod", "production"):
            return "production"
        if v in ("stage", "staging"):
            return "staging"
        if v in ("dev", "development"):
            return "development"
        return v or "development"

    def table_name(self, suffix: str) -> str:
        return f"{self.table_prefix}{suffix}"

    def to_log_safe_dict(self) -> dict[str, object]:
        """
        A representation safe for structured logs / diagnostics.
        """
        return {
            "environment": self.normalized_environment,
            "log_level": self.log_level,
            "aws": {
                "aws_region": self.aws_region,
                "ddb_endpoint_url": self.ddb_endpoint_url,
                "table_prefix": self.table_prefix,
            },
            "ddb_client": {
                "max_attempts": self.ddb_max_attempts,
                "connect_timeout_s": self.ddb_connect_timeout_s,
                "read_timeout_s": self.ddb_read_timeout_s,
            },
            "session_logs": {
                "time_index": self.session_logs_time_index,
                "between_default_window_days": self.between_default_window_days,
            },
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# Module-level singleton.
settings = get_settings()
