from typing import Any, Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from wsgateway.exceptions import ConfigError


class GatewaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True, env_file=".env", extra="ignore"
    )

    # Listener settings
    PORT: int = Field(ge=1, le=65535)
    HOST: str = "0.0.0.0"

    # Upgrade endpoint settings
    WS_PATH: str = "/ws"
    WS_SUBPROTOCOLS: list[str] = []
    WS_ALLOWED_ORIGINS: list[str] = []
    MAX_CONNECTIONS: int = Field(default=0, ge=0)

    # Timeouts (seconds)
    WS_ACCEPT_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    WS_SEND_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    WS_CLOSE_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    SHUTDOWN_GRACE_SECONDS: float = Field(default=5.0, ge=0)

    # Liveness
    IDLE_TIMEOUT_SECONDS: float = Field(default=0.0, ge=0)
    IDLE_SWEEP_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["human", "json"] = "human"
    LOG_FILE_PATH: str | None = None
    LOG_EXCLUDED_PATHS: list[str] = ["/metrics", "/health"]
    ENVIRONMENT: str = "development"


def load_settings(**overrides: Any) -> GatewaySettings:
    """
    Build gateway settings from the environment.

    Keyword overrides take precedence over environment variables and the
    `.env` file.

    Raises:
        ConfigError: If a required value is missing or a value is invalid,
            e.g. `PORT` absent or not a number.
    """
    try:
        return GatewaySettings(**overrides)
    except ValidationError as ex:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in ex.errors()
        )
        raise ConfigError(f"Invalid gateway configuration: {problems}") from ex
    except SettingsError as ex:
        raise ConfigError(f"Invalid gateway configuration: {ex}") from ex
