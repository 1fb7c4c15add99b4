"""
Configuration for the orderflow services.

Uses Pydantic for validation and environment variable loading.
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ServiceSettings(BaseModel):
    """
    Settings shared by the orderflow functions and the HTTP surface.

    Attributes:
        service_name: Name reported by the health probe and stamped on spans.
        db_path: SQLite database holding the orders table.
        latency_scale: Multiplier applied to every simulated delay (0 disables waiting).
        default_page_size: List page size when no limit is given.
        max_page_size: Upper bound for the list page size.
        invoke_mode: "local" calls functions in-process through a serializing
            envelope; "http" calls them through the internal HTTP routes.
        downstream_url: Base URL of the internal routes when invoke_mode is "http".
        invoke_timeout_ms: Transport timeout for synchronous invocations.
        seed: Seed for the fault simulator's random source (None = unseeded).
        log_level: Root logging level.
    """
    model_config = ConfigDict(frozen=True)

    service_name: str = Field(
        default="orderflow",
        min_length=1,
        description="Service name",
    )
    db_path: str = Field(
        default="orders.db",
        description="SQLite database path (':memory:' for a throwaway store)",
    )
    latency_scale: float = Field(
        default=1.0,
        ge=0.0,
        le=10.0,
        description="Simulated latency multiplier",
    )
    default_page_size: int = Field(
        default=20,
        ge=1,
        description="Default list page size",
    )
    max_page_size: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum list page size",
    )
    invoke_mode: Literal["local", "http"] = Field(
        default="local",
        description="How downstream functions are invoked",
    )
    downstream_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for HTTP invocations",
    )
    invoke_timeout_ms: int = Field(
        default=10000,
        ge=100,
        le=120000,
        description="Synchronous invocation timeout in milliseconds",
    )
    seed: Optional[int] = Field(
        default=None,
        description="Fault simulator seed",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "ServiceSettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) exceeds "
                f"max_page_size ({self.max_page_size})"
            )
        return self

    @classmethod
    def from_env(cls) -> "ServiceSettings":
        """
        Load settings from environment variables.

        Environment variables:
            ORDERFLOW_SERVICE_NAME: Service name
            ORDERFLOW_DB_PATH: SQLite database path
            ORDERFLOW_LATENCY_SCALE: Simulated latency multiplier
            ORDERFLOW_DEFAULT_PAGE_SIZE: Default list page size
            ORDERFLOW_MAX_PAGE_SIZE: Maximum list page size
            ORDERFLOW_INVOKE_MODE: local | http
            ORDERFLOW_DOWNSTREAM_URL: Base URL for HTTP invocations
            ORDERFLOW_INVOKE_TIMEOUT_MS: Invocation timeout
            ORDERFLOW_SEED: Fault simulator seed
            ORDERFLOW_LOG_LEVEL: Logging level

        Returns:
            ServiceSettings instance with values from environment
        """
        seed = os.getenv("ORDERFLOW_SEED")
        return cls(
            service_name=os.getenv("ORDERFLOW_SERVICE_NAME", "orderflow"),
            db_path=os.getenv("ORDERFLOW_DB_PATH", "orders.db"),
            latency_scale=float(os.getenv("ORDERFLOW_LATENCY_SCALE", "1.0")),
            default_page_size=int(os.getenv("ORDERFLOW_DEFAULT_PAGE_SIZE", "20")),
            max_page_size=int(os.getenv("ORDERFLOW_MAX_PAGE_SIZE", "50")),
            invoke_mode=os.getenv("ORDERFLOW_INVOKE_MODE", "local").lower(),
            downstream_url=os.getenv("ORDERFLOW_DOWNSTREAM_URL", "http://localhost:8000"),
            invoke_timeout_ms=int(os.getenv("ORDERFLOW_INVOKE_TIMEOUT_MS", "10000")),
            seed=int(seed) if seed else None,
            log_level=os.getenv("ORDERFLOW_LOG_LEVEL", "INFO").upper(),
        )
