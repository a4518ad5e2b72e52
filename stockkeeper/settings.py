import os
from datetime import timedelta
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Backend transport
    api_url: str = Field(default="http://localhost:3001", alias="STOCKKEEPER_API_URL")
    request_timeout: float = Field(default=15.0, alias="STOCKKEEPER_REQUEST_TIMEOUT")
    transport: Literal["http", "memory"] = Field(
        default="http", alias="STOCKKEEPER_TRANSPORT"
    )

    # Cache
    cache_default_ttl_seconds: float = Field(default=300.0, alias="CACHE_DEFAULT_TTL")
    cache_low_stock_ttl_seconds: float = Field(
        default=30.0, alias="CACHE_LOW_STOCK_TTL"
    )
    cache_max_size: int = Field(default=500, alias="CACHE_MAX_SIZE")
    cache_sweep_interval_seconds: float = Field(
        default=60.0, alias="CACHE_SWEEP_INTERVAL"
    )

    # Optimistic updates
    optimistic_grace_seconds: float = Field(
        default=2.0, alias="OPTIMISTIC_GRACE_SECONDS"
    )

    debug: bool = Field(default=False, alias="STOCKKEEPER_DEBUG")

    model_config = {"populate_by_name": True}

    @property
    def cache_default_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_default_ttl_seconds)

    @property
    def cache_low_stock_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_low_stock_ttl_seconds)

    @property
    def cache_sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.cache_sweep_interval_seconds)

    @property
    def optimistic_grace(self) -> timedelta:
        return timedelta(seconds=self.optimistic_grace_seconds)


global_settings = Settings.model_validate(dict(os.environ))
