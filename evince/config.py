"""Runtime configuration for the Evince gateway."""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read once at process start from the environment and `.env`."""

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 3033
    CORS_ORIGINS: List[str] = Field(default=["*"])
    GIT_COMMIT: str = "unknown"
    LOG_LEVEL: str = "INFO"

    # Upstream chain nodes
    CHAIN_HOST: str = "https://rpc.{chain_id}.quicksilver.zone:443"
    QUICK_HOST: str = "https://rpc.quicksilver.zone:443"
    RPC_TIMEOUT: float = 30.0

    # Auxiliary HTTP sources
    LCD_ENDPOINT: str = "https://lcd.quicksilver.zone"
    APR_URL: str = "https://chains.cosmos.directory"
    CHAINS: List[str] = Field(default=["cosmoshub", "stargaze", "osmosis", "regen", "juno"])
    HTTP_TIMEOUT: float = 30.0
    APR_FETCH_WORKERS: int = 4

    # Supply
    SUPPLY_DENOM: str = "uqck"
    VESTING_ACCOUNTS: List[str] = Field(default_factory=list)

    # Cache durations
    VALIDATOR_LIST_TTL: int = 3600  # seconds
    DELEGATIONS_TTL: int = 120  # seconds
    ZONES_TTL: int = 60  # seconds
    APR_CACHE_TIME: int = 10  # minutes
    SUPPLY_CACHE_TIME: int = 12  # hours

    # Cache backend
    CACHE_BACKEND: str = "memory"
    CACHE_MAX_COST: int = 10_000
    REDIS_URL: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
