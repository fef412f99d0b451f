from pathlib import Path
from typing import Any, List

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]

ONE_MIB = 1024 * 1024


class ConfigurationError(Exception):
    """Required configuration is missing or out of range."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Invalid configuration: " + "; ".join(problems))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    environment: str = Field(
        default="development",
        description="Deployment mode; anything other than 'production' exposes error details",
    )
    cors_origin: str = Field(default="*", description="Allowed CORS origin")

    # Ledger (Starknet)
    starknet_rpc_url: str = Field(default="", description="Starknet JSON-RPC endpoint")
    starknet_account_address: str = Field(default="", description="Account that signs swap commitments")
    signing_credential: SecretStr = Field(
        default=SecretStr(""),
        description="Credential presented to the swap service to authorize ledger signatures",
    )

    # Payment network / swap service
    bitcoin_network: str = Field(default="mainnet", description="Bitcoin network: mainnet or testnet")
    swap_service_url: str = Field(
        default="http://127.0.0.1:24000",
        description="Base URL of the swap execution service",
    )
    lightning_enabled: bool = Field(default=True, description="Enable the Lightning payment leg")
    max_pricing_difference_ppm: int = Field(
        default=20000,
        description="Maximum accepted deviation between quoted and market price (parts per million)",
    )
    get_request_timeout_ms: int = Field(default=10000, description="Timeout for GET calls to the swap service")
    post_request_timeout_ms: int = Field(default=10000, description="Timeout for POST calls to the swap service")

    # Swap lifecycle
    payment_timeout_seconds: int = Field(
        default=1800,
        ge=1,
        description="How long to wait for the counterparty leg before timing out",
    )
    check_balance_before_commit: bool = Field(
        default=True,
        description="Verify spendable balance before broadcasting the commit transaction",
    )

    # Admission
    rate_limit_window_seconds: int = Field(default=900, ge=1, description="Fixed rate limit window")
    rate_limit_max_requests: int = Field(default=100, ge=1, description="Requests allowed per window")
    rate_limit_max_buckets: int = Field(default=10000, ge=1, description="Maximum tracked clients")
    rate_limit_sweep_interval_seconds: int = Field(
        default=60,
        ge=1,
        description="Minimum spacing between sweeps of expired rate limit buckets",
    )
    max_request_bytes: int = Field(default=ONE_MIB, description="Maximum accepted request body size")

    @field_validator("bitcoin_network")
    @classmethod
    def _normalize_network(cls, value: Any) -> str:
        return str(value or "mainnet").strip().lower()

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: Any) -> str:
        return str(value or "development").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testnet(self) -> bool:
        return self.bitcoin_network == "testnet"

    @property
    def get_request_timeout_s(self) -> float:
        return self.get_request_timeout_ms / 1000

    @property
    def post_request_timeout_s(self) -> float:
        return self.post_request_timeout_ms / 1000

    def validate_for_startup(self) -> None:
        """Fail fast on missing or out-of-range values.

        Called once when the application starts, so a misconfigured deployment
        never reaches the point of accepting swap requests.
        """
        problems: List[str] = []

        if not self.starknet_rpc_url:
            problems.append("STARKNET_RPC_URL is required")
        if not self.starknet_account_address:
            problems.append("STARKNET_ACCOUNT_ADDRESS is required for swap operations")
        if not self.signing_credential.get_secret_value():
            problems.append("SIGNING_CREDENTIAL is required for swap operations")
        if not self.swap_service_url:
            problems.append("SWAP_SERVICE_URL is required")
        if self.bitcoin_network not in ("mainnet", "testnet"):
            problems.append("BITCOIN_NETWORK must be mainnet or testnet")
        if not 0 <= self.max_pricing_difference_ppm <= 1_000_000:
            problems.append("MAX_PRICING_DIFFERENCE_PPM must be between 0 and 1000000")
        if not 1000 <= self.get_request_timeout_ms <= 60000:
            problems.append("GET_REQUEST_TIMEOUT_MS must be between 1000 and 60000 milliseconds")
        if not 1000 <= self.post_request_timeout_ms <= 60000:
            problems.append("POST_REQUEST_TIMEOUT_MS must be between 1000 and 60000 milliseconds")

        if problems:
            raise ConfigurationError(problems)


# Global settings instance
settings = Settings()
