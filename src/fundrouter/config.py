"""Application configuration using pydantic-settings.

One chain, one deployer contract, one treasury.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/fundrouter.db",
        description="Database connection URL",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=3001, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")

    # ======================
    # Chain
    # ======================
    rpc_url: str = Field(
        default="https://rpc.sepolia.org", description="JSON-RPC endpoint of the chain"
    )
    rpc_timeout: float = Field(default=30.0, description="Timeout for a single RPC call")
    receipt_timeout: float = Field(
        default=300.0, description="Maximum seconds to wait for a transaction receipt"
    )
    receipt_poll_interval: float = Field(
        default=2.0, description="Seconds between receipt polls"
    )

    # ======================
    # Wallet / contracts
    # ======================
    private_key: Optional[str] = Field(
        default=None, description="Hex private key that deploys proxies and routes funds"
    )
    deployer_address: str = Field(
        default="0x" + "00" * 20, description="DeterministicProxyDeployer contract address"
    )
    treasury_address: str = Field(
        default="0x" + "00" * 20, description="Address that receives swept funds"
    )

    # ======================
    # Background jobs
    # ======================
    reconcile_interval: int = Field(
        default=60, description="Seconds between balance reconciliation passes"
    )
    route_interval: int = Field(
        default=0, description="Seconds between routing runs (0 = only on demand)"
    )
    sweep_lock_timeout: float = Field(
        default=30.0, description="Seconds to wait for a deposit's sweep lock"
    )

    # ======================
    # Safety Guards
    # ======================
    dry_run: bool = Field(default=True, description="Use the in-memory chain (no real transactions)")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_wallet(self) -> bool:
        """Check if a signing key is configured."""
        return bool(self.private_key)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "wallet_configured": self.has_wallet,
            "chain": {
                "rpc": self.rpc_url,
                "deployer": self.deployer_address,
                "treasury": self.treasury_address,
            },
            "jobs": {
                "reconcile_interval": self.reconcile_interval,
                "route_interval": self.route_interval,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
