"""
Configuration for the Wallet Monitor

All settings in one place for easy tuning.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os


_PROJECT_ROOT = Path(__file__).parent.parent


@dataclass
class Config:
    """All configuration settings."""

    # -------------------------------------------------------------------------
    # Ledger (Solana JSON-RPC)
    # -------------------------------------------------------------------------
    default_rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: str = "confirmed"

    # 1 SOL = 1_000_000_000 lamports
    lamports_per_unit: int = 1_000_000_000
    native_unit: str = "SOL"

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------
    poll_interval_sec: float = 10.0

    # How many recent signatures to fetch per address per cycle.
    # More than this many transactions inside one poll interval are missed.
    recent_transaction_limit: int = 5

    # Minimum absolute balance change (native units) that is reported
    balance_epsilon: float = 0.0001

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------
    large_transaction_threshold: float = 10.0

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    # Public RPC endpoints rate limit aggressively - keep concurrency low
    max_concurrent_requests: int = 4

    # Delay between RPC requests (seconds)
    request_delay_sec: float = 0.1

    request_timeout_sec: float = 15.0

    # Rate limiting backoff (seconds)
    rate_limit_backoff_sec: float = 2.0
    max_retries: int = 3

    # -------------------------------------------------------------------------
    # Webhooks
    # -------------------------------------------------------------------------
    webhook_timeout_sec: float = 10.0

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------
    data_dir: Path = field(default_factory=lambda: _PROJECT_ROOT / "data")
    log_file: Path = field(default_factory=lambda: _PROJECT_ROOT / "logs" / "monitor.log")
    log_level: str = "INFO"

    @property
    def wallets_path(self) -> Path:
        return self.data_dir / "wallets.json"

    @property
    def webhooks_path(self) -> Path:
        return self.data_dir / "webhooks.json"

    # -------------------------------------------------------------------------
    # Environment
    # -------------------------------------------------------------------------
    @property
    def rpc_url(self) -> str:
        return os.environ.get("SOLANA_RPC_URL") or self.default_rpc_url

    @property
    def telegram_bot_token(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_BOT_TOKEN")

    @property
    def telegram_chat_id(self) -> Optional[str]:
        return os.environ.get("TELEGRAM_CHAT_ID")

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    def lamports_to_native(self, lamports: int) -> float:
        """Convert an integer lamport amount into native units."""
        return lamports / self.lamports_per_unit


# Global config instance
config = Config()
