"""
Process configuration for MaskBid.

Loaded once at startup from the environment (optionally seeded from a .env
file) and passed explicitly into the resolver, synchronizer and API. The
config object is frozen; nothing mutates it after load.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from maskbid.core.amounts import DEFAULT_DECIMALS
from maskbid.core.errors import MisconfiguredError


@dataclass(frozen=True)
class MaskBidConfig:
    """Service-wide configuration parameters"""

    # Resolution endpoint
    solver_auth_token: Optional[str] = None     # Pre-shared secret of the enclave caller
    rsa_private_key: Optional[str] = None       # PEM used to open sealed bids
    max_decrypt_attempts: int = 2               # Per-bid bound, never unbounded
    allow_unmapped_auction: bool = False        # Report against sentinel id 0 when unmapped

    # Relay sink
    webhook_token: Optional[str] = None         # Optional bearer for /events/*

    # Currency
    currency_decimals: int = DEFAULT_DECIMALS

    # Storage
    store_backend: str = "sqlite"               # sqlite | supabase
    db_path: Path = Path("data") / "maskbid.db"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    http_timeout: float = 10.0

    # Paths
    log_dir: Optional[Path] = None

    def require_solver_token(self) -> str:
        if not self.solver_auth_token:
            raise MisconfiguredError("SOLVER_AUTH_TOKEN is not configured")
        return self.solver_auth_token

    def require_private_key(self) -> str:
        if not self.rsa_private_key:
            raise MisconfiguredError("RSA_PRIVATE_KEY is not configured")
        return self.rsa_private_key


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def config_from_env(env: Mapping[str, str]) -> MaskBidConfig:
    """
    Build a config from an environment mapping.

    RSA_PRIVATE_KEY_FILE is read when RSA_PRIVATE_KEY is unset.
    """
    private_key = env.get("RSA_PRIVATE_KEY")
    key_file = env.get("RSA_PRIVATE_KEY_FILE")
    if not private_key and key_file:
        private_key = Path(key_file).expanduser().read_text()

    try:
        max_attempts = int(env.get("MASKBID_MAX_DECRYPT_ATTEMPTS", "2"))
        decimals = int(env.get("MASKBID_CURRENCY_DECIMALS", str(DEFAULT_DECIMALS)))
        timeout = float(env.get("MASKBID_HTTP_TIMEOUT", "10"))
    except ValueError as e:
        raise MisconfiguredError(f"Invalid numeric setting: {e}")

    if max_attempts < 1:
        raise MisconfiguredError("MASKBID_MAX_DECRYPT_ATTEMPTS must be >= 1")

    backend = env.get("MASKBID_STORE", "sqlite").strip().lower()
    if backend not in ("sqlite", "supabase"):
        raise MisconfiguredError(f"Unknown MASKBID_STORE backend: {backend}")

    log_dir = env.get("MASKBID_LOG_DIR")

    return MaskBidConfig(
        solver_auth_token=env.get("SOLVER_AUTH_TOKEN") or None,
        rsa_private_key=private_key or None,
        max_decrypt_attempts=max_attempts,
        allow_unmapped_auction=_flag(env.get("MASKBID_ALLOW_UNMAPPED_AUCTION")),
        webhook_token=env.get("CRE_WEBHOOK_TOKEN") or None,
        currency_decimals=decimals,
        store_backend=backend,
        db_path=Path(env.get("MASKBID_DB_PATH", str(Path("data") / "maskbid.db"))).expanduser(),
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_key=env.get("SUPABASE_SERVICE_ROLE_KEY") or None,
        http_timeout=timeout,
        log_dir=Path(log_dir) if log_dir else None,
    )


def load_config(env_file: Optional[str] = None) -> MaskBidConfig:
    """
    Load configuration from the process environment.

    Args:
        env_file: Optional .env file; values already set in the environment win

    Returns:
        MaskBidConfig instance
    """
    load_dotenv(dotenv_path=env_file, override=False)
    return config_from_env(os.environ)
