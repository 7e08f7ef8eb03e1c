# reconciler/config.py
# Explicit configuration passed to the ledger store and registry reader

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from reconciler.errors import ConfigError

logger = logging.getLogger(__name__)

BlockTag = Union[str, int]

_NAMED_BLOCK_TAGS = ("latest", "pending", "earliest", "safe", "finalized")


def normalize_block_tag(block: BlockTag) -> str:
    """Turn "latest"/"pending"/... or a block number into a JSON-RPC block parameter."""
    if isinstance(block, bool):
        raise ConfigError(f"Invalid block tag: {block!r}", details={"block": block})
    if isinstance(block, int):
        if block < 0:
            raise ConfigError(f"Block number must be non-negative: {block}", details={"block": block})
        return hex(block)
    tag = str(block).strip().lower()
    if tag in _NAMED_BLOCK_TAGS:
        return tag
    if tag.startswith("0x"):
        try:
            int(tag, 16)
        except ValueError:
            raise ConfigError(f"Invalid block tag: {block!r}", details={"block": block}) from None
        return tag
    if tag.isdigit():
        return hex(int(tag))
    raise ConfigError(f"Invalid block tag: {block!r}", details={"block": block})


@dataclass(frozen=True)
class LedgerConfig:
    rpc_url: str = "https://rpc.testnet.lukso.network/"
    block_tag: str = "latest"
    request_timeout: float = 30.0
    poll_interval: float = 2.0
    convergence_timeout: float = 120.0
    max_batch_size: int = 64
    max_controllers: int = 1024

    def __post_init__(self):
        if not self.rpc_url:
            raise ConfigError("rpc_url is required")
        if self.request_timeout <= 0:
            raise ConfigError("request_timeout must be positive", details={"request_timeout": self.request_timeout})
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive", details={"poll_interval": self.poll_interval})
        if self.max_batch_size < 1:
            raise ConfigError("max_batch_size must be at least 1", details={"max_batch_size": self.max_batch_size})
        if self.max_controllers < 1:
            raise ConfigError("max_controllers must be at least 1", details={"max_controllers": self.max_controllers})
        normalize_block_tag(self.block_tag)


@dataclass(frozen=True)
class LogConfig:
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    file_enabled: bool = False
    file_path: Path = field(default_factory=lambda: Path.home() / ".reconciler" / "reconciler.log")
    max_file_size_mb: int = 10
    backup_count: int = 5


@dataclass(frozen=True)
class ReconcilerConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    log: LogConfig = field(default_factory=LogConfig)
    debug: bool = False

    @classmethod
    def from_env(cls) -> "ReconcilerConfig":
        try:
            ledger = LedgerConfig(
                rpc_url=os.getenv("RECONCILER_RPC_URL", "https://rpc.testnet.lukso.network/"),
                block_tag=os.getenv("RECONCILER_BLOCK_TAG", "latest"),
                request_timeout=float(os.getenv("RECONCILER_REQUEST_TIMEOUT", "30")),
                poll_interval=float(os.getenv("RECONCILER_POLL_INTERVAL", "2")),
                convergence_timeout=float(os.getenv("RECONCILER_CONVERGENCE_TIMEOUT", "120")),
                max_batch_size=int(os.getenv("RECONCILER_MAX_BATCH_SIZE", "64")),
                max_controllers=int(os.getenv("RECONCILER_MAX_CONTROLLERS", "1024")),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e

        log_path = os.getenv("RECONCILER_LOG_FILE")
        log = LogConfig(
            level=os.getenv("RECONCILER_LOG_LEVEL", "INFO"),
            file_enabled=bool(log_path),
            file_path=Path(log_path) if log_path else LogConfig().file_path,
        )

        return cls(
            ledger=ledger,
            log=log,
            debug=os.getenv("RECONCILER_DEBUG", "false").lower() == "true",
        )


def setup_logging(config: Optional[ReconcilerConfig] = None) -> None:
    cfg = config or ReconcilerConfig()

    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if cfg.log.file_enabled:
        from logging.handlers import RotatingFileHandler
        cfg.log.file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            cfg.log.file_path,
            maxBytes=cfg.log.max_file_size_mb * 1024 * 1024,
            backupCount=cfg.log.backup_count,
        )
        handlers.append(file_handler)

    level = "DEBUG" if cfg.debug else cfg.log.level.upper()
    if not isinstance(getattr(logging, level, None), int):
        raise ConfigError(f"Unknown log level: {cfg.log.level}", details={"level": cfg.log.level})

    logging.basicConfig(
        level=getattr(logging, level),
        format=cfg.log.format,
        handlers=handlers,
        force=True,
    )
