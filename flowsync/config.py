"""Configuration for the flowsync engine and server."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Immutable settings loaded from environment variables."""

    history_max_size: int = 50
    default_node_width: float = 150.0
    default_node_height: float = 50.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> Settings:
        # .env never overrides variables that are already exported
        load_dotenv(env_file)
        return cls(
            history_max_size=int(os.getenv("FLOWSYNC_HISTORY_MAX_SIZE", "50")),
            default_node_width=float(os.getenv("FLOWSYNC_DEFAULT_NODE_WIDTH", "150")),
            default_node_height=float(os.getenv("FLOWSYNC_DEFAULT_NODE_HEIGHT", "50")),
            log_level=os.getenv("FLOWSYNC_LOG_LEVEL", "INFO").upper(),
            host=os.getenv("FLOWSYNC_HOST", "0.0.0.0"),
            port=int(os.getenv("FLOWSYNC_PORT", "3001")),
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
