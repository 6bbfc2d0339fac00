"""Configuration primitives for the Nimbus client core."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional


TRAVERSAL_FAILURE_POLICIES = ("skip", "abort")


@dataclass
class ApiConfig:
    base_url: str = "http://localhost:8080/api/v1"
    timeout_seconds: float = 10.0


@dataclass
class StateConfig:
    state_dir: str = field(default_factory=lambda: str(Path.home() / ".nimbus"))
    nav_state_file: str = "nav_state.json"
    token_file: str = "session.json"

    @property
    def nav_state_path(self) -> str:
        return str(Path(self.state_dir).expanduser() / self.nav_state_file)

    @property
    def token_path(self) -> str:
        return str(Path(self.state_dir).expanduser() / self.token_file)


@dataclass
class MoveConfig:
    # "skip" treats a failed sub-listing as a leaf, "abort" refuses to open the session.
    traversal_failure: str = "skip"

    def __post_init__(self) -> None:
        if self.traversal_failure not in TRAVERSAL_FAILURE_POLICIES:
            raise ValueError(f"Unknown traversal failure policy: {self.traversal_failure!r}")


@dataclass
class UploadConfig:
    max_upload_bytes: int = 100 * 1024 * 1024
    download_chunk_bytes: int = 64 * 1024
    default_content_type: str = "application/octet-stream"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


@dataclass
class NimbusConfig:
    api: ApiConfig
    state: StateConfig
    move: MoveConfig
    upload: UploadConfig
    logging: LoggingConfig

    @staticmethod
    def default() -> "NimbusConfig":
        return NimbusConfig(
            api=ApiConfig(),
            state=StateConfig(),
            move=MoveConfig(),
            upload=UploadConfig(),
            logging=LoggingConfig(),
        )

    @staticmethod
    def from_env(environ: Optional[Dict[str, str]] = None) -> "NimbusConfig":
        env = os.environ if environ is None else environ
        cfg = NimbusConfig.default()
        if env.get("NIMBUS_API_URL"):
            cfg.api.base_url = env["NIMBUS_API_URL"]
        if env.get("NIMBUS_API_TIMEOUT"):
            cfg.api.timeout_seconds = float(env["NIMBUS_API_TIMEOUT"])
        if env.get("NIMBUS_STATE_DIR"):
            cfg.state.state_dir = env["NIMBUS_STATE_DIR"]
        if env.get("NIMBUS_LOG_LEVEL"):
            cfg.logging.level = env["NIMBUS_LOG_LEVEL"].upper()
        if env.get("NIMBUS_TRAVERSAL_FAILURE"):
            cfg.move = MoveConfig(traversal_failure=env["NIMBUS_TRAVERSAL_FAILURE"].lower())
        return cfg
