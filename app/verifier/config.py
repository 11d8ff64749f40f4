from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

BASE_DIR = Path(__file__).parent


def _load_dotenv() -> None:
    repo_root = Path(__file__).resolve().parents[2]
    candidates = [repo_root / ".env", Path.cwd() / ".env"]
    for env_path in candidates:
        if not env_path.exists():
            continue
        try:
            for line in env_path.read_text().splitlines():
                stripped = line.strip()
                if not stripped or stripped.startswith("#") or "=" not in stripped:
                    continue
                key, value = stripped.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value
        except OSError:
            continue
        break


_load_dotenv()


@dataclass(frozen=True)
class SessionConfig:
    ttl_minutes: int = int(os.getenv("VERIFICATION_EXPIRY_MINUTES", "15"))
    # Silence longer than this marks the handheld scanner as disconnected.
    liveness_seconds: int = int(os.getenv("SCANNER_LIVENESS_SECONDS", "10"))
    log_cap: int = int(os.getenv("SESSION_LOG_CAP", "50"))
    sweep_interval_seconds: int = int(os.getenv("SESSION_SWEEP_INTERVAL_SECONDS", "300"))
    sweeper_enabled: bool = os.getenv("ENABLE_SESSION_SWEEPER", "true").lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class AppConfig:
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    sessions: SessionConfig = field(default_factory=SessionConfig)


CONFIG = AppConfig()
