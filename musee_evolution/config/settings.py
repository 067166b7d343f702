"""Application-wide configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Redis
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
MUSEE_REDIS_PREFIX: str = os.getenv("MUSEE_REDIS_PREFIX", "musee")

# ── Storage ──────────────────────────────────────────────────────────────

# "file" keeps temporal documents inside the bundle directory,
# "redis" keeps them in Redis keyed by bundle name.
MUSEE_STORE_BACKEND: str = os.getenv("MUSEE_STORE_BACKEND", "file")

MUSEE_BUNDLE_ROOT: Path = Path(
    os.getenv("MUSEE_BUNDLE_ROOT", str(Path.home() / "Musee"))
)

# Bundle format written into every manifest
BUNDLE_FORMAT_VERSION: str = "1.0"
BUNDLE_APP_NAME: str = os.getenv("BUNDLE_APP_NAME", "musee-evolution")

# Seconds a file-backend writer waits for another writer's document lock
MUSEE_LOCK_TIMEOUT: float = float(os.getenv("MUSEE_LOCK_TIMEOUT", "10"))

# ── Scoring ──────────────────────────────────────────────────────────────

SCORING_WEIGHTS_PATH: Path = Path(
    os.getenv(
        "SCORING_WEIGHTS_PATH",
        str(Path(__file__).resolve().parent / "scoring_weights.yaml"),
    )
)

# ── Score history analysis ───────────────────────────────────────────────

CORRELATION_WINDOW_DAYS: int = int(os.getenv("CORRELATION_WINDOW_DAYS", "30"))
MOVING_AVERAGE_WINDOW: int = int(os.getenv("MOVING_AVERAGE_WINDOW", "3"))
PREDICTION_PERIOD_DAYS: int = int(os.getenv("PREDICTION_PERIOD_DAYS", "30"))
PREDICTION_HORIZON: int = int(os.getenv("PREDICTION_HORIZON", "3"))

# ── Logging ──────────────────────────────────────────────────────────────

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT: str = "%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s"
