import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DATABASE_URL = os.getenv("DATABASE_URL")

APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")
SUCCESS_URL = f"{APP_URL}/success?session_id={{CHECKOUT_SESSION_ID}}"
CANCEL_URL = f"{APP_URL}/cancel"

ALLOWED_COUNTRIES = [
    c.strip().upper()
    for c in os.getenv("CHECKOUT_ALLOWED_COUNTRIES", "US,CA,HK").split(",")
    if c.strip()
]

RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "10"))
RATE_LIMIT_WINDOW_MS = int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000"))
RATE_LIMIT_SWEEP_SECONDS = float(os.getenv("RATE_LIMIT_SWEEP_SECONDS", "300"))


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


# Read at call time: tests and operators flip these without a restart.
def promo_codes_enabled() -> bool:
    return _flag("ENABLE_PROMO_CODES")


def webhook_secret():
    return os.getenv("STRIPE_WEBHOOK_SECRET") or None


def jwt_secret():
    return os.getenv("JWT_SECRET")
