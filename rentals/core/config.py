import os
from dotenv import load_dotenv
from pydantic import BaseModel

# Load variables from .env
load_dotenv()


class Settings(BaseModel):
    database_url: str = "sqlite+aiosqlite:///./rentals.db"

    # Remote marketplace API
    api_base_url: str = ""
    api_token: str = ""
    api_timeout_seconds: float = 10.0

    # Reservation (cart) persistence
    reservation_store_path: str = "./reservations.json"

    # Booking state machine
    confirm_grace_seconds: float = 5.0
    min_cancellation_reason_length: int = 10

    # Calendar
    business_timezone: str = "UTC"
    default_withdrawal_reason: str = "owner_removed"

    # Logging settings
    log_format: str = "console"  # Options: "console", "json"
    log_slow_request_threshold_ms: int = 500  # Log timing only if duration > threshold


settings = Settings(
    database_url=os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./rentals.db"),
    api_base_url=os.environ.get("RENTALS_API_BASE_URL", ""),
    api_token=os.environ.get("RENTALS_API_TOKEN", ""),
    api_timeout_seconds=float(os.environ.get("RENTALS_API_TIMEOUT_SECONDS", "10")),
    reservation_store_path=os.environ.get(
        "RESERVATION_STORE_PATH", "./reservations.json"
    ),
    confirm_grace_seconds=float(os.environ.get("CONFIRM_GRACE_SECONDS", "5")),
    min_cancellation_reason_length=int(
        os.environ.get("MIN_CANCELLATION_REASON_LENGTH", "10")
    ),
    business_timezone=os.environ.get("BUSINESS_TIMEZONE", "UTC"),
    default_withdrawal_reason=os.environ.get(
        "DEFAULT_WITHDRAWAL_REASON", "owner_removed"
    ),
    log_format=os.environ.get("LOG_FORMAT", "console"),
    log_slow_request_threshold_ms=int(
        os.environ.get("LOG_SLOW_REQUEST_THRESHOLD_MS", "500")
    ),
)
