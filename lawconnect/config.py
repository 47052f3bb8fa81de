import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./lawconnect.db")

# Supabase project (auth API + edge functions)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
# Base URL of the trusted intermediary that holds the Google client secret.
# Defaults to the Supabase edge functions of the same project.
OAUTH_FUNCTIONS_URL = os.getenv(
    "OAUTH_FUNCTIONS_URL", f"{SUPABASE_URL}/functions/v1" if SUPABASE_URL else None
)

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Fernet key for Google tokens at rest (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY when unset.
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Frontend base URL for redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CALENDAR_VIEW_PATH = os.getenv("CALENDAR_VIEW_PATH", "/calendario")

# Google Calendar OAuth Configuration
# Note: GOOGLE_REDIRECT_URI points at the callback page the browser returns to.
# OAuth flow: Google → /calendar/callback → intermediary exchanges the code
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")  # Only read by the intermediary routes
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{FRONTEND_URL}/calendar/callback")

# Browser storage (one Redis namespace per browser profile)
DEVICE_COOKIE_NAME = os.getenv("DEVICE_COOKIE_NAME", "lawconnect_device")
DEVICE_COOKIE_SECURE = os.getenv("DEVICE_COOKIE_SECURE", "false").lower() == "true"


class ConfigurationError(RuntimeError):
    """Raised at startup when required settings are missing"""


def require_startup_config() -> None:
    """Fail fast when the OAuth client id or the backend URL/key pair is absent"""
    missing = [
        name
        for name, value in (
            ("GOOGLE_CLIENT_ID", GOOGLE_CLIENT_ID),
            ("SUPABASE_URL", SUPABASE_URL),
            ("SUPABASE_ANON_KEY", SUPABASE_ANON_KEY),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing)}")
