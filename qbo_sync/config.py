import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./qbo_sync.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Token encryption key (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY when unset
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Identity provider used to validate caller bearer tokens (Supabase-compatible /auth/v1/user)
IDENTITY_PROVIDER_URL = os.getenv("IDENTITY_PROVIDER_URL", "http://localhost:54321")
IDENTITY_PROVIDER_API_KEY = os.getenv("IDENTITY_PROVIDER_API_KEY", "")

# Comma-separated list, "*" allows any origin
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# QuickBooks OAuth Configuration
QUICKBOOKS_ENVIRONMENT = os.getenv("QUICKBOOKS_ENVIRONMENT", "sandbox")  # sandbox or production
QUICKBOOKS_CLIENT_ID = os.getenv("QUICKBOOKS_CLIENT_ID")
QUICKBOOKS_CLIENT_SECRET = os.getenv("QUICKBOOKS_CLIENT_SECRET")
QUICKBOOKS_TOKEN_URL = os.getenv(
    "QUICKBOOKS_TOKEN_URL", "https://oauth.platform.intuit.com/oauth2/v1/tokens/bearer"
)

# QuickBooks API URLs
if QUICKBOOKS_ENVIRONMENT == "production":
    QUICKBOOKS_API_BASE_URL = "https://quickbooks.api.intuit.com/v3"
else:
    QUICKBOOKS_API_BASE_URL = "https://sandbox-quickbooks.api.intuit.com/v3"
QUICKBOOKS_MINOR_VERSION = int(os.getenv("QUICKBOOKS_MINOR_VERSION", "65"))

# Remote call tuning
QBO_HTTP_TIMEOUT = float(os.getenv("QBO_HTTP_TIMEOUT", "30"))
QBO_MAX_RETRIES = int(os.getenv("QBO_MAX_RETRIES", "3"))
QBO_RETRY_BACKOFF_SECONDS = float(os.getenv("QBO_RETRY_BACKOFF_SECONDS", "0.5"))
QBO_SYNC_TIMEOUT_SECONDS = float(os.getenv("QBO_SYNC_TIMEOUT_SECONDS", "120"))
