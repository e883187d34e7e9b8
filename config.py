"""
Application configuration, read once from the environment at import time.
"""

import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./buynow.db")

# Security/JWT
JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALG = "HS256"
JWT_ISSUER = os.getenv("JWT_ISSUER", "BuyNow.API")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "BuyNow.Client")
ACCESS_TOKEN_EXPIRY_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRY_MINUTES", "15"))
REFRESH_TOKEN_EXPIRY_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRY_DAYS", "7"))

# Used when the tax_rate config key is missing or unreadable
DEFAULT_TAX_RATE = os.getenv("DEFAULT_TAX_RATE", "0.08")

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv(
        "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
    ).split(",")
    if o.strip()
]

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@buynow.com")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
SEED_ON_STARTUP = os.getenv("SEED_ON_STARTUP", "1") == "1"

DEBUG = bool(os.getenv("DEBUG"))
PORT = int(os.getenv("PORT", "8000"))
