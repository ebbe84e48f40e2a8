"""
Runtime configuration for the guide marketplace API.

Values come from the environment (a local .env file is loaded first).
"""
import logging
import os
import sys
from typing import List

from dotenv import load_dotenv

load_dotenv()

# -------------------- Database --------------------
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# -------------------- Auth --------------------
_DEV_SECRET = "dev-only-secret-change-me"
JWT_SECRET = os.getenv("JWT_SECRET", _DEV_SECRET)
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
GUIDE_TOKEN_TTL_HOURS = int(os.getenv("GUIDE_TOKEN_TTL_HOURS", "168"))
TOURIST_TOKEN_TTL_HOURS = int(os.getenv("TOURIST_TOKEN_TTL_HOURS", "24"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# -------------------- HTTP --------------------
CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Log to stdout; a no-op for handlers if the root logger is already configured."""
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)
    root = logging.getLogger()
    if JWT_SECRET == _DEV_SECRET:
        logging.getLogger(__name__).warning("JWT_SECRET not set, using development secret")
    return root
