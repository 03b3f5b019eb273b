"""
Configuration constants for the application.
"""
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from the project-root .env file if it exists
env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# All routers are mounted under this prefix (e.g. /api/auth, /api/progress)
API_PREFIX = os.getenv("API_PREFIX", "/api")

# Bearer sessions are valid for this many days after login/registration
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "30"))

# bcrypt cost factor for password hashes
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

# Number of journeys per namespace; completing this many grants the
# "all journeys" achievement for that namespace.
GENERAL_JOURNEY_TOTAL = int(os.getenv("GENERAL_JOURNEY_TOTAL", "7"))
GMAIL_JOURNEY_TOTAL = int(os.getenv("GMAIL_JOURNEY_TOTAL", "6"))

# Debug routes expose database diagnostics; never enable in production.
ENABLE_DEBUG_ROUTES = os.getenv("ENABLE_DEBUG_ROUTES", "0") == "1"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
