import os
from dotenv import load_dotenv

load_dotenv()


def _csv(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]


GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")

# Comma-separated list of origins allowed by CORS.
ALLOWED_ORIGINS = _csv("ALLOWED_ORIGINS", "http://localhost:5173")

# Course-library allowlists, e.g. ADMIN_EMAILS="a@x.dz,b@x.dz"
ADMIN_EMAILS = _csv("ADMIN_EMAILS")
SUPERVISOR_EMAILS = _csv("SUPERVISOR_EMAILS")

# Service-account JSON path or inline JSON. Leave SESSION_BACKEND=memory to run
# without Firestore (sessions then live only as long as the process).
FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "")
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "")
SESSION_BACKEND = os.getenv("SESSION_BACKEND", "firestore" if FIREBASE_CREDENTIALS else "memory")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Per-process cap on cached (user, feature) session stores
SESSION_CACHE_SIZE = int(os.getenv("SESSION_CACHE_SIZE", "1000"))
