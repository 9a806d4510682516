"""Vercel entry point: exposes the Paramed Study API as the `app` ASGI variable."""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from main import app  # noqa: E402,F401
