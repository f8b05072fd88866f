"""
Health Connect: Gemini-backed health analysis and chat API
=============================================================

Forwards structured health and wellness data to Gemini, memoizes
single-shot analyses by request fingerprint, and runs persistent chat
sessions whose replies stream to the client while being recorded.

Quick start:
    pip install health-connect
    GOOGLE_API_KEY=... health-connect start --port 4000

License: MIT
"""

__version__ = "0.1.0"

from .cache import ResponseCache
from .fingerprint import fingerprint
from .gateway import GenerationGateway
from .sessions import SessionManager
from .stats import StatsTracker

__all__ = ["ResponseCache", "fingerprint", "GenerationGateway", "SessionManager", "StatsTracker"]
