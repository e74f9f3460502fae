"""
Storage module - Database and object storage operations.
"""

from src.services.storage.database import (
    Base,
    close_db,
    get_engine,
    get_session,
    init_db,
    reset_engine,
)
from src.services.storage.models_db import Insight, PatternProfile, SpeakingSession, Transcript
from src.services.storage.repository import PatternProfileRepository, SessionRepository

__all__ = [
    "Base",
    "Insight",
    "PatternProfile",
    "PatternProfileRepository",
    "SessionRepository",
    "SpeakingSession",
    "Transcript",
    "close_db",
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
]
