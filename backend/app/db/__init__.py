"""Database models for the journal insights service."""

from .models import (
    Base,
    Entry,
    Insight,
    SettingEntry,
    User,
)

__all__ = [
    "Base",
    "Entry",
    "Insight",
    "SettingEntry",
    "User",
]
