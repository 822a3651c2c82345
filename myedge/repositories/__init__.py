"""Database repositories."""

from .user_records import UserRecordRepository, user_records

__all__ = ["UserRecordRepository", "user_records"]
