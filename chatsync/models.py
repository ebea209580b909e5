"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For the immutable message values handed to the engine, see schemas.py.
"""

from sqlalchemy import Column, Integer, String, Text

from chatsync.storage import Base


class Message(Base):
    """
    SQLAlchemy model for the append-only message log.

    Table: messages
    Primary Key: created_at, the server-assigned ordering key. AUTOINCREMENT
    keeps it strictly monotonic even after rows are removed out of band.
    """
    __tablename__ = "messages"
    __table_args__ = {"sqlite_autoincrement": True}

    created_at = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True, index=True)
    namespace = Column(String, nullable=False, index=True)
    text = Column(Text, nullable=False)
    sender_id = Column(String, nullable=False, index=True)
    sender_name = Column(String, nullable=True)
    receiver_id = Column(String, nullable=False, index=True)
    timestamp = Column(String, nullable=False)  # Server time ISO-8601
