"""
Snapshot model for persisting the chat store across restarts.

Each row holds one serialized ChatStore as JSON text.
"""

from sqlalchemy import Column, Integer, Text, DateTime
from datetime import datetime

from app.database import Base


class StoreSnapshot(Base):
    """
    Stored chat store snapshot.

    Attributes:
        id: Primary key (increasing, newest snapshot has the highest id)
        version: Snapshot layout version
        payload: JSON produced by ChatStore.serialize()
        user_count: Number of users in the snapshot
        message_count: Number of messages in the snapshot
        created_at: When the snapshot was taken
    """
    __tablename__ = "store_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    version = Column(Integer, nullable=False)
    payload = Column(Text, nullable=False)
    user_count = Column(Integer, nullable=False, default=0)
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<StoreSnapshot(id={self.id}, users={self.user_count}, messages={self.message_count})>"
