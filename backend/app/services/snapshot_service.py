"""
Snapshot service for saving and restoring the chat store.

The store is serialized at shutdown and restored at startup. Only the
newest few snapshots are kept.
"""

import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.core.chat_store import ChatStore
from app.models.snapshot import StoreSnapshot

logger = logging.getLogger(__name__)


def save_snapshot(db: Session, store: ChatStore, keep: Optional[int] = None) -> StoreSnapshot:
    """
    Serialize the store and persist it.

    Args:
        db: Database session
        store: Store to snapshot
        keep: Number of snapshots to retain (default from settings)

    Returns:
        The stored snapshot row
    """
    if keep is None:
        keep = get_settings().database.MAX_STORED_SNAPSHOTS

    data = store.serialize()
    snapshot = StoreSnapshot(
        version=data["version"],
        payload=json.dumps(data),
        user_count=len(data["users"]),
        message_count=len(data["messages"]),
    )
    db.add(snapshot)
    db.commit()
    db.refresh(snapshot)

    prune_snapshots(db, keep)
    logger.info(f"Saved snapshot {snapshot.id}: {snapshot.user_count} users, {snapshot.message_count} messages")
    return snapshot


def prune_snapshots(db: Session, keep: int) -> int:
    """
    Delete all but the newest `keep` snapshots.

    Returns:
        Number of snapshots deleted
    """
    stale = (
        db.query(StoreSnapshot)
        .order_by(StoreSnapshot.id.desc())
        .offset(max(keep, 1))
        .all()
    )
    for snapshot in stale:
        db.delete(snapshot)
    if stale:
        db.commit()
    return len(stale)


def load_latest_snapshot(db: Session) -> Optional[Dict[str, Any]]:
    """
    Get the newest stored snapshot payload.

    Returns:
        Decoded snapshot dict, or None if nothing is stored
    """
    snapshot = db.query(StoreSnapshot).order_by(StoreSnapshot.id.desc()).first()
    if snapshot is None:
        return None
    return json.loads(snapshot.payload)


def restore_latest_snapshot(db: Session, store: ChatStore) -> bool:
    """
    Load the newest snapshot into `store`.

    Returns:
        True if a snapshot was restored, False if none exists

    Raises:
        SnapshotError: If the stored snapshot is malformed
    """
    data = load_latest_snapshot(db)
    if data is None:
        logger.info("No snapshot stored, starting with an empty chat store")
        return False

    store.deserialize(data)
    return True
