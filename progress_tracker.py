import os
import json
import logging
import threading
from typing import Dict, Optional
from datetime import datetime

from models import ProgressRecord, Status

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Per-user completion ledger keyed by chapter or module id.

    Statuses only ever move to complete. With a ``storage_dir`` each user's
    record is also written to ``{user_id}_progress.json``; otherwise records
    live for the lifetime of the tracker.
    """

    def __init__(self, storage_dir: Optional[str] = None):
        self.storage_dir = storage_dir
        self._records: Dict[str, ProgressRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        if storage_dir:
            self._ensure_storage_dir()

    def _ensure_storage_dir(self):
        """Ensure the storage directory exists"""
        if not os.path.exists(self.storage_dir):
            os.makedirs(self.storage_dir)

    def _get_progress_file(self, user_id: str) -> str:
        return os.path.join(self.storage_dir, f"{user_id}_progress.json")

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def get_or_init(self, user_id: str) -> ProgressRecord:
        """Return the user's record, creating an empty one if needed"""
        with self._lock_for(user_id):
            record = self._records.get(user_id)
            if record is None:
                record = self._load_progress(user_id)
                self._records[user_id] = record
            return record

    def is_complete(self, user_id: str, entity_id: str) -> bool:
        record = self._records.get(user_id)
        return record is not None and record.is_complete(entity_id)

    def mark_complete(self, user_id: str, entity_id: str) -> bool:
        """Mark an entity complete. Returns False when it already was."""
        record = self.get_or_init(user_id)
        with self._lock_for(user_id):
            if record.is_complete(entity_id):
                return False
            record.statuses[entity_id] = Status.COMPLETE
            logger.info(f"Marked {entity_id} complete for user {user_id}")
            if self.storage_dir:
                self._save_progress(record)
            return True

    def _load_progress(self, user_id: str) -> ProgressRecord:
        if not self.storage_dir:
            return ProgressRecord(user_id=user_id)

        file_path = self._get_progress_file(user_id)
        if not os.path.exists(file_path):
            return ProgressRecord(user_id=user_id)

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                progress_data = json.load(f)
            saved = progress_data['statuses']
            # Only complete statuses are persisted
            statuses = {k: Status.COMPLETE for k, v in saved.items() if v == Status.COMPLETE.value}
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error loading progress for {user_id}, starting a new record: {str(e)}", exc_info=True)
            return ProgressRecord(user_id=user_id)

        logger.info(f"Progress loaded for user: {user_id}")
        return ProgressRecord(user_id=user_id, statuses=statuses)

    def _save_progress(self, record: ProgressRecord) -> None:
        try:
            progress_data = {
                'user_id': record.user_id,
                'statuses': {k: v.value for k, v in record.statuses.items()},
                'last_updated': datetime.now().isoformat(),
            }
            with open(self._get_progress_file(record.user_id), 'w', encoding='utf-8') as f:
                json.dump(progress_data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Error saving progress for {record.user_id}: {str(e)}")
            raise
