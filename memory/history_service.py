"""
Meal Calorie Analyzer — JSON History Store
==========================================
- Per-user list of past analyses
- Direct Dictionary-to-JSON persistence (data/history.json)
- Thread-safe: the API serves requests from a worker pool
"""

import copy
import json
import os
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

# =============================================================================
# CONFIGURATION
# =============================================================================
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DATA_DIR = os.path.join(BASE_DIR, "data")
DEFAULT_HISTORY_FILE = os.path.join(DATA_DIR, "history.json")


class HistoryItemNotFound(KeyError):
    """Raised when a history record id is unknown."""


def generate_record_id() -> str:
    """Unique, roughly time-ordered record id."""
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    return f"hist_{timestamp}_{uuid.uuid4().hex[:6]}"


# =============================================================================
# HISTORY STORE
# =============================================================================
class JsonHistoryStore:
    """Reads and writes history records to a JSON file."""

    def __init__(self, filepath: Optional[str] = None):
        self.filepath = filepath or os.getenv("HISTORY_FILE") or DEFAULT_HISTORY_FILE
        self._lock = threading.Lock()
        self._records: List[Dict[str, Any]] = self._load()
        print(f"📂 History storage: {self.filepath}")

    def _load(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.filepath):
            return []
        try:
            with open(self.filepath, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"⚠️ Could not read history file, starting empty: {e}")
            return []
        return data if isinstance(data, list) else []

    def _flush(self, records: List[Dict[str, Any]]):
        """Write `records` to disk. Caller holds the lock and commits to the cache afterwards."""
        directory = os.path.dirname(self.filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.filepath}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False, default=str)
        os.replace(tmp_path, self.filepath)

    def save(
        self,
        user_id: str,
        meal_context: str,
        result: Dict[str, Any],
        image_base64: Optional[str] = None,
    ) -> str:
        """Append one analysis for `user_id` and return its record id."""
        if not user_id:
            raise ValueError("user_id is required to save history")

        record = {
            "id": generate_record_id(),
            "userId": user_id,
            "timestamp": datetime.now().isoformat(),
            "mealContext": meal_context or "",
            "result": copy.deepcopy(result),
            "imageBase64": image_base64,
        }
        with self._lock:
            records = self._records + [record]
            self._flush(records)
            self._records = records

        print(f"💾 History saved for user: {user_id} ({record['id']})")
        return record["id"]

    def list(self, user_id: str) -> List[Dict[str, Any]]:
        """All records for `user_id`, newest first."""
        with self._lock:
            # appended in time order, so reversing gives newest first
            records = [r for r in reversed(self._records) if r.get("userId") == user_id]
            return copy.deepcopy(records)

    def get(self, record_id: str) -> Dict[str, Any]:
        with self._lock:
            for record in self._records:
                if record.get("id") == record_id:
                    return copy.deepcopy(record)
        raise HistoryItemNotFound(record_id)

    def delete(self, record_id: str) -> None:
        with self._lock:
            records = [r for r in self._records if r.get("id") != record_id]
            if len(records) == len(self._records):
                raise HistoryItemNotFound(record_id)
            self._flush(records)
            self._records = records

        print(f"🗑️ History item deleted: {record_id}")


__all__ = [
    "JsonHistoryStore",
    "HistoryItemNotFound",
    "generate_record_id",
    "DEFAULT_HISTORY_FILE",
]
