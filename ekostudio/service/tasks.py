from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

TASK_STATUSES = ("pending", "running", "completed", "error")


@dataclass
class TaskRecord:
    task_id: str
    query: str
    params: Dict[str, Any] = field(default_factory=dict)
    status: str = "pending"  # pending|running|completed|error
    created_at_unix: float = field(default_factory=time.time)


def validate_query(query: str | None, *, max_chars: int = 1000) -> Optional[str]:
    if not query or not query.strip():
        return "Query cannot be empty"
    if len(query) > max_chars:
        return f"Query is too long (max {max_chars} characters)"
    return None


class TaskStore:
    """Process-local task table. Lost on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tasks: Dict[str, TaskRecord] = {}

    def create(self, query: str, params: Optional[Dict[str, Any]] = None) -> TaskRecord:
        rec = TaskRecord(task_id=str(uuid.uuid4()), query=query, params=dict(params or {}))
        with self._lock:
            self._tasks[rec.task_id] = rec
        return rec

    def get(self, task_id: str) -> Optional[TaskRecord]:
        with self._lock:
            return self._tasks.get(task_id)

    def update_status(self, task_id: str, status: str) -> bool:
        if status not in TASK_STATUSES:
            raise ValueError(f"unknown task status: {status}")
        with self._lock:
            rec = self._tasks.get(task_id)
            if rec is None:
                return False
            rec.status = status
            return True

    def claim(self, task_id: str) -> Optional[TaskRecord]:
        """Atomically move a pending task to running. Returns None if it was not pending."""
        with self._lock:
            rec = self._tasks.get(task_id)
            if rec is None or rec.status != "pending":
                return None
            rec.status = "running"
            return rec

    def size(self) -> int:
        with self._lock:
            return len(self._tasks)
