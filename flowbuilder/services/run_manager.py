"""
Run Manager - tracks active runs so they can be cancelled from other requests.
"""

import logging
import threading
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class RunManager:
    """Thread-safe registry of RunHandles keyed by execution id."""

    def __init__(self):
        self._lock = threading.Lock()
        self._handles: Dict[str, object] = {}

    def register(self, handle):
        with self._lock:
            self._handles[handle.execution_id] = handle

    def remove(self, execution_id: str):
        with self._lock:
            self._handles.pop(execution_id, None)

    def get(self, execution_id: str) -> Optional[object]:
        with self._lock:
            return self._handles.get(execution_id)

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._handles)

    def cancel(self, execution_id: str) -> bool:
        """
        Cancel an active run.

        Returns:
            True when the run was active and cancellation was requested
        """
        handle = self.get(execution_id)
        if handle is None or handle.done():
            return False
        logger.info(f"Cancelling execution {execution_id}")
        handle.cancel()
        return True
