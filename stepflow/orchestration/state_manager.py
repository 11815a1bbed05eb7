"""Execution record retention."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime, timedelta
from threading import Lock
from typing import Dict, List, Optional

from .workflow_engine.steps import ExecutionRecord, WorkflowStatus

logger = logging.getLogger(__name__)


class ExecutionStore(ABC):
    """Abstract base class for execution record storage."""

    @abstractmethod
    def save(self, record: ExecutionRecord) -> None:
        """Store or replace an execution record.

        Args:
            record: Record to store
        """
        pass

    @abstractmethod
    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        """Load an execution record.

        Args:
            execution_id: Execution identifier

        Returns:
            Stored record or None
        """
        pass

    @abstractmethod
    def delete(self, execution_id: str) -> bool:
        pass

    @abstractmethod
    def list_statuses(self) -> Dict[str, WorkflowStatus]:
        """List stored executions.

        Returns:
            Dictionary of execution ID to status
        """
        pass

    @abstractmethod
    def cleanup(self) -> int:
        """Evict records according to the retention policy.

        Returns:
            Number of records evicted
        """
        pass

    def count(self, status: Optional[WorkflowStatus] = None) -> int:
        statuses = self.list_statuses().values()
        if status is None:
            return len(statuses)
        return sum(1 for s in statuses if s == status)


class InMemoryExecutionStore(ExecutionStore):
    """Bounded in-memory store.

    Terminal records are evicted oldest-first once more than ``max_records``
    are held, and as soon as they are older than ``max_age`` seconds.
    Running records are never evicted.
    """

    def __init__(self, max_records: Optional[int] = 1000, max_age: Optional[float] = 3600.0):
        """Initialize in-memory execution store.

        Args:
            max_records: Capacity (None for unbounded)
            max_age: Seconds a terminal record is kept after it ended (None
                to keep records regardless of age)
        """
        if max_records is not None and max_records < 1:
            raise ValueError("max_records must be at least 1")
        if max_age is not None and max_age <= 0:
            raise ValueError("max_age must be positive")
        self.max_records = max_records
        self.max_age = max_age
        self._records: "OrderedDict[str, ExecutionRecord]" = OrderedDict()
        self._lock = Lock()

    def save(self, record: ExecutionRecord) -> None:
        with self._lock:
            self._records[record.id] = record
            logger.debug(f"Saved execution {record.id} ({record.status.value})")
        self.cleanup()

    def get(self, execution_id: str) -> Optional[ExecutionRecord]:
        with self._lock:
            return self._records.get(execution_id)

    def delete(self, execution_id: str) -> bool:
        with self._lock:
            if execution_id in self._records:
                del self._records[execution_id]
                logger.debug(f"Deleted execution {execution_id}")
                return True
            return False

    def list_statuses(self) -> Dict[str, WorkflowStatus]:
        with self._lock:
            return {exec_id: record.status for exec_id, record in self._records.items()}

    def cleanup(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        with self._lock:
            victims: List[str] = []
            if self.max_age is not None:
                cutoff = now - timedelta(seconds=self.max_age)
                victims.extend(
                    exec_id
                    for exec_id, record in self._records.items()
                    if record.is_terminal() and record.end_time and record.end_time < cutoff
                )
            for exec_id in victims:
                del self._records[exec_id]

            if self.max_records is not None:
                overflow = len(self._records) - self.max_records
                # FIFO over terminal records; insertion order is start order
                for exec_id in [e for e, r in self._records.items() if r.is_terminal()]:
                    if overflow <= 0:
                        break
                    del self._records[exec_id]
                    victims.append(exec_id)
                    overflow -= 1

        if victims:
            logger.debug(f"Evicted {len(victims)} execution record(s)")
        return len(victims)
