"""Change notifications emitted by a task DAG store."""

from typing import Any, Callable, Dict, List
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DagEventType(str, Enum):
    """Kinds of DAG change."""
    NODE_ADDED = "node_added"
    DEPENDENCY_ADDED = "dependency_added"
    STATUS_CHANGED = "status_changed"
    DEPENDENCIES_RESOLVED = "dependencies_resolved"
    CYCLE_REJECTED = "cycle_rejected"


@dataclass
class DagEvent:
    """A single change to a channel's DAG."""
    type: DagEventType
    channel_id: str
    task_ids: List[str]
    version: int
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "channel_id": self.channel_id,
            "task_ids": list(self.task_ids),
            "version": self.version,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


DagEventListener = Callable[[DagEvent], None]
