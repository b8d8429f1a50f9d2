"""Event models published on the session lifecycle topic."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

SESSION_STARTED = "started"
SESSION_STOPPED = "stopped"
SESSION_FAILED = "failed"


@dataclass
class SessionEvent:
    """Session lifecycle event."""
    event_type: str  # "started", "stopped", "failed"
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
