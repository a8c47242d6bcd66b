# Operator-facing urgency tiers for pending orders
# Advisory only, never consulted by the transition guards

from datetime import datetime
from enum import Enum
from typing import Iterable, List, Set

from .state_machine import OrderStatus, elapsed_seconds

DEFAULT_ALERT_MARKS = (10, 20, 30, 45, 60)


class Urgency(str, Enum):
    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def minutes_pending(created_at: datetime, now: datetime) -> float:
    return elapsed_seconds(created_at, now) / 60


def classify_urgency(status, is_accepted: bool, created_at: datetime, now: datetime) -> Urgency:
    """
    normal (<5 min), medium (5-10), high (10-15), critical (>15 min,
    or >5 min and still unaccepted). Non-pending orders are always normal.
    """
    if OrderStatus(status) != OrderStatus.PENDING:
        return Urgency.NORMAL

    minutes = minutes_pending(created_at, now)
    if not is_accepted and minutes > 5:
        return Urgency.CRITICAL
    if minutes > 15:
        return Urgency.CRITICAL
    if minutes >= 10:
        return Urgency.HIGH
    if minutes >= 5:
        return Urgency.MEDIUM
    return Urgency.NORMAL


def due_alert_marks(minutes: float, already_alerted: Set[int],
                    marks: Iterable[int] = DEFAULT_ALERT_MARKS) -> List[int]:
    """Alert marks (in minutes) reached but not yet announced"""
    return [mark for mark in sorted(marks) if minutes >= mark and mark not in already_alerted]


def format_pending_time(created_at: datetime, now: datetime) -> str:
    minutes = int(minutes_pending(created_at, now))
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    return f"{minutes // 60}h {minutes % 60}m ago"
