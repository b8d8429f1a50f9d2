"""Services layer for MedScribe application logic."""

from .session_controller import SessionController
from .usage_meter import UsageMeter, UsageStatus, DailyUsageMeter, UnlimitedUsageMeter

__all__ = [
    "SessionController",
    "UsageMeter",
    "UsageStatus",
    "DailyUsageMeter",
    "UnlimitedUsageMeter",
]
