"""Background analysis jobs and their notifications."""

from .job_service import AnalysisJobService
from .notifications import LoggingNotificationSink, NotificationChannel, NotificationEvent, NotificationSink

__all__ = [
    "AnalysisJobService",
    "NotificationChannel",
    "NotificationEvent",
    "NotificationSink",
    "LoggingNotificationSink",
]
