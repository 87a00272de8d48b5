"""Notification vocabulary: types, categories, priorities, channels.

Every notification type belongs to exactly one category and carries a
default priority. Both lookups are static tables built at import time.
"""

from enum import Enum


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class NotificationCategory(Enum):
    HR_ACTIVITIES = "HR_ACTIVITIES"
    SECURITY_ALERTS = "SECURITY_ALERTS"
    SYSTEM_UPDATES = "SYSTEM_UPDATES"
    COMMENTS = "COMMENTS"
    INTERVIEWS = "INTERVIEWS"
    ADMIN = "ADMIN"


class NotificationType(Enum):
    # HR activities
    CANDIDATE_APPLIED = "CANDIDATE_APPLIED"
    CANDIDATE_STATUS_CHANGED = "CANDIDATE_STATUS_CHANGED"
    CANDIDATE_DOCUMENT_UPLOADED = "CANDIDATE_DOCUMENT_UPLOADED"
    CANDIDATE_AI_ANALYSIS_COMPLETE = "CANDIDATE_AI_ANALYSIS_COMPLETE"
    CANDIDATE_ASSIGNED = "CANDIDATE_ASSIGNED"
    JOB_POSTED = "JOB_POSTED"
    JOB_UPDATED = "JOB_UPDATED"
    JOB_CLOSED = "JOB_CLOSED"
    JOB_APPLICATION_RECEIVED = "JOB_APPLICATION_RECEIVED"

    # Interviews
    INTERVIEW_SCHEDULED = "INTERVIEW_SCHEDULED"
    INTERVIEW_REMINDER = "INTERVIEW_REMINDER"
    INTERVIEW_COMPLETED = "INTERVIEW_COMPLETED"
    INTERVIEW_CANCELLED = "INTERVIEW_CANCELLED"

    # Administration
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_ROLE_CHANGED = "USER_ROLE_CHANGED"
    ADMIN_ANNOUNCEMENT = "ADMIN_ANNOUNCEMENT"
    EMERGENCY_ALERT = "EMERGENCY_ALERT"

    # Security
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    SECURITY_ALERT = "SECURITY_ALERT"
    UNAUTHORIZED_ACCESS_ATTEMPT = "UNAUTHORIZED_ACCESS_ATTEMPT"
    SUSPICIOUS_ACTIVITY = "SUSPICIOUS_ACTIVITY"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    MULTIPLE_FAILED_LOGINS = "MULTIPLE_FAILED_LOGINS"

    # Comments
    COMMENT_MENTION = "COMMENT_MENTION"
    COMMENT_REPLY = "COMMENT_REPLY"
    COMMENT_ON_CANDIDATE = "COMMENT_ON_CANDIDATE"
    COMMENT_ON_JOB = "COMMENT_ON_JOB"
    COMMENT_EDITED = "COMMENT_EDITED"
    COMMENT_DELETED = "COMMENT_DELETED"

    # System
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"
    SYSTEM_UPDATE = "SYSTEM_UPDATE"
    SYSTEM_ERROR = "SYSTEM_ERROR"
    BACKUP_COMPLETED = "BACKUP_COMPLETED"


class NotificationPriority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class NotificationChannel(Enum):
    IN_APP = "IN_APP"
    EMAIL = "EMAIL"
    PUSH = "PUSH"
    SMS = "SMS"
    WEBHOOK = "WEBHOOK"


class DeliveryStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"


class DigestFrequency(Enum):
    IMMEDIATE = "IMMEDIATE"
    HOURLY = "HOURLY"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    NEVER = "NEVER"


# ---------------------------------------------------------------------------
# Lookup tables
# ---------------------------------------------------------------------------
_C = NotificationCategory
_T = NotificationType
_P = NotificationPriority

_TYPES_BY_CATEGORY = {
    _C.HR_ACTIVITIES: [
        (_T.CANDIDATE_APPLIED, _P.MEDIUM),
        (_T.CANDIDATE_STATUS_CHANGED, _P.MEDIUM),
        (_T.CANDIDATE_DOCUMENT_UPLOADED, _P.LOW),
        (_T.CANDIDATE_AI_ANALYSIS_COMPLETE, _P.LOW),
        (_T.CANDIDATE_ASSIGNED, _P.HIGH),
        (_T.JOB_POSTED, _P.MEDIUM),
        (_T.JOB_UPDATED, _P.LOW),
        (_T.JOB_CLOSED, _P.MEDIUM),
        (_T.JOB_APPLICATION_RECEIVED, _P.MEDIUM),
    ],
    _C.INTERVIEWS: [
        (_T.INTERVIEW_SCHEDULED, _P.HIGH),
        (_T.INTERVIEW_REMINDER, _P.HIGH),
        (_T.INTERVIEW_COMPLETED, _P.MEDIUM),
        (_T.INTERVIEW_CANCELLED, _P.HIGH),
    ],
    _C.ADMIN: [
        (_T.USER_CREATED, _P.MEDIUM),
        (_T.USER_UPDATED, _P.LOW),
        (_T.USER_ROLE_CHANGED, _P.HIGH),
        (_T.ADMIN_ANNOUNCEMENT, _P.MEDIUM),
        (_T.EMERGENCY_ALERT, _P.CRITICAL),
    ],
    _C.SECURITY_ALERTS: [
        (_T.PASSWORD_RESET_REQUESTED, _P.MEDIUM),
        (_T.PASSWORD_CHANGED, _P.MEDIUM),
        (_T.SECURITY_ALERT, _P.CRITICAL),
        (_T.UNAUTHORIZED_ACCESS_ATTEMPT, _P.HIGH),
        (_T.SUSPICIOUS_ACTIVITY, _P.HIGH),
        (_T.ACCOUNT_LOCKED, _P.CRITICAL),
        (_T.MULTIPLE_FAILED_LOGINS, _P.HIGH),
    ],
    _C.COMMENTS: [
        (_T.COMMENT_MENTION, _P.MEDIUM),
        (_T.COMMENT_REPLY, _P.LOW),
        (_T.COMMENT_ON_CANDIDATE, _P.LOW),
        (_T.COMMENT_ON_JOB, _P.LOW),
        (_T.COMMENT_EDITED, _P.LOW),
        (_T.COMMENT_DELETED, _P.LOW),
    ],
    _C.SYSTEM_UPDATES: [
        (_T.SYSTEM_MAINTENANCE, _P.HIGH),
        (_T.SYSTEM_UPDATE, _P.LOW),
        (_T.SYSTEM_ERROR, _P.HIGH),
        (_T.BACKUP_COMPLETED, _P.LOW),
    ],
}

TYPE_CATEGORY: dict[str, str] = {
    type_.value: category.value for category, entries in _TYPES_BY_CATEGORY.items() for type_, _ in entries
}

TYPE_PRIORITY: dict[str, str] = {
    type_.value: priority.value for entries in _TYPES_BY_CATEGORY.values() for type_, priority in entries
}

_PRIORITY_RANK = {
    NotificationPriority.LOW.value: 0,
    NotificationPriority.MEDIUM.value: 1,
    NotificationPriority.HIGH.value: 2,
    NotificationPriority.CRITICAL.value: 3,
}

# Keys used in the persisted delivery_status map
CHANNEL_KEYS = {
    NotificationChannel.IN_APP.value: "inApp",
    NotificationChannel.EMAIL.value: "email",
    NotificationChannel.PUSH.value: "push",
    NotificationChannel.SMS.value: "sms",
    NotificationChannel.WEBHOOK.value: "webhook",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def category_for(notification_type: str) -> str:
    """Category a notification type belongs to."""
    try:
        return TYPE_CATEGORY[notification_type]
    except KeyError:
        raise ValueError(f"Unknown notification type: {notification_type}") from None


def default_priority_for(notification_type: str) -> str:
    """Default priority of a notification type."""
    try:
        return TYPE_PRIORITY[notification_type]
    except KeyError:
        raise ValueError(f"Unknown notification type: {notification_type}") from None


def priority_rank(priority: str) -> int:
    """Ordinal of a priority, LOW=0 ... CRITICAL=3."""
    try:
        return _PRIORITY_RANK[priority]
    except KeyError:
        raise ValueError(f"Unknown priority: {priority}") from None


def channel_key(channel: str) -> str:
    """Lowercase key under which a channel's delivery state is persisted."""
    try:
        return CHANNEL_KEYS[channel]
    except KeyError:
        raise ValueError(f"Unknown channel: {channel}") from None


def values_of(enum_cls) -> set[str]:
    return {member.value for member in enum_cls}
