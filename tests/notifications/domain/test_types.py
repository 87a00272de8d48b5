"""Tests for the notification vocabulary lookup tables."""

import pytest
from notifications.notification.types import (
    CHANNEL_KEYS,
    TYPE_CATEGORY,
    TYPE_PRIORITY,
    NotificationCategory,
    NotificationChannel,
    NotificationType,
    category_for,
    channel_key,
    default_priority_for,
    priority_rank,
    values_of,
)


class TestTypeTables:
    def test_every_type_has_a_category_and_priority(self):
        for t in NotificationType:
            assert t.value in TYPE_CATEGORY
            assert t.value in TYPE_PRIORITY

    def test_categories_are_known(self):
        assert set(TYPE_CATEGORY.values()) <= values_of(NotificationCategory)

    def test_category_for(self):
        assert category_for("CANDIDATE_APPLIED") == "HR_ACTIVITIES"
        assert category_for("INTERVIEW_SCHEDULED") == "INTERVIEWS"
        assert category_for("SECURITY_ALERT") == "SECURITY_ALERTS"
        assert category_for("COMMENT_MENTION") == "COMMENTS"
        assert category_for("SYSTEM_MAINTENANCE") == "SYSTEM_UPDATES"
        assert category_for("EMERGENCY_ALERT") == "ADMIN"

    def test_default_priority_for(self):
        assert default_priority_for("SECURITY_ALERT") == "CRITICAL"
        assert default_priority_for("INTERVIEW_REMINDER") == "HIGH"
        assert default_priority_for("CANDIDATE_APPLIED") == "MEDIUM"
        assert default_priority_for("COMMENT_REPLY") == "LOW"

    def test_unknown_type_raises(self):
        with pytest.raises(ValueError, match="Unknown notification type"):
            category_for("NOT_A_TYPE")
        with pytest.raises(ValueError, match="Unknown notification type"):
            default_priority_for("NOT_A_TYPE")


class TestPriorityRank:
    def test_ordering(self):
        assert priority_rank("LOW") < priority_rank("MEDIUM") < priority_rank("HIGH") < priority_rank("CRITICAL")

    def test_unknown_priority_raises(self):
        with pytest.raises(ValueError):
            priority_rank("URGENT")


class TestChannelKeys:
    def test_every_channel_has_a_key(self):
        assert set(CHANNEL_KEYS) == values_of(NotificationChannel)

    def test_channel_key(self):
        assert channel_key("IN_APP") == "inApp"
        assert channel_key("EMAIL") == "email"

    def test_unknown_channel_raises(self):
        with pytest.raises(ValueError):
            channel_key("PIGEON")
