"""Notifications bounded context: HR notification orchestration engine.

Decides whether, through which channels, and when a user is notified about
HR platform events (candidates, jobs, interviews, comments, security and
system alerts). Persists each notification with per-channel delivery state,
routes email through a queue with direct-send fallback, and batches
low-urgency items into periodic digest emails.
"""

from protean.domain import Domain

from notifications.utils.logging import configure_logging

# Configure logging for the application
configure_logging()

notifications = Domain(name="notifications")
