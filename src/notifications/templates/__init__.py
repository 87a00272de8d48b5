"""Template registry: maps email template names to template classes.

Each template renders a context dict into ``subject``, ``body`` (plain
text) and ``html_body``.
"""

from notifications.templates.digest_email import DigestEmailTemplate
from notifications.templates.notification_email import NotificationEmailTemplate

TEMPLATE_REGISTRY: dict[str, type] = {
    NotificationEmailTemplate.name: NotificationEmailTemplate,
    DigestEmailTemplate.name: DigestEmailTemplate,
}


def get_template(name: str):
    """Look up a template class by name."""
    template_cls = TEMPLATE_REGISTRY.get(name)
    if template_cls is None:
        raise ValueError(f"No template registered with name: {name}")
    return template_cls
