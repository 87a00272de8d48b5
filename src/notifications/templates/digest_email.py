"""Digest email: one message summarizing a batch of notifications by category."""

from html import escape

CATEGORY_LABELS = {
    "HR_ACTIVITIES": "HR Activities",
    "SECURITY_ALERTS": "Security Alerts",
    "SYSTEM_UPDATES": "System Updates",
    "COMMENTS": "Comments",
    "INTERVIEWS": "Interviews",
    "ADMIN": "Administration",
}


def digest_subject(frequency: str, count: int) -> str:
    plural = "" if count == 1 else "s"
    return f"Your {frequency.lower()} digest ({count} notification{plural})"


class DigestEmailTemplate:
    """Renders ``groups`` (category → ordered notification dicts) with stats.

    Context keys: frequency, groups, stats, period_start, period_end,
    app_name, app_url.
    """

    name = "digest"

    @staticmethod
    def render(context: dict) -> dict:
        frequency = context["frequency"]
        groups = context["groups"]
        stats = context["stats"]
        app_name = context.get("app_name", "HR Platform")
        app_url = context.get("app_url", "")
        start = context["period_start"].strftime("%Y-%m-%d %H:%M")
        end = context["period_end"].strftime("%Y-%m-%d %H:%M")

        text = f"Your {frequency.lower()} {app_name} digest\n\n"
        text += f"{stats['total']} notifications from {start} to {end} UTC\n"
        for category, items in groups.items():
            text += f"\n{CATEGORY_LABELS.get(category, category)} ({len(items)}):\n"
            for item in items:
                text += f"  • [{item['priority']}] {item['title']}\n"
                text += f"    {item['message']}\n"
        text += f"\n\nView all notifications: {app_url}/notifications\n"

        sections = []
        for category, items in groups.items():
            rows = "".join(
                f"<li><strong>{escape(item['title'])}</strong>"
                f' <span style="color:#777">({escape(item["priority"])})</span><br>'
                f"{escape(item['message'])}</li>"
                for item in items
            )
            sections.append(f"<h3>{escape(CATEGORY_LABELS.get(category, category))} ({len(items)})</h3><ul>{rows}</ul>")

        html = (
            "<html><body style=\"font-family:Arial,sans-serif;color:#222\">"
            f"<h2>Your {escape(frequency.lower())} digest</h2>"
            f"<p>{stats['total']} notifications from {escape(start)} to {escape(end)} UTC</p>"
            f"{''.join(sections)}"
            f'<p><a href="{escape(app_url, quote=True)}/notifications">View all notifications</a></p>'
            f'<hr><p style="font-size:12px;color:#777">{escape(app_name)} · '
            f'<a href="{escape(app_url, quote=True)}/settings/notifications">Digest settings</a></p>'
            "</body></html>"
        )

        return {"subject": digest_subject(frequency, stats["total"]), "body": text, "html_body": html}
