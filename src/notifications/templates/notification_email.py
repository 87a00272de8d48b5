"""Single-notification email: sent for immediate (non-digest) EMAIL delivery."""

from html import escape


class NotificationEmailTemplate:
    name = "notification"

    @staticmethod
    def render(context: dict) -> dict:
        title = context["title"]
        message = context["message"]
        app_name = context.get("app_name", "HR Platform")
        app_url = context.get("app_url", "")
        action = context.get("action") or {}
        priority = context.get("priority")

        text = f"{title}\n\n{message}\n"
        if action.get("url"):
            text += f"\n{action.get('label') or 'View'}: {action['url']}\n"
        text += f"\nManage your notifications: {app_url}/settings/notifications\n"

        badge = ""
        if priority in ("HIGH", "CRITICAL"):
            badge = f'<p style="color:#b00020;font-weight:bold">{escape(priority)} priority</p>'
        button = ""
        if action.get("url"):
            button = (
                f'<p><a href="{escape(action["url"], quote=True)}" '
                f'style="background:#1a73e8;color:#fff;padding:8px 16px;text-decoration:none;border-radius:4px">'
                f"{escape(action.get('label') or 'View')}</a></p>"
            )

        html = (
            "<html><body style=\"font-family:Arial,sans-serif;color:#222\">"
            f"<h2>{escape(title)}</h2>"
            f"{badge}"
            f"<p>{escape(message)}</p>"
            f"{button}"
            f'<hr><p style="font-size:12px;color:#777">{escape(app_name)} · '
            f'<a href="{escape(app_url, quote=True)}/settings/notifications">Notification settings</a></p>'
            "</body></html>"
        )

        return {"subject": title, "body": text, "html_body": html}
