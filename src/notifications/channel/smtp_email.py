"""SMTP email adapter: sends multipart (text + HTML) mail through an SMTP relay."""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid

import structlog
from notifications.channel.email_port import EmailPort

logger = structlog.get_logger(__name__)

# Connection and greeting share one timeout; the socket timeout applies afterwards
CONNECT_TIMEOUT = 10
SOCKET_TIMEOUT = 15


class SMTPEmailAdapter(EmailPort):
    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        from_name: str | None = None,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = False,
        use_ssl: bool = False,
    ):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.from_name = from_name
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl or port == 465

    @classmethod
    def from_settings(cls, settings):
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            from_email=settings.smtp_from,
            from_name=settings.smtp_from_name,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )

    def _build_message(self, to, subject, body, html_body):
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_email)) if self.from_name else self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()

        msg.attach(MIMEText(body, "plain", "utf-8"))
        if html_body:
            msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _connect(self):
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=CONNECT_TIMEOUT)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=CONNECT_TIMEOUT)
        if server.sock is not None:
            server.sock.settimeout(SOCKET_TIMEOUT)
        if self.use_tls and not self.use_ssl:
            server.starttls()
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> dict:
        msg = self._build_message(to, subject, body, html_body)
        try:
            server = self._connect()
            try:
                server.send_message(msg)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP send failed", to=to, subject=subject, error=str(e))
            return {"message_id": None, "status": "failed", "error": str(e)}

        logger.info("Email sent", to=to, subject=subject)
        return {"message_id": msg["Message-ID"], "status": "sent"}

    def verify(self) -> bool:
        """Check that the relay accepts a connection (and credentials, if any)."""
        try:
            server = self._connect()
            server.noop()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP connection check failed", host=self.host, error=str(e))
            return False
        return True
