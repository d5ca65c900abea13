"""Outbound notifications (mail, desktop popups) and their wording."""

import logging
import random
import smtplib
import ssl
from email.message import EmailMessage

from plyer import notification as plyer_notification

logger = logging.getLogger(__name__)

APP_NAME = "Prayer Bell"
APP_ICON = ""  # Path to icon file; empty = default

HADITHS = [
    "The first matter that the slave will be brought to account for on the Day of Judgment is the prayer.",
    "Guard strictly your prayers, especially the middle prayer.",
    "Between a man and disbelief is abandoning the prayer.",
]


class NotificationError(RuntimeError):
    """A notification could not be delivered."""


def _as_bool(value, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class MailSender:
    """Plain SMTP delivery to a single recipient."""

    def __init__(
        self,
        host: str,
        recipient: str,
        port: int = 587,
        username: str = None,
        password: str = None,
        sender: str = None,
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: int = 30,
    ):
        if not host:
            raise ValueError("Mail host is required")
        if not recipient:
            raise ValueError("Mail recipient is required")
        if username and not password:
            raise ValueError("Mail password is required when a username is set")
        self.sender = sender or username
        if not self.sender:
            raise ValueError("Mail sender address is required")
        self.host = host
        self.port = int(port)
        self.recipient = recipient
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: dict) -> "MailSender":
        port = cfg.get("port") or 587
        try:
            port = int(port)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid mail port: {port!r}") from None
        return cls(
            host=cfg.get("host"),
            recipient=cfg.get("recipient"),
            port=port,
            username=cfg.get("username"),
            password=cfg.get("password"),
            sender=cfg.get("sender"),
            use_tls=_as_bool(cfg.get("use_tls"), default=True),
            use_ssl=_as_bool(cfg.get("use_ssl"), default=port == 465),
            timeout=int(cfg.get("timeout") or 30),
        )

    def _build_message(self, subject: str, text: str, html: str = None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = self.recipient
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")
        return msg

    def send(self, subject: str, text: str, html: str = None) -> None:
        msg = self._build_message(subject, text, html)
        ctx = ssl.create_default_context()
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, context=ctx, timeout=self.timeout) as smtp:
                    self._deliver(smtp, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                    if self.use_tls:
                        smtp.starttls(context=ctx)
                    self._deliver(smtp, msg)
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationError(f"Mail auth failed, check username/password: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Mail delivery failed: {type(e).__name__}: {e}") from e
        logger.info(f"Mail sent: {subject}")

    def _deliver(self, smtp, msg: EmailMessage) -> None:
        if self.username:
            smtp.login(self.username, self.password)
        smtp.send_message(msg)


class DesktopSender:
    """Desktop notification via plyer (cross-platform)."""

    def __init__(self, timeout: int = 15):
        self.timeout = timeout

    def send(self, subject: str, text: str, html: str = None) -> None:
        kwargs = dict(
            app_name=APP_NAME,
            title=subject,
            message=text,
            timeout=self.timeout,
        )
        if APP_ICON:
            kwargs["app_icon"] = APP_ICON
        try:
            plyer_notification.notify(**kwargs)
        except Exception as e:  # plyer raises backend-specific errors
            raise NotificationError(f"Desktop notification failed: {e}") from e


class MultiSender:
    """Fan out to several channels. Delivered if at least one channel took it."""

    def __init__(self, senders: list):
        if not senders:
            raise ValueError("At least one notification channel is required")
        self.senders = list(senders)

    def send(self, subject: str, text: str, html: str = None) -> None:
        errors = []
        for sender in self.senders:
            try:
                sender.send(subject, text, html)
            except NotificationError as e:
                logger.warning(f"{type(sender).__name__} failed: {e}")
                errors.append(e)
        if len(errors) == len(self.senders):
            raise NotificationError(f"All channels failed for {subject!r}")


def build_sender(notify_config: dict):
    """
    Build the configured channels. Channels whose settings are incomplete
    are skipped with a warning; returns None when nothing is usable.
    """
    senders = []
    for channel in notify_config.get("channels") or []:
        try:
            if channel == "mail":
                senders.append(MailSender.from_config(notify_config.get("mail") or {}))
            elif channel == "desktop":
                desktop = notify_config.get("desktop") or {}
                senders.append(DesktopSender(timeout=int(desktop.get("timeout") or 15)))
            else:
                logger.warning(f"Unknown notification channel: {channel}")
        except ValueError as e:
            logger.warning(f"Notification channel {channel} disabled: {e}")
    if not senders:
        return None
    if len(senders) == 1:
        return senders[0]
    return MultiSender(senders)


# -- message wording ----------------------------------------------------------

def prayer_start_message(prayer_name: str, time_str: str) -> tuple:
    subject = f"{prayer_name} time has started"
    text = f"{prayer_name} prayer time has started at {time_str}. Allahu Akbar!"
    return subject, text


def prayer_half_message(prayer_name: str, hadith: str = None) -> tuple:
    hadith = hadith or random.choice(HADITHS)
    subject = f"{prayer_name} reminder"
    text = f"{prayer_name} time is halfway through. Please pray soon.\n\nHadith: {hadith}"
    return subject, text


def prayer_end_message(prayer_name: str, minutes_left: int) -> tuple:
    subject = f"{prayer_name} time is ending"
    text = f"{prayer_name} time ends in {minutes_left} minutes. Pray now if you have not yet."
    return subject, text


def event_reminder_message(day, titles: list) -> tuple:
    listing = "\n".join(f"- {title}" for title in titles)
    subject = "Event reminder for tomorrow"
    text = f"You have events scheduled for tomorrow ({day.isoformat()}):\n{listing}"
    return subject, text


def task_due_message(task_text: str, due_label: str) -> tuple:
    return "Task reminder", f"Reminder: {task_text} (due at {due_label})"
