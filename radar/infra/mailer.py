"""
邮件发送（SMTP）

smtplib 是同步阻塞的，通过 asyncio.to_thread 放到线程池执行，
不阻塞事件循环。
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from radar.config import Settings, get_settings
from radar.exceptions import NotificationError
from radar.infra.logging import get_logger

logger = get_logger(__name__)


def build_message(sender: str, to: str, subject: str, body: str) -> MIMEMultipart:
    message = MIMEMultipart()
    message["From"] = sender
    message["To"] = to
    message["Subject"] = subject
    message.attach(MIMEText(body, "plain", "utf-8"))
    return message


def _send_sync(settings: Settings, message: MIMEMultipart) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_username and settings.smtp_password:
            server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(message)


async def send_email(to: str, subject: str, body: str, settings: Settings | None = None) -> None:
    """
    发送纯文本邮件

    Raises:
        NotificationError: SMTP 未配置或发送失败
    """
    settings = settings or get_settings()
    if not settings.smtp_enabled:
        raise NotificationError("SMTP não configurado")

    message = build_message(settings.mail_from, to, subject, body)
    try:
        await asyncio.to_thread(_send_sync, settings, message)
    except (smtplib.SMTPException, OSError) as e:
        logger.warning(f"邮件发送失败: {e}", extra={"to": to})
        raise NotificationError(f"Erro ao enviar email: {e}") from e

    logger.info("邮件已发送", extra={"to": to, "subject": subject})
