"""SMTP email notifications.

smtplib is blocking, so delivery runs in a worker thread.
"""

import asyncio
import html
import smtplib
import ssl
from email.charset import QP, Charset
from email.header import Header
from email.mime.text import MIMEText

from servicarr.exceptions import ConfigurationIncompleteError, DispatchError
from servicarr.server.notifications.base import Notification
from servicarr.server.schemas.alert import AlertConfigData

IMPLICIT_TLS_PORT = 465

STATUS_CSS_COLORS = {"down": "#ef4444", "degraded": "#eab308", "up": "#22c55e"}
STATUS_TEXTS = {"down": "SERVICE DOWN", "degraded": "SERVICE DEGRADED", "up": "SERVICE UP"}

_Q_CHARSET = Charset("utf-8")
_Q_CHARSET.header_encoding = QP

EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{subject}</title>
</head>
<body style="margin:0; padding:0; background-color:#0c121c; color:#e5e7eb; font-family:'Segoe UI', Arial, Helvetica, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color:#0c121c; padding:32px 12px;">
    <tr>
      <td align="center">
        <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="max-width:620px; background-color:#111827; border:1px solid #1f2937; border-radius:16px;">
          <tr>
            <td style="padding:28px 28px 18px 28px; border-bottom:1px solid #1f2937;">
              <div style="font-size:18px; font-weight:700;">Servicarr</div>
              <div style="color:#9ca3af; font-size:12px; margin-top:4px;">Service Status Monitor</div>
            </td>
          </tr>
          <tr>
            <td style="padding:28px;">
              <div style="font-size:22px; font-weight:700; margin-bottom:10px;">{subject}</div>
              <div style="color:#9ca3af; font-size:13px; margin-bottom:18px;">{message}</div>
              <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color:#0f172a; border:1px solid #1f2937; border-radius:12px; padding:16px; margin-bottom:22px;">
                <tr>
                  <td style="color:#9ca3af; font-size:12px;">Service</td>
                  <td style="text-align:right; font-size:13px; font-weight:600;">{service_name}</td>
                </tr>
                <tr>
                  <td style="color:#9ca3af; font-size:12px;">Status</td>
                  <td style="text-align:right; color:{color}; font-size:13px; font-weight:700;">{status_text}</td>
                </tr>
                <tr>
                  <td style="color:#9ca3af; font-size:12px;">Time</td>
                  <td style="text-align:right; font-size:13px;">{time}</td>
                </tr>
              </table>
              <div style="text-align:center;">
                <a href="{status_page_url}" style="display:inline-block; background-color:#22c55e; color:#0c121c; text-decoration:none; padding:12px 22px; border-radius:10px; font-weight:700; font-size:13px;">View Status Dashboard</a>
              </div>
            </td>
          </tr>
          <tr>
            <td style="padding:18px 28px 26px 28px; border-top:1px solid #1f2937; color:#9ca3af; font-size:11px;">
              This is an automated alert from your Servicarr monitor. You are receiving this because alerts are enabled.
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def render_email_html(notification: Notification) -> str:
    """Render the HTML body for a notification.

    The message may contain ``<strong>`` markup and is inserted as-is;
    names and the link are escaped.
    """
    return EMAIL_TEMPLATE.format(
        subject=html.escape(notification.subject),
        message=notification.message,
        service_name=html.escape(notification.service_name),
        color=STATUS_CSS_COLORS.get(notification.status, "#9ca3af"),
        status_text=STATUS_TEXTS.get(notification.status, notification.status.upper()),
        time=notification.timestamp.strftime("%A, %B %d, %Y at %I:%M %p %Z"),
        status_page_url=html.escape(notification.status_page_url or "#", quote=True),
    )


def build_message(config: AlertConfigData, subject: str, html_body: str) -> MIMEText:
    message = MIMEText(html_body, "html", "utf-8")
    message["From"] = config.from_email or config.smtp_user
    message["To"] = config.alert_email
    message["Subject"] = Header(subject, _Q_CHARSET)
    return message


def _tls_context(skip_verify: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _deliver(config: AlertConfigData, message: MIMEText, timeout: float) -> None:
    context = _tls_context(config.smtp_skip_verify)
    if config.smtp_port == IMPLICIT_TLS_PORT:
        client: smtplib.SMTP = smtplib.SMTP_SSL(
            config.smtp_host, config.smtp_port, timeout=timeout, context=context
        )
    else:
        client = smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=timeout)

    with client:
        client.ehlo()
        if config.smtp_port != IMPLICIT_TLS_PORT and client.has_extn("starttls"):
            client.starttls(context=context)
            client.ehlo()
        if client.has_extn("auth") and config.smtp_user:
            client.login(config.smtp_user, config.smtp_password)
        client.sendmail(message["From"], [config.alert_email], message.as_string())


async def send_email(
    config: AlertConfigData,
    subject: str,
    html_body: str,
    *,
    timeout: float = 10.0,
) -> None:
    """Send an HTML email to the configured alert recipient.

    Port 465 uses implicit TLS; other ports upgrade with STARTTLS when the
    server offers it. Credentials are only sent when the server advertises
    AUTH and a user is configured.

    Raises:
        ConfigurationIncompleteError: If the SMTP host or recipient is
            missing. Raised before any connection is attempted.
        DispatchError: If connecting, authenticating or sending fails.
    """
    if not config.smtp_host or not config.alert_email:
        raise ConfigurationIncompleteError("SMTP configuration incomplete")

    message = build_message(config, subject, html_body)
    try:
        await asyncio.to_thread(_deliver, config, message, timeout)
    except (smtplib.SMTPException, OSError) as e:
        raise DispatchError(f"SMTP delivery failed: {e}", channel="email") from e
