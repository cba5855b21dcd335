import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.core.config import settings

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def build_booking_request_html(
    business_name: str,
    business_id: int,
    client_name: str,
    client_phone: str,
    date_str: str,
    start_time: str,
    end_time: str | None,
    note: str | None,
) -> str:
    """HTML body telling the owner a client asked for an appointment."""
    slot_display = f"{start_time} – {end_time}" if end_time else start_time
    note_section = ""
    if note:
        note_section = f"""
        <p style="margin:0 0 8px 0;color:#374151;"><strong>Note from client:</strong></p>
        <p style="margin:0 0 24px 0;color:#6b7280;font-size:14px;">{_html_escape(note)}</p>
        """
    dashboard_link = f"{settings.dashboard_url.rstrip('/')}/business/{business_id}"
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>New booking request</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f3f4f6;">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;">
          <tr>
            <td style="padding:32px;">
              <h1 style="margin:0 0 8px 0;font-size:22px;font-weight:600;color:#111827;">New booking request</h1>
              <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">{_html_escape(business_name)} received a request awaiting your approval.</p>
              <p style="margin:0;font-size:15px;color:#111827;">Client: {_html_escape(client_name)} ({_html_escape(client_phone)})</p>
              <p style="margin:0;font-size:15px;color:#111827;">Date: {date_str}</p>
              <p style="margin:0 0 24px 0;font-size:15px;color:#111827;">Time: {slot_display}</p>
              {note_section}
              <a href="{dashboard_link}" style="color:#2563eb;">Approve or decline in your dashboard</a>
            </td>
          </tr>
          <tr>
            <td style="padding:24px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
              <p style="margin:0;font-size:13px;font-weight:600;color:#111827;">{settings.site_name}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_booking_request_email(
    to_email: str,
    business_name: str,
    business_id: int,
    client_name: str,
    client_phone: str,
    date_str: str,
    start_time: str,
    end_time: str | None = None,
    note: str | None = None,
) -> None:
    """Notify the owner of a pending request (call from background task)."""
    subject = f"{settings.site_name} – New booking request for {business_name}"
    html = build_booking_request_html(
        business_name=business_name,
        business_id=business_id,
        client_name=client_name,
        client_phone=client_phone,
        date_str=date_str,
        start_time=start_time,
        end_time=end_time,
        note=note,
    )
    _send_email_sync(to_email, subject, html)
