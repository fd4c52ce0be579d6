"""
Email Service using Resend

Templated emails for authentication, the application workflow and the
automation routines. When no Resend API key is configured the message is
logged instead of sent, which keeps local development and tests offline.
"""

import asyncio
import logging
from collections.abc import Iterable
from html import escape
from typing import Any

import resend

from rtb_assets.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

_STYLE = """
    body { font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }
    .container { max-width: 600px; margin: 0 auto; padding: 40px 20px; }
    .header { color: #0b3d91; margin-bottom: 24px; }
    .info-box { background-color: #f3f4f6; padding: 16px; border-radius: 8px; margin: 16px 0; }
    .code { font-size: 28px; letter-spacing: 6px; font-weight: bold; color: #0b3d91; }
    table { border-collapse: collapse; width: 100%; }
    th, td { text-align: left; padding: 6px 8px; border-bottom: 1px solid #e5e7eb; }
    .footer { margin-top: 40px; padding-top: 20px; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px; }
"""


def _render(title: str, body: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><style>{_STYLE}</style></head>
    <body>
        <div class="container">
            <h1 class="header">{escape(title)}</h1>
            {body}
            <div class="footer">
                <p>RTB Assets Management</p>
            </div>
        </div>
    </body>
    </html>
    """


def _device_rows(devices: Iterable[Any], extra_column: str, extra_getter) -> str:
    rows = []
    for device in devices:
        school = getattr(device, "school", None)
        school_name = escape(school.name) if school is not None else "Unassigned"
        rows.append(
            f"<tr><td>{escape(device.name_tag)}</td>"
            f"<td>{escape(device.serial_number)}</td>"
            f"<td>{school_name}</td>"
            f"<td>{escape(str(extra_getter(device) or '-'))}</td></tr>"
        )
    return (
        "<table><tr><th>Name tag</th><th>Serial</th><th>School</th>"
        f"<th>{escape(extra_column)}</th></tr>{''.join(rows)}</table>"
    )


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML body

    Returns:
        True if the email was accepted (or logged in keyless mode)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_to_many(recipients: Iterable[str], subject: str, html_content: str) -> bool:
    """Send the same email to each recipient. True only if every send succeeded."""
    results = [await send_email(r, subject, html_content) for r in recipients]
    return all(results) if results else False


# ============================================
# Authentication
# ============================================


async def send_otp_email(to_email: str, otp: str, purpose: str = "login") -> bool:
    body = f"""
        <p>Your one-time code for {escape(purpose)} is:</p>
        <p class="code">{escape(otp)}</p>
        <p>The code expires in {settings.otp_expiry_minutes} minutes.</p>
        <p>If you did not request this code, please ignore this email.</p>
    """
    return await send_email(
        to_email=to_email,
        subject="RTB Assets Management - OTP Code",
        html_content=_render("Your verification code", body),
    )


# ============================================
# Application workflow
# ============================================


async def send_new_application_notification(
    recipients: Iterable[str],
    application_id: int,
    title: str,
    school_name: str,
    requested_device_count: int | None,
    requested_device_type: str | None,
    priority: str,
) -> bool:
    body = f"""
        <p>A new device request was submitted by <strong>{escape(school_name)}</strong>.</p>
        <div class="info-box">
            <p><strong>Application #{application_id}:</strong> {escape(title)}</p>
            <p><strong>Requested:</strong> {requested_device_count or 0} x {escape(requested_device_type or "-")}</p>
            <p><strong>Priority:</strong> {escape(priority)}</p>
        </div>
        <p><a href="{settings.frontend_url}/applications/{application_id}">Review the application</a></p>
    """
    return await send_to_many(
        recipients,
        subject=f"New device request from {school_name}",
        html_content=_render("New Device Request", body),
    )


async def send_maintenance_request_notification(
    recipients: Iterable[str],
    application_id: int,
    title: str,
    school_name: str,
    issues: list[tuple[str, str]],
    priority: str,
) -> bool:
    """
    Notify administrators of a new maintenance request.

    Args:
        issues: (device name tag, problem description) pairs
    """
    items = "".join(
        f"<li><strong>{escape(tag)}</strong>: {escape(problem)}</li>" for tag, problem in issues
    )
    body = f"""
        <p><strong>{escape(school_name)}</strong> reported problems on {len(issues)} device(s).</p>
        <div class="info-box">
            <p><strong>Application #{application_id}:</strong> {escape(title)}</p>
            <p><strong>Priority:</strong> {escape(priority)}</p>
            <ul>{items}</ul>
        </div>
    """
    return await send_to_many(
        recipients,
        subject=f"Maintenance request from {school_name}",
        html_content=_render("Maintenance Request", body),
    )


async def send_application_status_change_notification(
    to_email: str,
    recipient_name: str,
    application_id: int,
    title: str,
    previous_status: str,
    new_status: str,
    note: str | None = None,
) -> bool:
    note_html = f"<p><strong>Note:</strong> {escape(note)}</p>" if note else ""
    body = f"""
        <p>Hello {escape(recipient_name)},</p>
        <p>The status of your application <strong>{escape(title)}</strong> (#{application_id}) has changed.</p>
        <div class="info-box">
            <p><strong>Previous status:</strong> {escape(previous_status)}</p>
            <p><strong>New status:</strong> {escape(new_status)}</p>
            {note_html}
        </div>
    """
    return await send_email(
        to_email=to_email,
        subject=f"Application #{application_id} is now {new_status}",
        html_content=_render("Application Status Update", body),
    )


# ============================================
# Automation
# ============================================


async def send_maintenance_reminder(devices: list[Any], recipients: Iterable[str]) -> bool:
    body = f"""
        <p>{len(devices)} device(s) are due for maintenance within the next 7 days.</p>
        {_device_rows(devices, "Next maintenance", lambda d: d.next_maintenance_date)}
    """
    return await send_to_many(
        recipients,
        subject=f"Maintenance due for {len(devices)} device(s)",
        html_content=_render("Maintenance Reminder", body),
    )


async def send_warranty_expiry_alert(devices: list[Any], recipients: Iterable[str]) -> bool:
    body = f"""
        <p>The warranty on {len(devices)} device(s) expires within 30 days.</p>
        {_device_rows(devices, "Warranty expiry", lambda d: d.warranty_expiry)}
    """
    return await send_to_many(
        recipients,
        subject=f"Warranty expiring for {len(devices)} device(s)",
        html_content=_render("Warranty Expiry Alert", body),
    )


async def send_offline_device_alert(devices: list[Any], recipients: Iterable[str]) -> bool:
    body = f"""
        <p>{len(devices)} device(s) have not been seen for more than 7 days and were marked inactive.</p>
        {_device_rows(devices, "Last seen", lambda d: d.last_seen_at)}
    """
    return await send_to_many(
        recipients,
        subject=f"{len(devices)} device(s) offline",
        html_content=_render("Offline Device Alert", body),
    )


async def send_automation_report(report: dict[str, Any], recipients: Iterable[str]) -> bool:
    rows = "".join(
        f"<tr><td>{escape(str(key))}</td><td>{escape(str(value))}</td></tr>"
        for key, value in report.items()
    )
    body = f"<table>{rows}</table>"
    return await send_to_many(
        recipients,
        subject="Automation run report",
        html_content=_render("Automation Report", body),
    )
