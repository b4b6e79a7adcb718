"""
Transactional email messages (invite, organization-ID recovery, password
reset, registration confirmation).

Each ``send_*`` function renders the message and hands it to an
``EmailSender``; the result is returned unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

from app.core.config import get_settings
from app.core.email import EmailResult, EmailSender
from app.models.base import utcnow

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: #d97706; color: white; padding: 20px; text-align: center; }}
    .content {{ padding: 20px; background: #f9f9f9; }}
    .button {{ display: inline-block; padding: 12px 24px; background: #d97706; color: white;
               text-decoration: none; border-radius: 5px; margin: 20px 0; }}
    .org-id {{ font-family: monospace; font-size: 18px; font-weight: bold; color: #92400e; }}
    .box {{ background: #fff3cd; border: 2px solid #f59e0b; border-radius: 5px; padding: 15px; margin: 15px 0; }}
    .footer {{ text-align: center; padding: 20px; color: #666; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>Cayco Business Operating System</h1></div>
    <div class="content">
{body}
    </div>
    <div class="footer"><p>&copy; {year} Cayco. All rights reserved.</p></div>
  </div>
</body>
</html>
"""


@dataclass(frozen=True)
class OrganizationSummary:
    name: str
    identifier: str
    role: str


def _frontend_link(path: str) -> str:
    return f"{get_settings().frontend_url.rstrip('/')}/{path.lstrip('/')}"


def _render(body: str) -> str:
    return _LAYOUT.format(body=body, year=utcnow().year)


def _org_id_box(identifier: str) -> str:
    return (
        '<div class="box">'
        "<p><strong>Your Organization ID:</strong></p>"
        f'<p class="org-id">{escape(identifier)}</p>'
        "<p>You'll need this Organization ID to log in to your account. Please save it!</p>"
        "</div>"
    )


def render_invite(company_name: str, role: str, token: str, identifier: str) -> tuple[str, str]:
    link = escape(_frontend_link(f"invite/{token}"))
    subject = f"Invitation to join {company_name} on Cayco"
    body = (
        "<h2>You've been invited!</h2>"
        f"<p>You have been invited to join <strong>{escape(company_name)}</strong> "
        f"as a <strong>{escape(role)}</strong>.</p>"
        f"{_org_id_box(identifier)}"
        "<p>Click the button below to accept the invitation and set up your account:</p>"
        f'<a href="{link}" class="button">Accept Invitation</a>'
        f'<p>Or copy and paste this link into your browser:</p><p>{link}</p>'
        f"<p>This invitation will expire in {get_settings().invite_token_expire_days} days.</p>"
    )
    return subject, _render(body)


def render_forgot_organization_id(organizations: list[OrganizationSummary]) -> tuple[str, str]:
    items = "".join(
        '<div class="box">'
        f"<h3>{escape(org.name)}</h3>"
        f"<p>Role: <strong>{escape(org.role)}</strong></p>"
        f'<p>Organization ID: <span class="org-id">{escape(org.identifier)}</span></p>'
        "</div>"
        for org in organizations
    )
    body = (
        "<h2>Your Organization IDs</h2>"
        "<p>Here are all the organizations you belong to:</p>"
        f"{items}"
        "<p>Use these Organization IDs along with your email and password to log in.</p>"
    )
    return "Your Cayco Organization IDs", _render(body)


def render_password_reset(company_name: str, token: str) -> tuple[str, str]:
    link = escape(_frontend_link(f"reset-password/{token}"))
    minutes = get_settings().reset_token_expire_minutes
    body = (
        "<h2>Password Reset Request</h2>"
        f"<p>You requested to reset your password for <strong>{escape(company_name)}</strong>.</p>"
        f'<a href="{link}" class="button">Reset Password</a>'
        f"<p>Or copy and paste this link into your browser:</p><p>{link}</p>"
        f'<div class="box"><p><strong>Note:</strong> This link will expire in {minutes} minutes '
        "for security reasons.</p></div>"
        "<p>If you didn't request this password reset, please ignore this email.</p>"
    )
    return "Reset Your Cayco Password", _render(body)


def render_registration(
    first_name: str, last_name: str, company_name: str, identifier: str
) -> tuple[str, str]:
    name = escape(f"{first_name} {last_name}".strip()) or "there"
    login = escape(_frontend_link("login"))
    body = (
        f"<h2>Welcome to Cayco, {name}!</h2>"
        f"<p>Your company <strong>{escape(company_name)}</strong> is set up and ready to go.</p>"
        f"{_org_id_box(identifier)}"
        f'<a href="{login}" class="button">Log In</a>'
    )
    return f"Welcome to Cayco - {company_name}", _render(body)


async def send_invite(
    sender: EmailSender, *, to: str, company_name: str, role: str, token: str, identifier: str
) -> EmailResult:
    subject, html = render_invite(company_name, role, token, identifier)
    return await sender.send(to, subject, html)


async def send_forgot_organization_id(
    sender: EmailSender, *, to: str, organizations: list[OrganizationSummary]
) -> EmailResult:
    subject, html = render_forgot_organization_id(organizations)
    return await sender.send(to, subject, html)


async def send_password_reset(
    sender: EmailSender, *, to: str, company_name: str, token: str
) -> EmailResult:
    subject, html = render_password_reset(company_name, token)
    return await sender.send(to, subject, html)


async def send_registration(
    sender: EmailSender,
    *,
    to: str,
    first_name: str,
    last_name: str,
    company_name: str,
    identifier: str,
) -> EmailResult:
    subject, html = render_registration(first_name, last_name, company_name, identifier)
    return await sender.send(to, subject, html)
