# leadpipe/services/digest.py
"""Lead digest email rendering (HTML + plain text)."""

import html
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Sequence
from zoneinfo import ZoneInfo

from ..schemas import LeadData

DEVICE_ICONS = {"pc": "🖥️", "mobile": "📱", "tablet": "📲"}
RULE = "━" * 40


@dataclass
class DigestItem:
    number: int
    name: str
    phone: str
    email: str
    landing_page_title: str
    device_type: str
    created_at: str


def _esc(s) -> str:
    return html.escape("" if s is None else str(s))


def format_local_time(value: datetime, tz: ZoneInfo) -> str:
    """Naive values are UTC; rendered in the digest timezone."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).strftime("%Y-%m-%d %H:%M")


def build_digest_items(leads: Sequence[LeadData], tz: ZoneInfo) -> List[DigestItem]:
    return [
        DigestItem(
            number=index,
            name=lead.name,
            phone=lead.phone,
            email=lead.email or "Not provided",
            landing_page_title=lead.landing_page_title or "Unknown",
            device_type=lead.device_type or "pc",
            created_at=format_local_time(lead.created_at, tz),
        )
        for index, lead in enumerate(leads, start=1)
    ]


def digest_subject(company_name: str, count: int) -> str:
    noun = "lead" if count == 1 else "leads"
    return f"📊 [{company_name}] {count} new {noun}"


def render_digest_html(company_name: str, items: Sequence[DigestItem], dashboard_url: str, generated_at: str) -> str:
    rows = "".join(
        f"""
    <tr style="border-bottom: 1px solid #e5e7eb;">
      <td style="padding: 16px; text-align: center; font-weight: 600; color: #6366f1;">{item.number}</td>
      <td style="padding: 16px;">
        <div style="font-weight: 600; color: #111827; margin-bottom: 4px;">{_esc(item.name)}</div>
        <div style="color: #6b7280; font-size: 14px;">{_esc(item.phone)}</div>
      </td>
      <td style="padding: 16px; color: #374151;">{_esc(item.email)}</td>
      <td style="padding: 16px; color: #374151;">{_esc(item.landing_page_title)}</td>
      <td style="padding: 16px; text-align: center;">{DEVICE_ICONS.get(item.device_type, DEVICE_ICONS["pc"])}</td>
      <td style="padding: 16px; color: #6b7280; font-size: 14px;">{_esc(item.created_at)}</td>
    </tr>"""
        for item in items
    )
    company = _esc(company_name)
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>New lead digest</title>
</head>
<body style="margin: 0; padding: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; background-color: #f9fafb;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f9fafb; padding: 40px 20px;">
    <tr><td align="center">
      <table width="100%" style="max-width: 800px; background-color: #ffffff; border-radius: 12px;">
        <tr><td style="background: #6366f1; padding: 32px; text-align: center; border-radius: 12px 12px 0 0;">
          <h1 style="margin: 0; color: #ffffff; font-size: 28px;">📊 New lead digest</h1>
          <p style="margin: 8px 0 0 0; color: #e0e7ff; font-size: 16px;">{company}</p>
        </td></tr>
        <tr><td style="padding: 32px 32px 24px 32px;">
          <p style="margin: 0 0 24px 0; font-size: 16px; color: #1e40af;">
            As of <strong>{_esc(generated_at)}</strong>, <strong>{len(items)}</strong> new lead(s) arrived.
          </p>
          <table width="100%" cellpadding="0" cellspacing="0" style="border-collapse: collapse; border: 1px solid #e5e7eb;">
            <thead><tr style="background-color: #f9fafb;">
              <th style="padding: 16px;">#</th>
              <th style="padding: 16px; text-align: left;">Name / Phone</th>
              <th style="padding: 16px; text-align: left;">Email</th>
              <th style="padding: 16px; text-align: left;">Landing page</th>
              <th style="padding: 16px;">Device</th>
              <th style="padding: 16px; text-align: left;">Submitted</th>
            </tr></thead>
            <tbody>{rows}
            </tbody>
          </table>
        </td></tr>
        <tr><td style="padding: 0 32px 32px 32px; text-align: center;">
          <a href="{_esc(dashboard_url)}" style="display: inline-block; background: #6366f1; color: #ffffff; text-decoration: none; padding: 16px 48px; border-radius: 8px; font-weight: 600;">Open the dashboard →</a>
        </td></tr>
        <tr><td style="padding: 24px 32px; background-color: #f9fafb; text-align: center; border-top: 1px solid #e5e7eb; color: #6b7280; font-size: 14px;">
          Sent automatically by the lead notification system of <strong>{company}</strong>.
        </td></tr>
      </table>
    </td></tr>
  </table>
</body>
</html>
"""


def render_digest_text(company_name: str, items: Sequence[DigestItem], dashboard_url: str, generated_at: str) -> str:
    blocks = "\n".join(
        f"{item.number}. {item.name} ({item.phone})\n"
        f"   Email: {item.email}\n"
        f"   Landing page: {item.landing_page_title}\n"
        f"   Device: {item.device_type}\n"
        f"   Submitted: {item.created_at}\n"
        for item in items
    )
    return (
        f"📊 [{company_name}] New lead digest\n\n"
        f"As of {generated_at}, {len(items)} new lead(s) arrived.\n\n"
        f"{RULE}\n{blocks}{RULE}\n\n"
        f"See the details in your dashboard:\n{dashboard_url}\n\n"
        f"Sent automatically by the lead notification system of {company_name}.\n"
    )
