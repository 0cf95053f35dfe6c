"""Compose the e-mail that carries a rendered report."""

import html
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from loguru import logger

from reportbot.delivery.base import Attachment
from reportbot.utils.helpers import safe_filename

FREQUENCY_LABELS = {
    "daily": "Daily",
    "weekly": "Weekly",
    "monthly": "Monthly",
}


@dataclass
class ReportEmail:
    subject: str
    html_body: str
    attachment: Attachment
    inline_images: list[Attachment]


def frequency_label(frequency: str) -> str:
    return FREQUENCY_LABELS.get(frequency, "")


def attachment_name(report_title: str, subject_name: str, report_date: date) -> str:
    """E.g. ``Backup_Report_Acme_Corp_05-03-2025.pdf``."""
    stem = safe_filename(f"{report_title} {subject_name}")
    return f"{stem}_{report_date.strftime('%d-%m-%Y')}.pdf"


def load_logos(logo_dir: str | None) -> list[Attachment]:
    """Inline images from ``logo_dir``; each is referenced as ``cid:<stem>``."""
    if not logo_dir:
        return []
    directory = Path(logo_dir).expanduser()
    if not directory.is_dir():
        logger.warning(f"Logo directory not found: {directory}")
        return []

    logos = []
    for path in sorted(directory.glob("*.png")):
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning(f"Could not load logo {path.name}: {e}")
            continue
        logos.append(Attachment(name=path.name, mime_type="image/png", data=data, content_id=path.stem))
    return logos


def compose_report_email(
    subject_name: str,
    frequency: str,
    pdf: bytes,
    report_date: date,
    report_title: str = "Backup Report",
    team_name: str = "Backup Operations",
    logos: list[Attachment] | None = None,
) -> ReportEmail:
    label = frequency_label(frequency)
    title = f"{label} {report_title}".strip()
    logos = logos or []

    return ReportEmail(
        subject=f"{title} - {subject_name}",
        html_body=_render_body(subject_name, title, report_date, team_name, logos),
        attachment=Attachment(
            name=attachment_name(report_title, subject_name, report_date),
            mime_type="application/pdf",
            data=pdf,
        ),
        inline_images=logos,
    )


def _render_body(
    subject_name: str,
    title: str,
    report_date: date,
    team_name: str,
    logos: list[Attachment],
) -> str:
    name = html.escape(subject_name)
    team = html.escape(team_name)
    header = "".join(
        f'<img src="cid:{logo.content_id}" alt="{html.escape(logo.content_id or "")}" '
        f'style="height: 35px; margin: 0 8px;" />'
        for logo in logos
    )
    header_row = (
        f'<tr><td style="background-color: #1a1a1a; padding: 25px 20px; text-align: center;">{header}</td></tr>'
        if header
        else ""
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="margin: 0; padding: 0; font-family: 'Segoe UI', Tahoma, Geneva, Verdana, sans-serif; background-color: #f5f5f5;">
  <table role="presentation" cellspacing="0" cellpadding="0" width="100%" style="max-width: 600px; margin: 0 auto; background-color: #ffffff;">
    {header_row}
    <tr>
      <td style="padding: 40px;">
        <p style="color: #1a1a1a; font-size: 18px; line-height: 1.6; margin: 0 0 25px 0;">Dear customer,</p>
        <p style="color: #444444; font-size: 15px; line-height: 1.7; margin: 0 0 20px 0;">
          Please find attached the <strong>{html.escape(title)}</strong> for <strong>{name}</strong>,
          generated on <strong>{report_date.strftime('%d/%m/%Y')}</strong>.
        </p>
        <p style="color: #444444; font-size: 15px; line-height: 1.7; margin: 0 0 20px 0;">
          It covers overall backup metrics, infrastructure health, repository usage,
          protected workloads and any failures that need attention.
        </p>
        <table role="presentation" cellspacing="0" cellpadding="0" width="100%" style="margin-bottom: 30px;">
          <tr>
            <td style="padding: 20px; background-color: #e8f5e9; border-radius: 8px; border-left: 4px solid #00B336;">
              <p style="margin: 0 0 8px 0; font-size: 15px; color: #1a1a1a; font-weight: 600;">PDF report attached</p>
              <p style="margin: 0; font-size: 13px; color: #666666;">Open the attached PDF for the full report with charts and details.</p>
            </td>
          </tr>
        </table>
        <p style="color: #444444; font-size: 15px; line-height: 1.7; margin: 0 0 10px 0;">Kind regards,</p>
        <p style="color: #1a1a1a; font-size: 15px; font-weight: 600; margin: 0;">{team}</p>
      </td>
    </tr>
    <tr>
      <td style="background-color: #f8f9fa; padding: 25px 40px; text-align: center; border-top: 1px solid #e0e0e0;">
        <p style="color: #888888; font-size: 11px; margin: 0;">
          This message and its attachment are confidential and intended only for the addressee.
        </p>
      </td>
    </tr>
  </table>
</body>
</html>
"""
