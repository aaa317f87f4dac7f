"""
MJML Email Templates
Responsive templates for booking reminders and marketing campaigns
"""

import html
from typing import Optional

# App theme colors
THEME = {
    "primary": "#14b8a6",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    company_name: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              Sent by {company_name}
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def reminder_template(
    title: str,
    greeting: str,
    intro: str,
    details: list[tuple[str, Optional[str]]],
    company_name: str,
    closing: str,
) -> str:
    """
    Appointment/assignment reminder with a label/value detail block.
    Detail rows whose value is empty are skipped.
    """
    rows = "<br/>\n".join(
        f"<strong>{html.escape(label)}:</strong> {html.escape(str(value))}"
        for label, value in details
        if value
    )
    content = f"""
    <mj-text>{html.escape(greeting)},</mj-text>
    <mj-text>{html.escape(intro)}</mj-text>
    <mj-text padding="16px 0 0 0">
      {rows}
    </mj-text>
    <mj-text color="{THEME['text_muted']}" padding="24px 0 0 0">
      {html.escape(closing)}
    </mj-text>
    """
    return get_base_template(
        title=html.escape(title),
        preview_text=html.escape(title),
        content_sections=content,
        company_name=html.escape(company_name),
    )


def campaign_email_template(subject: str, body: str, company_name: str) -> str:
    """Marketing campaign body, one paragraph per blank-line separated block"""
    paragraphs = "\n".join(
        f"<mj-text>{html.escape(block).replace(chr(10), '<br/>')}</mj-text>"
        for block in body.split("\n\n")
        if block.strip()
    )
    return get_base_template(
        title=html.escape(subject),
        preview_text=html.escape(subject),
        content_sections=paragraphs,
        company_name=html.escape(company_name),
    )
