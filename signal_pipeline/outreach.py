"""
Follow-up actions on a scored lead: claim it, save its contacts,
generate outreach copy and compose the audit email.
"""

import logging
from typing import Dict, List, Optional

from .models import LeadRecord

logger = logging.getLogger(__name__)

CONTACT_SOURCE = "extension"
DEFAULT_TONE = "professional"
DEFAULT_SENDER = "Uptrade Media"

AUDIT_EMAIL_TEMPLATE = """Hi{greeting},

I ran a quick performance audit on your website and found some interesting opportunities for improvement.

View your full audit report here:
{link}

Would you have 15 minutes this week to discuss the findings?

Best,
{sender}"""


def first_email(contacts) -> Optional[str]:
    return next((c.email for c in contacts if c.email), None)


def contacts_payload(contacts) -> List[Dict]:
    """Email contacts for the CRM; the page's first phone rides along on each."""
    phone = next((c.phone for c in contacts if c.phone), None)
    return [
        {
            "email": c.email,
            "name": c.name or None,
            "phone": phone,
            "source": CONTACT_SOURCE,
        }
        for c in contacts
        if c.email
    ]


def claim(client, record: LeadRecord) -> Dict:
    """Add the company to the signed-in user's prospects."""
    return client.post(f"/crm/target-companies/{record.id}/claim") or {}


def save_contacts(client, record: LeadRecord, contacts) -> int:
    """
    Save the page's email contacts against the company.

    Returns the number of contacts sent (0 sends nothing).
    """
    payload = contacts_payload(contacts)
    if not payload:
        return 0
    client.post(f"/crm/target-companies/{record.id}/save-contacts", {"contacts": payload})
    logger.info(f"Saved {len(payload)} contacts for {record.domain}")
    return len(payload)


def generate_outreach(client, record: LeadRecord, preferences: Optional[Dict] = None) -> Dict:
    """Ask the API for an outreach email; returns {subject, body}."""
    preferences = preferences or {}
    data = client.post(f"/crm/target-companies/{record.id}/generate-outreach", {
        "tone": preferences.get("emailTone") or DEFAULT_TONE,
        "scheduling_url": preferences.get("schedulingUrl") or None,
        "include_audit": bool(record.linked_audit_id),
    }) or {}
    return {"subject": data.get("subject", ""), "body": data.get("body", "")}


def compose_audit_email(
    link: str,
    domain: Optional[str] = None,
    recipient: Optional[str] = None,
    sender: Optional[str] = None,
) -> Dict:
    """Build the audit email around a shareable report link."""
    return {
        "to": recipient or "",
        "subject": f"Website Audit for {domain or 'your site'}",
        "body": AUDIT_EMAIL_TEMPLATE.format(
            greeting="" if recipient else " there",
            link=link,
            sender=sender or DEFAULT_SENDER,
        ),
    }
