"""
Predefined campaign templates.

Each template is an ordered block list that seeds a new draft's content.
Bracketed text such as [Date] is a placeholder for the author to replace.
"""
import json
from typing import List, Optional

from models import Block, CampaignTemplate

THUMBNAIL_URL = "https://placehold.co/600x400/e2e8f0/475569?text={label}"


def _template(template_id: str, name: str, label: str, blocks: List[dict]) -> CampaignTemplate:
    return CampaignTemplate(
        id=template_id,
        name=name,
        thumbnail=THUMBNAIL_URL.format(label=label),
        blocks=[Block(**block) for block in blocks],
    )


TEMPLATES: List[CampaignTemplate] = [
    _template("welcome-email", "Welcome Email", "Welcome+Template", [
        {"id": "header", "type": "text", "content": "**Welcome to Our Community! 👋**"},
        {"id": "intro", "type": "text",
         "content": "We're thrilled to have you on board! Here's what you can expect from us:"},
        {"id": "benefits", "type": "text",
         "content": "• Weekly newsletters with industry insights\n• Exclusive member discounts\n"
                    "• Early access to new features\n• Community events and webinars"},
        {"id": "cta", "type": "button", "content": "Get Started", "url": "#"},
    ]),
    _template("monthly-newsletter", "Monthly Newsletter", "Newsletter+Template", [
        {"id": "header", "type": "text", "content": "**Monthly Highlights - [Month] [Year]**"},
        {"id": "featured-image", "type": "image", "content": ""},
        {"id": "intro", "type": "text",
         "content": "**Top Stories This Month**\n\n1. [Headline One]\n2. [Headline Two]\n3. [Headline Three]"},
        {"id": "main-story", "type": "text",
         "content": "**Featured Story**\n\nYour main story content goes here..."},
        {"id": "cta", "type": "button", "content": "Read More", "url": "#"},
    ]),
    _template("product-launch", "Product Launch", "Product+Launch", [
        {"id": "header", "type": "text", "content": "**Introducing Our Latest Product 🚀**"},
        {"id": "product-image", "type": "image", "content": ""},
        {"id": "description", "type": "text",
         "content": "**Transform Your Experience**\n\n"
                    "Discover how our new product can revolutionize your workflow..."},
        {"id": "features", "type": "text",
         "content": "**Key Features:**\n\n✨ Feature One\n🎯 Feature Two\n⚡ Feature Three"},
        {"id": "pricing", "type": "text",
         "content": "**Special Launch Offer**\n\nGet 20% off during our launch week!"},
        {"id": "cta", "type": "button", "content": "Shop Now", "url": "#"},
    ]),
    _template("event-invitation", "Event Invitation", "Event+Template", [
        {"id": "header", "type": "text", "content": "**You're Invited! 🎉**"},
        {"id": "event-banner", "type": "image", "content": ""},
        {"id": "details", "type": "text",
         "content": "**Event Details**\n\n📅 Date: [Date]\n⏰ Time: [Time]\n📍 Location: [Location]"},
        {"id": "description", "type": "text", "content": "Join us for an exciting event filled with..."},
        {"id": "cta", "type": "button", "content": "RSVP Now", "url": "#"},
    ]),
    _template("feedback-survey", "Feedback Survey", "Feedback+Template", [
        {"id": "header", "type": "text", "content": "**We Value Your Feedback! 📝**"},
        {"id": "message", "type": "text",
         "content": "Your opinion helps us improve our services. "
                    "Please take a moment to share your thoughts."},
        {"id": "time-estimate", "type": "text",
         "content": "⏱️ _This survey takes approximately 5 minutes to complete._"},
        {"id": "cta", "type": "button", "content": "Take Survey", "url": "#"},
    ]),
    _template("promotional", "Special Offer", "Promo+Template", [
        {"id": "header", "type": "text", "content": "**Limited Time Offer! ⏰**"},
        {"id": "promo-image", "type": "image", "content": ""},
        {"id": "offer", "type": "text", "content": "**SAVE 30%**\n\nUse code: **SPECIAL30**"},
        {"id": "terms", "type": "text", "content": "_Offer valid until [Date]. Terms and conditions apply._"},
        {"id": "cta", "type": "button", "content": "Shop Now", "url": "#"},
    ]),
]


def list_templates() -> List[CampaignTemplate]:
    return list(TEMPLATES)


def get_template(template_id: str) -> Optional[CampaignTemplate]:
    return next((t for t in TEMPLATES if t.id == template_id), None)


def template_content(template: CampaignTemplate) -> str:
    """Serialize a template's blocks the way campaign content is stored."""
    return json.dumps([block.model_dump(exclude_none=True) for block in template.blocks])
