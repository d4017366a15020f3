"""
Tests for the predefined campaign templates.
"""
import pytest

from campaign_service import UnknownTemplateError, create_campaign_from_template
from campaign_templates import get_template, list_templates, template_content
from db_models import CampaignStatus
from mail_service import blocks_to_html, parse_blocks
from models import Block, CampaignFromTemplateRequest

TEMPLATE_IDS = [
    "welcome-email",
    "monthly-newsletter",
    "product-launch",
    "event-invitation",
    "feedback-survey",
    "promotional",
]


class TestCatalogue:

    def test_all_templates_present(self):
        assert [t.id for t in list_templates()] == TEMPLATE_IDS

    @pytest.mark.parametrize("template_id", TEMPLATE_IDS)
    def test_template_parses_and_renders(self, template_id):
        template = get_template(template_id)

        blocks = parse_blocks(template_content(template))

        assert len(blocks) == len(template.blocks)
        assert [Block(**b) for b in blocks] == template.blocks
        html = blocks_to_html(blocks)
        assert 'class="text-block"' in html
        assert '<a href="#"' in html

    def test_unicode_survives_serialization(self):
        blocks = parse_blocks(template_content(get_template("welcome-email")))
        assert blocks[0]["content"] == "**Welcome to Our Community! 👋**"

    def test_unknown_template(self):
        assert get_template("nope") is None


class TestCreateFromTemplate:

    def test_creates_draft_with_template_content(self, db_session):
        campaign = create_campaign_from_template(db_session, CampaignFromTemplateRequest(
            template_id="event-invitation", recipients=["A@example.com"],
        ))

        assert campaign.status == CampaignStatus.DRAFT
        assert campaign.name == "Event Invitation"
        assert campaign.subject == "Event Invitation"
        assert campaign.recipients == ["a@example.com"]
        assert parse_blocks(campaign.content)[-1]["content"] == "RSVP Now"

    def test_name_and_subject_override(self, db_session):
        campaign = create_campaign_from_template(db_session, CampaignFromTemplateRequest(
            template_id="promotional", name="Spring sale", subject="30% off",
        ))
        assert campaign.name == "Spring sale"
        assert campaign.subject == "30% off"

    def test_unknown_template_rejected(self, db_session):
        with pytest.raises(UnknownTemplateError):
            create_campaign_from_template(db_session, CampaignFromTemplateRequest(template_id="nope"))


class TestTemplatesApi:

    @pytest.mark.asyncio
    async def test_list_templates(self, client, admin_headers):
        response = await client.get("/api/campaigns/templates", headers=admin_headers)

        assert response.status_code == 200
        templates = response.json()
        assert [t["id"] for t in templates] == TEMPLATE_IDS
        assert templates[0]["blocks"][0]["type"] == "text"

    @pytest.mark.asyncio
    async def test_list_requires_admin(self, client):
        response = await client.get("/api/campaigns/templates")
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_create_from_template(self, client, admin_headers):
        response = await client.post("/api/campaigns/from-template", headers=admin_headers, json={
            "template_id": "feedback-survey", "subject": "Tell us what you think",
        })

        assert response.status_code == 200
        assert response.json()["status"] == "draft"
        assert response.json()["subject"] == "Tell us what you think"

    @pytest.mark.asyncio
    async def test_create_from_unknown_template(self, client, admin_headers):
        response = await client.post("/api/campaigns/from-template", headers=admin_headers, json={
            "template_id": "nope",
        })
        assert response.status_code == 404
