"""
Unit tests for the chat turn pipeline
"""
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from blindbot.core.errors import InvalidTenant, MediaDownloadFailed, ModelOutputInvalid
from blindbot.db.models import Lead, Tenant
from blindbot.schemas.chat import ChatRequest, ConversationTurn, TurnPart
from blindbot.services.turn_orchestrator import PHOTO_ONLY_TEXT, split_current_turn
from blindbot.services.visualization_gate import INSUFFICIENT_CREDITS_NOTE
from blindbot.tests.helpers import chat_body, model_output

ROOM_PHOTO = "https://cdn.example.com/uploads/room.jpg"
RENDER_URL = "https://renders.example.com/r/1.png"
SPACED_PHOTO = "https://cdn.example.com/uploads/living room.jpg"


@pytest.fixture
def orchestrator(container, db_session):
    return container.orchestrator(db_session)


def request_for(api_key, *texts):
    return ChatRequest.model_validate(chat_body(api_key, *texts))


class TestSplitCurrentTurn:

    def test_text_and_image_are_separated(self):
        turn = ConversationTurn(role="user", parts=[
            TurnPart(text="Here's my den"),
            TurnPart(text=f"[IMAGE_URL: {ROOM_PHOTO}]"),
        ])

        assert split_current_turn(turn) == ("Here's my den", ROOM_PHOTO)

    def test_text_only(self):
        turn = ConversationTurn(role="user", parts=[TurnPart(text="How much are shutters?")])
        assert split_current_turn(turn) == ("How much are shutters?", None)


class TestTurnOrchestrator:

    @pytest.mark.asyncio
    async def test_reply_passes_through(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant(company_name="Acme Blinds")
        fake_llm.generate_turn.return_value = model_output("We carry zebra shades!")

        response = await orchestrator.handle_turn(request_for(tenant.api_key, "Hi", "Hello!", "What do you sell?"))

        assert response.reply == "We carry zebra shades!"
        assert response.visualize is False
        assert response.render_url is None
        assert response.product_suggestions is None

    @pytest.mark.asyncio
    async def test_history_is_split_into_past_and_current(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant()

        await orchestrator.handle_turn(request_for(tenant.api_key, "Hi", "Hello! How can I help?", "Do you do shutters?"))

        system_prompt, past_turns, current_text, current_image = fake_llm.generate_turn.call_args.args
        assert [turn.role for turn in past_turns] == ["user", "model"]
        assert current_text == "Do you do shutters?"
        assert current_image is None
        assert "The Window Valet" in system_prompt

    @pytest.mark.asyncio
    async def test_unknown_api_key(self, orchestrator, fake_llm):
        with pytest.raises(InvalidTenant) as exc_info:
            await orchestrator.handle_turn(request_for("no-such-key", "Hi"))

        assert exc_info.value.reason == "unknown_api_key"
        fake_llm.generate_turn.assert_not_called()

    @pytest.mark.asyncio
    async def test_suspended_tenant(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant(status="suspended")

        with pytest.raises(InvalidTenant) as exc_info:
            await orchestrator.handle_turn(request_for(tenant.api_key, "Hi"))

        assert exc_info.value.tenant_id == tenant.id
        fake_llm.generate_turn.assert_not_called()

    @pytest.mark.asyncio
    async def test_unparseable_model_output(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant()
        fake_llm.generate_turn.return_value = "Sure, I'd love to help!"

        with pytest.raises(ModelOutputInvalid):
            await orchestrator.handle_turn(request_for(tenant.api_key, "Hi"))

    @pytest.mark.asyncio
    async def test_product_suggestions_come_from_catalog(self, orchestrator, make_tenant, fake_llm):
        names = [f"Shade {i}" for i in range(8)]
        tenant = make_tenant(products=names)
        fake_llm.generate_turn.return_value = model_output("Take a look!", show_products=True)

        response = await orchestrator.handle_turn(request_for(tenant.api_key, "Show me options"))

        assert [s.name for s in response.product_suggestions] == names[:6]
        assert response.product_suggestions[0].image == "https://cdn.example.com/shade-0.jpg"

    @pytest.mark.asyncio
    async def test_catalog_and_persona_reach_the_prompt(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant(products=["Zebra Shade"], bot_persona="You are Sam from Acme.")

        await orchestrator.handle_turn(request_for(tenant.api_key, "Hi"))

        system_prompt = fake_llm.generate_turn.call_args.args[0]
        assert "You are Sam from Acme." in system_prompt
        assert "- Zebra Shade" in system_prompt

    @pytest.mark.asyncio
    async def test_knowledge_reaches_the_prompt(self, orchestrator, make_tenant, add_knowledge, fake_llm):
        tenant = make_tenant()
        add_knowledge(tenant.id, "We offer free installation within 30 miles.", [1.0, 0.0, 0.0])

        await orchestrator.handle_turn(request_for(tenant.api_key, "Is installation free?"))

        system_prompt = fake_llm.generate_turn.call_args.args[0]
        assert "COMPANY KNOWLEDGE" in system_prompt
        assert "free installation within 30 miles" in system_prompt
        fake_llm.embed.assert_awaited_once_with("Is installation free?")

    @pytest.mark.asyncio
    async def test_two_step_render_uses_earlier_photo(
        self, orchestrator, make_tenant, fake_llm, fake_media_client, db_session
    ):
        tenant = make_tenant(products=["Zebra Shade"], image_credits=3)
        fake_llm.generate_turn.return_value = model_output(
            "Here's the zebra shade in your room!", visualize=True, product_name="Zebra Shade"
        )

        response = await orchestrator.handle_turn(request_for(
            tenant.api_key,
            f"Here's my living room [IMAGE_URL: {ROOM_PHOTO}]",
            "Lovely space! Which style do you like?",
            "Show me the Zebra Shade",
        ))

        assert response.visualize is True
        assert response.render_url == RENDER_URL
        assert response.reply.endswith(f"[RENDER_URL: {RENDER_URL}]")
        fake_media_client.download.assert_awaited_once_with(ROOM_PHOTO)

        db_session.expire_all()
        assert db_session.get(Tenant, tenant.id).image_credits == 2

    @pytest.mark.asyncio
    async def test_render_is_recorded_on_lead(self, orchestrator, make_tenant, fake_llm, db_session, fake_media_client):
        tenant = make_tenant(products=["Zebra Shade"])
        fake_llm.generate_turn.return_value = model_output(
            "Here you go, Ann!", visualize=True, product_name="Zebra Shade",
            lead_data={"name": "Ann", "phone": "555-0100"}
        )

        await orchestrator.handle_turn(request_for(tenant.api_key, f"I'm Ann, 555-0100 [IMAGE_URL: {ROOM_PHOTO}]"))

        db_session.expire_all()
        lead = db_session.query(Lead).filter(Lead.tenant_id == tenant.id).one()
        assert lead.customer_name == "Ann"
        assert lead.customer_images == [ROOM_PHOTO]
        assert lead.ai_renderings == [RENDER_URL]
        fake_media_client.download.assert_awaited_once_with(ROOM_PHOTO)

    @pytest.mark.asyncio
    async def test_out_of_credits_reply_carries_note(self, orchestrator, make_tenant, fake_llm, fake_image_service):
        tenant = make_tenant(products=["Zebra Shade"], image_credits=0)
        fake_llm.generate_turn.return_value = model_output("Here it is!", visualize=True, product_name="Zebra Shade")

        response = await orchestrator.handle_turn(request_for(tenant.api_key, f"[IMAGE_URL: {ROOM_PHOTO}] zebra please"))

        assert response.visualize is False
        assert response.render_url is None
        assert response.reply == f"Here it is!\n\n{INSUFFICIENT_CREDITS_NOTE}"
        fake_image_service.render.assert_not_called()

    @pytest.mark.asyncio
    async def test_photo_is_sent_for_vision(self, orchestrator, make_tenant, add_knowledge, fake_llm, db_session):
        tenant = make_tenant()
        add_knowledge(tenant.id, "We offer free installation within 30 miles.", [1.0, 0.0, 0.0])

        await orchestrator.handle_turn(request_for(tenant.api_key, f"[IMAGE_URL: {ROOM_PHOTO}]"))

        _, _, current_text, current_image = fake_llm.generate_turn.call_args.args
        assert current_text == PHOTO_ONLY_TEXT
        assert current_image.url == ROOM_PHOTO
        fake_llm.embed.assert_not_called()

        db_session.expire_all()
        lead = db_session.query(Lead).filter(Lead.tenant_id == tenant.id).one()
        assert lead.customer_images == [ROOM_PHOTO]

    @pytest.mark.asyncio
    async def test_unreachable_photo_does_not_fail_turn(self, orchestrator, make_tenant, fake_llm, fake_media_client):
        tenant = make_tenant()
        fake_media_client.download.side_effect = MediaDownloadFailed(ROOM_PHOTO, "HTTP 403")

        response = await orchestrator.handle_turn(request_for(tenant.api_key, f"What fits here? [IMAGE_URL: {ROOM_PHOTO}]"))

        assert response.reply == "Happy to help!"
        _, _, current_text, current_image = fake_llm.generate_turn.call_args.args
        assert current_text == "What fits here?"
        assert current_image is None

    @pytest.mark.asyncio
    async def test_lead_persistence_failure_still_replies(self, orchestrator, make_tenant, fake_llm):
        tenant = make_tenant()
        fake_llm.generate_turn.return_value = model_output("Thanks Bob!", lead_data={"name": "Bob", "phone": "555"})
        orchestrator.reconciler = Mock()
        orchestrator.reconciler.reconcile.side_effect = OperationalError("INSERT", {}, Exception("db locked"))

        response = await orchestrator.handle_turn(request_for(tenant.api_key, "I'm Bob, 555"))

        assert response.reply == "Thanks Bob!"
        orchestrator.reconciler.reconcile.assert_called_once()

    @pytest.mark.asyncio
    async def test_photo_file_name_with_spaces(self, orchestrator, make_tenant, fake_llm, fake_media_client):
        tenant = make_tenant(products=["Zebra Shade"], image_credits=3)
        fake_llm.generate_turn.return_value = model_output("Here it is!", visualize=True, product_name="Zebra Shade")

        response = await orchestrator.handle_turn(request_for(tenant.api_key, f"Show zebra here [IMAGE_URL: {SPACED_PHOTO}]"))

        _, _, current_text, current_image = fake_llm.generate_turn.call_args.args
        assert current_text == "Show zebra here"
        assert current_image.url == SPACED_PHOTO
        assert response.visualize is True
        fake_media_client.download.assert_awaited_once_with(SPACED_PHOTO)

    @pytest.mark.asyncio
    async def test_contact_turn_lead_keeps_earlier_photo(self, orchestrator, make_tenant, fake_llm, db_session):
        tenant = make_tenant()
        await orchestrator.handle_turn(request_for(tenant.api_key, f"[IMAGE_URL: {ROOM_PHOTO}]"))

        fake_llm.generate_turn.return_value = model_output(
            "Thanks Ann!", lead_data={"name": "Ann", "phone": "555-0100"}
        )
        await orchestrator.handle_turn(request_for(
            tenant.api_key,
            f"[IMAGE_URL: {ROOM_PHOTO}]",
            "Lovely room! Can I get your name and number?",
            "I'm Ann, 555-0100",
        ))

        db_session.expire_all()
        lead = db_session.query(Lead).filter(Lead.tenant_id == tenant.id, Lead.customer_phone == "555-0100").one()
        assert lead.customer_name == "Ann"
        assert lead.customer_images == [ROOM_PHOTO]

    @pytest.mark.asyncio
    async def test_anonymous_text_turn_does_not_attach_earlier_photo(self, orchestrator, make_tenant, db_session):
        tenant = make_tenant()

        await orchestrator.handle_turn(request_for(
            tenant.api_key, f"[IMAGE_URL: {ROOM_PHOTO}]", "Lovely room!", "What colors do you have?"
        ))

        assert db_session.query(Lead).filter(Lead.tenant_id == tenant.id).count() == 0
