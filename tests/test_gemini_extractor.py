"""Tests for the Gemini company extractor."""

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from app.services.gemini_extractor import (
    GeminiCompanyExtractor,
    parse_company_response,
    strip_code_fences,
)


class TestStripCodeFences:

    def test_plain_json_unchanged(self):
        assert strip_code_fences('{"company": "Mesh"}') == '{"company": "Mesh"}'

    def test_json_fence_removed(self):
        assert strip_code_fences('```json\n{"company": "Mesh"}\n```') == '{"company": "Mesh"}'

    def test_bare_fence_removed(self):
        assert strip_code_fences('```\n{"company": null}\n```') == '{"company": null}'

    def test_none_is_empty(self):
        assert strip_code_fences(None) == ""


class TestParseCompanyResponse:

    def test_valid_json(self):
        assert parse_company_response('{"company": "AppLovin"}').company == "AppLovin"

    def test_fenced_json(self):
        reply = '```json\n{"company": "Amazon Web Services (AWS)"}\n```'
        assert parse_company_response(reply).company == "Amazon Web Services (AWS)"

    def test_null_company(self):
        assert parse_company_response('{"company": null}').company is None

    @pytest.mark.parametrize("reply", [
        "not valid json",
        "[\"Stripe\"]",
        '{"company": 42}',
        '{"company": "   "}',
        '{"company": "null"}',
        '{"name": "Stripe"}',
    ])
    def test_unusable_replies_yield_none(self, reply):
        assert parse_company_response(reply).company is None


class TestGeminiCompanyExtractor:

    async def test_extracts_company_from_fenced_reply(self):
        llm = FakeListChatModel(responses=['```json\n{"company": "AppLovin"}\n```'])
        extractor = GeminiCompanyExtractor(llm=llm)

        result = await extractor.extract_company(
            "We received your application...",
            "Thank you for applying to AppLovin",
            "jobs@applovin.com",
        )

        assert result.company == "AppLovin"

    async def test_prompt_carries_subject_sender_and_body(self):
        seen = {}

        def capture(prompt_value):
            seen["text"] = prompt_value.to_string()
            return '{"company": "Stripe"}'

        extractor = GeminiCompanyExtractor(llm=RunnableLambda(capture))
        await extractor.extract_company("...applying to Stripe...", "Application received", "no-reply@greenhouse.io")

        assert "SUBJECT: Application received" in seen["text"]
        assert "FROM: no-reply@greenhouse.io" in seen["text"]
        assert "BODY: ...applying to Stripe..." in seen["text"]

    async def test_call_failure_yields_none(self):
        def explode(_prompt_value):
            raise RuntimeError("quota exceeded")

        extractor = GeminiCompanyExtractor(llm=RunnableLambda(explode))
        result = await extractor.extract_company("body", "subject", "sender")

        assert result.company is None

    async def test_missing_values_are_sent_as_empty(self):
        llm = FakeListChatModel(responses=['{"company": null}'])
        extractor = GeminiCompanyExtractor(llm=llm)

        result = await extractor.extract_company(None, None, None)

        assert result.company is None
