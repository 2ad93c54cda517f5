"""Tests for AI content generation flows and routes."""

import json

import pytest

from ajira.ai import (
    AIModelError,
    AnthropicModel,
    BlogPostInput,
    ModelMessage,
    ModelResponse,
    SocialPostInput,
    TranslateInput,
    generate_blog_post,
    generate_social_posts,
    translate_blog_content,
)
from ajira.ai.flows import parse_json_reply
from ajira.errors import AIGenerationError
from ajira.main import app
from ajira.routes.ai import get_model


class FakeModel:
    """Returns canned replies and records the prompts it was given."""

    def __init__(self, reply: str):
        self.reply = reply
        self.calls = []

    def generate(self, messages, *, system=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system})
        return ModelResponse(content=self.reply, model_id="fake")


class TestParseJsonReply:
    def test_plain_json(self):
        assert parse_json_reply('{"title": "Hi"}') == {"title": "Hi"}

    def test_fenced_json(self):
        assert parse_json_reply('```json\n{"title": "Hi"}\n```') == {"title": "Hi"}

    def test_prose_around_json(self):
        assert parse_json_reply('Here you go: {"a": 1} Enjoy!') == {"a": 1}

    def test_no_json(self):
        with pytest.raises(AIGenerationError):
            parse_json_reply("I cannot help with that")

    def test_array_is_rejected(self):
        with pytest.raises(AIGenerationError):
            parse_json_reply("[1, 2]")


class TestFlows:
    @pytest.mark.asyncio
    async def test_blog_post(self):
        model = FakeModel(json.dumps({"title": "Safari Tips", "content": "<p>Pack light</p>"}))

        result = await generate_blog_post(
            model, BlogPostInput(topic="Serengeti safari tips", seo_keywords="safari")
        )

        assert result.title == "Safari Tips"
        prompt = model.calls[0]["messages"][0].content
        assert "Serengeti safari tips" in prompt
        assert "safari" in prompt

    @pytest.mark.asyncio
    async def test_blog_post_schema_mismatch(self):
        model = FakeModel(json.dumps({"headline": "Wrong keys"}))
        with pytest.raises(AIGenerationError, match="BlogPostOutput"):
            await generate_blog_post(model, BlogPostInput(topic="Zanzibar beaches"))

    @pytest.mark.asyncio
    async def test_social_posts_keep_requested_platforms_once(self):
        reply = {
            "posts": [
                {"platform": "Twitter", "post": "first"},
                {"platform": "Twitter", "post": "second"},
                {"platform": "LinkedIn", "post": "not requested"},
                {"platform": "Instagram", "post": "gram"},
            ]
        }
        model = FakeModel(json.dumps(reply))

        result = await generate_social_posts(
            model,
            SocialPostInput(content_idea="New spice tour", platforms=["Twitter", "Instagram"]),
        )

        assert [(p.platform, p.post) for p in result.posts] == [
            ("Twitter", "first"),
            ("Instagram", "gram"),
        ]

    @pytest.mark.asyncio
    async def test_social_posts_none_for_requested_platforms(self):
        model = FakeModel(json.dumps({"posts": [{"platform": "TikTok", "post": "x"}]}))
        with pytest.raises(AIGenerationError):
            await generate_social_posts(
                model, SocialPostInput(content_idea="New spice tour", platforms=["Facebook"])
            )

    @pytest.mark.asyncio
    async def test_translate_mentions_source_language(self):
        model = FakeModel(json.dumps({"translated_html_content": "<p>Karibu</p>"}))

        result = await translate_blog_content(
            model,
            TranslateInput(
                html_content="<p>Welcome</p>",
                target_language="Swahili",
                original_language="English",
            ),
        )

        assert result.translated_html_content == "<p>Karibu</p>"
        assert "from English into Swahili" in model.calls[0]["messages"][0].content


class TestAnthropicModel:
    def test_missing_api_key(self):
        with pytest.raises(AIModelError) as exc_info:
            AnthropicModel(api_key=None)
        assert exc_info.value.error_class == "auth"

    def test_system_messages_are_lifted(self):
        messages = [
            ModelMessage(role="system", content="Be brief."),
            ModelMessage(role="user", content="Hello"),
        ]
        api_messages, system = AnthropicModel._prepare_messages(messages, "Reply in JSON.")
        assert api_messages == [{"role": "user", "content": "Hello"}]
        assert system == "Reply in JSON.\n\nBe brief."


class TestAIRoutes:
    BODY = {"topic": "Kilimanjaro packing list"}

    def test_requires_creator_role(self, client, auth_headers):
        response = client.post("/api/ai/blog-post", json=self.BODY, headers=auth_headers)
        assert response.status_code == 403

    def test_blog_post_route(self, client, vendor_headers):
        model = FakeModel(json.dumps({"title": "Pack smart", "content": "<p>Layers</p>"}))
        app.dependency_overrides[get_model] = lambda: model

        response = client.post("/api/ai/blog-post", json=self.BODY, headers=vendor_headers)

        assert response.status_code == 200
        assert response.json()["title"] == "Pack smart"

    def test_bad_model_reply_is_502(self, client, vendor_headers):
        app.dependency_overrides[get_model] = lambda: FakeModel("not json at all")

        response = client.post("/api/ai/blog-post", json=self.BODY, headers=vendor_headers)

        assert response.status_code == 502
        assert response.json()["detail"] == "Model reply did not contain JSON"
