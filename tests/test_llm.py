"""Tests for response extraction and the chat-completion POST helper."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from chattranslate.core.utils.llm import (
    EmptyResponseError,
    HttpStatusError,
    UnrecognizedFormatError,
    build_headers,
    extract_translation,
    post_chat_completion,
)
from conftest import POST_TARGET, make_response


class TestExtractTranslation:
    def test_raw_string_is_trimmed(self):
        assert extract_translation("  你好 \n") == "你好"

    def test_blank_string_is_empty_response(self):
        with pytest.raises(EmptyResponseError):
            extract_translation("   ")

    def test_message_content_has_priority(self):
        payload = {
            "choices": [{"message": {"content": " from message "}, "text": "from text"}],
            "translation": "from translation",
        }

        assert extract_translation(payload) == "from message"

    def test_falls_back_to_choice_text(self):
        payload = {"choices": [{"message": {"content": "  "}, "text": "from text"}], "translation": "t"}

        assert extract_translation(payload) == "from text"

    def test_falls_back_to_translation_field(self):
        assert extract_translation({"choices": [], "translation": "bonjour"}) == "bonjour"

    def test_unknown_shape(self):
        with pytest.raises(UnrecognizedFormatError):
            extract_translation({"foo": "bar"})

    def test_non_dict_non_string(self):
        with pytest.raises(UnrecognizedFormatError):
            extract_translation(["not", "a", "dict"])

    def test_only_blank_fields(self):
        with pytest.raises(UnrecognizedFormatError):
            extract_translation({"choices": [{"message": {"content": ""}}], "translation": " "})


class TestPostChatCompletion:
    def test_json_body_is_decoded(self):
        body = {"choices": [{"message": {"content": "hi"}}]}
        with patch(POST_TARGET, return_value=make_response(body)) as post:
            result = post_chat_completion("https://api.x", {"model": "m"}, "sk-1", timeout=5)

        assert result == body
        post.assert_called_once_with(
            "https://api.x",
            headers={"Content-Type": "application/json", "Authorization": "Bearer sk-1"},
            json={"model": "m"},
            timeout=5,
        )

    def test_content_type_with_charset_is_json(self):
        response = make_response({"translation": "x"}, content_type="application/json; charset=utf-8")
        with patch(POST_TARGET, return_value=response):
            assert post_chat_completion("https://api.x", {}) == {"translation": "x"}

    def test_plain_text_body_returned_raw(self):
        response = make_response("  hola  ", content_type="text/plain")
        with patch(POST_TARGET, return_value=response):
            assert post_chat_completion("https://api.x", {}) == "  hola  "

    def test_non_2xx_raises_with_status(self):
        response = make_response(None, status_code=401, text="unauthorized")
        with patch(POST_TARGET, return_value=response):
            with pytest.raises(HttpStatusError) as excinfo:
                post_chat_completion("https://api.x", {})

        assert excinfo.value.status == 401
        assert str(excinfo.value) == "HTTP 401"
        assert excinfo.value.body == "unauthorized"

    def test_undecodable_json(self):
        response = make_response(None)
        response.json.side_effect = ValueError("bad json")
        with patch(POST_TARGET, return_value=response):
            with pytest.raises(UnrecognizedFormatError):
                post_chat_completion("https://api.x", {})

    def test_headers_without_key(self):
        assert build_headers("") == {"Content-Type": "application/json"}
