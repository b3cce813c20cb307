"""Tests for the single-text request pipeline."""

from __future__ import annotations

import time
from unittest.mock import patch

import pytest
import requests

from chattranslate.core.models import ProviderConfig
from chattranslate.core.translate import Translator
from chattranslate.core.utils.cancel import CancellationToken
from chattranslate.core.utils.llm import (
    HttpStatusError,
    NoEndpointError,
    NoProviderError,
    TranslationCancelled,
    TranslationError,
    UnrecognizedFormatError,
)
from conftest import POST_TARGET, chat_response, make_response


class TestTranslate:
    def test_hello_is_cached_after_first_call(self, translator, provider, cache):
        with patch(POST_TARGET, return_value=chat_response("你好")) as post:
            first = translator.translate(provider, "Hello", None, "简体中文")
            second = translator.translate(provider, "Hello", None, "简体中文")

        assert first == second == "你好"
        assert post.call_count == 1
        assert cache.stats()["direct_entries"] == 1

    def test_cache_key_includes_language(self, translator, provider):
        with patch(POST_TARGET, return_value=chat_response("Bonjour")) as post:
            translator.translate(provider, "Hello", None, "Français")
            translator.translate(provider, "Hello", None, "Deutsch")

        assert post.call_count == 2

    def test_payload_shape(self, translator, provider):
        with patch(POST_TARGET, return_value=chat_response("你好")) as post:
            translator.translate(provider, "Hello", None, "简体中文")

        args, kwargs = post.call_args
        assert args[0] == "https://api.x/v1/chat/completions"
        assert kwargs["headers"]["Authorization"] == "Bearer sk-aaaa1111bbbb"
        payload = kwargs["json"]
        assert payload["model"] == "m1"
        assert payload["temperature"] == 0.2
        assert [message["role"] for message in payload["messages"]] == ["system", "user"]
        assert "简体中文" in payload["messages"][0]["content"]
        assert "{{targetLanguage}}" not in payload["messages"][0]["content"]
        assert payload["messages"][1]["content"].endswith("reply with translation only: Hello")

    def test_custom_prompt_template(self, translator, provider):
        with patch(POST_TARGET, return_value=chat_response("hola")) as post:
            translator.translate(provider, "Hello", None, "Español", prompt_template="Into {{targetLanguage}} please")

        assert post.call_args.kwargs["json"]["messages"][0]["content"] == "Into Español please"

    def test_glossary_round_trip(self, translator, provider, terminology, acme_library):
        terminology.add_library(acme_library)

        with patch(POST_TARGET, return_value=chat_response("PLACEHOLDER_0 公司")) as post:
            result = translator.translate(provider, "Acme Corp", None, "简体中文")

        assert result == "艾克姆公司"
        user_prompt = post.call_args.kwargs["json"]["messages"][1]["content"]
        assert "PLACEHOLDER_0 Corp" in user_prompt
        assert "Acme" not in user_prompt
        assert "placeholder" in user_prompt.lower()

    def test_glossary_only_text_skips_provider(self, translator, provider, terminology, acme_library):
        terminology.add_library(acme_library)

        with patch(POST_TARGET) as post:
            result = translator.translate(provider, "Acme!", None, "简体中文")

        assert result == "艾克姆!"
        post.assert_not_called()

    def test_http_error_propagates_and_skips_cache(self, translator, provider, cache):
        with patch(POST_TARGET, return_value=make_response(None, status_code=500, text="boom")):
            with pytest.raises(HttpStatusError) as excinfo:
                translator.translate(provider, "Hello", None, "简体中文")

        assert excinfo.value.status == 500
        assert len(cache) == 0

    def test_unrecognized_format_skips_cache(self, translator, provider, cache):
        with patch(POST_TARGET, return_value=make_response({"foo": "bar"})):
            with pytest.raises(UnrecognizedFormatError):
                translator.translate(provider, "Hello", None, "简体中文")

        assert len(cache) == 0

    def test_transport_failure_is_translation_error(self, translator, provider):
        with patch(POST_TARGET, side_effect=requests.ConnectionError("refused")):
            with pytest.raises(TranslationError):
                translator.translate(provider, "Hello", None, "简体中文")

    def test_missing_provider(self, translator):
        with pytest.raises(NoProviderError):
            translator.translate(None, "Hello", None, "简体中文")

    def test_missing_endpoint(self, translator):
        with pytest.raises(NoEndpointError):
            translator.translate(ProviderConfig(model_id="m1", base_url="  "), "Hello", None, "English")


class TestCancellation:
    def test_cancelled_token_never_calls_provider(self, translator, provider):
        token = CancellationToken()
        token.cancel("user")

        with patch(POST_TARGET) as post:
            with pytest.raises(TranslationCancelled) as excinfo:
                translator.translate(provider, "Hello", token, "简体中文")

        post.assert_not_called()
        assert excinfo.value.reason == "user"

    def test_cancel_during_request_discards_result(self, translator, provider, cache):
        token = CancellationToken()

        def cancel_then_answer(*args, **kwargs):
            token.cancel("superseded")
            return chat_response("你好")

        with patch(POST_TARGET, side_effect=cancel_then_answer):
            with pytest.raises(TranslationCancelled):
                translator.translate(provider, "Hello", token, "简体中文")

        assert len(cache) == 0

    def test_transport_timeout_is_a_cancellation(self, translator, provider, cache):
        token = CancellationToken()

        with patch(POST_TARGET, side_effect=requests.Timeout("slow")):
            with pytest.raises(TranslationCancelled) as excinfo:
                translator.translate(provider, "Hello", token, "简体中文")

        assert excinfo.value.reason == "timeout"
        assert token.cancelled
        assert len(cache) == 0

    def test_timer_fires_on_overrun(self, translator, provider, cache):
        def slow_answer(*args, **kwargs):
            time.sleep(0.3)
            return chat_response("你好")

        with patch(POST_TARGET, side_effect=slow_answer):
            with pytest.raises(TranslationCancelled) as excinfo:
                translator.translate(provider, "Hello", None, "简体中文", timeout_ms=20)

        assert excinfo.value.reason == "timeout"
        assert len(cache) == 0

    def test_timer_always_stopped(self, translator, provider):
        with patch("chattranslate.core.translate.threading.Timer") as timer_cls:
            with patch(POST_TARGET, side_effect=requests.ConnectionError("refused")):
                with pytest.raises(TranslationError):
                    translator.translate(provider, "Hello", None, "简体中文", timeout_ms=1500)

        timer_cls.assert_called_once()
        assert timer_cls.call_args.args[0] == 1.5
        timer_cls.return_value.start.assert_called_once()
        timer_cls.return_value.cancel.assert_called_once()


class TestProviderConnectivity:
    def test_preview_is_truncated(self, translator, provider):
        with patch(POST_TARGET, return_value=chat_response("a" * 60)):
            preview = translator.test_provider(provider, "简体中文")

        assert preview == "a" * 48 + "…"

    def test_connectivity_test_bypasses_cache(self, translator, provider, cache):
        with patch(POST_TARGET, return_value=chat_response("你好，这是一个连通性测试。")) as post:
            translator.test_provider(provider, "简体中文")
            preview = translator.test_provider(provider, "简体中文")

        assert preview == "你好，这是一个连通性测试。"
        assert post.call_count == 2
        assert len(cache) == 0
        assert post.call_args.kwargs["json"]["messages"][1]["content"].endswith(Translator.CONNECTIVITY_TEXT)
