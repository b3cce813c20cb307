"""
Common chat-completion call utilities

Error taxonomy, the HTTP POST to a user-configured endpoint, and the
extraction of a translation from whatever the endpoint returned.
"""
import requests


class TranslationError(Exception):
    """Base class for every failure the translation engine reports."""
    pass


class NoProviderError(TranslationError):
    def __init__(self, message: str = "No translation provider is configured"):
        super().__init__(message)


class NoEndpointError(TranslationError):
    def __init__(self, message: str = "Provider base URL is not configured"):
        super().__init__(message)


class HttpStatusError(TranslationError):
    """Raised when the provider answers with a non-2xx status."""
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}")


class EmptyResponseError(TranslationError):
    def __init__(self, message: str = "Response content is empty"):
        super().__init__(message)


class UnrecognizedFormatError(TranslationError):
    def __init__(self, message: str = "Could not extract a translation from the response"):
        super().__init__(message)


class EmptyInputError(TranslationError):
    def __init__(self, message: str = "Nothing to translate"):
        super().__init__(message)


class TranslationCancelled(TranslationError):
    """Raised when the abort token fired (user cancel, supersede, or timeout)."""
    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Translation cancelled ({reason})")


def _non_empty(value) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return ""


def extract_translation(payload) -> str:
    """
    Pull the translated text out of a provider response.

    Accepts a raw text body or a decoded JSON object. Objects are searched in
    priority order: choices[0].message.content, choices[0].text, translation.

    Raises:
        EmptyResponseError: string payload that is blank
        UnrecognizedFormatError: anything else without a usable field
    """
    if isinstance(payload, str):
        trimmed = payload.strip()
        if trimmed:
            return trimmed
        raise EmptyResponseError()

    if isinstance(payload, dict):
        choices = payload.get("choices")
        if isinstance(choices, list) and choices:
            choice = choices[0] if isinstance(choices[0], dict) else {}
            message = choice.get("message")
            if isinstance(message, dict):
                content = _non_empty(message.get("content"))
                if content:
                    return content
            text = _non_empty(choice.get("text"))
            if text:
                return text
        translation = _non_empty(payload.get("translation"))
        if translation:
            return translation

    raise UnrecognizedFormatError()


def build_headers(api_key: str = "") -> dict:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def post_chat_completion(endpoint: str, payload: dict, api_key: str = "", timeout: float = 20.0):
    """
    POST a chat-completion payload and return the decoded body.

    The body is decoded as JSON when the response declares application/json,
    otherwise the raw text is returned untouched.

    Raises:
        HttpStatusError: non-2xx status
        requests.RequestException: transport failures (caller decides)
    """
    response = requests.post(
        endpoint,
        headers=build_headers(api_key),
        json=payload,
        timeout=timeout,
    )

    if not 200 <= response.status_code < 300:
        raise HttpStatusError(response.status_code, response.text[:500])

    content_type = response.headers.get("content-type", "") or ""
    if "application/json" in content_type.lower():
        try:
            return response.json()
        except ValueError:
            raise UnrecognizedFormatError("Response declared JSON but could not be decoded")
    return response.text
