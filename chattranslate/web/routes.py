import asyncio
import time
from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.security import APIKeyHeader

from .. import config
from ..config import (
    MAX_TERMINOLOGY_FILE_SIZE,
    RATE_LIMIT_CLEANUP_THRESHOLD,
    RATE_LIMIT_REQUESTS,
    RATE_LIMIT_WINDOW,
)
from ..core.models import MessageState
from ..core.terminology import TerminologyImportError
from ..core.utils.llm import (
    EmptyInputError,
    EmptyResponseError,
    HttpStatusError,
    NoEndpointError,
    NoProviderError,
    TranslationError,
    UnrecognizedFormatError,
)
from . import manager
from .manager import UnknownProviderError
from .models import (
    CacheStatsResponse,
    LibrarySummary,
    LibraryUpdateRequest,
    MessageToggleRequest,
    PresetListResponse,
    ProviderCreateRequest,
    ProviderCreateResponse,
    ProviderTestResponse,
    QuickTranslateRequest,
    QuickTranslateResponse,
    SettingsResponse,
)

router = APIRouter(prefix="/api")

# Authentication
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

# Rate limiting (simple in-memory implementation)
_rate_limit_store: dict = defaultdict(list)

MAX_MESSAGE_KEY_LENGTH = 256


def get_client_ip(request: Request) -> str:
    """Get client IP, considering proxy headers."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def check_rate_limit(request: Request) -> None:
    """Check if client has exceeded rate limit."""
    client_ip = get_client_ip(request)
    current_time = time.time()

    _rate_limit_store[client_ip] = [
        t for t in _rate_limit_store[client_ip]
        if current_time - t < RATE_LIMIT_WINDOW
    ]

    # Drop inactive IPs once the table grows past the threshold
    if len(_rate_limit_store) > RATE_LIMIT_CLEANUP_THRESHOLD:
        inactive_ips = [
            ip for ip, timestamps in _rate_limit_store.items()
            if not timestamps or current_time - max(timestamps) > RATE_LIMIT_WINDOW * 5
        ]
        for ip in inactive_ips:
            del _rate_limit_store[ip]

    if len(_rate_limit_store[client_ip]) >= RATE_LIMIT_REQUESTS:
        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Max {RATE_LIMIT_REQUESTS} requests per {RATE_LIMIT_WINDOW}s"
        )

    _rate_limit_store[client_ip].append(current_time)


async def verify_api_key(
    request: Request,
    api_key: Optional[str] = Depends(API_KEY_HEADER)
) -> None:
    """Verify API key if authentication is enabled."""
    if not config.AUTH_ENABLED:
        return

    if not api_key:
        raise HTTPException(status_code=401, detail="API key required. Provide X-API-Key header.")

    if api_key not in config.API_KEYS:
        raise HTTPException(status_code=403, detail="Invalid API key.")


def validate_message_key(message_key: str) -> str:
    key = message_key.strip()
    if not key or len(key) > MAX_MESSAGE_KEY_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid message key")
    return key


def translation_http_error(error: TranslationError) -> HTTPException:
    """Map an engine failure to an HTTP error."""
    if isinstance(error, (NoProviderError, NoEndpointError, EmptyInputError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, HttpStatusError):
        return HTTPException(status_code=502, detail=f"Provider returned HTTP {error.status}")
    if isinstance(error, (EmptyResponseError, UnrecognizedFormatError)):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=502, detail=f"Translation failed: {error}")


@router.post("/messages/{message_key}/toggle", response_model=MessageState, dependencies=[Depends(verify_api_key)])
async def toggle_message(request: Request, message_key: str, body: MessageToggleRequest):
    """Translate a message, or hide (and cancel) its translation when already shown."""
    check_rate_limit(request)
    key = validate_message_key(message_key)

    state = await asyncio.to_thread(
        manager.translation_manager.toggle_message,
        key,
        body.main_text,
        body.quoted_texts,
        body.target_language,
    )
    if state is None:
        raise HTTPException(status_code=400, detail="Message has no text to translate")
    return state


@router.get("/messages/{message_key}", response_model=MessageState, dependencies=[Depends(verify_api_key)])
async def get_message(request: Request, message_key: str):
    check_rate_limit(request)
    state = manager.translation_manager.get_message(validate_message_key(message_key))
    if state is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return state


@router.post("/messages/{message_key}/cancel", dependencies=[Depends(verify_api_key)])
async def cancel_message(request: Request, message_key: str):
    check_rate_limit(request)
    key = validate_message_key(message_key)
    if not manager.translation_manager.cancel_message(key):
        raise HTTPException(status_code=404, detail="No translation in progress for this message")
    return {"message": "Translation cancelled", "message_key": key}


@router.post("/translate", response_model=QuickTranslateResponse, dependencies=[Depends(verify_api_key)])
async def quick_translate(request: Request, body: QuickTranslateRequest):
    """Translate standalone text such as composer input."""
    check_rate_limit(request)
    try:
        translation = await asyncio.to_thread(
            manager.translation_manager.quick_translate,
            body.text,
            body.target_language,
        )
    except TranslationError as e:
        raise translation_http_error(e)
    return QuickTranslateResponse(translation=translation, cancelled=translation is None)


@router.get("/cache", response_model=CacheStatsResponse, dependencies=[Depends(verify_api_key)])
async def get_cache_stats(request: Request):
    check_rate_limit(request)
    return manager.translation_manager.cache_stats()


@router.delete("/cache", dependencies=[Depends(verify_api_key)])
async def clear_cache(request: Request):
    check_rate_limit(request)
    manager.translation_manager.clear_cache()
    return {"message": "Cache cleared"}


@router.get("/settings", response_model=SettingsResponse, dependencies=[Depends(verify_api_key)])
async def get_settings(request: Request):
    check_rate_limit(request)
    return manager.translation_manager.masked_settings()


@router.put("/settings", response_model=SettingsResponse, dependencies=[Depends(verify_api_key)])
async def update_settings(request: Request, skip_runtime_reset: bool = False):
    check_rate_limit(request)
    try:
        raw = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Settings body must be JSON")
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail="Settings body must be a JSON object")
    manager.translation_manager.update_settings(raw, skip_runtime_reset=skip_runtime_reset)
    return manager.translation_manager.masked_settings()


@router.get("/providers/presets", response_model=PresetListResponse, dependencies=[Depends(verify_api_key)])
async def list_provider_presets(request: Request):
    """Presets and target languages offered by the host settings UI."""
    check_rate_limit(request)
    return manager.translation_manager.list_presets()


@router.post("/providers", response_model=ProviderCreateResponse, dependencies=[Depends(verify_api_key)])
async def add_provider(request: Request, body: ProviderCreateRequest):
    check_rate_limit(request)
    try:
        provider_id, provider = manager.translation_manager.add_provider(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ProviderCreateResponse(
        provider_id=provider_id,
        provider=manager.translation_manager.mask_provider(provider),
    )


@router.post("/providers/{provider_id}/test", response_model=ProviderTestResponse, dependencies=[Depends(verify_api_key)])
async def test_provider(request: Request, provider_id: str):
    check_rate_limit(request)
    try:
        preview = await asyncio.to_thread(manager.translation_manager.test_provider, provider_id)
    except UnknownProviderError:
        raise HTTPException(status_code=404, detail="Provider not found")
    except TranslationError as e:
        raise translation_http_error(e)
    return ProviderTestResponse(provider_id=provider_id, preview=preview)


@router.get("/terminology", response_model=list[LibrarySummary], dependencies=[Depends(verify_api_key)])
async def list_terminology(request: Request):
    check_rate_limit(request)
    return manager.translation_manager.list_libraries()


@router.post("/terminology/import", response_model=LibrarySummary, dependencies=[Depends(verify_api_key)])
async def import_terminology(
    request: Request,
    file: UploadFile = File(...),
    name: str = Form(""),
):
    check_rate_limit(request)

    content = await file.read(MAX_TERMINOLOGY_FILE_SIZE + 1)
    if len(content) > MAX_TERMINOLOGY_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size: {MAX_TERMINOLOGY_FILE_SIZE // 1024}KB"
        )

    library_name = name.strip() or (file.filename or "").rsplit(".", 1)[0] or "Glossary"
    try:
        library = manager.translation_manager.import_library(content, library_name)
    except TerminologyImportError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return LibrarySummary(id=library.id, name=library.name, enabled=library.enabled, term_count=len(library.terms))


@router.patch("/terminology/{library_id}", dependencies=[Depends(verify_api_key)])
async def update_terminology(request: Request, library_id: str, body: LibraryUpdateRequest):
    check_rate_limit(request)
    if not manager.translation_manager.set_library_enabled(library_id, body.enabled):
        raise HTTPException(status_code=404, detail="Library not found")
    return {"message": "Library updated", "library_id": library_id, "enabled": body.enabled}


@router.delete("/terminology/{library_id}", dependencies=[Depends(verify_api_key)])
async def delete_terminology(request: Request, library_id: str):
    check_rate_limit(request)
    if not manager.translation_manager.remove_library(library_id):
        raise HTTPException(status_code=404, detail="Library not found")
    return {"message": "Library removed", "library_id": library_id}
