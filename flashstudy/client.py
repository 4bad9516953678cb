"""Data store collaborator: the contract the engine relies on and its REST implementation."""

import logging
from datetime import datetime
from typing import Callable, List, Optional, Protocol

import httpx
from pydantic import BaseModel

from .config import get_settings
from .models import (
    CreateFlashcardCommand,
    CreateProjectCommand,
    Flashcard,
    FlashcardList,
    GenerateFlashcardsResponse,
    Project,
    ProjectList,
    StudySession,
    UpdateFlashcardCommand,
    UpdateProjectCommand,
)
from .result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.ACCESS_DENIED,
    403: ErrorKind.ACCESS_DENIED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
}


class DataStore(Protocol):
    async def fetch_cards(self, project_id: str) -> Result: ...

    async def create_card(self, project_id: str, command: CreateFlashcardCommand) -> Result: ...

    async def update_card(self, project_id: str, card_id: str, command: UpdateFlashcardCommand) -> Result: ...

    async def delete_card(self, project_id: str, card_id: str) -> Result: ...

    async def list_projects(self, page: int = 1, limit: int = 10) -> Result: ...

    async def create_project(self, command: CreateProjectCommand) -> Result: ...

    async def update_project(self, project_id: str, command: UpdateProjectCommand) -> Result: ...

    async def delete_project(self, project_id: str) -> Result: ...

    async def create_session(self, project_id: str, start_time: datetime) -> Result: ...

    async def end_session(self, session_id: str, end_time: datetime, cards_reviewed: int) -> Result: ...

    async def generate_drafts(self, project_id: str, text: str, desired_count: int) -> Result: ...


def error_from_response(response: httpx.Response) -> Err:
    status = response.status_code
    kind = STATUS_KINDS.get(status)
    if kind is None:
        kind = ErrorKind.SERVER if status >= 500 else ErrorKind.VALIDATION

    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or response.reason_phrase or f"HTTP {status}"
    details = body.get("details") or {}
    fields = details.get("fields") if isinstance(details, dict) else None
    return Err(kind, message, dict(fields or {}))


def _payload(command: BaseModel) -> dict:
    return command.model_dump(mode="json", exclude_unset=True)


class HttpDataStore:
    """DataStore over the REST API. Transport and HTTP failures come back as ``Err``."""

    def __init__(self, base_url: Optional[str] = None, client: Optional[httpx.AsyncClient] = None,
                 timeout: Optional[float] = None, page_size: int = 100):
        settings = get_settings()
        if client is None:
            client = httpx.AsyncClient(
                base_url=base_url or settings.api_url,
                timeout=httpx.Timeout(timeout or settings.http_timeout),
            )
        self._client = client
        self.page_size = page_size

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def _request(self, method: str, path: str, parse: Callable[[httpx.Response], object], **kwargs) -> Result:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            return Err(ErrorKind.TIMEOUT, "The request timed out")
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            return Err(ErrorKind.NETWORK, "Could not reach the server")

        if response.is_error:
            error = error_from_response(response)
            logger.info(f"{method} {path} -> {response.status_code} ({error.message})")
            return error

        try:
            return Ok(parse(response))
        except ValueError as e:
            logger.error(f"{method} {path}: unreadable response: {e}")
            return Err(ErrorKind.SERVER, "Unexpected response from the server")

    # --- Flashcards ---

    async def fetch_cards(self, project_id: str) -> Result:
        cards: List[Flashcard] = []
        page = 1
        while True:
            result = await self._request(
                "GET", f"/api/projects/{project_id}/flashcards",
                lambda r: FlashcardList.model_validate(r.json()),
                params={"page": page, "limit": self.page_size},
            )
            if isinstance(result, Err):
                return result
            listing = result.value
            cards.extend(listing.flashcards)
            if not listing.flashcards or len(cards) >= listing.total:
                return Ok(cards)
            page += 1

    async def create_card(self, project_id: str, command: CreateFlashcardCommand) -> Result:
        return await self._request(
            "POST", f"/api/projects/{project_id}/flashcards",
            lambda r: Flashcard.model_validate(r.json()),
            json=_payload(command),
        )

    async def update_card(self, project_id: str, card_id: str, command: UpdateFlashcardCommand) -> Result:
        return await self._request(
            "PATCH", f"/api/projects/{project_id}/flashcards/{card_id}",
            lambda r: Flashcard.model_validate(r.json()),
            json=_payload(command),
        )

    async def delete_card(self, project_id: str, card_id: str) -> Result:
        return await self._request("DELETE", f"/api/projects/{project_id}/flashcards/{card_id}", lambda r: None)

    # --- Projects ---

    async def list_projects(self, page: int = 1, limit: int = 10) -> Result:
        return await self._request(
            "GET", "/api/projects",
            lambda r: ProjectList.model_validate(r.json()),
            params={"page": page, "limit": limit},
        )

    async def create_project(self, command: CreateProjectCommand) -> Result:
        return await self._request(
            "POST", "/api/projects",
            lambda r: Project.model_validate(r.json()),
            json=_payload(command),
        )

    async def update_project(self, project_id: str, command: UpdateProjectCommand) -> Result:
        return await self._request(
            "PATCH", f"/api/projects/{project_id}",
            lambda r: Project.model_validate(r.json()),
            json=_payload(command),
        )

    async def delete_project(self, project_id: str) -> Result:
        return await self._request("DELETE", f"/api/projects/{project_id}", lambda r: None)

    # --- Study sessions ---

    async def create_session(self, project_id: str, start_time: datetime) -> Result:
        return await self._request(
            "POST", f"/api/projects/{project_id}/study-sessions",
            lambda r: StudySession.model_validate(r.json()),
            json={"start_time": start_time.isoformat()},
        )

    async def end_session(self, session_id: str, end_time: datetime, cards_reviewed: int) -> Result:
        return await self._request(
            "PATCH", f"/api/study-sessions/{session_id}",
            lambda r: StudySession.model_validate(r.json()),
            json={"end_time": end_time.isoformat(), "cards_reviewed": cards_reviewed},
        )

    # --- Generation ---

    async def generate_drafts(self, project_id: str, text: str, desired_count: int) -> Result:
        return await self._request(
            "POST", f"/api/projects/{project_id}/flashcards/ai-generate",
            lambda r: GenerateFlashcardsResponse.model_validate(r.json()).drafts,
            json={"text": text, "desired_count": desired_count},
        )
