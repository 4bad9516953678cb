"""Shared test fixtures: a scripted in-memory data store and entity factories."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from flashstudy.generation import sentence_drafts
from flashstudy.models import Flashcard, Project, ProjectList, StudySession, changed_fields
from flashstudy.result import Err, ErrorKind, Ok

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    """
    DataStore double. Records every call; ``failures`` maps (method, key) to the
    Err to return, where key is the entity id (or the front text for create_card).
    When ``gate`` is set, mutations wait on it before answering.
    """

    def __init__(self, cards=None):
        self.cards = list(cards or [])
        self.calls = []
        self.failures = {}
        self.fetch_error = None
        self.session_error = None
        self.gate = None
        self.last_update = None

    async def _answer(self, method, key):
        self.calls.append((method, key))
        if self.gate is not None:
            await self.gate.wait()
        return self.failures.get((method, key))

    def calls_to(self, method):
        return [call for call in self.calls if call[0] == method]

    async def fetch_cards(self, project_id):
        self.calls.append(("fetch_cards", project_id))
        if self.fetch_error:
            return self.fetch_error
        return Ok(list(self.cards))

    async def create_card(self, project_id, command):
        error = await self._answer("create_card", command.front)
        if error:
            return error
        card = Flashcard(id=str(uuid.uuid4()), project_id=project_id, front=command.front,
                         back=command.back, next_review_date=NOW + timedelta(days=1), created_at=NOW)
        self.cards.append(card)
        return Ok(card)

    async def update_card(self, project_id, card_id, command):
        error = await self._answer("update_card", card_id)
        if error:
            return error
        for i, card in enumerate(self.cards):
            if card.id == card_id:
                self.cards[i] = card.model_copy(update=changed_fields(command))
                self.last_update = command
                return Ok(self.cards[i])
        return Err(ErrorKind.NOT_FOUND, "Flashcard not found")

    async def delete_card(self, project_id, card_id):
        error = await self._answer("delete_card", card_id)
        if error:
            return error
        self.cards = [card for card in self.cards if card.id != card_id]
        return Ok(None)

    async def list_projects(self, page=1, limit=10):
        self.calls.append(("list_projects", page))
        return Ok(ProjectList(projects=[], page=page, limit=limit, total=0))

    async def create_project(self, command):
        error = await self._answer("create_project", command.title)
        if error:
            return error
        return Ok(Project(id=str(uuid.uuid4()), title=command.title, description=command.description,
                          tag=command.tag, created_at=NOW, last_modified=NOW))

    async def update_project(self, project_id, command):
        error = await self._answer("update_project", project_id)
        if error:
            return error
        return Ok(Project(id=project_id, title=command.title or "Untitled", last_modified=NOW))

    async def delete_project(self, project_id):
        error = await self._answer("delete_project", project_id)
        return error or Ok(None)

    async def create_session(self, project_id, start_time):
        self.calls.append(("create_session", project_id))
        if self.session_error:
            return self.session_error
        return Ok(StudySession(id="session-1", project_id=project_id, start_time=start_time))

    async def end_session(self, session_id, end_time, cards_reviewed):
        self.calls.append(("end_session", session_id, cards_reviewed))
        if self.session_error:
            return self.session_error
        return Ok(StudySession(id=session_id, project_id="p1", start_time=NOW,
                               end_time=end_time, cards_reviewed=cards_reviewed))

    async def generate_drafts(self, project_id, text, desired_count):
        error = await self._answer("generate_drafts", project_id)
        return error or Ok(sentence_drafts(text, desired_count))


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_card():
    def factory(card_id, next_review_date=None, ease_factor=2.5, front=None, back="Answer"):
        return Flashcard(
            id=card_id,
            project_id="p1",
            front=front or f"Question {card_id}",
            back=back,
            ease_factor=ease_factor,
            next_review_date=next_review_date,
        )
    return factory


@pytest.fixture
def make_project():
    def factory(project_id, title=None):
        return Project(id=project_id, title=title or f"Project {project_id}", created_at=NOW, last_modified=NOW)
    return factory


@pytest.fixture
def store():
    return FakeStore()

