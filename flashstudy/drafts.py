"""
Draft review workspace.

Generated drafts live only here until they are committed. Editing, deleting and
rating drafts never touches the network; ``commit_all`` validates everything up
front and then creates every draft concurrently.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from .models import (
    BACK_MAX_LENGTH,
    FRONT_MAX_LENGTH,
    CreateFlashcardCommand,
    Draft,
    DraftContent,
    DraftFeedback,
    Flashcard,
)
from .reconciler import OptimisticCollection
from .result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("front", "back")


@dataclass
class CommitReport:
    saved: List[str] = field(default_factory=list)
    failed: Dict[str, Err] = field(default_factory=dict)
    navigate_away: bool = False

    @property
    def total(self) -> int:
        return len(self.saved) + len(self.failed)

    @property
    def complete(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        return f"{len(self.saved)} of {self.total} saved"


def validate_draft(draft: DraftContent) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    if not draft.front.strip():
        errors.setdefault("front", []).append("Front content is required")
    elif len(draft.front) > FRONT_MAX_LENGTH:
        errors.setdefault("front", []).append(f"Front content must not exceed {FRONT_MAX_LENGTH} characters")
    if not draft.back.strip():
        errors.setdefault("back", []).append("Back content is required")
    elif len(draft.back) > BACK_MAX_LENGTH:
        errors.setdefault("back", []).append(f"Back content must not exceed {BACK_MAX_LENGTH} characters")
    return errors


class DraftWorkspace:
    def __init__(self, project_id: str, store, cards: Optional[OptimisticCollection] = None):
        self.project_id = project_id
        self.store = store
        self.cards = cards
        self.drafts: List[Draft] = []

    def __len__(self):
        return len(self.drafts)

    def get(self, draft_id: str) -> Optional[Draft]:
        for draft in self.drafts:
            if draft.id == draft_id:
                return draft
        return None

    def load(self, pairs: Iterable[Union[DraftContent, dict]]) -> List[Draft]:
        drafts = []
        for pair in pairs:
            content = pair if isinstance(pair, DraftContent) else DraftContent.model_validate(pair)
            drafts.append(Draft(id=uuid.uuid4().hex, front=content.front, back=content.back))
        self.drafts = drafts
        return drafts

    async def generate(self, generator, text: str, desired_count: int) -> Result:
        result = await generator.generate(text, desired_count)
        if isinstance(result, Err):
            logger.warning(f"Draft generation failed for project {self.project_id}: {result}")
            return result
        drafts = self.load(result.value)
        logger.info(f"Generated {len(drafts)} drafts for project {self.project_id}")
        return Ok(drafts)

    def update(self, draft_id: str, **fields):
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise TypeError(f"Cannot update draft fields: {', '.join(sorted(unknown))}")
        draft = self.get(draft_id)
        if draft is None:
            return
        # raises pydantic.ValidationError for non-string content
        content = DraftContent.model_validate({**draft.model_dump(include=set(EDITABLE_FIELDS)), **fields})
        self._replace(draft_id, content.model_dump())

    def delete(self, draft_id: str):
        self.drafts = [draft for draft in self.drafts if draft.id != draft_id]

    def set_feedback(self, draft_id: str, feedback: Union[DraftFeedback, str]):
        """Same value twice clears the marker; the opposite value overwrites it."""
        feedback = DraftFeedback(feedback)
        draft = self.get(draft_id)
        if draft is None:
            return
        self._replace(draft_id, {"feedback": None if draft.feedback == feedback else feedback})

    def validate(self) -> Dict[str, Dict[str, List[str]]]:
        invalid = {}
        for draft in self.drafts:
            errors = validate_draft(draft)
            if errors:
                invalid[draft.id] = errors
        return invalid

    async def commit_all(self) -> Result:
        if not self.drafts:
            return Err(ErrorKind.VALIDATION, "No drafts to save")

        invalid = self.validate()
        if invalid:
            fields = {
                f"{draft_id}.{name}": messages
                for draft_id, errors in invalid.items()
                for name, messages in errors.items()
            }
            logger.info(f"Commit rejected: {len(invalid)} of {len(self.drafts)} drafts are invalid")
            return Err(ErrorKind.VALIDATION, "Some drafts have invalid content. Fix them before saving.", fields)

        drafts = list(self.drafts)
        results = await asyncio.gather(*(self._save(draft) for draft in drafts))

        report = CommitReport()
        for draft, result in zip(drafts, results):
            if isinstance(result, Ok):
                report.saved.append(draft.id)
            else:
                report.failed[draft.id] = result

        if report.complete:
            self.drafts = []
            report.navigate_away = True
            logger.info(f"Saved {report.total} drafts to project {self.project_id}")
        else:
            self.drafts = [draft for draft in self.drafts if draft.id not in report.saved]
            logger.warning(f"Project {self.project_id}: {report.summary()}, {len(report.failed)} failed")
        return Ok(report)

    def discard_all(self):
        self.drafts = []

    async def _save(self, draft: Draft) -> Result:
        command = CreateFlashcardCommand(front=draft.front, back=draft.back)
        send = lambda: self.store.create_card(self.project_id, command)
        if self.cards is None:
            return await send()
        provisional = Flashcard(id=draft.id, project_id=self.project_id, front=command.front, back=command.back)
        return await self.cards.create(provisional, send)

    def _replace(self, draft_id: str, changes: dict):
        self.drafts = [
            draft.model_copy(update=changes) if draft.id == draft_id else draft
            for draft in self.drafts
        ]
