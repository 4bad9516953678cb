"""Draft generation collaborator: text in, front/back pairs out."""

import re
from typing import List, Protocol

from .models import BACK_MAX_LENGTH, FRONT_MAX_LENGTH, DraftContent
from .result import Ok, Result

MAX_DRAFTS = 100


class DraftGenerator(Protocol):
    async def generate(self, text: str, desired_count: int) -> Result: ...


def sentence_drafts(text: str, desired_count: int) -> List[DraftContent]:
    """One draft per sentence, used when no language model is configured."""
    text = text.strip()
    if not text:
        return []

    sentences = [s.strip() for s in re.split(r"[.!?]+", text)]
    sentences = [s for s in sentences if s]
    count = min(max(desired_count, 1), MAX_DRAFTS, len(sentences))

    drafts = []
    for sentence in sentences[:count]:
        front = f'What is the main point of: "{sentence[:FRONT_MAX_LENGTH]}"?'
        drafts.append(DraftContent(front=front[:FRONT_MAX_LENGTH], back=sentence[:BACK_MAX_LENGTH]))
    return drafts


class SentenceDraftGenerator:
    async def generate(self, text: str, desired_count: int) -> Result:
        return Ok(sentence_drafts(text, desired_count))


class HttpDraftGenerator:
    """Asks the API to generate drafts for one project."""

    def __init__(self, store, project_id: str):
        self.store = store
        self.project_id = project_id

    async def generate(self, text: str, desired_count: int) -> Result:
        return await self.store.generate_drafts(self.project_id, text, desired_count)
