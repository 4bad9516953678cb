"""
Study session lifecycle: UNINITIALIZED -> ACTIVE -> ENDED.

A ReviewSession fetches a project's cards, builds the review queue and walks
through it one judgment at a time. Session bookkeeping on the server (create on
start, close on end) is best effort: when it fails the review goes on locally.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .config import get_settings
from .models import Difficulty, Flashcard, UpdateFlashcardCommand, changed_fields
from .reconciler import OptimisticCollection
from .result import Err, ErrorKind, Ok, Result
from .review_queue import build_review_queue
from .scheduler import compute_next_review

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    ENDED = "ended"


class SessionProgressCache:
    """
    Project id -> study session id for the current browsing session.

    Lets a reloaded study view resume the server-side session instead of
    opening a second one. Advisory only; entries are cleared when a session ends.
    """

    def __init__(self):
        self._sessions: Dict[str, str] = {}

    def get(self, project_id: str) -> Optional[str]:
        return self._sessions.get(project_id)

    def set(self, project_id: str, session_id: str):
        self._sessions[project_id] = session_id

    def clear(self, project_id: str):
        self._sessions.pop(project_id, None)

    def __contains__(self, project_id):
        return project_id in self._sessions

    def __len__(self):
        return len(self._sessions)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewSession:
    def __init__(self, project_id: str, store, cache: SessionProgressCache,
                 clock: Callable[[], datetime] = _utcnow,
                 timeout: Optional[float] = None,
                 scale_by_ease: Optional[bool] = None):
        settings = get_settings()
        self.project_id = project_id
        self.store = store
        self.cache = cache
        self._clock = clock
        self.scale_by_ease = settings.scale_interval_by_ease if scale_by_ease is None else scale_by_ease

        self.state = SessionState.UNINITIALIZED
        self.session_id: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self.ended_at: Optional[datetime] = None
        self.position = 0
        self.error: Optional[Err] = None
        self.cards: OptimisticCollection = OptimisticCollection(
            timeout=settings.mutation_timeout if timeout is None else timeout,
            name=f"review:{project_id}",
        )

    @property
    def queue(self) -> List[Flashcard]:
        return self.cards.items

    @property
    def current_card(self) -> Optional[Flashcard]:
        if self.position < len(self.cards):
            return self.cards.items[self.position]
        return None

    @property
    def progress(self) -> Tuple[int, int]:
        return self.position, len(self.cards)

    @property
    def finished(self) -> bool:
        return self.current_card is None

    async def start(self) -> Result:
        """Fetch cards, build the queue and open the session. Runs once."""
        if self.state != SessionState.UNINITIALIZED:
            return Ok(self.queue)

        fetched = await self.store.fetch_cards(self.project_id)
        if isinstance(fetched, Err):
            self.error = fetched
            logger.error(f"Could not load flashcards for project {self.project_id}: {fetched}")
            return fetched

        now = self._clock()
        queue = build_review_queue(fetched.value, now)
        self.cards.replace_all(queue)
        self.position = 0
        self.error = None

        if not queue:
            logger.info(f"Project {self.project_id} has no flashcards; no session started.")
            return Ok(queue)

        self.started_at = now
        await self._open_session()
        self.state = SessionState.ACTIVE
        logger.info(f"Study session for project {self.project_id}: {len(queue)} cards queued.")
        return Ok(queue)

    async def _open_session(self):
        cached = self.cache.get(self.project_id)
        if cached:
            self.session_id = cached
            logger.info(f"Resuming study session {cached} for project {self.project_id}")
            return

        result = await self.store.create_session(self.project_id, self.started_at)
        if isinstance(result, Ok):
            self.session_id = result.value.id
            self.cache.set(self.project_id, self.session_id)
        else:
            logger.warning(f"Could not start study session for project {self.project_id}: {result}")

    async def submit_feedback(self, card_id: str, difficulty: Difficulty) -> Result:
        """Schedule the current card and advance once the store confirms the update."""
        if self.state == SessionState.ENDED:
            return self._fail(Err(ErrorKind.VALIDATION, "The study session has ended"))

        card = self.current_card
        if card is None or card.id != card_id:
            return self._fail(Err(ErrorKind.VALIDATION, f"Flashcard {card_id} is not the current card"))

        schedule = compute_next_review(card.ease_factor, difficulty, self._clock(), self.scale_by_ease)
        command = UpdateFlashcardCommand(
            ease_factor=schedule.ease_factor,
            next_review_date=schedule.next_review_date,
        )

        result = await self.cards.update(
            card_id,
            changed_fields(command),
            lambda: self.store.update_card(self.project_id, card_id, command),
        )
        if self.state == SessionState.ENDED:
            # answered after end(); the recorded count stands
            return result
        if isinstance(result, Err):
            return self._fail(result)

        self.position += 1
        self.error = None
        return result

    async def end(self):
        """Close the session on the server (best effort) and forget it locally."""
        if self.state != SessionState.ACTIVE:
            return

        self.ended_at = self._clock()
        if self.session_id:
            result = await self.store.end_session(self.session_id, self.ended_at, self.position)
            if isinstance(result, Err):
                logger.warning(f"Could not end study session {self.session_id}: {result}")

        self.cache.clear(self.project_id)
        self.cards.detach()
        self.state = SessionState.ENDED
        logger.info(f"Study session for project {self.project_id} ended after {self.position} cards.")

    def _fail(self, error: Err) -> Err:
        self.error = error
        logger.warning(f"Feedback not recorded: {error}")
        return error
