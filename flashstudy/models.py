from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

FRONT_MAX_LENGTH = 200
BACK_MAX_LENGTH = 500
EASE_FACTOR_MIN = 1.3
EASE_FACTOR_MAX = 3.0
EASE_FACTOR_DEFAULT = 2.5


class Difficulty(str, Enum):
    """Recall judgment given by the user after seeing the back of a card."""
    EASY = "easy"
    GOOD = "good"
    HARD = "hard"


class FlashcardFeedback(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class DraftFeedback(str, Enum):
    UP = "up"
    DOWN = "down"


class SyncStatus(str, Enum):
    """Transient tag carried by a locally mutated entity until the store answers."""
    SYNCING = "syncing"
    DELETING = "deleting"


# --- Entities ---

class Project(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    tag: Optional[str] = None
    created_at: Optional[datetime] = None
    last_modified: Optional[datetime] = None


class Flashcard(BaseModel):
    id: str
    project_id: Optional[str] = None
    front: str
    back: str
    ease_factor: float = EASE_FACTOR_DEFAULT
    next_review_date: Optional[datetime] = None  # None = never reviewed
    feedback: Optional[FlashcardFeedback] = None
    feedback_timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None


class StudySession(BaseModel):
    id: str
    project_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    cards_reviewed: int = 0


class DraftContent(BaseModel):
    """Front/back pair as produced by a draft generator."""
    front: str
    back: str


class Draft(DraftContent):
    id: str
    feedback: Optional[DraftFeedback] = None


# --- Commands ---

class _Command(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class CreateProjectCommand(_Command):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    tag: Optional[str] = Field(default=None, max_length=50)


class UpdateProjectCommand(_Command):
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    tag: Optional[str] = Field(default=None, max_length=50)


class CreateFlashcardCommand(_Command):
    front: str = Field(min_length=1, max_length=FRONT_MAX_LENGTH)
    back: str = Field(min_length=1, max_length=BACK_MAX_LENGTH)


class UpdateFlashcardCommand(_Command):
    front: Optional[str] = Field(default=None, min_length=1, max_length=FRONT_MAX_LENGTH)
    back: Optional[str] = Field(default=None, min_length=1, max_length=BACK_MAX_LENGTH)
    feedback: Optional[FlashcardFeedback] = None
    next_review_date: Optional[datetime] = None
    ease_factor: Optional[float] = Field(default=None, ge=EASE_FACTOR_MIN, le=EASE_FACTOR_MAX)
    project_id: Optional[str] = None


class CreateStudySessionCommand(_Command):
    start_time: datetime


class UpdateStudySessionCommand(_Command):
    end_time: Optional[datetime] = None
    cards_reviewed: Optional[int] = Field(default=None, ge=0)


class GenerateFlashcardsCommand(_Command):
    text: str = Field(max_length=10000)
    desired_count: int = Field(gt=0, le=100)


def changed_fields(command: BaseModel) -> Dict[str, Any]:
    """Fields the caller actually set on a PATCH-style command."""
    return command.model_dump(exclude_unset=True)


# --- List pages ---

class ProjectList(BaseModel):
    projects: List[Project]
    page: int
    limit: int
    total: int


class FlashcardList(BaseModel):
    flashcards: List[Flashcard]
    page: int
    limit: int
    total: int


class StudySessionList(BaseModel):
    sessions: List[StudySession]
    page: int
    limit: int
    total: int


class GenerateFlashcardsResponse(BaseModel):
    drafts: List[DraftContent]


class ErrorResponse(BaseModel):
    error: str
    message: str
    statusCode: int
    details: Optional[Dict[str, Any]] = None
