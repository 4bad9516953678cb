import logging
import math
import os
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .generation import sentence_drafts
from .models import (
    CreateFlashcardCommand,
    CreateProjectCommand,
    CreateStudySessionCommand,
    DraftContent,
    EASE_FACTOR_DEFAULT,
    Flashcard,
    FlashcardList,
    GenerateFlashcardsCommand,
    Project,
    ProjectList,
    StudySession,
    StudySessionList,
    UpdateFlashcardCommand,
    UpdateProjectCommand,
    UpdateStudySessionCommand,
    changed_fields,
)

logger = logging.getLogger(__name__)

PROJECT_COLUMNS = ["id", "title", "description", "tag", "created_at", "last_modified"]
FLASHCARD_COLUMNS = [
    "id", "project_id", "front", "back", "next_review_date",
    "ease_factor", "feedback", "feedback_timestamp", "created_at",
]
SESSION_COLUMNS = ["id", "project_id", "start_time", "end_time", "cards_reviewed"]

TABLES = {
    "projects": PROJECT_COLUMNS,
    "flashcards": FLASHCARD_COLUMNS,
    "study_sessions": SESSION_COLUMNS,
}

# New cards are first due one day after creation
NEW_CARD_DELAY = timedelta(days=1)


class NotFoundError(Exception):
    pass


class ValidationFailed(Exception):
    def __init__(self, message: str, fields: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.fields = fields or {}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _cell(value):
    """Store representation: timestamps as ISO strings, None as empty string."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if hasattr(value, "value"):  # enums
        return value.value
    return value


def _clean(value):
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str) and value == "":
        return None
    return value


def parse_sort(sort: Optional[str], columns: List[str], default: Tuple[str, bool]) -> Tuple[str, bool]:
    """'field:asc' / 'field:desc' -> (field, ascending)."""
    if not sort:
        return default
    field, _, direction = sort.partition(":")
    if field not in columns or direction not in ("asc", "desc"):
        raise ValidationFailed(
            "Invalid sort parameter",
            {"sort": ["Invalid sort format. Use field:asc or field:desc"]},
        )
    return field, direction == "asc"


class FlashcardService:
    """Projects, flashcards and study sessions kept in DataFrames and saved as CSV files."""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = data_dir
        self.frames: Dict[str, pd.DataFrame] = {name: self._empty(cols) for name, cols in TABLES.items()}
        self._lock = threading.RLock()

    @staticmethod
    def _empty(columns: List[str]) -> pd.DataFrame:
        return pd.DataFrame(columns=columns, dtype=object)

    def _path(self, table: str) -> str:
        return os.path.join(self.data_dir, f"{table}.csv")

    def load_data(self) -> bool:
        """Loads every table from CSV. Missing files start empty."""
        if not self.data_dir:
            return True

        with self._lock:
            try:
                for table, columns in TABLES.items():
                    path = self._path(table)
                    if not os.path.exists(path):
                        logger.info(f"No {table} file at {path}, starting empty.")
                        self.frames[table] = self._empty(columns)
                        continue
                    df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8-sig')
                    self.frames[table] = self._ensure_columns(df, columns)
                    logger.info(f"Loaded {len(df)} rows from {path}")
                return True
            except Exception as e:
                logger.error(f"Error loading data from {self.data_dir}: {e}")
                return False

    @staticmethod
    def _ensure_columns(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
        for col in columns:
            if col not in df.columns:
                df[col] = ""
        return df[columns].astype(object)

    def save_data(self):
        """Saves every table to CSV. No-op for an in-memory store."""
        if not self.data_dir:
            return
        os.makedirs(self.data_dir, exist_ok=True)
        for table, df in self.frames.items():
            df.to_csv(self._path(table), index=False, encoding='utf-8-sig')

    # --- Row helpers ---

    def _find(self, table: str, row_id: str) -> int:
        df = self.frames[table]
        matches = df.index[df['id'] == row_id].tolist()
        if not matches:
            raise NotFoundError(f"{table[:-1].replace('_', ' ').capitalize()} not found")
        return matches[0]

    def _record(self, table: str, idx) -> dict:
        row = self.frames[table].loc[idx]
        record = {col: _clean(row[col]) for col in TABLES[table]}
        # empty cells fall back to the model defaults
        return {col: value for col, value in record.items() if value is not None}

    def _append(self, table: str, record: dict):
        columns = TABLES[table]
        row = pd.DataFrame([{col: _cell(record.get(col)) for col in columns}], columns=columns, dtype=object)
        df = self.frames[table]
        self.frames[table] = row if df.empty else pd.concat([df, row], ignore_index=True)

    def _set(self, table: str, idx, updates: dict):
        for key, value in updates.items():
            self.frames[table].at[idx, key] = _cell(value)

    def _drop(self, table: str, mask):
        self.frames[table] = self.frames[table][~mask].reset_index(drop=True)

    @staticmethod
    def _page(df: pd.DataFrame, page: int, limit: int) -> pd.DataFrame:
        start = (page - 1) * limit
        return df.iloc[start:start + limit]

    def _touch_project(self, project_id: str):
        matches = self.frames["projects"].index[self.frames["projects"]['id'] == project_id].tolist()
        if matches:
            self._set("projects", matches[0], {"last_modified": _now()})

    # --- Projects ---

    def list_projects(self, page: int = 1, limit: int = 10, sort: Optional[str] = None) -> ProjectList:
        with self._lock:
            field, ascending = parse_sort(sort, PROJECT_COLUMNS, ("created_at", False))
            df = self.frames["projects"].sort_values(by=field, ascending=ascending, kind="stable")
            projects = [Project.model_validate(self._record("projects", idx)) for idx in self._page(df, page, limit).index]
            return ProjectList(projects=projects, page=page, limit=limit, total=len(df))

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            return Project.model_validate(self._record("projects", self._find("projects", project_id)))

    def create_project(self, command: CreateProjectCommand) -> Project:
        with self._lock:
            now = _now()
            record = {
                "id": str(uuid.uuid4()),
                "title": command.title,
                "description": command.description,
                "tag": command.tag,
                "created_at": now,
                "last_modified": now,
            }
            self._append("projects", record)
            self.save_data()
            logger.info(f"Created project {record['id']}")
            return self.get_project(record["id"])

    def update_project(self, project_id: str, command: UpdateProjectCommand) -> Project:
        with self._lock:
            idx = self._find("projects", project_id)
            updates = changed_fields(command)
            updates["last_modified"] = _now()
            self._set("projects", idx, updates)
            self.save_data()
            return self.get_project(project_id)

    def delete_project(self, project_id: str):
        """Deletes the project with its flashcards and study sessions."""
        with self._lock:
            self._find("projects", project_id)
            self._drop("flashcards", self.frames["flashcards"]['project_id'] == project_id)
            self._drop("study_sessions", self.frames["study_sessions"]['project_id'] == project_id)
            self._drop("projects", self.frames["projects"]['id'] == project_id)
            self.save_data()
            logger.info(f"Deleted project {project_id}")

    # --- Flashcards ---

    def _project_flashcard(self, project_id: str, flashcard_id: str) -> int:
        idx = self._find("flashcards", flashcard_id)
        if self.frames["flashcards"].at[idx, 'project_id'] != project_id:
            raise NotFoundError("Flashcard not found")
        return idx

    def list_flashcards(self, project_id: str, page: int = 1, limit: int = 10) -> FlashcardList:
        with self._lock:
            self._find("projects", project_id)
            df = self.frames["flashcards"]
            df = df[df['project_id'] == project_id].sort_values(by="created_at", ascending=False, kind="stable")
            cards = [Flashcard.model_validate(self._record("flashcards", idx)) for idx in self._page(df, page, limit).index]
            return FlashcardList(flashcards=cards, page=page, limit=limit, total=len(df))

    def get_flashcard(self, project_id: str, flashcard_id: str) -> Flashcard:
        with self._lock:
            idx = self._project_flashcard(project_id, flashcard_id)
            return Flashcard.model_validate(self._record("flashcards", idx))

    def create_flashcard(self, project_id: str, command: CreateFlashcardCommand) -> Flashcard:
        with self._lock:
            self._find("projects", project_id)
            now = _now()
            record = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "front": command.front,
                "back": command.back,
                "next_review_date": now + NEW_CARD_DELAY,
                "ease_factor": EASE_FACTOR_DEFAULT,
                "created_at": now,
            }
            self._append("flashcards", record)
            self._touch_project(project_id)
            self.save_data()
            return self.get_flashcard(project_id, record["id"])

    def update_flashcard(self, project_id: str, flashcard_id: str, command: UpdateFlashcardCommand) -> Flashcard:
        with self._lock:
            idx = self._project_flashcard(project_id, flashcard_id)
            updates = changed_fields(command)

            target = updates.get("project_id")
            if target is not None and target != project_id:
                try:
                    self._find("projects", target)
                except NotFoundError:
                    raise NotFoundError("Target project not found")
            if "feedback" in updates:
                updates["feedback_timestamp"] = _now() if updates["feedback"] is not None else None

            self._set("flashcards", idx, updates)
            self._touch_project(project_id)
            if target is not None and target != project_id:
                self._touch_project(target)
                logger.info(f"Moved flashcard {flashcard_id} to project {target}")
            self.save_data()
            return Flashcard.model_validate(self._record("flashcards", idx))

    def delete_flashcard(self, project_id: str, flashcard_id: str):
        with self._lock:
            self._project_flashcard(project_id, flashcard_id)
            self._drop("flashcards", self.frames["flashcards"]['id'] == flashcard_id)
            self._touch_project(project_id)
            self.save_data()

    def generate_drafts(self, project_id: str, command: GenerateFlashcardsCommand) -> List[DraftContent]:
        with self._lock:
            self._find("projects", project_id)
        return sentence_drafts(command.text, command.desired_count)

    # --- Study sessions ---

    def create_session(self, project_id: str, command: CreateStudySessionCommand) -> StudySession:
        with self._lock:
            self._find("projects", project_id)
            record = {
                "id": str(uuid.uuid4()),
                "project_id": project_id,
                "start_time": command.start_time,
                "end_time": None,
                "cards_reviewed": 0,
            }
            self._append("study_sessions", record)
            self.save_data()
            return self.get_session(record["id"])

    def get_session(self, session_id: str) -> StudySession:
        with self._lock:
            idx = self._find("study_sessions", session_id)
            return StudySession.model_validate(self._record("study_sessions", idx))

    def list_sessions(self, project_id: Optional[str] = None, page: int = 1, limit: int = 10,
                      sort: Optional[str] = None) -> StudySessionList:
        with self._lock:
            field, ascending = parse_sort(sort, SESSION_COLUMNS, ("start_time", False))
            df = self.frames["study_sessions"]
            if project_id:
                df = df[df['project_id'] == project_id]
            df = df.sort_values(by=field, ascending=ascending, kind="stable")
            sessions = [
                StudySession.model_validate(self._record("study_sessions", idx))
                for idx in self._page(df, page, limit).index
            ]
            return StudySessionList(sessions=sessions, page=page, limit=limit, total=len(df))

    def update_session(self, session_id: str, command: UpdateStudySessionCommand) -> StudySession:
        with self._lock:
            idx = self._find("study_sessions", session_id)
            self._set("study_sessions", idx, changed_fields(command))
            self.save_data()
            return self.get_session(session_id)
