from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Dict, List, Optional
import logging

from .config import configure_logging, get_settings
from .models import (
    CreateFlashcardCommand,
    CreateProjectCommand,
    CreateStudySessionCommand,
    ErrorResponse,
    Flashcard,
    FlashcardList,
    GenerateFlashcardsCommand,
    GenerateFlashcardsResponse,
    Project,
    ProjectList,
    StudySession,
    StudySessionList,
    UpdateFlashcardCommand,
    UpdateProjectCommand,
    UpdateStudySessionCommand,
)
from .services import FlashcardService, NotFoundError, ValidationFailed

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Flashstudy API")

# CORS Setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Singleton Service
service = FlashcardService(settings.data_dir)


def get_service() -> FlashcardService:
    return service


@app.on_event("startup")
def startup_event():
    success = service.load_data()
    if not success:
        logger.warning("Could not load data on startup.")


# --- Error responses ---

def error_response(status_code: int, error: str, message: str, details: Optional[Dict] = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, statusCode=status_code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(NotFoundError)
async def handle_not_found(request: Request, exc: NotFoundError):
    return error_response(404, "Not Found", str(exc))


@app.exception_handler(ValidationFailed)
async def handle_validation_failed(request: Request, exc: ValidationFailed):
    return error_response(400, "Bad Request", exc.message, {"fields": exc.fields})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    fields: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        name = ".".join(loc) or "body"
        fields.setdefault(name, []).append(error.get("msg", "Invalid value"))
    return error_response(400, "Bad Request", "Validation failed", {"fields": fields})


# --- Projects ---

@app.get("/api/projects", response_model=ProjectList)
def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: Optional[str] = None,
    service: FlashcardService = Depends(get_service),
):
    return service.list_projects(page=page, limit=limit, sort=sort)


@app.post("/api/projects", response_model=Project, status_code=201)
def create_project(command: CreateProjectCommand, service: FlashcardService = Depends(get_service)):
    return service.create_project(command)


@app.get("/api/projects/{project_id}", response_model=Project)
def get_project(project_id: str, service: FlashcardService = Depends(get_service)):
    return service.get_project(project_id)


@app.patch("/api/projects/{project_id}", response_model=Project)
def update_project(project_id: str, command: UpdateProjectCommand, service: FlashcardService = Depends(get_service)):
    return service.update_project(project_id, command)


@app.delete("/api/projects/{project_id}", status_code=204)
def delete_project(project_id: str, service: FlashcardService = Depends(get_service)):
    service.delete_project(project_id)
    return Response(status_code=204)


# --- Flashcards ---

@app.get("/api/projects/{project_id}/flashcards", response_model=FlashcardList)
def list_flashcards(
    project_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: FlashcardService = Depends(get_service),
):
    return service.list_flashcards(project_id, page=page, limit=limit)


@app.post("/api/projects/{project_id}/flashcards", response_model=Flashcard, status_code=201)
def create_flashcard(project_id: str, command: CreateFlashcardCommand, service: FlashcardService = Depends(get_service)):
    return service.create_flashcard(project_id, command)


@app.post("/api/projects/{project_id}/flashcards/ai-generate", response_model=GenerateFlashcardsResponse)
def generate_flashcards(project_id: str, command: GenerateFlashcardsCommand,
                        service: FlashcardService = Depends(get_service)):
    return GenerateFlashcardsResponse(drafts=service.generate_drafts(project_id, command))


@app.get("/api/projects/{project_id}/flashcards/{flashcard_id}", response_model=Flashcard)
def get_flashcard(project_id: str, flashcard_id: str, service: FlashcardService = Depends(get_service)):
    return service.get_flashcard(project_id, flashcard_id)


@app.patch("/api/projects/{project_id}/flashcards/{flashcard_id}", response_model=Flashcard)
def update_flashcard(project_id: str, flashcard_id: str, command: UpdateFlashcardCommand,
                     service: FlashcardService = Depends(get_service)):
    return service.update_flashcard(project_id, flashcard_id, command)


@app.delete("/api/projects/{project_id}/flashcards/{flashcard_id}", status_code=204)
def delete_flashcard(project_id: str, flashcard_id: str, service: FlashcardService = Depends(get_service)):
    service.delete_flashcard(project_id, flashcard_id)
    return Response(status_code=204)


# --- Study sessions ---

@app.post("/api/projects/{project_id}/study-sessions", response_model=StudySession, status_code=201)
def create_study_session(project_id: str, command: CreateStudySessionCommand,
                         service: FlashcardService = Depends(get_service)):
    return service.create_session(project_id, command)


@app.get("/api/study-sessions", response_model=StudySessionList)
def list_study_sessions(
    project_id: Optional[str] = Query(None, alias="projectId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: Optional[str] = None,
    service: FlashcardService = Depends(get_service),
):
    return service.list_sessions(project_id=project_id, page=page, limit=limit, sort=sort)


@app.get("/api/study-sessions/{session_id}", response_model=StudySession)
def get_study_session(session_id: str, service: FlashcardService = Depends(get_service)):
    return service.get_session(session_id)


@app.patch("/api/study-sessions/{session_id}", response_model=StudySession)
def update_study_session(session_id: str, command: UpdateStudySessionCommand,
                         service: FlashcardService = Depends(get_service)):
    return service.update_session(session_id, command)
