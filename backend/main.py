"""
FastAPI Backend for the Levely Learning Companion

Provides REST API endpoints for:
- Progress snapshots, next quiz question and study recommendation
- Quiz / assessment / assignment observations with auto feedback
- Guarded quick-ask chat with Supabase-backed chat sessions
"""

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
import os
import sys
import time
import logging

# Add the levely_companion package to Python path
backend_dir = os.path.dirname(os.path.abspath(__file__))
project_root = os.path.dirname(backend_dir)
package_src = os.path.join(project_root, 'levely_companion', 'src')
if os.path.exists(package_src) and package_src not in sys.path:
    sys.path.insert(0, package_src)

from lib.logger import setup_logging, get_logger

setup_logging(level=logging.INFO, use_colors=True)

logger = get_logger("backend.main")

from lib.supabase_client import get_supabase_client

from levely_companion.chat_history import ChatHistoryStore
from levely_companion.companion import LevelyCompanion
from levely_companion.config import LevelySettings
from levely_companion.errors import (
    ChatHistoryError,
    ObservationValidationError,
    ProgressStoreError,
    QuestionNotFoundError,
)

# Process-wide singletons
_settings: Optional[LevelySettings] = None
_companion: Optional[LevelyCompanion] = None
_chat_store: Optional[ChatHistoryStore] = None


def get_settings() -> LevelySettings:
    global _settings
    if _settings is None:
        _settings = LevelySettings.from_env()
    return _settings


def get_companion() -> LevelyCompanion:
    """Get or create singleton LevelyCompanion."""
    global _companion
    if _companion is None:
        settings = get_settings()
        _companion = LevelyCompanion.from_settings(settings, supabase_client=get_supabase_client(settings))
    return _companion


def get_chat_store() -> ChatHistoryStore:
    """Get or create singleton ChatHistoryStore."""
    global _chat_store
    if _chat_store is None:
        settings = get_settings()
        _chat_store = ChatHistoryStore(
            supabase_client=get_supabase_client(settings),
            resume_latest_session=settings.chat_resume_latest,
        )
    return _chat_store


app = FastAPI(
    title="Levely Learning Companion API",
    description="Adaptive quiz progression, auto feedback and guarded quick-ask",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== Error Mapping ====================

@app.exception_handler(ObservationValidationError)
async def validation_error_handler(request: Request, exc: ObservationValidationError):
    logger.warning(f"Rejected submission on {request.url.path}: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(QuestionNotFoundError)
async def not_found_handler(request: Request, exc: QuestionNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ProgressStoreError)
async def store_error_handler(request: Request, exc: ProgressStoreError):
    logger.error(f"Progress store failure on {request.url.path}", error=exc)
    return JSONResponse(status_code=503, content={"detail": "Progress storage unavailable"})


@app.exception_handler(ChatHistoryError)
async def chat_history_error_handler(request: Request, exc: ChatHistoryError):
    logger.error(f"Chat history failure on {request.url.path}", error=exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})

# ==================== Pydantic Models ====================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuizSubmission(CamelModel):
    question_id: str
    selected_index: int


class AssessmentSubmission(CamelModel):
    correct: int
    attempted: int
    score: float = Field(ge=0, le=100)
    chapter_name: Optional[str] = None
    reference_id: Optional[str] = None


class AssignmentSubmission(CamelModel):
    score: Optional[float] = Field(default=None, ge=0, le=100)
    chapter_name: Optional[str] = None
    reference_id: Optional[str] = None


class HistoryEntry(CamelModel):
    role: Optional[str] = None
    content: Optional[str] = None
    from_user: Optional[bool] = None
    text: Optional[str] = None


class AskRequest(CamelModel):
    prompt: str
    history: Optional[List[HistoryEntry]] = None
    session_id: Optional[str] = None
    device_id: Optional[str] = None
    course_id: Optional[int] = None
    level: Optional[int] = None
    chapter_name: Optional[str] = None
    material_content: Optional[str] = None


class AskResponse(CamelModel):
    reply: str
    session_id: Optional[str] = None


class SessionCreate(CamelModel):
    user_id: Optional[str] = None
    device_id: Optional[str] = None
    title: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionRename(CamelModel):
    title: Optional[str] = None

# ==================== API Endpoints ====================

@app.get("/")
async def root():
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "ok",
        "service": "Levely Learning Companion API",
        "version": "1.0.0",
        "llm_configured": settings.llm.enabled,
        "supabase_configured": settings.supabase_enabled,
    }


@app.get("/api/levely/{learner_id}/progress")
async def get_progress(learner_id: str, companion: LevelyCompanion = Depends(get_companion)):
    progress = await companion.load_progress(learner_id)
    return progress.to_dict()


@app.get("/api/levely/{learner_id}/next-question")
async def get_next_question(learner_id: str, topic: str, companion: LevelyCompanion = Depends(get_companion)):
    """Next question at the learner's current difficulty for ``topic`` (answer key omitted)."""
    progress = await companion.load_progress(learner_id)
    question = companion.engine.next_question(progress, topic)
    return question.to_dict(include_answer=False)


@app.get("/api/levely/{learner_id}/recommendation")
async def get_recommendation(learner_id: str, companion: LevelyCompanion = Depends(get_companion)):
    progress = await companion.load_progress(learner_id)
    return {"recommendation": companion.engine.recommendation(progress)}


@app.post("/api/levely/{learner_id}/quiz")
async def submit_quiz(learner_id: str, body: QuizSubmission, companion: LevelyCompanion = Depends(get_companion)):
    start_time = time.time()
    logger.request("POST", "/api/levely/quiz", learner_id=learner_id)

    question = companion.engine.quiz_bank.get(body.question_id)
    result = await companion.observe_quiz(learner_id, body.selected_index, question=question)

    payload = result.to_dict()
    payload["answerFeedback"] = companion.engine.feedback_for_quiz(
        question, body.selected_index, result.points_delta or 0
    )
    logger.success(f"Quiz {question.id} recorded for {learner_id} (+{result.points_delta} pts)")
    logger.response(200, "/api/levely/quiz", duration=time.time() - start_time)
    return payload


@app.post("/api/levely/{learner_id}/assessment")
async def submit_assessment(
    learner_id: str,
    body: AssessmentSubmission,
    companion: LevelyCompanion = Depends(get_companion),
):
    logger.request("POST", "/api/levely/assessment", learner_id=learner_id)
    result = await companion.observe_assessment(
        learner_id,
        body.correct,
        body.attempted,
        body.score,
        chapter_name=body.chapter_name,
        reference_id=body.reference_id,
    )
    logger.success(f"Assessment recorded for {learner_id}", {"duplicate": result.duplicate})
    return result.to_dict()


@app.post("/api/levely/{learner_id}/assignment")
async def submit_assignment(
    learner_id: str,
    body: AssignmentSubmission,
    companion: LevelyCompanion = Depends(get_companion),
):
    logger.request("POST", "/api/levely/assignment", learner_id=learner_id)
    result = await companion.observe_assignment(
        learner_id,
        score=body.score,
        chapter_name=body.chapter_name,
        reference_id=body.reference_id,
    )
    logger.success(f"Assignment recorded for {learner_id}", {"duplicate": result.duplicate})
    return result.to_dict()


@app.post("/api/levely/{learner_id}/ask", response_model=AskResponse, response_model_by_alias=True)
async def ask(
    learner_id: str,
    body: AskRequest,
    companion: LevelyCompanion = Depends(get_companion),
    chat_store: ChatHistoryStore = Depends(get_chat_store),
):
    """
    Quick-ask. Uses the latest stored session messages as history when the
    request carries none or an empty list, and appends the exchange to the
    session.
    """
    start_time = time.time()
    logger.request("POST", "/api/levely/ask", learner_id=learner_id)

    session_id = await chat_store.ensure_session(body.session_id, user_id=learner_id, device_id=body.device_id)
    if body.history:
        history = [entry.model_dump(by_alias=True, exclude_none=True) for entry in body.history]
    else:
        history = await chat_store.fetch_messages(session_id)
        logger.debug(f"Using stored history for session {session_id}", {"messages": len(history)})

    reply = await companion.quick_ask(
        learner_id,
        body.prompt,
        history=history,
        course_id=body.course_id,
        level=body.level,
        chapter_name=body.chapter_name,
        material_content=body.material_content,
    )

    await chat_store.append_messages(session_id, [
        {"role": "user", "content": body.prompt},
        {"role": "assistant", "content": reply},
    ])
    logger.response(200, "/api/levely/ask", duration=time.time() - start_time)
    return AskResponse(reply=reply, session_id=session_id)


@app.get("/api/chat/sessions")
async def list_chat_sessions(
    user_id: str,
    limit: int = 20,
    offset: int = 0,
    chat_store: ChatHistoryStore = Depends(get_chat_store),
):
    sessions = await chat_store.list_sessions(user_id, limit=limit, offset=offset)
    return {"sessions": sessions}


@app.post("/api/chat/sessions")
async def create_chat_session(body: SessionCreate, chat_store: ChatHistoryStore = Depends(get_chat_store)):
    session = await chat_store.create_session(
        user_id=body.user_id,
        device_id=body.device_id,
        title=body.title,
        metadata=body.metadata,
    )
    return {"session": session}


@app.get("/api/chat/sessions/{session_id}/messages")
async def get_chat_messages(session_id: str, limit: int = 50, chat_store: ChatHistoryStore = Depends(get_chat_store)):
    return {"messages": await chat_store.fetch_messages(session_id, limit=limit)}


@app.patch("/api/chat/sessions/{session_id}")
async def rename_chat_session(
    session_id: str,
    body: SessionRename,
    chat_store: ChatHistoryStore = Depends(get_chat_store),
):
    return {"session": await chat_store.rename_session(session_id, body.title)}


@app.delete("/api/chat/sessions/{session_id}")
async def delete_chat_session(session_id: str, chat_store: ChatHistoryStore = Depends(get_chat_store)):
    result = await chat_store.delete_session(session_id)
    if not result["deleted"]:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"status": "deleted", "session_id": session_id}


if __name__ == "__main__":
    import uvicorn

    logger.section("LEVELY API STARTUP", {
        "llm_configured": get_settings().llm.enabled,
        "supabase_configured": get_settings().supabase_enabled,
    })
    try:
        uvicorn.run(app, host="0.0.0.0", port=8000)
    except KeyboardInterrupt:
        logger.info("🛑 Server stopped.")
        sys.exit(0)
