import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional, Tuple

import uvicorn
from fastapi import (
    APIRouter,
    Cookie,
    Depends,
    FastAPI,
    File,
    Form,
    Query,
    Request,
    Response,
    UploadFile,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from redis import Redis

from .config import Settings, settings
from .context import AppContext
from .errors import ExtractionError, LearnitError
from .extraction import extract_metadata, extract_text, get_file_type, make_preview
from .file_worker import decode_data_url
from .models import (
    QUANTITY_FOR_FIELD,
    AnswerRecord,
    AskRequest,
    DailyActivity,
    DocumentRecord,
    DocumentUpdate,
    FileReadReply,
    GenerateRequest,
    MoreQuestionsRequest,
    QuestionSet,
    QuestionTypeCounts,
    SavedQuestions,
    SavedQuestionsPatch,
    SessionData,
    StoredDocument,
    UploadedDocument,
    UserProgress,
)
from .narration import NarrationScript, build_narration
from .play import prepare_play_questions, result_payload
from .quiz import more_questions

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")
STATIC_DIR = os.path.join(BASE_DIR, "static")

logger = logging.getLogger(__name__)


# --- Logging Setup ---
def configure_logging(app_settings: Settings) -> None:
    package_logger = logging.getLogger("learnit")
    package_logger.setLevel(logging.DEBUG if app_settings.DEBUG else logging.INFO)
    if package_logger.handlers:
        return

    formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    if app_settings.LOG_TO_FILE:
        if not os.path.exists(app_settings.LOG_DIR):
            os.makedirs(app_settings.LOG_DIR)
        log_path = os.path.join(app_settings.LOG_DIR, app_settings.LOG_FILE)
        handler: logging.Handler = RotatingFileHandler(
            log_path, maxBytes=5_000_000, backupCount=3
        )
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    package_logger.addHandler(handler)


templates = Jinja2Templates(directory=TEMPLATES_DIR)
router = APIRouter()


# --- Dependencies ---
def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_session_id(
    session_id: Optional[str] = Cookie(None, alias=settings.SESSION_COOKIE_NAME),
) -> Optional[str]:
    return session_id


def get_active_session(
    session_id: Optional[str] = Depends(get_session_id),
    ctx: AppContext = Depends(get_context),
) -> Optional[SessionData]:
    return ctx.sessions.get(session_id)


def error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


# --- Shell ---
@router.get("/", response_class=HTMLResponse)
async def home(request: Request, toast: Optional[str] = None):
    return templates.TemplateResponse(
        request,
        "index.html",
        {"title": settings.SITE_TITLE, "toast": toast},
    )


@router.get("/api")
async def api_root():
    return {
        "message": "API is running",
        "endpoints": {
            "POST /api/files/read": "Read a file into a data URL",
            "POST /api/documents": "Upload a new document",
            "GET /api/documents/user/{user_id}": "List a user's documents",
            "GET /api/documents/search": "Search documents (query, user_id)",
            "GET /api/documents/{document_id}": "Get a single document",
            "PUT /api/documents/{document_id}": "Update document metadata",
            "DELETE /api/documents/{document_id}": "Delete a document",
            "POST /api/documents/{document_id}/generate": "Generate questions",
            "GET /api/documents/{document_id}/summary": "Summarize a document",
            "POST /api/documents/{document_id}/ask": "Ask a question about a document",
            "GET /api/saved-questions/{user_id}": "List saved question sets",
            "GET /api/saved-questions/{user_id}/{document_id}": "Get saved questions",
            "POST /api/saved-questions/{user_id}/{document_id}": "Merge saved questions",
            "PUT /api/saved-questions/{user_id}/{document_id}": "Replace saved questions",
            "POST /api/saved-questions/{user_id}/{document_id}/more": "Add more of one question type",
            "GET /api/saved-questions/{user_id}/{document_id}/narration": "Audio study script",
            "GET /api/user-progress/{user_id}": "Get user progress",
            "POST /api/play/start": "Start a quiz session",
        },
    }


# --- Files ---
@router.post(
    "/api/files/read", response_model=FileReadReply, response_model_exclude_none=True
)
async def read_file(file: UploadFile = File(...), ctx: AppContext = Depends(get_context)):
    """One file in, one reply out: either content or error."""
    return await ctx.file_worker.submit({"file": file})


# --- Documents ---
def _extract(file_name: str, data: bytes) -> Tuple[str, Dict[str, Any]]:
    try:
        text = extract_text(file_name, data)
    except ExtractionError as e:
        logger.warning(f"No text extracted from {file_name}: {e}")
        return "", {}
    try:
        metadata = extract_metadata(file_name, data)
    except ExtractionError as e:
        logger.warning(f"No metadata for {file_name}: {e}")
        metadata = {}
    return text, metadata


def _store_upload(ctx: AppContext, document: StoredDocument) -> Optional[str]:
    """Saves a new document unless the user already has one by that name."""
    existing = ctx.documents.id_for_name(document.user_id, document.name)
    if existing:
        return existing
    ctx.documents.add(document)
    ctx.progress.record_upload(document.user_id, document.upload_date.date())
    return None


@router.post("/api/documents", response_model=UploadedDocument, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    user_id: str = Form(...),
    ctx: AppContext = Depends(get_context),
):
    file_name = file.filename or "untitled"
    if file.size is not None and file.size > ctx.settings.MAX_UPLOAD_BYTES:
        return error("File is too large", 413)
    if await run_in_threadpool(ctx.documents.id_for_name, user_id, file_name):
        return error(f"Document already exists: {file_name}", 409)

    reply = await ctx.file_worker.submit({"file": file})
    if "error" in reply:
        return error(reply["error"], 422)

    mime_type, data = decode_data_url(reply["content"])
    if len(data) > ctx.settings.MAX_UPLOAD_BYTES:
        return error("File is too large", 413)
    text, metadata = await run_in_threadpool(_extract, file_name, data)

    now = datetime.now()
    document = StoredDocument(
        id=str(uuid.uuid4()),
        name=file_name,
        type=get_file_type(file_name),
        mime_type=mime_type,
        size=len(data),
        upload_date=now,
        content_preview=make_preview(text, ctx.settings.PREVIEW_LENGTH),
        last_accessed=now,
        user_id=user_id,
        content=reply["content"],
        text=text,
        metadata=metadata,
    )
    if await run_in_threadpool(_store_upload, ctx, document):
        return error(f"Document already exists: {file_name}", 409)
    logger.info(f"Document uploaded: {document.id} ({file_name}) by {user_id}")
    return document.summary()


@router.get("/api/documents/user/{user_id}", response_model=List[UploadedDocument])
def list_user_documents(user_id: str, ctx: AppContext = Depends(get_context)):
    return ctx.documents.list_for_user(user_id)


@router.get("/api/documents/search", response_model=List[UploadedDocument])
def search_documents(
    query: str = Query(..., min_length=1),
    user_id: str = Query(...),
    ctx: AppContext = Depends(get_context),
):
    return ctx.documents.search(user_id, query)


@router.get("/api/documents/{document_id}", response_model=StoredDocument)
def get_document(document_id: str, ctx: AppContext = Depends(get_context)):
    if not ctx.documents.touch(document_id):
        return error("Document not found", 404)
    return ctx.documents.get(document_id)


@router.put("/api/documents/{document_id}", response_model=UploadedDocument)
def update_document(
    document_id: str, updates: DocumentUpdate, ctx: AppContext = Depends(get_context)
):
    record = ctx.documents.get_record(document_id)
    if not record:
        return error("Document not found", 404)
    if updates.name is not None and updates.name != record.name:
        if ctx.documents.id_for_name(record.user_id, updates.name):
            return error(f"Document already exists: {updates.name}", 409)
        record.name = updates.name
        record.type = get_file_type(updates.name)
    if updates.content_preview is not None:
        record.content_preview = updates.content_preview
    if updates.metadata is not None:
        record.metadata.update(updates.metadata)
    ctx.documents.update(record)
    return record.summary()


@router.delete("/api/documents/{document_id}")
def delete_document(document_id: str, ctx: AppContext = Depends(get_context)):
    record = ctx.documents.get_record(document_id)
    if not record or not ctx.documents.delete(document_id):
        return error("Document not found", 404)
    ctx.saved_questions.delete(record.user_id, document_id)
    logger.info(f"Document deleted: {document_id}")
    return {"message": "Document deleted successfully"}


@router.post("/api/documents/{document_id}/generate", response_model=SavedQuestions)
def generate_questions(
    document_id: str, request: GenerateRequest, ctx: AppContext = Depends(get_context)
):
    record = ctx.documents.get_record(document_id)
    if not record:
        return error("Document not found", 404)
    try:
        generator = ctx.generator(request.mode, record.name)
    except ValueError as e:
        return error(str(e), 400)

    question_set = generator.generate(ctx.documents.get_text(document_id), request.quantities)
    saved = SavedQuestions(
        user_id=record.user_id,
        document_id=record.id,
        last_updated=datetime.now(),
        **dict(question_set),
    )
    ctx.saved_questions.save(saved)
    ctx.documents.touch(record.id)
    ctx.progress.record_generation(
        record.user_id,
        record.id,
        question_set.counts(),
        request.time_spent_seconds,
    )
    logger.info(f"Generated {question_set.counts().total()} questions for {record.id}")
    return saved


def _assistant_inputs(
    ctx: AppContext, document_id: str, mode: str
) -> Tuple[Optional[DocumentRecord], Any]:
    record = ctx.documents.get_record(document_id)
    if not record:
        return None, error("Document not found", 404)
    try:
        return record, ctx.assistant(mode)
    except ValueError as e:
        return None, error(str(e), 400)


@router.get("/api/documents/{document_id}/summary")
def summarize_document(
    document_id: str, mode: str = "heuristic", ctx: AppContext = Depends(get_context)
):
    record, assistant = _assistant_inputs(ctx, document_id, mode)
    if not record:
        return assistant
    summary = assistant.summarize(ctx.documents.get_text(document_id), record.name)
    logger.info(f"Summarized {document_id} ({mode})")
    return {"document_id": document_id, "summary": summary}


@router.post("/api/documents/{document_id}/ask")
def ask_document(document_id: str, request: AskRequest, ctx: AppContext = Depends(get_context)):
    record, assistant = _assistant_inputs(ctx, document_id, request.mode)
    if not record:
        return assistant
    answer = assistant.answer(request.question, ctx.documents.get_text(document_id), record.name)
    return {"question": request.question, "answer": answer}


# --- Saved Questions ---
@router.get("/api/saved-questions/{user_id}", response_model=List[SavedQuestions])
def list_saved_questions(user_id: str, ctx: AppContext = Depends(get_context)):
    return ctx.saved_questions.list_for_user(user_id)


@router.get("/api/saved-questions/{user_id}/{document_id}", response_model=SavedQuestions)
def get_saved_questions(user_id: str, document_id: str, ctx: AppContext = Depends(get_context)):
    saved = ctx.saved_questions.get(user_id, document_id)
    if not saved:
        return error("No saved questions found", 404)
    return saved


@router.post("/api/saved-questions/{user_id}/{document_id}", response_model=SavedQuestions)
def merge_saved_questions(
    user_id: str,
    document_id: str,
    patch: SavedQuestionsPatch,
    ctx: AppContext = Depends(get_context),
):
    existing = ctx.saved_questions.get(user_id, document_id)
    merged = dict(existing) if existing else {}
    for field in patch.model_fields_set:
        value = getattr(patch, field)
        if value is not None:
            merged[field] = value
    merged.update(user_id=user_id, document_id=document_id, last_updated=datetime.now())
    return ctx.saved_questions.save(SavedQuestions(**merged))


@router.put("/api/saved-questions/{user_id}/{document_id}", response_model=SavedQuestions)
def replace_saved_questions(
    user_id: str,
    document_id: str,
    questions: QuestionSet,
    ctx: AppContext = Depends(get_context),
):
    saved = SavedQuestions(
        user_id=user_id,
        document_id=document_id,
        last_updated=datetime.now(),
        **dict(questions),
    )
    logger.info(f"Replaced saved questions for {user_id}/{document_id}")
    return ctx.saved_questions.save(saved)


@router.post(
    "/api/saved-questions/{user_id}/{document_id}/more", response_model=SavedQuestions
)
def add_more_questions(
    user_id: str,
    document_id: str,
    request: MoreQuestionsRequest,
    ctx: AppContext = Depends(get_context),
):
    record = ctx.documents.get_record(document_id)
    if not record:
        return error("Document not found", 404)
    try:
        generator = ctx.generator(request.mode, record.name)
    except ValueError as e:
        return error(str(e), 400)

    saved = ctx.saved_questions.get(user_id, document_id) or SavedQuestions(
        user_id=user_id, document_id=document_id, last_updated=datetime.now()
    )
    field = request.question_type
    added = more_questions(
        generator, ctx.documents.get_text(document_id), saved, field, request.quantity
    )
    getattr(saved, field).extend(added)
    saved.last_updated = datetime.now()
    ctx.saved_questions.save(saved)
    ctx.progress.record_generation(
        user_id, document_id, QuestionTypeCounts(**{QUANTITY_FOR_FIELD[field]: len(added)})
    )
    logger.info(f"Added {len(added)} {field} to {user_id}/{document_id}")
    return saved


@router.get(
    "/api/saved-questions/{user_id}/{document_id}/narration",
    response_model=NarrationScript,
)
def get_narration(
    user_id: str,
    document_id: str,
    words_per_minute: int = Query(150, ge=60, le=400),
    ctx: AppContext = Depends(get_context),
):
    saved = ctx.saved_questions.get(user_id, document_id)
    if not saved:
        return error("No saved questions found", 404)
    document = ctx.documents.get_record(document_id)
    title = document.name if document else document_id
    return build_narration(saved, title, words_per_minute)


# --- User Progress ---
@router.get("/api/user-progress/{user_id}", response_model=UserProgress)
def get_user_progress(user_id: str, ctx: AppContext = Depends(get_context)):
    progress = ctx.progress.get(user_id)
    if not progress:
        return error("User progress not found", 404)
    return progress


@router.get("/api/user-progress/{user_id}/streak")
def get_streak(user_id: str, ctx: AppContext = Depends(get_context)):
    return ctx.progress.get_streak(user_id)


@router.get("/api/user-progress/{user_id}/activity", response_model=List[DailyActivity])
def get_activity(
    user_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    ctx: AppContext = Depends(get_context),
):
    if start and end and start > end:
        return error("start must be on or before end", 400)
    return ctx.progress.get_daily_activity(user_id, start, end)


@router.get("/api/user-progress/{user_id}/calendar")
def get_calendar(
    user_id: str,
    weeks: int = Query(52, ge=1, le=104),
    ctx: AppContext = Depends(get_context),
):
    return ctx.progress.activity_calendar(user_id, weeks)


@router.post("/api/user-progress/{user_id}/daily-activity", response_model=UserProgress)
def set_daily_activity(
    user_id: str, activity: DailyActivity, ctx: AppContext = Depends(get_context)
):
    return ctx.progress.set_daily_activity(user_id, activity)


# --- Quiz Play ---
@router.post("/api/play/start")
def start_play_session(
    user_id: str = Form(...),
    document_id: str = Form(...),
    ctx: AppContext = Depends(get_context),
):
    saved = ctx.saved_questions.get(user_id, document_id)
    if not saved:
        return error("No saved questions found", 404)

    prepared_questions = prepare_play_questions(saved, ctx.settings.TEST_SIZE, ctx.rng)
    if not prepared_questions:
        return error("No playable questions in this set", 422)

    new_id = str(uuid.uuid4())
    session_data = SessionData(
        user_id=user_id,
        document_id=document_id,
        prepared_questions=prepared_questions,
        correct_count=0,
        total_questions=len(prepared_questions),
        answers=[],
        created_at=datetime.now(),
    )
    ctx.sessions.save(new_id, session_data)
    logger.info(f"New session: {new_id} [User: {user_id}, Document: {document_id}]")

    response = JSONResponse(
        {"session_id": new_id, "total_questions": session_data.total_questions}
    )
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=new_id,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/api/play/questions/{index}")
def get_question_data(
    index: int, session_data: Optional[SessionData] = Depends(get_active_session)
):
    if not session_data:
        return error("Session invalid", 401)
    if not (0 <= index < session_data.total_questions):
        return error("Index error", 404)

    current_q = session_data.prepared_questions[index]
    record = session_data.answers[index] if index < len(session_data.answers) else None

    return {
        "kind": current_q.kind,
        "prompt": current_q.prompt,
        "options": current_q.options,
        "current_index": index,
        "total_questions": session_data.total_questions,
        "answer_record": record,
    }


@router.post("/api/play/answer", response_model=AnswerRecord)
def submit_answer(
    selected_option_index: int = Form(...),
    current_index: int = Form(...),
    session_id: Optional[str] = Depends(get_session_id),
    session_data: Optional[SessionData] = Depends(get_active_session),
    ctx: AppContext = Depends(get_context),
):
    if not session_data or not (0 <= current_index < session_data.total_questions):
        return error("Invalid session", 401)
    if current_index != len(session_data.answers):
        if current_index < len(session_data.answers):
            return error("Already answered", 400)
        return error("Answer questions in order", 400)

    current_q = session_data.prepared_questions[current_index]
    if not (0 <= selected_option_index < len(current_q.options)):
        return error("Invalid option", 400)

    user_answer_str = current_q.options[selected_option_index]
    is_correct = user_answer_str == current_q.answer
    if is_correct:
        session_data.correct_count += 1

    logger.info(
        f"Session {session_id} Q{current_index}: Selected idx {selected_option_index} "
        f"-> {'CORRECT' if is_correct else 'INCORRECT'}"
    )

    record = AnswerRecord(
        prompt=current_q.prompt,
        user_answer=user_answer_str,
        correct_answer=current_q.answer,
        is_correct=is_correct,
        attempted=True,
    )
    session_data.answers.append(record.model_dump())
    ctx.sessions.save(session_id, session_data)
    return record


@router.get("/api/play/result")
def get_result_data(
    session_id: Optional[str] = Depends(get_session_id),
    session_data: Optional[SessionData] = Depends(get_active_session),
    ctx: AppContext = Depends(get_context),
):
    if not session_data:
        return error("Session invalid", 401)

    payload = result_payload(session_data, ctx.settings.CELEBRATION_THRESHOLD)
    if payload["completed"] and not session_data.score_recorded:
        ctx.progress.record_score(session_data.user_id, payload["score_percentage"])
        session_data.score_recorded = True
        ctx.sessions.save(session_id, session_data)
    return payload


@router.post("/api/play/reset")
def reset_session(
    response: Response,
    session_id: Optional[str] = Depends(get_session_id),
    ctx: AppContext = Depends(get_context),
):
    if session_id:
        ctx.sessions.delete(session_id)
        logger.info(f"Reset session: {session_id}")
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return {"status": "success"}


# --- Error Handling ---
async def learnit_error_handler(request: Request, exc: LearnitError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return error(str(exc), 422)


# --- App Setup ---
def create_app(
    app_settings: Settings = settings, redis_client: Optional[Redis] = None
) -> FastAPI:
    configure_logging(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.context = AppContext.create(app_settings, redis_client)
        yield
        app.state.context.close()

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        debug=app_settings.DEBUG,
        lifespan=lifespan,
    )
    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.include_router(router)
    app.add_exception_handler(LearnitError, learnit_error_handler)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("learnit.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
