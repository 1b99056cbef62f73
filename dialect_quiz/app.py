from __future__ import annotations

import csv
import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from openpyxl import Workbook

from dialect_quiz.api.schemas import (
    AnswerRequest,
    MasteredRequest,
    PreferencesUpdateRequest,
    ProfileUpdateRequest,
    QuizStartRequest,
    SignInRequest,
    SignOutRequest,
    TokenSelectRequest,
    TokenUnselectRequest,
)
from dialect_quiz.config import (
    ARTIFACTS_DIR,
    DIFFICULTIES,
    EXPORTS_DIR,
    TARGET_DIALECTS,
    TEMPLATES_DIR,
    configure_logging,
    ensure_dirs,
)
from dialect_quiz.exercises.generator import QUIZ_TYPES, SPACED, QuizSettings, generate_quiz
from dialect_quiz.phrases import PhraseStore
from dialect_quiz.quiz.session import QuizSession, SessionRegistry
from dialect_quiz.services.identity import IdentityProvider
from dialect_quiz.services.progress import ProgressService, SyncRejected
from dialect_quiz.services.remote import RemoteProgressStore
from dialect_quiz.storage.db import Database

UTC = timezone.utc
EXPORT_COLUMNS = ["date", "quiz_type", "difficulty", "target_dialect", "score", "total", "percentage", "time_spent"]
EMPTY_POOL_MESSAGE = "No phrases available for these settings. Try another difficulty or dialect."

db = Database()
phrase_store = PhraseStore.from_file()
sessions = SessionRegistry()
progress_service = ProgressService(db)
identity = IdentityProvider(db)
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global progress_service, identity
    configure_logging()
    ensure_dirs()
    db.initialize()
    progress_service = ProgressService(db, RemoteProgressStore.from_env())
    identity = IdentityProvider(db)
    progress_service.start()
    yield
    progress_service.stop()
    sessions.clear()


app = FastAPI(title="Dialect Quiz", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/artifacts", StaticFiles(directory=str(ARTIFACTS_DIR), check_dir=False), name="artifacts")


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "phrases": len(phrase_store)}


@app.get("/", response_class=HTMLResponse)
def home(request: Request) -> HTMLResponse:
    context = {
        "difficulties": DIFFICULTIES,
        "dialects": TARGET_DIALECTS,
        "quiz_types": QUIZ_TYPES,
        "phrase_count": len(phrase_store),
    }
    return templates.TemplateResponse(request, "index.html", context)


# phrases


@app.get("/api/phrases")
def phrases(difficulty: str | None = Query(default=None), category: str | None = Query(default=None)) -> dict:
    if difficulty and difficulty != "all" and difficulty not in DIFFICULTIES:
        raise HTTPException(status_code=400, detail=f"unsupported difficulty: {difficulty}")
    items = phrase_store.filter(difficulty=difficulty, category=category)
    return {
        "ok": True,
        "total": len(items),
        "categories": phrase_store.categories(),
        "items": [phrase.to_dict() for phrase in items],
    }


@app.get("/api/phrases/{phrase_id}")
def phrase_detail(phrase_id: str) -> dict:
    phrase = phrase_store.get(phrase_id)
    if phrase is None:
        raise HTTPException(status_code=404, detail="phrase not found")
    return {"ok": True, "phrase": phrase.to_dict()}


# quiz sessions


@app.post("/api/quiz/start")
def start_quiz(req: QuizStartRequest) -> dict:
    _require_user(req.user_id)
    settings = QuizSettings(
        difficulty=req.difficulty,
        quiz_type=req.quiz_type,
        length=req.length,
        source_dialect=req.source_dialect,
        target_dialect=req.target_dialect,
    )
    srs_items = db.list_srs_items(req.user_id) if req.quiz_type == SPACED else None
    rng = random.Random(req.seed) if req.seed is not None else None
    try:
        build = generate_quiz(phrase_store.all(), settings, srs_items=srs_items, rng=rng)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not build.questions:
        raise HTTPException(status_code=400, detail=EMPTY_POOL_MESSAGE)

    session = sessions.add(
        QuizSession(
            user_id=req.user_id,
            settings=settings,
            questions=build.questions,
            progress=progress_service,
            skipped=build.skipped,
        )
    )
    return {"ok": True, **session.public_dict()}


@app.get("/api/quiz/{session_id}")
def quiz_state(session_id: str) -> dict:
    return {"ok": True, **_session_or_404(session_id).public_dict()}


@app.post("/api/quiz/{session_id}/answer")
def answer_question(session_id: str, req: AnswerRequest) -> dict:
    session = _session_or_404(session_id)
    try:
        outcome = session.answer(req.answer)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, **vars(outcome)}


@app.post("/api/quiz/{session_id}/next")
def next_question(session_id: str) -> dict:
    session = _session_or_404(session_id)
    try:
        question = session.next_question()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {
        "ok": True,
        "index": session.index,
        "done": question is None,
        "question": question.public_dict() if question else None,
    }


@app.post("/api/quiz/{session_id}/word-order/select")
def select_word(session_id: str, req: TokenSelectRequest) -> dict:
    session = _session_or_404(session_id)
    try:
        question = session.select_token(req.index)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "question": question.public_dict()}


@app.post("/api/quiz/{session_id}/word-order/unselect")
def unselect_word(session_id: str, req: TokenUnselectRequest) -> dict:
    session = _session_or_404(session_id)
    try:
        question = session.unselect_token(req.position)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "question": question.public_dict()}


@app.post("/api/quiz/{session_id}/word-order/submit")
def submit_words(session_id: str) -> dict:
    session = _session_or_404(session_id)
    try:
        outcome = session.submit_selection()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, **vars(outcome)}


@app.post("/api/quiz/{session_id}/finish")
def finish_quiz(session_id: str) -> dict:
    session = _session_or_404(session_id)
    try:
        summary = session.finish()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    finally:
        sessions.remove(session_id)
    return {"ok": True, "summary": summary.to_dict()}


# progress


@app.get("/api/progress")
def get_progress(user_id: int = Query(default=1), refresh: bool = Query(default=False)) -> dict:
    progress = progress_service.get_progress(user_id, force_refresh=refresh)
    return {"ok": True, "progress": progress.to_dict()}


@app.put("/api/progress/preferences")
def update_preferences(req: PreferencesUpdateRequest) -> dict:
    _require_user(req.user_id)
    changes = req.model_dump(exclude={"user_id"}, exclude_none=True)
    try:
        progress = progress_service.update_progress(req.user_id, {"preferences": changes})
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "preferences": vars(progress.preferences)}


@app.post("/api/progress/mastered")
def mark_mastered(req: MasteredRequest) -> dict:
    _require_user(req.user_id)
    if phrase_store.get(req.phrase_id) is None:
        raise HTTPException(status_code=404, detail="phrase not found")
    newly = progress_service.mark_mastered(req.user_id, req.phrase_id)
    return {"ok": True, "phrase_id": req.phrase_id, "newly_mastered": newly}


@app.get("/api/progress/mastered")
def mastered_phrases(user_id: int = Query(default=1)) -> dict:
    ids = db.get_mastered_ids(user_id)
    return {"ok": True, "total": len(ids), "phrase_ids": ids}


@app.get("/api/progress/stats")
def progress_stats(user_id: int = Query(default=1)) -> dict:
    return {"ok": True, "stats": db.user_stats(user_id), "analytics": db.user_analytics(user_id)}


@app.get("/api/progress/sync")
def sync_status(user_id: int = Query(default=1)) -> dict:
    return {
        "ok": True,
        "online": progress_service.online,
        "remote_enabled": progress_service.remote is not None,
        "pending": len(progress_service.pending(user_id)),
        "last_error": progress_service.last_error,
    }


@app.post("/api/progress/sync")
def sync_now() -> dict:
    try:
        sent = progress_service.flush()
    except SyncRejected as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"ok": True, "sent": sent, "last_error": progress_service.last_error}


@app.get("/api/progress/export")
def export_history(user_id: int = Query(default=1), fmt: str = Query(default="csv")) -> dict:
    fmt = fmt.lower()
    if fmt not in {"csv", "xlsx"}:
        raise HTTPException(status_code=400, detail=f"unsupported export format: {fmt}")
    records = db.export_quiz_history(user_id)
    ts = datetime.now(UTC).strftime("%Y%m%d%H%M%S")
    EXPORTS_DIR.mkdir(parents=True, exist_ok=True)

    if fmt == "xlsx":
        out = EXPORTS_DIR / f"quiz_history_{user_id}_{ts}.xlsx"
        wb = Workbook()
        ws = wb.active
        ws.title = "quiz history"
        ws.append(EXPORT_COLUMNS)
        for item in records:
            ws.append([item[column] for column in EXPORT_COLUMNS])
        wb.save(out)
    else:
        out = EXPORTS_DIR / f"quiz_history_{user_id}_{ts}.csv"
        with out.open("w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(EXPORT_COLUMNS)
            for item in records:
                writer.writerow([item[column] for column in EXPORT_COLUMNS])

    return {
        "ok": True,
        "rows": len(records),
        "url": "/artifacts/" + str(out.relative_to(ARTIFACTS_DIR)).replace("\\", "/"),
    }


@app.get("/api/srs/due")
def due_reviews(user_id: int = Query(default=1), limit: int = Query(default=20, ge=1, le=200)) -> dict:
    items = db.due_srs_items(user_id, limit=limit)
    payload = []
    for item in items:
        phrase = phrase_store.get(item.phrase_id)
        if phrase is None:
            continue
        payload.append({**item.to_dict(), "phrase": phrase.to_dict()})
    return {"ok": True, "total": len(payload), "items": payload}


# identity


@app.post("/api/auth/sign-in")
def sign_in(req: SignInRequest) -> dict:
    try:
        result = identity.sign_in(req.display_name, req.email)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, **result}


@app.post("/api/auth/sign-out")
def sign_out(req: SignOutRequest) -> dict:
    return {"ok": True, "signed_out": identity.sign_out(req.token)}


@app.get("/api/auth/me")
def current_user(authorization: str | None = Header(default=None)) -> dict:
    user = identity.get_current_user(_bearer_token(authorization))
    if user is None:
        raise HTTPException(status_code=401, detail="not signed in")
    return {"ok": True, "user": user}


@app.put("/api/auth/profile")
def update_profile(req: ProfileUpdateRequest) -> dict:
    try:
        user = identity.update_profile(
            req.user_id,
            display_name=req.display_name,
            email=req.email,
            avatar=req.avatar,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, "user": user}


def _require_user(user_id: int) -> None:
    if db.get_user(user_id) is None:
        raise HTTPException(status_code=404, detail="user not found")


def _session_or_404(session_id: str) -> QuizSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="quiz session not found")
    return session


def _bearer_token(header: str | None) -> str | None:
    text = (header or "").strip()
    if text.lower().startswith("bearer "):
        return text[7:].strip() or None
    return text or None
