"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the LearnHub backend.
Controllers are intentionally thin: they check who is asking, delegate
to the services in `learnhub.services`, and return JSON. Services raise
`DomainError` subclasses which a single exception handler turns into
HTTP responses.

Endpoint groups:
- /users, /auth/login
- /courses (CRUD, filters, enrollment, chapters, comments, stats)
- /chapters (CRUD, quiz of a chapter)
- /quizzes (CRUD, answers)
- /comments
- /health
"""

from contextlib import asynccontextmanager
from typing import List
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import json
import logging
import time
import uuid
from .database import engine, create_db_and_tables, get_session
from . import services, models
from .auth import get_current_user, require_teacher
from .config import settings
from .errors import DomainError
from .schemas import (
    ChapterCreate,
    ChapterUpdate,
    CommentCreate,
    CourseCreate,
    CourseUpdate,
    CourseUpdateIn,
    LoginIn,
    QuizAnswerIn,
    QuizCreate,
    QuizUpdate,
    StudentsIn,
    TokenOut,
    UserCreate,
    UserOut,
    UserUpdate,
)
from .utils.summarizer import OllamaSummarizer
from .utils.summary_jobs import SummaryResult, SummaryWorker

logger = logging.getLogger("learnhub.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)


def _store_summary(result: SummaryResult) -> None:
    """Write a finished summary back through the chapter service."""
    with Session(engine) as session:
        applied = services.Registries(session).chapters.apply_summary(
            result.chapter_id, result.source_text, result.summary
        )
    if not applied:
        logger.info("summary_discarded chapter=%s", result.chapter_id)


def _build_summary_worker():
    if not settings.SUMMARY_ENABLED:
        return None
    summarizer = OllamaSummarizer(
        settings.OLLAMA_API_URL,
        settings.OLLAMA_MODEL,
        timeout_seconds=settings.OLLAMA_TIMEOUT_SECONDS,
    )
    return SummaryWorker(summarizer, on_complete=_store_summary)


_summary_worker = _build_summary_worker()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    if _summary_worker is not None and not _summary_worker.drain(timeout=5.0):
        logger.warning("summary jobs still running at shutdown: %d", _summary_worker.pending())


app = FastAPI(title="LearnHub API", lifespan=lifespan)

# Wide-open CORS keeps a local single-page frontend working without extra config in dev.
if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        logger.exception(
            "request_failed %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info("domain_error %s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def get_registries(db: Session = Depends(get_session)) -> services.Registries:
    """Per-request services sharing one session."""
    return services.Registries(db, summaries=_summary_worker)


def _require_self(user: models.User, user_id: str) -> None:
    if user.uuid != user_id:
        raise HTTPException(status_code=403, detail='You are not allowed to access this resource')


def _member_course(reg: services.Registries, course_id: str, user: models.User) -> models.Course:
    """Return the course if `user` created it or is enrolled in it."""
    course = reg.courses.require(course_id)
    if course.creator_id != user.uuid and user.uuid not in course.students:
        raise HTTPException(status_code=403, detail='You are not allowed to access this course')
    return course


def _owned_course(reg: services.Registries, course_id: str, user: models.User, detail: str = 'Course not found') -> models.Course:
    course = reg.courses.require(course_id, detail)
    if course.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='You are not the creator of this course')
    return course


def _check_enrollment_rights(course: models.Course, student_ids: List[str], user: models.User) -> None:
    # the course creator manages anyone; a student may only act on themselves
    if course.creator_id != user.uuid and any(sid != user.uuid for sid in student_ids):
        raise HTTPException(status_code=403, detail='You are not allowed to change enrollment for other users')


# ---- users and auth ----

@app.post('/users', response_model=UserOut, status_code=201)
def create_user(payload: UserCreate, reg: services.Registries = Depends(get_registries)):
    """Sign up as a teacher or student."""
    auth = services.AuthService(reg)
    return auth.register(payload.email, payload.password, payload.lastname, payload.firstname, payload.type)


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, reg: services.Registries = Depends(get_registries)):
    """Authenticate a user and return a JWT.

    The token carries the user's uuid in `sub` together with email, type
    and names so the frontend can decode the profile without a lookup.
    """
    token = services.AuthService(reg).authenticate(payload.email, payload.password)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.get('/users/{user_id}', response_model=UserOut)
def get_user(user_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    _require_self(user, user_id)
    found = reg.users.find_by_id_without_password(user_id)
    if not found:
        raise HTTPException(status_code=404, detail='User not found')
    return found


@app.put('/users/{user_id}', response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    _require_self(user, user_id)
    return reg.users.update(user_id, payload)


@app.delete('/users/{user_id}', response_model=UserOut)
def delete_user(user_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    _require_self(user, user_id)
    return reg.users.delete(user_id)


# ---- courses ----

@app.post('/courses', status_code=201)
def create_course(payload: CourseCreate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(require_teacher)):
    if payload.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='You are not allowed to create a course for another user')
    return reg.courses.create(payload)


@app.get('/courses')
def list_courses(reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_all()


@app.get('/courses/tag/{tag}')
def courses_by_tag(tag: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_by_tag(tag)


@app.get('/courses/creator/{creator_id}')
def courses_by_creator(creator_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_by_creator(creator_id)


@app.get('/courses/student/{student_id}')
def courses_by_student(student_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_by_student(student_id)


@app.get('/courses/{course_id}')
def get_course(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    """Return a course to its creator or one of its students."""
    return _member_course(reg, course_id, user)


@app.get('/courses/{course_id}/chapters')
def course_chapters(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_chapters(course_id)


@app.get('/courses/{course_id}/comments')
def course_comments(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.courses.find_comments(course_id)


@app.get('/courses/{course_id}/stats')
def course_stats(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    """Latest quiz results of every enrolled student."""
    _member_course(reg, course_id, user)
    return reg.stats.course_stats(course_id)


@app.put('/courses/{course_id}')
def update_course(course_id: str, payload: CourseUpdateIn, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    _owned_course(reg, course_id, user)
    patch = CourseUpdate(**payload.model_dump(exclude_unset=True))
    return reg.courses.update(course_id, patch)


@app.put('/courses/{course_id}/enroll')
def enroll_students(course_id: str, payload: StudentsIn, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    course = reg.courses.require(course_id)
    _check_enrollment_rights(course, payload.students, user)
    return reg.courses.add_students(course_id, payload.students)


@app.delete('/courses/{course_id}/unenroll')
def unenroll_students(course_id: str, payload: StudentsIn, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    course = reg.courses.require(course_id)
    _check_enrollment_rights(course, payload.students, user)
    return reg.courses.remove_students(course_id, payload.students)


@app.delete('/courses/{course_id}')
def delete_course(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    """Delete a course with its chapters, quizzes and comments."""
    _owned_course(reg, course_id, user)
    return reg.courses.delete(course_id)


# ---- chapters ----

@app.post('/chapters', status_code=201)
def create_chapter(payload: ChapterCreate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(require_teacher)):
    """Add a chapter to one of the requester's courses.

    The chapter summary is generated in the background and is empty in
    this response.
    """
    _owned_course(reg, payload.course_id, user)
    return reg.chapters.create(payload)


@app.get('/chapters')
def list_chapters(reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.chapters.find_all()


@app.get('/chapters/course/{course_id}')
def chapters_by_course(course_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.chapters.find_by_course(course_id)


@app.get('/chapters/{chapter_id}')
def get_chapter(chapter_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    chapter = reg.chapters.require(chapter_id)
    reg.courses.require(chapter.course_id, 'Associated course not found')
    return chapter


@app.get('/chapters/{chapter_id}/quiz')
def chapter_quiz(chapter_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    quiz = reg.chapters.find_quiz_of_chapter(chapter_id)
    if not quiz:
        raise HTTPException(status_code=404, detail='Chapter has no quiz')
    return quiz


@app.put('/chapters/{chapter_id}')
def update_chapter(chapter_id: str, payload: ChapterUpdate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    chapter = reg.chapters.require(chapter_id)
    _owned_course(reg, chapter.course_id, user, 'Associated course not found')
    if payload.course_id:
        _owned_course(reg, payload.course_id, user)
    return reg.chapters.update(chapter_id, payload)


@app.delete('/chapters/{chapter_id}')
def delete_chapter(chapter_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    chapter = reg.chapters.require(chapter_id)
    _owned_course(reg, chapter.course_id, user, 'Associated course not found')
    return reg.chapters.delete(chapter_id)


# ---- quizzes ----

@app.post('/quizzes', status_code=201)
def create_quiz(payload: QuizCreate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(require_teacher)):
    if payload.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='You are not allowed to create a quiz for another user')
    return reg.quizzes.create(payload)


@app.get('/quizzes')
def list_quizzes(reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.quizzes.find_all()


@app.get('/quizzes/chapter/{chapter_id}')
def quizzes_by_chapter(chapter_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.quizzes.find_by_chapter(chapter_id)


@app.get('/quizzes/{quiz_id}')
def get_quiz(quiz_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.quizzes.require(quiz_id)


@app.put('/quizzes/{quiz_id}')
def update_quiz(quiz_id: str, payload: QuizUpdate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(require_teacher)):
    quiz = reg.quizzes.require(quiz_id)
    if quiz.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='You are not allowed to update this quiz')
    return reg.quizzes.update(quiz_id, payload)


@app.delete('/quizzes/{quiz_id}')
def delete_quiz(quiz_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(require_teacher)):
    quiz = reg.quizzes.require(quiz_id)
    if quiz.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='You are not allowed to delete this quiz')
    return reg.quizzes.delete(quiz_id)


@app.post('/quizzes/{quiz_id}/answers', status_code=201)
def submit_answers(quiz_id: str, payload: QuizAnswerIn, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    """Score an attempt at a quiz and store it.

    The body repeats the quiz id; it must match the path. Users can only
    submit attempts for themselves.
    """
    if payload.quiz_id != quiz_id:
        raise HTTPException(status_code=400, detail='Quiz ID in the URL does not match the body')
    _require_self(user, payload.user_id)
    return reg.quizzes.submit_answer(quiz_id, payload.user_id, payload.answers)


@app.get('/quizzes/{quiz_id}/answers')
def quiz_answers(quiz_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    quiz = reg.quizzes.require(quiz_id)
    if quiz.creator_id != user.uuid:
        raise HTTPException(status_code=403, detail='Only the quiz creator can list all answers')
    return reg.quizzes.find_answers_for_quiz(quiz_id)


@app.get('/quizzes/{quiz_id}/answers/{user_id}')
def user_quiz_answer(quiz_id: str, user_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    """Latest attempt of `user_id`, visible to that user and the quiz creator."""
    quiz = reg.quizzes.require(quiz_id)
    if user.uuid not in (user_id, quiz.creator_id):
        raise HTTPException(status_code=403, detail='You are not allowed to see these answers')
    answer = reg.quizzes.find_user_answer(quiz_id, user_id)
    if not answer:
        raise HTTPException(status_code=404, detail='No answer submitted')
    return answer


# ---- comments ----

@app.post('/comments', status_code=201)
def create_comment(payload: CommentCreate, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    if payload.user_id != user.uuid:
        raise HTTPException(status_code=403, detail='You can only create comments for yourself')
    return reg.comments.create(payload)


@app.get('/comments/{comment_id}')
def get_comment(comment_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    return reg.comments.find_by_id(comment_id)


@app.delete('/comments/{comment_id}')
def delete_comment(comment_id: str, reg: services.Registries = Depends(get_registries), user: models.User = Depends(get_current_user)):
    comment = reg.comments.find_by_id(comment_id)
    if comment.user_id != user.uuid:
        raise HTTPException(status_code=403, detail='You can only delete your own comments')
    return reg.comments.delete(comment_id)


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
