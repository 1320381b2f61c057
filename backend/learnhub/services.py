"""Business logic services used by HTTP controllers.

One service per entity owns that entity's table: it is the only code
that creates, updates or deletes those rows. When an operation needs to
touch a neighbour (append a chapter id to its course, clear a chapter's
quiz pointer, ...) it calls the neighbour's service through `Registries`,
which holds all services for one session and breaks the import cycle
between courses, chapters, quizzes and comments.

Cross-entity checks are sequential lookups made at call time. A failure
aborts the remaining steps of the current operation but does not roll
back steps that already committed.
"""

from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
import logging
from typing import Iterable, List, Optional
from sqlmodel import Session
from . import models, repositories
from .config import settings
from .errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from .schemas import (
    ChapterCreate,
    ChapterUpdate,
    CommentCreate,
    CourseCreate,
    CourseUpdate,
    QuizCreate,
    QuizUpdate,
    UserOut,
    UserUpdate,
)
from .utils.scoring import score_answers
from .utils.summary_jobs import SummaryWorker

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger("learnhub.services")


class Registries:
    """All entity services bound to one database session."""
    def __init__(self, session: Session, summaries: Optional[SummaryWorker] = None):
        self.session = session
        self.summaries = summaries
        self.users = UserService(self)
        self.courses = CourseService(self)
        self.chapters = ChapterService(self)
        self.quizzes = QuizService(self)
        self.comments = CommentService(self)
        self.stats = StatsService(self)


class UserService:
    """Users: registration data, profile updates and removal."""
    def __init__(self, registries: Registries):
        self.registries = registries
        self.repo = repositories.UserRepository(registries.session)

    def create(self, email: str, password: str, lastname: str, firstname: str, type: models.UserType) -> models.User:
        """Create a user with a hashed password.

        Raises ConflictError if the email is already registered.
        """
        if self.repo.get_by_email(email):
            raise ConflictError("User with this email already exists")
        user = models.User(
            email=email,
            password_hash=PWD_CTX.hash(password),
            lastname=lastname,
            firstname=firstname,
            type=models.UserType(type),
        )
        return self.repo.create(user)

    def find_by_id(self, user_id: str) -> Optional[models.User]:
        return self.repo.get(user_id)

    def find_by_id_without_password(self, user_id: str) -> Optional[UserOut]:
        user = self.repo.get(user_id)
        return UserOut.model_validate(user) if user else None

    def find_by_email(self, email: str) -> Optional[models.User]:
        return self.repo.get_by_email(email)

    def require(self, user_id: str, detail: str = "User not found") -> models.User:
        """Return the user or raise NotFoundError with `detail`."""
        user = self.repo.get(user_id)
        if not user:
            raise NotFoundError(detail)
        return user

    def update(self, user_id: str, patch: UserUpdate) -> UserOut:
        self.require(user_id)
        fields = patch.model_dump(exclude_unset=True, exclude_none=True)
        if "email" in fields:
            other = self.repo.get_by_email(fields["email"])
            if other and other.uuid != user_id:
                raise ConflictError("User with this email already exists")
        if "password" in fields:
            fields["password_hash"] = PWD_CTX.hash(fields.pop("password"))
        return UserOut.model_validate(self.repo.update(user_id, fields))

    def delete(self, user_id: str) -> UserOut:
        """Remove the user. Courses, comments and answers they own are kept."""
        user = self.repo.delete(user_id)
        if not user:
            raise NotFoundError("User not found")
        return UserOut.model_validate(user)


class AuthService:
    """Authentication related operations (register + authenticate).

    Built over the request's `Registries` so sign-up and login share the
    services the rest of the request already uses.
    """
    def __init__(self, registries: Registries):
        self.users = registries.users

    def register(self, email: str, password: str, lastname: str, firstname: str, type: models.UserType) -> models.User:
        return self.users.create(email, password, lastname, firstname, type)

    def authenticate(self, email: str, password: str) -> Optional[str]:
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.users.find_by_email(email)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password_hash):
            return None
        return issue_token(user)


def issue_token(user: models.User) -> str:
    """Sign a token carrying the user's uuid and profile claims."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRE_HOURS)
    payload = {
        "sub": user.uuid,
        "email": user.email,
        "type": user.type.value,
        "firstname": user.firstname,
        "lastname": user.lastname,
        "exp": int(expire.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


class CourseService:
    """Courses and their reference arrays (chapters, students, comments)."""
    def __init__(self, registries: Registries):
        self.registries = registries
        self.repo = repositories.CourseRepository(registries.session)

    def _require_users(self, user_ids: Iterable[str], label: str) -> None:
        # stops at the first missing id
        for uid in user_ids:
            if not self.registries.users.find_by_id(uid):
                raise NotFoundError(f"{label} with ID {uid} not found")

    def create(self, payload: CourseCreate) -> models.Course:
        self.registries.users.require(payload.creator_id, "Creator not found")
        if self.repo.get_by_title(payload.title):
            raise ConflictError("Course with this title already exists")
        self._require_users(payload.students, "Student")
        course = models.Course(
            title=payload.title,
            description=payload.description,
            tags=list(payload.tags),
            creator_id=payload.creator_id,
            students=list(payload.students),
            published=payload.published,
        )
        return self.repo.create(course)

    def find_by_id(self, course_id: str) -> Optional[models.Course]:
        return self.repo.get(course_id)

    def require(self, course_id: str, detail: str = "Course not found") -> models.Course:
        course = self.repo.get(course_id)
        if not course:
            raise NotFoundError(detail)
        return course

    def find_all(self) -> List[models.Course]:
        return self.repo.find_many()

    def find_by_tag(self, tag: str) -> List[models.Course]:
        return self.repo.list_by_tag(tag)

    def find_by_creator(self, creator_id: str) -> List[models.Course]:
        self.registries.users.require(creator_id, "Creator not found")
        return self.repo.list_by_creator(creator_id)

    def find_by_student(self, student_id: str) -> List[models.Course]:
        user = self.registries.users.require(student_id, f"Student with ID {student_id} not found")
        if user.type != models.UserType.STUDENT:
            raise ForbiddenError("User is not a student")
        return self.repo.list_by_student(student_id)

    def find_chapters(self, course_id: str) -> List[models.Chapter]:
        """Resolve the course's chapter ids in order, skipping dangling ones."""
        course = self.require(course_id)
        chapters = (self.registries.chapters.find_by_id(cid) for cid in course.chapters)
        return [c for c in chapters if c]

    def find_comments(self, course_id: str) -> List[models.Comment]:
        course = self.require(course_id)
        comments = (self.registries.comments.repo.get(cid) for cid in course.comments)
        return [c for c in comments if c]

    def update(self, course_id: str, patch: CourseUpdate) -> models.Course:
        """Merge the fields present in `patch` into the course.

        The title is not re-checked for uniqueness here, so an update can
        produce two courses with the same title. Only creation enforces it.
        """
        self.require(course_id)
        fields = patch.model_dump(exclude_unset=True)
        if fields.get("creator_id") is not None:
            self.registries.users.require(fields["creator_id"], "Creator not found")
        if fields.get("students"):
            self._require_users(fields["students"], "Student")
        # reference arrays and creator are never nulled out
        for key in ("creator_id", "students", "chapters", "comments", "tags"):
            if key in fields and fields[key] is None:
                fields.pop(key)
        return self.repo.update(course_id, fields)

    def add_students(self, course_id: str, student_ids: List[str]) -> models.Course:
        course = self.require(course_id)
        added: List[str] = []
        for sid in student_ids:
            user = self.registries.users.require(sid)
            if user.type != models.UserType.STUDENT:
                raise ForbiddenError("Only students can be added to a course")
            if sid in course.students or sid in added:
                raise ConflictError("User is already enrolled in this course")
            added.append(sid)
        return self.update(course_id, CourseUpdate(students=course.students + added))

    def remove_students(self, course_id: str, student_ids: List[str]) -> models.Course:
        course = self.require(course_id)
        removed = set()
        for sid in student_ids:
            self.registries.users.require(sid)
            if sid not in course.students:
                raise NotFoundError("User is not enrolled in this course")
            removed.add(sid)
        remaining = [s for s in course.students if s not in removed]
        return self.update(course_id, CourseUpdate(students=remaining))

    def attach_chapter(self, course_id: str, chapter_id: str) -> Optional[models.Course]:
        return self._append(course_id, "chapters", chapter_id)

    def detach_chapter(self, course_id: str, chapter_id: str) -> Optional[models.Course]:
        return self._remove(course_id, "chapters", chapter_id)

    def attach_comment(self, course_id: str, comment_id: str) -> Optional[models.Course]:
        return self._append(course_id, "comments", comment_id)

    def detach_comment(self, course_id: str, comment_id: str) -> Optional[models.Course]:
        return self._remove(course_id, "comments", comment_id)

    def _append(self, course_id: str, field: str, ref: str) -> Optional[models.Course]:
        course = self.repo.get(course_id)
        if not course:
            return None
        current = list(getattr(course, field))
        if ref in current:
            return course
        return self.update(course_id, CourseUpdate(**{field: current + [ref]}))

    def _remove(self, course_id: str, field: str, ref: str) -> Optional[models.Course]:
        course = self.repo.get(course_id)
        if not course:
            return None
        remaining = [r for r in getattr(course, field) if r != ref]
        return self.update(course_id, CourseUpdate(**{field: remaining}))

    def delete(self, course_id: str) -> models.Course:
        """Delete the course together with its chapters and comments.

        Chapters go through the chapter service so their quizzes are
        removed as well.
        """
        course = self.require(course_id)
        chapter_ids = list(course.chapters)
        # chapters pointing at the course but missing from its array
        for chapter in self.registries.chapters.repo.list_by_course(course_id):
            if chapter.uuid not in chapter_ids:
                chapter_ids.append(chapter.uuid)
        for chapter_id in chapter_ids:
            self.registries.chapters.delete(chapter_id)
        for comment_id in list(course.comments):
            if self.registries.comments.repo.get(comment_id):
                self.registries.comments.delete(comment_id)
        deleted = self.repo.delete(course_id)
        logger.info("course_deleted course=%s", course_id)
        return deleted


class ChapterService:
    """Chapters, their quiz pointer and their generated summary."""
    def __init__(self, registries: Registries):
        self.registries = registries
        self.repo = repositories.ChapterRepository(registries.session)

    def _dispatch_summary(self, chapter: models.Chapter) -> None:
        worker = self.registries.summaries
        if worker is not None and chapter.content:
            worker.submit(chapter.uuid, chapter.content)

    def create(self, payload: ChapterCreate) -> models.Chapter:
        """Create a chapter and append it to its course.

        The summary is requested in the background; the returned chapter
        does not have it yet.
        """
        self.registries.courses.require(payload.course_id)
        if self.repo.exists_by_title_in_course(payload.title, payload.course_id):
            raise ConflictError("Chapter with this title already exists in this course")
        chapter = self.repo.create(models.Chapter(
            title=payload.title,
            content=payload.content,
            course_id=payload.course_id,
        ))
        self._dispatch_summary(chapter)
        self.registries.courses.attach_chapter(payload.course_id, chapter.uuid)
        # the course write expired the instance
        return self.repo.get(chapter.uuid)

    def find_by_id(self, chapter_id: str) -> Optional[models.Chapter]:
        return self.repo.get(chapter_id)

    def require(self, chapter_id: str, detail: str = "Chapter not found") -> models.Chapter:
        chapter = self.repo.get(chapter_id)
        if not chapter:
            raise NotFoundError(detail)
        return chapter

    def find_all(self) -> List[models.Chapter]:
        return self.repo.find_many()

    def find_by_course(self, course_id: str) -> List[models.Chapter]:
        self.registries.courses.require(course_id)
        return self.repo.list_by_course(course_id)

    def find_quiz_of_chapter(self, chapter_id: str) -> Optional[models.Quiz]:
        chapter = self.require(chapter_id)
        if not chapter.quiz_id:
            return None
        return self.registries.quizzes.find_by_id(chapter.quiz_id)

    def update(self, chapter_id: str, patch: ChapterUpdate) -> models.Chapter:
        chapter = self.require(chapter_id)
        fields = patch.model_dump(exclude_unset=True)
        new_course_id = fields.get("course_id")
        if new_course_id:
            self.registries.courses.require(new_course_id)
        if fields.get("quiz_id"):
            if not self.registries.quizzes.find_by_id(fields["quiz_id"]):
                raise NotFoundError("Quiz not found")
        if fields.get("title") and new_course_id:
            if self.repo.exists_by_title_in_course(fields["title"], new_course_id, exclude_uuid=chapter_id):
                raise ConflictError("Chapter with this title already exists in this course")
        for key in ("title", "course_id"):
            if key in fields and not fields[key]:
                fields.pop(key)
        if "quiz_id" in fields and not fields["quiz_id"]:
            fields["quiz_id"] = None
        old_course_id = chapter.course_id
        updated = self.repo.update(chapter_id, fields)
        if new_course_id and new_course_id != old_course_id:
            self.registries.courses.detach_chapter(old_course_id, chapter_id)
            self.registries.courses.attach_chapter(new_course_id, chapter_id)
        self._dispatch_summary(updated)
        return self.repo.get(chapter_id)

    def link_quiz(self, chapter_id: str, quiz_id: str) -> Optional[models.Chapter]:
        """Point the chapter at `quiz_id`. Does not regenerate the summary."""
        return self.repo.update(chapter_id, {"quiz_id": quiz_id})

    def unlink_quiz(self, chapter_id: str, quiz_id: str) -> Optional[models.Chapter]:
        """Clear the chapter's quiz pointer if it still refers to `quiz_id`."""
        chapter = self.repo.get(chapter_id)
        if not chapter or chapter.quiz_id != quiz_id:
            return chapter
        return self.repo.update(chapter_id, {"quiz_id": None})

    def apply_summary(self, chapter_id: str, source_text: str, summary: str) -> bool:
        """Store a summary computed from `source_text`.

        Returns False when the chapter is gone or its content changed
        since the summary was requested.
        """
        chapter = self.repo.get(chapter_id)
        if not chapter or chapter.content != source_text:
            return False
        self.repo.update(chapter_id, {"summary": summary})
        return True

    def delete(self, chapter_id: str) -> Optional[models.Chapter]:
        """Delete a chapter and its quiz, and detach it from its course.

        Returns None when the chapter does not exist. A missing parent
        course does not prevent the deletion.
        """
        chapter = self.repo.get(chapter_id)
        if not chapter:
            return None
        if chapter.quiz_id:
            self.registries.quizzes.delete(chapter.quiz_id)
        self.registries.courses.detach_chapter(chapter.course_id, chapter_id)
        return self.repo.delete(chapter_id)


def _validate_questions(questions: List[dict], complete: bool = True) -> None:
    """Check a quiz's question list.

    With `complete=False` (question patches) fields missing from a question
    are skipped; otherwise every question needs options and a correct index.
    """
    if not questions:
        raise BadRequestError("A quiz must have at least one question")
    for q in questions:
        if complete and (q.get("options") is None or q.get("correct_option") is None):
            raise BadRequestError("Each question needs options and a correct option")
        options = q.get("options")
        correct = q.get("correct_option")
        if options is not None and len(options) < 2:
            raise BadRequestError("Each question must have at least two options")
        if correct is not None and (correct < 0 or (options is not None and correct >= len(options))):
            raise BadRequestError("Correct option index is invalid")


class QuizService:
    """Quizzes, their ownership rules and submitted answers."""
    def __init__(self, registries: Registries):
        self.registries = registries
        self.repo = repositories.QuizRepository(registries.session)
        self.answer_repo = repositories.QuizAnswerRepository(registries.session)

    def create(self, payload: QuizCreate) -> models.Quiz:
        """Create a quiz for a chapter of one of the creator's courses.

        Ownership is derived from the stored chapter -> course chain, not
        from anything the client claims.
        """
        self.registries.users.require(payload.creator_id, "Creator not found")
        chapter = self.registries.chapters.require(payload.chapter_id)
        course = self.registries.courses.require(chapter.course_id, "Associated course not found")
        if course.creator_id != payload.creator_id:
            raise ForbiddenError("You can only create quizzes for your own courses")
        if self.repo.exists_by_title_in_chapter(payload.title, payload.chapter_id):
            raise ConflictError("Quiz with this title already exists in this chapter")
        questions = [q.model_dump() for q in payload.questions]
        _validate_questions(questions)
        quiz = self.repo.create(models.Quiz(
            title=payload.title,
            questions=questions,
            chapter_id=payload.chapter_id,
            creator_id=payload.creator_id,
        ))
        self.registries.chapters.link_quiz(payload.chapter_id, quiz.uuid)
        return self.repo.get(quiz.uuid)

    def find_by_id(self, quiz_id: str) -> Optional[models.Quiz]:
        return self.repo.get(quiz_id)

    def require(self, quiz_id: str) -> models.Quiz:
        quiz = self.repo.get(quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found")
        return quiz

    def find_all(self) -> List[models.Quiz]:
        return self.repo.find_many()

    def find_by_chapter(self, chapter_id: str) -> List[models.Quiz]:
        self.registries.chapters.require(chapter_id)
        return self.repo.list_by_chapter(chapter_id)

    def update(self, quiz_id: str, patch: QuizUpdate) -> models.Quiz:
        """Apply a partial update.

        Each question patch is validated on the fields it carries and then
        merged over the stored question at the same position; the merged
        questions must then be valid as a whole. Moving the quiz to another
        chapter is only allowed within the quiz creator's own courses and
        moves the chapter's quiz pointer along.
        """
        quiz = self.require(quiz_id)
        old_chapter_id = quiz.chapter_id
        fields = patch.model_dump(exclude_unset=True)
        new_chapter_id = fields.get("chapter_id")
        if new_chapter_id:
            chapter = self.registries.chapters.require(new_chapter_id)
            if new_chapter_id != old_chapter_id:
                course = self.registries.courses.require(chapter.course_id, "Associated course not found")
                if course.creator_id != quiz.creator_id:
                    raise ForbiddenError("You can only move quizzes into your own courses")
        if fields.get("title") and fields.get("chapter_id"):
            if self.repo.exists_by_title_in_chapter(fields["title"], fields["chapter_id"], exclude_uuid=quiz_id):
                raise ConflictError("Quiz with this title already exists in this chapter")
        if "questions" in fields:
            if fields["questions"] is None:
                fields.pop("questions")
            else:
                patches = [q.model_dump(exclude_unset=True, exclude_none=True) for q in patch.questions]
                _validate_questions(patches, complete=False)
                stored = quiz.questions
                fields["questions"] = [
                    {**(stored[i] if i < len(stored) else {}), **p} for i, p in enumerate(patches)
                ]
                _validate_questions(fields["questions"])
        for key in ("title", "chapter_id"):
            if key in fields and not fields[key]:
                fields.pop(key)
        self.repo.update(quiz_id, fields)
        if new_chapter_id and new_chapter_id != old_chapter_id:
            self.registries.chapters.unlink_quiz(old_chapter_id, quiz_id)
            self.registries.chapters.link_quiz(new_chapter_id, quiz_id)
        return self.repo.get(quiz_id)

    def delete(self, quiz_id: str) -> Optional[models.Quiz]:
        """Delete a quiz, clear its chapter's pointer and drop its answers."""
        quiz = self.repo.get(quiz_id)
        if not quiz:
            return None
        self.registries.chapters.unlink_quiz(quiz.chapter_id, quiz_id)
        self.answer_repo.delete_for_quiz(quiz_id)
        return self.repo.delete(quiz_id)

    def submit_answer(self, quiz_id: str, user_id: str, answers: List[int]) -> models.QuizAnswer:
        """Score and store one attempt. Every attempt is kept."""
        quiz = self.require(quiz_id)
        self.registries.users.require(user_id)
        if len(answers) != len(quiz.questions):
            raise BadRequestError(
                f"Expected {len(quiz.questions)} answers, got {len(answers)}"
            )
        score = score_answers(quiz.questions, answers)
        return self.answer_repo.create(models.QuizAnswer(
            quiz_id=quiz_id,
            user_id=user_id,
            answers=list(answers),
            score=score,
        ))

    def find_user_answer(self, quiz_id: str, user_id: str) -> Optional[models.QuizAnswer]:
        return self.answer_repo.latest_for_user(quiz_id, user_id)

    def find_answers_for_quiz(self, quiz_id: str) -> List[models.QuizAnswer]:
        return self.answer_repo.list_for_quiz(quiz_id)


class CommentService:
    """Comments left on courses."""
    def __init__(self, registries: Registries):
        self.registries = registries
        self.repo = repositories.CommentRepository(registries.session)

    def create(self, payload: CommentCreate) -> models.Comment:
        self.registries.courses.require(payload.course_id)
        self.registries.users.require(payload.user_id)
        comment = self.repo.create(models.Comment(
            user_id=payload.user_id,
            course_id=payload.course_id,
            content=payload.content,
        ))
        self.registries.courses.attach_comment(payload.course_id, comment.uuid)
        return self.repo.get(comment.uuid)

    def find_by_id(self, comment_id: str) -> models.Comment:
        comment = self.repo.get(comment_id)
        if not comment:
            raise NotFoundError("Comment not found")
        return comment

    def delete(self, comment_id: str) -> models.Comment:
        comment = self.find_by_id(comment_id)
        self.registries.courses.detach_comment(comment.course_id, comment_id)
        return self.repo.delete(comment_id)


class StatsService:
    """Read-only quiz progress summaries for a course."""
    def __init__(self, registries: Registries):
        self.registries = registries

    def course_stats(self, course_id: str) -> List[dict]:
        """Return, for each enrolled student, their latest score on every quiz.

        Quizzes are taken from the course's chapters in chapter order; a
        quiz the student never attempted has `score` None.
        """
        course = self.registries.courses.require(course_id)
        quizzes = []
        for chapter in self.registries.courses.find_chapters(course_id):
            quiz = self.registries.quizzes.find_by_id(chapter.quiz_id) if chapter.quiz_id else None
            if quiz:
                quizzes.append(quiz)
        out = []
        for student_id in course.students:
            student = self.registries.users.find_by_id(student_id)
            if not student:
                continue
            items = []
            for quiz in quizzes:
                latest = self.registries.quizzes.find_user_answer(quiz.uuid, student_id)
                items.append({
                    'quiz_id': quiz.uuid,
                    'title': quiz.title,
                    'score': latest.score if latest else None,
                    'total': len(quiz.questions),
                })
            out.append({
                'user_id': student_id,
                'firstname': student.firstname,
                'lastname': student.lastname,
                'completed_quizzes': sum(1 for i in items if i['score'] is not None),
                'quizzes': items,
            })
        return out
