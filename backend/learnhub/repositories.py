"""Repository classes encapsulating database operations.

`EntityRepository` implements the generic store contract shared by every
entity: rows are addressed by their external `uuid`, never by the
integer primary key. Each subclass binds a model and adds the lookups
its service needs. Repositories return SQLModel objects and commit and
refresh after every write.
"""

from typing import Generic, List, Optional, Type, TypeVar
from sqlmodel import Session, SQLModel, select
from . import models

T = TypeVar("T", bound=SQLModel)


class EntityRepository(Generic[T]):
    """CRUD operations keyed by `uuid` for a single model."""
    model: Type[T]

    def __init__(self, session: Session):
        self.session = session

    def create(self, entity: T) -> T:
        """Persist a new entity and return the managed instance."""
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def get(self, uuid: str) -> Optional[T]:
        """Return the entity with `uuid` or `None` if not found."""
        if not uuid:
            return None
        stmt = select(self.model).where(self.model.uuid == uuid)
        return self.session.exec(stmt).first()

    def find_many(self, *conditions) -> List[T]:
        """Return all entities matching `conditions` (all rows if none).

        Every call issues a fresh query, so results reflect the latest
        committed state.
        """
        stmt = select(self.model).where(*conditions).order_by(self.model.id)
        return list(self.session.exec(stmt).all())

    def find_one(self, *conditions) -> Optional[T]:
        stmt = select(self.model).where(*conditions)
        return self.session.exec(stmt).first()

    def find_containing(self, field: str, value: str) -> List[T]:
        """Return entities whose JSON array column `field` contains `value`."""
        # JSON membership is not portable across SQL dialects; filter here.
        return [e for e in self.find_many() if value in (getattr(e, field) or [])]

    def update(self, uuid: str, fields: dict) -> Optional[T]:
        """Merge `fields` into the entity and return it, or `None` if absent."""
        entity = self.get(uuid)
        if entity is None:
            return None
        for key, value in fields.items():
            # always assign fresh lists so JSON columns are flagged dirty
            setattr(entity, key, list(value) if isinstance(value, list) else value)
        self.session.add(entity)
        self.session.commit()
        self.session.refresh(entity)
        return entity

    def delete(self, uuid: str) -> Optional[T]:
        """Remove the entity and return the detached instance, or `None`."""
        entity = self.get(uuid)
        if entity is None:
            return None
        self.session.delete(entity)
        self.session.commit()
        return entity


class UserRepository(EntityRepository[models.User]):
    model = models.User

    def get_by_email(self, email: str) -> Optional[models.User]:
        """Return a `User` by email or `None` if not found."""
        return self.find_one(models.User.email == email)


class CourseRepository(EntityRepository[models.Course]):
    model = models.Course

    def get_by_title(self, title: str) -> Optional[models.Course]:
        return self.find_one(models.Course.title == title)

    def list_by_creator(self, creator_id: str) -> List[models.Course]:
        return self.find_many(models.Course.creator_id == creator_id)

    def list_by_tag(self, tag: str) -> List[models.Course]:
        return self.find_containing("tags", tag)

    def list_by_student(self, student_id: str) -> List[models.Course]:
        return self.find_containing("students", student_id)


class ChapterRepository(EntityRepository[models.Chapter]):
    model = models.Chapter

    def exists_by_title_in_course(self, title: str, course_id: str, exclude_uuid: Optional[str] = None) -> bool:
        """Return True if another chapter of `course_id` already uses `title`."""
        conditions = [models.Chapter.title == title, models.Chapter.course_id == course_id]
        if exclude_uuid:
            conditions.append(models.Chapter.uuid != exclude_uuid)
        return self.find_one(*conditions) is not None

    def list_by_course(self, course_id: str) -> List[models.Chapter]:
        return self.find_many(models.Chapter.course_id == course_id)


class QuizRepository(EntityRepository[models.Quiz]):
    model = models.Quiz

    def exists_by_title_in_chapter(self, title: str, chapter_id: str, exclude_uuid: Optional[str] = None) -> bool:
        """Return True if another quiz of `chapter_id` already uses `title`."""
        conditions = [models.Quiz.title == title, models.Quiz.chapter_id == chapter_id]
        if exclude_uuid:
            conditions.append(models.Quiz.uuid != exclude_uuid)
        return self.find_one(*conditions) is not None

    def list_by_chapter(self, chapter_id: str) -> List[models.Quiz]:
        return self.find_many(models.Quiz.chapter_id == chapter_id)


class QuizAnswerRepository(EntityRepository[models.QuizAnswer]):
    model = models.QuizAnswer

    def list_for_quiz(self, quiz_id: str) -> List[models.QuizAnswer]:
        """List all attempts for `quiz_id`, oldest first."""
        return self.find_many(models.QuizAnswer.quiz_id == quiz_id)

    def latest_for_user(self, quiz_id: str, user_id: str) -> Optional[models.QuizAnswer]:
        """Return the most recent attempt of `user_id` at `quiz_id`."""
        stmt = (
            select(models.QuizAnswer)
            .where(models.QuizAnswer.quiz_id == quiz_id, models.QuizAnswer.user_id == user_id)
            .order_by(models.QuizAnswer.id.desc())
        )
        return self.session.exec(stmt).first()

    def delete_for_quiz(self, quiz_id: str) -> int:
        """Remove every attempt at `quiz_id` and return how many were removed."""
        answers = self.list_for_quiz(quiz_id)
        for a in answers:
            self.session.delete(a)
        self.session.commit()
        return len(answers)


class CommentRepository(EntityRepository[models.Comment]):
    model = models.Comment

    def list_by_course(self, course_id: str) -> List[models.Comment]:
        return self.find_many(models.Comment.course_id == course_id)
