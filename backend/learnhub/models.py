"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Every entity carries a `uuid` that other entities use to reference it;
the integer primary key stays internal to the database. Reference
arrays (chapters, students, comments, tags, questions, answers) live in
JSON columns rather than join tables, so keeping them in sync is the
job of the services.
"""

import uuid as uuid_lib
from enum import Enum
from typing import List, Optional
from datetime import datetime, timezone
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


def _new_uuid() -> str:
    return str(uuid_lib.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class UserType(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"


class User(SQLModel, table=True):
    """A registered teacher or student.

    Fields:
    - `email`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    firstname: str
    lastname: str
    type: UserType
    created_at: datetime = Field(default_factory=_now)


class Course(SQLModel, table=True):
    """A course owned by its creator.

    `chapters`, `students` and `comments` hold uuids of the referenced
    entities in display order.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    title: str = Field(index=True)
    description: Optional[str] = None
    chapters: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    creator_id: str = Field(index=True)
    students: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    comments: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    published: bool = False


class Chapter(SQLModel, table=True):
    """A chapter of a course, optionally carrying one quiz.

    `summary` is filled in asynchronously after create/update.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    title: str = Field(index=True)
    content: Optional[str] = None
    course_id: str = Field(index=True)
    quiz_id: Optional[str] = None
    summary: Optional[str] = None


class Quiz(SQLModel, table=True):
    """A multiple-choice quiz attached to a chapter.

    `questions` is a list of `{text, options, correct_option}` objects.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    title: str = Field(index=True)
    questions: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    chapter_id: str = Field(index=True)
    creator_id: str = Field(index=True)


class QuizAnswer(SQLModel, table=True):
    """One attempt at a quiz. Users may submit several attempts."""
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    quiz_id: str = Field(index=True)
    user_id: str = Field(index=True)
    answers: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    score: int = 0
    created_at: datetime = Field(default_factory=_now)


class Comment(SQLModel, table=True):
    """A comment left on a course by a user."""
    id: Optional[int] = Field(default=None, primary_key=True)
    uuid: str = Field(default_factory=_new_uuid, index=True, unique=True)
    user_id: str = Field(index=True)
    course_id: str = Field(index=True)
    content: str
    created_at: datetime = Field(default_factory=_now)
