"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Update schemas have only optional fields;
services read which fields the client actually sent through
`model_dump(exclude_unset=True)`, so an omitted field and an explicit
value are never confused.
"""

from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from .models import UserType


class UserCreate(BaseModel):
    """Payload for sign up."""
    email: EmailStr
    password: str = Field(min_length=8, max_length=50)
    lastname: str = Field(min_length=1, max_length=50)
    firstname: str = Field(min_length=1, max_length=50)
    type: UserType


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=8, max_length=50)
    lastname: Optional[str] = Field(default=None, min_length=1, max_length=50)
    firstname: Optional[str] = Field(default=None, min_length=1, max_length=50)


class UserOut(BaseModel):
    """A user as returned to clients, without the password hash."""
    model_config = ConfigDict(from_attributes=True)

    uuid: str
    email: str
    lastname: str
    firstname: str
    type: UserType
    created_at: datetime


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class TokenOut(BaseModel):
    """Authentication response containing an access token."""
    access_token: str


class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    creator_id: str
    students: List[str] = Field(default_factory=list)
    published: bool = False


class CourseUpdateIn(BaseModel):
    """Fields a client may change on a course."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    published: Optional[bool] = None


class CourseUpdate(CourseUpdateIn):
    """Full course patch, including the reference arrays.

    Only the course service and its siblings send `chapters` and
    `comments`; clients go through `CourseUpdateIn`.
    """
    creator_id: Optional[str] = None
    students: Optional[List[str]] = None
    chapters: Optional[List[str]] = None
    comments: Optional[List[str]] = None


class StudentsIn(BaseModel):
    """Students to enroll in or unenroll from a course."""
    students: List[str] = Field(default_factory=list)


class ChapterCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: Optional[str] = None
    course_id: str


class ChapterUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    content: Optional[str] = None
    course_id: Optional[str] = None
    quiz_id: Optional[str] = None


class QuestionIn(BaseModel):
    text: str
    options: List[str]
    correct_option: int


class QuestionPatch(BaseModel):
    """A question inside a quiz update; any field may be omitted."""
    text: Optional[str] = None
    options: Optional[List[str]] = None
    correct_option: Optional[int] = None


class QuizCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    questions: List[QuestionIn]
    chapter_id: str
    creator_id: str


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    questions: Optional[List[QuestionPatch]] = None
    chapter_id: Optional[str] = None


class QuizAnswerIn(BaseModel):
    """A quiz attempt: one selected option index per question."""
    quiz_id: str
    user_id: str
    answers: List[int]


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=500)
    course_id: str
    user_id: str
