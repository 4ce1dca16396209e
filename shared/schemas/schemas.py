"""
shared/schemas/schemas.py
All Pydantic v2 request/response schemas for the platform.
Request bodies are camelCase on the wire (snake_case is accepted too).
"""

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.middleware.identity import ExternalIdentity
from shared.models.models import BookingState, ProfileRole


# ── Base ──────────────────────────────────────────────────────

class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class CamelSchema(BaseSchema):
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class Envelope(BaseSchema):
    success: bool = True


# ── Profile ───────────────────────────────────────────────────

class ProfileUpsertRequest(CamelSchema):
    external_identity: ExternalIdentity
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: ProfileRole
    college: Optional[str] = Field(None, max_length=255)
    department: Optional[str] = Field(None, max_length=255)
    semester: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=255)
    industry: Optional[str] = Field(None, max_length=255)
    graduation_year: Optional[int] = Field(None, ge=1900, le=2200)
    experience_years: Optional[int] = Field(None, ge=0, le=80)
    skills: List[str] = Field(default_factory=list)
    website: Optional[str] = None
    linkedin_url: Optional[str] = None
    hourly_rate: Optional[Decimal] = Field(None, ge=0, max_digits=12, decimal_places=2)
    profile_image: Optional[str] = None

    @field_validator("skills")
    @classmethod
    def strip_skills(cls, v: List[str]) -> List[str]:
        return [s.strip() for s in v if s and s.strip()]


class ProfileResponse(BaseSchema):
    id: uuid.UUID
    external_identity: str
    first_name: str
    last_name: str
    role: str
    college: Optional[str]
    department: Optional[str]
    semester: Optional[str]
    company: Optional[str]
    industry: Optional[str]
    graduation_year: Optional[int]
    experience_years: Optional[int]
    skills: List[str]
    website: Optional[str]
    linkedin_url: Optional[str]
    hourly_rate: Optional[Decimal]
    rating: Optional[Decimal]
    profile_image: Optional[str]
    balance: Decimal
    is_available: bool
    dark_mode: bool
    created_at: datetime
    updated_at: datetime


class ProfileEnvelope(Envelope):
    profile: ProfileResponse


class ProfileSearchResult(CamelSchema):
    id: str  # external identity
    name: str
    role: str
    profile_image_url: Optional[str] = None


class ProfileSearchEnvelope(Envelope):
    results: List[ProfileSearchResult]


class AlumniDirectoryEntry(CamelSchema):
    id: str  # external identity
    first_name: str
    last_name: str
    company: Optional[str]
    position: Optional[str]
    expertise: List[str]
    college: Optional[str]
    graduation_year: Optional[int]
    rating: Optional[Decimal]
    profile_image_url: Optional[str]
    hourly_rate: Optional[Decimal]


class AlumniDirectoryEnvelope(Envelope):
    alumni: List[AlumniDirectoryEntry]


class AvailabilityUpdateRequest(CamelSchema):
    is_available: bool


class AvailabilityEnvelope(Envelope):
    is_available: bool


class DarkModeUpdateRequest(CamelSchema):
    dark_mode: bool


class DarkModeEnvelope(Envelope):
    dark_mode: bool


class ProfileDeletedEnvelope(Envelope):
    deleted: dict


class WalletTopUpRequest(CamelSchema):
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class WalletEnvelope(Envelope):
    identity: str
    balance: Decimal


# ── Service Catalog ───────────────────────────────────────────

class ServiceCreateRequest(CamelSchema):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    rate: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    duration_months: int = Field(..., ge=1, le=120)


class ServiceUpdateRequest(CamelSchema):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    rate: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    duration_months: Optional[int] = Field(None, ge=1, le=120)


class ServiceResponse(BaseSchema):
    id: uuid.UUID
    alumni_id: uuid.UUID
    title: str
    description: str
    rate: Decimal
    duration_months: int
    created_at: datetime
    updated_at: datetime


class ServiceEnvelope(Envelope):
    service: ServiceResponse


class ServiceListEnvelope(Envelope):
    services: List[ServiceResponse]


# ── Booking ───────────────────────────────────────────────────

class BookingCreateRequest(CamelSchema):
    student_identity: ExternalIdentity
    alumni_identity: ExternalIdentity
    service_id: uuid.UUID


class BookingResponse(BaseSchema):
    id: uuid.UUID
    student_id: uuid.UUID
    alumni_id: uuid.UUID
    service_id: uuid.UUID
    booking_date: date
    booking_time: time
    validity_date: date
    amount: Decimal
    status: BookingState
    created_at: datetime


class BookingEnvelope(Envelope):
    booking: BookingResponse


class BookingListItem(BaseSchema):
    id: uuid.UUID
    counterparty_identity: str
    counterparty_name: str
    service_id: uuid.UUID
    service_title: str
    service_description: str
    duration_months: int
    amount: Decimal
    booking_date: date
    booking_time: time
    validity_date: date
    status: BookingState


class BookingListEnvelope(Envelope):
    bookings: List[BookingListItem]


# ── Messaging ─────────────────────────────────────────────────

class MessageCreateRequest(CamelSchema):
    body: str = Field(..., min_length=1, max_length=5000)


class ChatMessage(CamelSchema):
    sender: str
    body: str
    timestamp: datetime


class ChatMessageEnvelope(Envelope):
    message: ChatMessage


class ConversationEnvelope(Envelope):
    messages: List[ChatMessage]


class SocketSendMessage(CamelSchema):
    room_id: Optional[str] = None
    my_identity: ExternalIdentity
    peer_identity: ExternalIdentity
    content: str = Field(..., min_length=1, max_length=5000)


class ThreadPeer(CamelSchema):
    id: str
    name: str
    unread: int
    profile_image_url: str = ""


class ThreadSummary(CamelSchema):
    thread_id: str
    with_: ThreadPeer = Field(..., alias="with")
    last_message: str = ""
    updated_at: Optional[datetime] = None
    prioritized: bool = False


class ThreadListEnvelope(Envelope):
    threads: List[ThreadSummary]


# ── Q&A ───────────────────────────────────────────────────────

class QuestionCreateRequest(CamelSchema):
    question: str = Field(..., min_length=1, max_length=5000)
    asked_by_id: ExternalIdentity


class AnswerCreateRequest(CamelSchema):
    answer: str = Field(..., min_length=1, max_length=5000)
    by_id: ExternalIdentity


class QnaAuthor(CamelSchema):
    id: str
    name: str


class QnaAnswer(CamelSchema):
    id: uuid.UUID
    body: str
    answered_at: datetime
    by: str
    by_id: str


class QnaItem(CamelSchema):
    id: uuid.UUID
    question: str
    asked_at: datetime
    asked_by: QnaAuthor
    answers: List[QnaAnswer]


class QnaEnvelope(Envelope):
    qna: List[QnaItem]


# ── Dashboard ─────────────────────────────────────────────────

class AlumniOverview(CamelSchema):
    total_sessions: int
    ongoing_sessions: int
    total_students: int
    total_services: int
    earnings: Decimal
    unread_messages: int
    balance: Decimal


class AlumniOverviewEnvelope(Envelope):
    stats: AlumniOverview


class StudentOverview(CamelSchema):
    total_sessions: int
    ongoing_sessions: int
    total_mentors: int
    total_spent: Decimal
    unread_messages: int
    questions_asked: int
    balance: Decimal


class StudentOverviewEnvelope(Envelope):
    stats: StudentOverview


# ── Generic ───────────────────────────────────────────────────

class MessageResponse(BaseSchema):
    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    success: bool = False
    error: str
    code: Optional[str] = None
    request_id: Optional[str] = None
