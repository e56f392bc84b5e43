import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    FREE_TEXT = "free-text"


class UserRole(str, Enum):
    ADMIN = "admin"
    SURVEYOR = "surveyor"
    ADMIN_MANAGER = "admin-manager"


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# --- Domain entities ---


class Question(BaseModel):
    id: str = Field(default_factory=new_id)
    text: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    options: List[str] = Field(default_factory=list)
    depends_on: Optional[str] = None
    show_when: Optional[List[str]] = None

    @property
    def is_conditional(self) -> bool:
        return self.depends_on is not None


class Survey(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    questions: List[Question] = Field(default_factory=list)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str
    assigned_to: List[str] = Field(default_factory=list)
    folder_id: Optional[str] = None
    collect_demographics: bool = False

    def question(self, question_id: str) -> Optional[Question]:
        return next((q for q in self.questions if q.id == question_id), None)


class Folder(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    created_by: str
    parent_id: Optional[str] = None


class Answer(BaseModel):
    question_id: str
    selected_option: str = ""
    text_answer: Optional[str] = None


class RespondentInfo(BaseModel):
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[str] = None
    location: Optional[str] = None


class SurveyResponse(BaseModel):
    id: str = Field(default_factory=new_id)
    survey_id: str
    respondent_id: str
    answers: List[Answer] = Field(default_factory=list)
    # Audio as a base64 data URL ("data:audio/webm;base64,...")
    audio_recording: Optional[str] = None
    respondent_info: Optional[RespondentInfo] = None
    completed_at: datetime = Field(default_factory=utcnow)
    synced_to_server: bool = False


class User(BaseModel):
    id: str = Field(default_factory=new_id)
    username: str
    name: str
    email: str
    role: UserRole = UserRole.SURVEYOR
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    # Stored in plain text, see DESIGN.md
    password: str


class UserPublic(BaseModel):
    id: str
    username: str
    name: str
    email: str
    role: UserRole
    active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuthSession(BaseModel):
    user: UserPublic
    token: str
    issued_at: datetime
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) < self.expires_at


class LoginAttempts(BaseModel):
    failed: int = 0
    last_attempt: Optional[datetime] = None


# --- Persisted partitions ---


class SurveyCollections(BaseModel):
    surveys: List[Survey] = Field(default_factory=list)
    folders: List[Folder] = Field(default_factory=list)
    responses: List[SurveyResponse] = Field(default_factory=list)


class UserCollections(BaseModel):
    users: List[User] = Field(default_factory=list)


class AuthPartition(BaseModel):
    sessions: List[AuthSession] = Field(default_factory=list)
    login_attempts: Dict[str, LoginAttempts] = Field(default_factory=dict)


# --- API: surveys ---


class SurveyCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    questions: List[Question] = []
    is_active: bool = True
    assigned_to: List[str] = []
    folder_id: Optional[str] = None
    collect_demographics: bool = False

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v.strip()


class SurveyUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    questions: Optional[List[Question]] = None
    is_active: Optional[bool] = None
    collect_demographics: Optional[bool] = None


class SurveyListItem(BaseModel):
    id: str
    title: str
    description: str
    is_active: bool
    created_at: datetime
    question_count: int
    assigned_to: List[str]
    folder_id: Optional[str] = None
    response_count: int = 0


class AssignRequest(BaseModel):
    surveyor_ids: List[str]


class FolderAssignment(BaseModel):
    folder_id: Optional[str] = None


class VisibleQuestionsRequest(BaseModel):
    # question id -> selected option
    answers: Dict[str, str] = Field(default_factory=dict)


class WarningsResponse(BaseModel):
    survey_id: str
    warnings: List[str] = []


class QuestionImportResponse(BaseModel):
    questions: List[Question]
    warnings: List[str] = []
    message: str = "Preguntas importadas correctamente."


class DeleteResponse(BaseModel):
    id: str
    message: str


# --- API: folders ---


class FolderCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    parent_id: Optional[str] = None


class FolderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    parent_id: Optional[str] = None


class FolderDeleteResponse(BaseModel):
    removed_folder_ids: List[str]
    detached_survey_ids: List[str]
    message: str = "Carpeta eliminada correctamente."


# --- API: responses ---


class ResponseCreate(BaseModel):
    survey_id: str
    answers: List[Answer]
    audio_recording: Optional[str] = None
    respondent_info: Optional[RespondentInfo] = None


class ResponseCreated(BaseModel):
    response_id: str
    synced_to_server: bool
    message: str = "Encuesta completada exitosamente."


# --- API: users and auth ---


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: UserRole = UserRole.SURVEYOR
    active: bool = True
    password: str = Field(..., min_length=6)

    @field_validator("email")
    @classmethod
    def email_has_at(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("invalid email address")
        return v.strip()


class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3)
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[UserRole] = None
    active: Optional[bool] = None


class PasswordChange(BaseModel):
    new_password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    """Username or email plus password."""

    username: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserPublic
    home: str


# --- API: sync ---


class Notice(BaseModel):
    level: NoticeLevel
    message: str
    created_at: datetime = Field(default_factory=utcnow)


class ConnectivityUpdate(BaseModel):
    online: bool


class SyncStatus(BaseModel):
    is_online: bool
    is_syncing: bool
    pending_count: int
    last_sync_time: Optional[datetime] = None
    notices: List[Notice] = []


class SyncNowResponse(BaseModel):
    outcome: str
    synced: int = 0
    message: str = ""
    status: SyncStatus


# --- API: recordings and geocoding ---


class RecordingStatus(BaseModel):
    recording_id: str
    state: str
    elapsed_seconds: int
    formatted_time: str


class RecordingResult(RecordingStatus):
    content_type: Optional[str] = None
    audio_recording: Optional[str] = None


class GeocodeResponse(BaseModel):
    latitude: float
    longitude: float
    address: str
