from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import List, Optional, Dict, Any, Literal
from datetime import datetime


ItemKind = Literal[
    "QUESTION_ITEM",
    "QUESTION_GROUP_ITEM",
    "PAGE_BREAK_ITEM",
    "TEXT_ITEM",
    "IMAGE_ITEM",
]
QuestionKind = Literal[
    "CHOICE_QUESTION",
    "TEXT_QUESTION",
    "SCALE_QUESTION",
    "DATE_QUESTION",
    "TIME_QUESTION",
    "FILE_UPLOAD_QUESTION",
    "ROW_QUESTION",
]
ChoiceType = Literal["RADIO", "CHECKBOX", "DROP_DOWN", "CHOICE_TYPE_UNSPECIFIED"]
GotoAction = Literal[
    "NEXT_SECTION", "RESTART_FORM", "SUBMIT_FORM", "GO_TO_ACTION_UNSPECIFIED"
]


class Message(BaseModel):
    success: bool = True
    message: str


# --- Schemas für das Formular-Dokument (Eingabe) ---


class GradingIn(BaseModel):
    point_value: float = 0
    when_right: Optional[str] = None
    when_wrong: Optional[str] = None
    general_feedback: Optional[str] = None
    answer_key: Optional[Any] = None
    auto_feedback: bool = False


class OptionIn(BaseModel):
    value: str
    image_id: Optional[int] = None
    is_other: bool = False
    goto_action: Optional[GotoAction] = None


class QuestionOptionsIn(BaseModel):
    type: ChoiceType = "RADIO"
    shuffle: bool = False
    choices: List[OptionIn] = Field(default_factory=list)


class QuestionIn(BaseModel):
    kind: QuestionKind
    required: bool = False
    grading: Optional[GradingIn] = None
    options: Optional[QuestionOptionsIn] = None


class ItemIn(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    kind: ItemKind
    question: Optional[QuestionIn] = None
    questions: Optional[List[QuestionIn]] = None


class SectionIn(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    seq_order: int
    items: List[ItemIn] = Field(default_factory=list)


class NavigationRuleIn(BaseModel):
    # section_id / target_section_id verweisen auf seq_order im selben Dokument
    section_id: int
    target_section_id: int
    condition: str


class FormSettings(BaseModel):
    is_quiz: Optional[bool] = None
    update_window_hours: Optional[int] = Field(default=None, ge=0)
    wants_email_updates: Optional[bool] = None


class FormDocument(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category_id: Optional[int] = None
    is_public: Optional[bool] = None
    is_quiz: Optional[bool] = None
    settings: Optional[FormSettings] = None
    sections: List[SectionIn] = Field(default_factory=list)
    navigation_rules: List[NavigationRuleIn] = Field(default_factory=list)
    # Revision, auf der der Client seine Änderungen aufgebaut hat (optional)
    revision_id: Optional[str] = None


class FormCreate(FormDocument):
    pass


class FormUpdate(FormDocument):
    pass


class TemplateCreate(FormDocument):
    category_id: int


class TemplateUpdate(FormDocument):
    category_id: int


# --- Schemas für das Formular-Dokument (Ausgabe) ---


class GradingOut(BaseModel):
    id: int
    point_value: float
    when_right: Optional[str] = None
    when_wrong: Optional[str] = None
    general_feedback: Optional[str] = None
    answer_key: Optional[Any] = None
    auto_feedback: bool

    model_config = ConfigDict(from_attributes=True)


class ImageOut(BaseModel):
    id: int
    url: str
    alt_text: Optional[str] = None
    alignment: Optional[str] = None
    width: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ImageCreate(BaseModel):
    url: str = Field(..., min_length=1)
    alt_text: Optional[str] = None
    alignment: Optional[Literal["LEFT", "CENTER", "RIGHT"]] = None
    width: Optional[int] = Field(default=None, ge=0)


class OptionOut(BaseModel):
    id: int
    value: str
    image_id: Optional[int] = None
    image: Optional[ImageOut] = None
    is_other: bool
    goto_action: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class QuestionOptionsOut(BaseModel):
    type: str
    shuffle: bool
    choices: List[OptionOut] = []


class QuestionOut(BaseModel):
    id: int
    kind: str
    required: bool
    grading: Optional[GradingOut] = None
    options: Optional[QuestionOptionsOut] = None


class ItemOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    kind: str
    questions: List[QuestionOut] = []


class SectionOut(BaseModel):
    id: int
    title: Optional[str] = None
    description: Optional[str] = None
    seq_order: int
    items: List[ItemOut] = []


class NavigationRuleOut(BaseModel):
    id: int
    section_id: int
    target_section_id: int
    condition: str

    model_config = ConfigDict(from_attributes=True)


class SettingsOut(BaseModel):
    is_quiz: bool
    update_window_hours: int
    wants_email_updates: bool


class FormDetail(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    is_template: bool
    is_public: bool
    category_id: Optional[int] = None
    active_version_id: Optional[int] = None
    version_id: Optional[int] = None
    revision_id: Optional[str] = None
    settings: SettingsOut
    sections: List[SectionOut] = []
    navigation_rules: List[NavigationRuleOut] = []


class FormCreateResponse(BaseModel):
    message: str
    form: FormDetail


class FormUpdateResponse(BaseModel):
    message: str = "Form updated successfully"
    form_details: FormDetail


class VersionOut(BaseModel):
    id: int
    form_id: int
    revision_id: str
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class VersionActivateResponse(BaseModel):
    success: bool = True
    message: str = "Active version updated and revision incremented successfully."
    version: VersionOut


class VersionSnapshot(BaseModel):
    """Eingefrorener Stand einer abgelösten Version (Freigabe-Link)"""

    form_id: int
    version_id: int
    revision_id: str
    superseded: bool = True
    content: Optional[Dict[str, Any]] = None


class ShareLinkResponse(BaseModel):
    message: str = "Sharing link generated successfully."
    link: str
    token: str


# --- Schemas für Antworten ---


class GradeIn(BaseModel):
    score: float = 0
    feedback: Optional[Any] = None


class TextAnswersIn(BaseModel):
    answers: List[Any] = Field(default_factory=list)


class AnswerIn(BaseModel):
    grade: Optional[GradeIn] = None
    text_answers: Optional[TextAnswersIn] = None


class ResponseSubmit(BaseModel):
    # Schlüssel: question_id (JSON-Strings werden zu int konvertiert)
    answers: Dict[int, AnswerIn]
    respondent_email: Optional[str] = None

    @field_validator("respondent_email")
    @classmethod
    def check_email(cls, v):
        if v is not None and "@" not in v:
            raise ValueError("respondent_email must be an email address")
        return v


class ResponseUpdate(BaseModel):
    answers: Dict[int, AnswerIn]


class AnswerOut(BaseModel):
    question_id: int
    value: Optional[Any] = None
    score: float
    feedback: Optional[Any] = None

    model_config = ConfigDict(from_attributes=True)


class ResponseOut(BaseModel):
    id: int
    form_id: int
    version_id: int
    responder_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    total_score: float
    answers: List[AnswerOut] = []

    model_config = ConfigDict(from_attributes=True)


class ResponseSubmitResult(BaseModel):
    message: str = "Response submitted successfully"
    response_id: int
    version_id: int
    total_score: float
    response_token: str


class ResponseUpdateResult(BaseModel):
    message: str = "Response updated successfully."
    response: ResponseOut


# --- Benutzer & Rollen ---


class UserRegister(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if "@" not in v:
            raise ValueError("email must be an email address")
        return v.strip().lower()


class UserLogin(UserRegister):
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    email: str


class InviteRequest(BaseModel):
    email: str
    form_id: int
    role_name: Literal["EDITOR", "VIEWER"]

    @field_validator("role_name", mode="before")
    @classmethod
    def upper_role(cls, v):
        return v.upper() if isinstance(v, str) else v


# --- Vorlagen & Kategorien ---


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class TemplateListItem(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    is_public: bool
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    owner_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
