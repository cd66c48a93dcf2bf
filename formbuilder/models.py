from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Boolean,
    Float,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func  # Für Default-Zeitstempel
from .database import Base


# Rollen pro Formular
ROLE_OWNER = "OWNER"
ROLE_EDITOR = "EDITOR"
ROLE_VIEWER = "VIEWER"
ROLES = (ROLE_OWNER, ROLE_EDITOR, ROLE_VIEWER)

ITEM_KINDS = (
    "QUESTION_ITEM",
    "QUESTION_GROUP_ITEM",
    "PAGE_BREAK_ITEM",
    "TEXT_ITEM",
    "IMAGE_ITEM",
)
QUESTION_KINDS = (
    "CHOICE_QUESTION",
    "TEXT_QUESTION",
    "SCALE_QUESTION",
    "DATE_QUESTION",
    "TIME_QUESTION",
    "FILE_UPLOAD_QUESTION",
    "ROW_QUESTION",
)
CHOICE_TYPES = ("RADIO", "CHECKBOX", "DROP_DOWN", "CHOICE_TYPE_UNSPECIFIED")
GOTO_ACTIONS = (
    "NEXT_SECTION",
    "RESTART_FORM",
    "SUBMIT_FORM",
    "GO_TO_ACTION_UNSPECIFIED",
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    forms = relationship("Form", back_populates="owner")


class TemplateCategory(Base):
    __tablename__ = "template_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, nullable=True)


class Form(Base):
    __tablename__ = "forms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_template = Column(Boolean, default=False, nullable=False)
    is_public = Column(Boolean, default=True, nullable=False)
    is_quiz = Column(Boolean, default=False, nullable=False)
    category_id = Column(
        Integer, ForeignKey("template_categories.id", ondelete="SET NULL"), nullable=True
    )
    # Zeiger auf die aktive Version (zirkulärer FK, daher use_alter)
    active_version_id = Column(
        Integer,
        ForeignKey(
            "form_versions.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_forms_active_version_id",
        ),
        nullable=True,
    )
    update_window_hours = Column(Integer, nullable=True)  # NULL bedeutet Standard (24h)
    wants_email_updates = Column(Boolean, default=True, nullable=False)
    draft_content = Column(JSON, nullable=True)  # letzter Stand aus dem Collaboration-Raum
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )

    owner = relationship("User", back_populates="forms")
    category = relationship("TemplateCategory")
    versions = relationship(
        "FormVersion",
        back_populates="form",
        foreign_keys="FormVersion.form_id",
        passive_deletes=True,
    )
    sections = relationship(
        "Section",
        back_populates="form",
        order_by="Section.seq_order",
        passive_deletes=True,
    )
    roles = relationship("FormUserRole", back_populates="form", passive_deletes=True)


class FormVersion(Base):
    __tablename__ = "form_versions"
    __table_args__ = (
        UniqueConstraint("form_id", "revision_id", name="uq_form_versions_revision"),
    )

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    revision_id = Column(String(32), nullable=False)  # "vMAJOR.MINOR"
    content = Column(JSON, nullable=True)  # eingefrorener Snapshot des Dokuments
    is_active = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    form = relationship("Form", back_populates="versions", foreign_keys=[form_id])


class Section(Base):
    __tablename__ = "sections"
    __table_args__ = (
        UniqueConstraint("form_id", "seq_order", name="uq_sections_form_seq_order"),
    )

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    seq_order = Column(Integer, nullable=False)

    form = relationship("Form", back_populates="sections")
    items = relationship(
        "Item", back_populates="section", order_by="Item.id", passive_deletes=True
    )


class Item(Base):
    __tablename__ = "items"
    __table_args__ = (UniqueConstraint("form_id", "title", name="uq_items_form_title"),)

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    kind = Column(String(32), nullable=False)

    section = relationship("Section", back_populates="items")
    questions = relationship(
        "Question", secondary="question_items", order_by="Question.id", viewonly=True
    )


class Grading(Base):
    __tablename__ = "gradings"

    id = Column(Integer, primary_key=True, index=True)
    point_value = Column(Float, default=0)
    when_right = Column(Text, nullable=True)
    when_wrong = Column(Text, nullable=True)
    general_feedback = Column(Text, nullable=True)
    answer_key = Column(JSON, nullable=True)
    auto_feedback = Column(Boolean, default=False)


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(32), nullable=False)
    required = Column(Boolean, default=False, nullable=False)
    grading_id = Column(Integer, ForeignKey("gradings.id", ondelete="SET NULL"), nullable=True)

    grading = relationship("Grading")
    choice = relationship("ChoiceQuestion", uselist=False, passive_deletes=True)
    options = relationship("Option", order_by="Option.id", passive_deletes=True)


class QuestionItem(Base):
    __tablename__ = "question_items"

    item_id = Column(Integer, ForeignKey("items.id", ondelete="CASCADE"), primary_key=True)
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )


class ChoiceQuestion(Base):
    __tablename__ = "choice_questions"

    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True
    )
    type = Column(String(32), default="RADIO")
    shuffle = Column(Boolean, default=False)


class Image(Base):
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(1024), nullable=False)
    alt_text = Column(String(255), nullable=True)
    alignment = Column(String(16), nullable=True)  # LEFT, CENTER, RIGHT
    width = Column(Integer, nullable=True)


class Option(Base):
    __tablename__ = "options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    value = Column(Text, nullable=False)
    image_id = Column(Integer, ForeignKey("images.id", ondelete="SET NULL"), nullable=True)
    is_other = Column(Boolean, default=False)
    goto_action = Column(String(32), nullable=True)

    image = relationship("Image")


class NavigationRule(Base):
    __tablename__ = "navigation_rules"
    __table_args__ = (
        UniqueConstraint(
            "section_id", "target_section_id", "condition", name="uq_navigation_rules"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    section_id = Column(Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False)
    target_section_id = Column(
        Integer, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    condition = Column(String(255), nullable=False)


class FormResponse(Base):
    __tablename__ = "form_responses"

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    version_id = Column(
        Integer, ForeignKey("form_versions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    responder_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), server_default=func.now()
    )
    total_score = Column(Float, default=0, nullable=False)
    response_token = Column(Text, nullable=True)

    answers = relationship(
        "Answer",
        back_populates="response",
        order_by="Answer.question_id",
        passive_deletes=True,
    )


class Answer(Base):
    __tablename__ = "answers"
    __table_args__ = (
        UniqueConstraint("response_id", "question_id", name="uq_answers_response_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    response_id = Column(
        Integer, ForeignKey("form_responses.id", ondelete="CASCADE"), index=True, nullable=False
    )
    question_id = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), index=True, nullable=False
    )
    value = Column(JSON)  # Antwort als JSON (Text, Liste, Zahl ...)
    score = Column(Float, default=0, nullable=False)
    feedback = Column(JSON, nullable=True)

    response = relationship("FormResponse", back_populates="answers")


class FormUserRole(Base):
    __tablename__ = "form_user_roles"
    __table_args__ = (UniqueConstraint("form_id", "user_id", name="uq_form_user_roles"),)

    id = Column(Integer, primary_key=True, index=True)
    form_id = Column(Integer, ForeignKey("forms.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    role = Column(String(16), nullable=False)

    form = relationship("Form", back_populates="roles")
