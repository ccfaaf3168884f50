"""Row schemas for the hosted entity tables.

Rows come back from the table API as plain JSON objects with foreign keys as
bare id strings. Every row crosses ``parse_row``/``parse_rows`` before any flow
logic touches it, so a malformed row fails here instead of leaking ``None``
into graph building or combination matching.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum
from typing import Annotated, Any, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_LINK_DURATION_MS = 3000
DEFAULT_LINK_POSITION = 20.0
DEFAULT_IMAGE_SIZE = 100


def _coerce_id(value: Any) -> Any:
    # video_links uses integer keys, everything else uses uuid strings
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


def _none_to_false(value: Any) -> Any:
    return False if value is None else value


EntityId = Annotated[str, BeforeValidator(_coerce_id)]
Flag = Annotated[bool, BeforeValidator(_none_to_false)]


class MalformedRowError(ValueError):
    """A row returned by the entity store does not match its schema."""

    def __init__(self, table: str, row: Any, errors: list[dict[str, Any]]):
        self.table = table
        self.row = row
        self.errors = errors
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())) or "<row>" for e in errors)
        super().__init__(f"malformed row in '{table}': {fields}")


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Video(_Row):
    id: EntityId
    title: str = ""
    url: Optional[str] = None
    session_id: Optional[EntityId] = None
    module_id: Optional[EntityId] = None
    order_index: int = 0
    is_main: Flag = False
    is_navigation_video: Flag = False
    destination_video_id: Optional[EntityId] = None
    freeze_at_end: Flag = Field(
        default=False, validation_alias=AliasChoices("freeze_at_end", "freezeAtEnd")
    )
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @field_validator("order_index", mode="before")
    @classmethod
    def _order_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class LinkType(str, Enum):
    URL = "url"
    VIDEO = "video"
    FORM = "form"


class VideoLink(_Row):
    id: EntityId
    video_id: EntityId
    timestamp_seconds: float = Field(ge=0)
    duration_ms: int = Field(default=DEFAULT_LINK_DURATION_MS, ge=0)
    label: str = ""
    link_type: LinkType
    url: Optional[str] = None
    destination_video_id: Optional[EntityId] = None
    position_x: float = Field(default=DEFAULT_LINK_POSITION, ge=0, le=100)
    position_y: float = Field(default=DEFAULT_LINK_POSITION, ge=0, le=100)
    normal_state_image: Optional[str] = None
    hover_state_image: Optional[str] = None
    normal_image_width: Optional[int] = None
    normal_image_height: Optional[int] = None
    hover_image_width: Optional[int] = None
    hover_image_height: Optional[int] = None
    form_data: Optional[dict[str, Any]] = None

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("link_type"):
            data["link_type"] = LinkType.URL.value if data.get("url") else LinkType.VIDEO.value
        # 0 or missing means the stock 3s window
        if not data.get("duration_ms"):
            data["duration_ms"] = DEFAULT_LINK_DURATION_MS
        for key in ("position_x", "position_y"):
            if data.get(key) is None:
                data[key] = DEFAULT_LINK_POSITION
        for key in ("url", "destination_video_id", "normal_state_image", "hover_state_image"):
            if data.get(key) == "":
                data[key] = None
        return data

    @property
    def window(self) -> tuple[float, float]:
        start = float(self.timestamp_seconds)
        return start, start + self.duration_ms / 1000.0


class Answer(_Row):
    id: EntityId
    question_id: EntityId
    answer_text: str = ""
    destination_video_id: Optional[EntityId] = None
    destination_video: Optional[Video] = None

    @field_validator("destination_video_id", mode="before")
    @classmethod
    def _blank_destination(cls, value: Any) -> Any:
        return None if value == "" else value


class Question(_Row):
    id: EntityId
    video_id: EntityId
    question_text: str = ""
    answers: List[Answer] = Field(default_factory=list)

    @field_validator("answers", mode="before")
    @classmethod
    def _answers_default(cls, value: Any) -> Any:
        return [] if value is None else value


class CombinationAnswer(_Row):
    answer_id: EntityId


class AnswerCombination(_Row):
    id: EntityId
    session_id: Optional[EntityId] = None
    solution_id: Optional[EntityId] = None
    combination_answers: List[CombinationAnswer] = Field(default_factory=list)

    @field_validator("combination_answers", mode="before")
    @classmethod
    def _members_default(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def answer_ids(self) -> frozenset[str]:
        return frozenset(member.answer_id for member in self.combination_answers)


class SolutionCategory(IntEnum):
    FORM = 1
    EMAIL = 2
    LINK = 3
    VIDEO = 4


class Solution(_Row):
    id: EntityId
    session_id: Optional[EntityId] = None
    category_id: SolutionCategory
    title: Optional[str] = None
    form_data: Optional[dict[str, Any]] = None
    email_target: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("email_target", "emailTarget")
    )
    email_content: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("email_content", "emailContent")
    )
    link_url: Optional[str] = None
    video_url: Optional[str] = None
    video_id: Optional[EntityId] = None

    @property
    def category(self) -> SolutionCategory:
        return SolutionCategory(self.category_id)


class FlowType(str, Enum):
    LINEAR = "linear"
    INTERACTIVE = "interactive"
    SELECTION = "selection"


class FlowSession(_Row):
    id: EntityId
    title: str = ""
    session_type: FlowType = FlowType.INTERACTIVE
    associated_with: Optional[EntityId] = None
    show_play_button: Flag = Field(
        default=True, validation_alias=AliasChoices("show_play_button", "showPlayButton")
    )
    total_views: int = 0
    created_at: Optional[datetime] = None

    @field_validator("total_views", mode="before")
    @classmethod
    def _views_default(cls, value: Any) -> Any:
        return 0 if value is None else value


class Module(_Row):
    id: EntityId
    session_id: EntityId
    title: str = ""
    order_index: int = 0


class JourneyStep(_Row):
    video_id: Optional[EntityId] = Field(default=None, validation_alias=AliasChoices("video_id", "videoId"))
    video_title: str = Field(default="", validation_alias=AliasChoices("video_title", "videoTitle"))
    action: str = "play"
    element_id: Optional[EntityId] = None
    element_label: Optional[str] = None
    timestamp: float = 0.0


class UserJourney(_Row):
    session_id: EntityId = Field(validation_alias=AliasChoices("session_id", "sessionId"))
    steps: List[JourneyStep] = Field(default_factory=list)


class Lead(_Row):
    id: Optional[EntityId] = None
    session_id: EntityId
    company_id: Optional[EntityId] = None
    form_title: str = ""
    form_data: dict[str, Any] = Field(default_factory=dict)
    user_journey: Optional[UserJourney] = None
    journey_summ: Optional[str] = None
    created_at: Optional[datetime] = None


class WatchTimeRecord(_Row):
    id: Optional[EntityId] = None
    session_id: EntityId
    watch_time: float = Field(ge=0)
    created_at: Optional[datetime] = None


class UserRow(_Row):
    id: EntityId
    email: Optional[str] = None
    first_name: Optional[str] = None
    role: Optional[str] = None


RowModel = TypeVar("RowModel", bound=BaseModel)


def parse_row(model: Type[RowModel], row: Any, *, table: str | None = None) -> RowModel:
    """Validate one raw row, raising ``MalformedRowError`` on mismatch."""
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        raise MalformedRowError(table or model.__name__, row, exc.errors()) from exc


def parse_rows(model: Type[RowModel], rows: Iterable[Any] | None, *, table: str | None = None) -> List[RowModel]:
    return [parse_row(model, row, table=table) for row in rows or []]


def index_by_id(items: Sequence[Any]) -> dict[str, Any]:
    return {item.id: item for item in items}
