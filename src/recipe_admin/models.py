from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits the camelCase field names used on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationKind(str, Enum):
    SINGLE = "single"
    MENU = "menu"
    THEME = "theme"
    CUSTOM = "custom"


class JobStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortField(str, Enum):
    CREATED_AT = "createdAt"
    TITLE = "title"
    FILE_NAME = "fileName"
    INGREDIENTS_SUMMARY = "ingredientsSummary"


class _GenerationRequestBase(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_name: str = "admin"

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"kind"})


class SingleDishRequest(_GenerationRequestBase):
    kind: Literal["single"] = "single"
    dish_name: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {"dishName": self.dish_name.strip(), "userName": self.user_name}


class MenuRequest(_GenerationRequestBase):
    kind: Literal["menu"] = "menu"
    theme: str = ""


class ThemeRequest(_GenerationRequestBase):
    kind: Literal["theme"] = "theme"
    theme: str = ""
    count: int = 4


class CustomListRequest(_GenerationRequestBase):
    kind: Literal["custom"] = "custom"
    dishes: Tuple[str, ...] = ()

    @field_validator("dishes", mode="before")
    @classmethod
    def _split_text_block(cls, value: Any) -> Any:
        # A textarea sends one dish per line.
        if isinstance(value, str):
            return tuple(value.splitlines())
        return value

    def non_blank_dishes(self) -> List[str]:
        return [dish.strip() for dish in self.dishes if dish.strip()]

    def to_payload(self) -> Dict[str, Any]:
        return {"userName": self.user_name, "dishes": self.non_blank_dishes()}


GenerationRequest = Annotated[
    Union[SingleDishRequest, MenuRequest, ThemeRequest, CustomListRequest],
    Field(discriminator="kind"),
]


class JobSnapshot(CamelModel):
    """Read-only view of the generation job handed to callers."""

    id: Optional[str] = None
    kind: Optional[GenerationKind] = None
    status: JobStatus = JobStatus.IDLE
    progress: float = 0.0
    error_message: Optional[str] = None
    expected_recipes: int = 0


class JobStatusReport(BaseModel):
    """Payload of the backend's batch status endpoint."""

    status: JobStatus = JobStatus.RUNNING
    progress: float = 0.0
    error: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _unknown_means_running(cls, value: Any) -> Any:
        # Anything other than a terminal state counts as still running.
        text = value.value if isinstance(value, JobStatus) else str(value or "").lower()
        if text in {JobStatus.COMPLETED.value, JobStatus.ERROR.value}:
            return text
        return JobStatus.RUNNING

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        return min(100.0, max(0.0, float(value)))


class RawTags(BaseModel):
    model_config = ConfigDict(frozen=True)

    tag1: Optional[str] = None
    tag2: Optional[str] = None
    tag3: Optional[str] = None


class CatalogEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    title: str
    pdf_url: str
    thumbnail_url: Optional[str] = None
    ingredients_summary: str
    created_at: str
    file_name: str
    raw_tags: RawTags = Field(default_factory=RawTags)


class FilterState(CamelModel):
    search: str = ""
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC


class Stats(CamelModel):
    total: int = 0
    today: int = 0
    storage_label: str = ""
    generation_label: str = "ready"


class Notice(BaseModel):
    message: str
    source: str


class ConfigMetadata(CamelModel):
    kinds: List[GenerationKind]
    menu_themes: List[str]
    theme_options: List[str]
    theme_counts: List[int]
    default_user_name: str
    menu_recipe_count: int


GENERATION_REQUEST_ADAPTER: TypeAdapter[GenerationRequest] = TypeAdapter(GenerationRequest)


def parse_generation_request(data: Any) -> GenerationRequest:
    """Build the request model matching `data["kind"]`; raises pydantic.ValidationError."""
    return GENERATION_REQUEST_ADAPTER.validate_python(data)
