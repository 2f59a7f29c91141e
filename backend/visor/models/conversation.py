"""Modelos canónicos de conversaciones, filtros y estadísticas del panel."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel


class AssistantType(str, Enum):
    """Persona que atendió la conversación."""

    GRANVILLE = "Granville"
    FORTECAR = "Fortecar"
    PAMPAWAGEN = "Pampawagen"
    UNKNOWN = "Desconocido"

    @classmethod
    def parse(cls, value: str) -> AssistantType:
        """Acepta el valor visible o el nombre del miembro, sin distinguir mayúsculas."""
        candidate = value.strip().lower()
        for member in cls:
            if candidate in (member.value.lower(), member.name.lower()):
                return member
        raise ValueError(f"Asistente desconocido: {value!r}")

    @classmethod
    def known(cls) -> list[AssistantType]:
        return [member for member in cls if member is not cls.UNKNOWN]


class CamelModel(BaseModel):
    """Se serializa en camelCase (`sessionId`), como los documentos de origen."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class DocumentShape(str, Enum):
    """Forma de un documento almacenado según el esquema que lo escribió."""

    CURRENT = "current"
    LEGACY = "legacy"
    FLAT = "flat"
    UNRECOGNIZED = "unrecognized"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @property
    def store_value(self) -> int:
        return 1 if self is SortDirection.ASC else -1


class Message(CamelModel):
    content: str
    role: MessageRole
    timestamp: datetime | None = None


class ConversationRecord(CamelModel):
    """Conversación normalizada, independiente del esquema de origen."""

    id: str
    session_id: str | None = None
    collection: str
    assistant_type: AssistantType
    source_shape: DocumentShape
    messages: list[Message] = Field(default_factory=list)
    first_timestamp: datetime
    last_timestamp: datetime
    synthetic_timestamp: bool = Field(
        default=False,
        description="True cuando first_timestamp es la hora actual por falta de datos.",
    )

    @computed_field(alias="messageCount")  # type: ignore[prop-decorator]
    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def is_empty(self) -> bool:
        return not self.messages


class DateRange(CamelModel):
    """Rango cerrado `[start, end]`; cualquiera de los extremos puede omitirse."""

    start: datetime | None = None
    end: datetime | None = None

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.start and self.end and self.start > self.end:
            raise ValueError("rango_fecha_invalido: start es posterior a end")
        return self

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


class FilterCriteria(CamelModel):
    """Criterios opcionales; los presentes se combinan con AND."""

    model_config = ConfigDict(frozen=True)

    assistant_type: AssistantType | None = None
    session_id: str | None = None
    date_range: DateRange | None = None
    search_text: str | None = None


class SortSpec(CamelModel):
    model_config = ConfigDict(frozen=True)

    field: str = "date"
    direction: SortDirection = SortDirection.DESC


class AggregationBucket(CamelModel):
    label: str
    count: int = Field(default=0, ge=0)
    start: datetime | None = None
    end: datetime | None = None


class AssistantTotal(CamelModel):
    assistant_type: AssistantType
    count: int = Field(default=0, ge=0)
    display_color: str


class AssistantAverage(CamelModel):
    assistant_type: AssistantType
    conversations: int = 0
    messages: int = 0
    average: float = 0.0


class MessageAverages(CamelModel):
    overall: float = 0.0
    by_assistant: list[AssistantAverage] = Field(default_factory=list)


class MessagePreview(CamelModel):
    role: MessageRole
    content: str


class RecentConversation(CamelModel):
    id: str
    session_id: str | None = None
    assistant_type: AssistantType
    last_activity: datetime
    message_count: int = 0
    last_message: MessagePreview | None = None


class PeriodBuckets(CamelModel):
    day: list[AggregationBucket] = Field(default_factory=list)
    week: list[AggregationBucket] = Field(default_factory=list)
    month: list[AggregationBucket] = Field(default_factory=list)


class DashboardStats(CamelModel):
    totals_by_assistant: list[AssistantTotal] = Field(default_factory=list)
    buckets_by_period: PeriodBuckets = Field(default_factory=PeriodBuckets)
    average_messages: MessageAverages = Field(default_factory=MessageAverages)
    recent_conversations: list[RecentConversation] = Field(default_factory=list)


class SessionOption(CamelModel):
    """Entrada del selector de números de teléfono."""

    value: str
    label: str


class ExportResult(CamelModel):
    filename: str
    exported_at: datetime
    count: int
    documents: list[dict]
