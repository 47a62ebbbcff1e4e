"""Source-side record shapes.

Payload models validate what the source system hands us (inline request data
or JSON exports). The engine itself only sees SourceRecord: an immutable
snapshot of the payload plus its identity.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ConfigDict, Field

from clinisync.models.ledger import EntityType


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    source: Optional[str] = None
    source_id: str = Field(alias="sourceId")


class Client(_Payload):
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    preferred_name: Optional[str] = Field(default=None, alias="preferredName")
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = Field(default=None, alias="dateOfBirth")
    city: Optional[str] = None
    state_province: Optional[str] = Field(default=None, alias="stateProvince")
    country: Optional[str] = None
    notes: Optional[str] = None


class Appointment(_Payload):
    client_id: Optional[str] = Field(default=None, alias="clientId")
    client_first_name: Optional[str] = Field(default=None, alias="clientFirstName")
    client_last_name: Optional[str] = Field(default=None, alias="clientLastName")
    practitioner_id: Optional[str] = Field(default=None, alias="practitionerId")
    name: Optional[str] = None
    description: Optional[str] = None
    start_time: str = Field(alias="startTime")  # ISO 8601
    end_time: Optional[str] = Field(default=None, alias="endTime")
    duration: Optional[int] = None  # minutes
    type: Optional[str] = None  # "in-person" | "telehealth"
    status: Optional[str] = None  # "scheduled" | "completed" | "cancelled" | "no-show"
    meeting_link: Optional[str] = Field(default=None, alias="meetingLink")


class SessionNote(_Payload):
    client_id: Optional[str] = Field(default=None, alias="clientId")
    appointment_id: Optional[str] = Field(default=None, alias="appointmentId")
    name: Optional[str] = None
    date: str
    content: str
    locked: Optional[bool] = None


PAYLOAD_MODELS: Dict[EntityType, Type[_Payload]] = {
    EntityType.CLIENT: Client,
    EntityType.APPOINTMENT: Appointment,
    EntityType.SESSION_NOTE: SessionNote,
}


@dataclass(frozen=True)
class SourceRecord:
    """Immutable snapshot of one fetched record."""

    entity_type: EntityType
    source_id: str
    data: Mapping[str, Any] = field(hash=False)

    @classmethod
    def from_payload(cls, entity_type: EntityType, payload: Mapping[str, Any]) -> "SourceRecord":
        """Validate a raw payload dict and wrap it.

        The stored data is the model dump (camelCase aliases), so every
        provider yields the same field set for the same content.
        """
        entity_type = EntityType(entity_type)
        model = PAYLOAD_MODELS[entity_type].model_validate(payload)
        data = model.model_dump(by_alias=True)
        return cls(
            entity_type=entity_type,
            source_id=model.source_id,
            data=MappingProxyType(data),
        )

    @property
    def client_source_id(self) -> Optional[str]:
        """sourceId of the owning client, for appointments and notes."""
        if self.entity_type == EntityType.CLIENT:
            return None
        return self.data.get("clientId")

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


@dataclass
class FetchedData:
    """Records grouped by entity type, as returned by a SourceProvider."""

    clients: List[SourceRecord] = field(default_factory=list)
    appointments: List[SourceRecord] = field(default_factory=list)
    session_notes: List[SourceRecord] = field(default_factory=list)

    def for_type(self, entity_type: EntityType) -> List[SourceRecord]:
        return {
            EntityType.CLIENT: self.clients,
            EntityType.APPOINTMENT: self.appointments,
            EntityType.SESSION_NOTE: self.session_notes,
        }[EntityType(entity_type)]

    def counts(self) -> Dict[str, int]:
        return {
            "clients": len(self.clients),
            "appointments": len(self.appointments),
            "session_notes": len(self.session_notes),
        }

    @classmethod
    def from_payloads(
        cls,
        clients: Optional[List[Mapping[str, Any]]] = None,
        appointments: Optional[List[Mapping[str, Any]]] = None,
        session_notes: Optional[List[Mapping[str, Any]]] = None,
    ) -> "FetchedData":
        return cls(
            clients=[SourceRecord.from_payload(EntityType.CLIENT, p) for p in clients or []],
            appointments=[
                SourceRecord.from_payload(EntityType.APPOINTMENT, p) for p in appointments or []
            ],
            session_notes=[
                SourceRecord.from_payload(EntityType.SESSION_NOTE, p) for p in session_notes or []
            ],
        )
