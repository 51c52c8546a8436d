"""Pydantic models of the vendor ontology document."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel, to_pascal


class OntologyModel(BaseModel):
    """Base model accepting camelCase keys and treating nulls as absent."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class OntologySettings(OntologyModel):
    version: int = 0


class TemplateRecord(OntologyModel):
    """Asset or space template."""

    id: str
    name: str = ""
    tags: list[str] = Field(default_factory=list)


class UnitRecord(OntologyModel):
    id: str
    symbol: str = ""


class DataTypeField(OntologyModel):
    name: str
    type_id: str = ""


class DataTypeRecord(OntologyModel):
    """Primitive or complex data type definition.

    A data type with ``fields`` is complex; each field references another
    data type by id.
    """

    id: str
    format: str = ""
    name: str = ""
    unit_id: str = ""
    fields: list[DataTypeField] = Field(default_factory=list)
    min: float | None = None
    max: float | None = None
    enums: dict[str, str] = Field(default_factory=dict)

    @property
    def is_complex(self) -> bool:
        return bool(self.fields)

    @property
    def display_name(self) -> str:
        return self.name or self.id


class DatapointTemplateRecord(OntologyModel):
    id: str
    name: str = ""
    asset_template_id: str = ""
    space_template_id: str = ""
    type_id: str = ""
    direction: str = ""
    tags: list[str] = Field(default_factory=list)


class PropertyTemplateRecord(OntologyModel):
    id: str
    name: str = ""
    asset_template_id: str = ""
    space_template_id: str = ""
    type_id: str = ""
    tags: list[str] = Field(default_factory=list)


class AssetRecord(OntologyModel):
    id: str
    name: str = ""
    template_id: str = ""


class SpaceAssetRef(OntologyModel):
    """Attachment of an asset to a space."""

    id: str
    master: bool = False


class SpaceRecord(OntologyModel):
    id: str
    name: str = ""
    parent_id: str = ""
    template_id: str = ""
    assets: list[SpaceAssetRef] = Field(default_factory=list)


class DatapointRecord(OntologyModel):
    """Datapoint instance owned by an asset XOR a space (neither: orphan)."""

    id: str
    template_id: str = ""
    asset_id: str = ""
    space_id: str = ""

    @property
    def is_orphan(self) -> bool:
        return not self.asset_id and not self.space_id


class PropertyRecord(OntologyModel):
    """Property instance, optionally carrying its current value."""

    id: str
    template_id: str = ""
    asset_id: str = ""
    space_id: str = ""
    value: Any = None


class Ontology(OntologyModel):
    """The complete ontology document of a gateway."""

    settings: OntologySettings = Field(default_factory=OntologySettings)
    asset_templates: list[TemplateRecord] = Field(default_factory=list)
    space_templates: list[TemplateRecord] = Field(default_factory=list)
    units: list[UnitRecord] = Field(default_factory=list)
    data_types: list[DataTypeRecord] = Field(default_factory=list)
    datapoint_templates: list[DatapointTemplateRecord] = Field(default_factory=list)
    property_templates: list[PropertyTemplateRecord] = Field(default_factory=list)
    assets: list[AssetRecord] = Field(default_factory=list)
    spaces: list[SpaceRecord] = Field(default_factory=list)
    datapoints: list[DatapointRecord] = Field(default_factory=list)
    properties: list[PropertyRecord] = Field(default_factory=list)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Ontology":
        return cls.model_validate_json(raw)

    def orphan_datapoints(self) -> list[DatapointRecord]:
        """Datapoints referencing neither an asset nor a space."""
        return [dp for dp in self.datapoints if dp.is_orphan]


class LiveAlarmRecord(OntologyModel):
    """Live alarm event, as returned by the alarm endpoint and its webhook."""

    data_point_instance_id: str = ""
    session_id: str = ""
    """Alarm id; a single alarm produces several events."""

    name: str = ""
    description: str = ""
    trigger: str = ""
    active: bool = False
    acked: bool = False
    closed: bool = False
    time_stamp: str = ""
    """UTC time the alarm appeared, formatted ``dd/mm/YYYY HH:MM:SS``."""

    quality: str = ""
    value: Any = None
    acked_by: str = ""
    comment: str = ""
    need_acknowledge: bool = False
    severity: str = ""
    """One of Log, Low, High, Urgent, Critical."""

    asset_id: str = ""
    space_id: str = ""
    asset_name: str = ""
    space_name: str = ""
    datapoint_name: str = ""
    unit_symbol: str = ""
    tags: list[str] = Field(default_factory=list)


class NotificationModel(BaseModel):
    """Base model of webhook notifications, which use PascalCase keys."""

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class VersionNotification(NotificationModel):
    version: int = 0
    id: str = ""
    notification_identifier: str = ""


class LiveDataItem(NotificationModel):
    id: str
    timestamp: str = ""
    """RFC 3339 timestamp of the value."""

    quality: str = ""
    value: Any = None
    unit_symbol: str = ""
    is_property: bool = False
    tags: list[str] = Field(default_factory=list)


class LiveDataNotification(NotificationModel):
    items: list[LiveDataItem] = Field(default_factory=list)
    id: str = ""
    notification_identifier: str = ""
