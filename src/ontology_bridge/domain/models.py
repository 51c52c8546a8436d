"""Core domain models for the Ontology Bridge."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

MASTER_ATTRIBUTE = "is_master"
"""Name of the synthetic master/slave property attribute."""

MASTER_ENUM: dict[int, str] = {-1: "Not available", 0: "Slave", 1: "Master"}
"""Fixed enumeration exported for the master/slave property."""

ROOT_TEMPLATE_ID = "root"
"""Template id of the synthesized root space collecting orphan datapoints."""

ROOT_NAME = "OpenBOS"
"""Display name of the synthesized root node."""


class Subtype(Enum):
    """Attribute subtype on the asset management platform."""

    INPUT = "input"
    OUTPUT = "output"
    INFO = "info"
    STATUS = "status"
    PROPERTY = "property"

    @classmethod
    def from_direction(cls, direction: str) -> "Subtype":
        """Map a datapoint template direction to the exported subtype."""
        match (direction or "").lower():
            case "feedback":
                return cls.INPUT
            case "command" | "commandandfeedback":
                return cls.OUTPUT
            case _:
                return cls.INFO


@dataclass(frozen=True, slots=True)
class LeafAttribute:
    """A primitive attribute produced by flattening a (possibly complex) data type."""

    path: str
    """Dot-joined name from the root type name through nested field names.

    Example: 'Setpoint.comfort.heating'.
    """

    unit: str | None = None
    """Unit symbol (e.g., '°C'), resolved from the unit catalog."""

    min: float | None = None
    """Lower bound, if the type declares one."""

    max: float | None = None
    """Upper bound, if the type declares one."""

    enums: dict[str, str] = field(default_factory=dict)
    """Ordinal to label enumeration."""


@dataclass(frozen=True, slots=True)
class DatapointTemplateInfo:
    """A datapoint template owned by an asset or space template."""

    id: str
    name: str
    direction: str
    attributes: tuple[LeafAttribute, ...] = ()

    @property
    def subtype(self) -> Subtype:
        return Subtype.from_direction(self.direction)


@dataclass(frozen=True, slots=True)
class PropertyTemplateInfo:
    """A property template owned by an asset or space template."""

    id: str
    name: str
    attributes: tuple[LeafAttribute, ...] = ()

    @property
    def subtype(self) -> Subtype:
        return Subtype.STATUS


@dataclass(frozen=True, slots=True)
class AssetTemplate:
    """Asset or space template with its resolved datapoints and properties."""

    id: str
    name: str
    tags: tuple[str, ...] = ()
    datapoints: tuple[DatapointTemplateInfo, ...] = ()
    properties: tuple[PropertyTemplateInfo, ...] = ()
    is_space: bool = False


@dataclass(frozen=True, slots=True)
class AttributeBinding:
    """Resolved metadata for a datapoint or property template id.

    Joins per-instance identifiers to the attributes defined on the template.
    """

    name: str
    """Datapoint/property template name, used as attribute name prefix."""

    subtype: Subtype
    """Exported subtype."""

    attribute_names: tuple[str, ...]
    """Resolved leaf attribute names in declaration order."""


@dataclass(slots=True)
class ExportedAttribute:
    """An attribute of an exported asset type."""

    name: str
    subtype: Subtype
    min: float | None = None
    max: float | None = None
    unit: str | None = None
    enum: list[dict[str, Any]] = field(default_factory=list)
    is_digital: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the platform's asset type attribute representation."""
        data: dict[str, Any] = {"name": self.name, "subtype": self.subtype.value}
        if self.min is not None:
            data["min"] = self.min
        if self.max is not None:
            data["max"] = self.max
        if self.unit is not None:
            data["unit"] = self.unit
        if self.enum:
            data["map"] = self.enum
        if self.is_digital is not None:
            data["isDigital"] = self.is_digital
        return data


@dataclass(slots=True)
class AssetType:
    """Exported asset type schema."""

    name: str
    translation: dict[str, str]
    attributes: list[ExportedAttribute] = field(default_factory=list)

    def attribute(self, name: str) -> ExportedAttribute | None:
        """Find an attribute by name."""
        for attribute in self.attributes:
            if attribute.name == name:
                return attribute
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "translation": dict(self.translation),
            "attributes": [a.to_dict() for a in self.attributes],
        }


@dataclass(frozen=True, slots=True)
class Attribute:
    """Attribute reference of a datapoint instance."""

    name: str


@dataclass(slots=True)
class Datapoint:
    """A datapoint or property instance bound to its resolved attributes."""

    subtype: Subtype
    """Exported subtype of all attributes of this datapoint."""

    provider_id: str
    """Vendor-assigned instance id, used to correlate live updates."""

    attribute_name_prefix: str
    """Datapoint template name; complex values are flattened under it."""

    attributes: list[Attribute] = field(default_factory=list)
    """Attributes this datapoint writes to."""

    data: dict[str, Any] | None = None
    """Flattened current value (properties only)."""

    @property
    def attribute_names(self) -> list[str]:
        return [a.name for a in self.attributes]


@dataclass(slots=True)
class ResolvedNode:
    """Node of the synthesized asset tree.

    Space-derived nodes carry locational children keyed by space or asset id.
    Assets not attached to any space are functional children of the root.
    """

    id: str
    name: str
    template_id: str
    is_master: bool = False
    locational_children: dict[str, "ResolvedNode"] = field(default_factory=dict)
    functional_children: list["ResolvedNode"] = field(default_factory=list)
    datapoints: list[Datapoint] = field(default_factory=list)

    def filter_fields(self) -> dict[str, str]:
        """Fields a filter rule may address, as strings."""
        return {
            "id": self.id,
            "name": self.name,
            "templateID": self.template_id,
            MASTER_ATTRIBUTE: str(int(self.is_master)),
        }

    def asset_type_name(self, prefix: str) -> str:
        return f"{prefix}{self.template_id}"

    def global_asset_id(self, prefix: str) -> str:
        return f"{prefix}{self.id}"

    def walk(self):
        """Yield this node and all descendants, depth first."""
        yield self
        for child in self.locational_children.values():
            yield from child.walk()
        for child in self.functional_children:
            yield from child.walk()

    def count(self) -> int:
        """Number of nodes in this subtree, including this one."""
        return sum(1 for _ in self.walk())
