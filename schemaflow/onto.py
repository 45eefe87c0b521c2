"""Core enumerations shared across the canvas layer.

This module provides the string enums used by the schema graph, the layout
engine and the relationship editor. All of them derive from :class:`BaseEnum`,
which allows plain strings coming from the backend or from the view layer to
be tested for membership without constructing the enum first.

Key Components:
    - BaseEnum: Base class for string-based enumerations with flexible membership testing
    - ReferentialAction: ON DELETE / ON UPDATE actions of a foreign key
    - LayoutDirection: Direction of the layered auto-layout
    - HandleSide: Side of a column connection point
    - Severity: Severity of a user-facing notification

Example:
    >>> "CASCADE" in ReferentialAction  # True
    >>> "DROP" in ReferentialAction  # False
"""

from enum import EnumMeta

from strenum import StrEnum


class MetaEnum(EnumMeta):
    """Metaclass for flexible enumeration membership testing.

    Example:
        >>> class MyEnum(BaseEnum):
        ...     VALUE = "value"
        >>> "value" in MyEnum  # True
        >>> "invalid" in MyEnum  # False
    """

    def __contains__(self, member: object) -> bool:
        if isinstance(member, self):
            return True
        try:
            self(member)
            return True
        except ValueError:
            return False


class BaseEnum(StrEnum, metaclass=MetaEnum):
    """Base class for string-based enumerations."""

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return self.value


def _register_yaml_representer():
    """Serialize BaseEnum members as plain strings in YAML dumps."""
    import yaml

    def base_enum_representer(dumper, data):
        return dumper.represent_scalar("tag:yaml.org,2002:str", str(data.value))

    yaml.add_representer(BaseEnum, base_enum_representer)
    yaml.add_multi_representer(BaseEnum, base_enum_representer)
    yaml.SafeDumper.add_multi_representer(BaseEnum, base_enum_representer)


_register_yaml_representer()


class ReferentialAction(BaseEnum):
    """Referential actions accepted for ON DELETE and ON UPDATE.

    Attributes:
        RESTRICT: Prevent the change if the row is referenced
        CASCADE: Propagate the change to referencing rows
        SET_NULL: Set the referencing column to NULL
        NO_ACTION: Deferred check
        SET_DEFAULT: Set the referencing column to its default
    """

    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    NO_ACTION = "NO ACTION"
    SET_DEFAULT = "SET DEFAULT"

    @classmethod
    def parse(cls, value: object) -> "ReferentialAction":
        """Parse an action name, tolerating case and underscores.

        Raises:
            ValueError: If the value names no referential action
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = " ".join(value.replace("_", " ").upper().split())
            if normalized in cls:
                return cls(normalized)
        raise ValueError(f"Unknown referential action: {value!r}")

    @classmethod
    def coerce(cls, value: object) -> "ReferentialAction":
        """Parse a backend action string; unknown or empty values become RESTRICT.

        RESTRICT is what the backend applies when no action is given.
        """
        try:
            return cls.parse(value)
        except ValueError:
            return cls.RESTRICT


class RelationshipType(BaseEnum):
    """Cardinality of a foreign-key edge."""

    ONE_TO_MANY = "1:N"


class LayoutDirection(BaseEnum):
    """Direction of the layered layout.

    TB: ranks flow from top to bottom
    LR: ranks flow from left to right
    """

    TB = "TB"
    LR = "LR"


class HandleSide(BaseEnum):
    """Side of a column connection point.

    LEFT: inbound (edge target)
    RIGHT: outbound (edge source)
    """

    LEFT = "left"
    RIGHT = "right"


class AnchorPosition(BaseEnum):
    """Renderer hint for where edges attach to a node."""

    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


class NodeKind(BaseEnum):
    """Renderer node type."""

    TABLE = "tableNode"


class Severity(BaseEnum):
    """Severity of a user-facing notification."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
