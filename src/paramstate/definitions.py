"""
Static definitions of parameters and exports.

Definitions are immutable (frozen dataclasses) and compared structurally,
which is what NamespaceDirectory.sync_generic() relies on to decide whether
an existing cell can be kept.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence


class ParameterType(str, Enum):
    """Parameter types known to the validators."""
    BOOL = 'Bool'
    COLOR = 'Color'
    EVEN = 'Even'
    FILE = 'File'
    FLOAT = 'Float'
    INT = 'Int'
    ODD = 'Odd'
    STRING = 'String'
    STRINGLIST = 'StringList'


class Visualization(str, Enum):
    """Visualization hints that change validation (StringList only)."""
    CHECKLIST = 'checklist'


@dataclass(frozen=True)
class ParameterDefinition:
    """Static metadata of one parameter.

    ``type`` is a plain string so that parameter types unknown to the
    validators (drawing, selection, ...) can still be represented.
    """
    id: str
    name: str
    type: str
    display_name: Optional[str] = None
    default_value: Any = None
    choices: Optional[Sequence[str]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    decimal_places: Optional[int] = None
    visualization: Optional[str] = None
    structure: Optional[str] = None
    group: Optional[Mapping[str, Any]] = None
    order: Optional[float] = None
    hidden: bool = False
    tooltip: Optional[str] = None
    settings: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_remote(cls, remote: Any) -> 'ParameterDefinition':
        """Map the definition of a remote parameter object."""
        return cls(
            id=remote.id,
            name=remote.name,
            type=str(getattr(remote.type, 'value', remote.type)),
            display_name=getattr(remote, 'display_name', None),
            default_value=getattr(remote, 'default_value', None),
            choices=getattr(remote, 'choices', None),
            min=getattr(remote, 'min', None),
            max=getattr(remote, 'max', None),
            decimal_places=getattr(remote, 'decimal_places', None),
            visualization=getattr(remote, 'visualization', None),
            structure=getattr(remote, 'structure', None),
            group=getattr(remote, 'group', None),
            order=getattr(remote, 'order', None),
            hidden=bool(getattr(remote, 'hidden', False)),
            tooltip=getattr(remote, 'tooltip', None),
            settings=getattr(remote, 'settings', None),
        )


@dataclass(frozen=True)
class ExportDefinition:
    """Static metadata of one export."""
    id: str
    name: str
    type: Optional[str] = None
    display_name: Optional[str] = None
    uid: Optional[str] = None
    group: Optional[Mapping[str, Any]] = None
    order: Optional[float] = None
    hidden: bool = False
    tooltip: Optional[str] = None
    dependency: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def from_remote(cls, remote: Any) -> 'ExportDefinition':
        """Map the definition of a remote export object."""
        return cls(
            id=remote.id,
            name=remote.name,
            type=getattr(remote, 'type', None),
            display_name=getattr(remote, 'display_name', None),
            uid=getattr(remote, 'uid', None),
            group=getattr(remote, 'group', None),
            order=getattr(remote, 'order', None),
            hidden=bool(getattr(remote, 'hidden', False)),
            tooltip=getattr(remote, 'tooltip', None),
            dependency=tuple(getattr(remote, 'dependency', None) or ()),
        )


@dataclass(frozen=True)
class GenericParameterDefinition:
    """A parameter that is not necessarily backed by a remote parameter.

    Attributes:
        definition: Static definition of the parameter.
        value: Current value hint. Used as the initial value of a new cell and,
            in sync_generic(), to re-sync the committed value of a kept cell.
            None means "use the default value" / "no hint".
        is_valid: Optional validator ``(value, raise_error) -> bool``. When
            missing, the type validator from paramstate.validation is used.
        stringify: Optional value formatter, defaults to ``str``.
    """
    definition: ParameterDefinition
    value: Any = None
    is_valid: Optional[Callable[[Any, bool], bool]] = field(default=None, compare=False)
    stringify: Optional[Callable[[Any], str]] = field(default=None, compare=False)
