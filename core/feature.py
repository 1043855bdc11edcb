"""
Typed record model.

Declare a record shape by subclassing Feature and mapping properties to wire
field names:

    class City(Feature):
        geometry_type = Point

        name = mapped('NAME', str)
        pop2000 = mapped('POP2000', int)
        created = mapped('CREATED', datetime, read_only=True)

Writes through mapped properties, item assignment and geometry assignment are
tracked: the wire name of every changed field is recorded, and the record
becomes dirty until it is loaded or successfully saved. Fields returned by the
service but not declared on the class are kept in an ordered bag of unmapped
fields so they round-trip untouched.

On the class itself a mapped property evaluates to a FieldReference, the
building block of predicate expressions (City.pop2000 > 100000).

Classes:
    mapped: Descriptor binding a property to a wire field
    Feature: Base record class
    DynamicFeature: Record with no declared fields that accepts any geometry
"""

from typing import Any, Dict, List, Optional, Type, TypeVar

from core.domain import Domain
from core.exceptions import MissingFieldError, SchemaError
from core.predicate import FieldReference
from geometry_engine.shapes import Geometry

F = TypeVar('F', bound='Feature')


class mapped:
    """
    Bind a record property to a wire field.

    Parameters:
    -----------
    field_name : str
        Field name on the wire (e.g. 'POP2000')
    python_type : Optional[type]
        Declared Python type: int, float, str, bool, datetime, uuid.UUID or a
        Domain subclass. None keeps wire values as they are.
    read_only : bool
        Reject assignment and leave the field out of edit payloads
    wire_type : Optional[FieldType]
        Wire field type, used to render domain codes in WHERE clauses
    """

    def __init__(self, field_name: str, python_type: Optional[type] = None,
                 read_only: bool = False, wire_type=None):
        self.field_name = field_name
        self.python_type = python_type
        self.read_only = read_only
        self.wire_type = wire_type
        self.property_name = None

    def __set_name__(self, owner, name):
        self.property_name = name

    def __get__(self, instance, owner):
        if instance is None:
            return FieldReference(self.field_name, self.python_type, self.wire_type)
        return instance._values.get(self.field_name)

    def __set__(self, instance, value):
        if self.read_only:
            raise AttributeError(f"'{type(instance).__name__}.{self.property_name}' is read-only.")
        instance._set(self.field_name, value)

    def coerce(self, value: Any) -> Any:
        """
        Convert a Python value to the declared type.

        Raises:
        -------
        SchemaError
            If the value cannot be converted
        """
        t = self.python_type
        if value is None or t is None or isinstance(value, t):
            return value
        try:
            if issubclass(t, Domain):
                return t.from_code(value.code if isinstance(value, Domain) else value)
            return t(value)
        except (TypeError, ValueError) as e:
            raise SchemaError(
                f"'{self.field_name}' is declared as {t.__name__}. "
                f"Error trying to convert {value!r} to {t.__name__}."
            ) from e

    def __repr__(self) -> str:
        return f"mapped({self.field_name!r}, {getattr(self.python_type, '__name__', None)})"


class Feature:
    """
    Base class for typed records.

    Attributes:
        oid: Object id, -1 until the record exists on the service
        unmapped_fields: Wire fields not declared on the class, in order
        changed_fields: Wire names of fields changed since load/save
        geometry_changed: Whether geometry was assigned since load/save
    """

    geometry_type: Optional[Type[Geometry]] = None

    _mappings: Dict[str, mapped] = {}
    _property_to_field: Dict[str, str] = {}
    _field_to_property: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        mappings = {}
        for klass in reversed(cls.__mro__):
            for attribute in vars(klass).values():
                if isinstance(attribute, mapped):
                    mappings[attribute.field_name] = attribute

        cls._mappings = mappings
        cls._property_to_field = {m.property_name: f for f, m in mappings.items()}
        cls._field_to_property = {f: m.property_name for f, m in mappings.items()}

    def __init__(self, **values):
        self.oid = -1
        self._values: Dict[str, Any] = {}
        self._geometry: Optional[Geometry] = None
        self.unmapped_fields: Dict[str, Any] = {}
        self.changed_fields: List[str] = []
        self.geometry_changed = False

        for name, value in values.items():
            if name == 'geometry':
                self.geometry = value
            elif name in self._property_to_field:
                setattr(self, name, value)
            else:
                raise TypeError(f"{type(self).__name__} has no mapped property '{name}'")

    @classmethod
    def create(cls: Type[F], **values) -> F:
        """New unsaved record (oid -1); any values given count as changes."""
        return cls(**values)

    @classmethod
    def get_mappings(cls) -> Dict[str, mapped]:
        return dict(cls._mappings)

    @classmethod
    def has_geometry(cls) -> bool:
        return cls.geometry_type is not None

    @property
    def is_data_bound(self) -> bool:
        return self.oid > -1

    @property
    def is_dirty(self) -> bool:
        return bool(self.changed_fields) or self.geometry_changed

    def mark_clean(self):
        """Forget tracked changes, as after a load or a committed edit."""
        self.changed_fields.clear()
        self.geometry_changed = False

    @property
    def geometry(self) -> Optional[Geometry]:
        if not self.has_geometry():
            raise AttributeError(f"{type(self).__name__} does not declare a geometry type.")
        return self._geometry

    @geometry.setter
    def geometry(self, value: Optional[Geometry]):
        if not self.has_geometry():
            raise AttributeError(f"{type(self).__name__} does not declare a geometry type.")
        if value is not None and not isinstance(value, self.geometry_type):
            raise TypeError(f"{type(self).__name__}.geometry must be a {self.geometry_type.__name__}, "
                            f"not {type(value).__name__}")
        self._geometry = value
        self.geometry_changed = True

    def _set(self, field_name: str, value: Any):
        mapping = self._mappings.get(field_name)
        if mapping is not None:
            if mapping.read_only:
                raise AttributeError(f"'{type(self).__name__}.{mapping.property_name}' is read-only.")
            current = self._values.get(field_name)
            store = self._values
        elif field_name in self.unmapped_fields:
            current = self.unmapped_fields[field_name]
            store = self.unmapped_fields
        else:
            self.unmapped_fields[field_name] = value
            self._mark_changed(field_name)
            return

        if type(current) is not type(value) or current != value:
            store[field_name] = value
            self._mark_changed(field_name)

    def _mark_changed(self, field_name: str):
        if field_name not in self.changed_fields:
            self.changed_fields.append(field_name)

    def get_field_names(self) -> List[str]:
        """Mapped wire field names followed by unmapped ones."""
        return list(self._mappings) + list(self.unmapped_fields)

    def changed(self, property_name: str) -> bool:
        """Whether a mapped property (or 'geometry') changed since load/save."""
        if property_name == 'geometry':
            return self.geometry_changed
        if property_name not in self._property_to_field:
            raise MissingFieldError(property_name)
        return self._property_to_field[property_name] in self.changed_fields

    def __getitem__(self, field_name: str) -> Any:
        if field_name in self._mappings:
            return self._values.get(field_name)
        if field_name in self.unmapped_fields:
            return self.unmapped_fields[field_name]
        raise MissingFieldError(field_name)

    def __setitem__(self, field_name: str, value: Any):
        self._set(field_name, value)

    def cast(self, feature_type: Type[F]) -> F:
        """
        Copy this record into another record class.

        Fields are matched by wire name and converted to the target's declared
        types; fields the target does not map become unmapped fields. Read-only
        fields are copied too. Geometry is copied when both classes declare
        one. The copy starts clean.

        Raises:
        -------
        SchemaError
            If a value cannot be converted to the target's declared type
        """
        target = feature_type()
        target.oid = self.oid

        for field_name in self.get_field_names():
            value = self[field_name]
            mapping = feature_type._mappings.get(field_name)
            if mapping is None:
                target.unmapped_fields[field_name] = value
            elif value is not None:
                target._values[field_name] = mapping.coerce(value)

        if self.has_geometry() and feature_type.has_geometry():
            target.geometry = self._geometry

        target.mark_clean()
        return target

    def __repr__(self) -> str:
        fields = ', '.join(f"{self._field_to_property[f]}={v!r}" for f, v in self._values.items())
        return f"{type(self).__name__}(oid={self.oid}{', ' if fields else ''}{fields})"


class DynamicFeature(Feature):
    """Record without declared fields; every attribute is unmapped."""
    geometry_type = Geometry
