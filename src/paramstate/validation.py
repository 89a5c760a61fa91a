"""
Type validators for parameter values.

Generic parameter definitions that do not bring their own validator get one
from make_validator(). Values may be given either natively (bool, int, float)
or in their string form ("true", "12.5"), matching what UI controls produce.
"""
import math
from numbers import Number
from typing import Any, Callable

from paramstate.definitions import ParameterDefinition, ParameterType, Visualization
from paramstate.errors import ValidationError

Validator = Callable[[Any, bool], bool]

_NUMERIC_TYPES = {
    ParameterType.EVEN.value,
    ParameterType.FLOAT.value,
    ParameterType.INT.value,
    ParameterType.ODD.value,
}


def _fail(definition: ParameterDefinition, message: str) -> None:
    raise ValidationError(message, parameter_id=definition.id, details={'type': definition.type})


def _to_number(definition: ParameterDefinition, value: Any) -> float:
    if isinstance(value, bool):
        _fail(definition, f"The value {value!r} is not of type number.")
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            _fail(definition, f"The value {value!r} is not of type number.")
    elif isinstance(value, Number):
        number = float(value)
    else:
        _fail(definition, f"The value {value!r} is not of type number.")
    if math.isnan(number):
        _fail(definition, f"The value {value!r} is not of type number.")
    return number


def _count_decimal_places(value: Any) -> int:
    text = value if isinstance(value, str) else repr(value)
    if 'e' in text.lower():
        return 0
    return len(text.split('.', 1)[1]) if '.' in text else 0


def _validate_number(definition: ParameterDefinition, value: Any) -> None:
    number = _to_number(definition, value)
    ptype = definition.type
    if ptype == ParameterType.EVEN.value and number % 2 != 0:
        _fail(definition, f"The value {value!r} is not even.")
    if ptype == ParameterType.ODD.value and number % 2 == 0:
        _fail(definition, f"The value {value!r} is not odd.")
    if ptype in (ParameterType.INT.value, ParameterType.EVEN.value, ParameterType.ODD.value):
        if not number.is_integer():
            _fail(definition, f"The value {value!r} is not an integer.")
    if definition.min is not None and number < definition.min:
        _fail(definition, f"The value {value!r} is smaller than the minimum {definition.min}.")
    if definition.max is not None and number > definition.max:
        _fail(definition, f"The value {value!r} is larger than the maximum {definition.max}.")
    if definition.decimal_places is not None and _count_decimal_places(value) > definition.decimal_places:
        _fail(definition, f"The value {value!r} has more than {definition.decimal_places} decimal places.")


def _validate_choice_index(definition: ParameterDefinition, value: str) -> None:
    index = _to_number(definition, value)
    count = len(definition.choices or ())
    if not index.is_integer() or index < 0 or index > count - 1:
        _fail(definition, f"The value {value!r} is not within the range of the defined choices.")


def _validate_string_list(definition: ParameterDefinition, value: Any) -> None:
    if not isinstance(value, str):
        _fail(definition, f"The value {value!r} is not of type string.")
    if definition.visualization == Visualization.CHECKLIST.value and ',' in value:
        items = value.split(',')
        for item in items:
            if items.count(item) != 1:
                _fail(definition, f"The value {item!r} exists multiple times, but should only exist once.")
            _validate_choice_index(definition, item)
        return
    _validate_choice_index(definition, value)


def _validate_color(definition: ParameterDefinition, value: Any) -> None:
    if isinstance(value, str) or (isinstance(value, Number) and not isinstance(value, bool)):
        return
    if isinstance(value, (list, tuple)) and len(value) >= 3 and all(
        isinstance(v, Number) and not isinstance(v, bool) for v in value[:3]
    ):
        return
    _fail(definition, f"The value {value!r} is not of type color.")


def validate_parameter_value(definition: ParameterDefinition, value: Any) -> bool:
    """Validate value against the definition.

    Returns:
        True if the value is valid.

    Raises:
        ValidationError: describing why the value is invalid.
    """
    ptype = definition.type
    if ptype == ParameterType.BOOL.value:
        if isinstance(value, str):
            if value not in ('true', 'false'):
                _fail(definition, f"The value {value!r} is a string that is neither true or false.")
        elif not isinstance(value, bool):
            _fail(definition, f"The value {value!r} is not of type boolean.")
    elif ptype == ParameterType.COLOR.value:
        _validate_color(definition, value)
    elif ptype == ParameterType.FILE.value:
        if not isinstance(value, (str, bytes)):
            _fail(definition, f"The value {value!r} is not of type file.")
    elif ptype in _NUMERIC_TYPES:
        _validate_number(definition, value)
    elif ptype == ParameterType.STRINGLIST.value:
        _validate_string_list(definition, value)
    elif not isinstance(value, str):
        _fail(definition, f"The value {value!r} is not of type string.")
    return True


def make_validator(definition: ParameterDefinition) -> Validator:
    """Create an ``is_valid(value, raise_error=False)`` callable for a definition."""

    def is_valid(value: Any, raise_error: bool = False) -> bool:
        try:
            return validate_parameter_value(definition, value)
        except ValidationError:
            if raise_error:
                raise
            return False

    return is_valid
