"""Converting raw argument text into typed flag values.

Primitive types are converted synchronously. Custom converters and
validators may return awaitables, which :func:`coerce` and
:func:`run_validator` await. :func:`coerce_sync` is available for
callers that can't suspend.
"""

import re
import json
import math
import inspect

from switchyard.errors import (ArgumentParseError,
                               InvalidEnumValue,
                               TypeCoercionFailure,
                               ValidationFailure)
from switchyard.flags import FlagType
from switchyard.utils import parse_sv_line, get_arg_count


TRUE_STRINGS = frozenset(['true', 'yes', '1'])

# ASCII digits only, no underscores, no surrounding whitespace
_NUMBER_RE = re.compile(r"^[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)([eE][+-]?[0-9]+)?\Z")


def to_boolean(text):
    return text.lower() in TRUE_STRINGS


def to_number(text):
    "Strict numeric parse. ints stay ints, no NaN or infinity."
    match = _NUMBER_RE.match(text)
    if not match:
        raise ValueError('expected a number, not: %r' % text)
    if '.' not in text and not match.group(3):
        return int(text)
    ret = float(text)
    if math.isnan(ret) or math.isinf(ret):
        raise ValueError('expected a finite number, not: %r' % text)
    return ret


def to_string(text):
    return text


def to_array(text):
    """JSON arrays (``'["a", 1]'``) are decoded, anything else is read
    as comma-separated values, with CSV-style quoting.
    """
    if text.lstrip().startswith('['):
        ret = json.loads(text)
        if not isinstance(ret, list):
            raise ValueError('expected JSON array, not: %r' % text)
        return ret
    if not text:
        return []
    return parse_sv_line(text)


def to_object(text):
    ret = json.loads(text)
    if not isinstance(ret, dict):
        raise ValueError('expected JSON object, not: %r' % text)
    return ret


PRIMITIVE_CONVERTERS = {'string': to_string,
                        'number': to_number,
                        'boolean': to_boolean,
                        'array': to_array,
                        'object': to_object}


def _validate_schema(flag, raw):
    schema = flag.type.value
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError as ve:
            raise TypeCoercionFailure.from_parse(flag, raw, ve)
    else:
        data = raw
    validate = getattr(schema, 'model_validate', None)
    if validate is None:
        validate = schema.validate_python
    try:
        return validate(data)
    except Exception as e:
        raise ValidationFailure.from_parse(flag, raw, reason=str(e))


def _coerce(raw, flag):
    ftype = flag.type
    if ftype.kind == FlagType.PRIMITIVE:
        try:
            return PRIMITIVE_CONVERTERS[ftype.value](raw)
        except ValueError as ve:
            raise TypeCoercionFailure.from_parse(flag, raw, ve)
    elif ftype.kind == FlagType.SCHEMA:
        return _validate_schema(flag, raw)
    try:
        return ftype.value(raw)
    except ArgumentParseError:
        raise
    except Exception as e:
        raise TypeCoercionFailure.from_parse(flag, raw, e)


async def coerce(raw, flag):
    """Convert the argument text *raw* into a value for *flag*. Custom
    converters returning awaitables are awaited. Raises
    TypeCoercionFailure, or ValidationFailure for schema types.
    """
    ret = _coerce(raw, flag)
    if inspect.isawaitable(ret):
        try:
            ret = await ret
        except ArgumentParseError:
            raise
        except Exception as e:
            raise TypeCoercionFailure.from_parse(flag, raw, e)
    return ret


def coerce_sync(raw, flag):
    "Same as :func:`coerce`, but raises TypeError for async converters."
    ret = _coerce(raw, flag)
    if inspect.isawaitable(ret):
        if inspect.iscoroutine(ret):
            ret.close()
        raise TypeError('flag %r has an asynchronous converter, use coerce()'
                        ' instead of coerce_sync()' % flag.name)
    return ret


def check_enum(flag, value):
    "Raises InvalidEnumValue if *flag* has an enum and *value* is not in it."
    if flag.enum is None:
        return
    if value not in flag.enum:
        raise InvalidEnumValue.from_parse(flag, value)
    return


async def run_validator(flag, value, parsed):
    """Run *flag*'s custom validator, if any, on *value*. Validators
    taking two arguments also get the parsed value map. True or None
    passes, False fails, and a string fails with that string as the
    reason. Exceptions become ValidationFailures.
    """
    validate = flag.validate
    if validate is None:
        return
    try:
        if get_arg_count(validate) >= 2:
            ret = validate(value, parsed)
        else:
            ret = validate(value)
        if inspect.isawaitable(ret):
            ret = await ret
    except ArgumentParseError:
        raise
    except Exception as e:
        raise ValidationFailure.from_parse(flag, value, reason=str(e) or repr(e))

    if ret is True or ret is None:
        return
    if isinstance(ret, str):
        raise ValidationFailure.from_parse(flag, value, reason=ret)
    if not ret:
        raise ValidationFailure.from_parse(flag, value)
    return
