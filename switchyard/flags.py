import logging
from collections import OrderedDict
from collections.abc import Mapping

from boltons.iterutils import unique
from boltons.typeutils import make_sentinel

from switchyard.errors import DuplicateFlagDefinition, OptionCollision
from switchyard.utils import (process_flag_name,
                              process_option,
                              identifier_to_flag,
                              format_nonexp_repr)


logger = logging.getLogger(__name__)

MISSING = make_sentinel('MISSING', var_name='MISSING')

PRIMITIVE_TYPES = ('string', 'number', 'boolean', 'array', 'object')

# builtin constructors stand in for the matching primitive tag
_BUILTIN_TYPE_MAP = {str: 'string',
                     float: 'number',
                     bool: 'boolean',
                     list: 'array',
                     tuple: 'array',
                     dict: 'object'}


class FlagType(object):
    """The normalized form of a flag's *type*. One of three kinds:

      * ``primitive``: *value* is one of the tags in ``PRIMITIVE_TYPES``
      * ``custom``: *value* is a one-argument conversion callable,
        which may return an awaitable
      * ``schema``: *value* is a structured validator exposing
        ``model_validate()`` (e.g., a pydantic model) or
        ``validate_python()`` (e.g., a pydantic TypeAdapter)

    Use :meth:`FlagType.from_spec()` to build one from the
    user-facing forms.
    """
    PRIMITIVE, CUSTOM, SCHEMA = 'primitive', 'custom', 'schema'

    def __init__(self, kind, value):
        if kind not in (self.PRIMITIVE, self.CUSTOM, self.SCHEMA):
            raise ValueError('unknown flag type kind: %r' % kind)
        if kind == self.PRIMITIVE and value not in PRIMITIVE_TYPES:
            raise ValueError('expected one of %r for primitive flag type, not: %r'
                             % (PRIMITIVE_TYPES, value))
        self.kind = kind
        self.value = value

    @classmethod
    def from_spec(cls, spec):
        if isinstance(spec, FlagType):
            return spec
        if spec is None:
            return cls(cls.PRIMITIVE, 'string')
        if isinstance(spec, str):
            return cls(cls.PRIMITIVE, spec.strip().lower())
        try:
            return cls(cls.PRIMITIVE, _BUILTIN_TYPE_MAP[spec])
        except (KeyError, TypeError):
            pass
        # schemas are checked before plain callables, model classes are callable, too
        if is_schema(spec):
            return cls(cls.SCHEMA, spec)
        if callable(spec):
            return cls(cls.CUSTOM, spec)
        raise TypeError('expected primitive type name, builtin type, callable,'
                        ' or schema for flag type, not: %r' % spec)

    @property
    def is_primitive(self):
        return self.kind == self.PRIMITIVE

    @property
    def is_boolean(self):
        return self.kind == self.PRIMITIVE and self.value == 'boolean'

    @property
    def label(self):
        if self.kind == self.PRIMITIVE:
            return self.value
        return getattr(self.value, '__name__', None) or self.value.__class__.__name__

    def __eq__(self, other):
        return (isinstance(other, FlagType)
                and self.kind == other.kind and self.value == other.value)

    def __ne__(self, other):
        return not self == other

    def __hash__(self):
        return hash((self.kind, self.label))

    def __repr__(self):
        return '<%s %s %r>' % (self.__class__.__name__, self.kind, self.label)


def is_schema(obj):
    return (callable(getattr(obj, 'model_validate', None))
            or callable(getattr(obj, 'validate_python', None)))


class Flag(object):
    """The Flag object represents all there is to know about a named,
    typed input that can be parsed from argv and handed to a Command's
    handler.

    Args:
       name (str): The key under which the flag's value is stored in
          the parse result. Must be unique per command.
       options (list): Option strings accepted on the command line,
          e.g., ``['-v', '--verbose']``. Defaults to a single long
          option derived from the name (``dry_run`` -> ``--dry-run``).
       type: One of ``'string'``, ``'number'``, ``'boolean'``,
          ``'array'``, or ``'object'`` (or the builtins ``str``,
          ``float``, ``bool``, ``list``, ``dict``), a one-argument
          conversion callable (may be async), or a schema object. See
          :class:`FlagType`. Defaults to ``'string'``.
       default: The value used when the flag is not otherwise
          set. Must be one of *enum*, if *enum* is set.
       mandatory (bool): Pass True to require the flag. Also accepts
          a predicate, called with the map of values parsed so far,
          which returns True when the flag is required. Predicates
          must be synchronous.
       flag_only (bool): The flag never consumes an argument; its
          presence sets True.
       allow_multiple (bool): Repeated occurrences accumulate into a
          list. The value of such a flag is always a list.
       allow_ligature (bool): Accept ``--flag=value``. Defaults to True.
       enum (list): The allowed values, checked after type coercion.
       validate (callable): Called with the value (and optionally the
          parsed value map) after all other checks. Return True or
          None to pass, False or an error string to fail. May be async.
       positional (int): 1-based index of a trailing bare argument
          this flag captures when not passed via its options.
       env (str): Environment variable name (or list of names)
          consulted when the flag is not passed on the command line.
       doc (str): A summary of the flag's behavior, used in help.
       dynamic_register (callable): Called before parsing, when the
          flag is present on the command line, with a
          :class:`~switchyard.parser.DynamicRegisterContext`. It may
          register more flags for the same parse through
          ``ctx.register_flags()``, or return a list of them. May be
          async.

    ``required`` and ``default_value`` are accepted as aliases for
    *mandatory* and *default*.
    """
    def __init__(self, name, options=None, type='string', default=MISSING,
                 mandatory=False, flag_only=False, allow_multiple=False,
                 allow_ligature=True, enum=None, validate=None,
                 positional=None, env=None, doc=None, dynamic_register=None,
                 **kw):
        default_value = kw.pop('default_value', MISSING)
        required = kw.pop('required', MISSING)
        if kw:
            raise TypeError('unexpected keyword arguments: %r' % sorted(kw.keys()))
        if default is MISSING:
            default = default_value
        if required is not MISSING and not mandatory:
            mandatory = required

        self.name = process_flag_name(name)
        self.doc = doc

        if options is None:
            options = [identifier_to_flag(self.name)]
        elif isinstance(options, str):
            options = [options]
        options = unique([process_option(opt) for opt in options])
        if not options:
            raise ValueError('expected at least one option string for flag %r' % self.name)
        self.options = tuple(options)

        self.type = FlagType.from_spec(type)

        if not isinstance(mandatory, bool) and not callable(mandatory):
            raise TypeError('expected bool or predicate callable for mandatory,'
                            ' not: %r' % (mandatory,))
        self.mandatory = mandatory
        self.flag_only = bool(flag_only)
        self.allow_multiple = bool(allow_multiple)
        self.allow_ligature = bool(allow_ligature)

        if enum is not None:
            enum = tuple(enum)
            if not enum:
                raise ValueError('expected at least one allowed value in enum'
                                 ' for flag %r' % self.name)
        self.enum = enum

        if validate is not None and not callable(validate):
            raise TypeError('expected callable for validate, not: %r' % (validate,))
        self.validate = validate

        if dynamic_register is not None and not callable(dynamic_register):
            raise TypeError('expected callable for dynamic_register, not: %r'
                            % (dynamic_register,))
        self.dynamic_register = dynamic_register

        if positional is not None:
            if isinstance(positional, bool) or not isinstance(positional, int) or positional < 1:
                raise ValueError('expected positive integer for positional,'
                                 ' not: %r' % (positional,))
            if self.flag_only:
                raise ValueError('flag-only flag %r cannot capture a positional'
                                 ' argument' % self.name)
        self.positional = positional

        if env is None:
            env = ()
        elif isinstance(env, str):
            env = (env,)
        self.env = tuple(env)

        self.default = default
        self._check_default()

    @classmethod
    def from_def(cls, flag_def):
        """Create a Flag from a mapping-style definition. Keys are the
        same as the constructor's arguments. The camelCase spellings
        (``defaultValue``, ``flagOnly``, ``allowMultiple``,
        ``allowLigature``, ``dynamicRegister``) and ``description`` are
        also accepted.
        """
        kw = {}
        for key, val in flag_def.items():
            key = _DEF_KEY_MAP.get(key, key)
            if key in kw:
                raise ValueError('conflicting definitions for %r in flag'
                                 ' definition: %r' % (key, flag_def))
            kw[key] = val
        try:
            return cls(**kw)
        except TypeError as te:
            raise ValueError('expected Flag parameters, not: %r (got %r)' % (flag_def, te))

    def _check_default(self):
        if self.default is MISSING or self.enum is None:
            return
        defaults = self.default if self.allow_multiple and isinstance(self.default, (list, tuple)) else [self.default]
        for val in defaults:
            if val not in self.enum:
                raise ValueError('default value %r for flag %r is not one of the'
                                 ' allowed values: %r' % (val, self.name, self.enum))
        return

    @property
    def has_default(self):
        return self.default is not MISSING

    def get_default(self):
        """The value this flag has before anything is parsed. Always a
        (new) list for flags with *allow_multiple*, and MISSING for
        other flags without a default.
        """
        default = self.default
        if not self.allow_multiple:
            return default
        if default is MISSING or default is None:
            return []
        if isinstance(default, (list, tuple)):
            return list(default)
        return [default]

    def is_mandatory(self, parsed):
        mandatory = self.mandatory
        if callable(mandatory):
            mandatory = mandatory(parsed)
            if hasattr(mandatory, '__await__'):
                # close coroutines so they don't warn about never being awaited
                getattr(mandatory, 'close', lambda: None)()
                raise TypeError('mandatory predicate for flag %r returned an'
                                ' awaitable, expected a synchronous predicate'
                                % self.name)
        return bool(mandatory)

    def __repr__(self):
        return format_nonexp_repr(self, ['name', 'options', 'type'],
                                  ['enum', 'positional'])


_DEF_KEY_MAP = {'defaultValue': 'default',
                'default_value': 'default',
                'flagOnly': 'flag_only',
                'allowMultiple': 'allow_multiple',
                'allowLigature': 'allow_ligature',
                'description': 'doc',
                'dynamicRegister': 'dynamic_register',
                'required': 'mandatory'}


def _ensure_flag(*a, **kw):
    if a and isinstance(a[0], Flag):
        if len(a) > 1 or kw:
            raise TypeError('unexpected arguments alongside Flag instance: %r, %r' % (a[1:], kw))
        return a[0]
    if a and isinstance(a[0], Mapping):
        if len(a) > 1 or kw:
            raise TypeError('unexpected arguments alongside flag definition: %r, %r' % (a[1:], kw))
        return Flag.from_def(a[0])
    try:
        return Flag(*a, **kw)
    except TypeError as te:
        raise ValueError('expected Flag, flag definition mapping, or Flag'
                         ' parameters, not: %r, %r (got %r)' % (a, kw, te))


class FlagRegistry(object):
    """Stores the flags of one command, in insertion order, along with
    a reverse index from option string to flag name.

    Args:
       flags (list): Flags (or flag definitions) to start with.
       throw_for_duplicates (bool): Pass True to raise
          DuplicateFlagDefinition and OptionCollision errors. By
          default, duplicates are logged as warnings and skipped.
    """
    def __init__(self, flags=None, throw_for_duplicates=False):
        self.throw_for_duplicates = throw_for_duplicates
        self._flag_map = OrderedDict()
        self._option_map = {}
        self._inherited_names = set()
        self._collisions = []
        for flag in flags or ():
            self.add(flag)

    def add(self, *a, **kw):
        """Add a Flag. Accepts a Flag instance, a flag definition
        mapping, or the arguments to the Flag constructor.

        Returns the Flag added, or None if it was skipped as a
        duplicate.
        """
        flag = _ensure_flag(*a, **kw)
        flag_name = flag.name

        if flag_name in self._flag_map:
            if self.throw_for_duplicates:
                raise DuplicateFlagDefinition.from_flags(flag_name)
            logger.warning('skipping duplicate definition for flag name: %r', flag_name)
            return None

        # first check there are no conflicts...
        conflicts = []
        for opt in flag.options:
            existing_name = self._option_map.get(opt)
            if existing_name is not None and existing_name != flag_name:
                if self.throw_for_duplicates:
                    raise OptionCollision.from_flags(opt, existing_name, flag_name)
                conflicts.append((opt, existing_name))

        # ... then we add the flag
        self._flag_map[flag_name] = flag
        for opt in flag.options:
            self._option_map.setdefault(opt, flag_name)
        for opt, existing_name in conflicts:
            logger.warning('option %r for flag %r is already used by flag %r,'
                           ' keeping the existing flag', opt, flag_name, existing_name)
            self._collisions.append((opt, existing_name, flag_name))
        return flag

    def inherit(self, flag):
        """Copy in a flag from an ancestor command. Local flags always
        win: a flag whose name is already present is skipped, and
        options already claimed here stay with their current
        flag. Never raises or warns on overlap.

        Returns True if the flag was added.
        """
        if flag.name in self._flag_map:
            return False
        self._flag_map[flag.name] = flag
        self._inherited_names.add(flag.name)
        for opt in flag.options:
            self._option_map.setdefault(opt, flag.name)
        return True

    def remove(self, name):
        "Remove a flag and its option index entries. Returns True if found."
        flag = self._flag_map.pop(name, None)
        if flag is None:
            return False
        self._inherited_names.discard(name)
        for opt in flag.options:
            if self._option_map.get(opt) == name:
                del self._option_map[opt]
        return True

    def get(self, name, default=None):
        return self._flag_map.get(name, default)

    def has(self, name):
        return name in self._flag_map

    __contains__ = has

    def __len__(self):
        return len(self._flag_map)

    def __iter__(self):
        return iter(list(self._flag_map.values()))

    def get_flags(self):
        return list(self._flag_map.values())

    def get_names(self):
        return list(self._flag_map.keys())

    def find_by_option(self, option):
        name = self._option_map.get(option)
        if name is None:
            return None
        return self._flag_map[name]

    def is_inherited(self, name):
        return name in self._inherited_names

    def get_collisions(self):
        """List of ``(option, kept_flag_name, skipped_flag_name)``
        tuples for option collisions downgraded to warnings."""
        return list(self._collisions)

    def __repr__(self):
        return '<%s flags=%r>' % (self.__class__.__name__, self.get_names())
