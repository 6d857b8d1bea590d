import re
import asyncio
import inspect

from boltons.iterutils import unique


# keep it just to subset of valid ASCII identifiers for now
VALID_NAME_RE = re.compile(r"^[A-Za-z][-_A-Za-z0-9]*\Z")

_NEGATIVE_NUMBER_RE = re.compile(r"^-(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?\Z")


def process_command_name(name):
    """Validate a Command's name, generally on construction. Only
    letters, numbers, '-', and/or '_'. Must begin with a letter, and
    no trailing underscores or dashes.

    Unlike flags, command names are matched exactly against argv, so
    the name is returned as-is.
    """
    if not name or not isinstance(name, str):
        raise ValueError('expected non-zero length string for command name, not: %r' % name)

    if name.endswith('-') or name.endswith('_'):
        raise ValueError('expected command name without trailing dashes'
                         ' or underscores, not: %r' % name)

    if not VALID_NAME_RE.match(name):
        raise ValueError('valid command name must begin with a letter, and'
                         ' consist only of letters, digits, underscores, and'
                         ' dashes, not: %r' % name)
    return name


def process_flag_name(name):
    if not name or not isinstance(name, str):
        raise ValueError('expected non-zero length string for flag name, not: %r' % name)
    if name.startswith('-'):
        raise ValueError('expected flag name, not option string: %r'
                         ' (pass option strings via options=...)' % name)
    if any(c.isspace() for c in name):
        raise ValueError('flag names must not contain whitespace: %r' % name)
    return name


def process_option(option):
    "Validate one option string, like ``-v`` or ``--verbose``."
    if not option or not isinstance(option, str):
        raise ValueError('expected non-zero length string for option, not: %r' % option)
    if not option.startswith('-') or option.strip('-') == '':
        raise ValueError('options must start with a dash and contain'
                         ' at least one other character, not: %r' % option)
    if '=' in option or any(c.isspace() for c in option):
        raise ValueError('options must not contain "=" or whitespace: %r' % option)
    return option


def identifier_to_flag(identifier):
    """
    Turn an identifier back into its flag format (e.g., "Flag" -> --flag).
    """
    if identifier.startswith('-'):
        raise ValueError('expected identifier, not flag name: %r' % identifier)
    ret = identifier.lower().replace('_', '-')
    return '--' + ret


def looks_like_option(arg):
    """Whether *arg* should be read as an option rather than a
    value. Negative numbers (``-3``, ``-0.5``) are values.
    """
    if not arg or len(arg) < 2 or arg[0] != '-':
        return False
    return not _NEGATIVE_NUMBER_RE.match(arg)


def parse_sv_line(line, sep=','):
    """Parse a single line of values, separated by the delimiter
    *sep*. Supports quoting.

    """
    from csv import reader, Dialect, QUOTE_MINIMAL

    class _switchyard_dialect(Dialect):
        delimiter = sep
        escapechar = '\\'
        quotechar = '"'
        doublequote = True
        skipinitialspace = False
        lineterminator = '\n'
        quoting = QUOTE_MINIMAL

    parsed = list(reader([line], dialect=_switchyard_dialect))
    return parsed[0]


def get_type_desc(func):
    "Kind of a hacky way to improve message readability around argument types"
    try:
        # return the type name if it looks like a type
        return func.__name__
    except AttributeError:
        pass
    # if all else fails
    return repr(func)


def get_arg_count(func, max_count=2):
    """Number of required positional arguments *func* accepts, up to
    *max_count*. Parameters with defaults are not counted. Callables
    with ``*args`` get *max_count*. Callables that can't be
    introspected (some builtins) are assumed to take one.
    """
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return 1
    count = 0
    for param in sig.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return max_count
        if param.default is not param.empty:
            continue
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            count += 1
    return min(count, max_count)


def run_sync(coro):
    """Run *coro* to completion on a new event loop. Raises
    RuntimeError if called from within a running loop, where the
    coroutine should be awaited instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    coro.close()
    raise RuntimeError('cannot block on %r from inside a running event loop,'
                       ' await it instead' % coro)


def unwrap_text(text):
    "Joins the lines of each paragraph of *text*, one paragraph per line."
    grafs = [[]]
    for line in text.splitlines():
        line = line.strip()
        if line:
            grafs[-1].append(line)
        elif grafs[-1]:
            grafs.append([])
    return '\n'.join([' '.join(graf) for graf in grafs if graf])


def docstring_to_doc(func):
    "First paragraph of a callable's docstring, unwrapped."
    if func is None:
        return ''
    doc = getattr(func, '__doc__', None)
    if not doc:
        return ''

    return unwrap_text(doc).partition('\n')[0]


def format_nonexp_repr(obj, req_names=None, opt_names=None, opt_key=None):
    """A repr in the style of Python's default, for objects whose
    state doesn't round-trip, e.g., ``<Flag name='abc'>``. Attributes
    in *opt_names* are left out when *opt_key* (default: is None) is
    true of their value.
    """
    if opt_key is None:
        opt_key = lambda v: v is None
    opt_names = opt_names or []
    labels = []
    for name in unique((req_names or []) + opt_names):
        val = getattr(obj, name, None)
        if name in opt_names and opt_key(val):
            continue
        labels.append('%s=%r' % (name, val))
    return '<%s %s>' % (obj.__class__.__name__, ' '.join(labels or ['id=%s' % id(obj)]))
