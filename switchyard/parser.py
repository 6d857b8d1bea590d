import os
import sys
import logging
import inspect
from collections import OrderedDict
from collections.abc import Mapping
from types import MappingProxyType

from switchyard.coerce import coerce, check_enum, run_validator
from switchyard.errors import (ArgumentParseError,
                               UnknownCommand,
                               MissingMandatoryFlags)
from switchyard.flags import Flag, FlagRegistry, MISSING
from switchyard.inherit import (normalize_inherit_mode,
                                apply_inheritance,
                                iter_ancestors)
from switchyard.routing import resolve_command_chain
from switchyard.system import strip_system_flags
from switchyard.utils import (process_command_name,
                              looks_like_option,
                              run_sync,
                              format_nonexp_repr)


logger = logging.getLogger(__name__)

HELP_FLAG = Flag('help', options=['-h', '--help'], type='boolean',
                 flag_only=True, doc='show this help message and exit')


class ParseResult(object):
    """The result of :meth:`Parser.parse`. Each attribute corresponds
    to one part of what the command line contained.

    Args:
       flags (OrderedDict): Mapping of flag names to coerced values,
          for the command that parsed the arguments. Only flags which
          were passed, captured positionally, read from the
          environment, or have a default are present. Flags with
          *allow_multiple* are always present, as lists.
       command (Parser): The command that parsed the flags, the last
          in the chain.
       command_chain (tuple): The subcommand names matched.
       parent_flags (OrderedDict): Default and environment values of
          the commands above *command*, merged root first.
       system_args (dict): Values of system flags, like ``--s-debug``.
       argv (tuple): The arguments that were parsed.
       help_requested (bool): Whether the help flag was passed. When
          True, *flags* is not validated.
    """
    def __init__(self, flags, command, command_chain=(), parent_flags=None,
                 system_args=None, argv=(), help_requested=False):
        self.flags = OrderedDict(flags)
        self.command = command
        self.command_chain = tuple(command_chain)
        self.parent_flags = OrderedDict(parent_flags or ())
        self.system_args = dict(system_args or {})
        self.argv = tuple(argv)
        self.help_requested = help_requested

    def to_dict(self):
        return {'flags': dict(self.flags),
                'command_chain': list(self.command_chain),
                'parent_flags': dict(self.parent_flags),
                'system_args': dict(self.system_args),
                'help_requested': self.help_requested}

    def __repr__(self):
        return format_nonexp_repr(self, ['command_chain', 'flags'],
                                  ['help_requested'], opt_key=lambda v: not v)


class DynamicRegisterContext(object):
    """What a flag's *dynamic_register* function is called with.

    Args:
       value: The coerced value of the flag, a list for flags with
          *allow_multiple*.
       args_so_far (dict): Values of every flag with a
          *dynamic_register* found on the command line, by name.
       parser (Parser): The command being parsed.
       args (tuple): The arguments after the command chain.
       for_help (bool): True when the flags are being loaded to
          render help, rather than to parse.
    """
    def __init__(self, value, args_so_far, parser, args, for_help=False):
        self.value = value
        self.args_so_far = dict(args_so_far)
        self.parser = parser
        self.args = tuple(args)
        self.for_help = for_help

    def register_flags(self, flags):
        """Add *flags* (Flag instances or flag definition dicts) to
        the command for this parse. Returns the flags added.
        """
        if isinstance(flags, (Flag, Mapping)):
            flags = [flags]
        return self.parser._register_dynamic_flags(flags)

    def __repr__(self):
        return format_nonexp_repr(self, ['parser', 'value'], ['for_help'],
                                  opt_key=lambda v: not v)


class Parser(object):
    """The Parser lies at the center of switchyard: a tree of named
    commands, each with its own flags, and the logic for turning a
    list of argument strings into validated values for one of them.

    Args:
       name (str): A name used to identify this command. Also the
          argument that selects the command when it is added as a
          subcommand of another.
       doc (str): An optional summary description of the command, used
          to generate help and usage information.
       flags (list): A list of Flag instances or flag definition
          dicts. Optional, as flags can be added with :meth:`~Parser.add()`.
       inherit: Which ancestor flags this command receives when added
          as a subcommand: ``'none'`` (the default),
          ``'direct-parent-only'`` (or True), or ``'all-parents'``.
       throw_for_duplicate_flags (bool): Raise on duplicate flag names
          and option strings, instead of logging a warning and
          skipping. Defaults to False.
       help (bool): Defaults to enabled, pass ``False`` to disable the
          ``-h``/``--help`` flag. Pass a :class:`Flag` instance to use
          a custom help flag.
       environ (dict): The mapping consulted for flags with *env*
          set. Defaults to ``os.environ`` at parse time.

    Once initialized, parsing is performed by calling
    :meth:`Parser.parse()` with ``sys.argv[1:]`` or any other list of
    strings.
    """
    def __init__(self, name, doc=None, flags=None, inherit=None,
                 throw_for_duplicate_flags=False, help=True, environ=None):
        self.name = process_command_name(name)
        self.doc = doc
        self.inherit = normalize_inherit_mode(inherit)
        self.environ = environ
        self.parent = None  # set when added as a subcommand
        self.registry = FlagRegistry(throw_for_duplicates=throw_for_duplicate_flags)
        self._subcmd_map = OrderedDict()
        self._dynamic_names = []  # flags added by dynamic_register functions

        if help is True:
            self.help_flag = HELP_FLAG
        elif isinstance(help, Flag):
            self.help_flag = help
        elif not help:
            self.help_flag = None
        else:
            raise ValueError('expected True, False, or Flag instance for'
                             ' help, not: %r' % help)
        if self.help_flag:
            self.registry.add(self.help_flag)

        for flag in flags or []:
            self.add(flag)
        return

    @property
    def flags(self):
        "A list snapshot of this command's flags, inherited ones included."
        return self.registry.get_flags()

    def get_flags(self):
        return self.registry.get_flags()

    def get_flag(self, name):
        return self.registry.get(name)

    def remove_flag(self, name):
        return self.registry.remove(name)

    @property
    def subcommands(self):
        "A read-only mapping of subcommand name to Parser."
        return MappingProxyType(self._subcmd_map)

    def get_command_path(self):
        "Names of the commands from the root down to this one."
        ret = [self.name] + [prs.name for prs in iter_ancestors(self)]
        return tuple(reversed(ret))

    def add(self, *a, **kw):
        """Add a flag or subparser.

        Unless the first argument is a Parser, Flag, or flag
        definition dict, the arguments are the same as the Flag
        constructor, and will be used to create a new Flag instance
        to be added.

        May raise ValueError if arguments are not recognized as
        Parser, Flag, or Flag parameters. Duplicate definitions are
        logged and skipped, or raised, depending on
        *throw_for_duplicate_flags*.
        """
        if a and isinstance(a[0], Parser):
            return self.add_command(a[0])
        return self.registry.add(*a, **kw)

    def add_command(self, subprs):
        """Attach *subprs* as a subcommand, under its own name, and
        apply its flag inheritance.

        To add a command under a different name, construct another
        command with that name.
        """
        if not isinstance(subprs, Parser):
            raise TypeError('expected Parser or Command instance, not: %r' % subprs)
        if subprs.parent is not None:
            raise ValueError('command %r is already a subcommand of %r'
                             % (subprs.name, subprs.parent.name))
        if subprs is self or any(prs is subprs for prs in iter_ancestors(self)):
            raise ValueError('cannot add command %r as a subcommand of itself'
                             % subprs.name)

        subprs_name = subprs.name
        if subprs_name in self._subcmd_map:
            raise ValueError('conflicting subcommand name: %r' % subprs_name)

        self._subcmd_map[subprs_name] = subprs
        subprs.parent = self
        apply_inheritance(subprs)
        return subprs

    def parse(self, argv):
        """This method takes a list of strings and converts them into a
        validated :class:`ParseResult` according to the flags and
        subcommands configured.

        Args:
           argv (list): A required list of strings, not including the
              program name. Pass ``None`` to use ``sys.argv[1:]``.

        This method may raise ArgumentParseError (or one of its
        subtypes) if the list of strings fails to parse. Use
        :meth:`parse_async` from inside a running event loop.
        """
        return run_sync(self.parse_async(argv))

    async def parse_async(self, argv):
        "The coroutine form of :meth:`Parser.parse`."
        if argv is None:
            argv = sys.argv[1:]
        if isinstance(argv, str):
            raise TypeError('expected sequence of argument strings, not: %r' % argv)
        argv = list(argv)
        environ = self.environ if self.environ is not None else os.environ

        system_args, args = strip_system_flags(argv)
        chain = resolve_command_chain(self, args)
        prs = chain.command

        try:
            if prs._is_help_requested(chain.remaining):
                await prs._load_help_flags(chain.remaining)
                return ParseResult({prs.help_flag.name: True}, prs,
                                   command_chain=chain.names,
                                   system_args=system_args,
                                   argv=argv,
                                   help_requested=True)
            flags = await prs._parse_flags(chain.remaining, environ)
            parent_flags = OrderedDict()
            for parent in chain.parents:
                parent_flags.update(await parent._get_unparsed_values(environ))
        except ArgumentParseError as ape:
            ape.parser = prs
            ape.command_chain = chain.names
            raise

        return ParseResult(flags, prs,
                           command_chain=chain.names,
                           parent_flags=parent_flags,
                           system_args=system_args,
                           argv=argv)

    def _is_help_requested(self, args):
        if not self.help_flag:
            return False
        return any(arg in self.help_flag.options for arg in args)

    def _match_flag(self, arg):
        "Returns a tuple of (flag, ligature_value), flag being None for no match"
        flag = self.registry.find_by_option(arg)
        if flag is not None:
            return flag, None
        if '=' in arg and arg.startswith('-'):
            opt, _, value = arg.partition('=')
            flag = self.registry.find_by_option(opt)
            if flag is not None and flag.allow_ligature and not flag.flag_only:
                return flag, value
        return None, None

    async def _load_help_flags(self, args):
        "Dynamic flags for help output. Failures are logged, not raised."
        try:
            await self._load_dynamic_flags(args, for_help=True)
        except ArgumentParseError as ape:
            logger.warning('could not load dynamic flags for help on %r: %s',
                           self.name, ape.message)
        return

    async def _load_dynamic_flags(self, args, for_help=False):
        """Run the *dynamic_register* function of each flag present in
        *args*, after removing any flags registered by an earlier
        parse. Returns the names of the flags registered.
        """
        self._reset_dynamic_flags()
        loaders = [f for f in self.registry.get_flags() if f.dynamic_register]
        if not loaders:
            return []

        found = OrderedDict()
        for flag in loaders:
            value = await self._scan_value(flag, args)
            if value is not MISSING:
                found[flag.name] = value

        for name, value in found.items():
            flag = self.registry.get(name)
            ctx = DynamicRegisterContext(value, found, self, args, for_help=for_help)
            ret = flag.dynamic_register(ctx)
            if inspect.isawaitable(ret):
                ret = await ret
            if isinstance(ret, (list, tuple)):
                ctx.register_flags(ret)
        if self._dynamic_names:
            logger.debug('command %r registered dynamic flags: %r',
                         self.name, self._dynamic_names)
        return list(self._dynamic_names)

    async def _scan_value(self, flag, args):
        "The value of *flag* in *args*, read ahead of the full parse."
        values = []
        idx = 0
        while idx < len(args):
            matched, value = self._match_flag(args[idx])
            idx += 1
            if matched is not flag:
                continue
            value, idx = await _read_value(flag, value, args, idx)
            if value is not MISSING:
                values.append(value)
        if not values:
            return MISSING
        return values if flag.allow_multiple else values[-1]

    def _register_dynamic_flags(self, flags):
        ret = []
        for flag in flags:
            added = self.registry.add(flag)
            if added is None:
                continue
            self._dynamic_names.append(added.name)
            ret.append(added)
        return ret

    def _reset_dynamic_flags(self):
        for name in self._dynamic_names:
            self.remove_flag(name)
        self._dynamic_names = []
        return

    async def _parse_flags(self, args, environ):
        """Parse this command's arguments, the ones after the command
        chain. In order: dynamic flag registration, options, positional
        arguments, environment fallbacks, enums, mandatory flags, and
        finally validators.
        """
        args = list(args)
        await self._load_dynamic_flags(args)

        registry = self.registry
        flag_map = OrderedDict()
        for flag in registry.get_flags():
            default = flag.get_default()
            if default is not MISSING:
                flag_map[flag.name] = default

        set_names = []  # flag names set from argv or env, in order
        unmatched = []
        idx = 0
        while idx < len(args):
            arg = args[idx]
            idx += 1
            flag, value = self._match_flag(arg)
            if flag is None:
                unmatched.append(arg)
                continue

            value, idx = await _read_value(flag, value, args, idx)
            if value is MISSING:
                got = repr(args[idx]) if idx < len(args) else 'nothing'
                logger.warning('flag %s expects a value but got %s,'
                               ' leaving it unset', arg, got)
                continue
            _store_value(flag_map, set_names, flag, value)

        unmatched = await self._capture_positionals(unmatched, flag_map, set_names)
        if unmatched:
            raise UnknownCommand.from_parse(self, unmatched[0])

        await self._apply_env(flag_map, set_names, environ)

        for name in set_names:
            flag = registry.get(name)
            values = flag_map[name] if flag.allow_multiple else [flag_map[name]]
            for value in values:
                check_enum(flag, value)

        self._check_mandatory(flag_map)

        for name in set_names:
            flag = registry.get(name)
            values = flag_map[name] if flag.allow_multiple else [flag_map[name]]
            for value in values:
                await run_validator(flag, value, flag_map)

        return OrderedDict([(name, flag_map[name]) for name
                            in registry.get_names() if name in flag_map])

    async def _capture_positionals(self, unmatched, flag_map, set_names):
        """Assign bare unmatched arguments to flags with *positional*
        set. Position 1 is the first bare argument. A flag already set
        through its options leaves its argument unconsumed. Returns
        the arguments still unmatched.
        """
        pos_flags = sorted([f for f in self.registry.get_flags() if f.positional],
                           key=lambda f: f.positional)
        if not pos_flags:
            return unmatched
        bare_idxs = [i for i, arg in enumerate(unmatched) if not looks_like_option(arg)]
        consumed = set()
        for flag in pos_flags:
            try:
                arg_idx = bare_idxs[flag.positional - 1]
            except IndexError:
                continue
            if flag.name in set_names or arg_idx in consumed:
                continue
            value = await coerce(unmatched[arg_idx], flag)
            _store_value(flag_map, set_names, flag, value)
            consumed.add(arg_idx)
        return [arg for i, arg in enumerate(unmatched) if i not in consumed]

    async def _apply_env(self, flag_map, set_names, environ):
        for flag in self.registry.get_flags():
            if not flag.env or flag.name in set_names:
                continue
            value = await _get_env_value(flag, environ)
            if value is MISSING:
                continue
            _store_value(flag_map, set_names, flag, value)
        return

    def _check_mandatory(self, flag_map):
        snapshot = dict(flag_map)
        missing = []
        for flag in self.registry.get_flags():
            if not flag.is_mandatory(snapshot):
                continue
            value = flag_map.get(flag.name)
            if value is None or (flag.allow_multiple and not value):
                missing.append(flag)
        if missing:
            raise MissingMandatoryFlags.from_parse(missing)
        return

    async def _get_unparsed_values(self, environ):
        "Values of this command's flags without any arguments parsed."
        flag_map = OrderedDict()
        for flag in self.registry.get_flags():
            value = await _get_env_value(flag, environ) if flag.env else MISSING
            if value is MISSING:
                value = flag.get_default()
            elif flag.allow_multiple:
                value = [value]
            if value is not MISSING:
                flag_map[flag.name] = value
        return flag_map

    def __repr__(self):
        return format_nonexp_repr(self, ['name', 'inherit'], ['doc'])


def _store_value(flag_map, set_names, flag, value):
    name = flag.name
    if flag.allow_multiple:
        if name not in set_names:
            # the first passed value replaces any default
            flag_map[name] = []
        flag_map[name].append(value)
    else:
        flag_map[name] = value
    if name not in set_names:
        set_names.append(name)
    return


async def _get_env_value(flag, environ):
    """The coerced value of the first of *flag*'s environment variables
    that is set, or MISSING. Values that fail to convert are logged
    and ignored.
    """
    for var_name in flag.env:
        raw = environ.get(var_name)
        if raw is None:
            continue
        try:
            return await coerce(raw, flag)
        except ArgumentParseError as ape:
            logger.warning('ignoring environment variable %s for flag %s: %s',
                           var_name, flag.name, ape.message)
    return MISSING


async def _read_value(flag, ligature_value, args, idx):
    """The value for *flag*, matched just before ``args[idx]``, and the
    index after whatever was consumed. The value is MISSING when the
    flag needed an argument and none was there.
    """
    if flag.flag_only:
        return True, idx
    if ligature_value is not None:
        return await coerce(ligature_value, flag), idx
    if idx < len(args) and not looks_like_option(args[idx]):
        return await coerce(args[idx], flag), idx + 1
    if flag.type.is_boolean:
        return True, idx
    return MISSING, idx
