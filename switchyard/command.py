import sys
import inspect
import logging
from collections import OrderedDict

from boltons.strutils import camel2under

from switchyard.errors import ArgumentParseError, HandlerExecutionFailure
from switchyard.helpers import HelpHandler
from switchyard.parser import Parser, HELP_FLAG
from switchyard.plugins import PluginRegistry, get_plugin_name
from switchyard.utils import (docstring_to_doc,
                              get_arg_count,
                              run_sync,
                              format_nonexp_repr)


logger = logging.getLogger(__name__)


def _get_default_name(func):
    from functools import partial
    if isinstance(func, partial):
        func = func.func  # just one level of partial for now
    try:
        return func.__name__  # most functions hit this
    except AttributeError:
        pass
    return camel2under(func.__class__.__name__).lower()  # callable instances, etc.


def default_print_error(msg):
    return sys.stderr.write(msg + '\n')


DEFAULT_HELP_HANDLER = HelpHandler()


class HandlerContext(object):
    """What a handler function receives when its command is run.

    Args:
       args (OrderedDict): The command's parsed flag values.
       parent_args (OrderedDict): Default and environment values for
          the flags of the commands above this one, merged root first.
          Only inherited flags also appear in *args*.
       command_chain (tuple): The subcommand names matched.
       system_args (dict): Values of system flags, like ``--s-debug``.
       command (Parser): The command being run.
       parent (Parser): The command's parent, if any.
       parse_result (ParseResult): The full parse result.
    """
    def __init__(self, args, parent_args, command_chain, system_args,
                 command, parent=None, parse_result=None):
        self.args = args
        self.parent_args = parent_args
        self.command_chain = tuple(command_chain)
        self.system_args = system_args
        self.command = command
        self.parent = parent
        self.parse_result = parse_result

    def __repr__(self):
        return format_nonexp_repr(self, ['command_chain', 'args'])


class RunResult(object):
    """The outcome of :meth:`Command.run`, whether or not the caller
    chooses to exit the process with it.

    Args:
       kind (str): One of ``'success'``, ``'error'``, or ``'help'``.
       exit_code (int): 0 for success and help, 1 for errors.
       message (str): The error message or help text, if any.
       data: The handler's return value, or the parsed flags if the
          command has no handler.
       command_chain (tuple): The subcommand names matched.
       error (ArgumentParseError): The error, for the error kind.
    """
    SUCCESS, ERROR, HELP = 'success', 'error', 'help'

    def __init__(self, kind, exit_code=0, message=None, data=None,
                 command_chain=(), error=None):
        self.kind = kind
        self.exit_code = exit_code
        self.message = message
        self.data = data
        self.command_chain = tuple(command_chain)
        self.error = error

    @property
    def success(self):
        return self.kind != self.ERROR

    def to_dict(self):
        return {'success': self.success,
                'exit_code': self.exit_code,
                'message': self.message,
                'kind': self.kind}

    def __repr__(self):
        return format_nonexp_repr(self, ['kind', 'exit_code'], ['message'])


class Command(Parser):
    def __init__(self, func, name=None, doc=None, **kwargs):
        """The central type in the switchyard framework. Instantiate a
        Command, populate it with flags and subcommands, and then call
        command.run() to execute your CLI.

        Note that only the first three constructor arguments are
        positional, the rest are keyword-only.

        Args:
           func (callable): The handler called when this command is
              run with an argv that contains no subcommands. It
              receives a :class:`HandlerContext`, and may be async. Pass
              None for a command which only returns its parsed flags.
           name (str): The name of this command, used when this
              command is included as a subcommand. (Defaults to name
              of function)
           doc (str): A description or message that appears in various
               help outputs. (Defaults to the first paragraph of the
               function's docstring)
           flags (list): A list of Flag instances or flag definition
              dicts to initialize the Command with. Flags can always
              be added later with the .add() method.
           inherit: Which ancestor flags this command receives when
              added as a subcommand. See :class:`~switchyard.Parser`.
           throw_for_duplicate_flags (bool): Raise on duplicate flag
              names and options instead of warning. Defaults to False.
           help: Pass False to disable the automatically added
              -h/--help flag. Defaults to True. Also accepts a
              HelpHandler instance, which subcommands without their
              own HelpHandler also use.
           handle_errors (bool): Defaults to True, meaning parse and
              handler errors are printed and returned as error
              RunResults. Pass False to have them raised instead.
           print_error (callable): The function that prints error
              messages when *handle_errors* is on. Defaults to writing
              to stderr. Pass False to print nothing.
           plugins (PluginRegistry): Plugins to install on this
              command. A list of plugins is also accepted.
           environ (dict): Mapping consulted for flag environment
              variables. Defaults to ``os.environ``.

        """
        if func is not None and not callable(func):
            raise TypeError('expected callable or None for func, not: %r' % func)
        if name is None:
            if func is None:
                raise ValueError('expected name for command without a handler function')
            name = _get_default_name(func)

        if doc is None:
            doc = docstring_to_doc(func) if func is not None else None

        # help=True defers to the running command's handler, see run_async()
        help = kwargs.pop('help', True)
        if help is not True and help and not isinstance(help, HelpHandler):
            raise TypeError('expected bool or HelpHandler instance for help,'
                            ' not: %r' % help)
        self.help_handler = help if isinstance(help, HelpHandler) else None

        super(Command, self).__init__(name, doc,
                                      flags=kwargs.pop('flags', None),
                                      inherit=kwargs.pop('inherit', None),
                                      throw_for_duplicate_flags=kwargs.pop('throw_for_duplicate_flags', False),
                                      help=HELP_FLAG if help else False,
                                      environ=kwargs.pop('environ', None))

        self.handle_errors = kwargs.pop('handle_errors', True)

        print_error = kwargs.pop('print_error', True)
        if print_error is None or print_error is True:
            print_error = default_print_error
        elif print_error and not callable(print_error):
            raise TypeError('expected callable for print_error, not %r'
                            % print_error)
        self.print_error = print_error

        self._func = func
        self._plugin_map = OrderedDict()
        plugins = kwargs.pop('plugins', None)
        if plugins is not None and not isinstance(plugins, PluginRegistry):
            plugins = PluginRegistry(plugins)
        self.plugins = plugins

        if kwargs:
            raise TypeError('unexpected keyword arguments: %r' % sorted(kwargs.keys()))

        for plugin in plugins or ():
            self.use(plugin)
        return

    @property
    def func(self):
        return self._func

    handler = func

    def set_handler(self, func):
        if func is not None and not callable(func):
            raise TypeError('expected callable or None for func, not: %r' % func)
        self._func = func

    def use(self, plugin):
        """Install *plugin* on this command. Each plugin name may only
        be used once per command. Returns the result of the plugin's
        ``install()``.
        """
        name = get_plugin_name(plugin)
        if name in self._plugin_map:
            raise ValueError('plugin %r is already installed on command %r'
                             % (name, self.name))
        self._plugin_map[name] = plugin
        logger.debug('installing plugin %r on command %r', name, self.name)
        return plugin.install(self)

    def get_plugin_names(self):
        return list(self._plugin_map.keys())

    def run(self, argv=None, skip_handlers=False):
        """Parses arguments and dispatches to the appropriate subcommand
        handler, returning a :class:`RunResult`. If there is a parse
        error due to invalid user input, or the handler raises, an
        error is printed and an error RunResult is returned. With
        *handle_errors* off, the error is raised instead. Also handles
        dispatching to the HelpHandler, if configured.

        Never exits the process, see :meth:`Command.main` for that.

        Args:
           argv (list): A sequence of strings representing the
              command-line arguments, not including the program
              name. Defaults to ``sys.argv[1:]``.
           skip_handlers (bool): Parse and validate, but don't call
              the handler. The RunResult's data will be the parsed
              flags.

        """
        return run_sync(self.run_async(argv, skip_handlers=skip_handlers))

    async def run_async(self, argv=None, skip_handlers=False):
        "The coroutine form of :meth:`Command.run`."
        try:
            prs_res = await self.parse_async(argv)
        except ArgumentParseError as ape:
            return self._handle_error(ape)

        cmd = prs_res.command
        chain = prs_res.command_chain
        if prs_res.system_args.get('debug'):
            logger.info('command context: chain=%r command=%r argv=%r'
                        ' system_args=%r', chain, cmd.name,
                        list(prs_res.argv), prs_res.system_args)

        if prs_res.help_requested:
            help_handler = (getattr(cmd, 'help_handler', None)
                            or self.help_handler or DEFAULT_HELP_HANDLER)
            help_text = help_handler.func(cmd, command_chain=chain, program_name=self.name)
            return RunResult(RunResult.HELP, 0, message=help_text,
                             command_chain=chain)

        ctx = HandlerContext(args=prs_res.flags,
                             parent_args=prs_res.parent_flags,
                             command_chain=chain,
                             system_args=prs_res.system_args,
                             command=cmd,
                             parent=cmd.parent,
                             parse_result=prs_res)

        func = getattr(cmd, 'func', None)
        if func is None or skip_handlers:
            return RunResult(RunResult.SUCCESS, 0, data=prs_res.flags,
                             command_chain=chain)

        logger.debug('dispatching command chain %r to %r', chain, func)
        try:
            data = func(ctx) if get_arg_count(func, 1) else func()
            if inspect.isawaitable(data):
                data = await data
        except Exception as e:
            hef = HandlerExecutionFailure.from_exc(cmd, e)
            hef.parser = cmd
            hef.command_chain = chain
            hef.__cause__ = e
            return self._handle_error(hef)

        return RunResult(RunResult.SUCCESS, 0, data=data, command_chain=chain)

    def _handle_error(self, ape):
        if not self.handle_errors:
            raise ape

        msg = 'error: ' + self.name
        if ape.command_chain:
            msg += ' ' + ' '.join(ape.command_chain)
        if ape.message:
            msg += ': ' + ape.message
        if self.print_error:
            self.print_error(msg)
        return RunResult(RunResult.ERROR, 1, message=ape.message,
                         command_chain=ape.command_chain, error=ape)

    def main(self, argv=None):
        """Run the command and exit the process with the resulting exit
        code. Suitable for a console script entry point.
        """
        res = self.run(argv)
        sys.exit(res.exit_code)
