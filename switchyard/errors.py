from difflib import get_close_matches

from switchyard.utils import get_type_desc


class SwitchyardException(Exception):
    """The basest base exception switchyard has. Rarely directly
    instantiated if ever, but useful for catching.
    """
    pass


class ArgumentParseError(SwitchyardException):
    """A base exception used for all errors raised during argument
    parsing and dispatch.

    Many subtypes have a ".from_parse()" classmethod that creates an
    exception message from the values available during the parse
    process. *command_chain* is the tuple of subcommand names matched
    before the failure, filled in by the Parser as the error
    propagates.
    """
    kind = 'ArgumentParseError'

    def __init__(self, msg='', command_chain=()):
        super(ArgumentParseError, self).__init__(msg)
        self.command_chain = tuple(command_chain)
        self.parser = None

    @property
    def message(self):
        try:
            return self.args[0]
        except IndexError:
            return ''


class UnknownCommand(ArgumentParseError):
    """Raised when a token matched neither a flag nor a subcommand of
    the command handling it. Raised for unknown top-level and nested
    subcommands alike.
    """
    kind = 'UnknownCommand'

    @classmethod
    def from_parse(cls, prs, arg):
        choices = list(prs.subcommands.keys())
        if arg.startswith('-'):
            choices = [opt for flag in prs.get_flags() for opt in flag.options]
        msg = 'unknown command or flag: %r' % arg
        suggestions = get_close_matches(arg, choices, 3)
        if suggestions:
            msg += ' (did you mean %s?)' % ' or '.join([repr(s) for s in suggestions])
        elif prs.subcommands and not arg.startswith('-'):
            msg += ', choose from: %s' % ', '.join(prs.subcommands.keys())
        ret = cls(msg)
        ret.token = arg
        return ret


class InvalidEnumValue(ArgumentParseError):
    """Raised when a flag's coerced value is not one of the flag's
    declared enum values.
    """
    kind = 'InvalidEnumValue'

    @classmethod
    def from_parse(cls, flag, value):
        msg = ('invalid value %r for flag %s, expected one of: %s'
               % (value, flag.name, ', '.join([repr(v) for v in flag.enum])))
        return cls(msg)


class MissingMandatoryFlags(ArgumentParseError):
    """
    Raised when one or more mandatory flags are missing. All missing
    flags for the command are reported together. See Flag for more info.
    """
    kind = 'MissingMandatoryFlags'

    @classmethod
    def from_parse(cls, missing_flags):
        names = [flag.name for flag in missing_flags]
        labels = ['%s (%s)' % (flag.name, flag.options[-1]) for flag in missing_flags]
        ret = cls('missing mandatory flags: %s' % ', '.join(labels))
        ret.missing = tuple(names)
        return ret


class TypeCoercionFailure(ArgumentParseError):
    """Raised when the argument passed to a flag (the value directly
    after it in argv, or after the "=") fails to convert to the flag's
    type.
    """
    kind = 'TypeCoercionFailure'

    @classmethod
    def from_parse(cls, flag, arg, exc=None):
        ftype = flag.type
        if ftype.is_primitive:
            msg = 'flag %s expected a valid %s value, not %r' % (flag.name, ftype.value, arg)
        else:
            msg = ('flag %s converter (%s) failed to parse value: %r'
                   % (flag.name, get_type_desc(ftype.value), arg))

        if exc is not None:
            msg += ' (got error: %r)' % exc
        if isinstance(arg, str) and arg.startswith('-'):
            msg += '. (Did you forget to pass an argument?)'

        return cls(msg)


class ValidationFailure(ArgumentParseError):
    """Raised when a flag's custom validator rejects a value, or when
    a schema-typed flag's value does not validate against its schema.
    """
    kind = 'ValidationFailure'

    @classmethod
    def from_parse(cls, flag, value, reason=None):
        if reason:
            msg = 'validation failed for flag %s: %s' % (flag.name, reason)
        else:
            msg = 'validation failed for flag %s with value %r' % (flag.name, value)
        return cls(msg)


class HandlerExecutionFailure(ArgumentParseError):
    """Raised when a command's handler itself raises. The original
    exception is available as ``.exc`` (and as ``__cause__``).
    """
    kind = 'HandlerExecutionFailure'

    @classmethod
    def from_exc(cls, cmd, exc):
        ret = cls('handler for command %r failed: %s: %s'
                  % (cmd.name, exc.__class__.__name__, exc))
        ret.exc = exc
        return ret


class FlagDefinitionError(SwitchyardException, ValueError):
    """Base type for errors raised while defining flags, as opposed to
    while parsing arguments.
    """
    kind = 'FlagDefinitionError'


class DuplicateFlagDefinition(FlagDefinitionError):
    kind = 'DuplicateFlagDefinition'

    @classmethod
    def from_flags(cls, flag_name):
        ret = cls('duplicate definition for flag name: %r' % flag_name)
        ret.flag_name = flag_name
        return ret


class OptionCollision(FlagDefinitionError):
    kind = 'OptionCollision'

    @classmethod
    def from_flags(cls, option, existing_name, new_name):
        ret = cls('option %r for flag %r is already used by flag %r'
                  % (option, new_name, existing_name))
        ret.option = option
        return ret
