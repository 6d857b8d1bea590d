from switchyard.flags import (Flag,
                              FlagType,
                              FlagRegistry,
                              MISSING)

from switchyard.errors import (SwitchyardException,
                               ArgumentParseError,
                               UnknownCommand,
                               InvalidEnumValue,
                               MissingMandatoryFlags,
                               TypeCoercionFailure,
                               ValidationFailure,
                               HandlerExecutionFailure,
                               FlagDefinitionError,
                               DuplicateFlagDefinition,
                               OptionCollision)

from switchyard.inherit import NONE, DIRECT_PARENT_ONLY, ALL_PARENTS
from switchyard.parser import Parser, ParseResult, DynamicRegisterContext
from switchyard.command import Command, HandlerContext, RunResult
from switchyard.plugins import Plugin, PluginRegistry
from switchyard.helpers import HelpHandler
