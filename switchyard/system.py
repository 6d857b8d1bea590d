"""Reserved system flags, stripped from argv before anything else is
parsed. Their values are returned separately and never appear among a
command's parsed flags.

  * ``--s-debug``: log the resolved command context
  * ``--s-with-env [PATH]``: an external config path for config
    loaders. Takes the next argument as its value unless that
    argument looks like an option. Also accepts ``--s-with-env=PATH``.
"""

DEBUG_FLAG = '--s-debug'
WITH_ENV_FLAG = '--s-with-env'

SYSTEM_FLAGS = (DEBUG_FLAG, WITH_ENV_FLAG)


def strip_system_flags(args):
    """Returns a tuple of ``(system_args, remaining_args)``, where
    *system_args* is a dict which may contain ``'debug'`` and
    ``'with_env'`` keys.
    """
    args = list(args)
    system_args = {}
    ret = []
    idx = 0
    while idx < len(args):
        arg = args[idx]
        idx += 1
        if arg == DEBUG_FLAG:
            system_args['debug'] = True
        elif arg == WITH_ENV_FLAG:
            if idx < len(args) and not args[idx].startswith('-'):
                system_args['with_env'] = args[idx]
                idx += 1
            else:
                system_args['with_env'] = True
        elif arg.startswith(WITH_ENV_FLAG + '='):
            system_args['with_env'] = arg.partition('=')[2] or True
        else:
            ret.append(arg)
    return system_args, ret
