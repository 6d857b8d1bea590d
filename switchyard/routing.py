import logging

from switchyard.utils import format_nonexp_repr


logger = logging.getLogger(__name__)


class CommandChain(object):
    """The outcome of :func:`resolve_command_chain`.

    Args:
       command (Parser): The deepest command reached, which parses
          the remaining arguments.
       names (tuple): The subcommand names matched, in order.
       parents (tuple): The commands above *command*, root first.
       remaining (list): The arguments left for *command*.
    """
    def __init__(self, command, names, parents, remaining):
        self.command = command
        self.names = tuple(names)
        self.parents = tuple(parents)
        self.remaining = list(remaining)

    @property
    def parent(self):
        return self.parents[-1] if self.parents else None

    def __repr__(self):
        return format_nonexp_repr(self, ['names', 'remaining'])


def resolve_command_chain(root, args):
    """Walk down from *root*, consuming each argument that exactly
    matches a subcommand name of the current command, and stopping at
    the first one that doesn't. Never backtracks.
    """
    args = list(args)
    cur, names, parents = root, [], []
    idx = 0
    while idx < len(args):
        subprs = cur.subcommands.get(args[idx])
        if subprs is None:
            break
        parents.append(cur)
        names.append(args[idx])
        cur = subprs
        idx += 1

    logger.debug('resolved command chain %r for command %r', names, root.name)
    return CommandChain(cur, names, parents, args[idx:])
