"""Flag inheritance between parent and child commands.

Inheritance is applied when a child is attached to its parent, and is
a snapshot: flags added to an ancestor afterward are not
propagated. The exception is that attaching a command re-applies
``all-parents`` inheritance to its existing descendants, so trees can
be built from the leaves up.

Local flags always win. Inherited flags are shared verbatim.
"""

import logging


logger = logging.getLogger(__name__)

NONE = 'none'
DIRECT_PARENT_ONLY = 'direct-parent-only'
ALL_PARENTS = 'all-parents'

INHERIT_MODES = (NONE, DIRECT_PARENT_ONLY, ALL_PARENTS)


def normalize_inherit_mode(mode):
    """``True`` means ``direct-parent-only``, ``False`` and ``None``
    mean ``none``. Underscores are accepted in place of dashes.
    """
    if mode is True:
        return DIRECT_PARENT_ONLY
    if mode is False or mode is None:
        return NONE
    if isinstance(mode, str):
        norm_mode = mode.strip().lower().replace('_', '-')
        if norm_mode in INHERIT_MODES:
            return norm_mode
    raise ValueError('expected bool or one of %r for inherit, not: %r'
                     % (INHERIT_MODES, mode))


def iter_ancestors(prs):
    "Yields *prs*'s parent, grandparent, and so on, nearest first."
    cur = prs.parent
    while cur is not None:
        yield cur
        cur = cur.parent


def iter_descendants(prs):
    "Yields every command below *prs*, breadth-first."
    to_proc = list(prs.subcommands.values())
    while to_proc:
        cur = to_proc.pop(0)
        yield cur
        to_proc.extend(cur.subcommands.values())


def inherit_flags(prs):
    """Copy flags into *prs* from its ancestors, per its inherit
    mode. Ancestors' help flags are never copied, a command's help
    is its own. Returns the names of the flags copied.
    """
    mode = prs.inherit
    if mode == NONE or prs.parent is None:
        return []
    if mode == DIRECT_PARENT_ONLY:
        sources = [prs.parent]
    else:
        sources = list(iter_ancestors(prs))

    ret = []
    registry = prs.registry
    for source in sources:
        for flag in source.registry.get_flags():
            if flag is source.help_flag:
                continue
            if registry.inherit(flag):
                ret.append(flag.name)
    return ret


def apply_inheritance(prs):
    """Called when *prs* is attached to a parent. Returns the names
    of the flags *prs* itself inherited.
    """
    ret = inherit_flags(prs)
    if ret:
        logger.debug('command %r inherited flags (%s): %r', prs.name, prs.inherit, ret)
    for desc in iter_descendants(prs):
        if desc.inherit != ALL_PARENTS:
            continue
        desc_names = inherit_flags(desc)
        if desc_names:
            logger.debug('command %r inherited flags (%s): %r', desc.name, desc.inherit, desc_names)
    return ret
