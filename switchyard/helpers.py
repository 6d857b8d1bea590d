"""Plain-text help rendering. Styling and colors are left to
whatever replaces the HelpHandler's *func*.
"""

import shutil
import textwrap


DEFAULT_WIDTH = 80


def get_term_width(max_width=120):
    "Terminal width, capped at *max_width*, less a small right margin."
    cols = shutil.get_terminal_size((DEFAULT_WIDTH, 24)).columns or DEFAULT_WIDTH
    return min(cols, max_width) - 2


def get_layout(labels, indent, sep, width=None, max_width=120, min_doc_width=40):
    """Where the doc column starts, and how wide it is, for a section
    with the given *labels*. Docs line up after the longest label,
    unless that would leave less than *min_doc_width* for them, in
    which case long labels get a line to themselves.
    """
    if width is None:
        width = get_term_width(max_width)

    label_width = max([len(label) for label in labels] or [0])
    doc_start = len(indent) + label_width + len(sep)
    if doc_start + min_doc_width < width:
        doc_width = width - doc_start
    else:
        doc_start = width - min_doc_width
        doc_width = min_doc_width

    return {'width': width,
            'label_width': label_width,
            'doc_width': doc_width,
            'doc_start': doc_start}


def format_pair_lines(label, doc, layout, indent='  ', sep='   '):
    "One label and its doc, wrapped into the doc column of *layout*."
    head = indent + label
    if not doc:
        return [head]

    doc_start = layout['doc_start']
    doc_lines = textwrap.wrap(doc, layout['doc_width'])
    if len(head) <= doc_start:
        ret = [head.ljust(doc_start - len(sep)) + sep + doc_lines[0]]
    else:
        ret = [head, ' ' * (doc_start - len(sep)) + sep + doc_lines[0]]
    ret.extend([' ' * doc_start + line for line in doc_lines[1:]])
    return ret


def get_value_name(flag):
    if flag.flag_only or flag.type.is_boolean:
        return ''
    return flag.name.upper().replace('-', '_')


def format_flag_label(flag):
    "The default flag label formatter, used in help formatting"
    # short options first, like "-v, --verbose"
    options = sorted(flag.options, key=lambda opt: (opt.startswith('--'), len(opt)))
    ret = ', '.join(options)
    value_name = get_value_name(flag)
    if value_name:
        ret += ' ' + value_name
    return ret


def format_flag_post_doc(flag):
    "Parenthetical notes after a flag's doc, like whether it's required"
    parts = []
    if flag.mandatory is True:
        parts.append('required')
    elif callable(flag.mandatory):
        parts.append('conditionally required')
    if flag.enum:
        parts.append('one of: %s' % ', '.join([str(v) for v in flag.enum]))
    if flag.has_default and flag.default is not None and not flag.flag_only:
        parts.append('defaults to %r' % (flag.default,))
    if flag.env:
        parts.append('env: %s' % ', '.join(flag.env))
    if flag.allow_multiple:
        parts.append('repeatable')
    if not parts:
        return ''
    return '(%s)' % '; '.join(parts)


def format_flag_doc(flag):
    return ' '.join([p for p in [flag.doc, format_flag_post_doc(flag)] if p])


class HelpHandler(object):
    """Renders plain-text help for a command. Passed to
    :class:`~switchyard.Command` as *help*. Rendering is all this
    does; printing is up to *func*, which by default prints to stdout
    and returns the text.

    Any key of ``default_context`` can be overridden with a keyword
    argument, e.g., ``HelpHandler(width=100)``.
    """
    default_context = {
        'usage_label': 'Usage:',
        'subcmd_section_heading': 'Subcommands: ',
        'flags_section_heading': 'Flags: ',
        'section_break': '\n',
        'group_break': '',
        'width': None,
        'max_width': 120,
        'min_doc_width': 50,
        'doc_separator': '   ',
        'section_indent': '  ',
        'pre_doc': '',
        'post_doc': '\n',
    }

    def __init__(self, func=None, **kwargs):
        unknown = sorted(set(kwargs) - set(self.default_context))
        if unknown:
            raise TypeError('unexpected keyword arguments: %r' % unknown)
        self.ctx = dict(self.default_context, **kwargs)
        self.func = self.default_help_func if func is None else func
        if not callable(self.func):
            raise TypeError('expected func to be callable, not %r' % func)

    def default_help_func(self, prs, command_chain=(), program_name=None):
        help_text = self.get_help_text(prs, command_chain=command_chain,
                                       program_name=program_name)
        print(help_text)
        return help_text

    def get_help_text(self, prs, command_chain=(), program_name=None):
        """Help for *prs*, the command reached by *command_chain*, which
        may be a subcommand.
        """
        ctx = self.ctx
        lines = [self.get_usage_line(prs, command_chain=command_chain,
                                     program_name=program_name),
                 ctx['group_break']]
        if prs.doc:
            lines.extend([prs.doc, ctx['section_break']])

        if prs.subcommands:
            pairs = [(name, subprs.doc) for name, subprs in prs.subcommands.items()]
            lines.extend(self.get_section_lines(ctx['subcmd_section_heading'], pairs))
            lines.append(ctx['section_break'])

        flags = prs.get_flags()
        if flags:
            pairs = [(format_flag_label(flag), format_flag_doc(flag)) for flag in flags]
            lines.extend(self.get_section_lines(ctx['flags_section_heading'], pairs))

        return ctx['pre_doc'] + '\n'.join(lines) + ctx['post_doc']

    def get_section_lines(self, heading, pairs):
        "A heading followed by aligned (label, doc) pairs"
        ctx = self.ctx
        indent, sep = ctx['section_indent'], ctx['doc_separator']
        layout = get_layout(labels=[label for label, _ in pairs],
                            indent=indent,
                            sep=sep,
                            width=ctx['width'],
                            max_width=ctx['max_width'],
                            min_doc_width=ctx['min_doc_width'])
        ret = [heading, ctx['group_break']]
        for label, doc in pairs:
            ret.extend(format_pair_lines(label, doc, layout, indent=indent, sep=sep))
        return ret

    def get_usage_line(self, prs, command_chain=(), program_name=None):
        """Like ``Usage: prog sub subcommand [FLAGS] FIRST [SECOND]``.
        Optional positional arguments are bracketed.
        """
        if program_name is None:
            program_name = prs.get_command_path()[0]

        parts = [self.ctx['usage_label'], program_name]
        parts.extend(command_chain)
        if prs.subcommands:
            parts.append('subcommand')

        flags = prs.get_flags()
        if flags:
            parts.append('[FLAGS]')
        for flag in sorted([f for f in flags if f.positional], key=lambda f: f.positional):
            label = flag.name.upper()
            parts.append(label if flag.mandatory is True else '[%s]' % label)

        return ' '.join([p for p in parts if p])
