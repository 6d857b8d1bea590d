import asyncio
import logging

import pytest

from switchyard import (Parser,
                        Flag,
                        ArgumentParseError,
                        UnknownCommand,
                        InvalidEnumValue,
                        MissingMandatoryFlags,
                        TypeCoercionFailure,
                        ValidationFailure)


def get_app_parser(**kwargs):
    return Parser('app', flags=[Flag('name', options=['-n', '--name']),
                                Flag('count', type='number', default=1),
                                Flag('verbose', options=['-v'], type='boolean', flag_only=True),
                                Flag('debug', type='boolean'),
                                Flag('offset', type='number'),
                                Flag('tag', options=['-t', '--tag'], allow_multiple=True)],
                  **kwargs)


def get_phase_parser(batch_first=False):
    phase = Flag('phase', mandatory=True, enum=['chunking', 'pairing', 'analysis'])
    batch = Flag('batch', type='number',
                 mandatory=lambda parsed: parsed.get('phase') != 'analysis')
    flags = [batch, phase] if batch_first else [phase, batch]
    return Parser('pipeline', flags=flags)


def test_parse_basic():
    prs = get_app_parser()

    res = prs.parse(['-n', 'bob', '-v'])
    assert res.flags == {'name': 'bob', 'count': 1, 'verbose': True, 'tag': []}
    assert res.command is prs
    assert res.command_chain == ()
    assert res.argv == ('-n', 'bob', '-v')
    assert not res.help_requested

    res = prs.parse([])
    assert res.flags == {'count': 1, 'tag': []}
    assert list(res.flags.keys()) == ['count', 'tag']

    with pytest.raises(TypeError):
        prs.parse('-n bob')


def test_parse_booleans():
    prs = get_app_parser()

    assert prs.parse(['--debug']).flags['debug'] is True
    assert prs.parse(['--debug', 'yes']).flags['debug'] is True
    assert prs.parse(['--debug', 'no']).flags['debug'] is False
    assert prs.parse(['--debug=false']).flags['debug'] is False

    res = prs.parse(['--debug', '--name', 'x'])
    assert res.flags['debug'] is True
    assert res.flags['name'] == 'x'

    # flag-only flags never consume the next argument
    with pytest.raises(UnknownCommand, match="'false'"):
        prs.parse(['-v', 'false'])


def test_parse_ligature():
    prs = get_app_parser()

    assert prs.parse(['--name=bob']).flags['name'] == 'bob'
    assert prs.parse(['--name=a=b']).flags['name'] == 'a=b'
    assert prs.parse(['--name=--weird']).flags['name'] == '--weird'
    assert prs.parse(['--count=5']).flags['count'] == 5

    prs = Parser('app', flags=[Flag('tag', allow_ligature=False)])
    assert prs.parse(['--tag', 'x']).flags['tag'] == 'x'
    with pytest.raises(UnknownCommand):
        prs.parse(['--tag=x'])


@pytest.mark.parametrize('count', [1, 2, 3, 5])
def test_parse_multiple(count):
    prs = get_app_parser()
    argv = []
    for i in range(count):
        argv.extend(['--tag', 'tag%s' % i])
    res = prs.parse(argv)
    assert res.flags['tag'] == ['tag%s' % i for i in range(count)]


def test_parse_multiple_defaults():
    prs = Parser('app', flags=[Flag('tag', allow_multiple=True, default=['base']),
                               Flag('level', type='number', allow_multiple=True)])
    assert prs.parse([]).flags == {'tag': ['base'], 'level': []}
    assert prs.parse(['--tag', 'x', '--tag=y']).flags['tag'] == ['x', 'y']
    assert prs.parse(['--level', '1', '--level', '2']).flags['level'] == [1, 2]


def test_parse_repeated_flag_last_wins():
    prs = get_app_parser()
    assert prs.parse(['-n', 'a', '--name', 'b']).flags['name'] == 'b'


def test_parse_negative_numbers():
    prs = get_app_parser()
    assert prs.parse(['--offset', '-5']).flags['offset'] == -5
    assert prs.parse(['--offset', '-0.5']).flags['offset'] == -0.5


def test_parse_missing_value_warns(caplog):
    prs = get_app_parser()

    with caplog.at_level(logging.WARNING, logger='switchyard.parser'):
        res = prs.parse(['--name'])
    assert 'name' not in res.flags
    assert 'expects a value but got nothing' in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger='switchyard.parser'):
        res = prs.parse(['--name', '-v'])
    assert 'name' not in res.flags
    assert res.flags['verbose'] is True
    assert "got '-v'" in caplog.text


def test_parse_coercion_error():
    prs = get_app_parser()
    with pytest.raises(TypeCoercionFailure, match='flag count expected a valid number'):
        prs.parse(['--count', 'many'])


def test_parse_unknown():
    prs = get_app_parser()

    with pytest.raises(UnknownCommand, match="unknown command or flag: '--bogus'") as exc_info:
        prs.parse(['--bogus'])
    assert exc_info.value.kind == 'UnknownCommand'
    assert exc_info.value.command_chain == ()
    assert exc_info.value.parser is prs

    with pytest.raises(UnknownCommand, match="did you mean '--name'"):
        prs.parse(['--nam', 'bob'])

    with pytest.raises(UnknownCommand, match="'extra'"):
        prs.parse(['-n', 'bob', 'extra', 'more'])


def test_parse_positionals():
    prs = Parser('cp', flags=[Flag('source', options=['-s', '--source'], positional=1),
                              Flag('dest', options=['-d', '--dest'], positional=2)])

    assert prs.parse(['file.txt', 'backup/']).flags == {'source': 'file.txt', 'dest': 'backup/'}
    assert prs.parse(['file.txt', '--dest', 'backup/']).flags == {'source': 'file.txt',
                                                                   'dest': 'backup/'}
    assert prs.parse(['--source', 'a']).flags == {'source': 'a'}

    # the option form fills the slot, the extra argument is left over
    with pytest.raises(UnknownCommand, match="'b'"):
        prs.parse(['--source', 'a', 'b'])

    with pytest.raises(UnknownCommand, match="'c'"):
        prs.parse(['a', 'b', 'c'])


def test_parse_positional_coercion_and_mandatory():
    prs = Parser('show', flags=[Flag('id', type='number', mandatory=True, positional=1)])

    res = prs.parse(['42'])
    assert res.flags['id'] == 42

    assert prs.parse(['--id', '7']).flags['id'] == 7

    with pytest.raises(MissingMandatoryFlags):
        prs.parse([])

    # option-like arguments are never captured positionally
    with pytest.raises(UnknownCommand):
        prs.parse(['--nope'])

    res = prs.parse(['-h'])
    assert res.help_requested
    assert 'id' not in res.flags


def test_parse_env_fallback(caplog):
    environ = {'APP_TOKEN': 'abc', 'APP_PORT': 'eighty', 'ALT_HOST': 'example.com'}
    prs = Parser('app', environ=environ,
                 flags=[Flag('token', env='APP_TOKEN'),
                        Flag('port', type='number', env='APP_PORT', default=80),
                        Flag('host', env=['APP_HOST', 'ALT_HOST'], default='localhost'),
                        Flag('user', env='APP_USER')])

    with caplog.at_level(logging.WARNING, logger='switchyard.parser'):
        res = prs.parse([])
    assert res.flags == {'token': 'abc', 'port': 80, 'host': 'example.com'}
    assert 'ignoring environment variable APP_PORT' in caplog.text

    res = prs.parse(['--token', 'cli', '--host', 'cli.example.com'])
    assert res.flags['token'] == 'cli'
    assert res.flags['host'] == 'cli.example.com'


def test_parse_env_satisfies_mandatory():
    prs = Parser('app', environ={'API_KEY': 'k'},
                 flags=[Flag('key', mandatory=True, env='API_KEY')])
    assert prs.parse([]).flags['key'] == 'k'

    prs.environ = {}
    with pytest.raises(MissingMandatoryFlags):
        prs.parse([])


def test_conditional_mandatory():
    for batch_first in (False, True):
        prs = get_phase_parser(batch_first=batch_first)

        with pytest.raises(MissingMandatoryFlags, match='batch') as exc_info:
            prs.parse(['--phase', 'chunking'])
        assert exc_info.value.missing == ('batch',)

        res = prs.parse(['--phase', 'analysis'])
        assert res.flags == {'phase': 'analysis'}
        assert 'batch' not in res.flags

        res = prs.parse(['--phase', 'pairing', '--batch', '3'])
        assert res.flags == {'phase': 'pairing', 'batch': 3}


def test_mandatory_batched():
    prs = get_phase_parser()
    with pytest.raises(MissingMandatoryFlags) as exc_info:
        prs.parse([])
    assert exc_info.value.missing == ('phase', 'batch')
    assert 'phase (--phase), batch (--batch)' in exc_info.value.message


def test_enum_checked_before_mandatory():
    prs = get_phase_parser()
    with pytest.raises(InvalidEnumValue, match="invalid value 'bogus' for flag phase"):
        prs.parse(['--phase', 'bogus'])


def test_mandatory_multiple_empty():
    prs = Parser('cat', flags=[Flag('file', allow_multiple=True, mandatory=True)])
    with pytest.raises(MissingMandatoryFlags, match='file'):
        prs.parse([])
    assert prs.parse(['--file', 'a']).flags['file'] == ['a']


def test_validators_run_last():
    prs = Parser('resize', flags=[Flag('size', type='number', validate=lambda v: v > 0),
                                  Flag('mode', mandatory=True)])

    # mandatory checking comes before validation
    with pytest.raises(MissingMandatoryFlags):
        prs.parse(['--size', '-1'])

    with pytest.raises(ValidationFailure, match='size'):
        prs.parse(['--size', '-1', '--mode', 'fit'])

    assert prs.parse(['--size', '3', '--mode', 'fit']).flags['size'] == 3


def test_validator_sees_parsed_values():
    prs = Parser('range', flags=[Flag('start', type='number', default=0),
                                 Flag('end', type='number',
                                      validate=lambda v, parsed: v > parsed['start'] or 'end must follow start')])
    assert prs.parse(['--start', '1', '--end', '2']).flags['end'] == 2
    with pytest.raises(ValidationFailure, match='end must follow start'):
        prs.parse(['--end', '2', '--start', '5'])


def test_async_extension_points():
    async def lookup(text):
        await asyncio.sleep(0)
        return {'alice': 1, 'bob': 2}[text]

    async def is_admin(user_id):
        return user_id == 1 or 'user %s is not an admin' % user_id

    prs = Parser('admin', flags=[Flag('user', type=lookup, validate=is_admin)])

    assert prs.parse(['--user', 'alice']).flags['user'] == 1
    with pytest.raises(ValidationFailure, match='user 2 is not an admin'):
        prs.parse(['--user', 'bob'])
    with pytest.raises(TypeCoercionFailure):
        prs.parse(['--user', 'carol'])


def test_parse_in_running_loop():
    prs = get_app_parser()

    async def _parse_in_loop():
        with pytest.raises(RuntimeError, match='running event loop'):
            prs.parse(['-n', 'bob'])
        return await prs.parse_async(['-n', 'bob'])

    res = asyncio.run(_parse_in_loop())
    assert res.flags['name'] == 'bob'


def test_parse_system_flags():
    prs = get_app_parser()

    res = prs.parse(['--s-debug', '--s-with-env', 'conf.json', '-n', 'x'])
    assert res.system_args == {'debug': True, 'with_env': 'conf.json'}
    assert res.flags['name'] == 'x'
    assert 's_debug' not in res.flags

    res = prs.parse(['--s-with-env', '-n', 'x'])
    assert res.system_args == {'with_env': True}
    assert res.flags['name'] == 'x'


def test_parse_idempotent():
    argv = ['--phase', 'pairing', '--batch', '2', '--s-debug']
    first = get_phase_parser().parse(argv)
    second = get_phase_parser().parse(argv)
    assert first.to_dict() == second.to_dict()
    assert repr(first.to_dict()) == repr(second.to_dict())

    failures = []
    for prs in (get_phase_parser(), get_phase_parser()):
        try:
            prs.parse(['--phase', 'chunking'])
        except ArgumentParseError as ape:
            failures.append((ape.kind, ape.message, ape.command_chain))
    assert failures[0] == failures[1]


def test_help_skips_validation():
    prs = get_phase_parser()
    res = prs.parse(['--phase', 'bogus', '--help'])
    assert res.help_requested
    assert res.flags == {'help': True}

    prs = Parser('nohelp', help=False)
    with pytest.raises(UnknownCommand):
        prs.parse(['--help'])


def test_remove_flag():
    prs = get_app_parser()
    assert prs.remove_flag('name') is True
    assert prs.get_flag('name') is None
    assert prs.registry.find_by_option('-n') is None
    assert prs.registry.find_by_option('--name') is None
    assert prs.remove_flag('name') is False

    with pytest.raises(UnknownCommand, match="'-n'"):
        prs.parse(['-n', 'bob'])

    # the freed options can be claimed again
    prs.add('nick', options=['-n'])
    assert prs.parse(['-n', 'bob']).flags['nick'] == 'bob'


MANIFESTS = {'a.json': [{'name': 'region', 'options': ['-r', '--region']},
                        {'name': 'dry_run', 'type': 'boolean', 'flagOnly': True}],
             'b.json': [{'name': 'zone', 'type': 'number'}]}


def get_manifest_parser(registrar):
    return Parser('deploy', flags=[Flag('manifest', dynamic_register=registrar),
                                   Flag('name')])


def test_dynamic_register():
    calls = []

    def load_manifest(ctx):
        calls.append((ctx.value, ctx.args_so_far, ctx.args, ctx.for_help))
        assert ctx.parser.name == 'deploy'
        ctx.register_flags(MANIFESTS[ctx.value])

    prs = get_manifest_parser(load_manifest)
    res = prs.parse(['--name', 'web', '--manifest', 'a.json', '--region', 'us', '--dry-run'])
    assert res.flags == {'manifest': 'a.json', 'name': 'web',
                         'region': 'us', 'dry_run': True}
    assert calls == [('a.json', {'manifest': 'a.json'},
                      ('--name', 'web', '--manifest', 'a.json', '--region', 'us', '--dry-run'),
                      False)]

    # no manifest, no extra flags
    with pytest.raises(UnknownCommand, match="'--region'"):
        prs.parse(['--region', 'us'])
    assert prs.get_flag('region') is None
    assert len(calls) == 1

    # flags from an earlier parse don't leak into the next one
    res = prs.parse(['--manifest=b.json', '--zone', '3'])
    assert res.flags == {'manifest': 'b.json', 'zone': 3}
    with pytest.raises(UnknownCommand, match="'--region'"):
        prs.parse(['--manifest', 'b.json', '--region', 'us'])


def test_dynamic_register_async_return():
    async def load_manifest(ctx):
        await asyncio.sleep(0)
        if ctx.value == 'b.json':
            return [Flag('zone', type='number')]
        return None

    prs = get_manifest_parser(load_manifest)
    assert prs.parse(['--manifest', 'b.json', '--zone', '2']).flags['zone'] == 2
    with pytest.raises(UnknownCommand):
        prs.parse(['--manifest', 'a.json', '--zone', '2'])


def test_dynamic_register_multiple():
    seen = []

    def load_plugins(ctx):
        seen.append(ctx.value)
        return [Flag('%s_level' % name, type='number') for name in ctx.value]

    prs = Parser('app', flags=[Flag('plugin', options=['-p'], allow_multiple=True,
                                    dynamic_register=load_plugins)])
    res = prs.parse(['-p', 'cache', '--cache-level', '2', '-p', 'auth'])
    assert res.flags == {'plugin': ['cache', 'auth'], 'cache_level': 2}
    assert seen == [['cache', 'auth']]


def test_dynamic_register_duplicate_skipped(caplog):
    def load(ctx):
        added = ctx.register_flags([Flag('name'), Flag('extra')])
        assert [f.name for f in added] == ['extra']

    prs = get_manifest_parser(load)
    with caplog.at_level(logging.WARNING, logger='switchyard.flags'):
        res = prs.parse(['--manifest', 'x', '--extra', 'y'])
    assert res.flags == {'manifest': 'x', 'extra': 'y'}
    assert 'skipping duplicate definition' in caplog.text

    # the static flag survives the reset
    prs.parse(['--name', 'n'])
    assert prs.get_flag('name') is not None
    assert prs.get_flag('extra') is None


def test_dynamic_register_for_help():
    calls = []

    def load_manifest(ctx):
        calls.append(ctx.for_help)
        ctx.register_flags(MANIFESTS['a.json'])

    prs = get_manifest_parser(load_manifest)
    res = prs.parse(['--manifest', 'a.json', '-h'])
    assert res.help_requested
    assert calls == [True]
    # registered flags are left in place for rendering help
    assert prs.get_flag('region') is not None


def test_dynamic_register_bad_value():
    calls = []
    prs = Parser('app', flags=[Flag('level', type='number', dynamic_register=calls.append)])
    with pytest.raises(TypeCoercionFailure):
        prs.parse(['--level', 'high'])
    assert calls == []

    with pytest.raises(TypeError, match='dynamic_register'):
        Flag('level', dynamic_register='not callable')
