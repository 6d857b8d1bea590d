import logging

import pytest

from switchyard import (Flag,
                        FlagType,
                        FlagRegistry,
                        MISSING,
                        DuplicateFlagDefinition,
                        OptionCollision)


def test_flag_defaults():
    flag = Flag('dry_run')
    assert flag.options == ('--dry-run',)
    assert flag.type == FlagType('primitive', 'string')
    assert flag.allow_ligature is True
    assert flag.allow_multiple is False
    assert flag.flag_only is False
    assert flag.mandatory is False
    assert flag.default is MISSING
    assert flag.get_default() is MISSING
    assert not flag.has_default
    assert flag.env == ()

    assert repr(flag).startswith("<Flag name='dry_run' options=('--dry-run',)")


def test_flag_name():
    name_err_map = {'': 'non-zero length string',
                    5: 'non-zero length string',
                    '--name': 'expected flag name, not option string',
                    'na me': 'must not contain whitespace'}

    for name, err in name_err_map.items():
        with pytest.raises(ValueError, match=err):
            Flag(name)


def test_flag_options():
    assert Flag('verbose', options='-v').options == ('-v',)
    assert Flag('verbose', options=['-v', '--verbose', '-v']).options == ('-v', '--verbose')

    with pytest.raises(ValueError, match='at least one option'):
        Flag('x', options=[])
    with pytest.raises(ValueError, match='must start with a dash'):
        Flag('x', options=['x'])
    with pytest.raises(ValueError, match='must start with a dash'):
        Flag('x', options=['--'])
    with pytest.raises(ValueError, match='must not contain'):
        Flag('x', options=['--x=1'])


@pytest.mark.parametrize('spec, kind, value',
                         [('string', 'primitive', 'string'),
                          ('NUMBER', 'primitive', 'number'),
                          (None, 'primitive', 'string'),
                          (str, 'primitive', 'string'),
                          (float, 'primitive', 'number'),
                          (bool, 'primitive', 'boolean'),
                          (list, 'primitive', 'array'),
                          (dict, 'primitive', 'object'),
                          (int, 'custom', int)])
def test_flag_type_resolution(spec, kind, value):
    ftype = FlagType.from_spec(spec)
    assert ftype.kind == kind
    assert ftype.value == value
    assert FlagType.from_spec(ftype) is ftype


def test_flag_type_errors():
    with pytest.raises(ValueError, match='primitive flag type'):
        Flag('x', type='integer')
    with pytest.raises(TypeError, match='expected primitive type name'):
        Flag('x', type=5)
    with pytest.raises(ValueError, match='unknown flag type kind'):
        FlagType('fancy', str)


def test_flag_schema_type():
    pydantic = pytest.importorskip('pydantic')

    class Point(pydantic.BaseModel):
        x: int
        y: int

    assert Flag('point', type=Point).type.kind == FlagType.SCHEMA
    assert Flag('ids', type=pydantic.TypeAdapter(list)).type.kind == FlagType.SCHEMA


def test_flag_aliases():
    flag = Flag('x', required=True, default_value='a')
    assert flag.mandatory is True
    assert flag.default == 'a'

    # explicit arguments win over aliases
    assert Flag('x', default='b', default_value='a').default == 'b'

    with pytest.raises(TypeError, match='unexpected keyword arguments'):
        Flag('x', defaults=1)


def test_flag_from_def():
    flag = Flag.from_def({'name': 'out',
                          'options': ['-o', '--out'],
                          'defaultValue': 'a.txt',
                          'flagOnly': False,
                          'allowMultiple': True,
                          'allowLigature': False,
                          'description': 'output paths'})
    assert flag.options == ('-o', '--out')
    assert flag.default == 'a.txt'
    assert flag.allow_multiple
    assert not flag.allow_ligature
    assert flag.get_default() == ['a.txt']
    assert flag.doc == 'output paths'

    assert Flag.from_def({'name': 'x', 'required': True}).mandatory is True

    with pytest.raises(ValueError, match='conflicting definitions'):
        Flag.from_def({'name': 'x', 'default': 1, 'defaultValue': 2})
    with pytest.raises(ValueError, match='expected Flag parameters'):
        Flag.from_def({'name': 'x', 'bogus': 1})


def test_flag_validation():
    with pytest.raises(ValueError, match='not one of the allowed values'):
        Flag('phase', enum=['a', 'b'], default='c')
    with pytest.raises(ValueError, match='not one of the allowed values'):
        Flag('phase', enum=['a', 'b'], default=['a', 'c'], allow_multiple=True)
    with pytest.raises(ValueError, match='at least one allowed value'):
        Flag('phase', enum=[])
    with pytest.raises(ValueError, match='positive integer'):
        Flag('x', positional=0)
    with pytest.raises(ValueError, match='positive integer'):
        Flag('x', positional=True)
    with pytest.raises(ValueError, match='cannot capture a positional'):
        Flag('x', flag_only=True, positional=1)
    with pytest.raises(TypeError, match='mandatory'):
        Flag('x', mandatory='yes')
    with pytest.raises(TypeError, match='validate'):
        Flag('x', validate='nonempty')

    assert Flag('phase', enum=['a', 'b'], default='a').enum == ('a', 'b')


def test_multi_flag_defaults():
    assert Flag('tag', allow_multiple=True).get_default() == []
    assert Flag('tag', allow_multiple=True, default='x').get_default() == ['x']

    flag = Flag('tag', allow_multiple=True, default=['x', 'y'])
    first = flag.get_default()
    first.append('z')
    assert flag.get_default() == ['x', 'y']


def test_mandatory_predicate():
    flag = Flag('batch', mandatory=lambda parsed: parsed.get('phase') != 'analysis')
    assert flag.is_mandatory({'phase': 'chunking'})
    assert not flag.is_mandatory({'phase': 'analysis'})

    async def is_required(parsed):
        return True

    flag = Flag('x', mandatory=is_required)
    with pytest.raises(TypeError, match='synchronous predicate'):
        flag.is_mandatory({})


def test_registry_basic():
    reg = FlagRegistry([Flag('b'), {'name': 'a', 'options': ['-a']}])
    reg.add('c', type='number')

    assert reg.get_names() == ['b', 'a', 'c']
    assert [f.name for f in reg.get_flags()] == ['b', 'a', 'c']
    assert [f.name for f in reg] == ['b', 'a', 'c']
    assert len(reg) == 3
    assert 'a' in reg
    assert reg.has('c')
    assert reg.get('missing') is None
    assert reg.find_by_option('-a') is reg.get('a')
    assert reg.find_by_option('--c').type.value == 'number'
    assert reg.find_by_option('--nope') is None

    with pytest.raises(ValueError, match='expected Flag, flag definition mapping'):
        reg.add('d', bogus=True)


def test_registry_duplicate_name_warns(caplog):
    reg = FlagRegistry()
    reg.add(Flag('f1'))
    with caplog.at_level(logging.WARNING, logger='switchyard.flags'):
        assert reg.add(Flag('f1', options=['--other'])) is None

    assert 'duplicate definition for flag name' in caplog.text
    assert reg.get_names() == ['f1']
    assert len(reg) == 1
    assert reg.find_by_option('--other') is None


def test_registry_duplicate_raises():
    reg = FlagRegistry(throw_for_duplicates=True)
    reg.add('f1')

    with pytest.raises(DuplicateFlagDefinition, match='f1'):
        reg.add({'name': 'f1'})
    with pytest.raises(OptionCollision, match="'--f1'"):
        reg.add(Flag('f2', options=['-f', '--f1']))

    # failed additions leave no trace
    assert reg.get_names() == ['f1']
    assert reg.find_by_option('-f') is None

    # registration errors are also ValueErrors
    assert issubclass(DuplicateFlagDefinition, ValueError)
    assert issubclass(OptionCollision, ValueError)


def test_registry_option_collision_warns(caplog):
    reg = FlagRegistry()
    verbose = reg.add(Flag('verbose', options=['-v', '--verbose']))
    with caplog.at_level(logging.WARNING, logger='switchyard.flags'):
        version = reg.add(Flag('version', options=['-v', '--version']))

    assert 'already used by flag' in caplog.text
    assert version is not None
    assert reg.find_by_option('-v') is verbose
    assert reg.find_by_option('--version') is version
    assert reg.get_collisions() == [('-v', 'verbose', 'version')]


def test_registry_remove():
    reg = FlagRegistry([Flag('a', options=['-a', '--alpha']), Flag('b')])

    assert reg.remove('a') is True
    assert 'a' not in reg
    assert reg.find_by_option('-a') is None
    assert reg.find_by_option('--alpha') is None
    assert reg.remove('a') is False

    # the options are free to be claimed again
    reg.add(Flag('c', options=['-a']))
    assert reg.find_by_option('-a').name == 'c'


def test_registry_inherit():
    local_x = Flag('x', options=['-x'])
    reg = FlagRegistry([local_x])

    assert reg.inherit(Flag('x', options=['--ex'])) is False
    assert reg.get('x') is local_x
    assert reg.find_by_option('--ex') is None

    inherited_y = Flag('y', options=['-x', '-y'])
    assert reg.inherit(inherited_y) is True
    assert reg.get('y') is inherited_y
    assert reg.find_by_option('-x') is local_x
    assert reg.find_by_option('-y') is inherited_y
    assert reg.is_inherited('y')
    assert not reg.is_inherited('x')
    assert reg.get_collisions() == []
