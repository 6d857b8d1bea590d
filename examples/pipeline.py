#!/usr/bin/env python
"""pipeline runs one phase of a small batch-processing job.

Example commands:

  ./pipeline.py run --phase chunking --batch 3
  ./pipeline.py run --phase analysis --workers 8
  PIPELINE_WORKDIR=/tmp/job ./pipeline.py status -v

The chunking and pairing phases work on one batch at a time, so
--batch is required for them. The analysis phase covers every batch.

See pipeline.py -h for more options.
"""

import os
import asyncio

from switchyard import Command, Flag, Plugin, PluginRegistry


PHASES = ['chunking', 'pairing', 'analysis']


def _check_workers(value):
    if value < 1:
        return 'expected at least one worker'
    return True


class VersionPlugin(Plugin):
    "Adds a --version flag to the command it's installed on."
    name = 'version'

    def __init__(self, version):
        self.version = version

    def install(self, cmd):
        cmd.add(Flag('version', options=['-V', '--version'], type='boolean',
                     flag_only=True, doc='print the version and exit'))


def main():
    cmd = Command(_root, 'pipeline', doc=__doc__.splitlines()[0],
                  plugins=PluginRegistry([VersionPlugin('0.1.0')]),
                  flags=[Flag('workdir', env='PIPELINE_WORKDIR', default='.',
                              doc='directory holding the batch files'),
                         Flag('verbose', options=['-v', '--verbose'], type='boolean',
                              flag_only=True, doc='more output')])

    run_cmd = Command(run, inherit='direct-parent-only')
    run_cmd.add(Flag('phase', mandatory=True, enum=PHASES, doc='which phase to run'))
    run_cmd.add(Flag('batch', type='number',
                     mandatory=lambda parsed: parsed.get('phase') != 'analysis',
                     doc='the batch number to process'))
    run_cmd.add(Flag('workers', type='number', default=4, env='PIPELINE_WORKERS',
                     validate=_check_workers, doc='number of concurrent workers'))
    run_cmd.add(Flag('tag', allow_multiple=True, doc='label the results'))
    cmd.add(run_cmd)

    cmd.add(Command(status, inherit=True))

    cmd.main()


def _root(ctx):
    if ctx.args.get('version'):
        print('pipeline %s' % ctx.command.plugins.get('version').version)
    else:
        print('choose a subcommand, see pipeline.py -h')


async def run(ctx):
    "Run a single phase"
    args = ctx.args
    batches = [args['batch']] if 'batch' in args else _list_batches(args['workdir'])
    sem = asyncio.Semaphore(args['workers'])

    async def _process(batch):
        async with sem:
            await asyncio.sleep(0)
            if args.get('verbose'):
                print('%s: processed batch %s' % (args['phase'], batch))
            return batch

    done = await asyncio.gather(*[_process(b) for b in batches])
    print('%s complete: %s batch(es) %s' % (args['phase'], len(done),
                                             ', '.join(args.get('tag') or [])))
    return done


def status(ctx):
    "Show which batches are waiting in the working directory"
    batches = _list_batches(ctx.args['workdir'])
    if ctx.args.get('verbose'):
        for batch in batches:
            print('batch %s' % batch)
    print('%s batch(es) in %s' % (len(batches), ctx.args['workdir']))
    return batches


def _list_batches(workdir):
    ret = []
    for fn in sorted(os.listdir(workdir)):
        base, ext = os.path.splitext(fn)
        if ext == '.batch' and base.isdigit():
            ret.append(int(base))
    return ret


if __name__ == '__main__':
    main()
