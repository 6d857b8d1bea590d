# Design (and some implementation) of this owes heavily to Click's
# CliRunner

import io
import os
import sys
import shlex
import contextlib


def make_input_stream(input, encoding):
    if input is None:
        input = b''
    elif isinstance(input, str):
        input = input.encode(encoding)
    elif not isinstance(input, bytes):
        raise TypeError('expected bytes, text, or None, not: %r' % input)
    return io.BytesIO(input)


@contextlib.contextmanager
def patched_environ(env):
    """Temporarily apply *env* to ``os.environ``. A value of None
    unsets that variable. Everything touched is restored on exit.
    """
    saved = dict([(key, os.environ.get(key)) for key in env])
    try:
        _apply_env(os.environ, env)
        yield os.environ
    finally:
        _apply_env(os.environ, saved)


def _apply_env(environ, env):
    for key, value in env.items():
        if value is None:
            environ.pop(key, None)
        else:
            environ[key] = value
    return


@contextlib.contextmanager
def working_directory(path):
    if not path:
        yield
        return
    old_cwd = os.getcwd()
    os.chdir(str(path))
    try:
        yield
    finally:
        os.chdir(old_cwd)


class CapturedStreams(object):
    "The byte buffers behind an isolated stdout and stderr."
    def __init__(self, encoding, mix_stderr=False):
        self.encoding = encoding
        self.stdout_buffer = io.BytesIO()
        self.stderr_buffer = None if mix_stderr else io.BytesIO()

    @contextlib.contextmanager
    def installed(self, input=None):
        old_streams = sys.stdin, sys.stdout, sys.stderr
        sys.stdin = io.TextIOWrapper(make_input_stream(input, self.encoding),
                                     encoding=self.encoding)
        sys.stdout = io.TextIOWrapper(self.stdout_buffer, encoding=self.encoding)
        if self.stderr_buffer is None:
            sys.stderr = sys.stdout
        else:
            sys.stderr = io.TextIOWrapper(self.stderr_buffer, encoding=self.encoding)
        try:
            yield self
        finally:
            self.flush()
            sys.stdin, sys.stdout, sys.stderr = old_streams

    def flush(self):
        sys.stdout.flush()
        sys.stderr.flush()

    def get_values(self):
        "Returns (stdout_bytes, stderr_bytes), the latter None if mixed"
        self.flush()
        stderr_bytes = None
        if self.stderr_buffer is not None:
            stderr_bytes = self.stderr_buffer.getvalue()
        return self.stdout_buffer.getvalue(), stderr_bytes


class InvokeResult(object):
    """Holds the captured result of an invoked command: the
    :class:`~switchyard.RunResult` (if the command returned one), the
    exit code, and the captured output.
    """
    def __init__(self, test_client, run_result, stdout_bytes, stderr_bytes,
                 exit_code, exc_info):
        self.test_client = test_client
        self.run_result = run_result
        self.stdout_bytes = stdout_bytes
        self.stderr_bytes = stderr_bytes
        self.exit_code = exit_code
        self.exc_info = exc_info  # set if the command raised

    @property
    def exception(self):
        return self.exc_info[1] if self.exc_info else None

    @property
    def kind(self):
        return self.run_result.kind if self.run_result is not None else None

    @property
    def data(self):
        return self.run_result.data if self.run_result is not None else None

    def _decode(self, output):
        return output.decode(self.test_client.encoding, 'replace').replace('\r\n', '\n')

    @property
    def stdout(self):
        "The captured standard output, as text."
        return self._decode(self.stdout_bytes)

    @property
    def stderr(self):
        "The captured standard error, as text, unless mixed into stdout."
        if self.stderr_bytes is None:
            raise ValueError('stderr not separately captured, see mix_stderr')
        return self._decode(self.stderr_bytes)

    def __repr__(self):
        if self.exception is not None:
            return '<%s exception=%r>' % (self.__class__.__name__, self.exception)
        return '<%s kind=%r exit_code=%s>' % (self.__class__.__name__,
                                              self.kind, self.exit_code)


class TestClient(object):
    """Runs a Command with isolated stdin, stdout, stderr, and
    environment variables, for use in tests.

    Args:
       cmd (Command): The command to invoke.
       env (dict): Environment variables set for every invocation. A
          value of None unsets the variable.
       mix_stderr (bool): Capture stderr into stdout. Defaults to False.
       reraise (bool): Reraise exceptions other than SystemExit from
          the command. Defaults to True.
    """
    __test__ = False  # not a pytest test class, despite the name

    def __init__(self, cmd, env=None, mix_stderr=False, reraise=True):
        self.cmd = cmd
        self.base_env = dict(env or {})
        self.mix_stderr = mix_stderr
        self.reraise = reraise
        self.encoding = 'utf8'

    def invoke(self, args, input=None, env=None, chdir=None):
        """Run the command with *args*, a list of strings or a single
        shell-quoted string, and return an :class:`InvokeResult`.
        *env* is applied on top of the client's environment.
        """
        if isinstance(args, str):
            args = shlex.split(args)
        full_env = dict(self.base_env, **(env or {}))
        streams = CapturedStreams(self.encoding, mix_stderr=self.mix_stderr)

        run_result, exit_code, exc_info = None, 0, None
        with patched_environ(full_env), working_directory(chdir), streams.installed(input):
            try:
                run_result = self.cmd.run(list(args or ()))
                exit_code = run_result.exit_code
            except SystemExit as se:
                exc_info = sys.exc_info()
                exit_code = _get_exit_code(se)
            except Exception:
                if self.reraise:
                    raise
                exc_info = sys.exc_info()
                exit_code = 1
            stdout_bytes, stderr_bytes = streams.get_values()

        return InvokeResult(test_client=self,
                            run_result=run_result,
                            stdout_bytes=stdout_bytes,
                            stderr_bytes=stderr_bytes,
                            exit_code=exit_code,
                            exc_info=exc_info)


def _get_exit_code(system_exit):
    code = system_exit.code
    if code is None:
        return 0
    if not isinstance(code, int):
        sys.stdout.write('%s\n' % (code,))
        return 1
    return code
