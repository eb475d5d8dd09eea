import json
import os
import queue
import tempfile
import pytest

import chaosexp.execute.execute as execute
from chaosexp.common import CODE_EXEC_COMMAND_ERROR, CODE_OK
from chaosexp.execute.execute import *
from test import FakeExecutor, patch


def noop_do_execute(*args, **kwargs):
    args[0].put(Result(return_code=0, stdout='chaos\n', stderr=''))


class InlineProcess(object):
    """Runs the target in the calling process."""

    def __init__(self, target=None, args=(), kwargs=None):
        self.target = target
        self.args = args
        self.kwargs = kwargs or {}

    def start(self):
        self.target(*self.args, **self.kwargs)

    def join(self, timeout=None):
        pass

    def is_alive(self):
        return False

    def terminate(self):
        pass


class HungProcess(InlineProcess):

    def start(self):
        pass

    def is_alive(self):
        return True


def run_inline(channel, command, process=InlineProcess, **kwargs):
    with patch(execute, 'Process', process), \
         patch(execute, 'Queue', queue.Queue), \
         patch(FabricChannel, '_multiprocess_execute_on_host', noop_do_execute):
        return channel.run(command, **kwargs)


def test_verify_identity_file():

    with pytest.raises(ValueError):
        FabricChannel._is_readable_file(None, "test")

    with pytest.raises(ValueError):
        FabricChannel._is_readable_file(['/tmp/test/'], "test")

    with pytest.raises(ValueError):
        FabricChannel._is_readable_file(1, "test")

    with pytest.raises(OSError):
        FabricChannel._is_readable_file(str(tempfile.gettempdir()), "test")

    with tempfile.NamedTemporaryFile() as f:
        FabricChannel._is_readable_file(f.name, "test")


def test_collect_connect_kwargs():
    assert FabricChannel._collect_connect_kwargs(None) is None
    with tempfile.NamedTemporaryFile() as f:
        rtn = FabricChannel._collect_connect_kwargs(f.name)
        assert rtn == {'key_filename': f.name}


def test_simple_fabric_test():
    with tempfile.NamedTemporaryFile(mode='w') as f:
        f.write("")
        f.flush()
        channel = FabricChannel('Node1', user='ubuntu', identity_file=f.name)
        rtn = run_inline(channel, 'echo "chaos"')
        assert rtn.return_code == 0
        assert rtn.stdout == 'chaos\n'


def test_ssh_config():
    ssh_config = """Host Node1
User ubuntu
IdentityFile /tmp/chaos-pool.pem"""
    with tempfile.NamedTemporaryFile(mode='w') as f:
        f.write(ssh_config)
        f.flush()

        channel = FabricChannel('Node1', ssh_config_file=f.name)
        rtn = run_inline(channel, 'echo "chaos"', as_sudo=True)
        assert rtn.return_code == 0


def test_fabric_timeout():
    channel = FabricChannel('Node1')
    with pytest.raises(Exception, match="exceeded timeout"):
        run_inline(channel, 'sleep 100', process=HungProcess, timeout=1)


def test_local_channel():
    rtn = LocalChannel().run('echo chaos; echo oops >&2; exit 3')
    assert rtn.return_code == 3
    assert rtn.stdout == 'chaos\n'
    assert rtn.stderr == 'oops\n'


def test_local_channel_undecodable_output():
    rtn = LocalChannel().run("printf '\\377ok'; printf '\\376' >&2; exit 0")
    assert rtn.return_code == 0
    assert rtn.stdout == "\ufffdok"
    assert rtn.stderr == "\ufffd"


def test_local_channel_timeout():
    with pytest.raises(Exception, match="exceeded timeout"):
        LocalChannel().run('sleep 5', timeout=0.2)


def test_response_print():
    assert json.loads(Response.ok('abc123').print()) == {
        'code': CODE_OK, 'success': True, 'result': 'abc123'}
    assert json.loads(Response.fail(CODE_EXEC_COMMAND_ERROR, 'boom').print()) == {
        'code': CODE_EXEC_COMMAND_ERROR, 'success': False, 'error': 'boom'}


def test_executor_defaults_to_local_channel():
    executor = FakeExecutor()
    executor.exec('abc123', {}, None)
    assert isinstance(executor.channel, LocalChannel)


def test_executor_exception_is_failed_response():
    executor = FakeExecutor(raises=RuntimeError("kaboom"))
    rtn = executor.exec('abc123', {}, None)
    assert not rtn.success
    assert rtn.code == CODE_EXEC_COMMAND_ERROR
    assert rtn.err == "kaboom"
