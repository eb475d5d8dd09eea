import abc
import json
import os
import subprocess

from collections import namedtuple

from logzero import logger
from multiprocessing import Process, Queue
from queue import Empty

from fabric import Connection, Config
from paramiko import AuthenticationException

from chaosexp.common import (
    CODE_EXEC_COMMAND_ERROR, CODE_OK, DEFAULT_CHAOS_COMMAND_TIMEOUT
)

Result = namedtuple('Result', ['return_code', 'stdout', 'stderr'])


class Response(namedtuple('Response', ['code', 'success', 'err', 'result'])):
    """
    The outcome of executing (or failing to execute) an experiment.

    Produced by an executor and consumed once by the create/destroy commands.
    """
    __slots__ = ()

    @classmethod
    def ok(cls, result=None):
        return cls(CODE_OK, True, "", result)

    @classmethod
    def fail(cls, code: int, err: str, result=None):
        return cls(code, False, err, result)

    def to_dict(self) -> dict:
        rtn = {'code': self.code, 'success': self.success}
        if self.err:
            rtn['error'] = self.err
        if self.result is not None:
            rtn['result'] = self.result
        return rtn

    def print(self) -> str:
        return json.dumps(self.to_dict())


class CommandChannel(object, metaclass=abc.ABCMeta):
    """
    Where the commands of an executor are run.
    """

    def run(self, command: str, as_sudo=False,
            timeout: int = DEFAULT_CHAOS_COMMAND_TIMEOUT) -> Result:
        logger.debug("channel %s running >%s< (sudo: %s, timeout: %s)",
                     self.name, command, as_sudo, timeout)
        return self._run(command, as_sudo=as_sudo, timeout=timeout)

    @property
    def name(self) -> str:
        return type(self).__name__

    @abc.abstractmethod
    def _run(self, command: str, as_sudo=False, timeout=None) -> Result:
        raise NotImplementedError('users must define _run to use this base class')


class LocalChannel(CommandChannel):
    """
    Run commands on the local host through /bin/sh.
    """

    def _run(self, command: str, as_sudo=False, timeout=None) -> Result:
        if as_sudo:
            command = "sudo {}".format(command)
        try:
            rtn = subprocess.run(command, shell=True, stdout=subprocess.PIPE,
                                 stderr=subprocess.PIPE, timeout=timeout)
        except subprocess.TimeoutExpired:
            raise Exception("Local execution has exceeded timeout")
        stdout = rtn.stdout.decode('utf-8', errors='replace') if rtn.stdout else ""
        stderr = rtn.stderr.decode('utf-8', errors='replace') if rtn.stderr else ""
        return Result(rtn.returncode, stdout, stderr)


class FabricChannel(CommandChannel):
    """
    Run commands on a remote host over ssh.

    Connection details (user, hostname, identity file) may come from an ssh
    config file in addition to the arguments given here.
    """
    @staticmethod
    def _multiprocess_execute_on_host(q, host, action, config, user=None, as_sudo=False, connect_kwargs=None):
        with Connection(host, config=config, user=user, connect_kwargs=connect_kwargs) as c:
            if as_sudo:
                rtn = c.sudo(action, hide=True, warn=True)
            else:
                rtn = c.run(action, hide=True, warn=True)

            q.put(Result(rtn.return_code, rtn.stdout, rtn.stderr))

    config = None

    def __init__(self, host: str, user: str = None, ssh_config_file=None,
                 identity_file=None):
        self.host = host
        self.user = user
        self.config = FabricChannel._create_config(ssh_config_file=ssh_config_file)
        self.connect_kwargs = FabricChannel._collect_connect_kwargs(identity_file)

    @property
    def name(self) -> str:
        return "{}({})".format(type(self).__name__, self.host)

    @staticmethod
    def _create_config(ssh_config_file=None):
        if ssh_config_file:
            FabricChannel._is_readable_file(ssh_config_file, 'ssh_config')
        return Config(runtime_ssh_path=ssh_config_file)

    @staticmethod
    def _is_readable_file(path, file_kind):
        if not isinstance(path, str):
            raise ValueError("path to file must be a string")

        if os.access(path, os.R_OK):
            if os.path.isfile(path):
                return
            else:
                raise OSError("Path is not to a file -- '%s'" % str(path))
        else:
            raise OSError("Unable to access the file (not readable) -- %s -- '%s'" % (file_kind, path))

    @staticmethod
    def _collect_connect_kwargs(identity_file):
        connect_kwargs = {}

        if identity_file:
            FabricChannel._is_readable_file(identity_file, 'identity_file')
            connect_kwargs['key_filename'] = identity_file

        if not connect_kwargs:
            connect_kwargs = None

        return connect_kwargs

    def _run(self, command: str, as_sudo=False, timeout=None) -> Result:
        p = None
        q = Queue()
        try:
            # Paramiko does not always clean up after itself, so each
            # connection lives in its own process.
            p = Process(target=FabricChannel._multiprocess_execute_on_host,
                        args=(q, self.host, command, self.config),
                        kwargs={'user': self.user, "as_sudo": as_sudo,
                                "connect_kwargs": self.connect_kwargs})
            p.start()
            p.join(timeout=timeout)
            if p.is_alive():
                raise Exception("Remote execution has exceeded timeout")
            rtn = q.get(timeout=0.1)
        except AuthenticationException as e:
            raise e
        except Empty:
            raise Exception("Remote execution did not provide results")
        finally:
            if p:
                p.terminate()

        return rtn


class ExperimentExecutor(object, metaclass=abc.ABCMeta):
    """
    Performs the fault injection described by an experiment model.

    Executors never raise for experiment failures. They return a failed
    Response instead.
    """
    channel = None

    def set_channel(self, channel: CommandChannel):
        self.channel = channel

    def exec(self, uid: str, ctx: dict, model) -> Response:
        if self.channel is None:
            self.channel = LocalChannel()
        logger.debug("executing experiment %s with %s", uid, type(self).__name__)
        try:
            return self._exec(uid, ctx, model)
        except Exception as e:
            logger.error("Executor %s raised while executing %s",
                         type(self).__name__, uid)
            logger.exception(e)
            return Response.fail(CODE_EXEC_COMMAND_ERROR, str(e))

    @abc.abstractmethod
    def _exec(self, uid: str, ctx: dict, model) -> Response:
        raise NotImplementedError('users must define _exec to use this base class')
