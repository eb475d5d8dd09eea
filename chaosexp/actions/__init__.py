"""
Chaos 'actions' module.

An action is identified by its target, scope and name, e.g. ``cpu host
fullload``. Each action supplies the flags it accepts and the executor that
performs it. Actions are looked up in an ActionSpecRegistry; the command line
builds one registry per invocation from an action spec file.

An action spec file is a JSON list. Each entry describes one action and the
shell commands that create and destroy it::

    [{"target": "cpu", "scope": "host", "action": "fullload",
      "desc": "burn cpu",
      "flags": [{"name": "cpu-percent", "desc": "percent to burn",
                 "required": true}],
      "create": "stress-ng --cpu 0 --cpu-load {cpu-percent} &",
      "destroy": "pkill stress-ng"}]

Commands are formatted with the experiment's flags and run over the channel
the executor is bound to. Every value (and {uid}) is shell-quoted before it is
substituted, so templates must not quote placeholders themselves.
"""
import abc
import json
import shlex

from logzero import logger
from os.path import expanduser, exists
from typing import Dict, List, Tuple

from chaosexp.common import (
    CODE_EXEC_COMMAND_ERROR, CODE_ILLEGAL_PARAMETERS,
    DEFAULT_CHAOS_COMMAND_TIMEOUT, DEFAULT_CHAOS_SCOPE
)
from chaosexp.errors import ActionNotFound, InvalidArgument
from chaosexp.execute.execute import ExperimentExecutor, Response
from chaosexp.flags import ExpFlagSpec, with_timeout_flag


class ExpActionCommandSpec(object, metaclass=abc.ABCMeta):
    """
    The capability every action provides: its flags and its executor.
    """
    name = None
    desc = ""

    @abc.abstractmethod
    def flags(self) -> List[ExpFlagSpec]:
        raise NotImplementedError('users must define flags to use this base class')

    @abc.abstractmethod
    def executor(self) -> ExperimentExecutor:
        raise NotImplementedError('users must define executor to use this base class')


class ActionSpecRegistry(object):
    """
    Action specs keyed by (target, scope, action).
    """

    def __init__(self):
        self._specs = {}

    def register(self, target: str, scope: str, spec: ExpActionCommandSpec):
        key = (target, scope, spec.name)
        if key in self._specs:
            raise ValueError("action {} {} {} is already registered".format(*key))
        logger.debug("registering action %s %s %s", *key)
        self._specs[key] = spec

    def lookup(self, target: str, scope: str, action: str) -> ExpActionCommandSpec:
        try:
            return self._specs[(target, scope, action)]
        except KeyError:
            raise ActionNotFound("unknown action: {} {} {}".format(
                target, scope, action))

    def flags(self, target: str, scope: str, action: str) -> List[ExpFlagSpec]:
        """
        The flags of an action including the implicit timeout flag.
        """
        return with_timeout_flag(self.lookup(target, scope, action).flags())

    def keys(self) -> List[Tuple[str, str, str]]:
        return sorted(self._specs.keys())

    def __len__(self):
        return len(self._specs)

    def __contains__(self, key):
        return key in self._specs


class CommandExecutor(ExperimentExecutor):
    """
    Runs a shell command template over the bound channel.

    ctx['destroy'] selects the destroy template instead of the create one.
    """

    def __init__(self, create: str, destroy: str = None, as_sudo=False,
                 command_timeout: int = DEFAULT_CHAOS_COMMAND_TIMEOUT):
        self.create = create
        self.destroy = destroy
        self.as_sudo = as_sudo
        self.command_timeout = command_timeout

    def _exec(self, uid: str, ctx: dict, model) -> Response:
        template = self.destroy if ctx.get('destroy') else self.create
        if not template:
            logger.info("Nothing to run for experiment %s", uid)
            return Response.ok(uid)
        try:
            values = dict(model.action_flags, uid=uid)
            command = template.format(**{k: shlex.quote(v) for k, v in values.items()})
        except (KeyError, IndexError, ValueError) as e:
            logger.error("Unable to format command >%s< with flags %s",
                         template, model.action_flags)
            return Response.fail(CODE_ILLEGAL_PARAMETERS,
                                 "unable to format command: {}".format(e))

        result = self.channel.run(command, as_sudo=self.as_sudo,
                                  timeout=self.command_timeout)
        if result.return_code != 0:
            logger.error("Command >%s< failed with a return code of %d",
                         command, result.return_code)
            err = result.stderr.strip() or \
                "command exited with {}".format(result.return_code)
            return Response.fail(CODE_EXEC_COMMAND_ERROR, err)
        return Response.ok(result.stdout.strip())


class CommandActionSpec(ExpActionCommandSpec):
    """
    An action described by an entry in an action spec file.
    """

    def __init__(self, name: str, flags: List[ExpFlagSpec], create: str,
                 destroy: str = None, desc: str = "", as_sudo=False):
        self.name = name
        self.desc = desc
        self._flags = list(flags)
        self._create = create
        self._destroy = destroy
        self._as_sudo = as_sudo

    def flags(self) -> List[ExpFlagSpec]:
        return list(self._flags)

    def executor(self) -> ExperimentExecutor:
        return CommandExecutor(self._create, destroy=self._destroy,
                               as_sudo=self._as_sudo)


def _parse_flag(entry: Dict) -> ExpFlagSpec:
    return ExpFlagSpec(entry['name'], entry.get('desc', ""),
                       bool(entry.get('required', False)),
                       bool(entry.get('no_args', False)))


def load_action_specs(spec_file: str,
                      registry: ActionSpecRegistry = None) -> ActionSpecRegistry:
    """
    Load the actions described by a JSON action spec file into a registry.

    A missing file yields an empty registry.

    :param spec_file: The relative or absolute path to the action spec file.
        Required.
    :type spec_file: str
    :param registry: The registry to add to. A new registry is created when
        not given.
        Optional. (Default: None)
    :type registry: ActionSpecRegistry
    :return: ActionSpecRegistry
    :raises InvalidArgument: if the file is not a valid action spec file
    """
    if registry is None:
        registry = ActionSpecRegistry()
    spec_file = expanduser(spec_file)
    if not exists(spec_file):
        logger.debug("Action spec file %s does not exist", spec_file)
        return registry

    try:
        with open(spec_file, 'r') as specfile:
            entries = json.load(specfile)
        for entry in entries:
            spec = CommandActionSpec(entry['action'],
                                     [_parse_flag(f) for f in entry.get('flags', [])],
                                     entry['create'],
                                     destroy=entry.get('destroy'),
                                     desc=entry.get('desc', ""),
                                     as_sudo=bool(entry.get('sudo', False)))
            registry.register(entry['target'], entry.get('scope', DEFAULT_CHAOS_SCOPE), spec)
    except (ValueError, KeyError, TypeError) as e:
        logger.error("Failed to load action spec file %s", spec_file)
        logger.exception(e)
        raise InvalidArgument("invalid action spec file {}: {}".format(
            spec_file, e)) from e
    logger.debug("Loaded %d action(s) from %s", len(registry), spec_file)
    return registry
