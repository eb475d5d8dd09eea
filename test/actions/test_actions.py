import json
import pytest

from chaosexp.actions import (
    ActionSpecRegistry, CommandActionSpec, CommandExecutor, load_action_specs
)
from chaosexp.common import CODE_EXEC_COMMAND_ERROR, CODE_ILLEGAL_PARAMETERS
from chaosexp.errors import ActionNotFound, InvalidArgument
from chaosexp.execute.execute import CommandChannel, Result
from chaosexp.flags import ExpFlagSpec
from chaosexp.model import ExperimentModel

ACTIONS = [
    {"target": "cpu", "scope": "host", "action": "fullload", "desc": "burn cpu",
     "flags": [{"name": "cpu-percent", "desc": "percent", "required": True}],
     "create": "burn --percent {cpu-percent}",
     "destroy": "pkill burn"},
    {"target": "process", "action": "kill",
     "flags": [{"name": "process", "desc": "name"},
               {"name": "ignore-not-found", "desc": "ignore", "no_args": True}],
     "create": "pkill {process}", "sudo": True},
]


class RecordingChannel(CommandChannel):

    def __init__(self, result=Result(0, "done\n", "")):
        self.result = result
        self.commands = []

    def _run(self, command, as_sudo=False, timeout=None):
        self.commands.append((command, as_sudo))
        return self.result


@pytest.fixture
def spec_file(tmp_path):
    path = tmp_path / "actions.json"
    path.write_text(json.dumps(ACTIONS))
    return str(path)


def test_load_action_specs(spec_file):
    registry = load_action_specs(spec_file)
    assert registry.keys() == [("cpu", "host", "fullload"),
                               ("process", "host", "kill")]
    spec = registry.lookup("process", "host", "kill")
    assert spec.flags() == [ExpFlagSpec("process", "name", False, False),
                            ExpFlagSpec("ignore-not-found", "ignore", False, True)]


def test_registry_adds_timeout_flag(spec_file):
    registry = load_action_specs(spec_file)
    names = [f.name for f in registry.flags("cpu", "host", "fullload")]
    assert names == ["cpu-percent", "timeout"]


def test_missing_spec_file(tmp_path):
    assert len(load_action_specs(str(tmp_path / "missing.json"))) == 0


def test_invalid_spec_file(tmp_path):
    path = tmp_path / "actions.json"
    path.write_text('[{"target": "cpu"}]')
    with pytest.raises(InvalidArgument):
        load_action_specs(str(path))


def test_unknown_action():
    with pytest.raises(ActionNotFound):
        ActionSpecRegistry().lookup("cpu", "host", "fullload")


def test_duplicate_registration():
    registry = ActionSpecRegistry()
    registry.register("cpu", "host", CommandActionSpec("fullload", [], "true"))
    with pytest.raises(ValueError):
        registry.register("cpu", "host", CommandActionSpec("fullload", [], "true"))


def test_command_executor_create_and_destroy():
    model = ExperimentModel("cpu", "host", "fullload", {"cpu-percent": "60"},
                            uid="abc123")
    channel = RecordingChannel()
    executor = CommandExecutor("burn --percent {cpu-percent} --tag {uid}",
                               destroy="pkill -f {uid}", as_sudo=True)
    executor.set_channel(channel)

    rtn = executor.exec("abc123", {'destroy': False}, model)
    assert rtn.success
    assert rtn.result == "done"
    rtn = executor.exec("abc123", {'destroy': True}, model)
    assert rtn.success
    assert channel.commands == [("burn --percent 60 --tag abc123", True),
                                ("pkill -f abc123", True)]


def test_command_executor_without_destroy_template():
    channel = RecordingChannel()
    executor = CommandExecutor("burn")
    executor.set_channel(channel)
    rtn = executor.exec("abc123", {'destroy': True},
                        ExperimentModel("cpu", "host", "fullload"))
    assert rtn.success
    assert channel.commands == []


def test_command_executor_failure():
    executor = CommandExecutor("burn")
    executor.set_channel(RecordingChannel(Result(1, "", "burn: not found\n")))
    rtn = executor.exec("abc123", {}, ExperimentModel("cpu", "host", "fullload"))
    assert not rtn.success
    assert rtn.code == CODE_EXEC_COMMAND_ERROR
    assert rtn.err == "burn: not found"


def test_command_executor_unknown_flag():
    executor = CommandExecutor("burn {cpu-count}")
    executor.set_channel(RecordingChannel())
    rtn = executor.exec("abc123", {}, ExperimentModel("cpu", "host", "fullload"))
    assert not rtn.success
    assert rtn.code == CODE_ILLEGAL_PARAMETERS


def test_command_executor_quotes_values():
    model = ExperimentModel("file", "host", "touch",
                            {"path": "/tmp/my file; rm -rf ~", "empty": ""},
                            uid="abc123")
    channel = RecordingChannel()
    executor = CommandExecutor("touch {path} {empty}", destroy="rm -f {path}")
    executor.set_channel(channel)

    assert executor.exec("abc123", {'destroy': False}, model).success
    assert executor.exec("abc123", {'destroy': True}, model).success
    assert channel.commands == [("touch '/tmp/my file; rm -rf ~' ''", False),
                                ("rm -f '/tmp/my file; rm -rf ~'", False)]


def test_command_executor_undecodable_output():
    executor = CommandExecutor("printf '\\377ok'")
    rtn = executor.exec("abc123", {}, ExperimentModel("cpu", "host", "fullload"))
    assert rtn.success
    assert rtn.result == "\ufffdok"
