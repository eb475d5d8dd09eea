import shlex

from contextlib import contextmanager

from chaosexp.actions import ExpActionCommandSpec
from chaosexp.execute.execute import ExperimentExecutor, Response
from chaosexp.flags import ExpFlagSpec


@contextmanager
def patch(owner, attr, value):
    """Monkey patch context manager.

    with patch(os, 'open', myopen):
        ...
    """
    old = getattr(owner, attr)
    setattr(owner, attr, value)
    try:
        yield getattr(owner, attr)
    finally:
        setattr(owner, attr, old)


class FakeExecutor(ExperimentExecutor):
    """Returns a canned response and remembers every call."""

    def __init__(self, response=None, raises=None):
        self.response = response or Response.ok()
        self.raises = raises
        self.calls = []

    def _exec(self, uid, ctx, model):
        self.calls.append((uid, dict(ctx), model))
        if self.raises:
            raise self.raises
        return self.response


class FakeActionSpec(ExpActionCommandSpec):

    def __init__(self, name="fullload", flags=None, executor=None):
        self.name = name
        self.desc = "fake {}".format(name)
        self._flags = flags if flags is not None else [
            ExpFlagSpec("cpu-percent", "percent of cpu to burn", required=True),
            ExpFlagSpec("climb", "climb slowly", no_args=True),
        ]
        self._executor = executor or FakeExecutor()

    def flags(self):
        return list(self._flags)

    def executor(self):
        return self._executor


class FakeLauncher(object):
    """Stands in for subprocess.run."""

    def __init__(self, raises=None, returncode=0):
        self.raises = raises
        self.returncode = returncode
        self.calls = []

    def __call__(self, command, **kwargs):
        self.calls.append((command, kwargs))
        if self.raises:
            raise self.raises
        return self


def detached_script(command):
    """The script a DestroyScheduler command leaves running in the background."""
    assert command[:2] == ["/bin/sh", "-c"]
    tokens = shlex.split(command[2])
    assert tokens[:3] == ["nohup", "/bin/sh", "-c"]
    assert tokens[4:] == [">", "/dev/null", "2>&1", "&"]
    return tokens[3]


class FailingStore(object):
    """A store whose writes always fail."""

    def __init__(self, fail_record=True, fail_update=True):
        self.fail_record = fail_record
        self.fail_update = fail_update
        self.updates = []

    def record_experiment(self, command_path, model, uid=None):
        if self.fail_record:
            raise RuntimeError("disk full")
        return model.with_uid(uid or "abc123")

    def update_status_by_uid(self, uid, status, error=""):
        self.updates.append((uid, status, error))
        if self.fail_update:
            raise RuntimeError("disk full")

    def query_by_uid(self, uid):
        raise RuntimeError("disk full")
