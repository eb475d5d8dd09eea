from logzero import logger
from typing import Callable, Dict, Union

from chaosexp.common import TIMEOUT_FLAG
from chaosexp.errors import InvalidArgument
from chaosexp.helpers import parse_timeout


class ExperimentModel(object):
    """
    A fault-injection action applied to a target/scope with concrete flags.

    The uid is empty until the store records the model. The store hands back
    a copy carrying the uid; the uid of a model is never changed afterward.
    """

    def __init__(self, target: str, scope: str, action_name: str,
                 action_flags: Dict[str, str] = None, uid: str = ""):
        self.target = target
        self.scope = scope
        self.action_name = action_name
        self.action_flags = dict(action_flags or {})
        self._uid = uid

    @property
    def uid(self) -> str:
        return self._uid

    @property
    def timeout(self) -> str:
        return self.action_flags.get(TIMEOUT_FLAG, "")

    def with_uid(self, uid: str) -> 'ExperimentModel':
        if self._uid:
            raise ValueError("experiment already has uid {}".format(self._uid))
        return ExperimentModel(self.target, self.scope, self.action_name,
                               self.action_flags, uid=uid)

    def to_dict(self) -> dict:
        return {
            'uid': self.uid,
            'target': self.target,
            'scope': self.scope,
            'action': self.action_name,
            'flags': dict(self.action_flags),
        }

    def __eq__(self, other):
        if not isinstance(other, ExperimentModel):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return "ExperimentModel({})".format(self.to_dict())


def build_exp_model(target: str, scope: str, action_name: str,
                    command_flags: Dict[str, Union[Callable[[], str], str]]) -> ExperimentModel:
    """
    Assemble an experiment model from resolved command flags.

    :param target: The fault domain, e.g. "cpu". Required.
    :type target: str
    :param scope: The execution scope, e.g. "host". Required.
    :type scope: str
    :param action_name: The action, e.g. "fullload". Required.
    :type action_name: str
    :param command_flags: Flag name to accessor (or already resolved value).
        See chaosexp.flags.FlagBinder. Required.
    :type command_flags: Dict[str, Union[Callable[[], str], str]]
    :return: ExperimentModel
    :raises InvalidArgument: if the timeout flag is set and is not an
        unsigned 64-bit integer
    """
    action_flags = {}
    for name, value in command_flags.items():
        action_flags[name] = value() if callable(value) else value

    model = ExperimentModel(target, scope, action_name, action_flags)
    timeout = model.timeout
    if timeout != "":
        try:
            parse_timeout(timeout)
        except ValueError as e:
            logger.error("Invalid timeout >%s< for %s %s %s", timeout, target,
                         scope, action_name)
            raise InvalidArgument(
                "illegal timeout value {!r}: {}".format(timeout, e)) from e
    logger.debug("built %r", model)
    return model
