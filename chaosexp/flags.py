import argparse

from collections import namedtuple
from logzero import logger
from typing import Callable, Dict, List

from chaosexp.common import TIMEOUT_FLAG
from chaosexp.errors import InvalidArgument

ExpFlagSpec = namedtuple('ExpFlagSpec', ['name', 'desc', 'required', 'no_args'],
                         defaults=("", False, False))

TIMEOUT_FLAG_SPEC = ExpFlagSpec(TIMEOUT_FLAG,
                                "set timeout for experiment in seconds")


def with_timeout_flag(spec_flags: List[ExpFlagSpec]) -> List[ExpFlagSpec]:
    """
    Append the timeout flag unless the action already declares one.
    """
    if any(flag.name == TIMEOUT_FLAG for flag in spec_flags):
        return list(spec_flags)
    return list(spec_flags) + [TIMEOUT_FLAG_SPEC]


class FlagBinder(object):
    """
    Binds action flag specs to an argparse parser.

    bind() registers every flag with the parser and fills command_flags with
    one accessor per flag. The accessors read from the namespace handed to
    resolve(), so a binder (and the mapping it filled) belongs to a single
    command invocation.
    """
    dest_prefix = "action_flag_"

    def __init__(self):
        self.namespace = None

    def bind(self, command_flags: Dict[str, Callable[[], str]],
             parser: argparse.ArgumentParser,
             spec_flags: List[ExpFlagSpec]) -> None:
        """
        Register spec_flags with parser and fill command_flags.

        :raises InvalidArgument: a flag clashes with an option the parser
            already has, or two flags map to the same name once '-' and '_'
            are treated alike
        """
        dests = {}
        for flag in spec_flags:
            desc = flag.desc
            if flag.required:
                desc = "{} (required)".format(desc)
            dest = self.dest(flag.name)
            if dest in dests:
                raise InvalidArgument("flag --{} clashes with flag --{}".format(
                    flag.name, dests[dest]))
            dests[dest] = flag.name
            try:
                if flag.no_args:
                    parser.add_argument("--{}".format(flag.name), dest=dest,
                                        action="store_true", default=False,
                                        required=flag.required, help=desc)
                else:
                    parser.add_argument("--{}".format(flag.name), dest=dest,
                                        default="", required=flag.required,
                                        help=desc)
            except argparse.ArgumentError as e:
                raise InvalidArgument("flag --{} clashes with a reserved "
                                      "option: {}".format(flag.name, e)) from e
            if flag.no_args:
                command_flags[flag.name] = self._bool_accessor(dest)
            else:
                command_flags[flag.name] = self._string_accessor(dest)
            logger.debug("bound flag %s (required: %s, no args: %s)",
                         flag.name, flag.required, flag.no_args)

    def resolve(self, namespace: argparse.Namespace) -> None:
        self.namespace = namespace

    def dest(self, flag_name: str) -> str:
        return self.dest_prefix + flag_name.replace("-", "_")

    def _value(self, dest, default):
        if self.namespace is None:
            return default
        value = getattr(self.namespace, dest, default)
        return default if value is None else value

    def _bool_accessor(self, dest):
        def accessor():
            return "true" if self._value(dest, False) else "false"
        return accessor

    def _string_accessor(self, dest):
        def accessor():
            return str(self._value(dest, ""))
        return accessor
