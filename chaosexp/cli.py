import argparse
import logging
import os
import sys

import logzero
from logzero import logger

from chaosexp.actions import ActionSpecRegistry, load_action_specs
from chaosexp.common import (
    Channel, DEFAULT_CHAOS_CHANNEL, DEFAULT_CHAOS_DB_FILE,
    DEFAULT_CHAOS_PROGRAM, DEFAULT_CHAOS_SPEC_FILE,
    DEFAULT_CHAOS_SSH_CONFIG_FILE, UID_FLAG
)
from chaosexp.create import CreateCommand, DestroyScheduler
from chaosexp.destroy import DestroyCommand
from chaosexp.errors import ChaosExpError, InvalidArgument
from chaosexp.execute.execute import FabricChannel, LocalChannel
from chaosexp.flags import FlagBinder
from chaosexp.helpers import get_program_command
from chaosexp.store import SQLExperimentStore

LOG_LEVEL_HELP = """Logging level.
                      [LOG-LEVEL]: notset, debug, info, warning, error, critical
                      Default: info"""
levels = {
    'notset': logging.NOTSET,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL
}


def log_level(v):
    if v.lower() in levels.keys():
        return levels[v.lower()]
    else:
        raise argparse.ArgumentTypeError(
            'Expected one of the following: {}.'.format(
                 ', '.join(levels.keys())))


def channel_name(v):
    if Channel.has_value(v.lower()):
        return v.lower()
    raise argparse.ArgumentTypeError(
        'Expected one of the following: {}.'.format(
            ', '.join(c.value for c in Channel)))


def global_args():
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)

    parser.add_argument('-l', '--log-level', type=log_level, nargs='?',
                        const=logging.INFO, default=logging.INFO,
                        help=LOG_LEVEL_HELP)

    parser.add_argument('--log-file', help='Also log to this file. ' \
                        'Default: None', default=None)

    parser.add_argument('--db-file', help='The SQLite file in which ' \
                        'experiments are recorded. Default: ' \
                        '{}'.format(DEFAULT_CHAOS_DB_FILE),
                        default=DEFAULT_CHAOS_DB_FILE)

    parser.add_argument('--spec-file', help='A JSON file describing the ' \
                        'actions that can be created. Default: ' \
                        '{}'.format(DEFAULT_CHAOS_SPEC_FILE),
                        default=DEFAULT_CHAOS_SPEC_FILE)
    return parser


def channel_args():
    parser = argparse.ArgumentParser(add_help=False, allow_abbrev=False)

    parser.add_argument('--channel', type=channel_name,
                        default=DEFAULT_CHAOS_CHANNEL, help='Where the ' \
                        'experiment runs: local or ssh. Default: ' \
                        '{}'.format(DEFAULT_CHAOS_CHANNEL))

    parser.add_argument('--host', help='The host (or ssh config alias) to ' \
                        'run on. Required when --channel is ssh.',
                        default=None)

    parser.add_argument('--user', help='The ssh user. Default: None',
                        default=None)

    parser.add_argument('--ssh-config-file', help='The ssh config file. ' \
                        'Default: {} if it exists'.format(
                            DEFAULT_CHAOS_SSH_CONFIG_FILE), default=None)

    parser.add_argument('--identity-file', help='The ssh private key. ' \
                        'Default: None', default=None)
    return parser


def create_example():
    return "{} create cpu host fullload --cpu-percent 60".format(
        DEFAULT_CHAOS_PROGRAM)


def add_create_parser(subparsers, registry: ActionSpecRegistry):
    create = subparsers.add_parser('create', aliases=['c'],
                                   help='Create a chaos engineering experiment',
                                   description='Create a chaos engineering ' \
                                   'experiment. Example: ' + create_example())
    create.set_defaults(func=run_create)
    targets = create.add_subparsers(dest='target', metavar='target')
    targets.required = True

    common = channel_args()
    common.add_argument('--{}'.format(UID_FLAG), dest='uid', default="",
                        help='Set uid for the experiment')

    scope_parsers = {}
    for target, scope, action in registry.keys():
        if target not in scope_parsers:
            target_parser = targets.add_parser(target, help='{} experiments'.format(target))
            scope_parsers[target] = (target_parser.add_subparsers(dest='scope', metavar='scope'), {})
            scope_parsers[target][0].required = True
        scopes, action_parsers = scope_parsers[target]
        if scope not in action_parsers:
            scope_parser = scopes.add_parser(scope, help='{} {} experiments'.format(target, scope))
            action_parsers[scope] = scope_parser.add_subparsers(dest='action', metavar='action')
            action_parsers[scope].required = True

        spec = registry.lookup(target, scope, action)
        action_parser = action_parsers[scope].add_parser(action, parents=[common],
                                                         allow_abbrev=False,
                                                         help=spec.desc)
        # Each action gets its own binder and flag mapping.
        command_flags = {}
        binder = FlagBinder()
        try:
            binder.bind(command_flags, action_parser, registry.flags(target, scope, action))
        except InvalidArgument as e:
            raise InvalidArgument("action {} {} {}: {}".format(
                target, scope, action, e.message)) from e
        action_parser.set_defaults(action_spec=spec, binder=binder,
                                   command_flags=command_flags)
    return create


def program_args(registry: ActionSpecRegistry = None):
    if registry is None:
        registry = ActionSpecRegistry()
    parser = argparse.ArgumentParser(prog=DEFAULT_CHAOS_PROGRAM, allow_abbrev=False,
                                     parents=[global_args()])
    subparsers = parser.add_subparsers(dest='command', metavar='command')
    subparsers.required = True

    add_create_parser(subparsers, registry)

    destroy = subparsers.add_parser('destroy', aliases=['d'],
                                    parents=[channel_args()],
                                    help='Destroy a chaos engineering experiment')
    destroy.add_argument('uid', help='The uid of the experiment to destroy')
    destroy.set_defaults(func=run_destroy)

    status = subparsers.add_parser('status', aliases=['s'],
                                   help='Query the status of an experiment')
    status.add_argument('uid', help='The uid of the experiment')
    status.set_defaults(func=run_status)
    return parser


def parse_args(argv=None, registry: ActionSpecRegistry = None):
    return program_args(registry).parse_args(args=argv)


def init(args):
    logzero.loglevel(args.log_level)
    if args.log_file:
        logzero.logfile(os.path.expanduser(args.log_file),
                        loglevel=args.log_level, maxBytes=1000000, backupCount=3)
    logger.debug("Initializing...")
    logger.debug("args: %s", args)


def build_channel(args):
    if args.channel == Channel.LOCAL.value:
        return LocalChannel()

    if not args.host:
        raise InvalidArgument("--host is required when --channel is ssh")
    ssh_config_file = args.ssh_config_file
    if ssh_config_file is None and \
       os.path.isfile(os.path.expanduser(DEFAULT_CHAOS_SSH_CONFIG_FILE)):
        ssh_config_file = DEFAULT_CHAOS_SSH_CONFIG_FILE
    identity_file = args.identity_file
    try:
        return FabricChannel(args.host, user=args.user,
            ssh_config_file=os.path.expanduser(ssh_config_file) if ssh_config_file else None,
            identity_file=os.path.expanduser(identity_file) if identity_file else None)
    except (OSError, ValueError) as e:
        raise InvalidArgument(str(e)) from e


def channel_argv(args):
    """
    The channel options of args, as they would appear on a command line.
    """
    if args.channel == Channel.LOCAL.value:
        return []
    argv = ['--channel', args.channel, '--host', args.host]
    for option in ('user', 'ssh_config_file', 'identity_file'):
        value = getattr(args, option)
        if value:
            argv.extend(['--{}'.format(option.replace('_', '-')), value])
    return argv


def global_argv(args):
    return ['--db-file', os.path.expanduser(args.db_file),
            '--spec-file', os.path.expanduser(args.spec_file)]


def run_create(args, store, registry, scheduler=None):
    channel = build_channel(args)
    if scheduler is None:
        scheduler = DestroyScheduler(
            program_command=get_program_command(global_argv(args)),
            destroy_args=channel_argv(args))
    args.binder.resolve(args)
    command_path = " ".join([DEFAULT_CHAOS_PROGRAM, "create", args.target,
                             args.scope, args.action])
    command = CreateCommand(store, scheduler=scheduler)
    return command.run(args.target, args.scope, args.action_spec,
                       args.command_flags, command_path,
                       uid=args.uid or None, channel=channel)


def run_destroy(args, store, registry, scheduler=None):
    return DestroyCommand(store, registry).run(args.uid,
                                               channel=build_channel(args))


def run_status(args, store, registry, scheduler=None):
    return DestroyCommand(store, registry).status(args.uid)


def main(argv=None, store=None, registry=None, scheduler=None) -> int:
    pre_args, _ = global_args().parse_known_args(args=argv)
    try:
        init(pre_args)
    except Exception:
        logger.error('Unable to initialize logging')
        raise

    try:
        if registry is None:
            registry = load_action_specs(pre_args.spec_file)
        parser = program_args(registry)
    except ChaosExpError as e:
        logger.error("Unable to build the command line: %s", e.message)
        print(e.response().print(), file=sys.stderr)
        return 1

    args = parser.parse_args(args=argv)
    try:
        if store is None:
            store = SQLExperimentStore(db_file=args.db_file)
        response = args.func(args, store, registry, scheduler)
    except ChaosExpError as e:
        print(e.response().print(), file=sys.stderr)
        return 1

    print(response.print())
    return 0


def main_entry():
    sys.exit(main())
