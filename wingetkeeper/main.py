"""wingetkeeper: entry point for the scheduled maintenance task."""

import argparse
import logging
import os
import sys

from wingetkeeper.branding import AppBranding
from wingetkeeper.config.policy import JsonFileBackend, SettingsStore
from wingetkeeper.config.scope import scope_document_path, update_scope_file
from wingetkeeper.config.settings import AgentConfig
from wingetkeeper.config.store_policy import (
    STORE_POLICY_KEY, disable_store_auto_download, restore_store_auto_download,
)
from wingetkeeper.core.errors import SettingsError
from wingetkeeper.core.installer import InstallOrchestrator
from wingetkeeper.core.models import InstallState
from wingetkeeper.core.prerequisites import PrerequisiteChecker
from wingetkeeper.core.release import ReleaseResolver
from wingetkeeper.core.schedule import (
    maintenance_task, notification_task, triggers_from_policy,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 2


def setup_logging(log_dir: str):
    """Configure logging to file and console."""
    os.makedirs(log_dir, exist_ok=True)
    log_file = os.path.join(log_dir, 'wingetkeeper.log')

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(),
        ],
    )


def open_settings(config: AgentConfig) -> SettingsStore:
    if config.settings_backend == 'json':
        return SettingsStore(JsonFileBackend(config.settings_file))
    from wingetkeeper.system.registry import RegistryBackend
    return SettingsStore(RegistryBackend(AppBranding.registry_path()))


def open_store_policy(config: AgentConfig):
    if config.settings_backend == 'json':
        return JsonFileBackend(os.path.join(config.data_dir, 'store_policy.json'))
    from wingetkeeper.system.registry import RegistryBackend
    return RegistryBackend(STORE_POLICY_KEY)


def build_orchestrator(config: AgentConfig) -> InstallOrchestrator:
    from wingetkeeper.system.appx import AppxProvisioner, WingetInventory

    resolver = ReleaseResolver(config.github_repo, config.artifact_suffix,
                               timeout=config.feed_timeout)
    return InstallOrchestrator(
        resolver, WingetInventory(), AppxProvisioner(), config.work_dir,
        wait_seconds=config.wait_seconds,
        poll_interval=config.poll_interval,
        download_timeout=config.download_timeout,
    )


def task_command() -> str:
    """Command line the scheduled task should launch."""
    return sys.executable


def cmd_run(config: AgentConfig, args) -> int:
    checker = PrerequisiteChecker(config.min_os_build, config.work_dir,
                                  download_timeout=config.download_timeout)
    checker.check_or_exit()

    settings = open_settings(config)
    orchestrator = build_orchestrator(config)
    state = orchestrator.reconcile(stop_processes=args.stop_processes,
                                   wait_seconds=args.wait)
    if state is not InstallState.CURRENT:
        logger.error("winget maintenance finished in state %s", state.value)
        return EXIT_OK

    if config.disable_store_updates:
        try:
            disable_store_auto_download(settings, open_store_policy(config))
        except (OSError, ValueError) as e:
            logger.error("Could not override Store auto-download policy: %s", e)

    scope_path = scope_document_path(system_context=True)
    try:
        update_scope_file(scope_path, settings.flag('MachineScopeOnly'))
    except (OSError, ValueError) as e:
        logger.error("Could not update winget scope settings: %s", e)

    try:
        triggers = triggers_from_policy(settings)
    except (OSError, ValueError) as e:
        logger.error("Stored schedule policy is invalid: %s", e)
        return EXIT_OK
    if not triggers:
        logger.info("No schedule configured, task will only run on demand")
    for trig in triggers:
        logger.info("Trigger: %s", trig.describe())
    return EXIT_OK


def cmd_get(config: AgentConfig, args) -> int:
    settings = open_settings(config)
    value = settings.get(args.key)
    print('' if value is None else value)
    return EXIT_OK


def cmd_set(config: AgentConfig, args) -> int:
    fields = {}
    for pair in args.pairs:
        key, sep, value = pair.partition('=')
        if not sep:
            print(f"Expected KEY=VALUE, got {pair!r}", file=sys.stderr)
            return EXIT_USAGE
        fields[key] = value
    settings = open_settings(config)
    settings.set(**fields)
    return EXIT_OK


def cmd_triggers(config: AgentConfig, args) -> int:
    settings = open_settings(config)
    triggers = triggers_from_policy(settings)
    for trig in triggers:
        print(trig.describe())
    if args.xml:
        command = task_command()
        print(maintenance_task(triggers, command, "-m wingetkeeper.main run").to_xml())
    if args.notify_command:
        print(notification_task(args.notify_command).to_xml())
    return EXIT_OK


def cmd_restore(config: AgentConfig, args) -> int:
    settings = open_settings(config)
    if not restore_store_auto_download(settings, open_store_policy(config)):
        logger.info("No saved Store policy to restore")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wingetkeeper',
        description=f"{AppBranding.APP_NAME} winget maintenance",
    )
    parser.add_argument('--config', help="agent config JSON (default: %%ProgramData%%)")
    sub = parser.add_subparsers(dest='command')
    parser.set_defaults(func=cmd_run, command='run', stop_processes=False, wait=None)

    run = sub.add_parser('run', help="install or update winget")
    run.add_argument('--stop-processes', action='store_true',
                     help="stop winget processes before updating")
    run.add_argument('--wait', type=int, default=None, metavar='SECONDS',
                     help="how long to wait for the Store update")
    run.set_defaults(func=cmd_run)

    get = sub.add_parser('get', help="print one policy value")
    get.add_argument('key')
    get.set_defaults(func=cmd_get)

    set_ = sub.add_parser('set', help="write policy values")
    set_.add_argument('pairs', nargs='+', metavar='KEY=VALUE')
    set_.set_defaults(func=cmd_set)

    trig = sub.add_parser('triggers', help="show the maintenance schedule")
    trig.add_argument('--xml', action='store_true', help="also print task XML")
    trig.add_argument('--notify-command', metavar='CMD',
                      help="also print the notification task XML for CMD")
    trig.set_defaults(func=cmd_triggers)

    restore = sub.add_parser('restore', help="restore the original Store policy")
    restore.set_defaults(func=cmd_restore)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = AgentConfig.load(args.config)
    config.ensure_dirs()

    setup_logging(config.log_dir)
    logger.info("%s %s: %s", AppBranding.APP_NAME, AppBranding.VERSION, args.command)

    try:
        return args.func(config, args)
    except SettingsError as e:
        logger.error("%s", e)
        return EXIT_USAGE


if __name__ == '__main__':
    sys.exit(main())
