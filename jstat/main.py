import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .aggregate import Aggregation, InputError
from .config import OUTPUT_FORMATS, ConfigurationError, StatConfig
from .journal import RemoteJournalSource, discover_remote_files
from .logging import configure_logging
from .report import render
from .ssh import SSH

logger = logging.getLogger("jstat")

EXIT_SUCCESS = 0
EXIT_CONFIGURATION_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    all_arguments = {
        "--input": {
            "help": "input journal file or directory",
            "type": Path,
        },
        "--top-talkers": {
            "help": "number of most frequent messages to report",
            "type": int,
        },
        "--large-messages": {
            "help": "number of largest messages to report",
            "type": int,
        },
        "--unit": {"help": "only count messages from this systemd unit"},
        "--pattern": {"help": "only count messages matching this regular expression"},
        "--since": {"help": "only count messages logged at or after this time"},
        "--until": {"help": "only count messages logged before this time"},
        "--recursive": {
            "help": "descend into subdirectories of the input directory",
            "action": "store_true",
        },
        "--normalize": {
            "help": "group messages after masking numbers, hex literals and uuids",
            "action": "store_true",
        },
        "--group-by-process": {
            "help": "count identical messages from different processes separately",
            "action": "store_true",
        },
        "--jobs": {
            "help": "number of files to scan concurrently",
            "type": int,
            "default": 1,
        },
        "--output": {
            "help": "output format",
            "choices": OUTPUT_FORMATS,
            "default": "text",
        },
        "--debug": {"help": "output debug info", "action": "store_true"},
        "--ssh-host": {"help": "read journal files on a remote host via ssh"},
        "--ssh-user": {"help": "user for --ssh-host"},
        "--ssh-private-key": {"help": "private key for --ssh-host", "type": Path},
        "--ssh-proxy-host": {"help": "use ssh proxy as jump host"},
        "--ssh-proxy-user": {"help": "use ssh proxy as jump host"},
    }
    short_options = {
        "--input": "-i",
        "--top-talkers": "-t",
        "--large-messages": "-l",
        "--unit": "-u",
        "--pattern": "-p",
        "--recursive": "-r",
        "--jobs": "-j",
    }

    parser = argparse.ArgumentParser(
        prog="jstat",
        description="Report the most frequent and the largest messages in journal files.",
    )
    for opt, kwargs in all_arguments.items():
        flags = [opt]
        if opt in short_options:
            flags.insert(0, short_options[opt])
        parser.add_argument(*flags, **kwargs)

    return parser


def connect_ssh(args) -> SSH:
    ssh = SSH(
        host=args.ssh_host,
        user=args.ssh_user,
        proxy_host=args.ssh_proxy_host,
        proxy_user=args.ssh_proxy_user,
        private_key=args.ssh_private_key,
    )
    ssh.connect_with_retries()
    return ssh


def build_aggregation(config: StatConfig, ssh: Optional[SSH]) -> Aggregation:
    if ssh is None:
        return Aggregation(config)

    return Aggregation(
        config,
        open_source=lambda path: RemoteJournalSource(path, ssh),
        discover=lambda path, recursive: discover_remote_files(
            ssh, path, recursive=recursive
        ),
    )


def install_interrupt_handler(aggregation: Aggregation) -> None:
    def _handler(signum, frame):  # pylint: disable=unused-argument
        logger.warning("interrupted, stopping after the current file...")
        aggregation.stop()
        # A second interrupt aborts immediately.
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        configure_logging(logging.DEBUG)
    else:
        configure_logging(logging.WARNING)

    try:
        config = StatConfig.from_args(args)
    except ConfigurationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    ssh = None
    try:
        if config.remote:
            ssh = connect_ssh(args)

        aggregation = build_aggregation(config, ssh)
        install_interrupt_handler(aggregation)
        report = aggregation.run()
    except (ConnectionError, InputError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    finally:
        signal.signal(signal.SIGINT, signal.default_int_handler)
        if ssh is not None:
            ssh.close()

    print(render(report, config.output))
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
