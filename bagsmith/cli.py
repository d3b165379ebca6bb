"""
bagsmith CLI — entry point for all operations.

Usage:
    bagsmith list                              # Show configured data bags
    bagsmith <data_bag> ITEM                   # Create/upload the encrypted item
    bagsmith <data_bag> ITEM --id ID           # Override the data bag id
    bagsmith <data_bag> ITEM --target u@host   # Also copy the secret to hosts
    bagsmith passphrase <data_bag> ITEM        # Generate ITEM.passphrase
    bagsmith version                           # Show version

Exit codes: 0 ok, 1 nothing found, 2 upload failed, 3 secret copy failed,
4 store unreachable, 5 bad configuration.
"""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from collections.abc import Callable
from pathlib import Path

from bagsmith.config import Config, ConfigError, get_config, load_databags
from bagsmith.databag.models import DataBagEntry, ExitCode

Handler = Callable[[argparse.Namespace], int]


def main(argv: list[str] | None = None) -> int:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=Path, help="Data bag config (default: $BAGSMITH_CONFIG or ./config.yaml)")
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    known, rest = common.parse_known_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if known.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    cfg = get_config()
    config_path = known.config or cfg.config_path
    try:
        databags = load_databags(config_path)
    except ConfigError as e:
        if not rest or rest[0] in ("version", "--version", "-h", "--help"):
            databags = {}
        else:
            print(f"Error: {e}")
            return ExitCode.CONFIG_ERROR

    parser = argparse.ArgumentParser(
        prog="bagsmith",
        description="Create and upload encrypted Chef data bags from Trousseau stores.",
        parents=[common],
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("version", help="Show version")
    subparsers.add_parser("list", help="List configured data bags")

    pp_parser = subparsers.add_parser("passphrase", help="Generate ITEM.passphrase in a data bag's store")
    pp_parser.add_argument("data_bag", choices=sorted(databags), help="Data bag name")
    pp_parser.add_argument("item", help="Item name")
    pp_parser.add_argument("--force", action="store_true", help="Replace an existing passphrase")

    handlers: dict[str, Handler] = {
        "list": functools.partial(_cmd_list, databags=databags),
        "passphrase": functools.partial(_cmd_passphrase, databags=databags, cfg=cfg),
    }

    # One subcommand per data bag in the config
    for name, entry in databags.items():
        db_parser = subparsers.add_parser(name, help=entry.description, description=entry.description)
        db_parser.add_argument("item", help="Item name (host, service, ...)")
        db_parser.add_argument("--id", help="Data bag id (defaults to item)")
        db_parser.add_argument(
            "--target",
            action="append",
            default=[],
            metavar="USER@HOST",
            help="Target user@host[,user2@host2] to upload data_bag_secret to (repeatable)",
        )
        handlers[name] = functools.partial(_cmd_databag, entry=entry, cfg=cfg)

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from bagsmith import __version__

        print(f"bagsmith {__version__}")
        return 0

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args)


def _cmd_list(args: argparse.Namespace, *, databags: dict[str, DataBagEntry]) -> int:
    if not databags:
        print("No data bags configured.")
        return 0
    for name, entry in sorted(databags.items()):
        print(f"  {name:<20} {entry.description}")
        print(f"  {'':<20} store: {entry.trousseau_store}  secret: {entry.data_bag_secret}")
    return 0


def _cmd_passphrase(
    args: argparse.Namespace, *, databags: dict[str, DataBagEntry], cfg: Config
) -> int:
    from bagsmith.databag.secret import ensure_passphrase, passphrase_key
    from bagsmith.store import StoreError, TrousseauStore

    entry = databags[args.data_bag]
    store = TrousseauStore(entry.trousseau_store, binary=cfg.tools.trousseau_bin, timeout=cfg.tools.timeout)
    try:
        created = ensure_passphrase(store, args.item, force=args.force)
    except StoreError as e:
        print(f"Error: {e}")
        return ExitCode.STORE_ERROR

    key = passphrase_key(args.item)
    print(f"Generated {key}." if created else f"{key} already exists (use --force to replace).")
    return 0


def _cmd_databag(args: argparse.Namespace, *, entry: DataBagEntry, cfg: Config) -> int:
    from bagsmith.databag.assembler import KnifeUploader
    from bagsmith.databag.distributor import SecretDistributor, parse_targets
    from bagsmith.databag.orchestrator import run
    from bagsmith.store import StoreError, TrousseauStore

    tools = cfg.tools
    store = TrousseauStore(entry.trousseau_store, binary=tools.trousseau_bin, timeout=tools.timeout)
    uploader = KnifeUploader(binary=tools.knife_bin, timeout=tools.timeout)
    distributor = SecretDistributor(
        store,
        path=entry.data_bag_secret,
        owner=cfg.secret_owner,
        ssh_binary=tools.ssh_bin,
        ssh_options=tools.ssh_options,
        timeout=tools.timeout,
        progress=print,
    )

    try:
        result = run(
            entry,
            args.item,
            store=store,
            uploader=uploader,
            distributor=distributor,
            id_option=args.id,
            targets=parse_targets(args.target),
            secret_length=cfg.secret_length,
            report=print,
        )
    except StoreError as e:
        print(f"Error: {e}")
        return ExitCode.STORE_ERROR

    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
