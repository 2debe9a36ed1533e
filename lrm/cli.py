#!/usr/bin/env python3
"""
lrm - Localization Resource Manager CLI

Manages the language files of a localization resource set in one of four
formats, snapshotting every file before it is modified.

Supported Formats:
    - JSON (strings.json, strings.fr.json)
    - resx (.NET Resources.resx, Resources.fr.resx)
    - Android XML (res/values*/strings.xml)
    - iOS .strings (*.lproj/Localizable.strings)

Commands:
    init            - Create lrm.json and an empty resource set
    languages       - List discovered languages
    add-language    - Add a language file with every key of the default
    remove-language - Delete a language file (backed up first)
    add             - Add a key to every language
    update          - Change a key's value, comment or translations
    delete          - Delete a key from every language
    backup          - list | create | restore | prune | info | diff snapshots
    chain           - Run several commands: "cmd1 -- cmd2 -- cmd3"
    formats         - List supported formats

Results are printed to stdout as JSON. Errors are printed to stderr as a
JSON object and the process exits with status 1. Log messages go to
stderr; --verbose enables debug output.
"""

import argparse
import asyncio
import contextlib
import dataclasses
import io
import json
import logging
import shlex
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from . import __version__
from .backup import BackupVersionManager
from .backup_diff import CURRENT, BackupDiffService
from .chain import ChainExecutionContext, parse_chain, validate_chain
from .config import SUPPORTED_FORMATS, FORMAT_ALIASES, find_config_file, load_config, save_config
from .exceptions import FatalEnvironmentError, LrmError
from .format_handlers import FormatRegistry
from .operations import ResourceManager

logger = logging.getLogger(__name__)

FORMAT_CHOICES = list(SUPPORTED_FORMATS) + list(FORMAT_ALIASES)


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr so stdout stays machine-readable."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root_logger.addHandler(handler)


def _manager(args) -> ResourceManager:
    config = load_config(args.path)
    if args.format:
        config = dataclasses.replace(config, resource_format=args.format)
    return ResourceManager(args.path, config)


def _translations(values: Optional[list[str]]) -> dict[str, str]:
    return dict(values or [])


def _resolve_file(args, file_name: str) -> Path:
    path = Path(file_name)
    return path if path.is_absolute() else Path(args.path) / path


def _handler_for_file(args, config, file_path: Path):
    if args.format:
        return FormatRegistry.get_handler(args.format, config)
    return FormatRegistry.get_handler_for_extension(file_path.suffix, config)


def cmd_init(args) -> dict:
    """Create lrm.json (when missing) and an empty resource set."""
    root = Path(args.path)
    root.mkdir(parents=True, exist_ok=True)

    config = load_config(root)
    if args.format:
        config = dataclasses.replace(config, resource_format=args.format)
    if args.default_language:
        config.default_language_code = args.default_language

    manager = ResourceManager(root, config)
    created = manager.create_resource_set(args.base_name, args.languages)

    config_file = find_config_file(root)
    if config_file is None:
        config_file = save_config(manager.config, root)

    return {
        "status": "ok",
        "format": manager.format_name,
        "config_file": str(config_file),
        "files": [language.to_dict() for language in created],
        "summary": f"Created {len(created)} {manager.format_name} resource files.",
    }


def cmd_languages(args) -> dict:
    """List discovered languages."""
    manager = _manager(args)
    languages = manager.list_languages(args.base_name)
    return {
        "status": "ok",
        "format": manager.format_name,
        "count": len(languages),
        "languages": [language.to_dict() for language in languages],
    }


def cmd_add_language(args) -> dict:
    """Add a language file."""
    language = _manager(args).add_language(args.code, args.base_name, copy_values=args.copy_values)
    return {
        "status": "ok",
        "language": language.to_dict(),
        "summary": f"Added {language.name} ({language.code}).",
    }


def cmd_remove_language(args) -> dict:
    """Remove a language file."""
    language = _manager(args).remove_language(args.code, args.base_name, backup=not args.no_backup)
    return {
        "status": "ok",
        "language": language.to_dict(),
        "summary": f"Removed {language.name} ({language.code}).",
    }


def cmd_add(args) -> dict:
    """Add a key to every language."""
    written = _manager(args).add_key(
        args.key,
        args.value,
        comment=args.comment,
        translations=_translations(args.lang),
        base_name=args.base_name,
        backup=not args.no_backup,
    )
    return {
        "status": "ok",
        "key": args.key,
        "files": [str(language.file_path) for language in written],
    }


def cmd_update(args) -> dict:
    """Update a key."""
    written = _manager(args).update_key(
        args.key,
        value=args.value,
        comment=args.comment,
        translations=_translations(args.lang),
        base_name=args.base_name,
        backup=not args.no_backup,
    )
    return {
        "status": "ok",
        "key": args.key,
        "changed": len(written) > 0,
        "files": [str(language.file_path) for language in written],
    }


def cmd_delete(args) -> dict:
    """Delete a key from every language."""
    written = _manager(args).delete_key(args.key, args.base_name, backup=not args.no_backup)
    return {
        "status": "ok",
        "key": args.key,
        "files": [str(language.file_path) for language in written],
    }


def cmd_backup(args) -> dict:
    """Inspect and manage the backup store."""
    config = load_config(args.path)
    backups = BackupVersionManager(config.backup.max_versions)
    root = Path(args.path)

    if args.backup_command == "list":
        if not args.file:
            files = backups.list_backed_up_files(root)
            return {"status": "ok", "count": len(files), "files": files}
        items = backups.list_backups(_resolve_file(args, args.file), root)
        return {
            "status": "ok",
            "file": args.file,
            "count": len(items),
            "backups": [b.to_dict() for b in items],
        }

    if args.backup_command == "create":
        metadata = asyncio.run(backups.create_backup(_resolve_file(args, args.file), args.operation, root))
        return {"status": "ok", "backup": metadata.to_dict()}

    if args.backup_command in ("info", "diff"):
        file_path = _resolve_file(args, args.file)
        service = BackupDiffService(_handler_for_file(args, config, file_path), backups)
        if args.backup_command == "info":
            return {"status": "ok", "file": args.file, **service.info(file_path, args.version, root)}

        if args.to_version == CURRENT:
            diff = service.compare_with_current(file_path, args.from_version, root, args.show_unchanged)
        else:
            diff = service.compare(file_path, args.from_version, args.to_version, root, args.show_unchanged)
        return {
            "status": "ok",
            "file": args.file,
            "has_changes": diff.has_changes,
            **diff.to_dict(),
        }

    if args.backup_command == "restore":
        pre_restore = asyncio.run(backups.restore_backup(
            _resolve_file(args, args.file),
            args.version,
            root,
            backup_current=not args.no_backup,
        ))
        return {
            "status": "ok",
            "file": args.file,
            "restored_version": args.version,
            "pre_restore_backup": pre_restore.to_dict() if pre_restore else None,
        }

    removed = backups.prune_backups(_resolve_file(args, args.file), root, args.keep)
    return {
        "status": "ok",
        "file": args.file,
        "removed": [b.version for b in removed],
    }


def cmd_formats(args) -> dict:
    """List supported formats."""
    return {
        "status": "ok",
        "formats": FormatRegistry.list_formats(),
    }


def _step_arguments(args, step: list[str]) -> list[str]:
    """Carry the chain's --path, --format and --no-backup into a step."""
    extra = []
    if "--path" not in step and "-p" not in step:
        extra += ["--path", str(args.path)]
    if args.format and "--format" not in step and "-f" not in step:
        extra += ["--format", args.format]
    if args.no_backup and "--no-backup" not in step:
        extra.append("--no-backup")
    if args.verbose and "--verbose" not in step and "-v" not in step:
        extra.append("--verbose")
    return step + extra


def cmd_chain(args) -> dict:
    """Run several commands in sequence."""
    valid, reason = validate_chain(args.commands)
    if not valid:
        return {"status": "error", "error": reason, "error_type": "ChainValidationError"}

    commands = parse_chain(args.commands)
    nested = [c for c in commands if c[0] == "chain"]
    if nested:
        return {
            "status": "error",
            "error": "Nested chain commands are not supported",
            "error_type": "ChainValidationError",
        }

    if args.dry_run:
        return {
            "status": "ok",
            "dry_run": True,
            "commands": [shlex.join(c) for c in commands],
        }

    outputs: list = []

    def execute(step: list[str]) -> int:
        buffer = io.StringIO()
        with contextlib.redirect_stdout(buffer):
            exit_code = run(_step_arguments(args, step), raise_fatal=True)
        text = buffer.getvalue().strip()
        try:
            outputs.append(json.loads(text) if text else None)
        except json.JSONDecodeError:
            outputs.append(text)
        return exit_code

    context = ChainExecutionContext(
        commands,
        stop_on_error=not args.continue_on_error,
        cancel_event=threading.Event(),
    )

    previous_handler = None
    if threading.current_thread() is threading.main_thread():
        previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: context.cancel())
    try:
        context.run(execute)
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    result = context.to_dict()
    for step, output in zip(result["steps"], outputs):
        step["output"] = output
    result["status"] = "ok" if context.succeeded else "error"
    return result


COMMANDS = {
    "init": cmd_init,
    "languages": cmd_languages,
    "add-language": cmd_add_language,
    "remove-language": cmd_remove_language,
    "add": cmd_add,
    "update": cmd_update,
    "delete": cmd_delete,
    "backup": cmd_backup,
    "chain": cmd_chain,
    "formats": cmd_formats,
}


def _translation_arg(text: str) -> tuple[str, str]:
    if "=" not in text:
        raise argparse.ArgumentTypeError(f"expected CODE=VALUE, got {text!r}")
    code, value = text.split("=", 1)
    return code, value


def _version_or_current(text: str):
    if text.lower() == CURRENT:
        return CURRENT
    try:
        return int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a version number or '{CURRENT}', got '{text}'")


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--path", "-p", default=".", help="Resource root directory (default: .)")
    common.add_argument("--format", "-f", choices=FORMAT_CHOICES,
                        help="Resource format (default: lrm.json, then auto-detect)")
    common.add_argument("--no-backup", action="store_true", help="Do not snapshot files before changing them")
    common.add_argument("--verbose", "-v", action="store_true", help="Debug logging on stderr")

    parser = argparse.ArgumentParser(
        prog="lrm",
        description="lrm - Localization Resource Manager",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Supported Formats:
  json     - strings.json, strings.fr.json
  resx     - .NET Resources.resx, Resources.fr.resx
  android  - res/values*/strings.xml (alias: xml)
  ios      - *.lproj/Localizable.strings (alias: strings)

Examples:
  lrm init --format json --languages fr de
  lrm add-language es --copy-values
  lrm add Welcome "Welcome!" --comment "Home title" --lang fr=Bienvenue
  lrm backup list strings.fr.json
  lrm backup restore strings.fr.json 3
  lrm backup diff strings.fr.json 2 current
  lrm chain "add-language it -- add Bye Goodbye --lang it=Ciao"
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser("init", parents=[common], help="Create lrm.json and an empty resource set")
    init_parser.add_argument("--base-name", "-b", help="Resource set name (JSON/resx)")
    init_parser.add_argument("--default-language", "-d", help="Culture code of the default language")
    init_parser.add_argument("--languages", "-l", nargs="*", default=[], help="Additional language codes")

    languages_parser = subparsers.add_parser("languages", parents=[common], help="List discovered languages")
    languages_parser.add_argument("--base-name", "-b", help="Limit to one resource set")

    add_language_parser = subparsers.add_parser("add-language", parents=[common], help="Add a language file")
    add_language_parser.add_argument("code", help="Culture code, e.g. fr or fr-FR")
    add_language_parser.add_argument("--base-name", "-b", help="Resource set name")
    add_language_parser.add_argument("--copy-values", action="store_true", help="Copy default values")

    remove_language_parser = subparsers.add_parser("remove-language", parents=[common], help="Delete a language file")
    remove_language_parser.add_argument("code", help="Culture code")
    remove_language_parser.add_argument("--base-name", "-b", help="Resource set name")

    add_parser = subparsers.add_parser("add", parents=[common], help="Add a key to every language")
    add_parser.add_argument("key")
    add_parser.add_argument("value", help="Default language value")
    add_parser.add_argument("--comment", "-c", help="Comment for translators")
    add_parser.add_argument("--lang", action="append", type=_translation_arg, metavar="CODE=VALUE",
                            help="Translation for one language (repeatable)")
    add_parser.add_argument("--base-name", "-b", help="Resource set name")

    update_parser = subparsers.add_parser("update", parents=[common], help="Update a key")
    update_parser.add_argument("key")
    update_parser.add_argument("--value", help="New default language value")
    update_parser.add_argument("--comment", "-c", help="New comment (empty string removes it)")
    update_parser.add_argument("--lang", action="append", type=_translation_arg, metavar="CODE=VALUE",
                               help="New translation for one language (repeatable)")
    update_parser.add_argument("--base-name", "-b", help="Resource set name")

    delete_parser = subparsers.add_parser("delete", parents=[common], help="Delete a key from every language")
    delete_parser.add_argument("key")
    delete_parser.add_argument("--base-name", "-b", help="Resource set name")

    backup_parser = subparsers.add_parser("backup", help="Manage backups")
    backup_sub = backup_parser.add_subparsers(dest="backup_command", required=True)

    backup_list = backup_sub.add_parser("list", parents=[common], help="List backed-up files or one file's versions")
    backup_list.add_argument("file", nargs="?", help="Resource file (relative to --path)")

    backup_create = backup_sub.add_parser("create", parents=[common], help="Snapshot a file now")
    backup_create.add_argument("file")
    backup_create.add_argument("--operation", default="manual", help="Operation label (default: manual)")

    backup_restore = backup_sub.add_parser("restore", parents=[common], help="Restore a snapshot")
    backup_restore.add_argument("file")
    backup_restore.add_argument("version", type=int)

    backup_info = backup_sub.add_parser("info", parents=[common], help="Show one snapshot's details")
    backup_info.add_argument("file")
    backup_info.add_argument("version", type=int)

    backup_diff = backup_sub.add_parser("diff", parents=[common], help="Compare a snapshot with another or the current file")
    backup_diff.add_argument("file")
    backup_diff.add_argument("from_version", type=int, metavar="v1")
    backup_diff.add_argument("to_version", nargs="?", default=CURRENT, type=_version_or_current, metavar="v2",
                             help="Version to compare with, or 'current' (default)")
    backup_diff.add_argument("--show-unchanged", action="store_true", help="List unchanged keys too")

    backup_prune = backup_sub.add_parser("prune", parents=[common], help="Keep only the newest snapshots")
    backup_prune.add_argument("file")
    backup_prune.add_argument("--keep", "-k", type=int, required=True, help="Number of snapshots to keep")

    chain_parser = subparsers.add_parser("chain", parents=[common], help="Run commands separated by --")
    chain_parser.add_argument("commands", help='Command chain, e.g. "add-language fr -- add Key Value"')
    chain_parser.add_argument("--continue-on-error", action="store_true", help="Run every step even after a failure")
    chain_parser.add_argument("--dry-run", action="store_true", help="Show the parsed commands without running them")

    subparsers.add_parser("formats", parents=[common], help="List supported formats")

    return parser


def _print_error(error: Exception) -> None:
    if isinstance(error, LrmError):
        data = {"status": "error", **error.to_dict()}
    else:
        data = {"status": "error", "error": str(error), "error_type": type(error).__name__}
    print(json.dumps(data, ensure_ascii=False), file=sys.stderr)


def _invoke(args) -> dict:
    try:
        return COMMANDS[args.command](args)
    except PermissionError as e:
        raise FatalEnvironmentError(f"Permission denied: {e.filename or e}", path=e.filename) from e


def run(argv: Optional[list[str]] = None, raise_fatal: bool = False) -> int:
    """
    Parse argv, run one command and print its result.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])
        raise_fatal: Propagate FatalEnvironmentError instead of reporting it

    Returns:
        Process exit code
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1

    if not args.command:
        parser.print_help(sys.stderr)
        return 1

    configure_logging(args.verbose)

    try:
        result = _invoke(args)
    except FatalEnvironmentError as e:
        if raise_fatal:
            raise
        _print_error(e)
        return 1
    except Exception as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        _print_error(e)
        return 1

    if result.get("status") == "error" and "steps" not in result:
        print(json.dumps(result, ensure_ascii=False), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    if result.get("status") == "ok":
        return 0
    return int(result.get("exit_code") or 1)


def main(argv: Optional[list[str]] = None) -> None:
    sys.exit(run(argv))


if __name__ == "__main__":
    main()
