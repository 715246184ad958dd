"""
wasmsym command line entry point.

``wasmsym dump`` prints the source info document of a module;
``wasmsym resolve`` symbolizes addresses.
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from wasmsym.config import ResolverConfig, parse_versions
from wasmsym.dwarf.exceptions import DwarfError
from wasmsym.dwarf.parser import WasmDwarfParser
from wasmsym.dwarf.source_info import extract_source_info
from wasmsym.models import ResolvedFrame, SourceResult
from wasmsym.module.exceptions import ModuleError
from wasmsym.module.module_manager import ModuleManager
from wasmsym.module.wasm import parse_module

logger = logging.getLogger(__name__)


def _address(value: str) -> int:
    try:
        address = int(value, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid address: {value}")
    if address < 0:
        raise argparse.ArgumentTypeError(f"Invalid address: {value}")
    return address


def _read_input(source: str) -> bytes:
    if source == '-':
        return sys.stdin.buffer.read()
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Module file not found: {path}")
    return path.read_bytes()


def build_config(args) -> ResolverConfig:
    """Apply command line flags over the environment configuration."""
    config = ResolverConfig.from_env()
    if args.dwarf_versions:
        config = replace(config, dwarf_versions=parse_versions(args.dwarf_versions))
    if args.no_demangle:
        config = replace(config, demangle=False)
    if args.keep_dead_code:
        config = replace(config, skip_dead_code=False)
    return config


def cmd_dump(args, config: ResolverConfig) -> int:
    """Print the source info document; on failure print an error document."""
    try:
        wasm = parse_module(_read_input(args.module))
        parser = WasmDwarfParser(wasm, config)
        units = parser.extract_dwarf_info() or []
        result = extract_source_info(units, wasm.require_code_section_offset())
    except (OSError, ValueError, ModuleError, DwarfError) as e:
        logger.error(f"dump failed: {e}")
        print(SourceResult(error=str(e)).to_json())
        return 1

    print(result.to_json())
    return 0


def cmd_resolve(args, config: ResolverConfig) -> int:
    """Print one resolved frame per address, in input order."""
    try:
        data = _read_input(args.module)
        if args.module_offsets:
            manager = ModuleManager(config)
            name = Path(args.module).name
            manager.on_module_loaded(name, data, path=args.module)
            locations = manager.resolve_frames([(name, address) for address in args.addresses])
        else:
            index = WasmDwarfParser(parse_module(data), config).build_index()
            locations = index.resolve_frames(args.addresses)
    except (OSError, ValueError, ModuleError, DwarfError) as e:
        logger.error(f"resolve failed: {e}")
        print(SourceResult(error=str(e)).to_json())
        return 1

    for address, location in zip(args.addresses, locations):
        if location is None:
            frame = ResolvedFrame(address=address)
        else:
            frame = ResolvedFrame(
                address=address,
                file=location.file,
                line=location.line,
                column=location.column,
                function=location.function,
                resolved=True,
            )
        print(frame.model_dump_json())
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wasmsym",
        description="Symbolize WebAssembly addresses using DWARF debug info"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--no-demangle",
        action="store_true",
        help="Report function names as stored in the debug info"
    )
    parser.add_argument(
        "--keep-dead-code",
        action="store_true",
        help="Keep line sequences and functions the linker discarded"
    )
    parser.add_argument(
        "--dwarf-versions",
        help="Comma separated DWARF versions to decode (default: 2,3,4,5)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    dump = subparsers.add_parser("dump", help="Print source files and line mappings as JSON")
    dump.add_argument("module", nargs="?", default="-", help="Module file, or - for stdin (default)")
    dump.set_defaults(handler=cmd_dump)

    resolve = subparsers.add_parser("resolve", help="Resolve addresses to source locations")
    resolve.add_argument("module", help="Module file, or - for stdin")
    resolve.add_argument("addresses", nargs="+", type=_address, help="Addresses (decimal or 0x hex)")
    resolve.add_argument(
        "--module-offsets",
        action="store_true",
        help="Addresses are module offsets rather than code section relative"
    )
    resolve.set_defaults(handler=cmd_resolve)

    return parser


def main(argv=None):
    """Main entry point for wasmsym."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Logs go to stderr; stdout carries the JSON documents
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    sys.exit(args.handler(args, config))


if __name__ == "__main__":
    main()
