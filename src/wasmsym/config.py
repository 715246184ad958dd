"""
Resolver configuration.

Defaults can be overridden from the environment (WASMSYM_* variables) and
again from command line flags.
"""

import os
from dataclasses import dataclass, field, replace

SUPPORTED_DWARF_VERSIONS = (2, 3, 4, 5)
DEMANGLE_SCHEMES = ("rust-v0", "rust-legacy", "go")


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def parse_versions(value: str) -> tuple[int, ...]:
    """Parse a comma separated DWARF version list such as ``"4,5"``."""
    versions = tuple(int(part) for part in value.split(',') if part.strip())
    if not versions:
        raise ValueError("At least one DWARF version must be enabled")
    return versions


@dataclass(frozen=True)
class ResolverConfig:
    """Settings for building and querying an address index."""

    dwarf_versions: tuple[int, ...] = SUPPORTED_DWARF_VERSIONS  # Units with other versions are skipped
    demangle: bool = True
    demangle_schemes: tuple[str, ...] = field(default=DEMANGLE_SCHEMES)
    skip_dead_code: bool = True  # Drop sequences/functions the linker left at tombstone addresses

    @classmethod
    def from_env(cls) -> 'ResolverConfig':
        """Build a config from WASMSYM_DWARF_VERSIONS, WASMSYM_DEMANGLE and WASMSYM_SKIP_DEAD_CODE."""
        config = cls()
        versions = os.environ.get('WASMSYM_DWARF_VERSIONS')
        if versions:
            config = replace(config, dwarf_versions=parse_versions(versions))
        return replace(
            config,
            demangle=_env_flag('WASMSYM_DEMANGLE', config.demangle),
            skip_dead_code=_env_flag('WASMSYM_SKIP_DEAD_CODE', config.skip_dead_code),
        )

    def supports_version(self, version: int) -> bool:
        return version in self.dwarf_versions and version in SUPPORTED_DWARF_VERSIONS
