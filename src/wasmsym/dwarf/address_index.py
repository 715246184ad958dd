"""
Address index over all compilation units of a module.

Provides address to (file, line, column, function) lookups. The index is
built once and never mutated afterwards, so one instance can serve any
number of concurrent lookups.
"""

import bisect
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from wasmsym.config import ResolverConfig
from wasmsym.dwarf.demangle import demangle
from wasmsym.dwarf.die_parser import FunctionInfo
from wasmsym.dwarf.line_program import FileEntry, LineSequence

logger = logging.getLogger(__name__)

# Addresses wasm-ld writes for code it discarded
_TOMBSTONES = (0xffffffff, 0xfffffffe, 0xffffffffffffffff, 0xfffffffffffffffe)


@dataclass
class CompilationUnitInfo:
    """What one compilation unit contributes to the index."""

    name: Optional[str]
    comp_dir: Optional[str]
    file_table: list[FileEntry]
    sequences: list[LineSequence]
    functions: list[FunctionInfo]
    language: int = 0
    offset: int = 0  # .debug_info offset

    @property
    def line_rows(self):
        """All rows of the unit, sequence by sequence in address order."""
        return [row for sequence in self.sequences for row in sequence.rows]

    def file_path(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.file_table) and self.file_table[index].name:
            return self.file_table[index].path
        return None


@dataclass(frozen=True)
class SourceLocation:
    """Source position covering an address span."""

    file: Optional[str]
    line: int
    column: int
    address: int  # Address of the row the location came from

    def __str__(self):
        return f"{self.file}:{self.line}:{self.column}"


@dataclass(frozen=True)
class FunctionRange:
    """Address range attributed to one function."""

    name: Optional[str]
    low_pc: int
    high_pc: int
    depth: int = 0


@dataclass(frozen=True)
class ResolvedLocation:
    """Result of resolving one address; any field may be absent."""

    address: int
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    function: Optional[str] = None

    def __str__(self):
        where = f"{self.file}:{self.line}:{self.column}" if self.file else f"0x{self.address:x}"
        return f"{self.function} ({where})" if self.function else where


class _IntervalTable:
    """Sorted [start, end) intervals with a running maximum of ends.

    ``candidates(address)`` yields every interval containing the address,
    greatest start first. The running maximum stops the backwards walk as
    soon as no earlier interval can reach the address.
    """

    def __init__(self, intervals: list[tuple[int, int, object]]):
        intervals.sort(key=lambda interval: interval[0])
        self.starts = [start for start, _, _ in intervals]
        self.ends = [end for _, end, _ in intervals]
        self.values = [value for _, _, value in intervals]
        self.max_ends = []
        running = -1
        for end in self.ends:
            running = max(running, end)
            self.max_ends.append(running)

    def __len__(self):
        return len(self.starts)

    def candidates(self, address: int):
        index = bisect.bisect_right(self.starts, address) - 1
        while index >= 0 and self.max_ends[index] > address:
            if self.ends[index] > address:
                yield self.values[index]
            index -= 1


class AddressIndex:
    """Merged address lookup structure for a whole module.

    Line rows become spans from each row's address up to the next row of the
    same sequence; the last row of a sequence reaches its end_sequence
    address. Function ranges are kept in a second table.
    """

    def __init__(self, spans: list[tuple[int, int, SourceLocation]],
                 functions: list[FunctionRange], config: Optional[ResolverConfig] = None):
        self.config = config or ResolverConfig()
        self._lines = _IntervalTable(spans)
        self._functions = _IntervalTable([(f.low_pc, f.high_pc, f) for f in functions])

    @classmethod
    def build(cls, units: Iterable[CompilationUnitInfo],
              config: Optional[ResolverConfig] = None) -> 'AddressIndex':
        """Merge the line tables and function ranges of all units.

        Args:
            units: Decoded compilation units
            config: Dead code and demangling settings

        Returns:
            Immutable AddressIndex
        """
        config = config or ResolverConfig()
        spans = []
        functions = []
        dropped_sequences = 0

        for unit in units:
            for sequence in unit.sequences:
                if config.skip_dead_code and sequence.start == 0:
                    # Sequences of functions the linker discarded restart at 0
                    dropped_sequences += 1
                    continue
                spans.extend(_sequence_spans(unit, sequence))

            for function in unit.functions:
                if config.skip_dead_code and (function.low_pc == 0 or function.low_pc in _TOMBSTONES):
                    # Discarded functions are relocated to 0 or a tombstone
                    continue
                functions.append(FunctionRange(
                    name=function.name,
                    low_pc=function.low_pc,
                    high_pc=function.high_pc,
                    depth=function.depth,
                ))

        if dropped_sequences:
            logger.debug(f"Dropped {dropped_sequences} dead code sequence(s)")
        logger.debug(f"Built address index: {len(spans)} line span(s), {len(functions)} function range(s)")
        return cls(spans, functions, config)

    @classmethod
    def empty(cls, config: Optional[ResolverConfig] = None) -> 'AddressIndex':
        """Index for modules without debug information; every lookup is absent."""
        return cls([], [], config)

    @property
    def is_empty(self) -> bool:
        return not self._lines and not self._functions

    def find_location(self, address: int) -> Optional[SourceLocation]:
        """Find the source location covering an address.

        Returns:
            Location of the greatest row at or below the address whose
            sequence still covers it, None in gaps and past sequence ends
        """
        for location in self._lines.candidates(address):
            return location
        return None

    def find_function(self, address: int) -> Optional[FunctionRange]:
        """Find the innermost function range containing an address.

        Nested ranges (inlined calls) resolve to the smallest one; equal
        sizes prefer the deeper inline level.
        """
        best = None
        for function in self._functions.candidates(address):
            if best is None or _narrower(function, best):
                best = function
        return best

    def resolve(self, address: int) -> Optional[ResolvedLocation]:
        """Resolve an address to its source location and function name.

        Never raises; returns None when neither a location nor a function
        covers the address.
        """
        location = self.find_location(address)
        function = self.find_function(address)
        if location is None and function is None:
            return None

        name = function.name if function else None
        if name and self.config.demangle:
            name = demangle(name, self.config.demangle_schemes)

        if location is None:
            return ResolvedLocation(address=address, function=name)
        return ResolvedLocation(
            address=address,
            file=location.file,
            line=location.line,
            column=location.column,
            function=name,
        )

    def resolve_frames(self, addresses: Sequence[int]) -> list[Optional[ResolvedLocation]]:
        """Resolve a whole stack of frame addresses.

        Repeated addresses (recursion) are only looked up once.
        """
        cache: dict[int, Optional[ResolvedLocation]] = {}
        results = []
        for address in addresses:
            if address not in cache:
                cache[address] = self.resolve(address)
            results.append(cache[address])
        return results


def _narrower(candidate: FunctionRange, best: FunctionRange) -> bool:
    candidate_size = candidate.high_pc - candidate.low_pc
    best_size = best.high_pc - best.low_pc
    if candidate_size != best_size:
        return candidate_size < best_size
    return candidate.depth > best.depth


def _sequence_spans(unit: CompilationUnitInfo, sequence: LineSequence):
    rows = sequence.rows
    for row, next_row in zip(rows, rows[1:]):
        if next_row.address <= row.address:
            # Superseded by a later row at the same address
            continue
        location = SourceLocation(
            file=unit.file_path(row.file_index),
            line=row.line,
            column=row.column,
            address=row.address,
        )
        yield row.address, next_row.address, location
