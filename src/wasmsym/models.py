"""
Pydantic models for the JSON documents the CLI emits.
"""

from typing import Optional
from pydantic import BaseModel, Field


# Source info export

class SourceFile(BaseModel):
    """Line mappings of one source file.

    Each entry of ``lines`` is ``[module_offset, line, column]`` with 0-based
    line and column.
    """
    file: str
    language: int = 0
    lines: list[list[int]] = Field(default_factory=list)


class SourceUnit(BaseModel):
    """Source files of one compilation unit."""
    name: str = ""
    directory: str = ""
    files: list[SourceFile] = Field(default_factory=list)


class SourceResult(BaseModel):
    """Top-level document of ``wasmsym dump``; exactly one field is set."""
    units: Optional[list[SourceUnit]] = None
    error: Optional[str] = None

    def to_json(self, **kwargs) -> str:
        return self.model_dump_json(exclude_none=True, **kwargs)


# Address resolution

class ResolvedFrame(BaseModel):
    """One line of ``wasmsym resolve`` output."""
    address: int
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    function: Optional[str] = None
    resolved: bool = False
