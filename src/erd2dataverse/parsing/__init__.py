"""Mermaid ER diagram parsing."""

from .diagnostics import Diagnostics
from .parser import DiagramParser, ParseResult, classify_cardinality, parse_diagram

__all__ = ["Diagnostics", "DiagramParser", "ParseResult", "classify_cardinality", "parse_diagram"]
