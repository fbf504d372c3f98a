"""Command polyfill — sandbox capabilities synthesized from shell execution."""

from usandbox.polyfill.engine import DEFAULT_CHUNK_SIZE, CommandPolyfill, parse_range

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "CommandPolyfill",
    "parse_range",
]
