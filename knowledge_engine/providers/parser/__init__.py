"""File-content parsers keyed by extension."""

from knowledge_engine.providers.parser.parser_registry import ParserRegistry

__all__ = ["ParserRegistry"]
