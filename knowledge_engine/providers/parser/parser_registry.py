"""Extension-keyed registry of content parsers."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from knowledge_engine.interfaces.content_parser import IContentParser
from knowledge_engine.providers.parser.document_parsers import (
    parse_csv,
    parse_docx,
    parse_pdf,
    parse_plain_text,
    parse_spreadsheet,
)
from knowledge_engine.utils.errors import ParseError, UnsupportedSourceType

logger = structlog.get_logger(logger_name=__name__)

ParseFunc = Callable[[bytes], str]

_DEFAULT_PARSERS: dict[str, ParseFunc] = {
    ".pdf": parse_pdf,
    ".docx": parse_docx,
    ".xlsx": parse_spreadsheet,
    ".xls": parse_spreadsheet,
    ".csv": parse_csv,
    ".txt": parse_plain_text,
    ".md": parse_plain_text,
}


def _normalize(extension: str) -> str:
    ext = extension.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


class ParserRegistry(IContentParser):
    """Maps file extensions to bytes -> text functions.

    Starts with the built-in formats; :meth:`register` adds or replaces an
    entry.  Any exception a parser raises is wrapped in :class:`ParseError`.
    """

    def __init__(self, parsers: dict[str, ParseFunc] | None = None) -> None:
        self._parsers: dict[str, ParseFunc] = dict(_DEFAULT_PARSERS)
        for extension, func in (parsers or {}).items():
            self.register(extension, func)

    def register(self, extension: str, func: ParseFunc) -> None:
        self._parsers[_normalize(extension)] = func

    def supports(self, extension: str) -> bool:
        return _normalize(extension) in self._parsers

    def supported_extensions(self) -> list[str]:
        return sorted(self._parsers)

    def parse(self, data: bytes, extension: str) -> str:
        ext = _normalize(extension)
        func = self._parsers.get(ext)
        if func is None:
            raise UnsupportedSourceType(
                message=f"Unsupported file type: {extension or '(none)'}",
                provider_name=self.get_provider_name(),
            )

        try:
            text = func(data)
        except Exception as exc:
            raise ParseError(
                message=f"Failed to parse {ext} content: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("content_parsed", extension=ext, bytes=len(data), chars=len(text))
        return text

    def get_provider_name(self) -> str:
        return "parser_registry"
