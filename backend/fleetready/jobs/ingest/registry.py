from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Optional

from fleetready.core.errors import FormatError
from fleetready.jobs.ingest.formats import delimited, markup, structured


@dataclass(frozen=True)
class FormatHandler:
    split: Callable[..., list[str]]
    parse: Callable[[str], dict[str, Any]]
    accepts_records_path: bool = False


FORMATS: dict[str, FormatHandler] = {
    "csv": FormatHandler(
        split=partial(delimited.split_records, delimiter=","),
        parse=partial(delimited.parse_record, delimiter=","),
    ),
    "tsv": FormatHandler(
        split=partial(delimited.split_records, delimiter="\t"),
        parse=partial(delimited.parse_record, delimiter="\t"),
    ),
    "psv": FormatHandler(
        split=partial(delimited.split_records, delimiter="|"),
        parse=partial(delimited.parse_record, delimiter="|"),
    ),
    "xml": FormatHandler(split=markup.split_records, parse=markup.parse_record),
    "json": FormatHandler(
        split=partial(structured.split_records, kind="json"),
        parse=partial(structured.parse_record, kind="json"),
        accepts_records_path=True,
    ),
    "yaml": FormatHandler(
        split=partial(structured.split_records, kind="yaml"),
        parse=partial(structured.parse_record, kind="yaml"),
        accepts_records_path=True,
    ),
}

EXTENSIONS = {
    ".csv": "csv",
    ".tsv": "tsv",
    ".tab": "tsv",
    ".psv": "psv",
    ".xml": "xml",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
}


def get_format(format_tag: str) -> FormatHandler:
    handler = FORMATS.get((format_tag or "").lower())
    if handler is None:
        raise FormatError(f"Unknown format tag: {format_tag!r}", format_tag=format_tag)
    return handler


def split_payload(text: str, format_tag: str, records_path: Optional[str] = None) -> list[str]:
    handler = get_format(format_tag)
    if records_path and handler.accepts_records_path:
        return handler.split(text, records_path=records_path)
    return handler.split(text)


def format_for_path(path: str) -> Optional[str]:
    for ext, tag in EXTENSIONS.items():
        if path.lower().endswith(ext):
            return tag
    return None
