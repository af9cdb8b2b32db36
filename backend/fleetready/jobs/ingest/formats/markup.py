"""
XML vendor exports.

Either a collection root (<records><record>...</record>...</records>) or a single
record element. Fields come from attributes and child elements; a child holding
only repeated children (<parts><part>A</part><part>B</part></parts>) becomes a list.
"""

from typing import Any

from lxml import etree

from fleetready.core.errors import FormatError


def _parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)


def _parse(text: str) -> etree._Element:
    try:
        return etree.fromstring(text.strip().encode("utf-8"), parser=_parser())
    except etree.XMLSyntaxError as e:
        raise FormatError(f"Malformed XML: {e}")


def _is_record(el: etree._Element) -> bool:
    return bool(el.attrib) or any(isinstance(c.tag, str) for c in el)


def _local(tag: str) -> str:
    return etree.QName(tag).localname


def split_records(text: str) -> list[str]:
    if not text.strip():
        return []
    root = _parse(text)
    children = [c for c in root if isinstance(c.tag, str)]
    if not children and not root.attrib:
        return []
    if children and all(_is_record(c) for c in children):
        records = children
    else:
        records = [root]

    out: list[str] = []
    for el in records:
        el.tail = None
        out.append(etree.tostring(el, encoding="unicode"))
    return out


def _element_value(el: etree._Element):
    kids = [c for c in el if isinstance(c.tag, str)]
    if not kids:
        return (el.text or "").strip()
    return [(k.text or "").strip() for k in kids]


def parse_record(payload: str) -> dict[str, Any]:
    el = _parse(payload)
    fields: dict[str, Any] = {_local(k): v.strip() for k, v in el.attrib.items()}

    for child in el:
        if not isinstance(child.tag, str):
            continue
        name = _local(child.tag)
        value = _element_value(child)
        if name in fields:
            prev = fields[name]
            fields[name] = (prev if isinstance(prev, list) else [prev]) + (
                value if isinstance(value, list) else [value]
            )
        else:
            fields[name] = value
    return fields
