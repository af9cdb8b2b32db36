import pytest

from fleetready.core.errors import FormatError
from fleetready.jobs.ingest.formats import delimited, markup, structured
from fleetready.jobs.ingest.registry import format_for_path, get_format, split_payload


def test_csv_split_emits_header_plus_row_per_record():
    text = "\ufeffhull,type,date\nDDG-51,pm,2024-01-01\n\nDDG-52,cm,2024-01-02\n"
    records = split_payload(text, "csv")
    assert records == [
        "hull,type,date\nDDG-51,pm,2024-01-01\n",
        "hull,type,date\nDDG-52,cm,2024-01-02\n",
    ]
    assert get_format("csv").parse(records[1]) == {"hull": "DDG-52", "type": "cm", "date": "2024-01-02"}


def test_tsv_and_psv_use_their_delimiters():
    tsv = split_payload("hull\ttype\nDDG-51\tpm\n", "tsv")
    psv = split_payload("hull|type\nDDG-51|pm\n", "psv")
    assert get_format("tsv").parse(tsv[0]) == {"hull": "DDG-51", "type": "pm"}
    assert get_format("psv").parse(psv[0]) == {"hull": "DDG-51", "type": "pm"}


def test_delimited_record_column_mismatch():
    with pytest.raises(FormatError):
        delimited.parse_record("a,b\n1,2,3\n", delimiter=",")
    with pytest.raises(FormatError):
        delimited.parse_record("a,b\n1,2\n3,4\n", delimiter=",")


def test_xml_collection_split_and_parse():
    text = """<?xml version="1.0"?>
    <records>
      <record hull="DDG-51">
        <type>pm</type>
        <date>2024-01-01</date>
        <parts><part>NSN-1</part><part>NSN-2</part></parts>
      </record>
      <record hull="DDG-52"><type>cm</type><date>2024-01-02</date></record>
    </records>"""
    records = markup.split_records(text)
    assert len(records) == 2
    first = markup.parse_record(records[0])
    assert first == {"hull": "DDG-51", "type": "pm", "date": "2024-01-01", "parts": ["NSN-1", "NSN-2"]}


def test_xml_single_record_and_repeated_children():
    text = "<event hull='DDG-51'><part>A</part><part>B</part></event>"
    records = markup.split_records(text)
    assert len(records) == 1
    assert markup.parse_record(records[0]) == {"hull": "DDG-51", "part": ["A", "B"]}


@pytest.mark.parametrize("text", ["<records></records>", "<records/>", "<records>\n  <!-- none -->\n</records>"])
def test_xml_empty_collection_has_no_records(text):
    assert split_payload(text, "xml") == []


def test_xml_does_not_expand_entities():
    text = (
        '<?xml version="1.0"?><!DOCTYPE r [<!ENTITY x "expanded">]>'
        "<record><type>&x;</type></record>"
    )
    fields = markup.parse_record(text)
    assert fields.get("type") != "expanded"


def test_malformed_xml():
    with pytest.raises(FormatError):
        markup.split_records("<records><record></records>")


def test_json_collection_key_and_records_path():
    body = '{"meta": {"count": 2}, "data": {"rows": [{"hull": "DDG-51"}, {"hull": "DDG-52"}]}}'
    records = split_payload(body, "json", records_path="data.rows")
    assert [structured.parse_record(r, kind="json") for r in records] == [
        {"hull": "DDG-51"},
        {"hull": "DDG-52"},
    ]
    assert len(split_payload('{"records": [{"a": 1}, {"a": 2}, null]}', "json")) == 2
    assert len(split_payload('{"a": 1}', "json")) == 1


def test_json_records_path_missing():
    with pytest.raises(FormatError):
        split_payload('{"data": []}', "json", records_path="data.rows")


def test_json_split_is_canonical_so_keys_are_stable():
    a = split_payload('[{"b": 1, "a": 2}]', "json")
    b = split_payload('[{"a": 2,   "b": 1}]', "json")
    assert a == b


def test_yaml_records():
    body = "events:\n  - hull: DDG-51\n    type: pm\n  - hull: DDG-52\n    type: cm\n"
    records = split_payload(body, "yaml")
    assert structured.parse_record(records[1], kind="yaml") == {"hull": "DDG-52", "type": "cm"}


def test_structured_record_must_be_mapping():
    with pytest.raises(FormatError):
        structured.parse_record("[1, 2]", kind="json")


def test_format_for_path():
    assert format_for_path("/drop/vendor_a/2024-03.CSV") == "csv"
    assert format_for_path("export.yml") == "yaml"
    assert format_for_path("export.tab") == "tsv"
    assert format_for_path("export.bin") is None
