"""Tests for parameters, records and section assembly."""

import pytest

from stepfile.errors import DuplicateIdError
from stepfile.parameters import (
    UNSET,
    Binary,
    EntityRef,
    Integer,
    ParamList,
    String,
    TypedParameter,
    kind_name,
)
from stepfile.parsing import assemble_data_section, assemble_exchange_file
from stepfile.records import Header, Record, SimpleRecord


class TestParameters:
    """Tests for parameter values."""

    def test_value_equality(self):
        """Test that parameters compare by variant and value."""
        assert Integer(1) == Integer(1)
        assert Integer(1) != String("1")
        assert ParamList([Integer(1)]) == ParamList((Integer(1),))

    def test_binary_bits(self):
        """Test that unused high-order bits are dropped."""
        assert Binary(0, "A").bits == "1010"
        assert Binary(2, "3F").bits == "111111"
        assert Binary(0, "").bits == ""

    def test_param_list_access(self):
        """Test sequence access on aggregates."""
        values = ParamList([Integer(1), Integer(2)])
        assert len(values) == 2
        assert values[1] == Integer(2)
        assert list(values) == [Integer(1), Integer(2)]

    def test_kind_name(self):
        """Test human-readable variant names."""
        assert kind_name(Integer(1)) == "integer"
        assert kind_name(UNSET) == "unset ($)"
        assert kind_name(TypedParameter("LABEL", String("x"))) == "typed parameter LABEL"


class TestRecord:
    """Tests for the Record value."""

    def test_needs_keyword_or_parts(self):
        """Test that a record without keyword and parts is rejected."""
        with pytest.raises(ValueError):
            Record(id=1, keyword=None)

    def test_complex_must_not_have_keyword(self):
        """Test that a complex record cannot also have a keyword."""
        with pytest.raises(ValueError):
            Record(id=1, keyword="A", parts=(SimpleRecord("B"),))

    def test_location_not_compared(self):
        """Test that offset and line do not take part in equality."""
        a = Record(id=1, keyword="A", parameters=(Integer(1),), offset=0, line=1)
        b = Record(id=1, keyword="A", parameters=[Integer(1)], offset=50, line=4)
        assert a == b

    def test_groups(self):
        """Test viewing simple and complex records as keyword groups."""
        simple = Record(id=1, keyword="A", parameters=(Integer(1),))
        assert simple.groups() == (SimpleRecord("A", [Integer(1)]),)
        complex_record = Record.complex(2, [SimpleRecord("A"), SimpleRecord("B", [EntityRef(1)])])
        assert complex_record.groups()[1].keyword == "B"
        assert list(complex_record.references()) == [1]

    def test_repr(self):
        """Test the short representation."""
        assert repr(Record(id=3, keyword="POINT")) == "Record(#3, POINT)"


class TestHeader:
    """Tests for header accessors."""

    def test_wrong_arity(self):
        """Test that a malformed FILE_SCHEMA is reported."""
        header = Header([Record(id=None, keyword="FILE_SCHEMA", parameters=())])
        with pytest.raises(ValueError):
            header.file_schema

    def test_get_is_case_insensitive(self):
        """Test looking up header records by keyword."""
        record = Record(id=None, keyword="FILE_SCHEMA", parameters=(ParamList([String("S")]),))
        header = Header([record])
        assert header.get("file_schema") is record
        assert header.file_schema.schema_identifiers == ["S"]


class TestAssembler:
    """Tests for data section assembly."""

    def test_preserves_order(self):
        """Test that records keep their text order."""
        records = [Record(id=i, keyword="A") for i in (3, 1, 2)]
        section = assemble_data_section(records)
        assert section.ids == [3, 1, 2]

    def test_duplicate_id(self):
        """Test that duplicates are rejected with both locations."""
        records = [
            Record(id=5, keyword="A", offset=0, line=1),
            Record(id=5, keyword="B", offset=12, line=2),
        ]
        with pytest.raises(DuplicateIdError) as exc_info:
            assemble_data_section(records)
        assert exc_info.value.entity_id == 5
        assert exc_info.value.first_offset == 0
        assert exc_info.value.offset == 12

    def test_exchange_file_shares_header(self):
        """Test that every section of an exchange file gets its header."""
        header = Header()
        sections = [
            assemble_data_section([Record(id=1, keyword="A")]),
            assemble_data_section([Record(id=2, keyword="B")]),
        ]
        exchange = assemble_exchange_file(header, sections)
        assert all(s.header is header for s in exchange.data_sections)
        assert [r.id for r in exchange.records] == [1, 2]

    def test_logs_assembly(self, log_output):
        """Test that assembly emits a debug event."""
        assemble_data_section([Record(id=1, keyword="A")])
        events = [e for e in log_output.entries if e["event"] == "data_section_assembled"]
        assert events[0]["records"] == 1
        assert events[0]["log_level"] == "debug"
