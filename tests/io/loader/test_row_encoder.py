"""Tests for the streaming CSV row encoder."""

import io
import itertools
from types import SimpleNamespace

import pytest

from pg_bulk_import.codecs import ValueCodecRegistry
from pg_bulk_import.config.import_config import NullMode
from pg_bulk_import.exceptions import EncodingError
from pg_bulk_import.io.loader.row_encoder import RowEncoder, format_csv_field
from pg_bulk_import.mapping import TableMapping


@pytest.fixture
def mapping() -> TableMapping:
    return (
        TableMapping.builder("items")
        .id("id", lambda e: e.id)
        .column("name", lambda e: e.name)
        .column("tags", lambda e: e.tags)
        .build()
    )


def _item(id, name, tags=None):
    return SimpleNamespace(id=id, name=name, tags=tags)


class TestFormatCsvField:
    @pytest.mark.parametrize(
        "token, expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("line\nbreak", '"line\nbreak"'),
            ("cr\rhere", '"cr\rhere"'),
            ("\\.", '"\\."'),
        ],
    )
    def test_quoting(self, token, expected):
        assert format_csv_field(token, "", False) == expected

    def test_empty_string_is_quoted_when_null_is_empty(self):
        assert format_csv_field("", "", False) == '""'

    def test_value_equal_to_null_word_is_quoted(self):
        assert format_csv_field("NULL", "NULL", False) == '"NULL"'

    def test_null_is_bare_token(self):
        assert format_csv_field("ignored", "\\N", True) == "\\N"


class TestRowEncoder:
    def test_encodes_rows_in_order(self, mapping):
        out = io.StringIO()
        count = RowEncoder(mapping).encode(
            [_item(1, "apple", ["red", "green"]), _item(2, "pear, ripe")], out
        )

        assert count == 2
        assert out.getvalue() == '1,apple,"{red,green}"\n2,"pear, ripe",\n'

    @pytest.mark.parametrize(
        "mode, expected",
        [
            (NullMode.EMPTY, '1,"",\n'),
            (NullMode.SENTINEL, "1,,\\N\n"),
            (NullMode.WORD, "1,,NULL\n"),
        ],
    )
    def test_null_modes(self, mapping, mode, expected):
        out = io.StringIO()
        RowEncoder(mapping, null_mode=mode).encode([_item(1, "")], out)
        assert out.getvalue() == expected

    def test_empty_input_writes_nothing(self, mapping):
        out = io.StringIO()
        assert RowEncoder(mapping).encode([], out) == 0
        assert out.getvalue() == ""

    def test_lazy_input_is_consumed_incrementally(self, mapping):
        pulled = []

        def generate():
            for i in itertools.count():
                pulled.append(i)
                yield _item(i, f"n{i}")

        out = io.StringIO()
        RowEncoder(mapping).encode(itertools.islice(generate(), 5), out)
        assert pulled == [0, 1, 2, 3, 4]
        assert out.getvalue().count("\n") == 5

    def test_uses_given_registry(self, mapping):
        registry = ValueCodecRegistry.with_builtins()
        registry.register(str, str.upper)
        out = io.StringIO()
        RowEncoder(mapping, registry=registry).encode([_item(1, "abc")], out)
        assert out.getvalue() == "1,ABC,\n"

    def test_extraction_failure_names_row_and_column(self, mapping):
        out = io.StringIO()
        entities = [_item(1, "ok"), SimpleNamespace(id=2)]

        with pytest.raises(EncodingError) as exc_info:
            RowEncoder(mapping).encode(entities, out)

        error = exc_info.value
        assert error.details == {"row": 1, "column": "name"}
        assert "row 1" in str(error)
        assert isinstance(error.__cause__, AttributeError)

    def test_codec_failure_names_row_and_column(self, mapping):
        registry = ValueCodecRegistry.with_builtins()

        def broken(value):
            raise ValueError("bad value")

        registry.register(str, broken)
        with pytest.raises(EncodingError, match="Failed to encode column 'name' at row 0"):
            RowEncoder(mapping, registry=registry).encode([_item(1, "x")], io.StringIO())

    def test_source_failure_is_wrapped(self, mapping):
        def generate():
            yield _item(1, "a")
            raise RuntimeError("source exploded")

        with pytest.raises(EncodingError, match="Failed to read entity at row 1"):
            RowEncoder(mapping).encode(generate(), io.StringIO())

    def test_rows_written_tracks_progress(self, mapping):
        encoder = RowEncoder(mapping, batch_size=2)
        encoder.encode([_item(i, "n") for i in range(5)], io.StringIO())
        assert encoder.rows_written == 5
