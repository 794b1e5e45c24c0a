"""Tests for backend reply normalization."""

import pytest

from limitr.adapters.storage.replies import extract_count_and_ttl, extract_number
from limitr.core.errors import MalformedReplyAppError, StorageAppError


class TestExtractNumber:
    @pytest.mark.parametrize(
        "reply, expected",
        [
            (7, 7),
            (3.0, 3),
            (2.5, 2.5),
            ("42", 42),
            (b"9", 9),
            ([b"5", 60_000], 5),
            (["n/a", "11"], 11),
            ({"result": 4}, 4),
        ],
    )
    def test_accepts_supported_shapes(self, reply, expected) -> None:
        assert extract_number(reply) == expected

    def test_empty_reply_raises(self) -> None:
        with pytest.raises(MalformedReplyAppError) as exc_info:
            extract_number(None)

        assert exc_info.value.code == "storage_empty_reply"

    @pytest.mark.parametrize("reply", ["abc", True, [], {"result": "nope"}, float("nan"), object()])
    def test_non_numeric_reply_raises(self, reply) -> None:
        with pytest.raises(MalformedReplyAppError) as exc_info:
            extract_number(reply)

        assert exc_info.value.code == "storage_invalid_numeric_reply"

    def test_malformed_reply_is_a_storage_error(self) -> None:
        with pytest.raises(StorageAppError):
            extract_number("x")


class TestExtractCountAndTtl:
    def test_reads_pair(self) -> None:
        assert extract_count_and_ttl([3, 59_000]) == (3, 59_000)

    def test_reads_wrapped_pair_of_strings(self) -> None:
        assert extract_count_and_ttl({"result": ["2", "1500"]}) == (2, 1500)

    def test_reads_bytes_pair(self) -> None:
        assert extract_count_and_ttl((b"1", b"60000")) == (1, 60_000)

    @pytest.mark.parametrize("reply", [None, 5, [1], {"result": 3}, "1,2"])
    def test_rejects_non_pairs(self, reply) -> None:
        with pytest.raises(MalformedReplyAppError) as exc_info:
            extract_count_and_ttl(reply)

        assert exc_info.value.code == "storage_invalid_increment_reply"
