import re

import pytest

from jstat.filters import KeyBuilder, RecordFilter, decode_message, normalize_message
from jstat.journal import Record


def make_record(message=b"x", unit="sshd", process="sshd", size=10, timestamp=0):
    return Record(
        unit=unit, process=process, message=message, size=size, timestamp=timestamp
    )


def test_no_filter_admits_everything():
    record_filter = RecordFilter()

    assert record_filter.admit(make_record(unit=""))
    assert record_filter.admit(make_record(message=b"\xff\xfe"))


@pytest.mark.parametrize(
    "unit,admitted", [("sshd", True), ("cron", False), ("", False), ("SSHD", False)]
)
def test_unit_filter(unit, admitted):
    record_filter = RecordFilter(unit="sshd")

    assert record_filter.admit(make_record(unit=unit)) is admitted


def test_pattern_filter():
    record_filter = RecordFilter(pattern=re.compile(r"Failed password for \w+"))

    assert record_filter.admit(make_record(b"Failed password for root from ::1"))
    assert not record_filter.admit(make_record(b"Accepted password for root"))


def test_pattern_filter_searches_anywhere():
    record_filter = RecordFilter(pattern=re.compile("error"))

    assert record_filter.admit(make_record(b"disk error on sda"))


def test_pattern_filter_non_utf8():
    record_filter = RecordFilter(pattern=re.compile("bad � byte"))

    assert record_filter.admit(make_record(b"bad \xff byte"))
    assert not RecordFilter(pattern=re.compile("zzz")).admit(
        make_record(b"\xc3\x28")
    )


def test_filters_combine_with_and():
    record_filter = RecordFilter(unit="sshd", pattern=re.compile("^x$"))

    assert record_filter.admit(make_record(b"x", unit="sshd"))
    assert not record_filter.admit(make_record(b"x", unit="cron"))
    assert not record_filter.admit(make_record(b"y", unit="sshd"))


def test_time_window():
    record_filter = RecordFilter(since=100, until=200)

    assert not record_filter.admit(make_record(timestamp=99))
    assert record_filter.admit(make_record(timestamp=100))
    assert record_filter.admit(make_record(timestamp=199))
    assert not record_filter.admit(make_record(timestamp=200))


def test_admit_is_idempotent():
    record_filter = RecordFilter(unit="sshd", pattern=re.compile("a"))
    records = [make_record(b"a"), make_record(b"b"), make_record(b"a", unit="cron")]

    once = [r for r in records if record_filter.admit(r)]
    twice = [r for r in once if record_filter.admit(r)]

    assert once == twice == [records[0]]


def test_decode_message():
    assert decode_message(b"caf\xc3\xa9") == "café"
    assert decode_message(b"\xff") == "�"


@pytest.mark.parametrize(
    "message,expected",
    [
        (b"Started Session 42 of user root.", b"Started Session <N> of user root."),
        (b"pid=1234 addr=0x7ffd1a2b", b"pid=<N> addr=<HEX>"),
        (
            b"boot 3f2504e0-4f89-11d3-9a0c-0305e82c3301 done",
            b"boot <UUID> done",
        ),
        (b"no variable tokens", b"no variable tokens"),
    ],
)
def test_normalize_message(message, expected):
    assert normalize_message(message) == expected


def test_key_builder_default_is_exact_message():
    assert KeyBuilder().key(make_record(b"Session 1")) == b"Session 1"


def test_key_builder_normalize():
    builder = KeyBuilder(normalize=True)

    assert builder.key(make_record(b"Session 1")) == builder.key(
        make_record(b"Session 2")
    )


def test_key_builder_group_by_process():
    builder = KeyBuilder(group_by_process=True)

    assert builder.key(make_record(b"hello", process="cron")) == ("cron", b"hello")
    assert builder.key(make_record(b"hello", process="cron")) != builder.key(
        make_record(b"hello", process="sshd")
    )
