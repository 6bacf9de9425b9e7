import itertools
import random
from collections import Counter

import pytest

from jstat.journal import Record
from jstat.talkers import FrequencyEntry, TopTalkers


def make_record(message: bytes, process: str = "sshd", timestamp: int = 0) -> Record:
    return Record(
        unit="ssh.service",
        process=process,
        message=message,
        size=len(message),
        timestamp=timestamp,
    )


def count(messages, talkers=None, start=0) -> TopTalkers:
    talkers = talkers if talkers is not None else TopTalkers()
    for ordinal, message in enumerate(messages, start):
        talkers.observe(message, make_record(message), ordinal)
    return talkers


def ranking(entries):
    return [(e.key, e.count) for e in entries]


def test_most_frequent():
    talkers = count([b"A", b"B", b"A", b"A"])

    assert ranking(talkers.finalize(1)) == [(b"A", 3)]
    assert ranking(talkers.finalize(5)) == [(b"A", 3), (b"B", 1)]


def test_empty():
    assert TopTalkers().finalize(3) == []


def test_zero_n():
    assert count([b"A"]).finalize(0) == []


def test_ties_rank_by_first_insertion():
    talkers = count([b"C", b"B", b"A", b"A", b"B", b"C"])

    assert ranking(talkers.finalize(3)) == [(b"C", 2), (b"B", 2), (b"A", 2)]


def test_entry_records_first_process():
    talkers = TopTalkers()
    talkers.observe(b"hello", make_record(b"hello", process="cron"), 0)
    talkers.observe(b"hello", make_record(b"hello", process="sshd"), 1)

    assert talkers.finalize(1) == [
        FrequencyEntry(key=b"hello", count=2, first_seen=0, process="cron")
    ]


def test_entry_as_dict_decodes_message():
    entry = FrequencyEntry(key=("cron", b"caf\xc3\xa9 \xff"), count=2, first_seen=0, process="cron")

    assert entry.as_dict() == {
        "frequency": 2,
        "process": "cron",
        "message": "café �",
    }


@pytest.mark.parametrize("n", [0, 1, 2, 3, 10])
def test_length_is_min_of_n_and_distinct_keys(n):
    talkers = count([b"A", b"B", b"C", b"A"])

    assert len(talkers.finalize(n)) == min(n, 3)


def test_counts_are_order_independent():
    rng = random.Random(7)
    messages = [bytes([rng.randrange(5) + 65]) for _ in range(200)]
    shuffled = list(messages)
    rng.shuffle(shuffled)

    expected = Counter(messages)
    for sample in [messages, shuffled]:
        entries = count(sample).finalize(5)
        assert {e.key: e.count for e in entries} == dict(expected)
        assert [e.count for e in entries] == sorted(expected.values(), reverse=True)


def test_merge_matches_single_pass():
    messages = [b"A", b"B", b"A", b"C", b"B", b"A", b"D", b"C"]
    single = count(messages)

    for split in range(len(messages) + 1):
        left = count(messages[:split])
        right = count(messages[split:], start=split)
        left.merge(right)
        assert left.finalize(4) == single.finalize(4)


def test_merge_is_commutative_and_associative():
    groups = [[b"A", b"B"], [b"B", b"C", b"C"], [b"A", b"C", b"D"]]
    starts = [0, 2, 5]

    results = []
    for order in itertools.permutations(range(3)):
        total = TopTalkers()
        for i in order:
            total.merge(count(groups[i], start=starts[i]))
        results.append(total.finalize(4))

    nested = count(groups[0], start=0)
    inner = count(groups[1], start=2)
    inner.merge(count(groups[2], start=5))
    nested.merge(inner)
    results.append(nested.finalize(4))

    assert all(r == results[0] for r in results)
    assert ranking(results[0]) == [(b"C", 3), (b"A", 2), (b"B", 2), (b"D", 1)]


def test_merge_keeps_earliest_first_seen():
    ours = TopTalkers()
    ours.observe(b"A", make_record(b"A", process="late"), 10)
    theirs = TopTalkers()
    theirs.observe(b"A", make_record(b"A", process="early"), 3)

    ours.merge(theirs)

    assert ours.finalize(1) == [
        FrequencyEntry(key=b"A", count=2, first_seen=3, process="early")
    ]


def test_merge_does_not_alias_entries():
    theirs = count([b"A"])
    ours = TopTalkers()
    ours.merge(theirs)
    ours.observe(b"A", make_record(b"A"), 5)

    assert theirs.entries[b"A"].count == 1
    assert ours.entries[b"A"].count == 2
