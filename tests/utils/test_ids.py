"""Tests for public identifier generation."""

import re

import pytest

from src.utils.ids import generate_batch_id, random_base36, time_base36, to_base36


@pytest.mark.parametrize("number,expected", [(0, "0"), (35, "z"), (36, "10"), (46655, "zzz")])
def test_to_base36(number, expected):
    assert to_base36(number) == expected


def test_to_base36_rejects_negative():
    with pytest.raises(ValueError):
        to_base36(-1)


def test_random_base36():
    value = random_base36(9)
    assert len(value) == 9
    assert re.fullmatch(r"[0-9a-z]{9}", value)


def test_time_base36_is_monotonic_enough():
    assert int(time_base36(), 36) > 0


def test_batch_id_format():
    batch_id = generate_batch_id()
    assert re.fullmatch(r"BATCH-[0-9A-Z]+-[0-9A-Z]{9}", batch_id)
    assert batch_id != generate_batch_id()
