import hashlib

import pytest

from services.rng import hash_seed, new_seed, pf_roll, verify_commitment


def test_hash_seed_is_sha256_hex():
    assert hash_seed("abc") == hashlib.sha256(b"abc").hexdigest()


def test_new_seeds_are_fresh_hex():
    a, b = new_seed(), new_seed()
    assert a != b
    assert len(a) == 64
    int(a, 16)


def test_verify_commitment():
    seed = new_seed()
    assert verify_commitment(seed, hash_seed(seed))
    assert verify_commitment(seed, hash_seed(seed).upper())
    assert not verify_commitment(seed, hash_seed(seed + "x"))


def test_pf_roll_is_deterministic_and_in_unit_interval():
    rolls = [pf_roll("server", "client", f"break:{i}") for i in range(500)]
    assert rolls == [pf_roll("server", "client", f"break:{i}") for i in range(500)]
    assert all(0.0 <= r < 1.0 for r in rolls)


def test_pf_roll_tags_are_separate_streams():
    assert pf_roll("server", "client", "mode") != pf_roll("server", "client", "difficulty")
    assert pf_roll("server", "client", "mode") != pf_roll("server", "other", "mode")
    assert pf_roll("server", "client", "mode") != pf_roll("other", "client", "mode")


def test_pf_roll_spans_the_whole_unit_interval():
    rolls = [pf_roll("server", f"client-{i}", "mode") for i in range(5000)]
    assert max(rolls) < 1.0
    assert max(rolls) > 0.99
    assert sum(rolls) / len(rolls) == pytest.approx(0.5, abs=0.02)
    assert sum(r < 0.9 for r in rolls) / len(rolls) == pytest.approx(0.9, abs=0.02)
