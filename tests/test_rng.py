"""Tests for phenomem.rng — seeded RNG streams and checkpointing."""

import numpy as np
import pytest

from phenomem.rng import (
    STREAM_NAMES,
    as_generator,
    create_rng_streams,
    restore_rng_state,
    rng_state_snapshot,
)


class TestCreateRngStreams:
    def test_returns_exactly_named_streams(self):
        rngs = create_rng_streams(42)
        assert tuple(rngs) == STREAM_NAMES

    def test_streams_are_independent(self):
        """Different streams produce different sequences."""
        rngs = create_rng_streams(42)
        vals = {name: rng.random() for name, rng in rngs.items()}
        assert len(set(vals.values())) == len(vals)

    def test_reproducibility(self):
        rngs1 = create_rng_streams(42)
        rngs2 = create_rng_streams(42)
        for name in rngs1:
            np.testing.assert_array_equal(rngs1[name].random(100), rngs2[name].random(100))

    def test_different_seeds_differ(self):
        a = create_rng_streams(42)['dominance'].random(10)
        b = create_rng_streams(43)['dominance'].random(10)
        assert not np.array_equal(a, b)

    def test_spawn_order(self):
        """Streams are the SeedSequence children in STREAM_NAMES order."""
        children = np.random.SeedSequence(42).spawn(len(STREAM_NAMES))
        rngs = create_rng_streams(42)
        for name, child in zip(STREAM_NAMES, children):
            expected = np.random.Generator(np.random.PCG64(child)).random(20)
            np.testing.assert_array_equal(rngs[name].random(20), expected)

    def test_negative_seed_rejected(self):
        with pytest.raises(ValueError):
            create_rng_streams(-1)

    def test_pcg64(self):
        for rng in create_rng_streams(7).values():
            assert isinstance(rng.bit_generator, np.random.PCG64)


class TestAsGenerator:
    def test_generator_passthrough(self):
        gen = np.random.default_rng(1)
        assert as_generator(gen) is gen

    def test_seed(self):
        np.testing.assert_array_equal(
            as_generator(5).random(5), np.random.default_rng(5).random(5)
        )

    def test_none_gives_generator(self):
        assert isinstance(as_generator(None), np.random.Generator)


class TestCheckpointing:
    def test_snapshot_and_restore(self):
        rngs = create_rng_streams(42)
        for rng in rngs.values():
            rng.random(10)
        snapshot = rng_state_snapshot(rngs)
        expected = {name: rng.random(20) for name, rng in rngs.items()}

        fresh = create_rng_streams(42)
        restore_rng_state(fresh, snapshot)
        for name, rng in fresh.items():
            np.testing.assert_array_equal(rng.random(20), expected[name])

    def test_snapshot_keys(self):
        rngs = create_rng_streams(42)
        assert set(rng_state_snapshot(rngs)) == set(STREAM_NAMES)

    def test_restore_unknown_stream_raises(self):
        rngs = create_rng_streams(42)
        with pytest.raises(KeyError, match="nonexistent_stream"):
            restore_rng_state(rngs, {'nonexistent_stream': {}})
