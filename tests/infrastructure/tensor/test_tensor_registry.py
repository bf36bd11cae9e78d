import unittest

from src.dagnet.domain._errors import DuplicateProducerError, UnknownInputTensorError
from src.dagnet.infrastructure.tensor._registry import TensorPair, TensorRegistry


class TestTensorRegistry(unittest.TestCase):
    def setUp(self):
        self.registry = TensorRegistry()

    def test_register_creates_pair_of_equal_shapes(self):
        pair = self.registry.register("data", (2, 3))
        self.assertEqual(pair.name, "data")
        self.assertEqual(pair.data.shape, (2, 3))
        self.assertEqual(pair.gradient.shape, (2, 3))
        self.assertIs(self.registry.lookup("data"), pair)
        self.assertIn("data", self.registry)

    def test_duplicate_producer_rejected(self):
        self.registry.register("x", producer="a")
        with self.assertRaises(DuplicateProducerError) as ctx:
            self.registry.register("x", producer="b")
        self.assertEqual(ctx.exception.tensor, "x")
        self.assertEqual(ctx.exception.layer, "b")

    def test_in_place_continuation_returns_same_pair(self):
        pair = self.registry.register("x", (4,), producer="fc")
        again = self.registry.register("x", producer="relu", in_place=True)
        self.assertIs(pair, again)
        self.assertEqual(self.registry.producer_of("x"), "fc")
        self.assertEqual(self.registry.in_place_writers("x"), ["relu"])
        self.assertEqual(len(self.registry), 1)

    def test_in_place_on_unknown_name(self):
        with self.assertRaises(UnknownInputTensorError):
            self.registry.register("nope", producer="relu", in_place=True)

    def test_consume_tracks_consumers(self):
        self.registry.register("x")
        self.registry.consume("x", "fc1")
        self.registry.consume("x", "fc2")
        self.assertEqual(self.registry.consumers_of("x"), ["fc1", "fc2"])

    def test_consume_unknown(self):
        with self.assertRaises(UnknownInputTensorError) as ctx:
            self.registry.consume("ghost", "fc")
        self.assertEqual(ctx.exception.layer, "fc")

    def test_anonymous_pairs_are_never_visible(self):
        pair = self.registry.register_anonymous((1,), producer="loss")
        self.assertTrue(pair.anonymous)
        self.assertNotIn(pair.name, self.registry)
        self.assertIsNone(self.registry.lookup(pair.name))
        self.assertEqual(self.registry.available_tensors(), [])
        self.assertEqual(self.registry.anonymous_tensors(), [pair])

    def test_adopt_existing_pair(self):
        pair = TensorPair("inner")
        self.registry.adopt("outer", pair, "block")
        self.assertIs(self.registry.lookup("outer"), pair)
        with self.assertRaises(DuplicateProducerError):
            self.registry.adopt("outer", TensorPair("other"), "block2")

    def test_insertion_order(self):
        for name in ("c", "a", "b"):
            self.registry.register(name)
        self.assertEqual(self.registry.names(), ["c", "a", "b"])
        self.assertEqual(list(self.registry), ["c", "a", "b"])
        self.assertEqual(
            [p.name for p in self.registry.available_tensors()], ["c", "a", "b"]
        )

    def test_resize_is_idempotent(self):
        pair = self.registry.register("x", (2, 2))
        self.registry.resize(pair, (3, 3))
        capacity = pair.data.capacity
        self.registry.resize(pair, (3, 3))
        self.assertEqual(pair.shape, (3, 3))
        self.assertEqual(pair.gradient.shape, (3, 3))
        self.assertEqual(pair.data.capacity, capacity)


if __name__ == "__main__":
    unittest.main()
