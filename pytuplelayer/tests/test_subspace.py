import unittest
import logging

from pytuplelayer import tuplelayer
from pytuplelayer.memory import MemoryStore
from pytuplelayer.subspace import Subspace
from pytuplelayer.tuplelayer import (
    INT64, STRING, MissingPrefix, TrailingData)


class SubspaceTestCase(unittest.TestCase):

    def setUp(self):
        self.s1 = Subspace(("entities",))
        self.s2 = Subspace(("entities", 356))
        self.s3 = Subspace(("entities", 789))
        self.k1 = self.s1.pack((356, "state"))

    def test_contains(self):
        self.assertTrue(self.s1.contains(self.k1))
        self.assertTrue(self.s2.contains(self.k1))
        self.assertFalse(self.s3.contains(self.k1))
        self.assertFalse(self.s2.contains(self.s1.key()))

    def test_unpack(self):
        self.assertEqual((356, "state"), self.s1.unpack(self.k1, (INT64, STRING)))
        self.assertEqual(("state",), self.s2.unpack(self.k1, (STRING,)))
        self.assertEqual((356, "state"), self.s1.unpack(self.k1))

    def test_unpack_missing_prefix(self):
        self.assertRaises(MissingPrefix, self.s3.unpack, self.k1, (STRING,))
        self.assertRaises(MissingPrefix, self.s2.unpack, self.s1.key())

    def test_unpack_trailing_data(self):
        self.assertRaises(TrailingData, self.s1.unpack, self.k1, (INT64,))

    def test_pack_starts_with_prefix(self):
        self.assertEqual(
            self.s1.key() + tuplelayer.pack((356, "state")), self.k1)
        self.assertEqual(tuplelayer.pack(("entities",)), self.s1.key())
        self.assertEqual(self.s1.key(), self.s1.pack())

    def test_subspace(self):
        s4 = self.s1.subspace((356,))
        self.assertEqual(self.s2.pack(()), s4.pack(()))
        self.assertEqual(self.s2, s4)
        self.assertEqual(hash(self.s2), hash(s4))
        self.assertEqual(self.s2, self.s1[356])
        self.assertNotEqual(self.s2, self.s3)

    def test_raw_prefix(self):
        s = Subspace(("a",), raw_prefix=b"\xfe")
        self.assertEqual(b"\xfe\x02a\x00", s.key())
        self.assertEqual(("b",), s.unpack(s.pack(("b",))))

    def test_range(self):
        begin, end = self.s2.range()
        self.assertEqual(self.s2.key() + b"\x00", begin)
        self.assertEqual(self.s2.key() + b"\xff", end)
        self.assertTrue(begin <= self.k1 < end)
        self.assertFalse(begin <= self.s3.pack(("state",)) < end)
        begin, end = self.s1.range((356,))
        self.assertTrue(begin <= self.k1 < end)

    def test_repr(self):
        self.assertEqual(
            "Subspace(raw_prefix=b'\\x02entities\\x00')", repr(self.s1))

    def test_derivation_does_not_log(self):
        records = []
        handler = logging.Handler(logging.DEBUG)
        handler.emit = records.append
        package_logger = logging.getLogger("pytuplelayer")
        old_level = package_logger.level
        package_logger.addHandler(handler)
        package_logger.setLevel(logging.DEBUG)
        try:
            for eid in range(100):
                self.s1.subspace((eid,))
                self.s1[eid]
        finally:
            package_logger.removeHandler(handler)
            package_logger.setLevel(old_level)
        self.assertEqual([], records)


class RangeScanTestCase(unittest.TestCase):
    """Range scans over packed keys through the in-memory store."""

    def setUp(self):
        self.store = MemoryStore()
        self.entities = Subspace(("entities",))
        with self.store.transaction() as tr:
            for eid in (-300, -1, 0, 2, 356, 789, 70000):
                for field in ("name", "state", "zone"):
                    value = ("%d-%s" % (eid, field)).encode("ascii")
                    tr.set(self.entities.pack((eid, field)), value)
            tr.set(Subspace(("other",)).pack((1,)), b"x")

    def test_scan_one_entity(self):
        entity = self.entities.subspace((356,))
        tr = self.store.transaction()
        rows = tr.get_range(*entity.range())
        self.assertEqual(
            [("name",), ("state",), ("zone",)],
            [entity.unpack(k, (STRING,)) for k, _ in rows])
        self.assertEqual(b"356-state", rows[1][1])

    def test_scan_is_ordered_by_value(self):
        tr = self.store.transaction()
        rows = tr.get_range(*self.entities.range())
        ids = [self.entities.unpack(k, (INT64, STRING))[0] for k, _ in rows]
        self.assertEqual(21, len(rows))
        self.assertEqual(sorted(ids), ids)
        self.assertEqual(-300, ids[0])
        self.assertEqual(70000, ids[-1])


if __name__ == "__main__":
    unittest.main()
