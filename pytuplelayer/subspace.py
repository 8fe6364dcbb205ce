"""Subspaces of keys.

A Subspace owns a byte prefix, itself a packed tuple, and adds it when
packing tuples into keys and removes it when unpacking keys. Distinct
subspaces keep the keys of different parts of an application apart::

    entities = Subspace(("entities",))
    key = entities.pack((356, "state"))
    entities.unpack(key, (INT64, STRING))  # (356, 'state')
"""

from pytuplelayer import tuplelayer
from pytuplelayer.tuplelayer import MissingPrefix


class Subspace(object):

    def __init__(self, prefix_tuple=(), raw_prefix=b"", types=None):
        self.raw_prefix = tuplelayer.pack(
            prefix_tuple, prefix=raw_prefix, types=types)
        self.types = types

    def __repr__(self):
        return 'Subspace(raw_prefix=' + repr(self.raw_prefix) + ')'

    def __eq__(self, other):
        if not isinstance(other, Subspace):
            return NotImplemented
        return self.raw_prefix == other.raw_prefix

    def __hash__(self):
        return hash(self.raw_prefix)

    def __getitem__(self, name):
        return self.subspace((name,))

    def key(self):
        return self.raw_prefix

    def pack(self, t=(), shape=None):
        """Return the prefix followed by the top-level encoding of *t*."""
        return tuplelayer.pack(
            t, prefix=self.raw_prefix, shape=shape, types=self.types)

    def unpack(self, key, shape=None):
        """Decode the part of *key* after the prefix.

        Raises MissingPrefix if *key* does not start with the prefix and
        TrailingData if bytes remain after decoding *shape*."""
        if not self.contains(key):
            raise MissingPrefix('Cannot unpack key that is not in subspace.')
        return tuplelayer.unpack(
            key, shape, prefix_len=len(self.raw_prefix), types=self.types)

    def range(self, t=()):
        """Return the ``(begin, end)`` keys covering every key in this
        subspace that extends *t*."""
        return tuplelayer.key_range(
            t, prefix=self.raw_prefix, types=self.types)

    def contains(self, key):
        return key[:len(self.raw_prefix)] == self.raw_prefix

    def subspace(self, t):
        return Subspace(t, self.raw_prefix, self.types)
