"""
===========
Tuple Layer
===========

The tuple layer encodes tuples of typed values as byte strings whose
lexicographic order matches the order of the values, so that an
ordered key-value store can range-scan composite keys.

Type codes
----------

Each encoded element starts with an unsigned byte that contains the
type code. Possible values are:

========= ==========================================
Code      Type
========= ==========================================
0x00      Null.
0x01      A sequence of bytes.
0x02      A UTF-8 string.
0x05      A nested tuple.
0x0c-0x1c An integer of 1 to 8 bytes (0x14 is zero).
0x20      A 32-bit float.
0x21      A 64-bit float.
0x26      False.
0x27      True.
0x30      A UUID.
========= ==========================================

The codes 0x0b and 0x1d (integers of 9 or more bytes) and 0x33
(versionstamp) are reserved and not supported.

Subsequent Bytes
----------------

========= ============================================
Code      Subsequent Bytes
========= ============================================
0x00      <nothing>
0x01      <bytes, each 0x00 written as 0x00 0xff>
          <0x00>
0x02      <UTF-8 bytes, each 0x00 written as 0x00 0xff>
          <0x00>
0x05      <elements>
          <0x00>
0x0c-0x1c <big-endian magnitude; negative values are
          stored as (2 ** (8 * n) - 1) + value>
0x20      <4 IEEE bytes, sign bit flipped if positive,
          every bit flipped if negative>
0x21      <8 IEEE bytes, transformed like 0x20>
0x26      <nothing>
0x27      <nothing>
0x30      <16 bytes>
========= ============================================

A top-level tuple is written as its elements with no 0x05 ... 0x00
wrapper.
"""

import logging


__version__ = "0.1.0"


logging.getLogger(__name__).addHandler(logging.NullHandler())
