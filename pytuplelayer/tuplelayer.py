from collections import namedtuple
from enum import IntEnum
from io import BytesIO
from math import isnan
from struct import Struct
import uuid


class UnpackError(ValueError):
    """Base class for errors raised while decoding tuple-encoded
    bytes."""
    pass


class WrongCode(UnpackError):
    """The leading byte is not a type code that is valid for the value
    being decoded."""
    pass


class OutOfData(UnpackError, EOFError):
    """The buffer ends before the encoded value does."""
    pass


class OutOfRange(UnpackError):
    """A decoded integer does not fit the requested width."""
    pass


class BadEncoding(UnpackError):
    """A decoded string is not valid UTF-8."""
    pass


class MissingPrefix(UnpackError):
    """The key does not start with the expected prefix."""
    pass


class TrailingData(UnpackError):
    """Bytes remain after decoding the expected tuple shape."""
    pass


class TypeCode(IntEnum):
    """Registry of the leading bytes of encoded values.

    Integers occupy every code strictly between ``NEG_INT_START`` and
    ``POS_INT_END``; the code is ``INT_ZERO`` plus or minus the number
    of payload bytes."""
    NULL = 0x00
    BYTES = 0x01
    STRING = 0x02
    NESTED = 0x05
    NEG_INT_START = 0x0b
    INT_ZERO = 0x14
    POS_INT_END = 0x1d
    FLOAT = 0x20
    DOUBLE = 0x21
    FALSE = 0x26
    TRUE = 0x27
    UUID = 0x30
    VERSIONSTAMP = 0x33


class StreamStruct(Struct):
    """Subclass of ``struct.Struct`` with methods to write and read
    binary data with file-like objects."""

    def pack_write(self, fp, *args):
        """Pack values into a writeable file-like object *fp* according
        to the compiled format."""
        string = self.pack(*args)
        fp.write(string)

    def unpack_read(self, fp):
        """Unpack bytes from a readable file-like object *fp* according
        to the compiled format. This method raises OutOfData if not
        enough bytes can be read from *fp*."""
        string = read_exactly(fp, self.size)
        return self.unpack(string)


# Pre-compiled Struct instances.
unsigned_char_struct = StreamStruct('>B')
float_struct = StreamStruct('>f')
double_struct = StreamStruct('>d')


# Type codes must be unsigned 8-bit integers.
valid_type_codes = set(range(0x100))


# Integers are limited to 8-byte magnitudes. The codes for longer
# magnitudes are reserved.
max_integer_magnitude = (1 << 64) - 1


uuid_size = 16


class Type(namedtuple("Type", ["name", "codes", "type", "load", "dump"])):
    """Type definition for the tuple layer.

    *codes* is the set of leading bytes this type decodes. *load* is
    called as ``load(code, fp, types)`` after the leading byte has been
    consumed, and *dump* as ``dump(obj, fp, types)``; *dump* writes the
    leading byte itself because the integer code depends on the value.
    *type* is the class (or tuple of classes) whose instances are
    serialized by this definition when no shape is given."""

    def __new__(cls, name, codes, type, load, dump):
        return super(Type, cls).__new__(
            cls, name, frozenset(codes), type, load, dump)

    def __init__(self, *args, **kwargs):
        validate_type_definition(self)


def validate_type_definition(type_definition):
    if not isinstance(type_definition.name, str):
        raise TypeError(
            "Type definition has an invalid 'name' field: %r" %
            (type_definition.name,))
    for code in type_definition.codes:
        if not isinstance(code, int):
            raise TypeError(
                "Type definition has an invalid code: %r" % (code,))
        if code not in valid_type_codes:
            raise ValueError(
                "Type definition has an invalid code: %r" % (code,))
    if not isclassinfo(type_definition.type):
        raise TypeError(
            "Type definition has an invalid 'type' field: %r" %
            (type_definition.type,))
    if not callable(type_definition.load):
        raise TypeError(
            "Type definition has a non-callable 'load' field: %r" %
            (type_definition.load,))
    if not callable(type_definition.dump):
        raise TypeError(
            "Type definition has a non-callable 'dump' field: %r" %
            (type_definition.dump,))


def isclassinfo(classinfo):
    """Test whether an object is a valid second argument to the
    `isinstance` builtin function."""
    if isinstance(classinfo, tuple):
        return all(map(isclassinfo, classinfo))
    else:
        return isinstance(classinfo, type)


def read_exactly(fp, size):
    """Read exactly *size* bytes from a readable file-like object *fp*,
    raising OutOfData if the stream ends first."""
    string = fp.read(size)
    if len(string) != size:
        raise OutOfData(
            "Expected %d bytes but only %d remain." % (size, len(string)))
    return string


def peek_type_code(fp):
    """Return the next byte of a seekable file-like object *fp* as an
    ``int`` without consuming it, or None at the end of the stream."""
    string = fp.read(1)
    if not string:
        return None
    fp.seek(-1, 1)
    return string[0]


def load_type_code(fp):
    """Deserialize a type code from a readable file-like object *fp*.

    This function calls the ``read()`` method of *fp* to read 1 byte and
    interprets it as a type code, which is returned as an ``int``
    instance from 0 (inclusive) to 256 (exclusive).
    """
    return unsigned_char_struct.unpack_read(fp)[0]


def expect_type_code(expected, fp):
    """Consume one byte from *fp* and raise WrongCode unless it equals
    *expected*."""
    code = load_type_code(fp)
    if code != expected:
        raise WrongCode(
            "Expected type code 0x%02x, found 0x%02x." % (expected, code))


def dump_type_code(obj, fp):
    """Serialize a type code *obj* to a writeable file-like object *fp*.

    This function raises a ValueError if *obj* does not have an integer
    value within the range of an unsigned byte.
    """
    if int(obj) != obj:
        raise TypeError(
            "Object must be coercible to int without loss of information.")
    if obj not in valid_type_codes:
        raise ValueError("Integer must be a valid type code.")
    unsigned_char_struct.pack_write(fp, obj)


def load_null(code, fp, types=None):
    return None


def dump_null(obj, fp, types=None):
    dump_type_code(TypeCode.NULL, fp)


def load_boolean(code, fp, types=None):
    """Deserialize a ``bool`` from its type code alone: 0x27 is True and
    0x26 is False. Any other code raises WrongCode."""
    if code == TypeCode.TRUE:
        return True
    elif code == TypeCode.FALSE:
        return False
    else:
        raise WrongCode("0x%02x is not a boolean type code." % code)


def dump_boolean(obj, fp, types=None):
    """Serialize the truth value of *obj* as the single byte 0x27 (true)
    or 0x26 (false). False sorts before True."""
    dump_type_code(TypeCode.TRUE if obj else TypeCode.FALSE, fp)


def load_integer(code, fp, types=None):
    """Deserialize an ``int`` whose leading byte *code* has already been
    read from *fp*.

    The code carries the sign and the payload length: ``0x14 + n`` for
    a positive value of *n* big-endian bytes, ``0x14 - n`` for a
    negative one. A negative payload holds ``(2 ** (8 * n) - 1) + value``
    so that larger magnitudes produce smaller bytes. Codes for 9+ byte
    magnitudes are reserved and raise WrongCode.
    """
    if not (TypeCode.NEG_INT_START < code < TypeCode.POS_INT_END):
        raise WrongCode("0x%02x is not a supported integer code." % code)
    nbytes = abs(code - TypeCode.INT_ZERO)
    value = int.from_bytes(read_exactly(fp, nbytes), "big")
    if code < TypeCode.INT_ZERO:
        value -= (1 << (8 * nbytes)) - 1
    return value


def dump_integer(obj, fp, types=None):
    """Serialize the integer *obj* with the variable-length,
    order-preserving integer encoding.

    Zero is the single byte 0x14. Otherwise the payload is
    ``ceil(bit_length(abs(obj)) / 8)`` bytes long. This function raises
    a ValueError if the magnitude does not fit in 8 bytes.
    """
    if int(obj) != obj:
        raise TypeError(
            "Object must be coercible to int without loss of information.")
    obj = int(obj)
    if not (-max_integer_magnitude <= obj <= max_integer_magnitude):
        raise ValueError(
            "Integer magnitude must fit in 8 bytes; longer integers are "
            "not supported.")
    nbytes = (abs(obj).bit_length() + 7) // 8
    if obj >= 0:
        code = TypeCode.INT_ZERO + nbytes
        payload = obj
    else:
        code = TypeCode.INT_ZERO - nbytes
        payload = ((1 << (8 * nbytes)) - 1) + obj
    assert 0 <= payload < (1 << (8 * nbytes))
    dump_type_code(code, fp)
    fp.write(payload.to_bytes(nbytes, "big"))


def integer_type(name, bits, signed):
    """Build a type definition for an integer of fixed width.

    Values outside the width raise ValueError when dumped and OutOfRange
    when loaded. Unsigned widths do not accept negative codes at all."""
    if signed:
        low = -(1 << (bits - 1))
        high = (1 << (bits - 1)) - 1
        codes = range(TypeCode.NEG_INT_START + 1, TypeCode.POS_INT_END)
    else:
        low = 0
        high = (1 << bits) - 1
        codes = range(TypeCode.INT_ZERO, TypeCode.POS_INT_END)

    def load_fixed(code, fp, types=None):
        value = load_integer(code, fp, types)
        if not (low <= value <= high):
            raise OutOfRange("%d is out of range for %s." % (value, name))
        return value

    def dump_fixed(obj, fp, types=None):
        if int(obj) != obj:
            raise TypeError(
                "Object must be coercible to int without loss of "
                "information.")
        if not (low <= obj <= high):
            raise ValueError("Integer must be in the range of %s." % name)
        dump_integer(obj, fp, types)

    return Type(name, codes, int, load_fixed, dump_fixed)


def load_escaped(fp):
    """Read an escaped byte payload from *fp*.

    ``0x00 0xff`` is a literal zero byte; any other ``0x00`` ends the
    payload and is consumed. The end of the stream also ends it."""
    out = bytearray()
    while True:
        byte = fp.read(1)
        if not byte:
            break
        if byte == b"\x00":
            if peek_type_code(fp) == 0xff:
                fp.read(1)
                out += byte
                continue
            break
        out += byte
    return bytes(out)


def dump_escaped(raw, fp):
    fp.write(raw.replace(b"\x00", b"\x00\xff"))
    fp.write(b"\x00")


def load_bytes(code, fp, types=None):
    """Deserialize a ``bytes`` instance from a readable file-like object
    *fp*. The payload is escaped and terminated as described in
    ``load_escaped``."""
    return load_escaped(fp)


def dump_bytes(obj, fp, types=None):
    """Serialize a sequence of bytes *obj* to a writeable file-like
    object *fp*: the 0x01 type code followed by the escaped payload and
    a 0x00 terminator."""
    dump_type_code(TypeCode.BYTES, fp)
    dump_escaped(bytes(obj), fp)


def load_string(code, fp, types=None):
    """Deserialize a ``str`` instance from *fp*. The payload is decoded
    as UTF-8, raising BadEncoding if it is not valid."""
    raw = load_escaped(fp)
    try:
        return raw.decode('utf_8')
    except UnicodeDecodeError as e:
        raise BadEncoding(str(e)) from e


def dump_string(obj, fp, types=None):
    dump_type_code(TypeCode.STRING, fp)
    dump_escaped(str(obj).encode('utf_8'), fp)


def load_uuid(code, fp, types=None):
    """Deserialize a ``uuid.UUID`` instance from the 16 raw bytes that
    follow its type code."""
    return uuid.UUID(bytes=read_exactly(fp, uuid_size))


def dump_uuid(obj, fp, types=None):
    dump_type_code(TypeCode.UUID, fp)
    fp.write(obj.bytes)


def order_float_bytes(raw):
    """Transform big-endian IEEE-754 bytes so that they sort like the
    numbers they represent: flip the sign bit of a non-negative number
    and complement every byte of a negative one."""
    if raw[0] & 0x80:
        return bytes(b ^ 0xff for b in raw)
    return bytes([raw[0] ^ 0x80]) + raw[1:]


def restore_float_bytes(raw):
    """Invert ``order_float_bytes``."""
    if raw[0] & 0x80:
        return bytes([raw[0] ^ 0x80]) + raw[1:]
    return bytes(b ^ 0xff for b in raw)


def load_float(code, fp, types=None):
    """Deserialize a ``float`` from 4 bytes holding an order-transformed
    big-endian 32-bit IEEE floating point number."""
    raw = read_exactly(fp, float_struct.size)
    return float_struct.unpack(restore_float_bytes(raw))[0]


def dump_float(obj, fp, types=None):
    """Serialize a 32-bit floating point number *obj*.

    This function raises a TypeError if *obj* can not be exactly
    represented in this floating point format. To serialize Python's
    builtin float type, use the ``dump_double()`` function instead."""
    coerced_obj = float(obj)
    if (not isnan(coerced_obj)) and (coerced_obj != obj):
        raise TypeError(
            "Object must be coercible to float without loss of information.")
    try:
        string = float_struct.pack(coerced_obj)
    except OverflowError as e:
        raise TypeError(
            "Object must be exactly representable as a 32-bit float.") from e
    # Check for loss of precision when packing as a 32-bit IEEE
    # floating point number.
    if (not isnan(coerced_obj)) and \
            float_struct.unpack(string) != (coerced_obj,):
        raise TypeError(
            "Object must be exactly representable as a 32-bit float.")
    dump_type_code(TypeCode.FLOAT, fp)
    fp.write(order_float_bytes(string))


def load_double(code, fp, types=None):
    raw = read_exactly(fp, double_struct.size)
    return double_struct.unpack(restore_float_bytes(raw))[0]


def dump_double(obj, fp, types=None):
    """Serialize a 64-bit floating-point number *obj* as the 0x21 type
    code followed by 8 order-transformed big-endian IEEE bytes."""
    coerced_obj = float(obj)
    if (not isnan(coerced_obj)) and (coerced_obj != obj):
        raise TypeError(
            "Object must be coercible to float without loss of information.")
    dump_type_code(TypeCode.DOUBLE, fp)
    fp.write(order_float_bytes(double_struct.pack(coerced_obj)))


def load_nested_tuple(code, fp, types=None):
    """Deserialize a nested ``tuple`` whose 0x05 type code has already
    been read from *fp*, without knowing its arity.

    Elements are read until a bare 0x00. A 0x00 0xff pair is a null
    element."""
    items = []
    while True:
        next_code = peek_type_code(fp)
        if next_code is None:
            raise OutOfData("Nested tuple is missing its terminator.")
        if next_code == TypeCode.NULL:
            fp.read(1)
            if peek_type_code(fp) == 0xff:
                fp.read(1)
                items.append(None)
                continue
            return tuple(items)
        items.append(load_element(fp, types))


def dump_nested_tuple(obj, fp, types=None):
    """Serialize a tuple-like object *obj* as an element of another
    tuple: the 0x05 type code, each element, then a 0x00 terminator."""
    dump_type_code(TypeCode.NESTED, fp)
    for element in obj:
        dump_nested_element(element, fp, None, types)
    fp.write(b"\x00")


def accepts_null(shape):
    return shape is None or (
        isinstance(shape, Type) and TypeCode.NULL in shape.codes)


def load_nested_element(fp, shape=None, types=None):
    """Deserialize one element of a nested tuple of known arity.

    A null is read in both the 0x00 0xff form and the bare 0x00 form,
    since the element count tells it apart from the terminator."""
    if peek_type_code(fp) == TypeCode.NULL and accepts_null(shape):
        fp.read(1)
        if peek_type_code(fp) == 0xff:
            fp.read(1)
        return None
    return load(fp, shape, True, types)


def dump_nested_element(obj, fp, shape=None, types=None):
    """Serialize one element of a nested tuple. A null is written as
    0x00 0xff so that it is not read as the terminator."""
    if obj is None and accepts_null(shape):
        fp.write(b"\x00\xff")
    else:
        dump(obj, fp, shape, True, types)


def tuple_type(shape):
    """Build a type definition for a nested tuple of the given tuple
    *shape*, used to decode it with its static arity and types."""

    def load_shaped(code, fp, types=None):
        obj = tuple(load_nested_element(fp, s, types) for s in shape)
        expect_type_code(TypeCode.NULL, fp)
        return obj

    def dump_shaped(obj, fp, types=None):
        dump(obj, fp, shape, True, types)

    return Type("tuple", [TypeCode.NESTED], tuple, load_shaped, dump_shaped)


def optional(shape):
    """Build a type definition for a value of *shape* that may be None.

    None is the single byte 0x00, or 0x00 0xff inside a nested tuple,
    and a present value is written with no wrapper, so the shape must
    not itself start with a 0x00 byte."""
    if isinstance(shape, tuple):
        shape = tuple_type(shape)

    def load_optional(code, fp, types=None):
        if code == TypeCode.NULL:
            return None
        return shape.load(code, fp, types)

    def dump_optional(obj, fp, types=None):
        if obj is None:
            dump_null(obj, fp, types)
        else:
            shape.dump(obj, fp, types)

    return Type(
        "optional(%s)" % shape.name, shape.codes | {TypeCode.NULL},
        shape.type, load_optional, dump_optional)


def load_element(fp, types=None):
    """Deserialize one element from *fp*, choosing the type definition
    by its leading byte."""
    if types is None:
        types = basic_types
    type_code = load_type_code(fp)
    for td in types:
        if type_code in td.codes:
            return td.load(type_code, fp, types)
    raise WrongCode("Unrecognized type code 0x%02x." % type_code)


def dump_element(obj, fp, types=None):
    """Serialize *obj* as a tuple element, choosing the type definition
    by the class of *obj*."""
    if types is None:
        types = basic_types
    for td in types:
        if isinstance(obj, td.type):
            td.dump(obj, fp, types)
            break
    else:
        raise TypeError(
            "Object of type %s is not serializable." % type(obj).__name__)


def dump_tuple_items(obj, fp, types=None):
    for element in obj:
        dump_element(element, fp, types)


def load(fp, shape=None, nested=False, types=None):
    """Deserialize one value from a readable, seekable file-like object
    *fp*.

    Without a *shape* the value is decoded by its type code. A tuple
    *shape* decodes exactly that many elements; when *nested* is true
    they must be wrapped in 0x05 ... 0x00."""
    if types is None:
        types = basic_types
    if shape is None:
        return load_element(fp, types)
    if isinstance(shape, tuple):
        if not nested:
            return tuple(load(fp, s, True, types) for s in shape)
        shape = tuple_type(shape)
    if not isinstance(shape, Type):
        raise TypeError("Invalid shape: %r" % (shape,))
    type_code = load_type_code(fp)
    if type_code not in shape.codes:
        raise WrongCode(
            "Type code 0x%02x is not valid for %s." % (type_code, shape.name))
    return shape.load(type_code, fp, types)


def loads(s, shape=None, nested=False, types=None):
    """Deserialize one value from the bytes *s* and return it together
    with the bytes that follow it."""
    fp = BytesIO(s)
    obj = load(fp, shape, nested, types)
    return obj, fp.read()


def iterload(fp, types=None):
    """Generator function that deserializes elements from a readable
    file-like object *fp* until the end of the stream."""
    if types is None:
        types = basic_types
    while peek_type_code(fp) is not None:
        yield load_element(fp, types)


def dump(obj, fp, shape=None, nested=False, types=None):
    """Serialize *obj* to a writeable file-like object *fp*.

    A tuple written with *nested* false is a top-level key: its elements
    are concatenated without a wrapper. With a *shape* each value is
    written by the matching type definition instead of by its class."""
    if types is None:
        types = basic_types
    if isinstance(shape, tuple):
        if len(obj) != len(shape):
            raise ValueError(
                "Tuple of arity %d does not match shape of arity %d." %
                (len(obj), len(shape)))
        if nested:
            dump_type_code(TypeCode.NESTED, fp)
            for element, element_shape in zip(obj, shape):
                dump_nested_element(element, fp, element_shape, types)
            fp.write(b"\x00")
        else:
            for element, element_shape in zip(obj, shape):
                dump(element, fp, element_shape, True, types)
    elif shape is not None:
        shape.dump(obj, fp, types)
    elif isinstance(obj, tuple) and not nested:
        dump_tuple_items(obj, fp, types)
    else:
        dump_element(obj, fp, types)


def dumps(obj, shape=None, nested=False, types=None):
    """Serialize *obj* to a ``bytes`` instance."""
    fp = BytesIO()
    dump(obj, fp, shape, nested, types)
    return fp.getvalue()


def pack(t, prefix=b"", shape=None, types=None):
    """Encode the tuple *t* as a key, optionally after a raw *prefix*."""
    if not isinstance(t, tuple):
        raise TypeError("Only tuples can be packed as keys.")
    fp = BytesIO()
    fp.write(prefix)
    dump(t, fp, shape, False, types)
    return fp.getvalue()


def unpack(s, shape=None, prefix_len=0, types=None):
    """Decode the key *s* into a tuple, skipping the first *prefix_len*
    bytes.

    Without a *shape* every remaining element is decoded. With a tuple
    *shape* exactly that many elements are decoded and TrailingData is
    raised if any bytes are left over."""
    fp = BytesIO(s)
    fp.seek(prefix_len)
    if shape is None:
        return tuple(iterload(fp, types))
    if not isinstance(shape, tuple):
        raise TypeError("Keys can only be unpacked with a tuple shape.")
    obj = load(fp, shape, False, types)
    rest = fp.read()
    if rest:
        raise TrailingData("%d bytes remain after the tuple." % len(rest))
    return obj


def key_range(t=(), prefix=b"", shape=None, types=None):
    """Return the ``(begin, end)`` keys of the half-open range holding
    every key that extends the packed tuple *t*."""
    packed = pack(t, prefix, shape, types)
    return packed + b"\x00", packed + b"\xff"


NULL = Type("null", [TypeCode.NULL], type(None), load_null, dump_null)
BOOL = Type(
    "bool", [TypeCode.FALSE, TypeCode.TRUE], bool, load_boolean, dump_boolean)
INTEGER = Type(
    "integer",
    range(TypeCode.NEG_INT_START + 1, TypeCode.POS_INT_END),
    int, load_integer, dump_integer)
INT8 = integer_type("int8", 8, True)
INT16 = integer_type("int16", 16, True)
INT32 = integer_type("int32", 32, True)
INT64 = integer_type("int64", 64, True)
UINT8 = integer_type("uint8", 8, False)
UINT16 = integer_type("uint16", 16, False)
UINT32 = integer_type("uint32", 32, False)
UINT64 = integer_type("uint64", 64, False)
BYTES = Type(
    "bytes", [TypeCode.BYTES], (bytes, bytearray), load_bytes, dump_bytes)
STRING = Type("string", [TypeCode.STRING], str, load_string, dump_string)
# Python has no 32-bit float type, so FLOAT is only chosen by a shape.
FLOAT = Type("float", [TypeCode.FLOAT], (), load_float, dump_float)
DOUBLE = Type("double", [TypeCode.DOUBLE], float, load_double, dump_double)
UUID = Type("uuid", [TypeCode.UUID], uuid.UUID, load_uuid, dump_uuid)
TUPLE = Type(
    "tuple", [TypeCode.NESTED], tuple, load_nested_tuple, dump_nested_tuple)


# bool must precede int because bool is a subclass of int. Versionstamp
# and bignum codes have no definition and decode as WrongCode.
basic_types = (
    NULL,
    BOOL,
    INTEGER,
    BYTES,
    STRING,
    FLOAT,
    DOUBLE,
    UUID,
    TUPLE,
    )
