"""Decoder for JDK Flight Recorder files.

A recording is one or more chunks, optionally wrapped in gzip. Each chunk
starts with a fixed 68-byte big-endian header followed by records:

    size:int  type_id:long  payload

Record type 0 is the metadata event, a string table plus an element tree
that declares every class (event types, primitive types, constant pool
types) and its fields. Record type 1 is a checkpoint holding constant pools;
checkpoints chain backwards from the offset in the chunk header. Every other
type id is an event, laid out as the fields of its class in declared order.

When the chunk's compressed-integers feature bit is set, int and long
values are variable length (seven bits per byte, the ninth byte carries a
full eight); otherwise they are fixed width.
"""

import gzip
import logging
import struct
import zlib
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, BinaryIO

from jfrdatasource.core.exceptions import MalformedRecording
from jfrdatasource.core.models import Duration, Event, FieldValue, RecordingMetadata

logger = logging.getLogger(__name__)

MAGIC = b"FLR\x00"
GZIP_MAGIC = b"\x1f\x8b"
SUPPORTED_MAJOR_VERSION = 2
FEATURE_COMPRESSED_INTS = 1

# magic, major, minor, size, cp offset, metadata offset, start nanos,
# duration nanos, start ticks, ticks per second, features
CHUNK_HEADER = struct.Struct(">4sHHqqqqqqqi")
HEADER_SIZE = CHUNK_HEADER.size

METADATA_TYPE_ID = 0
CONSTANT_POOL_TYPE_ID = 1

STRING_NULL = 0
STRING_EMPTY = 1
STRING_CONSTANT = 2
STRING_UTF8 = 3
STRING_CHAR_ARRAY = 4
STRING_LATIN1 = 5

EVENT_SUPER_TYPE = "jdk.jfr.Event"
STRING_TYPE = "java.lang.String"
TIMESPAN_ANNOTATION = "jdk.jfr.Timespan"
START_TIME_FIELD = "startTime"

TIMESPAN_NANOS = {
    "NANOSECONDS": 1,
    "MICROSECONDS": 1_000,
    "MILLISECONDS": 1_000_000,
    "SECONDS": 1_000_000_000,
}
TIMESPAN_TICKS = "TICKS"

# fields consulted, in order, to render a constant pool object as text
LABEL_FIELDS = ("javaName", "name", "string", "osName")

_NANOS_PER_SECOND = 1_000_000_000
_MAX_NESTING = 32
_FLOAT = struct.Struct(">f")
_DOUBLE = struct.Struct(">d")
_INT = struct.Struct(">i")
_LONG = struct.Struct(">q")
_SHORT = struct.Struct(">h")


@dataclass(frozen=True)
class ChunkHeader:
    """Decoded chunk header. Offsets are absolute within the recording bytes."""

    offset: int
    size: int
    constant_pool_offset: int
    metadata_offset: int
    start_nanos: int
    duration_nanos: int
    start_ticks: int
    ticks_per_second: int
    features: int

    @property
    def body_start(self) -> int:
        return self.offset + HEADER_SIZE

    @property
    def end(self) -> int:
        return self.offset + self.size

    @property
    def compressed_ints(self) -> bool:
        return bool(self.features & FEATURE_COMPRESSED_INTS)

    def ticks_to_nanos(self, ticks: int) -> int:
        """Convert an event tick count to epoch nanoseconds."""
        return self.start_nanos + self.ticks_to_duration(ticks - self.start_ticks)

    def ticks_to_duration(self, ticks: int) -> int:
        return ticks * _NANOS_PER_SECOND // self.ticks_per_second


@dataclass(frozen=True)
class _Ref:
    """Reference into the constant pool of a type."""

    type_id: int
    key: int


@dataclass
class _Element:
    name: str
    attributes: dict[str, str] = field(default_factory=dict)
    children: list["_Element"] = field(default_factory=list)

    def walk(self, name: str) -> Iterator["_Element"]:
        for child in self.children:
            if child.name == name:
                yield child
            yield from child.walk(name)


@dataclass(frozen=True)
class _FieldDescriptor:
    name: str
    type_id: int
    constant_pool: bool = False
    array: bool = False
    timespan: str | None = None


@dataclass(frozen=True)
class _TypeDescriptor:
    type_id: int
    name: str
    super_type: str | None
    fields: tuple[_FieldDescriptor, ...]

    @property
    def is_event(self) -> bool:
        return self.super_type == EVENT_SUPER_TYPE


def _parse_header(raw: bytes, offset: int, available: int) -> ChunkHeader:
    """Validate and decode the header of the chunk starting at offset.

    Args:
        raw: At least HEADER_SIZE bytes starting at the chunk.
        offset: Absolute offset of the chunk.
        available: Number of bytes from offset to the end of the recording.
    """
    if len(raw) < HEADER_SIZE:
        raise MalformedRecording("Truncated chunk header", offset)
    (
        magic,
        major,
        _minor,
        size,
        cp_offset,
        metadata_offset,
        start_nanos,
        duration_nanos,
        start_ticks,
        ticks_per_second,
        features,
    ) = CHUNK_HEADER.unpack_from(raw)
    if magic != MAGIC:
        raise MalformedRecording(f"Bad magic bytes {magic!r}", offset)
    if major != SUPPORTED_MAJOR_VERSION:
        raise MalformedRecording(f"Unsupported format version {major}", offset)
    if size < HEADER_SIZE or size > available:
        raise MalformedRecording(
            f"Truncated chunk: declares {size} bytes, {available} available", offset
        )
    if ticks_per_second <= 0:
        raise MalformedRecording("Chunk has non-positive tick frequency", offset)
    if duration_nanos < 0:
        raise MalformedRecording("Chunk has negative duration", offset)
    for name, value in (("constant pool", cp_offset), ("metadata", metadata_offset)):
        if value != 0 and not HEADER_SIZE <= value < size:
            raise MalformedRecording(f"Chunk {name} offset out of bounds", offset)
    return ChunkHeader(
        offset=offset,
        size=size,
        constant_pool_offset=offset + cp_offset if cp_offset else 0,
        metadata_offset=offset + metadata_offset if metadata_offset else 0,
        start_nanos=start_nanos,
        duration_nanos=duration_nanos,
        start_ticks=start_ticks,
        ticks_per_second=ticks_per_second,
        features=features,
    )


def _unwrap(data: bytes) -> bytes:
    if not data.startswith(GZIP_MAGIC):
        return data
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise MalformedRecording(f"Unreadable compressed segment: {e}") from e


def _metadata_from_chunks(chunks: tuple[ChunkHeader, ...]) -> RecordingMetadata:
    start = min(c.start_nanos for c in chunks)
    end = max(c.start_nanos + c.duration_nanos for c in chunks)
    return RecordingMetadata(start_time=start, duration=end - start)


def _signed(value: int, bits: int) -> int:
    value &= (1 << bits) - 1
    return value - (1 << bits) if value >> (bits - 1) else value


class _RecordReader:
    """Cursor over the bytes of one chunk."""

    def __init__(
        self, data: bytes, pos: int, limit: int, compressed: bool = True
    ) -> None:
        self._data = data
        self.pos = pos
        self.limit = limit
        self.compressed = compressed

    def _byte(self) -> int:
        if self.pos >= self.limit:
            raise MalformedRecording("Unexpected end of record", self.pos)
        value = self._data[self.pos]
        self.pos += 1
        return value

    def take(self, length: int) -> bytes:
        if length < 0 or self.pos + length > self.limit:
            raise MalformedRecording("Unexpected end of record", self.pos)
        raw = self._data[self.pos : self.pos + length]
        self.pos += length
        return raw

    def varint(self) -> int:
        result = 0
        for shift in range(0, 56, 7):
            b = self._byte()
            result |= (b & 0x7F) << shift
            if not b & 0x80:
                return result
        return result | (self._byte() << 56)

    def _fixed(self, fmt: struct.Struct) -> Any:
        return fmt.unpack(self.take(fmt.size))[0]

    def long(self) -> int:
        if self.compressed:
            return _signed(self.varint(), 64)
        return self._fixed(_LONG)

    def int_(self) -> int:
        if self.compressed:
            return _signed(self.varint(), 32)
        return self._fixed(_INT)

    def short(self) -> int:
        if self.compressed:
            return _signed(self.varint(), 16)
        return self._fixed(_SHORT)

    def char(self) -> str:
        code = self.varint() if self.compressed else self._fixed(_SHORT)
        return chr(code & 0xFFFF)

    def byte(self) -> int:
        return _signed(self._byte(), 8)

    def boolean(self) -> bool:
        return self._byte() != 0

    def float_(self) -> float:
        return self._fixed(_FLOAT)

    def double(self) -> float:
        return self._fixed(_DOUBLE)

    def count(self) -> int:
        """Read an element count that must fit in the rest of the record."""
        start = self.pos
        n = self.int_()
        if n < 0 or n > self.limit - self.pos:
            raise MalformedRecording(f"Invalid element count {n}", start)
        return n

    def string(self, string_type_id: int | None = None) -> "str | None | _Ref":
        encoding = self._byte()
        if encoding == STRING_NULL:
            return None
        if encoding == STRING_EMPTY:
            return ""
        if encoding == STRING_CONSTANT and string_type_id is not None:
            return _Ref(string_type_id, self.long())
        if encoding == STRING_UTF8:
            raw = self.take(self.count())
            try:
                return raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedRecording("Invalid UTF-8 string", self.pos) from e
        if encoding == STRING_CHAR_ARRAY:
            return "".join(self.char() for _ in range(self.count()))
        if encoding == STRING_LATIN1:
            return self.take(self.count()).decode("latin-1")
        raise MalformedRecording(f"Unsupported string encoding {encoding}", self.pos)

    def record(self, expected_type: int | None = None) -> tuple[int, int]:
        """Read a record header, returning (type id, end offset)."""
        start = self.pos
        size = self.int_()
        end = start + size
        if size <= 0 or end > self.limit:
            raise MalformedRecording("Truncated record", start)
        type_id = self.long()
        if expected_type is not None and type_id != expected_type:
            raise MalformedRecording(
                f"Expected record type {expected_type}, found {type_id}", start
            )
        return type_id, end


_PRIMITIVE_READERS: dict[str, Callable[[_RecordReader], FieldValue]] = {
    "boolean": _RecordReader.boolean,
    "byte": _RecordReader.byte,
    "char": _RecordReader.char,
    "short": _RecordReader.short,
    "int": _RecordReader.int_,
    "long": _RecordReader.long,
    "float": _RecordReader.float_,
    "double": _RecordReader.double,
}


def _read_element(
    reader: _RecordReader, strings: list[str], depth: int = 0
) -> _Element:
    if depth > _MAX_NESTING:
        raise MalformedRecording("Metadata nested too deeply", reader.pos)

    def lookup() -> str:
        index = reader.int_()
        if not 0 <= index < len(strings):
            raise MalformedRecording(f"Unknown metadata string {index}", reader.pos)
        return strings[index]

    element = _Element(lookup())
    for _ in range(reader.count()):
        key = lookup()
        element.attributes[key] = lookup()
    for _ in range(reader.count()):
        element.children.append(_read_element(reader, strings, depth + 1))
    return element


def _describe_types(root: _Element, offset: int) -> dict[int, _TypeDescriptor]:
    """Turn the class elements of a metadata tree into type descriptors."""
    classes = list(root.walk("class"))
    try:
        names = {int(c.attributes["id"]): c.attributes["name"] for c in classes}
        types = {}
        for element in classes:
            type_id = int(element.attributes["id"])
            fields = tuple(
                _describe_field(child, names) for child in element.walk("field")
            )
            types[type_id] = _TypeDescriptor(
                type_id=type_id,
                name=names[type_id],
                super_type=element.attributes.get("superType"),
                fields=fields,
            )
    except (KeyError, ValueError) as e:
        raise MalformedRecording(f"Invalid class declaration: {e}", offset) from e
    return types


def _describe_field(element: _Element, names: dict[int, str]) -> _FieldDescriptor:
    timespan = None
    for annotation in element.walk("annotation"):
        if names.get(int(annotation.attributes["class"])) == TIMESPAN_ANNOTATION:
            timespan = annotation.attributes.get("value", TIMESPAN_TICKS)
    return _FieldDescriptor(
        name=element.attributes["name"],
        type_id=int(element.attributes["class"]),
        constant_pool=element.attributes.get("constantPool") == "true",
        array=element.attributes.get("dimension") == "1",
        timespan=timespan,
    )


class _ChunkDecoder:
    """Decodes the events of one chunk against its metadata and constant pools."""

    def __init__(
        self,
        chunk: ChunkHeader,
        types: dict[int, _TypeDescriptor],
        string_type_id: int | None,
    ) -> None:
        self.chunk = chunk
        self.types = types
        self.string_type_id = string_type_id
        self.pools: dict[int, dict[int, Any]] = {}
        self._labels: dict[_Ref, str | None] = {}

    def read_value(self, reader: _RecordReader, type_id: int, depth: int = 0) -> Any:
        """Read one inline value of a type."""
        descriptor = self.types.get(type_id)
        if descriptor is None:
            raise MalformedRecording(f"Unknown type id {type_id}", reader.pos)
        primitive = _PRIMITIVE_READERS.get(descriptor.name)
        if primitive is not None:
            return primitive(reader)
        if descriptor.name == STRING_TYPE:
            return reader.string(self.string_type_id)
        if depth > _MAX_NESTING:
            raise MalformedRecording("Value nested too deeply", reader.pos)
        return {
            f.name: self.read_field(reader, f, depth + 1) for f in descriptor.fields
        }

    def read_field(
        self, reader: _RecordReader, descriptor: _FieldDescriptor, depth: int = 0
    ) -> Any:
        if descriptor.array:
            return [
                self._read_one(reader, descriptor, depth)
                for _ in range(reader.count())
            ]
        return self._read_one(reader, descriptor, depth)

    def _read_one(
        self, reader: _RecordReader, descriptor: _FieldDescriptor, depth: int
    ) -> Any:
        if descriptor.constant_pool:
            return _Ref(descriptor.type_id, reader.long())
        return self.read_value(reader, descriptor.type_id, depth)

    def event(self, descriptor: _TypeDescriptor, reader: _RecordReader) -> Event:
        timestamp = self.chunk.start_nanos
        fields: dict[str, FieldValue] = {}
        for f in descriptor.fields:
            raw = self.read_field(reader, f)
            if f.name == START_TIME_FIELD and isinstance(raw, int):
                timestamp = self.chunk.ticks_to_nanos(raw)
                continue
            fields[f.name] = self._field_value(raw, f, reader.pos)
        return Event(event_type=descriptor.name, timestamp=timestamp, fields=fields)

    def _field_value(
        self, raw: Any, descriptor: _FieldDescriptor, pos: int
    ) -> FieldValue:
        if isinstance(raw, list):
            return None
        if isinstance(raw, _Ref) and raw.type_id == self.string_type_id:
            strings = self.pools.get(raw.type_id, {})
            if raw.key not in strings:
                raise MalformedRecording(f"Unknown constant index {raw.key}", pos)
            raw = strings[raw.key]
        if isinstance(raw, (_Ref, dict)):
            return self.label(raw)
        if descriptor.timespan and isinstance(raw, int) and not isinstance(raw, bool):
            return self._duration(raw, descriptor.timespan)
        return raw

    def _duration(self, value: int, unit: str) -> Duration | int:
        if unit == TIMESPAN_TICKS:
            return Duration(self.chunk.ticks_to_duration(value))
        if unit in TIMESPAN_NANOS:
            return Duration(value * TIMESPAN_NANOS[unit])
        return value

    def _deref(self, value: Any) -> Any:
        if isinstance(value, _Ref):
            return self.pools.get(value.type_id, {}).get(value.key)
        return value

    def label(self, value: Any, depth: int = 0) -> str | None:
        """Render a constant pool object as text.

        Stack traces render as their top frame (`Class.method:line`), methods
        as `Class.method`, and other objects by the first of LABEL_FIELDS
        they carry. Objects with none of these render as None.
        """
        if isinstance(value, _Ref):
            if value not in self._labels:
                self._labels[value] = self.label(self._deref(value), depth + 1)
            return self._labels[value]
        if value is None or isinstance(value, str):
            return value
        if not isinstance(value, dict) or depth > _MAX_NESTING:
            return None
        if "frames" in value:
            frames = self._deref(value["frames"])
            return self.label(frames[0], depth + 1) if frames else None
        if "method" in value:
            method = self.label(value["method"], depth + 1)
            line = value.get("lineNumber")
            return f"{method}:{line}" if line is not None and line >= 0 else method
        if "type" in value and "name" in value:
            owner = self.label(value["type"], depth + 1)
            name = self.label(value["name"], depth + 1)
            return f"{owner}.{name}" if owner else name
        for key in LABEL_FIELDS:
            if key in value:
                return self.label(value[key], depth + 1)
        return None


class Recording:
    """A validated recording whose events decode lazily.

    Chunk headers are checked on construction. Event records are decoded
    only while iterating, so `metadata` is cheap and `events()` can be
    called repeatedly, each call starting a fresh pass over the bytes.
    """

    def __init__(self, data: bytes, chunks: tuple[ChunkHeader, ...]) -> None:
        self._data = data
        self.chunks = chunks
        self.metadata = _metadata_from_chunks(chunks)

    def __iter__(self) -> Iterator[Event]:
        return self.events()

    def events(self) -> Iterator[Event]:
        """Yield events in file order.

        Raises:
            MalformedRecording: If a record cannot be decoded.
        """
        for chunk in self.chunks:
            yield from self._chunk_events(chunk)

    def _reader(
        self, chunk: ChunkHeader, pos: int, limit: int | None = None
    ) -> _RecordReader:
        return _RecordReader(
            self._data,
            pos,
            chunk.end if limit is None else limit,
            chunk.compressed_ints,
        )

    def _chunk_events(self, chunk: ChunkHeader) -> Iterator[Event]:
        decoder = self._decoder(chunk)
        reader = self._reader(chunk, chunk.body_start)
        while reader.pos < chunk.end:
            start = reader.pos
            type_id, end = reader.record()
            if type_id in (METADATA_TYPE_ID, CONSTANT_POOL_TYPE_ID):
                reader.pos = end
                continue
            descriptor = decoder.types.get(type_id)
            if descriptor is None or not descriptor.is_event:
                raise MalformedRecording(f"Undeclared event type id {type_id}", start)
            yield decoder.event(descriptor, self._reader(chunk, reader.pos, end))
            reader.pos = end

    def _decoder(self, chunk: ChunkHeader) -> _ChunkDecoder:
        types = self._read_types(chunk)
        string_type_id = next(
            (t.type_id for t in types.values() if t.name == STRING_TYPE), None
        )
        decoder = _ChunkDecoder(chunk, types, string_type_id)
        self._read_constant_pools(chunk, decoder)
        return decoder

    def _read_types(self, chunk: ChunkHeader) -> dict[int, _TypeDescriptor]:
        if not chunk.metadata_offset:
            return {}
        reader = self._reader(chunk, chunk.metadata_offset)
        _, reader.limit = reader.record(METADATA_TYPE_ID)
        reader.long()  # start time
        reader.long()  # duration
        reader.long()  # metadata id
        strings = []
        for _ in range(reader.count()):
            value = reader.string()
            if not isinstance(value, str):
                raise MalformedRecording("Null metadata string", reader.pos)
            strings.append(value)
        root = _read_element(reader, strings)
        return _describe_types(root, chunk.metadata_offset)

    def _read_constant_pools(self, chunk: ChunkHeader, decoder: _ChunkDecoder) -> None:
        offset = chunk.constant_pool_offset
        visited = set()
        while offset:
            if offset in visited or not chunk.body_start <= offset < chunk.end:
                raise MalformedRecording("Broken checkpoint chain", offset)
            visited.add(offset)
            reader = self._reader(chunk, offset)
            _, reader.limit = reader.record(CONSTANT_POOL_TYPE_ID)
            reader.long()  # start time
            reader.long()  # duration
            delta = reader.long()
            reader.byte()  # checkpoint kind
            for _ in range(reader.count()):
                type_id = reader.long()
                pool = decoder.pools.setdefault(type_id, {})
                for _ in range(reader.count()):
                    key = reader.long()
                    pool[key] = decoder.read_value(reader, type_id)
            offset = offset + delta if delta else 0


def _scan_chunks(data: bytes) -> tuple[ChunkHeader, ...]:
    chunks = []
    pos = 0
    while pos < len(data) or not chunks:
        header = _parse_header(data[pos : pos + HEADER_SIZE], pos, len(data) - pos)
        chunks.append(header)
        pos = header.end
    return tuple(chunks)


def parse_recording(source: BinaryIO | bytes) -> Recording:
    """Read a recording and validate its container structure.

    Args:
        source: A readable binary stream or the raw recording bytes.

    Returns:
        Recording whose events decode lazily.

    Raises:
        MalformedRecording: If the bytes are not a recording container.
    """
    data = source if isinstance(source, bytes) else source.read()
    data = _unwrap(data)
    chunks = _scan_chunks(data)
    logger.debug("Parsed recording with %d chunk(s), %d bytes", len(chunks), len(data))
    return Recording(data, chunks)


def read_metadata(source: BinaryIO) -> RecordingMetadata:
    """Read recording metadata from chunk headers only.

    Seekable, uncompressed streams are scanned header by header without
    reading chunk bodies. Other streams fall back to a full read.
    """
    if not source.seekable():
        return parse_recording(source).metadata
    origin = source.tell()
    total = source.seek(0, 2) - origin
    source.seek(origin)
    if source.read(len(GZIP_MAGIC)) == GZIP_MAGIC:
        source.seek(origin)
        return parse_recording(source).metadata
    chunks = []
    pos = 0
    while pos < total or not chunks:
        source.seek(origin + pos)
        header = _parse_header(source.read(HEADER_SIZE), pos, total - pos)
        chunks.append(header)
        pos = header.end
    return _metadata_from_chunks(tuple(chunks))
