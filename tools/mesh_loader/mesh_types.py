"""Type definitions for the binary mesh format.

Layout (all little-endian):
- Header, 40 bytes: magic "MESH", version u16, flags u16, then u32 pairs
  (count, offset) for the vertex, index and metadata sections, total_length
  u32 and a reserved u32
- Vertex record, 36 bytes: position 3f, normal 3f, uv 2f, color RGBA 4B
- Index record, 4 bytes: u32, grouped in triangles
- Metadata (sub-mesh) record, 48 bytes: index_start u32, index_length u32,
  shader u16, reserved u16, name 36 bytes (UTF-8, NUL padded)
"""
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Optional, Tuple

MAGIC = b"MESH"
SUPPORTED_VERSIONS = frozenset({1})

FLAG_HAS_METADATA = 0x0001
KNOWN_FLAGS = FLAG_HAS_METADATA

FACE_SIZE = 3
SUB_MESH_NAME_SIZE = 36

HEADER_STRUCT = struct.Struct("<4sHHIIIIIIII")
VERTEX_STRUCT = struct.Struct("<3f3f2f4B")
INDEX_STRUCT = struct.Struct("<I")
SUB_MESH_STRUCT = struct.Struct(f"<IIHH{SUB_MESH_NAME_SIZE}s")

HEADER_SIZE = HEADER_STRUCT.size  # 40
VERTEX_STRIDE = VERTEX_STRUCT.size  # 36
INDEX_STRIDE = INDEX_STRUCT.size  # 4
SUB_MESH_STRIDE = SUB_MESH_STRUCT.size  # 48

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]
Rgba = Tuple[int, int, int, int]


class ShaderType(IntEnum):
    """Shader assigned to a sub-mesh."""

    OPAQUE = 0
    TRANSPARENT = 1
    EMISSIVE = 2
    LAVA = 3


@dataclass(frozen=True)
class Header:
    """Mesh file header."""

    version: int
    flags: int
    vertex_count: int
    vertex_offset: int
    index_count: int
    index_offset: int
    metadata_count: int
    metadata_offset: int
    total_length: int

    @property
    def has_metadata(self) -> bool:
        return bool(self.flags & FLAG_HAS_METADATA)

    @property
    def vertex_bytes(self) -> int:
        return self.vertex_count * VERTEX_STRIDE

    @property
    def index_bytes(self) -> int:
        return self.index_count * INDEX_STRIDE

    @property
    def metadata_bytes(self) -> int:
        return self.metadata_count * SUB_MESH_STRIDE


@dataclass(frozen=True)
class Vertex:
    """One geometry sample."""

    position: Vec3
    normal: Vec3
    uv: Vec2
    color: Rgba = (255, 255, 255, 255)


@dataclass(frozen=True)
class SubMesh:
    """A named run of faces drawn with one shader."""

    index_start: int
    index_length: int
    shader: ShaderType
    name: str = ""

    @property
    def index_end(self) -> int:
        return self.index_start + self.index_length


@dataclass(frozen=True)
class Mesh:
    """Validated mesh decoded from one file.

    Instances are only built by the assembler, after every index has been
    checked against the vertex sequence.
    """

    header: Header
    vertices: Tuple[Vertex, ...]
    indices: Tuple[int, ...]
    sub_meshes: Optional[Tuple[SubMesh, ...]] = None

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def index_count(self) -> int:
        return len(self.indices)

    @property
    def face_count(self) -> int:
        return len(self.indices) // FACE_SIZE

    def faces(self) -> Iterator[Tuple[int, ...]]:
        """Iterate over index triples."""
        for start in range(0, len(self.indices), FACE_SIZE):
            yield self.indices[start:start + FACE_SIZE]

    def face_indices(self, sub_mesh: SubMesh) -> Tuple[int, ...]:
        """Get the slice of the index sequence covered by a sub-mesh."""
        return self.indices[sub_mesh.index_start:sub_mesh.index_end]

    def bounds(self) -> Tuple[Vec3, Vec3]:
        """Compute min/max bounds of vertex positions.

        Returns:
            (min, max) tuples, both all-zero for a mesh without vertices
        """
        if not self.vertices:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)

        xs, ys, zs = zip(*(v.position for v in self.vertices))
        return (min(xs), min(ys), min(zs)), (max(xs), max(ys), max(zs))
