"""Header and section decoders for binary mesh files."""
import struct
from typing import List, Tuple

from byte_cursor import ByteCursor
from mesh_errors import (
    InvalidMagicError,
    InvalidRecordError,
    SizeMismatchError,
    UnsupportedVersionError,
)
from mesh_types import (
    HEADER_SIZE,
    HEADER_STRUCT,
    KNOWN_FLAGS,
    MAGIC,
    SUB_MESH_STRUCT,
    SUPPORTED_VERSIONS,
    VERTEX_STRUCT,
    Header,
    ShaderType,
    SubMesh,
    Vertex,
)


class MeshParser:
    """Parses the header and fixed-stride sections of a mesh file.

    Each method consumes the cursor and returns a typed value, or raises a
    MeshError. The section decoders only check their own records; checks that
    span sections belong to the assembler.
    """

    def parse_header(self, cursor: ByteCursor) -> Header:
        """Parse and validate the header.

        Args:
            cursor: Cursor positioned at offset 0

        Returns:
            Header with parsed data, cursor advanced past it

        Raises:
            InvalidMagicError: If the leading bytes are not the mesh magic
            UnexpectedEofError: If the buffer is shorter than the header
            UnsupportedVersionError: If the version is not supported
            InvalidRecordError: If unknown flags or reserved bits are set
            SizeMismatchError: If the declared section layout is inconsistent
        """
        # Check whatever part of the magic is present before demanding a full
        # header, so a foreign file is always reported as such.
        prefix = cursor.peek(len(MAGIC))
        if not MAGIC.startswith(prefix):
            raise InvalidMagicError(prefix)

        (
            _magic,
            version,
            flags,
            vertex_count,
            vertex_offset,
            index_count,
            index_offset,
            metadata_count,
            metadata_offset,
            total_length,
            reserved,
        ) = cursor.read_struct(HEADER_STRUCT)

        if version not in SUPPORTED_VERSIONS:
            raise UnsupportedVersionError(version)

        if flags & ~KNOWN_FLAGS:
            raise InvalidRecordError(f"Unknown header flags: {flags:#06x}")
        if reserved != 0:
            raise InvalidRecordError(f"Reserved header field is {reserved:#x}, expected 0")

        header = Header(
            version=version,
            flags=flags,
            vertex_count=vertex_count,
            vertex_offset=vertex_offset,
            index_count=index_count,
            index_offset=index_offset,
            metadata_count=metadata_count,
            metadata_offset=metadata_offset,
            total_length=total_length,
        )
        self._check_layout(header)
        return header

    def _check_layout(self, header: Header):
        """Check that the sections are ordered, disjoint and inside total_length."""
        if not header.has_metadata and (header.metadata_count or header.metadata_offset):
            raise SizeMismatchError(
                f"Metadata section declared ({header.metadata_count} records at "
                f"{header.metadata_offset}) but not flagged as present"
            )

        sections: List[Tuple[str, int, int]] = [
            ("vertex", header.vertex_offset, header.vertex_bytes),
            ("index", header.index_offset, header.index_bytes),
        ]
        if header.has_metadata:
            sections.append(("metadata", header.metadata_offset, header.metadata_bytes))

        previous_end = HEADER_SIZE
        for name, offset, size in sections:
            if offset < previous_end:
                raise SizeMismatchError(
                    f"{name} section at {offset} overlaps preceding data ending at {previous_end}"
                )
            end = offset + size
            if end > header.total_length:
                raise SizeMismatchError(
                    f"{name} section ends at {end}, past declared length {header.total_length}"
                )
            previous_end = end

    def parse_vertices(self, cursor: ByteCursor, header: Header) -> List[Vertex]:
        """Parse the vertex section.

        Returns:
            List of header.vertex_count vertices, cursor left after the section
        """
        cursor.seek(header.vertex_offset)
        data = cursor.read_view(header.vertex_bytes)

        return [
            Vertex(
                position=(px, py, pz),
                normal=(nx, ny, nz),
                uv=(u, v),
                color=(r, g, b, a),
            )
            for px, py, pz, nx, ny, nz, u, v, r, g, b, a in VERTEX_STRUCT.iter_unpack(data)
        ]

    def parse_indices(self, cursor: ByteCursor, header: Header) -> List[int]:
        """Parse the index section.

        Returns:
            List of header.index_count vertex indices (every 3 form a triangle)
        """
        cursor.seek(header.index_offset)
        data = cursor.read_view(header.index_bytes)
        return list(struct.unpack(f"<{header.index_count}I", data))

    def parse_sub_meshes(self, cursor: ByteCursor, header: Header) -> List[SubMesh]:
        """Parse the metadata (sub-mesh) section.

        Only call this when header.has_metadata is set.

        Raises:
            InvalidRecordError: On an unknown shader, a nonzero reserved field
                or a name that is not UTF-8
        """
        cursor.seek(header.metadata_offset)
        data = cursor.read_view(header.metadata_bytes)

        sub_meshes = []
        for number, (start, length, shader, reserved, raw_name) in enumerate(
            SUB_MESH_STRUCT.iter_unpack(data)
        ):
            try:
                shader_type = ShaderType(shader)
            except ValueError as exc:
                raise InvalidRecordError(
                    f"Sub-mesh {number} has unknown shader type {shader}"
                ) from exc

            if reserved != 0:
                raise InvalidRecordError(
                    f"Sub-mesh {number} reserved field is {reserved:#x}, expected 0"
                )

            try:
                name = raw_name.split(b"\x00", 1)[0].decode("utf-8")
            except UnicodeDecodeError as exc:
                raise InvalidRecordError(f"Sub-mesh {number} name is not valid UTF-8") from exc

            sub_meshes.append(
                SubMesh(
                    index_start=start,
                    index_length=length,
                    shader=shader_type,
                    name=name,
                )
            )

        return sub_meshes
