"""Cross-section validation and assembly of decoded mesh sections."""
import logging
from typing import Optional, Sequence

from byte_cursor import ByteCursor
from mesh_errors import IndexOutOfRangeError, SizeMismatchError
from mesh_types import FACE_SIZE, Header, Mesh, SubMesh, Vertex

logger = logging.getLogger(__name__)


def assemble_mesh(
    header: Header,
    vertices: Sequence[Vertex],
    indices: Sequence[int],
    sub_meshes: Optional[Sequence[SubMesh]],
    cursor: ByteCursor,
) -> Mesh:
    """Validate decoded sections against each other and build a Mesh.

    Degenerate faces (a face naming the same vertex twice) are accepted.
    Trailing bytes after the last section are rejected, as is a declared
    total_length that the sections do not reach.

    Args:
        header: Parsed header
        vertices: Decoded vertex section
        indices: Decoded index section
        sub_meshes: Decoded metadata section, or None if the header has none
        cursor: Cursor left just after the last decoded section

    Returns:
        Immutable Mesh

    Raises:
        SizeMismatchError: On count, face grouping or end-of-data mismatch
        IndexOutOfRangeError: If an index or sub-mesh range is out of bounds
    """
    if len(vertices) != header.vertex_count:
        raise SizeMismatchError(
            f"Decoded {len(vertices)} vertices, header declares {header.vertex_count}"
        )
    if len(indices) != header.index_count:
        raise SizeMismatchError(
            f"Decoded {len(indices)} indices, header declares {header.index_count}"
        )
    if len(indices) % FACE_SIZE:
        raise SizeMismatchError(
            f"Index count {len(indices)} is not a multiple of face size {FACE_SIZE}"
        )

    vertex_count = len(vertices)
    if indices and max(indices) >= vertex_count:
        position, value = next((i, v) for i, v in enumerate(indices) if v >= vertex_count)
        raise IndexOutOfRangeError(
            f"Index {position} has value {value}, vertex count is {vertex_count}",
            position=position,
            value=value,
            bound=vertex_count,
        )

    if sub_meshes is not None:
        if len(sub_meshes) != header.metadata_count:
            raise SizeMismatchError(
                f"Decoded {len(sub_meshes)} sub-meshes, header declares {header.metadata_count}"
            )
        _check_sub_meshes(sub_meshes, len(indices))

    if cursor.offset != header.total_length:
        raise SizeMismatchError(
            f"Sections end at {cursor.offset}, header declares length {header.total_length}"
        )
    if not cursor.at_end:
        raise SizeMismatchError(
            f"{cursor.remaining} trailing bytes after declared end {header.total_length}"
        )

    mesh = Mesh(
        header=header,
        vertices=tuple(vertices),
        indices=tuple(indices),
        sub_meshes=tuple(sub_meshes) if sub_meshes is not None else None,
    )
    logger.debug(
        "Assembled mesh: %d vertices, %d faces, %s sub-meshes",
        mesh.vertex_count,
        mesh.face_count,
        len(mesh.sub_meshes) if mesh.sub_meshes is not None else "no",
    )
    return mesh


def _check_sub_meshes(sub_meshes: Sequence[SubMesh], index_count: int):
    for number, sub_mesh in enumerate(sub_meshes):
        if sub_mesh.index_start > index_count:
            raise IndexOutOfRangeError(
                f"Sub-mesh {number} starts at index {sub_mesh.index_start}, "
                f"index count is {index_count}",
                position=number,
                value=sub_mesh.index_start,
                bound=index_count,
            )
        if sub_mesh.index_end > index_count:
            raise IndexOutOfRangeError(
                f"Sub-mesh {number} runs to index {sub_mesh.index_end}, "
                f"index count is {index_count}",
                position=number,
                value=sub_mesh.index_end,
                bound=index_count,
            )
        if sub_mesh.index_start % FACE_SIZE or sub_mesh.index_length % FACE_SIZE:
            raise SizeMismatchError(
                f"Sub-mesh {number} range {sub_mesh.index_start}+{sub_mesh.index_length} "
                f"does not align to whole faces"
            )
