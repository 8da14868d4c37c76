"""Single-file mesh loading: header, sections, then assembly."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Hashable, Optional, Union

from byte_cursor import BufferLike, ByteCursor
from mesh_assembler import assemble_mesh
from mesh_errors import MeshError, MeshIoError
from mesh_parser import MeshParser
from mesh_types import Mesh

logger = logging.getLogger(__name__)

MeshSource = Union[BufferLike, BinaryIO]


class DecodeStage(Enum):
    """Progress of one decode. FAILED and DONE are terminal."""

    START = "start"
    HEADER_PARSED = "header_parsed"
    SECTIONS_PARSED = "sections_parsed"
    VALIDATED = "validated"
    DONE = "done"
    FAILED = "failed"


def decode_mesh(data: BufferLike, parser: Optional[MeshParser] = None) -> Mesh:
    """Decode a mesh from an in-memory buffer.

    Args:
        data: Complete file contents
        parser: Parser to use, a fresh one by default

    Returns:
        Validated Mesh

    Raises:
        MeshError: On any malformed input. The error's stage attribute holds
            the last stage the decode completed, so a bad header reports
            START and a bad index reports SECTIONS_PARSED.
    """
    parser = parser or MeshParser()
    cursor = ByteCursor(data)
    stage = DecodeStage.START

    def advance(next_stage: DecodeStage) -> DecodeStage:
        logger.debug("Decode %s -> %s at offset %d", stage.value, next_stage.value, cursor.offset)
        return next_stage

    try:
        header = parser.parse_header(cursor)
        stage = advance(DecodeStage.HEADER_PARSED)

        vertices = parser.parse_vertices(cursor, header)
        indices = parser.parse_indices(cursor, header)
        sub_meshes = parser.parse_sub_meshes(cursor, header) if header.has_metadata else None
        stage = advance(DecodeStage.SECTIONS_PARSED)

        mesh = assemble_mesh(header, vertices, indices, sub_meshes, cursor)
        stage = advance(DecodeStage.VALIDATED)
    except MeshError as exc:
        exc.stage = stage
        logger.debug(
            "Decode %s -> %s: %s", stage.value, DecodeStage.FAILED.value, exc.message
        )
        raise

    advance(DecodeStage.DONE)
    return mesh


def read_mesh(stream: BinaryIO, parser: Optional[MeshParser] = None) -> Mesh:
    """Read an open binary stream to its end and decode it.

    Raises:
        MeshIoError: If reading the stream fails
        MeshError: On malformed content
    """
    try:
        data = stream.read()
    except OSError as exc:
        error = MeshIoError(f"Failed to read mesh stream: {exc}")
        error.stage = DecodeStage.START
        raise error from exc
    return decode_mesh(data, parser)


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one source: a mesh or the error that stopped it."""

    source: Hashable
    mesh: Optional[Mesh] = None
    error: Optional[MeshError] = None
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stage(self) -> DecodeStage:
        return DecodeStage.DONE if self.error is None else DecodeStage.FAILED

    def unwrap(self) -> Mesh:
        """Return the mesh, or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.mesh


class MeshLoader:
    """Loads one mesh per call and reports failures as values.

    Holds no state between calls, so one instance may be shared by any
    number of threads.
    """

    def __init__(self, parser: Optional[MeshParser] = None):
        self.parser = parser or MeshParser()

    def load(self, source: MeshSource, identity: Optional[Hashable] = None) -> LoadResult:
        """Load a mesh from a buffer or an open binary stream.

        Args:
            source: Buffer or readable binary stream
            identity: Key to report the result under, defaults to the source

        Returns:
            LoadResult holding either the mesh or the MeshError
        """
        if identity is None:
            identity = source
        started = time.perf_counter()
        try:
            if isinstance(source, (bytes, bytearray, memoryview)):
                mesh = decode_mesh(source, self.parser)
            elif hasattr(source, "read"):
                mesh = read_mesh(source, self.parser)
            else:
                raise TypeError(
                    f"Mesh source must be a buffer or binary stream, got {type(source).__name__}"
                )
        except MeshError as exc:
            exc.source = identity
            return LoadResult(source=identity, error=exc, elapsed=time.perf_counter() - started)

        return LoadResult(source=identity, mesh=mesh, elapsed=time.perf_counter() - started)
