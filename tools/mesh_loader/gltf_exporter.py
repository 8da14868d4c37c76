"""glTF exporter for decoded meshes.

Reads only the public fields of a Mesh, so it works on any mesh the loader
produces. Each sub-mesh becomes its own primitive sharing one set of vertex
attributes; a mesh without a metadata section becomes a single primitive.
"""
import struct
from pathlib import Path
from typing import List, Union

from pygltflib import (
    GLTF2,
    Accessor,
    Asset,
    Attributes,
    Buffer,
    BufferView,
    Mesh as GLTFMesh,
    Node,
    Primitive,
    Scene,
)

from mesh_types import Mesh

# glTF enums
ARRAY_BUFFER = 34962
ELEMENT_ARRAY_BUFFER = 34963
FLOAT = 5126
UNSIGNED_BYTE = 5121
UNSIGNED_INT = 5125
TRIANGLES = 4


class MeshGLTFExporter:
    """Exports a decoded Mesh to glTF/GLB format."""

    def __init__(self, mesh: Mesh, name: str = "mesh_0"):
        """Initialize exporter with a decoded mesh.

        Args:
            mesh: Mesh returned by the loader
            name: Name for the glTF mesh and node
        """
        self.mesh = mesh
        self.name = name

    def _pack_attributes(self) -> List[bytes]:
        """Pack positions, normals, uvs and colors as separate tightly packed blocks."""
        vertices = self.mesh.vertices
        positions = b"".join(struct.pack("<3f", *v.position) for v in vertices)
        normals = b"".join(struct.pack("<3f", *v.normal) for v in vertices)
        uvs = b"".join(struct.pack("<2f", *v.uv) for v in vertices)
        colors = b"".join(struct.pack("<4B", *v.color) for v in vertices)
        return [positions, normals, uvs, colors]

    def build(self) -> GLTF2:
        """Build the glTF document in memory.

        Raises:
            ValueError: If the mesh has no faces
        """
        mesh = self.mesh
        if not mesh.vertices or not mesh.indices:
            raise ValueError("No faces to export")

        gltf = GLTF2()
        gltf.asset = Asset(version="2.0", generator="mesh_loader")

        blocks = self._pack_attributes()
        index_data = struct.pack(f"<{mesh.index_count}I", *mesh.indices)

        buffer_data = b""
        for block in blocks:
            gltf.bufferViews.append(
                BufferView(
                    buffer=0,
                    byteOffset=len(buffer_data),
                    byteLength=len(block),
                    target=ARRAY_BUFFER,
                )
            )
            buffer_data += block

        index_view = len(gltf.bufferViews)
        gltf.bufferViews.append(
            BufferView(
                buffer=0,
                byteOffset=len(buffer_data),
                byteLength=len(index_data),
                target=ELEMENT_ARRAY_BUFFER,
            )
        )
        buffer_data += index_data
        gltf.buffers = [Buffer(byteLength=len(buffer_data))]

        min_bounds, max_bounds = mesh.bounds()
        count = mesh.vertex_count
        gltf.accessors = [
            Accessor(
                bufferView=0,
                componentType=FLOAT,
                count=count,
                type="VEC3",
                min=list(min_bounds),
                max=list(max_bounds),
            ),
            Accessor(bufferView=1, componentType=FLOAT, count=count, type="VEC3"),
            Accessor(bufferView=2, componentType=FLOAT, count=count, type="VEC2"),
            Accessor(
                bufferView=3,
                componentType=UNSIGNED_BYTE,
                normalized=True,
                count=count,
                type="VEC4",
            ),
        ]

        # (start, length) runs of the index buffer, one primitive each
        if mesh.sub_meshes:
            runs = [(s.index_start, s.index_length) for s in mesh.sub_meshes if s.index_length]
        else:
            runs = []
        if not runs:
            runs = [(0, mesh.index_count)]

        primitives = []
        for start, length in runs:
            gltf.accessors.append(
                Accessor(
                    bufferView=index_view,
                    byteOffset=start * 4,
                    componentType=UNSIGNED_INT,
                    count=length,
                    type="SCALAR",
                )
            )
            primitives.append(
                Primitive(
                    attributes=Attributes(POSITION=0, NORMAL=1, TEXCOORD_0=2, COLOR_0=3),
                    indices=len(gltf.accessors) - 1,
                    mode=TRIANGLES,
                )
            )

        gltf.meshes = [GLTFMesh(name=self.name, primitives=primitives)]
        gltf.nodes = [Node(mesh=0, name=self.name)]
        gltf.scenes = [Scene(nodes=[0])]
        gltf.scene = 0

        gltf.set_binary_blob(buffer_data)
        return gltf

    def export(self, output_path: Union[str, Path]):
        """Export the mesh to a .glb file.

        Args:
            output_path: Path for output .glb file

        Raises:
            ValueError: If the mesh has no faces
        """
        self.build().save(str(output_path))
