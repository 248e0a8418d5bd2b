## @package SurfaceMesh
# Immutable result of an isosurface extraction
from dataclasses import dataclass

import numpy as np
from isomesh.utils import *


@dataclass(frozen=True)
class SurfaceMesh:
    ## (n, 3) float32 vertex positions
    vertices: np.ndarray
    ## (3 * t,) int32 vertex indices, three per triangle
    triangles: np.ndarray
    ## (n, 3) float32 unit vertex normals
    normals: np.ndarray

    def __post_init__(self):
        vertices = np.array(self.vertices, dtype=np.float32).reshape(-1, 3)
        triangles = np.array(self.triangles, dtype=np.int32).reshape(-1)
        normals = np.array(self.normals, dtype=np.float32).reshape(-1, 3)
        mc_assert(triangles.shape[0] % 3 == 0, "Triangle index count {} is not a multiple of 3.".format(triangles.shape[0]))
        mc_assert(normals.shape[0] == vertices.shape[0],
                  "Got {} normals for {} vertices.".format(normals.shape[0], vertices.shape[0]))
        for name, arr in (("vertices", vertices), ("triangles", triangles), ("normals", normals)):
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    @staticmethod
    def empty():
        return SurfaceMesh(np.zeros((0, 3)), np.zeros(0), np.zeros((0, 3)))

    @property
    def num_vertices(self) -> int:
        return self.vertices.shape[0]

    @property
    def num_triangles(self) -> int:
        return self.triangles.shape[0] // 3

    ## @detail (t, 3) view on the triangle indices
    @property
    def faces(self) -> np.ndarray:
        return self.triangles.reshape(-1, 3)
