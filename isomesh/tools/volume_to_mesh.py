## @package VolumeToMesh converts a sampled scalar field to a welded triangle mesh
#
import time

import numpy as np
import taichi as ti
from isomesh.grid_topo import *
from isomesh.mc_math import *
from isomesh.mesh import SurfaceMesh
from isomesh.tools.mesh_writer import write_surface_obj, write_surface_ply, write_surface_vtk
from isomesh.utils import *

# Each cube has corner ids 0 - 7, arranged as:
#
#       5 ---------- 6
#       / |        /|
#      /  |       / |
#     4----------7  |
#     |   |      |  |
#     |   1------|--2
#     |  /       | /
#     | /        |/
#     0----------3
#
# 0 -> 3 indicates the positive x direction
# 0 -> 1 indicates the positive y direction
# 0 -> 4 indicates the positive z direction
CORNER_OFFSET = (
    (0, 0, 0), (0, 1, 0), (1, 1, 0), (1, 0, 0),
    (0, 0, 1), (0, 1, 1), (1, 1, 1), (1, 0, 1),
)

# Corner pair of every edge, interpolation runs from the first to the second corner
EDGE_CORNERS = (
    (0, 1), (1, 2), (2, 3), (3, 0),
    (4, 5), (5, 6), (6, 7), (7, 4),
    (0, 4), (1, 5), (2, 6), (3, 7),
)

# Lower corner of every edge and the axis (0: x, 1: y, 2: z) the edge runs along
EDGE_KEY_CORNER = (0, 1, 3, 0, 4, 5, 7, 4, 0, 1, 2, 3)
EDGE_AXIS = (1, 0, 1, 0, 1, 0, 1, 0, 2, 2, 2, 2)

# A cube creates vertices on edges 0, 3 and 8 only. The remaining edges belong to a
# neighbour cube, unless the cube is the last one along one of these axes (bit 0: x, 1: y, 2: z)
EDGE_END_MASK = (0, 2, 1, 0, 4, 6, 5, 4, 0, 2, 3, 1)

EDGE_P1 = tuple(list(CORNER_OFFSET[c0]) for c0, _ in EDGE_CORNERS)
EDGE_P2 = tuple(list(CORNER_OFFSET[c1]) for _, c1 in EDGE_CORNERS)


## @param incr linear address increments along x, y, z
#  @detail Address offsets of the 8 cube corners relative to corner 0
def corner_addr_offsets(incr) -> np.ndarray:
    return np.array([ox * incr[0] + oy * incr[1] + oz * incr[2] for ox, oy, oz in CORNER_OFFSET], dtype=np.int32)


## @param addr linear address of corner 0 of the cube
#  @param incr linear address increments along x, y, z
#  @param edge local edge number 0 - 11
#  @detail Cubes sharing an edge compute the same key since they share its lower corner address
def edge_key(addr: int, incr, edge: int) -> int:
    mc_assert(0 <= edge < 12, "Invalid edge number {}.".format(edge))
    ox, oy, oz = CORNER_OFFSET[EDGE_KEY_CORNER[edge]]
    return 3 * (addr + ox * incr[0] + oy * incr[1] + oz * incr[2]) + EDGE_AXIS[edge]


def edge_key_offsets(incr) -> np.ndarray:
    return np.array([edge_key(0, incr, e) for e in range(12)], dtype=np.int32)


## @param data raw bytes, or an array-like of numbers
#  @detail Returns a writable float32 copy. Bytes and uint8 samples are signed bytes, so 255 reads as -1
def sample_buffer(data) -> np.ndarray:
    if isinstance(data, (bytes, bytearray)):
        samples = np.frombuffer(data, dtype=np.int8)
    else:
        samples = np.asarray(data).reshape(-1)
        if samples.dtype == np.uint8:
            samples = samples.view(np.int8)
    mc_assert(samples.dtype.kind in "biuf", "Samples need a numeric type, got {}.".format(samples.dtype))
    return np.array(samples, dtype=np.float32)


@ti.func
def gather_corners(data: ti.template(), addr, corner_addr: ti.template()):
    values = ti.Vector.zero(dt=ti.f32, n=8)
    for c in ti.static(range(8)):
        values[c] = data[addr + corner_addr[c]]
    return values


## @detail Bit c is set when corner c lies below the threshold
@ti.func
def cube_index(values, threshold):
    index = 0
    for c in ti.static(range(8)):
        if values[c] < threshold:
            index |= ti.static(1 << c)
    return index


@ti.data_oriented
class MarchingCubes:
    IDLE = "idle"
    TRAVERSING = "traversing"
    FINALIZING = "finalizing"
    READY = "ready"

    class Internal:
        tri_table_data = \
            np.array(
                [
                    [-1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 1, 9, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 8, 3, 9, 8, 1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, 1, 2, 10, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 2, 10, 0, 2, 9, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [2, 8, 3, 2, 10, 8, 10, 9, 8, -1, -1, -1, -1, -1, -1, -1],
                    [3, 11, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 11, 2, 8, 11, 0, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 9, 0, 2, 3, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 11, 2, 1, 9, 11, 9, 8, 11, -1, -1, -1, -1, -1, -1, -1],
                    [3, 10, 1, 11, 10, 3, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 10, 1, 0, 8, 10, 8, 11, 10, -1, -1, -1, -1, -1, -1, -1],
                    [3, 9, 0, 3, 11, 9, 11, 10, 9, -1, -1, -1, -1, -1, -1, -1],
                    [9, 8, 10, 10, 8, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 7, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 3, 0, 7, 3, 4, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 1, 9, 8, 4, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 1, 9, 4, 7, 1, 7, 3, 1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, 8, 4, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 4, 7, 3, 0, 4, 1, 2, 10, -1, -1, -1, -1, -1, -1, -1],
                    [9, 2, 10, 9, 0, 2, 8, 4, 7, -1, -1, -1, -1, -1, -1, -1],
                    [2, 10, 9, 2, 9, 7, 2, 7, 3, 7, 9, 4, -1, -1, -1, -1],
                    [8, 4, 7, 3, 11, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [11, 4, 7, 11, 2, 4, 2, 0, 4, -1, -1, -1, -1, -1, -1, -1],
                    [9, 0, 1, 8, 4, 7, 2, 3, 11, -1, -1, -1, -1, -1, -1, -1],
                    [4, 7, 11, 9, 4, 11, 9, 11, 2, 9, 2, 1, -1, -1, -1, -1],
                    [3, 10, 1, 3, 11, 10, 7, 8, 4, -1, -1, -1, -1, -1, -1, -1],
                    [1, 11, 10, 1, 4, 11, 1, 0, 4, 7, 11, 4, -1, -1, -1, -1],
                    [4, 7, 8, 9, 0, 11, 9, 11, 10, 11, 0, 3, -1, -1, -1, -1],
                    [4, 7, 11, 4, 11, 9, 9, 11, 10, -1, -1, -1, -1, -1, -1, -1],
                    [9, 5, 4, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 5, 4, 0, 8, 3, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 5, 4, 1, 5, 0, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [8, 5, 4, 8, 3, 5, 3, 1, 5, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, 9, 5, 4, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 0, 8, 1, 2, 10, 4, 9, 5, -1, -1, -1, -1, -1, -1, -1],
                    [5, 2, 10, 5, 4, 2, 4, 0, 2, -1, -1, -1, -1, -1, -1, -1],
                    [2, 10, 5, 3, 2, 5, 3, 5, 4, 3, 4, 8, -1, -1, -1, -1],
                    [9, 5, 4, 2, 3, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 11, 2, 0, 8, 11, 4, 9, 5, -1, -1, -1, -1, -1, -1, -1],
                    [0, 5, 4, 0, 1, 5, 2, 3, 11, -1, -1, -1, -1, -1, -1, -1],
                    [2, 1, 5, 2, 5, 8, 2, 8, 11, 4, 8, 5, -1, -1, -1, -1],
                    [10, 3, 11, 10, 1, 3, 9, 5, 4, -1, -1, -1, -1, -1, -1, -1],
                    [4, 9, 5, 0, 8, 1, 8, 10, 1, 8, 11, 10, -1, -1, -1, -1],
                    [5, 4, 0, 5, 0, 11, 5, 11, 10, 11, 0, 3, -1, -1, -1, -1],
                    [5, 4, 8, 5, 8, 10, 10, 8, 11, -1, -1, -1, -1, -1, -1, -1],
                    [9, 7, 8, 5, 7, 9, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 3, 0, 9, 5, 3, 5, 7, 3, -1, -1, -1, -1, -1, -1, -1],
                    [0, 7, 8, 0, 1, 7, 1, 5, 7, -1, -1, -1, -1, -1, -1, -1],
                    [1, 5, 3, 3, 5, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 7, 8, 9, 5, 7, 10, 1, 2, -1, -1, -1, -1, -1, -1, -1],
                    [10, 1, 2, 9, 5, 0, 5, 3, 0, 5, 7, 3, -1, -1, -1, -1],
                    [8, 0, 2, 8, 2, 5, 8, 5, 7, 10, 5, 2, -1, -1, -1, -1],
                    [2, 10, 5, 2, 5, 3, 3, 5, 7, -1, -1, -1, -1, -1, -1, -1],
                    [7, 9, 5, 7, 8, 9, 3, 11, 2, -1, -1, -1, -1, -1, -1, -1],
                    [9, 5, 7, 9, 7, 2, 9, 2, 0, 2, 7, 11, -1, -1, -1, -1],
                    [2, 3, 11, 0, 1, 8, 1, 7, 8, 1, 5, 7, -1, -1, -1, -1],
                    [11, 2, 1, 11, 1, 7, 7, 1, 5, -1, -1, -1, -1, -1, -1, -1],
                    [9, 5, 8, 8, 5, 7, 10, 1, 3, 10, 3, 11, -1, -1, -1, -1],
                    [5, 7, 0, 5, 0, 9, 7, 11, 0, 1, 0, 10, 11, 10, 0, -1],
                    [11, 10, 0, 11, 0, 3, 10, 5, 0, 8, 0, 7, 5, 7, 0, -1],
                    [11, 10, 5, 7, 11, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [10, 6, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, 5, 10, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 0, 1, 5, 10, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 8, 3, 1, 9, 8, 5, 10, 6, -1, -1, -1, -1, -1, -1, -1],
                    [1, 6, 5, 2, 6, 1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 6, 5, 1, 2, 6, 3, 0, 8, -1, -1, -1, -1, -1, -1, -1],
                    [9, 6, 5, 9, 0, 6, 0, 2, 6, -1, -1, -1, -1, -1, -1, -1],
                    [5, 9, 8, 5, 8, 2, 5, 2, 6, 3, 2, 8, -1, -1, -1, -1],
                    [2, 3, 11, 10, 6, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [11, 0, 8, 11, 2, 0, 10, 6, 5, -1, -1, -1, -1, -1, -1, -1],
                    [0, 1, 9, 2, 3, 11, 5, 10, 6, -1, -1, -1, -1, -1, -1, -1],
                    [5, 10, 6, 1, 9, 2, 9, 11, 2, 9, 8, 11, -1, -1, -1, -1],
                    [6, 3, 11, 6, 5, 3, 5, 1, 3, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 11, 0, 11, 5, 0, 5, 1, 5, 11, 6, -1, -1, -1, -1],
                    [3, 11, 6, 0, 3, 6, 0, 6, 5, 0, 5, 9, -1, -1, -1, -1],
                    [6, 5, 9, 6, 9, 11, 11, 9, 8, -1, -1, -1, -1, -1, -1, -1],
                    [5, 10, 6, 4, 7, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 3, 0, 4, 7, 3, 6, 5, 10, -1, -1, -1, -1, -1, -1, -1],
                    [1, 9, 0, 5, 10, 6, 8, 4, 7, -1, -1, -1, -1, -1, -1, -1],
                    [10, 6, 5, 1, 9, 7, 1, 7, 3, 7, 9, 4, -1, -1, -1, -1],
                    [6, 1, 2, 6, 5, 1, 4, 7, 8, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 5, 5, 2, 6, 3, 0, 4, 3, 4, 7, -1, -1, -1, -1],
                    [8, 4, 7, 9, 0, 5, 0, 6, 5, 0, 2, 6, -1, -1, -1, -1],
                    [7, 3, 9, 7, 9, 4, 3, 2, 9, 5, 9, 6, 2, 6, 9, -1],
                    [3, 11, 2, 7, 8, 4, 10, 6, 5, -1, -1, -1, -1, -1, -1, -1],
                    [5, 10, 6, 4, 7, 2, 4, 2, 0, 2, 7, 11, -1, -1, -1, -1],
                    [0, 1, 9, 4, 7, 8, 2, 3, 11, 5, 10, 6, -1, -1, -1, -1],
                    [9, 2, 1, 9, 11, 2, 9, 4, 11, 7, 11, 4, 5, 10, 6, -1],
                    [8, 4, 7, 3, 11, 5, 3, 5, 1, 5, 11, 6, -1, -1, -1, -1],
                    [5, 1, 11, 5, 11, 6, 1, 0, 11, 7, 11, 4, 0, 4, 11, -1],
                    [0, 5, 9, 0, 6, 5, 0, 3, 6, 11, 6, 3, 8, 4, 7, -1],
                    [6, 5, 9, 6, 9, 11, 4, 7, 9, 7, 11, 9, -1, -1, -1, -1],
                    [10, 4, 9, 6, 4, 10, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 10, 6, 4, 9, 10, 0, 8, 3, -1, -1, -1, -1, -1, -1, -1],
                    [10, 0, 1, 10, 6, 0, 6, 4, 0, -1, -1, -1, -1, -1, -1, -1],
                    [8, 3, 1, 8, 1, 6, 8, 6, 4, 6, 1, 10, -1, -1, -1, -1],
                    [1, 4, 9, 1, 2, 4, 2, 6, 4, -1, -1, -1, -1, -1, -1, -1],
                    [3, 0, 8, 1, 2, 9, 2, 4, 9, 2, 6, 4, -1, -1, -1, -1],
                    [0, 2, 4, 4, 2, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [8, 3, 2, 8, 2, 4, 4, 2, 6, -1, -1, -1, -1, -1, -1, -1],
                    [10, 4, 9, 10, 6, 4, 11, 2, 3, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 2, 2, 8, 11, 4, 9, 10, 4, 10, 6, -1, -1, -1, -1],
                    [3, 11, 2, 0, 1, 6, 0, 6, 4, 6, 1, 10, -1, -1, -1, -1],
                    [6, 4, 1, 6, 1, 10, 4, 8, 1, 2, 1, 11, 8, 11, 1, -1],
                    [9, 6, 4, 9, 3, 6, 9, 1, 3, 11, 6, 3, -1, -1, -1, -1],
                    [8, 11, 1, 8, 1, 0, 11, 6, 1, 9, 1, 4, 6, 4, 1, -1],
                    [3, 11, 6, 3, 6, 0, 0, 6, 4, -1, -1, -1, -1, -1, -1, -1],
                    [6, 4, 8, 11, 6, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [7, 10, 6, 7, 8, 10, 8, 9, 10, -1, -1, -1, -1, -1, -1, -1],
                    [0, 7, 3, 0, 10, 7, 0, 9, 10, 6, 7, 10, -1, -1, -1, -1],
                    [10, 6, 7, 1, 10, 7, 1, 7, 8, 1, 8, 0, -1, -1, -1, -1],
                    [10, 6, 7, 10, 7, 1, 1, 7, 3, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 6, 1, 6, 8, 1, 8, 9, 8, 6, 7, -1, -1, -1, -1],
                    [2, 6, 9, 2, 9, 1, 6, 7, 9, 0, 9, 3, 7, 3, 9, -1],
                    [7, 8, 0, 7, 0, 6, 6, 0, 2, -1, -1, -1, -1, -1, -1, -1],
                    [7, 3, 2, 6, 7, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [2, 3, 11, 10, 6, 8, 10, 8, 9, 8, 6, 7, -1, -1, -1, -1],
                    [2, 0, 7, 2, 7, 11, 0, 9, 7, 6, 7, 10, 9, 10, 7, -1],
                    [1, 8, 0, 1, 7, 8, 1, 10, 7, 6, 7, 10, 2, 3, 11, -1],
                    [11, 2, 1, 11, 1, 7, 10, 6, 1, 6, 7, 1, -1, -1, -1, -1],
                    [8, 9, 6, 8, 6, 7, 9, 1, 6, 11, 6, 3, 1, 3, 6, -1],
                    [0, 9, 1, 11, 6, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [7, 8, 0, 7, 0, 6, 3, 11, 0, 11, 6, 0, -1, -1, -1, -1],
                    [7, 11, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [7, 6, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 0, 8, 11, 7, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 1, 9, 11, 7, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [8, 1, 9, 8, 3, 1, 11, 7, 6, -1, -1, -1, -1, -1, -1, -1],
                    [10, 1, 2, 6, 11, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, 3, 0, 8, 6, 11, 7, -1, -1, -1, -1, -1, -1, -1],
                    [2, 9, 0, 2, 10, 9, 6, 11, 7, -1, -1, -1, -1, -1, -1, -1],
                    [6, 11, 7, 2, 10, 3, 10, 8, 3, 10, 9, 8, -1, -1, -1, -1],
                    [7, 2, 3, 6, 2, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [7, 0, 8, 7, 6, 0, 6, 2, 0, -1, -1, -1, -1, -1, -1, -1],
                    [2, 7, 6, 2, 3, 7, 0, 1, 9, -1, -1, -1, -1, -1, -1, -1],
                    [1, 6, 2, 1, 8, 6, 1, 9, 8, 8, 7, 6, -1, -1, -1, -1],
                    [10, 7, 6, 10, 1, 7, 1, 3, 7, -1, -1, -1, -1, -1, -1, -1],
                    [10, 7, 6, 1, 7, 10, 1, 8, 7, 1, 0, 8, -1, -1, -1, -1],
                    [0, 3, 7, 0, 7, 10, 0, 10, 9, 6, 10, 7, -1, -1, -1, -1],
                    [7, 6, 10, 7, 10, 8, 8, 10, 9, -1, -1, -1, -1, -1, -1, -1],
                    [6, 8, 4, 11, 8, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 6, 11, 3, 0, 6, 0, 4, 6, -1, -1, -1, -1, -1, -1, -1],
                    [8, 6, 11, 8, 4, 6, 9, 0, 1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 4, 6, 9, 6, 3, 9, 3, 1, 11, 3, 6, -1, -1, -1, -1],
                    [6, 8, 4, 6, 11, 8, 2, 10, 1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, 3, 0, 11, 0, 6, 11, 0, 4, 6, -1, -1, -1, -1],
                    [4, 11, 8, 4, 6, 11, 0, 2, 9, 2, 10, 9, -1, -1, -1, -1],
                    [10, 9, 3, 10, 3, 2, 9, 4, 3, 11, 3, 6, 4, 6, 3, -1],
                    [8, 2, 3, 8, 4, 2, 4, 6, 2, -1, -1, -1, -1, -1, -1, -1],
                    [0, 4, 2, 4, 6, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 9, 0, 2, 3, 4, 2, 4, 6, 4, 3, 8, -1, -1, -1, -1],
                    [1, 9, 4, 1, 4, 2, 2, 4, 6, -1, -1, -1, -1, -1, -1, -1],
                    [8, 1, 3, 8, 6, 1, 8, 4, 6, 6, 10, 1, -1, -1, -1, -1],
                    [10, 1, 0, 10, 0, 6, 6, 0, 4, -1, -1, -1, -1, -1, -1, -1],
                    [4, 6, 3, 4, 3, 8, 6, 10, 3, 0, 3, 9, 10, 9, 3, -1],
                    [10, 9, 4, 6, 10, 4, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 9, 5, 7, 6, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, 4, 9, 5, 11, 7, 6, -1, -1, -1, -1, -1, -1, -1],
                    [5, 0, 1, 5, 4, 0, 7, 6, 11, -1, -1, -1, -1, -1, -1, -1],
                    [11, 7, 6, 8, 3, 4, 3, 5, 4, 3, 1, 5, -1, -1, -1, -1],
                    [9, 5, 4, 10, 1, 2, 7, 6, 11, -1, -1, -1, -1, -1, -1, -1],
                    [6, 11, 7, 1, 2, 10, 0, 8, 3, 4, 9, 5, -1, -1, -1, -1],
                    [7, 6, 11, 5, 4, 10, 4, 2, 10, 4, 0, 2, -1, -1, -1, -1],
                    [3, 4, 8, 3, 5, 4, 3, 2, 5, 10, 5, 2, 11, 7, 6, -1],
                    [7, 2, 3, 7, 6, 2, 5, 4, 9, -1, -1, -1, -1, -1, -1, -1],
                    [9, 5, 4, 0, 8, 6, 0, 6, 2, 6, 8, 7, -1, -1, -1, -1],
                    [3, 6, 2, 3, 7, 6, 1, 5, 0, 5, 4, 0, -1, -1, -1, -1],
                    [6, 2, 8, 6, 8, 7, 2, 1, 8, 4, 8, 5, 1, 5, 8, -1],
                    [9, 5, 4, 10, 1, 6, 1, 7, 6, 1, 3, 7, -1, -1, -1, -1],
                    [1, 6, 10, 1, 7, 6, 1, 0, 7, 8, 7, 0, 9, 5, 4, -1],
                    [4, 0, 10, 4, 10, 5, 0, 3, 10, 6, 10, 7, 3, 7, 10, -1],
                    [7, 6, 10, 7, 10, 8, 5, 4, 10, 4, 8, 10, -1, -1, -1, -1],
                    [6, 9, 5, 6, 11, 9, 11, 8, 9, -1, -1, -1, -1, -1, -1, -1],
                    [3, 6, 11, 0, 6, 3, 0, 5, 6, 0, 9, 5, -1, -1, -1, -1],
                    [0, 11, 8, 0, 5, 11, 0, 1, 5, 5, 6, 11, -1, -1, -1, -1],
                    [6, 11, 3, 6, 3, 5, 5, 3, 1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 10, 9, 5, 11, 9, 11, 8, 11, 5, 6, -1, -1, -1, -1],
                    [0, 11, 3, 0, 6, 11, 0, 9, 6, 5, 6, 9, 1, 2, 10, -1],
                    [11, 8, 5, 11, 5, 6, 8, 0, 5, 10, 5, 2, 0, 2, 5, -1],
                    [6, 11, 3, 6, 3, 5, 2, 10, 3, 10, 5, 3, -1, -1, -1, -1],
                    [5, 8, 9, 5, 2, 8, 5, 6, 2, 3, 8, 2, -1, -1, -1, -1],
                    [9, 5, 6, 9, 6, 0, 0, 6, 2, -1, -1, -1, -1, -1, -1, -1],
                    [1, 5, 8, 1, 8, 0, 5, 6, 8, 3, 8, 2, 6, 2, 8, -1],
                    [1, 5, 6, 2, 1, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 3, 6, 1, 6, 10, 3, 8, 6, 5, 6, 9, 8, 9, 6, -1],
                    [10, 1, 0, 10, 0, 6, 9, 5, 0, 5, 6, 0, -1, -1, -1, -1],
                    [0, 3, 8, 5, 6, 10, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [10, 5, 6, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [11, 5, 10, 7, 5, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [11, 5, 10, 11, 7, 5, 8, 3, 0, -1, -1, -1, -1, -1, -1, -1],
                    [5, 11, 7, 5, 10, 11, 1, 9, 0, -1, -1, -1, -1, -1, -1, -1],
                    [10, 7, 5, 10, 11, 7, 9, 8, 1, 8, 3, 1, -1, -1, -1, -1],
                    [11, 1, 2, 11, 7, 1, 7, 5, 1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, 1, 2, 7, 1, 7, 5, 7, 2, 11, -1, -1, -1, -1],
                    [9, 7, 5, 9, 2, 7, 9, 0, 2, 2, 11, 7, -1, -1, -1, -1],
                    [7, 5, 2, 7, 2, 11, 5, 9, 2, 3, 2, 8, 9, 8, 2, -1],
                    [2, 5, 10, 2, 3, 5, 3, 7, 5, -1, -1, -1, -1, -1, -1, -1],
                    [8, 2, 0, 8, 5, 2, 8, 7, 5, 10, 2, 5, -1, -1, -1, -1],
                    [9, 0, 1, 5, 10, 3, 5, 3, 7, 3, 10, 2, -1, -1, -1, -1],
                    [9, 8, 2, 9, 2, 1, 8, 7, 2, 10, 2, 5, 7, 5, 2, -1],
                    [1, 3, 5, 3, 7, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 7, 0, 7, 1, 1, 7, 5, -1, -1, -1, -1, -1, -1, -1],
                    [9, 0, 3, 9, 3, 5, 5, 3, 7, -1, -1, -1, -1, -1, -1, -1],
                    [9, 8, 7, 5, 9, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [5, 8, 4, 5, 10, 8, 10, 11, 8, -1, -1, -1, -1, -1, -1, -1],
                    [5, 0, 4, 5, 11, 0, 5, 10, 11, 11, 3, 0, -1, -1, -1, -1],
                    [0, 1, 9, 8, 4, 10, 8, 10, 11, 10, 4, 5, -1, -1, -1, -1],
                    [10, 11, 4, 10, 4, 5, 11, 3, 4, 9, 4, 1, 3, 1, 4, -1],
                    [2, 5, 1, 2, 8, 5, 2, 11, 8, 4, 5, 8, -1, -1, -1, -1],
                    [0, 4, 11, 0, 11, 3, 4, 5, 11, 2, 11, 1, 5, 1, 11, -1],
                    [0, 2, 5, 0, 5, 9, 2, 11, 5, 4, 5, 8, 11, 8, 5, -1],
                    [9, 4, 5, 2, 11, 3, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [2, 5, 10, 3, 5, 2, 3, 4, 5, 3, 8, 4, -1, -1, -1, -1],
                    [5, 10, 2, 5, 2, 4, 4, 2, 0, -1, -1, -1, -1, -1, -1, -1],
                    [3, 10, 2, 3, 5, 10, 3, 8, 5, 4, 5, 8, 0, 1, 9, -1],
                    [5, 10, 2, 5, 2, 4, 1, 9, 2, 9, 4, 2, -1, -1, -1, -1],
                    [8, 4, 5, 8, 5, 3, 3, 5, 1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 4, 5, 1, 0, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [8, 4, 5, 8, 5, 3, 9, 0, 5, 0, 3, 5, -1, -1, -1, -1],
                    [9, 4, 5, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 11, 7, 4, 9, 11, 9, 10, 11, -1, -1, -1, -1, -1, -1, -1],
                    [0, 8, 3, 4, 9, 7, 9, 11, 7, 9, 10, 11, -1, -1, -1, -1],
                    [1, 10, 11, 1, 11, 4, 1, 4, 0, 7, 4, 11, -1, -1, -1, -1],
                    [3, 1, 4, 3, 4, 8, 1, 10, 4, 7, 4, 11, 10, 11, 4, -1],
                    [4, 11, 7, 9, 11, 4, 9, 2, 11, 9, 1, 2, -1, -1, -1, -1],
                    [9, 7, 4, 9, 11, 7, 9, 1, 11, 2, 11, 1, 0, 8, 3, -1],
                    [11, 7, 4, 11, 4, 2, 2, 4, 0, -1, -1, -1, -1, -1, -1, -1],
                    [11, 7, 4, 11, 4, 2, 8, 3, 4, 3, 2, 4, -1, -1, -1, -1],
                    [2, 9, 10, 2, 7, 9, 2, 3, 7, 7, 4, 9, -1, -1, -1, -1],
                    [9, 10, 7, 9, 7, 4, 10, 2, 7, 8, 7, 0, 2, 0, 7, -1],
                    [3, 7, 10, 3, 10, 2, 7, 4, 10, 1, 10, 0, 4, 0, 10, -1],
                    [1, 10, 2, 8, 7, 4, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 9, 1, 4, 1, 7, 7, 1, 3, -1, -1, -1, -1, -1, -1, -1],
                    [4, 9, 1, 4, 1, 7, 0, 8, 1, 8, 7, 1, -1, -1, -1, -1],
                    [4, 0, 3, 7, 4, 3, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [4, 8, 7, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [9, 10, 8, 10, 11, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 0, 9, 3, 9, 11, 11, 9, 10, -1, -1, -1, -1, -1, -1, -1],
                    [0, 1, 10, 0, 10, 8, 8, 10, 11, -1, -1, -1, -1, -1, -1, -1],
                    [3, 1, 10, 11, 3, 10, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 2, 11, 1, 11, 9, 9, 11, 8, -1, -1, -1, -1, -1, -1, -1],
                    [3, 0, 9, 3, 9, 11, 1, 2, 9, 2, 11, 9, -1, -1, -1, -1],
                    [0, 2, 11, 8, 0, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [3, 2, 11, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [2, 3, 8, 2, 8, 10, 10, 8, 9, -1, -1, -1, -1, -1, -1, -1],
                    [9, 10, 2, 0, 9, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [2, 3, 8, 2, 8, 10, 0, 1, 8, 1, 10, 8, -1, -1, -1, -1],
                    [1, 10, 2, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [1, 3, 8, 9, 1, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 9, 1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [0, 3, 8, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1],
                    [-1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1, -1]
                ],
                dtype=np.int32
            )
        edge_table_data = \
            np.array(
                [
                    0x0, 0x109, 0x203, 0x30a, 0x406, 0x50f, 0x605, 0x70c,
                    0x80c, 0x905, 0xa0f, 0xb06, 0xc0a, 0xd03, 0xe09, 0xf00,
                    0x190, 0x99, 0x393, 0x29a, 0x596, 0x49f, 0x795, 0x69c,
                    0x99c, 0x895, 0xb9f, 0xa96, 0xd9a, 0xc93, 0xf99, 0xe90,
                    0x230, 0x339, 0x33, 0x13a, 0x636, 0x73f, 0x435, 0x53c,
                    0xa3c, 0xb35, 0x83f, 0x936, 0xe3a, 0xf33, 0xc39, 0xd30,
                    0x3a0, 0x2a9, 0x1a3, 0xaa, 0x7a6, 0x6af, 0x5a5, 0x4ac,
                    0xbac, 0xaa5, 0x9af, 0x8a6, 0xfaa, 0xea3, 0xda9, 0xca0,
                    0x460, 0x569, 0x663, 0x76a, 0x66, 0x16f, 0x265, 0x36c,
                    0xc6c, 0xd65, 0xe6f, 0xf66, 0x86a, 0x963, 0xa69, 0xb60,
                    0x5f0, 0x4f9, 0x7f3, 0x6fa, 0x1f6, 0xff, 0x3f5, 0x2fc,
                    0xdfc, 0xcf5, 0xfff, 0xef6, 0x9fa, 0x8f3, 0xbf9, 0xaf0,
                    0x650, 0x759, 0x453, 0x55a, 0x256, 0x35f, 0x55, 0x15c,
                    0xe5c, 0xf55, 0xc5f, 0xd56, 0xa5a, 0xb53, 0x859, 0x950,
                    0x7c0, 0x6c9, 0x5c3, 0x4ca, 0x3c6, 0x2cf, 0x1c5, 0xcc,
                    0xfcc, 0xec5, 0xdcf, 0xcc6, 0xbca, 0xac3, 0x9c9, 0x8c0,
                    0x8c0, 0x9c9, 0xac3, 0xbca, 0xcc6, 0xdcf, 0xec5, 0xfcc,
                    0xcc, 0x1c5, 0x2cf, 0x3c6, 0x4ca, 0x5c3, 0x6c9, 0x7c0,
                    0x950, 0x859, 0xb53, 0xa5a, 0xd56, 0xc5f, 0xf55, 0xe5c,
                    0x15c, 0x55, 0x35f, 0x256, 0x55a, 0x453, 0x759, 0x650,
                    0xaf0, 0xbf9, 0x8f3, 0x9fa, 0xef6, 0xfff, 0xcf5, 0xdfc,
                    0x2fc, 0x3f5, 0xff, 0x1f6, 0x6fa, 0x7f3, 0x4f9, 0x5f0,
                    0xb60, 0xa69, 0x963, 0x86a, 0xf66, 0xe6f, 0xd65, 0xc6c,
                    0x36c, 0x265, 0x16f, 0x66, 0x76a, 0x663, 0x569, 0x460,
                    0xca0, 0xda9, 0xea3, 0xfaa, 0x8a6, 0x9af, 0xaa5, 0xbac,
                    0x4ac, 0x5a5, 0x6af, 0x7a6, 0xaa, 0x1a3, 0x2a9, 0x3a0,
                    0xd30, 0xc39, 0xf33, 0xe3a, 0x936, 0x83f, 0xb35, 0xa3c,
                    0x53c, 0x435, 0x73f, 0x636, 0x13a, 0x33, 0x339, 0x230,
                    0xe90, 0xf99, 0xc93, 0xd9a, 0xa96, 0xb9f, 0x895, 0x99c,
                    0x69c, 0x795, 0x49f, 0x596, 0x29a, 0x393, 0x99, 0x190,
                    0xf00, 0xe09, 0xd03, 0xc0a, 0xb06, 0xa0f, 0x905, 0x80c,
                    0x70c, 0x605, 0x50f, 0x406, 0x30a, 0x203, 0x109, 0x0
                ],
                dtype=np.int32
            )
        triangle_count_data = np.count_nonzero(tri_table_data != -1, axis=1).astype(np.int32) // 3

        tri_table_data.setflags(write=False)
        edge_table_data.setflags(write=False)
        triangle_count_data.setflags(write=False)

    ## @param threshold the isovalue of the extracted surface
    #  @param grid_spacing cell length along x, y and z
    #  @param offset translation added to every output vertex
    #  @param subsampling number of sub samples per cell, kept for callers but not used by the extraction
    #  @param debug prints diagnostics for every extraction
    def __init__(self, threshold=0.0, grid_spacing=(1.0, 1.0, 1.0), offset=(0.0, 0.0, 0.0), subsampling=1,
                 debug=False):
        self.threshold = threshold
        self.grid_spacing = grid_spacing
        self.offset = offset
        self.subsampling = subsampling
        self.debug = debug

        # Kernels take writable copies, the backend may copy ndarray arguments back after a launch
        self._edge_table = np.array(MarchingCubes.Internal.edge_table_data)
        self._triangle_table = np.array(MarchingCubes.Internal.tri_table_data)
        self._triangle_count = np.array(MarchingCubes.Internal.triangle_count_data)

        self._mesh = None
        self._state = MarchingCubes.IDLE

    @property
    def threshold(self) -> float:
        return self._threshold

    @threshold.setter
    def threshold(self, value):
        self._threshold = float(value)

    @property
    def grid_spacing(self) -> np.ndarray:
        return self._grid_spacing.copy()

    @grid_spacing.setter
    def grid_spacing(self, value):
        spacing = as_vec3(value, "grid_spacing")
        mc_assert(bool(np.all(spacing > 0)), "grid_spacing needs positive components, got {}.".format(spacing))
        self._grid_spacing = spacing

    @property
    def offset(self) -> np.ndarray:
        return self._offset.copy()

    @offset.setter
    def offset(self, value):
        self._offset = as_vec3(value, "offset")

    @property
    def subsampling(self) -> int:
        return self._subsampling

    @subsampling.setter
    def subsampling(self, value):
        mc_assert(int(value) >= 1, "subsampling needs to be at least 1, got {}.".format(value))
        self._subsampling = int(value)

    @property
    def debug(self) -> bool:
        return self._debug

    @debug.setter
    def debug(self, value):
        self._debug = bool(value)

    @property
    def state(self) -> str:
        return self._state

    @property
    def mesh(self) -> SurfaceMesh:
        return self._mesh

    ## @detail True before the first extraction and after clear()
    def is_empty(self) -> bool:
        return self._mesh is None

    def clear(self):
        self._mesh = None
        self._state = MarchingCubes.IDLE

    # --------------------------------------Traversal Kernels--------------------------------------
    @ti.kernel
    def classify_cells(self, data: ti.types.ndarray(), cell_case: ti.types.ndarray(),
                       corner_addr: ti.types.ndarray(), triangle_count: ti.types.ndarray(),
                       origin: ti.i32, incr_x: ti.i32, incr_y: ti.i32, incr_z: ti.i32, threshold: ti.f32) -> ti.i32:
        num_triangles = 0
        for i, j, k in ti.ndrange(cell_case.shape[0], cell_case.shape[1], cell_case.shape[2]):
            addr = origin + i * incr_x + j * incr_y + k * incr_z
            case = cube_index(gather_corners(data, addr, corner_addr), threshold)
            cell_case[i, j, k] = case
            num_triangles += triangle_count[case]
        return num_triangles

    @ti.kernel
    def triangulate_cells(self, data: ti.types.ndarray(), cell_case: ti.types.ndarray(),
                          corner_addr: ti.types.ndarray(), key_offset: ti.types.ndarray(),
                          edge_table: ti.types.ndarray(), triangle_table: ti.types.ndarray(),
                          welded: ti.types.ndarray(), welded_pos: ti.types.ndarray(),
                          triangle_keys: ti.types.ndarray(),
                          origin: ti.i32, incr_x: ti.i32, incr_y: ti.i32, incr_z: ti.i32,
                          hx: ti.f32, hy: ti.f32, hz: ti.f32, threshold: ti.f32) -> ti.i32:
        num_triangles = 0
        for i, j, k in ti.ndrange(cell_case.shape[0], cell_case.shape[1], cell_case.shape[2]):
            case = cell_case[i, j, k]
            edges = edge_table[case]
            if edges != 0:
                addr = origin + i * incr_x + j * incr_y + k * incr_z
                values = gather_corners(data, addr, corner_addr)

                at_end = 0
                if i == cell_case.shape[0] - 1:
                    at_end |= 1
                if j == cell_case.shape[1] - 1:
                    at_end |= 2
                if k == cell_case.shape[2] - 1:
                    at_end |= 4

                h = ti.Vector([hx, hy, hz])
                cube_pos = ti.Vector([i * hx, j * hy, k * hz])

                # Step 1: Weld one vertex per active edge owned by this cube
                for w in ti.static(range(12)):
                    owned = 1
                    if ti.static(EDGE_END_MASK[w] != 0):
                        owned = at_end & ti.static(EDGE_END_MASK[w])
                    if (edges & ti.static(1 << w)) != 0 and owned != 0:
                        key = 3 * addr + key_offset[w]
                        if ti.atomic_or(welded[key], 1) == 0:
                            p1 = cube_pos + ti.Vector(ti.static(EDGE_P1[w])) * h
                            p2 = cube_pos + ti.Vector(ti.static(EDGE_P2[w])) * h
                            vertex = vertex_interpolate(threshold, p1, p2,
                                                        values[ti.static(EDGE_CORNERS[w][0])],
                                                        values[ti.static(EDGE_CORNERS[w][1])])
                            for d in ti.static(range(3)):
                                welded_pos[key, d] = vertex[d]

                # Step 2: Emit the triangles of this case, keyed by edge
                for t in ti.static(range(5)):
                    if triangle_table[case, ti.static(3 * t)] != -1:
                        index = ti.atomic_add(num_triangles, 1)
                        for v in ti.static(range(3)):
                            edge = triangle_table[case, ti.static(3 * t + v)]
                            triangle_keys[index, v] = 3 * addr + key_offset[edge]
        return num_triangles

    @ti.kernel
    def process_normals(self, vertices: ti.types.ndarray(), triangles: ti.types.ndarray(),
                        normals: ti.types.ndarray()):
        for t in range(triangles.shape[0]):
            ind0 = triangles[t, 0]
            ind1 = triangles[t, 1]
            ind2 = triangles[t, 2]

            vert0 = ti.Vector([vertices[ind0, 0], vertices[ind0, 1], vertices[ind0, 2]])
            vert1 = ti.Vector([vertices[ind1, 0], vertices[ind1, 1], vertices[ind1, 2]])
            vert2 = ti.Vector([vertices[ind2, 0], vertices[ind2, 1], vertices[ind2, 2]])
            face_normal = compute_face_normal(vert0, vert1, vert2)
            for d in ti.static(range(3)):
                normals[ind0, d] += face_normal[d]
                normals[ind1, d] += face_normal[d]
                normals[ind2, d] += face_normal[d]

        for i in range(normals.shape[0]):
            normal = safe_normalize(ti.Vector([normals[i, 0], normals[i, 1], normals[i, 2]]))
            for d in ti.static(range(3)):
                normals[i, d] = normal[d]

    # --------------------------------------Extraction--------------------------------------
    ## @param grid_topo extent and addressing of the voxel field, needs 3 axes of at least 2 samples
    #  @param mem_topo tuple layout of the buffer, None for one scalar per grid entity
    #  @param data linear sample buffer, bytes or floats
    #  @detail Replaces the current mesh and returns the new one
    def exec(self, grid_topo: GridTopo, mem_topo: MemTopo, data) -> SurfaceMesh:
        if not self.is_empty():
            self.clear()

        mc_assert(grid_topo.nr_dims == 3, "Marching cubes needs a 3D grid, got {} axes.".format(grid_topo.nr_dims))
        mc_assert(min(grid_topo.extent) >= 2,
                  "Every axis needs at least 2 samples to form a cube, got extent {}.".format(grid_topo.extent))
        if mem_topo is None:
            mem_topo = MemTopo(grid_topo.nr_entities)

        field = sample_buffer(data)
        crop_topo = grid_topo.trim_end(1)
        op = AddrOp(crop_topo, mem_topo)
        incr = [op.incr(GridTopo.X), op.incr(GridTopo.Y), op.incr(GridTopo.Z)]
        origin = op.addr((0, 0, 0))

        # Addresses are linear in the position, so the 8 grid corners bound all of them
        full_op = AddrOp(grid_topo, mem_topo)
        hi = [e - 1 for e in grid_topo.extent]
        extreme_addrs = [full_op.addr([p * h for p, h in zip(pos, hi)]) for pos in GridTopo((2, 2, 2)).positions()]
        mc_assert(min(extreme_addrs) >= 0 and max(extreme_addrs) < field.shape[0],
                  "Addresses [{}, {}] exceed the data buffer of {} samples.".format(
                      min(extreme_addrs), max(extreme_addrs), field.shape[0]))
        mc_assert(3 * field.shape[0] < 2 ** 31, "Data buffer of {} samples exceeds the edge key range.".format(field.shape[0]))

        start = time.perf_counter()
        self._state = MarchingCubes.TRAVERSING
        if self.debug:
            mc_log("Extracting isosurface {} from {} with cube extent {}.".format(self.threshold, grid_topo, crop_topo.extent))

        try:
            corner_addr = corner_addr_offsets(incr)
            cell_case = np.zeros(crop_topo.extent, dtype=np.int32)
            num_triangles = self.classify_cells(field, cell_case, corner_addr, self._triangle_count,
                                                origin, incr[0], incr[1], incr[2], self.threshold)

            welded = np.zeros(3 * field.shape[0], dtype=np.int32)
            welded_pos = np.zeros((3 * field.shape[0], 3), dtype=np.float32)
            triangle_keys = np.zeros((num_triangles, 3), dtype=np.int32)
            if num_triangles > 0:
                h = self._grid_spacing
                emitted = self.triangulate_cells(field, cell_case, corner_addr, edge_key_offsets(incr),
                                                 self._edge_table, self._triangle_table,
                                                 welded, welded_pos, triangle_keys,
                                                 origin, incr[0], incr[1], incr[2],
                                                 float(h[0]), float(h[1]), float(h[2]), self.threshold)
                mc_assert(emitted == num_triangles,
                          "Emitted {} triangles, expected {}.".format(emitted, num_triangles), internal=True)

            self._state = MarchingCubes.FINALIZING
            self._mesh = self.transcribe_vertices_and_triangles(welded, welded_pos, triangle_keys)
        except Exception:
            self.clear()
            raise
        self._state = MarchingCubes.READY

        if self.debug:
            mc_log("Generated {} vertices and {} triangles from {} cubes in {:.3f}s.".format(
                self._mesh.num_vertices, self._mesh.num_triangles, cell_case.size, time.perf_counter() - start))
        return self._mesh

    ## @param volume 3D array indexed as volume[x, y, z], uint8 volumes are read as signed bytes
    def exec_volume(self, volume) -> SurfaceMesh:
        vol = np.ascontiguousarray(volume)
        mc_assert(vol.ndim == 3, "Volume needs to be 3D, got {}D.".format(vol.ndim))
        return self.exec(GridTopo.from_array(vol), None, vol.reshape(-1))

    ## @detail Renumbers welded vertices by ascending edge key, rewrites the triangles and computes normals
    def transcribe_vertices_and_triangles(self, welded, welded_pos, triangle_keys) -> SurfaceMesh:
        keys = np.flatnonzero(welded)
        vertices = welded_pos[keys] + self._offset

        triangles = np.searchsorted(keys, triangle_keys)
        found = triangles < keys.shape[0]
        found[found] = keys[triangles[found]] == triangle_keys[found]
        mc_assert(bool(np.all(found)), "Triangle references an edge without a welded vertex.", internal=True)
        triangles = triangles.astype(np.int32)

        normals = np.zeros_like(vertices)
        if triangles.shape[0] > 0:
            vertices = np.ascontiguousarray(vertices, dtype=np.float32)
            triangles = np.ascontiguousarray(triangles)
            self.process_normals(vertices, triangles, normals)

        return SurfaceMesh(vertices, triangles, normals)

    # --------------------------------------Export--------------------------------------
    def _require_mesh(self) -> SurfaceMesh:
        if self.is_empty():
            raise EmptySurfaceError(">>>> [MC]: No isosurface present, call exec() first.")
        return self._mesh

    def write_surface_obj(self, file_name):
        write_surface_obj(self._require_mesh(), file_name)

    def write_surface_vtk(self, file_name, data_set_name="isosurface"):
        write_surface_vtk(self._require_mesh(), file_name, data_set_name)

    def write_surface_ply(self, file_name, ascii=False):
        write_surface_ply(self._require_mesh(), file_name, ascii)
