import contextlib
import io
import os.path
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
import unittest
import numpy as np
import taichi as ti
from isomesh.grid_topo import *
from isomesh.mc_math import *
from isomesh.tools.volume_to_mesh import *

ti.init(arch=ti.cpu, offline_cache=False, debug=False)


## @param values the 8 corner samples in corner order
#  @detail Returns the buffer of a single cube with x running fastest
def single_cube(values):
    data = np.zeros(8, dtype=np.float32)
    for c, (ox, oy, oz) in enumerate(CORNER_OFFSET):
        data[ox + 2 * oy + 4 * oz] = values[c]
    return data


def sphere_volume(n, radius):
    axis = np.arange(n, dtype=np.float32)
    x, y, z = np.meshgrid(axis, axis, axis, indexing="ij")
    center = (n - 1) / 2.0
    # Positive inside the sphere
    return radius - np.sqrt((x - center) ** 2 + (y - center) ** 2 + (z - center) ** 2), center


## @detail Triangles as sorted index triples, each rotated so that its smallest index comes first
def canonical_faces(faces):
    rows = []
    for tri in faces.tolist():
        start = tri.index(min(tri))
        rows.append(tuple(tri[start:] + tri[:start]))
    return sorted(rows)


@ti.kernel
def interpolate_on_x(v1: ti.f32, v2: ti.f32, isovalue: ti.f32, out: ti.types.ndarray()):
    p = vertex_interpolate(isovalue, ti.Vector([0.0, 0.0, 0.0]), ti.Vector([2.0, 0.0, 0.0]), v1, v2)
    out[0] = p[0]


class EdgeKeyTest(unittest.TestCase):
    incr = (1, 3, 9)

    def test_neighbour_cubes_share_keys(self):
        # (0, 0, 0) edge 2 is (1, 0, 0) edge 0
        self.assertEqual(edge_key(0, self.incr, 2), edge_key(1, self.incr, 0))
        # (0, 0, 0) edge 10 is (1, 1, 0) edge 8
        self.assertEqual(edge_key(0, self.incr, 10), edge_key(4, self.incr, 8))
        # (0, 0, 0) edge 5 is (0, 1, 1) edge 3
        self.assertEqual(edge_key(0, self.incr, 5), edge_key(12, self.incr, 3))
        # (0, 0, 0) edge 6 is (1, 0, 1) edge 0
        self.assertEqual(edge_key(0, self.incr, 6), edge_key(10, self.incr, 0))

    def test_keys_of_one_cube_are_distinct(self):
        keys = [edge_key(13, self.incr, e) for e in range(12)]
        self.assertEqual(len(set(keys)), 12)

    def test_key_layout(self):
        self.assertEqual(edge_key(5, self.incr, 3), 15)
        self.assertEqual(edge_key(5, self.incr, 0), 16)
        self.assertEqual(edge_key(5, self.incr, 8), 17)
        self.assertEqual(edge_key(5, self.incr, 7), 3 * (5 + 9))
        np.testing.assert_array_equal(edge_key_offsets(self.incr), [edge_key(0, self.incr, e) for e in range(12)])

    def test_invalid_edge(self):
        with self.assertRaises(InvalidInputError):
            edge_key(0, self.incr, 12)


class VertexInterpolateTest(unittest.TestCase):
    def test_linear_crossing(self):
        out = np.zeros(1, dtype=np.float32)
        interpolate_on_x(-1.0, 3.0, 0.0, out)
        self.assertAlmostEqual(float(out[0]), 0.5, places=6)

    def test_equal_samples_give_midpoint(self):
        out = np.zeros(1, dtype=np.float32)
        interpolate_on_x(1.0, 1.0, 0.0, out)
        self.assertAlmostEqual(float(out[0]), 1.0, places=6)


class MarchingCubesTest(unittest.TestCase):
    def setUp(self):
        self.mc = MarchingCubes(threshold=0.0)
        self.grid = GridTopo((2, 2, 2))

    def test_single_corner_below(self):
        mesh = self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))

        self.assertFalse(self.mc.is_empty())
        self.assertEqual(self.mc.state, MarchingCubes.READY)
        self.assertEqual(mesh.num_vertices, 3)
        self.assertEqual(mesh.num_triangles, 1)
        # Vertices follow ascending edge keys: edge 3, edge 0, edge 8
        np.testing.assert_allclose(mesh.vertices, [[0.5, 0, 0], [0, 0.5, 0], [0, 0, 0.5]], atol=1e-6)
        # Triangle (0, 8, 3) of case 1
        np.testing.assert_array_equal(mesh.faces, [[1, 2, 0]])
        expected = -np.ones((3, 3)) / np.sqrt(3.0)
        np.testing.assert_allclose(mesh.normals, expected, atol=1e-6)

    def test_uniform_cubes_have_no_surface(self):
        for value in (-1.0, 1.0, 0.0):
            mesh = self.mc.exec(self.grid, None, single_cube([value] * 8))
            self.assertEqual(mesh.num_triangles, 0)
            self.assertEqual(mesh.num_vertices, 0)
            self.assertFalse(self.mc.is_empty())

    def test_threshold_value_counts_as_above(self):
        mesh = self.mc.exec(self.grid, None, single_cube([0, 1, 1, 1, 1, 1, 1, 1]))
        self.assertEqual(mesh.num_triangles, 0)

    def test_interpolated_position(self):
        mesh = self.mc.exec(self.grid, None, single_cube([-3, 1, 1, 1, 1, 1, 1, 1]))
        np.testing.assert_allclose(mesh.vertices, [[0.75, 0, 0], [0, 0.75, 0], [0, 0, 0.75]], atol=1e-6)

    def test_spacing_and_offset(self):
        self.mc.grid_spacing = (2.0, 3.0, 4.0)
        self.mc.offset = (10.0, 20.0, 30.0)
        mesh = self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))
        np.testing.assert_allclose(mesh.vertices, [[11, 20, 30], [10, 21.5, 30], [10, 20, 32]], atol=1e-5)

    def test_every_case_of_one_cube(self):
        for case in range(256):
            values = [-1 if case & (1 << c) else 1 for c in range(8)]
            mesh = self.mc.exec(self.grid, None, single_cube(values))
            self.assertEqual(mesh.num_triangles, int(MarchingCubes.Internal.triangle_count_data[case]))
            self.assertEqual(mesh.num_vertices, bin(int(MarchingCubes.Internal.edge_table_data[case])).count("1"))

    def test_welding_across_cubes(self):
        grid = GridTopo((3, 2, 2))
        data = np.zeros(grid.nr_entities, dtype=np.float32)
        for pos in grid.positions():
            data[grid.addr(pos)] = pos[GridTopo.Y] - 0.5
        mesh = self.mc.exec(grid, None, data)

        cube0 = self.mc.exec(self.grid, None, single_cube([-0.5, 0.5, 0.5, -0.5, -0.5, 0.5, 0.5, -0.5]))
        independent = 2 * cube0.num_vertices

        self.assertEqual(mesh.num_triangles, 4)
        self.assertEqual(mesh.num_vertices, 6)
        self.assertLess(mesh.num_vertices, independent)
        np.testing.assert_allclose(mesh.vertices[:, 1], 0.5, atol=1e-6)

    def test_interleaved_buffer(self):
        data = np.full(16, 7.0, dtype=np.float32)
        data[0::2] = single_cube([-1, 1, 1, 1, 1, 1, 1, 1])
        mesh = self.mc.exec(self.grid, MemTopo(8, 2, interleaved=True), data)
        self.assertEqual(mesh.num_vertices, 3)
        self.assertEqual(mesh.num_triangles, 1)

    def test_bytes_buffer(self):
        self.mc.threshold = 0.5
        mesh = self.mc.exec(self.grid, None, bytes([0, 1, 1, 1, 1, 1, 1, 1]))
        self.assertEqual(mesh.num_vertices, 3)
        self.assertEqual(mesh.num_triangles, 1)
        np.testing.assert_allclose(mesh.vertices, [[0.5, 0, 0], [0, 0.5, 0], [0, 0, 0.5]], atol=1e-6)

    def test_bytes_are_signed(self):
        # 255 is the byte -1, below the threshold 0
        for data in (bytes([255, 0, 0, 0, 0, 0, 0, 0]), bytearray([255, 0, 0, 0, 0, 0, 0, 0]),
                     np.array([255, 0, 0, 0, 0, 0, 0, 0], dtype=np.uint8)):
            mesh = self.mc.exec(self.grid, None, data)
            self.assertEqual(mesh.num_vertices, 3)
            self.assertEqual(mesh.num_triangles, 1)
            np.testing.assert_allclose(mesh.vertices, [[1, 0, 0], [0, 1, 0], [0, 0, 1]], atol=1e-6)

    def test_uint8_marker_volume(self):
        volume = np.zeros((6, 6, 6), dtype=np.uint8)
        volume[2:4, 2:4, 2:4] = 255
        mesh = self.mc.exec_volume(volume)

        # One vertex per marked voxel face, a closed genus 0 surface has 2 * (V - 2) triangles
        self.assertEqual(mesh.num_vertices, 24)
        self.assertEqual(mesh.num_triangles, 44)
        flat = self.mc.exec(GridTopo.from_array(volume), None, volume.reshape(-1))
        self.assertEqual(flat.num_triangles, 44)

    def test_non_numeric_samples(self):
        with self.assertRaises(InvalidInputError):
            self.mc.exec(self.grid, None, np.array(["a"] * 8))
        self.assertEqual(self.mc.state, MarchingCubes.IDLE)

    def test_failed_extraction_resets_state(self):
        def broken_transcribe(welded, welded_pos, triangle_keys):
            raise AssertionError("transcribe failed")

        self.mc.transcribe_vertices_and_triangles = broken_transcribe
        with self.assertRaises(AssertionError):
            self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))
        self.assertEqual(self.mc.state, MarchingCubes.IDLE)
        self.assertTrue(self.mc.is_empty())

        del self.mc.transcribe_vertices_and_triangles
        mesh = self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))
        self.assertEqual(mesh.num_triangles, 1)
        self.assertEqual(self.mc.state, MarchingCubes.READY)

    def test_rerun_is_idempotent(self):
        volume, _ = sphere_volume(12, 4.2)
        first = self.mc.exec_volume(volume)
        self.mc.clear()
        second = self.mc.exec_volume(volume)

        self.assertEqual(first.num_vertices, second.num_vertices)
        self.assertEqual(first.num_triangles, second.num_triangles)
        np.testing.assert_allclose(first.vertices, second.vertices, atol=1e-5)
        self.assertEqual(canonical_faces(first.faces), canonical_faces(second.faces))

    def test_sphere_normals_point_outward(self):
        volume, center = sphere_volume(16, 5.3)
        mesh = self.mc.exec_volume(volume)

        self.assertGreater(mesh.num_triangles, 0)
        radial = mesh.vertices - center
        radial /= np.linalg.norm(radial, axis=1, keepdims=True)
        dots = np.sum(radial * mesh.normals, axis=1)
        self.assertTrue(np.all(dots >= -1e-3))
        np.testing.assert_allclose(np.linalg.norm(mesh.normals, axis=1), 1.0, atol=1e-5)

    def test_sphere_is_closed(self):
        volume, _ = sphere_volume(14, 4.7)
        mesh = self.mc.exec_volume(volume)

        # Every edge of a closed welded surface is shared by exactly two triangles
        edges = {}
        for a, b, c in mesh.faces.tolist():
            for e in ((a, b), (b, c), (c, a)):
                key = (min(e), max(e))
                edges[key] = edges.get(key, 0) + 1
        self.assertTrue(all(count == 2 for count in edges.values()))

    def test_clear(self):
        self.assertTrue(self.mc.is_empty())
        self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))
        self.mc.clear()
        self.assertTrue(self.mc.is_empty())
        self.assertIsNone(self.mc.mesh)
        self.assertEqual(self.mc.state, MarchingCubes.IDLE)
        with self.assertRaises(EmptySurfaceError):
            self.mc.write_surface_obj("unused.obj")

    def test_exec_replaces_mesh(self):
        first = self.mc.exec(self.grid, None, single_cube([-1, 1, 1, 1, 1, 1, 1, 1]))
        second = self.mc.exec(self.grid, None, single_cube([-1, -1, 1, 1, 1, 1, 1, 1]))
        self.assertIs(self.mc.mesh, second)
        self.assertEqual(first.num_triangles, 1)
        self.assertEqual(second.num_triangles, 2)

    def test_invalid_input(self):
        with self.assertRaises(InvalidInputError):
            self.mc.exec(GridTopo((1, 2, 2)), None, np.zeros(4))
        with self.assertRaises(InvalidInputError):
            self.mc.exec(GridTopo((2, 2)), None, np.zeros(4))
        with self.assertRaises(InvalidInputError):
            self.mc.exec(self.grid, None, np.zeros(7))
        with self.assertRaises(InvalidInputError):
            self.mc.exec_volume(np.zeros((4, 4)))

    def test_settings(self):
        mc = MarchingCubes(0.5, (1.0, 2.0, 3.0), subsampling=3, debug=True)
        self.assertEqual(mc.threshold, 0.5)
        self.assertEqual(mc.subsampling, 3)
        self.assertTrue(mc.debug)

        spacing = mc.grid_spacing
        spacing[0] = 100.0
        np.testing.assert_allclose(mc.grid_spacing, [1.0, 2.0, 3.0])

        with self.assertRaises(InvalidInputError):
            mc.grid_spacing = (1.0, 0.0, 1.0)
        with self.assertRaises(InvalidInputError):
            mc.offset = (1.0, 2.0)
        with self.assertRaises(InvalidInputError):
            mc.subsampling = 0

    def test_debug_and_subsampling_do_not_change_the_mesh(self):
        volume, _ = sphere_volume(10, 3.1)
        plain = self.mc.exec_volume(volume)

        mc = MarchingCubes(threshold=0.0, subsampling=4, debug=True)
        log = io.StringIO()
        with contextlib.redirect_stdout(log):
            verbose = mc.exec_volume(volume)

        self.assertIn(">> [MC]: ", log.getvalue())
        self.assertEqual(plain.num_vertices, verbose.num_vertices)
        self.assertEqual(canonical_faces(plain.faces), canonical_faces(verbose.faces))


if __name__ == "__main__":
    unittest.main()
