import os.path
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from isomesh.tools.volume_to_mesh import *
import taichi as ti
import numpy as np

ti.init(arch=ti.cpu, offline_cache=True, debug=False)

resolution = 64
sphere_radius = 0.35
voxel_dim = 1.0 / (resolution - 1)
show_mesh = False
export_mesh = True


@ti.kernel
def fill_density(volume: ti.types.ndarray(), radius: ti.f32, h: ti.f32):
    center = ti.Vector([0.5, 0.5, 0.5])
    for i, j, k in ti.ndrange(volume.shape[0], volume.shape[1], volume.shape[2]):
        pos = ti.Vector([i, j, k]) * h
        # Positive inside, the extracted normals point outward
        volume[i, j, k] = radius - (pos - center).norm()


if __name__ == "__main__":
    volume = np.zeros((resolution, resolution, resolution), dtype=np.float32)
    fill_density(volume, sphere_radius, voxel_dim)

    mc = MarchingCubes(threshold=0.0, grid_spacing=(voxel_dim, voxel_dim, voxel_dim), debug=True)
    mesh = mc.exec_volume(volume)
    print(f"{mesh.num_vertices} vertices, {mesh.num_triangles} triangles in total.")

    if export_mesh:
        mc.write_surface_ply("sphere.ply")
        mc.write_surface_obj("sphere.obj")
        mc.write_surface_vtk("sphere.vtk", "sphere")

    if show_mesh and mesh.num_triangles > 0:
        vertices = ti.Vector.field(3, dtype=ti.f32, shape=mesh.num_vertices)
        normals = ti.Vector.field(3, dtype=ti.f32, shape=mesh.num_vertices)
        indices = ti.field(dtype=ti.i32, shape=mesh.triangles.shape[0])
        vertices.from_numpy(mesh.vertices)
        normals.from_numpy(mesh.normals)
        indices.from_numpy(mesh.triangles)

        window = ti.ui.Window("Isosurface Viewer", (1600, 900))
        canvas = window.get_canvas()
        scene = ti.ui.Scene()
        camera = ti.ui.Camera()
        camera.position(0.5, 0.5, -1.0)
        camera.lookat(0.5, 0.5, 0.5)

        while window.running:
            camera.track_user_inputs(window, movement_speed=0.01, hold_key=ti.ui.LMB)
            scene.set_camera(camera)
            scene.ambient_light((0.8, 0.8, 0.8))
            scene.point_light(pos=(1.5, 1.5, 1.5), color=(1, 1, 1))
            scene.point_light(pos=(3.5, 3, 3.5), color=(0.2, 0.2, 0.2))
            scene.point_light(pos=(0.5, 3, 0.5), color=(0.2, 0.2, 0.2))
            scene.mesh(vertices=vertices, indices=indices, normals=normals, color=(0.203, 0.596, 0.859))
            canvas.scene(scene)
            window.show()
