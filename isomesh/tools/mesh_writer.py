## @package MeshWriter writes extracted surfaces to mesh files
#
# Writers are stateless, write errors propagate to the caller as OSError.
import numpy as np
import taichi as ti
from isomesh.mesh import SurfaceMesh


## @param mesh the surface to write
#  @param file_name destination path
#  @detail Writes "v", "vn" and "f i//i j//j k//k" lines, indices are 1-based and
#          shared between position and normal since both arrays are parallel
def write_surface_obj(mesh: SurfaceMesh, file_name):
    with open(file_name, "w", encoding="utf-8") as f:
        np.savetxt(f, mesh.vertices, fmt="v %f %f %f")
        np.savetxt(f, mesh.normals, fmt="vn %f %f %f")
        np.savetxt(f, np.repeat(mesh.faces + 1, 2, axis=1), fmt="f %d//%d %d//%d %d//%d")


## @param mesh the surface to write
#  @param file_name destination path
#  @param data_set_name title line of the legacy VTK header
def write_surface_vtk(mesh: SurfaceMesh, file_name, data_set_name="isosurface"):
    with open(file_name, "w", encoding="utf-8") as f:
        f.write("# vtk DataFile Version 1.0\n")
        f.write(data_set_name + "\n")
        f.write("ASCII\n\n")
        f.write("DATASET POLYDATA\n")

        f.write("POINTS {} float\n".format(mesh.num_vertices))
        np.savetxt(f, mesh.vertices, fmt="%f %f %f")

        f.write("POLYGONS {} {}\n".format(mesh.num_triangles, mesh.num_triangles * 4))
        np.savetxt(f, mesh.faces, fmt="3 %d %d %d")


## @param mesh the surface to write
#  @param file_name destination path
#  @param ascii writes the text variant of PLY instead of binary
def write_surface_ply(mesh: SurfaceMesh, file_name, ascii=False):
    writer = ti.tools.PLYWriter(num_vertices=int(mesh.num_vertices), num_faces=int(mesh.num_triangles),
                                face_type="tri")
    writer.add_vertex_pos(mesh.vertices[:, 0], mesh.vertices[:, 1], mesh.vertices[:, 2])
    writer.add_vertex_normal(mesh.normals[:, 0], mesh.normals[:, 1], mesh.normals[:, 2])
    writer.add_faces(np.array(mesh.triangles))
    if ascii:
        writer.export_ascii(str(file_name))
    else:
        writer.export(str(file_name))
