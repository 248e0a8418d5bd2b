import taichi as ti


## @param isovalue the surface value
#  @param p1, p2 the edge endpoints
#  @param val1, val2 the samples at p1 and p2
#  @detail Returns p1 + mu * (p2 - p1) with mu = (isovalue - val1) / (val2 - val1).
#          An edge with val1 == val2 yields its midpoint.
@ti.func
def vertex_interpolate(isovalue, p1, p2, val1, val2):
    mu = 0.5
    delta = val2 - val1
    if delta != 0.0:
        mu = (isovalue - val1) / delta
    return p1 + mu * (p2 - p1)


## @detail Unnormalized face normal, its length is twice the triangle area
@ti.func
def compute_face_normal(vert0, vert1, vert2):
    p = vert2 - vert0
    q = vert1 - vert0
    return p.cross(q)


## @detail Zero vectors stay zero instead of turning into NaN
@ti.func
def safe_normalize(v):
    res = v
    length = v.norm()
    if length > 0.0:
        res = v / length
    return res
