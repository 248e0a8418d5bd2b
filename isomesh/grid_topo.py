## @package GridTopo
# Describes how the samples of a voxel field are laid out in a linear buffer
import numpy as np
from isomesh.utils import *


## Extent and strides of an N-dimensional integer grid
class GridTopo:
    X = 0
    Y = 1
    Z = 2

    ## @param extent number of samples along each axis
    #  @param strides linear address increment along each axis, defaults to X running fastest
    #  @param origin linear address of the grid position (0, ..., 0)
    def __init__(self, extent, strides=None, origin=0):
        self.extent = tuple(int(e) for e in extent)
        mc_assert(len(self.extent) > 0, "GridTopo needs at least one axis.")
        mc_assert(all(e >= 0 for e in self.extent), "GridTopo extent {} has negative axes.".format(self.extent))

        if strides is None:
            strides = []
            step = 1
            for e in self.extent:
                strides.append(step)
                step *= e
        self.strides = tuple(int(s) for s in strides)
        mc_assert(len(self.strides) == len(self.extent),
                  "GridTopo got {} strides for {} axes.".format(len(self.strides), len(self.extent)))
        self.origin = int(origin)

    ## @detail Addressing of a C-ordered volume indexed as volume[x, y, z]
    @staticmethod
    def from_array(volume: np.ndarray):
        return GridTopo(volume.shape, [s // volume.itemsize for s in volume.strides])

    @property
    def nr_dims(self) -> int:
        return len(self.extent)

    @property
    def nr_entities(self) -> int:
        return int(np.prod(self.extent))

    def addr(self, pos) -> int:
        return self.origin + sum(int(p) * s for p, s in zip(pos, self.strides))

    ## @param n number of cells removed at the high end of every axis
    #  @detail The trimmed grid keeps the strides and origin, so its addresses stay valid in the parent buffer
    def trim_end(self, n: int):
        return GridTopo([max(e - n, 0) for e in self.extent], self.strides, self.origin)

    ## @detail Yields every grid position as a tuple, x running fastest
    def positions(self):
        for rev_pos in np.ndindex(*reversed(self.extent)):
            yield tuple(reversed(rev_pos))

    def __repr__(self):
        return "GridTopo(extent={}, strides={}, origin={})".format(self.extent, self.strides, self.origin)


## Layout of the tuples (one per grid entity) stored in a buffer
class MemTopo:
    ## @param nr_entities number of grid entities
    #  @param nr_elements number of scalars per entity
    #  @param interleaved True stores the elements of one entity next to each other,
    #         False stores one plane per element
    def __init__(self, nr_entities: int, nr_elements: int = 1, interleaved: bool = False):
        mc_assert(nr_elements > 0, "MemTopo needs at least one element per entity.")
        self.nr_entities = int(nr_entities)
        self.nr_elements = int(nr_elements)
        self.interleaved = interleaved

    def tuple_incr(self) -> int:
        return self.nr_elements if self.interleaved else 1

    def element_incr(self, element: int) -> int:
        mc_assert(0 <= element < self.nr_elements,
                  "Element {} out of range [0, {}).".format(element, self.nr_elements))
        return element if self.interleaved else element * self.nr_entities


## Combines grid and memory layout into buffer addresses
class AddrOp:
    def __init__(self, grid_topo: GridTopo, mem_topo: MemTopo):
        self.grid_topo = grid_topo
        self.mem_topo = mem_topo

    def addr(self, pos, element: int = 0) -> int:
        return self.grid_topo.addr(pos) * self.mem_topo.tuple_incr() + self.mem_topo.element_incr(element)

    def incr(self, axis: int) -> int:
        return self.grid_topo.strides[axis] * self.mem_topo.tuple_incr()
