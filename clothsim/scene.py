"""
scene.py
------------------------------------------------------------
* RenderSink: what the simulation pushes to a renderer each tick
* MeshSpec: one-off description of a mesh, sent on attach
* Default collision scene (floor, sphere, ramp)
------------------------------------------------------------
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Protocol

import numpy as np

from .config import DEFAULT_FLOOR
from .geometry import Plane, Sphere, Triangle

# Constants
FLOOR_HALF_WIDTH = 75.0
EMITTER_POSITION = np.array([0.0, 0.0, 20.0])
SPHERE_CENTER = np.array([0.0, -15.0, 20.0])
SPHERE_RADIUS = 5.0
RAMP_VERTICES = (
    np.array([-15.0, -20.0, 10.0]),
    np.array([  0.0, -22.0, 35.0]),
    np.array([ 15.0, -20.0, 10.0]),
)


@dataclass
class MeshSpec:
    """Describes a mesh once; later ticks only send positions."""
    mesh_id: Hashable
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)


class RenderSink(Protocol):
    def add_to_scene(self, mesh: MeshSpec) -> None: ...

    def update_vertex(self, index: int, position: np.ndarray) -> None: ...

    def set_mesh_position(self, mesh_id: Hashable, position: np.ndarray) -> None: ...

    def set_mesh_visible(self, mesh_id: Hashable, visible: bool) -> None: ...

    def set_mesh_scale(self, mesh_id: Hashable, scale: float) -> None: ...


def particle_mesh_id(index):
    return ('particle', index)


def geometry_mesh_id(index):
    return ('geometry', index)


def describe_geometry(index, geometry):
    """
    MeshSpec for a collision geometry (value copies only).

    Spheres carry their base radius; the size multiplier arrives through
    ``set_mesh_scale`` on every render.
    """
    if isinstance(geometry, Plane):
        return MeshSpec(geometry_mesh_id(index), 'plane', {
            'origin': geometry.origin.copy(),
            'normal': geometry.normal.copy(),
            'half_width': geometry.half_width,
        })
    if isinstance(geometry, Sphere):
        return MeshSpec(geometry_mesh_id(index), 'sphere', {
            'center': geometry.center.copy(),
            'radius': geometry.radius,
        })
    if isinstance(geometry, Triangle):
        return MeshSpec(geometry_mesh_id(index), 'triangle', {
            'vertices': np.array(geometry.vertices),
        })
    raise TypeError(f"not a collision geometry: {geometry!r}")


def default_geometries(floor=DEFAULT_FLOOR):
    """Floor plane, a sphere below the emitter and a ramp to bounce off."""
    return [
        Plane.from_point_normal([0.0, floor, 0.0], [0.0, 1.0, 0.0],
                                half_width=FLOOR_HALF_WIDTH),
        Sphere(center=SPHERE_CENTER.copy(), radius=SPHERE_RADIUS),
        Triangle(*(v.copy() for v in RAMP_VERTICES)),
    ]
