"""Real-time particles, cloth and collision geometry on numpy arrays."""

from .cloth import Cloth, ConstraintArray, satisfy_constraint
from .config import Command, SimulationConfig
from .geometry import CollisionOutcome, Geometry, Plane, Sphere, Triangle
from .particle import Movement, Particle
from .scene import MeshSpec, RenderSink, default_geometries
from .simulation import Simulation, TickReport

__all__ = [
    "Cloth",
    "ConstraintArray",
    "satisfy_constraint",
    "Command",
    "SimulationConfig",
    "CollisionOutcome",
    "Geometry",
    "Plane",
    "Sphere",
    "Triangle",
    "Movement",
    "Particle",
    "MeshSpec",
    "RenderSink",
    "default_geometries",
    "Simulation",
    "TickReport",
]
