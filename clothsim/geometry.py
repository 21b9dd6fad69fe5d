"""
geometry.py
------------------------------------------------------------
* Static collision geometry: Plane, Sphere, Triangle
* Detection + response against a single particle per call
* Restitution comes from the particle, not the geometry
------------------------------------------------------------
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Union

import numpy as np

logger = logging.getLogger(__name__)

# Constants
AREA_TOLERANCE = 1e-6          # relative, for the triangle containment test
EPS = 1e-12


class CollisionOutcome(enum.Enum):
    NONE = 0
    RESOLVED = 1
    UNRESOLVED = 2             # overlap seen but no contact point; left as-is


def _unit(vector):
    vector = np.asarray(vector, dtype=float)
    norm = np.linalg.norm(vector)
    if norm < EPS:
        return np.zeros(3)
    return vector / norm


def _mirror(point, normal, plane_constant):
    return point - 2.0 * normal * (normal @ point + plane_constant)


def reflect(particle, normal, plane_constant):
    """
    Push a penetrating particle back across the plane (normal, D).

    Position and the normal velocity component are reflected and scaled by
    the particle's bouncing; the previous position is mirrored so a
    following Verlet step sees a consistent trajectory.
    """
    restitution = 1.0 + particle.bouncing
    dist = normal @ particle.position + plane_constant
    particle.position -= normal * restitution * dist
    particle.velocity -= normal * restitution * (normal @ particle.velocity)
    particle.previous_position[:] = _mirror(particle.previous_position,
                                            normal, plane_constant)


@dataclass(eq=False)
class Plane:
    """Infinite plane for collisions, bounded square for out-of-bounds tests."""
    normal: np.ndarray
    origin: np.ndarray
    half_width: float = np.inf
    plane_constant: float = field(init=False)

    def __post_init__(self):
        self.normal = _unit(self.normal)
        self.origin = np.asarray(self.origin, dtype=float)
        self.plane_constant = -float(self.normal @ self.origin)
        # in-plane axes; for a y-up normal these are world z and x
        helper = np.zeros(3)
        helper[np.argmin(np.abs(self.normal))] = 1.0
        self._axis_u = _unit(np.cross(helper, self.normal))
        self._axis_v = np.cross(self.normal, self._axis_u)

    @classmethod
    def from_point_normal(cls, point, normal, half_width=np.inf):
        return cls(normal=normal, origin=point, half_width=half_width)

    def signed_distance(self, point):
        return float(self.normal @ point + self.plane_constant)

    def resolve(self, particle):
        if self.signed_distance(particle.position) >= 0.0:
            return CollisionOutcome.NONE
        reflect(particle, self.normal, self.plane_constant)
        return CollisionOutcome.RESOLVED

    def is_out_of_bounds(self, point):
        offset = np.asarray(point, dtype=float) - self.origin
        return bool(abs(offset @ self._axis_u) > self.half_width
                    or abs(offset @ self._axis_v) > self.half_width)


@dataclass(eq=False)
class Sphere:
    center: np.ndarray
    radius: float
    scale: float = 1.0

    def __post_init__(self):
        self.center = np.asarray(self.center, dtype=float)

    @property
    def collision_radius(self):
        return self.radius * self.scale

    def set_scale(self, scale):
        self.scale = float(scale)

    def contains(self, point):
        return bool(np.linalg.norm(point - self.center) <= self.collision_radius)

    def segment_intersection(self, start, end):
        """
        Parameter t in [0, 1] where start -> end first meets the surface.

        Returns None for a zero-length segment, a miss (negative
        discriminant) or when neither root lies on the segment.
        """
        segment = end - start
        rel = start - self.center
        a = segment @ segment
        if a < EPS:
            return None
        b = 2.0 * (segment @ rel)
        c = rel @ rel - self.collision_radius ** 2
        disc = b * b - 4.0 * a * c
        if disc < 0.0:
            return None
        root = np.sqrt(disc)
        roots = [t for t in ((-b - root) / (2.0 * a), (-b + root) / (2.0 * a))
                 if 0.0 <= t <= 1.0]
        return min(roots) if roots else None

    def resolve(self, particle):
        if not self.contains(particle.position):
            return CollisionOutcome.NONE

        t = self.segment_intersection(particle.previous_position, particle.position)
        if t is None:
            logger.debug("Sphere overlap without a segment crossing at %s",
                         particle.position)
            return CollisionOutcome.UNRESOLVED

        hit = particle.previous_position + (particle.position - particle.previous_position) * t
        normal = _unit(hit - self.center)
        if not normal.any():
            return CollisionOutcome.UNRESOLVED
        reflect(particle, normal, -float(normal @ hit))
        return CollisionOutcome.RESOLVED


@dataclass(eq=False)
class Triangle:
    a: np.ndarray
    b: np.ndarray
    c: np.ndarray
    normal: np.ndarray = field(init=False)
    plane_constant: float = field(init=False)
    area: float = field(init=False)

    def __post_init__(self):
        self.a, self.b, self.c = (np.asarray(p, dtype=float) for p in (self.a, self.b, self.c))
        cross = np.cross(self.b - self.a, self.c - self.a)
        self.area = 0.5 * float(np.linalg.norm(cross))
        self.normal = _unit(cross)
        self.plane_constant = -float(self.normal @ self.a)
        if self.area < EPS:
            logger.warning("Degenerate triangle %s, %s, %s never collides",
                           self.a, self.b, self.c)

    @property
    def vertices(self):
        return self.a, self.b, self.c

    def signed_distance(self, point):
        return float(self.normal @ point + self.plane_constant)

    def intersect_segment(self, start, end):
        """Point where start -> end crosses the triangle's plane, or None."""
        d_start = self.signed_distance(start)
        d_end = self.signed_distance(end)
        if d_start * d_end > 0.0 or d_start == d_end:
            return None
        t = d_start / (d_start - d_end)
        return start + (end - start) * t

    def contains(self, point):
        """Sub-triangle areas around ``point`` must add up to the full area."""
        a, b, c = self.vertices
        sub_areas = 0.5 * (np.linalg.norm(np.cross(b - point, c - point))
                           + np.linalg.norm(np.cross(c - point, a - point))
                           + np.linalg.norm(np.cross(a - point, b - point)))
        return bool(sub_areas - self.area <= AREA_TOLERANCE * self.area)

    def resolve(self, particle):
        if self.area < EPS:
            return CollisionOutcome.NONE
        if self.signed_distance(particle.position) >= 0.0:
            return CollisionOutcome.NONE
        hit = self.intersect_segment(particle.previous_position, particle.position)
        if hit is None or not self.contains(hit):
            return CollisionOutcome.NONE
        reflect(particle, self.normal, self.plane_constant)
        return CollisionOutcome.RESOLVED


Geometry = Union[Plane, Sphere, Triangle]
