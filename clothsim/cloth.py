"""
cloth.py
------------------------------------------------------------
* Cloth as a (w+1) x (h+1) grid of Verlet nodes
* Structural distance constraints relaxed Jakobsen-style
* Gravity, oscillating wind, floor clamp, ball obstacle, pins
------------------------------------------------------------
"""

import logging
from dataclasses import dataclass

import numpy as np

from .particle import GRAVITY_VECTOR, verlet_step

logger = logging.getLogger(__name__)

# Constants
DAMPING = 0.03
CLOTH_Y_OFFSET = -25.0
DEFAULT_WIND_STRIDE = 2


@dataclass
class ConstraintArray:
    """Stores constraint endpoint indices and rest lengths.

    Rows are grouped into batches in which no node index repeats, so a
    batch can be corrected with a single fancy-indexed update.
    """
    idx_start: np.ndarray
    idx_end:   np.ndarray
    rest_length: np.ndarray
    batches: list

    def __len__(self):
        return len(self.idx_start)

    def pairs(self):
        return zip(self.idx_start.tolist(), self.idx_end.tolist(),
                   self.rest_length.tolist())


def satisfy_constraint(positions, idx_start, idx_end, rest_length):
    """
    One relaxation step for constraints whose endpoints are all distinct.

    Each endpoint moves half of the correction towards ``rest_length``.
    Zero-length constraints are skipped.
    """
    diff = positions[idx_end] - positions[idx_start]
    length = np.linalg.norm(diff, axis=-1)
    moving = length > 0.0
    if not np.all(moving):
        idx_start, idx_end = idx_start[moving], idx_end[moving]
        rest_length, diff, length = rest_length[moving], diff[moving], length[moving]
    correction = diff * (0.5 * (1.0 - rest_length / length))[:, None]
    positions[idx_start] += correction
    positions[idx_end]   -= correction


def wind_vector(time):
    """Wind force at ``time`` seconds: slowly varying strength and heading."""
    strength = np.cos(time / 7.0) * 20.0 + 40.0
    heading = np.array([np.sin(time / 2.0), np.cos(time / 3.0), np.sin(time)])
    return heading / np.linalg.norm(heading) * strength


class Cloth:
    def __init__(self, w=10, h=10, rest_distance=2.5, pins=None,
                 wind_stride=DEFAULT_WIND_STRIDE):
        # Grid dimensions and derived quantities
        self.w = w
        self.h = h
        self.rest_distance = rest_distance
        self.num_points = (w + 1) * (h + 1)
        self.wind_stride = max(1, int(wind_stride))

        # Node (u, v) sits at x = (u/w - 0.5) * width, y = (v/h + 0.5) * height - 25
        width, height = w * rest_distance, h * rest_distance
        us = np.arange(w + 1) / w
        vs = np.arange(h + 1) / h
        grid_u, grid_v = np.meshgrid(us, vs)
        self.rest_positions = np.c_[(grid_u.ravel() - 0.5) * width,                 # x
                                    (grid_v.ravel() + 0.5) * height + CLOTH_Y_OFFSET,  # y
                                    np.zeros(self.num_points)]                       # z
        self.rest_positions.setflags(write=False)

        self.positions = self.rest_positions.copy()
        self.previous_positions = self.rest_positions.copy()
        self.forces = np.zeros_like(self.positions)

        # Hang the cloth from its top row unless told otherwise
        if pins is None:
            pins = [self.index(u, h) for u in range(w + 1)]
        self.pins = np.asarray(sorted(set(int(p) for p in pins)), dtype=int)
        if self.pins.size and (self.pins.min() < 0 or self.pins.max() >= self.num_points):
            raise ValueError(f"pin index out of range for {self.num_points} nodes")

        self.constraints = self._build_constraints()
        self.faces = self._build_faces()

    def index(self, u, v):
        return u + v * (self.w + 1)

    def _build_constraints(self):
        """Structural links only: horizontal then vertical, split by parity."""
        w, h = self.w, self.h
        starts, ends, batches = [], [], []
        groups = (
            [(u, v, u + 1, v) for v in range(h + 1) for u in range(0, w, 2)],
            [(u, v, u + 1, v) for v in range(h + 1) for u in range(1, w, 2)],
            [(u, v, u, v + 1) for v in range(0, h, 2) for u in range(w + 1)],
            [(u, v, u, v + 1) for v in range(1, h, 2) for u in range(w + 1)],
        )
        for group in groups:
            first = len(starts)
            for u1, v1, u2, v2 in group:
                starts.append(self.index(u1, v1))
                ends.append(self.index(u2, v2))
            if len(starts) > first:
                batches.append(slice(first, len(starts)))

        return ConstraintArray(
            idx_start=np.array(starts, dtype=int),
            idx_end=np.array(ends, dtype=int),
            rest_length=np.full(len(starts), float(self.rest_distance)),
            batches=batches,
        )

    def _build_faces(self):
        faces = []
        for v in range(self.h):
            for u in range(self.w):
                a, b = self.index(u, v), self.index(u + 1, v)
                c, d = self.index(u, v + 1), self.index(u + 1, v + 1)
                faces.append([a, b, c])
                faces.append([b, d, c])
        return np.array(faces, dtype=int)

    # -------- forces ----------
    def add_gravity(self, node_mass):
        self.forces += node_mass * GRAVITY_VECTOR

    def add_wind(self, time):
        """Push a strided subset of faces along their normals."""
        wind = wind_vector(time)
        faces = self.faces[::self.wind_stride]
        p0, p1, p2 = (self.positions[faces[:, i]] for i in range(3))
        normals = np.cross(p1 - p0, p2 - p0)
        norms = np.linalg.norm(normals, axis=1)
        valid = norms > 0.0
        normals = normals[valid] / norms[valid][:, None]
        face_forces = normals * (normals @ wind)[:, None]
        for corner in range(3):
            np.add.at(self.forces, faces[valid, corner], face_forces)

    # -------- integration & constraints ----------
    def integrate(self, delta):
        verlet_step(self.positions, self.previous_positions,
                    self.forces, delta, DAMPING)

    def satisfy_constraints(self, iterations=1):
        cons = self.constraints
        for _ in range(iterations):
            for batch in cons.batches:
                satisfy_constraint(self.positions, cons.idx_start[batch],
                                   cons.idx_end[batch], cons.rest_length[batch])

    def collide_ball(self, center, radius):
        """Push nodes inside the ball out to its surface."""
        offsets = self.positions - center
        dist = np.linalg.norm(offsets, axis=1)
        inside = (dist < radius) & (dist > 0.0)
        if np.any(inside):
            self.positions[inside] = (center + offsets[inside]
                                      / dist[inside][:, None] * radius)
        return int(inside.sum())

    def clamp_floor(self, floor):
        below = self.positions[:, 1] < floor
        self.positions[below, 1] = floor
        return int(below.sum())

    def apply_pins(self):
        self.positions[self.pins] = self.rest_positions[self.pins]
        self.previous_positions[self.pins] = self.rest_positions[self.pins]

    def reset(self):
        self.positions[:] = self.rest_positions
        self.previous_positions[:] = self.rest_positions
        self.forces[:] = 0.0
        logger.debug("Cloth reset to rest positions")

    # -------- read-out ----------
    def vertex_positions(self):
        return self.positions.copy()

    def stretch(self):
        """Mean relative constraint violation (0 when fully relaxed)."""
        cons = self.constraints
        lengths = np.linalg.norm(
            self.positions[cons.idx_end] - self.positions[cons.idx_start], axis=1
        )
        return float(np.mean(np.abs(lengths - cons.rest_length) / cons.rest_length))

    def get_grid(self):
        """Return X, Y, Z arrays shaped (h+1, w+1) for plotting."""
        grid = self.positions.reshape(self.h + 1, self.w + 1, 3)
        return grid[:, :, 0], grid[:, :, 1], grid[:, :, 2]
