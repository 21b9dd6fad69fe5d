"""
particle.py
------------------------------------------------------------
* Free particle state (position, previous position, velocity, force)
* Explicit Euler, semi-implicit Euler and Verlet integrators
------------------------------------------------------------
"""

import enum
from dataclasses import dataclass, field

import numpy as np

# Constants
GRAVITY_ACCEL = 9.81
SCENE_SCALE = 10.0             # scene units per metre
GRAVITY_VECTOR = np.array([0.0, -GRAVITY_ACCEL * SCENE_SCALE, 0.0])
DEFAULT_BOUNCING = 0.3


class Movement(enum.IntEnum):
    EULER_EXPLICIT = 0
    EULER_SEMI_IMPLICIT = 1
    VERLET = 2


def _vec(values=(0.0, 0.0, 0.0)):
    return np.array(values, dtype=float)


def verlet_step(positions, previous, forces, delta, damping):
    """
    Position Verlet with linear drag, in place.

    Works on a single (3,) vector or an (N, 3) array of nodes.
    Returns the positions from before the step.
    """
    drag = 1.0 - damping
    old = positions.copy()
    positions += (positions - previous) * drag + forces * delta * delta
    previous[...] = old
    forces[...] = 0.0
    return old


@dataclass(eq=False)
class Particle:
    """A point mass; ``lifetime <= 0`` marks it dead and inert."""
    position: np.ndarray = field(default_factory=_vec)
    previous_position: np.ndarray = field(default_factory=_vec)
    velocity: np.ndarray = field(default_factory=_vec)
    force: np.ndarray = field(default_factory=_vec)
    bouncing: float = DEFAULT_BOUNCING
    lifetime: int = 0
    fixed: bool = False
    damping: float = 0.0

    def __post_init__(self):
        self.position = _vec(self.position)
        self.previous_position = _vec(self.previous_position)
        self.velocity = _vec(self.velocity)
        self.force = _vec(self.force)

    @property
    def alive(self):
        return self.lifetime > 0

    def add_force(self, force):
        self.force += force

    def set_position(self, position):
        """Teleport: previous position follows so Verlet sees no motion."""
        self.position[:] = position
        self.previous_position[:] = position

    def spawn(self, position, velocity, force, lifetime, bouncing, delta=0.0):
        """Bring the particle to life; ``delta`` seeds Verlet's implied velocity."""
        self.set_position(position)
        if delta > 0:
            self.previous_position -= np.asarray(velocity) * delta
        self.velocity[:] = velocity
        self.force[:] = force
        self.lifetime = lifetime
        self.bouncing = bouncing

    def kill(self, rest_position):
        """Recycle the particle; it stays in the pool, inert."""
        self.set_position(rest_position)
        self.velocity[:] = 0.0
        self.force[:] = 0.0
        self.lifetime = 0

    def update(self, delta, movement):
        """Advance one step. Fixed or dead particles do not move."""
        if self.fixed or self.lifetime <= 0:
            self.force[:] = 0.0
            return

        if movement == Movement.EULER_EXPLICIT:
            self.previous_position[:] = self.position
            self.position += self.velocity * delta
            self.velocity += self.force * delta
        elif movement == Movement.EULER_SEMI_IMPLICIT:
            self.previous_position[:] = self.position
            self.velocity += self.force * delta
            self.position += self.velocity * delta
        elif movement == Movement.VERLET:
            old = verlet_step(self.position, self.previous_position,
                              self.force, delta, self.damping)
            if delta > 0:
                self.velocity[:] = (self.position - old) / delta
        else:
            raise ValueError(f"unknown movement {movement!r}")

        # forces are per-tick inputs
        self.force[:] = 0.0
