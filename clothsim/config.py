"""
config.py
------------------------------------------------------------
* Simulation settings read once per tick by the orchestrator
* One-shot commands (reset, bomb) modelled as discrete events
* Parsing of the control-panel option names (SphereSize, Bounce, ...)
------------------------------------------------------------
"""

import enum
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .particle import Movement

# Constants
DEFAULT_FLOOR = -25.0
DEFAULT_REST_DISTANCE = 2.5
DEFAULT_CLOTH_SEGMENTS = 10
DEFAULT_LIFETIME = 50

BOUNCE_RANGE = (0.1, 1.0)
NODE_MASS_RANGE = (1.0, 10.0)

MOVEMENT_NAMES = {
    'EulerExplicit':     Movement.EULER_EXPLICIT,
    'EulerSemiImplicit': Movement.EULER_SEMI_IMPLICIT,
    'Verlet':            Movement.VERLET,
}


class Command(enum.Enum):
    """One-shot actions; the orchestrator drains them once per tick."""
    RESET = 'Reset'
    BOMB = 'Bomb'


@dataclass(frozen=True)
class SimulationConfig:
    """Read-only snapshot of every tunable the simulation consults."""
    sphere_size: float = 1.0
    movement: Movement = Movement.VERLET
    bounce: float = 0.5
    particle_number: int = 100
    particle_freq: float = 20.0
    node_mass: float = 1.0
    ball: bool = False
    wind: bool = False

    # not exposed on the control panel
    particle_lifetime: int = DEFAULT_LIFETIME
    relaxation_passes: int = 1
    floor: float = DEFAULT_FLOOR
    cloth_width: int = DEFAULT_CLOTH_SEGMENTS
    cloth_height: int = DEFAULT_CLOTH_SEGMENTS
    rest_distance: float = DEFAULT_REST_DISTANCE
    pins: Optional[Tuple[int, ...]] = None
    seed: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, 'movement', Movement(self.movement))
        if self.sphere_size <= 0:
            raise ValueError("sphere_size must be positive")
        lo, hi = BOUNCE_RANGE
        if not lo <= self.bounce <= hi:
            raise ValueError(f"bounce must be in [{lo}, {hi}], got {self.bounce}")
        lo, hi = NODE_MASS_RANGE
        if not lo <= self.node_mass <= hi:
            raise ValueError(f"node_mass must be in [{lo}, {hi}], got {self.node_mass}")
        if self.particle_number < 0:
            raise ValueError("particle_number must be >= 0")
        if self.particle_freq < 0:
            raise ValueError("particle_freq must be >= 0")
        if self.particle_lifetime <= 0:
            raise ValueError("particle_lifetime must be positive")
        if self.relaxation_passes < 0:
            raise ValueError("relaxation_passes must be >= 0")
        if self.cloth_width < 1 or self.cloth_height < 1:
            raise ValueError("cloth needs at least one segment per side")
        if self.rest_distance <= 0:
            raise ValueError("rest_distance must be positive")
        if self.pins is not None:
            object.__setattr__(self, 'pins', tuple(int(i) for i in self.pins))

    def replace(self, **changes):
        """Return a copy with ``changes`` applied (validated again)."""
        return replace(self, **changes)

    @classmethod
    def from_options(cls, options, base=None):
        """
        Build a config from control-panel option names.

        Returns ``(config, commands)``; truthy ``Reset`` / ``Bomb`` entries
        become :class:`Command` events instead of config state. Unknown keys
        are rejected.
        """
        base = base if base is not None else cls()
        changes = {}
        commands = []
        for key, value in options.items():
            if key == 'SphereSize':
                changes['sphere_size'] = float(value)
            elif key == 'Movement':
                changes['movement'] = parse_movement(value)
            elif key == 'Bounce':
                changes['bounce'] = float(value)
            elif key == 'ParticleNumber':
                changes['particle_number'] = int(value)
            elif key == 'ParticleFreq':
                changes['particle_freq'] = float(value)
            elif key == 'NodeMass':
                changes['node_mass'] = float(value)
            elif key == 'Ball':
                changes['ball'] = bool(value)
            elif key == 'Wind':
                changes['wind'] = bool(value)
            elif key in ('Reset', 'Bomb'):
                if value:
                    commands.append(Command(key))
            else:
                raise ValueError(f"unknown option {key!r}")
        return base.replace(**changes), commands


def parse_movement(value):
    """Accept a Movement, its integer code, or its control-panel name."""
    if isinstance(value, str):
        try:
            return MOVEMENT_NAMES[value]
        except KeyError:
            raise ValueError(f"unknown movement {value!r}") from None
    return Movement(value)
