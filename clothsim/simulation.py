"""
simulation.py
------------------------------------------------------------
* Tick driver tying particles, cloth and collision geometry together
* Particle pool with a timed fountain and an instant burst ("bomb")
* Fixed per-tick ordering: forces -> integrate -> relax -> obstacles
  -> pins -> collisions -> lifecycle -> render
------------------------------------------------------------
"""

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from .cloth import Cloth
from .config import Command, SimulationConfig
from .geometry import CollisionOutcome, Plane, Sphere
from .particle import GRAVITY_VECTOR, Particle
from .scene import (EMITTER_POSITION, MeshSpec, default_geometries,
                    describe_geometry, geometry_mesh_id, particle_mesh_id)

logger = logging.getLogger(__name__)

# Constants
MAX_DELTA = 0.05               # longer frames are clamped to keep Verlet stable
SPAWN_JITTER = 1.0
SPAWN_SPEED_UP = (15.0, 25.0)
SPAWN_SPEED_SIDE = 5.0
SPAWN_KICK = 20.0
BURST_RADIUS = 2.0
BURST_SPEED = (10.0, 30.0)
BALL_RADIUS = 4.0
BALL_HEIGHT = -5.0
BALL_AMPLITUDE = 10.0
BALL_PERIOD = 0.6


@dataclass
class TickReport:
    """What happened during one step; the diagnostic channel of the core."""
    tick: int
    time: float
    alive: int = 0
    spawned: int = 0
    resolved: int = 0
    unresolved: int = 0
    out_of_bounds: int = 0
    stretch: float = 0.0


class Simulation:
    def __init__(self, config=None, geometries=None, emitter=EMITTER_POSITION):
        self.config = config if config is not None else SimulationConfig()
        self.rng = np.random.default_rng(self.config.seed)
        self.geometries = (list(geometries) if geometries is not None
                           else default_geometries(self.config.floor))
        self.emitter = np.array(emitter, dtype=float)
        self.cloth = self._build_cloth(self.config)
        self.ball = Sphere(center=np.array([0.0, BALL_HEIGHT, 0.0]),
                           radius=BALL_RADIUS, scale=self.config.sphere_size)
        self.sink = None

        self.particles = []
        self._grow_pool(self.config.particle_number)

        self._commands = deque()
        self._since_spawn = 0.0
        self.time = 0.0
        self.tick = 0

    @staticmethod
    def _build_cloth(config):
        return Cloth(config.cloth_width, config.cloth_height,
                     config.rest_distance, pins=config.pins)

    # -------- configuration & commands ----------
    def set_config(self, config):
        """Swap in a new settings snapshot; takes effect on the next tick."""
        old, self.config = self.config, config
        cloth_keys = ('cloth_width', 'cloth_height', 'rest_distance', 'pins')
        if any(getattr(old, k) != getattr(config, k) for k in cloth_keys):
            logger.info("Cloth layout changed; rebuilding %dx%d cloth",
                        config.cloth_width, config.cloth_height)
            self.cloth = self._build_cloth(config)
            if self.sink is not None:
                self.sink.add_to_scene(self._cloth_mesh())
        self._grow_pool(config.particle_number)
        self._enforce_cap()

    def post(self, command):
        """Queue a one-shot action for the next tick."""
        self._commands.append(Command(command))

    def _grow_pool(self, size):
        while len(self.particles) < size:
            particle = Particle()
            particle.kill(self.emitter)
            self.particles.append(particle)
            if self.sink is not None:
                index = len(self.particles) - 1
                self.sink.add_to_scene(MeshSpec(particle_mesh_id(index), 'particle'))

    # -------- particle lifecycle ----------
    def alive_count(self):
        return sum(1 for p in self.particles if p.alive)

    def _eligible(self):
        return self.particles[:self.config.particle_number]

    def _enforce_cap(self):
        """Only the first particle_number pool slots may be alive."""
        for particle in self.particles[self.config.particle_number:]:
            if particle.alive:
                particle.kill(self.emitter)

    def _spawn(self, particle, delta):
        cfg = self.config
        lo, hi = SPAWN_SPEED_UP
        position = self.emitter + self.rng.uniform(-SPAWN_JITTER, SPAWN_JITTER, 3)
        velocity = np.array([self.rng.uniform(-SPAWN_SPEED_SIDE, SPAWN_SPEED_SIDE),
                             self.rng.uniform(lo, hi),
                             self.rng.uniform(-SPAWN_SPEED_SIDE, SPAWN_SPEED_SIDE)])
        kick = self.rng.uniform(-SPAWN_KICK, SPAWN_KICK, 3)
        kick[1] = 0.0
        particle.spawn(position, velocity, kick, cfg.particle_lifetime,
                       cfg.bounce, delta)

    def _fountain(self, delta):
        cfg = self.config
        if cfg.particle_freq <= 0:
            return 0
        period = 1.0 / cfg.particle_freq
        self._since_spawn += delta
        if self._since_spawn < period:
            return 0
        particle = None
        if self.alive_count() < cfg.particle_number:
            particle = next((p for p in self._eligible() if not p.alive), None)
        if particle is None:
            # no backlog while the pool is full
            self._since_spawn = period
            return 0
        self._spawn(particle, delta)
        # leftover time carries over; at most one spawn per tick
        self._since_spawn = min(self._since_spawn - period, period)
        return 1

    def _burst(self, delta):
        """Respawn every dead particle at once, flying out from the emitter."""
        cfg = self.config
        spawned = 0
        for particle in self._eligible():
            if particle.alive:
                continue
            direction = self.rng.normal(size=3)
            direction /= np.linalg.norm(direction) or 1.0
            position = self.emitter + direction * self.rng.uniform(0.0, BURST_RADIUS)
            velocity = direction * self.rng.uniform(*BURST_SPEED)
            particle.spawn(position, velocity, np.zeros(3),
                           cfg.particle_lifetime, cfg.bounce, delta)
            spawned += 1
        logger.info("Burst respawned %d particles", spawned)
        return spawned

    def _reset(self):
        for particle in self.particles:
            particle.kill(self.emitter)
        self.cloth.reset()
        self._since_spawn = 0.0
        logger.info("Simulation reset")

    def _run_commands(self, delta):
        spawned = 0
        while self._commands:
            command = self._commands.popleft()
            if command is Command.RESET:
                self._reset()
            elif command is Command.BOMB:
                spawned += self._burst(delta)
        return spawned

    # -------- tick ----------
    def _scale_spheres(self):
        for geometry in self.geometries:
            if isinstance(geometry, Sphere):
                geometry.set_scale(self.config.sphere_size)
        self.ball.set_scale(self.config.sphere_size)

    def _move_ball(self):
        self.ball.center[2] = -np.sin(self.time / BALL_PERIOD) * BALL_AMPLITUDE

    def step(self, delta):
        """Advance the whole simulation by one frame of ``delta`` seconds."""
        cfg = self.config
        report = TickReport(tick=self.tick, time=self.time)
        if not np.isfinite(delta) or delta <= 0.0:
            logger.debug("Skipping tick with delta=%r", delta)
            report.alive = self.alive_count()
            return report
        if delta > MAX_DELTA:
            logger.debug("Clamping delta %.3f to %.3f", delta, MAX_DELTA)
            delta = MAX_DELTA

        self.tick += 1
        self.time += delta
        report.tick, report.time = self.tick, self.time

        self._scale_spheres()
        self._enforce_cap()
        report.spawned += self._run_commands(delta)

        # 1) forces
        alive = [p for p in self.particles if p.alive]
        for particle in alive:
            particle.add_force(GRAVITY_VECTOR)
        self.cloth.add_gravity(cfg.node_mass)
        if cfg.wind:
            self.cloth.add_wind(self.time)

        # 2) integrate
        for particle in alive:
            particle.update(delta, cfg.movement)
        self.cloth.integrate(delta)

        # 3) relax
        self.cloth.satisfy_constraints(cfg.relaxation_passes)

        # 4) obstacles
        if cfg.ball:
            self._move_ball()
            self.cloth.collide_ball(self.ball.center, self.ball.collision_radius)
        self.cloth.clamp_floor(cfg.floor)

        # 5) pins
        self.cloth.apply_pins()

        # 6) collisions, then lifecycle
        for geometry in self.geometries:
            for particle in alive:
                outcome = geometry.resolve(particle)
                if outcome is CollisionOutcome.RESOLVED:
                    report.resolved += 1
                elif outcome is CollisionOutcome.UNRESOLVED:
                    report.unresolved += 1

        planes = [g for g in self.geometries if isinstance(g, Plane)]
        for particle in alive:
            if any(plane.is_out_of_bounds(particle.position) for plane in planes):
                particle.kill(self.emitter)
                report.out_of_bounds += 1

        report.spawned += self._fountain(delta)
        report.alive = self.alive_count()
        report.stretch = self.cloth.stretch()
        if report.unresolved:
            logger.debug("Tick %d: %d unresolved collisions",
                         self.tick, report.unresolved)

        # 7) render
        if self.sink is not None:
            self.render(self.sink)
        return report

    # -------- rendering ----------
    def _cloth_mesh(self):
        return MeshSpec('cloth', 'cloth', {
            'positions': self.cloth.vertex_positions(),
            'faces': self.cloth.faces.copy(),
            'shape': (self.cloth.h + 1, self.cloth.w + 1),
        })

    def attach(self, sink):
        """Announce every mesh to ``sink``; it then receives every tick."""
        self.sink = sink
        self._scale_spheres()
        for index, geometry in enumerate(self.geometries):
            sink.add_to_scene(describe_geometry(index, geometry))
        sink.add_to_scene(self._cloth_mesh())
        sink.add_to_scene(MeshSpec('ball', 'sphere', {
            'center': self.ball.center.copy(),
            'radius': self.ball.radius,
        }))
        for index in range(len(self.particles)):
            sink.add_to_scene(MeshSpec(particle_mesh_id(index), 'particle'))
        self.render(sink)

    def render(self, sink):
        """Push value copies of the current state."""
        for index, position in enumerate(self.cloth.positions):
            sink.update_vertex(index, position.copy())
        sink.set_mesh_visible('ball', self.config.ball)
        sink.set_mesh_position('ball', self.ball.center.copy())
        sink.set_mesh_scale('ball', self.ball.scale)
        for index, geometry in enumerate(self.geometries):
            if isinstance(geometry, Sphere):
                sink.set_mesh_scale(geometry_mesh_id(index), geometry.scale)
        for index, particle in enumerate(self.particles):
            mesh_id = particle_mesh_id(index)
            sink.set_mesh_visible(mesh_id, particle.alive)
            if particle.alive:
                sink.set_mesh_position(mesh_id, particle.position.copy())
