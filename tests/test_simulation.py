import numpy as np
import pytest

from clothsim import (Command, Movement, Plane, Simulation, SimulationConfig,
                      Sphere)
from clothsim.scene import default_geometries

DT = 1 / 60


class RecordingSink:
    def __init__(self):
        self.meshes = {}
        self.vertices = {}
        self.positions = {}
        self.visible = {}
        self.scales = {}

    def add_to_scene(self, mesh):
        self.meshes[mesh.mesh_id] = mesh

    def update_vertex(self, index, position):
        self.vertices[index] = position

    def set_mesh_position(self, mesh_id, position):
        self.positions[mesh_id] = position

    def set_mesh_visible(self, mesh_id, visible):
        self.visible[mesh_id] = visible

    def set_mesh_scale(self, mesh_id, scale):
        self.scales[mesh_id] = scale


def _sim(**config):
    config.setdefault('seed', 7)
    return Simulation(SimulationConfig(**config))


def _run(sim, ticks, delta=DT):
    return [sim.step(delta) for _ in range(ticks)]


def test_cloth_scenario_stays_above_floor_with_pins_fixed():
    sim = _sim(cloth_width=10, cloth_height=10, rest_distance=2.5,
               particle_number=0, ball=False, wind=False)
    cloth = sim.cloth
    for report in _run(sim, 400):
        assert np.all(cloth.positions[:, 1] >= -25.0)
        assert np.allclose(cloth.positions[cloth.pins], cloth.rest_positions[cloth.pins])
    # the cloth sags under gravity
    free = np.setdiff1d(np.arange(cloth.num_points), cloth.pins)
    assert cloth.positions[free, 1].mean() < cloth.rest_positions[free, 1].mean()


def test_heavy_cloth_with_ball_and_wind_respects_pins_and_floor():
    sim = _sim(particle_number=0, ball=True, wind=True, node_mass=10.0,
               relaxation_passes=3)
    cloth = sim.cloth
    for _ in _run(sim, 200):
        assert np.all(np.isfinite(cloth.positions))
        assert np.all(cloth.positions[:, 1] >= -25.0)
        assert np.allclose(cloth.positions[cloth.pins], cloth.rest_positions[cloth.pins])


def test_fountain_never_exceeds_particle_number():
    sim = _sim(particle_number=5, particle_freq=1000.0)
    reports = _run(sim, 60)
    assert all(r.alive <= 5 for r in reports)
    assert reports[-1].alive == 5


def test_fountain_emits_one_particle_per_period():
    sim = _sim(particle_number=100, particle_freq=10.0)
    reports = _run(sim, 60)
    assert all(r.spawned <= 1 for r in reports)
    assert 8 <= reports[-1].alive <= 10


def test_fountain_keeps_its_rate_when_ticks_do_not_divide_the_period():
    sim = Simulation(SimulationConfig(particle_number=100, particle_freq=10.0, seed=7),
                     geometries=[])
    reports = _run(sim, 120)
    assert all(r.spawned <= 1 for r in reports)
    assert reports[-1].alive >= 19


def test_fountain_disabled_with_zero_frequency():
    sim = _sim(particle_freq=0.0)
    assert _run(sim, 30)[-1].alive == 0


def test_bomb_respawns_every_dead_particle_once():
    sim = _sim(particle_number=20, particle_freq=0.0)
    sim.post(Command.BOMB)
    first = sim.step(DT)
    assert first.spawned == 20
    assert first.alive == 20
    second = sim.step(DT)
    assert second.spawned == 0


def test_reset_kills_everything():
    sim = _sim(particle_number=20, particle_freq=0.0, wind=True)
    sim.post('Bomb')
    _run(sim, 10)
    sim.post(Command.RESET)
    report = sim.step(DT)
    assert report.alive == 0
    assert all(not p.alive for p in sim.particles)


def test_shrinking_particle_number_kills_excess():
    sim = _sim(particle_number=20, particle_freq=0.0)
    sim.post(Command.BOMB)
    sim.step(DT)
    sim.set_config(sim.config.replace(particle_number=3))
    assert sim.alive_count() <= 3
    assert sim.step(DT).alive <= 3


def test_growing_particle_number_grows_pool():
    sim = _sim(particle_number=2)
    sim.set_config(sim.config.replace(particle_number=12))
    assert len(sim.particles) == 12


def test_out_of_bounds_particles_are_recycled():
    plane = Plane.from_point_normal([0.0, 0.0, 0.0], [0.0, 1.0, 0.0], half_width=1.0)
    sim = Simulation(SimulationConfig(particle_number=1, particle_freq=0.0),
                     geometries=[plane])
    sim.particles[0].spawn((5.0, 10.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0),
                           lifetime=50, bouncing=0.5)
    report = sim.step(DT)
    assert report.out_of_bounds == 1
    assert report.alive == 0


def test_unresolved_collisions_are_counted_not_fatal():
    sphere = Sphere(center=(0.0, 0.0, 0.0), radius=100.0)
    sim = Simulation(SimulationConfig(particle_number=1, particle_freq=0.0),
                     geometries=[sphere])
    sim.particles[0].spawn((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0),
                           lifetime=50, bouncing=0.5)
    report = sim.step(DT)
    assert report.unresolved == 1
    assert report.alive == 1


def test_particles_settle_on_the_floor():
    floor = Plane.from_point_normal([0.0, -25.0, 0.0], [0.0, 1.0, 0.0], half_width=75.0)
    for movement in Movement:
        sim = Simulation(SimulationConfig(particle_number=10, particle_freq=0.0,
                                          movement=movement, seed=1),
                         geometries=[floor])
        sim.post(Command.BOMB)
        _run(sim, 300)
        for particle in sim.particles:
            if particle.alive:
                assert particle.position[1] >= -25.0 - 1e-9


def test_sphere_size_rescales_collision_spheres():
    sim = _sim(sphere_size=2.5)
    sim.step(DT)
    spheres = [g for g in sim.geometries if isinstance(g, Sphere)]
    assert spheres and all(s.scale == 2.5 for s in spheres)


@pytest.mark.parametrize("delta", [0.0, -1.0, float('nan')])
def test_bad_delta_is_a_no_op(delta):
    sim = _sim(particle_freq=1000.0)
    report = sim.step(delta)
    assert sim.tick == 0
    assert report.alive == 0
    assert np.allclose(sim.cloth.positions, sim.cloth.rest_positions)


def test_long_frames_are_clamped():
    sim = _sim()
    report = sim.step(10.0)
    assert report.time == pytest.approx(0.05)


def test_sink_receives_value_copies():
    sim = _sim(particle_number=4, particle_freq=0.0)
    sink = RecordingSink()
    sim.attach(sink)
    assert sink.meshes['cloth'].kind == 'cloth'
    kinds = sorted(m.kind for m in sink.meshes.values() if m.mesh_id[0] == 'geometry')
    assert kinds == ['plane', 'sphere', 'triangle']
    assert len([k for k in sink.meshes if k[0] == 'particle']) == 4

    sim.post(Command.BOMB)
    sim.step(DT)
    assert len(sink.vertices) == sim.cloth.num_points
    assert all(sink.visible[('particle', i)] for i in range(4))

    sink.vertices[0][:] = 1e6
    sink.positions[('particle', 0)][:] = 1e6
    assert sim.cloth.positions[0, 0] != 1e6
    assert sim.particles[0].position[0] != 1e6


def test_dead_particles_are_hidden():
    sim = _sim(particle_number=3, particle_freq=0.0)
    sink = RecordingSink()
    sim.attach(sink)
    sim.step(DT)
    assert not any(sink.visible[('particle', i)] for i in range(3))
    assert ('particle', 0) not in sink.positions


def test_rebuilds_cloth_when_layout_changes():
    sim = _sim()
    sim.set_config(sim.config.replace(cloth_width=4, cloth_height=6))
    assert sim.cloth.num_points == 5 * 7


def test_default_scene_has_one_of_each_geometry():
    kinds = [type(g).__name__ for g in default_geometries()]
    assert kinds == ['Plane', 'Sphere', 'Triangle']


def test_fixed_particle_does_not_store_force_across_ticks():
    sim = Simulation(SimulationConfig(particle_number=1, particle_freq=0.0),
                     geometries=[])
    particle = sim.particles[0]
    particle.spawn((0.0, 10.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0),
                   lifetime=50, bouncing=0.5)
    particle.fixed = True
    _run(sim, 100)
    assert not particle.force.any()
    assert np.allclose(particle.position, [0.0, 10.0, 0.0])

    particle.fixed = False
    sim.step(DT)
    assert particle.position[1] - 10.0 == pytest.approx(-98.1 * DT * DT)


def test_sink_receives_sphere_scale():
    sim = _sim(sphere_size=2.0, particle_number=0)
    sink = RecordingSink()
    sim.attach(sink)
    sphere_id = ('geometry', 1)
    assert sink.meshes[sphere_id].data['radius'] == 5.0
    assert sink.scales[sphere_id] == 2.0
    assert sink.scales['ball'] == 2.0

    sim.set_config(sim.config.replace(sphere_size=0.5))
    sim.step(DT)
    assert sink.scales[sphere_id] == 0.5
    assert sink.scales['ball'] == 0.5
