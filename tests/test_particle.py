import numpy as np
import pytest

from clothsim.particle import Movement, Particle, verlet_step


def _moving_particle(**kwargs):
    params = dict(position=(0.0, 0.0, 0.0), velocity=(1.0, 0.0, 0.0),
                  force=(0.0, -10.0, 0.0), lifetime=1)
    params.update(kwargs)
    return Particle(**params)


def test_explicit_euler_moves_with_old_velocity():
    p = _moving_particle()
    p.update(0.1, Movement.EULER_EXPLICIT)
    assert np.allclose(p.position, [0.1, 0.0, 0.0])
    assert np.allclose(p.velocity, [1.0, -1.0, 0.0])
    assert np.allclose(p.previous_position, [0.0, 0.0, 0.0])


def test_semi_implicit_euler_moves_with_new_velocity():
    p = _moving_particle()
    p.update(0.1, Movement.EULER_SEMI_IMPLICIT)
    assert np.allclose(p.velocity, [1.0, -1.0, 0.0])
    assert np.allclose(p.position, [0.1, -0.1, 0.0])


def test_verlet_uses_previous_position_and_delta_squared():
    p = _moving_particle(previous_position=(0.0, 0.0, 0.0))
    p.update(0.1, Movement.VERLET)
    assert np.allclose(p.position, [0.0, -0.1, 0.0])
    assert np.allclose(p.previous_position, [0.0, 0.0, 0.0])
    assert np.allclose(p.velocity, [0.0, -1.0, 0.0])


@pytest.mark.parametrize("movement", list(Movement))
def test_force_accumulator_is_cleared(movement):
    p = _moving_particle()
    p.update(0.05, movement)
    assert not p.force.any()


@pytest.mark.parametrize("movement", list(Movement))
def test_fixed_particle_never_moves(movement):
    p = _moving_particle(position=(1.0, 2.0, 3.0), previous_position=(0.0, 2.0, 3.0),
                         fixed=True)
    p.update(0.1, movement)
    assert np.allclose(p.position, [1.0, 2.0, 3.0])
    assert np.allclose(p.previous_position, [0.0, 2.0, 3.0])
    assert not p.force.any()


@pytest.mark.parametrize("movement", list(Movement))
def test_dead_particle_is_inert(movement):
    p = _moving_particle(lifetime=0)
    p.update(0.1, movement)
    assert np.allclose(p.position, 0.0)
    assert not p.force.any()


@pytest.mark.parametrize("delta", [1e-4, 0.016, 0.5, 3.0])
def test_verlet_at_rest_stays_at_rest(delta):
    p = Particle(position=(4.0, -2.0, 1.0), previous_position=(4.0, -2.0, 1.0), lifetime=1)
    p.update(delta, Movement.VERLET)
    assert np.allclose(p.position, [4.0, -2.0, 1.0])


def test_verlet_step_applies_drag_on_arrays():
    pos = np.array([[1.0, 0.0, 0.0], [0.0, 0.0, 0.0]])
    prev = np.zeros_like(pos)
    forces = np.zeros_like(pos)
    old = verlet_step(pos, prev, forces, 0.1, damping=0.5)
    assert np.allclose(pos[0], [1.5, 0.0, 0.0])
    assert np.allclose(prev, old)
    assert np.allclose(pos[1], 0.0)


def test_spawn_seeds_previous_position_from_velocity():
    p = Particle()
    p.spawn((0.0, 0.0, 0.0), (0.0, 10.0, 0.0), (0.0, 0.0, 0.0),
            lifetime=50, bouncing=0.8, delta=0.1)
    assert p.alive
    assert p.bouncing == 0.8
    assert np.allclose(p.previous_position, [0.0, -1.0, 0.0])
    p.update(0.1, Movement.VERLET)
    assert np.allclose(p.position, [0.0, 1.0, 0.0])


def test_kill_recycles_particle():
    p = _moving_particle(lifetime=10)
    p.kill(np.array([0.0, 5.0, 0.0]))
    assert not p.alive
    assert np.allclose(p.position, [0.0, 5.0, 0.0])
    assert np.allclose(p.previous_position, p.position)
    assert not p.velocity.any() and not p.force.any()
