"""
cloth_sim_rt.py (interactive)
------------------------------------------------------------
* Runs the particle / cloth / collision simulation in real time
* Control panel: sphere size, bounce, node mass, particle rate and
  count, integrator, ball and wind toggles, reset and bomb buttons
* Plots the scene and live particle count / cloth stretch over time
------------------------------------------------------------
"""

import argparse
import logging
import time
from collections import deque

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation
from matplotlib.widgets import Button, CheckButtons, RadioButtons, Slider
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from clothsim import Command, Simulation, SimulationConfig
from clothsim.config import BOUNCE_RANGE, MOVEMENT_NAMES, NODE_MASS_RANGE
from clothsim.logging_config import setup_logging

logger = logging.getLogger("clothsim.rt")

# Constants
DEFAULT_TIMESTEP = 1 / 60
CLOTH_COLOR = 'cornflowerblue'
PARTICLE_COLOR = 'darkorange'


def to_plot(points):
    """Simulation is y-up, matplotlib's 3D axes are z-up."""
    points = np.asarray(points)
    return points[..., 0], points[..., 2], points[..., 1]


class MatplotlibSink:
    """Render sink that buffers pushed positions until the next redraw."""

    def __init__(self, ax):
        self.ax = ax
        self.cloth_shape = None
        self.cloth_vertices = None
        self.positions = {}
        self.visible = {}
        self.surface_plot = None
        self.particle_plot = ax.scatter([], [], [], s=8, c=PARTICLE_COLOR)
        self.spheres = {}          # mesh_id -> (center, base radius)
        self.scales = {}
        self.sphere_plots = {}
        self.drawn_scales = {}

    # -------- RenderSink ----------
    def add_to_scene(self, mesh):
        if mesh.kind == 'cloth':
            self.cloth_shape = mesh.data['shape']
            self.cloth_vertices = mesh.data['positions'].copy()
        elif mesh.kind == 'plane':
            self._draw_plane(mesh.data)
        elif mesh.kind == 'sphere':
            self.spheres[mesh.mesh_id] = (mesh.data['center'], mesh.data['radius'])
        elif mesh.kind == 'triangle':
            tri = np.stack(to_plot(mesh.data['vertices']), axis=-1)
            self.ax.add_collection3d(Poly3DCollection([tri], color='grey', alpha=0.5))

    def update_vertex(self, index, position):
        self.cloth_vertices[index] = position

    def set_mesh_position(self, mesh_id, position):
        self.positions[mesh_id] = position

    def set_mesh_visible(self, mesh_id, visible):
        self.visible[mesh_id] = visible

    def set_mesh_scale(self, mesh_id, scale):
        self.scales[mesh_id] = scale

    # -------- drawing ----------
    def _draw_plane(self, data):
        if not np.isfinite(data['half_width']):
            return
        hw, origin = data['half_width'], data['origin']
        xs = np.array([[-hw, hw], [-hw, hw]]) + origin[0]
        zs = np.array([[-hw, -hw], [hw, hw]]) + origin[2]
        ys = np.full_like(xs, origin[1])
        self.ax.plot_surface(xs, zs, ys, color='khaki', alpha=0.3)

    def _draw_sphere(self, center, radius, **style):
        u, v = np.mgrid[0:2 * np.pi:16j, 0:np.pi:8j]
        x = center[0] + radius * np.cos(u) * np.sin(v)
        y = center[1] + radius * np.cos(v)
        z = center[2] + radius * np.sin(u) * np.sin(v)
        return self.ax.plot_wireframe(x, z, y, color=style.get('color', 'grey'), lw=0.4)

    def _redraw_sphere(self, mesh_id):
        center, radius = self.spheres[mesh_id]
        scale = self.scales.get(mesh_id, 1.0)
        moving = mesh_id == 'ball'
        if not moving and self.drawn_scales.get(mesh_id) == scale:
            return
        artist = self.sphere_plots.pop(mesh_id, None)
        if artist is not None:
            artist.remove()
        self.drawn_scales[mesh_id] = scale
        if moving:
            if not self.visible.get(mesh_id) or mesh_id not in self.positions:
                return
            center = self.positions[mesh_id]
        self.sphere_plots[mesh_id] = self._draw_sphere(
            center, radius * scale, color='firebrick' if moving else 'grey')

    def redraw(self):
        rows, cols = self.cloth_shape
        grid = self.cloth_vertices.reshape(rows, cols, 3)
        if self.surface_plot is not None:
            self.surface_plot.remove()
        self.surface_plot = self.ax.plot_surface(
            *to_plot(grid), color=CLOTH_COLOR, edgecolor='grey', lw=0.3, alpha=0.9
        )

        alive = [pos for key, pos in self.positions.items()
                 if key != 'ball' and self.visible.get(key)]
        xs, ys, zs = to_plot(np.array(alive).reshape(-1, 3))
        self.particle_plot._offsets3d = (xs, ys, zs)

        for mesh_id in self.spheres:
            self._redraw_sphere(mesh_id)
        return self.surface_plot, self.particle_plot


def main():
    parser = argparse.ArgumentParser(description='Interactive particle and cloth simulation')
    add = parser.add_argument
    add('--width',     type=int,   default=10)
    add('--height',    type=int,   default=10)
    add('--rest_len',  type=float, default=2.5)
    add('--particles', type=int,   default=100)
    add('--freq',      type=float, default=20.0)
    add('--movement',  choices=list(MOVEMENT_NAMES), default='Verlet')
    add('--dt',        type=float, default=DEFAULT_TIMESTEP)
    add('--realtime',  action='store_true', help='use wall-clock frame times instead of --dt')
    add('--fps',       type=int,   default=45)
    add('--window',    type=float, default=10.0)
    add('--seed',      type=int,   default=None)
    add('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    args = parser.parse_args()

    setup_logging(getattr(logging, args.log_level))

    config = SimulationConfig(
        cloth_width=args.width, cloth_height=args.height,
        rest_distance=args.rest_len, particle_number=args.particles,
        particle_freq=args.freq, movement=MOVEMENT_NAMES[args.movement],
        seed=args.seed,
    )
    sim = Simulation(config)

    buffer_size = int(args.window / args.dt)
    time_buf, alive_buf, stretch_buf = (deque(maxlen=buffer_size) for _ in range(3))

    fig = plt.figure(figsize=(12, 6))
    gs  = fig.add_gridspec(1, 2, width_ratios=[3, 2], wspace=0.25,
                           left=0.22, bottom=0.25)

    # Scene subplot
    ax_scene = fig.add_subplot(gs[0], projection='3d')
    ax_scene.view_init(20, -60)
    ax_scene.set_xlim(-40, 40); ax_scene.set_ylim(-40, 40); ax_scene.set_zlim(-30, 20)
    ax_scene.set_xlabel('x'); ax_scene.set_ylabel('z'); ax_scene.set_zlabel('y')

    sink = MatplotlibSink(ax_scene)
    sim.attach(sink)

    # Stats subplot
    ax_stats = fig.add_subplot(gs[1])
    ax_stats.set_xlabel('t (s)'); ax_stats.set_ylabel('alive particles')
    line_alive, = ax_stats.plot([], [], lw=1, label='alive')
    ax_stretch = ax_stats.twinx()
    ax_stretch.set_ylabel('cloth stretch')
    line_stretch, = ax_stretch.plot([], [], lw=1, color='tab:red', label='stretch')
    ax_stats.set_xlim(0, args.window)

    # Control panel
    slider_size = Slider(fig.add_axes([.25, .15, .5, .02]), 'SphereSize', 0.2, 3.0,
                         valinit=config.sphere_size)
    slider_bounce = Slider(fig.add_axes([.25, .12, .5, .02]), 'Bounce', *BOUNCE_RANGE,
                           valinit=config.bounce)
    slider_mass = Slider(fig.add_axes([.25, .09, .5, .02]), 'NodeMass', *NODE_MASS_RANGE,
                         valinit=config.node_mass)
    slider_freq = Slider(fig.add_axes([.25, .06, .5, .02]), 'ParticleFreq', 0.0, 60.0,
                         valinit=config.particle_freq)
    slider_number = Slider(fig.add_axes([.25, .03, .5, .02]), 'ParticleNumber', 0, 500,
                           valinit=config.particle_number, valstep=1)
    radio_movement = RadioButtons(fig.add_axes([.02, .6, .15, .15]), list(MOVEMENT_NAMES),
                                  active=int(config.movement))
    checks = CheckButtons(fig.add_axes([.02, .45, .15, .1]), ['Ball', 'Wind'],
                          [config.ball, config.wind])
    button_reset = Button(fig.add_axes([.02, .35, .15, .05]), 'Reset')
    button_bomb = Button(fig.add_axes([.02, .28, .15, .05]), 'Bomb')

    def read_panel():
        """Snapshot the panel as control-panel options."""
        ball, wind = checks.get_status()
        return {
            'SphereSize': slider_size.val,
            'Bounce': slider_bounce.val,
            'NodeMass': slider_mass.val,
            'ParticleFreq': slider_freq.val,
            'ParticleNumber': int(slider_number.val),
            'Movement': radio_movement.value_selected,
            'Ball': ball,
            'Wind': wind,
        }

    button_reset.on_clicked(lambda _event: sim.post(Command.RESET))
    button_bomb.on_clicked(lambda _event: sim.post(Command.BOMB))

    last_frame = time.perf_counter()

    def update(_):
        nonlocal last_frame
        now = time.perf_counter()
        delta = now - last_frame if args.realtime else args.dt
        last_frame = now

        new_config, commands = SimulationConfig.from_options(read_panel(), base=sim.config)
        sim.set_config(new_config)
        for command in commands:
            sim.post(command)
        report = sim.step(delta)
        if not np.all(np.isfinite(sim.cloth.positions)):
            logger.error("Simulation diverged; closing.")
            plt.close(); return

        time_buf.append(report.time)
        alive_buf.append(report.alive)
        stretch_buf.append(report.stretch)

        times = np.array(time_buf) - time_buf[0]
        line_alive.set_data(times, alive_buf)
        line_stretch.set_data(times, stretch_buf)
        ax_stats.set_xlim(0, max(args.window, times[-1]))
        ax_stats.set_ylim(0, max(new_config.particle_number, 1) * 1.1)
        ax_stretch.set_ylim(0, max(stretch_buf) * 1.2 + 1e-6)

        return (*sink.redraw(), line_alive, line_stretch)

    anim = FuncAnimation(
        fig, update,
        interval=1000 / args.fps,
        blit=False,
        cache_frame_data=False
    )

    plt.show()

if __name__ == '__main__':
    main()
