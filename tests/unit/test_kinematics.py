"""
Unit tests for jax_fsi/base/kinematics.py

Covers the motion-law registry and the prescribed laws.
"""

import numpy as np
import pytest

from jax_fsi.base import kinematics
from jax_fsi.base.particle_motion import SpringMountedBody
from jax_fsi.config import MotionConfig
from jax_fsi.utils.exceptions import ConfigurationError


def make_state(X, Y, **kwargs):
    X = np.asarray(X, dtype=float)
    Y = np.asarray(Y, dtype=float)
    defaults = dict(
        X=X,
        Y=Y,
        x=X.copy(),
        y=Y.copy(),
        u=np.zeros_like(X),
        v=np.zeros_like(X),
        force_x=np.zeros_like(X),
        force_y=np.zeros_like(X),
        center=(float(X.mean()), float(Y.mean())),
        displacement=(0.0, 0.0),
        center_velocity=(0.0, 0.0),
    )
    defaults.update(kwargs)
    return kinematics.BodyState(**defaults)


@pytest.fixture
def square_state():
    return make_state([-0.5, 0.5, 0.5, -0.5], [-0.5, -0.5, 0.5, 0.5])


class TestRegistry:
    def test_all_laws_registered(self):
        assert set(kinematics.available_motion_laws()) >= {
            "static",
            "rigid_translation",
            "oscillating",
            "spring_mounted",
        }

    @pytest.mark.parametrize(
        "kind, cls",
        [
            ("static", kinematics.StaticBody),
            ("rigid_translation", kinematics.RigidTranslation),
            ("oscillating", kinematics.Oscillation),
            ("spring_mounted", SpringMountedBody),
        ],
    )
    def test_create(self, kind, cls):
        law = kinematics.create_motion_law(MotionConfig(kind=kind))
        assert isinstance(law, cls)

    def test_unknown_law(self):
        config = MotionConfig.model_construct(kind="teleport")
        with pytest.raises(ConfigurationError, match="motion.kind"):
            kinematics.create_motion_law(config)

    def test_flags(self):
        assert not kinematics.StaticBody.moving
        assert kinematics.RigidTranslation.prescribed
        assert kinematics.Oscillation.prescribed
        assert SpringMountedBody.moving and not SpringMountedBody.prescribed


class TestStatic:
    def test_keeps_position(self, square_state):
        law = kinematics.create_motion_law(MotionConfig())
        kin = law.evaluate(square_state, 3.0, 0.1)
        np.testing.assert_array_equal(kin.x, square_state.x)
        assert not kin.u.any()
        assert kin.center_velocity == (0.0, 0.0)


class TestRigidTranslation:
    def test_position_and_velocity(self, square_state):
        law = kinematics.create_motion_law(MotionConfig(kind="rigid_translation", velocity=(0.5, -0.25)))
        kin = law.evaluate(square_state, 2.0, 0.1)
        np.testing.assert_allclose(kin.x, square_state.X + 1.0)
        np.testing.assert_allclose(kin.y, square_state.Y - 0.5)
        np.testing.assert_allclose(kin.u, 0.5)
        np.testing.assert_allclose(kin.v, -0.25)
        assert kin.displacement == (1.0, -0.5)
        assert kin.center_velocity == (0.5, -0.25)


class TestOscillation:
    def test_displacement_function(self):
        d, d_dot = kinematics.displacement((2.0, 0.0), 0.5, 0.0, 0.5)
        # omega t = pi / 2
        np.testing.assert_allclose(d, [0.0, 0.0], atol=1e-15)
        np.testing.assert_allclose(d_dot, [-np.pi, 0.0])

    def test_rotation_function(self):
        alpha, alpha_dot = kinematics.rotation(0.1, 0.2, 1.0, 0.0, 0.0)
        assert alpha == pytest.approx(0.1)
        assert alpha_dot == pytest.approx(0.2 * 2 * np.pi)

    def test_starts_on_reference_geometry(self, square_state):
        config = MotionConfig(
            kind="oscillating", amplitude=(0.0, 1.0), frequency=1.0, pitch_amplitude=0.3, pitch_phase=0.4
        )
        kin = kinematics.create_motion_law(config).evaluate(square_state, 0.0, 0.1)
        np.testing.assert_allclose(kin.x, square_state.X, atol=1e-15)
        np.testing.assert_allclose(kin.y, square_state.Y, atol=1e-15)

    def test_heave_velocity(self, square_state):
        config = MotionConfig(kind="oscillating", amplitude=(0.0, 1.0), frequency=1.0, phase=np.pi / 2)
        kin = kinematics.create_motion_law(config).evaluate(square_state, 0.0, 0.1)
        np.testing.assert_allclose(kin.v, -np.pi)
        np.testing.assert_allclose(kin.u, 0.0)
        assert kin.center_velocity == pytest.approx((0.0, -np.pi))

    def test_pitch_velocity_is_rigid_rotation(self, square_state):
        beta = 0.2
        config = MotionConfig(kind="oscillating", frequency=1.0, pitch_amplitude=beta)
        kin = kinematics.create_motion_law(config).evaluate(square_state, 0.0, 0.1)
        omega = beta * 2 * np.pi
        np.testing.assert_allclose(kin.u, -omega * square_state.Y)
        np.testing.assert_allclose(kin.v, omega * square_state.X)

    def test_preserves_distances(self, square_state):
        config = MotionConfig(
            kind="oscillating", amplitude=(0.4, 0.8), frequency=0.7, pitch_mean=0.1, pitch_amplitude=0.5
        )
        kin = kinematics.create_motion_law(config).evaluate(square_state, 0.37, 0.1)
        before = np.hypot(np.diff(square_state.X), np.diff(square_state.Y))
        after = np.hypot(np.diff(kin.x), np.diff(kin.y))
        np.testing.assert_allclose(after, before)
