"""
Kalman filters for per-track state estimation.

State is laid out in blocks: measured components first (cx, cy or
cx, cy, w, h), then their velocities, then accelerations when the constant
acceleration model is on. The measurement is the first block.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Tuple

import cv2
import numpy as np
from filterpy.kalman import MerweScaledSigmaPoints
from filterpy.kalman import UnscentedKalmanFilter as UKF

from .settings import KalmanType, TrackerSettings


MEASUREMENT_NOISE = 0.1
INITIAL_COVARIANCE = 10.0


def motion_model(
    n_meas: int,
    use_acceleration: bool,
    dt: float,
    noise_mag: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Build transition (F), process noise (Q) and measurement (H) matrices.

    Q follows the discrete white-noise model: the noise enters through the
    highest derivative and propagates to position via powers of dt.
    """
    order = 3 if use_acceleration else 2
    n = n_meas * order
    eye = np.eye(n_meas)

    F = np.eye(n)
    F[:n_meas, n_meas:2 * n_meas] = eye * dt
    if use_acceleration:
        F[:n_meas, 2 * n_meas:] = eye * 0.5 * dt ** 2
        F[n_meas:2 * n_meas, 2 * n_meas:] = eye * dt

    if use_acceleration:
        g = np.array([0.5 * dt ** 2, dt, 1.0])
    else:
        g = np.array([0.5 * dt ** 2, dt])
    Q = np.kron(np.outer(g, g), eye) * noise_mag

    H = np.zeros((n_meas, n))
    H[:, :n_meas] = eye
    return F, Q, H


class KalmanTracker(ABC):
    """Common interface for the linear and unscented filters."""

    def __init__(self, initial: np.ndarray, settings: TrackerSettings) -> None:
        self.n_meas = len(initial)
        self.F, self.Q, self.H = motion_model(
            self.n_meas, settings.use_acceleration, settings.dt, settings.accel_noise_mag
        )
        self.n_state = self.F.shape[0]

    @abstractmethod
    def predict(self) -> np.ndarray:
        """Advance one step and return the predicted measurement."""

    @abstractmethod
    def correct(self, measurement: np.ndarray) -> np.ndarray:
        """Fold in a measurement and return the corrected measurement."""

    @property
    @abstractmethod
    def state(self) -> np.ndarray:
        """Full posterior state vector."""

    @property
    def velocity(self) -> Tuple[float, float]:
        """Velocity of the center point, in pixels per time step."""
        s = self.state
        return (float(s[self.n_meas]), float(s[self.n_meas + 1]))


class LinearKalmanTracker(KalmanTracker):
    """cv2.KalmanFilter with a constant velocity or acceleration model."""

    def __init__(self, initial: np.ndarray, settings: TrackerSettings) -> None:
        super().__init__(initial, settings)
        kf = cv2.KalmanFilter(self.n_state, self.n_meas, 0)
        kf.transitionMatrix = self.F.astype(np.float32)
        kf.measurementMatrix = self.H.astype(np.float32)
        kf.processNoiseCov = self.Q.astype(np.float32)
        kf.measurementNoiseCov = np.eye(self.n_meas, dtype=np.float32) * MEASUREMENT_NOISE
        kf.errorCovPost = np.eye(self.n_state, dtype=np.float32) * INITIAL_COVARIANCE
        state = np.zeros((self.n_state, 1), dtype=np.float32)
        state[:self.n_meas, 0] = initial
        kf.statePost = state
        kf.statePre = state.copy()
        self._kf = kf

    def predict(self) -> np.ndarray:
        return self._kf.predict()[:self.n_meas, 0].astype(float)

    def correct(self, measurement: np.ndarray) -> np.ndarray:
        z = np.asarray(measurement, dtype=np.float32).reshape(-1, 1)
        return self._kf.correct(z)[:self.n_meas, 0].astype(float)

    @property
    def state(self) -> np.ndarray:
        return self._kf.statePost[:, 0].astype(float)


class UnscentedKalmanTracker(KalmanTracker):
    """filterpy UKF over the same motion model."""

    def __init__(self, initial: np.ndarray, settings: TrackerSettings) -> None:
        super().__init__(initial, settings)
        F = self.F
        n_meas = self.n_meas
        points = MerweScaledSigmaPoints(n=self.n_state, alpha=0.1, beta=2.0, kappa=0.0)
        self._ukf = UKF(
            dim_x=self.n_state,
            dim_z=n_meas,
            dt=settings.dt,
            fx=lambda x, dt: F @ x,
            hx=lambda x: x[:n_meas],
            points=points,
        )
        x = np.zeros(self.n_state)
        x[:n_meas] = initial
        self._ukf.x = x
        self._ukf.P = np.eye(self.n_state) * INITIAL_COVARIANCE
        self._ukf.R = np.eye(n_meas) * MEASUREMENT_NOISE
        # UKF needs a strictly positive definite Q
        self._ukf.Q = self.Q + np.eye(self.n_state) * 1e-6

    def predict(self) -> np.ndarray:
        self._ukf.predict()
        return self._ukf.x[:self.n_meas].copy()

    def correct(self, measurement: np.ndarray) -> np.ndarray:
        self._ukf.update(np.asarray(measurement, dtype=float))
        return self._ukf.x[:self.n_meas].copy()

    @property
    def state(self) -> np.ndarray:
        return self._ukf.x.copy()


def create_kalman(initial: np.ndarray, settings: TrackerSettings) -> KalmanTracker:
    if settings.kalman_type == KalmanType.UNSCENTED:
        return UnscentedKalmanTracker(initial, settings)
    return LinearKalmanTracker(initial, settings)
