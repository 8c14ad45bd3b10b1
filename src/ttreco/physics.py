"""Physics/math helpers shared by the neutrino solvers and the rank strategies."""

from __future__ import annotations

import math
from typing import Iterable

import numpy as np

from .models import LorentzVector, Matrix2x2


def sum_lorentz(vectors: Iterable[LorentzVector]) -> LorentzVector:
    """Sum an iterable of Lorentz vectors."""
    total = LorentzVector(0.0, 0.0, 0.0, 0.0)
    for vec in vectors:
        total = total + vec
    return total


def massless_from_momentum(px: float, py: float, pz: float) -> LorentzVector:
    """Build a zero-mass 4-vector from a 3-momentum."""
    return LorentzVector(px, py, pz, math.sqrt(px * px + py * py + pz * pz))


def rotation_x(angle: float) -> np.ndarray:
    """Matrix for a rotation about the x axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rotation_y(angle: float) -> np.ndarray:
    """Matrix for a rotation about the y axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotation_z(angle: float) -> np.ndarray:
    """Matrix for a rotation about the z axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def covariance_2x2(sigma_x: float, sigma_y: float, rho: float) -> Matrix2x2:
    """Build a 2x2 covariance from standard deviations and a correlation."""
    cov_xy = rho * sigma_x * sigma_y
    return ((sigma_x * sigma_x, cov_xy), (cov_xy, sigma_y * sigma_y))


def invert_2x2(mat: Matrix2x2) -> Matrix2x2 | None:
    """Invert a 2x2 matrix. Return `None` if singular."""
    a, b = mat[0]
    c, d = mat[1]
    det = a * d - b * c
    if abs(det) < 1e-18:
        return None
    inv_det = 1.0 / det
    return ((d * inv_det, -b * inv_det), (-c * inv_det, a * inv_det))
