"""Neutrino reconstruction from a charged lepton and missing transverse momentum.

Two independent solvers are provided:
- `solve_w_mass_constraint` imposes m(l + nu) = m(W) with the neutrino pt
  fixed to the measured MET and returns 0, 1, or 2 candidates.
- `EllipseNeutrinoSolver` adds the top-quark mass constraint with a b-quark
  jet. Solutions then lie on an ellipse in neutrino-momentum space, and the
  point closest to the measured MET is chosen [Betchart, Demina, Harel,
  Nucl. Instrum. Meth. A736 (2014) 169].
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np
from scipy.optimize import minimize_scalar

from .models import ZERO_VECTOR, EventInput, LorentzVector
from .physics import (
    covariance_2x2,
    invert_2x2,
    massless_from_momentum,
    rotation_x,
    rotation_y,
    rotation_z,
)

logger = logging.getLogger(__name__)

W_MASS = 80.419


def solve_w_mass_constraint(
    lepton_p4: LorentzVector,
    met_px: float,
    met_py: float,
    w_mass: float = W_MASS,
) -> list[LorentzVector]:
    """Solve m(l + nu) = m(W) for the longitudinal momentum of the neutrino.

    The neutrino transverse momentum is taken from MET. When the quadratic
    equation for pz has no real roots, MET is rescaled along its own
    direction by the smallest amount that makes the discriminant vanish, and
    the single resulting solution is returned. An empty list means that no
    solution could be found.
    """
    a, b, c = _pz_coefficients(lepton_p4, met_px, met_py, w_mass)

    if a == 0.0:
        # Linear equation; only reachable for a massless lepton along the beam
        if b == 0.0:
            logger.debug("Degenerate W-mass constraint (a = b = 0); no neutrino built.")
            return []
        return [massless_from_momentum(met_px, met_py, -c / b)]

    discriminant = b * b - 4.0 * a * c
    if discriminant > 0.0:
        root = math.sqrt(discriminant)
        return [
            massless_from_momentum(met_px, met_py, (-b - root) / (2.0 * a)),
            massless_from_momentum(met_px, met_py, (-b + root) / (2.0 * a)),
        ]

    met_pt = math.hypot(met_px, met_py)
    met_phi = math.atan2(met_py, met_px)
    adjusted_met = _adjusted_met(lepton_p4, met_pt, met_phi, w_mass)
    if adjusted_met is None:
        logger.debug("No positive MET value zeroes the discriminant; no neutrino built.")
        return []

    adj_px = adjusted_met * math.cos(met_phi)
    adj_py = adjusted_met * math.sin(met_phi)
    a_adj, b_adj, _ = _pz_coefficients(lepton_p4, adj_px, adj_py, w_mass)
    return [massless_from_momentum(adj_px, adj_py, -b_adj / (2.0 * a_adj))]


def _pz_coefficients(
    lepton_p4: LorentzVector, met_px: float, met_py: float, w_mass: float
) -> tuple[float, float, float]:
    """Coefficients of `a * pz^2 + b * pz + c = 0` from the W-mass constraint."""
    ratio = lepton_p4.pz / lepton_p4.e
    lam = (
        w_mass * w_mass
        - lepton_p4.mass ** 2
        + 2.0 * (met_px * lepton_p4.px + met_py * lepton_p4.py)
    ) / (2.0 * lepton_p4.e)
    a = 1.0 - ratio * ratio
    b = -2.0 * ratio * lam
    c = met_px * met_px + met_py * met_py - lam * lam
    return a, b, c


def _adjusted_met(
    lepton_p4: LorentzVector, met_pt: float, met_phi: float, w_mass: float
) -> float | None:
    """Find the MET magnitude along `met_phi` that zeroes the pz discriminant.

    Solves `u * MET^2 + v * MET + w = 0`; returns `None` if no root is positive.
    """
    energy = lepton_p4.e
    # Lepton transverse momentum projected onto the MET direction
    gamma = lepton_p4.px * math.cos(met_phi) + lepton_p4.py * math.sin(met_phi)
    k = (w_mass * w_mass - lepton_p4.mass ** 2) / (2.0 * energy)

    u = (lepton_p4.pz / energy) ** 2 + (gamma / energy) ** 2 - 1.0
    v = 2.0 * k * gamma / energy
    w = k * k

    if u == 0.0:
        if v == 0.0:
            return None
        met = -w / v
        return met if met > 0.0 else None

    discriminant = v * v - 4.0 * u * w
    if discriminant < 0.0:
        return None
    root = math.sqrt(discriminant)
    met1 = (-v - root) / (2.0 * u)
    met2 = (-v + root) / (2.0 * u)

    if met1 > 0.0 and met2 > 0.0:
        # Choose the solution closest to the measured MET
        return met1 if abs(met_pt - met1) < abs(met_pt - met2) else met2
    if met1 > 0.0:
        return met1
    if met2 > 0.0:
        return met2
    return None


@dataclass(frozen=True)
class WMassNeutrinoReco:
    """Per-event neutrino candidates from the leading lepton and MET."""

    w_mass: float = W_MASS

    def __call__(self, event: EventInput) -> list[LorentzVector]:
        lepton = event.leading_lepton
        if lepton is None:
            return []
        return solve_w_mass_constraint(lepton.p4, event.met.px, event.met.py, self.w_mass)


class EllipseNeutrinoSolver:
    """Neutrino from t -> b l nu using both the top-quark and W-boson masses.

    The two mass constraints confine the neutrino momentum to an ellipse,
    parameterised as `p(t) = H @ (cos t, sin t, 1)`. `H` is built in a frame
    where the lepton points along x and the b-quark jet lies in the upper
    x-y half-plane, and rotated back to the lab frame.

    If no ellipse exists for the lepton and jet (in particular when
    m(l + b) exceeds the top-quark mass), `is_reconstructable` is false and
    `get_best` returns a zero vector with a figure of merit of -1.
    """

    n_scan = 64

    def __init__(
        self,
        lepton_p4: LorentzVector,
        bjet_p4: LorentzVector,
        w_mass: float = 80.0,
        top_mass: float = 173.0,
        neutrino_mass: float = 0.0,
    ) -> None:
        self.w_mass = w_mass
        self.top_mass = top_mass
        self.neutrino_mass = neutrino_mass
        self._h = self._build_ellipse(lepton_p4, bjet_p4)

    @property
    def is_reconstructable(self) -> bool:
        return self._h is not None

    def _build_ellipse(self, lep: LorentzVector, bjet: LorentzVector) -> np.ndarray | None:
        """Return the 3x3 ellipse matrix in the lab frame, or `None` if there is no solution."""
        if (lep + bjet).mass > self.top_mass:
            return None
        p_l, p_b = lep.p, bjet.p
        e_l, e_b = lep.e, bjet.e
        if p_l <= 0.0 or p_b <= 0.0 or e_l <= 0.0 or e_b <= 0.0:
            return None

        rot = rotation_y(0.5 * math.pi - lep.theta) @ rotation_z(-lep.phi)
        b_vec = np.array([bjet.px, bjet.py, bjet.pz])
        b_rot = rot @ b_vec
        rot = rotation_x(-math.atan2(b_rot[2], b_rot[1])) @ rot
        b_rot = rot @ b_vec
        cos_bl = b_rot[0] / p_b
        sin_bl = b_rot[1] / p_b
        if sin_bl < 1e-12:
            # Collinear lepton and jet
            return None

        beta_l = p_l / e_l
        beta_b = p_b / e_b
        inv_gamma2_l = lep.mass2 / (e_l * e_l)
        mw2 = self.w_mass * self.w_mass
        mn2 = self.neutrino_mass * self.neutrino_mass

        # E_nu = beta_l * x - x0 from m(l + nu) = mW
        x0 = -(mw2 - lep.mass2 - mn2) / (2.0 * e_l)
        # E_nu = beta_b * (cos_bl * x + sin_bl * y) + d from m(l + nu + b) = mt
        d = (
            (self.top_mass * self.top_mass - mw2 - bjet.mass2) / (2.0 * e_b)
            - e_l
            + beta_b * cos_bl * p_l
        )
        # Both planes intersect along y = omega * x + y0
        omega = (beta_l / beta_b - cos_bl) / sin_bl
        y0 = -(x0 + d) / (beta_b * sin_bl)
        big_omega2 = omega * omega + inv_gamma2_l
        if big_omega2 <= 0.0:
            return None

        lin = beta_l * x0 + omega * y0
        x_centre = -lin / big_omega2
        z2 = lin * lin / big_omega2 + x0 * x0 - mn2 - y0 * y0
        if z2 < 0.0:
            return None

        z = math.sqrt(z2)
        big_omega = math.sqrt(big_omega2)
        h_tilde = np.array(
            [
                [z / big_omega, 0.0, x_centre],
                [omega * z / big_omega, 0.0, omega * x_centre + y0],
                [0.0, z, 0.0],
            ]
        )
        return rot.T @ h_tilde

    def _momentum(self, t: float) -> np.ndarray:
        if self._h is None:
            raise RuntimeError("Neutrino cannot be reconstructed for this lepton and b-quark jet.")
        return self._h @ np.array([math.cos(t), math.sin(t), 1.0])

    def solution(self, t: float) -> LorentzVector:
        """Neutrino four-momentum at ellipse parameter `t`."""
        px, py, pz = (float(x) for x in self._momentum(t))
        mn2 = self.neutrino_mass * self.neutrino_mass
        return LorentzVector(px, py, pz, math.sqrt(px * px + py * py + pz * pz + mn2))

    def pt_solution(self, t: float) -> tuple[float, float]:
        """Transverse components of the neutrino momentum at parameter `t`."""
        p = self._momentum(t)
        return float(p[0]), float(p[1])

    def chi2(
        self,
        t: float,
        met_x: float,
        met_y: float,
        met_x_err: float = 1.0,
        met_y_err: float = 1.0,
        met_xy_corr: float = 0.0,
    ) -> float:
        """Squared (Mahalanobis) distance between the solution at `t` and MET."""
        weight = _inverse_met_covariance(met_x_err, met_y_err, met_xy_corr)
        return self._distance2(t, np.array([met_x, met_y]), weight)

    def _distance2(self, t: float, met: np.ndarray, weight: np.ndarray) -> float:
        diff = self._momentum(t)[:2] - met
        return float(diff @ weight @ diff)

    def get_best(
        self,
        met_x: float,
        met_y: float,
        met_x_err: float = 1.0,
        met_y_err: float = 1.0,
        met_xy_corr: float = 0.0,
    ) -> tuple[LorentzVector, float]:
        """Find the point on the ellipse closest to the measured MET.

        Returns the neutrino four-momentum and the minimised squared distance.
        With unit errors and no correlation this is the Euclidean distance in
        the transverse plane, as in the published algorithm.
        """
        if self._h is None:
            return ZERO_VECTOR, -1.0

        weight = _inverse_met_covariance(met_x_err, met_y_err, met_xy_corr)
        met = np.array([met_x, met_y])
        step = 2.0 * math.pi / self.n_scan
        grid = [i * step for i in range(self.n_scan)]
        values = [self._distance2(t, met, weight) for t in grid]

        best_t = grid[0]
        best_value = math.inf
        for i, value in enumerate(values):
            # Refine every local minimum of the periodic scan
            if value > values[i - 1] or value > values[(i + 1) % self.n_scan]:
                continue
            res = minimize_scalar(
                self._distance2,
                bounds=(grid[i] - step, grid[i] + step),
                args=(met, weight),
                method="bounded",
                options={"xatol": 1e-10},
            )
            t, refined = (float(res.x), float(res.fun)) if res.fun < value else (grid[i], value)
            if refined < best_value:
                best_t = t
                best_value = refined

        return self.solution(best_t), best_value


def _inverse_met_covariance(sigma_x: float, sigma_y: float, rho: float) -> np.ndarray:
    inv = invert_2x2(covariance_2x2(sigma_x, sigma_y, rho))
    if inv is None:
        raise ValueError(
            f"Singular MET covariance (sigma_x={sigma_x}, sigma_y={sigma_y}, rho={rho})."
        )
    return np.array(inv)
