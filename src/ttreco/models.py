"""Core data models used by the ttbar reconstruction.

This module defines:
- immutable physics objects (`LorentzVector`, `Jet`, `Lepton`, `MissingET`)
- event containers (`EventInput`)
- configurable selection controls (`JetSelection`)
- enumerations shared by the engine and its consumers (`DecayJet`,
  `ReconstructionStatus`, `LeptonFlavour`).
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass

Matrix2x2 = tuple[tuple[float, float], tuple[float, float]]


@dataclass(frozen=True)
class LorentzVector:
    """Simple 4-vector with convenience properties and addition."""

    px: float
    py: float
    pz: float
    e: float

    @classmethod
    def from_pt_eta_phi_m(cls, pt: float, eta: float, phi: float, mass: float) -> "LorentzVector":
        """Build a 4-vector from collider coordinates and a mass."""
        px = pt * math.cos(phi)
        py = pt * math.sin(phi)
        pz = pt * math.sinh(eta)
        p2 = px * px + py * py + pz * pz
        m2 = mass * mass if mass >= 0.0 else -mass * mass
        return cls(px, py, pz, math.sqrt(max(p2 + m2, 0.0)))

    @classmethod
    def from_pt_eta_phi_e(cls, pt: float, eta: float, phi: float, e: float) -> "LorentzVector":
        """Build a 4-vector from collider coordinates and an energy."""
        return cls(pt * math.cos(phi), pt * math.sin(phi), pt * math.sinh(eta), e)

    def __add__(self, other: "LorentzVector") -> "LorentzVector":
        """Component-wise 4-vector addition."""
        return LorentzVector(
            self.px + other.px,
            self.py + other.py,
            self.pz + other.pz,
            self.e + other.e,
        )

    def __sub__(self, other: "LorentzVector") -> "LorentzVector":
        return LorentzVector(
            self.px - other.px,
            self.py - other.py,
            self.pz - other.pz,
            self.e - other.e,
        )

    @property
    def p2(self) -> float:
        """Squared 3-momentum magnitude."""
        return self.px * self.px + self.py * self.py + self.pz * self.pz

    @property
    def p(self) -> float:
        return math.sqrt(self.p2)

    @property
    def pt(self) -> float:
        return math.hypot(self.px, self.py)

    @property
    def phi(self) -> float:
        return math.atan2(self.py, self.px)

    @property
    def theta(self) -> float:
        return math.atan2(self.pt, self.pz)

    @property
    def eta(self) -> float:
        """Pseudorapidity, saturated for vectors along the beam axis."""
        p = self.p
        if p == abs(self.pz):
            return 1e9 if self.pz >= 0 else -1e9
        return 0.5 * math.log((p + self.pz) / (p - self.pz))

    @property
    def rapidity(self) -> float:
        return 0.5 * math.log((self.e + self.pz) / (self.e - self.pz))

    @property
    def mass2(self) -> float:
        """Invariant mass squared."""
        return self.e * self.e - self.p2

    @property
    def mass(self) -> float:
        """Invariant mass with signed handling for small negative mass2 values."""
        m2 = self.mass2
        return m2**0.5 if m2 >= 0.0 else -((-m2) ** 0.5)

    @property
    def boost_vector(self) -> tuple[float, float, float]:
        """Velocity `(px, py, pz) / e` of the frame in which this vector is at rest."""
        return self.px / self.e, self.py / self.e, self.pz / self.e

    def boost(self, bx: float, by: float, bz: float) -> "LorentzVector":
        """Return this vector boosted by velocity `(bx, by, bz)`."""
        b2 = bx * bx + by * by + bz * bz
        gamma = 1.0 / math.sqrt(1.0 - b2)
        bp = bx * self.px + by * self.py + bz * self.pz
        gamma2 = (gamma - 1.0) / b2 if b2 > 0.0 else 0.0
        return LorentzVector(
            self.px + gamma2 * bp * bx + gamma * bx * self.e,
            self.py + gamma2 * bp * by + gamma * by * self.e,
            self.pz + gamma2 * bp * bz + gamma * bz * self.e,
            gamma * (self.e + bp),
        )

    def dot3(self, other: "LorentzVector") -> float:
        """Scalar product of the 3-momenta."""
        return self.px * other.px + self.py * other.py + self.pz * other.pz

    def angle(self, other: "LorentzVector") -> float:
        """Opening angle between the 3-momenta."""
        norm = self.p * other.p
        if norm <= 0.0:
            return 0.0
        return math.acos(max(-1.0, min(1.0, self.dot3(other) / norm)))

    def delta_r(self, other: "LorentzVector") -> float:
        dphi = math.remainder(self.phi - other.phi, 2.0 * math.pi)
        deta = self.eta - other.eta
        return math.sqrt(deta * deta + dphi * dphi)


ZERO_VECTOR = LorentzVector(0.0, 0.0, 0.0, 0.0)


class LeptonFlavour(enum.Enum):
    """Charged-lepton flavours handled by the reconstruction."""

    ELECTRON = "e"
    MUON = "mu"


class DecayJet(enum.Enum):
    """Jets to be identified in the final state tt -> blv bqq."""

    B_TOP_LEP = "bTopLep"
    B_TOP_HAD = "bTopHad"
    Q1_TOP_HAD = "q1TopHad"
    Q2_TOP_HAD = "q2TopHad"


class ReconstructionStatus(enum.IntEnum):
    """Outcome of the reconstruction of one event."""

    SUCCESS = 0
    NO_LEPTON_OR_NEUTRINO = 1
    NO_VALID_NEUTRINO = 2
    NEUTRINO_LIKELIHOOD_OUT_OF_RANGE = 3
    MASS_LIKELIHOOD_OUT_OF_RANGE = 4
    UNSPECIFIED = 5
    INSUFFICIENT_JETS = 6


@dataclass(frozen=True)
class Jet:
    """Reconstructed jet with its b-tagging discriminant."""

    p4: LorentzVector
    btag: float = 0.0

    @property
    def pt(self) -> float:
        return self.p4.pt

    @property
    def eta(self) -> float:
        return self.p4.eta

    @property
    def phi(self) -> float:
        return self.p4.phi

    def is_tagged(self, threshold: float) -> bool:
        """Check the discriminant against a working-point threshold."""
        return self.btag > threshold


@dataclass(frozen=True)
class Lepton:
    """Reconstructed charged lepton."""

    p4: LorentzVector
    flavour: LeptonFlavour = LeptonFlavour.MUON
    charge: int = 0

    @property
    def pt(self) -> float:
        return self.p4.pt

    @property
    def eta(self) -> float:
        return self.p4.eta


@dataclass(frozen=True)
class MissingET:
    """Missing transverse momentum with an optional 2x2 covariance."""

    px: float
    py: float
    cov: Matrix2x2 | None = None

    @classmethod
    def from_pt_phi(cls, pt: float, phi: float, cov: Matrix2x2 | None = None) -> "MissingET":
        return cls(pt * math.cos(phi), pt * math.sin(phi), cov)

    @property
    def pt(self) -> float:
        return math.hypot(self.px, self.py)

    @property
    def phi(self) -> float:
        return math.atan2(self.py, self.px)

    @property
    def p4(self) -> LorentzVector:
        return LorentzVector(self.px, self.py, 0.0, self.pt)

    def errors(self) -> tuple[float, float, float]:
        """Return `(sigma_x, sigma_y, rho)`; unit errors when no covariance is known."""
        if self.cov is None:
            return 1.0, 1.0, 0.0
        if self.cov[0][0] <= 0.0 or self.cov[1][1] <= 0.0:
            raise ValueError("MET covariance must have positive diagonal elements.")
        sx = math.sqrt(self.cov[0][0])
        sy = math.sqrt(self.cov[1][1])
        return sx, sy, self.cov[0][1] / (sx * sy)


@dataclass(frozen=True)
class EventInput:
    """One event payload: pt-ordered jets, pt-ordered leptons, and MET."""

    event_id: str
    jets: tuple[Jet, ...]
    leptons: tuple[Lepton, ...]
    met: MissingET

    @property
    def leading_lepton(self) -> Lepton | None:
        return self.leptons[0] if self.leptons else None


@dataclass(frozen=True)
class JetSelection:
    """Jet-level selection applied before the assignment combinatorics."""

    min_pt: float = 0.0
    max_abs_eta: float = math.inf
