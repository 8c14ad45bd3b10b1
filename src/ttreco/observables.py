"""Derived ttbar observables computed from a finished reconstruction."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from .models import LorentzVector, ReconstructionStatus
from .reconstructor import ReconstructionResult, TTSemilepReconstructor


@dataclass(frozen=True)
class TTObservables:
    """Kinematics of the reconstructed top quarks and of the tt system.

    All kinematic fields are zero unless `reco_status` is `SUCCESS`.
    """

    best_rank: float
    reco_status: int
    mass_top_lep: float = 0.0
    mass_top_had: float = 0.0
    mass_w_had: float = 0.0
    pt_top_lep: float = 0.0
    pt_top_had: float = 0.0
    mass_tt: float = 0.0
    pt_tt: float = 0.0
    rapidity_tt: float = 0.0
    dr_tt: float = 0.0
    cos_top_lep_tt: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_tt_observables(reco: TTSemilepReconstructor) -> TTObservables:
    """Observables of the last event processed by `reco`."""
    status = reco.status
    if status is None:
        raise RuntimeError("No event has been processed yet.")
    if status is not ReconstructionStatus.SUCCESS:
        return TTObservables(best_rank=0.0, reco_status=int(status))
    return _observables(reco.rank, reco.top_lep_p4(), reco.top_had_p4(), reco.w_had_p4())


def observables_from_result(result: ReconstructionResult) -> TTObservables:
    """Same as `compute_tt_observables`, from a stored per-event result."""
    if not result.is_success:
        return TTObservables(best_rank=0.0, reco_status=int(result.status))
    return _observables(result.rank, result.top_lep_p4, result.top_had_p4, result.w_had_p4)


def _observables(
    rank: float, top_lep: LorentzVector, top_had: LorentzVector, w_had: LorentzVector
) -> TTObservables:
    tt = top_lep + top_had
    # Leptonic top in the tt rest frame, relative to the tt flight direction
    bx, by, bz = tt.boost_vector
    top_lep_rest = top_lep.boost(-bx, -by, -bz)
    norm = top_lep_rest.p * tt.p
    cos_theta = top_lep_rest.dot3(tt) / norm if norm > 0.0 else 0.0
    return TTObservables(
        best_rank=rank,
        reco_status=int(ReconstructionStatus.SUCCESS),
        mass_top_lep=top_lep.mass,
        mass_top_had=top_had.mass,
        mass_w_had=w_had.mass,
        pt_top_lep=top_lep.pt,
        pt_top_had=top_had.pt,
        mass_tt=tt.mass,
        pt_tt=tt.pt,
        rapidity_tt=tt.rapidity,
        dr_tt=top_lep.delta_r(top_had),
        cos_top_lep_tt=cos_theta,
    )
