"""Public package exports for the semileptonic ttbar reconstruction."""

from .likelihood import ProbabilityTable1D, ProbabilityTable2D, TTLikelihood, load_likelihood
from .models import (
    DecayJet,
    EventInput,
    Jet,
    JetSelection,
    Lepton,
    LeptonFlavour,
    LorentzVector,
    MissingET,
    ReconstructionStatus,
)
from .neutrino import EllipseNeutrinoSolver, WMassNeutrinoReco, solve_w_mass_constraint
from .observables import TTObservables, compute_tt_observables
from .pid import lepton_flavour_from_name, make_electron, make_lepton, make_muon
from .reconstructor import JetAssignment, ReconstructionResult, TTSemilepReconstructor
from .strategies import (
    Chi2Expression,
    Chi2RankStrategy,
    Chi2Term,
    LikelihoodRankStrategy,
    RankStrategy,
)

__all__ = [
    "TTSemilepReconstructor",
    "JetAssignment",
    "ReconstructionResult",
    "RankStrategy",
    "Chi2RankStrategy",
    "Chi2Expression",
    "Chi2Term",
    "LikelihoodRankStrategy",
    "ProbabilityTable1D",
    "ProbabilityTable2D",
    "TTLikelihood",
    "load_likelihood",
    "EllipseNeutrinoSolver",
    "WMassNeutrinoReco",
    "solve_w_mass_constraint",
    "TTObservables",
    "compute_tt_observables",
    "LorentzVector",
    "Jet",
    "Lepton",
    "LeptonFlavour",
    "MissingET",
    "EventInput",
    "JetSelection",
    "DecayJet",
    "ReconstructionStatus",
    "make_electron",
    "make_muon",
    "make_lepton",
    "lepton_flavour_from_name",
]
