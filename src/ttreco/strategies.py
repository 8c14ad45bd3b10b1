"""Rank strategies plugged into the jet-assignment engine.

A strategy scores one jet-to-parton assignment at a time. The engine calls
`begin_event` once per event, then `rank` for every assignment it
enumerates, and `diagnose_failure` if no assignment received a finite rank.
Strategies hold per-event state, so one instance must not be shared by two
engines processing events at the same time; use `clone` instead.
"""

from __future__ import annotations

import abc
import enum
import logging
import math
from dataclasses import dataclass
from typing import Sequence

from .likelihood import TTLikelihood
from .models import EventInput, Jet, Lepton, LorentzVector, ReconstructionStatus
from .neutrino import EllipseNeutrinoSolver, WMassNeutrinoReco

logger = logging.getLogger(__name__)


class RankStrategy(abc.ABC):
    """Scoring policy used by `TTSemilepReconstructor`."""

    @abc.abstractmethod
    def begin_event(self, event: EventInput) -> ReconstructionStatus | None:
        """Prepare per-event state.

        Returns a terminal status if the event cannot be evaluated at all, in
        which case the engine skips the enumeration. Returns `None` otherwise.
        """

    @abc.abstractmethod
    def rank(
        self,
        jets: Sequence[Jet],
        i_b_lep: int,
        i_b_had: int,
        i_q1: int,
        i_q2: int,
    ) -> float:
        """Score one assignment; `-inf` rejects it."""

    @abc.abstractmethod
    def diagnose_failure(self) -> ReconstructionStatus:
        """Status to report when every assignment of the event was rejected."""

    @property
    @abc.abstractmethod
    def lepton(self) -> Lepton | None:
        """Lepton used in the current event."""

    @property
    @abc.abstractmethod
    def neutrino(self) -> LorentzVector | None:
        """Neutrino that goes with the best assignment seen in the current event."""

    @abc.abstractmethod
    def clone(self) -> "RankStrategy":
        """New strategy with the same configuration and no per-event state."""


class Chi2Expression(enum.Enum):
    """Observables that can enter the chi-squared sum."""

    MASS_TOP_LEP = "MassTopLep"
    MASS_TOP_HAD = "MassTopHad"
    MASS_W_HAD = "MassWHad"
    PT_TT = "PtTT"


def chi2_expression_from_name(name: str) -> Chi2Expression:
    """Resolve `MASS_TOP_HAD`, `mass_top_had` or `MassTopHad` into an expression."""
    key = name.strip()
    for expression in Chi2Expression:
        if key.upper() == expression.name or key == expression.value:
            return expression
    supported = ", ".join(e.value for e in Chi2Expression)
    raise ValueError(f"Unknown chi2 expression '{name}'. Supported expressions: {supported}")


@dataclass(frozen=True)
class Chi2Term:
    """One `((x - mean) / variance)^2` contribution to the chi-squared."""

    expression: Chi2Expression
    mean: float
    variance: float

    def __call__(self, value: float) -> float:
        pull = (value - self.mean) / self.variance
        return pull * pull


class Chi2RankStrategy(RankStrategy):
    """Rank assignments by `-chi2` of reconstructed masses and pt.

    Neutrino candidates come from the W-mass constraint and are computed once
    per event. For every assignment the candidate with the smallest chi2 is
    used. The neutrino reported after the search is the one that gave the
    smallest chi2 over the whole event.
    """

    def __init__(
        self,
        terms: Sequence[Chi2Term] = (),
        neutrino_reco: WMassNeutrinoReco | None = None,
    ) -> None:
        self._terms: tuple[Chi2Term, ...] = ()
        for term in terms:
            self.add_chi2_term(term.expression, term.mean, term.variance)
        self.neutrino_reco = neutrino_reco or WMassNeutrinoReco()
        self._lepton: Lepton | None = None
        self._candidates: list[LorentzVector] = []
        self._ready = False
        self._best_chi2 = math.inf
        self._neutrino: LorentzVector | None = None

    @property
    def terms(self) -> tuple[Chi2Term, ...]:
        return self._terms

    def add_chi2_term(self, expression: Chi2Expression | str, mean: float, variance: float) -> None:
        """Append a term to the chi-squared sum."""
        if isinstance(expression, str):
            expression = chi2_expression_from_name(expression)
        if not isinstance(expression, Chi2Expression):
            raise ValueError(f"Unsupported chi2 expression {expression!r}.")
        if variance == 0.0:
            raise ValueError(f"Chi2 term {expression.value} must have a non-zero variance.")
        self._terms = self._terms + (Chi2Term(expression, float(mean), float(variance)),)

    def begin_event(self, event: EventInput) -> ReconstructionStatus | None:
        self._lepton = event.leading_lepton
        self._candidates = self.neutrino_reco(event)
        self._best_chi2 = math.inf
        self._neutrino = None
        self._ready = True
        if self._lepton is None or not self._candidates:
            logger.debug(
                "Event %s: %s",
                event.event_id,
                "no lepton" if self._lepton is None else "no neutrino candidate",
            )
            return ReconstructionStatus.NO_LEPTON_OR_NEUTRINO
        return None

    def rank(
        self,
        jets: Sequence[Jet],
        i_b_lep: int,
        i_b_had: int,
        i_q1: int,
        i_q2: int,
    ) -> float:
        if not self._ready:
            raise RuntimeError("Chi2RankStrategy.rank called before begin_event.")
        if self._lepton is None:
            raise RuntimeError("Chi2RankStrategy.rank called for an event without a lepton.")
        b_lep = jets[i_b_lep].p4
        w_had = jets[i_q1].p4 + jets[i_q2].p4
        top_had = w_had + jets[i_b_had].p4
        visible_lep = b_lep + self._lepton.p4

        best_chi2 = math.inf
        best_nu: LorentzVector | None = None
        for nu in self._candidates:
            top_lep = visible_lep + nu
            values = {
                Chi2Expression.MASS_TOP_LEP: top_lep.mass,
                Chi2Expression.MASS_TOP_HAD: top_had.mass,
                Chi2Expression.MASS_W_HAD: w_had.mass,
                Chi2Expression.PT_TT: (top_lep + top_had).pt,
            }
            chi2 = sum(term(values[term.expression]) for term in self._terms)
            if chi2 < best_chi2:
                best_chi2 = chi2
                best_nu = nu

        if best_chi2 < self._best_chi2:
            self._best_chi2 = best_chi2
            self._neutrino = best_nu
        return -best_chi2

    def diagnose_failure(self) -> ReconstructionStatus:
        return ReconstructionStatus.UNSPECIFIED

    @property
    def lepton(self) -> Lepton | None:
        return self._lepton

    @property
    def neutrino(self) -> LorentzVector | None:
        return self._neutrino

    @property
    def candidates(self) -> list[LorentzVector]:
        """Neutrino candidates of the current event."""
        return list(self._candidates)

    def clone(self) -> "Chi2RankStrategy":
        return Chi2RankStrategy(self._terms, self.neutrino_reco)


class LikelihoodRankStrategy(RankStrategy):
    """Rank assignments by a log-likelihood built from two probability tables.

    The leptonic side contributes the density of the distance between the
    ellipse solution and the measured MET; the hadronic side contributes the
    density of (m_W, m_top). The neutrino solution only depends on the
    leptonic b-quark jet, which is the outermost loop of the engine, so it is
    cached by jet index and reused until that jet changes.
    """

    def __init__(
        self,
        likelihood: TTLikelihood,
        w_mass: float = 80.0,
        top_mass: float = 173.0,
        use_cache: bool = True,
        use_met_covariance: bool = False,
    ) -> None:
        self.likelihood = likelihood
        self.w_mass = w_mass
        self.top_mass = top_mass
        self.use_cache = use_cache
        self.use_met_covariance = use_met_covariance
        self._event: EventInput | None = None
        self._lepton: Lepton | None = None
        self._met_errors = (1.0, 1.0, 0.0)
        self._reset_event_state()

    def _reset_event_state(self) -> None:
        self._cached_b_lep: int | None = None
        self._cached_neutrino: LorentzVector | None = None
        self._cached_log_nu = -math.inf
        self._best_log_likelihood = -math.inf
        self._neutrino: LorentzVector | None = None
        self._neutrino_reconstructed = False
        self._neutrino_in_range = False
        self._mass_in_range = False

    def begin_event(self, event: EventInput) -> ReconstructionStatus | None:
        self._reset_event_state()
        self._event = event
        self._lepton = event.leading_lepton
        if self._lepton is None:
            logger.debug("Event %s: no lepton", event.event_id)
            return ReconstructionStatus.NO_LEPTON_OR_NEUTRINO
        self._met_errors = event.met.errors() if self.use_met_covariance else (1.0, 1.0, 0.0)
        return None

    def rank(
        self,
        jets: Sequence[Jet],
        i_b_lep: int,
        i_b_had: int,
        i_q1: int,
        i_q2: int,
    ) -> float:
        if self._event is None:
            raise RuntimeError("LikelihoodRankStrategy.rank called before begin_event.")
        if self._lepton is None:
            return -math.inf

        if self.use_cache and self._cached_b_lep == i_b_lep:
            neutrino = self._cached_neutrino
            log_nu = self._cached_log_nu
        else:
            solver = EllipseNeutrinoSolver(
                self._lepton.p4, jets[i_b_lep].p4, self.w_mass, self.top_mass
            )
            if not solver.is_reconstructable:
                return -math.inf
            met = self._event.met
            neutrino, fom = solver.get_best(met.px, met.py, *self._met_errors)
            self._neutrino_reconstructed = True
            log_nu = self.likelihood.neutrino.log_density(math.sqrt(fom))
            if log_nu is None:
                return -math.inf
            self._neutrino_in_range = True
            if self.use_cache:
                self._cached_b_lep = i_b_lep
                self._cached_neutrino = neutrino
                self._cached_log_nu = log_nu

        w_had = jets[i_q1].p4 + jets[i_q2].p4
        top_had = w_had + jets[i_b_had].p4
        log_mass = self.likelihood.mass.log_density(w_had.mass, top_had.mass)
        if log_mass is None:
            return -math.inf
        self._mass_in_range = True

        log_likelihood = log_nu + log_mass
        if log_likelihood > self._best_log_likelihood:
            self._best_log_likelihood = log_likelihood
            self._neutrino = neutrino
        return log_likelihood

    def diagnose_failure(self) -> ReconstructionStatus:
        if not self._neutrino_reconstructed:
            return ReconstructionStatus.NO_VALID_NEUTRINO
        if not self._neutrino_in_range:
            return ReconstructionStatus.NEUTRINO_LIKELIHOOD_OUT_OF_RANGE
        if not self._mass_in_range:
            return ReconstructionStatus.MASS_LIKELIHOOD_OUT_OF_RANGE
        return ReconstructionStatus.UNSPECIFIED

    @property
    def lepton(self) -> Lepton | None:
        return self._lepton

    @property
    def neutrino(self) -> LorentzVector | None:
        return self._neutrino

    def clone(self) -> "LikelihoodRankStrategy":
        return LikelihoodRankStrategy(
            self.likelihood,
            w_mass=self.w_mass,
            top_mass=self.top_mass,
            use_cache=self.use_cache,
            use_met_covariance=self.use_met_covariance,
        )
