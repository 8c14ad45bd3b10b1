"""Jet-to-parton assignment engine for semileptonic ttbar events."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from .models import (
    DecayJet,
    EventInput,
    Jet,
    JetSelection,
    Lepton,
    LorentzVector,
    ReconstructionStatus,
)
from .physics import sum_lorentz
from .strategies import RankStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JetAssignment:
    """Indices of the four decay jets in the event's jet collection."""

    b_top_lep: int
    b_top_had: int
    q1_top_had: int
    q2_top_had: int
    rank: float

    def index(self, role: DecayJet) -> int:
        if role is DecayJet.B_TOP_LEP:
            return self.b_top_lep
        if role is DecayJet.B_TOP_HAD:
            return self.b_top_had
        if role is DecayJet.Q1_TOP_HAD:
            return self.q1_top_had
        if role is DecayJet.Q2_TOP_HAD:
            return self.q2_top_had
        raise ValueError(f"Unsupported decay jet {role!r}.")

    @property
    def indices(self) -> tuple[int, int, int, int]:
        return self.b_top_lep, self.b_top_had, self.q1_top_had, self.q2_top_had


@dataclass(frozen=True)
class ReconstructionResult:
    """Per-event snapshot of the reconstruction, detached from the engine."""

    event_id: str
    status: ReconstructionStatus
    rank: float
    assignment: JetAssignment | None = None
    lepton: Lepton | None = None
    neutrino: LorentzVector | None = None
    top_lep_p4: LorentzVector | None = None
    top_had_p4: LorentzVector | None = None
    w_had_p4: LorentzVector | None = None
    n_selected_jets: int = 0

    @property
    def is_success(self) -> bool:
        return self.status is ReconstructionStatus.SUCCESS


class TTSemilepReconstructor:
    """Find the most plausible assignment of jets to the ttbar decay partons.

    Every ordered choice of two b-quark jets combined with an unordered pair of
    light-quark jets is scored with the rank strategy, and the highest score
    wins. Ties keep the assignment that was enumerated first.

    The jet sequence passed to `perform_assignment`/`process_event` is
    borrowed: only indices into it are stored, and it must stay unchanged
    until the next event is processed.
    """

    def __init__(self, strategy: RankStrategy, selection: JetSelection | None = None) -> None:
        self.strategy = strategy
        self.selection = selection or JetSelection()
        self.n_evaluations = 0
        self._jets: Sequence[Jet] = ()
        self._n_selected = 0
        self._assignment: JetAssignment | None = None
        self._status: ReconstructionStatus | None = None

    def set_jet_selection(self, min_pt: float, max_abs_eta: float = math.inf) -> None:
        """Jets with pt below `min_pt` or |eta| above `max_abs_eta` are not considered."""
        self.selection = JetSelection(min_pt=min_pt, max_abs_eta=max_abs_eta)

    def select_jets(
        self,
        jets: Sequence[Jet],
        min_pt: float | None = None,
        max_abs_eta: float | None = None,
    ) -> list[int]:
        """Indices of jets passing the selection.

        Jets must be ordered by decreasing pt: the scan stops at the first jet
        below the pt threshold, while jets failing the eta cut are skipped.
        """
        min_pt = self.selection.min_pt if min_pt is None else min_pt
        max_abs_eta = self.selection.max_abs_eta if max_abs_eta is None else max_abs_eta
        selected: list[int] = []
        for i, jet in enumerate(jets):
            if abs(jet.eta) > max_abs_eta:
                continue
            if jet.pt < min_pt:
                break
            selected.append(i)
        return selected

    def perform_assignment(
        self,
        jets: Sequence[Jet],
        min_pt: float | None = None,
        max_abs_eta: float | None = None,
    ) -> tuple[ReconstructionStatus, JetAssignment | None]:
        """Enumerate all assignments of the selected jets and keep the best one.

        With N selected jets the rank strategy is called exactly
        N(N-1)(N-2)(N-3)/2 times, or not at all when N < 4.
        """
        self._jets = jets
        self._assignment = None
        self.n_evaluations = 0
        selected = self.select_jets(jets, min_pt, max_abs_eta)
        self._n_selected = len(selected)

        if len(selected) < 4:
            self._status = ReconstructionStatus.INSUFFICIENT_JETS
            return self._status, None

        rank = self.strategy.rank
        best_rank = -math.inf
        best: tuple[int, int, int, int] | None = None
        for i_b_lep in selected:
            for i_b_had in selected:
                if i_b_had == i_b_lep:
                    continue
                for k, i_q1 in enumerate(selected):
                    if i_q1 == i_b_lep or i_q1 == i_b_had:
                        continue
                    for i_q2 in selected[k + 1:]:
                        if i_q2 == i_b_lep or i_q2 == i_b_had:
                            continue
                        value = rank(jets, i_b_lep, i_b_had, i_q1, i_q2)
                        self.n_evaluations += 1
                        if value > best_rank:
                            best_rank = value
                            best = (i_b_lep, i_b_had, i_q1, i_q2)

        if best is None:
            self._status = self.strategy.diagnose_failure()
            logger.debug(
                "All %d assignments rejected; status %s",
                self.n_evaluations,
                self._status.name,
            )
            return self._status, None

        self._assignment = JetAssignment(*best, rank=best_rank)
        self._status = ReconstructionStatus.SUCCESS
        return self._status, self._assignment

    def process_event(self, event: EventInput) -> ReconstructionStatus:
        """Reconstruct one event. Failures are reported through the returned status."""
        self._jets = event.jets
        self._assignment = None
        self._n_selected = 0
        self.n_evaluations = 0
        status = self.strategy.begin_event(event)
        if status is not None:
            self._status = status
        else:
            self.perform_assignment(event.jets)
        logger.debug(
            "Event %s: status %s after %d rank evaluations",
            event.event_id,
            self._status.name,
            self.n_evaluations,
        )
        return self._status

    @property
    def status(self) -> ReconstructionStatus | None:
        """Status of the last event, `None` before any event was processed."""
        return self._status

    @property
    def rank(self) -> float:
        return self._assignment.rank if self._assignment is not None else -math.inf

    @property
    def assignment(self) -> JetAssignment | None:
        return self._assignment

    def _require_success(self) -> JetAssignment:
        if self._status is not ReconstructionStatus.SUCCESS or self._assignment is None:
            state = "no event processed" if self._status is None else f"status {self._status.name}"
            raise RuntimeError(f"Reconstruction results are unavailable ({state}).")
        return self._assignment

    def get_jet(self, role: DecayJet) -> Jet:
        """Jet identified for `role` in the last event."""
        return self._jets[self._require_success().index(role)]

    @property
    def lepton(self) -> Lepton:
        self._require_success()
        return self.strategy.lepton

    @property
    def neutrino(self) -> LorentzVector:
        self._require_success()
        return self.strategy.neutrino

    def top_lep_p4(self) -> LorentzVector:
        """Four-momentum of the leptonically decaying top quark."""
        return sum_lorentz((self.get_jet(DecayJet.B_TOP_LEP).p4, self.lepton.p4, self.neutrino))

    def w_had_p4(self) -> LorentzVector:
        """Four-momentum of the hadronically decaying W boson."""
        return self.get_jet(DecayJet.Q1_TOP_HAD).p4 + self.get_jet(DecayJet.Q2_TOP_HAD).p4

    def top_had_p4(self) -> LorentzVector:
        """Four-momentum of the hadronically decaying top quark."""
        return self.get_jet(DecayJet.B_TOP_HAD).p4 + self.w_had_p4()

    def result(self, event_id: str) -> ReconstructionResult:
        """Snapshot the state left by the last processed event."""
        if self._status is None:
            raise RuntimeError("No event has been processed yet.")
        if self._status is not ReconstructionStatus.SUCCESS:
            return ReconstructionResult(
                event_id=event_id,
                status=self._status,
                rank=self.rank,
                n_selected_jets=self._n_selected,
            )
        return ReconstructionResult(
            event_id=event_id,
            status=self._status,
            rank=self.rank,
            assignment=self._assignment,
            lepton=self.lepton,
            neutrino=self.neutrino,
            top_lep_p4=self.top_lep_p4(),
            top_had_p4=self.top_had_p4(),
            w_had_p4=self.w_had_p4(),
            n_selected_jets=self._n_selected,
        )

    def reconstruct_events(self, events: Sequence[EventInput]) -> list[ReconstructionResult]:
        """Run `process_event` on a list of events and collect the results."""
        out: list[ReconstructionResult] = []
        for event in events:
            self.process_event(event)
            out.append(self.result(event.event_id))
        return out

    def clone(self) -> "TTSemilepReconstructor":
        """Independent engine sharing only read-only configuration."""
        return TTSemilepReconstructor(self.strategy.clone(), self.selection)
