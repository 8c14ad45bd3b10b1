"""Unit tests for the jet-assignment engine."""

from __future__ import annotations

import math
import unittest

from event_builders import jets_from_pt

from ttreco import (
    DecayJet,
    EventInput,
    JetSelection,
    MissingET,
    RankStrategy,
    ReconstructionStatus,
    TTSemilepReconstructor,
    make_muon,
)


class ScriptedStrategy(RankStrategy):
    """Strategy with a configurable rank function that records every call."""

    def __init__(self, rank_fn=None, precondition=None, failure=ReconstructionStatus.UNSPECIFIED):
        self.rank_fn = rank_fn or (lambda jets, a, b, c, d: 0.0)
        self.precondition = precondition
        self.failure = failure
        self.calls: list[tuple[int, int, int, int]] = []
        self._lepton = None

    def begin_event(self, event):
        self.calls = []
        self._lepton = event.leading_lepton
        return self.precondition

    def rank(self, jets, i_b_lep, i_b_had, i_q1, i_q2):
        self.calls.append((i_b_lep, i_b_had, i_q1, i_q2))
        return self.rank_fn(jets, i_b_lep, i_b_had, i_q1, i_q2)

    def diagnose_failure(self):
        return self.failure

    @property
    def lepton(self):
        return self._lepton

    @property
    def neutrino(self):
        return make_muon(1.0, 0.0, 0.0).p4

    def clone(self):
        return ScriptedStrategy(self.rank_fn, self.precondition, self.failure)


def _event(pts, etas=None, event_id="evt") -> EventInput:
    return EventInput(
        event_id=event_id,
        jets=jets_from_pt(pts, etas),
        leptons=(make_muon(40.0, 0.3, 1.0),),
        met=MissingET(20.0, -5.0),
    )


class TestJetSelection(unittest.TestCase):
    """Validate the pt/eta selection ahead of the combinatorics."""

    def test_pt_cut_stops_the_scan(self) -> None:
        jets = jets_from_pt([100.0, 80.0, 60.0, 20.0, 50.0, 40.0], [0.0, 3.0, 0.0, 0.0, 0.0, 0.0])
        reco = TTSemilepReconstructor(ScriptedStrategy(), JetSelection(min_pt=30.0, max_abs_eta=2.5))
        # Jets after the first soft jet are never considered, even if harder
        self.assertEqual(reco.select_jets(jets), [0, 2])

    def test_eta_cut_does_not_stop_the_scan(self) -> None:
        jets = jets_from_pt([100.0, 10.0, 60.0], [0.0, 3.0, -1.0])
        reco = TTSemilepReconstructor(ScriptedStrategy())
        self.assertEqual(reco.select_jets(jets, min_pt=30.0, max_abs_eta=2.5), [0, 2])

    def test_set_jet_selection(self) -> None:
        reco = TTSemilepReconstructor(ScriptedStrategy())
        reco.set_jet_selection(45.0)
        self.assertEqual(reco.selection, JetSelection(min_pt=45.0, max_abs_eta=math.inf))
        self.assertEqual(reco.select_jets(jets_from_pt([100.0, 50.0, 40.0])), [0, 1])


class TestAssignmentEngine(unittest.TestCase):
    """Validate enumeration, tie-breaking and per-event state."""

    def test_number_of_rank_evaluations(self) -> None:
        for n in range(4, 9):
            strategy = ScriptedStrategy()
            reco = TTSemilepReconstructor(strategy)
            status = reco.process_event(_event([100.0 - 5.0 * i for i in range(n)]))
            expected = n * (n - 1) * (n - 2) * (n - 3) // 2
            self.assertIs(status, ReconstructionStatus.SUCCESS)
            self.assertEqual(reco.n_evaluations, expected)
            self.assertEqual(len(strategy.calls), expected)
            self.assertEqual(len(set(strategy.calls)), expected)

    def test_enumerated_tuples_respect_roles(self) -> None:
        strategy = ScriptedStrategy()
        TTSemilepReconstructor(strategy).process_event(_event([90.0, 80.0, 70.0, 60.0, 50.0]))
        for b_lep, b_had, q1, q2 in strategy.calls:
            self.assertNotEqual(b_lep, b_had)
            self.assertNotIn(q1, (b_lep, b_had))
            self.assertNotIn(q2, (b_lep, b_had))
            self.assertGreater(q2, q1)

    def test_four_jets(self) -> None:
        strategy = ScriptedStrategy()
        reco = TTSemilepReconstructor(strategy)
        self.assertIs(reco.process_event(_event([90.0, 80.0, 70.0, 60.0])), ReconstructionStatus.SUCCESS)
        # Ordered b-quark pair times the single remaining light-quark pair
        self.assertEqual(reco.n_evaluations, 12)

    def test_insufficient_jets_skip_ranking(self) -> None:
        strategy = ScriptedStrategy()
        reco = TTSemilepReconstructor(strategy, JetSelection(min_pt=65.0))
        status = reco.process_event(_event([90.0, 80.0, 70.0, 60.0, 50.0]))
        self.assertIs(status, ReconstructionStatus.INSUFFICIENT_JETS)
        self.assertEqual(strategy.calls, [])
        self.assertEqual(reco.n_evaluations, 0)
        self.assertEqual(reco.rank, -math.inf)
        self.assertIsNone(reco.assignment)

    def test_strategy_precondition_short_circuits(self) -> None:
        strategy = ScriptedStrategy(precondition=ReconstructionStatus.NO_LEPTON_OR_NEUTRINO)
        reco = TTSemilepReconstructor(strategy)
        status = reco.process_event(_event([90.0, 80.0, 70.0, 60.0, 50.0]))
        self.assertIs(status, ReconstructionStatus.NO_LEPTON_OR_NEUTRINO)
        self.assertEqual(strategy.calls, [])

    def test_ties_keep_first_enumerated(self) -> None:
        reco = TTSemilepReconstructor(ScriptedStrategy(lambda jets, a, b, c, d: 1.0))
        reco.process_event(_event([90.0, 80.0, 70.0, 60.0, 50.0]))
        self.assertEqual(reco.assignment.indices, (0, 1, 2, 3))
        self.assertEqual(reco.rank, 1.0)

    def test_tie_between_two_maxima(self) -> None:
        def rank(jets, a, b, c, d):
            return 5.0 if (a, b, c, d) in ((2, 0, 1, 3), (3, 0, 1, 2)) else 0.0

        reco = TTSemilepReconstructor(ScriptedStrategy(rank))
        reco.process_event(_event([90.0, 80.0, 70.0, 60.0]))
        self.assertEqual(reco.assignment.indices, (2, 0, 1, 3))

    def test_best_assignment_and_accessors(self) -> None:
        def rank(jets, a, b, c, d):
            return -abs(a - 3) - abs(b - 1) - abs(c - 0) - abs(d - 4)

        event = _event([90.0, 80.0, 70.0, 60.0, 50.0])
        reco = TTSemilepReconstructor(ScriptedStrategy(rank))
        reco.process_event(event)
        self.assertEqual(reco.rank, 0.0)
        self.assertIs(reco.get_jet(DecayJet.B_TOP_LEP), event.jets[3])
        self.assertIs(reco.get_jet(DecayJet.B_TOP_HAD), event.jets[1])
        self.assertIs(reco.get_jet(DecayJet.Q1_TOP_HAD), event.jets[0])
        self.assertIs(reco.get_jet(DecayJet.Q2_TOP_HAD), event.jets[4])
        self.assertIs(reco.lepton, event.leptons[0])
        top_had = reco.top_had_p4()
        expected = event.jets[1].p4 + event.jets[0].p4 + event.jets[4].p4
        self.assertAlmostEqual(top_had.mass, expected.mass, places=12)
        w_had = reco.w_had_p4()
        self.assertAlmostEqual(w_had.px, event.jets[0].p4.px + event.jets[4].p4.px, places=12)
        top_lep = reco.top_lep_p4()
        self.assertAlmostEqual(
            top_lep.e, event.jets[3].p4.e + event.leptons[0].p4.e + reco.neutrino.e, places=12
        )

    def test_all_rejected_uses_strategy_diagnosis(self) -> None:
        strategy = ScriptedStrategy(
            lambda jets, a, b, c, d: -math.inf,
            failure=ReconstructionStatus.MASS_LIKELIHOOD_OUT_OF_RANGE,
        )
        reco = TTSemilepReconstructor(strategy)
        status = reco.process_event(_event([90.0, 80.0, 70.0, 60.0]))
        self.assertIs(status, ReconstructionStatus.MASS_LIKELIHOOD_OUT_OF_RANGE)
        self.assertEqual(reco.n_evaluations, 12)
        self.assertEqual(reco.rank, -math.inf)

    def test_accessors_require_success(self) -> None:
        reco = TTSemilepReconstructor(ScriptedStrategy())
        self.assertIsNone(reco.status)
        with self.assertRaises(RuntimeError):
            reco.get_jet(DecayJet.B_TOP_LEP)
        reco.process_event(_event([90.0, 80.0]))
        for accessor in (
            lambda: reco.get_jet(DecayJet.Q1_TOP_HAD),
            lambda: reco.lepton,
            lambda: reco.neutrino,
            reco.top_lep_p4,
            reco.top_had_p4,
        ):
            with self.assertRaises(RuntimeError):
                accessor()

    def test_state_is_reset_between_events(self) -> None:
        reco = TTSemilepReconstructor(ScriptedStrategy())
        reco.process_event(_event([90.0, 80.0, 70.0, 60.0]))
        self.assertIs(reco.status, ReconstructionStatus.SUCCESS)
        reco.process_event(_event([90.0]))
        self.assertIs(reco.status, ReconstructionStatus.INSUFFICIENT_JETS)
        self.assertIsNone(reco.assignment)
        self.assertEqual(reco.rank, -math.inf)

    def test_reconstruct_events_and_clone(self) -> None:
        reco = TTSemilepReconstructor(ScriptedStrategy(), JetSelection(min_pt=55.0))
        events = [_event([90.0, 80.0, 70.0, 60.0], event_id="a"), _event([90.0, 50.0], event_id="b")]
        results = reco.reconstruct_events(events)
        self.assertEqual([r.event_id for r in results], ["a", "b"])
        self.assertTrue(results[0].is_success)
        self.assertEqual(results[0].n_selected_jets, 4)
        self.assertIsNotNone(results[0].top_had_p4)
        self.assertIs(results[1].status, ReconstructionStatus.INSUFFICIENT_JETS)
        self.assertIsNone(results[1].assignment)

        twin = reco.clone()
        self.assertIsNot(twin.strategy, reco.strategy)
        self.assertEqual(twin.selection, reco.selection)
        self.assertIsNone(twin.status)


if __name__ == "__main__":
    unittest.main()
