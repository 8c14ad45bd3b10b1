"""Hand-built semileptonic ttbar events shared by the unit tests."""

from __future__ import annotations

from ttreco import EventInput, Jet, Lepton, LeptonFlavour, LorentzVector, MissingET

W_MASS = 80.0
TOP_MASS = 173.0


def massless(pt: float, eta: float, phi: float) -> LorentzVector:
    return LorentzVector.from_pt_eta_phi_m(pt, eta, phi, 0.0)


def close_mass(parent: LorentzVector, direction: LorentzVector, mass: float) -> LorentzVector:
    """Massless daughter along `direction` such that m(parent + daughter) = `mass`."""
    energy = (mass * mass - parent.mass2) / (2.0 * (parent.e - parent.dot3(direction) / direction.p))
    scale = energy / direction.p
    return LorentzVector(direction.px * scale, direction.py * scale, direction.pz * scale, energy)


def truth_event(event_id: str = "tt0"):
    """Event whose four jets, lepton and MET exactly satisfy the W and top masses.

    Returns the event together with the true jet roles (as jet indices) and the
    true neutrino.
    """
    lepton = massless(45.0, -0.6, 2.2)
    neutrino = close_mass(lepton, massless(1.0, 0.8, -1.0), W_MASS)
    b_lep = close_mass(lepton + neutrino, massless(1.0, 0.3, 0.4), TOP_MASS)

    q1 = massless(60.0, 0.1, -2.0)
    q2 = close_mass(q1, massless(1.0, -0.5, -2.8), W_MASS)
    b_had = close_mass(q1 + q2, massless(1.0, -0.2, 2.9), TOP_MASS)

    named = {"b_lep": b_lep, "b_had": b_had, "q1": q1, "q2": q2}
    order = sorted(named, key=lambda k: named[k].pt, reverse=True)
    jets = tuple(Jet(p4=named[k], btag=0.9 if k.startswith("b") else 0.1) for k in order)
    roles = {k: order.index(k) for k in named}
    event = EventInput(
        event_id=event_id,
        jets=jets,
        leptons=(Lepton(p4=lepton, flavour=LeptonFlavour.MUON, charge=-1),),
        met=MissingET(neutrino.px, neutrino.py),
    )
    return event, roles, neutrino


def identical_jets_event(n_jets: int = 4) -> EventInput:
    """Truth event whose jets are all copies of the leptonic b quark."""
    event, roles, _ = truth_event("copies")
    b_lep = event.jets[roles["b_lep"]]
    return EventInput(
        event_id="copies",
        jets=tuple(Jet(p4=b_lep.p4, btag=b_lep.btag) for _ in range(n_jets)),
        leptons=event.leptons,
        met=event.met,
    )


def jets_from_pt(pts, etas=None) -> tuple[Jet, ...]:
    etas = etas or [0.0] * len(pts)
    return tuple(
        Jet(p4=LorentzVector.from_pt_eta_phi_m(pt, eta, 0.5 * i, 5.0))
        for i, (pt, eta) in enumerate(zip(pts, etas))
    )
