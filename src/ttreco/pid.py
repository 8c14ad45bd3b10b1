"""Lepton-flavour helpers used when building leptons from kinematics.

This module exposes named builders so that callers do not have to remember
the lepton mass that goes with each flavour.
"""

from __future__ import annotations

from .models import Lepton, LeptonFlavour, LorentzVector

_LEPTON_MASSES: dict[LeptonFlavour, float] = {
    LeptonFlavour.ELECTRON: 0.00051099895,
    LeptonFlavour.MUON: 0.1056583755,
}

_NAME_TO_FLAVOUR: dict[str, LeptonFlavour] = {
    "e": LeptonFlavour.ELECTRON,
    "el": LeptonFlavour.ELECTRON,
    "electron": LeptonFlavour.ELECTRON,
    "mu": LeptonFlavour.MUON,
    "muon": LeptonFlavour.MUON,
}


def lepton_mass(flavour: LeptonFlavour) -> float:
    """Return the nominal mass of a charged lepton in GeV."""
    return _LEPTON_MASSES[flavour]


def make_electron(pt: float, eta: float, phi: float, charge: int = 0) -> Lepton:
    """Build an electron from collider coordinates."""
    return make_lepton(LeptonFlavour.ELECTRON, pt, eta, phi, charge)


def make_muon(pt: float, eta: float, phi: float, charge: int = 0) -> Lepton:
    """Build a muon from collider coordinates."""
    return make_lepton(LeptonFlavour.MUON, pt, eta, phi, charge)


def make_lepton(flavour: LeptonFlavour, pt: float, eta: float, phi: float, charge: int = 0) -> Lepton:
    p4 = LorentzVector.from_pt_eta_phi_m(pt, eta, phi, lepton_mass(flavour))
    return Lepton(p4=p4, flavour=flavour, charge=charge)


def lepton_flavour_from_name(name: str) -> LeptonFlavour:
    """Resolve a short flavour name (e.g. `mu`, `electron`) into a flavour."""
    key = name.strip().lower()
    try:
        return _NAME_TO_FLAVOUR[key]
    except KeyError as exc:
        supported = ", ".join(sorted(_NAME_TO_FLAVOUR))
        raise ValueError(
            f"Unknown lepton flavour '{name}'. Supported names: {supported}"
        ) from exc
