"""Input/output helpers for JSON inputs and tabular result export."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from .models import EventInput, Jet, Lepton, LorentzVector, MissingET
from .observables import observables_from_result
from .pid import lepton_flavour_from_name, lepton_mass
from .reconstructor import ReconstructionResult
from .strategies import Chi2Term, chi2_expression_from_name


def load_events_json(path: str | Path) -> list[EventInput]:
    """Load multi-event input JSON into `EventInput` objects.

    Expected shape:
    {
      "events": [
        {"event_id": "...", "jets": [...], "leptons": [...], "met": {...}},
        ...
      ]
    }

    Jets and leptons are returned ordered by decreasing pt.
    """
    data = _load_json(path)
    events_data = data.get("events")
    if not isinstance(events_data, list):
        raise ValueError("Events JSON must contain a list under key 'events'.")
    out: list[EventInput] = []
    for idx, event in enumerate(events_data):
        if not isinstance(event, dict):
            raise ValueError(f"Event entry at index {idx} must be an object.")
        event_id = str(event.get("event_id", f"evt{idx}"))
        jets_data = event.get("jets")
        if not isinstance(jets_data, list):
            raise ValueError(f"Event '{event_id}' must contain a list under key 'jets'.")
        leptons_data = event.get("leptons", [])
        if not isinstance(leptons_data, list):
            raise ValueError(f"Event '{event_id}' key 'leptons' must be a list.")
        if "met" not in event:
            raise ValueError(f"Event '{event_id}' must define 'met'.")
        context = f"event '{event_id}'"
        jets = sorted(
            (_parse_jet_item(item, jidx, context) for jidx, item in enumerate(jets_data)),
            key=lambda j: j.pt,
            reverse=True,
        )
        leptons = sorted(
            (_parse_lepton_item(item, lidx, context) for lidx, item in enumerate(leptons_data)),
            key=lambda lep: lep.pt,
            reverse=True,
        )
        out.append(
            EventInput(
                event_id=event_id,
                jets=tuple(jets),
                leptons=tuple(leptons),
                met=_parse_met(event["met"], context),
            )
        )
    return out


def load_chi2_terms_json(path: str | Path) -> list[Chi2Term]:
    """Load chi-squared terms from JSON.

    Each entry is `{"expression": "MassTopHad", "mean": 173.0, "variance": 15.0}`;
    expressions may also be given by enum name (`MASS_TOP_HAD`).
    """
    data = _load_json(path)
    terms_data = data.get("chi2_terms")
    if not isinstance(terms_data, list):
        raise ValueError("Chi2 JSON must contain a list under key 'chi2_terms'.")
    terms: list[Chi2Term] = []
    for idx, item in enumerate(terms_data):
        if not isinstance(item, dict):
            raise ValueError(f"Chi2 term at index {idx} must be an object.")
        missing = [k for k in ("expression", "mean", "variance") if k not in item]
        if missing:
            raise ValueError(f"Chi2 term at index {idx} is missing {', '.join(missing)}.")
        variance = float(item["variance"])
        if variance == 0.0:
            raise ValueError(f"Chi2 term at index {idx} must have a non-zero variance.")
        terms.append(
            Chi2Term(
                expression=chi2_expression_from_name(str(item["expression"])),
                mean=float(item["mean"]),
                variance=variance,
            )
        )
    return terms


def write_results_table(path: str | Path, results: list[ReconstructionResult]) -> None:
    """Write reconstruction results into Parquet/CSV/Pickle table."""
    pd = _require_pandas()
    df = pd.DataFrame(_result_rows(results))
    out = Path(path)
    suffix = out.suffix.lower()
    if suffix == ".parquet":
        df.to_parquet(out, index=False)
    elif suffix in (".pkl", ".pickle"):
        df.to_pickle(out)
    elif suffix == ".csv":
        df.to_csv(out, index=False)
    else:
        raise ValueError(
            f"Unsupported output format '{suffix}'. Use .parquet, .csv, or .pkl"
        )


def _result_rows(results: list[ReconstructionResult]) -> list[dict[str, Any]]:
    """Flatten per-event results into DataFrame-ready row dictionaries."""
    rows: list[dict[str, Any]] = []
    for res in results:
        row: dict[str, Any] = {
            "event_id": res.event_id,
            "status": res.status.name,
            "status_code": int(res.status),
            "n_selected_jets": res.n_selected_jets,
        }
        assignment = res.assignment
        row["jet_b_top_lep"] = assignment.b_top_lep if assignment else -1
        row["jet_b_top_had"] = assignment.b_top_had if assignment else -1
        row["jet_q1_top_had"] = assignment.q1_top_had if assignment else -1
        row["jet_q2_top_had"] = assignment.q2_top_had if assignment else -1
        nu = res.neutrino
        row["nu_px"] = nu.px if nu else 0.0
        row["nu_py"] = nu.py if nu else 0.0
        row["nu_pz"] = nu.pz if nu else 0.0
        row["nu_e"] = nu.e if nu else 0.0
        row.update(observables_from_result(res).as_dict())
        rows.append(row)
    return rows


def _require_pandas():
    """Import pandas lazily and provide a clear installation hint on failure."""
    try:
        import pandas as pd  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "pandas is required to write output tables. Install pandas and pyarrow."
        ) from exc
    return pd


def _parse_p4(item: dict[str, Any], idx: int, context: str, default_mass: float = 0.0) -> LorentzVector:
    """Build a 4-vector from either `pt, eta, phi[, mass]` or `px, py, pz, e` fields."""
    if all(k in item for k in ("px", "py", "pz", "e")):
        return LorentzVector(float(item["px"]), float(item["py"]), float(item["pz"]), float(item["e"]))
    if all(k in item for k in ("pt", "eta", "phi")):
        return LorentzVector.from_pt_eta_phi_m(
            float(item["pt"]),
            float(item["eta"]),
            float(item["phi"]),
            float(item.get("mass", default_mass)),
        )
    raise ValueError(
        f"Object at index {idx} in {context} must define 'pt, eta, phi' or 'px, py, pz, e'."
    )


def _parse_jet_item(item: Any, idx: int, context: str) -> Jet:
    """Parse one jet dictionary into a `Jet`."""
    if not isinstance(item, dict):
        raise ValueError(f"Jet entry at index {idx} in {context} must be an object.")
    return Jet(p4=_parse_p4(item, idx, context), btag=float(item.get("btag", 0.0)))


def _parse_lepton_item(item: Any, idx: int, context: str) -> Lepton:
    """Parse one lepton dictionary into a `Lepton`."""
    if not isinstance(item, dict):
        raise ValueError(f"Lepton entry at index {idx} in {context} must be an object.")
    flavour = lepton_flavour_from_name(str(item.get("flavour", "mu")))
    return Lepton(
        p4=_parse_p4(item, idx, context, default_mass=lepton_mass(flavour)),
        flavour=flavour,
        charge=int(item.get("charge", 0)),
    )


def _parse_met(item: Any, context: str) -> MissingET:
    """Parse the MET object, given as `px, py` or `pt, phi`, with optional `cov`."""
    if not isinstance(item, dict):
        raise ValueError(f"MET in {context} must be an object.")
    cov = _parse_cov2(item["cov"]) if "cov" in item else None
    if "px" in item and "py" in item:
        return MissingET(float(item["px"]), float(item["py"]), cov)
    if "pt" in item and "phi" in item:
        return MissingET.from_pt_phi(float(item["pt"]), float(item["phi"]), cov)
    raise ValueError(f"MET in {context} must define 'px, py' or 'pt, phi'.")


def _parse_cov2(value: Any):
    """Validate and convert a nested list into a 2x2 covariance tuple."""
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError("MET cov must be a 2x2 list.")
    rows: list[tuple[float, float]] = []
    for row in value:
        if not isinstance(row, list) or len(row) != 2:
            raise ValueError("MET cov must be a 2x2 list.")
        rows.append((float(row[0]), float(row[1])))
    return (rows[0], rows[1])


def _load_json(path: str | Path) -> dict[str, Any]:
    """Read and validate a JSON object document from disk."""
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    return data
