"""Binned probability densities used by the likelihood rank strategy.

Tables are normalised on construction so that the bin contents integrate to
one over the bin widths (areas), and their arrays are made read-only, which
allows a single instance to be shared by any number of reconstruction
objects. Values outside the binned range fall into the "overflow" region,
which `find_bin` reports as `None`.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_NEUTRINO_HIST = "nusolver_chi2_right"
DEFAULT_MASS_HIST = "mWhad_vs_mtophad_right"


def _as_edges(edges: Sequence[float], axis: str) -> np.ndarray:
    arr = np.array(edges, dtype=float)
    if arr.ndim != 1 or arr.size < 2:
        raise ValueError(f"Axis '{axis}' needs at least two bin edges.")
    if not np.all(np.diff(arr) > 0.0):
        raise ValueError(f"Bin edges of axis '{axis}' must be strictly increasing.")
    arr.setflags(write=False)
    return arr


def _axis_bin(edges: np.ndarray, value: float) -> int | None:
    """Index of the half-open bin `[low, high)` holding `value`."""
    if math.isnan(value):
        return None
    idx = int(np.searchsorted(edges, value, side="right")) - 1
    if idx < 0 or idx >= edges.size - 1:
        return None
    return idx


def _log(density: float) -> float:
    return math.log(density) if density > 0.0 else -math.inf


@dataclass(frozen=True, init=False)
class ProbabilityTable1D:
    """Piecewise-constant probability density of one variable."""

    edges: np.ndarray
    values: np.ndarray

    def __init__(self, edges: Sequence[float], values: Sequence[float]) -> None:
        edges_arr = _as_edges(edges, "x")
        values_arr = np.array(values, dtype=float)
        if values_arr.shape != (edges_arr.size - 1,):
            raise ValueError(
                f"Expected {edges_arr.size - 1} bin values, got shape {values_arr.shape}."
            )
        if np.any(values_arr < 0.0):
            raise ValueError("Probability table contains negative bin contents.")
        integral = float(np.sum(values_arr * np.diff(edges_arr)))
        if integral <= 0.0:
            raise ValueError("Probability table has a non-positive integral.")
        values_arr = values_arr / integral
        values_arr.setflags(write=False)
        object.__setattr__(self, "edges", edges_arr)
        object.__setattr__(self, "values", values_arr)

    def find_bin(self, x: float) -> int | None:
        return _axis_bin(self.edges, x)

    def density(self, x: float) -> float | None:
        """Probability density at `x`, or `None` in the overflow region."""
        idx = self.find_bin(x)
        return None if idx is None else float(self.values[idx])

    def log_density(self, x: float) -> float | None:
        density = self.density(x)
        return None if density is None else _log(density)


@dataclass(frozen=True, init=False)
class ProbabilityTable2D:
    """Piecewise-constant probability density of two variables."""

    x_edges: np.ndarray
    y_edges: np.ndarray
    values: np.ndarray

    def __init__(
        self,
        x_edges: Sequence[float],
        y_edges: Sequence[float],
        values: Sequence[Sequence[float]],
    ) -> None:
        x_arr = _as_edges(x_edges, "x")
        y_arr = _as_edges(y_edges, "y")
        values_arr = np.array(values, dtype=float)
        expected = (x_arr.size - 1, y_arr.size - 1)
        if values_arr.shape != expected:
            raise ValueError(f"Expected bin values of shape {expected}, got {values_arr.shape}.")
        if np.any(values_arr < 0.0):
            raise ValueError("Probability table contains negative bin contents.")
        areas = np.outer(np.diff(x_arr), np.diff(y_arr))
        integral = float(np.sum(values_arr * areas))
        if integral <= 0.0:
            raise ValueError("Probability table has a non-positive integral.")
        values_arr = values_arr / integral
        values_arr.setflags(write=False)
        object.__setattr__(self, "x_edges", x_arr)
        object.__setattr__(self, "y_edges", y_arr)
        object.__setattr__(self, "values", values_arr)

    def find_bin(self, x: float, y: float) -> tuple[int, int] | None:
        ix = _axis_bin(self.x_edges, x)
        iy = _axis_bin(self.y_edges, y)
        if ix is None or iy is None:
            return None
        return ix, iy

    def density(self, x: float, y: float) -> float | None:
        """Probability density at `(x, y)`, or `None` in the overflow region."""
        idx = self.find_bin(x, y)
        return None if idx is None else float(self.values[idx])

    def log_density(self, x: float, y: float) -> float | None:
        density = self.density(x, y)
        return None if density is None else _log(density)


@dataclass(frozen=True)
class TTLikelihood:
    """Pair of densities: neutrino-solver distance and (m_W, m_top) of the hadronic side."""

    neutrino: ProbabilityTable1D
    mass: ProbabilityTable2D


def load_likelihood(
    path: str | Path,
    neutrino_name: str = DEFAULT_NEUTRINO_HIST,
    mass_name: str = DEFAULT_MASS_HIST,
) -> TTLikelihood:
    """Load both likelihood tables from a ROOT file or a JSON document.

    ROOT files are read with uproot. JSON documents must map each table name
    to `{"edges", "values"}` (1-D) or `{"x_edges", "y_edges", "values"}` (2-D).
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Likelihood file '{path}' does not exist.")
    if path.suffix.lower() == ".root":
        likelihood = _load_root_likelihood(path, neutrino_name, mass_name)
    else:
        likelihood = _load_json_likelihood(path, neutrino_name, mass_name)
    logger.debug(
        "Loaded likelihood tables '%s' (%d bins) and '%s' (%dx%d bins) from %s",
        neutrino_name,
        likelihood.neutrino.values.size,
        mass_name,
        *likelihood.mass.values.shape,
        path,
    )
    return likelihood


def _load_root_likelihood(path: Path, neutrino_name: str, mass_name: str) -> TTLikelihood:
    uproot = _require_uproot()
    with uproot.open(path) as f:
        for name in (neutrino_name, mass_name):
            if name not in f:
                raise KeyError(f"File '{path}' does not contain histogram '{name}'.")
        nu_values, nu_edges = f[neutrino_name].to_numpy()
        mass_values, x_edges, y_edges = f[mass_name].to_numpy()
    return TTLikelihood(
        neutrino=ProbabilityTable1D(nu_edges, nu_values),
        mass=ProbabilityTable2D(x_edges, y_edges, mass_values),
    )


def _load_json_likelihood(path: Path, neutrino_name: str, mass_name: str) -> TTLikelihood:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"JSON document at {path} must be an object.")
    for name in (neutrino_name, mass_name):
        if name not in data:
            raise KeyError(f"File '{path}' does not contain histogram '{name}'.")
    nu = _table_payload(data[neutrino_name], ("edges", "values"), neutrino_name)
    mass = _table_payload(data[mass_name], ("x_edges", "y_edges", "values"), mass_name)
    return TTLikelihood(
        neutrino=ProbabilityTable1D(nu["edges"], nu["values"]),
        mass=ProbabilityTable2D(mass["x_edges"], mass["y_edges"], mass["values"]),
    )


def _table_payload(item: Any, keys: tuple[str, ...], name: str) -> dict[str, Any]:
    if not isinstance(item, dict) or any(k not in item for k in keys):
        raise ValueError(f"Histogram '{name}' must be an object with keys {', '.join(keys)}.")
    return item


def _require_uproot():
    """Import uproot lazily and provide a clear installation hint on failure."""
    try:
        import uproot  # type: ignore
    except ModuleNotFoundError as exc:
        raise ModuleNotFoundError(
            "uproot is required to read likelihoods from ROOT files. Install uproot."
        ) from exc
    return uproot
