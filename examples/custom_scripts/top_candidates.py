"""Example custom callback: keep the best-ranked events and persist a summary."""

from __future__ import annotations

import json
from pathlib import Path


def process(results, context):
    """Sort successful events by rank and save the top reconstructed tops."""
    ranked = sorted((r for r in results if r.is_success), key=lambda r: r.rank, reverse=True)
    top5 = ranked[:5]
    payload = {
        "n_total": len(results),
        "n_success": len(ranked),
        "top_events": [
            {
                "event_id": r.event_id,
                "rank": r.rank,
                "jets": list(r.assignment.indices),
                "mass_top_lep": r.top_lep_p4.mass,
                "mass_top_had": r.top_had_p4.mass,
                "mass_w_had": r.w_had_p4.mass,
                "nu_pz": r.neutrino.pz,
            }
            for r in top5
        ],
    }
    out = Path(context["output_path"]).with_name("top_events.json")
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    print(f"Wrote {out}")
