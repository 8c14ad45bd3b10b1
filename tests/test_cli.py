"""Unit tests for the command-line entry point."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from event_builders import truth_event

from ttreco.cli import build_parser, main
from ttreco.likelihood import DEFAULT_MASS_HIST, DEFAULT_NEUTRINO_HIST


def _event_payload() -> dict:
    event, _, _ = truth_event("cli0")
    return {
        "events": [
            {
                "event_id": event.event_id,
                "jets": [
                    {"px": j.p4.px, "py": j.p4.py, "pz": j.p4.pz, "e": j.p4.e, "btag": j.btag}
                    for j in event.jets
                ],
                "leptons": [
                    {
                        "px": lep.p4.px,
                        "py": lep.p4.py,
                        "pz": lep.p4.pz,
                        "e": lep.p4.e,
                        "flavour": "mu",
                        "charge": lep.charge,
                    }
                    for lep in event.leptons
                ],
                "met": {"px": event.met.px, "py": event.met.py},
            },
            {
                "event_id": "cli1",
                "jets": [{"pt": 50.0, "eta": 0.0, "phi": 1.0}],
                "leptons": [{"pt": 30.0, "eta": 0.0, "phi": 0.0}],
                "met": {"pt": 20.0, "phi": 2.0},
            },
        ]
    }


class TestCLI(unittest.TestCase):
    def setUp(self) -> None:
        try:
            import pandas  # noqa: F401
        except ModuleNotFoundError:
            self.skipTest("pandas is not installed")

    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args(["--events", "e.json", "--out", "o.csv"])
        self.assertEqual(args.strategy, "likelihood")
        self.assertEqual(args.neutrino_hist, DEFAULT_NEUTRINO_HIST)
        self.assertEqual(args.mass_hist, DEFAULT_MASS_HIST)
        self.assertEqual(args.min_jet_pt, 0.0)

    def test_chi2_run_writes_table_and_calls_custom_script(self) -> None:
        import pandas as pd

        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "events.json").write_text(json.dumps(_event_payload()), encoding="utf-8")
            (tmp / "chi2.json").write_text(
                json.dumps(
                    {
                        "chi2_terms": [
                            {"expression": "MassTopLep", "mean": 173.0, "variance": 10.0},
                            {"expression": "MassTopHad", "mean": 173.0, "variance": 10.0},
                            {"expression": "MassWHad", "mean": 80.0, "variance": 10.0},
                        ]
                    }
                ),
                encoding="utf-8",
            )
            (tmp / "hook.py").write_text(
                "import json\n"
                "from pathlib import Path\n"
                "\n"
                "def process(results, context):\n"
                "    out = Path(context['output_path']).with_name('hook.json')\n"
                "    out.write_text(json.dumps([r.status.name for r in results]))\n",
                encoding="utf-8",
            )
            out = tmp / "results.csv"
            code = main(
                [
                    "--events", str(tmp / "events.json"),
                    "--strategy", "chi2",
                    "--chi2-terms", str(tmp / "chi2.json"),
                    "--out", str(out),
                    "--custom-script", str(tmp / "hook.py"),
                ]
            )
            self.assertEqual(code, 0)
            df = pd.read_csv(out)
            hook = json.loads((tmp / "hook.json").read_text())

        self.assertEqual(list(df["event_id"]), ["cli0", "cli1"])
        self.assertEqual(list(df["status"]), ["SUCCESS", "INSUFFICIENT_JETS"])
        self.assertAlmostEqual(df["mass_top_had"][0], 173.0, places=4)
        self.assertEqual(hook, ["SUCCESS", "INSUFFICIENT_JETS"])

    def test_likelihood_run(self) -> None:
        import pandas as pd

        tables = {
            DEFAULT_NEUTRINO_HIST: {"edges": [0.0, 1000.0], "values": [1.0]},
            DEFAULT_MASS_HIST: {"x_edges": [79.0, 81.0], "y_edges": [172.0, 174.0], "values": [[1.0]]},
        }
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "events.json").write_text(json.dumps(_event_payload()), encoding="utf-8")
            (tmp / "tables.json").write_text(json.dumps(tables), encoding="utf-8")
            out = tmp / "results.pkl"
            main(["--events", str(tmp / "events.json"), "--likelihood", str(tmp / "tables.json"), "--out", str(out)])
            df = pd.read_pickle(out)
        self.assertEqual(list(df["status"]), ["SUCCESS", "INSUFFICIENT_JETS"])
        self.assertAlmostEqual(df["mass_w_had"][0], 80.0, places=4)

    def test_missing_strategy_configuration(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            tmp = Path(tmpdir)
            (tmp / "events.json").write_text(json.dumps(_event_payload()), encoding="utf-8")
            with self.assertRaisesRegex(ValueError, "--chi2-terms"):
                main(["--events", str(tmp / "events.json"), "--strategy", "chi2", "--out", str(tmp / "o.csv")])


if __name__ == "__main__":
    unittest.main()
