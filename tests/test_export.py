"""
tests/test_export.py - Tests for export.py, plots.py and the run CLI
"""

import json

import pandas as pd
import pytest

from conftest import cell_sets
from cdt3 import run
from cdt3.errors import MalformedInitialComplex
from cdt3.export import (
    read_triangulation,
    to_networkx,
    triangulation_from_dict,
    triangulation_to_dict,
    volume_profile_frame,
    write_pass_history_csv,
    write_triangulation,
    write_volume_profile_csv,
)
from cdt3.metropolis import MetropolisEngine, SimulationContext
from cdt3.plots import plot_pass_history, plot_volume_profile
from cdt3.repro import triangulation_sha256
from cdt3.seeds import ingest


class TestTriangulationFile:
    def test_file_roundtrip_keeps_handles(self, grown, tmp_path):
        store, _ = grown
        path = tmp_path / "tri.json"
        write_triangulation(path, store, meta={"seed": 7})
        loaded = read_triangulation(path)
        assert cell_sets(loaded) == cell_sets(store)
        assert loaded.timeslices() == store.timeslices()
        assert json.loads(path.read_text())["meta"] == {"seed": 7}
        # the loaded complex passes ingestion again
        assert ingest(loaded, 5).counts().n3 == store.num_cells
        assert triangulation_sha256(loaded) == triangulation_sha256(store)

    def test_rejects_foreign_documents(self, sphere3):
        store, _ = sphere3
        data = triangulation_to_dict(store)
        with pytest.raises(ValueError):
            triangulation_from_dict(dict(data, format="other"))
        with pytest.raises(ValueError):
            triangulation_from_dict(dict(data, version=2))

    def test_duplicate_vertex(self, sphere3):
        store, _ = sphere3
        data = triangulation_to_dict(store)
        data["vertices"].append([0, 0])
        with pytest.raises(MalformedInitialComplex):
            triangulation_from_dict(data)


class TestSkeleton:
    def test_to_networkx(self, sphere5):
        store, index = sphere5
        G = to_networkx(store)
        c = index.counts()
        assert G.number_of_nodes() == c.n0
        assert G.number_of_edges() == c.n1
        kinds = [k for _, _, k in G.edges(data="kind")]
        assert kinds.count("spacelike") == c.n1_sl
        assert G.nodes[0]["timeslice"] == 0


class TestTables:
    def test_volume_profile_csv(self, sphere5, tmp_path):
        _, index = sphere5
        path = tmp_path / "vol.csv"
        write_volume_profile_csv(path, index)
        df = pd.read_csv(path)
        assert list(df["timeslice"]) == [0, 1, 2, 3, 4]
        assert list(df["spatial_volume"]) == [0, 4, 4, 4, 0]
        assert df["n3_22"].sum() == 8
        assert volume_profile_frame(index).shape == (5, 7)

    def test_pass_history(self, sphere4, always_reject, tmp_path):
        store, _ = sphere4
        engine = MetropolisEngine(store, always_reject, context=SimulationContext.from_seed(0))
        reports = engine.run(2)
        path = tmp_path / "hist.csv"
        write_pass_history_csv(path, reports)
        df = pd.read_csv(path)
        assert list(df["pass"]) == [0, 1]
        assert list(df["accepted"]) == [0, 0]
        assert "n3_22" in df.columns


class TestPlots:
    def test_plots_written(self, sphere5, always_reject, tmp_path):
        store, index = sphere5
        plot_volume_profile(index.volume_profile(), tmp_path / "p" / "vol.png", title="volume")
        assert (tmp_path / "p" / "vol.png").stat().st_size > 0

        engine = MetropolisEngine(store, always_reject, context=SimulationContext.from_seed(0))
        plot_pass_history(engine.run(1), tmp_path / "p" / "hist.png", title="history")
        assert (tmp_path / "p" / "hist.png").exists()

    def test_empty_history_writes_nothing(self, tmp_path):
        plot_pass_history([], tmp_path / "none.png", title="x")
        assert not (tmp_path / "none.png").exists()


class TestCli:
    def test_run_writes_artifacts(self, tmp_path, capsys):
        out = tmp_path / "run"
        run.main([
            "--spherical", "-n", "40", "-t", "4", "-k", "1.0", "-a", "0.6", "-l", "0.5",
            "-p", "2", "--seed", "3", "--out_dir", str(out), "--no_plots",
        ])
        printed = capsys.readouterr().out
        assert "[cdt3] Number of timeslices = 4" in printed

        summary = json.loads((out / "summary.json").read_text())
        assert summary["passes_completed"] == 2
        assert summary["seed"] == 3
        assert (out / "volume_profile.csv").exists()
        assert (out / "pass_history.csv").exists()
        meta = json.loads((out / "meta.json").read_text())
        assert len(meta["triangulation_sha256"]) == 64
        assert "moves.py" in meta["code_sha256"]
        assert (out / f"S3-4-{summary['total_cells']}.json").exists()
        assert not (out / "plots").exists()

    def test_missing_required_flags(self, capsys):
        with pytest.raises(SystemExit):
            run.main(["-n", "40"])
        assert "missing required option" in capsys.readouterr().err

    def test_toroidal_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            run.main(["--toroidal", "-n", "40", "-t", "4", "-k", "1", "-a", "0.6", "-l", "0.5",
                      "--out_dir", str(tmp_path)])

    def test_config_file_with_override(self, tmp_path):
        cfg = tmp_path / "c.yaml"
        cfg.write_text(
            "timeslices: 4\ntarget_simplices: 30\npasses: 5\n"
            "couplings: {k: 1.0, lambda: 0.5, alpha: 0.6}\n"
            "output: {checkpoint_every: 1, write_plots: false}\n"
        )
        out = tmp_path / "o"
        run.main(["--config", str(cfg), "-p", "2", "--seed", "1", "--out_dir", str(out)])
        assert sorted(p.name for p in (out / "checkpoints").iterdir()) == [
            "pass_000001.json", "pass_000002.json",
        ]

