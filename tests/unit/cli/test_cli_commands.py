import importlib
import json
from pathlib import Path

import pytest

from scanmap.acquisition import BoundaryCollection, BoundaryQueryError
from scanmap.tiling import TileSet

cli_main = importlib.import_module("scanmap.cli.main")


@pytest.fixture(autouse=True)
def isolated_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # keep the repository's default config out of reach
    monkeypatch.chdir(tmp_path)


def test_inventory_lists_files_and_rank(tmp_path: Path, make_sparse_file, capsys: pytest.CaptureFixture[str]) -> None:  # type: ignore[no-untyped-def]
    scans = tmp_path / "scans"
    for name, size in (("a.tif", 3_000_000), ("b.jpg", 1_000_000), ("c.tif", 2_000_000), ("notes.txt", 9_000_000)):
        make_sparse_file(scans / name, size)
    report_path = tmp_path / "report.json"

    exit_code = cli_main.main(
        ["inventory", "--source", str(scans), "--rank", "2", "--write-report", str(report_path)]
    )

    assert exit_code == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split("\t")[0] for line in lines[:3]] == ["a.tif", "c.tif", "b.jpg"]
    assert "rank 2\tc.tif\t2.00 MB" in lines
    assert "files\t3" in lines
    assert "original_mb\t6.00" in lines
    assert json.loads(report_path.read_text())["summary"]["file_count"] == 3


def test_inventory_rank_out_of_range(tmp_path: Path, make_sparse_file) -> None:  # type: ignore[no-untyped-def]
    make_sparse_file(tmp_path / "scans" / "a.tif", 1_000)

    assert cli_main.main(["inventory", "--source", str(tmp_path / "scans"), "--rank", "5"]) == 1


def test_inventory_missing_source_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli_main.main(["inventory", "--source", str(tmp_path / "missing")])


def test_compress_writes_derivatives(tmp_path: Path, make_image, capsys: pytest.CaptureFixture[str]) -> None:  # type: ignore[no-untyped-def]
    scans = tmp_path / "scans"
    make_image(scans / "plate.tif", size=(1200, 800))
    out = tmp_path / "out"

    exit_code = cli_main.main(
        [
            "compress",
            "--source",
            str(scans),
            "--output",
            str(out),
            "--max-dimension",
            "300",
            "--quality",
            "50",
            "--report",
            str(tmp_path / "compression.json"),
        ]
    )

    assert exit_code == 0
    assert (out / "resized" / "plate.tif").exists()
    assert (out / "reencoded" / "plate.jpg").exists()
    stdout = capsys.readouterr().out
    assert "resized_mb" in stdout
    payload = json.loads((tmp_path / "compression.json").read_text())
    assert payload["files"][0]["reencode_status"] == "succeeded"


def test_compress_rejects_bad_quality(tmp_path: Path, make_image) -> None:  # type: ignore[no-untyped-def]
    make_image(tmp_path / "scans" / "plate.jpg")

    exit_code = cli_main.main(
        ["compress", "--source", str(tmp_path / "scans"), "--output", str(tmp_path / "out"), "--quality", "400", "--skip-resize"]
    )

    assert exit_code == 1


def test_compress_fail_fast_returns_error(tmp_path: Path) -> None:
    scans = tmp_path / "scans"
    scans.mkdir()
    (scans / "broken.tif").write_bytes(b"not an image")

    exit_code = cli_main.main(
        ["compress", "--source", str(scans), "--output", str(tmp_path / "out"), "--fail-fast"]
    )

    assert exit_code == 1


def test_boundaries_writes_geojson(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    called = {}

    class StubClient:
        def __init__(self, **kwargs):  # type: ignore[no-untyped-def]
            called["init"] = kwargs

        def fetch(self, area, name, *, key):  # type: ignore[no-untyped-def]
            called["fetch"] = (area, name, key)
            return BoundaryCollection()

    monkeypatch.setattr(cli_main, "BoundaryClient", StubClient)
    output = tmp_path / "b.geojson"

    exit_code = cli_main.main(["boundaries", "--area", "0,0,1,1", "--name", "Park", "--output", str(output)])

    assert exit_code == 0
    assert called["fetch"] == ("0,0,1,1", "Park", "name")
    assert called["init"]["timeout"] == 60
    assert json.loads(output.read_text())["type"] == "FeatureCollection"


def test_boundaries_query_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    class FailingClient:
        def __init__(self, **kwargs):  # type: ignore[no-untyped-def]
            pass

        def fetch(self, *args, **kwargs):  # type: ignore[no-untyped-def]
            raise BoundaryQueryError("overpass unavailable")

    monkeypatch.setattr(cli_main, "BoundaryClient", FailingClient)

    assert cli_main.main(["boundaries", "--area", "0,0,1,1", "--name", "Park"]) == 1


def test_boundaries_requires_area_and_name() -> None:
    with pytest.raises(SystemExit):
        cli_main.main(["boundaries", "--name", "Park"])


def test_georef_lists_rasters(tmp_path: Path, make_image, capsys: pytest.CaptureFixture[str]) -> None:  # type: ignore[no-untyped-def]
    folder = tmp_path / "geo"
    make_image(folder / "sheet.jpg")
    (folder / "sheet.jgw").write_text("1\n0\n0\n-1\n0\n0\n", encoding="utf-8")
    make_image(folder / "loose.tif")

    assert cli_main.main(["georef", "--folder", str(folder)]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines == ["sheet.jpg\tworldfile\t-", "loose.tif\tunreferenced\t-"]


def test_tile_cli_invokes_manager(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    source = tmp_path / "plate.tif"
    source.touch()
    called = {}

    class StubManager:
        def __init__(self, config, *, output_dir, dry_run):  # type: ignore[no-untyped-def]
            called["init"] = {"output_dir": output_dir, "dry_run": dry_run, "min_zoom": config.min_zoom}

        def generate_tiles(self, source, **kwargs):  # type: ignore[no-untyped-def]
            called["generate_tiles"] = kwargs
            return TileSet(
                source=source,
                directory=tmp_path / "tiles",
                min_zoom=14,
                max_zoom=15,
                scheme="tms",
                tile_format="png",
                tile_counts={14: 2, 15: 8},
            )

    monkeypatch.setattr(cli_main, "TilingManager", StubManager)

    exit_code = cli_main.main(
        ["tile", "--input", str(source), "--min-zoom", "14", "--max-zoom", "15", "--tms", "--dry-run"]
    )

    assert exit_code == 0
    assert called["init"]["dry_run"] is True
    assert called["init"]["output_dir"] == Path("output") / "tiles"
    assert called["generate_tiles"]["min_zoom"] == 14
    assert called["generate_tiles"]["xyz"] is False
    assert capsys.readouterr().out.splitlines() == ["z14\t2", "z15\t8"]


def test_publish_copies_and_writes_tilejson(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    tiles = tmp_path / "tiles" / "plate"
    (tiles / "14" / "1").mkdir(parents=True)
    (tiles / "14" / "1" / "2.png").write_bytes(b"png")
    www = tmp_path / "www"

    exit_code = cli_main.main(
        [
            "publish",
            "--tiles",
            str(tiles),
            "--destination",
            str(www),
            "--base-url",
            "https://maps.example.org/tiles",
            "--min-zoom",
            "14",
            "--max-zoom",
            "14",
        ]
    )

    assert exit_code == 0
    assert (www / "plate" / "14" / "1" / "2.png").exists()
    assert capsys.readouterr().out.strip() == "https://maps.example.org/tiles/plate/{z}/{x}/{y}.png"
    tilejson = json.loads((tmp_path / "tiles" / "plate.tilejson.json").read_text())
    assert tilejson["minzoom"] == 14


def test_publish_rejects_urls(tmp_path: Path) -> None:
    (tmp_path / "tiles").mkdir()

    assert cli_main.main(["publish", "--tiles", str(tmp_path / "tiles"), "--destination", "s3://bucket"]) == 1


def test_webmap_builds_page(tmp_path: Path) -> None:
    overlay = tmp_path / "boundaries.geojson"
    overlay.write_text(json.dumps({"type": "FeatureCollection", "features": []}), encoding="utf-8")
    output = tmp_path / "site" / "index.html"

    exit_code = cli_main.main(
        [
            "webmap",
            "--layer",
            "1943=https://maps.example.org/tiles/plate/{z}/{x}/{y}.png",
            "--overlay",
            str(overlay),
            "--output",
            str(output),
            "--title",
            "Survey",
        ]
    )

    assert exit_code == 0
    document = output.read_text(encoding="utf-8")
    assert "<title>Survey</title>" in document
    assert "maps.example.org/tiles/plate" in document


def test_webmap_rejects_malformed_layer(tmp_path: Path) -> None:
    assert cli_main.main(["webmap", "--layer", "no-equals-sign", "--output", str(tmp_path / "i.html")]) == 1


def _tile_tree(tmp_path: Path) -> Path:
    tiles = tmp_path / "tiles" / "plate"
    (tiles / "14" / "1").mkdir(parents=True)
    (tiles / "14" / "1" / "2.png").write_bytes(b"png")
    return tiles


def test_publish_records_raster_bounds_in_tilejson(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    tiles = _tile_tree(tmp_path)
    raster = tmp_path / "plate.tif"
    seen = []

    def fake_bounds(path: Path) -> tuple:  # type: ignore[type-arg]
        seen.append(path)
        return (-2.75, 52.02, -2.68, 52.07)

    monkeypatch.setattr(cli_main, "raster_bounds", fake_bounds)

    exit_code = cli_main.main(
        [
            "publish",
            "--tiles",
            str(tiles),
            "--destination",
            str(tmp_path / "www"),
            "--base-url",
            "https://maps.example.org/tiles",
            "--source",
            str(raster),
        ]
    )

    assert exit_code == 0
    assert seen == [raster.resolve()]
    tilejson = json.loads((tmp_path / "tiles" / "plate.tilejson.json").read_text())
    assert tilejson["bounds"] == [-2.75, 52.02, -2.68, 52.07]
    assert tilejson["center"][:2] == pytest.approx([-2.715, 52.045])


def test_publish_bounds_option_feeds_webmap_extent(tmp_path: Path) -> None:
    tiles = _tile_tree(tmp_path)
    publish_args = ["publish", "--tiles", str(tiles), "--destination", str(tmp_path / "www")]
    publish_args += ["--base-url", "https://maps.example.org/tiles", "--bounds=-2.75,52.02,-2.68,52.07", "--tms"]
    assert cli_main.main(publish_args) == 0

    output = tmp_path / "site" / "index.html"
    tilejson = tmp_path / "tiles" / "plate.tilejson.json"
    assert cli_main.main(["webmap", "--tilejson", str(tilejson), "--output", str(output)]) == 0

    document = output.read_text(encoding="utf-8")
    start = document.index('type="application/json">') + len('type="application/json">')
    config = json.loads(document[start : document.index("</script>", start)])
    (layer,) = config["layers"]
    assert layer["bounds"] == [-2.75, 52.02, -2.68, 52.07]
    assert layer["tms"] is True
    assert config["bounds"] == [-2.75, 52.02, -2.68, 52.07]
    assert config["center"] == pytest.approx([52.045, -2.715])


def test_publish_rejects_unusable_bounds(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    tiles = _tile_tree(tmp_path)
    base = ["publish", "--tiles", str(tiles), "--destination", str(tmp_path / "www")]

    def no_extent(path: Path) -> tuple:  # type: ignore[type-arg]
        raise cli_main.GeoreferenceError(f"No WGS84 extent reported for {path}")

    monkeypatch.setattr(cli_main, "raster_bounds", no_extent)

    assert cli_main.main(base + ["--source", str(tmp_path / "plate.tif")]) == 1
    assert cli_main.main(base + ["--bounds", "1,2,3"]) == 1
    assert cli_main.main(base + ["--bounds", "5,50,1,51"]) == 1
    assert not (tmp_path / "www").exists()
