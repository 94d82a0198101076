from __future__ import annotations

import json
import threading
from collections.abc import Generator
from pathlib import Path

import pytest

from inpigreffe.greffes import compressor, lookup as lookup_module, storage
from inpigreffe.greffes.base import CompressedIndex, GreffeRange
from inpigreffe.greffes.lookup import GreffeLookup, lookup, lookup_greffe

_POSTAL_CODES = {
    "75001": "PARIS",
    "75002": "PARIS",
    "75003": "PARIS",
    "13001": "MARSEILLE",
    "69001": "LYON",
}


@pytest.fixture(autouse=True)
def reset_lookup_singleton(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.delenv(lookup_module.INDEX_PATH_ENV, raising=False)
    GreffeLookup.reset()
    yield
    GreffeLookup.reset()


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    path = tmp_path / "greffes-index-compressed.json"
    storage.write_compressed_index(compressor.compress(_POSTAL_CODES), path)
    return path


class _UntouchableIndex(dict):
    def __getitem__(self, key: object) -> object:
        raise AssertionError("index must not be consulted")


class _RecordingLogger:
    def __init__(self) -> None:
        self.errors: list[tuple[object, ...]] = []

    def error(self, *args: object) -> None:
        self.errors.append(args)

    def debug(self, *args: object) -> None:
        return None

    def info(self, *args: object) -> None:
        return None


def test_binary_search_over_many_ranges() -> None:
    ranges = [
        GreffeRange(start=f"{start:05d}", end=f"{start + 4:05d}", greffe=f"G{start}")
        for start in range(1000, 90000, 10)
    ]
    index = CompressedIndex(
        ranges=ranges,
        singles={},
        metadata={"originalSize": 0, "compressedSize": 0, "compressionRatio": 0.0},
    )

    assert lookup("01000", index) == "G1000"
    assert lookup("01004", index) == "G1000"
    assert lookup("01005", index) is None
    assert lookup("45672", index) == "G45670"
    assert lookup("89994", index) == "G89990"
    assert lookup("00999", index) is None
    assert lookup("99999", index) is None


def test_singles_take_precedence_and_non_numeric_codes_skip_ranges() -> None:
    index = CompressedIndex(
        ranges=[GreffeRange(start="75000", end="75010", greffe="PARIS")],
        singles={"2A004": "AJACCIO"},
        metadata={"originalSize": 12, "compressedSize": 2, "compressionRatio": 83.33},
    )

    assert lookup("2A004", index) == "AJACCIO"
    assert lookup("7500A", index) is None
    assert lookup("75005", index) == "PARIS"


@pytest.mark.parametrize("code", ["", "123", "750011", None])
def test_malformed_codes_never_touch_the_index(
    code: str | None, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail() -> GreffeLookup:
        raise AssertionError("index must not be loaded")

    monkeypatch.setattr(GreffeLookup, "instance", classmethod(lambda cls: _fail()))

    assert lookup_greffe(code) is None


@pytest.mark.parametrize("code", ["", "123", "750011", None])
def test_wrong_length_code_does_not_consult_index(code: str | None) -> None:
    index = _UntouchableIndex(ranges=[], singles={}, metadata={})

    assert lookup(code, index) is None  # type: ignore[arg-type]


def test_wrong_length_key_in_singles_is_never_returned() -> None:
    index = compressor.compress({"123": "X", "75001": "PARIS"})

    assert lookup("123", index) is None
    assert lookup("75001", index) == "PARIS"


def test_lookup_greffe_reads_artifact_from_environment(
    artifact: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv(lookup_module.INDEX_PATH_ENV, str(artifact))

    assert lookup_greffe("75002") == "PARIS"
    assert lookup_greffe("69001") == "LYON"
    assert lookup_greffe("75004") is None


def test_index_is_loaded_once_and_kept(artifact: Path) -> None:
    GreffeLookup.configure(artifact)

    assert lookup_greffe("13001") == "MARSEILLE"
    artifact.unlink()

    assert lookup_greffe("75003") == "PARIS"
    assert GreffeLookup.instance().load_failed is False


def test_missing_artifact_fails_open(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    recorder = _RecordingLogger()
    monkeypatch.setattr(lookup_module, "LOGGER", recorder)
    GreffeLookup.configure(tmp_path / "absent.json")

    assert lookup_greffe("75001") is None
    assert lookup_greffe("13001") is None
    assert lookup_greffe("69001") is None

    assert GreffeLookup.instance().load_failed is True
    assert len(recorder.errors) == 1


@pytest.mark.parametrize(
    "content",
    ["{not json", "[1, 2, 3]", json.dumps({"ranges": "oops", "singles": {}})],
)
def test_corrupt_artifact_fails_open(tmp_path: Path, content: str) -> None:
    path = tmp_path / "corrupt.json"
    path.write_text(content, encoding="utf-8")
    GreffeLookup.configure(path)

    assert lookup_greffe("75001") is None
    assert GreffeLookup.instance().load_failed is True


def test_deeply_nested_artifact_fails_open(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    recorder = _RecordingLogger()
    monkeypatch.setattr(lookup_module, "LOGGER", recorder)
    path = tmp_path / "nested.json"
    path.write_text("[" * 200000, encoding="utf-8")
    GreffeLookup.configure(path)

    assert lookup_greffe("75001") is None
    assert GreffeLookup.instance().load_failed is True
    assert len(recorder.errors) == 1


def test_unordered_ranges_fail_open(tmp_path: Path) -> None:
    path = tmp_path / "unordered.json"
    path.write_text(
        json.dumps(
            {
                "ranges": [
                    {"start": "75001", "end": "75003", "greffe": "PARIS"},
                    {"start": "13001", "end": "13003", "greffe": "MARSEILLE"},
                    {"start": "69001", "end": "69003", "greffe": "LYON"},
                ],
                "singles": {},
            }
        ),
        encoding="utf-8",
    )
    GreffeLookup.configure(path)

    assert lookup_greffe("75002") is None
    assert GreffeLookup.instance().load_failed is True


def test_uncompressed_index_is_served_directly(tmp_path: Path) -> None:
    path = tmp_path / "greffes-index.json"
    path.write_text(
        json.dumps({"byCodePostal": _POSTAL_CODES, "byCodeInsee": {"75101": "PARIS"}}),
        encoding="utf-8",
    )
    GreffeLookup.configure(path)

    assert lookup_greffe("75002") == "PARIS"
    assert lookup_greffe("75101") is None
    assert GreffeLookup.instance().index["ranges"] == []


def test_reload_picks_up_refreshed_artifact(artifact: Path) -> None:
    GreffeLookup.configure(artifact)
    assert lookup_greffe("33000") is None

    storage.write_compressed_index(
        compressor.compress({**_POSTAL_CODES, "33000": "BORDEAUX"}), artifact
    )
    assert lookup_greffe("33000") is None

    GreffeLookup.instance().reload()
    assert lookup_greffe("33000") == "BORDEAUX"


def test_reset_forgets_configured_path(artifact: Path) -> None:
    GreffeLookup.configure(artifact)
    assert GreffeLookup.instance().index_path == artifact

    GreffeLookup.reset()

    assert GreffeLookup.instance().index_path == lookup_module.default_index_path()


def test_concurrent_first_queries_load_once(
    artifact: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    calls: list[Path] = []
    original_loader = lookup_module.load_lookup_index

    def counting_loader(path: Path) -> CompressedIndex:
        calls.append(path)
        return original_loader(path)

    monkeypatch.setattr(lookup_module, "load_lookup_index", counting_loader)
    GreffeLookup.configure(artifact)

    barrier = threading.Barrier(8)
    results: list[str | None] = []
    results_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        value = lookup_greffe("75001")
        with results_lock:
            results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == ["PARIS"] * 8
    assert len(calls) == 1
