import json
import logging
import sys

import pytest

from cinerank import cli


@pytest.fixture
def snapshot_file(tmp_path):
    path = tmp_path / "snapshot.json"
    path.write_text(json.dumps({
        "movies": [
            {"id": 1, "title": "Memories of Murder", "director": "Bong", "genres": ["Crime"], "avgRating": 8.8, "voteCount": 400},
            {"id": 2, "title": "Mother", "director": "Bong", "genres": ["Drama"], "avgRating": 8.0, "voteCount": 250},
            {"id": 3, "title": "Oldboy", "director": "Park", "genres": ["Thriller"], "avgRating": 8.4, "voteCount": 700},
            {"id": 4, "title": "Hahaha", "director": "Hong", "genres": ["Comedy"], "avgRating": 6.0, "voteCount": 30},
        ],
        "reviews": [
            {"userId": 1, "movieId": 1, "rating": 9},
            {"userId": 2, "movieId": 3, "rating": 8},
            {"userId": 2, "movieId": 4, "rating": 4},
        ],
        "likes": [{"userId": 1, "movieId": 1}],
    }), encoding="utf-8")
    return path


def _run(monkeypatch, argv):
    monkeypatch.setattr(sys, "argv", ["prog", *argv])
    cli.main()


def test_cli_parses_recommend_args(monkeypatch):
    captured = {}

    def fake_recommend(args):
        captured.update(vars(args))

    monkeypatch.setattr(cli, "cmd_recommend", fake_recommend)
    _run(monkeypatch, ["recommend", "snap.json", "--user", "3", "--strategy", "latent",
                       "--top-k", "4", "--genres", "Horror", "Drama", "--seed", "9"])

    assert captured["snapshot"] == "snap.json"
    assert captured["user"] == 3
    assert captured["strategy"] == "latent"
    assert captured["top_k"] == 4
    assert captured["genres"] == ["Horror", "Drama"]
    assert captured["seed"] == 9
    assert captured["format"] == "text"


def test_cli_dispatch_directors(monkeypatch):
    called = []
    monkeypatch.setattr(cli, "cmd_directors", lambda args: called.append(args))
    _run(monkeypatch, ["directors", "snap.json", "--user", "1", "--confidence", "0.95"])
    assert called[0].command == "directors"
    assert called[0].confidence == 0.95


def test_recommend_text_output(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["recommend", str(snapshot_file), "--user", "1", "--top-k", "2"])

    assert "Top 2 recommendations for user 1 (heuristic)" in caplog.text
    assert "Mother" in caplog.text
    assert "1. Memories of Murder" not in caplog.text


def test_recommend_json_output(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["recommend", str(snapshot_file), "--user", "1", "--format", "json"])

    payload = next(
        json.loads(record.message) for record in caplog.records if record.message.startswith("{")
    )
    assert payload["hasPreferenceSignals"] is True
    assert [m["movieId"] for m in payload["rankedMovies"]][0] == 2
    assert {m["movieId"] for m in payload["rankedMovies"]} == {2, 3, 4}


def test_recommend_latent_with_seed(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["recommend", str(snapshot_file), "--user", "2", "--strategy", "latent", "--seed", "5"])
    assert "recommendations for user 2 (latent)" in caplog.text


def test_cold_start_user_gets_quality_chart(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["recommend", str(snapshot_file), "--user", "99", "--top-k", "1"])
    assert "1. Mother" in caplog.text
    assert "highest-quality" in caplog.text


def test_directors_command(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["directors", str(snapshot_file), "--user", "1"])
    assert "1. Bong" in caplog.text


def test_quality_command(monkeypatch, snapshot_file, caplog):
    caplog.set_level(logging.INFO)
    _run(monkeypatch, ["quality", str(snapshot_file), "--top-k", "2"])
    assert "top 2 by quality" in caplog.text


def test_missing_snapshot_exits(monkeypatch, tmp_path, caplog):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, ["quality", str(tmp_path / "nope.json")])
    assert exc.value.code == 1
    assert "Could not load snapshot" in caplog.text


def test_invalid_confidence_exits(monkeypatch, snapshot_file):
    with pytest.raises(SystemExit):
        _run(monkeypatch, ["directors", str(snapshot_file), "--user", "1", "--confidence", "1.5"])


def test_directors_without_signals_exits(monkeypatch, snapshot_file, caplog):
    with pytest.raises(SystemExit) as exc:
        _run(monkeypatch, ["directors", str(snapshot_file), "--user", "99"])
    assert exc.value.code == 1
    assert "No likes or ratings for user 99" in caplog.text
