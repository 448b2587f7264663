"""Tests for the hedgewatch command line."""

import json
from unittest.mock import patch

import pytest

from hedgewatch.cli import build_parser, main
from hedgewatch.store import InMemoryEventStore

MARKET = "bitcoin-up-or-down-february-19-2am-et"
OTHER = "bitcoin-up-or-down-february-19-3am-et"


def _docs() -> list[dict]:
    return [
        {"event": "Buy", "ts": "2025-02-19T07:00:01Z", "mode": "production",
         "data": {"market": MARKET, "side": "UP", "size": 3, "price": 0.5}},
        {"event": "Buy", "ts": "2025-02-19T07:00:02Z", "mode": "production",
         "data": {"market": MARKET, "side": "DOWN", "size": 3, "price": 0.45}},
        {"event": "Merge", "ts": "2025-02-19T07:00:03Z", "mode": "production",
         "data": {"market": MARKET, "pairs": 3, "profit": 0.15}},
        {"event": "Buy", "ts": "2025-02-19T08:00:01Z", "mode": "simulation",
         "data": {"market": OTHER, "side": "UP", "size": 1}},
    ]


@pytest.fixture
def events_file(tmp_path):
    path = tmp_path / "events.jsonl"
    path.write_text("\n".join(json.dumps(d) for d in _docs()))
    return path


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_parser_rejects_bad_mode():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["show", MARKET, "--mode", "paper"])


def test_replay_json_single_round(events_file, capsys):
    assert main(["replay", str(events_file), "--market", MARKET, "--json"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["market"] == MARKET
    assert summary["total_buys"] == 2
    assert summary["total_profit"] == pytest.approx(0.15)
    assert summary["merges"][0]["merge_group_id"] == 1


def test_replay_rendered(events_file, capsys):
    assert main(["replay", str(events_file), "--market", MARKET]) == 0
    assert MARKET in capsys.readouterr().out


def test_replay_missing_file(tmp_path, capsys):
    assert main(["replay", str(tmp_path / "nope.jsonl")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_show_uses_configured_store(capsys):
    with patch("hedgewatch.cli.create_event_store", return_value=InMemoryEventStore(_docs())):
        assert main(["show", MARKET, "--mode", "production", "--json"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["total_merges"] == 1
    assert summary["unmerged_yes"] == 0


def test_rounds_json(capsys):
    with patch("hedgewatch.cli.create_event_store", return_value=InMemoryEventStore(_docs())):
        assert main(["rounds", "--json"]) == 0

    groups = json.loads(capsys.readouterr().out)
    assert list(groups) == ["bitcoin-up-or-down"]
    assert [r["slug"] for r in groups["bitcoin-up-or-down"]] == [OTHER, MARKET]


def test_serve_runs_uvicorn():
    with patch("uvicorn.run") as run:
        assert main(["serve", "--port", "9000"]) == 0
    run.assert_called_once_with("app:app", host="0.0.0.0", port=9000)
