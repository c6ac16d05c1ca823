from __future__ import annotations

from pathlib import Path

import pytest

from deskgate.core.exceptions import ParseFailure
from deskgate.core.models import (
    PLACEHOLDER_PATH,
    ActionSource,
    ActionType,
    RiskScore,
)
from deskgate.core.parser import extract_file_path, parse_intent

HOME = Path("/home/tester")


def _shape(plan):
    return [(action.type, action.args.model_dump()) for action in plan.actions]


def test_create_file_with_content():
    plan = parse_intent("create file /tmp/foo.txt with content hello", HOME)

    assert len(plan.actions) == 1
    action = plan.actions[0]
    assert action.type == ActionType.fs_create_file
    assert action.args.path == "/tmp/foo.txt"
    assert action.args.content == "hello"
    assert action.confidence == 0.9
    assert plan.risk_score == RiskScore.low.value
    assert plan.dry_run is True
    assert plan.origin.user_input == "create file /tmp/foo.txt with content hello"
    assert plan.origin.source == ActionSource.ui


def test_delete_without_path_emits_placeholder():
    plan = parse_intent("delete file", HOME)

    assert len(plan.actions) == 1
    action = plan.actions[0]
    assert action.type == ActionType.fs_delete_file
    assert action.args.path == PLACEHOLDER_PATH
    assert action.confidence == 0.7
    assert plan.risk_score == RiskScore.high.value


def test_parsing_is_idempotent_apart_from_ids():
    text = "copy /tmp/a.txt to /tmp/b.txt"

    first = parse_intent(text, HOME)
    second = parse_intent(text, HOME)

    assert _shape(first) == _shape(second)
    assert first.id != second.id


def test_copy_yields_read_then_copy():
    plan = parse_intent("copy /tmp/report.txt to /tmp/backup/report.txt", HOME)

    assert [action.type for action in plan.actions] == [
        ActionType.fs_read_file,
        ActionType.fs_copy_file,
    ]
    read_action, copy_action = plan.actions
    assert read_action.args.path == "/tmp/report.txt"
    assert copy_action.args.source_path == "/tmp/report.txt"
    assert copy_action.args.destination_path == "/tmp/backup/report.txt"
    assert all(action.confidence == 0.85 for action in plan.actions)
    assert plan.risk_score == RiskScore.medium.value
    assert len({action.id for action in plan.actions}) == 2


def test_move_and_rename_are_high_risk():
    move = parse_intent("move /tmp/a.txt to /tmp/b.txt", HOME)
    rename = parse_intent("rename /tmp/a.txt to /tmp/c.txt", HOME)

    for plan in (move, rename):
        assert plan.actions[0].type == ActionType.fs_move_file
        assert plan.risk_score == RiskScore.high.value
    assert rename.actions[0].args.destination_path == "/tmp/c.txt"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("create file", ActionType.fs_create_file),
        ("read file", ActionType.fs_read_file),
        ("move file", ActionType.fs_move_file),
        ("create folder", ActionType.fs_create_directory),
        ("mkdir", ActionType.fs_create_directory),
    ],
)
def test_bare_requests_emit_placeholders(text, expected):
    plan = parse_intent(text, HOME)

    action = plan.actions[-1]
    assert action.type == expected
    assert action.args.missing_paths()
    assert action.confidence == 0.7


def test_bare_copy_emits_two_placeholder_actions():
    plan = parse_intent("copy file", HOME)

    copy_action = plan.actions[1]
    assert copy_action.args.source_path == PLACEHOLDER_PATH
    assert copy_action.args.destination_path == PLACEHOLDER_PATH


def test_create_file_wins_over_later_families():
    # "read" and "delete" also appear, but create-file is tried first.
    plan = parse_intent("create file /tmp/read-then-delete.txt", HOME)

    assert [action.type for action in plan.actions] == [ActionType.fs_create_file]


def test_read_wins_over_copy():
    plan = parse_intent("open /tmp/copy.txt", HOME)

    assert [action.type for action in plan.actions] == [ActionType.fs_read_file]


def test_keywords_match_whole_words_only():
    plan = parse_intent("remove /tmp/old.log", HOME)

    assert plan.actions[0].type == ActionType.fs_delete_file
    assert plan.actions[0].args.path == "/tmp/old.log"


def test_remove_with_to_is_a_delete_of_the_whole_phrase():
    plan = parse_intent("remove /tmp/a.txt to /tmp/b.txt", HOME)

    assert _shape(plan) == [
        (ActionType.fs_delete_file, {"path": "/tmp/a.txt to /tmp/b.txt"})
    ]


def test_matching_ignores_case_but_keeps_path_casing():
    plan = parse_intent("Create File /tmp/Notes/TODO.md", HOME)

    assert plan.actions[0].args.path == "/tmp/Notes/TODO.md"


def test_quoted_paths_are_unwrapped():
    plan = parse_intent('delete "/tmp/my file.txt"', HOME)

    assert plan.actions[0].args.path == "/tmp/my file.txt"


def test_relative_paths_resolve_against_cwd(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    plan = parse_intent("mkdir projects/new", HOME)

    assert plan.actions[0].args.path == str(Path.cwd() / "projects" / "new")


def test_home_shorthand_expands_against_home_dir():
    plan = parse_intent("read ~/notes.txt", HOME)

    assert plan.actions[0].args.path == str(HOME / "notes.txt")


def test_unmatched_input_raises_parse_failure():
    with pytest.raises(ParseFailure) as exc_info:
        parse_intent("what's the weather like", HOME)

    assert exc_info.value.status_code == 422
    assert "LLM planner" in exc_info.value.message


def test_source_is_recorded_on_origin():
    plan = parse_intent("mkdir /tmp/x", HOME, source=ActionSource.voice)

    assert plan.origin.source == ActionSource.voice


def test_extract_file_path_prefers_quotes_then_path_like():
    assert extract_file_path("open 'a b.txt' now") == "a b.txt"
    assert extract_file_path("open /tmp/x.txt now") == "/tmp/x.txt"
    assert extract_file_path("open it") == "open it"
