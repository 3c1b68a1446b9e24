# FILE: tests/test_main.py

import asyncio

import main
from core.test_definition import TestDefinition
from engine.attempt_store import AttemptStore
from storage.json_storage import AttemptStorage, PaperStorage
from conftest import make_question


def test_parser_knows_all_commands():
    parser = main.build_parser()

    args = parser.parse_args(["import-paper", "paper.pdf", "-e", "neet", "-d", "180"])
    assert args.exam_type == "neet"
    assert args.duration == 180

    args = parser.parse_args(["analyze", "attempt_1", "--remote"])
    assert args.remote.startswith("http")

    args = parser.parse_args(["history", "--paper-id", "p1"])
    assert args.paper_id == "p1"


def test_no_command_prints_help(capsys):
    assert main.main([]) == 0
    assert "import-paper" in capsys.readouterr().out


def test_import_missing_file_fails(tmp_path, capsys):
    assert main.main(["import-paper", str(tmp_path / "missing.pdf")]) == 1
    assert "File not found" in capsys.readouterr().out


def test_analyze_unknown_attempt_fails(capsys):
    assert main.main(["analyze", "attempt_does_not_exist"]) == 1
    assert "not found" in capsys.readouterr().out


def test_analyze_with_malformed_paper_fails(capsys):
    paper = TestDefinition(
        paper_id="cli-broken", exam_type="jee", duration_seconds=60,
        questions=(make_question("Q1", "A"),),
    )
    store = AttemptStore()
    store.initialize(paper)
    store.set_answer("Q1", "A")

    attempts = AttemptStorage()
    submitted = asyncio.run(attempts.submit_attempt(store.freeze()))
    paper_path = PaperStorage().save_paper(paper)
    paper_path.write_text("{not json", encoding="utf-8")

    try:
        assert main.main(["analyze", submitted.attempt_id]) == 1
        assert "malformed" in capsys.readouterr().out
    finally:
        paper_path.unlink()
        (attempts.base_dir / f"{submitted.attempt_id}.json").unlink()
