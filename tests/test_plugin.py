import json
from typing import Any

import click
import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine

from llm_learn_spanish import db, plugin, qwen
from llm_learn_spanish.store import StudyStore
from llm_learn_spanish.structured import WordAnalysis, WordTips


class MockQwenService:
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    def analyze(self, word: str, target_language: Any = "zh") -> WordAnalysis:
        if word == "error":
            raise qwen.TransportError(429, "rate limited")
        return WordAnalysis(meaning="说", language="zh", lemma="hablar", part_of_speech="verb")

    def generate_tips(self, word: Any) -> WordTips:
        return WordTips(tips=f"{word.headword} ~ hub-LAR")


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    test_db = str(tmp_path / "test.db")
    monkeypatch.setenv("LLM_ES_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield


@pytest.fixture
def cli(monkeypatch) -> click.Group:
    monkeypatch.setattr(qwen, "QwenService", MockQwenService)
    group = click.Group()
    plugin.register_commands(group)
    return group


def run(cli: click.Group, *args: str, input: str = None) -> Any:
    result = CliRunner().invoke(cli, list(args), input=input)
    assert result.exception is None or isinstance(result.exception, SystemExit), result.output
    return result


def load_store() -> StudyStore:
    return StudyStore(db.DatabaseBackend())


def test_commands_registered(cli: click.Group) -> None:
    expected = {
        "es-init-db", "es-add", "es-edit", "es-list", "es-remove", "es-due", "es-study",
        "es-analyze", "es-tips", "es-bulk-update", "es-review", "es-export", "es-import", "es-reminder",
    }
    assert expected <= set(cli.commands)


def test_add_and_list(cli: click.Group) -> None:
    result = run(cli, "es-add", "casa", "房子", "--plural", "casas", "--tip", "castle")
    assert "Word 'casa' added." in result.output

    result = run(cli, "es-add", "casas", "houses")
    assert "already exists" in result.output

    listing = run(cli, "es-list")
    assert "casa [other/noun] 房子 (unseen)" in listing.output
    assert "Tips: castle" in listing.output
    assert "1 words" in listing.output
    assert "No words found." in run(cli, "es-list", "--status", "mastered").output


def test_add_requires_meaning_without_analysis(cli: click.Group) -> None:
    result = run(cli, "es-add", "casa")
    assert result.exit_code == 2
    assert load_store().words == []


def test_add_verb_with_conjugation(cli: click.Group) -> None:
    run(cli, "es-add", "hablar", "说", "--pos", "verb",
        "--conjugation", "hablo,hablas,habla,hablamos,habláis,hablan")
    word = load_store().find("hablamos")
    assert word is not None and word.headword == "hablar"

    bad = run(cli, "es-add", "comer", "吃", "--conjugation", "como,comes")
    assert bad.exit_code == 2


def test_add_with_analysis_and_tips(cli: click.Group) -> None:
    result = run(cli, "es-add", "hablo", "--analyze", "--tips")
    assert "Word 'hablar' added." in result.output
    word = load_store().find("hablar")
    assert word.memory_tip == "Tips: hablar ~ hub-LAR"

    failed = run(cli, "es-add", "error", "--analyze")
    assert "rate limited" in failed.output
    assert len(load_store().words) == 1


def test_edit_word(cli: click.Group) -> None:
    run(cli, "es-add", "casa", "房子")
    run(cli, "es-add", "perro", "狗")
    assert "Word updated." in run(cli, "es-edit", "casa", "--meaning", "house", "--language", "en").output
    assert load_store().find("casa").meaning == "house"
    assert "not saved" in run(cli, "es-edit", "casa", "--headword", "perro").output
    assert "No word matching" in run(cli, "es-edit", "gato", "--meaning", "cat").output
    assert "Nothing to change." in run(cli, "es-edit", "casa").output


def test_remove(cli: click.Group) -> None:
    run(cli, "es-add", "casa", "房子")
    run(cli, "es-add", "perro", "狗")
    result = run(cli, "es-remove", "casa", "gato")
    assert "No word matching 'gato'." in result.output
    assert "Removed 1 words." in result.output
    assert [w.headword for w in load_store().words] == ["perro"]


def test_review_and_due(cli: click.Group) -> None:
    run(cli, "es-add", "casa", "房子")
    assert "All caught up" in run(cli, "es-due").output
    assert "stage 1" in run(cli, "es-review", "casa", "advance").output
    assert "stage 0" in run(cli, "es-review", "casa", "reset").output
    assert load_store().find("casa").last_reviewed_at is not None


def test_interactive_study_session(cli: click.Group) -> None:
    run(cli, "es-add", "casa", "房子")
    # single word: both choice rounds offer only the correct answer, then dictation
    result = run(cli, "es-study", "--seed", "3", input="1\n1\n casa \n")
    assert result.output.count("✅ Correct!") == 3
    assert "Session complete" in result.output
    assert load_store().find("casa").review_stage == 1

    assert "Nothing to study" in run(cli, "es-study").output


def test_analyze_tips_and_bulk(cli: click.Group) -> None:
    run(cli, "es-add", "hablo", "?")
    assert "说" in run(cli, "es-analyze", "hablo").output
    assert load_store().find("hablar") is not None

    assert "Tips: hablar ~ hub-LAR" in run(cli, "es-tips", "hablar").output

    run(cli, "es-add", "casa", "房子")
    result = run(cli, "es-bulk-update", "--mode", "tips")
    assert "Updated 2 of 2 words." in result.output
    assert all(w.memory_tip for w in load_store().words)


def test_export_and_import(cli: click.Group, tmp_path) -> None:
    run(cli, "es-add", "casa", "房子")
    path = tmp_path / "backup.json"
    assert "Exported 1 words" in run(cli, "es-export", str(path)).output
    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["words"][0]["headword"] == "casa"

    run(cli, "es-remove", "casa")
    assert "Imported 1 words." in run(cli, "es-import", str(path)).output
    assert load_store().find("casa") is not None

    broken = tmp_path / "broken.json"
    broken.write_text("{}", encoding="utf-8")
    assert "Could not import backup" in run(cli, "es-import", str(broken)).output

    null_stage = tmp_path / "null_stage.json"
    null_stage.write_text(json.dumps({"words": [dict(data["words"][0], reviewStage=None)]}), encoding="utf-8")
    assert "Could not import backup" in run(cli, "es-import", str(null_stage)).output
    assert load_store().find("casa").review_stage == 0


def test_reminder(cli: click.Group) -> None:
    result = run(cli, "es-reminder", "--time", "08:30", "--enable")
    assert "Reminder at 08:30 (on)." in result.output
    assert load_store().reminders_enabled is True
    assert "(off)" in run(cli, "es-reminder", "--disable").output
    assert run(cli, "es-reminder", "--time", "late").exit_code == 2
