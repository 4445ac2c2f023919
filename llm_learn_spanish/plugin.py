from . import db
from .config import DEFAULT_SESSION_SIZE
from typing import Any, Optional, Tuple

import llm  # type: ignore

hookimpl = llm.hookimpl  # type: ignore


def _open_store() -> Any:
    from .store import StudyStore
    return StudyStore(db.DatabaseBackend())


def _parse_forms(value: Optional[str], count: int, label: str) -> Optional[Tuple[str, ...]]:
    import click
    if not value:
        return None
    forms = tuple(part.strip() for part in value.split(","))
    if len(forms) != count:
        raise click.BadParameter(f"{label} needs {count} comma-separated forms")
    return forms


def _describe(word: Any) -> str:
    from .words import mastery_status, part_of_speech_label
    line = f"{word.headword} [{part_of_speech_label(word)}] {word.meaning} ({mastery_status(word).value})"
    if word.memory_tip:
        line += f"\n    {word.memory_tip}"
    return line


@hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:
    import click
    from .words import Conjugation, GenderNumberForms, MasteryStatus, mastery_status, matches_search
    from .qwen import QwenService, ServiceError

    language_choice = click.Choice(["zh", "en"])
    pos_choice = click.Choice(["verb", "noun", "adjective", "other"])

    @cli.command("es-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Initialize the Spanish learning database."""
        db.init_db()
        click.echo("Database initialized.")

    @cli.command("es-add")  # type: ignore[misc]
    @click.argument("headword")
    @click.argument("meaning", required=False, default="")
    @click.option("--language", type=language_choice, default="zh", help="Language of the meaning")
    @click.option("--pos", type=pos_choice, default=None, help="Part of speech")
    @click.option("--conjugation", default=None, help="Six present forms: yo,tu,el/ella,nosotros,vosotros,ellos/ellas")
    @click.option("--plural", default=None, help="Noun plural")
    @click.option("--adjective-forms", default=None, help="Four forms: m.sg,f.sg,m.pl,f.pl")
    @click.option("--tip", default=None, help="Memory tip")
    @click.option("--analyze", is_flag=True, help="Fill meaning and forms with the analysis service")
    @click.option("--tips", "with_tips", is_flag=True, help="Generate a memory tip after adding")
    def add_word(headword: str, meaning: str, language: str, pos: Optional[str], conjugation: Optional[str],
                 plural: Optional[str], adjective_forms: Optional[str], tip: Optional[str],
                 analyze: bool, with_tips: bool) -> None:
        """Add a Spanish word to the vocabulary list."""
        from .enrichment import EnrichmentMode, add_word_with_analysis, enrich_word
        store = _open_store()
        service = QwenService()
        try:
            if analyze:
                word = add_word_with_analysis(store, service, headword, language, with_tips=with_tips)
            else:
                if not meaning.strip():
                    raise click.UsageError("MEANING is required unless --analyze is given.")
                conj = _parse_forms(conjugation, 6, "--conjugation")
                adj = _parse_forms(adjective_forms, 4, "--adjective-forms")
                word = store.add_word(
                    headword=headword,
                    meaning=meaning,
                    part_of_speech=pos,
                    meaning_language=language,
                    conjugation=Conjugation(*conj) if conj else None,
                    plural_form=plural,
                    gender_number_forms=GenderNumberForms(*adj) if adj else None,
                    memory_tip=tip,
                )
                if word is not None and with_tips:
                    word = enrich_word(store, service, word.id, EnrichmentMode.TIPS)
        except ServiceError as e:
            click.echo(f"⚠️  {e}")
            return
        if word is None:
            click.echo(f"Word '{headword}' already exists (skipped).")
        else:
            click.echo(f"Word '{word.headword}' added.")
            click.echo(_describe(word))

    @cli.command("es-edit")  # type: ignore[misc]
    @click.argument("word")
    @click.option("--headword", default=None)
    @click.option("--meaning", default=None)
    @click.option("--language", type=language_choice, default=None)
    @click.option("--pos", type=pos_choice, default=None)
    @click.option("--conjugation", default=None, help="Six present forms, comma-separated")
    @click.option("--plural", default=None)
    @click.option("--adjective-forms", default=None, help="Four forms, comma-separated")
    @click.option("--tip", default=None)
    def edit_word(word: str, headword: Optional[str], meaning: Optional[str], language: Optional[str],
                  pos: Optional[str], conjugation: Optional[str], plural: Optional[str],
                  adjective_forms: Optional[str], tip: Optional[str]) -> None:
        """Edit a word (looked up by id or any of its forms)."""
        store = _open_store()
        record = store.find(word)
        if record is None:
            click.echo(f"No word matching '{word}'.")
            return
        changes: dict = {}
        if headword is not None:
            changes["headword"] = headword
        if meaning is not None:
            changes["meaning"] = meaning
        if language is not None:
            changes["meaning_language"] = language
        if pos is not None:
            changes["part_of_speech"] = pos
        if conjugation is not None:
            conj = _parse_forms(conjugation, 6, "--conjugation")
            changes["conjugation"] = Conjugation(*conj) if conj else None
        if plural is not None:
            changes["plural_form"] = plural
        if adjective_forms is not None:
            adj = _parse_forms(adjective_forms, 4, "--adjective-forms")
            changes["gender_number_forms"] = GenderNumberForms(*adj) if adj else None
        if tip is not None:
            changes["memory_tip"] = tip
        if not changes:
            click.echo("Nothing to change.")
            return
        updated = store.update_word(record.id, **changes)
        if updated is None:
            click.echo("Another word already uses one of these forms (not saved).")
        else:
            click.echo("Word updated.")
            click.echo(_describe(updated))

    @cli.command("es-list")  # type: ignore[misc]
    @click.option("--search", default="", help="Filter by meaning or any form")
    @click.option("--status", type=click.Choice([s.value for s in MasteryStatus]), default=None)
    def list_words(search: str, status: Optional[str]) -> None:
        """List vocabulary with its mastery status."""
        store = _open_store()
        words = [w for w in store.words if matches_search(w, search)]
        if status:
            words = [w for w in words if mastery_status(w).value == status]
        if not words:
            click.echo("No words found.")
            return
        for w in words:
            click.echo(_describe(w))
        click.echo(f"\n{len(words)} words")

    @cli.command("es-remove")  # type: ignore[misc]
    @click.argument("words", nargs=-1, required=True)
    def remove_words(words: Tuple[str, ...]) -> None:
        """Remove words (by id or any of their forms)."""
        store = _open_store()
        ids = []
        for key in words:
            record = store.find(key)
            if record is None:
                click.echo(f"No word matching '{key}'.")
            else:
                ids.append(record.id)
        removed = store.remove_words(ids)
        click.echo(f"Removed {removed} words.")

    @cli.command("es-due")  # type: ignore[misc]
    def due_words() -> None:
        """Show words that are due for review."""
        store = _open_store()
        due = store.due_words()
        if not due:
            click.echo("🎉 No words are due for review! All caught up!")
            return
        for w in due:
            click.echo(f"{w.headword}: due {w.next_review_date:%Y-%m-%d %H:%M} UTC (stage {w.review_stage})")

    @cli.command("es-study")  # type: ignore[misc]
    @click.option("--count", default=DEFAULT_SESSION_SIZE, show_default=True, help="Number of words in the session")
    @click.option("--seed", type=int, default=None, help="Random seed for reproducible quizzes")
    def study(count: int, seed: Optional[int]) -> None:
        """Run an interactive three-round study session."""
        import random
        store = _open_store()
        session = store.start_session(count, rng=random.Random(seed))
        if session.is_complete:
            click.echo("🎉 Nothing to study right now. Add words or come back later!")
            return

        while not session.is_complete:
            question = session.question
            assert question is not None
            click.echo(f"\n[{session.completed_count}/{session.total}] {question.title}")
            if question.subject:
                click.echo(f"{question.prompt}  ({question.subject})")
            else:
                click.echo(question.prompt)
            if question.round.is_multiple_choice:
                for i, choice in enumerate(question.choices, 1):
                    click.echo(f"  {i}. {choice}")
                picked = click.prompt("Your choice", type=click.IntRange(1, len(question.choices)))
                correct = session.submit_choice(question.choices[picked - 1])
            else:
                correct = session.submit_dictation(click.prompt("Your answer", type=str))
            if correct:
                click.echo("✅ Correct!")
            else:
                click.echo(f"❌ The answer was: {question.correct_answer}")
            session.advance()

        click.echo(f"\n🎉 Session complete: {session.total} words reviewed.")
        for word_id, errors in session.results.items():
            record = store.get(word_id)
            if record is not None:
                click.echo(f"  {record.headword}: {errors} mistakes, next review {record.next_review_date:%Y-%m-%d}")

    @cli.command("es-analyze")  # type: ignore[misc]
    @click.argument("word")
    def analyze_word(word: str) -> None:
        """Re-analyze a stored word and update its meaning and forms."""
        from .enrichment import EnrichmentMode, enrich_word
        store = _open_store()
        record = store.find(word)
        if record is None:
            click.echo(f"No word matching '{word}'.")
            return
        try:
            updated = enrich_word(store, QwenService(), record.id, EnrichmentMode.ANALYSIS)
        except ServiceError as e:
            click.echo(f"⚠️  {e}")
            return
        click.echo(_describe(updated))

    @cli.command("es-tips")  # type: ignore[misc]
    @click.argument("word")
    def generate_tips(word: str) -> None:
        """Generate a new memory tip for a stored word."""
        from .enrichment import EnrichmentMode, enrich_word
        store = _open_store()
        record = store.find(word)
        if record is None:
            click.echo(f"No word matching '{word}'.")
            return
        try:
            updated = enrich_word(store, QwenService(), record.id, EnrichmentMode.TIPS)
        except ServiceError as e:
            click.echo(f"⚠️  {e}")
            return
        click.echo(updated.memory_tip if updated and updated.memory_tip else "No tip generated.")

    @cli.command("es-bulk-update")  # type: ignore[misc]
    @click.option("--mode", type=click.Choice(["analysis", "tips", "both"]), default="both", show_default=True)
    @click.argument("words", nargs=-1)
    def bulk_update(mode: str, words: Tuple[str, ...]) -> None:
        """Analyze and/or generate tips for all words (or only the given ones)."""
        from .enrichment import EnrichmentMode, bulk_enrich
        store = _open_store()
        ids = None
        if words:
            ids = [r.id for r in (store.find(key) for key in words) if r is not None]

        def progress(done: int, total: int) -> None:
            click.echo(f"  {done}/{total}")

        result = bulk_enrich(store, QwenService(), EnrichmentMode(mode), ids=ids, on_progress=progress)
        if result.ok:
            click.echo(f"✅ Updated {result.processed} of {result.total} words.")
        else:
            click.echo(f"⚠️  Stopped after {result.processed} of {result.total} words: {result.error}")

    @cli.command("es-review")  # type: ignore[misc]
    @click.argument("word")
    @click.argument("action", type=click.Choice(["advance", "reset"]))
    def review_word(word: str, action: str) -> None:
        """Move a word up one review stage, or back to the start."""
        store = _open_store()
        record = store.find(word)
        if record is None:
            click.echo(f"No word matching '{word}'.")
            return
        if action == "advance":
            updated = store.advance_review(record.id)
        else:
            updated = store.reset_review(record.id)
        assert updated is not None
        click.echo(f"'{updated.headword}' is at stage {updated.review_stage}, "
                   f"next review {updated.next_review_date:%Y-%m-%d}.")

    @cli.command("es-export")  # type: ignore[misc]
    @click.argument("path", type=click.Path(dir_okay=False))
    def export_backup(path: str) -> None:
        """Write all words and settings to a JSON backup file."""
        store = _open_store()
        with open(path, "w", encoding="utf-8") as f:
            f.write(store.export_backup())
        click.echo(f"Exported {len(store.words)} words to {path}.")

    @cli.command("es-import")  # type: ignore[misc]
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    def import_backup(path: str) -> None:
        """Replace all words and settings with a JSON backup file."""
        store = _open_store()
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        try:
            count = store.import_backup(text)
        except ValueError as e:
            click.echo(f"Could not import backup: {e}")
            return
        click.echo(f"Imported {count} words.")

    @cli.command("es-reminder")  # type: ignore[misc]
    @click.option("--time", "time_text", default=None, help="Daily reminder time (local HH:MM)")
    @click.option("--enable/--disable", default=None)
    def reminder(time_text: Optional[str], enable: Optional[bool]) -> None:
        """Show or change the daily study reminder."""
        import datetime
        store = _open_store()
        if time_text is not None:
            try:
                parsed = datetime.datetime.strptime(time_text, "%H:%M")
            except ValueError:
                raise click.BadParameter("use HH:MM", param_hint="--time")
            local = datetime.datetime.now().astimezone().replace(
                hour=parsed.hour, minute=parsed.minute, second=0, microsecond=0)
            store.update_reminder_time(local.astimezone(datetime.UTC))
        if enable is not None:
            store.set_reminders_enabled(enable)
        local_time = store.reminder_time.astimezone()
        state = "on" if store.reminders_enabled else "off"
        click.echo(f"Reminder at {local_time:%H:%M} ({state}).")
