#!/usr/bin/env python3
"""
Spanish Vocabulary Trainer - Flask JSON API
Word list management, three-round study sessions with spaced repetition and
Qwen-backed word analysis / memory tips.
"""

import os
import random
import traceback
import uuid
import concurrent.futures
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from flask import Flask, request, jsonify

from llm_learn_spanish import db
from llm_learn_spanish.config import DEBUG_MODE, DEFAULT_SESSION_SIZE, TEST_MODE
from llm_learn_spanish.enrichment import EnrichmentMode, add_word_with_analysis, bulk_enrich, enrich_word
from llm_learn_spanish.exercises import question_to_dict
from llm_learn_spanish.qwen import QwenService, ServiceError
from llm_learn_spanish.session import StudySession
from llm_learn_spanish.store import StudyStore
from llm_learn_spanish.words import (
    WordRecord,
    conjugation_from_dict,
    gender_forms_from_dict,
    mastery_status,
    matches_search,
    parse_timestamp,
    part_of_speech_label,
    word_to_dict,
)

DEBUG = DEBUG_MODE

# Global state shared by the request handlers
service: Optional[QwenService] = None
store: Optional[StudyStore] = None
study_sessions: Dict[str, StudySession] = {}
bulk_jobs: Dict[str, Dict[str, Any]] = {}
bulk_futures: Dict[str, concurrent.futures.Future] = {}
# One worker: bulk updates run one at a time, in the background
executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)


def init_ai(api_key: Optional[str] = None,
            base_url: Optional[str] = None,
            model_name: Optional[str] = None) -> None:
    """Initialize the Qwen analysis / tips service."""
    global service

    if TEST_MODE:
        return

    service = QwenService(api_key=api_key, model_name=model_name, base_url=base_url)
    if not service.api_key:
        print("Warning: QWEN_API_KEY is not set. Analysis and tips will be unavailable.")
        return
    print(f"✅ AI initialized with model: {service.model_name}")


def get_service() -> QwenService:
    # An unconfigured service raises MissingCredentialError on first use
    return service or QwenService()


def get_store() -> StudyStore:
    global store
    if store is None:
        store = StudyStore(db.DatabaseBackend())
    return store


app = Flask(__name__)
app.secret_key = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

if not TEST_MODE:
    init_ai()


@app.before_request
def initialize_app() -> None:
    """Initialize the database if needed."""
    if not hasattr(app, '_database_initialized'):
        try:
            if not db.is_db_initialized():
                db.init_db()
                print("✅ Database initialized on startup")
        except Exception as e:
            print(f"❌ Database startup check failed: {str(e)}")
        setattr(app, "_database_initialized", True)


def _word_json(word: WordRecord) -> Dict[str, Any]:
    data = word_to_dict(word)
    data['masteryStatus'] = mastery_status(word).value
    data['partOfSpeechLabel'] = part_of_speech_label(word)
    return data


_TEXT_KEYS = {'headword', 'meaning', 'pluralForm', 'memoryTip'}


def _word_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map the camelCase request body onto store keyword arguments (present keys only)."""
    fields: Dict[str, Any] = {}
    simple = {
        'headword': 'headword',
        'meaning': 'meaning',
        'meaningLanguage': 'meaning_language',
        'partOfSpeech': 'part_of_speech',
        'pluralForm': 'plural_form',
        'memoryTip': 'memory_tip',
    }
    for key, name in simple.items():
        if key in data:
            value = data[key]
            fields[name] = str(value) if key in _TEXT_KEYS and value is not None else value
    if 'conjugation' in data:
        fields['conjugation'] = conjugation_from_dict(data['conjugation'])
    if 'genderNumberForms' in data:
        fields['gender_number_forms'] = gender_forms_from_dict(data['genderNumberForms'])
    return fields


def _error(message: str, code: int = 400) -> Any:
    return jsonify({'status': 'error', 'message': message}), code


def _not_found() -> Any:
    return jsonify({'status': 'not_found', 'message': 'Word not found'}), 404


# -- words ------------------------------------------------------------------

@app.route('/api/words')
def api_list_words() -> Any:
    """List words, optionally filtered by search text and mastery status."""
    search = request.args.get('search', '')
    status = request.args.get('status')
    words = [w for w in get_store().words if matches_search(w, search)]
    if status:
        words = [w for w in words if mastery_status(w).value == status]
    return jsonify({'status': 'success', 'words': [_word_json(w) for w in words]})


@app.route('/api/words', methods=['POST'])
def api_add_word() -> Any:
    data = request.get_json(silent=True) or {}
    headword = str(data.get('headword') or '').strip()
    if not headword:
        return _error('headword is required')

    try:
        if data.get('analyze'):
            word = add_word_with_analysis(get_store(), get_service(), headword,
                                          data.get('meaningLanguage', 'zh'),
                                          with_tips=bool(data.get('tips')))
        else:
            fields = _word_fields(data)
            fields['headword'] = headword
            if not str(fields.get('meaning') or '').strip():
                return _error('meaning is required')
            word = get_store().add_word(**fields)
            if word is not None and data.get('tips'):
                word = enrich_word(get_store(), get_service(), word.id, EnrichmentMode.TIPS)
    except ServiceError as e:
        return _error(str(e), 502)

    if word is None:
        return jsonify({'status': 'duplicate', 'message': f"'{headword}' already exists"}), 409
    return jsonify({'status': 'success', 'word': _word_json(word)}), 201


@app.route('/api/words/<word_id>')
def api_get_word(word_id: str) -> Any:
    word = get_store().get(word_id)
    if word is None:
        return _not_found()
    return jsonify({'status': 'success', 'word': _word_json(word)})


@app.route('/api/words/<word_id>', methods=['PUT', 'PATCH'])
def api_update_word(word_id: str) -> Any:
    if get_store().get(word_id) is None:
        return _not_found()
    data = request.get_json(silent=True) or {}
    try:
        word = get_store().update_word(word_id, **_word_fields(data))
    except ValueError as e:
        return _error(str(e))
    if word is None:
        return jsonify({'status': 'duplicate', 'message': 'Another word already uses one of these forms'}), 409
    return jsonify({'status': 'success', 'word': _word_json(word)})


@app.route('/api/words/<word_id>', methods=['DELETE'])
def api_delete_word(word_id: str) -> Any:
    removed = get_store().remove_words([word_id])
    if not removed:
        return _not_found()
    return jsonify({'status': 'success', 'removed': removed})


@app.route('/api/words/delete', methods=['POST'])
def api_delete_words() -> Any:
    data = request.get_json(silent=True) or {}
    ids: List[str] = [str(i) for i in data.get('ids', [])]
    removed = get_store().remove_words(ids)
    return jsonify({'status': 'success', 'removed': removed})


@app.route('/api/words/<word_id>/review', methods=['POST'])
def api_review_word(word_id: str) -> Any:
    """Manually advance or reset a word's review stage."""
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if action == 'advance':
        word = get_store().advance_review(word_id)
    elif action == 'reset':
        word = get_store().reset_review(word_id)
    else:
        return _error("action must be 'advance' or 'reset'")
    if word is None:
        return _not_found()
    return jsonify({'status': 'success', 'word': _word_json(word)})


@app.route('/api/due')
def api_due_words() -> Any:
    due = get_store().due_words()
    if not due:
        return jsonify({'status': 'no_due', 'message': 'No words due for review!', 'words': []})
    return jsonify({'status': 'success', 'words': [_word_json(w) for w in due]})


# -- study sessions ---------------------------------------------------------

def _session_state(session_id: str, study: StudySession) -> Dict[str, Any]:
    state: Dict[str, Any] = {
        'status': 'complete' if study.is_complete else 'success',
        'session_id': session_id,
        'progress': {'completed': study.completed_count, 'total': study.total},
        'question': question_to_dict(study.question) if study.question else None,
        'awaiting_answer': study.awaiting_answer,
    }
    if study.is_complete:
        state['results'] = [
            {'id': word_id, 'errors': errors} for word_id, errors in study.results.items()
        ]
    return state


@app.route('/api/session/start', methods=['POST'])
def api_start_session() -> Any:
    """Start a study session over the due and unseen words."""
    data = request.get_json(silent=True) or {}
    try:
        count = int(data.get('count') or DEFAULT_SESSION_SIZE)
    except (TypeError, ValueError):
        return _error('count must be an integer')
    seed = data.get('seed')
    rng = random.Random(seed) if seed is not None else None
    study = get_store().start_session(count, rng=rng)
    if study.is_complete:
        return jsonify({'status': 'no_cards', 'message': 'Nothing to study right now!'})
    session_id = uuid.uuid4().hex
    study_sessions[session_id] = study
    return jsonify(_session_state(session_id, study))


@app.route('/api/session/<session_id>')
def api_session_state(session_id: str) -> Any:
    study = study_sessions.get(session_id)
    if study is None:
        return _error('Session not found', 404)
    return jsonify(_session_state(session_id, study))


@app.route('/api/session/<session_id>/answer', methods=['POST'])
def api_session_answer(session_id: str) -> Any:
    study = study_sessions.get(session_id)
    if study is None:
        return _error('Session not found', 404)
    data = request.get_json(silent=True) or {}
    answer = str(data.get('answer', ''))
    question = study.question
    try:
        correct = study.submit(answer)
    except ValueError as e:
        return _error(str(e), 409)
    assert question is not None
    return jsonify({
        'status': 'success',
        'is_correct': correct,
        'correct_answer': question.correct_answer,
        'subject': question.subject,
    })


@app.route('/api/session/<session_id>/continue', methods=['POST'])
def api_session_continue(session_id: str) -> Any:
    study = study_sessions.get(session_id)
    if study is None:
        return _error('Session not found', 404)
    try:
        study.advance()
    except ValueError as e:
        return _error(str(e), 409)
    state = _session_state(session_id, study)
    if study.is_complete:
        study_sessions.pop(session_id, None)
    return jsonify(state)


# -- analysis and tips ------------------------------------------------------

def _enrich_one(word_id: str, mode: EnrichmentMode) -> Any:
    if get_store().get(word_id) is None:
        return _not_found()
    try:
        word = enrich_word(get_store(), get_service(), word_id, mode)
    except ServiceError as e:
        if DEBUG:
            print(f"Error enriching word {word_id}: {e}")
            traceback.print_exc()
        return _error(str(e), 502)
    assert word is not None
    return jsonify({'status': 'success', 'word': _word_json(word)})


@app.route('/api/words/<word_id>/analyze', methods=['POST'])
def api_analyze_word(word_id: str) -> Any:
    return _enrich_one(word_id, EnrichmentMode.ANALYSIS)


@app.route('/api/words/<word_id>/tips', methods=['POST'])
def api_word_tips(word_id: str) -> Any:
    return _enrich_one(word_id, EnrichmentMode.TIPS)


def _run_bulk_job(job_id: str, mode: EnrichmentMode, ids: Optional[List[str]]) -> None:
    job = bulk_jobs[job_id]

    def progress(done: int, total: int) -> None:
        job['processed'] = done
        job['total'] = total

    try:
        result = bulk_enrich(get_store(), get_service(), mode, ids=ids, on_progress=progress)
    except Exception as e:
        print(f"❌ Bulk update {job_id} crashed: {e}")
        job.update({'status': 'error', 'error': str(e)})
        raise
    job.update({
        'status': 'done' if result.ok else 'error',
        'processed': result.processed,
        'total': result.total,
        'failed_word_id': result.failed_word_id,
        'error': result.error,
    })


@app.route('/api/bulk_update', methods=['POST'])
def api_bulk_update() -> Any:
    """Start a background analysis / tips update; poll with GET /api/bulk_update/<job_id>."""
    if any(job['status'] == 'running' for job in bulk_jobs.values()):
        return jsonify({'status': 'busy', 'message': 'A bulk update is already running'}), 409
    data = request.get_json(silent=True) or {}
    try:
        mode = EnrichmentMode(data.get('mode', 'both'))
    except ValueError:
        return _error("mode must be 'analysis', 'tips' or 'both'")
    ids = [str(i) for i in data['ids']] if data.get('ids') else None
    total = len(ids) if ids is not None else len(get_store().words)
    if total == 0:
        return _error('No words to update')

    job_id = uuid.uuid4().hex
    bulk_jobs[job_id] = {
        'status': 'running',
        'mode': mode.value,
        'processed': 0,
        'total': total,
        'failed_word_id': None,
        'error': None,
    }
    bulk_futures[job_id] = executor.submit(_run_bulk_job, job_id, mode, ids)
    return jsonify({'status': 'success', 'job_id': job_id}), 202


@app.route('/api/bulk_update/<job_id>')
def api_bulk_update_status(job_id: str) -> Any:
    job = bulk_jobs.get(job_id)
    if job is None:
        return _error('Job not found', 404)
    return jsonify({'status': 'success', 'job': dict(job)})


# -- backup and settings ----------------------------------------------------

@app.route('/api/backup')
def api_export_backup() -> Any:
    return app.response_class(get_store().export_backup(), mimetype='application/json')


@app.route('/api/backup', methods=['POST'])
def api_import_backup() -> Any:
    text = request.get_data(as_text=True)
    try:
        count = get_store().import_backup(text)
    except ValueError as e:
        return _error(f'Invalid backup: {e}')
    study_sessions.clear()
    return jsonify({'status': 'success', 'imported': count})


def _reminder_json() -> Dict[str, Any]:
    current = get_store()
    return {
        'status': 'success',
        'reminderTime': current.reminder_time.isoformat(),
        'remindersEnabled': current.reminders_enabled,
    }


@app.route('/api/settings/reminder')
def api_get_reminder() -> Any:
    return jsonify(_reminder_json())


@app.route('/api/settings/reminder', methods=['POST'])
def api_update_reminder() -> Any:
    data = request.get_json(silent=True) or {}
    if 'reminderTime' in data:
        try:
            when = parse_timestamp(data['reminderTime'])
        except ValueError:
            return _error('reminderTime must be an ISO-8601 timestamp')
        if when is not None:
            get_store().update_reminder_time(when)
    if 'remindersEnabled' in data:
        get_store().set_reminders_enabled(bool(data['remindersEnabled']))
    return jsonify(_reminder_json())


@app.route('/ai_status')
def ai_status() -> Any:
    current = get_service()
    return jsonify({
        'status': 'success',
        'configured': bool(current.api_key),
        'model': current.model_name,
        'time': datetime.now(UTC).isoformat(),
    })


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description='Spanish Vocabulary Trainer')
    parser.add_argument('--host', default='127.0.0.1', help='Host IP to bind to (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=5000, help='Port to bind to (default: 5000)')
    parser.add_argument('--qwen-key', help='Qwen (DashScope) API Key')
    parser.add_argument('--model', help='Qwen model name (qwen-plus, qwen-turbo, qwen-max)')
    parser.add_argument('--base-url', help='OpenAI-compatible endpoint (default: DashScope)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode')

    args = parser.parse_args()

    if args.debug:
        DEBUG = True

    if args.qwen_key or args.model or args.base_url:
        init_ai(api_key=args.qwen_key, base_url=args.base_url, model_name=args.model)

    try:
        if not db.is_db_initialized():
            db.init_db()
            print("✅ Database initialized")
    except Exception as e:
        print(f"❌ Database initialization failed: {str(e)}")

    print(f"🚀 Starting server on http://{args.host}:{args.port}")
    app.run(debug=DEBUG, host=args.host, port=args.port)
