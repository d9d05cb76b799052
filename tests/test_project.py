"""Tests for ProjectSession: operations, status machine, persistence hooks.

WHY: The project session is where AI failures become terminal statuses and
where a reset must win over a slow AI call that is still in flight. These
rules are invisible in the happy path and easy to regress.

HOW: AI collaborators are the fakes from conftest. Async operations are
driven with asyncio.run(); supersession tests hold the fake transcriber on
an asyncio.Event and reset the session while it waits.

RULES:
- No network access; persistence goes to MemoryBackend
"""

from __future__ import annotations

import asyncio

import pytest

from subtitle_studio.core.cues import Cue
from subtitle_studio.core.project import (
    PROCESSING_TRANSITIONS,
    ProcessingStatus,
    ProjectSession,
)
from subtitle_studio.errors import (
    DubbingFailed,
    InvalidTransition,
    NoAudioGenerated,
    OperationInProgress,
    TranscriptionFailed,
    TranslationFailed,
)
from subtitle_studio.storage.backend import ActivityType, MemoryBackend

from conftest import FakeSynthesizer, FakeTranscriber, FakeTranslator


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def session(backend) -> ProjectSession:
    session = ProjectSession(user_id="u1", backend=backend)
    session.import_media("interview.mp4", size=1024)
    return session


def _generate(session, transcriber=None):
    return asyncio.run(session.generate_subtitles(transcriber or FakeTranscriber(), b"audio", "audio/wav"))


class TestStatusMachine:

    def test_new_session_is_idle(self):
        assert ProjectSession().status is ProcessingStatus.IDLE

    def test_busy_status_cannot_jump_to_another_busy_status(self):
        assert ProcessingStatus.DUBBING not in PROCESSING_TRANSITIONS[ProcessingStatus.ANALYZING]

    def test_disallowed_transition_raises(self, session):
        session.status = ProcessingStatus.ANALYZING
        with pytest.raises(InvalidTransition):
            session._set_status(ProcessingStatus.TRANSLATING)

    def test_second_operation_while_busy_raises(self, session, translator):
        session.status = ProcessingStatus.DUBBING
        with pytest.raises(OperationInProgress):
            asyncio.run(session.translate(translator, "Spanish"))


class TestReservation:
    """A queued operation holds the project before its status changes."""

    def test_reserved_project_is_busy(self, session, translator):
        session.reserve()
        assert session.busy
        assert session.status is ProcessingStatus.IDLE
        with pytest.raises(OperationInProgress):
            session.reserve()
        with pytest.raises(OperationInProgress):
            asyncio.run(session.translate(translator, "Spanish"))

    def test_claim_then_run(self, session, transcriber):
        ticket = session.reserve()
        assert session.claim(ticket) is True
        assert not session.busy
        assert _generate(session, transcriber) is not None

    def test_reset_drops_reservation(self, session):
        ticket = session.reserve()
        session.reset()
        assert not session.busy
        assert session.claim(ticket) is False

    def test_stale_release_keeps_newer_reservation(self, session):
        old = session.reserve()
        session.reset()
        new = session.reserve()
        session.release(old)
        assert session.busy
        session.release(new)
        assert not session.busy

    def test_reserve_while_running_raises(self, session):
        session.status = ProcessingStatus.ANALYZING
        with pytest.raises(OperationInProgress):
            session.reserve()


class TestGenerateSubtitles:

    def test_success_replaces_cues_and_commits(self, session, backend):
        cues = _generate(session)
        assert [c.id for c in cues] == ["c1", "c2", "c3"]
        assert session.status is ProcessingStatus.READY
        assert session.detected_language == "English"
        assert len(session.history) == 1
        assert not session.history.can_undo

    def test_success_autosaves_and_logs(self, session, backend):
        _generate(session)
        saved = backend.load_project_state("u1")
        assert saved.project_name == "interview.mp4"
        assert [c.id for c in saved.cues] == ["c1", "c2", "c3"]
        types = [a.type for a in backend.activities]
        assert types == [ActivityType.GENERATE, ActivityType.UPLOAD]
        assert backend.activities[0].details == {
            "fileName": "interview.mp4", "language": "English", "itemCount": 3,
        }

    def test_failure_leaves_cues_untouched(self, session):
        _generate(session)
        broken = FakeTranscriber(error=RuntimeError("boom"))
        with pytest.raises(TranscriptionFailed):
            _generate(session, broken)
        assert session.status is ProcessingStatus.ERROR
        assert session.status_message == TranscriptionFailed.default_message
        assert [c.id for c in session.cues] == ["c1", "c2", "c3"]

    def test_new_transcription_drops_dub(self, session, synthesizer):
        _generate(session)
        asyncio.run(session.generate_dub(synthesizer, request_delay_s=0))
        assert session.dub is not None
        _generate(session)
        assert session.dub is None

    def test_reset_during_transcription_discards_result(self, session, backend):
        async def scenario():
            gate = asyncio.Event()
            transcriber = FakeTranscriber(gate=gate)
            task = asyncio.create_task(session.generate_subtitles(transcriber, b"a", "audio/wav"))
            await asyncio.sleep(0)
            assert session.status is ProcessingStatus.ANALYZING
            session.reset()
            gate.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert session.cues == []
        assert session.status is ProcessingStatus.IDLE
        assert backend.load_project_state("u1") is None

    def test_failure_after_reset_is_silent(self, session):
        async def scenario():
            gate = asyncio.Event()
            transcriber = FakeTranscriber(gate=gate, error=RuntimeError("late"))
            task = asyncio.create_task(session.generate_subtitles(transcriber, b"a", "audio/wav"))
            await asyncio.sleep(0)
            session.reset()
            gate.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert session.status is ProcessingStatus.IDLE


class TestTranslate:

    def test_translates_and_records_original(self, session, translator):
        _generate(session)
        cues = asyncio.run(session.translate(translator, "Spanish"))
        assert [c.text for c in cues] == ["HELLO THERE.", "HOW ARE YOU?", "FINE, THANKS."]
        assert cues[0].original_text == "Hello there."
        assert session.status is ProcessingStatus.READY
        assert session.history.can_undo

    def test_translator_receives_ids_and_texts(self, session, translator):
        _generate(session)
        asyncio.run(session.translate(translator, "French"))
        items, language = translator.calls[0]
        assert language == "French"
        assert items[0] == {"id": "c1", "text": "Hello there."}

    def test_partial_translation_keeps_missing_texts(self, session):
        _generate(session)
        cues = asyncio.run(session.translate(FakeTranslator(mapping={"c2": "¿Qué tal?"}), "Spanish"))
        assert [c.text for c in cues] == ["Hello there.", "¿Qué tal?", "Fine, thanks."]

    def test_undo_restores_pre_translation_text(self, session, translator):
        _generate(session)
        asyncio.run(session.translate(translator, "Spanish"))
        cues = session.undo()
        assert cues[0].text == "Hello there."
        assert cues[0].original_text is None

    def test_failure_sets_error_and_keeps_cues(self, session):
        _generate(session)
        with pytest.raises(TranslationFailed):
            asyncio.run(session.translate(FakeTranslator(error=ValueError("bad json")), "Spanish"))
        assert session.status is ProcessingStatus.ERROR
        assert session.cues[0].text == "Hello there."


class TestGenerateDub:
    """Scenario: a three-cue script synthesized in bounded chunks."""

    def test_dub_script_orders_by_start(self):
        session = ProjectSession()
        session.store.insert_many([
            Cue(id="b", start_time=5, end_time=6, text="second"),
            Cue(id="a", start_time=0, end_time=1, text=" first "),
            Cue(id="e", start_time=2, end_time=3, text="   "),
        ])
        assert session.dub_script() == "first second"

    def test_success_sets_dub_and_progress(self, session, backend, synthesizer):
        _generate(session)
        seen = []
        dub = asyncio.run(session.generate_dub(
            synthesizer, voice="Puck", on_progress=seen.append,
            max_chunk_chars=15, request_delay_s=0,
        ))
        assert dub is session.dub
        assert dub.chunk_count == 3
        assert seen == pytest.approx([100 / 3, 200 / 3, 100.0])
        assert session.progress == 100.0
        assert session.status is ProcessingStatus.READY
        assert all(voice == "Puck" for _, voice in synthesizer.calls)
        assert backend.activities[0].type is ActivityType.DUB
        assert backend.activities[0].details["chunkCount"] == 3

    def test_no_text_fails_immediately(self, session, synthesizer):
        with pytest.raises(DubbingFailed, match="No text to dub"):
            asyncio.run(session.generate_dub(synthesizer))
        assert session.status is ProcessingStatus.ERROR
        assert synthesizer.calls == []

    def test_all_chunks_empty_raises_no_audio(self, session):
        _generate(session)
        silent = FakeSynthesizer(empty=range(10))
        with pytest.raises(NoAudioGenerated):
            asyncio.run(session.generate_dub(silent, max_chunk_chars=15, request_delay_s=0))
        assert session.status is ProcessingStatus.ERROR
        assert session.dub is None

    def test_dub_does_not_touch_history(self, session, synthesizer):
        _generate(session)
        before = len(session.history)
        asyncio.run(session.generate_dub(synthesizer, request_delay_s=0))
        assert len(session.history) == before

    def test_reset_during_dub_ignores_late_progress(self, session):
        _generate(session)
        seen = []

        async def scenario():
            gate = asyncio.Event()
            synthesizer = FakeSynthesizer(gate=gate, gate_at=1)
            task = asyncio.create_task(session.generate_dub(
                synthesizer, on_progress=seen.append, max_chunk_chars=15, request_delay_s=0,
            ))
            while len(synthesizer.calls) < 2:
                await asyncio.sleep(0)
            assert seen == pytest.approx([100 / 3])
            session.reset()
            gate.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert seen == pytest.approx([100 / 3])
        assert session.dub is None
        assert session.progress is None
        assert session.status is ProcessingStatus.IDLE

    def test_dub_finishing_after_reset_is_not_installed(self, session, synthesizer):
        _generate(session)
        asyncio.run(session.generate_dub(synthesizer, request_delay_s=0))

        async def scenario():
            gate = asyncio.Event()
            slow = FakeSynthesizer(gate=gate)
            task = asyncio.create_task(session.generate_dub(slow, request_delay_s=0))
            await asyncio.sleep(0)
            session.reset()
            gate.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert session.dub is None


class TestEdits:

    def test_update_then_commit_is_one_undo_step(self, session):
        _generate(session)
        session.update_cue("c1", text="H")
        session.update_cue("c1", text="Hi")
        session.commit_changes()
        assert session.undo()[0].text == "Hello there."
        assert session.redo()[0].text == "Hi"

    def test_shift_all_ms(self, session):
        _generate(session)
        session.shift_all_ms(-250)
        assert session.cues[0].start_time == 0.25

    def test_split_and_delete(self, session):
        _generate(session)
        first, second = session.split_cue("c1", 1.0)
        assert session.delete_cue(second.id) is True
        assert [c.id for c in session.cues] == ["c1", "c2", "c3"]
        assert session.delete_cue("missing") is False

    def test_undo_redo_at_boundaries_are_noops(self, session):
        _generate(session)
        assert [c.id for c in session.undo()] == ["c1", "c2", "c3"]
        assert [c.id for c in session.redo()] == ["c1", "c2", "c3"]

    @pytest.mark.parametrize("step", ["undo", "redo"])
    def test_boundary_keeps_uncommitted_edit(self, session, step):
        _generate(session)
        session.update_cue("c1", text="Hello wor")
        cues = getattr(session, step)()
        assert cues[0].text == "Hello wor"
        assert session.history.cursor == 0

    def test_redo_at_end_keeps_uncommitted_edit(self, session):
        _generate(session)
        session.update_cue("c1", text="Hi")
        session.commit_changes()
        session.undo()
        session.redo()
        session.update_cue("c2", text="How are")
        assert session.redo()[1].text == "How are"
        assert session.cues[0].text == "Hi"


class TestOpenAndReset:

    def test_open_restores_saved_project(self, session, backend):
        _generate(session)
        session.update_cue("c1", text="Edited")
        session.commit_changes()

        reopened = ProjectSession(user_id="u1", backend=backend)
        assert reopened.open() is True
        assert reopened.project_name == "interview.mp4"
        assert reopened.cues[0].text == "Edited"
        assert reopened.status is ProcessingStatus.READY
        assert not reopened.history.can_undo

    def test_open_without_saved_project(self, backend):
        session = ProjectSession(user_id="nobody", backend=backend)
        assert session.open() is False
        assert session.status is ProcessingStatus.IDLE

    def test_reset_bumps_generation_and_clears(self, session):
        _generate(session)
        generation = session.generation
        session.reset()
        assert session.generation == generation + 1
        assert session.cues == []
        assert session.media is None
        assert len(session.history) == 0


class TestExport:

    def test_export_uses_project_stem(self, session):
        _generate(session)
        filename, output = session.export("srt")
        assert filename == "interview_subs.srt"
        assert output.content.startswith("1\n00:00:00,500 --> 00:00:02,000\nHello there.\n")

    def test_export_logs_activity(self, session, backend):
        _generate(session)
        session.export("json")
        assert backend.activities[0].type is ActivityType.EXPORT
        assert backend.activities[0].details == {"format": "json", "fileName": "interview_subs.json"}

    def test_unknown_format_raises(self, session):
        with pytest.raises(ValueError, match="Unknown export format"):
            session.export("docx")
