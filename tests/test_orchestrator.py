from __future__ import annotations

import asyncio

import pytest

from calls.errors import MissingInputError, NotifierError, StoreError, TranscriptionError, ValidationError
from calls.schemas import AnsweredBy
from fakes import FROM_NUMBER, FakeFetcher, FakeNotifier, InMemoryRepository, build_orchestrator


async def _status(orchestrator, call_sid, status, *, to="+15551234567", from_=FROM_NUMBER, **kwargs):
    await orchestrator.on_status(
        call_sid,
        to=to,
        from_=from_,
        status=status,
        answered_by=kwargs.pop("answered_by", AnsweredBy.HUMAN),
        duration=kwargs.pop("duration", None),
    )
    await orchestrator.drain()


@pytest.mark.parametrize("number", [None, "", "   "])
def test_initiate_call_without_number_never_contacts_notifier(number):
    notifier = FakeNotifier()
    orchestrator = build_orchestrator(InMemoryRepository(), notifier)

    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.initiate_call(number))

    assert notifier.calls == []


def test_initiate_call_places_call_with_callbacks_and_precreates_record():
    notifier = FakeNotifier()
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo, notifier)

    call_sid = asyncio.run(orchestrator.initiate_call("+15551234567"))

    placed = notifier.calls[0]
    assert placed["answer_url"] == "https://example.com/api/call/voice"
    assert placed["status_url"] == "https://example.com/api/call/status"
    record = repo.records[call_sid]
    assert (record.to_number, record.status) == ("+15551234567", "initiated")


def test_initiate_call_propagates_notifier_failure():
    orchestrator = build_orchestrator(InMemoryRepository(), FakeNotifier(fail_calls=True))
    with pytest.raises(NotifierError):
        asyncio.run(orchestrator.initiate_call("+15551234567"))


def test_initiate_call_survives_store_failure():
    notifier = FakeNotifier()
    orchestrator = build_orchestrator(InMemoryRepository(fail=True), notifier)

    call_sid = asyncio.run(orchestrator.initiate_call("+15551234567"))

    assert call_sid.startswith("CA")


def test_on_answered_has_no_persistence_side_effect():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo)

    machine = orchestrator.on_answered("CA1", AnsweredBy.MACHINE_END_BEEP)
    human = orchestrator.on_answered("CA1", AnsweredBy.HUMAN)

    assert not machine.has_record
    assert human.has_record
    assert repo.upserts == []


def test_incoming_call_plays_reminder_and_records():
    orchestrator = build_orchestrator(InMemoryRepository())
    assert orchestrator.on_incoming_call("+15557654321").has_record


@pytest.mark.parametrize("recording_url", [None, "", "  "])
def test_recording_ready_without_url_fails_before_network(recording_url):
    fetcher = FakeFetcher()
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo, fetcher=fetcher)

    with pytest.raises(MissingInputError) as excinfo:
        asyncio.run(orchestrator.on_recording_ready("CA1", recording_url))

    assert isinstance(excinfo.value, ValidationError)
    assert fetcher.requested == []
    assert repo.upserts == []


def test_recording_ready_stores_recording_and_transcript():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo, fetcher=FakeFetcher("yes"))

    script = asyncio.run(orchestrator.on_recording_ready("CA1", "https://api.twilio.com/rec/RE1"))

    assert not script.has_record
    record = repo.records["CA1"]
    assert record.transcript == "yes"
    assert record.recording_url == "https://api.twilio.com/rec/RE1"


def test_recording_ready_transcription_failure_skips_upsert():
    repo = InMemoryRepository()
    fetcher = FakeFetcher(error=TranscriptionError("exhausted"))
    orchestrator = build_orchestrator(repo, fetcher=fetcher)

    with pytest.raises(TranscriptionError):
        asyncio.run(orchestrator.on_recording_ready("CA1", "https://api.twilio.com/rec/RE1"))

    assert repo.upserts == []


def test_recording_ready_propagates_store_failure():
    orchestrator = build_orchestrator(InMemoryRepository(fail=True))
    with pytest.raises(StoreError):
        asyncio.run(orchestrator.on_recording_ready("CA1", "https://api.twilio.com/rec/RE1"))


def test_status_last_write_wins():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo)

    async def scenario():
        await _status(orchestrator, "CA9", "in-progress", to="+15550000001", from_="+15550000002")
        await _status(orchestrator, "CA9", "completed", to="+15550000003", from_="+15550000004", duration=42)

    asyncio.run(scenario())

    record = repo.records["CA9"]
    assert record.status == "completed"
    assert (record.to_number, record.from_number) == ("+15550000003", "+15550000004")
    assert record.duration == 42


def test_status_defaults_duration_to_zero():
    repo = InMemoryRepository()
    asyncio.run(_status(build_orchestrator(repo), "CA2", "ringing"))
    assert repo.records["CA2"].duration == 0


def test_status_does_not_clear_transcript():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo, fetcher=FakeFetcher("yes"))

    async def scenario():
        await orchestrator.on_recording_ready("CA3", "https://api.twilio.com/rec/RE3")
        await _status(orchestrator, "CA3", "completed")

    asyncio.run(scenario())

    record = repo.records["CA3"]
    assert record.transcript == "yes"
    assert record.status == "completed"


def test_completed_machine_call_is_recorded_as_voicemail_left():
    repo = InMemoryRepository()
    asyncio.run(
        _status(build_orchestrator(repo), "CA4", "completed", answered_by=AnsweredBy.MACHINE_END_BEEP)
    )
    assert repo.records["CA4"].status == "voicemail-left"


@pytest.mark.parametrize(
    ("status", "expected_sms"),
    [("no-answer", 1), ("busy", 1), ("failed", 1), ("completed", 0), ("in-progress", 0)],
)
def test_fallback_sms_only_for_unreached_calls(status, expected_sms):
    notifier = FakeNotifier()
    orchestrator = build_orchestrator(InMemoryRepository(), notifier)

    asyncio.run(_status(orchestrator, "CA5", status))

    assert len(notifier.sms) == expected_sms
    if expected_sms:
        assert notifier.sms[0] == {"to": "+15551234567", "from_": FROM_NUMBER, "body": "We missed you."}


def test_status_swallows_store_and_sms_failures():
    notifier = FakeNotifier(fail_sms=True)
    orchestrator = build_orchestrator(InMemoryRepository(fail=True), notifier)

    asyncio.run(_status(orchestrator, "CA6", "no-answer"))

    assert len(notifier.sms) == 1


def test_status_uses_deferred_scheduler_when_given():
    notifier = FakeNotifier()
    orchestrator = build_orchestrator(InMemoryRepository(), notifier)
    deferred: list = []

    async def scenario():
        await orchestrator.on_status(
            "CA7",
            to="+15551234567",
            from_=FROM_NUMBER,
            status="busy",
            answered_by=AnsweredBy.UNKNOWN,
            duration=0,
            defer=lambda func, *args: deferred.append((func, args)),
        )
        assert notifier.sms == []
        func, args = deferred[0]
        await func(*args)

    asyncio.run(scenario())

    assert len(notifier.sms) == 1


def test_list_calls_newest_first():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo)

    async def scenario():
        await _status(orchestrator, "CA-old", "completed")
        await _status(orchestrator, "CA-new", "completed")
        return await orchestrator.list_calls()

    records = asyncio.run(scenario())
    assert [record.call_sid for record in records] == ["CA-new", "CA-old"]


def test_list_calls_propagates_store_failure():
    with pytest.raises(StoreError):
        asyncio.run(build_orchestrator(InMemoryRepository(fail=True)).list_calls())


def test_status_without_classification_keeps_earlier_answered_by():
    repo = InMemoryRepository()
    orchestrator = build_orchestrator(repo)

    async def scenario():
        await _status(orchestrator, "CA10", "completed", answered_by=AnsweredBy.HUMAN, duration=20)
        # A late "in-progress" callback sent before machine detection finished.
        await _status(orchestrator, "CA10", "in-progress", answered_by=None)

    asyncio.run(scenario())

    record = repo.records["CA10"]
    assert record.answered_by == "human"
    assert record.status == "in-progress"
    assert "answered_by" not in repo.upserts[-1][1].changed_fields()


def test_completed_without_classification_is_stored_verbatim():
    repo = InMemoryRepository()
    asyncio.run(_status(build_orchestrator(repo), "CA11", "completed", answered_by=None))
    assert repo.records["CA11"].status == "completed"
    assert repo.records["CA11"].answered_by is None


def test_initiate_call_does_not_roll_back_an_earlier_status_callback():
    repo = InMemoryRepository()

    class FastCallbackNotifier(FakeNotifier):
        async def place_call(self, **kwargs) -> str:
            call_sid = await super().place_call(**kwargs)
            # Twilio's status webhook lands before calls.create returns.
            await orchestrator.on_status(
                call_sid,
                to=kwargs["to"],
                from_=kwargs["from_"],
                status="ringing",
                answered_by=None,
                duration=None,
            )
            return call_sid

    orchestrator = build_orchestrator(repo, FastCallbackNotifier())

    call_sid = asyncio.run(orchestrator.initiate_call("+15551234567"))

    record = repo.records[call_sid]
    assert record.status == "ringing"
    assert record.to_number == "+15551234567"
