"""PeerSession 상태 머신 테스트."""

import pytest

from modules.webrtc.session import (
    CandidateQueue,
    NegotiationPhase,
    PeerSession,
    SessionDescriptionError,
    SessionRole,
)

from conftest import FakeTransport, candidate

OFFER = {"sdp": "remote-offer", "type": "offer"}
ANSWER = {"sdp": "remote-answer", "type": "answer"}


def make_session(outbox, role=SessionRole.INITIATOR, fail_on=None):
    transport = FakeTransport("bob", fail_on=fail_on)
    return PeerSession("bob", role, transport, outbox, display_name="Bob"), transport


def test_candidate_queue_drains_in_order_once():
    queue = CandidateQueue()
    for n in range(3):
        queue.push(candidate(n))

    assert queue.drain() == [candidate(0), candidate(1), candidate(2)]
    assert len(queue) == 0
    assert queue.drain() == []


async def test_initiator_offer_moves_to_offer_sent(outbox):
    session, transport = make_session(outbox)

    assert await session.create_offer() is True

    assert session.phase is NegotiationPhase.OFFER_SENT
    offer = outbox.of_type("offer")[0]["data"]
    assert offer["target_member_id"] == "bob"
    assert offer["description"]["type"] == "offer"
    assert session.local_description == offer["description"]


async def test_create_offer_is_ignored_outside_idle_or_for_responder(outbox):
    responder, _ = make_session(outbox, role=SessionRole.RESPONDER)
    assert await responder.create_offer() is False

    initiator, _ = make_session(outbox)
    await initiator.create_offer()
    assert await initiator.create_offer() is False
    assert len(outbox.of_type("offer")) == 1


async def test_answer_applied_only_in_offer_sent(outbox):
    session, transport = make_session(outbox)

    assert await session.receive_answer(ANSWER) is False
    assert session.phase is NegotiationPhase.IDLE

    await session.create_offer()
    assert await session.receive_answer(ANSWER) is True
    assert session.phase is NegotiationPhase.STABLE

    # duplicate answer
    assert await session.receive_answer(ANSWER) is False
    assert session.phase is NegotiationPhase.STABLE
    assert transport.remote_descriptions == [ANSWER]


async def test_responder_answers_offer(outbox):
    session, transport = make_session(outbox, role=SessionRole.RESPONDER)

    assert await session.receive_offer(OFFER) is True

    assert session.phase is NegotiationPhase.STABLE
    assert transport.remote_descriptions == [OFFER]
    answer = outbox.of_type("answer")[0]["data"]
    assert answer["target_member_id"] == "bob"
    assert answer["description"]["type"] == "answer"


async def test_second_offer_is_ignored(outbox):
    session, transport = make_session(outbox, role=SessionRole.RESPONDER)
    await session.receive_offer(OFFER)

    assert await session.receive_offer({"sdp": "other", "type": "offer"}) is False
    assert transport.remote_descriptions == [OFFER]
    assert len(outbox.of_type("answer")) == 1


async def test_early_candidates_are_replayed_after_answer(outbox):
    session, transport = make_session(outbox)
    await session.create_offer()

    for n in range(3):
        assert await session.add_remote_candidate(candidate(n)) is False
    assert transport.candidates == []

    await session.receive_answer(ANSWER)

    assert transport.candidates == [candidate(0), candidate(1), candidate(2)]
    assert len(session.candidates) == 0
    # applied after the description, before anything else
    assert transport.calls[-4:] == ["set_remote_description"] + ["add_ice_candidate"] * 3


async def test_early_candidates_are_replayed_before_answer_is_created(outbox):
    session, transport = make_session(outbox, role=SessionRole.RESPONDER)
    await session.add_remote_candidate(candidate(1))

    await session.receive_offer(OFFER)

    assert transport.calls == ["set_remote_description", "add_ice_candidate", "create_answer"]


async def test_candidate_after_remote_description_is_applied_immediately(outbox):
    session, transport = make_session(outbox, role=SessionRole.RESPONDER)
    await session.receive_offer(OFFER)

    assert await session.add_remote_candidate(candidate(7)) is True
    assert transport.candidates == [candidate(7)]


async def test_local_candidates_are_sent_to_remote(outbox):
    session, transport = make_session(outbox)

    await transport.emit_candidate(candidate(1))

    assert outbox.of_type("ice-candidate") == [{
        "type": "ice-candidate",
        "data": {"target_member_id": "bob", "candidate": candidate(1)},
    }]


async def test_description_failure_marks_session_failed(outbox):
    session, _ = make_session(outbox, fail_on={"set_remote_description"})
    await session.create_offer()
    await session.add_remote_candidate(candidate(1))

    with pytest.raises(SessionDescriptionError) as excinfo:
        await session.receive_answer(ANSWER)

    assert excinfo.value.stage == "apply_answer"
    assert excinfo.value.member_id == "bob"
    assert session.phase is NegotiationPhase.FAILED
    assert len(session.candidates) == 0
    assert await session.add_remote_candidate(candidate(2)) is False


async def test_offer_creation_failure_marks_session_failed(outbox):
    session, _ = make_session(outbox, fail_on={"create_offer"})

    with pytest.raises(SessionDescriptionError):
        await session.create_offer()

    assert session.phase is NegotiationPhase.FAILED
    assert outbox.messages == []


async def test_close_discards_queue_and_releases_transport(outbox):
    session, transport = make_session(outbox)
    await session.create_offer()
    await session.add_remote_candidate(candidate(1))

    await session.close()
    await session.close()

    assert session.phase is NegotiationPhase.CLOSED
    assert len(session.candidates) == 0
    assert transport.calls.count("close") == 1
    assert await session.receive_answer(ANSWER) is False

    await transport.emit_candidate(candidate(2))
    assert outbox.of_type("ice-candidate") == []
