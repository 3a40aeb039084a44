"""Tests for the call-handler webhook endpoints."""
import pytest
from sqlalchemy import func, select

from app.core.errors import GeneratorError
from app.db.models import CallSession, ResponseLog

PREFIX = "/api/call-handler"

INCOMING = {"CallSid": "CA1", "From": "+15551230000", "To": "+15559870000", "AccountSid": "AC1"}


def speech(call_sid="CA1", text="book a demo", final="true", **extra):
    fields = {
        "CallSid": call_sid,
        "AccountSid": "AC1",
        "SpeechResult": text,
        "Confidence": "0.92",
        "Final": final,
        "Timestamp": "1700000000",
        "Track": "inbound",
    }
    fields.update(extra)
    return fields


class TestDispatch:
    """Tests for webhook routing and error mapping."""

    @pytest.mark.asyncio
    async def test_unknown_event(self, test_client):
        """Test that an unknown sub-path returns 404 with a generic error."""
        response = await test_client.post(f"{PREFIX}/transfer", data={"CallSid": "CA1"})

        assert response.status_code == 404
        assert response.json() == {"error": "Unknown endpoint"}

    @pytest.mark.asyncio
    async def test_missing_call_sid(self, test_client):
        response = await test_client.post(f"{PREFIX}/incoming", data={"From": "+1"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid webhook payload"}

    @pytest.mark.asyncio
    async def test_generator_failure_is_generic_500(self, test_client, fake_generator, test_db):
        """Test that a provider failure doesn't leak details or complete the call."""
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        fake_generator.error = GeneratorError("upstream said: quota exceeded for key sk-123")

        response = await test_client.post(
            f"{PREFIX}/analyze", data={"CallSid": "CA1", "SpeechResult": "hello"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        count = await test_db.scalar(select(func.count()).select_from(ResponseLog))
        assert count == 0
        session = await test_db.get(CallSession, "CA1")
        assert session.phase != "completed"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_generic_500(self, test_client, fake_generator):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        fake_generator.error = KeyError("choices")

        response = await test_client.post(
            f"{PREFIX}/analyze", data={"CallSid": "CA1", "SpeechResult": "hello"}
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


class TestIncomingWebhook:
    """Tests for the incoming call webhook."""

    @pytest.mark.asyncio
    async def test_returns_twiml_greeting(self, test_client):
        response = await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<Response>" in response.text
        assert "Test Company" in response.text
        assert "http://testserver/api/call-handler/analyze" in response.text

    @pytest.mark.asyncio
    async def test_redelivery_creates_one_session(self, test_client, test_db):
        """Test that the same incoming webhook delivered twice yields one session."""
        first = await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        second = await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        assert first.status_code == second.status_code == 200
        count = await test_db.scalar(select(func.count()).select_from(CallSession))
        assert count == 1


class TestSpeechWebhook:
    """Tests for the speech result webhook."""

    @pytest.mark.asyncio
    async def test_acknowledges_speech(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        response = await test_client.post(f"{PREFIX}/speech", data=speech())

        assert response.status_code == 200
        assert response.json() == {"success": True}

    @pytest.mark.asyncio
    async def test_unknown_call(self, test_client):
        response = await test_client.post(f"{PREFIX}/speech", data=speech(call_sid="CA-missing"))

        assert response.status_code == 404
        assert response.json() == {"error": "Call session not found"}

    @pytest.mark.asyncio
    async def test_missing_speech_result(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        fields = speech()
        del fields["SpeechResult"]

        response = await test_client.post(f"{PREFIX}/speech", data=fields)

        assert response.status_code == 400


class TestStatusWebhook:
    """Tests for the status callback webhook."""

    @pytest.mark.asyncio
    async def test_unknown_call(self, test_client):
        """Test that status for an unknown call is a 404, not a created session."""
        response = await test_client.post(
            f"{PREFIX}/status", data={"CallSid": "CA-missing", "CallStatus": "completed"}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_status(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        response = await test_client.post(
            f"{PREFIX}/status", data={"CallSid": "CA1", "CallStatus": "exploded"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_status_update(self, test_client, activity_logger):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        response = await test_client.post(
            f"{PREFIX}/status", data={"CallSid": "CA1", "CallStatus": "Completed"}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        session = await test_client.get(PREFIX, params={"sessionId": "CA1"})
        assert session.json()["status"] == "completed"
        assert session.json()["end_time"] is not None


class TestVoicemailWebhook:
    """Tests for the voicemail webhook."""

    @pytest.mark.asyncio
    async def test_voicemail_stored(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)

        response = await test_client.post(
            f"{PREFIX}/voicemail",
            data={
                "CallSid": "CA1",
                "RecordingUrl": "https://api.twilio.com/rec/RE1",
                "TranscriptionText": "Call me back",
            },
        )

        assert response.status_code == 200
        body = (await test_client.get(PREFIX, params={"sessionId": "CA1"})).json()
        assert body["phase"] == "voicemail"
        assert body["responses"][0]["recording_url"] == "https://api.twilio.com/rec/RE1"

    @pytest.mark.asyncio
    async def test_missing_recording_url(self, test_client):
        response = await test_client.post(
            f"{PREFIX}/voicemail", data={"CallSid": "CA1", "TranscriptionText": "hi"}
        )

        assert response.status_code == 400


class TestEndToEnd:
    """Full call flows through the webhooks."""

    @pytest.mark.asyncio
    async def test_caller_gets_generated_reply(self, test_client, fake_generator):
        """Test incoming, final speech and analyze ending with the spoken reply."""
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        await test_client.post(f"{PREFIX}/speech", data=speech())

        response = await test_client.post(
            f"{PREFIX}/analyze", data={"CallSid": "CA1", "SpeechResult": "book a demo"}
        )

        assert response.status_code == 200
        twiml = response.text
        assert "<Say>Sure, let's schedule it</Say>" in twiml
        assert twiml.index("<Say>Sure, let's schedule it</Say>") < twiml.index("<Hangup")

        context, sanitized_input = fake_generator.calls[0]
        assert sanitized_input == "book a demo"
        assert context.history[0] == {"role": "user", "content": "book a demo"}

        body = (await test_client.get(PREFIX, params={"sessionId": "CA1"})).json()
        assert body["phase"] == "completed"
        assert len(body["responses"]) == 1
        assert body["responses"][0]["response_text"] == "Sure, let's schedule it"

    @pytest.mark.asyncio
    async def test_empty_input_reprompts(self, test_client, fake_generator):
        """Test that empty speech re-prompts and redirects back to analyze."""
        response = await test_client.post(
            f"{PREFIX}/analyze", data={"CallSid": "CA2", "SpeechResult": ""}
        )

        assert response.status_code == 200
        assert "I didn't catch that. Please repeat your request." in response.text
        assert "<Redirect" in response.text
        assert "/api/call-handler/analyze" in response.text
        assert fake_generator.calls == []

    @pytest.mark.asyncio
    async def test_input_for_unknown_call(self, test_client):
        response = await test_client.post(
            f"{PREFIX}/analyze", data={"CallSid": "CA-missing", "SpeechResult": "hi"}
        )

        assert response.status_code == 404


class TestGetCallSession:
    """Tests for session retrieval."""

    @pytest.mark.asyncio
    async def test_transcripts_in_insertion_order(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        await test_client.post(f"{PREFIX}/speech", data=speech(text="first", final="false", Timestamp="1"))
        await test_client.post(f"{PREFIX}/speech", data=speech(text="second", final="false", Timestamp="2"))
        await test_client.post(f"{PREFIX}/speech", data=speech(text="third", Timestamp="3"))

        response = await test_client.get(PREFIX, params={"sessionId": "CA1"})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "CA1"
        assert body["from_number"] == "+15551230000"
        assert [t["text"] for t in body["transcripts"]] == ["first", "second", "third"]
        assert body["phase"] == "analyzing"

    @pytest.mark.asyncio
    async def test_duplicate_speech_stored_once(self, test_client):
        await test_client.post(f"{PREFIX}/incoming", data=INCOMING)
        await test_client.post(f"{PREFIX}/speech", data=speech())
        await test_client.post(f"{PREFIX}/speech", data=speech())

        body = (await test_client.get(PREFIX, params={"sessionId": "CA1"})).json()

        assert len(body["transcripts"]) == 1

    @pytest.mark.asyncio
    async def test_missing_session_id(self, test_client):
        response = await test_client.get(PREFIX)

        assert response.status_code == 400
        assert response.json() == {"error": "Session ID required"}

    @pytest.mark.asyncio
    async def test_unknown_session(self, test_client):
        response = await test_client.get(PREFIX, params={"sessionId": "CA-missing"})

        assert response.status_code == 404


class TestHealth:
    """Tests for the health endpoint."""

    @pytest.mark.asyncio
    async def test_health(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "ok"}
