import json

from ssbprep.gateway import DiscussionPoint, Evaluation, MIN_PPDT_WORDS, word_count
from ssbprep.media import MediaClip

from .conftest import LONG_STORY, evaluation_json


async def test_short_ppdt_submission_never_reaches_the_model(gateway, fake_client):
    outcome = await gateway.evaluate_ppdt("A man near a jeep.", "He fixes it.")
    assert outcome.ok
    assert outcome.value.score == 0
    assert outcome.value.verdict == "Insufficient Data"
    fake_client.generate_json.assert_not_awaited()


async def test_ppdt_submission_over_threshold_is_evaluated(gateway, fake_client):
    assert word_count(LONG_STORY) >= MIN_PPDT_WORDS
    fake_client.generate_json.return_value = evaluation_json(
        6.5, perception={"heroAge": "22", "heroSex": "M", "heroMood": "Positive", "mainTheme": "Rescue"}
    )
    outcome = await gateway.evaluate_ppdt(LONG_STORY, "", "Three men near a jeep")
    assert outcome.ok
    assert outcome.value.score == 6.5
    assert outcome.value.detail["perception"]["mainTheme"] == "Rescue"
    fake_client.generate_json.assert_awaited_once()
    fake_client.aclose.assert_awaited()


async def test_scores_are_clamped_to_ten(gateway, fake_client):
    fake_client.generate_json.return_value = evaluation_json(14, subScores={"planning": -3, "delivery": "n/a"})
    outcome = await gateway.evaluate_gpe("Flood in the village", "Rescue first", "Rescue then report")
    assert outcome.value.score == 10
    assert outcome.value.sub_scores == {"planning": 0}


async def test_malformed_json_is_a_failure_with_raw_text(gateway, fake_client):
    fake_client.generate_json.return_value = "The candidate did well overall."
    outcome = await gateway.evaluate_lecturette("Cyber Warfare", "Cyber warfare is ...")
    assert not outcome.ok
    assert outcome.raw == "The candidate did well overall."


async def test_network_error_is_a_failure_not_an_exception(gateway, fake_client):
    fake_client.generate_json.side_effect = ConnectionError("unreachable")
    outcome = await gateway.evaluate_gpe("Flood", "Plan", "Plan")
    assert not outcome.ok
    assert "unreachable" in outcome.error
    fake_client.aclose.assert_awaited()


def test_evaluation_from_payload_tolerates_loose_types():
    evaluation = Evaluation.from_payload({"score": "7.5", "strengths": "Good start", "weaknesses": None})
    assert evaluation.score == 7.5
    assert evaluation.strengths == ["Good start"]
    assert evaluation.weaknesses == []
    assert evaluation.verdict == "Assessment Complete"


async def test_simulated_discussion_skips_empty_points(gateway, fake_client):
    fake_client.generate_json.return_value = json.dumps(
        {"points": [{"speaker": "Candidate 2", "text": "Help the injured first."}, {"speaker": "Candidate 3", "text": ""}]}
    )
    outcome = await gateway.simulate_discussion("Bus accident", "Call ambulance")
    assert outcome.value == [DiscussionPoint("Candidate 2", "Help the injured first.")]


async def test_empty_discussion_is_a_failure(gateway, fake_client):
    fake_client.generate_json.return_value = json.dumps({"points": []})
    outcome = await gateway.simulate_discussion("Bus accident", "")
    assert not outcome.ok


async def test_incomplete_outline_is_a_failure(gateway, fake_client):
    fake_client.generate_json.return_value = json.dumps({"introduction": "", "keyPoints": [], "conclusion": "x"})
    outcome = await gateway.generate_lecturette_outline("Agniveer Scheme")
    assert not outcome.ok


async def test_outline_is_normalised(gateway, fake_client):
    fake_client.generate_json.return_value = json.dumps(
        {"introduction": "Intro", "keyPoints": ["History", " ", "Way forward"], "conclusion": "End"}
    )
    outcome = await gateway.generate_lecturette_outline("Agniveer Scheme")
    assert outcome.value == {"introduction": "Intro", "keyPoints": ["History", "Way forward"], "conclusion": "End"}


async def test_stimulus_falls_back_to_stock_image(gateway, fake_client):
    fake_client.generate_inline.side_effect = RuntimeError("image model unavailable")
    stimulus = await gateway.generate_ppdt_stimulus("Two people pushing a cart uphill")
    assert not stimulus.generated
    assert stimulus.url.startswith("https://")
    assert stimulus.description == "Two people pushing a cart uphill"


async def test_generated_stimulus_is_a_data_url(gateway, fake_client):
    fake_client.generate_inline.return_value = ("image/png", "aGVsbG8=")
    stimulus = await gateway.generate_ppdt_stimulus()
    assert stimulus.generated
    assert stimulus.url == "data:image/png;base64,aGVsbG8="


async def test_speak_returns_audio_clip(gateway):
    outcome = await gateway.speak("Situation: a flood has cut off the village.")
    assert outcome.ok
    assert outcome.value.mime_type == "audio/wav"


async def test_transcription_sends_inline_audio(gateway, fake_client):
    outcome = await gateway.transcribe_audio(MediaClip.audio(b"\x1aE\xdf\xa3"))
    assert outcome.value == "transcribed text"
    parts = fake_client.generate_multimodal.await_args.args[0]
    assert parts[1]["inline_data"]["mime_type"] == "audio/webm"


async def test_chat_maps_roles(gateway, fake_client):
    outcome = await gateway.chat([{"role": "assistant", "text": "Jai Hind"}, {"role": "user", "text": ""}], "What is OIR?")
    assert outcome.ok
    contents = fake_client.chat.await_args.args[0]
    assert [c["role"] for c in contents] == ["model", "user"]
