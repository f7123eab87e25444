import asyncio
import base64

import httpx
import pytest

from app.core.config import settings
from app.core.errors import (
    GenerationFailed,
    GenerationTimeout,
    RequestCancelled,
    UnexpectedError,
    UpstreamRejected,
)
from app.schemas.prediction import GenerationParams
from app.services.relay import TransformRelay, encode_data_url
from fakes import FakePredictionClient, prediction

RESULT = "https://example/result.png"


def _relay(fake, max_attempts=10, sleeps=None):
    async def _sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    return TransformRelay(
        fake,
        GenerationParams.from_settings(settings),
        poll_interval=2.0,
        max_attempts=max_attempts,
        sleep=_sleep,
    )


def _run(relay, **kwargs):
    return asyncio.run(relay.run(b"\x89PNG-bytes", "image/png", **kwargs))


def test_encode_data_url_keeps_mime_type():
    url = encode_data_url(b"abc", "image/jpeg")
    assert url == "data:image/jpeg;base64," + base64.b64encode(b"abc").decode()


def test_encode_data_url_without_content_type():
    assert encode_data_url(b"", None) == "data:application/octet-stream;base64,"


def test_polls_until_succeeded_and_returns_first_output():
    fake = FakePredictionClient(
        prediction("starting"),
        [prediction("processing"), prediction("succeeded", output=[RESULT, "https://example/other.png"])],
    )
    sleeps: list[float] = []

    assert _run(_relay(fake, sleeps=sleeps)) == RESULT
    assert fake.get_calls == ["p1", "p1"]
    assert sleeps == [2.0, 2.0]
    assert fake.cancel_calls == []


def test_accepts_local_status_vocabulary():
    fake = FakePredictionClient(
        prediction("queued"),
        [prediction("running"), prediction("succeeded", output=[RESULT])],
    )
    assert _run(_relay(fake)) == RESULT
    assert len(fake.get_calls) == 2


def test_sends_encoded_image_and_fixed_parameters():
    fake = FakePredictionClient(prediction("succeeded", output=[RESULT]))
    _run(_relay(fake))

    image, params = fake.create_calls[0]
    assert image.startswith("data:image/png;base64,")
    assert params.num_inference_steps == 30
    assert params.guidance_scale == 7.5
    assert params.strength == 0.8
    assert fake.get_calls == []


def test_string_output_is_used_as_is():
    fake = FakePredictionClient(prediction("succeeded", output=RESULT))
    assert _run(_relay(fake)) == RESULT


def test_failed_job_surfaces_upstream_error():
    fake = FakePredictionClient(prediction("starting"), [prediction("failed", error="X")])

    with pytest.raises(GenerationFailed) as exc:
        _run(_relay(fake))
    assert exc.value.message == "X"
    assert exc.value.status_code == 500


def test_failed_job_without_message_uses_generic_text():
    fake = FakePredictionClient(prediction("processing"), [prediction("failed")])

    with pytest.raises(GenerationFailed) as exc:
        _run(_relay(fake))
    assert exc.value.message == "Image generation failed"


def test_canceled_job_is_a_failure():
    fake = FakePredictionClient(prediction("processing"), [prediction("canceled")])
    with pytest.raises(GenerationFailed):
        _run(_relay(fake))


def test_unknown_status_ends_the_loop_as_failure():
    fake = FakePredictionClient(prediction("exploded", error="boom"))

    with pytest.raises(GenerationFailed) as exc:
        _run(_relay(fake))
    assert exc.value.message == "boom"
    assert fake.get_calls == []


def test_succeeded_without_output_is_a_failure():
    fake = FakePredictionClient(prediction("succeeded", output=[]))

    with pytest.raises(GenerationFailed) as exc:
        _run(_relay(fake))
    assert exc.value.message == "Image generation returned no output"


def test_poll_budget_is_bounded_and_cancels_remote_job():
    fake = FakePredictionClient(prediction("starting"), [prediction("processing")])

    with pytest.raises(GenerationTimeout) as exc:
        _run(_relay(fake, max_attempts=3))
    assert exc.value.status_code == 504
    assert len(fake.get_calls) == 3
    assert fake.cancel_calls == ["p1"]


def test_cancel_failure_does_not_mask_timeout():
    class _Fake(FakePredictionClient):
        async def cancel_prediction(self, prediction_id):
            raise httpx.ConnectError("gone")

    fake = _Fake(prediction("starting"), [prediction("processing")])
    with pytest.raises(GenerationTimeout):
        _run(_relay(fake, max_attempts=1))


def test_disconnect_stops_polling_and_cancels_remote_job():
    fake = FakePredictionClient(prediction("starting"), [prediction("processing")])
    checks = iter([False, True])

    async def _is_disconnected():
        return next(checks)

    with pytest.raises(RequestCancelled):
        _run(_relay(fake), is_disconnected=_is_disconnected)
    assert fake.get_calls == ["p1"]
    assert fake.cancel_calls == ["p1"]


def test_status_regression_does_not_end_the_loop():
    fake = FakePredictionClient(
        prediction("processing"),
        [prediction("starting"), prediction("succeeded", output=[RESULT])],
    )
    assert _run(_relay(fake)) == RESULT
    assert len(fake.get_calls) == 2


def test_upstream_rejection_passes_through():
    fake = FakePredictionClient(UpstreamRejected("Invalid version", status_code=422))

    with pytest.raises(UpstreamRejected) as exc:
        _run(_relay(fake))
    assert exc.value.status_code == 422
    assert exc.value.message == "Invalid version"


def test_network_failure_while_polling_becomes_unexpected_error():
    err = httpx.ConnectError("connection reset")
    fake = FakePredictionClient(prediction("starting"), [err])

    with pytest.raises(UnexpectedError) as exc:
        _run(_relay(fake))
    assert exc.value.status_code == 500
    assert exc.value.message == "Unexpected server error. Try again later."
    assert exc.value.__cause__ is err


def test_cancelled_request_task_cancels_remote_job():
    fake = FakePredictionClient(prediction("starting"), [prediction("processing")])

    async def _go():
        waiting = asyncio.Event()

        async def _sleep(seconds):
            waiting.set()
            await asyncio.Event().wait()

        relay = TransformRelay(fake, GenerationParams.from_settings(settings), sleep=_sleep)
        task = asyncio.create_task(relay.run(b"img", "image/png"))
        await waiting.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(_go())
    assert fake.get_calls == []
    assert fake.cancel_calls == ["p1"]
