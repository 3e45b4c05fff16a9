import json

import httpx
import pytest

from jar_stream.tts import HttpSpeechSynthesizer, SpeechSynthesisError

from .utils import make_settings


def _synthesizer(handler, **overrides) -> HttpSpeechSynthesizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSpeechSynthesizer(make_settings(**overrides), client)


@pytest.mark.asyncio
async def test_synthesize_posts_text_and_default_voice() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, content=b"ID3-mp3", headers={"Content-Type": "audio/mpeg"})

    synthesizer = _synthesizer(handler)
    audio = await synthesizer.synthesize("  Ann donated 100 UAH  ")
    await synthesizer.aclose()

    assert audio == b"ID3-mp3"
    assert seen == [{"text": "Ann donated 100 UAH", "voice": "uk-UA-Standard-A", "format": "mp3"}]


@pytest.mark.asyncio
async def test_synthesize_requires_endpoint() -> None:
    synthesizer = _synthesizer(lambda request: httpx.Response(200, content=b"x"), TTS_ENDPOINT=None)

    with pytest.raises(SpeechSynthesisError):
        await synthesizer.synthesize("hello")
    await synthesizer.aclose()


@pytest.mark.asyncio
async def test_synthesize_rejects_blank_text() -> None:
    synthesizer = _synthesizer(lambda request: httpx.Response(200, content=b"x"))

    with pytest.raises(SpeechSynthesisError):
        await synthesizer.synthesize("   ")
    await synthesizer.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [httpx.Response(500), httpx.Response(200, content=b"")])
async def test_synthesize_backend_failures(response: httpx.Response) -> None:
    synthesizer = _synthesizer(lambda request: response)

    with pytest.raises(SpeechSynthesisError):
        await synthesizer.synthesize("hello", voice="en-US")
    await synthesizer.aclose()
