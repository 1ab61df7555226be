"""
Clients for the external TTS providers (OpenAI speech API and FPT.AI).

Both return raw audio bytes or raise ExternalServiceError.
"""
import logging
import time

import requests

from .errors import ExternalServiceError
from .voices import provider_for

logger = logging.getLogger(__name__)

OPENAI_TTS_URL = 'https://api.openai.com/v1/audio/speech'
FPT_TTS_URL = 'https://api.fpt.ai/hmi/tts/v5'

OPENAI_MODEL = 'tts-1'
OPENAI_SPEED_RANGE = (0.25, 4.0)
FPT_SPEED_RANGE = (0.5, 2.0)

# FPT returns an async URL that starts serving audio once synthesis is done
FPT_MAX_POLLS = 12
FPT_BASE_DELAY = 2.0  # seconds
FPT_MAX_DELAY = 10.0
FPT_MIN_AUDIO_BYTES = 1000

DEFAULT_TIMEOUT = 120


def clamp(value, low, high):
    try:
        value = float(value)
    except (TypeError, ValueError):
        value = 1.0
    return max(low, min(high, value))


def _error_detail(response):
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] if response.text else f'HTTP {response.status_code}'
    if isinstance(body, dict):
        error = body.get('error')
        if isinstance(error, dict):
            return error.get('message', str(error))
        return str(error or body.get('message') or body)[:200]
    return str(body)[:200]


def synthesize_openai(text, voice, api_key, speed=1.0, response_format='mp3',
                      model=OPENAI_MODEL, url=OPENAI_TTS_URL, timeout=DEFAULT_TIMEOUT):
    """Call the OpenAI speech endpoint and return audio bytes."""
    if not api_key:
        raise ExternalServiceError('OpenAI API key is not configured')

    payload = {
        'model': model,
        'input': text,
        'voice': voice,
        'speed': clamp(speed, *OPENAI_SPEED_RANGE),
        'response_format': response_format,
    }
    logger.info(f"[TTS] OpenAI request: voice={voice}, text_len={len(text)}")

    try:
        response = requests.post(
            url,
            headers={'Authorization': f'Bearer {api_key}', 'Content-Type': 'application/json'},
            json=payload,
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise ExternalServiceError(f'OpenAI TTS request failed: {e}') from e

    if response.status_code != 200:
        detail = _error_detail(response)
        logger.error(f"[TTS] OpenAI error {response.status_code}: {detail}")
        raise ExternalServiceError(f'OpenAI API error: {response.status_code} {detail}')
    return response.content


def fpt_poll_delay(attempt):
    """Delay before poll ``attempt + 1``: 2s growing by 1.3x, capped at 10s."""
    return min(FPT_BASE_DELAY * (1.3 ** attempt), FPT_MAX_DELAY)


def synthesize_fpt(text, voice, api_key, speed=1.0, audio_format='mp3',
                   url=FPT_TTS_URL, timeout=DEFAULT_TIMEOUT, sleep=time.sleep):
    """Request FPT.AI synthesis, then poll the async URL until the audio is ready."""
    if not api_key:
        raise ExternalServiceError('FPT API key is not configured')

    headers = {
        'api-key': api_key,
        'speed': str(clamp(speed, *FPT_SPEED_RANGE)),
        'voice': voice,
        'format': audio_format,
        'Content-Type': 'application/x-www-form-urlencoded',
    }
    logger.info(f"[TTS] FPT request: voice={voice}, text_len={len(text)}")

    try:
        response = requests.post(url, headers=headers, data=text.encode('utf-8'), timeout=timeout)
    except requests.RequestException as e:
        raise ExternalServiceError(f'FPT AI request failed: {e}') from e

    if response.status_code != 200:
        raise ExternalServiceError(f'FPT AI synthesis failed: {response.status_code} {_error_detail(response)}')
    try:
        result = response.json()
    except ValueError:
        raise ExternalServiceError(f'Invalid JSON response from FPT AI: {response.text[:200]}') from None
    if result.get('error'):
        raise ExternalServiceError(f"FPT AI error: {result.get('message')}")
    async_url = result.get('async')
    if not async_url:
        raise ExternalServiceError('No async URL in FPT AI response')

    for attempt in range(FPT_MAX_POLLS):
        try:
            audio = requests.get(async_url, timeout=timeout)
        except requests.RequestException as e:
            logger.warning(f"[TTS] FPT poll {attempt + 1}/{FPT_MAX_POLLS} failed: {e}")
        else:
            content_type = audio.headers.get('content-type', '')
            if audio.status_code == 200 and ('audio' in content_type or 'mpeg' in content_type):
                if len(audio.content) > FPT_MIN_AUDIO_BYTES:
                    logger.info(f"[TTS] FPT audio ready after {attempt + 1} poll(s), {len(audio.content)} bytes")
                    return audio.content
                logger.info(f"[TTS] FPT audio too small ({len(audio.content)} bytes), retrying")
            else:
                logger.info(f"[TTS] FPT audio not ready (status={audio.status_code}, type={content_type})")
        if attempt < FPT_MAX_POLLS - 1:
            sleep(fpt_poll_delay(attempt))

    raise ExternalServiceError(f'FPT AI audio not ready after {FPT_MAX_POLLS} attempts')


def synthesize(text, voice, config, speed=1.0, audio_format='mp3', sleep=time.sleep):
    """Dispatch to the provider that owns ``voice``; ``config`` is a Flask config mapping."""
    timeout = config.get('TTS_TIMEOUT', DEFAULT_TIMEOUT)
    if provider_for(voice) == 'fpt':
        return synthesize_fpt(
            text, voice, config.get('FPT_API_KEY'), speed=speed,
            audio_format='wav' if audio_format == 'wav' else 'mp3',
            url=config.get('FPT_TTS_URL', FPT_TTS_URL), timeout=timeout, sleep=sleep,
        )
    return synthesize_openai(
        text, voice, config.get('OPENAI_API_KEY'), speed=speed, response_format=audio_format,
        url=config.get('OPENAI_TTS_URL', OPENAI_TTS_URL), timeout=timeout,
    )
