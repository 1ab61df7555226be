"""
Generate the voice preview samples served from /audio-samples.

Each voice in the list is synthesized with the same sample text and written
to ``<output_dir>/<voice id>.mp3``. Calls are made one at a time with a fixed
pause between them to stay under the provider's rate limit. A failing voice
is logged and skipped; the rest of the batch still runs.

Usage:
    voicetext-samples [--output-dir public/audio-samples]
"""
import argparse
import logging
import os
import sys
import time

from .config import Config
from .tts_client import synthesize_openai

logger = logging.getLogger(__name__)

SAMPLE_TEXT = (
    "Xin chào, đây là giọng đọc mẫu của VoiceText Pro. "
    "Bạn có thể sử dụng công cụ này để chuyển đổi văn bản thành giọng nói chất lượng cao."
)

# Vietnamese display voices and the provider voice used to render each sample
SAMPLE_VOICES = [
    {'id': 'vi-VN-HoaiMy', 'name': 'Hoai My', 'provider_voice': 'alloy'},
    {'id': 'vi-VN-NamMinh', 'name': 'Nam Minh', 'provider_voice': 'echo'},
    {'id': 'vi-VN-ThuHa', 'name': 'Thu Ha', 'provider_voice': 'nova'},
    {'id': 'vi-VN-QuangAnh', 'name': 'Quang Anh', 'provider_voice': 'onyx'},
    {'id': 'vi-VN-HongLan', 'name': 'Hong Lan', 'provider_voice': 'shimmer'},
    {'id': 'vi-VN-TuanVu', 'name': 'Tuan Vu', 'provider_voice': 'fable'},
]

DELAY_SECONDS = 1.0


def openai_synthesizer(api_key, timeout=None):
    """Return a ``synthesize(text, voice) -> bytes`` callable bound to an API key."""
    def synthesize(text, voice):
        kwargs = {'timeout': timeout} if timeout else {}
        return synthesize_openai(text, voice, api_key, **kwargs)
    return synthesize


def sample_path(output_dir, voice_id):
    return os.path.join(output_dir, f'{voice_id}.mp3')


def generate_sample(voice_id, provider_voice, output_dir, synthesize, text=SAMPLE_TEXT):
    """Synthesize one sample and write it; returns the output path."""
    audio = synthesize(text, provider_voice)
    if not isinstance(audio, bytes):
        raise TypeError(f'synthesizer returned {type(audio).__name__}, expected bytes')
    os.makedirs(output_dir, exist_ok=True)
    path = sample_path(output_dir, voice_id)
    with open(path, 'wb') as f:
        f.write(audio)
    return path


def generate_samples(voices=None, output_dir=None, synthesize=None, text=SAMPLE_TEXT,
                     delay=DELAY_SECONDS, sleep=time.sleep):
    """
    Generate every sample in ``voices`` sequentially.

    Returns ``{'written': [paths], 'failed': [{'voice': id, 'error': msg}]}``.
    Any error for one voice is logged and recorded; the batch carries on.
    """
    voices = SAMPLE_VOICES if voices is None else voices
    output_dir = output_dir or Config.VOICE_SAMPLES_DIR
    if synthesize is None:
        synthesize = openai_synthesizer(Config.OPENAI_API_KEY, Config.TTS_TIMEOUT)

    os.makedirs(output_dir, exist_ok=True)
    summary = {'written': [], 'failed': []}

    for index, voice in enumerate(voices):
        if index:
            sleep(delay)
        logger.info(f"[SAMPLES] Generating {voice['id']} ({voice['provider_voice']})")
        try:
            path = generate_sample(voice['id'], voice['provider_voice'], output_dir, synthesize, text)
        except Exception as e:
            logger.exception(f"[SAMPLES] Failed to generate {voice['id']}: {e}")
            summary['failed'].append({'voice': voice['id'], 'error': str(e)})
            continue
        logger.info(f"[SAMPLES] Saved {path}")
        summary['written'].append(path)

    logger.info(f"[SAMPLES] Done: {len(summary['written'])} written, {len(summary['failed'])} failed")
    return summary


def main(argv=None):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    parser = argparse.ArgumentParser(description='Generate VoiceText Pro voice samples')
    parser.add_argument('--output-dir', default=Config.VOICE_SAMPLES_DIR)
    parser.add_argument('--delay', type=float, default=DELAY_SECONDS)
    args = parser.parse_args(argv)

    if not Config.OPENAI_API_KEY:
        print("ERROR: OPENAI_API_KEY not set")
        return 1

    summary = generate_samples(output_dir=args.output_dir, delay=args.delay)
    print(f"Generated {len(summary['written'])}/{len(SAMPLE_VOICES)} samples in {args.output_dir}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
