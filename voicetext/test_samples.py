import logging
from unittest import mock

import requests

from . import samples
from .errors import ExternalServiceError
from .samples import SAMPLE_TEXT, SAMPLE_VOICES, generate_samples


def test_failure_on_one_voice_does_not_stop_the_batch(tmp_path, caplog):
    failing = SAMPLE_VOICES[2]['provider_voice']

    def synthesize(text, voice):
        if voice == failing:
            raise ExternalServiceError('OpenAI API error: 500 boom')
        return f'audio:{voice}'.encode()

    sleep = mock.Mock()
    output_dir = tmp_path / 'nested' / 'audio-samples'

    with caplog.at_level(logging.INFO, logger='voicetext.samples'):
        summary = generate_samples(output_dir=str(output_dir), synthesize=synthesize, sleep=sleep)

    assert len(summary['written']) == 5
    assert summary['failed'] == [{'voice': SAMPLE_VOICES[2]['id'], 'error': 'OpenAI API error: 500 boom'}]
    assert sorted(p.name for p in output_dir.iterdir()) == sorted(
        f"{v['id']}.mp3" for i, v in enumerate(SAMPLE_VOICES) if i != 2
    )
    assert (output_dir / 'vi-VN-HoaiMy.mp3').read_bytes() == b'audio:alloy'

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert SAMPLE_VOICES[2]['id'] in errors[0].getMessage()

    assert sleep.call_count == len(SAMPLE_VOICES) - 1
    assert all(c[0][0] == 1.0 for c in sleep.call_args_list)


def test_network_errors_are_logged_and_skipped(tmp_path):
    voices = SAMPLE_VOICES[:2]
    synthesize = mock.Mock(side_effect=[requests.ConnectionError('down'), b'audio'])

    summary = generate_samples(voices=voices, output_dir=str(tmp_path), synthesize=synthesize, sleep=mock.Mock())

    assert [f['voice'] for f in summary['failed']] == [voices[0]['id']]
    assert len(summary['written']) == 1


def test_unexpected_errors_are_recorded_and_skipped(tmp_path, caplog):
    voices = SAMPLE_VOICES[:3]
    synthesize = mock.Mock(side_effect=[KeyError('audio'), 'not bytes', b'audio'])

    with caplog.at_level(logging.ERROR, logger='voicetext.samples'):
        summary = generate_samples(voices=voices, output_dir=str(tmp_path), synthesize=synthesize, sleep=mock.Mock())

    assert [f['voice'] for f in summary['failed']] == [voices[0]['id'], voices[1]['id']]
    assert summary['failed'][1]['error'] == 'synthesizer returned str, expected bytes'
    assert summary['written'] == [str(tmp_path / f"{voices[2]['id']}.mp3")]
    assert [p.name for p in tmp_path.iterdir()] == [f"{voices[2]['id']}.mp3"]
    assert all(r.exc_info for r in caplog.records if r.levelno == logging.ERROR)


def test_every_sample_uses_the_same_text(tmp_path):
    synthesize = mock.Mock(return_value=b'audio')
    generate_samples(output_dir=str(tmp_path), synthesize=synthesize, sleep=mock.Mock())

    assert {c[0][0] for c in synthesize.call_args_list} == {SAMPLE_TEXT}
    assert [c[0][1] for c in synthesize.call_args_list] == [v['provider_voice'] for v in SAMPLE_VOICES]


def test_main_requires_api_key(monkeypatch, tmp_path):
    monkeypatch.setattr(samples.Config, 'OPENAI_API_KEY', None)
    with mock.patch('voicetext.samples.generate_samples') as generate:
        assert samples.main(['--output-dir', str(tmp_path)]) == 1
    generate.assert_not_called()


def test_main_runs_batch(monkeypatch, tmp_path):
    monkeypatch.setattr(samples.Config, 'OPENAI_API_KEY', 'sk-test')
    with mock.patch('voicetext.samples.generate_samples',
                    return_value={'written': ['a.mp3'], 'failed': []}) as generate:
        assert samples.main(['--output-dir', str(tmp_path), '--delay', '0']) == 0
    assert generate.call_args[1] == {'output_dir': str(tmp_path), 'delay': 0.0}
