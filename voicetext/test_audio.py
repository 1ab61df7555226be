from unittest import mock

import pytest

from .errors import AuthorizationError, ExternalServiceError, ValidationError
from .extensions import db
from .models import AppSettings, AudioFile, Notification, User
from .voices import can_use_voice, check_voice_permission, voices_for


def _user(**fields):
    return User(username='u', email='u@example.com', is_active=True, **fields)


@pytest.mark.parametrize('voice, user, allowed', [
    ('alloy', None, True),
    ('banmai', None, False),
    ('banmai', _user(role='user', subscription_type='free'), True),
    ('echo', _user(role='user', subscription_type='free'), False),
    ('echo', _user(role='user', subscription_type='pro'), True),
    ('nova', _user(role='user', subscription_type='pro'), False),
    ('nova', _user(role='user', subscription_type='premium'), True),
    ('leminh', _user(role='admin', subscription_type='free'), True),
])
def test_voice_tiers(voice, user, allowed):
    assert can_use_voice(voice, user)[0] is allowed


def test_unknown_voice_is_a_validation_error():
    with pytest.raises(ValidationError):
        check_voice_permission('robot')
    with pytest.raises(AuthorizationError, match='sign in'):
        check_voice_permission('banmai')


def test_voices_for_guest_marks_locked_voices():
    voices = {v['id']: v for v in voices_for(None)}
    assert 'disabled' not in voices['alloy']
    assert voices['banmai']['disabled'] is True
    assert voices['banmai']['name'] == 'Ban Mai (SIGN UP)'
    assert voices['nova']['name'] == 'Nova (PREMIUM)'


def test_voices_endpoint_depends_on_session(client, user_client):
    guest = {v['id']: v for v in client.get('/api/voices').get_json()['voices']}
    signed_in = {v['id']: v for v in user_client.get('/api/voices').get_json()['voices']}
    assert guest['banmai'].get('disabled') is True
    assert 'disabled' not in signed_in['banmai']
    assert signed_in['echo']['disabled'] is True


def test_tts_stores_file_and_notifies(app, user_client, tmp_path):
    with mock.patch('voicetext.audio.synthesize', return_value=b'ID3' + b'\x00' * 2000) as synthesize:
        response = user_client.post('/api/tts', json={'text': 'Xin chào các bạn', 'voice': 'banmai', 'speed': 1.5})

    assert response.status_code == 200
    body = response.get_json()
    audio_file = body['audioFile']
    assert body['audioUrl'] == audio_file['audioUrl']
    assert audio_file['isTemporary'] is False
    assert audio_file['fileSize'] == 2003
    assert synthesize.call_args[0][:2] == ('Xin chào các bạn', 'banmai')
    assert synthesize.call_args[1]['speed'] == 1.5

    filename = body['audioUrl'].rsplit('/', 1)[-1]
    assert (tmp_path / 'output' / filename).exists()
    assert user_client.get(body['audioUrl']).status_code == 200

    with app.app_context():
        user = User.query.filter_by(username='alice').one()
        assert user.total_audio_files == 1
        assert user.total_characters_used == len('Xin chào các bạn')
        notice = Notification.query.filter_by(user_id=user.id, type='audio').one()
        assert notice.meta_data['action'] == 'conversion_complete'


def test_guest_tts_is_temporary_and_limited(app, client):
    with mock.patch('voicetext.audio.synthesize', return_value=b'audio-bytes'):
        ok = client.post('/api/tts', json={'text': 'hello', 'voice': 'alloy'})
        too_long = client.post('/api/tts', json={'text': 'x' * 101, 'voice': 'alloy'})
        signed_only = client.post('/api/tts', json={'text': 'hello', 'voice': 'banmai'})

    assert ok.get_json()['audioFile']['isTemporary'] is True
    assert ok.get_json()['audioFile']['userId'] is None
    assert too_long.status_code == 400
    assert 'Guests' in too_long.get_json()['error']
    assert signed_only.status_code == 403


def test_tts_validation(user_client):
    assert user_client.post('/api/tts', json={'text': '  '}).status_code == 400
    assert user_client.post('/api/tts', json={'text': 'hi', 'format': 'midi'}).status_code == 400
    assert user_client.post('/api/tts', json={'text': 'hi', 'speed': 'fast'}).status_code == 400
    assert user_client.post('/api/tts', json={'text': 'hi', 'voice': 'nova'}).status_code == 403


@pytest.mark.parametrize('body', [
    {'text': 123},
    {'text': ['hello']},
    {'text': 'hi', 'voice': 7},
    {'text': 'hi', 'format': None, 'title': {'x': 1}},
])
def test_tts_rejects_non_string_fields(user_client, body):
    with mock.patch('voicetext.audio.synthesize') as synthesize:
        response = user_client.post('/api/tts', json=body)

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    synthesize.assert_not_called()


def test_tts_provider_failure_notifies_user(app, user_client):
    failure = ExternalServiceError('OpenAI TTS error (500): boom')
    with mock.patch('voicetext.audio.synthesize', side_effect=failure):
        response = user_client.post('/api/tts', json={'text': 'hello', 'title': 'Intro'})

    assert response.status_code == 502
    assert response.get_json() == {'success': False, 'error': 'OpenAI TTS error (500): boom'}
    with app.app_context():
        assert AudioFile.query.count() == 0
        notice = Notification.query.filter_by(type='audio').one()
        assert notice.meta_data == {'action': 'conversion_failed', 'fileName': 'Intro',
                                    'error': 'OpenAI TTS error (500): boom'}


def test_tts_preview_returns_audio(client):
    with mock.patch('voicetext.audio.synthesize', return_value=b'ID3preview'):
        response = client.post('/api/tts/preview', json={'content': 'hello'})
    assert response.status_code == 200
    assert response.mimetype == 'audio/mpeg'
    assert response.data == b'ID3preview'


def test_file_quota(app, user_client):
    with app.app_context():
        AppSettings.current().free_max_files = 1
        db.session.commit()

    payload = {'title': 'One', 'content': 'hello', 'voice': 'alloy'}
    assert user_client.post('/api/audio-files', json=payload).status_code == 201
    second = user_client.post('/api/audio-files', json=dict(payload, title='Two'))

    assert second.status_code == 400
    with app.app_context():
        limits = [n for n in Notification.query.filter_by(type='audio') if n.meta_data['action'] == 'storage_limit']
        assert len(limits) == 1


def test_audio_file_crud_is_owner_scoped(app, user_client, make_user, login):
    created = user_client.post('/api/audio-files', json={'title': 'Lesson', 'content': 'hello', 'voice': 'alloy'})
    file_id = created.get_json()['audioFile']['id']

    make_user('bob')
    bob = app.test_client()
    login(bob, 'bob')
    assert bob.get(f'/api/audio-files/{file_id}').status_code == 404
    assert bob.delete(f'/api/audio-files/{file_id}').status_code == 404

    renamed = user_client.patch(f'/api/audio-files/{file_id}', json={'title': 'Lesson 1'})
    assert renamed.get_json()['audioFile']['title'] == 'Lesson 1'
    assert [f['id'] for f in user_client.get('/api/audio-files').get_json()['audioFiles']] == [file_id]

    assert user_client.delete(f'/api/audio-files/{file_id}').get_json() == {'success': True}
    assert user_client.get(f'/api/audio-files/{file_id}').status_code == 404


def test_share_toggle(client, user_client):
    created = user_client.post('/api/audio-files', json={'title': 'Song', 'content': 'la la', 'voice': 'alloy'})
    file_id = created.get_json()['audioFile']['id']

    shared = user_client.post(f'/api/audio-files/{file_id}/share').get_json()
    assert shared['isPublic'] is True
    assert client.get(shared['shareUrl']).get_json()['audioFile']['title'] == 'Song'

    unshared = user_client.post(f'/api/audio-files/{file_id}/share').get_json()
    assert unshared['isPublic'] is False
    assert unshared['shareId'] == shared['shareId']
    assert client.get(shared['shareUrl']).status_code == 404


def test_locked_user_cannot_convert(app, user_client):
    with app.app_context():
        User.query.filter_by(username='alice').one().lock('Abuse')
        db.session.commit()

    with mock.patch('voicetext.audio.synthesize') as synthesize:
        response = user_client.post('/api/tts', json={'text': 'hello'})

    assert response.status_code == 403
    assert 'Abuse' in response.get_json()['error']
    synthesize.assert_not_called()
    with app.app_context():
        assert AudioFile.query.count() == 0


def test_voice_sample_is_served(app, client, tmp_path):
    samples = tmp_path / 'audio-samples'
    samples.mkdir()
    (samples / 'alloy.mp3').write_bytes(b'ID3sample')

    response = client.get('/audio-samples/alloy.mp3')

    assert response.status_code == 200
    assert response.data == b'ID3sample'
    assert client.get('/audio-samples/missing.mp3').status_code == 404


def test_saved_file_duration_accepts_numeric_strings(user_client):
    body = {'title': 'Lesson', 'content': 'hello', 'duration': '30', 'fileSize': '2048'}
    response = user_client.post('/api/audio-files', json=body)

    assert response.status_code == 201
    assert response.get_json()['audioFile']['duration'] == 30

    me = user_client.get('/api/auth/me').get_json()
    assert me['user']['totalUsageMinutes'] == 1


@pytest.mark.parametrize('fields', [
    {'duration': 'abc'},
    {'duration': -5},
    {'duration': True},
    {'fileSize': [1]},
    {'title': 42},
    {'filePath': {'path': 'x.mp3'}},
])
def test_saved_file_rejects_bad_field_types(app, user_client, fields):
    response = user_client.post('/api/audio-files', json={'title': 'Lesson', 'content': 'hello', **fields})

    assert response.status_code == 400
    assert response.get_json()['success'] is False
    with app.app_context():
        assert AudioFile.query.count() == 0
