"""Tests for user profile provisioning and username generation."""

import json
import random

import pytest

from user_service.models import UserProfile
from user_service.profile_service import UserProfileService
from user_service.username_generator import UsernameGenerator


def test_generated_username_format(session_factory):
    generator = UsernameGenerator(session_factory, rng=random.Random(7))

    username, attempts = generator.generate_unique_username()

    assert attempts == 1
    assert UsernameGenerator.is_valid_username(username)
    words = username.split('-')
    assert len(words) == 3
    assert len(words[-1]) == 4 and words[-1].isdigit()


def test_username_generation_gives_up(session_factory, monkeypatch):
    generator = UsernameGenerator(session_factory)
    monkeypatch.setattr(generator, 'is_username_unique', lambda username: False)

    with pytest.raises(ValueError):
        generator.generate_unique_username(max_retries=3)


@pytest.mark.parametrize('name,valid', [
    ('swift-falcon-1234', True),
    ('ab', False),
    ('-swift', False),
    ('Swift-falcon', False),
    ('swift-', False),
])
def test_is_valid_username(name, valid):
    assert UsernameGenerator.is_valid_username(name) is valid


def test_create_user_profile(session_factory):
    service = UserProfileService(session_factory)

    result = service.create_user_profile('user-1')

    assert result.success
    assert result.user_profile['user_id'] == 'user-1'
    profile = service.get_user_profile('user-1')
    assert profile['username'] == result.user_profile['username']
    assert profile['preferences'] == {
        'theme': 'light', 'language': 'en', 'autoPlay': False, 'playbackSpeed': 1.0
    }


def test_create_user_profile_is_idempotent(session_factory):
    service = UserProfileService(session_factory)

    first = service.create_user_profile('user-1')
    second = service.create_user_profile('user-1')

    assert second.success
    assert second.user_profile == first.user_profile
    session = session_factory()
    try:
        assert session.query(UserProfile).count() == 1
    finally:
        session.close()


def test_create_user_profile_reports_failure(session_factory, monkeypatch):
    service = UserProfileService(session_factory)

    def fail(**kwargs):
        raise ValueError('Failed to generate unique username after 10 attempts')

    monkeypatch.setattr(service.username_generator, 'generate_unique_username', fail)

    result = service.create_user_profile('user-2')

    assert not result.success
    assert 'unique username' in result.error


def test_delete_user_profile(session_factory):
    service = UserProfileService(session_factory)
    service.create_user_profile('user-3')

    assert service.delete_user_profile('user-3') is True
    assert service.get_user_profile('user-3') is None
    with pytest.raises(LookupError):
        service.delete_user_profile('user-3')


def test_profile_to_dict_parses_preferences():
    profile = UserProfile(id='p-1', user_id='u-1', username='calm-owl-0001', preferences=json.dumps({'theme': 'dark'}))
    assert profile.to_dict()['preferences'] == {'theme': 'dark'}
