"""
Pytest configuration and fixtures.
Ensures tests run against the built-in sample places, never a live API.
"""

import os

import pytest

# Must happen BEFORE importing places_api: its global client reads the
# environment on import.
os.environ.pop('PLACES_API_URL', None)
os.environ.pop('PLACES_API_TOKEN', None)

from env_config import MapSettings  # noqa: E402
from models import Place  # noqa: E402


def make_place(place_id, lat=None, lng=None, **extra):
    raw = {'id': place_id, 'name': f'Place {place_id}', 'slug': f'place-{place_id}',
           'latitude': lat, 'longitude': lng}
    raw.update(extra)
    return Place.from_dict(raw)


@pytest.fixture
def settings():
    """Default map settings (800x600 map, 50px fit padding)."""
    return MapSettings()


@pytest.fixture
def state():
    """Stand-in for st.session_state: any mutable mapping survives 'reruns'."""
    return {}


@pytest.fixture
def p1():
    return make_place('p1', 10.77, 106.70)


@pytest.fixture
def p2():
    return make_place('p2', 10.78, 106.69)


@pytest.fixture
def p3():
    return make_place('p3', 10.80, 106.72)


@pytest.fixture
def no_coords():
    return make_place('p-none')


@pytest.fixture
def half_coords():
    return make_place('p-half', lat=None, lng=106.7)


@pytest.fixture
def fake_engine():
    """Engine loader returning folium itself, counting how often it is called."""
    import folium

    calls = {'count': 0}

    def loader():
        calls['count'] += 1
        return folium

    loader.calls = calls
    return loader


@pytest.fixture
def broken_engine():
    """Engine loader that fails the way a missing script or blocked CDN would."""
    from map_engine import MapEngineError

    def loader():
        raise MapEngineError('Map engine (folium) is not installed')

    return loader
