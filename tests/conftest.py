import os
import random
import tempfile

import pytest

# The web module reads its configuration at import time
_DB_DIR = tempfile.mkdtemp(prefix='moodfade-tests-')
os.environ.setdefault('SPOTIFY_CLIENT_ID', 'test_id')
os.environ.setdefault('SPOTIFY_CLIENT_SECRET', 'test_secret')
os.environ.setdefault('SECRET_KEY', 'test_key')
os.environ['MOODFADE_DB'] = os.path.join(_DB_DIR, 'app.db')


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / 'moodfade.db')
