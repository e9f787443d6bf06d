import io
import os

import pytest
from PIL import Image

from app import app as flask_app


def png_bytes(size=(300, 200), color=(200, 30, 30), mode='RGB'):
    buffered = io.BytesIO()
    Image.new(mode, size, color).save(buffered, format='PNG')
    return buffered.getvalue()


@pytest.fixture
def app(tmp_path):
    flask_app.config.update(TESTING=True, INPUT_DIR=str(tmp_path))
    yield flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def staged_image(app):
    """Write a PNG straight into the input dir and return its name."""
    def stage(size=(300, 200), color=(200, 30, 30), name='source.png'):
        with open(os.path.join(app.config['INPUT_DIR'], name), 'wb') as fh:
            fh.write(png_bytes(size, color))
        return name
    return stage
