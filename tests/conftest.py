import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENABLE_EVENT_JOBS"] = "0"

import pytest

from app import app as flask_app_module
from models import db


@pytest.fixture
def app():
    flask_app_module.config["TESTING"] = True
    with flask_app_module.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app_module
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()
