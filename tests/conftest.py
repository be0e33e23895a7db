from datetime import datetime

import pytest

from app import create_app
from billing import DATE_FMT, TransactionRecorder, to_millis
from ledger import MemoryLedgerStore
from models import TransactionRecord, db

MARCH_14 = datetime(2026, 3, 14, 10, 15, 0)


def make_record(moment, student="Asha", course="Admission Fee", amount=1000, bill_number=None):
    return TransactionRecord(
        id=None,
        bill_number=bill_number,
        student_name=student,
        class_name=course,
        amount=amount,
        date=moment.strftime(DATE_FMT),
        timestamp=to_millis(moment),
    )


@pytest.fixture
def make_app(tmp_path):
    created = []

    def _make(db_path=None, **config):
        db_path = db_path or tmp_path / "data" / "transactions.db"
        settings = {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "EXPORT_DIR": str(tmp_path / "exports"),
            "ADMIN_USERNAME": "admin",
            "ADMIN_PASSWORD": "secret",
        }
        settings.update(config)
        app = create_app(settings)
        created.append(app)
        return app

    yield _make

    for app in created:
        with app.app_context():
            db.session.remove()
            db.engine.dispose()


@pytest.fixture
def app(make_app):
    app = make_app()
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions["ledger"]


@pytest.fixture
def memory_store():
    return MemoryLedgerStore()


@pytest.fixture
def clock():
    """A settable clock; call ``clock.set(moment)`` to move it."""

    class _Clock:
        moment = MARCH_14

        def __call__(self):
            return self.moment

        def set(self, moment):
            self.moment = moment

    return _Clock()


@pytest.fixture
def recorder(memory_store, clock):
    return TransactionRecorder(memory_store, clock=clock)
