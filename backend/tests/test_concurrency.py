# Overview: Pytest coverage for the optimistic retry wrapper used by every ledger write.

import threading

import pytest
from sqlalchemy.orm.exc import StaleDataError

from stockledger import create_app
from stockledger.config import TestConfig
from stockledger.errors import InsufficientStockError
from stockledger.extensions import db
from stockledger.models import Category, StockMovement
from stockledger.services import category_service, ledger_service
from stockledger.services.concurrency import run_with_retry


def test_stale_data_is_retried(db_session):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "done"

    assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
    assert len(calls) == 3


def test_exhausted_retries_propagate(db_session):
    def always_stale():
        raise StaleDataError("version mismatch")

    with pytest.raises(StaleDataError):
        run_with_retry(always_stale, attempts=2, backoff_base=0)


def test_validation_errors_are_not_retried(db_session):
    calls = []

    def refuse():
        calls.append(1)
        raise InsufficientStockError(1, 0, 5)

    with pytest.raises(InsufficientStockError):
        run_with_retry(refuse)
    assert len(calls) == 1


def test_lost_update_is_retried_on_fresh_row(db_session, net_category, monkeypatch):
    """A version bump inside the unit of work fails the flush; the attempt, bump included, is rolled back and rerun."""
    original = ledger_service._record_movement
    raced = []

    def racing_record(category, **kwargs):
        if not raced:
            raced.append(1)
            # Bump the version behind the ORM's back, as a competing writer would
            db_session.execute(
                Category.__table__.update()
                .where(Category.__table__.c.id == category.id)
                .values(current_stock=40, version_id=Category.__table__.c.version_id + 1)
            )
        return original(category, **kwargs)

    monkeypatch.setattr(ledger_service, "_record_movement", racing_record)

    result = ledger_service.apply_movement(category_id=net_category.id, movement_type="in", quantity=5)

    assert len(raced) == 1
    assert result.before_stock == 25
    assert result.after_stock == 30
    assert ledger_service.verify_ledger() == []


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so separate threads get separate connections."""

    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'ledger.sqlite3'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}
        STOCKLEDGER_RETRY_ATTEMPTS = 20
        STOCKLEDGER_RETRY_BACKOFF = 0.005

    file_app = create_app(FileConfig)
    with file_app.app_context():
        db.create_all()

    yield file_app

    with file_app.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_writers_lose_no_updates(file_app):
    with file_app.app_context():
        category_id = category_service.create_category(
            name="Patch Cable", code="PAT", has_stock=True, max_stock=1000
        ).id

    errors = []

    def writer(name):
        with file_app.app_context():
            try:
                for _ in range(20):
                    ledger_service.apply_movement(
                        category_id=category_id, movement_type="in", quantity=1, actor=name
                    )
            except Exception as exc:
                errors.append(exc)

    threads = [threading.Thread(target=writer, args=(f"writer-{n}",)) for n in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    with file_app.app_context():
        movements = db.session.query(StockMovement).filter_by(category_id=category_id).count()
        assert movements == 40
        assert db.session.get(Category, category_id).current_stock == movements
        assert ledger_service.verify_ledger() == []
