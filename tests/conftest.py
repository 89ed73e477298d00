# tests/conftest.py
import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.services.ledger_service import StockLedgerService


@pytest.fixture()
def app():
    """
    每个用例独立的应用 + 内存 SQLite
    这里不常驻应用上下文：HTTP 用例的每个请求都要拿到自己的上下文，
    否则 Flask-Login 缓存在 g 上的调用方会串到后续请求
    """
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def app_ctx(app):
    """服务层用例：在应用上下文内直接调用"""
    with app.app_context():
        yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def runner(app):
    return app.test_cli_runner()


@pytest.fixture()
def ledger(app_ctx):
    return StockLedgerService


@pytest.fixture()
def actor_headers():
    """上游网关写入的调用方身份头"""
    return {'X-Actor-Id': 'u-1', 'X-Company-Id': 'c-1'}
