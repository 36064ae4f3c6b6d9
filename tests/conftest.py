"""
Pytest fixtures for port allocation tests
"""
import itertools

import pytest
from flask_login import FlaskLoginClient
from werkzeug.security import generate_password_hash

from allocation_log import AllocationLog
from app_ports import Config, create_app
from models_ports import (Customer, Plan, PlatformAdmin, Port, PortAllocationLog, Subscription,
                          SubscriptionStatus, db)
from port_allocation import AllocationService
from port_registry import PortRegistry


class PortsTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'test-secret-key'
    LOG_LEVEL = 'DEBUG'
    ADMIN_USERNAME = 'rootadmin'
    ADMIN_EMAIL = 'root@karyalay.test'
    ADMIN_PASSWORD = 'Sifre12345!'


@pytest.fixture
def app():
    app = create_app(PortsTestConfig)
    app.test_client_class = FlaskLoginClient
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    return db.session


@pytest.fixture
def log(session):
    return AllocationLog(session)


@pytest.fixture
def registry(session, log):
    return PortRegistry(session, log)


@pytest.fixture
def allocation(session, registry, log):
    return AllocationService(session, registry, log)


@pytest.fixture
def admin(session):
    admin = PlatformAdmin(
        username='portadmin',
        email='portadmin@karyalay.test',
        password_hash=generate_password_hash('secret123'),
        first_name='Port',
        last_name='Admin'
    )
    session.add(admin)
    session.commit()
    return admin


@pytest.fixture
def client(app, admin):
    """Giriş yapmış platform admin istemcisi"""
    return app.test_client(user=admin)


@pytest.fixture
def anon_client(app):
    return app.test_client()


@pytest.fixture
def make_subscription(session):
    counter = itertools.count(1)

    def _make(customer_name=None, customer_email=None, plan_name='Temel',
              status=SubscriptionStatus.ACTIVE):
        n = next(counter)
        customer = Customer(name=customer_name or f'Müşteri {n}',
                            email=customer_email or f'musteri{n}@example.com')
        plan = Plan(name=plan_name)
        session.add_all([customer, plan])
        session.flush()
        subscription = Subscription(customer_id=customer.id, plan_id=plan.id, status=status)
        session.add(subscription)
        session.commit()
        return subscription

    return _make


@pytest.fixture
def make_port(registry):
    counter = itertools.count(1)

    def _make(**data):
        n = next(counter)
        data.setdefault('instance_url', f'https://tenant{n}.karyalay.test')
        return registry.create(data)

    return _make


@pytest.fixture
def count_logs(session):
    def _count(port_id=None, action=None):
        query = session.query(PortAllocationLog)
        if port_id is not None:
            query = query.filter(PortAllocationLog.port_id == port_id)
        if action is not None:
            query = query.filter(PortAllocationLog.action == action)
        return query.count()

    return _count


@pytest.fixture
def assert_pool_consistent(session):
    """Her port için: ASSIGNED <=> assigned_subscription_id dolu"""
    def _check():
        for port in session.query(Port).all():
            assert port.is_consistent, port

    return _check
