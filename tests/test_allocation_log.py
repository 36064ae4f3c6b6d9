from datetime import date, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from allocation_log import (AUTOMATIC_PLACEHOLDER, DELETED_PLACEHOLDER, parse_action,
                            parse_date, resolve_reference)
from errors import ValidationError
from models_ports import AllocationAction, Customer, Plan, PortAllocationLog


@pytest.fixture
def seeded_log(log, session, make_port, make_subscription):
    """Üç farklı günde üç kayıt"""
    port = make_port(instance_url='https://acme.karyalay.test')
    subscription = make_subscription(customer_name='Acme Ltd', customer_email='it@acme.test',
                                     plan_name='Kurumsal')
    session.query(PortAllocationLog).delete()

    log.record(port.id, AllocationAction.ASSIGNED, subscription_id=subscription.id,
               customer_id=subscription.customer_id, plan_id=subscription.plan_id,
               timestamp=datetime(2024, 3, 1, 9, 0))
    log.record(port.id, AllocationAction.RELEASED, subscription_id=subscription.id,
               customer_id=subscription.customer_id, plan_id=subscription.plan_id,
               notes='Abonelik sona erdi', timestamp=datetime(2024, 3, 2, 23, 59, 30))
    log.record(port.id, AllocationAction.RESERVED, timestamp=datetime(2024, 3, 3, 0, 0, 5))
    session.commit()
    return port, subscription


class TestHelpers:
    def test_resolve_reference(self):
        assert resolve_reference('Acme', 1) == 'Acme'
        assert resolve_reference(None, 1) == DELETED_PLACEHOLDER
        assert resolve_reference(None, None) == ''
        assert resolve_reference(None, None, default=AUTOMATIC_PLACEHOLDER) == 'Otomatik'

    def test_parse_action(self):
        assert parse_action(' released ') == AllocationAction.RELEASED
        with pytest.raises(ValidationError):
            parse_action('DELETED')

    def test_parse_date(self):
        assert parse_date('2024-03-02', 'date_from') == date(2024, 3, 2)
        assert parse_date(datetime(2024, 3, 2, 10, 0), 'date_from') == date(2024, 3, 2)
        assert parse_date('', 'date_from') is None
        with pytest.raises(ValidationError):
            parse_date('02.03.2024', 'date_to')


class TestRecord:
    def test_record_does_not_commit(self, log, session, make_port):
        port = make_port()
        log.record(port.id, 'RESERVED', notes='deneme')
        session.rollback()

        assert session.query(PortAllocationLog).filter_by(
            port_id=port.id, action=AllocationAction.RESERVED).count() == 0

    def test_record_rejects_unknown_action(self, log, make_port):
        with pytest.raises(ValidationError):
            log.record(make_port().id, 'EXPLODED')

    def test_flush_failure_reaches_caller(self, log, session):
        with pytest.raises(IntegrityError):
            log.record(None, AllocationAction.CREATED)
        session.rollback()


class TestQuery:
    def test_newest_first_with_resolved_names(self, log, seeded_log):
        port, subscription = seeded_log
        entries, total = log.query()

        assert total == 3
        assert [e.entry.action for e in entries] == [AllocationAction.RESERVED,
                                                     AllocationAction.RELEASED,
                                                     AllocationAction.ASSIGNED]
        released = entries[1].to_dict()
        assert released['port_instance_url'] == 'https://acme.karyalay.test'
        assert released['customer_name'] == 'Acme Ltd'
        assert released['customer_email'] == 'it@acme.test'
        assert released['plan_name'] == 'Kurumsal'
        assert released['performed_by_name'] == AUTOMATIC_PLACEHOLDER
        assert released['action_text'] == 'Serbest Bırakıldı'

    def test_date_range_is_inclusive(self, log, seeded_log):
        entries, total = log.query({'date_from': '2024-03-02', 'date_to': '2024-03-02'})
        assert total == 1
        assert entries[0].entry.action == AllocationAction.RELEASED

    def test_action_filter(self, log, seeded_log):
        entries, total = log.query({'action': 'assigned'})
        assert total == 1
        assert entries[0].entry.action == AllocationAction.ASSIGNED

    def test_customer_and_plan_filters(self, log, seeded_log):
        _, subscription = seeded_log
        _, by_customer = log.query({'customer_id': str(subscription.customer_id)})
        _, by_plan = log.query({'plan_id': subscription.plan_id})
        _, none = log.query({'plan_id': subscription.plan_id + 100})
        assert (by_customer, by_plan, none) == (2, 2, 0)

    def test_search_matches_url_email_and_notes(self, log, seeded_log):
        _, by_url = log.query({'search': 'ACME'})
        _, by_email = log.query({'search': 'IT@acme'})
        _, by_notes = log.query({'search': 'sona erdi'})
        assert (by_url, by_email, by_notes) == (3, 2, 1)

    def test_invalid_filters(self, log, seeded_log):
        with pytest.raises(ValidationError):
            log.query({'date_from': 'yesterday'})
        with pytest.raises(ValidationError):
            log.query({'customer_id': 'abc'})
        with pytest.raises(ValidationError):
            log.query({'action': 'NOPE'})

    def test_pagination(self, log, seeded_log):
        entries, total = log.query(page=2, page_size=2)
        assert total == 3
        assert [e.entry.action for e in entries] == [AllocationAction.ASSIGNED]

    def test_deleted_references_show_placeholder(self, log, session, registry, admin,
                                                 seeded_log):
        port, subscription = seeded_log
        log.record(port.id, AllocationAction.DISABLED, performed_by=admin.id,
                   timestamp=datetime(2024, 3, 4))
        session.commit()

        session.delete(session.get(Customer, subscription.customer_id))
        session.delete(session.get(Plan, subscription.plan_id))
        session.delete(admin)
        session.commit()
        registry.delete(port.id)

        entries, total = log.query()
        assert total == 4
        disabled, _, released = [e.to_dict() for e in entries[:3]]
        assert disabled['performed_by_name'] == DELETED_PLACEHOLDER
        assert disabled['port_instance_url'] == DELETED_PLACEHOLDER
        assert released['customer_name'] == DELETED_PLACEHOLDER
        assert released['plan_name'] == DELETED_PLACEHOLDER
        assert released['customer_id'] == subscription.customer_id


class TestHistory:
    def test_for_port_and_last_assignment(self, log, seeded_log):
        port, subscription = seeded_log
        history = log.for_port(port.id, limit=2)

        assert [entry.action for entry in history] == [AllocationAction.RESERVED,
                                                       AllocationAction.RELEASED]
        assert log.last_assignment(port.id).subscription_id == subscription.id
        assert log.last_assignment('unknown') is None

    def test_distinct_actions_reflects_stored_rows(self, log, seeded_log):
        assert log.distinct_actions() == {AllocationAction.ASSIGNED,
                                          AllocationAction.RELEASED,
                                          AllocationAction.RESERVED}
