# Port Atama Servisi - port yaşam döngüsü ve abonelik bağlantıları
import logging
from collections import namedtuple
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import or_

from allocation_log import AllocationLog, parse_id
from errors import ConflictError, NoAvailablePortError, NotFoundError, PortError, ValidationError
from models_ports import AllocationAction, Port, PortStatus, Subscription, SubscriptionStatus
from port_registry import PortRegistry, parse_status

logger = logging.getLogger(__name__)

# Geçiş kararı bu anlık görüntüye göre verilir; güncelleme aynı status ve
# version değerlerini WHERE koşulunda bekler.
Snapshot = namedtuple('Snapshot', 'port_id status version subscription_id')


class AllocationService:
    def __init__(self, session, registry=None, log=None):
        self.session = session
        self.log = log or (registry.log if registry else AllocationLog(session))
        self.registry = registry or PortRegistry(session, self.log)

    # Yardımcılar

    def _snapshot(self, port_id):
        port = self.registry.get(port_id)
        return Snapshot(port.id, port.status, port.version, port.assigned_subscription_id)

    def _require(self, snapshot, allowed, operation, message=None):
        if snapshot.status in allowed:
            return
        logger.warning('Geçersiz port geçişi: %s port=%s durum=%s',
                       operation, snapshot.port_id, snapshot.status.value)
        if message is None:
            expected = ', '.join(status.value for status in allowed)
            message = (f'{operation} işlemi için port durumu {expected} olmalı; '
                       f'mevcut durum {snapshot.status.value}.')
        raise ConflictError(message, error_code='INVALID_TRANSITION')

    def _get_subscription(self, subscription_id):
        subscription_id = parse_id(subscription_id, 'subscription_id')
        if subscription_id is None:
            raise ValidationError('subscription_id gereklidir.')
        subscription = self.session.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError(f'Abonelik bulunamadı: {subscription_id}')
        return subscription

    def _compare_and_swap(self, snapshot, **values):
        values.update(version=snapshot.version + 1, updated_at=datetime.utcnow())
        updated = (self.session.query(Port)
                   .filter(Port.id == snapshot.port_id,
                           Port.status == snapshot.status,
                           Port.version == snapshot.version)
                   .update(values, synchronize_session=False))
        if updated != 1:
            logger.warning('Port eşzamanlı olarak değişti: port=%s version=%s',
                           snapshot.port_id, snapshot.version)
            raise ConflictError('Port başka bir işlem tarafından değiştirildi, tekrar deneyin.',
                                error_code='CONCURRENT_UPDATE')

    def _link_subscription(self, subscription_id, port_id):
        """Aboneliği porta bağla; abonelik başka bir porta bağlıysa çakışma"""
        updated = (self.session.query(Subscription)
                   .filter(Subscription.id == subscription_id,
                           or_(Subscription.assigned_port_id.is_(None),
                               Subscription.assigned_port_id == port_id))
                   .update({'assigned_port_id': port_id, 'updated_at': datetime.utcnow()},
                           synchronize_session=False))
        if updated != 1:
            logger.warning('Abonelik eşzamanlı olarak başka porta bağlandı: abonelik=%s port=%s',
                           subscription_id, port_id)
            raise ConflictError('Abonelikte zaten atanmış bir port var.',
                                error_code='SUBSCRIPTION_HAS_PORT')

    def _unlink_subscription(self, subscription_id, port_id):
        # Abonelik silinmiş ya da başka porta geçmişse dokunulmaz
        (self.session.query(Subscription)
         .filter(Subscription.id == subscription_id,
                 Subscription.assigned_port_id == port_id)
         .update({'assigned_port_id': None, 'updated_at': datetime.utcnow()},
                 synchronize_session=False))

    @contextmanager
    def _transaction(self, operation, port_id):
        try:
            yield
            self.session.commit()
        except PortError:
            self.session.rollback()
            raise
        except Exception:
            self.session.rollback()
            logger.exception('%s geri alındı: port=%s', operation, port_id)
            raise

    def _reload(self, port_id):
        port = self.registry.get(port_id)
        self.session.refresh(port)
        return port

    def _simple_transition(self, port_id, allowed, target, action, performed_by, notes,
                           operation, message=None):
        snapshot = self._snapshot(port_id)
        self._require(snapshot, allowed, operation, message)

        with self._transaction(operation, port_id):
            self._compare_and_swap(snapshot, status=target)
            self.log.record(snapshot.port_id, action, performed_by=performed_by,
                            notes=notes or f'Durum {snapshot.status.value} -> {target.value}')

        logger.info('Port %s: %s -> %s', snapshot.port_id, snapshot.status.value, target.value)
        return self._reload(port_id)

    # Atama işlemleri

    def assign(self, port_id, subscription_id, performed_by=None, notes=None):
        """Müsait veya rezerve portu aboneliğe ata"""
        snapshot = self._snapshot(port_id)
        self._require(snapshot, (PortStatus.AVAILABLE, PortStatus.RESERVED), 'assign')

        subscription = self._get_subscription(subscription_id)
        if subscription.assigned_port_id and subscription.assigned_port_id != snapshot.port_id:
            raise ConflictError('Abonelikte zaten atanmış bir port var.',
                                error_code='SUBSCRIPTION_HAS_PORT')

        action = AllocationAction.ASSIGNED
        previous = self.log.last_assignment(snapshot.port_id)
        if previous is not None and previous.subscription_id not in (None, subscription.id):
            action = AllocationAction.REASSIGNED

        with self._transaction('assign', port_id):
            self._compare_and_swap(snapshot,
                                   status=PortStatus.ASSIGNED,
                                   assigned_subscription_id=subscription.id,
                                   assigned_at=datetime.utcnow())
            self._link_subscription(subscription.id, snapshot.port_id)
            if subscription.status == SubscriptionStatus.PENDING_ALLOCATION:
                subscription.status = SubscriptionStatus.ACTIVE
            self.log.record(snapshot.port_id, action,
                            performed_by=performed_by,
                            subscription_id=subscription.id,
                            customer_id=subscription.customer_id,
                            plan_id=subscription.plan_id,
                            notes=notes)

        logger.info('Port %s abonelik %s için atandı (%s)',
                    snapshot.port_id, subscription.id, action.value)
        return self._reload(port_id)

    def reassign(self, port_id, subscription_id, performed_by=None, notes=None):
        """Atanmış portu tek adımda başka bir aboneliğe taşı"""
        snapshot = self._snapshot(port_id)
        self._require(snapshot, (PortStatus.ASSIGNED,), 'reassign')

        subscription = self._get_subscription(subscription_id)
        if subscription.id == snapshot.subscription_id:
            raise ConflictError('Port zaten bu aboneliğe atanmış.')
        if subscription.assigned_port_id and subscription.assigned_port_id != snapshot.port_id:
            raise ConflictError('Yeni abonelikte zaten atanmış bir port var.',
                                error_code='SUBSCRIPTION_HAS_PORT')

        with self._transaction('reassign', port_id):
            self._compare_and_swap(snapshot,
                                   status=PortStatus.ASSIGNED,
                                   assigned_subscription_id=subscription.id,
                                   assigned_at=datetime.utcnow())
            self._unlink_subscription(snapshot.subscription_id, snapshot.port_id)
            self._link_subscription(subscription.id, snapshot.port_id)
            self.log.record(snapshot.port_id, AllocationAction.REASSIGNED,
                            performed_by=performed_by,
                            subscription_id=subscription.id,
                            customer_id=subscription.customer_id,
                            plan_id=subscription.plan_id,
                            notes=notes or f'Abonelik {snapshot.subscription_id} -> {subscription.id}')

        logger.info('Port %s abonelik %s -> %s taşındı',
                    snapshot.port_id, snapshot.subscription_id, subscription.id)
        return self._reload(port_id)

    def release(self, port_id, performed_by=None, notes=None):
        """Atanmış portu serbest bırak ve havuza geri koy"""
        snapshot = self._snapshot(port_id)
        self._require(snapshot, (PortStatus.ASSIGNED,), 'release')

        # Abonelik silinmiş olabilir, log yine de id'yi tutar
        subscription = self.session.get(Subscription, snapshot.subscription_id)

        with self._transaction('release', port_id):
            self._compare_and_swap(snapshot,
                                   status=PortStatus.AVAILABLE,
                                   assigned_subscription_id=None,
                                   assigned_at=None)
            self._unlink_subscription(snapshot.subscription_id, snapshot.port_id)
            self.log.record(snapshot.port_id, AllocationAction.RELEASED,
                            performed_by=performed_by,
                            subscription_id=snapshot.subscription_id,
                            customer_id=subscription.customer_id if subscription else None,
                            plan_id=subscription.plan_id if subscription else None,
                            notes=notes)

        logger.info('Port %s serbest bırakıldı (abonelik %s)',
                    snapshot.port_id, snapshot.subscription_id)
        return self._reload(port_id)

    def reserve(self, port_id, performed_by=None, notes=None):
        """Ödeme sırasında portu beklet"""
        return self._simple_transition(port_id, (PortStatus.AVAILABLE,), PortStatus.RESERVED,
                                       AllocationAction.RESERVED, performed_by, notes, 'reserve')

    def make_available(self, port_id, performed_by=None, notes=None):
        return self._simple_transition(port_id, (PortStatus.RESERVED,), PortStatus.AVAILABLE,
                                       AllocationAction.MADE_AVAILABLE, performed_by, notes,
                                       'make_available')

    def disable(self, port_id, performed_by=None, notes=None):
        message = None
        if self.registry.get(port_id).status == PortStatus.ASSIGNED:
            message = 'Atanmış port devre dışı bırakılamaz; önce serbest bırakın.'
        return self._simple_transition(port_id, (PortStatus.AVAILABLE, PortStatus.RESERVED),
                                       PortStatus.DISABLED, AllocationAction.DISABLED,
                                       performed_by, notes, 'disable', message)

    def enable(self, port_id, performed_by=None, notes=None):
        return self._simple_transition(port_id, (PortStatus.DISABLED,), PortStatus.AVAILABLE,
                                       AllocationAction.ENABLED, performed_by, notes, 'enable')

    def change_status(self, port_id, status, performed_by=None, subscription_id=None, notes=None):
        """Admin düzenleme formundaki durum seçimini ilgili işleme yönlendir"""
        target = parse_status(status)
        current = self.registry.get(port_id).status

        if target == PortStatus.ASSIGNED:
            if subscription_id in (None, ''):
                raise ValidationError('Portu atamak için bir abonelik seçin.')
            if current == PortStatus.ASSIGNED:
                return self.reassign(port_id, subscription_id, performed_by, notes)
            return self.assign(port_id, subscription_id, performed_by, notes)

        if target == current:
            raise ConflictError(f'Port zaten {current.value} durumunda.',
                                error_code='INVALID_TRANSITION')

        if target == PortStatus.AVAILABLE:
            if current == PortStatus.ASSIGNED:
                return self.release(port_id, performed_by, notes)
            if current == PortStatus.DISABLED:
                return self.enable(port_id, performed_by, notes)
            return self.make_available(port_id, performed_by, notes)

        if target == PortStatus.RESERVED:
            return self.reserve(port_id, performed_by, notes)

        return self.disable(port_id, performed_by, notes)

    def allocate_for_subscription(self, subscription_id, performed_by=None):
        """Provisioning akışı: en eski müsait portu aboneliğe ata"""
        subscription = self._get_subscription(subscription_id)
        if subscription.assigned_port_id:
            raise ConflictError('Abonelikte zaten atanmış bir port var.',
                                error_code='SUBSCRIPTION_HAS_PORT')

        candidates = self.registry.find_available(1)
        if not candidates:
            try:
                subscription.status = SubscriptionStatus.PENDING_ALLOCATION
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
            logger.warning('Müsait port yok: abonelik %s PENDING_ALLOCATION olarak işaretlendi',
                           subscription.id)
            raise NoAvailablePortError(
                'Müsait port yok. Abonelik PENDING_ALLOCATION olarak işaretlendi.')

        return self.assign(candidates[0].id, subscription.id, performed_by=performed_by)
