# Karyalay Port Havuzu Modelleri
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime
import enum
import uuid

db = SQLAlchemy()


class PortStatus(str, enum.Enum):
    AVAILABLE = 'AVAILABLE'
    RESERVED = 'RESERVED'
    ASSIGNED = 'ASSIGNED'
    DISABLED = 'DISABLED'


class AllocationAction(str, enum.Enum):
    ASSIGNED = 'ASSIGNED'
    REASSIGNED = 'REASSIGNED'
    RELEASED = 'RELEASED'
    UNASSIGNED = 'UNASSIGNED'
    CREATED = 'CREATED'
    DISABLED = 'DISABLED'
    ENABLED = 'ENABLED'
    RESERVED = 'RESERVED'
    MADE_AVAILABLE = 'MADE_AVAILABLE'
    STATUS_CHANGED = 'STATUS_CHANGED'


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = 'ACTIVE'
    PENDING_ALLOCATION = 'PENDING_ALLOCATION'
    EXPIRED = 'EXPIRED'
    CANCELLED = 'CANCELLED'


ACTION_LABELS = {
    AllocationAction.ASSIGNED: 'Atandı',
    AllocationAction.REASSIGNED: 'Yeniden Atandı',
    AllocationAction.RELEASED: 'Serbest Bırakıldı',
    AllocationAction.UNASSIGNED: 'Atama Kaldırıldı',
    AllocationAction.CREATED: 'Oluşturuldu',
    AllocationAction.DISABLED: 'Devre Dışı Bırakıldı',
    AllocationAction.ENABLED: 'Etkinleştirildi',
    AllocationAction.RESERVED: 'Rezerve Edildi',
    AllocationAction.MADE_AVAILABLE: 'Müsait Yapıldı',
    AllocationAction.STATUS_CHANGED: 'Durum Değişti'
}


def generate_port_id():
    return str(uuid.uuid4())


# Port Modeli - Müşteri aboneliklerine atanabilen tenant instance'ları
class Port(db.Model):
    __tablename__ = 'ports'

    id = db.Column(db.String(36), primary_key=True, default=generate_port_id)

    # Bağlantı Bilgileri
    instance_url = db.Column(db.String(255), unique=True, nullable=False)
    db_host = db.Column(db.String(255))
    db_name = db.Column(db.String(100))

    # Durum
    status = db.Column(db.Enum(PortStatus, native_enum=False, length=20),
                       default=PortStatus.AVAILABLE, nullable=False, index=True)

    # Atama Bilgileri (zayıf referans, foreign key yok)
    assigned_subscription_id = db.Column(db.Integer, nullable=True, index=True)
    assigned_at = db.Column(db.DateTime)

    # Açıklayıcı Bilgiler
    server_region = db.Column(db.String(50))
    notes = db.Column(db.Text)

    # Her durum geçişinde artar
    version = db.Column(db.Integer, default=1, nullable=False)

    # Zaman Damgaları
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def status_text(self):
        status_map = {
            PortStatus.AVAILABLE: 'Müsait',
            PortStatus.RESERVED: 'Rezerve',
            PortStatus.ASSIGNED: 'Atandı',
            PortStatus.DISABLED: 'Devre Dışı'
        }
        return status_map.get(self.status, self.status)

    @property
    def is_consistent(self):
        """Atama alanları durumla uyumlu mu"""
        assigned = self.status == PortStatus.ASSIGNED
        return assigned == (self.assigned_subscription_id is not None) \
            and assigned == (self.assigned_at is not None)

    def to_dict(self):
        return {
            'id': self.id,
            'instance_url': self.instance_url,
            'db_host': self.db_host,
            'db_name': self.db_name,
            'status': self.status.value,
            'status_text': self.status_text,
            'assigned_subscription_id': self.assigned_subscription_id,
            'assigned_at': self.assigned_at.isoformat() if self.assigned_at else None,
            'server_region': self.server_region,
            'notes': self.notes,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None
        }

    def __repr__(self):
        return f'<Port {self.instance_url} [{self.status.value}]>'


class PortAllocationLog(db.Model):
    """Port atama audit log'ları - sadece eklenir, güncellenmez"""
    __tablename__ = 'port_allocation_logs'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    action = db.Column(db.Enum(AllocationAction, native_enum=False, length=30),
                       nullable=False, index=True)

    # Zayıf referanslar - ilgili kayıt silinse de id korunur
    port_id = db.Column(db.String(36), nullable=False, index=True)
    customer_id = db.Column(db.Integer, index=True)
    subscription_id = db.Column(db.Integer, index=True)
    plan_id = db.Column(db.Integer, index=True)

    performed_by = db.Column(db.Integer)  # None ise otomatik işlem
    notes = db.Column(db.Text)

    @property
    def action_text(self):
        return ACTION_LABELS.get(self.action, self.action)

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'action': self.action.value,
            'action_text': self.action_text,
            'port_id': self.port_id,
            'customer_id': self.customer_id,
            'subscription_id': self.subscription_id,
            'plan_id': self.plan_id,
            'performed_by': self.performed_by,
            'notes': self.notes
        }

    def __repr__(self):
        return f'<PortAllocationLog {self.action.value} port:{self.port_id}>'


# Abonelik tarafındaki tablolar - bu servis sadece okur ve port bağlantısını günceller
class Customer(db.Model):
    __tablename__ = 'customers'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Customer {self.name}>'


class Plan(db.Model):
    __tablename__ = 'plans'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f'<Plan {self.name}>'


class Subscription(db.Model):
    __tablename__ = 'subscriptions'

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, nullable=False)
    plan_id = db.Column(db.Integer, nullable=False)

    status = db.Column(db.Enum(SubscriptionStatus, native_enum=False, length=30),
                       default=SubscriptionStatus.ACTIVE, nullable=False)
    assigned_port_id = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f'<Subscription {self.id} customer:{self.customer_id}>'


class PlatformAdmin(UserMixin, db.Model):
    """Platform genel admin'leri için"""
    __tablename__ = 'platform_admins'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(50))
    last_name = db.Column(db.String(50))

    is_super_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    def __repr__(self):
        return f'<PlatformAdmin {self.username}>'
