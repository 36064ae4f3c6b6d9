# Port Atama Log'u - sadece ekleme yapan yazıcı ve filtreli okuyucu
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import or_

from errors import ValidationError
from models_ports import (AllocationAction, Customer, Plan, PlatformAdmin, Port,
                          PortAllocationLog)
from paging import DEFAULT_MAX_PAGE_SIZE, paginate

logger = logging.getLogger(__name__)

DELETED_PLACEHOLDER = 'Silinmiş'
AUTOMATIC_PLACEHOLDER = 'Otomatik'

ASSIGNMENT_ACTIONS = (AllocationAction.ASSIGNED, AllocationAction.REASSIGNED)


def resolve_reference(value, ref_id, default=''):
    """Görüntülenecek değeri döndür, referans silinmişse yer tutucu kullan"""
    if value:
        return value
    if ref_id is not None:
        return DELETED_PLACEHOLDER
    return default


def parse_action(value):
    if isinstance(value, AllocationAction):
        return value
    try:
        return AllocationAction(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f'Geçersiz işlem tipi: {value}')


def parse_date(value, field):
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'{field} YYYY-MM-DD formatında olmalıdır.')


def parse_id(value, field):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Geçersiz {field}: {value}')


class LogView:
    """Log kaydı ve ilişkili kayıtların o anki görüntü değerleri"""

    def __init__(self, entry, port_instance_url=None, port_status=None,
                 customer_name=None, customer_email=None, plan_name=None,
                 performer_name=None, performer_email=None):
        self.entry = entry
        self.port_instance_url = port_instance_url
        self.port_status = port_status
        self.customer_name = customer_name
        self.customer_email = customer_email
        self.plan_name = plan_name
        self.performer_name = performer_name
        self.performer_email = performer_email

    @property
    def port_label(self):
        return resolve_reference(self.port_instance_url, self.entry.port_id)

    @property
    def customer_label(self):
        return resolve_reference(self.customer_name, self.entry.customer_id)

    @property
    def plan_label(self):
        return resolve_reference(self.plan_name, self.entry.plan_id)

    @property
    def performer_label(self):
        return resolve_reference(self.performer_name, self.entry.performed_by,
                                 default=AUTOMATIC_PLACEHOLDER)

    def to_dict(self):
        data = self.entry.to_dict()
        data.update({
            'port_instance_url': self.port_label,
            'port_status': self.port_status.value if self.port_status else None,
            'customer_name': self.customer_label,
            'customer_email': self.customer_email or '',
            'plan_name': self.plan_label,
            'performed_by_name': self.performer_label,
            'performed_by_email': self.performer_email or ''
        })
        return data


class AllocationLog:
    def __init__(self, session, max_page_size=DEFAULT_MAX_PAGE_SIZE):
        self.session = session
        self.max_page_size = max_page_size

    def record(self, port_id, action, performed_by=None, subscription_id=None,
               customer_id=None, plan_id=None, notes=None, timestamp=None):
        """Log kaydını çağıranın transaction'ına ekle.

        Commit yapmaz; flush hatası çağırana iletilir ve tetikleyen durum
        geçişi de geri alınır.
        """
        entry = PortAllocationLog(
            port_id=port_id,
            action=parse_action(action),
            performed_by=performed_by,
            subscription_id=subscription_id,
            customer_id=customer_id,
            plan_id=plan_id,
            notes=notes,
            timestamp=timestamp or datetime.utcnow()
        )
        self.session.add(entry)
        self.session.flush()
        logger.info('Port log: %s port=%s subscription=%s by=%s',
                    entry.action.value, port_id, subscription_id, performed_by)
        return entry

    def query(self, filters=None, page=1, page_size=25):
        filters = filters or {}

        q = (self.session.query(
                PortAllocationLog,
                Port.instance_url,
                Port.status,
                Customer.name,
                Customer.email.label('customer_email'),
                Plan.name.label('plan_name'),
                PlatformAdmin.username,
                PlatformAdmin.email.label('performer_email'))
             .outerjoin(Port, Port.id == PortAllocationLog.port_id)
             .outerjoin(Customer, Customer.id == PortAllocationLog.customer_id)
             .outerjoin(Plan, Plan.id == PortAllocationLog.plan_id)
             .outerjoin(PlatformAdmin, PlatformAdmin.id == PortAllocationLog.performed_by))

        if filters.get('action'):
            q = q.filter(PortAllocationLog.action == parse_action(filters['action']))

        for field, column in (('plan_id', PortAllocationLog.plan_id),
                              ('customer_id', PortAllocationLog.customer_id),
                              ('subscription_id', PortAllocationLog.subscription_id)):
            value = parse_id(filters.get(field), field)
            if value is not None:
                q = q.filter(column == value)

        if filters.get('port_id'):
            q = q.filter(PortAllocationLog.port_id == filters['port_id'])

        date_from = parse_date(filters.get('date_from'), 'date_from')
        if date_from:
            q = q.filter(PortAllocationLog.timestamp >= datetime.combine(date_from, time.min))

        date_to = parse_date(filters.get('date_to'), 'date_to')
        if date_to:
            q = q.filter(PortAllocationLog.timestamp
                         < datetime.combine(date_to + timedelta(days=1), time.min))

        search = (filters.get('search') or '').strip()
        if search:
            pattern = f'%{search}%'
            q = q.filter(or_(
                Port.instance_url.ilike(pattern),
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                PortAllocationLog.notes.ilike(pattern)
            ))

        q = q.order_by(PortAllocationLog.timestamp.desc(), PortAllocationLog.id.desc())

        rows, total = paginate(q, page, page_size, self.max_page_size)
        return [LogView(*row) for row in rows], total

    def for_port(self, port_id, limit=50):
        return (self.session.query(PortAllocationLog)
                .filter(PortAllocationLog.port_id == port_id)
                .order_by(PortAllocationLog.timestamp.desc(), PortAllocationLog.id.desc())
                .limit(limit)
                .all())

    def last_assignment(self, port_id):
        """Portun en son atama kaydı"""
        return (self.session.query(PortAllocationLog)
                .filter(PortAllocationLog.port_id == port_id,
                        PortAllocationLog.action.in_(ASSIGNMENT_ACTIONS))
                .order_by(PortAllocationLog.timestamp.desc(), PortAllocationLog.id.desc())
                .first())

    def distinct_actions(self):
        """Filtre listesi için kayıtlarda geçen işlem tipleri"""
        rows = self.session.query(PortAllocationLog.action).distinct().all()
        return {row[0] for row in rows}
