# Port Kayıt Defteri - port havuzunun CRUD ve listeleme işlemleri
import csv
import io
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from allocation_log import AllocationLog
from errors import ConflictError, NotFoundError, ValidationError
from models_ports import AllocationAction, Port, PortStatus
from paging import DEFAULT_MAX_PAGE_SIZE, paginate

logger = logging.getLogger(__name__)

DESCRIPTIVE_FIELDS = ('instance_url', 'db_host', 'db_name', 'server_region', 'notes')
PROTECTED_FIELDS = ('status', 'assigned_subscription_id', 'assigned_at', 'version', 'id')

# Yeni port ASSIGNED olarak oluşturulamaz, atama sadece AllocationService üzerinden
CREATABLE_STATUSES = (PortStatus.AVAILABLE, PortStatus.RESERVED, PortStatus.DISABLED)

IMPORT_COLUMNS = ('instance_url', 'db_host', 'db_name', 'status', 'server_region', 'notes')


def parse_status(value, allowed=tuple(PortStatus)):
    if isinstance(value, PortStatus):
        status = value
    else:
        try:
            status = PortStatus(str(value).strip().upper())
        except ValueError:
            status = None
    if status not in allowed:
        names = ', '.join(s.value for s in allowed)
        raise ValidationError(f'Geçersiz durum: {value}. Geçerli değerler: {names}')
    return status


def _clean(value):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


class ImportResult:
    def __init__(self):
        self.ports = []
        self.failed_rows = []
        self.errors = {}

    @property
    def imported(self):
        return len(self.ports)

    @property
    def failed(self):
        return len(self.failed_rows)

    def to_dict(self):
        return {
            'imported': self.imported,
            'failed': self.failed,
            'errors': {str(line): message for line, message in self.errors.items()},
            'ports': [port.to_dict() for port in self.ports]
        }


class PortRegistry:
    def __init__(self, session, log=None, max_page_size=DEFAULT_MAX_PAGE_SIZE):
        self.session = session
        self.log = log or AllocationLog(session, max_page_size)
        self.max_page_size = max_page_size

    def get(self, port_id):
        port = self.session.get(Port, port_id) if port_id else None
        if port is None:
            raise NotFoundError(f'Port bulunamadı: {port_id}')
        return port

    def list(self, filters=None, page=1, page_size=20):
        filters = filters or {}
        query = self.session.query(Port)

        if filters.get('status'):
            query = query.filter(Port.status == parse_status(filters['status']))

        search = (filters.get('search') or '').strip()
        if search:
            pattern = f'%{search}%'
            query = query.filter(or_(
                Port.instance_url.ilike(pattern),
                Port.db_host.ilike(pattern),
                Port.db_name.ilike(pattern),
                Port.notes.ilike(pattern)
            ))

        query = query.order_by(Port.created_at.desc())
        return paginate(query, page, page_size, self.max_page_size)

    def _ensure_unique_url(self, instance_url, exclude_id=None):
        query = self.session.query(Port.id).filter(Port.instance_url == instance_url)
        if exclude_id is not None:
            query = query.filter(Port.id != exclude_id)
        if query.first() is not None:
            raise ConflictError('Bu instance URL ile kayıtlı bir port zaten var.',
                                error_code='DUPLICATE_INSTANCE')

    def create(self, data, performed_by=None):
        instance_url = _clean(data.get('instance_url'))
        if not instance_url:
            raise ValidationError('instance_url gereklidir.')

        status = PortStatus.AVAILABLE
        if data.get('status'):
            status = parse_status(data['status'], CREATABLE_STATUSES)

        self._ensure_unique_url(instance_url)

        port = Port(
            instance_url=instance_url,
            db_host=_clean(data.get('db_host')),
            db_name=_clean(data.get('db_name')),
            server_region=_clean(data.get('server_region')),
            notes=_clean(data.get('notes')),
            status=status,
            version=1
        )

        try:
            self.session.add(port)
            self.session.flush()
            self.log.record(port.id, AllocationAction.CREATED, performed_by=performed_by,
                            notes=f'Port {status.value} durumunda oluşturuldu')
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception('Port oluşturulamadı: %s', instance_url)
            raise

        logger.info('Port oluşturuldu: %s (%s)', port.id, instance_url)
        return port

    def update(self, port_id, data):
        port = self.get(port_id)

        protected = [field for field in PROTECTED_FIELDS if field in data]
        if protected:
            raise ValidationError(
                f'{", ".join(protected)} bu işlemle değiştirilemez; '
                'durum değişiklikleri atama işlemleriyle yapılır.')

        if 'instance_url' in data:
            instance_url = _clean(data['instance_url'])
            if not instance_url:
                raise ValidationError('instance_url gereklidir.')
            self._ensure_unique_url(instance_url, exclude_id=port.id)
            data = dict(data, instance_url=instance_url)

        try:
            for field in DESCRIPTIVE_FIELDS:
                if field in data:
                    value = data[field] if field == 'instance_url' else _clean(data[field])
                    setattr(port, field, value)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception('Port güncellenemedi: %s', port_id)
            raise

        return port

    def delete(self, port_id):
        port = self.get(port_id)
        if port.status == PortStatus.ASSIGNED:
            raise ConflictError('Bir aboneliğe atanmış port silinemez.')

        try:
            self.session.delete(port)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            logger.exception('Port silinemedi: %s', port_id)
            raise

        logger.info('Port silindi: %s', port_id)

    def find_available(self, limit=1):
        return (self.session.query(Port)
                .filter(Port.status == PortStatus.AVAILABLE)
                .order_by(Port.created_at.asc())
                .limit(limit)
                .all())

    def count_available(self):
        return self.session.query(Port).filter(Port.status == PortStatus.AVAILABLE).count()

    def check_availability(self):
        count = self.count_available()
        return {'available': count > 0, 'count': count}

    def validate_checkout(self):
        """Ödeme adımına geçilebilir mi"""
        availability = self.check_availability()
        if not availability['available']:
            return {
                'can_proceed': False,
                'message': 'Müsait port yok. Lütfen destek ile iletişime geçin.'
            }
        return {'can_proceed': True, 'available_ports': availability['count']}

    def search_available(self, query_text='', limit=None):
        query = self.session.query(Port).filter(Port.status == PortStatus.AVAILABLE)

        query_text = (query_text or '').strip()
        if query_text:
            pattern = f'%{query_text}%'
            query = query.filter(or_(
                Port.instance_url.ilike(pattern),
                Port.db_name.ilike(pattern),
                Port.db_host.ilike(pattern),
                Port.server_region.ilike(pattern)
            ))
            limit = limit or 10
        else:
            limit = limit or 20

        return query.order_by(Port.instance_url.asc()).limit(limit).all()

    def parse_import_csv(self, stream):
        """CSV dosyasını port verilerine çevir.

        (satırlar, hatalar) döndürür; satırlar (satır_no, veri) çiftleridir,
        hatalar satır numarasıyla anahtarlanır. Başlık satırında instance_url
        kolonu zorunludur.
        """
        if isinstance(stream, bytes):
            stream = io.StringIO(stream.decode('utf-8-sig'))
        elif isinstance(stream, str):
            stream = io.StringIO(stream)

        rows = []
        errors = {}
        header = None

        for line_number, row in enumerate(csv.reader(stream), start=1):
            if header is None:
                header = [column.strip().lower() for column in row]
                if 'instance_url' not in header:
                    errors[line_number] = 'Eksik zorunlu kolon: instance_url'
                    break
                continue

            if not any(cell.strip() for cell in row):
                continue

            row_data = {}
            for index, column in enumerate(header):
                if column in IMPORT_COLUMNS:
                    row_data[column] = row[index].strip() if index < len(row) else ''

            if not row_data.get('instance_url'):
                errors[line_number] = f'Satır {line_number}: instance_url gereklidir'
                continue

            status = row_data.get('status') or PortStatus.AVAILABLE.value
            try:
                row_data['status'] = parse_status(status, CREATABLE_STATUSES).value
            except ValidationError:
                errors[line_number] = f"Satır {line_number}: geçersiz durum '{status}'"
                continue

            rows.append((line_number, {k: v for k, v in row_data.items() if v}))

        if header is None:
            errors[0] = 'CSV dosyası boş.'

        return rows, errors

    def bulk_import(self, rows, performed_by=None):
        """Her satırı ayrı transaction ile oluştur; hatalı satırlar diğerlerini durdurmaz"""
        result = ImportResult()
        for line_number, port_data in rows:
            try:
                result.ports.append(self.create(port_data, performed_by=performed_by))
            except (ValidationError, ConflictError) as e:
                result.failed_rows.append(port_data)
                result.errors[line_number] = e.message

        logger.info('Toplu port içe aktarma: %d başarılı, %d hatalı',
                    result.imported, result.failed)
        return result
