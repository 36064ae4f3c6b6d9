import math

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from allocation_log import AllocationLog
from errors import PortError, ValidationError
from models_ports import ACTION_LABELS, AllocationAction, db
from paging import normalize_paging
from port_allocation import AllocationService
from port_registry import PortRegistry

ports_bp = Blueprint('ports', __name__, url_prefix='/admin')


def _services():
    max_page_size = current_app.config['MAX_PAGE_SIZE']
    log = AllocationLog(db.session, max_page_size)
    registry = PortRegistry(db.session, log, max_page_size)
    return registry, AllocationService(db.session, registry, log), log


def _payload():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError('İstek gövdesi bir JSON nesnesi olmalıdır.')
    return data


def _page_args(default_per_page):
    page = request.args.get('page', 1, type=int)
    per_page = request.args.get('per_page', default_per_page, type=int)
    return normalize_paging(page, per_page, current_app.config['MAX_PAGE_SIZE'])


def _page_response(key, items, total, page, per_page):
    return jsonify({
        'success': True,
        key: items,
        'total': total,
        'page': page,
        'per_page': per_page,
        'pages': math.ceil(total / per_page) if total else 0
    })


@ports_bp.errorhandler(PortError)
def handle_port_error(error):
    current_app.logger.info('Port isteği reddedildi (%s): %s', error.error_code, error.message)
    return jsonify(error.to_dict()), error.status_code


# Port Kayıt Defteri

@ports_bp.route('/ports')
@login_required
def list_ports():
    registry, _, _ = _services()
    page, per_page = _page_args(current_app.config['PORTS_PER_PAGE'])
    filters = {
        'status': request.args.get('status', ''),
        'search': request.args.get('search', '')
    }
    ports, total = registry.list(filters, page, per_page)
    return _page_response('ports', [port.to_dict() for port in ports], total, page, per_page)


@ports_bp.route('/ports', methods=['POST'])
@login_required
def create_port():
    registry, _, _ = _services()
    port = registry.create(_payload(), performed_by=current_user.id)
    return jsonify({'success': True, 'message': 'Port başarıyla oluşturuldu!',
                    'port': port.to_dict()}), 201


@ports_bp.route('/ports/<port_id>')
@login_required
def get_port(port_id):
    registry, _, log = _services()
    port = registry.get(port_id)
    history = log.for_port(port.id, limit=50)
    return jsonify({
        'success': True,
        'port': port.to_dict(),
        'history': [entry.to_dict() for entry in history]
    })


@ports_bp.route('/ports/<port_id>', methods=['PUT'])
@login_required
def update_port(port_id):
    registry, _, _ = _services()
    port = registry.update(port_id, _payload())
    return jsonify({'success': True, 'message': 'Port başarıyla güncellendi!',
                    'port': port.to_dict()})


@ports_bp.route('/ports/<port_id>', methods=['DELETE'])
@login_required
def delete_port(port_id):
    registry, _, _ = _services()
    registry.delete(port_id)
    return jsonify({'success': True, 'message': 'Port başarıyla silindi!'})


@ports_bp.route('/ports/import', methods=['POST'])
@login_required
def import_ports():
    """CSV ile toplu port içe aktarma"""
    registry, _, _ = _services()

    csv_file = request.files.get('csv_file')
    if csv_file is None or not csv_file.filename:
        raise ValidationError('Lütfen yüklenecek bir CSV dosyası seçin.')

    extension = csv_file.filename.rsplit('.', 1)[-1].lower() if '.' in csv_file.filename else ''
    if extension not in current_app.config['IMPORT_EXTENSIONS']:
        raise ValidationError('Geçersiz dosya tipi. Lütfen bir CSV dosyası yükleyin.')

    content = csv_file.read()
    if len(content) > current_app.config['IMPORT_MAX_BYTES']:
        raise ValidationError('Dosya çok büyük. Maksimum boyut 5MB.')

    try:
        rows, errors = registry.parse_import_csv(content)
    except UnicodeDecodeError:
        raise ValidationError('CSV dosyası UTF-8 olarak okunamadı.')

    if errors:
        return jsonify({
            'success': False,
            'message': 'CSV dosyasında hatalar var.',
            'errors': {str(line): message for line, message in errors.items()}
        }), 400
    if not rows:
        raise ValidationError('CSV dosyasında geçerli port verisi bulunamadı.')

    result = registry.bulk_import(rows, performed_by=current_user.id)
    response = {'success': True, 'message': 'İçe aktarma tamamlandı!'}
    response.update(result.to_dict())
    return jsonify(response)


@ports_bp.route('/ports/available')
@login_required
def search_available_ports():
    registry, _, _ = _services()
    ports = registry.search_available(request.args.get('q', ''))
    return jsonify({'success': True, 'ports': [port.to_dict() for port in ports]})


@ports_bp.route('/ports/availability')
@login_required
def port_availability():
    registry, _, _ = _services()
    response = {'success': True}
    response.update(registry.check_availability())
    return jsonify(response)


# Atama İşlemleri

def _transition_response(port, message):
    return jsonify({'success': True, 'message': message, 'port': port.to_dict()})


@ports_bp.route('/ports/<port_id>/assign', methods=['POST'])
@login_required
def assign_port(port_id):
    _, allocation, _ = _services()
    data = _payload()
    port = allocation.assign(port_id, data.get('subscription_id'),
                             performed_by=current_user.id, notes=data.get('notes'))
    return _transition_response(port, 'Port aboneliğe atandı.')


@ports_bp.route('/ports/<port_id>/reassign', methods=['POST'])
@login_required
def reassign_port(port_id):
    _, allocation, _ = _services()
    data = _payload()
    port = allocation.reassign(port_id, data.get('subscription_id'),
                               performed_by=current_user.id, notes=data.get('notes'))
    return _transition_response(port, 'Port yeni aboneliğe taşındı.')


@ports_bp.route('/ports/<port_id>/release', methods=['POST'])
@login_required
def release_port(port_id):
    _, allocation, _ = _services()
    port = allocation.release(port_id, performed_by=current_user.id,
                              notes=_payload().get('notes'))
    return _transition_response(port, 'Port serbest bırakıldı.')


@ports_bp.route('/ports/<port_id>/reserve', methods=['POST'])
@login_required
def reserve_port(port_id):
    _, allocation, _ = _services()
    port = allocation.reserve(port_id, performed_by=current_user.id,
                              notes=_payload().get('notes'))
    return _transition_response(port, 'Port rezerve edildi.')


@ports_bp.route('/ports/<port_id>/make-available', methods=['POST'])
@login_required
def make_port_available(port_id):
    _, allocation, _ = _services()
    port = allocation.make_available(port_id, performed_by=current_user.id,
                                     notes=_payload().get('notes'))
    return _transition_response(port, 'Port müsait yapıldı.')


@ports_bp.route('/ports/<port_id>/disable', methods=['POST'])
@login_required
def disable_port(port_id):
    _, allocation, _ = _services()
    port = allocation.disable(port_id, performed_by=current_user.id,
                              notes=_payload().get('notes'))
    return _transition_response(port, 'Port devre dışı bırakıldı.')


@ports_bp.route('/ports/<port_id>/enable', methods=['POST'])
@login_required
def enable_port(port_id):
    _, allocation, _ = _services()
    port = allocation.enable(port_id, performed_by=current_user.id,
                             notes=_payload().get('notes'))
    return _transition_response(port, 'Port etkinleştirildi.')


@ports_bp.route('/ports/<port_id>/status', methods=['POST'])
@login_required
def change_port_status(port_id):
    _, allocation, _ = _services()
    data = _payload()
    if not data.get('status'):
        raise ValidationError('status gereklidir.')
    port = allocation.change_status(port_id, data['status'],
                                    performed_by=current_user.id,
                                    subscription_id=data.get('subscription_id'),
                                    notes=data.get('notes'))
    return _transition_response(port, 'Port durumu güncellendi.')


@ports_bp.route('/subscriptions/<int:subscription_id>/allocate-port', methods=['POST'])
@login_required
def allocate_port(subscription_id):
    """Provisioning akışı için otomatik port atama"""
    _, allocation, _ = _services()
    port = allocation.allocate_for_subscription(subscription_id, performed_by=current_user.id)
    return jsonify({'success': True, 'message': 'Aboneliğe port atandı.',
                    'subscription_id': subscription_id, 'port': port.to_dict()})


# Atama Log'ları

@ports_bp.route('/port-allocation-logs')
@login_required
def list_allocation_logs():
    _, _, log = _services()
    page, per_page = _page_args(current_app.config['LOGS_PER_PAGE'])
    filters = {
        'action': request.args.get('action', ''),
        'plan_id': request.args.get('plan', ''),
        'customer_id': request.args.get('customer', ''),
        'port_id': request.args.get('port', ''),
        'date_from': request.args.get('date_from', ''),
        'date_to': request.args.get('date_to', ''),
        'search': request.args.get('search', '')
    }
    entries, total = log.query(filters, page, per_page)
    return _page_response('logs', [entry.to_dict() for entry in entries], total, page, per_page)


@ports_bp.route('/port-allocation-logs/actions')
@login_required
def allocation_log_actions():
    """Filtre listesi: kayıtlarda geçen işlemler ve tam sözlük"""
    _, _, log = _services()
    present = log.distinct_actions()
    return jsonify({
        'success': True,
        'actions': [action.value for action in AllocationAction if action in present],
        'all_actions': [{'value': action.value, 'label': ACTION_LABELS[action]}
                        for action in AllocationAction]
    })
