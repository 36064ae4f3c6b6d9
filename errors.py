# Port servisi hata tipleri


class PortError(Exception):
    """Tüm port servisi hatalarının tabanı"""
    status_code = 400
    error_code = 'PORT_ERROR'

    def __init__(self, message, error_code=None):
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code

    def to_dict(self):
        return {
            'success': False,
            'message': self.message,
            'error_code': self.error_code
        }


class ValidationError(PortError):
    status_code = 400
    error_code = 'VALIDATION_ERROR'


class NotFoundError(PortError):
    status_code = 404
    error_code = 'NOT_FOUND'


class ConflictError(PortError):
    """Geçersiz durum geçişi veya eşzamanlı güncelleme"""
    status_code = 409
    error_code = 'CONFLICT'


class NoAvailablePortError(ConflictError):
    error_code = 'NO_AVAILABLE_PORTS'
