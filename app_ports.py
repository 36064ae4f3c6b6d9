# Karyalay Admin - Port Havuzu ve Atama Servisi

from flask import Flask, request, session, jsonify
from flask_login import LoginManager, login_user, logout_user, login_required, current_user
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import logging
import os

from models_ports import db, PlatformAdmin


class Config:
    # Veritabanı - Production'da PostgreSQL kullanın
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///karyalay_ports.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Güvenlik
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'karyalay-ports-dev-secret-key'

    # Loglama
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # Sayfalama
    PORTS_PER_PAGE = 20
    LOGS_PER_PAGE = 25
    MAX_PAGE_SIZE = 100

    # CSV içe aktarma
    IMPORT_MAX_BYTES = 5 * 1024 * 1024
    IMPORT_EXTENSIONS = ('csv', 'txt')

    # İlk platform admin'i
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME') or 'karyalayadmin'
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL') or 'admin@karyalay.local'
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')


login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(PlatformAdmin, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'success': False, 'message': 'Bu işlem için giriş yapmanız gerekir.'}), 401


def configure_logging(app):
    level = getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    app.logger.setLevel(level)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    db.init_app(app)
    login_manager.init_app(app)

    from routes import ports_bp
    app.register_blueprint(ports_bp)

    register_auth_routes(app)
    register_error_handlers(app)

    return app


def register_auth_routes(app):
    @app.route('/admin/login', methods=['POST'])
    def platform_login():
        """Platform admin girişi"""
        data = request.get_json(silent=True) or request.form
        username = data.get('username')
        password = data.get('password') or ''

        admin = PlatformAdmin.query.filter_by(username=username, is_active=True).first()

        if admin and check_password_hash(admin.password_hash, password):
            login_user(admin)
            session['user_type'] = 'platform_admin'
            admin.last_login = datetime.utcnow()
            db.session.commit()
            app.logger.info('Platform admin giriş yaptı: %s', admin.username)
            return jsonify({'success': True, 'message': 'Platform admin olarak giriş yaptınız.'})

        app.logger.warning('Başarısız giriş denemesi: %s', username)
        return jsonify({'success': False, 'message': 'Geçersiz kullanıcı adı veya şifre.'}), 401

    @app.route('/admin/logout', methods=['POST'])
    @login_required
    def platform_logout():
        app.logger.info('Platform admin çıkış yaptı: %s', current_user.username)
        logout_user()
        session.pop('user_type', None)
        return jsonify({'success': True, 'message': 'Çıkış yaptınız.'})


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'success': False, 'message': 'Kaynak bulunamadı.'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'message': 'Bu metot desteklenmiyor.'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error('Beklenmeyen hata: %s', error)
        return jsonify({'success': False, 'message': 'Beklenmeyen bir hata oluştu.'}), 500


# Database İlklendirme
def init_database(app):
    """Veritabanını ve ilk platform admin'ini oluştur"""
    with app.app_context():
        db.create_all()

        if not PlatformAdmin.query.first():
            password = app.config.get('ADMIN_PASSWORD')
            if not password:
                app.logger.warning('ADMIN_PASSWORD tanımlı değil, platform admin oluşturulmadı.')
                return None

            admin = PlatformAdmin(
                username=app.config['ADMIN_USERNAME'],
                email=app.config['ADMIN_EMAIL'],
                password_hash=generate_password_hash(password),
                first_name='Platform',
                last_name='Admin',
                is_super_admin=True
            )
            db.session.add(admin)
            db.session.commit()
            app.logger.info('Platform admin oluşturuldu: %s', admin.username)
            return admin.username
    return None


if __name__ == '__main__':
    app = create_app()
    init_database(app)

    # Development sunucusu - Production'da Gunicorn kullanın
    app.run(
        host='0.0.0.0',
        port=5001,
        debug=True
    )
