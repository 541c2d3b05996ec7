import logging

from flask import Flask, render_template

from .admin import admin_bp
from .auth import auth_bp
from .cli import register_cli
from .config import Config
from .customer import customer_bp
from .errors import BackendFailure
from .extensions import db, migrate
from .retailer import retailer_bp
from .session import current_user, load_current_user
from .shell import shell_bp
from .store import init_store
from .utils.geo import format_distance
from .utils.mail import init_mail_settings


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app.logger.setLevel(level)
    logging.getLogger('galliconnect').setLevel(level)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(BackendFailure)
    def backend_failure(exc):
        app.logger.error('Backend failure: %s', exc)
        return render_template('errors/backend.html', message=str(exc)), 503

    @app.errorhandler(403)
    def forbidden(_exc):
        return render_template('errors/403.html'), 403

    @app.errorhandler(404)
    def not_found(_exc):
        return render_template('errors/404.html'), 404


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)
    _configure_logging(app)

    store = init_store(app)
    if store.mode == 'hosted':
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config['DATABASE_URL']
        db.init_app(app)
        migrate.init_app(app, db)
        with app.app_context():
            db.create_all()
            store.prepare()

    init_mail_settings(app)
    register_cli(app)

    app.before_request(load_current_user)

    @app.context_processor
    def inject_globals():
        return {
            'current_user': current_user(),
            'product_name': app.config.get('PRODUCT_NAME', 'Galliconnect'),
            'store_mode': store.mode,
        }

    @app.template_filter('money')
    def money(value):
        return f'₹{float(value or 0):,.2f}'

    app.jinja_env.filters['distance'] = format_distance

    app.register_blueprint(shell_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(retailer_bp)
    app.register_blueprint(admin_bp)

    _register_error_handlers(app)
    return app
