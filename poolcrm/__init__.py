import os
import logging
from flask import Flask, jsonify, redirect, url_for
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from dotenv import load_dotenv

from .config import DevConfig, ProdConfig, TestConfig

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()

CONFIGS = {
    'development': DevConfig,
    'production': ProdConfig,
    'testing': TestConfig,
}


def create_app(config_name: str | None = None) -> Flask:
    """Application factory with environment based configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)
    os.makedirs(app.instance_path, exist_ok=True)

    # Pick configuration
    env = config_name or os.getenv('ENV') or os.getenv('FLASK_ENV') or 'production'
    app.config.from_object(CONFIGS.get(env, ProdConfig))

    # Initialise logging
    logging.basicConfig(level=logging.DEBUG if app.debug else logging.INFO)

    db.init_app(app)
    migrate.init_app(app, db)

    # Ensure models loaded so tables can be created
    from poolcrm import models  # noqa
    with app.app_context():
        db.create_all()

    from poolcrm.revalidation import init_views
    init_views(app)

    from poolcrm.auth import load_principal
    app.before_request(load_principal)

    @app.route('/')
    def index():
        return redirect(url_for('calendar.events_in_range'))

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(success=False, error='Not found', code='NOT_FOUND'), 404

    @app.errorhandler(405)
    def method_not_allowed(_):
        return jsonify(success=False, error='Method not allowed'), 405

    @app.errorhandler(500)
    def server_error(_):
        return jsonify(success=False, error='An unexpected error occurred',
                       code='INTERNAL_ERROR'), 500

    from poolcrm.auth import bp as auth_bp
    from poolcrm.calendar.routes import bp as calendar_bp
    from poolcrm.customers.routes import bp as customers_bp
    from poolcrm.estimates.routes import bp as estimates_bp
    from poolcrm.revalidation import bp as views_bp
    from poolcrm.cli import crm_cli

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(calendar_bp, url_prefix='/calendar')
    app.register_blueprint(customers_bp, url_prefix='/customers')
    app.register_blueprint(estimates_bp, url_prefix='/estimates')
    app.register_blueprint(views_bp, url_prefix='/views')
    app.cli.add_command(crm_cli)

    return app
