import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask


def configure_logging(log_dir=None, debug=False, app=None):
    """Configure application logging"""

    # Set log level based on environment
    log_level = logging.DEBUG if debug else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)
    handlers = [console_handler]

    # File handler
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'savepoint.log'),
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        )
        file_handler.setFormatter(file_formatter)
        handlers.append(file_handler)

    # Configure package logger
    package_logger = logging.getLogger('savepoint')
    package_logger.setLevel(log_level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    for handler in handlers:
        package_logger.addHandler(handler)

    # Configure Flask app logger
    if app is not None:
        app.logger.setLevel(log_level)
        for handler in handlers:
            app.logger.addHandler(handler)
        app.logger.info(f"Logging configured (level: {logging.getLevelName(log_level)})")

    return handlers


def create_app(config_name=None, **overrides):
    """
    Flask application factory

    Args:
        config_name: Key of savepoint.config.config (default: SAVEPOINT_ENV or 'production')
        **overrides: Extra app.config values (upper-case keys), applied before
            settings are validated
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('SAVEPOINT_ENV', 'production')

    from savepoint.config import config, BackupSettings
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    # Configure logging
    if not app.config.get('TESTING'):
        log_dir = app.config.get('LOG_DIR')
        configure_logging(
            os.path.expanduser(log_dir) if log_dir else None,
            debug=app.config.get('DEBUG', False),
            app=app
        )

    # Validate settings once; every request uses this snapshot
    settings = BackupSettings.from_config(app.config)
    app.extensions['savepoint'] = {'settings': settings, 'scheduler': None}

    # Register blueprints
    from savepoint.routes import history_routes, backup_routes
    app.register_blueprint(history_routes.bp)
    app.register_blueprint(backup_routes.bp)

    # Health check endpoint
    @app.route('/health')
    def health():
        scheduler = app.extensions['savepoint']['scheduler']
        return {
            'status': 'healthy',
            'backup_root': settings.backup_root,
            'compression': settings.compression,
            'scheduler_running': bool(scheduler and scheduler.running),
        }, 200

    if app.config.get('SCHEDULER_ENABLED'):
        from savepoint.scheduler import BackupScheduler
        import atexit

        app.logger.info("Initializing backup scheduler in this process...")
        scheduler = BackupScheduler(settings, timezone=app.config.get('SCHEDULER_TIMEZONE', 'UTC'))
        scheduler.start()
        app.extensions['savepoint']['scheduler'] = scheduler

        # Register cleanup function to stop scheduler on app shutdown
        atexit.register(scheduler.shutdown)
    else:
        app.logger.info("Backup scheduler disabled; backups run synchronously")

    return app
