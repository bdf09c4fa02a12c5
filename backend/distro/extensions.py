# Overview: Flask extension instances for database, migrations and outbound notifications.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.notification_service import NotificationDispatcher

db = SQLAlchemy()
migrate = Migrate()
notifier = NotificationDispatcher()
