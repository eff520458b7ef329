import os

class BaseConfig:
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///poolcrm.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = False

    # Calendar display/input timezone; storage is always UTC
    DEFAULT_TIMEZONE = os.getenv('DEFAULT_TIMEZONE', 'America/New_York')

    ESTIMATE_NUMBER_PREFIX = os.getenv('ESTIMATE_NUMBER_PREFIX', 'EST')
    ESTIMATE_VALID_DAYS = int(os.getenv('ESTIMATE_VALID_DAYS', '30'))

    REVALIDATE_WEBHOOK_URL = os.getenv('REVALIDATE_WEBHOOK_URL', '')
    REVALIDATE_SECRET = os.getenv('REVALIDATE_SECRET', '')
    REVALIDATE_TIMEOUT = int(os.getenv('REVALIDATE_TIMEOUT', '5'))

class DevConfig(BaseConfig):
    DEBUG = True
    ENV = 'development'

class ProdConfig(BaseConfig):
    DEBUG = False
    ENV = 'production'
    SESSION_COOKIE_SECURE = True

class TestConfig(BaseConfig):
    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    REVALIDATE_WEBHOOK_URL = ''
