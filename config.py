import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'peerq-dev-secret-key'
    # the database name is taken from the URI path
    MONGO_URI = os.environ.get('MONGO_URI') or os.environ.get('MONGODB_URI') or 'mongodb://localhost:27017/peerq'

    # Bearer tokens
    TOKEN_SALT = os.environ.get('TOKEN_SALT', 'peerq-auth-token-salt')
    TOKEN_TTL_USER = int(os.environ.get('TOKEN_TTL_USER', 60 * 60 * 24 * 7))  # 7 days
    TOKEN_TTL_GUEST = int(os.environ.get('TOKEN_TTL_GUEST', 60 * 60 * 24 * 30))  # 30 days

    # JSON API: forms are validated from request bodies, no CSRF tokens
    WTF_CSRF_ENABLED = False

    # Generative assistant
    GEMINI_API_KEY = os.environ.get('GEMINI_API_KEY')
    GEMINI_MODEL = os.environ.get('GEMINI_MODEL', 'gemini-pro')
    GEMINI_API_URL = os.environ.get('GEMINI_API_URL', 'https://generativelanguage.googleapis.com/v1beta')
    GEMINI_TIMEOUT = int(os.environ.get('GEMINI_TIMEOUT', 30))

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')
    NLTK_DOWNLOAD = os.environ.get('NLTK_DOWNLOAD', 'True') == 'True'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Seed account for `flask create-admin`
    ADMIN_USERNAME = os.environ.get('ADMIN_USERNAME', 'admin')
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL', 'admin@peerq.com')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD', 'admin123')


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing-secret-key'
    MONGO_URI = 'mongodb://localhost:27017/peerq_test'
    GEMINI_API_KEY = None
    NLTK_DOWNLOAD = False
    BCRYPT_LOG_ROUNDS = 4
