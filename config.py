import os

SECRET_KEY = os.environ.get("FORUM_SECRET_KEY", "your-secret-key-change-this")
DB_PATH = os.environ.get("FORUM_DB_PATH", "forum.db")
ALLOWED_ORIGINS = ["http://localhost:3000", "http://localhost:8080", "https://yourforum.com"]
ALLOWED_HOSTS = os.environ.get("FORUM_ALLOWED_HOSTS", "localhost,127.0.0.1,yourapi.com").split(",")
ACCESS_TOKEN_EXPIRE_MINUTES = 30
JWT_ALGORITHM = "HS256"

# Server Configuration
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000

# Logging
LOG_LEVEL = os.environ.get("FORUM_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Rank Settings
RANKS_CACHE_TTL = 600  # 10 minutes
RANK_NAME_MIN_LENGTH = 1
RANK_NAME_MAX_LENGTH = 50
RANK_COLOR_MAX_LENGTH = 32
RANK_ICON_MAX_LENGTH = 16

# Security Settings
MAX_REQUEST_SIZE_MB = 1
GZIP_MIN_SIZE = 1000

# HTTP Status Codes
HTTP_REQUEST_ENTITY_TOO_LARGE = 413
HTTP_UNPROCESSABLE_ENTITY = 422
HTTP_INTERNAL_SERVER_ERROR = 500
