import os

from dotenv import load_dotenv
load_dotenv()  # .envファイルを自動で読み込む

MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://pokerledger_mongo:27017")
REDIS_URI = os.getenv("REDIS_URI", "redis://pokerledger_redis:6379/0")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "pokerledger")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# 認証プロバイダ種別（supabase or firebase）
AUTH_PROVIDER = os.getenv("AUTH_PROVIDER", "supabase")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", None)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", None)

# Client side: where the remote store API lives
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api")

# Local store
LOCAL_NAMESPACE = os.getenv("LOCAL_NAMESPACE", "poker-ledger")
LOCAL_BACKUP_COUNT = int(os.getenv("LOCAL_BACKUP_COUNT", 3))
LOCAL_MAX_BYTES = int(os.getenv("LOCAL_MAX_BYTES", 5 * 1024 * 1024))
LOCAL_BACKUP_MAX_AGE_SECONDS = int(os.getenv("LOCAL_BACKUP_MAX_AGE_SECONDS", 24 * 60 * 60))

# Sync tuning (seconds)
SYNC_COOLDOWN_SECONDS = float(os.getenv("SYNC_COOLDOWN_SECONDS", 30))
SYNC_MAX_ATTEMPTS = int(os.getenv("SYNC_MAX_ATTEMPTS", 3))
SYNC_BACKOFF_BASE_SECONDS = float(os.getenv("SYNC_BACKOFF_BASE_SECONDS", 2))
SYNC_BACKOFF_CAP_SECONDS = float(os.getenv("SYNC_BACKOFF_CAP_SECONDS", 32))
ONLINE_DEBOUNCE_SECONDS = float(os.getenv("ONLINE_DEBOUNCE_SECONDS", 2))
SYNC_INTERVAL_GOOD_SECONDS = float(os.getenv("SYNC_INTERVAL_GOOD_SECONDS", 30))
SYNC_INTERVAL_POOR_SECONDS = float(os.getenv("SYNC_INTERVAL_POOR_SECONDS", 60))
SYNC_TIMEOUT_GOOD_SECONDS = float(os.getenv("SYNC_TIMEOUT_GOOD_SECONDS", 15))
SYNC_TIMEOUT_POOR_SECONDS = float(os.getenv("SYNC_TIMEOUT_POOR_SECONDS", 30))
AUTOSAVE_DEBOUNCE_SECONDS = float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", 2))
AUTOSAVE_INTERVAL_SECONDS = float(os.getenv("AUTOSAVE_INTERVAL_SECONDS", 60))

# Game defaults
DEFAULT_BUY_IN_MINOR = int(os.getenv("DEFAULT_BUY_IN_MINOR", 2500))
DEFAULT_POINT_TO_CASH_RATE = os.getenv("DEFAULT_POINT_TO_CASH_RATE", "0.10")


def check_auth_settings():
    # どちらも存在しない場合はエラー（API起動時のみ）
    if AUTH_PROVIDER == "supabase" and not SUPABASE_JWT_SECRET:
        raise RuntimeError("SUPABASE_JWT_SECRET is required for Supabase auth")
    if AUTH_PROVIDER == "firebase" and not FIREBASE_PROJECT_ID:
        raise RuntimeError("FIREBASE_PROJECT_ID is required for Firebase auth")
