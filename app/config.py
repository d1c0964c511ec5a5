import os

# Внешний REST API (Spring Boot). Пусто -> демо-клиент без сети
API_BASE_URL = os.getenv("STOREFRONT_API_URL", "")
USE_FALLBACK = os.getenv("STOREFRONT_USE_FALLBACK", "").lower() in ("1", "true", "yes")
REQUEST_TIMEOUT = float(os.getenv("STOREFRONT_REQUEST_TIMEOUT", "3"))

# Файловое хранилище (аналог localStorage)
DATA_DIR = os.getenv("STOREFRONT_DATA_DIR", "data")
STORAGE_FILE = os.path.join(DATA_DIR, "local_storage.json")
LOG_DIR = os.getenv("STOREFRONT_LOG_DIR", "logs")
LOG_LEVEL = os.getenv("STOREFRONT_LOG_LEVEL", "INFO").upper()

# Имитация обработки платежа, секунды
PROCESSING_DELAY = float(os.getenv("STOREFRONT_PROCESSING_DELAY", "1.5"))

MAX_SEATS = 10
HOLD_MINUTES = 10
RESERVE_DEBOUNCE_SECONDS = 0.5
CANCELLATION_CUTOFF_HOURS = 2
REFUND_RATE = 0.9
DEFAULT_BASE_PRICE = 250.0
