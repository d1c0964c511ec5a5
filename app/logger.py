import logging
import os

from app.config import LOG_DIR, LOG_LEVEL

LOG_FILE = os.path.join(LOG_DIR, "storefront.log")

os.makedirs(LOG_DIR, exist_ok=True)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
        logging.StreamHandler()
    ]
)

# urllib3 под requests пишет каждое соединение, оставляем только проблемы
logging.getLogger("urllib3").setLevel(logging.WARNING)

logger = logging.getLogger("storefront")
logger.setLevel(LOG_LEVEL)
