import json
from datetime import datetime
from pathlib import Path

from app.config import LOG_DIR
from app.logger import logger

LOG_FILE = Path(LOG_DIR) / "user_actions.log"


def log_action(action: str, user_id: str, details: dict = None, ip: str = None):
    """Логирует действия пользователей в файл (одна JSON-строка на действие)"""
    log_entry = {
        "timestamp": datetime.now().isoformat(),
        "action": action,
        "user_id": user_id,
        "ip": ip,
        "details": details or {}
    }

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(LOG_FILE, "a", encoding="utf-8") as f:
            f.write(json.dumps(log_entry, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        logger.error(f"Failed to write user action log: {e}")


def get_logs(limit: int = 100, action: str = None) -> list:
    """Возвращает последние логи, опционально только одного типа действия"""
    if not LOG_FILE.exists():
        return []

    with open(LOG_FILE, "r", encoding="utf-8") as f:
        lines = f.readlines()

    logs = []
    for line in lines:
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping malformed user action log line")
            continue
        if action and entry.get("action") != action:
            continue
        logs.append(entry)

    return logs[-limit:]
