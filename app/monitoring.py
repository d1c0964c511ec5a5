from collections import Counter
from datetime import datetime

from app.logging_service import get_logs

# действие в журнале -> имя метрики
METRIC_ACTIONS = {
    "RESERVE_SEATS": "reserved",
    "CREATE_BOOKING": "booked",
    "CANCEL_BOOKING": "cancelled",
    "UPDATE_BOOKING_STATUS": "status_changes",
    "LOGIN": "logins",
}


def action_metrics(limit: int = 10000) -> dict:
    """Счётчики по журналу действий пользователей"""
    metrics = Counter()
    revenue = 0.0
    refunds = 0.0
    for entry in get_logs(limit):
        name = METRIC_ACTIONS.get(entry.get("action"))
        if name:
            metrics[name] += 1
        details = entry.get("details") or {}
        if entry.get("action") == "CREATE_BOOKING":
            revenue += float(details.get("total_amount") or 0)
        elif entry.get("action") == "UPDATE_BOOKING_STATUS" and details.get("to") == "CANCELLED":
            # любая отмена (пользователем или админом) проходит через смену статуса
            refunds += float(details.get("refund_amount") or 0)

    result = {name: metrics.get(name, 0) for name in METRIC_ACTIONS.values()}
    result["revenue"] = round(revenue, 2)
    result["refunded"] = round(refunds, 2)
    result["timestamp"] = datetime.now().isoformat()
    return result
