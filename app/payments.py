import re
import secrets
import time

from app.errors import PaymentDeclined
from app.logger import logger
from app.models import PaymentMethod

EXPIRY_RE = re.compile(r"(0[1-9]|1[0-2])/\d{2}")

# Тестовая карта, которую шлюз всегда отклоняет
DECLINED_TEST_CARD = "4000000000000002"


def normalize_card_number(value: str) -> str:
    return re.sub(r"[\s-]", "", value or "")


def validate_payment(form: dict) -> dict:
    """Проверить форму оплаты. Возвращает {поле: сообщение}, пусто - всё верно"""
    errors = {}
    method = form.get("payment_method") or PaymentMethod.CREDIT_CARD.value

    if method == PaymentMethod.CREDIT_CARD.value:
        if not re.fullmatch(r"\d{16}", normalize_card_number(form.get("card_number"))):
            errors["card_number"] = "Please enter a valid 16-digit card number"
        if not EXPIRY_RE.fullmatch(form.get("expiry_date") or ""):
            errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"
        if not re.fullmatch(r"\d{3}", form.get("cvv") or ""):
            errors["cvv"] = "Please enter a valid CVV"
        if not (form.get("card_holder_name") or "").strip():
            errors["card_holder_name"] = "Please enter cardholder name"
    elif method == PaymentMethod.UPI.value:
        if "@" not in (form.get("upi_id") or ""):
            errors["upi_id"] = "Please enter a valid UPI ID"
    elif method == PaymentMethod.NET_BANKING.value:
        if not form.get("bank_name"):
            errors["bank_name"] = "Please select a bank"
    elif method == PaymentMethod.WALLET.value:
        if not form.get("wallet_type"):
            errors["wallet_type"] = "Please select a wallet"
    else:
        errors["payment_method"] = "Unsupported payment method"

    return errors


def masked_details(form: dict) -> dict:
    """Что можно сохранить: от карты остаются последние 4 цифры"""
    method = form.get("payment_method") or PaymentMethod.CREDIT_CARD.value
    details = {"payment_method": method}
    if method == PaymentMethod.CREDIT_CARD.value:
        details["card_last4"] = normalize_card_number(form.get("card_number"))[-4:]
    elif method == PaymentMethod.UPI.value:
        details["upi_id"] = form.get("upi_id")
    elif method == PaymentMethod.NET_BANKING.value:
        details["bank_name"] = form.get("bank_name")
    elif method == PaymentMethod.WALLET.value:
        details["wallet_type"] = form.get("wallet_type")
    return details


class SimulatedGateway:
    """Учебная имитация платёжного шлюза"""

    def authorize(self, amount: float, form: dict) -> str:
        details = masked_details(form)
        if amount <= 0:
            logger.warning(f"Invalid amount: {amount}")
            raise PaymentDeclined("Invalid payment amount")
        if normalize_card_number(form.get("card_number")) == DECLINED_TEST_CARD:
            logger.warning(f"Payment declined for card ending {details.get('card_last4')}")
            raise PaymentDeclined("Payment declined by issuer. Please try another card.")

        transaction_id = f"TXN{int(time.time() * 1000)}{secrets.token_hex(2).upper()}"
        logger.info(f"Payment authorized: {transaction_id}, amount {amount}, method {details['payment_method']}")
        return transaction_id
