"""Notification service for Fondo.

Stores in-app notifications for members and provides typed helpers for the
events raised by the loan and savings services.
"""
from fondo import config
from fondo.data_structures import Notification, NotificationType
from fondo.exceptions import InvalidArgumentError
from fondo.services.amortization import round_money


def format_currency(amount) -> str:
    """Format whole pesos with dot thousands separators, e.g. ``$ 1.500.000``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}{config.CURRENCY_SYMBOL} {abs(round_money(amount)):,}".replace(",", ".")


class NotificationService:
    """Handles member notifications."""

    def __init__(self, db_manager):
        self.db = db_manager

    def create_notification(self, user_id, type, title, message, action_url=None) -> Notification:
        try:
            type = NotificationType(type)
        except ValueError:
            raise InvalidArgumentError(f"Unknown notification type: '{type}'", {'type': type})
        return self.db.add_notification(Notification(
            id=None, user_id=user_id, type=type, title=title,
            message=message, action_url=action_url,
        ))

    def get_user_notifications(self, user_id, limit=config.NOTIFICATIONS_LIMIT):
        return self.db.get_user_notifications(user_id, limit)

    def get_unread_count(self, user_id) -> int:
        return self.db.count_unread_notifications(user_id)

    def mark_as_read(self, notification_id):
        return self.db.mark_notification_read(notification_id)

    def mark_all_as_read(self, user_id):
        return self.db.mark_all_notifications_read(user_id)

    # Typed helpers

    def notify_loan_requested(self, user_id, amount):
        return self.create_notification(
            user_id, NotificationType.LOAN_REQUESTED, "Solicitud Recibida",
            f"Tu solicitud de préstamo por {format_currency(amount)} está en revisión.",
            "/loans",
        )

    def notify_loan_approved(self, user_id, amount):
        return self.create_notification(
            user_id, NotificationType.LOAN_APPROVED, "Préstamo Aprobado",
            f"Tu solicitud de préstamo por {format_currency(amount)} ha sido aprobada.",
            "/loans",
        )

    def notify_loan_rejected(self, user_id):
        return self.create_notification(
            user_id, NotificationType.LOAN_REJECTED, "Préstamo Rechazado",
            "Lamentablemente tu solicitud de préstamo no fue aprobada. "
            "Contacta al administrador para más información.",
            "/loans",
        )

    def notify_payment_registered(self, user_id, amount, new_balance):
        return self.create_notification(
            user_id, NotificationType.PAYMENT_REGISTERED, "Abono Registrado",
            f"Tu abono de {format_currency(amount)} fue registrado. "
            f"Saldo pendiente: {format_currency(new_balance)}.",
            "/loans",
        )

    def notify_saving_confirmed(self, user_id, amount):
        return self.create_notification(
            user_id, NotificationType.SAVING_CONFIRMED, "Aporte Confirmado",
            f"Tu aporte de {format_currency(amount)} ha sido registrado exitosamente.",
        )

    def notify_payment_reminder(self, user_id, amount, due_date):
        return self.create_notification(
            user_id, NotificationType.PAYMENT_REMINDER, "Recordatorio de Pago",
            f"Tienes un pago pendiente de {format_currency(amount)} "
            f"con vencimiento el {due_date.strftime('%d/%m/%Y')}.",
            "/loans",
        )
