"""
Adapters for the services this app does not own: outbound email, payment
checkout and report files. Each app carries one instance of each in
``app.extensions["camphq"]``; tests swap in recording fakes.
"""
import os
import uuid
import pandas as pd
from flask import current_app
from utils.audit import log_event


class Notifier:
    def send(self, template, recipient, **context):
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: records the message instead of delivering it."""

    def send(self, template, recipient, **context):
        current_app.logger.info("Notification %s queued for %s", template, recipient)
        log_event("NOTIFICATION_QUEUED", description=f"{template} -> {recipient}")


class PaymentGateway:
    def create_checkout(self, registration, success_url, cancel_url):
        """Returns a dict with ``reference`` and ``checkout_url``."""
        raise NotImplementedError


class HostedCheckoutGateway(PaymentGateway):
    def create_checkout(self, registration, success_url, cancel_url):
        reference = f"chk_{uuid.uuid4().hex[:16]}"
        return {
            "reference": reference,
            "checkout_url": f"{current_app.config['APP_URL']}/checkout/{reference}",
        }


class ReportGenerator:
    def day_report(self, camp_day, records):
        """Returns a reference (path or URL) to the generated report."""
        raise NotImplementedError


class CsvReportGenerator(ReportGenerator):
    COLUMNS = [
        "athlete_id", "athlete_name", "status", "check_in_at", "check_in_method",
        "check_out_at", "check_out_method", "pickup_person_name", "pickup_relationship",
    ]

    def day_report(self, camp_day, records):
        folder = current_app.config.get("REPORT_FOLDER", "reports")
        os.makedirs(folder, exist_ok=True)

        df = pd.DataFrame([r.to_dict() for r in records], columns=self.COLUMNS)
        df = df.sort_values(["status", "athlete_name"]) if not df.empty else df
        path = os.path.join(folder, f"camp{camp_day.camp_id}_day{camp_day.day_number}_{camp_day.date.isoformat()}.csv")
        df.to_csv(path, index=False)
        return path.replace('\\', '/')


def init_collaborators(app, notifier=None, payments=None, reports=None):
    app.extensions["camphq"] = {
        "notifier": notifier or LoggingNotifier(),
        "payments": payments or HostedCheckoutGateway(),
        "reports": reports or CsvReportGenerator(),
    }


def get_collaborator(name):
    return current_app.extensions["camphq"][name]


def notify(template, recipient, **context):
    """Fire-and-forget delivery; a failure here never undoes the state change."""
    if not recipient:
        current_app.logger.warning("Notification %s skipped: no recipient", template)
        return False
    try:
        get_collaborator("notifier").send(template, recipient, **context)
        return True
    except Exception as e:
        current_app.logger.error("Notification %s to %s failed: %s", template, recipient, e)
        log_event("NOTIFICATION_FAILED", description=f"{template} -> {recipient}: {e}", level="ERROR")
        return False
