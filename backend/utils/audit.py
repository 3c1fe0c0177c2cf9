import os
from flask import current_app, has_app_context, has_request_context, request
from utils import clock

DEFAULT_AUDIT_LOG_FILE = os.path.join("logs", "audit.log")


def _audit_log_file():
    if has_app_context():
        return current_app.config.get("AUDIT_LOG_FILE", DEFAULT_AUDIT_LOG_FILE)
    return DEFAULT_AUDIT_LOG_FILE


def _client_ip():
    return request.remote_addr if has_request_context() else None


def log_event(event_type, user_id=None, ip=None, description=None, level="INFO", print_to_console=False):
    """
    Logs a security or audit-related event to a file.

    Parameters:
        event_type (str): The type of the event (e.g., PICKUP_TOKEN_REDEEMED).
        user_id (int|None): The acting staff user ID, if available.
        ip (str|None): IP address, if available.
        description (str|None): Additional context.
        level (str): Log level (e.g., INFO, WARNING, ERROR).
        print_to_console (bool): Optionally print to stdout (for debugging/dev).
    """
    log_file = _audit_log_file()
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)

    timestamp = clock.utcnow().strftime('%Y-%m-%d %H:%M:%S')
    log_entry = (
        f"[{timestamp}] [{level.upper()}] EVENT: {event_type} | "
        f"USER: {user_id or 'N/A'} | IP: {ip or 'N/A'} | DESC: {description or 'N/A'}\n"
    )

    with open(log_file, "a") as fh:
        fh.write(log_entry)

    if print_to_console:
        print(log_entry.strip())


def track(event_type, actor_id=None, description=None, level="INFO"):
    """
    Records a staff mutation in both audit trails: the audit log file and an
    AuditLog row added to the current session (committed with the mutation).
    """
    from camphq.extensions import db
    from camphq.models import AuditLog

    ip = _client_ip()
    log_event(event_type, user_id=actor_id, ip=ip, description=description, level=level)
    action = f"{event_type}: {description}" if description else event_type
    db.session.add(AuditLog(user_id=actor_id, action=action[:255], ip_address=ip, timestamp=clock.utcnow()))
