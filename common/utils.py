# -*- coding: utf-8 -*-
"""
================================================================================
Common Utility Functions
================================================================================
Purpose:
----------------
Shared helpers used by the entry points and the notification transports:

- `get_secret(key_name)`: Reads a credential, first from the environment and
  then from the `secrets.txt` file in the project root (`KEY=VALUE` lines).
- `get_mail_credentials()`: SMTP user, password, host and port in one call.
- `get_email_api_credentials()`: URL and key for the HTTP email provider.
- `setup_logging(name)`: Logs to a dated file under `logs/` and to stdout.
----------------
"""

# =====================================================================================
# --- Imports and Configuration ---
# =====================================================================================
import os
import sys
import logging
from datetime import datetime

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
SECRETS_FILE = os.path.join(PROJECT_ROOT, 'secrets.txt')
LOG_DIR = os.path.join(PROJECT_ROOT, 'logs')
LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

DEFAULT_SMTP_HOST = 'smtp.gmail.com'
DEFAULT_SMTP_PORT = 587


# =====================================================================================
# --- Secrets ---
# =====================================================================================

def get_secret(key_name, secrets_file=None):
    """
    Reads a specific key from the environment or the `secrets.txt` file.

    Args:
        key_name (str): The name of the key to retrieve (e.g., "MAIL_USER").
        secrets_file (str, optional): Overrides the default secrets file path.

    Returns:
        str or None: The secret value if found, otherwise None.
    """
    value = os.getenv(key_name)
    if value:
        return value

    path = secrets_file or SECRETS_FILE
    try:
        with open(path, 'r') as f:
            for line in f:
                if line.startswith(key_name + '='):
                    return line.strip().split('=', 1)[1]
        logging.getLogger(__name__).debug(f"Key '{key_name}' not found in {path}")
        return None
    except FileNotFoundError:
        logging.getLogger(__name__).debug(f"{path} not found.")
        return None


def get_mail_credentials(secrets_file=None):
    """
    Retrieves everything needed to send mail over SMTP.

    Returns:
        tuple: (user, password, host, port) if user and password are set,
               otherwise (None, None, None, None).
    """
    user = get_secret('MAIL_USER', secrets_file)
    password = get_secret('MAIL_PASS', secrets_file)
    host = get_secret('SMTP_HOST', secrets_file) or DEFAULT_SMTP_HOST
    port = int(get_secret('SMTP_PORT', secrets_file) or DEFAULT_SMTP_PORT)

    if all([user, password]):
        return user, password, host, port
    logging.getLogger(__name__).error("Could not find MAIL_USER and MAIL_PASS in the environment or secrets.txt")
    return None, None, None, None


def get_email_api_credentials(secrets_file=None):
    """Returns (api_url, api_key, sender) for the HTTP email provider; missing values are None."""
    return (
        get_secret('EMAIL_API_URL', secrets_file),
        get_secret('EMAIL_API_KEY', secrets_file),
        get_secret('EMAIL_FROM', secrets_file) or 'no-reply@example.com',
    )


# =====================================================================================
# --- Logging ---
# =====================================================================================

def setup_logging(name, log_dir=None, level=logging.INFO):
    """
    Sets up a dated log file for a workflow plus console output.

    Args:
        name (str): Prefix of the log file, e.g. 'stock_monitor'.
        log_dir (str, optional): Defaults to `logs/` in the project root.

    Returns:
        logging.Logger: The root logger.
    """
    log_dir = log_dir or LOG_DIR
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, datetime.now().strftime(f"{name}_%Y-%m-%d.log"))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler(sys.stdout)
        ]
    )
    return logging.getLogger()
