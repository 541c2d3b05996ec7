"""Verification mail over SMTP, a template relay, or the console in development."""

from __future__ import annotations

import smtplib
from email.mime.text import MIMEText
from typing import Optional

import requests
from flask import current_app

OFFLINE_NOTICE = 'Verification system offline. Please check connection.'

REQUIRED_SETTINGS = {
    'smtp': ('MAIL_SMTP', 'MAIL_PORT', 'MAIL_SENDER', 'MAIL_USERNAME', 'MAIL_PASSWORD'),
    'relay': ('MAIL_RELAY_URL', 'MAIL_RELAY_SERVICE_ID', 'MAIL_RELAY_TEMPLATE_ID', 'MAIL_RELAY_PUBLIC_KEY'),
}


def _transport(config) -> str:
    return (config.get('MAIL_TRANSPORT') or 'console').lower()


def init_mail_settings(app) -> None:
    transport = _transport(app.config)
    # The console transport never reaches an inbox, so it is never "ready".
    required = REQUIRED_SETTINGS.get(transport)
    ready = bool(required) and all(app.config.get(key) for key in required)
    app.config['MAIL_READY'] = ready
    if not ready:
        app.logger.warning('Mail transport %r not configured; verification codes are shown on screen', transport)


def _smtp_send(to_email: str, subject: str, body: str) -> bool:
    cfg = current_app.config
    msg = MIMEText(body, 'plain', 'utf-8')
    msg['Subject'] = subject
    msg['From'] = cfg.get('MAIL_SENDER')
    msg['To'] = to_email

    try:
        with smtplib.SMTP(cfg['MAIL_SMTP'], cfg['MAIL_PORT'], timeout=cfg.get('MAIL_TIMEOUT_SECONDS', 10)) as smtp:
            smtp.starttls()
            username: Optional[str] = cfg.get('MAIL_USERNAME')
            password: Optional[str] = cfg.get('MAIL_PASSWORD')
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
        return True
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.warning('SMTP send failed: %s', exc)
        return False


def _relay_send(to_name: str, to_email: str, code: str) -> bool:
    cfg = current_app.config
    payload = {
        'service_id': cfg['MAIL_RELAY_SERVICE_ID'],
        'template_id': cfg['MAIL_RELAY_TEMPLATE_ID'],
        'user_id': cfg['MAIL_RELAY_PUBLIC_KEY'],
        'template_params': {
            'to_name': to_name,
            'to_email': to_email,
            'verification_code': code,
        },
    }
    try:
        resp = requests.post(cfg['MAIL_RELAY_URL'], json=payload, timeout=cfg.get('MAIL_TIMEOUT_SECONDS', 10))
    except requests.RequestException as exc:
        current_app.logger.warning('Mail relay unreachable: %s', exc)
        return False
    if resp.status_code >= 400:
        current_app.logger.warning('Mail relay error %s: %s', resp.status_code, resp.text)
        return False
    return True


def send_mail(to_email: str, subject: str, body: str) -> bool:
    transport = _transport(current_app.config)
    if transport == 'smtp':
        return _smtp_send(to_email, subject, body)
    if transport == 'console':
        current_app.logger.info('[MAIL console] %s -> %s :: %s', to_email, subject, body)
        return True
    current_app.logger.error('MAIL_TRANSPORT %r cannot send plain mail', transport)
    return False


def send_otp_email(to_name: str, to_email: str, code: str) -> Optional[str]:
    """Dispatch a verification code.

    Returns a notice to show the user, or None when the mail went out.  Without
    mail credentials the code itself is shown, which is only fit for development.
    """
    cfg = current_app.config
    if not cfg.get('MAIL_READY'):
        current_app.logger.warning('Mail not configured; verification code for %s shown on screen', to_email)
        return f'Dev mode: your verification code is {code}. Email would go to {to_email}.'

    if _transport(cfg) == 'relay':
        sent = _relay_send(to_name, to_email, code)
    else:
        product = cfg.get('PRODUCT_NAME', 'Galliconnect')
        minutes = cfg.get('OTP_EXP_MINUTES', 10)
        body = f'Hi {to_name}, your {product} verification code is {code}. It expires in {minutes} minutes.'
        sent = send_mail(to_email, f'{product} verification code', body)
    return None if sent else OFFLINE_NOTICE
