"""Mail helper supporting the Resend HTTP API with an SMTP fallback."""

from __future__ import annotations

import smtplib
from email.mime.text import MIMEText

import requests
from flask import current_app


def mail_transport() -> str:
    cfg = current_app.config
    if cfg.get('RESEND_API_KEY'):
        return 'resend'
    if cfg.get('SMTP_USER'):
        return 'smtp'
    return 'none'


def send_mail(to: str, subject: str, body: str) -> dict:
    """Send an HTML email using whichever transport is configured.

    Never raises: callers treat mail as a side effect and only log the
    returned ``{"success": ..., "reason": ...}`` dict.
    """

    transport = mail_transport()
    if not to:
        return {'success': False, 'reason': 'Missing recipient'}
    if transport == 'resend':
        return _send_via_resend(to, subject, body)
    if transport == 'smtp':
        return _send_via_smtp(to, subject, body)
    current_app.logger.info('No email provider configured, skipping: %s', subject)
    return {'success': False, 'reason': 'No email provider configured'}


def _send_via_resend(to: str, subject: str, body: str) -> dict:
    cfg = current_app.config
    try:
        resp = requests.post(
            cfg.get('RESEND_API_URL', 'https://api.resend.com/emails'),
            json={'from': cfg['SMTP_FROM'], 'to': [to], 'subject': subject, 'html': body},
            headers={'Authorization': f"Bearer {cfg['RESEND_API_KEY']}"},
            timeout=10,
        )
    except requests.RequestException as exc:
        current_app.logger.exception('Resend send failed: %s', subject)
        return {'success': False, 'reason': str(exc)}
    if resp.status_code >= 400:
        current_app.logger.error('Resend API error %s for %s: %s', resp.status_code, subject, resp.text)
        return {'success': False, 'reason': resp.text or f'HTTP {resp.status_code}'}
    current_app.logger.info('Email sent via Resend: %s to %s', subject, to)
    return {'success': True, 'messageId': resp.json().get('id')}


def _send_via_smtp(to: str, subject: str, body: str) -> dict:
    cfg = current_app.config
    sender = cfg['SMTP_FROM']
    msg = MIMEText(body, 'html')
    msg['Subject'] = subject
    msg['From'] = sender
    msg['To'] = to

    host = cfg.get('SMTP_HOST', 'smtp.gmail.com')
    port = int(cfg.get('SMTP_PORT', 587))
    try:
        if port == 465:
            server = smtplib.SMTP_SSL(host, port, timeout=15)
        else:
            server = smtplib.SMTP(host, port, timeout=15)
        with server:
            if port != 465:
                server.starttls()
            server.login(cfg['SMTP_USER'], cfg.get('SMTP_PASS', ''))
            server.sendmail(sender, [to], msg.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.exception('SMTP send failed: %s', subject)
        return {'success': False, 'reason': str(exc)}
    current_app.logger.info('Email sent via SMTP: %s to %s', subject, to)
    return {'success': True}
