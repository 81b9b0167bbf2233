"""Notification delivery (e-mail)."""

from .mailer import Mailer, SmtpMailer

__all__ = ["Mailer", "SmtpMailer"]
