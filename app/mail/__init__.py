"""Outbound mail: message template, reply handling and SMTP delivery."""
