"""Log redaction: credentials and recipient phone numbers"""

import logging

from .core.logger import SensitiveDataFilter, mask_phone, redact


def test_mask_phone():
    assert mask_phone("+15557654321") == "***4321"
    assert mask_phone("") == ""
    assert mask_phone(None) == ""


def test_redacts_phone_numbers():
    assert redact("STOP from +15557654321 on the-tipsy-owl") == "STOP from ***4321 on the-tipsy-owl"


def test_redacts_credentials():
    assert redact("calling with api_key=KEY0123") == "calling with api_key=***REDACTED***"
    assert redact("password: hunter2") == "password: ***REDACTED***"


def test_filter_rewrites_record():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "token=abc to +15551234567", None, None)
    assert SensitiveDataFilter().filter(record) is True
    assert record.msg == "token=***REDACTED*** to ***4567"
