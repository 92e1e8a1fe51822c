#!/usr/bin/env python3
"""
Priority Transfers Email Configuration Check
=============================================
Prints the effective email settings (secrets redacted), verifies the
provider credentials and optionally sends the standard test email.

Usage:
    python scripts/check_email_config.py                     # exits 0 if the provider accepts the credentials
    python scripts/check_email_config.py --send you@host.tld # also sends the test email
"""

import os
import sys

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from app.notifications import messages
from app.notifications.config import get_all_config
from app.notifications.delivery import EmailDelivery


def _send_target(argv):
    if "--send" not in argv:
        return None
    idx = argv.index("--send")
    return argv[idx + 1] if idx + 1 < len(argv) else ""


def main(argv=None, channel=None):
    argv = sys.argv[1:] if argv is None else argv
    channel = channel or EmailDelivery()

    print("Email settings:")
    for key, value in get_all_config("email").items():
        print(f"  {key:24} {value}")
    print()

    if not channel.is_configured():
        print("EMAIL CHECK FAILED: provider credentials are not configured.")
        return 1

    if not channel.test_connection():
        print("EMAIL CHECK FAILED: provider rejected the connection or credentials.")
        return 1

    target = _send_target(argv)
    if target == "":
        print("--send needs a recipient address")
        return 2
    if target:
        result = channel.send(target, messages.TEST_EMAIL_SUBJECT, messages.TEST_EMAIL_BODY)
        if not result.success:
            print(f"EMAIL CHECK FAILED: test email to {target} not sent: {result.error}")
            return 1
        print(f"Test email sent to {target}")

    print("EMAIL CHECK PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
