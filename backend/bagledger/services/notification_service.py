# Overview: Delivery of issuance one-time codes to clients.

from __future__ import annotations

from flask import current_app

from ..models import BagIssue
from ..time_utils import to_utc_z

NOTIFIER_EXTENSION_KEY = "bag_otp_notifier"


class LoggingOtpNotifier:
    """
    Default notifier: records the dispatch in the application log.

    Email/SMS delivery lives in the messaging backend; deployments register
    their own notifier with set_notifier(). The code itself is never logged.
    """

    def send_issue_otp(self, issue: BagIssue) -> None:
        current_app.logger.info(
            "Bag issue %s: one-time code sent to %s for %s bag(s), expires %s",
            issue.id,
            issue.client_email,
            issue.number_of_bags_issued,
            to_utc_z(issue.otp_expires_at),
        )


def set_notifier(app, notifier) -> None:
    app.extensions[NOTIFIER_EXTENSION_KEY] = notifier


def get_notifier():
    return current_app.extensions.get(NOTIFIER_EXTENSION_KEY) or LoggingOtpNotifier()


def dispatch_issue_otp(issue: BagIssue) -> bool:
    """
    Hand the code to the notifier after the issue is committed.

    A delivery failure does not undo the issue; it is logged and the caller
    can resend the code.
    """
    try:
        get_notifier().send_issue_otp(issue)
    except Exception:
        current_app.logger.exception("Failed to send one-time code for bag issue %s", issue.id)
        return False
    return True
