"""CLI logging setup: plain %(message)s output with secret redaction."""

import logging
import sys

from envdock.redact import SecretRedactingFilter


def setup_cli_logging(verbose=False):
    """Configure the root logger for CLI commands.

    Progress notifications and command logs go to stdout as bare messages.
    With ``verbose`` the level drops to DEBUG so retry attempts and tool
    invocations become visible.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(SecretRedactingFilter())
    root.addHandler(handler)
    root.addFilter(SecretRedactingFilter())
