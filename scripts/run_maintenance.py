#!/usr/bin/env python3
"""Purge expired invitations and old dismissed notifications."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from caelex.config import SessionLocal, settings  # noqa: E402
from caelex.core.logging import configure_logging  # noqa: E402
from caelex.services.notifications import delete_old_notifications  # noqa: E402
from caelex.services.organizations import cleanup_expired_invitations  # noqa: E402


def main() -> None:
    configure_logging(settings.log_level)
    with SessionLocal() as session:
        invitations = cleanup_expired_invitations(session)
        notifications = delete_old_notifications(session)
        session.commit()
    print(f"Removed {invitations} expired invitations and {notifications} old notifications.")


if __name__ == "__main__":
    main()
