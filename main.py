"""
CRM Sync — Entry Point.

Single entry point: `python main.py` starts a real-time sync session.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from crmsync.app import main

if __name__ == "__main__":
    main()
