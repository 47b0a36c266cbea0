#!/usr/bin/env python3
"""Issue a session token for local testing of the HTTP API."""

import argparse
import logging

from taskmate.core.identity import issue_session_token


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("user_id")
    parser.add_argument("email")
    args = parser.parse_args()
    logger.info(issue_session_token(user_id=args.user_id, email=args.email))
