#!/usr/bin/env python3
"""Send webmentions for one post from its rendered HTML, outside of Ghost webhooks."""

import argparse
import logging
from pathlib import Path
from typing import Optional

from config import load_config
from indieweb.link_tracking import resolve_notify_links
from indieweb.webmention import HttpDiscoveryService, WebmentionSender
from sender.sending_service import MentionSendingService
from sender.services import InlineJobService


class _AlwaysEnabled:
    def is_enabled(self) -> bool:
        return True


def _read(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return Path(path).read_text(encoding="utf-8")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--source", required=True, help="Public URL of the post")
    parser.add_argument("--html-file", required=True, help="File with the current post HTML")
    parser.add_argument(
        "--previous-html-file",
        help="File with the previously published HTML, to also notify removed links",
    )
    parser.add_argument("--config", help="Path to config.yml")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the links that would be notified without discovering or sending",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        html = _read(args.html_file)
        previous_html = _read(args.previous_html_file)
    except OSError as e:
        print(f"Could not read HTML: {e}")
        return 1

    if args.dry_run:
        links = resolve_notify_links(html, previous_html, args.source)
        for link in links:
            print(link)
        print(f"Dry run complete. Links: {len(links)}")
        return 0

    config = load_config(args.config)
    service = MentionSendingService(
        discovery_service=HttpDiscoveryService.from_config(config),
        job_service=InlineJobService(),
        sender=WebmentionSender.from_config(config),
        feature_flag=_AlwaysEnabled(),
    )

    futures = service.send_all(args.source, html, previous_html)
    sent = sum(1 for future in futures if future.result())
    print(f"Sent: {sent}, Failed: {len(futures) - sent}")
    return 0 if sent == len(futures) else 2


if __name__ == "__main__":
    raise SystemExit(main())
