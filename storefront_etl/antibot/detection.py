"""Block-page detection for fetched storefront pages."""
from __future__ import annotations

import re
from typing import Optional

# Captcha redirects and "sorry" interstitials
BLOCK_URL_PATTERN = re.compile(r"/errors/validateCaptcha|captcha|/sorry", re.IGNORECASE)

# Phrases that appear on robot-check pages only
BLOCK_CONTENT_PATTERN = re.compile(
    r"not a robot|enter the characters|verify you are human|unusual traffic",
    re.IGNORECASE,
)


def detect_block(url: Optional[str], content: Optional[str]) -> Optional[str]:
    """Return a short reason when the page looks like a bot block, else None."""
    if url and BLOCK_URL_PATTERN.search(url):
        return "captcha/block URL"
    if content:
        match = BLOCK_CONTENT_PATTERN.search(content)
        if match:
            return f"robot check in content ({match.group(0).lower()})"
    return None
