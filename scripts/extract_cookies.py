"""Extract Gmarket cookies via patchright for a warmed-up browser profile.

Usage:
    .venv/bin/python scripts/extract_cookies.py [output_path]

Opens a Chromium window with the worker's fingerprint. Browse or log in to
Gmarket manually, then press Enter in the terminal. Cookies are saved to
config/gmarket_cookies.json (point ``browser.cookies_path`` at it).
"""

import json
import sys
from pathlib import Path

from patchright.sync_api import sync_playwright

from pricehound.core.config import BrowserConfig, MarketplaceConfig

OUTPUT_PATH = Path("config/gmarket_cookies.json")


def main() -> None:
    output = Path(sys.argv[1]) if len(sys.argv) > 1 else OUTPUT_PATH
    browser_cfg = BrowserConfig(headless=False)

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=False)
        context = browser.new_context(
            viewport={"width": browser_cfg.viewport_width, "height": browser_cfg.viewport_height},
            user_agent=browser_cfg.user_agent,
            locale=browser_cfg.locale,
            timezone_id=browser_cfg.timezone_id,
        )
        page = context.new_page()
        page.goto(MarketplaceConfig().base_url)

        input("\n>>> Browse or log in to Gmarket, then press Enter here to save cookies...")

        cookies = context.cookies()
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(cookies, indent=2, ensure_ascii=False))
        print(f"Saved {len(cookies)} cookies to {output}")

        browser.close()


if __name__ == "__main__":
    main()
