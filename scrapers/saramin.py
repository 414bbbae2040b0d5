#!/usr/bin/env python3
"""
Saramin Company Scraper

Pulls company codes (csn) from the Saramin salary listing and company
details from the per-company info page.
https://www.saramin.co.kr/zf_user/salaries/total-salary/list

Fetch methods raise on network failure; the harvest job decides whether a
failure is retried, skipped or fatal. Field extraction is best effort: a
missing field becomes the placeholder instead of failing the page.

Usage:
    python -m scrapers.saramin --page 1
    python -m scrapers.saramin --csn 1234567890
"""

import argparse
import re
import sys
import time
from pathlib import Path
from typing import Optional

import requests
from bs4 import BeautifulSoup, Tag
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.logging import get_logger
from config.settings import settings
from processing.models import PLACEHOLDER, CompanyRecord

logger = get_logger("scrapers.saramin")


# Fixed query string of the salary listing, ordered by registration date
LISTING_PARAMS = {
    "order": "reg_dt",
    "industry_cd": "",
    "company_cd": "",
    "rec_status": "",
    "group_cd": "0",
    "search_company_nm_org": "",
    "search_company_nm": "",
    "min_salary": "1000",
    "max_salary": "10000",
    "request_modify_company_nm": "",
}

CSN_PATTERN = re.compile(r"csn=([^&]+)")

# Parenthesised text (with trailing space) and the "주식회사" corporate marker
COMPANY_NOISE_PATTERN = re.compile(r"\([^)]*\)\s*|주식회사\s*")

# Labels of the detail page's company_details_group entries
LABEL_KEY_EXECUTIVE = "대표자명"
LABEL_INDUSTRY = "업종"
LABEL_ADDRESS = "주소"
LABEL_HOMEPAGE = "홈페이지"
LABEL_SALES = "매출액"


def extract_csn(href: Optional[str]) -> Optional[str]:
    """Pull the company code out of a listing link, or None."""
    if not href:
        return None
    match = CSN_PATTERN.search(href)
    return match.group(1) if match else None


def clean_company_name(title: str) -> str:
    """Strip parenthesised text and the corporate marker from a company title."""
    return COMPANY_NOISE_PATTERN.sub("", title).strip()


def parse_company_codes(html: str) -> list[str]:
    """
    Parse company codes from a listing page, in page order.

    Anchors whose href has no csn are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    codes = []
    for link in soup.select("a.link_tit"):
        csn = extract_csn(link.get("href"))
        if csn is not None:
            codes.append(csn)
    return codes


def _text(node: Optional[Tag]) -> Optional[str]:
    if node is None:
        return None
    return node.get_text(" ", strip=True)


def _detail_fields(soup: BeautifulSoup) -> dict[str, str]:
    """Collect label -> value pairs from the company_details_group blocks."""
    fields = {}
    for group in soup.select("div.company_details_group"):
        label = _text(group.select_one("dt.tit"))
        desc = group.select_one("dd.desc")
        if not label or desc is None:
            continue
        if label == LABEL_ADDRESS:
            value = _text(desc.select_one("p.ellipsis"))
        else:
            value = _text(desc)
        if value is not None:
            fields[label] = value
    return fields


def _company_name(soup: BeautifulSoup) -> str:
    h1 = soup.select_one("h1.tit_company")
    if h1 is None:
        logger.warning("h1.tit_company element not found")
        return PLACEHOLDER
    return clean_company_name(h1.get("title") or "")


def _sales(soup: BeautifulSoup) -> str:
    summary = soup.select_one("ul.company_summary")
    if summary is None:
        return PLACEHOLDER
    for item in summary.select("li.company_summary_item"):
        if _text(item.select_one("p.company_summary_desc")) == LABEL_SALES:
            value = _text(item.select_one("strong.company_summary_tit"))
            if value is not None:
                return value
    return PLACEHOLDER


def _logo_url(soup: BeautifulSoup) -> str:
    img = soup.select_one("div.box_logo img")
    if img is None or not img.get("src"):
        return PLACEHOLDER
    return img["src"]


def parse_company_detail(html: str, csn: Optional[str] = None) -> CompanyRecord:
    """
    Parse a company info page into an unsaved CompanyRecord.

    Each field is looked up independently; absent fields get the placeholder.
    """
    soup = BeautifulSoup(html, "html.parser")
    fields = _detail_fields(soup)

    return CompanyRecord.of(
        company=_company_name(soup),
        key_executive=fields.get(LABEL_KEY_EXECUTIVE, PLACEHOLDER),
        industry=fields.get(LABEL_INDUSTRY, PLACEHOLDER),
        address=fields.get(LABEL_ADDRESS, PLACEHOLDER),
        homepage=fields.get(LABEL_HOMEPAGE, PLACEHOLDER),
        sales=_sales(soup),
        logo_url=_logo_url(soup),
        source_code=csn,
    )


class SaraminScraper:
    """
    HTTP client for the Saramin listing and company info pages.

    Serves as both the listing source and the detail source of the
    harvest job.
    """

    USER_AGENT = "Mozilla/5.0 (compatible; CompanyHarvest/1.0)"

    def __init__(
        self,
        listing_url: str = settings.SARAMIN_LISTING_URL,
        detail_url: str = settings.SARAMIN_DETAIL_URL,
        timeout: float = settings.HTTP_TIMEOUT,
        min_request_interval: float = settings.MIN_REQUEST_INTERVAL,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the scraper.

        Args:
            listing_url: Salary listing endpoint
            detail_url: Company info endpoint
            timeout: Per-request timeout in seconds
            min_request_interval: Minimum seconds between requests
            session: Optional preconfigured session (tests)
        """
        self.listing_url = listing_url
        self.detail_url = detail_url
        self.timeout = timeout
        self.min_request_interval = min_request_interval
        self.last_request_time = 0.0
        self.requests_made = 0

        if session is None:
            # Setup session with retry logic for throttling / server errors
            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session

    def _rate_limit(self):
        """Enforce rate limiting."""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            time.sleep(self.min_request_interval - elapsed)
        self.last_request_time = time.time()

    def _get(self, url: str, params: dict) -> str:
        """GET a page and return its body; raises requests exceptions."""
        self._rate_limit()
        self.requests_made += 1

        response = self.session.get(
            url,
            params=params,
            headers={"User-Agent": self.USER_AGENT},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.text

    def fetch_company_codes(self, page: int) -> list[str]:
        """Fetch one listing page and return its company codes."""
        try:
            html = self._get(self.listing_url, {"page": page, **LISTING_PARAMS})
        except requests.exceptions.RequestException as e:
            logger.error(f"Error while crawling company codes from page {page}: {e}")
            raise

        codes = parse_company_codes(html)
        logger.info(f"Found {len(codes)} company codes on page {page}")
        return codes

    def fetch_company(self, csn: str) -> CompanyRecord:
        """Fetch and parse one company info page."""
        html = self._get(self.detail_url, {"csn": csn})
        record = parse_company_detail(html, csn=csn)
        logger.info(f"Processed company: {record.company}")
        return record


def main():
    """CLI entry point for inspecting a single page."""
    parser = argparse.ArgumentParser(
        description="Fetch one Saramin listing page or company page"
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--page",
        type=int,
        help="Listing page number to list company codes from",
    )
    group.add_argument(
        "--csn",
        type=str,
        help="Company code to fetch details for",
    )

    args = parser.parse_args()
    scraper = SaraminScraper()

    try:
        if args.page is not None:
            for code in scraper.fetch_company_codes(args.page):
                print(code)
        else:
            record = scraper.fetch_company(args.csn)
            for name in CompanyRecord.MUTABLE_FIELDS:
                print(f"{name:<15} {getattr(record, name)}")
    except requests.exceptions.RequestException as e:
        logger.error(f"Request failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
