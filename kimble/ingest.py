# KimbleAI - turning files and web pages into plain text for the knowledge base.

import os
import re

import html2text
import requests
from bs4 import BeautifulSoup

SUPPORTED_EXTENSIONS = {".md", ".txt", ".html", ".htm"}

# Phrases that mark the start of footer / comment junk on saved pages.
CUTOFF_PHRASES = [
    "Join the page discussion",
    "Load more",
    "Accept Terms and Save",
    "Leave a comment",
    "Related posts",
]

# html2text converter settings
converter = html2text.HTML2Text()
converter.ignore_links = False
converter.ignore_images = True
converter.body_width = 0


def clean_markdown(markdown: str) -> str:
    for phrase in CUTOFF_PHRASES:
        if phrase in markdown:
            markdown = markdown[:markdown.index(phrase)].rstrip()
            break
    markdown = re.sub(r"\n{3,}", "\n\n", markdown)
    return markdown.strip()


def html_to_text(html: str) -> str:
    """Main content of an HTML page as markdown, with scripts, styles and nav stripped."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "header", "footer", "noscript"]):
        tag.decompose()

    main_content = soup.find("article") or soup.find("main") or soup.body or soup
    return clean_markdown(converter.handle(str(main_content)))


def load_file(path: str) -> str:
    """Read a .md / .txt / .html file as text ready for ingestion."""
    ext = os.path.splitext(path)[1].lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"unsupported file type: {ext or path}")
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        raw = fh.read()
    if ext in (".html", ".htm"):
        return html_to_text(raw)
    return clean_markdown(raw.replace("\r\n", "\n"))


def fetch_page(url: str, timeout: float = 15.0) -> str:
    """Download `url` and return its main content as text. Raises on HTTP errors."""
    headers = {"User-Agent": "Mozilla/5.0 (KimbleAI knowledge importer)"}
    response = requests.get(url, headers=headers, timeout=timeout)
    response.raise_for_status()
    return html_to_text(response.text)
