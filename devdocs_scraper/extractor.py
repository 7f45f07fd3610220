"""Page extraction: DevDocs HTML -> ContentRecord.

Extraction never fails a work item. Markup without a recognisable content
region produces an empty body, which still gets a fingerprint and is stored.
"""

import logging
import re
from typing import List, Union

from bs4 import BeautifulSoup, Tag

from .dedup import fingerprint
from .models import CodeSnippet, ContentRecord, CrawlTarget, WorkItem

logger = logging.getLogger("devdocs_scraper")

CONTENT_SELECTORS = ("._content", "main", "article")
BOILERPLATE_TAGS = ("nav", "header", "footer", "script", "style", "noscript", "aside")

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"\W+")


class ContentExtractor:
    def __init__(self, keyword_limit: int = 10, min_keyword_length: int = 4):
        self.keyword_limit = keyword_limit
        self.min_keyword_length = min_keyword_length

    def extract(self, markup: Union[bytes, str], item: WorkItem, target: CrawlTarget,
                url: str) -> ContentRecord:
        try:
            region = self._content_region(markup)
        except Exception as e:  # bs4 tolerates almost anything
            logger.warning(f"[{target.slug}] Unparseable markup for {url}: {e}")
            region = None

        if region is None:
            logger.debug(f"[{target.slug}] No content region in {url}")
            content, snippets, markdown = "", [], ""
        else:
            content = normalize_text(region.get_text(" "))
            snippets = self._code_snippets(region)
            markdown = self._to_markdown(region)

        return ContentRecord(
            url=url,
            title=item.name,
            content=content,
            markdown=markdown,
            code_snippets=tuple(snippets),
            keywords=tuple(extract_keywords(content, self.keyword_limit, self.min_keyword_length)),
            topics=tuple(derive_topics(target, item)),
            word_count=len(content.split()),
            character_count=len(content),
            content_hash=fingerprint(content),
        )

    @staticmethod
    def _content_region(markup: Union[bytes, str]):
        soup = BeautifulSoup(markup, "html.parser")
        for selector in CONTENT_SELECTORS:
            region = soup.select_one(selector)
            if region is not None:
                break
        else:
            return None

        for tag in region.find_all(BOILERPLATE_TAGS):
            tag.decompose()
        return region

    @staticmethod
    def _code_snippets(region: Tag) -> List[CodeSnippet]:
        snippets = []
        for pre in region.find_all("pre"):
            code = pre.get_text().strip()
            if code:
                snippets.append(CodeSnippet(language=code_language(pre), code=code))
        return snippets

    @staticmethod
    def _to_markdown(region: Tag) -> str:
        parts = []
        for el in region.find_all(["h1", "h2", "h3", "h4", "h5", "h6", "p", "pre"]):
            if el.name == "pre":
                code = el.get_text().strip()
                if code:
                    lang = code_language(el)
                    parts.append(f"```{'' if lang == 'plaintext' else lang}\n{code}\n```")
            elif el.name == "p":
                if el.find_parent("pre") is None:
                    text = normalize_text(el.get_text(" "))
                    if text:
                        parts.append(text)
            else:
                parts.append("#" * int(el.name[1]) + " " + normalize_text(el.get_text(" ")))
        return "\n\n".join(parts)


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def code_language(pre: Tag) -> str:
    """Best-effort language tag from the markup surrounding a code block."""
    code = pre.find("code")
    if code is not None:
        lang = _language_class(code)
        if lang:
            return lang
    if pre.get("data-language"):
        return pre["data-language"].strip().lower()
    return _language_class(pre) or "plaintext"


def _language_class(el: Tag) -> str:
    for cls in el.get("class") or ():
        if cls.startswith("language-") and len(cls) > len("language-"):
            return cls[len("language-"):].lower()
    return ""


def extract_keywords(text: str, limit: int = 10, min_length: int = 4) -> List[str]:
    """Most frequent tokens of at least min_length chars; ties keep first-seen order."""
    counts = {}
    for word in _NON_WORD.split(text.lower()):
        if len(word) >= min_length:
            counts[word] = counts.get(word, 0) + 1
    # stable sort: equal counts keep first-seen order
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


def derive_topics(target: CrawlTarget, item: WorkItem) -> List[str]:
    seeds = [target.slug, item.type, *item.name.split("/")[:2]]
    topics = []
    for topic in (s.strip() for s in seeds):
        if topic and topic not in topics:
            topics.append(topic)
    return topics
