import threading

import pytest

from wiki_reliability import NetworkFailure


class FakeWikiClient:
    """In-memory stand-in for WikiClient with canned MediaWiki payloads."""

    def __init__(
        self,
        pages=None,
        redirects=None,
        searches=None,
        articles=None,
        revisions=None,
        failing_searches=(),
    ):
        # title -> {"disambiguation": bool, "protection": [...]}
        self.pages = pages or {}
        self.redirects = redirects or {}
        # (SearchMode, query) -> [titles]
        self.searches = searches or {}
        # title -> {"html": ..., "wikitext": ..., "templates": [...]}
        self.articles = articles or {}
        # title -> [revision dicts]
        self.revision_lists = revisions or {}
        self.failing_searches = set(failing_searches)
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def query_titles(self, titles, lang):
        self._record("query_titles", tuple(titles), lang)
        pages = {}
        redirects = []
        for i, t in enumerate(titles):
            target = self.redirects.get(t, t)
            if target != t:
                redirects.append({"from": t, "to": target})
            info = self.pages.get(target)
            if info is None:
                pages[str(-1 - i)] = {"ns": 0, "title": target, "missing": ""}
                continue
            page = {"ns": 0, "title": target, "pageid": 1000 + i}
            if info.get("disambiguation"):
                page["pageprops"] = {"disambiguation": ""}
            pages[str(1000 + i)] = page
        query = {"pages": pages}
        if redirects:
            query["redirects"] = redirects
        return {"batchcomplete": "", "query": query}

    def search(self, query, lang, mode, limit):
        self._record("search", mode, query, lang, limit)
        if mode in self.failing_searches:
            raise NetworkFailure("https://fake/w/api.php", "HTTP 503", status_code=503)
        return list(self.searches.get((mode, query), []))[:limit]

    def parse_page(self, title, lang, props="text|wikitext|templates"):
        self._record("parse_page", title, lang, props)
        article = self.articles.get(title)
        if article is None:
            raise NetworkFailure("https://fake/w/api.php", "API error missingtitle: The page you specified doesn't exist.")
        return {
            "parse": {
                "title": title,
                "text": {"*": article.get("html", "")},
                "wikitext": {"*": article.get("wikitext", "")},
                "templates": [{"ns": 10, "exists": "", "*": name} for name in article.get("templates", [])],
            }
        }

    def revisions(self, title, lang, limit=200):
        self._record("revisions", title, lang, limit)
        page = {"ns": 0, "title": title, "pageid": 1}
        page["revisions"] = list(self.revision_lists.get(title, []))[:limit]
        page["protection"] = list((self.pages.get(title) or {}).get("protection", []))
        return {"batchcomplete": "", "query": {"pages": {"1": page}}}

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def make_client():
    return FakeWikiClient
