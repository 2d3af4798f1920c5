"""Utilities for loading the public site's static pages from disk."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List

SITE_CONTENT_DIR = Path(__file__).resolve().parent / "content"
SITE_INDEX_PATH = SITE_CONTENT_DIR / "site_index.json"
SITE_PAGES_DIR = SITE_CONTENT_DIR / "pages"


def _safe_load_json(path: Path) -> Any:
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, ValueError) as exc:
        print(f"[site_content] failed to load '{path}': {exc}")
        return None


def _sorted_pages(pages: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    def _sort_key(page: Dict[str, Any]):
        try:
            order_val = int(page.get("order"))
        except (TypeError, ValueError):
            order_val = float("inf")
        return (order_val, (page.get("title") or "").lower())

    return sorted([dict(p) for p in pages if isinstance(p, dict) and p.get("slug")], key=_sort_key)


@lru_cache(maxsize=1)
def load_site_content() -> Dict[str, Any]:
    """Site index with every page body attached, keyed by slug under 'pages'."""

    index_data = _safe_load_json(SITE_INDEX_PATH)
    if not isinstance(index_data, dict):
        return {"pages": {}, "nav": []}

    pages_meta = index_data.pop("pages", []) or []
    pages: Dict[str, Dict[str, Any]] = {}
    nav: List[Dict[str, str]] = []

    for meta in _sorted_pages(pages_meta):
        file_name = meta.get("file") or f"{meta['slug']}.json"
        body = _safe_load_json(SITE_PAGES_DIR / str(file_name))
        if not isinstance(body, dict):
            continue
        body.setdefault("title", meta.get("title") or meta["slug"].replace("-", " ").title())
        body["slug"] = meta["slug"]
        body.setdefault("sections", [])
        pages[meta["slug"]] = body
        nav.append({"slug": meta["slug"], "title": body["title"]})

    index_data["pages"] = pages
    index_data["nav"] = nav
    return index_data


__all__ = ["load_site_content"]
