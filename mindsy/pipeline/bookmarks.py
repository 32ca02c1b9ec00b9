"""Heading anchors, table of contents extraction and PDF outline metadata."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from bs4 import BeautifulSoup, Tag

from mindsy.pipeline.language import LANGUAGE_TERMS, normalize_heading

# h2 is the top of the outline; the document title (h1) never participates.
HEADING_LEVELS: dict[str, int] = {"h2": 1, "h3": 2, "h4": 3}
FALLBACK_SLUG = "section"

_TOC_HEADINGS = frozenset(normalize_heading(terms.table_of_contents) for terms in LANGUAGE_TERMS.values())


@dataclass
class BookmarkNode:
  """One entry of the PDF outline."""

  label: str
  level: int
  anchor_id: str
  children: list[BookmarkNode] = field(default_factory=list)


BookmarkTree = list[BookmarkNode]


def slugify(text: str) -> str:
  """Fold `text` to lowercase ASCII and collapse every run of other characters into one hyphen."""
  folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
  slug = re.sub(r"[^a-z0-9]+", "-", folded.lower()).strip("-")
  return slug or FALLBACK_SLUG


def build_bookmark_tree(entries: Iterable[tuple[str, int, str]]) -> BookmarkTree:
  """Nest `(label, level, anchor_id)` entries in document order.

  A node becomes the child of the closest preceding node with a lower level; a deeper
  heading without such a parent starts a new root.
  """
  roots: BookmarkTree = []
  stack: list[BookmarkNode] = []
  for label, level, anchor_id in entries:
    node = BookmarkNode(label=label, level=level, anchor_id=anchor_id)
    while stack and stack[-1].level >= level:
      stack.pop()
    if stack:
      stack[-1].children.append(node)
    else:
      roots.append(node)
    stack.append(node)
  return roots


def iter_bookmarks(tree: Iterable[BookmarkNode]) -> Iterator[BookmarkNode]:
  """Yield nodes in document (pre-order) order."""
  for node in tree:
    yield node
    yield from iter_bookmarks(node.children)


def heading_label(tag: Tag) -> str:
  return re.sub(r"\s+", " ", tag.get_text(" ", strip=True)).strip()


def _is_toc_heading(tag: Tag) -> bool:
  text = re.sub(r"^[\W_]+", "", heading_label(tag))
  return normalize_heading(text) in _TOC_HEADINGS


def _participating_headings(soup: BeautifulSoup) -> list[Tag]:
  """Return the h2-h4 headings from the TOC heading onwards, or all of them without a TOC."""
  headings = [tag for tag in soup.find_all(list(HEADING_LEVELS)) if isinstance(tag, Tag)]
  for index, tag in enumerate(headings):
    if _is_toc_heading(tag):
      return headings[index:]
  return headings


def _assign_anchors(soup: BeautifulSoup, *, apply: bool) -> BookmarkTree:
  headings = _participating_headings(soup)
  # Ids already present anywhere in the document are reserved, including those on headings.
  reserved = {str(tag["id"]) for tag in soup.find_all(id=True) if isinstance(tag, Tag)}
  used: set[str] = set()
  entries: list[tuple[str, int, str]] = []
  for tag in headings:
    existing = tag.get("id")
    if existing and str(existing) not in used:
      anchor_id = str(existing)
    else:
      anchor_id = _unique_slug(slugify(heading_label(tag)), reserved | used)
      if apply:
        tag["id"] = anchor_id
    used.add(anchor_id)
    entries.append((heading_label(tag), HEADING_LEVELS[tag.name], anchor_id))
  return build_bookmark_tree(entries)


def _unique_slug(base: str, taken: set[str]) -> str:
  if base not in taken:
    return base
  suffix = 2
  while f"{base}-{suffix}" in taken:
    suffix += 1
  return f"{base}-{suffix}"


def extract_toc(html: str) -> BookmarkTree:
  """Return the outline `add_bookmark_anchors` would produce, without changing the document."""
  return _assign_anchors(BeautifulSoup(html, "html.parser"), apply=False)


def toc_entries(html: str) -> list[str]:
  """Return the item labels of the table of contents list, in order."""
  soup = BeautifulSoup(html, "html.parser")
  toc_list = _toc_list(soup)
  if toc_list is None:
    return []
  return [_item_label(item) for item in toc_list.find_all("li") if _item_label(item)]


def _toc_list(soup: BeautifulSoup) -> Tag | None:
  for tag in soup.find_all(list(HEADING_LEVELS)):
    if isinstance(tag, Tag) and _is_toc_heading(tag):
      sibling = tag.find_next_sibling()
      if isinstance(sibling, Tag) and sibling.name in {"ul", "ol"}:
        return sibling
      return None
  return None


def _item_label(item: Tag) -> str:
  # Only the item's own text; nested sub-lists are separate entries.
  parts: list[str] = []
  for child in item.children:
    if isinstance(child, Tag):
      if child.name not in {"ul", "ol"}:
        parts.append(child.get_text(" ", strip=True))
    elif isinstance(child, str):
      parts.append(str(child))
  return re.sub(r"\s+", " ", " ".join(parts)).strip()


def add_bookmark_anchors(html: str) -> tuple[str, BookmarkTree]:
  """Give every participating heading a unique `id` and return the resulting outline.

  Table of contents items whose text matches a heading are linked to that heading.
  """
  soup = BeautifulSoup(html, "html.parser")
  tree = _assign_anchors(soup, apply=True)
  if not tree:
    return html, tree
  _link_toc_items(soup, tree)
  return str(soup), tree


def _link_toc_items(soup: BeautifulSoup, tree: BookmarkTree) -> None:
  toc_list = _toc_list(soup)
  if toc_list is None:
    return
  anchors: dict[str, str] = {}
  for node in iter_bookmarks(tree):
    anchors.setdefault(normalize_heading(node.label), node.anchor_id)
  for item in toc_list.find_all("li"):
    if not isinstance(item, Tag) or item.find("a"):
      continue
    anchor_id = anchors.get(normalize_heading(_item_label(item)))
    text_node = next((child for child in item.children if isinstance(child, str) and child.strip()), None)
    if anchor_id is None or text_node is None:
      continue
    link = soup.new_tag("a", href=f"#{anchor_id}")
    link.string = text_node.strip()
    text_node.replace_with(link)


def add_bookmark_metadata(html: str, tree: BookmarkTree) -> str:
  """Annotate anchored headings with CSS bookmark properties and list the outline in `<head>`."""
  nodes = list(iter_bookmarks(tree))
  if not nodes:
    return html
  soup = BeautifulSoup(html, "html.parser")
  for node in nodes:
    tag = soup.find(id=node.anchor_id)
    if not isinstance(tag, Tag):
      continue
    label = node.label.replace("\\", "\\\\").replace('"', '\\"')
    style = str(tag.get("style") or "").strip().rstrip(";")
    bookmark_style = f'bookmark-level: {node.level}; bookmark-label: "{label}"'
    tag["style"] = f"{style}; {bookmark_style}" if style else bookmark_style
    tag["data-bookmark-level"] = str(node.level)
    tag["data-bookmark-label"] = node.label

  head = soup.find("head")
  if isinstance(head, Tag):
    for index, node in enumerate(nodes):
      meta = soup.new_tag("meta", attrs={"name": f"pdf-bookmark-{index}", "content": f"{node.label}|{node.level}|{node.anchor_id}"})
      head.append(meta)
  return str(soup)
