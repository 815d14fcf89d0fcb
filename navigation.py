"""
Navigation state derived from the flat topic list.

Everything here is pure: it works on topic dicts that have already been
fetched (ascending by timestamp) and never touches the database.
"""
from typing import Any, Dict, List, Optional, Tuple

RESERVED_CLASSES = {"Class 9", "Class 10", "Class 11", "Class 12"}
UNCATEGORIZED = "Uncategorized"

NAVBAR_WINDOW_SIZE = 6
SMALL_SCREEN_WIDTH = 992

EXCERPT_WORDS = 8
EXCERPT_ELLIPSIS_AFTER = 25
NO_DESCRIPTION = "No description available"


def _label(record: Dict[str, Any], field: str) -> str:
    value = record.get(field)
    if value is None:
        return UNCATEGORIZED
    value = str(value).strip()
    return value or UNCATEGORIZED


# -----------------------
# Topic tree
# -----------------------
def build_navbar_classes(topics: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """List form: one entry per class, subcategories in first-seen order with
    duplicates kept. Reserved classes never show up in the navbar."""
    data: Dict[str, List[str]] = {}
    for t in topics:
        class_name = _label(t, "class")
        if class_name in RESERVED_CLASSES:
            continue
        data.setdefault(class_name, []).append(_label(t, "subCategory"))
    return [{"class": k, "subCategories": v} for k, v in data.items()]


def build_sidebar_tree(topics: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Tree form: class -> categories -> unique subcategories."""
    data: Dict[str, Dict[str, Dict[str, None]]] = {}
    for t in topics:
        categories = data.setdefault(_label(t, "class"), {})
        # dict keys keep insertion order, so they double as an ordered set
        categories.setdefault(_label(t, "category"), {})[_label(t, "subCategory")] = None
    return [
        {
            "title": class_name,
            "content": [
                {"category": category, "subCategories": list(subs)}
                for category, subs in categories.items()
            ],
        }
        for class_name, categories in data.items()
    ]


def filter_sidebar_tree(tree: List[Dict[str, Any]], search: Optional[str]) -> List[Dict[str, Any]]:
    term = (search or "").lower()
    return [node for node in tree if term in node["title"].lower()]


# -----------------------
# Previous / next topic
# -----------------------
def _sort_key(record: Dict[str, Any]):
    ts = record.get("timestamp")
    # records without a timestamp sort first, in their delivered order
    return (ts is not None, ts if ts is not None else 0)


def sequence_topics(
    topics: List[Dict[str, Any]], current_id: str
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Return (previous, next) for the topic with id ``current_id``.

    Only topics sharing the current subcategory are considered, ordered by
    timestamp. A neighbour is dropped unless both its subCategory and its class
    match the current topic, since subcategory names are reused across classes.
    Labels are compared the way the tree builder groups them (trimmed, blank
    meaning Uncategorized). An unknown id gives (None, None).
    """
    current = next((t for t in topics if t.get("id") == current_id), None)
    if current is None:
        return None, None

    siblings = sorted(
        (t for t in topics if _label(t, "subCategory") == _label(current, "subCategory")),
        key=_sort_key,
    )
    index = next(i for i, t in enumerate(siblings) if t.get("id") == current_id)

    def same_branch(candidate: Dict[str, Any]) -> bool:
        return (
            _label(candidate, "subCategory") == _label(current, "subCategory")
            and _label(candidate, "class") == _label(current, "class")
        )

    previous = siblings[index - 1] if index > 0 else None
    following = siblings[index + 1] if index + 1 < len(siblings) else None
    return (
        previous if previous is not None and same_branch(previous) else None,
        following if following is not None and same_branch(following) else None,
    )


# -----------------------
# Navbar window
# -----------------------
def is_small_screen(width: Optional[int]) -> bool:
    return width is not None and width < SMALL_SCREEN_WIDTH


def scroll_window(
    start: int,
    total: int,
    direction: str,
    window_size: int = NAVBAR_WINDOW_SIZE,
    small_screen: bool = False,
) -> int:
    """New start index after moving the navbar window one step."""
    if small_screen:
        return start
    if direction == "left" and start > 0:
        return start - 1
    if direction == "right" and start + window_size < total:
        return start + 1
    return start


def visible_window(
    items: List[Any], start: int, window_size: int = NAVBAR_WINDOW_SIZE, small_screen: bool = False
) -> List[Any]:
    if small_screen:
        return list(items)
    return items[start:start + window_size]


def window_state(
    items: List[Any], start: int, window_size: int = NAVBAR_WINDOW_SIZE, small_screen: bool = False
) -> Dict[str, Any]:
    start = max(0, min(start, max(len(items) - window_size, 0)))
    return {
        "start": start,
        "total": len(items),
        "window_size": len(items) if small_screen else window_size,
        "small_screen": small_screen,
        "can_scroll_left": not small_screen and start > 0,
        "can_scroll_right": not small_screen and start + window_size < len(items),
        "items": visible_window(items, start, window_size, small_screen),
    }


# -----------------------
# Description excerpt
# -----------------------
def excerpt(
    description: Optional[str],
    words: int = EXCERPT_WORDS,
    ellipsis_after: int = EXCERPT_ELLIPSIS_AFTER,
) -> str:
    """First ``words`` space-separated tokens, with "..." only when the full
    text has more than ``ellipsis_after`` tokens. The two cutoffs differ by
    default; pass the same value for both to get a conventional excerpt."""
    if not description:
        return NO_DESCRIPTION
    tokens = description.split(" ")
    text = " ".join(tokens[:words])
    return text + "..." if len(tokens) > ellipsis_after else text


# -----------------------
# Attachments
# -----------------------
def file_urls(record: Dict[str, Any]) -> List[str]:
    value = record.get("fileURL")
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [u for u in value if u]


def describe_attachment(url: str) -> Dict[str, Optional[str]]:
    if "drive.google.com" in url and "/d/" in url:
        file_id = url.split("/d/")[1].split("/")[0]
        return {"kind": "drive", "href": f"https://drive.google.com/file/d/{file_id}/view", "label": "Open Google Drive File"}
    lowered = url.lower()
    if ".pdf" in lowered:
        return {"kind": "pdf", "href": url, "label": "Open PDF File"}
    if any(ext in lowered for ext in (".jpg", ".jpeg", ".png")):
        return {"kind": "image", "href": url, "label": None}
    return {"kind": "unknown", "href": url, "label": "No preview available for this file."}
