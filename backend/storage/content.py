"""
Content items stored in the wiki working copy.

Every item is exactly one file inside a namespace directory:
pages live in pages/<name>.textile, uploads in uploads/<name>.
"""
import re
from typing import Dict, Optional, Tuple, Type, Union

from .exceptions import InvalidNameException


PAGES = "pages"
UPLOADS = "uploads"

VALID_NAME_CHARS = r'\w !@#$%^&()\-_+=\[\]{},.'
VALID_NAME = re.compile(f"[{VALID_NAME_CHARS}]+")

HOME_PAGE = "Home"


def validate_name(name: str) -> str:
    """
    Check a content name against the allowed character set.

    Args:
        name: Candidate name

    Returns:
        The name unchanged

    Raises:
        InvalidNameException: If the name is empty, contains a disallowed
            character or starts with a dot
    """
    if not name or not VALID_NAME.fullmatch(name):
        raise InvalidNameException(f"Name is invalid: {name!r}")
    # Dotfiles are hidden from listings and can be git control files
    if name.startswith('.'):
        raise InvalidNameException(f"Name is invalid: {name!r}")
    return name


def is_valid_name(name: str) -> bool:
    try:
        validate_name(name)
    except InvalidNameException:
        return False
    return True


class ContentItem:
    """
    A named unit of wiki content.

    Identity is namespace + name; the body does not take part in
    equality or hashing.
    """

    namespace: str = ""
    suffix: str = ""

    def __init__(self, name: str, body: Union[str, bytes, None] = None):
        self.name = validate_name(name)
        self.body = self.empty_body() if body is None else body

    @classmethod
    def empty_body(cls) -> Union[str, bytes]:
        raise NotImplementedError

    @classmethod
    def filename(cls, name: str) -> str:
        """Filename for an item name, e.g. Foo -> Foo.textile for pages."""
        return f"{name}{cls.suffix}"

    @classmethod
    def relative_path(cls, name: str) -> str:
        """Working-copy-relative path, always with forward slashes."""
        return f"{cls.namespace}/{cls.filename(name)}"

    @classmethod
    def name_from_filename(cls, filename: str) -> Optional[str]:
        """
        Parse an item name back out of a filename.

        Returns None for files that don't belong to the namespace
        (wrong suffix, hidden files, invalid names).
        """
        if filename.startswith('.'):
            return None
        if cls.suffix:
            if not filename.endswith(cls.suffix) or filename == cls.suffix:
                return None
            filename = filename[:-len(cls.suffix)]
        return filename if is_valid_name(filename) else None

    @classmethod
    def sort_key(cls, item: "ContentItem") -> Tuple:
        return (item.name,)

    @classmethod
    def encode(cls, body: Union[str, bytes]) -> bytes:
        raise NotImplementedError

    @classmethod
    def decode(cls, data: bytes) -> Union[str, bytes]:
        raise NotImplementedError

    def __eq__(self, other):
        if not isinstance(other, ContentItem):
            return NotImplemented
        return (self.namespace, self.name) == (other.namespace, other.name)

    def __hash__(self):
        return hash((self.namespace, self.name))

    def __repr__(self):
        return f"{type(self).__name__}({self.name!r})"


class Page(ContentItem):
    """A wiki page: UTF-8 text stored as pages/<name>.textile"""

    namespace = PAGES
    suffix = ".textile"

    @classmethod
    def empty_body(cls) -> str:
        return ""

    @classmethod
    def sort_key(cls, item: ContentItem) -> Tuple:
        # Home sorts above every other page
        return (item.name != HOME_PAGE, item.name)

    @classmethod
    def encode(cls, body: Union[str, bytes]) -> bytes:
        if isinstance(body, bytes):
            return body
        return body.encode('utf-8')

    @classmethod
    def decode(cls, data: bytes) -> str:
        return data.decode('utf-8', errors='replace')


class Upload(ContentItem):
    """An uploaded file: raw bytes stored as uploads/<name>"""

    namespace = UPLOADS
    suffix = ""

    @classmethod
    def empty_body(cls) -> bytes:
        return b""

    @classmethod
    def encode(cls, body: Union[str, bytes]) -> bytes:
        if isinstance(body, str):
            return body.encode('utf-8')
        return body

    @classmethod
    def decode(cls, data: bytes) -> bytes:
        return data


CONTENT_TYPES: Dict[str, Type[ContentItem]] = {
    PAGES: Page,
    UPLOADS: Upload,
}


def content_type(namespace: str) -> Type[ContentItem]:
    """Look up the item class for a namespace."""
    try:
        return CONTENT_TYPES[namespace]
    except KeyError:
        raise ValueError(f"Unknown namespace: {namespace}")


def item_for_path(relative_path: str) -> Optional[ContentItem]:
    """
    Build an (empty) item for a working-copy-relative path.

    Args:
        relative_path: Path such as "pages/Home.textile" or "uploads/a.png"

    Returns:
        The matching item, or None if the path is not content
    """
    parts = relative_path.split('/')
    if len(parts) != 2 or parts[0] not in CONTENT_TYPES:
        return None
    cls = CONTENT_TYPES[parts[0]]
    name = cls.name_from_filename(parts[1])
    if name is None:
        return None
    return cls(name)


def sort_items(items):
    """
    Sort items by their namespace ordering rule.

    Mixed namespaces are grouped with pages first, then uploads.
    """
    order = list(CONTENT_TYPES)
    return sorted(
        items,
        key=lambda item: (order.index(item.namespace),) + CONTENT_TYPES[item.namespace].sort_key(item)
    )
