"""
Content store: wiki pages and uploads persisted in a git working copy.

Translates content item operations into repository operations. Every
mutation is one commit; mutations and syncs are serialized against reads
with a readers-writer lock.
"""
import logging
import re
from typing import List, Dict, Tuple, Type, Union, Any

from .content import ContentItem, Page, PAGES, UPLOADS, content_type, item_for_path, sort_items, validate_name
from .exceptions import ContentNotFoundException, InvalidNameException
from .locking import ReadWriteLock
from .repository import Repository, Outcome, Result

logger = logging.getLogger(__name__)

# A conflicted file has both an opening and a closing marker line
CONFLICT_START = re.compile(rb'^<{7}(?: |$)', re.MULTILINE)
CONFLICT_END = re.compile(rb'^>{7}(?: |$)', re.MULTILINE)


def has_conflict_markers(data: bytes) -> bool:
    return bool(CONFLICT_START.search(data) and CONFLICT_END.search(data))


NamespaceOrType = Union[str, Type[ContentItem]]


def _resolve(namespace: NamespaceOrType) -> Type[ContentItem]:
    if isinstance(namespace, type) and issubclass(namespace, ContentItem):
        return namespace
    return content_type(namespace)


class ContentStore:
    """
    Durable, version-controlled store for wiki content.

    Namespaces may be passed either as a name ("pages", "uploads") or as
    the item class (Page, Upload).
    """

    def __init__(self, repository: Repository, push_enabled: bool = False):
        """
        Args:
            repository: Opened repository handle
            push_enabled: Push local commits to origin after each sync
        """
        self.repository = repository
        self.push_enabled = push_enabled
        self.lock = ReadWriteLock()

    @property
    def root(self):
        return self.repository.path

    # Mutations

    def save(self, item: ContentItem) -> Outcome:
        """
        Write an item and commit it.

        Args:
            item: Page or Upload to save

        Returns:
            Outcome.OK, or Outcome.CONTENT_NOT_MODIFIED if the content was
            already stored (no commit is made)

        Raises:
            InvalidNameException: If the item's name is invalid
        """
        validate_name(item.name)
        relative_path = item.relative_path(item.name)

        with self.lock.write():
            filepath = self.root / relative_path
            try:
                filepath.parent.mkdir(parents=True, exist_ok=True)
                filepath.write_bytes(item.encode(item.body))
                self.repository.stage(relative_path)
                result = self.repository.commit(f"saving {item.name}")
            except Exception:
                self.repository.discard(relative_path)
                raise

        if result.outcome is Outcome.CONTENT_NOT_MODIFIED:
            logger.debug(f"Didn't need to save {item.name}")
        else:
            logger.info(f"Saved {relative_path}")
        return result.outcome

    def rename(self, namespace: NamespaceOrType, old_name: str, new_name: str) -> ContentItem:
        """
        Rename an item as a single commit.

        Args:
            namespace: Namespace of the item
            old_name: Current name
            new_name: New name

        Returns:
            The item under its new name (unchanged if the names are equal)

        Raises:
            InvalidNameException: If new_name is invalid or already taken
            ContentNotFoundException: If old_name doesn't exist
        """
        cls = _resolve(namespace)

        if new_name == old_name:
            return self.load(cls, old_name)

        validate_name(new_name)

        with self.lock.write():
            item = self._load(cls, old_name)
            old_path = cls.relative_path(old_name)
            new_path = cls.relative_path(new_name)

            if (self.root / new_path).exists():
                raise InvalidNameException(f"'{new_name}' already exists")

            try:
                self.repository.move(old_path, new_path, f"renaming {old_name} to {new_name}")
            except Exception:
                self.repository.discard(old_path)
                self.repository.discard(new_path)
                raise

        logger.info(f"Renamed {old_path} to {new_path}")
        return cls(new_name, item.body)

    def delete(self, namespace: NamespaceOrType, name: str):
        """
        Delete an item as a single commit.

        Raises:
            ContentNotFoundException: If the item doesn't exist
        """
        cls = _resolve(namespace)
        relative_path = cls.relative_path(name)

        with self.lock.write():
            if not self._exists(cls, name):
                raise ContentNotFoundException(f"{cls.__name__} '{name}' not found")

            try:
                self.repository.remove(relative_path, f"deleting {name}")
            except Exception:
                self.repository.discard(relative_path)
                raise

        logger.info(f"Deleted {relative_path}")

    def sync(self) -> Result:
        """
        Pull from origin, then push if pushing is enabled.

        Returns:
            The pull result, or the push result if the push failed
        """
        with self.lock.write():
            result = self.repository.pull()
            if self.push_enabled and result.outcome is not Outcome.CONNECTION_FAILED:
                pushed = self.repository.push()
                if not pushed.ok:
                    return pushed
        return result

    # Queries

    def exists(self, namespace: NamespaceOrType, name: str) -> bool:
        with self.lock.read():
            return self._exists(_resolve(namespace), name)

    def load(self, namespace: NamespaceOrType, name: str) -> ContentItem:
        """
        Load an item from the working copy.

        Raises:
            ContentNotFoundException: If the item doesn't exist
        """
        with self.lock.read():
            return self._load(_resolve(namespace), name)

    def list(self, namespace: NamespaceOrType) -> List[ContentItem]:
        """
        List all items in a namespace, in the namespace's order.

        Items are returned without their bodies.
        """
        cls = _resolve(namespace)
        directory = self.root / cls.namespace

        with self.lock.read():
            if not directory.is_dir():
                return []
            items = []
            for filepath in directory.iterdir():
                if not filepath.is_file():
                    continue
                name = cls.name_from_filename(filepath.name)
                if name is None:
                    logger.debug(f"Skipping {filepath.name} in {cls.namespace}/")
                    continue
                items.append(cls(name))

        return sort_items(items)

    def search(self, query: str) -> Dict[Page, List[Tuple[int, str]]]:
        """
        Case-insensitive search over the current content of tracked pages.

        Args:
            query: Text to look for

        Returns:
            Mapping of page to its matching (line number, line) pairs,
            line numbers starting at 1; pages without hits are absent
        """
        if not query:
            return {}
        needle = query.lower()
        results = {}

        with self.lock.read():
            for relative_path in self.repository.tracked_files(PAGES):
                item = item_for_path(relative_path)
                filepath = self.root / relative_path
                if item is None or not filepath.is_file():
                    continue

                text = Page.decode(filepath.read_bytes())
                hits = [
                    (line_num, line.rstrip('\r'))
                    for line_num, line in enumerate(text.split('\n'), start=1)
                    if needle in line.lower()
                ]
                if hits:
                    item.body = text
                    results[item] = hits

        return {page: results[page] for page in sort_items(results)}

    def conflicts(self) -> List[ContentItem]:
        """Tracked pages and uploads whose files still contain conflict markers."""
        conflicted = []

        with self.lock.read():
            for namespace in (PAGES, UPLOADS):
                for relative_path in self.repository.tracked_files(namespace):
                    item = item_for_path(relative_path)
                    filepath = self.root / relative_path
                    if item is None or not filepath.is_file():
                        continue
                    if has_conflict_markers(filepath.read_bytes()):
                        conflicted.append(item)

        return sort_items(conflicted)

    def history(self, namespace: NamespaceOrType, name: str, limit: int = 50) -> List[Dict[str, Any]]:
        """
        Commit history of an item, newest first.

        Raises:
            ContentNotFoundException: If the item doesn't exist
        """
        cls = _resolve(namespace)
        with self.lock.read():
            if not self._exists(cls, name):
                raise ContentNotFoundException(f"{cls.__name__} '{name}' not found")
            return self.repository.history(cls.relative_path(name), limit)

    # Unlocked helpers, callers hold the lock

    def _exists(self, cls: Type[ContentItem], name: str) -> bool:
        try:
            validate_name(name)
        except InvalidNameException:
            return False
        return (self.root / cls.relative_path(name)).is_file()

    def _load(self, cls: Type[ContentItem], name: str) -> ContentItem:
        if not self._exists(cls, name):
            raise ContentNotFoundException(f"{cls.__name__} '{name}' not found")
        data = (self.root / cls.relative_path(name)).read_bytes()
        return cls(name, cls.decode(data))
