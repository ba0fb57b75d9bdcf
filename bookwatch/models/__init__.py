from .book import Book
from .chapter import Chapter
from .paragraph import Paragraph
from .book_version import BookVersion
from .version_snapshot import VersionSnapshot
from .book_comparison import BookComparison
from .book_catalog import BookCatalogEntry

__all__ = [
    "Book",
    "Chapter",
    "Paragraph",
    # 版本与快照
    "BookVersion",
    "VersionSnapshot",
    # 比对台账
    "BookComparison",
    # 书目
    "BookCatalogEntry",
]
