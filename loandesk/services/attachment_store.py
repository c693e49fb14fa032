"""Local file storage for client documents and payment receipts."""
import os
import shutil
from datetime import datetime

from PIL import Image, UnidentifiedImageError

from loandesk.config import (
    ALLOWED_ATTACHMENT_EXTENSIONS,
    ATTACHMENT_CATEGORIES,
    IMAGE_EXTENSIONS,
    MAX_ATTACHMENT_BYTES,
    SETTING_ATTACHMENTS_DIR,
)
from loandesk.exceptions import AttachmentError
from loandesk.formatters import sanitize_filename
from loandesk.logger import get_logger

logger = get_logger(__name__)


class AttachmentStore:
    """Copies uploaded files into a folder next to the book.

    Files land in ``<root>/<category>/<owner_id>/<timestamp>_<name>``. The
    root comes from the ``attachments_dir`` setting, or defaults to an
    ``attachments`` folder beside the database file.
    """

    def __init__(self, db_manager, root=None):
        self.db = db_manager
        self._root = root

    @property
    def root(self):
        if self._root:
            return self._root
        configured = self.db.get_setting(SETTING_ATTACHMENTS_DIR)
        if configured:
            return configured
        db_name = getattr(self.db, 'db_name', None)
        if not db_name or db_name == ":memory:":
            base = os.getcwd()
        else:
            base = os.path.dirname(os.path.abspath(db_name))
        return os.path.join(base, "attachments")

    def validate(self, path):
        """Check an upload before storing it.

        Raises:
            AttachmentError: If the file is missing, of a disallowed type,
                larger than the size cap, or an unreadable image.
        """
        if not path or not os.path.isfile(path):
            raise AttachmentError("File not found", path)

        ext = os.path.splitext(path)[1].lower()
        if ext not in ALLOWED_ATTACHMENT_EXTENSIONS:
            allowed = ", ".join(e.lstrip('.').upper() for e in ALLOWED_ATTACHMENT_EXTENSIONS)
            raise AttachmentError(f"Unsupported file type. Allowed: {allowed}", path)

        size = os.path.getsize(path)
        if size > MAX_ATTACHMENT_BYTES:
            raise AttachmentError(
                f"File too large ({size / (1024 * 1024):.1f} MB). Maximum is "
                f"{MAX_ATTACHMENT_BYTES // (1024 * 1024)} MB", path)

        if ext in IMAGE_EXTENSIONS:
            try:
                with Image.open(path) as img:
                    img.verify()
            except (UnidentifiedImageError, OSError) as e:
                raise AttachmentError(f"Invalid image file: {e}", path)

    def store(self, path, category, owner_id):
        """Validate and copy a file into the store.

        Returns:
            Absolute path of the stored copy.
        """
        if category not in ATTACHMENT_CATEGORIES:
            raise AttachmentError(f"Unknown attachment category '{category}'")
        self.validate(path)

        folder = os.path.join(self.root, category, str(owner_id))
        name, ext = os.path.splitext(os.path.basename(path))
        stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
        target = os.path.join(folder, f"{stamp}_{sanitize_filename(name, fallback='file')}{ext.lower()}")

        try:
            os.makedirs(folder, exist_ok=True)
            shutil.copy2(path, target)
        except OSError as e:
            raise AttachmentError(f"Could not store file: {e}", path)

        logger.info("Stored %s attachment for %s at %s", category, owner_id, target)
        return target

    def export(self, stored_path, destination):
        """Copy a stored attachment out to ``destination``.

        Returns:
            The destination path.

        Raises:
            AttachmentError: If the stored file is gone or the copy fails.
        """
        if not stored_path or not os.path.isfile(stored_path):
            raise AttachmentError("Stored file not found", stored_path)
        try:
            shutil.copy2(stored_path, destination)
        except OSError as e:
            raise AttachmentError(f"Could not save file: {e}", stored_path)
        logger.info("Exported attachment %s to %s", stored_path, destination)
        return destination
