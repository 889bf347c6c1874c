"""
Proof Storage
Single blocking put of a payment-proof image, then its public URL.
No resumable uploads and no retry; a failed write surfaces to the caller.
"""

import logging
import os
import time

from werkzeug.utils import secure_filename

from gtshop.errors import InternalError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
MAX_PROOF_BYTES = 10 * 1024 * 1024


class ProofStorage:
    def __init__(self, upload_folder, public_base_url):
        self.upload_folder = upload_folder
        self.public_base_url = public_base_url.rstrip("/")

    def validate(self, upload):
        if upload is None or not getattr(upload, "filename", ""):
            raise ValidationError("Please select a file first")
        if upload.mimetype not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("Please select a valid image file (JPG, PNG, WebP)")

    def save(self, order_id, upload):
        self.validate(upload)
        content = upload.read()
        if len(content) > MAX_PROOF_BYTES:
            raise ValidationError("File size must be less than 10MB")
        if not content:
            raise ValidationError("Uploaded file is empty")

        filename = f"{int(time.time() * 1000)}_{secure_filename(upload.filename) or 'proof'}"
        relative = f"proofs/{secure_filename(order_id)}/{filename}"
        target = os.path.join(self.upload_folder, *relative.split("/"))
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as fh:
                fh.write(content)
        except OSError as e:
            raise InternalError(f"Failed to store proof for {order_id}: {e}")

        logger.info("Stored proof for order %s at %s", order_id, relative)
        return f"{self.public_base_url}/uploads/{relative}"

    def delete(self, proof_url):
        """Remove a proof stored by save(). Logs and returns False on failure."""
        prefix = f"{self.public_base_url}/uploads/"
        if not proof_url or not proof_url.startswith(prefix):
            return False
        relative = proof_url[len(prefix):]
        target = os.path.join(self.upload_folder, *relative.split("/"))
        try:
            os.remove(target)
        except OSError as e:
            logger.warning("Could not remove proof %s: %s", relative, e)
            return False
        logger.info("Removed unused proof %s", relative)
        return True
