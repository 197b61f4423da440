"""Random material for access credentials."""

import secrets
import string
import uuid

PASSWORD_LETTERS = string.ascii_uppercase
PASSWORD_DIGITS = string.digits


def gen_password(letters=4, digits=4):
    """Short code a visitor can read out at the gate, e.g. ``QZXA-4821``."""
    head = "".join(secrets.choice(PASSWORD_LETTERS) for _ in range(letters))
    tail = "".join(secrets.choice(PASSWORD_DIGITS) for _ in range(digits))
    return f"{head}-{tail}"


def gen_token():
    """Opaque QR payload. uuid4 draws from os.urandom."""
    return str(uuid.uuid4())
