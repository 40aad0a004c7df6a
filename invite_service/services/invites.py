# invite_service/services/invites.py
import secrets
import string

TOKEN_ALPHABET = string.ascii_uppercase + string.digits  # 36 symbols
TOKEN_LENGTH = 7  # 36**7 ~ 7.8e10 candidates
MAX_INSERT_ATTEMPTS = 5  # per requested token


def generate_invite_token(alphabet: str = TOKEN_ALPHABET, length: int = TOKEN_LENGTH) -> str:
    # Uniform draw; uniqueness is enforced by the store, not here
    if not alphabet or length < 1:
        raise ValueError("alphabet must be non-empty and length >= 1")
    return "".join(secrets.choice(alphabet) for _ in range(length))
