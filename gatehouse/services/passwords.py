"""Password hashing."""
import bcrypt

from gatehouse.config import get_settings


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with a fresh bcrypt salt.

    Errors from the hashing backend propagate; a password is never stored
    unhashed.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=cost),
    ).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash. Returns False instead of raising."""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        # Unparseable hash or an over-long password
        return False
