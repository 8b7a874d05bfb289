"""Periodic cleanup of expired security state."""
from gatehouse.database import get_db_context
from gatehouse.logging import get_logger
from gatehouse.services.otp import OTPService
from gatehouse.services.sessions import SessionStore

logger = get_logger(__name__)


def run_sweeps(session_factory=get_db_context) -> dict[str, int]:
    """Delete dead sessions and spent one-time codes."""
    with session_factory() as db:
        sessions = SessionStore(db).sweep()
        codes = OTPService(db).sweep()
    logger.info("sweep_completed", sessions_deleted=sessions, codes_deleted=codes)
    return {"sessions": sessions, "codes": codes}
