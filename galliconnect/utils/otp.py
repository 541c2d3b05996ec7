import secrets
from datetime import datetime, timedelta

from werkzeug.security import check_password_hash, generate_password_hash

OTP_LENGTH = 6


def generate_otp(length: int = OTP_LENGTH) -> str:
    # First digit is never zero, so the code is always 6 digits wide.
    first = str(secrets.randbelow(9) + 1)
    return first + ''.join(str(secrets.randbelow(10)) for _ in range(length - 1))


def hash_otp(code: str) -> str:
    return generate_password_hash(code)


def otp_matches(code_hash: str, submitted: str) -> bool:
    if not code_hash or submitted is None:
        return False
    return check_password_hash(code_hash, submitted)


def otp_expired(issued_at: datetime, now: datetime, minutes: int) -> bool:
    if minutes <= 0:
        return False
    return now >= issued_at + timedelta(minutes=minutes)
