from .db import db
from .family import Family
from .user import User, ROLES
from .book import Book
from .borrowing import Borrowing, BORROWING_STATUSES, ACTIVE_STATUSES
from .session import Session
from .password_reset_token import PasswordResetToken
from .admin_audit import AdminAudit
