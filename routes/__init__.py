from .health import health_bp
from .auth import auth_bp
from .families import families_bp
from .users import users_bp
from .books import books_bp
from .borrowings import borrowings_bp
from .admin import admin_bp
