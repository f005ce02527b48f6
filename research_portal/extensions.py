"""Flask extensions.

Keeping extensions in a dedicated module avoids circular imports and makes the
application factory cleaner.
"""

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect

from research_portal.db_models import db, User


login_manager = LoginManager()
migrate = Migrate()
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per minute"],
    storage_uri="memory://",
)

login_manager.login_message = "Please log in to continue."


@login_manager.user_loader
def load_user(user_id: str):
    # Flask-Login passes user_id as a string
    user = db.session.get(User, int(user_id))
    if user is None or not user.is_active:
        return None
    return user


@login_manager.unauthorized_handler
def unauthorized_api():
    """JSON 401 for every unauthenticated request; the portal has no login page."""
    from flask import jsonify

    return jsonify({"success": False, "message": "Please log in to continue."}), 401
