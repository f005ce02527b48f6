"""Research contribution JSON blueprint package."""

from flask import Blueprint

research_bp = Blueprint("research", __name__)

# Import route modules so decorators attach to `research_bp`.
from . import helpers  # noqa: F401
from . import contributions  # noqa: F401
from . import reviews  # noqa: F401
from . import policies  # noqa: F401
