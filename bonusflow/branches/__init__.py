"""Branch management blueprint."""
from flask import Blueprint

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")

from . import routes  # noqa: E402,F401
