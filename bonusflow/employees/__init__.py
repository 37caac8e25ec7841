"""Employee, bonus and approval blueprint."""
from flask import Blueprint

employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")

from . import routes  # noqa: E402,F401
