from flask import Blueprint

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')
auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

from . import auth
from . import content
from . import dashboard

__all__ = ['admin_bp', 'auth_bp']
