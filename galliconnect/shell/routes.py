from flask import Blueprint, redirect, url_for

from ..domain import UserRole
from ..session import current_user

shell_bp = Blueprint('shell', __name__)

ROLE_HOMES = {
    UserRole.ADMIN: 'admin.dashboard',
    UserRole.RETAILER: 'retailer.dashboard',
    UserRole.CUSTOMER: 'customer.shops',
}


@shell_bp.route('/')
def index():
    user = current_user()
    if user is None:
        return redirect(url_for('auth.login'))
    return redirect(url_for(ROLE_HOMES[user.role]))
