from flask import Blueprint, current_app, render_template

from ..store import get_store
from ..utils.decorators import admin_required
from .services import summarize_platform

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


@admin_bp.route('/')
@admin_required
def dashboard():
    store = get_store()
    cfg = current_app.config
    summary = summarize_platform(
        store.get_users(),
        store.get_shops(),
        store.get_orders(),
        cfg['PLATFORM_CHARGE_PERCENT'],
        limit=cfg['ADMIN_TOP_SHOPS'],
        rank_by_revenue=cfg['ADMIN_RANK_SHOPS_BY_REVENUE'],
    )
    return render_template('admin/dashboard.html', summary=summary)
